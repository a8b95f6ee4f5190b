import logging

from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from .config import Config

# Initialize SQLAlchemy outside the create_app function
db = SQLAlchemy()


def create_app(config_class=Config):
    # 1. Application Setup
    app = Flask(__name__)
    app.config.from_object(config_class)
    logging.getLogger(__name__).setLevel(app.config.get('LOG_LEVEL', 'INFO'))

    # 2. Database Initialization
    db.init_app(app)

    # 3. Register Blueprints (Routes) and JSON error handlers
    from .routes import register_blueprints
    from .errors import register_error_handlers
    register_blueprints(app)
    register_error_handlers(app)

    # 4. Import Models so SQLAlchemy knows about every ledger table
    from . import models

    # 5. Database Table Creation (Inside application context)
    with app.app_context():
        db.create_all()

    return app

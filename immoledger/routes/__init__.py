# Register all blueprints here
def register_blueprints(app):
    from .rental import rental_bp
    from .payments import payments_bp
    from .bookings import bookings_bp
    from .reports import reports_bp

    app.register_blueprint(rental_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(bookings_bp)
    app.register_blueprint(reports_bp)

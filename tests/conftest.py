import pytest
from datetime import datetime
from immoledger import create_app, db
from immoledger.config import TestingConfig
from immoledger.models import *  # register models so metadata is available
from immoledger.store import SqlAlchemyStore
from immoledger.services import RentalBillingEngine, OccupancyCoordinator, ReservationEngine
from sqlalchemy.orm import sessionmaker, scoped_session

# Engines under test read "now" from this clock instead of the wall clock
FIXED_NOW = datetime(2025, 1, 15, 10, 30)
OWNER = 'owner-1'


@pytest.fixture(scope='module')
def app():
    """Create and configure a new app instance for each test module."""
    app = create_app(config_class=TestingConfig)
    yield app


@pytest.fixture(scope='function')
def db_session(app):
    """
    Create a transactional-scoped session for each test function.

    Uses an explicit connection/transaction and a scoped_session bound
    to that connection so sqlite:///:memory: tables persist for the
    duration of the test. Restores the original Flask-SQLAlchemy session
    on teardown to avoid leaving db.session pointing at a closed connection.
    """
    with app.app_context():
        original_session = db.session

        connection = db.engine.connect()
        transaction = connection.begin()

        session_factory = sessionmaker(bind=connection)
        Session = scoped_session(session_factory)

        # Create all tables on the same connection (important for in-memory sqlite).
        db.metadata.create_all(bind=connection)

        # Route handlers build their store from db.session, so point it at ours.
        db.session = Session

        try:
            yield Session()
        finally:
            Session.remove()
            transaction.rollback()
            connection.close()
            db.session = original_session


@pytest.fixture(scope='function')
def client(app, db_session):
    """A Flask test client to make HTTP requests during integration tests."""
    return app.test_client()


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def store(db_session):
    return SqlAlchemyStore(db_session)


@pytest.fixture
def billing(store, clock):
    return RentalBillingEngine(store, clock=clock)


@pytest.fixture
def occupancy(store, clock):
    return OccupancyCoordinator(store, clock=clock)


@pytest.fixture
def reservations(store, clock):
    return ReservationEngine(store, clock=clock)


@pytest.fixture
def rented(occupancy):
    """A property (rent 100000, charges 10000) with one active tenant due on the 31st."""
    prop = occupancy.create_managed_property(OWNER, {
        'name': 'Villa Lome', 'monthly_rent': 100000, 'charges': 10000,
    })
    tenant = occupancy.on_tenant_created(OWNER, {
        'property_id': prop.id, 'full_name': 'Ama Mensah', 'due_day': 31,
    })
    return prop, tenant

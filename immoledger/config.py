import os
# Define the base directory for the database file (the project root)
BASEDIR = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
DB_PATH = os.path.join(BASEDIR, 'immoledger.db')


class BillingConfig:
    # Hard cap on periods produced by a single generation call
    MAX_GENERATED_PERIODS = int(os.environ.get('MAX_GENERATED_PERIODS', 24))
    # Periods generated when the caller gives no end period
    DEFAULT_GENERATION_MONTHS = int(os.environ.get('DEFAULT_GENERATION_MONTHS', 12))
    PAYMENT_METHODS = tuple(
        os.environ.get('PAYMENT_METHODS', 'cash,bank_transfer,mobile_money,check,other').split(',')
    )


class BookingConfig:
    BOOKING_REFERENCE_PREFIX = os.environ.get('BOOKING_REFERENCE_PREFIX', 'BK')
    BOOKING_REFERENCE_SUFFIX_LENGTH = int(os.environ.get('BOOKING_REFERENCE_SUFFIX_LENGTH', 4))
    # Generated references are checked against existing ones this many times
    BOOKING_REFERENCE_ATTEMPTS = int(os.environ.get('BOOKING_REFERENCE_ATTEMPTS', 5))
    DEFAULT_CURRENCY = os.environ.get('DEFAULT_CURRENCY', 'XOF')


class Config:
    """Base configuration class."""
    # Defaulting to a file-based SQLite database
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///' + DB_PATH
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Secret Key is required by Flask
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'a-very-secret-and-hard-to-guess-string'

    # Header carrying the id of the acting landlord, set by the auth gateway
    ACTOR_HEADER = os.environ.get('ACTOR_HEADER', 'X-Actor-Id')
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')


class TestingConfig(Config):
    """Configuration used specifically for running Pytest."""
    TESTING = True
    # Crucial: Use an in-memory SQLite database for fast, isolated testing
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SQLALCHEMY_ECHO = False
    LOG_LEVEL = 'WARNING'

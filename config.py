"""Configuration module for Flask application."""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """Base configuration class."""

    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = os.getenv('FLASK_DEBUG', '0') == '1'
    ENV = os.getenv('FLASK_ENV', 'development')
    TESTING = False

    # Database - DATABASE_URL wins over DB_* parts
    DATABASE_URL = os.getenv('DATABASE_URL')

    if not DATABASE_URL:
        DB_HOST = os.getenv('DB_HOST', 'localhost')
        DB_PORT = os.getenv('DB_PORT', '5432')
        DB_NAME = os.getenv('DB_NAME', 'orderdesk')
        DB_USER = os.getenv('DB_USER', 'orderdesk')
        DB_PASSWORD = os.getenv('DB_PASSWORD', 'orderdesk')

        DATABASE_URL = (
            f"postgresql://{DB_USER}:{DB_PASSWORD}"
            f"@{DB_HOST}:{DB_PORT}/{DB_NAME}"
        )

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_ECHO = os.getenv('SQLALCHEMY_ECHO', 'false').lower() == 'true'

    # Line items
    # Comma separated keys of customisation data kept in LineItemCustomisation.extra
    ORDERS_CUSTOM_MAP = os.getenv('ORDERS_CUSTOM_MAP', '')
    ORDERS_FORCE_CHECK_STOCK = os.getenv('ORDERS_FORCE_CHECK_STOCK', 'false').lower() == 'true'
    ORDERS_PRODUCT_STOCKED_PARAM = os.getenv('ORDERS_PRODUCT_STOCKED_PARAM', 'stocked')
    ORDERS_PRODUCT_STOCK_PARAM = os.getenv('ORDERS_PRODUCT_STOCK_PARAM', 'stock_level')
    ORDERS_PRODUCT_DELIVERABLE_PARAM = os.getenv('ORDERS_PRODUCT_DELIVERABLE_PARAM', 'deliverable')

    # Estimates / invoices
    ORDERS_ORDER_REF_PARAM = os.getenv('ORDERS_ORDER_REF_PARAM', 'ref')
    ORDERS_DEFAULT_VALIDITY_DAYS = int(os.getenv('ORDERS_DEFAULT_VALIDITY_DAYS', '30'))
    ORDERS_ESTIMATE_PREFIX = os.getenv('ORDERS_ESTIMATE_PREFIX', '')
    ORDERS_INVOICE_PREFIX = os.getenv('ORDERS_INVOICE_PREFIX', '')
    ORDERS_NUMBER_LENGTH = int(os.getenv('ORDERS_NUMBER_LENGTH', '0'))

    # Comma separated import paths of line item plugins
    ORDERS_PLUGINS = os.getenv(
        'ORDERS_PLUGINS',
        'orderdesk.services.product_option_service:ProductOptionsPlugin'
    )


class TestingConfig(Config):
    """In-memory SQLite configuration used by the test suite."""

    TESTING = True
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SQLALCHEMY_ECHO = False
    ORDERS_CUSTOM_MAP = 'colour_code,notes'
    ORDERS_ESTIMATE_PREFIX = 'EST'
    ORDERS_INVOICE_PREFIX = 'INV'
    ORDERS_NUMBER_LENGTH = 4

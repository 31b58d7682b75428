"""Configuration module for the storefront Flask application."""
import os
from decimal import Decimal
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """Base configuration class."""

    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = os.getenv('FLASK_DEBUG', '1') == '1'
    ENV = os.getenv('FLASK_ENV', 'development')

    # Session Configuration (Production-safe defaults)
    SESSION_COOKIE_SECURE = os.getenv('SESSION_COOKIE_SECURE', 'false').lower() == 'true'
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = os.getenv('SESSION_COOKIE_SAMESITE', 'Lax')
    PERMANENT_SESSION_LIFETIME = 60 * 60 * 24 * 30  # carts live 30 days

    # Database - Support multiple environment variable naming conventions
    # Priority: DATABASE_URL > DB_* > POSTGRES_*
    DATABASE_URL = os.getenv('DATABASE_URL')

    if not DATABASE_URL:
        DB_HOST = os.getenv('DB_HOST') or os.getenv('POSTGRES_HOST', 'localhost')
        DB_PORT = os.getenv('DB_PORT') or os.getenv('POSTGRES_PORT', '5432')
        DB_NAME = os.getenv('DB_NAME') or os.getenv('POSTGRES_DB', 'storefront')
        DB_USER = os.getenv('DB_USER') or os.getenv('POSTGRES_USER', 'storefront')
        DB_PASSWORD = os.getenv('DB_PASSWORD') or os.getenv('POSTGRES_PASSWORD', 'storefront')

        DATABASE_URL = (
            f"postgresql+psycopg://{DB_USER}:{DB_PASSWORD}"
            f"@{DB_HOST}:{DB_PORT}/{DB_NAME}"
        )

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_ECHO = os.getenv('SQLALCHEMY_ECHO', 'false').lower() == 'true'

    # Shop settings (consumed by the pricing engine, never owned by it)
    SHOP_NAME = os.getenv('SHOP_NAME', 'MyShop')
    TAX_RATE = Decimal(os.getenv('TAX_RATE', '14'))  # percentage
    DEFAULT_CURRENCY = os.getenv('DEFAULT_CURRENCY', 'USD')
    DEFAULT_LOCALE = os.getenv('DEFAULT_LOCALE', 'en')
    SUPPORTED_LOCALES = os.getenv('SUPPORTED_LOCALES', 'en,ar').split(',')
    REFUND_WINDOW_DAYS = int(os.getenv('REFUND_WINDOW_DAYS', '30'))

    # Currency display
    CURRENCY_SYMBOL_POSITION = os.getenv('CURRENCY_SYMBOL_POSITION', 'before')  # before | after
    CURRENCY_THOUSAND_SEPARATOR = os.getenv('CURRENCY_THOUSAND_SEPARATOR', ',')
    CURRENCY_DECIMAL_SEPARATOR = os.getenv('CURRENCY_DECIMAL_SEPARATOR', '.')
    CURRENCY_DECIMALS = int(os.getenv('CURRENCY_DECIMALS', '2'))

    # Delivery / COD
    COD_ENABLED = os.getenv('COD_ENABLED', 'true').lower() == 'true'
    MAX_CONCURRENT_ASSIGNMENTS = int(os.getenv('MAX_CONCURRENT_ASSIGNMENTS', '10'))

    # Payment gateway webhooks
    WEBHOOK_SECRETS = {
        'stripe': os.getenv('STRIPE_WEBHOOK_SECRET'),
        'paypal': os.getenv('PAYPAL_WEBHOOK_SECRET'),
    }

    # Redis Cache Configuration
    REDIS_URL = os.getenv('REDIS_URL', 'redis://redis:6379/0')
    CACHE_ENABLED = os.getenv('CACHE_ENABLED', 'true').lower() == 'true'
    CACHE_DEFAULT_TTL = int(os.getenv('CACHE_DEFAULT_TTL', '60'))  # seconds
    CACHE_CURRENCIES_TTL = int(os.getenv('CACHE_CURRENCIES_TTL', '3600'))
    CACHE_KEY_PREFIX = os.getenv('CACHE_KEY_PREFIX', 'shop')


class TestConfig(Config):
    """Configuration used by the test-suite (SQLite file, no Redis, no CSRF)."""

    TESTING = True
    DEBUG = False
    ENV = 'testing'
    WTF_CSRF_ENABLED = False
    SQLALCHEMY_DATABASE_URI = os.getenv('TEST_DATABASE_URL', 'sqlite:///storefront_test.db')
    SQLALCHEMY_ECHO = False
    CACHE_ENABLED = False
    TAX_RATE = Decimal('14')
    WEBHOOK_SECRETS = {'stripe': 'whsec_test'}

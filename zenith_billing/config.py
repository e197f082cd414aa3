"""
Configuration management for the billing service.

Values are read from the environment (a .env file is loaded by wsgi.py and
manage.py). validate_config() is called by the application factory and fails
fast with every missing key listed, instead of letting a provider call go out
with an empty credential.
"""

import os
import logging
from datetime import timedelta
from urllib.parse import urlparse

from zenith_billing.errors import ConfigurationError

logger = logging.getLogger(__name__)


def _env_bool(name, default="False"):
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class BaseConfig:
    """Settings shared by every environment."""

    APP_NAME = os.getenv("APP_NAME", "Zenith Billing")
    APP_VERSION = os.getenv("APP_VERSION", "1.0.0")
    ENVIRONMENT = "development"
    DEBUG = False
    TESTING = False

    # ============================================
    # SECURITY KEYS
    # ============================================
    SECRET_KEY = os.getenv("SECRET_KEY", "")
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "")
    JWT_TOKEN_LOCATION = ["headers", "cookies"]
    JWT_HEADER_NAME = "Authorization"
    JWT_HEADER_TYPE = "Bearer"
    JWT_ACCESS_COOKIE_NAME = "access_token"
    JWT_COOKIE_CSRF_PROTECT = False
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(minutes=int(os.getenv("JWT_ACCESS_TOKEN_MINUTES", "60")))
    JWT_ALGORITHM = "HS256"

    # ============================================
    # DATABASE
    # ============================================
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # ============================================
    # PAYMENT PROVIDERS
    # ============================================
    STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY", "")
    STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET", "")
    STRIPE_PUBLISHABLE_KEY = os.getenv("STRIPE_PUBLISHABLE_KEY", "")
    STRIPE_PRICE_IDS = {
        "starter": os.getenv("STRIPE_STARTER_PRICE_ID", ""),
        "pro": os.getenv("STRIPE_PRO_PRICE_ID", ""),
        "enterprise": os.getenv("STRIPE_ENTERPRISE_PRICE_ID", ""),
    }

    FLUTTERWAVE_SECRET_KEY = os.getenv("FLUTTERWAVE_SECRET_KEY", "")
    FLUTTERWAVE_PUBLIC_KEY = os.getenv("FLUTTERWAVE_PUBLIC_KEY", "")
    # Secret hash configured on the Flutterwave dashboard, echoed back in verif-hash
    FLUTTERWAVE_WEBHOOK_HASH = os.getenv("FLUTTERWAVE_WEBHOOK_HASH", "")
    FLUTTERWAVE_BASE_URL = os.getenv("FLUTTERWAVE_BASE_URL", "https://api.flutterwave.com/v3")
    FLUTTERWAVE_VERIFY_TRANSACTIONS = _env_bool("FLUTTERWAVE_VERIFY_TRANSACTIONS")
    FLUTTERWAVE_LOGO_URL = os.getenv("FLUTTERWAVE_LOGO_URL", "")

    PROVIDER_TIMEOUT_SECONDS = int(os.getenv("PROVIDER_TIMEOUT_SECONDS", "10"))
    DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "USD")
    WEBHOOK_DEDUPLICATE_PAYMENTS = _env_bool("WEBHOOK_DEDUPLICATE_PAYMENTS", "True")

    # ============================================
    # FRONTEND / GATE
    # ============================================
    FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173").rstrip("/")
    LOGIN_URL = os.getenv("LOGIN_URL", "/login")
    PAYWALL_URL = os.getenv("PAYWALL_URL", "/payment-required")
    SUBSCRIPTION_STATUS_CACHE_SECONDS = float(os.getenv("SUBSCRIPTION_STATUS_CACHE_SECONDS", "5"))
    SUBSCRIPTION_STATUS_CACHE_MAX_ENTRIES = int(os.getenv("SUBSCRIPTION_STATUS_CACHE_MAX_ENTRIES", "10000"))
    CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "").split(",") if o.strip()]

    # ============================================
    # LOGGING / MONITORING
    # ============================================
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_REQUESTS = _env_bool("LOG_REQUESTS")
    SENTRY_DSN = os.getenv("SENTRY_DSN", "")

    REQUIRED_KEYS = (
        "SECRET_KEY",
        "JWT_SECRET_KEY",
        "SQLALCHEMY_DATABASE_URI",
        "STRIPE_SECRET_KEY",
        "STRIPE_WEBHOOK_SECRET",
        "FLUTTERWAVE_SECRET_KEY",
        "FLUTTERWAVE_WEBHOOK_HASH",
    )


class DevelopmentConfig(BaseConfig):
    ENVIRONMENT = "development"
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///zenith_billing.db")
    LOG_REQUESTS = True


class ProductionConfig(BaseConfig):
    ENVIRONMENT = "production"
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_size": int(os.getenv("DATABASE_POOL_SIZE", "10")),
        "max_overflow": int(os.getenv("DATABASE_MAX_OVERFLOW", "20")),
        "pool_recycle": int(os.getenv("DATABASE_POOL_RECYCLE", "3600")),
        "pool_pre_ping": True,
    }


class TestingConfig(BaseConfig):
    ENVIRONMENT = "testing"
    TESTING = True
    SECRET_KEY = "test-secret-key"
    JWT_SECRET_KEY = "test-jwt-secret-key-with-enough-length"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    STRIPE_SECRET_KEY = "sk_test_mock"
    STRIPE_WEBHOOK_SECRET = "whsec_test_mock"
    STRIPE_PUBLISHABLE_KEY = "pk_test_mock"
    STRIPE_PRICE_IDS = {
        "starter": "price_starter_test",
        "pro": "price_pro_test",
        "enterprise": "price_enterprise_test",
    }
    FLUTTERWAVE_SECRET_KEY = "FLWSECK_TEST-mock"
    FLUTTERWAVE_PUBLIC_KEY = "FLWPUBK_TEST-mock"
    FLUTTERWAVE_WEBHOOK_HASH = "test-webhook-hash"
    FLUTTERWAVE_VERIFY_TRANSACTIONS = False
    FRONTEND_URL = "https://app.zenith.test"
    WEBHOOK_DEDUPLICATE_PAYMENTS = True
    SENTRY_DSN = ""
    LOG_LEVEL = "WARNING"
    LOG_REQUESTS = False


CONFIGS = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
}


def get_config(name=None):
    """
    Resolve the configuration class by name, falling back to APP_ENV.

    Supported values: development, production, testing.
    """
    env = (name or os.getenv("APP_ENV", "development")).lower()
    try:
        return CONFIGS[env]
    except KeyError:
        raise ConfigurationError(f"Invalid APP_ENV value: {env}")


def validate_config(config):
    """
    Check a loaded Flask config mapping. Raises ConfigurationError listing
    every problem at once.
    """
    problems = [f"{key} is required" for key in BaseConfig.REQUIRED_KEYS if not config.get(key)]

    if config.get("ENVIRONMENT") == "production":
        uri = config.get("SQLALCHEMY_DATABASE_URI") or ""
        if urlparse(uri).scheme == "sqlite":
            problems.append("SQLite is not allowed in production")
        if (config.get("STRIPE_SECRET_KEY") or "").startswith("sk_test"):
            problems.append("Stripe test key detected in production")

    if problems:
        raise ConfigurationError("; ".join(problems))

    logger.info("Configuration validated", extra={"environment": config.get("ENVIRONMENT")})

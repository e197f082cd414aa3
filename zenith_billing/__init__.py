"""
Zenith billing service: subscription checkout, payment webhooks and the
subscription gate in front of the dashboard.
"""

import logging
import sys
from typing import Optional

import sentry_sdk
from flask import Flask
from sentry_sdk.integrations.flask import FlaskIntegration

from zenith_billing.commands import register_commands
from zenith_billing.config import get_config, validate_config
from zenith_billing.error_handlers import register_error_handlers
from zenith_billing.errors import ConfigurationError
from zenith_billing.extensions import init_extensions
from zenith_billing.logging_config import setup_logging
from zenith_billing.middleware.request_id import init_request_id_middleware
from zenith_billing.middleware.subscription_guard import SubscriptionGate
from zenith_billing.routes import register_blueprints
from zenith_billing.services.providers import init_providers

logger = logging.getLogger(__name__)


def setup_sentry(app: Flask) -> None:
    """Initialize Sentry error tracking"""
    sentry_dsn = app.config.get("SENTRY_DSN")
    if not sentry_dsn:
        return
    sentry_sdk.init(
        dsn=sentry_dsn,
        integrations=[FlaskIntegration()],
        traces_sample_rate=0.1,
        environment=app.config.get("ENVIRONMENT"),
        release=app.config.get("APP_VERSION", "1.0.0"),
        send_default_pii=False,
    )
    app.logger.info("Sentry error tracking initialized")


def create_app(config_name: Optional[str] = None, providers=None) -> Flask:
    """
    Application factory.

    Args:
        config_name: development, production or testing (defaults to APP_ENV)
        providers: BillingProviders to use instead of building them from config

    Raises:
        ConfigurationError: If required configuration is missing or unsafe
    """
    app = Flask(__name__)

    try:
        config = get_config(config_name)
        app.config.from_object(config)
        validate_config(app.config)
    except ConfigurationError as e:
        print(f"CRITICAL: Configuration error: {str(e)}", file=sys.stderr)
        raise

    # request ids first so every later hook can log them
    init_request_id_middleware(app)
    setup_logging(app)
    setup_sentry(app)

    init_extensions(app)
    init_providers(app, providers)
    SubscriptionGate(app)

    register_blueprints(app)
    register_error_handlers(app)
    register_commands(app)

    app.logger.info(f"Application initialized in {app.config.get('ENVIRONMENT')} mode")
    return app

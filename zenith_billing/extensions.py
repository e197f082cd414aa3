# zenith_billing/extensions.py
"""
Flask extensions initialization module.
"""

import logging

from flask_cors import CORS
from flask_jwt_extended import JWTManager
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
jwt = JWTManager()
cors = CORS()
migrate = Migrate()

logger = logging.getLogger(__name__)


def init_extensions(app):
    """Initialize all Flask extensions against the app."""
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    init_cors(app)
    logger.info("Extensions initialized", extra={"environment": app.config.get("ENVIRONMENT")})
    return app


def init_cors(app):
    """CORS for the JSON API only; webhooks are server-to-server."""
    origins = app.config.get("CORS_ORIGINS") or [app.config.get("FRONTEND_URL")]
    cors.init_app(
        app,
        resources={r"/api/*": {"origins": origins}},
        allow_headers=["Authorization", "Content-Type", "X-Client-Info", "apikey"],
        methods=["GET", "POST", "OPTIONS"],
        supports_credentials=True,
        max_age=600,
    )

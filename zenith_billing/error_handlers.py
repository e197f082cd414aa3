# zenith_billing/error_handlers.py
import logging

from flask import jsonify, request
from werkzeug.exceptions import HTTPException

from zenith_billing.errors import BillingError

logger = logging.getLogger(__name__)


def register_error_handlers(app):
    """Register JSON error handlers for the application"""

    @app.errorhandler(BillingError)
    def handle_billing_error(error):
        if error.status_code >= 500:
            logger.error(f"{error.__class__.__name__}: {error.message} - Path: {request.path}")
        else:
            logger.warning(f"{error.__class__.__name__}: {error.message} - Path: {request.path}")
        response = jsonify(error.to_dict())
        response.status_code = error.status_code
        return response

    @app.errorhandler(404)
    def not_found(e):
        logger.info(f"Not found: {request.path}")
        return jsonify({
            "error": "Not found",
            "path": request.path
        }), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        logger.warning(f"Method not allowed: {request.method} {request.path}")
        return jsonify({
            "error": "Method not allowed",
            "message": f"The {request.method} method is not supported for this endpoint.",
            "path": request.path
        }), 405

    @app.errorhandler(HTTPException)
    def handle_http_exception(e):
        return jsonify({"error": e.name, "message": e.description}), e.code

    @app.errorhandler(Exception)
    def handle_unexpected(e):
        logger.error(f"Server error: {str(e)} - Path: {request.path}", exc_info=True)
        return jsonify({"error": "Internal server error"}), 500

    return app

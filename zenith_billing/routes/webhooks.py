"""
Provider webhooks. Server-to-server only: no CORS, no bearer auth, every
request is authenticated by its provider signature before anything is read.
"""

import json
import logging

from flask import Blueprint, current_app, jsonify, request

from zenith_billing.billing import flutterwave_events, stripe_events
from zenith_billing.billing.periods import utcnow
from zenith_billing.billing.signatures import verify_flutterwave_hash
from zenith_billing.errors import AuthenticationError, ProviderError, ValidationError
from zenith_billing.services.providers import get_providers

logger = logging.getLogger(__name__)

webhooks_bp = Blueprint("webhooks", __name__, url_prefix="/webhooks")


def _failed(message, status_code):
    return jsonify({"status": "failed", "message": message}), status_code


def _processed(result):
    body = {"status": "success", "message": "Webhook processed" if result is not None else "Event ignored"}
    if result is not None and not result.complete:
        body["failedSteps"] = result.failed_steps
    return jsonify(body), 200


@webhooks_bp.route("/flutterwave", methods=["POST"])
def flutterwave_webhook():
    received_at = utcnow()
    signature = request.headers.get("verif-hash")

    if not verify_flutterwave_hash(signature, current_app.config.get("FLUTTERWAVE_WEBHOOK_HASH")):
        logger.warning("Invalid webhook signature", extra={"provider": "flutterwave", "ip": request.remote_addr})
        return _failed("Invalid signature", 401)

    try:
        payload = json.loads(request.get_data(as_text=True))
    except ValueError:
        logger.error("Malformed webhook body", extra={"provider": "flutterwave"})
        return _failed("Malformed JSON payload", 500)

    event_type = payload.get("event") if isinstance(payload, dict) else None
    logger.info("Webhook received", extra={"provider": "flutterwave", "event_type": event_type})

    try:
        result = flutterwave_events.handle_event(
            payload,
            received_at=received_at,
            flutterwave_service=get_providers().flutterwave,
            verify_transactions=current_app.config.get("FLUTTERWAVE_VERIFY_TRANSACTIONS", False),
            deduplicate=current_app.config.get("WEBHOOK_DEDUPLICATE_PAYMENTS", True),
        )
    except ValidationError as e:
        return _failed(e.message, 400)
    except ProviderError as e:
        # Verification could not be completed; a 500 makes Flutterwave retry
        logger.error("Transaction verification unavailable", extra={"reason": e.message})
        return _failed(e.message, 500)
    except Exception as e:
        logger.error(f"Error processing webhook: {str(e)}", exc_info=True, extra={"provider": "flutterwave"})
        return _failed("Internal server error", 500)

    return _processed(result)


@webhooks_bp.route("/stripe", methods=["POST"])
def stripe_webhook():
    payload = request.get_data()
    stripe_service = get_providers().stripe

    try:
        stripe_service.construct_event(payload, request.headers.get("Stripe-Signature"))
    except AuthenticationError as e:
        return _failed(e.message, 401)

    # Signature verified: handlers work on the plain JSON body
    try:
        event = json.loads(payload)
    except ValueError:
        return _failed("Malformed JSON payload", 500)

    logger.info(f"Processing Stripe webhook event: {event.get('type')}", extra={"event_id": event.get("id")})

    try:
        result = stripe_events.handle_event(event, stripe_service, stripe_events.price_plans(current_app.config))
    except Exception as e:
        logger.error(f"Error processing webhook: {str(e)}", exc_info=True, extra={"provider": "stripe"})
        return _failed("Internal server error", 500)

    return _processed(result)

from flask import Blueprint, current_app, jsonify, request

from zenith_billing.errors import ValidationError
from zenith_billing.services.checkout_service import CheckoutService
from zenith_billing.services.identity_service import authenticate
from zenith_billing.services.payment_link_service import PaymentLinkService
from zenith_billing.services.providers import get_providers

bp = Blueprint("checkout", __name__, url_prefix="/api/billing")


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _origin():
    return request.headers.get("Origin") or current_app.config.get("FRONTEND_URL")


@bp.route("/create-checkout", methods=["POST"])
def create_checkout():
    """Create a Stripe hosted checkout session for the authenticated user"""
    identity = authenticate(request.headers.get("Authorization"))
    data = _json_body()

    service = CheckoutService(get_providers().stripe, current_app.config)
    url = service.create_session(
        identity,
        price_id=data.get("priceId"),
        plan=data.get("plan"),
        success_url=data.get("successUrl"),
        cancel_url=data.get("cancelUrl"),
        client_reference_id=data.get("clientReferenceId"),
        origin=_origin(),
    )
    return jsonify({"url": url}), 200


@bp.route("/create-flutterwave-payment", methods=["POST"])
def create_flutterwave_payment():
    """Create a Flutterwave hosted payment link for the authenticated user"""
    identity = authenticate(request.headers.get("Authorization"))
    data = _json_body()

    service = PaymentLinkService(get_providers().flutterwave, current_app.config)
    link = service.create_payment_link(
        identity,
        plan=data.get("plan"),
        amount=data.get("amount"),
        currency=data.get("currency"),
        success_url=data.get("successUrl"),
        cancel_url=data.get("cancelUrl"),
        user_id=data.get("userId"),
        user_email=data.get("userEmail"),
        origin=_origin(),
    )
    return jsonify({"paymentLink": link}), 200

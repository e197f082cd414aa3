import logging

from flask import Blueprint, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from zenith_billing.extensions import db
from zenith_billing.middleware.subscription_guard import heal_profile_flag
from zenith_billing.models import Profile
from zenith_billing.services import subscription_service
from zenith_billing.services.identity_service import authenticate

logger = logging.getLogger(__name__)

subscription_bp = Blueprint("subscription", __name__, url_prefix="/api/subscription")


@subscription_bp.route("/status", methods=["GET"])
def subscription_status():
    """
    Authoritative subscription check for the calling user. Falls back to the
    profile flag when the subscription query cannot be answered.
    """
    identity = authenticate(request.headers.get("Authorization"))

    try:
        active = subscription_service.is_subscription_active(identity.user_id)
    except SQLAlchemyError:
        db.session.rollback()
        logger.error("Error checking subscription status", exc_info=True, extra={"user_id": identity.user_id})
        profile = db.session.get(Profile, identity.user_id)
        return jsonify({"hasSubscription": bool(profile and profile.has_subscription)}), 200

    if active:
        heal_profile_flag(identity.user_id)
    return jsonify({"hasSubscription": active}), 200


@subscription_bp.route("", methods=["GET"])
def current_subscription():
    """Current subscription row for the calling user"""
    identity = authenticate(request.headers.get("Authorization"))
    subscription = subscription_service.get_subscription(identity.user_id)
    if subscription is None:
        return jsonify({"error": "No subscription found"}), 404
    return jsonify({"subscription": subscription.to_dict()}), 200

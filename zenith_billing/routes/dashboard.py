from dataclasses import asdict

from flask import Blueprint, current_app, g, jsonify

from zenith_billing.billing.plans import PLANS
from zenith_billing.extensions import db
from zenith_billing.middleware.subscription_guard import get_gate
from zenith_billing.models import Profile
from zenith_billing.services import subscription_service

dashboard_bp = Blueprint("dashboard", __name__)
paywall_bp = Blueprint("paywall", __name__)


@dashboard_bp.before_request
def require_subscription():
    return get_gate().enforce()


@dashboard_bp.route("/dashboard", methods=["GET"])
def dashboard():
    """Dashboard summary; only reachable with an active subscription"""
    user_id = g.subscription_user_id
    profile = db.session.get(Profile, user_id)
    subscription = subscription_service.get_subscription(user_id)
    return jsonify({
        "profile": profile.to_dict() if profile else None,
        "subscription": subscription.to_dict() if subscription else None,
    }), 200


@paywall_bp.route("/payment-required", methods=["GET"])
def payment_required():
    """Paywall: the plan catalogue and what the client needs to start a checkout"""
    config = current_app.config
    price_ids = config.get("STRIPE_PRICE_IDS") or {}
    plans = []
    for plan in PLANS.values():
        entry = asdict(plan)
        entry["stripe_price_id"] = price_ids.get(plan.plan_id) or None
        plans.append(entry)

    return jsonify({
        "message": "An active subscription is required to access the dashboard.",
        "plans": plans,
        "currency": config.get("DEFAULT_CURRENCY"),
        "providers": {
            "stripe": {"publishable_key": config.get("STRIPE_PUBLISHABLE_KEY") or None},
            "flutterwave": {"public_key": config.get("FLUTTERWAVE_PUBLIC_KEY") or None},
        },
    }), 200

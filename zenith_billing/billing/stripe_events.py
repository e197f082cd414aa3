"""
Stripe webhook event handling.

Subscription lifecycle events are mapped onto the single-row-per-user
subscription model: Stripe's richer status set collapses to
pending/active/canceled.
"""

import logging

from zenith_billing.billing.periods import compute_period, parse_timestamp, utcnow
from zenith_billing.billing.reconciliation import ReconciliationSaga, StepSkipped
from zenith_billing.models import SubscriptionStatus
from zenith_billing.services import subscription_service

logger = logging.getLogger(__name__)

PROVIDER = "stripe"

ACTIVE_STATUSES = {"active", "trialing"}
CANCELED_STATUSES = {"canceled", "unpaid", "incomplete_expired"}


def price_plans(config):
    """Reverse of STRIPE_PRICE_IDS: price id -> plan."""
    return {price_id: plan for plan, price_id in (config.get("STRIPE_PRICE_IDS") or {}).items() if price_id}


def map_stripe_status(status):
    if status in ACTIVE_STATUSES:
        return SubscriptionStatus.ACTIVE
    if status in CANCELED_STATUSES:
        return SubscriptionStatus.CANCELED
    return SubscriptionStatus.PENDING


def _get(obj, key, default=None):
    """Subscript access that works for plain dicts and StripeObjects."""
    if obj is None:
        return default
    try:
        value = obj[key]
    except (KeyError, TypeError, IndexError):
        return default
    return default if value is None else value


def _first_item(subscription):
    items = _get(_get(subscription, "items"), "data", [])
    return items[0] if items else None


def subscription_period(subscription):
    """Period bounds from the subscription, or from its first item on newer API versions."""
    item = _first_item(subscription)
    start = parse_timestamp(_get(subscription, "current_period_start") or _get(item, "current_period_start"))
    end = parse_timestamp(_get(subscription, "current_period_end") or _get(item, "current_period_end"))
    if start is None or end is None or end <= start:
        return compute_period(received_at=utcnow())
    return start, end


def subscription_price_id(subscription):
    return _get(_get(_first_item(subscription), "price"), "id")


def resolve_plan(subscription, price_plans, *metadata_sources):
    for metadata in (_get(subscription, "metadata"),) + metadata_sources:
        plan = _get(metadata, "plan")
        if plan:
            return plan
    return price_plans.get(subscription_price_id(subscription))


def _subscription_steps(saga, user_id, subscription, price_plans, *metadata_sources):
    status = map_stripe_status(_get(subscription, "status"))
    period_start, period_end = subscription_period(subscription)
    plan = resolve_plan(subscription, price_plans, *metadata_sources)

    def upsert_subscription():
        subscription_service.upsert_subscription(
            user_id,
            status=status,
            plan_id=plan,
            period_start=period_start,
            period_end=period_end,
            provider=PROVIDER,
            cancel_at_period_end=bool(_get(subscription, "cancel_at_period_end", False)),
            metadata={
                "stripe_subscription_id": _get(subscription, "id"),
                "stripe_customer_id": _get(subscription, "customer"),
                "price_id": subscription_price_id(subscription),
            },
        )
        return status.value

    def update_profile():
        if not subscription_service.set_profile_flag(user_id, status == SubscriptionStatus.ACTIVE):
            raise StepSkipped("profile not found")

    saga.step("subscription", upsert_subscription, changes_subscription=True)
    saga.step("profile", update_profile)
    return saga


def _user_for_subscription(subscription):
    user_id = subscription_service.find_user_by_customer(PROVIDER, _get(subscription, "customer"))
    return user_id or _get(_get(subscription, "metadata"), "user_id")


def build_saga(event, stripe_service, price_plans):
    """ReconciliationSaga for a Stripe event, or None when the event is ignored."""
    event_type = _get(event, "type")
    obj = _get(_get(event, "data"), "object") or {}
    event_id = _get(event, "id")

    if event_type == "checkout.session.completed":
        if _get(obj, "mode") != "subscription":
            return None
        user_id = _get(obj, "client_reference_id") or _get(_get(obj, "metadata"), "user_id")
        if not user_id:
            logger.error("No user ID found in checkout session", extra={"event_id": event_id})
            return None

        customer_id = _get(obj, "customer")
        subscription = stripe_service.retrieve_subscription(_get(obj, "subscription"))
        saga = ReconciliationSaga(provider=PROVIDER, event_type=event_type, event_id=event_id,
                                  user_id=user_id, payload=event)

        def save_customer():
            if not customer_id:
                raise StepSkipped("no customer on session")
            subscription_service.save_customer_id(user_id, PROVIDER, customer_id)

        def insert_payment():
            if _get(obj, "payment_status") != "paid":
                raise StepSkipped("session not paid")
            amount_total = _get(obj, "amount_total")
            payment, created = subscription_service.record_payment(
                user_id=user_id,
                provider=PROVIDER,
                transaction_id=_get(obj, "id"),
                tx_ref=_get(obj, "subscription"),
                status=_get(obj, "payment_status"),
                amount=amount_total / 100 if amount_total is not None else None,
                currency=(_get(obj, "currency") or "").upper() or None,
                payment_method=(_get(obj, "payment_method_types") or [None])[0],
                raw_response=obj,
            )
            if not created:
                raise StepSkipped(f"duplicate session {_get(obj, 'id')}")
            return f"payment {payment.id}"

        saga.step("customer", save_customer)
        _subscription_steps(saga, user_id, subscription, price_plans, _get(obj, "metadata"))
        saga.step("payment", insert_payment)
        return saga

    if event_type in ("customer.subscription.created", "customer.subscription.updated"):
        user_id = _user_for_subscription(obj)
        if not user_id:
            logger.error("Could not identify user for subscription", extra={"subscription_id": _get(obj, "id")})
            return None
        saga = ReconciliationSaga(provider=PROVIDER, event_type=event_type, event_id=event_id,
                                  user_id=user_id, payload=event)
        return _subscription_steps(saga, user_id, obj, price_plans)

    if event_type == "customer.subscription.deleted":
        user_id = _user_for_subscription(obj)
        if not user_id:
            logger.error("Could not identify user for subscription", extra={"subscription_id": _get(obj, "id")})
            return None
        saga = ReconciliationSaga(provider=PROVIDER, event_type=event_type, event_id=event_id,
                                  user_id=user_id, payload=event)

        def cancel_subscription():
            if not subscription_service.mark_subscription_canceled(user_id):
                raise StepSkipped("no subscription row")

        def clear_profile():
            if not subscription_service.set_profile_flag(user_id, False):
                raise StepSkipped("profile not found")

        saga.step("subscription", cancel_subscription, changes_subscription=True)
        saga.step("profile", clear_profile)
        return saga

    return None


def handle_event(event, stripe_service, price_plans):
    saga = build_saga(event, stripe_service, price_plans)
    if saga is None:
        logger.info(f"Unhandled event type: {_get(event, 'type')}")
        return None
    return saga.run()


def rebuild_saga(log, stripe_service, price_plans):
    return build_saga(log.payload or {}, stripe_service, price_plans)

"""
Flutterwave webhook event handling.

Only charge.completed with data.status == "successful" is reconciled; every
other event is acknowledged and ignored so the provider never retry-loops on
events this service does not model.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from zenith_billing.billing.periods import compute_period
from zenith_billing.billing.plans import is_valid_plan
from zenith_billing.billing.reconciliation import ReconciliationSaga, StepSkipped
from zenith_billing.errors import ValidationError
from zenith_billing.models import SubscriptionStatus
from zenith_billing.services import subscription_service

logger = logging.getLogger(__name__)

PROVIDER = "flutterwave"
CHARGE_COMPLETED = "charge.completed"


@dataclass
class ChargeEvent:
    event_type: str
    user_id: str
    plan: str
    transaction_id: Optional[str]
    tx_ref: Optional[str]
    status: str
    amount: Any
    currency: Optional[str]
    payment_type: Optional[str]
    created_at: Optional[str]
    data: Dict[str, Any]


def is_successful_charge(payload) -> bool:
    data = payload.get("data") or {}
    return payload.get("event") == CHARGE_COMPLETED and data.get("status") == "successful"


def parse_charge(payload) -> ChargeEvent:
    """Validate a successful charge.completed payload. Raises ValidationError."""
    data = payload.get("data") or {}
    meta = data.get("meta") or {}
    user_id = meta.get("user_id")
    plan = meta.get("plan")

    if not user_id or not plan:
        logger.error("No user_id or plan found in meta data", extra={"tx_ref": data.get("tx_ref")})
        raise ValidationError("Invalid metadata")
    if not is_valid_plan(plan):
        raise ValidationError(f"Invalid metadata: unknown plan {plan}")

    transaction_id = data.get("id")
    return ChargeEvent(
        event_type=payload.get("event"),
        user_id=str(user_id),
        plan=plan,
        transaction_id=str(transaction_id) if transaction_id is not None else None,
        tx_ref=data.get("tx_ref"),
        status=data.get("status"),
        amount=data.get("amount"),
        currency=data.get("currency"),
        payment_type=data.get("payment_type"),
        created_at=data.get("created_at"),
        data=data,
    )


def build_charge_saga(charge, *, received_at, deduplicate=True, payload=None):
    period_start, period_end = compute_period(charge.created_at, received_at)

    def upsert_subscription():
        subscription_service.upsert_subscription(
            charge.user_id,
            status=SubscriptionStatus.ACTIVE,
            plan_id=charge.plan,
            period_start=period_start,
            period_end=period_end,
            provider=PROVIDER,
            metadata={"transaction_id": charge.transaction_id, "tx_ref": charge.tx_ref},
        )

    def insert_payment():
        payment, created = subscription_service.record_payment(
            user_id=charge.user_id,
            provider=PROVIDER,
            transaction_id=charge.transaction_id,
            tx_ref=charge.tx_ref,
            status=charge.status,
            amount=charge.amount,
            currency=charge.currency,
            payment_method=charge.payment_type,
            raw_response=charge.data,
            deduplicate=deduplicate,
        )
        if not created:
            raise StepSkipped(f"duplicate transaction {charge.transaction_id}")
        return f"payment {payment.id}"

    def update_profile():
        if not subscription_service.set_profile_flag(charge.user_id, True):
            raise StepSkipped("profile not found")

    return (
        ReconciliationSaga(
            provider=PROVIDER,
            event_type=charge.event_type,
            event_id=charge.transaction_id or charge.tx_ref,
            user_id=charge.user_id,
            payload=payload,
        )
        .step("subscription", upsert_subscription, changes_subscription=True)
        .step("payment", insert_payment)
        .step("profile", update_profile)
    )


def handle_event(payload, *, received_at, flutterwave_service=None, verify_transactions=False,
                 deduplicate=True):
    """
    Returns the ReconciliationResult for a reconciled charge, or None when
    the event was acknowledged and ignored.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Webhook body must be a JSON object")

    event_type = payload.get("event")
    if not is_successful_charge(payload):
        logger.info(f"Received unhandled event: {event_type}",
                    extra={"status": (payload.get("data") or {}).get("status")})
        return None

    charge = parse_charge(payload)

    if verify_transactions and flutterwave_service is not None and charge.transaction_id:
        verified = flutterwave_service.verify_transaction(charge.transaction_id)
        if verified.get("status") != "successful" or (
            charge.tx_ref and verified.get("tx_ref") not in (None, charge.tx_ref)
        ):
            logger.warning(
                "Charge failed provider verification, ignoring",
                extra={"transaction_id": charge.transaction_id, "verified_status": verified.get("status")},
            )
            return None

    result = build_charge_saga(
        charge, received_at=received_at, deduplicate=deduplicate, payload=payload
    ).run()
    logger.info(
        f"Payment successful for user {charge.user_id}, plan: {charge.plan}",
        extra={"transaction_id": charge.transaction_id, "complete": result.complete},
    )
    return result


def rebuild_saga(log, deduplicate=True):
    """Recreate the saga for a stored reconciliation log (repair path)."""
    payload = log.payload or {}
    if not is_successful_charge(payload):
        return None
    try:
        charge = parse_charge(payload)
    except ValidationError:
        return None
    return build_charge_saga(charge, received_at=log.created_at, deduplicate=deduplicate, payload=payload)

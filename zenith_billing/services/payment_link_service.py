"""
Flutterwave payment-link creation.

authenticate -> short-circuit if already active -> create link ->
record a provisional pending subscription -> return link
"""

import logging
import time
from numbers import Number

from sqlalchemy.exc import SQLAlchemyError

from zenith_billing.billing.periods import add_one_month, utcnow
from zenith_billing.billing.plans import is_valid_plan
from zenith_billing.errors import PersistenceError, ValidationError
from zenith_billing.extensions import db
from zenith_billing.models import SubscriptionStatus
from zenith_billing.services import subscription_service

logger = logging.getLogger(__name__)


def generate_tx_ref(user_id, now_ms=None):
    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"FLW-{str(user_id)[:8]}-{now_ms}"


class PaymentLinkService:

    def __init__(self, flutterwave_service, config):
        self.flutterwave = flutterwave_service
        self.config = config

    def validate(self, identity, plan, amount, user_id=None):
        if not plan or amount in (None, ""):
            raise ValidationError("Plan and amount are required")
        if not is_valid_plan(plan):
            raise ValidationError(f"Unknown plan: {plan}")
        if isinstance(amount, bool) or not isinstance(amount, Number) or amount <= 0:
            raise ValidationError("Amount must be a positive number")
        if user_id and user_id != identity.user_id:
            raise ValidationError("userId does not match the authenticated user")

    def already_active(self, user_id):
        try:
            return subscription_service.is_subscription_active(user_id)
        except SQLAlchemyError:
            db.session.rollback()
            logger.error("Error checking subscription status", exc_info=True, extra={"user_id": user_id})
            return False

    def create_payment_link(self, identity, *, plan, amount, currency=None, success_url=None,
                            cancel_url=None, user_id=None, user_email=None, origin=None):
        self.validate(identity, plan, amount, user_id)
        origin = (origin or self.config.get("FRONTEND_URL") or "").rstrip("/")

        if self.already_active(identity.user_id):
            logger.info("Subscription already active, skipping provider", extra={"user_id": identity.user_id})
            return success_url or f"{origin}/dashboard?subscription=existing"

        tx_ref = generate_tx_ref(identity.user_id)
        link = self.flutterwave.create_payment_link(
            tx_ref=tx_ref,
            amount=amount,
            currency=currency or self.config.get("DEFAULT_CURRENCY", "USD"),
            redirect_url=success_url or f"{origin}/dashboard?subscription=success",
            customer_email=user_email or identity.email,
            user_id=identity.user_id,
            plan=plan,
        )

        self.record_pending(identity.user_id, plan, tx_ref)
        return link

    def record_pending(self, user_id, plan, tx_ref):
        """Provisional row so the UI can show a processing state. The webhook overwrites it."""
        start = utcnow()
        try:
            subscription_service.upsert_subscription(
                user_id,
                status=SubscriptionStatus.PENDING,
                plan_id=plan,
                period_start=start,
                period_end=add_one_month(start),
                provider=self.flutterwave.provider,
                metadata={"tx_ref": tx_ref},
            )
            db.session.commit()
        except PersistenceError:
            db.session.rollback()
            logger.error("Could not record pending subscription", exc_info=True,
                         extra={"user_id": user_id, "tx_ref": tx_ref})

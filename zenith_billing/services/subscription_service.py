"""
Reads and writes against the subscription state store.

is_subscription_active() is the authoritative check: the payment-link
short-circuit, the subscription gate and the status endpoint all go through
it. The profile flag is never consulted here.
"""

import logging
from typing import Optional, Tuple

from sqlalchemy import and_, exists, select
from sqlalchemy.exc import SQLAlchemyError

from zenith_billing.billing.periods import utcnow
from zenith_billing.billing.plans import is_valid_plan
from zenith_billing.errors import PersistenceError, ValidationError
from zenith_billing.extensions import db
from zenith_billing.models import Payment, Profile, ProviderCustomer, Subscription, SubscriptionStatus

logger = logging.getLogger(__name__)


def is_subscription_active(user_id, now=None) -> bool:
    now = now or utcnow()
    stmt = select(
        exists().where(
            and_(
                Subscription.user_id == user_id,
                Subscription.status == SubscriptionStatus.ACTIVE.value,
                Subscription.current_period_start <= now,
                Subscription.current_period_end > now,
            )
        )
    )
    return bool(db.session.execute(stmt).scalar())


def get_subscription(user_id) -> Optional[Subscription]:
    return db.session.execute(
        select(Subscription).where(Subscription.user_id == user_id)
    ).scalar_one_or_none()


def _dialect_insert():
    dialect = db.session.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise PersistenceError(f"Upsert is not supported on the {dialect} dialect")
    return insert


def upsert_subscription(
    user_id,
    *,
    status,
    period_start,
    period_end,
    plan_id=None,
    provider=None,
    metadata=None,
    cancel_at_period_end=False,
):
    """
    INSERT .. ON CONFLICT (user_id) DO UPDATE. Last writer wins. Does not
    commit. When plan_id is None the stored plan is kept.
    """
    status = SubscriptionStatus(status).value

    if plan_id is None:
        existing = get_subscription(user_id)
        if existing is None:
            raise ValidationError(f"No plan known for user {user_id}")
        plan_id = existing.plan_id
    elif not is_valid_plan(plan_id):
        raise ValidationError(f"Unknown plan: {plan_id}")

    if period_end <= period_start:
        raise ValidationError("current_period_end must be after current_period_start")

    now = utcnow()
    table = Subscription.__table__
    values = {
        "user_id": user_id,
        "plan_id": plan_id,
        "status": status,
        "provider": provider,
        "current_period_start": period_start,
        "current_period_end": period_end,
        "cancel_at_period_end": cancel_at_period_end,
        "metadata": metadata or {},
        "created_at": now,
        "updated_at": now,
    }

    insert = _dialect_insert()
    stmt = insert(table).values(values)
    updated = [key for key in values if key not in ("user_id", "created_at")]
    stmt = stmt.on_conflict_do_update(
        index_elements=[table.c.user_id],
        set_={key: stmt.excluded[key] for key in updated},
    )

    try:
        db.session.execute(stmt)
    except SQLAlchemyError as e:
        raise PersistenceError(f"Subscription upsert failed for user {user_id}") from e

    logger.info(
        "Subscription upserted",
        extra={"user_id": user_id, "status": status, "plan_id": plan_id, "provider": provider},
    )


def mark_subscription_canceled(user_id) -> bool:
    """Flip an existing row to canceled. Does not commit."""
    subscription = get_subscription(user_id)
    if subscription is None:
        return False
    subscription.status = SubscriptionStatus.CANCELED.value
    subscription.updated_at = utcnow()
    return True


def find_payment(provider, transaction_id) -> Optional[Payment]:
    if not transaction_id:
        return None
    return db.session.execute(
        select(Payment)
        .where(Payment.provider == provider, Payment.transaction_id == str(transaction_id))
        .limit(1)
    ).scalar_one_or_none()


def record_payment(
    *,
    user_id,
    provider,
    transaction_id,
    tx_ref,
    status,
    amount,
    currency,
    payment_method=None,
    raw_response=None,
    deduplicate=True,
) -> Tuple[Optional[Payment], bool]:
    """
    Append a Payment row. With deduplicate, an existing row for the same
    provider transaction id turns the call into a no-op. Returns
    (payment, created). Does not commit.
    """
    transaction_id = str(transaction_id) if transaction_id is not None else None

    if deduplicate:
        existing = find_payment(provider, transaction_id)
        if existing is not None:
            logger.info(
                "Duplicate payment delivery ignored",
                extra={"provider": provider, "transaction_id": transaction_id, "user_id": user_id},
            )
            return existing, False

    payment = Payment(
        user_id=user_id,
        provider=provider,
        transaction_id=transaction_id,
        tx_ref=tx_ref,
        status=status,
        amount=amount,
        currency=currency,
        payment_method=payment_method,
        raw_response=raw_response,
    )
    db.session.add(payment)
    db.session.flush()
    return payment, True


def set_profile_flag(user_id, has_subscription) -> bool:
    """
    Best-effort update of the denormalised profile flag. Returns False when
    the profile does not exist. Does not commit.
    """
    profile = db.session.get(Profile, user_id)
    if profile is None:
        return False
    if profile.has_subscription != has_subscription:
        profile.has_subscription = has_subscription
    return True


def get_customer_id(user_id, provider) -> Optional[str]:
    row = db.session.execute(
        select(ProviderCustomer).where(
            ProviderCustomer.user_id == user_id, ProviderCustomer.provider == provider
        )
    ).scalar_one_or_none()
    return row.customer_id if row else None


def find_user_by_customer(provider, customer_id) -> Optional[str]:
    if not customer_id:
        return None
    row = db.session.execute(
        select(ProviderCustomer).where(
            ProviderCustomer.provider == provider, ProviderCustomer.customer_id == customer_id
        )
    ).scalars().first()
    return row.user_id if row else None


def save_customer_id(user_id, provider, customer_id):
    """Create or repoint the provider customer mapping. Does not commit."""
    row = db.session.execute(
        select(ProviderCustomer).where(
            ProviderCustomer.user_id == user_id, ProviderCustomer.provider == provider
        )
    ).scalar_one_or_none()
    if row is None:
        db.session.add(ProviderCustomer(user_id=user_id, provider=provider, customer_id=customer_id))
    elif row.customer_id != customer_id:
        row.customer_id = customer_id

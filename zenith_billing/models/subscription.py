# subscription.py
from enum import Enum

from sqlalchemy import CheckConstraint, Index

from zenith_billing.billing.periods import isoformat_utc, utcnow
from zenith_billing.extensions import db


class SubscriptionStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    CANCELED = "canceled"


class Subscription(db.Model):
    """
    Current billing state of one user. At most one row per user; rows are
    upserted on user_id and never deleted.
    """

    __tablename__ = "subscriptions"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False, unique=True)
    plan_id = db.Column(db.String(32), nullable=False)
    status = db.Column(db.String(20), nullable=False, default=SubscriptionStatus.PENDING.value)
    provider = db.Column(db.String(30), nullable=True)

    current_period_start = db.Column(db.DateTime, nullable=False)
    current_period_end = db.Column(db.DateTime, nullable=False)
    cancel_at_period_end = db.Column(db.Boolean, nullable=False, default=False)

    # "metadata" is reserved on declarative models
    provider_metadata = db.Column("metadata", db.JSON, nullable=False, default=dict)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'active', 'canceled')",
            name="valid_subscription_status",
        ),
        CheckConstraint(
            "plan_id IN ('starter', 'pro', 'enterprise')",
            name="valid_subscription_plan",
        ),
        CheckConstraint(
            "current_period_end > current_period_start",
            name="valid_period_range",
        ),
        Index("idx_subscription_status_period_end", "status", "current_period_end"),
    )

    def is_active(self, now=None):
        """Active status and now within [start, end)."""
        now = now or utcnow()
        return (
            self.status == SubscriptionStatus.ACTIVE.value
            and self.current_period_start <= now < self.current_period_end
        )

    def to_dict(self):
        return {
            "user_id": self.user_id,
            "plan_id": self.plan_id,
            "status": self.status,
            "provider": self.provider,
            "current_period_start": isoformat_utc(self.current_period_start),
            "current_period_end": isoformat_utc(self.current_period_end),
            "cancel_at_period_end": self.cancel_at_period_end,
            "metadata": self.provider_metadata or {},
            "is_active": self.is_active(),
            "updated_at": isoformat_utc(self.updated_at),
        }

    def __repr__(self):
        return f"<Subscription user={self.user_id} status={self.status}>"

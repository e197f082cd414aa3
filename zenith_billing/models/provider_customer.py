from zenith_billing.billing.periods import utcnow
from zenith_billing.extensions import db


class ProviderCustomer(db.Model):
    """Maps a dashboard user to the customer record held by a payment provider."""

    __tablename__ = "provider_customers"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False, index=True)
    provider = db.Column(db.String(30), nullable=False)
    customer_id = db.Column(db.String(255), nullable=False, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        db.UniqueConstraint("user_id", "provider", name="uq_provider_customer_user"),
    )

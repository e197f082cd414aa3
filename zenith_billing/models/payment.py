from zenith_billing.billing.periods import isoformat_utc, utcnow
from zenith_billing.extensions import db


class Payment(db.Model):
    """Append-only record of one processed provider charge."""

    __tablename__ = "payments"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False, index=True)
    provider = db.Column(db.String(30), nullable=False, default="flutterwave")
    transaction_id = db.Column(db.String(120), nullable=True, index=True)
    tx_ref = db.Column(db.String(120), nullable=True, index=True)
    status = db.Column(db.String(40), nullable=False)
    amount = db.Column(db.Numeric(18, 2), nullable=True)
    currency = db.Column(db.String(10), nullable=True)
    payment_method = db.Column(db.String(40), nullable=True)
    raw_response = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        db.Index("idx_payment_provider_transaction", "provider", "transaction_id"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "provider": self.provider,
            "transaction_id": self.transaction_id,
            "tx_ref": self.tx_ref,
            "status": self.status,
            "amount": float(self.amount) if self.amount is not None else None,
            "currency": self.currency,
            "payment_method": self.payment_method,
            "created_at": isoformat_utc(self.created_at),
        }

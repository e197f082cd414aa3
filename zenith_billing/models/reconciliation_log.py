from zenith_billing.billing.periods import isoformat_utc, utcnow
from zenith_billing.extensions import db


class ReconciliationLog(db.Model):
    """
    Outcome of one webhook reconciliation: which steps succeeded, failed or
    were skipped. Partial rows are what the repair command picks up.
    """

    __tablename__ = "reconciliation_logs"

    STATUS_COMPLETED = "completed"
    STATUS_PARTIAL = "partial"

    id = db.Column(db.Integer, primary_key=True)
    provider = db.Column(db.String(30), nullable=False)
    event_type = db.Column(db.String(80), nullable=False)
    event_id = db.Column(db.String(120), nullable=True, index=True)
    user_id = db.Column(db.String(64), nullable=True, index=True)
    status = db.Column(db.String(20), nullable=False, index=True)
    steps = db.Column(db.JSON, nullable=False, default=list)
    payload = db.Column(db.JSON, nullable=True)
    attempts = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def failed_steps(self):
        return [s["name"] for s in (self.steps or []) if s.get("status") == "failed"]

    def to_dict(self):
        return {
            "id": self.id,
            "provider": self.provider,
            "event_type": self.event_type,
            "event_id": self.event_id,
            "user_id": self.user_id,
            "status": self.status,
            "steps": self.steps,
            "attempts": self.attempts,
            "updated_at": isoformat_utc(self.updated_at),
        }

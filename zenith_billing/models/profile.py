from zenith_billing.extensions import db


class Profile(db.Model):
    """Dashboard account. has_subscription is a denormalised, best-effort flag."""

    __tablename__ = "profiles"

    id = db.Column(db.String(64), primary_key=True)
    email = db.Column(db.String(255), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False, default="")
    organization_name = db.Column(db.String(255), nullable=True)
    has_subscription = db.Column(db.Boolean, nullable=False, default=False)

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "organization_name": self.organization_name,
            "has_subscription": self.has_subscription,
        }

    def __repr__(self):
        return f"<Profile {self.id}>"

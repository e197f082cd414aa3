"""
Billing error taxonomy.

Every error raised on the checkout, payment-link and webhook paths derives
from BillingError so the error handlers can turn it into a JSON response
without leaking internal detail.
"""


class ConfigurationError(Exception):
    """Raised when required configuration is missing or unsafe."""
    pass


class BillingError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 400

    def __init__(self, message, status_code=None, payload=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.payload = payload or {}

    def to_dict(self):
        return {"error": self.message, **self.payload}


class AuthenticationError(BillingError):
    """Missing/invalid bearer token or failed webhook signature."""
    status_code = 401


class ValidationError(BillingError):
    """Missing or malformed fields in a request or event body."""
    status_code = 400


class ProviderError(BillingError):
    """The payment provider rejected or failed a request."""
    status_code = 400

    def __init__(self, message, details=None, status_code=None):
        payload = {"details": details} if details is not None else None
        super().__init__(message, status_code=status_code, payload=payload)
        self.details = details


class PersistenceError(BillingError):
    """A write to the subscription state store failed."""
    status_code = 500

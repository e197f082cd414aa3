from zenith_billing.models.profile import Profile
from zenith_billing.models.subscription import Subscription, SubscriptionStatus
from zenith_billing.models.payment import Payment
from zenith_billing.models.provider_customer import ProviderCustomer
from zenith_billing.models.reconciliation_log import ReconciliationLog

__all__ = [
    "Profile",
    "Subscription",
    "SubscriptionStatus",
    "Payment",
    "ProviderCustomer",
    "ReconciliationLog",
]

from dataclasses import dataclass

from flask import current_app

from zenith_billing.services.flutterwave_service import FlutterwaveService
from zenith_billing.services.stripe_service import StripeService

EXTENSION_KEY = "billing_providers"


@dataclass
class BillingProviders:
    """Provider clients owned by one application instance."""

    stripe: StripeService
    flutterwave: FlutterwaveService

    @classmethod
    def from_config(cls, config):
        return cls(
            stripe=StripeService.from_config(config),
            flutterwave=FlutterwaveService.from_config(config),
        )


def init_providers(app, providers=None):
    app.extensions[EXTENSION_KEY] = providers or BillingProviders.from_config(app.config)


def get_providers() -> BillingProviders:
    return current_app.extensions[EXTENSION_KEY]

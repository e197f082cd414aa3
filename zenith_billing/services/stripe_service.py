# stripe_service.py
import logging
from typing import Any, Dict, Optional

import stripe

from zenith_billing.errors import AuthenticationError, ProviderError

logger = logging.getLogger(__name__)


class StripeService:
    """
    Stripe operations used by checkout and the Stripe webhook. Holds its own
    StripeClient; the global stripe.api_key is never set.
    """

    provider = "stripe"

    def __init__(self, secret_key, webhook_secret, max_network_retries=2, client=None):
        self.webhook_secret = webhook_secret
        self.client = client or stripe.StripeClient(
            secret_key,
            max_network_retries=max_network_retries,
        )

    @classmethod
    def from_config(cls, config):
        return cls(
            secret_key=config["STRIPE_SECRET_KEY"],
            webhook_secret=config["STRIPE_WEBHOOK_SECRET"],
        )

    def find_customer_by_email(self, email) -> Optional[str]:
        customers = self.client.customers.list(params={"email": email, "limit": 1})
        if customers.data:
            return customers.data[0].id
        return None

    def create_customer(self, email, user_id) -> str:
        customer = self.client.customers.create(
            params={"email": email, "metadata": {"user_id": user_id}}
        )
        logger.info("Stripe customer created", extra={"customer_id": customer.id, "user_id": user_id})
        return customer.id

    def create_checkout_session(
        self,
        *,
        customer_id,
        price_id,
        success_url,
        cancel_url,
        client_reference_id,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        session = self.client.checkout.sessions.create(
            params={
                "customer": customer_id,
                "line_items": [{"price": price_id, "quantity": 1}],
                "mode": "subscription",
                "success_url": success_url,
                "cancel_url": cancel_url,
                "client_reference_id": client_reference_id,
                "metadata": metadata or {},
                "subscription_data": {"metadata": metadata or {}},
            }
        )
        logger.info(
            "Stripe checkout session created",
            extra={"session_id": session.id, "customer_id": customer_id, "price_id": price_id},
        )
        if not session.url:
            raise ProviderError("Stripe returned no checkout URL")
        return session.url

    def retrieve_subscription(self, subscription_id):
        return self.client.subscriptions.retrieve(subscription_id)

    def construct_event(self, payload, signature):
        """Verify the Stripe-Signature header and parse the event."""
        if not signature:
            raise AuthenticationError("No signature provided")
        try:
            return stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except (ValueError, stripe.SignatureVerificationError) as e:
            logger.warning("Stripe webhook signature verification failed", extra={"reason": str(e)})
            raise AuthenticationError("Webhook signature verification failed")

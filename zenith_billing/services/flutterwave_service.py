import logging

import requests

from zenith_billing.errors import ProviderError

logger = logging.getLogger(__name__)

FLUTTERWAVE_BASE_URL = "https://api.flutterwave.com/v3"


class FlutterwaveService:
    """Thin client over the Flutterwave v3 REST API."""

    provider = "flutterwave"

    def __init__(self, secret_key, base_url=FLUTTERWAVE_BASE_URL, timeout=10,
                 logo_url=None, session=None):
        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.logo_url = logo_url
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config):
        return cls(
            secret_key=config["FLUTTERWAVE_SECRET_KEY"],
            base_url=config.get("FLUTTERWAVE_BASE_URL", FLUTTERWAVE_BASE_URL),
            timeout=config.get("PROVIDER_TIMEOUT_SECONDS", 10),
            logo_url=config.get("FLUTTERWAVE_LOGO_URL") or None,
        )

    def _headers(self):
        return {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json",
        }

    def create_payment_link(self, *, tx_ref, amount, currency, redirect_url,
                            customer_email, user_id, plan):
        """Create a hosted payment page. Returns the link URL."""
        payload = {
            "tx_ref": tx_ref,
            "amount": amount,
            "currency": currency,
            "payment_options": "card",
            "redirect_url": redirect_url,
            "customer": {
                "email": customer_email,
                "name": customer_email.split("@")[0],
            },
            "meta": {
                "user_id": user_id,
                "plan": plan,
            },
            "customizations": {
                "title": "Premium Subscription",
                "description": f"{plan} Plan Subscription",
            },
        }
        if self.logo_url:
            payload["customizations"]["logo"] = self.logo_url

        try:
            response = self.session.post(
                f"{self.base_url}/payments",
                headers=self._headers(),
                json=payload,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error("Flutterwave request failed", exc_info=True, extra={"tx_ref": tx_ref})
            raise ProviderError("Payment provider is unavailable") from e

        data = self._json(response)
        if not response.ok:
            logger.error(
                "Flutterwave API error",
                extra={"tx_ref": tx_ref, "status_code": response.status_code, "response": data},
            )
            raise ProviderError("Failed to create payment link", details=data)

        link = ((data or {}).get("data") or {}).get("link")
        if not link:
            raise ProviderError("No payment link received", details=data)

        logger.info("Payment link created", extra={"tx_ref": tx_ref, "user_id": user_id})
        return link

    def verify_transaction(self, transaction_id):
        """Fetch the provider's view of a transaction. Returns its data dict."""
        try:
            response = self.session.get(
                f"{self.base_url}/transactions/{transaction_id}/verify",
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise ProviderError("Payment provider is unavailable") from e

        data = self._json(response)
        if not response.ok:
            raise ProviderError("Transaction verification failed", details=data)
        return (data or {}).get("data") or {}

    @staticmethod
    def _json(response):
        try:
            return response.json()
        except ValueError:
            return {"raw": response.text}

"""
Client-side entry point for starting a subscription purchase.

BillingClient talks to the billing API with the user's access token and hands
the provider's hosted page URL to `navigate` (a browser open by default). It
never raises for expected failures: callers get
{"success": False, "error": <message>} instead.
"""

import logging
import webbrowser
from typing import Any, Callable, Dict, Optional

import requests

logger = logging.getLogger(__name__)

NOT_LOGGED_IN = "You must be logged in to subscribe"


class BillingClient:

    def __init__(
        self,
        base_url: str,
        access_token: Optional[str] = None,
        origin: Optional[str] = None,
        user_id: Optional[str] = None,
        user_email: Optional[str] = None,
        session: Optional[requests.Session] = None,
        navigate: Callable[[str], Any] = webbrowser.open,
        timeout: float = 10,
    ):
        self.base_url = base_url.rstrip("/")
        self.access_token = access_token
        self.origin = (origin or self.base_url).rstrip("/")
        self.user_id = user_id
        self.user_email = user_email
        self.session = session or requests.Session()
        self.navigate = navigate
        self.timeout = timeout

    def _headers(self):
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
            "Origin": self.origin,
        }

    def _post(self, path, body, url_key, fallback_error) -> Dict[str, Any]:
        try:
            response = self.session.post(
                f"{self.base_url}{path}", json=body, headers=self._headers(), timeout=self.timeout
            )
        except requests.RequestException as e:
            logger.error("Payment request failed", extra={"path": path, "reason": str(e)})
            return {"success": False, "error": "Could not reach the payment service"}

        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        if not response.ok:
            logger.error("Error from payment endpoint", extra={"path": path, "status_code": response.status_code})
            return {"success": False, "error": data.get("error") or fallback_error}

        url = data.get(url_key)
        if not url:
            logger.error("No payment link received from API", extra={"path": path})
            return {"success": False, "error": "No payment link received"}

        logger.info("Redirecting to payment page", extra={"url": url})
        self.navigate(url)
        return {"success": True, "redirect_url": url}

    def initiate_checkout(self, plan_id, amount, currency="UGX") -> Dict[str, Any]:
        """Start a Flutterwave payment for `plan_id` and redirect to the hosted page."""
        if not self.access_token:
            return {"success": False, "error": NOT_LOGGED_IN}

        body = {
            "plan": plan_id,
            "amount": amount,
            "currency": currency,
            "successUrl": f"{self.origin}/dashboard?subscription=success",
            "cancelUrl": f"{self.origin}/subscription",
        }
        if self.user_id:
            body["userId"] = self.user_id
        if self.user_email:
            body["userEmail"] = self.user_email

        logger.info(f"Initiating Flutterwave payment for plan: {plan_id}, amount: {amount}")
        return self._post("/api/billing/create-flutterwave-payment", body, "paymentLink",
                          "Failed to initiate payment")

    def initiate_stripe_checkout(self, price_id, plan_id=None) -> Dict[str, Any]:
        """Start a Stripe hosted checkout for `price_id`."""
        if not self.access_token:
            return {"success": False, "error": NOT_LOGGED_IN}

        body = {
            "priceId": price_id,
            "successUrl": f"{self.origin}/dashboard?session_id={{CHECKOUT_SESSION_ID}}",
            "cancelUrl": f"{self.origin}/subscription",
        }
        if plan_id:
            body["plan"] = plan_id
        if self.user_id:
            body["clientReferenceId"] = self.user_id

        return self._post("/api/billing/create-checkout", body, "url", "Failed to create checkout session")

    def get_subscription_status(self) -> Dict[str, bool]:
        """{"hasSubscription": bool}; False on any failure."""
        if not self.access_token:
            return {"hasSubscription": False}
        try:
            response = self.session.get(
                f"{self.base_url}/api/subscription/status", headers=self._headers(), timeout=self.timeout
            )
            if not response.ok:
                return {"hasSubscription": False}
            return {"hasSubscription": bool(response.json().get("hasSubscription"))}
        except (requests.RequestException, ValueError, AttributeError):
            logger.error("Error checking subscription status", exc_info=True)
            return {"hasSubscription": False}

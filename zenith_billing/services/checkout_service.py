"""
Stripe hosted-checkout session creation.

authenticate -> resolve customer -> create session -> return URL
"""

import logging

import stripe
from sqlalchemy.exc import SQLAlchemyError

from zenith_billing.billing.plans import PLANS
from zenith_billing.errors import ProviderError, ValidationError
from zenith_billing.extensions import db
from zenith_billing.services import subscription_service

logger = logging.getLogger(__name__)


class CheckoutService:

    def __init__(self, stripe_service, config):
        self.stripe = stripe_service
        self.config = config

    def resolve_price_id(self, price_id=None, plan=None):
        if price_id:
            return price_id
        if plan:
            if plan not in PLANS:
                raise ValidationError(f"Unknown plan: {plan}")
            mapped = (self.config.get("STRIPE_PRICE_IDS") or {}).get(plan)
            if mapped:
                return mapped
        raise ValidationError("Price ID is required")

    def plan_for_price(self, price_id):
        for plan, configured in (self.config.get("STRIPE_PRICE_IDS") or {}).items():
            if configured and configured == price_id:
                return plan
        return None

    def resolve_customer(self, identity) -> str:
        """Stored mapping, then a provider lookup by email, then a new customer."""
        customer_id = subscription_service.get_customer_id(identity.user_id, self.stripe.provider)
        if customer_id:
            return customer_id

        customer_id = self.stripe.find_customer_by_email(identity.email)
        if not customer_id:
            customer_id = self.stripe.create_customer(identity.email, identity.user_id)

        try:
            subscription_service.save_customer_id(identity.user_id, self.stripe.provider, customer_id)
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            logger.warning(
                "Could not store Stripe customer mapping",
                exc_info=True,
                extra={"user_id": identity.user_id, "customer_id": customer_id},
            )
        return customer_id

    def create_session(self, identity, *, price_id=None, plan=None, success_url=None,
                       cancel_url=None, client_reference_id=None, origin=None):
        price_id = self.resolve_price_id(price_id, plan)
        plan = plan or self.plan_for_price(price_id)
        origin = (origin or self.config.get("FRONTEND_URL") or "").rstrip("/")

        metadata = {"user_id": identity.user_id}
        if plan:
            metadata["plan"] = plan

        try:
            customer_id = self.resolve_customer(identity)
            logger.info(
                f"Creating checkout session for price ID: {price_id}, customer: {customer_id}",
                extra={"user_id": identity.user_id},
            )
            return self.stripe.create_checkout_session(
                customer_id=customer_id,
                price_id=price_id,
                success_url=success_url or f"{origin}/dashboard?session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=cancel_url or f"{origin}/subscription",
                client_reference_id=client_reference_id or identity.user_id,
                metadata=metadata,
            )
        except stripe.InvalidRequestError as e:
            logger.error("Stripe rejected checkout request", extra={"user_id": identity.user_id, "stripe_error": str(e)})
            raise ProviderError(f"Stripe error: {e.user_message or str(e)}", details=e.json_body)
        except stripe.StripeError as e:
            logger.error("Stripe checkout failed", exc_info=True, extra={"user_id": identity.user_id})
            raise ProviderError(e.user_message or "Failed to create checkout session")

import json
from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from faker import Faker
from flask_jwt_extended import create_access_token

from zenith_billing import create_app
from zenith_billing.billing.periods import utcnow
from zenith_billing.extensions import db
from zenith_billing.models import Profile, Subscription
from zenith_billing.services.flutterwave_service import FlutterwaveService
from zenith_billing.services.providers import BillingProviders
from zenith_billing.services.stripe_service import StripeService

# Initialize Faker for generating test data
fake = Faker()

WEBHOOK_HASH = "test-webhook-hash"


# Custom pytest marks for organizing tests
def pytest_configure(config):
    config.addinivalue_line(
        "markers",
        "payment: mark test as payment-related"
    )
    config.addinivalue_line(
        "markers",
        "webhook: mark test as provider webhook handling"
    )
    config.addinivalue_line(
        "markers",
        "auth: mark test as authentication-related"
    )
    config.addinivalue_line(
        "markers",
        "db: mark test as database-intensive"
    )


@pytest.fixture()
def providers():
    """Provider fakes; no test talks to Stripe or Flutterwave"""
    stripe_service = MagicMock(spec=StripeService)
    stripe_service.provider = "stripe"
    flutterwave_service = MagicMock(spec=FlutterwaveService)
    flutterwave_service.provider = "flutterwave"
    return BillingProviders(stripe=stripe_service, flutterwave=flutterwave_service)


@pytest.fixture()
def app(providers):
    """Application on an in-memory database, rebuilt for every test"""
    app = create_app("testing", providers=providers)

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    """Test client with bearer-token helpers"""
    client = app.test_client()

    def authenticated_get(self, url, token=None, **kwargs):
        headers = kwargs.pop("headers", {})
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return self.get(url, headers=headers, **kwargs)

    def authenticated_post(self, url, token=None, **kwargs):
        headers = kwargs.pop("headers", {})
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return self.post(url, headers=headers, **kwargs)

    client.authenticated_get = authenticated_get.__get__(client)
    client.authenticated_post = authenticated_post.__get__(client)

    return client


@pytest.fixture()
def make_profile(app):
    """Factory for dashboard profiles"""
    def _make(user_id=None, email=None, has_subscription=False):
        profile = Profile(
            id=user_id or fake.uuid4(),
            email=email or fake.email(),
            name=fake.name(),
            organization_name=fake.company(),
            has_subscription=has_subscription,
        )
        db.session.add(profile)
        db.session.commit()
        return profile
    return _make


@pytest.fixture()
def profile(make_profile):
    return make_profile()


@pytest.fixture()
def token_for(app):
    def _token(user_id):
        return create_access_token(identity=user_id)
    return _token


@pytest.fixture()
def token(profile, token_for):
    return token_for(profile.id)


@pytest.fixture()
def make_subscription(app):
    """Factory for subscription rows"""
    def _make(user_id, status="active", plan_id="starter", start=None, end=None, provider="flutterwave"):
        start = start or utcnow() - timedelta(days=1)
        subscription = Subscription(
            user_id=user_id,
            plan_id=plan_id,
            status=status,
            provider=provider,
            current_period_start=start,
            current_period_end=end or start + timedelta(days=30),
            provider_metadata={},
        )
        db.session.add(subscription)
        db.session.commit()
        return subscription
    return _make


@pytest.fixture()
def webhook_headers():
    return {"verif-hash": WEBHOOK_HASH, "Content-Type": "application/json"}


@pytest.fixture()
def charge_event():
    """Factory for Flutterwave charge.completed payloads"""
    def _make(user_id, plan="starter", transaction_id=None, status="successful",
              created_at="2024-01-01T00:00:00Z", amount=477000, currency="UGX", event="charge.completed"):
        return {
            "event": event,
            "data": {
                "id": transaction_id if transaction_id is not None else fake.random_int(100000, 999999),
                "tx_ref": f"FLW-{str(user_id)[:8]}-{fake.random_int(10**12, 10**13)}",
                "status": status,
                "amount": amount,
                "currency": currency,
                "payment_type": "card",
                "created_at": created_at,
                "meta": {"user_id": user_id, "plan": plan},
            },
        }
    return _make


@pytest.fixture()
def post_flutterwave(client, webhook_headers):
    def _post(payload, headers=None):
        return client.post(
            "/webhooks/flutterwave",
            data=json.dumps(payload),
            headers=headers if headers is not None else webhook_headers,
        )
    return _post

import pytest
import stripe

from zenith_billing.extensions import db
from zenith_billing.models import ProviderCustomer

CHECKOUT_URL = "/api/billing/create-checkout"


@pytest.fixture
def stripe_fake(providers):
    stripe_service = providers.stripe
    stripe_service.find_customer_by_email.return_value = None
    stripe_service.create_customer.return_value = "cus_test_123"
    stripe_service.create_checkout_session.return_value = "https://checkout.stripe.test/c/pay/cs_test_123"
    return stripe_service


@pytest.mark.auth
class TestCheckoutAuthentication:

    def test_missing_authorization_header(self, client, stripe_fake):
        response = client.post(CHECKOUT_URL, json={"priceId": "price_starter_test"})

        assert response.status_code == 401
        assert response.get_json() == {"error": "Authorization header is required"}
        stripe_fake.create_checkout_session.assert_not_called()

    def test_invalid_token(self, client, stripe_fake):
        response = client.authenticated_post(CHECKOUT_URL, token="not-a-jwt", json={"priceId": "price_starter_test"})

        assert response.status_code == 401
        assert response.get_json()["error"] == "Invalid token or user not found"
        stripe_fake.create_checkout_session.assert_not_called()

    def test_token_for_unknown_user(self, client, token_for, stripe_fake):
        response = client.authenticated_post(
            CHECKOUT_URL, token=token_for("no-such-user"), json={"priceId": "price_starter_test"}
        )

        assert response.status_code == 401
        stripe_fake.find_customer_by_email.assert_not_called()

    def test_non_bearer_scheme(self, client, token, stripe_fake):
        response = client.post(
            CHECKOUT_URL, headers={"Authorization": f"Basic {token}"}, json={"priceId": "price_starter_test"}
        )

        assert response.status_code == 401


@pytest.mark.payment
class TestCreateCheckout:

    def test_price_id_required(self, client, token, stripe_fake):
        response = client.authenticated_post(CHECKOUT_URL, token=token, json={})

        assert response.status_code == 400
        assert response.get_json() == {"error": "Price ID is required"}
        stripe_fake.create_checkout_session.assert_not_called()

    def test_creates_customer_and_session(self, client, token, profile, stripe_fake):
        response = client.authenticated_post(
            CHECKOUT_URL,
            token=token,
            json={
                "priceId": "price_pro_test",
                "successUrl": "https://app.zenith.test/dashboard?ok=1",
                "cancelUrl": "https://app.zenith.test/subscription",
            },
        )

        assert response.status_code == 200
        assert response.get_json() == {"url": "https://checkout.stripe.test/c/pay/cs_test_123"}

        stripe_fake.find_customer_by_email.assert_called_once_with(profile.email)
        stripe_fake.create_customer.assert_called_once_with(profile.email, profile.id)

        kwargs = stripe_fake.create_checkout_session.call_args.kwargs
        assert kwargs["customer_id"] == "cus_test_123"
        assert kwargs["price_id"] == "price_pro_test"
        assert kwargs["success_url"] == "https://app.zenith.test/dashboard?ok=1"
        assert kwargs["client_reference_id"] == profile.id
        assert kwargs["metadata"] == {"user_id": profile.id, "plan": "pro"}

        mapping = db.session.query(ProviderCustomer).filter_by(user_id=profile.id, provider="stripe").one()
        assert mapping.customer_id == "cus_test_123"

    def test_reuses_existing_customer_by_email(self, client, token, stripe_fake):
        stripe_fake.find_customer_by_email.return_value = "cus_existing"

        response = client.authenticated_post(CHECKOUT_URL, token=token, json={"priceId": "price_starter_test"})

        assert response.status_code == 200
        stripe_fake.create_customer.assert_not_called()
        assert stripe_fake.create_checkout_session.call_args.kwargs["customer_id"] == "cus_existing"

    def test_stored_mapping_skips_provider_lookup(self, client, token, profile, stripe_fake):
        db.session.add(ProviderCustomer(user_id=profile.id, provider="stripe", customer_id="cus_stored"))
        db.session.commit()

        response = client.authenticated_post(CHECKOUT_URL, token=token, json={"priceId": "price_starter_test"})

        assert response.status_code == 200
        stripe_fake.find_customer_by_email.assert_not_called()
        assert stripe_fake.create_checkout_session.call_args.kwargs["customer_id"] == "cus_stored"

    def test_default_urls_use_request_origin(self, client, token, stripe_fake):
        response = client.authenticated_post(
            CHECKOUT_URL,
            token=token,
            json={"priceId": "price_starter_test"},
            headers={"Origin": "https://dash.example.com"},
        )

        assert response.status_code == 200
        kwargs = stripe_fake.create_checkout_session.call_args.kwargs
        assert kwargs["success_url"] == "https://dash.example.com/dashboard?session_id={CHECKOUT_SESSION_ID}"
        assert kwargs["cancel_url"] == "https://dash.example.com/subscription"

    def test_plan_resolves_configured_price(self, client, token, stripe_fake):
        response = client.authenticated_post(CHECKOUT_URL, token=token, json={"plan": "enterprise"})

        assert response.status_code == 200
        assert stripe_fake.create_checkout_session.call_args.kwargs["price_id"] == "price_enterprise_test"

    def test_unknown_plan_rejected(self, client, token, stripe_fake):
        response = client.authenticated_post(CHECKOUT_URL, token=token, json={"plan": "platinum"})

        assert response.status_code == 400
        assert "Unknown plan" in response.get_json()["error"]

    def test_provider_rejection_passes_details_through(self, client, token, stripe_fake):
        body = {"error": {"message": "No such price: 'price_missing'", "type": "invalid_request_error"}}
        stripe_fake.create_checkout_session.side_effect = stripe.InvalidRequestError(
            "No such price: 'price_missing'", "line_items[0][price]", json_body=body
        )

        response = client.authenticated_post(CHECKOUT_URL, token=token, json={"priceId": "price_missing"})

        assert response.status_code == 400
        data = response.get_json()
        assert data["error"].startswith("Stripe error:")
        assert "No such price" in data["error"]
        assert data["details"] == body

    def test_provider_outage(self, client, token, stripe_fake):
        stripe_fake.create_checkout_session.side_effect = stripe.APIConnectionError("connection reset")

        response = client.authenticated_post(CHECKOUT_URL, token=token, json={"priceId": "price_starter_test"})

        assert response.status_code == 400
        assert "error" in response.get_json()

    def test_non_json_body(self, client, token, stripe_fake):
        response = client.authenticated_post(CHECKOUT_URL, token=token, data="plain text")

        assert response.status_code == 400
        stripe_fake.create_checkout_session.assert_not_called()

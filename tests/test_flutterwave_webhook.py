import json
from datetime import datetime
from unittest.mock import patch

import pytest

from zenith_billing.errors import ProviderError
from zenith_billing.extensions import db
from zenith_billing.models import Payment, Profile, ReconciliationLog
from zenith_billing.services import subscription_service

pytestmark = pytest.mark.webhook

# inside the period opened by the default charge_event created_at
MID_PERIOD = datetime(2024, 1, 15)


def payments_for(user_id):
    return db.session.query(Payment).filter_by(user_id=user_id).all()


class TestSignature:

    def test_missing_header_rejected(self, post_flutterwave, charge_event, profile):
        response = post_flutterwave(charge_event(profile.id), headers={"Content-Type": "application/json"})

        assert response.status_code == 401
        assert response.get_json()["status"] == "failed"
        assert subscription_service.get_subscription(profile.id) is None
        assert payments_for(profile.id) == []

    def test_wrong_hash_rejected(self, post_flutterwave, charge_event, profile):
        response = post_flutterwave(charge_event(profile.id), headers={"verif-hash": "guessed"})

        assert response.status_code == 401
        assert subscription_service.get_subscription(profile.id) is None
        assert db.session.query(ReconciliationLog).count() == 0

    def test_signature_checked_before_body_is_parsed(self, client):
        response = client.post("/webhooks/flutterwave", data="{not json", headers={"verif-hash": "wrong"})

        assert response.status_code == 401


class TestSuccessfulCharge:

    def test_activates_subscription(self, post_flutterwave, charge_event, profile):
        payload = charge_event(profile.id, plan="pro", transaction_id=555001, created_at="2024-03-10T08:30:00Z")

        response = post_flutterwave(payload)

        assert response.status_code == 200
        assert response.get_json() == {"status": "success", "message": "Webhook processed"}

        subscription = subscription_service.get_subscription(profile.id)
        assert subscription.status == "active"
        assert subscription.plan_id == "pro"
        assert subscription.provider == "flutterwave"
        assert subscription.current_period_start == datetime(2024, 3, 10, 8, 30)
        assert subscription.current_period_end == datetime(2024, 4, 9, 8, 30)
        assert subscription.provider_metadata == {
            "transaction_id": "555001",
            "tx_ref": payload["data"]["tx_ref"],
        }

        [payment] = payments_for(profile.id)
        assert payment.transaction_id == "555001"
        assert payment.status == "successful"
        assert payment.currency == "UGX"
        assert payment.payment_method == "card"

        assert db.session.get(Profile, profile.id).has_subscription is True

        log = db.session.query(ReconciliationLog).one()
        assert log.status == ReconciliationLog.STATUS_COMPLETED
        assert [s["name"] for s in log.steps] == ["subscription", "payment", "profile"]

    def test_overwrites_pending_row(self, post_flutterwave, charge_event, profile, make_subscription):
        make_subscription(profile.id, status="pending", plan_id="starter")

        post_flutterwave(charge_event(profile.id, plan="enterprise"))

        subscription = subscription_service.get_subscription(profile.id)
        assert subscription.status == "active"
        assert subscription.plan_id == "enterprise"

    def test_missing_created_at_uses_receipt_time(self, post_flutterwave, charge_event, profile):
        post_flutterwave(charge_event(profile.id, created_at=None))

        subscription = subscription_service.get_subscription(profile.id)
        assert (subscription.current_period_end - subscription.current_period_start).days == 30
        assert subscription.is_active()

    def test_unparseable_created_at_uses_receipt_time(self, post_flutterwave, charge_event, profile):
        response = post_flutterwave(charge_event(profile.id, created_at="yesterday-ish"))

        assert response.status_code == 200
        assert subscription_service.is_subscription_active(profile.id)

    @pytest.mark.parametrize("created_at", [10**20, -10**20])
    def test_out_of_range_epoch_uses_receipt_time(self, post_flutterwave, charge_event, profile, created_at):
        response = post_flutterwave(charge_event(profile.id, created_at=created_at))

        assert response.status_code == 200
        assert response.get_json()["message"] == "Webhook processed"
        assert subscription_service.is_subscription_active(profile.id)

    def test_missing_profile_still_activates(self, post_flutterwave, charge_event):
        response = post_flutterwave(charge_event("ghost-user"))

        assert response.status_code == 200
        assert subscription_service.is_subscription_active("ghost-user", now=MID_PERIOD)
        log = db.session.query(ReconciliationLog).one()
        assert log.status == ReconciliationLog.STATUS_COMPLETED
        assert [s["status"] for s in log.steps] == ["succeeded", "succeeded", "skipped"]


class TestIgnoredEvents:

    @pytest.mark.parametrize("event, status", [
        ("charge.completed", "failed"),
        ("charge.completed", "pending"),
        ("transfer.completed", "successful"),
    ])
    def test_acknowledged_without_changes(self, post_flutterwave, charge_event, profile, event, status):
        response = post_flutterwave(charge_event(profile.id, event=event, status=status))

        assert response.status_code == 200
        assert response.get_json()["status"] == "success"
        assert subscription_service.get_subscription(profile.id) is None
        assert payments_for(profile.id) == []
        assert db.session.query(ReconciliationLog).count() == 0


class TestMalformedEvents:

    def test_missing_meta(self, post_flutterwave, charge_event, profile):
        payload = charge_event(profile.id)
        del payload["data"]["meta"]

        response = post_flutterwave(payload)

        assert response.status_code == 400
        assert response.get_json() == {"status": "failed", "message": "Invalid metadata"}
        assert subscription_service.get_subscription(profile.id) is None

    def test_unknown_plan(self, post_flutterwave, charge_event, profile):
        response = post_flutterwave(charge_event(profile.id, plan="platinum"))

        assert response.status_code == 400
        assert subscription_service.get_subscription(profile.id) is None

    def test_malformed_json(self, client, webhook_headers):
        response = client.post("/webhooks/flutterwave", data="{not json", headers=webhook_headers)

        assert response.status_code == 500
        assert response.get_json()["status"] == "failed"

    def test_non_object_body(self, client, webhook_headers):
        response = client.post("/webhooks/flutterwave", data=json.dumps([1, 2]), headers=webhook_headers)

        assert response.status_code == 400


class TestPartialFailure:

    def test_payment_failure_keeps_subscription(self, post_flutterwave, charge_event, profile):
        with patch(
            "zenith_billing.services.subscription_service.record_payment",
            side_effect=RuntimeError("payments table unavailable"),
        ):
            response = post_flutterwave(charge_event(profile.id))

        assert response.status_code == 200
        assert response.get_json()["failedSteps"] == ["payment"]

        assert subscription_service.is_subscription_active(profile.id, now=MID_PERIOD)
        assert payments_for(profile.id) == []
        assert db.session.get(Profile, profile.id).has_subscription is True

        log = db.session.query(ReconciliationLog).one()
        assert log.status == ReconciliationLog.STATUS_PARTIAL
        assert log.failed_steps() == ["payment"]

    def test_unexpected_error_returns_500(self, post_flutterwave, charge_event, profile):
        with patch(
            "zenith_billing.billing.flutterwave_events.build_charge_saga",
            side_effect=RuntimeError("boom"),
        ):
            response = post_flutterwave(charge_event(profile.id))

        assert response.status_code == 500
        assert response.get_json() == {"status": "failed", "message": "Internal server error"}


class TestDuplicateDelivery:

    def test_deduplicated_by_default(self, post_flutterwave, charge_event, profile):
        payload = charge_event(profile.id, transaction_id=777)

        first = post_flutterwave(payload)
        second = post_flutterwave(payload)

        assert first.status_code == second.status_code == 200
        assert len(payments_for(profile.id)) == 1
        assert subscription_service.is_subscription_active(profile.id, now=MID_PERIOD)

        logs = db.session.query(ReconciliationLog).order_by(ReconciliationLog.id).all()
        assert len(logs) == 2
        assert logs[1].status == ReconciliationLog.STATUS_COMPLETED
        assert [s["status"] for s in logs[1].steps] == ["succeeded", "skipped", "succeeded"]

    def test_legacy_mode_appends_every_delivery(self, app, post_flutterwave, charge_event, profile):
        app.config["WEBHOOK_DEDUPLICATE_PAYMENTS"] = False
        payload = charge_event(profile.id, transaction_id=778)

        post_flutterwave(payload)
        post_flutterwave(payload)

        assert len(payments_for(profile.id)) == 2
        # the subscription row is an idempotent upsert either way
        subscription = subscription_service.get_subscription(profile.id)
        assert subscription.status == "active"


class TestTransactionVerification:

    @pytest.fixture(autouse=True)
    def enable_verification(self, app):
        app.config["FLUTTERWAVE_VERIFY_TRANSACTIONS"] = True

    def test_verified_charge_is_reconciled(self, post_flutterwave, charge_event, profile, providers):
        payload = charge_event(profile.id, transaction_id=9001)
        providers.flutterwave.verify_transaction.return_value = {
            "status": "successful", "tx_ref": payload["data"]["tx_ref"],
        }

        response = post_flutterwave(payload)

        assert response.status_code == 200
        providers.flutterwave.verify_transaction.assert_called_once_with("9001")
        assert subscription_service.is_subscription_active(profile.id, now=MID_PERIOD)

    def test_unverified_charge_is_ignored(self, post_flutterwave, charge_event, profile, providers):
        providers.flutterwave.verify_transaction.return_value = {"status": "failed"}

        response = post_flutterwave(charge_event(profile.id))

        assert response.status_code == 200
        assert subscription_service.get_subscription(profile.id) is None

    def test_verification_outage_asks_for_retry(self, post_flutterwave, charge_event, profile, providers):
        providers.flutterwave.verify_transaction.side_effect = ProviderError("Payment provider is unavailable")

        response = post_flutterwave(charge_event(profile.id))

        assert response.status_code == 500
        assert subscription_service.get_subscription(profile.id) is None

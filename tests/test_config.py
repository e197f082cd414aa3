import pytest

from zenith_billing import create_app
from zenith_billing.billing.signatures import verify_flutterwave_hash
from zenith_billing.config import ProductionConfig, TestingConfig, get_config, validate_config
from zenith_billing.errors import ConfigurationError


def config_dict(cls, **overrides):
    config = {key: getattr(cls, key) for key in dir(cls) if key.isupper()}
    config.update(overrides)
    return config


def test_get_config_by_name():
    assert get_config("testing") is TestingConfig
    assert get_config("PRODUCTION") is ProductionConfig


def test_get_config_rejects_unknown_name():
    with pytest.raises(ConfigurationError, match="Invalid APP_ENV"):
        get_config("staging")


def test_get_config_falls_back_to_app_env(monkeypatch):
    monkeypatch.setenv("APP_ENV", "testing")

    assert get_config() is TestingConfig


def test_testing_config_is_valid():
    validate_config(config_dict(TestingConfig))


def test_missing_keys_are_all_reported():
    config = config_dict(TestingConfig, STRIPE_SECRET_KEY="", FLUTTERWAVE_WEBHOOK_HASH=None)

    with pytest.raises(ConfigurationError) as excinfo:
        validate_config(config)

    message = str(excinfo.value)
    assert "STRIPE_SECRET_KEY is required" in message
    assert "FLUTTERWAVE_WEBHOOK_HASH is required" in message
    assert "JWT_SECRET_KEY" not in message


def test_production_rejects_sqlite_and_test_keys():
    config = config_dict(TestingConfig, ENVIRONMENT="production")

    with pytest.raises(ConfigurationError) as excinfo:
        validate_config(config)

    assert "SQLite is not allowed in production" in str(excinfo.value)
    assert "Stripe test key detected in production" in str(excinfo.value)


def test_create_app_fails_fast(monkeypatch):
    monkeypatch.setattr(TestingConfig, "FLUTTERWAVE_SECRET_KEY", "")

    with pytest.raises(ConfigurationError, match="FLUTTERWAVE_SECRET_KEY is required"):
        create_app("testing")


@pytest.mark.parametrize("received, secret, expected", [
    ("test-webhook-hash", "test-webhook-hash", True),
    ("test-webhook-has", "test-webhook-hash", False),
    ("", "test-webhook-hash", False),
    (None, "test-webhook-hash", False),
    ("anything", "", False),
])
def test_verify_flutterwave_hash(received, secret, expected):
    assert verify_flutterwave_hash(received, secret) is expected


def test_request_id_is_echoed(client):
    response = client.get("/payment-required", headers={"X-Request-ID": "req-abc"})

    assert response.headers["X-Request-ID"] == "req-abc"


def test_unknown_route_is_json(client):
    response = client.get("/nowhere")

    assert response.status_code == 404
    assert response.get_json()["error"] == "Not found"

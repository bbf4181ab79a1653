import hashlib
import hmac
import json
import time

import pytest
from fastapi.testclient import TestClient

from payment_intake.config import Settings
from payment_intake.main import create_app

STRIPE_SECRET_KEY = "sk_test_123"
WEBHOOK_SECRET = "whsec_test_secret"


@pytest.fixture
def settings(tmp_path):
    return Settings(
        stripe_secret_key=STRIPE_SECRET_KEY,
        stripe_webhook_secret=WEBHOOK_SECRET,
        database_url=f"sqlite:///{tmp_path / 'orders.db'}",
    )


@pytest.fixture
def fastapi_app(settings):
    return create_app(settings)


@pytest.fixture
def client(fastapi_app):
    with TestClient(fastapi_app) as c:
        yield c


@pytest.fixture
def db(fastapi_app):
    session = fastapi_app.state.session_factory()
    yield session
    session.close()


@pytest.fixture
def signed():
    """Build a body and a valid Stripe-Signature header for an event dict."""
    def _signed(event, secret=WEBHOOK_SECRET):
        payload = json.dumps(event).encode()
        timestamp = int(time.time())
        digest = hmac.new(
            secret.encode(), f"{timestamp}.".encode() + payload, hashlib.sha256
        ).hexdigest()
        return payload, f"t={timestamp},v1={digest}"
    return _signed


@pytest.fixture
def session_completed_event():
    return {
        "id": "evt_cs_1",
        "object": "event",
        "created": 1767312002,
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": "cs_1",
                "object": "checkout.session",
                "client_reference_id": "ref-1",
                "payment_intent": "pi_1",
                "amount_total": 500,
                "currency": "usd",
                "payment_status": "paid",
                "metadata": {"user_id": "user-42", "app": "stripe_checkout_starter"},
            }
        },
    }


@pytest.fixture
def intent_succeeded_event():
    return {
        "id": "evt_pi_1",
        "object": "event",
        "created": 1767312000,
        "type": "payment_intent.succeeded",
        "data": {
            "object": {
                "id": "pi_1",
                "object": "payment_intent",
                "amount": 500,
                "currency": "usd",
                "status": "succeeded",
            }
        },
    }


@pytest.fixture
def anyio_backend():
    return "asyncio"

import threading

import anyio
import httpx
import pytest
import stripe
from fastapi.testclient import TestClient
from jose import jwt

from payment_intake.config import PriceItem, Settings
from payment_intake.main import create_app


@pytest.fixture
def mock_create(mocker):
    session = mocker.Mock()
    session.url = "https://checkout.stripe.com/c/pay/cs_test_1"
    return mocker.patch("stripe.checkout.Session.create", return_value=session)


def test_create_checkout_session_success(client, mock_create):
    response = client.post(
        "/create-checkout-session",
        json={"price_id": "price_basic", "client_reference_id": "ref-100"},
    )

    assert response.status_code == 200
    assert response.json() == {"url": "https://checkout.stripe.com/c/pay/cs_test_1"}

    kwargs = mock_create.call_args.kwargs
    assert kwargs["api_key"] == "sk_test_123"
    assert kwargs["mode"] == "payment"
    assert kwargs["client_reference_id"] == "ref-100"
    assert kwargs["metadata"] == {"user_id": "", "app": "stripe_checkout_starter"}
    assert kwargs["line_items"] == [
        {
            "price_data": {
                "currency": "usd",
                "product_data": {"name": "Basic"},
                "unit_amount": 500,
            },
            "quantity": 1,
        }
    ]
    assert kwargs["success_url"] == "https://example.com/success"
    assert kwargs["cancel_url"] == "https://example.com/cancel"


def test_amount_and_currency_come_from_catalog(client, mock_create):
    response = client.post(
        "/create-checkout-session",
        json={"price_id": "price_pro", "amount": 1, "currency": "jpy"},
    )

    assert response.status_code == 200
    price_data = mock_create.call_args.kwargs["line_items"][0]["price_data"]
    assert price_data["unit_amount"] == 1500
    assert price_data["currency"] == "usd"


@pytest.mark.parametrize("body", [
    {"price_id": "price_enterprise"},
    {"price_id": ""},
    {"price_id": 42},
    {},
])
def test_unknown_price_id_never_reaches_stripe(client, mock_create, body):
    response = client.post("/create-checkout-session", json=body)

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid price_id"}
    mock_create.assert_not_called()


def test_generated_client_reference_ids_differ(client, mock_create):
    client.post("/create-checkout-session", json={"price_id": "price_basic"})
    client.post("/create-checkout-session", json={"price_id": "price_basic"})

    first, second = [c.kwargs["client_reference_id"] for c in mock_create.call_args_list]
    assert first and second
    assert first != second


def test_bearer_subject_is_linked_in_metadata(client, mock_create):
    token = jwt.encode({"sub": "user-42"}, "not-our-secret", algorithm="HS256")

    client.post(
        "/create-checkout-session",
        json={"price_id": "price_basic"},
        headers={"Authorization": f"Bearer {token}"},
    )

    assert mock_create.call_args.kwargs["metadata"]["user_id"] == "user-42"


def test_product_name_defaults_to_price_id(mock_create):
    settings = Settings(
        stripe_secret_key="sk_test_123",
        price_catalog={"price_plain": PriceItem(amount=900, currency="EUR")},
    )
    with TestClient(create_app(settings)) as c:
        response = c.post("/create-checkout-session", json={"price_id": "price_plain"})

    assert response.status_code == 200
    price_data = mock_create.call_args.kwargs["line_items"][0]["price_data"]
    assert price_data["product_data"] == {"name": "price_plain"}
    assert price_data["currency"] == "eur"


def test_malformed_json_returns_500(client, mock_create):
    response = client.post(
        "/create-checkout-session",
        content="{not json",
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 500
    assert response.json()["error"]
    mock_create.assert_not_called()


def test_missing_secret_key_returns_500(mock_create):
    with TestClient(create_app(Settings())) as c:
        response = c.post("/create-checkout-session", json={"price_id": "price_basic"})

    assert response.status_code == 500
    assert response.json() == {"error": "Missing STRIPE_SECRET_KEY"}
    mock_create.assert_not_called()


def test_stripe_error_is_surfaced(client, mocker):
    mocker.patch(
        "stripe.checkout.Session.create",
        side_effect=stripe.InvalidRequestError("No such currency", param="currency"),
    )

    response = client.post("/create-checkout-session", json={"price_id": "price_basic"})

    assert response.status_code == 500
    assert "No such currency" in response.json()["error"]


def test_preflight_echoes_origin(client):
    response = client.options(
        "/create-checkout-session", headers={"Origin": "https://shop.example"}
    )

    assert response.status_code == 200
    assert response.text == "ok"
    assert response.headers["access-control-allow-origin"] == "https://shop.example"
    assert response.headers["access-control-allow-methods"] == "POST, OPTIONS"
    assert "authorization" in response.headers["access-control-allow-headers"]


def test_get_is_not_allowed(client):
    response = client.get("/create-checkout-session")

    assert response.status_code == 405
    assert response.headers["access-control-allow-origin"] == "*"


def test_non_object_body_is_an_invalid_selector(client, mock_create):
    for body in ([], "price_basic", 5):
        response = client.post("/create-checkout-session", json=body)

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid price_id"}
    mock_create.assert_not_called()


@pytest.mark.anyio
async def test_slow_stripe_calls_overlap(fastapi_app, mocker):
    # Every call waits for the others; a blocked event loop breaks the barrier.
    barrier = threading.Barrier(3, timeout=5)
    session = mocker.Mock()
    session.url = "https://checkout.stripe.com/c/pay/cs_test_1"

    def slow_create(**kwargs):
        barrier.wait()
        return session

    mocker.patch("stripe.checkout.Session.create", side_effect=slow_create)

    statuses = []
    transport = httpx.ASGITransport(app=fastapi_app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        async def checkout():
            response = await c.post("/create-checkout-session", json={"price_id": "price_basic"})
            statuses.append(response.status_code)

        async with anyio.create_task_group() as tg:
            for _ in range(3):
                tg.start_soon(checkout)

    assert statuses == [200, 200, 200]

import json

import pytest
import stripe

from storefront.main import app as fastapi_app
from storefront.models import Coupon, Order
from storefront.payment_gateway import StripeGateway
import storefront.routes
from conftest import TestingSessionLocal


@pytest.fixture
def stripe_client(mocker):
    return mocker.Mock()


@pytest.fixture
def gateway(stripe_client):
    # Real Stripe-backed gateway over a mocked StripeClient
    return StripeGateway("sk_test_integration", client=stripe_client)


def test_full_checkout_lifecycle_integration(client, stripe_client, mocker):
    """
    Test the full lifecycle:
    1. Create checkout session (API -> Stripe Mocked)
    2. Redirect back with session id (API -> Stripe Mocked -> DB)
    3. Repeat the redirect (no second order)
    """

    # --- 1. CREATE CHECKOUT SESSION ---
    stripe_client.checkout.sessions.create.return_value = mocker.Mock(
        id="cs_integration_123",
        url="https://checkout.stripe.com/c/pay/cs_integration_123",
        amount_total=5998,
        metadata={},
    )

    payload = {"products": [{"productId": "p1", "name": "Hat", "price": 29.99, "quantity": 2}]}
    response = client.post("/api/payments/create-checkout-session", json=payload)

    assert response.status_code == 200
    assert response.json()["sessionId"] == "cs_integration_123"
    assert response.json()["totalAmount"] == 59.98

    params = stripe_client.checkout.sessions.create.call_args.kwargs["params"]
    assert params["line_items"][0]["price_data"]["unit_amount"] == 2999
    assert params["payment_method_types"] == ["card"]
    sent_metadata = params["metadata"]

    # --- 2. CHECKOUT SUCCESS ---
    stripe_client.checkout.sessions.retrieve.return_value = mocker.Mock(
        id="cs_integration_123",
        url=None,
        payment_status="paid",
        amount_total=5998,
        metadata=sent_metadata,
    )

    success = client.post("/api/payments/checkout-success", json={"sessionId": "cs_integration_123"})

    assert success.status_code == 200
    stripe_client.checkout.sessions.retrieve.assert_called_once_with("cs_integration_123")
    order = success.json()["order"]
    assert order["totalAmount"] == 59.98
    assert len(order["products"]) == 1
    assert order["products"][0]["quantity"] == 2

    # Verify database state after fulfillment
    db = TestingSessionLocal()
    saved = db.query(Order).filter_by(stripe_session_id="cs_integration_123").one()
    assert float(saved.total_amount) == 59.98
    db.close()

    # --- 3. DUPLICATE REDIRECT ---
    again = client.post("/api/payments/checkout-success", json={"sessionId": "cs_integration_123"})

    assert again.status_code == 200
    assert again.json()["orderId"] == success.json()["orderId"]
    db = TestingSessionLocal()
    assert db.query(Order).count() == 1
    db.close()


def test_coupon_checkout_integration(client, stripe_client, mocker):
    from datetime import datetime, timedelta, timezone

    db = TestingSessionLocal()
    db.add(Coupon(code="FREE100", user_id="user_1", discount_percentage=100, is_active=True,
                  expiration_date=datetime.now(timezone.utc) + timedelta(days=1)))
    db.commit()
    db.close()

    stripe_client.coupons.create.return_value = mocker.Mock(id="co_123")
    stripe_client.checkout.sessions.create.return_value = mocker.Mock(
        id="cs_c", url="https://checkout.stripe.com/cs_c", metadata={}
    )

    response = client.post(
        "/api/payments/create-checkout-session",
        json={"products": [{"productId": "p1", "price": 12.5}], "couponCode": "FREE100"},
    )

    assert response.status_code == 200
    assert response.json()["totalAmount"] == 0.0
    stripe_client.coupons.create.assert_called_once_with(
        params={"percent_off": 100, "duration": "once", "name": "100% Discount"}
    )
    params = stripe_client.checkout.sessions.create.call_args.kwargs["params"]
    assert params["discounts"] == [{"coupon": "co_123"}]
    assert params["metadata"]["couponCode"] == "FREE100"


def test_stripe_gateway_leaves_module_settings_alone():
    retries = stripe.max_network_retries
    http_client = stripe.default_http_client

    gateway = StripeGateway("sk_test_settings", timeout=5, max_network_retries=4)

    assert isinstance(gateway.client, stripe.StripeClient)
    assert stripe.max_network_retries == retries
    assert stripe.default_http_client is http_client


def test_unconfigured_gateway_fails_checkout(client, stripe_client):
    from storefront.payment_gateway import build_payment_gateway

    fastapi_app.dependency_overrides[storefront.routes.get_payment_gateway] = lambda: build_payment_gateway("")

    response = client.post(
        "/api/payments/create-checkout-session",
        json={"products": [{"productId": "p1", "price": 10}]},
    )

    assert response.status_code == 500
    assert response.json()["message"] == "Payment gateway not configured"
    stripe_client.checkout.sessions.create.assert_not_called()


def test_stripe_retrieve_error_is_500(client, stripe_client):
    stripe_client.checkout.sessions.retrieve.side_effect = stripe.InvalidRequestError(
        "No such checkout.session", "id"
    )

    response = client.post("/api/payments/checkout-success", json={"sessionId": "cs_unknown"})

    assert response.status_code == 500
    assert response.json()["success"] is False
    db = TestingSessionLocal()
    assert db.query(Order).count() == 0
    db.close()


def test_metadata_products_without_quantity(client, stripe_client, mocker):
    stripe_client.checkout.sessions.retrieve.return_value = mocker.Mock(
        id="cs_q",
        payment_status="paid",
        amount_total=1000,
        metadata={"userId": "user_1", "couponCode": "",
                  "products": json.dumps([{"id": "p9", "name": "Pen", "price": 10}])},
    )

    response = client.post("/api/payments/checkout-success", json={"sessionId": "cs_q"})

    assert response.status_code == 200
    assert response.json()["order"]["products"] == [
        {"product": "p9", "name": "Pen", "quantity": 1, "price": 10.0}
    ]

import pytest
from fastapi import HTTPException
from jose import jwt

from storefront.auth import verify_token


def bearer(claims, secret="test-secret"):
    return "Bearer " + jwt.encode(claims, secret, algorithm="HS256")


def test_verify_token_returns_user():
    user = verify_token(bearer({"sub": "user_1", "email": "buyer@example.com"}))

    assert user.id == "user_1"
    assert user.email == "buyer@example.com"


@pytest.mark.parametrize("header", [
    "Token abc",
    "Bearer",
    "Bearer not-a-jwt",
])
def test_verify_token_rejects_malformed(header):
    with pytest.raises(HTTPException) as exc:
        verify_token(header)
    assert exc.value.status_code == 401


def test_verify_token_rejects_wrong_secret():
    with pytest.raises(HTTPException):
        verify_token(bearer({"sub": "user_1"}, secret="other"))


def test_verify_token_requires_subject():
    with pytest.raises(HTTPException):
        verify_token(bearer({"email": "buyer@example.com"}))


def test_checkout_requires_token():
    from fastapi.testclient import TestClient
    from storefront.main import app

    with TestClient(app) as c:
        response = c.post("/api/payments/create-checkout-session", json={"products": []})
    assert response.status_code in (401, 422)

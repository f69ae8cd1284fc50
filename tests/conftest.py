import os

# Must be set before storefront.database is imported
os.environ.setdefault("DATABASE_URL", "sqlite:///./test_app.db")
os.environ["STRIPE_SECRET_KEY"] = ""
os.environ["JWT_SECRET"] = "test-secret"
os.environ["APP_ENV"] = "development"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from storefront.main import app as fastapi_app
from storefront.database import Base, enable_sqlite_transactions
from storefront.auth import CurrentUser
from storefront.payment_gateway import GatewaySession, PaymentGateway
import storefront.auth
import storefront.routes

SQLALCHEMY_DATABASE_URL = "sqlite:///./test_temp.db"
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={
                       "check_same_thread": False})
enable_sqlite_transactions(engine)
TestingSessionLocal = sessionmaker(
    autocommit=False, autoflush=False, bind=engine)

TEST_USER = CurrentUser(id="user_1", email="buyer@example.com")


class FakeGateway(PaymentGateway):
    """In-memory gateway that records every request."""

    def __init__(self):
        self.created = []
        self.discounts = []
        self.sessions = {}
        self.discount_error = None
        self.session_error = None

    def create_session(self, params):
        if self.session_error:
            raise self.session_error
        self.created.append(params)
        session_id = f"cs_test_{len(self.created)}"
        return GatewaySession(id=session_id, url=f"https://checkout.stripe.test/{session_id}")

    def retrieve_session(self, session_id):
        return self.sessions[session_id]

    def create_percent_discount(self, percent, name):
        if self.discount_error:
            raise self.discount_error
        self.discounts.append((percent, name))
        return f"coupon_{percent}"


@pytest.fixture(autouse=True)
def setup_db():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db():
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def client(monkeypatch, gateway):
    monkeypatch.setattr(storefront.routes, "SessionLocal", TestingSessionLocal)
    monkeypatch.setattr("storefront.main.SessionLocal", TestingSessionLocal)
    fastapi_app.dependency_overrides[storefront.auth.verify_token] = lambda: TEST_USER
    fastapi_app.dependency_overrides[storefront.routes.get_payment_gateway] = lambda: gateway
    with TestClient(fastapi_app) as c:
        yield c
    fastapi_app.dependency_overrides.clear()

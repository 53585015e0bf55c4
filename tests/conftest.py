import hashlib
import hmac
import itertools
import os

# Test configuration must be in place before typehub.config is imported
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("RAZORPAY_KEY_ID", "rzp_test_key")
os.environ.setdefault("RAZORPAY_KEY_SECRET", "rzp_test_secret")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from typehub import config
from typehub.database import Base, get_db
from typehub.errors import Unauthorized
from typehub.main import app
from typehub.models.auth import ExternalIdentity
from typehub.models.schema import Paragraph, User
from typehub.orders import InMemoryOrderStore, get_order_store
from typehub.payments import get_payment_gateway
from typehub.sessions import get_identity_provider, login_with_identity

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakeGateway:
    key_id = "rzp_test_key"

    def __init__(self):
        self._ids = itertools.count(1)
        self.orders = []

    def create_order(self, amount_paise, receipt):
        order_id = f"order_test_{next(self._ids)}"
        self.orders.append({"id": order_id, "amount": amount_paise, "receipt": receipt})
        return order_id


class FakeIdentityProvider:
    """Accepts credentials of the form 'google:<sub>:<email>'"""

    def resolve(self, credential):
        parts = credential.split(":")
        if len(parts) != 3 or parts[0] != "google":
            raise Unauthorized("Invalid Google credential")
        _, sub, email = parts
        return ExternalIdentity(external_id=sub, email=email, name=email.split("@")[0].title())


def sign(order_id, payment_id, secret="rzp_test_secret"):
    message = f"{order_id}|{payment_id}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


@pytest.fixture(autouse=True)
def razorpay_keys(monkeypatch):
    monkeypatch.setattr(config, "RAZORPAY_KEY_ID", "rzp_test_key")
    monkeypatch.setattr(config, "RAZORPAY_KEY_SECRET", "rzp_test_secret")


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def order_store():
    return InMemoryOrderStore()


@pytest.fixture
def client(db, gateway, order_store):
    def override_get_db():
        session = TestingSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_identity_provider] = lambda: FakeIdentityProvider()
    app.dependency_overrides[get_order_store] = lambda: order_store
    try:
        yield TestClient(app, raise_server_exceptions=False)
    finally:
        app.dependency_overrides.clear()


def make_user(db, sub="g-1", email="asha@typehub.in", is_paid=False):
    user, token = login_with_identity(
        db, ExternalIdentity(external_id=sub, email=email, name=email.split("@")[0].title())
    )
    if is_paid:
        user.is_paid = True
        db.commit()
        db.refresh(user)
    return user, token


def make_paragraph(db, **overrides):
    data = {
        "title": "Court Passage",
        "text": "The court is now in session.",
        "language": "english",
        "category": "court-exam",
        "access_type": "free",
        "is_free": True,
        "order": 0,
        "published": True,
    }
    data.update(overrides)
    paragraph = Paragraph(**data)
    db.add(paragraph)
    db.commit()
    db.refresh(paragraph)
    return paragraph


def auth(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def user_and_token(db):
    return make_user(db)


@pytest.fixture
def admin_headers(client):
    response = client.post(
        "/admin/login",
        json={"username": config.ADMIN_USERNAME, "password": config.ADMIN_PASSWORD},
    )
    assert response.status_code == 200
    client.cookies.clear()
    return auth(response.json()["token"])

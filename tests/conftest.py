import hashlib
import hmac
import json
import os
from typing import Generator

# Keep the import-time engine away from any real database file
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from storefront import auth, models, schemas
from storefront.config import Settings, get_settings
from storefront.db import Base, enable_sqlite_foreign_keys, get_db
from storefront.main import app, get_notifier, get_paystack
from storefront.paystack import PaystackClient

PASSWORD = "SecurePass123!"

TEST_SETTINGS = Settings(
    jwt_secret="test-jwt-secret-that-is-long-enough-for-hs256",
    paystack_secret_key="sk_test_secret",
    paystack_base_url="https://paystack.test",
    frontend_success_url="http://shop.example.com/success.html",
    environment="test",
)


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    def send_order_confirmation(self, order):
        self.sent.append(("confirmation", order.reference))

    def send_payment_receipt(self, order):
        self.sent.append(("receipt", order.reference))


class FakeResponse:
    def __init__(self, status_code: int, body=None):
        self.status_code = status_code
        self._body = body

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 400

    def json(self):
        if self._body is None:
            raise ValueError("no json body")
        return self._body


class FakePaystackSession:
    """Stands in for requests.Session; replies are queued per HTTP method."""

    def __init__(self):
        self.calls = []
        self.replies = {"POST": [], "GET": []}

    def queue(self, method: str, reply):
        self.replies[method].append(reply)

    def _reply(self, method: str):
        reply = self.replies[method].pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    def post(self, url, json=None, headers=None, timeout=None):
        self.calls.append(("POST", url, json, headers, timeout))
        return self._reply("POST")

    def get(self, url, headers=None, timeout=None):
        self.calls.append(("GET", url, None, headers, timeout))
        return self._reply("GET")


@pytest.fixture(scope="function")
def engine():
    # Use in-memory SQLite with a single connection
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(engine) -> Generator:
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def settings():
    return TEST_SETTINGS


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def paystack_session():
    return FakePaystackSession()


@pytest.fixture(scope="function")
def client(db_session, settings, notifier, paystack_session):
    # Override dependencies to use the same session and test doubles
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_paystack] = lambda: PaystackClient(settings, session=paystack_session)
    from fastapi.testclient import TestClient
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db_session, settings):
    """Create an account directly and return ``(user, auth headers)``."""

    def _make(email: str, role: models.UserRole = models.UserRole.USER, password: str = PASSWORD):
        user, token = auth.register_user(
            db_session, schemas.RegisterRequest(email=email, password=password), settings, role=role
        )
        return user, {"Authorization": f"Bearer {token}"}

    return _make


@pytest.fixture
def admin_headers(make_user):
    return make_user("admin@example.com", role=models.UserRole.ADMIN)[1]


@pytest.fixture
def user_headers(make_user):
    return make_user("shopper@example.com")[1]


def charge_success(reference="ref_001", amount=500000, email="buyer@example.com", metadata=None) -> dict:
    return {
        "event": "charge.success",
        "data": {
            "reference": reference,
            "amount": amount,
            "customer": {"email": email},
            "metadata": metadata if metadata is not None else {"productId": 1},
        },
    }


@pytest.fixture
def deliver(client, settings):
    """POST a webhook signed with the shared secret (or an explicit signature)."""

    def _deliver(payload, signature=None, raw=None):
        body = raw if raw is not None else json.dumps(payload).encode("utf-8")
        if signature is None:
            signature = hmac.new(settings.paystack_secret_key.encode(), body, hashlib.sha512).hexdigest()
        return client.post(
            "/checkout/webhook/paystack",
            content=body,
            headers={"x-paystack-signature": signature, "Content-Type": "application/json"},
        )

    return _deliver


@pytest.fixture
def event_factory():
    return charge_success


@pytest.fixture
def fake_response():
    return FakeResponse

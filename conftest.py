"""Shared pytest fixtures: in-memory app, users with tokens, signed webhooks."""

import os

import pytest
import requests
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

_PROVIDER_KEY = rsa.generate_private_key(public_exponent=65537, key_size=2048)
PROVIDER_PRIVATE_PEM = _PROVIDER_KEY.private_bytes(
    serialization.Encoding.PEM,
    serialization.PrivateFormat.PKCS8,
    serialization.NoEncryption(),
).decode("ascii")
PROVIDER_PUBLIC_PEM = _PROVIDER_KEY.public_key().public_bytes(
    serialization.Encoding.PEM,
    serialization.PublicFormat.SubjectPublicKeyInfo,
).decode("ascii")

os.environ["DATABASE_URI"] = "sqlite://"  # In-memory database for tests
os.environ["CONFIG_PATH"] = "does-not-exist.yaml"
os.environ["APP_SECRET_KEY"] = "test-secret-key"
os.environ["JWT_SECRET"] = "test-jwt-secret-with-enough-length-for-hs256"
os.environ["TELEBIRR_ENABLED"] = "true"
os.environ["TELEBIRR_API_BASE_URL"] = "https://telebirr.test/api"
os.environ["TELEBIRR_APP_KEY"] = "test-app-key"
os.environ["TELEBIRR_APP_SECRET"] = "test-app-secret"
os.environ["TELEBIRR_SHORT_CODE"] = "220311"
os.environ["TELEBIRR_NOTIFY_URL"] = "https://saas.test/api/payments/notify"
os.environ["TELEBIRR_RETURN_URL"] = "https://saas.test/orders"
os.environ["TELEBIRR_PUBLIC_KEY"] = PROVIDER_PUBLIC_PEM
os.environ["TELEBIRR_PRIVATE_KEY"] = ""
os.environ["TRACCAR_ENABLED"] = "true"
os.environ["TRACCAR_API_URL"] = "http://traccar.test/api"
os.environ["LOG_DIR"] = ""

from werkzeug.security import generate_password_hash  # noqa: E402

from app import create_app  # noqa: E402
from extensions import db  # noqa: E402
from models import SubscriptionPlan, User  # noqa: E402
from services.auth import issue_token  # noqa: E402
from signing import sign_params  # noqa: E402

TEST_PASSWORD = "testpassword"


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self._payload = payload
        self.status_code = status_code

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} Error", response=self)


class HttpRecorder:
    """Stands in for ``requests`` calls and records what was sent."""

    def __init__(self):
        self.calls = []
        self.responses = {}

    def respond(self, method, path_suffix, payload, status_code=200):
        self.responses[(method, path_suffix)] = (payload, status_code)

    def _lookup(self, method, url):
        for (m, suffix), (payload, status) in self.responses.items():
            if m == method and url.endswith(suffix):
                if isinstance(payload, requests.exceptions.RequestException):
                    raise payload
                return FakeResponse(payload, status)
        raise requests.exceptions.ConnectionError(f"No route to {url}")

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        return self._lookup(method, url)

    def post(self, url, **kwargs):
        return self.request("POST", url, **kwargs)


@pytest.fixture(autouse=True)
def http(monkeypatch):
    """Block real network access; tests register canned responses."""
    recorder = HttpRecorder()
    monkeypatch.setattr(requests, "request", recorder.request)
    monkeypatch.setattr(requests, "post", recorder.post)
    return recorder


@pytest.fixture
def app():
    """Create application for testing."""
    application = create_app({"TESTING": True, "RATELIMIT_ENABLED": False})
    yield application
    with application.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


def plan_id(app, name):
    with app.app_context():
        return SubscriptionPlan.query.filter_by(name=name).first().id


def make_user(app, email, plan_name="Free", is_admin=False, expiry=None):
    """Create a user on *plan_name*; returns ``(user_id, auth_headers)``."""
    with app.app_context():
        plan = SubscriptionPlan.query.filter_by(name=plan_name).first()
        user = User(
            name=email.split("@")[0].title(),
            email=email,
            password_hash=generate_password_hash(TEST_PASSWORD),
            is_admin=is_admin,
            subscription_id=plan.id,
            subscription_expiry=expiry,
        )
        db.session.add(user)
        db.session.commit()
        token = issue_token(user)
        return user.id, {"Authorization": f"Bearer {token}"}


@pytest.fixture
def user(app):
    return make_user(app, "user@example.com")


@pytest.fixture
def admin(app):
    return make_user(app, "boss@example.com", is_admin=True)


def signed_notification(order_id, total_amount, trade_status="SUCCESS", **extra):
    payload = {
        "merchantOrderId": str(order_id),
        "outTradeNo": "TB-20240101-0001",
        "totalAmount": total_amount,
        "currency": "ETB",
        "tradeStatus": trade_status,
        "timestamp": "1735689600000",
    }
    payload.update(extra)
    payload["signature"] = sign_params(payload, PROVIDER_PRIVATE_PEM)
    return payload

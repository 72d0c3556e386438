"""
Pytest configuration and fixtures for the backend tests.
"""
import hashlib
import hmac
import json
import os
import tempfile
import time

import pytest

# Point settings at a throwaway database before quickleads is imported
_TEST_DIR = tempfile.mkdtemp(prefix="quickleads-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{_TEST_DIR}/test.db"
os.environ["ENV"] = "test"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-for-quickleads-tests-only"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_quickleads"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_quickleads"
os.environ["POSTMARK_SERVER_TOKEN"] = ""
os.environ["FRONTEND_URL"] = "https://quickleads.test"

from fastapi.testclient import TestClient  # noqa: E402

from quickleads.auth.local import auth_service  # noqa: E402
from quickleads.email.dispatcher import notifier  # noqa: E402
from quickleads.storage.db import db  # noqa: E402
from quickleads.storage.models import Role, UserAccount  # noqa: E402

WEBHOOK_SECRET = os.environ["STRIPE_WEBHOOK_SECRET"]
PASSWORD = "Sup3r-secret"


@pytest.fixture(autouse=True)
def fresh_db():
    """Every test starts from empty tables."""
    db.drop_tables()
    db.create_tables()
    yield


@pytest.fixture(autouse=True)
def sent(monkeypatch):
    """Record notifications instead of delivering them."""
    outbox: list[tuple] = []

    def record(kind, **context):
        outbox.append((kind, context))

    monkeypatch.setattr(notifier, "dispatch", record)
    return outbox


@pytest.fixture
def make_user():
    """Factory creating users with a given balance, role and referrer."""
    counter = {"n": 0}

    def _make(
        email: str | None = None,
        credits: int = 0,
        role: Role = Role.CUSTOMER,
        referral_code: str | None = None,
        first_name: str = "Test",
    ) -> UserAccount:
        counter["n"] += 1
        email = email or f"user{counter['n']}@example.com"
        user = auth_service.create_user(
            email=email,
            password=PASSWORD,
            first_name=first_name,
            referral_code=referral_code,
        )
        if credits or role != Role.CUSTOMER:
            with db.session() as session:
                row = session.get(UserAccount, user.id)
                row.credits = credits
                row.role = role
            user.credits = credits
            user.role = role
        return user

    return _make


def auth_headers(user: UserAccount) -> dict[str, str]:
    return {"Authorization": f"Bearer {auth_service.create_access_token(user)}"}


def stripe_signature(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Build a Stripe-Signature header the way Stripe signs deliveries."""
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.".encode() + payload
    digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def checkout_event(
    session_id: str,
    user_id: int,
    credits: int,
    amount_cents: int,
    event_type: str = "checkout.session.completed",
    event_id: str = "evt_test_1",
) -> bytes:
    return json.dumps(
        {
            "id": event_id,
            "object": "event",
            "type": event_type,
            "data": {
                "object": {
                    "id": session_id,
                    "object": "checkout.session",
                    "amount_total": amount_cents,
                    "currency": "usd",
                    "payment_status": "paid",
                    "metadata": {
                        "user_id": str(user_id),
                        "package_id": str(credits),
                        "credits": str(credits),
                    },
                }
            },
        }
    ).encode()


@pytest.fixture
def client():
    """Test client running the app lifespan."""
    from quickleads.api.main import app

    with TestClient(app) as test_client:
        yield test_client

import mongomock
import pytest
from fastapi.testclient import TestClient

import database
import main
from scan2tap.errors import ExternalServiceError
from scan2tap.payments import PaystackGateway


class FakeMailer:
    def __init__(self, fail_on=None):
        self.sent = []
        self.fail_on = fail_on or set()

    def send(self, to, subject, html, sender=None, reply_to=None):
        if to in self.fail_on:
            raise ExternalServiceError("Email service rejected the message")
        self.sent.append({"to": to, "subject": subject, "html": html, "sender": sender, "reply_to": reply_to})
        return f"msg_{len(self.sent)}"


class FakePayments(PaystackGateway):
    """Paystack stand-in: checkouts are opened by authorize and completed by pay()."""

    def __init__(self, fail=False):
        super().__init__(secret_key="sk_test_secret")
        self.fail = fail
        self.calls = []
        self.transactions = {}

    def authorize(self, email, billing_cycle, metadata=None):
        self.calls.append((email, billing_cycle, metadata))
        if self.fail:
            raise ExternalServiceError("Payment authorization failed")
        reference = f"ref_{len(self.calls)}"
        self.transactions[reference] = {
            "reference": reference,
            "status": "abandoned",
            "metadata": {"plan": "pro", "billing_cycle": billing_cycle, **(metadata or {})},
        }
        return {"reference": reference, "authorization_url": "https://checkout.example/pay"}

    def pay(self, reference):
        self.transactions[reference]["status"] = "success"

    def verify(self, reference):
        if reference not in self.transactions:
            raise ExternalServiceError("Payment verification failed")
        return dict(self.transactions[reference])


@pytest.fixture
def db():
    handle = mongomock.MongoClient()["scan2tap_test"]
    database.ensure_indexes(handle)
    return handle


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def payments():
    return FakePayments()


@pytest.fixture
def client(db, mailer, payments):
    main.app.dependency_overrides[main.get_db] = lambda: db
    main.app.dependency_overrides[main.get_optional_db] = lambda: db
    main.app.dependency_overrides[main.get_mailer] = lambda: mailer
    main.app.dependency_overrides[main.get_payments] = lambda: payments
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


def auth(user_id, email=None):
    headers = {"X-User-Id": user_id}
    if email:
        headers["X-User-Email"] = email
    return headers


@pytest.fixture
def make_profile(db):
    """Insert a profile row directly and return it."""
    from scan2tap.profiles import ensure_profile

    def _make(user_id, slug=None, plan_type="free", email=None, **fields):
        ensure_profile(db, user_id, email)
        update = {"plan_type": plan_type, **fields}
        if slug:
            update["slug"] = slug
        db["profiles"].update_one({"_id": user_id}, {"$set": update})
        return db["profiles"].find_one({"_id": user_id})
    return _make


@pytest.fixture
def admin_headers(client):
    r = client.post("/api/admin/login", json={"username": "admin", "password": "admin123"})
    assert r.status_code == 200
    return {"X-Admin-Token": r.json()["token"]}

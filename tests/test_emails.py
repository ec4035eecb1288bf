import re

from conftest import FakeMailer
from scan2tap import notifier
from scan2tap.config import Settings

CONTACT = {
    "name": "Ama Owusu",
    "email": "Ama@Example.com",
    "subject": "Bulk order",
    "message": "Hello, I would like 50 cards for my team.",
}


def test_reference_id_format():
    assert re.fullmatch(r"CT-[0-9A-Z]+-[0-9A-Z]{5}", notifier.generate_reference_id())


def test_contact_sends_acknowledgement_and_admin_alert(client, db, mailer):
    r = client.post("/api/contact", json=CONTACT)
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert body["referenceId"].startswith("CT-")
    assert [m["to"] for m in mailer.sent] == ["ama@example.com", Settings.ADMIN_NOTIFY_EMAIL]
    assert mailer.sent[1]["reply_to"] == "ama@example.com"
    assert body["referenceId"] in mailer.sent[1]["subject"]
    stored = db["contact_messages"].find_one({"reference_id": body["referenceId"]})
    assert stored["acknowledged"] is True and stored["admin_notified"] is True


def test_short_message_is_rejected_without_sending(client, mailer):
    r = client.post("/api/contact", json={**CONTACT, "message": "Hi!!!"})
    assert r.status_code == 400
    assert r.json() == {"success": False, "error": "Message must be between 10 and 2000 characters."}
    assert mailer.sent == []


def test_missing_fields_and_bad_email(client):
    r = client.post("/api/contact", json={"name": "Ama"})
    assert r.status_code == 400
    assert r.json()["error"].startswith("Missing required fields")
    r = client.post("/api/contact", json={**CONTACT, "email": "not-an-email"})
    assert r.json()["error"] == "Invalid email format."


def test_contact_warns_when_admin_alert_fails(db):
    mailer = FakeMailer(fail_on={Settings.ADMIN_NOTIFY_EMAIL})
    status, body = notifier.handle_contact(db, mailer, CONTACT)
    assert status == 200
    assert body["warning"] == "Admin notification may be delayed."


def test_contact_fails_when_acknowledgement_fails(db):
    mailer = FakeMailer(fail_on={"ama@example.com"})
    status, body = notifier.handle_contact(db, mailer, CONTACT)
    assert status == 500
    assert body["success"] is False


def test_contact_method_handling(client):
    assert client.options("/api/contact").status_code == 200
    r = client.get("/api/contact")
    assert r.status_code == 405
    assert r.json()["success"] is False


def test_order_email_is_sent_to_profile_email(client, make_profile, mailer):
    make_profile("u1", slug="janedoe", email="jane@example.com", name="Jane")
    r = client.post("/api/order-emails", json={
        "type": "order-shipped",
        "userId": "u1",
        "orderData": {"orderNumber": "ORD-1", "trackingNumber": "GH123", "carrier": "DHL"},
    })
    assert r.status_code == 200
    assert r.json() == {"success": True, "id": "msg_1"}
    assert mailer.sent[0]["subject"] == "Order Shipped - ORD-1"
    assert "GH123" in mailer.sent[0]["html"]


def test_order_email_skipped_when_user_opted_out(client, make_profile, mailer):
    make_profile("u1", slug="janedoe", email="jane@example.com", email_order_updates=False)
    r = client.post("/api/order-emails", json={"type": "order-confirmation", "userId": "u1", "orderData": {"orderNumber": "ORD-1"}})
    assert r.status_code == 200
    assert r.json()["skipped"] is True
    assert mailer.sent == []


def test_order_email_validation(client, make_profile):
    make_profile("u1", slug="janedoe")
    r = client.post("/api/order-emails", json={"type": "order-shipped", "userId": "u1"})
    assert r.json() == {"error": "Missing required fields: type, userId, orderData"}
    r = client.post("/api/order-emails", json={"type": "order-lost", "userId": "u1", "orderData": {"a": 1}})
    assert r.json() == {"error": "Invalid email type"}
    r = client.post("/api/order-emails", json={"type": "order-shipped", "userId": "ghost", "orderData": {"a": 1}})
    assert r.json() == {"error": "User profile not found"}
    r = client.post("/api/order-emails", json={"type": "order-shipped", "userId": "u1", "orderData": {"a": 1}})
    assert r.status_code == 400
    assert r.json() == {"error": "User email not found"}


def test_order_email_provider_failure(client, make_profile):
    from main import app, get_mailer

    make_profile("u1", slug="janedoe", email="jane@example.com")
    app.dependency_overrides[get_mailer] = lambda: FakeMailer(fail_on={"jane@example.com"})
    r = client.post("/api/order-emails", json={"type": "order-delivered", "userId": "u1", "orderData": {"orderNumber": "ORD-9"}})
    assert r.status_code == 500
    assert r.json() == {"error": "Failed to send order email"}

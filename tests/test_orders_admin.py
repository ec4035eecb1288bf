import re

import pytest
from pymongo.errors import PyMongoError

from conftest import auth
from schemas import OrderCreate
from scan2tap import inventory, orders
from scan2tap.orders import revenue_summary


@pytest.fixture
def catalog(db):
    return {
        "classic": inventory.create_item(db, "card_types", {"name": "Classic", "price": 50}),
        "metal": inventory.create_item(db, "card_types", {"name": "Metal", "price": 200, "design_tier": "metal"}),
        "color": inventory.create_item(db, "color_schemes", {
            "name": "Midnight", "price_modifier": 5, "has_stock_limit": True, "stock_quantity": 10,
        }),
    }


def order_body(catalog, design="classic", quantity=2):
    return {
        "design_id": catalog[design]["id"],
        "color_scheme_id": catalog["color"]["id"],
        "quantity": quantity,
        "customer_first_name": "Jane",
        "customer_last_name": "Doe",
        "customer_email": "jane@example.com",
        "shipping_address": "12 Ring Road",
        "shipping_city": "Accra",
    }


def test_order_number_format():
    assert re.fullmatch(r"ORD-\d{13}-[A-Z0-9]{4}-\d{4}", orders.generate_order_number())


def test_revenue_excludes_cancelled_and_pending():
    summary = revenue_summary([
        {"status": "pending", "total": 10},
        {"status": "confirmed", "total": 20},
        {"status": "delivered", "total": 30.5},
        {"status": "cancelled", "total": 100},
    ])
    assert summary["revenue"] == 50.5
    assert summary["pending_revenue"] == 10
    assert summary["total_orders"] == 4
    assert summary["by_status"]["cancelled"] == 1


def test_create_order_prices_and_decrements_stock(client, db, make_profile, mailer, catalog):
    make_profile("u1", slug="janedoe", email="jane@example.com")
    r = client.post("/api/orders", headers=auth("u1"), json=order_body(catalog))
    assert r.status_code == 200
    order = r.json()
    assert order["status"] == "pending"
    assert order["subtotal"] == 110.0
    assert order["total"] == 125.0
    assert order["design_name"] == "Classic"
    assert inventory.get_item(db, "color_schemes", catalog["color"]["id"])["stock_quantity"] == 8
    assert mailer.sent[0]["subject"].endswith(order["order_number"])

    listed = client.get("/api/orders", headers=auth("u1")).json()
    assert [o["order_number"] for o in listed] == [order["order_number"]]
    assert client.get(f"/api/orders/{order['order_number']}", headers=auth("u1")).status_code == 200
    assert client.get(f"/api/orders/{order['order_number']}", headers=auth("u2")).status_code == 404
    assert client.get("/api/orders/stats", headers=auth("u1")).json()["pending_revenue"] == 125.0


def test_free_plan_cannot_order_metal_cards(client, make_profile, catalog):
    make_profile("u1", slug="janedoe")
    r = client.post("/api/orders", headers=auth("u1"), json=order_body(catalog, design="metal"))
    assert r.status_code == 403
    assert r.json()["upgrade"] is True


def test_order_over_stock_is_rejected(client, make_profile, catalog):
    make_profile("u1", slug="janedoe", plan_type="pro")
    r = client.post("/api/orders", headers=auth("u1"), json=order_body(catalog, quantity=11))
    assert r.status_code == 400
    assert "left in stock" in r.json()["detail"]


def test_failed_order_insert_returns_stock(db, catalog, monkeypatch):
    def refuse(*args, **kwargs):
        raise PyMongoError("write failed")

    monkeypatch.setattr(orders, "create_document", refuse)
    with pytest.raises(PyMongoError):
        orders.create_order(db, "u1", OrderCreate(**order_body(catalog, quantity=3)))
    color = inventory.get_item(db, "color_schemes", catalog["color"]["id"])
    assert color["stock_quantity"] == 10
    assert color["is_available"] is True
    assert db["orders"].count_documents({}) == 0


def test_admin_login_rejects_bad_credentials(client):
    r = client.post("/api/admin/login", json={"username": "admin", "password": "wrong"})
    assert r.status_code == 401


def test_admin_session_lifecycle(client, admin_headers):
    status = client.get("/api/admin/session", headers=admin_headers).json()
    assert status["minutes_remaining"] > 400
    assert status["needs_renewal"] is False
    assert client.post("/api/admin/session/extend", headers=admin_headers).status_code == 200
    assert client.post("/api/admin/logout", headers=admin_headers).status_code == 200
    assert client.get("/api/admin/session", headers=admin_headers).status_code == 401


def test_admin_status_update_stamps_and_emails(client, db, make_profile, mailer, catalog, admin_headers):
    make_profile("u1", slug="janedoe", email="jane@example.com")
    number = client.post("/api/orders", headers=auth("u1"), json=order_body(catalog)).json()["order_number"]

    r = client.put(f"/api/admin/orders/{number}/status", headers=admin_headers, json={"status": "shipped"})
    assert r.status_code == 200
    assert r.json()["shipped_at"] is not None
    assert mailer.sent[-1]["subject"].endswith(number)

    r = client.put(f"/api/admin/orders/{number}/tracking", headers=admin_headers, json={"tracking_number": "GH123"})
    assert r.json()["tracking_number"] == "GH123"

    r = client.put(f"/api/admin/orders/{number}/status", headers=admin_headers, json={"status": "lost"})
    assert r.status_code == 400

    # no transition graph: delivered straight back to pending is allowed
    client.put(f"/api/admin/orders/{number}/status", headers=admin_headers, json={"status": "delivered"})
    assert client.put(f"/api/admin/orders/{number}/status", headers=admin_headers, json={"status": "pending"}).status_code == 200


def test_status_email_respects_opt_out(client, db, make_profile, mailer, catalog, admin_headers):
    make_profile("u1", slug="janedoe", email="jane@example.com", email_order_updates=False)
    number = client.post("/api/orders", headers=auth("u1"), json=order_body(catalog)).json()["order_number"]
    client.put(f"/api/admin/orders/{number}/status", headers=admin_headers, json={"status": "confirmed"})
    assert mailer.sent == []


def test_admin_stats_and_filters(client, make_profile, catalog, admin_headers):
    make_profile("u1", slug="janedoe", name="Jane Doe", email="jane@example.com")
    make_profile("u2", slug="kwame", name="Kwame Mensah", plan_type="pro", onboarding_complete=True)
    client.post("/api/orders", headers=auth("u1"), json=order_body(catalog))

    stats = client.get("/api/admin/stats", headers=admin_headers).json()
    assert stats["profiles"] == {"total": 2, "pro": 1, "free": 1, "onboarded": 1}
    assert stats["orders"]["total_orders"] == 1

    found = client.get("/api/admin/profiles", headers=admin_headers, params={"search": "kwa"}).json()
    assert [p["slug"] for p in found] == ["kwame"]
    pro = client.get("/api/admin/profiles", headers=admin_headers, params={"plan_type": "pro"}).json()
    assert len(pro) == 1
    by_name = client.get("/api/admin/profiles", headers=admin_headers, params={"sort": "name"}).json()
    assert [p["name"] for p in by_name] == ["Jane Doe", "Kwame Mensah"]

    assert len(client.get("/api/admin/orders", headers=admin_headers, params={"status": "pending"}).json()) == 1
    assert client.get("/api/admin/orders", headers=admin_headers, params={"sort": "color"}).status_code == 400


def test_admin_csv_export(client, make_profile, admin_headers):
    make_profile("u1", slug="janedoe", name="Jane Doe")
    r = client.get("/api/admin/export/profiles.csv", headers=admin_headers)
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/csv")
    lines = r.text.strip().splitlines()
    assert lines[0].startswith("id,name,email,slug")
    assert "janedoe" in lines[1]


def test_admin_updates_and_deletes_profiles(client, db, make_profile, admin_headers):
    make_profile("u1", slug="janedoe")
    r = client.put("/api/admin/profiles/u1", headers=admin_headers, json={"plan_type": "pro", "subscription_status": "active"})
    assert r.json()["plan_type"] == "pro"

    db["username_history"].insert_one({"user_id": "u1", "username": "janedoe", "is_current": True})
    db["profile_visits"].insert_one({"profile_id": "u1"})
    assert client.delete("/api/admin/profiles/u1", headers=admin_headers).status_code == 200
    assert db["profiles"].count_documents({}) == 0
    assert db["username_history"].count_documents({}) == 0
    assert db["profile_visits"].count_documents({}) == 0
    assert client.delete("/api/admin/profiles/u1", headers=admin_headers).status_code == 404

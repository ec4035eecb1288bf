from datetime import timedelta

from conftest import auth
from database import utcnow
from scan2tap import analytics

IPHONE = "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) Mobile Safari"
IPAD = "Mozilla/5.0 (iPad; CPU OS 17_0 like Mac OS X) Safari"
DESKTOP = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) Chrome/120.0"


def test_device_type_detection():
    assert analytics.device_type(IPHONE) == "mobile"
    assert analytics.device_type(IPAD) == "tablet"
    assert analytics.device_type(DESKTOP) == "desktop"
    assert analytics.device_type(None) == "desktop"


def test_browser_info():
    assert analytics.browser_info(DESKTOP) == ("Chrome", "Windows")
    assert analytics.browser_info(IPHONE) == ("Safari", "iOS")


def test_visits_and_clicks_are_recorded_through_public_routes(client, db, make_profile):
    make_profile("u1", slug="janedoe")
    r = client.post("/api/p/janedoe/visit", headers={"User-Agent": IPHONE, "Referer": "https://www.google.com/search"})
    assert r.status_code == 200
    visit = db["profile_visits"].find_one({"profile_id": "u1"})
    assert visit["device_type"] == "mobile"
    assert visit["referrer_domain"] == "www.google.com"

    client.post("/api/p/janedoe/click", json={"label": "Instagram", "url": "https://instagram.com/jane"})
    click = db["link_clicks"].find_one({"profile_id": "u1"})
    assert click["platform"] == "instagram"
    assert click["link_type"] == "social"

    assert client.post("/api/p/nobody/visit").status_code == 404


def test_summary_counts_and_caches(db):
    analytics.track_visit(db, "u1", IPHONE, "1.1.1.1")
    analytics.track_visit(db, "u1", IPHONE, "1.1.1.1")
    analytics.track_visit(db, "u1", DESKTOP, "2.2.2.2")
    analytics.track_visit(db, "u1", DESKTOP, "3.3.3.3")
    analytics.track_click(db, "u1", "Shop", "https://shop.example.com")

    result = analytics.summary(db, "u1")
    assert result["total_visits"] == 4
    assert result["unique_visitors"] == 3
    assert result["total_clicks"] == 1
    assert result["click_through_rate"] == 25.0
    assert db["profile_analytics"].find_one({"profile_id": "u1"})["total_visits"] == 4


def test_top_links_and_devices(db):
    for url in ["https://instagram.com/a", "https://instagram.com/a", "https://x.com/a", "https://shop.example.com"]:
        analytics.track_click(db, "u1", "link", url)
    assert analytics.top_links(db, "u1") == [
        {"platform": "instagram", "clicks": 2, "percentage": 67},
        {"platform": "twitter", "clicks": 1, "percentage": 33},
    ]

    analytics.track_visit(db, "u1", IPHONE)
    analytics.track_visit(db, "u1", IPHONE)
    analytics.track_visit(db, "u1", IPAD)
    analytics.track_visit(db, "u1", DESKTOP)
    assert analytics.device_breakdown(db, "u1")[0] == {"device": "Mobile", "views": 2, "percentage": 50}


def test_chart_is_zero_filled(db):
    analytics.track_visit(db, "u1", DESKTOP)
    old = utcnow() - timedelta(days=3)
    db["profile_visits"].insert_one({"profile_id": "u1", "visited_at": old})

    chart = analytics.chart_data(db, "u1", days=7)
    assert len(chart) == 7
    assert chart[-1]["date"] == utcnow().date().isoformat()
    assert chart[-1]["views"] == 1
    assert chart[-4]["views"] == 1
    assert sum(day["clicks"] for day in chart) == 0


def test_analytics_routes_are_pro_only(client, make_profile):
    make_profile("u1", slug="janedoe")
    r = client.get("/api/analytics/summary", headers=auth("u1"))
    assert r.status_code == 403
    assert r.json()["upgrade"] is True

    make_profile("u2", slug="prouser", plan_type="pro")
    assert client.get("/api/analytics/summary", headers=auth("u2")).json()["total_visits"] == 0
    assert client.get("/api/analytics/chart", headers=auth("u2"), params={"days": 14}).status_code == 200
    assert client.get("/api/analytics/chart", headers=auth("u2"), params={"days": 0}).status_code == 400
    assert client.get("/api/analytics/devices", headers=auth("u2")).json() == []
    assert client.get("/api/analytics/top-links", headers=auth("u2")).json() == []

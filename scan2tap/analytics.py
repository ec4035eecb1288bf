"""
Profile visit and link click tracking, and the aggregates behind the
analytics dashboard.
"""
import hashlib
import logging
import re
from datetime import timedelta
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from database import create_document, get_documents, utcnow
from schemas import LinkClick, ProfileAnalytics, ProfileVisit

from .social import platform_from_url

logger = logging.getLogger(__name__)

VISITS = "profile_visits"
CLICKS = "link_clicks"
CACHE = "profile_analytics"

TABLET_RE = re.compile(r"tablet|ipad|playbook|silk")
MOBILE_RE = re.compile(r"mobile|iphone|ipod|android|blackberry|opera|mini|windows\sce|palm|smartphone|iemobile")


def device_type(user_agent: Optional[str]) -> str:
    ua = (user_agent or "").lower()
    if TABLET_RE.search(ua):
        return "tablet"
    if MOBILE_RE.search(ua):
        return "mobile"
    return "desktop"


def browser_info(user_agent: Optional[str]):
    ua = user_agent or ""
    browser = "Unknown"
    for name in ("Edge", "Chrome", "Firefox", "Safari", "Opera"):
        if name in ua:
            browser = name
            break
    os_name = "Unknown"
    if "Windows" in ua:
        os_name = "Windows"
    elif "Android" in ua:
        os_name = "Android"
    elif "iPhone" in ua or "iPad" in ua:
        os_name = "iOS"
    elif "Mac" in ua:
        os_name = "MacOS"
    elif "Linux" in ua:
        os_name = "Linux"
    return browser, os_name


def visitor_id(user_agent: Optional[str], client_ip: Optional[str]) -> str:
    # anonymous: only a digest of the request fingerprint is kept
    fingerprint = f"{user_agent or ''}-{client_ip or ''}"
    return hashlib.sha256(fingerprint.encode("utf-8")).hexdigest()[:16]


def referrer_domain(referrer: Optional[str]) -> Optional[str]:
    if not referrer:
        return None
    return urlparse(referrer).hostname


# ------------------------------
# Tracking
# ------------------------------

def track_visit(db, profile_id: str, user_agent: Optional[str] = None, client_ip: Optional[str] = None, referrer: Optional[str] = None) -> str:
    browser, os_name = browser_info(user_agent)
    visit = ProfileVisit(
        profile_id=profile_id,
        visitor_id=visitor_id(user_agent, client_ip),
        device_type=device_type(user_agent),
        browser=browser,
        os=os_name,
        referrer_url=referrer,
        referrer_domain=referrer_domain(referrer),
        visited_at=utcnow(),
    )
    logger.debug("Visit to %s from a %s device", profile_id, visit.device_type)
    return create_document(db, VISITS, visit)


def track_click(db, profile_id: str, label: str, url: str, user_agent: Optional[str] = None, client_ip: Optional[str] = None) -> str:
    platform = platform_from_url(url)
    click = LinkClick(
        profile_id=profile_id,
        link_type="social" if platform else "custom",
        link_label=label,
        link_url=url,
        platform=platform.value if platform else None,
        visitor_id=visitor_id(user_agent, client_ip),
        device_type=device_type(user_agent),
        clicked_at=utcnow(),
    )
    return create_document(db, CLICKS, click)


# ------------------------------
# Aggregates
# ------------------------------

def summary(db, profile_id: str) -> Dict[str, Any]:
    """Totals for one profile; the result is also cached in profile_analytics."""
    total_visits = db[VISITS].count_documents({"profile_id": profile_id})
    unique_visitors = len({v.get("visitor_id") for v in db[VISITS].find({"profile_id": profile_id}, {"visitor_id": 1})})
    total_clicks = db[CLICKS].count_documents({"profile_id": profile_id})
    ctr = round(total_clicks / total_visits * 100, 1) if total_visits else 0.0
    cached = ProfileAnalytics(
        profile_id=profile_id,
        total_visits=total_visits,
        unique_visitors=unique_visitors,
        total_clicks=total_clicks,
        click_through_rate=ctr,
    ).model_dump()
    db[CACHE].update_one(
        {"profile_id": profile_id},
        {"$set": {**cached, "updated_at": utcnow()}},
        upsert=True,
    )
    return cached


def top_links(db, profile_id: str, limit: int = 10) -> List[Dict[str, Any]]:
    counts: Dict[str, int] = {}
    for click in get_documents(db, CLICKS, {"profile_id": profile_id, "platform": {"$ne": None}}):
        counts[click["platform"]] = counts.get(click["platform"], 0) + 1
    total = sum(counts.values())
    rows = [
        {"platform": platform, "clicks": clicks, "percentage": round(clicks / total * 100)}
        for platform, clicks in counts.items()
    ]
    rows.sort(key=lambda r: r["clicks"], reverse=True)
    return rows[:limit]


def device_breakdown(db, profile_id: str) -> List[Dict[str, Any]]:
    counts: Dict[str, int] = {}
    for visit in get_documents(db, VISITS, {"profile_id": profile_id}):
        device = visit.get("device_type") or "desktop"
        counts[device] = counts.get(device, 0) + 1
    total = sum(counts.values())
    rows = [
        {"device": device.capitalize(), "views": views, "percentage": round(views / total * 100)}
        for device, views in counts.items()
    ]
    rows.sort(key=lambda r: r["views"], reverse=True)
    return rows


def chart_data(db, profile_id: str, days: int = 30) -> List[Dict[str, Any]]:
    """Per-day visits and clicks for the last `days` days, oldest first, zero-filled."""
    today = utcnow().date()
    buckets = {}
    for offset in range(days - 1, -1, -1):
        day = (today - timedelta(days=offset)).isoformat()
        buckets[day] = {"date": day, "views": 0, "clicks": 0}
    for visit in db[VISITS].find({"profile_id": profile_id}, {"visited_at": 1}):
        day = visit["visited_at"].date().isoformat()
        if day in buckets:
            buckets[day]["views"] += 1
    for click in db[CLICKS].find({"profile_id": profile_id}, {"clicked_at": 1}):
        day = click["clicked_at"].date().isoformat()
        if day in buckets:
            buckets[day]["clicks"] += 1
    return list(buckets.values())


def delete_for_profile(db, profile_id: str):
    for name in (VISITS, CLICKS, CACHE):
        db[name].delete_many({"profile_id": profile_id})

"""
Admin console: credential login with expiring sessions, dashboard figures,
profile and order management, CSV export.
"""
import csv
import hmac
import io
import logging
import secrets
from datetime import timedelta
from typing import Any, Dict, List, Optional

from database import as_utc, create_document, utcnow
from schemas import AdminSession, ORDER_STATUSES

from . import analytics
from .config import Settings
from .errors import AuthenticationFailed, NotFound, ValidationFailed
from .onboarding import DRAFTS
from .orders import ORDERS, revenue_summary, serialize_order
from .plans import PLAN_TYPES, SUBSCRIPTION_STATUSES
from .profiles import PROFILES, USERNAME_HISTORY, serialize_profile

logger = logging.getLogger(__name__)

SESSIONS = "admin_sessions"

PROFILE_SORTS = {"created_at", "name", "slug", "plan_type"}
ORDER_SORTS = {"created_at", "total", "status", "order_number"}

PROFILE_CSV_FIELDS = ["id", "name", "email", "slug", "plan_type", "subscription_status", "onboarding_complete", "created_at"]
ORDER_CSV_FIELDS = [
    "order_number", "user_id", "status", "design_name", "color_scheme_name", "quantity",
    "total", "customer_first_name", "customer_last_name", "customer_email", "shipping_city",
    "tracking_number", "created_at",
]


# ------------------------------
# Sessions
# ------------------------------

def login(db, username: str, password: str) -> Dict[str, Any]:
    user_ok = hmac.compare_digest((username or "").encode(), Settings.ADMIN_USERNAME.encode())
    pass_ok = hmac.compare_digest((password or "").encode(), Settings.ADMIN_PASSWORD.encode())
    if not (user_ok and pass_ok):
        logger.warning("Failed admin login for %r", username)
        raise AuthenticationFailed("Invalid admin credentials")
    session = AdminSession(
        token=secrets.token_hex(32),
        username=username,
        expires_at=utcnow() + timedelta(hours=Settings.ADMIN_SESSION_HOURS),
    )
    create_document(db, SESSIONS, session)
    logger.info("Admin %s logged in", username)
    return {"token": session.token, "username": username, "expires_at": session.expires_at}


def validate(db, token: Optional[str]) -> Dict[str, Any]:
    if not token:
        raise AuthenticationFailed("Admin session required")
    session = db[SESSIONS].find_one({"token": token, "is_active": True})
    if not session or as_utc(session["expires_at"]) <= utcnow():
        raise AuthenticationFailed("Admin session expired")
    return session


def time_remaining(session: Dict[str, Any]) -> int:
    """Whole minutes left before the session expires."""
    seconds = (as_utc(session["expires_at"]) - utcnow()).total_seconds()
    return max(0, int(seconds // 60))


def session_status(session: Dict[str, Any]) -> Dict[str, Any]:
    minutes = time_remaining(session)
    return {
        "username": session["username"],
        "expires_at": session["expires_at"],
        "minutes_remaining": minutes,
        "needs_renewal": minutes < Settings.ADMIN_RENEWAL_MINUTES,
    }


def extend(db, token: str) -> Dict[str, Any]:
    validate(db, token)
    expires_at = utcnow() + timedelta(hours=Settings.ADMIN_SESSION_HOURS)
    db[SESSIONS].update_one({"token": token}, {"$set": {"expires_at": expires_at, "updated_at": utcnow()}})
    return session_status(validate(db, token))


def logout(db, token: str):
    db[SESSIONS].update_one({"token": token}, {"$set": {"is_active": False, "updated_at": utcnow()}})


# ------------------------------
# Dashboard
# ------------------------------

def dashboard_stats(db) -> Dict[str, Any]:
    profiles = db[PROFILES]
    return {
        "profiles": {
            "total": profiles.count_documents({}),
            "pro": profiles.count_documents({"plan_type": "pro"}),
            "free": profiles.count_documents({"plan_type": {"$ne": "pro"}}),
            "onboarded": profiles.count_documents({"onboarding_complete": True}),
        },
        "orders": revenue_summary(db[ORDERS].find()),
    }


def _sorted(rows: List[Dict[str, Any]], sort: str, allowed, default: str) -> List[Dict[str, Any]]:
    descending = sort.startswith("-")
    key = sort.lstrip("-") or default
    if key not in allowed:
        raise ValidationFailed(f"Cannot sort by {key}")
    present = [r for r in rows if r.get(key) is not None]
    missing = [r for r in rows if r.get(key) is None]
    present.sort(key=lambda r: r[key], reverse=descending)
    return present + missing


def filter_profiles(db, search: Optional[str] = None, plan_type: Optional[str] = None, sort: str = "-created_at") -> List[Dict[str, Any]]:
    query: Dict[str, Any] = {}
    if plan_type:
        if plan_type not in PLAN_TYPES:
            raise ValidationFailed(f"Unknown plan: {plan_type}")
        query["plan_type"] = plan_type
    rows = [serialize_profile(d) for d in db[PROFILES].find(query)]
    if search:
        term = search.lower()
        rows = [
            r for r in rows
            if any(term in (r.get(f) or "").lower() for f in ("name", "email", "slug"))
        ]
    return _sorted(rows, sort, PROFILE_SORTS, "created_at")


def filter_orders(db, search: Optional[str] = None, status: Optional[str] = None, sort: str = "-created_at") -> List[Dict[str, Any]]:
    query: Dict[str, Any] = {}
    if status:
        if status not in ORDER_STATUSES:
            raise ValidationFailed(f"Invalid order status: {status}")
        query["status"] = status
    rows = [serialize_order(d) for d in db[ORDERS].find(query)]
    if search:
        term = search.lower()
        fields = ("order_number", "customer_first_name", "customer_last_name", "customer_email", "shipping_address", "shipping_city")
        rows = [r for r in rows if any(term in str(r.get(f) or "").lower() for f in fields)]
    return _sorted(rows, sort, ORDER_SORTS, "created_at")


def to_csv(rows: List[Dict[str, Any]], fields: List[str]) -> str:
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=fields, extrasaction="ignore")
    writer.writeheader()
    for row in rows:
        writer.writerow({f: row.get(f) for f in fields})
    return buf.getvalue()


# ------------------------------
# Profile management
# ------------------------------

ADMIN_PROFILE_FIELDS = ("plan_type", "subscription_status", "subscription_started_at", "subscription_expires_at")


def update_profile(db, user_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
    changes = {k: v for k, v in updates.items() if k in ADMIN_PROFILE_FIELDS and v is not None}
    if "plan_type" in changes and changes["plan_type"] not in PLAN_TYPES:
        raise ValidationFailed(f"Unknown plan: {changes['plan_type']}")
    if "subscription_status" in changes and changes["subscription_status"] not in SUBSCRIPTION_STATUSES:
        raise ValidationFailed(f"Unknown subscription status: {changes['subscription_status']}")
    if not changes:
        raise ValidationFailed("No changes supplied")
    changes["updated_at"] = utcnow()
    res = db[PROFILES].update_one({"_id": user_id}, {"$set": changes})
    if res.matched_count == 0:
        raise NotFound("Profile not found")
    logger.info("Admin updated profile %s: %s", user_id, sorted(changes))
    return serialize_profile(db[PROFILES].find_one({"_id": user_id}))


def delete_profile(db, user_id: str):
    res = db[PROFILES].delete_one({"_id": user_id})
    if res.deleted_count == 0:
        raise NotFound("Profile not found")
    # Cleanup related
    db[USERNAME_HISTORY].delete_many({"user_id": user_id})
    db[DRAFTS].delete_many({"_id": user_id})
    analytics.delete_for_profile(db, user_id)
    logger.info("Admin deleted profile %s", user_id)

"""
Pro subscriptions.

A profile becomes Pro only once Paystack confirms the payment, either
through an explicit verify call or the charge.success webhook. Until then
the Paystack reference sits on the profile as pending and the plan stays
free. The maintenance sweep moves lapsed Pro profiles back to free.
"""
import logging
from datetime import timedelta
from typing import Any, Dict, Optional

from database import as_utc, utcnow

from . import notifier, orders
from .errors import ExternalServiceError, NotFound, ValidationFailed
from .profiles import PROFILES, get_profile

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = ("active", "trial")
BILLING_PERIODS = {
    "monthly": timedelta(days=30),
    "annually": timedelta(days=365),
}
CANCEL_EVENTS = ("subscription.disable", "subscription.not_renew")


def pro_fields(reference: Optional[str], billing_cycle: Optional[str], now=None) -> Dict[str, Any]:
    """The profile fields an active Pro subscription carries."""
    now = now or utcnow()
    billing_cycle = billing_cycle if billing_cycle in BILLING_PERIODS else "monthly"
    return {
        "plan_type": "pro",
        "subscription_status": "active",
        "subscription_started_at": now,
        "subscription_expires_at": now + BILLING_PERIODS[billing_cycle],
        "billing_cycle": billing_cycle,
        "payment_reference": reference,
    }


def confirmed_payment(payments, reference: Optional[str], user_id: str) -> Optional[Dict[str, Any]]:
    """
    Return the Paystack transaction when it is a completed Pro payment by
    this user, otherwise None. Gateway outages count as unconfirmed.
    """
    if payments is None or not reference:
        return None
    try:
        data = payments.verify(reference)
    except ExternalServiceError as e:
        logger.warning("Could not verify payment %s for %s: %s", reference, user_id, e.message)
        return None
    if data.get("status") != "success":
        logger.info("Payment %s for %s not completed (status %s)", reference, user_id, data.get("status"))
        return None
    metadata = data.get("metadata") if isinstance(data.get("metadata"), dict) else {}
    if metadata.get("user_id") and metadata["user_id"] != user_id:
        logger.warning("Payment %s belongs to %s, not %s", reference, metadata["user_id"], user_id)
        return None
    return data


def activate_pro(db, user_id: str, reference: Optional[str], billing_cycle: Optional[str], mailer=None) -> Dict[str, Any]:
    update = pro_fields(reference, billing_cycle)
    update["updated_at"] = update["subscription_started_at"]
    res = db[PROFILES].update_one({"_id": user_id}, {"$set": update})
    if res.matched_count == 0:
        raise NotFound("Profile not found")
    logger.info("Pro activated for %s (%s, ref %s)", user_id, update["billing_cycle"], reference)
    profile = get_profile(db, user_id)
    notifier.send_pro_activated_email(mailer, profile)
    return profile


def start_upgrade(db, payments, user_id: str, email: Optional[str], billing_cycle: str) -> Dict[str, Any]:
    """Open a Paystack checkout for an existing profile and park the reference as pending."""
    if billing_cycle not in BILLING_PERIODS:
        raise ValidationFailed("Billing cycle must be monthly or annually")
    profile = get_profile(db, user_id)
    if profile.get("plan_type") == "pro" and profile.get("subscription_status") in ACTIVE_STATUSES:
        raise ValidationFailed("You are already on the Pro plan")
    authorization = payments.authorize(email or profile.get("email"), billing_cycle, {"user_id": user_id})
    db[PROFILES].update_one(
        {"_id": user_id},
        {"$set": {"payment_reference": authorization["reference"], "updated_at": utcnow()}},
    )
    return authorization


def verify_and_activate(db, payments, user_id: str, reference: Optional[str], mailer=None) -> Dict[str, Any]:
    if not reference:
        raise ValidationFailed("Payment reference is required")
    profile = get_profile(db, user_id)
    if (
        profile.get("payment_reference") == reference
        and profile.get("plan_type") == "pro"
        and profile.get("subscription_status") in ACTIVE_STATUSES
    ):
        return profile
    data = confirmed_payment(payments, reference, user_id)
    if data is None:
        raise ValidationFailed("Payment verification failed")
    metadata = data.get("metadata") if isinstance(data.get("metadata"), dict) else {}
    return activate_pro(db, user_id, reference, metadata.get("billing_cycle") or profile.get("billing_cycle"), mailer)


# ------------------------------
# Webhook
# ------------------------------

def handle_webhook(db, event: Dict[str, Any], mailer=None) -> Dict[str, Any]:
    """
    Apply a Paystack event. charge.success confirms an order (metadata
    order_number) or activates Pro (metadata plan "pro" + user_id);
    subscription cancellations drop the customer back to free.
    """
    kind = event.get("event")
    data = event.get("data") or {}
    metadata = data.get("metadata") if isinstance(data.get("metadata"), dict) else {}
    reference = data.get("reference")
    logger.info("Paystack webhook %s (ref %s)", kind, reference)

    if kind == "charge.success":
        if not reference:
            raise ValidationFailed("Invalid webhook data")
        if metadata.get("order_number"):
            orders.update_status(db, metadata["order_number"], "confirmed", mailer=mailer)
            return {"received": True, "processed": True}
        if metadata.get("plan") == "pro" and metadata.get("user_id"):
            profile = db[PROFILES].find_one({"_id": metadata["user_id"]})
            if profile and profile.get("payment_reference") == reference and profile.get("plan_type") == "pro":
                return {"received": True, "processed": False}
            activate_pro(db, metadata["user_id"], reference, metadata.get("billing_cycle"), mailer)
            return {"received": True, "processed": True}
        logger.warning("charge.success %s carries no order or plan metadata", reference)
        return {"received": True, "processed": False}

    if kind in CANCEL_EVENTS:
        email = (data.get("customer") or {}).get("email")
        if not email:
            return {"received": True, "processed": False}
        res = db[PROFILES].update_many(
            {"email": email, "plan_type": "pro"},
            {"$set": {"plan_type": "free", "subscription_status": "cancelled", "updated_at": utcnow()}},
        )
        logger.info("Subscription cancelled for %s (%d profile(s))", email, res.modified_count)
        return {"received": True, "processed": res.modified_count > 0}

    return {"received": True, "processed": False}


# ------------------------------
# Maintenance
# ------------------------------

def expire_overdue(db, now=None) -> Dict[str, int]:
    """Drop Pro profiles whose paid period has run out back to free."""
    now = now or utcnow()
    expired = 0
    for doc in db[PROFILES].find({"plan_type": "pro", "subscription_status": {"$in": list(ACTIVE_STATUSES)}}):
        expires_at = as_utc(doc.get("subscription_expires_at"))
        if expires_at is None or expires_at > now:
            continue
        db[PROFILES].update_one(
            {"_id": doc["_id"]},
            {"$set": {"plan_type": "free", "subscription_status": "expired", "updated_at": now}},
        )
        expired += 1
        logger.info("Pro subscription expired for %s", doc["_id"])
    return {"expired": expired}


def sync_plan_types(db) -> Dict[str, int]:
    """Make plan_type agree with subscription_status: pro exactly when the subscription is active."""
    processed = updated = 0
    for doc in db[PROFILES].find({}, {"plan_type": 1, "subscription_status": 1}):
        processed += 1
        correct = "pro" if doc.get("subscription_status") in ACTIVE_STATUSES else "free"
        if (doc.get("plan_type") or "free") != correct:
            db[PROFILES].update_one({"_id": doc["_id"]}, {"$set": {"plan_type": correct, "updated_at": utcnow()}})
            updated += 1
    return {"processed": processed, "updated": updated}


def run_maintenance(db, now=None) -> Dict[str, Any]:
    now = now or utcnow()
    result = {
        "expired_subscriptions": expire_overdue(db, now),
        "sync_results": sync_plan_types(db),
        "timestamp": now.isoformat(),
    }
    logger.info("Subscription maintenance finished: %s", result)
    return result


def lapse_if_expired(db, profile: Dict[str, Any]) -> Dict[str, Any]:
    """Expire a single profile on read so a missed sweep never leaves Pro on past its date."""
    expires_at = as_utc(profile.get("subscription_expires_at"))
    if profile.get("plan_type") != "pro" or expires_at is None or expires_at > utcnow():
        return profile
    db[PROFILES].update_one(
        {"_id": profile["_id"]},
        {"$set": {"plan_type": "free", "subscription_status": "expired", "updated_at": utcnow()}},
    )
    logger.info("Pro subscription expired for %s", profile["_id"])
    return get_profile(db, profile["_id"])

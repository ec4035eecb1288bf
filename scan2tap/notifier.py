"""
Transactional email through the Resend HTTP API.

`handle_contact` and `handle_order_email` implement the two public email
endpoints and return (status_code, body) so the route only has to wrap them.
"""
import logging
import re
import secrets
import time
from typing import Any, Dict, Optional, Tuple

import requests

from database import create_document
from schemas import ContactMessage

from . import templates
from .config import Settings
from .errors import ExternalServiceError, ValidationFailed

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"

ORDER_EMAIL_TYPES = tuple(templates.ORDER_TEMPLATES)
STATUS_EMAIL_TYPES = {
    "confirmed": "order-confirmation",
    "processing": "order-processing",
    "shipped": "order-shipped",
    "delivered": "order-delivered",
    "cancelled": "order-cancelled",
}


class ResendMailer:
    """Minimal client for POST /emails."""

    def __init__(self, api_key: Optional[str] = None, api_url: Optional[str] = None, timeout: Optional[int] = None):
        self.api_key = api_key if api_key is not None else Settings.RESEND_API_KEY
        self.api_url = api_url or Settings.RESEND_API_URL
        self.timeout = timeout or Settings.REQUEST_TIMEOUT

    def send(self, to: str, subject: str, html: str, sender: Optional[str] = None, reply_to: Optional[str] = None) -> str:
        if not self.api_key:
            raise ExternalServiceError("Email service not configured")
        payload = {"from": sender or Settings.EMAIL_FROM, "to": [to], "subject": subject, "html": html}
        if reply_to:
            payload["reply_to"] = reply_to
        try:
            r = requests.post(
                self.api_url,
                headers={"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"},
                json=payload,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error("Email API unreachable: %s", e)
            raise ExternalServiceError("Email service unavailable")
        if r.status_code >= 300:
            logger.error("Email API returned %s: %s", r.status_code, r.text[:200])
            raise ExternalServiceError("Email service rejected the message")
        return r.json().get("id", "")


def _base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(BASE36[rem])
    return "".join(reversed(digits))


def generate_reference_id() -> str:
    timestamp = _base36(int(time.time() * 1000))
    random_part = "".join(secrets.choice(BASE36) for _ in range(5))
    return f"CT-{timestamp}-{random_part}".upper()


# ------------------------------
# Contact form
# ------------------------------

def validate_contact(body: Any) -> Dict[str, str]:
    body = body if isinstance(body, dict) else {}
    name, email, subject, message = (body.get(k) for k in ("name", "email", "subject", "message"))
    if not all(isinstance(v, str) and v for v in (name, email, subject, message)):
        raise ValidationFailed("Missing required fields. Please provide name, email, subject, and message.")
    if not EMAIL_RE.match(email):
        raise ValidationFailed("Invalid email format.")
    if not 2 <= len(name) <= 100:
        raise ValidationFailed("Name must be between 2 and 100 characters.")
    if not 2 <= len(subject) <= 200:
        raise ValidationFailed("Subject must be between 2 and 200 characters.")
    if not 10 <= len(message) <= 2000:
        raise ValidationFailed("Message must be between 10 and 2000 characters.")
    return {
        "name": name.strip(),
        "email": email.strip().lower(),
        "subject": subject.strip(),
        "message": message.strip(),
    }


def send_contact_emails(mailer, data: Dict[str, str]) -> Dict[str, Any]:
    reference_id = generate_reference_id()
    result = {"reference_id": reference_id, "thank_you_sent": False, "admin_notification_sent": False}
    try:
        mailer.send(
            to=data["email"],
            subject="Thank you for contacting Scan2Tap!",
            html=templates.contact_thank_you(data, reference_id),
        )
        result["thank_you_sent"] = True
    except ExternalServiceError:
        logger.exception("Acknowledgement email failed for %s (Ref: %s)", data["email"], reference_id)
        return result
    try:
        mailer.send(
            to=Settings.ADMIN_NOTIFY_EMAIL,
            subject=f"New Contact: {data['subject']} - {data['name']} ({reference_id})",
            html=templates.contact_admin_alert(data, reference_id),
            sender=Settings.CONTACT_ALERT_FROM,
            reply_to=data["email"],
        )
        result["admin_notification_sent"] = True
    except ExternalServiceError:
        logger.exception("Admin contact alert failed (Ref: %s)", reference_id)
    return result


def handle_contact(db, mailer, body: Any) -> Tuple[int, Dict[str, Any]]:
    try:
        data = validate_contact(body)
    except ValidationFailed as e:
        return 400, {"success": False, "error": e.message}

    logger.info("Processing contact form submission from %s", data["email"])
    result = send_contact_emails(mailer, data)
    reference_id = result["reference_id"]
    if db is not None:
        create_document(db, "contact_messages", ContactMessage(
            reference_id=reference_id,
            acknowledged=result["thank_you_sent"],
            admin_notified=result["admin_notification_sent"],
            **data,
        ))

    if result["thank_you_sent"] and result["admin_notification_sent"]:
        return 200, {
            "success": True,
            "message": "Thank you for your message! We'll get back to you soon.",
            "referenceId": reference_id,
        }
    if result["thank_you_sent"]:
        return 200, {
            "success": True,
            "message": "Thank you for your message! We'll get back to you soon.",
            "referenceId": reference_id,
            "warning": "Admin notification may be delayed.",
        }
    return 500, {
        "success": False,
        "error": "Unable to send confirmation email. Please try again or contact us directly.",
        "referenceId": reference_id,
    }


# ------------------------------
# Order emails
# ------------------------------

def render_order_email(email_type: str, order_data: Dict[str, Any], user_name: str) -> Tuple[str, str]:
    if email_type not in templates.ORDER_TEMPLATES:
        raise ValidationFailed("Invalid email type")
    title, render = templates.ORDER_TEMPLATES[email_type]
    subject = f"{title} - {order_data.get('orderNumber', '')}"
    return subject, render(order_data, user_name)


def handle_order_email(db, mailer, body: Any) -> Tuple[int, Dict[str, Any]]:
    body = body if isinstance(body, dict) else {}
    email_type, user_id, order_data = body.get("type"), body.get("userId"), body.get("orderData")
    if not email_type or not user_id or not isinstance(order_data, dict) or not order_data:
        return 400, {"error": "Missing required fields: type, userId, orderData"}
    if email_type not in ORDER_EMAIL_TYPES:
        return 400, {"error": "Invalid email type"}

    profile = db["profiles"].find_one({"_id": user_id})
    if not profile:
        return 400, {"error": "User profile not found"}
    if not profile.get("email_order_updates", True):
        logger.info("Order email skipped - user %s has disabled order notifications", user_id)
        return 200, {
            "success": True,
            "skipped": True,
            "message": "Email skipped - user has disabled order notifications",
        }
    if not profile.get("email"):
        return 400, {"error": "User email not found"}

    subject, html = render_order_email(email_type, order_data, profile.get("name") or "there")
    try:
        message_id = mailer.send(to=profile["email"], subject=subject, html=html)
    except ExternalServiceError:
        logger.exception("Failed to send %s email to user %s", email_type, user_id)
        return 500, {"error": "Failed to send order email"}
    return 200, {"success": True, "id": message_id}


def order_email_payload(order: Dict[str, Any]) -> Dict[str, Any]:
    """Shape a stored order the way the order templates expect."""
    return {
        "orderNumber": order.get("order_number"),
        "total": order.get("total"),
        "items": [{"name": order.get("design_name"), "quantity": order.get("quantity", 1)}],
        "shippingAddress": ", ".join(
            p for p in (order.get("shipping_address"), order.get("shipping_city"), order.get("shipping_country")) if p
        ),
        "trackingNumber": order.get("tracking_number"),
    }


def notify_order_status(db, mailer, order: Dict[str, Any]):
    """Best-effort status email; failures are logged, never raised."""
    email_type = STATUS_EMAIL_TYPES.get(order.get("status"))
    if not email_type:
        return None
    try:
        status, body = handle_order_email(db, mailer, {
            "type": email_type,
            "userId": order.get("user_id"),
            "orderData": order_email_payload(order),
        })
    except Exception:
        logger.exception("Order status email crashed for %s", order.get("order_number"))
        return None
    if status != 200:
        logger.warning("Order status email for %s not sent: %s", order.get("order_number"), body)
    return body


# ------------------------------
# Onboarding
# ------------------------------

def send_welcome_email(mailer, profile: Dict[str, Any]) -> bool:
    """Best-effort completion email after onboarding."""
    if not profile.get("email"):
        return False
    profile_url = f"{Settings.FRONTEND_URL.rstrip('/')}/{profile.get('slug')}"
    try:
        mailer.send(
            to=profile["email"],
            subject="Welcome to Scan2Tap!",
            html=templates.welcome(profile.get("name") or "there", profile.get("slug") or "", profile_url),
        )
        return True
    except Exception:
        logger.exception("Welcome email failed for %s", profile.get("_id"))
        return False


# ------------------------------
# Subscriptions
# ------------------------------

def send_pro_activated_email(mailer, profile: Dict[str, Any]) -> bool:
    """Best-effort receipt once a Pro payment is confirmed."""
    if mailer is None or not profile.get("email"):
        return False
    expires_at = profile.get("subscription_expires_at")
    expires_on = expires_at.strftime("%d %B %Y") if expires_at else ""
    try:
        mailer.send(
            to=profile["email"],
            subject="Your Scan2Tap Pro plan is active",
            html=templates.pro_activated(profile.get("name") or "there", profile.get("billing_cycle") or "monthly", expires_on),
        )
        return True
    except Exception:
        logger.exception("Pro activation email failed for %s", profile.get("_id"))
        return False


def handle_upgrade_notification(mailer, body: Any) -> Tuple[int, Dict[str, Any]]:
    """Send the platform upgrade notice to every address; one failure does not stop the rest."""
    body = body if isinstance(body, dict) else {}
    emails = body.get("emails")
    if not isinstance(emails, list) or not emails:
        return 400, {"error": "Missing required field: emails array"}

    html = templates.upgrade_notice(body.get("upgradeDate") or "")
    results, errors = [], []
    for email in emails:
        try:
            message_id = mailer.send(to=email, subject=templates.UPGRADE_NOTICE_SUBJECT, html=html)
        except ExternalServiceError as e:
            logger.error("Upgrade notice to %s failed: %s", email, e.message)
            errors.append({"email": email, "error": e.message})
            continue
        results.append({"email": email, "success": True, "id": message_id})
    logger.info("Upgrade notice sent to %d of %d recipients", len(results), len(emails))
    return 200, {
        "success": True,
        "totalSent": len(results),
        "totalFailed": len(errors),
        "results": results,
        "errors": errors,
    }

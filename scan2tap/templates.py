"""
HTML bodies for transactional emails.

Every interpolated value is escaped; callers pass raw user data.
"""
from html import escape
from typing import Any, Dict

BRAND_HEADER = '<div class="logo">SCAN<span class="number-2">2</span>TAP</div>'

BASE_STYLE = """
    body { margin: 0; padding: 0; background: #f8fafc; font-family: 'Inter', -apple-system, 'Segoe UI', Arial, sans-serif; color: #1a202c; line-height: 1.6; }
    .email-container { max-width: 600px; margin: 0 auto; background: #ffffff; border-radius: 8px; overflow: hidden; box-shadow: 0 4px 12px rgba(0, 0, 0, 0.1); }
    .header { background: linear-gradient(135deg, #2563eb 0%, #1d4ed8 100%); padding: 30px 20px; text-align: center; color: #ffffff; }
    .logo { font-size: 28px; font-weight: bold; letter-spacing: 1px; }
    .logo .number-2 { color: #60a5fa; }
    .content { padding: 30px 25px; text-align: center; }
    .status-badge { display: inline-block; color: #ffffff; padding: 8px 16px; border-radius: 20px; font-size: 12px; font-weight: bold; text-transform: uppercase; margin: 10px 0 20px 0; }
    .detail-card { background: #f7fafc; border-radius: 12px; padding: 20px; margin: 25px 0; text-align: left; }
    .detail-row { padding: 6px 0; border-bottom: 1px solid #e2e8f0; }
    .detail-label { font-weight: 600; color: #4a5568; font-size: 13px; text-transform: uppercase; }
    .reference-id { font-family: 'Courier New', monospace; font-size: 18px; font-weight: 700; color: #1e40af; }
    .footer { background: #f9fafb; padding: 25px 20px; text-align: center; border-top: 1px solid #e5e7eb; font-size: 14px; color: #6b7280; }
"""

STATUS_COLORS = {
    "confirmed": "#10b981",
    "processing": "#f59e0b",
    "shipped": "#3b82f6",
    "delivered": "#059669",
    "cancelled": "#ef4444",
}


def _layout(title: str, body: str) -> str:
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{escape(title)} - Scan2Tap</title>
  <style>{BASE_STYLE}</style>
</head>
<body>
  <div class="email-container">
    <div class="header">{BRAND_HEADER}</div>
    <div class="content">
{body}
    </div>
    <div class="footer">
      <strong>SCAN2TAP</strong><br>
      Your Digital Identity, One Tap Away
    </div>
  </div>
</body>
</html>"""


def _row(label: str, value: Any) -> str:
    return f'<div class="detail-row"><span class="detail-label">{escape(label)}</span><br>{escape(str(value))}</div>'


def _money(value: Any) -> str:
    try:
        return f"GH₵{float(value):,.2f}"
    except (TypeError, ValueError):
        return str(value)


# ------------------------------
# Contact form
# ------------------------------

def contact_thank_you(data: Dict[str, str], reference_id: str) -> str:
    body = f"""
      <h2>Thank you, {escape(data['name'])}!</h2>
      <p>We've received your message and will get back to you within 24 hours.</p>
      <div class="detail-card">
        {_row("Subject", data['subject'])}
        {_row("Message", data['message'])}
      </div>
      <p>Your reference number</p>
      <div class="reference-id">{escape(reference_id)}</div>"""
    return _layout("Thank You", body)


def contact_admin_alert(data: Dict[str, str], reference_id: str) -> str:
    reply_subject = escape(f"Re: {data['subject']} (Ref: {reference_id})")
    body = f"""
      <h2>New Contact Form Submission</h2>
      <div class="detail-card">
        {_row("Name", data['name'])}
        {_row("Email", data['email'])}
        {_row("Subject", data['subject'])}
        {_row("Message", data['message'])}
        {_row("Reference", reference_id)}
      </div>
      <a href="mailto:{escape(data['email'])}?subject={reply_subject}">Reply to {escape(data['name'])}</a>"""
    return _layout("New Contact", body)


# ------------------------------
# Onboarding
# ------------------------------

def welcome(name: str, slug: str, profile_url: str) -> str:
    body = f"""
      <h2>Welcome to Scan2Tap, {escape(name)}!</h2>
      <p>Your digital business card is live.</p>
      <div class="detail-card">
        {_row("Username", slug)}
        {_row("Profile", profile_url)}
      </div>
      <p>Share your QR code or link anywhere to connect instantly.</p>"""
    return _layout("Welcome", body)


# ------------------------------
# Subscriptions
# ------------------------------

def pro_activated(name: str, billing_cycle: str, expires_on: str) -> str:
    body = f"""
      <h2>You're on Pro, {escape(name)}!</h2>
      <div class="status-badge" style="background-color: #2563eb;">Pro</div>
      <p>Your payment went through and every Pro feature is now unlocked: unlimited links, grid layout, custom backgrounds, analytics and vCard downloads.</p>
      <div class="detail-card">
        {_row("Billing", billing_cycle.title())}
        {_row("Renews on", expires_on)}
      </div>"""
    return _layout("Welcome to Pro", body)


UPGRADE_NOTICE_SUBJECT = "Important: SCAN2TAP Database Upgrade Notice"


def upgrade_notice(upgrade_date: str = "") -> str:
    scheduled = _row("Scheduled Date", upgrade_date) if upgrade_date else ""
    body = f"""
      <h2>Important Database Upgrade Notice</h2>
      <p>We are writing to inform you about an important system upgrade that will affect your SCAN2TAP account.</p>
      <div class="detail-card" style="border-left: 4px solid #ef4444;">
        <p><strong>We will be performing a final database upgrade that requires clearing all existing user data.</strong></p>
        <p>This means that all current profiles, settings, and user information will be permanently deleted from our system.</p>
      </div>
      <div class="detail-card">
        {_row("Before the upgrade", "Please save any important information from your profile")}
        {_row("During the upgrade", "The platform will be temporarily unavailable")}
        {_row("After the upgrade", "You can create a new account with improved features")}
        {scheduled}
      </div>
      <p>We sincerely apologize for any inconvenience this may cause. We appreciate your understanding and continued support as we work to improve SCAN2TAP for everyone.</p>"""
    return _layout("Database Upgrade Notice", body)


# ------------------------------
# Orders
# ------------------------------

def _order_items(order: Dict[str, Any]) -> str:
    rows = []
    for item in order.get("items") or []:
        name = item.get("name") or item.get("design_name") or "Scan2Tap Card"
        rows.append(_row(name, f"x{item.get('quantity', 1)}"))
    return "".join(rows)


def _status_block(status: str, heading: str) -> str:
    color = STATUS_COLORS.get(status, "#6b7280")
    return f'<h2>{escape(heading)}</h2>\n      <div class="status-badge" style="background-color: {color};">{escape(status.title())}</div>'


def order_confirmation(order: Dict[str, Any], user_name: str) -> str:
    body = f"""
      {_status_block("confirmed", "Order Confirmed")}
      <p>Hi {escape(user_name)},</p>
      <p>Thank you for your order <strong>{escape(str(order.get('orderNumber', '')))}</strong>.</p>
      <div class="detail-card">
        {_order_items(order)}
        {_row("Total", _money(order.get('total', 0)))}
        {_row("Shipping to", order.get('shippingAddress') or '')}
        {_row("Estimated delivery", order.get('estimatedDelivery') or '5-7 business days')}
      </div>"""
    return _layout("Order Confirmation", body)


def order_processing(order: Dict[str, Any], user_name: str) -> str:
    body = f"""
      {_status_block("processing", "Your Order Is Being Prepared")}
      <p>Hi {escape(user_name)},</p>
      <p>Your order <strong>{escape(str(order.get('orderNumber', '')))}</strong> is now being printed and prepared for shipping.</p>"""
    return _layout("Order Processing", body)


def order_shipped(order: Dict[str, Any], user_name: str) -> str:
    tracking = order.get("trackingNumber")
    tracking_block = f'<div class="detail-card">{_row("Tracking number", tracking)}{_row("Carrier", order.get("carrier") or "")}</div>' if tracking else ""
    body = f"""
      {_status_block("shipped", "Your Order Has Shipped")}
      <p>Hi {escape(user_name)},</p>
      <p>Your order <strong>{escape(str(order.get('orderNumber', '')))}</strong> is on its way.</p>
      {tracking_block}"""
    return _layout("Order Shipped", body)


def order_delivered(order: Dict[str, Any], user_name: str) -> str:
    body = f"""
      {_status_block("delivered", "Order Delivered")}
      <p>Hi {escape(user_name)},</p>
      <p>Your order <strong>{escape(str(order.get('orderNumber', '')))}</strong> has been delivered. Tap your card on any phone to share your profile.</p>"""
    return _layout("Order Delivered", body)


def order_cancelled(order: Dict[str, Any], user_name: str) -> str:
    reason = order.get("reason")
    reason_block = f'<div class="detail-card">{_row("Cancellation reason", reason)}</div>' if reason else ""
    body = f"""
      {_status_block("cancelled", "Order Cancelled")}
      <p>Hi {escape(user_name)},</p>
      <p>Your order <strong>{escape(str(order.get('orderNumber', '')))}</strong> has been cancelled.</p>
      {reason_block}
      <p>Any charges made to your payment method will be refunded within 3-5 business days.</p>"""
    return _layout("Order Cancelled", body)


ORDER_TEMPLATES = {
    "order-confirmation": ("Order Confirmation", order_confirmation),
    "order-processing": ("Order Processing", order_processing),
    "order-shipped": ("Order Shipped", order_shipped),
    "order-delivered": ("Order Delivered", order_delivered),
    "order-cancelled": ("Order Cancelled", order_cancelled),
}

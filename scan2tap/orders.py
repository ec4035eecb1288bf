"""
Physical card orders: checkout, per-user listings and admin status updates.
"""
import logging
import secrets
import string
import time
from typing import Any, Dict, Iterable, List, Optional

from database import create_document, utcnow
from schemas import ORDER_STATUSES, PAID_ORDER_STATUSES, Order, OrderCreate

from . import inventory, notifier
from .config import Settings
from .errors import NotFound, PlanLimitReached, ValidationFailed
from .plans import plan_policy, upgrade_message

logger = logging.getLogger(__name__)

ORDERS = "orders"
ORDER_ALPHABET = string.ascii_uppercase + string.digits


def generate_order_number() -> str:
    timestamp = int(time.time() * 1000)
    tag = "".join(secrets.choice(ORDER_ALPHABET) for _ in range(4))
    return f"ORD-{timestamp}-{tag}-{secrets.randbelow(10000):04d}"


def serialize_order(doc: Dict[str, Any]) -> Dict[str, Any]:
    out = {k: v for k, v in doc.items() if k != "_id"}
    out["id"] = str(doc["_id"])
    return out


def price_order(card: Dict[str, Any], color: Dict[str, Any], material: Optional[Dict[str, Any]], quantity: int) -> Dict[str, float]:
    unit = (card.get("price") or 0) + (card.get("price_modifier") or 0) + (color.get("price_modifier") or 0)
    if material:
        unit += material.get("price_modifier") or 0
    subtotal = round(unit * quantity, 2)
    shipping = round(Settings.ORDER_SHIPPING_FEE, 2)
    tax = round(subtotal * Settings.ORDER_TAX_RATE, 2)
    return {"subtotal": subtotal, "shipping": shipping, "tax": tax, "total": round(subtotal + shipping + tax, 2)}


def create_order(db, user_id: str, payload: OrderCreate, plan_type: str = "free", mailer=None) -> Dict[str, Any]:
    """Validate the selections, take them out of stock, price and insert the order."""
    card = inventory.get_item(db, inventory.CARD_TYPES, payload.design_id)
    if card.get("design_tier", "classic") not in plan_policy(plan_type).available_designs:
        raise PlanLimitReached(upgrade_message("premium_cards"))
    color = inventory.get_item(db, inventory.COLOR_SCHEMES, payload.color_scheme_id)
    material = inventory.get_item(db, inventory.MATERIALS, payload.material_id) if payload.material_id else None

    stock = inventory.process_order_stock_decrement(
        db, payload.design_id, payload.color_scheme_id, payload.quantity, payload.material_id
    )
    if not stock["success"]:
        raise ValidationFailed(stock["message"])

    try:
        order = Order(
            order_number=generate_order_number(),
            user_id=user_id,
            design_name=card["name"],
            color_scheme_name=color["name"],
            material_name=material["name"] if material else None,
            status="pending",
            **price_order(card, color, material, payload.quantity),
            **payload.model_dump(),
        )
        create_document(db, ORDERS, order)
    except Exception:
        logger.exception("Order insert failed for %s; returning stock", user_id)
        inventory.restore_order_stock(
            db, payload.design_id, payload.color_scheme_id, payload.quantity, payload.material_id
        )
        raise
    logger.info("Order %s created for %s (total %.2f)", order.order_number, user_id, order.total)

    saved = get_order(db, order.order_number)
    if mailer is not None:
        notifier.notify_order_status(db, mailer, {**saved, "status": "confirmed"})
    return saved


def list_user_orders(db, user_id: str) -> List[Dict[str, Any]]:
    return [serialize_order(d) for d in db[ORDERS].find({"user_id": user_id}).sort("created_at", -1)]


def get_order(db, order_number: str, user_id: Optional[str] = None) -> Dict[str, Any]:
    filt = {"order_number": order_number}
    if user_id is not None:
        filt["user_id"] = user_id
    doc = db[ORDERS].find_one(filt)
    if not doc:
        raise NotFound("Order not found")
    return serialize_order(doc)


def revenue_summary(orders: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
    """Totals over a set of orders; cancelled orders count toward neither revenue figure."""
    by_status = {status: 0 for status in ORDER_STATUSES}
    revenue = 0.0
    pending_revenue = 0.0
    total = 0
    for order in orders:
        total += 1
        status = order.get("status", "pending")
        by_status[status] = by_status.get(status, 0) + 1
        if status in PAID_ORDER_STATUSES:
            revenue += order.get("total") or 0
        elif status == "pending":
            pending_revenue += order.get("total") or 0
    return {
        "total_orders": total,
        "by_status": by_status,
        "revenue": round(revenue, 2),
        "pending_revenue": round(pending_revenue, 2),
    }


def user_order_stats(db, user_id: str) -> Dict[str, Any]:
    return revenue_summary(db[ORDERS].find({"user_id": user_id}))


# ------------------------------
# Admin
# ------------------------------

def update_status(db, order_number: str, status: str, mailer=None) -> Dict[str, Any]:
    """Set any of the six statuses; no transition graph is enforced."""
    if status not in ORDER_STATUSES:
        raise ValidationFailed(f"Invalid order status: {status}")
    order = get_order(db, order_number)
    now = utcnow()
    update = {"status": status, "updated_at": now}
    if status == "shipped" and not order.get("shipped_at"):
        update["shipped_at"] = now
    if status == "delivered" and not order.get("delivered_at"):
        update["delivered_at"] = now
    db[ORDERS].update_one({"order_number": order_number}, {"$set": update})
    logger.info("Order %s moved from %s to %s", order_number, order.get("status"), status)

    saved = get_order(db, order_number)
    if mailer is not None and order.get("status") != status:
        notifier.notify_order_status(db, mailer, saved)
    return saved


def add_tracking_number(db, order_number: str, tracking_number: str) -> Dict[str, Any]:
    tracking_number = (tracking_number or "").strip()
    if not tracking_number:
        raise ValidationFailed("Tracking number is required")
    res = db[ORDERS].update_one(
        {"order_number": order_number},
        {"$set": {"tracking_number": tracking_number, "updated_at": utcnow()}},
    )
    if res.matched_count == 0:
        raise NotFound("Order not found")
    return get_order(db, order_number)

"""
Inventory for the physical card order flow: card types, color schemes and
materials.

Invariant: an item with a stock limit whose stock reaches zero is marked
unavailable by the same write that decremented it.
"""
import logging
from typing import Any, Dict, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import ValidationError

from database import create_document, utcnow
from schemas import CardType, ColorScheme, Material

from .errors import Conflict, NotFound, Scan2TapError, ValidationFailed

logger = logging.getLogger(__name__)

CARD_TYPES = "card_types"
COLOR_SCHEMES = "color_schemes"
MATERIALS = "materials"

KINDS = {
    CARD_TYPES: CardType,
    COLOR_SCHEMES: ColorScheme,
    MATERIALS: Material,
}
KIND_ALIASES = {"card_type": CARD_TYPES, "color_scheme": COLOR_SCHEMES, "material": MATERIALS}

CAS_ATTEMPTS = 5


def resolve_kind(kind: str) -> str:
    kind = KIND_ALIASES.get(kind, kind)
    if kind not in KINDS:
        raise NotFound(f"Unknown inventory type: {kind}")
    return kind


def _oid(item_id: str) -> ObjectId:
    try:
        return ObjectId(item_id)
    except (InvalidId, TypeError):
        raise NotFound("Inventory item not found")


def serialize_item(doc: Dict[str, Any]) -> Dict[str, Any]:
    out = {k: v for k, v in doc.items() if k != "_id"}
    out["id"] = str(doc["_id"])
    return out


def _apply_stock_invariant(doc: Dict[str, Any]) -> Dict[str, Any]:
    if doc.get("has_stock_limit") and doc.get("stock_quantity") is not None and doc["stock_quantity"] <= 0:
        doc["stock_quantity"] = 0
        doc["is_available"] = False
    return doc


def _validated(kind: str, data: Dict[str, Any]) -> Dict[str, Any]:
    try:
        return KINDS[kind](**data).model_dump()
    except ValidationError as e:
        raise ValidationFailed(f"Invalid inventory item: {e.errors()[0].get('msg')}")


# ------------------------------
# CRUD
# ------------------------------

def list_items(db, kind: str, include_unavailable: bool = False) -> List[Dict[str, Any]]:
    kind = resolve_kind(kind)
    filt = {} if include_unavailable else {"is_available": True}
    return [serialize_item(d) for d in db[kind].find(filt).sort("name", 1)]


def get_item(db, kind: str, item_id: str) -> Dict[str, Any]:
    kind = resolve_kind(kind)
    doc = db[kind].find_one({"_id": _oid(item_id)})
    if not doc:
        raise NotFound("Inventory item not found")
    return serialize_item(doc)


def create_item(db, kind: str, data: Dict[str, Any]) -> Dict[str, Any]:
    kind = resolve_kind(kind)
    doc = _apply_stock_invariant(_validated(kind, data))
    new_id = create_document(db, kind, doc)
    logger.info("Created %s item %s (%s)", kind, new_id, doc["name"])
    return get_item(db, kind, new_id)


def update_item(db, kind: str, item_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
    kind = resolve_kind(kind)
    existing = db[kind].find_one({"_id": _oid(item_id)})
    if not existing:
        raise NotFound("Inventory item not found")
    merged = {k: v for k, v in existing.items() if k not in ("_id", "created_at", "updated_at")}
    merged.update({k: v for k, v in updates.items() if k not in ("id", "_id")})
    doc = _apply_stock_invariant(_validated(kind, merged))
    doc["updated_at"] = utcnow()
    db[kind].update_one({"_id": existing["_id"]}, {"$set": doc})
    return get_item(db, kind, item_id)


def delete_item(db, kind: str, item_id: str):
    kind = resolve_kind(kind)
    res = db[kind].delete_one({"_id": _oid(item_id)})
    if res.deleted_count == 0:
        raise NotFound("Inventory item not found")


def bulk_update(db, kind: str, updates: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    results = []
    for update in updates:
        item_id = update.get("id")
        if not item_id:
            raise ValidationFailed("Each update needs an id")
        results.append(update_item(db, kind, item_id, update))
    return results


def all_inventory(db, include_unavailable: bool = False) -> Dict[str, List[Dict[str, Any]]]:
    return {kind: list_items(db, kind, include_unavailable) for kind in KINDS}


# ------------------------------
# Stock
# ------------------------------

def decrement_stock(db, kind: str, item_id: str, quantity: int = 1) -> Dict[str, Any]:
    """
    Take `quantity` units out of stock, flooring at zero.

    No-op for items without a stock limit. The write only lands if
    stock_quantity still holds the value that was read; on a lost race the
    read is retried.
    """
    kind = resolve_kind(kind)
    oid = _oid(item_id)
    for _ in range(CAS_ATTEMPTS):
        doc = db[kind].find_one({"_id": oid})
        if not doc:
            raise NotFound("Inventory item not found")
        current = doc.get("stock_quantity")
        if not doc.get("has_stock_limit") or current is None:
            return serialize_item(doc)
        new_quantity = max(0, current - quantity)
        res = db[kind].update_one(
            {"_id": oid, "stock_quantity": current},
            {"$set": {"stock_quantity": new_quantity, "is_available": new_quantity > 0, "updated_at": utcnow()}},
        )
        if res.matched_count == 1:
            if new_quantity == 0:
                logger.info("%s %s is now out of stock", kind, item_id)
            return get_item(db, kind, item_id)
        logger.warning("Stock changed underneath decrement of %s %s, retrying", kind, item_id)
    raise Conflict("Stock is changing too quickly, please try again")


def increment_stock(db, kind: str, item_id: str, quantity: int = 1) -> Dict[str, Any]:
    kind = resolve_kind(kind)
    oid = _oid(item_id)
    doc = db[kind].find_one({"_id": oid})
    if not doc:
        raise NotFound("Inventory item not found")
    if doc.get("has_stock_limit"):
        db[kind].update_one(
            {"_id": oid},
            {"$inc": {"stock_quantity": quantity}, "$set": {"is_available": True, "updated_at": utcnow()}},
        )
    return get_item(db, kind, item_id)


def restore_order_stock(db, design_id: str, color_scheme_id: str, quantity: int = 1, material_id: Optional[str] = None):
    """Put back what process_order_stock_decrement took for an order that was never stored."""
    selections = [(CARD_TYPES, design_id), (COLOR_SCHEMES, color_scheme_id)]
    if material_id:
        selections.append((MATERIALS, material_id))
    for kind, item_id in selections:
        doc = db[kind].find_one({"_id": _oid(item_id)})
        if doc and doc.get("has_stock_limit") and doc.get("stock_quantity") is not None:
            increment_stock(db, kind, item_id, quantity)


def _find_available(db, kind: str, item_id: Optional[str]):
    try:
        doc = db[kind].find_one({"_id": _oid(item_id)})
    except NotFound:
        return None
    if not doc or not doc.get("is_available"):
        return None
    return doc


def process_order_stock_decrement(db, design_id: str, color_scheme_id: str, quantity: int = 1, material_id: Optional[str] = None) -> Dict[str, Any]:
    """Check the order's selections and take them out of stock; returns {success, message}."""
    design = _find_available(db, CARD_TYPES, design_id)
    if not design:
        return {"success": False, "message": "Selected card design is not available"}
    color = _find_available(db, COLOR_SCHEMES, color_scheme_id)
    if not color:
        return {"success": False, "message": "Selected color scheme is not available"}
    if color.get("has_stock_limit") and (color.get("stock_quantity") or 0) < quantity:
        return {"success": False, "message": f"Only {color.get('stock_quantity') or 0} left in stock for {color.get('name')}"}
    if material_id:
        material = _find_available(db, MATERIALS, material_id)
        if not material:
            return {"success": False, "message": "Selected material is not available"}

    try:
        decrement_stock(db, CARD_TYPES, design_id, quantity)
        decrement_stock(db, COLOR_SCHEMES, color_scheme_id, quantity)
        if material_id:
            decrement_stock(db, MATERIALS, material_id, quantity)
    except Scan2TapError as e:
        logger.error("Stock decrement failed for order selection: %s", e.message)
        return {"success": False, "message": e.message}
    return {"success": True, "message": "Stock updated successfully"}

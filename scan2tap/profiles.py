"""
Profile editor operations: provisioning, link management, save, username
ledger and the public view of a profile.

Link operations work on an in-memory list and return a new list; the API
layer persists the result.
"""
import logging
import re
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

from pymongo.errors import DuplicateKeyError

from database import utcnow
from schemas import Link, Profile, ProfileSave, UsernameHistory

from .errors import NotFound, PlanLimitReached, UsernameTaken, ValidationFailed
from .plans import plan_policy, upgrade_message
from .social import Platform, SocialHandle, normalize_custom_url, parse_social_input

logger = logging.getLogger(__name__)

PROFILES = "profiles"
USERNAME_HISTORY = "username_history"

BIO_MAX_LENGTH = 160
USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 30
USERNAME_RE = re.compile(r"^[a-z][a-z0-9]*$")


# ------------------------------
# Usernames
# ------------------------------

def clean_username(value: str) -> str:
    return re.sub(r"[^a-z0-9]", "", (value or "").lower())


def validate_username(value: str) -> str:
    """Check the slug format and return it unchanged, or raise ValidationFailed."""
    value = (value or "").strip()
    if len(value) < USERNAME_MIN_LENGTH:
        raise ValidationFailed("Username must be at least 3 characters")
    if len(value) > USERNAME_MAX_LENGTH:
        raise ValidationFailed("Username must be 30 characters or fewer")
    if not value[0].isalpha():
        raise ValidationFailed("Username must start with a letter")
    if not USERNAME_RE.match(value):
        raise ValidationFailed("Username can only contain lowercase letters and numbers")
    return value


def is_username_available(db, slug: str, exclude_user_id: Optional[str] = None) -> bool:
    """Exact, case-sensitive match against every other profile's slug."""
    query: Dict[str, Any] = {"slug": slug}
    if exclude_user_id:
        query["_id"] = {"$ne": exclude_user_id}
    return db[PROFILES].find_one(query) is None


@contextmanager
def slug_claim(slug: str):
    """Turn a unique-index rejection on profiles.slug into UsernameTaken."""
    try:
        yield
    except DuplicateKeyError:
        logger.warning("Lost a race for slug %s", slug)
        raise UsernameTaken()


def record_username(db, user_id: str, username: str):
    """Append a slug to the ledger and retire the previous current entry."""
    db[USERNAME_HISTORY].update_many(
        {"user_id": user_id, "is_current": True},
        {"$set": {"is_current": False, "updated_at": utcnow()}},
    )
    doc = UsernameHistory(user_id=user_id, username=username).model_dump()
    now = utcnow()
    doc.update({"created_at": now, "updated_at": now})
    db[USERNAME_HISTORY].insert_one(doc)


def current_username(db, user_id: str) -> Optional[str]:
    doc = db[USERNAME_HISTORY].find_one({"user_id": user_id, "is_current": True})
    return doc.get("username") if doc else None


def user_id_for_username(db, username: str) -> Optional[str]:
    docs = list(db[USERNAME_HISTORY].find({"username": username}).sort("created_at", -1).limit(1))
    return docs[0]["user_id"] if docs else None


# ------------------------------
# Provisioning / lookup
# ------------------------------

def ensure_profile(db, user_id: str, email: Optional[str] = None) -> Dict[str, Any]:
    """Return the caller's profile, inserting a fresh row on first authentication."""
    doc = db[PROFILES].find_one({"_id": user_id})
    if doc:
        if email and not doc.get("email"):
            db[PROFILES].update_one({"_id": user_id}, {"$set": {"email": email, "updated_at": utcnow()}})
            doc["email"] = email
        return doc
    now = utcnow()
    doc = Profile(user_id=user_id).model_dump()
    doc.update({"_id": user_id, "email": email, "created_at": now, "updated_at": now})
    db[PROFILES].insert_one(doc)
    logger.info("Provisioned profile for user %s", user_id)
    return doc


def get_profile(db, user_id: str) -> Dict[str, Any]:
    doc = db[PROFILES].find_one({"_id": user_id})
    if not doc:
        raise NotFound("Profile not found")
    return doc


def serialize_profile(doc: Dict[str, Any]) -> Dict[str, Any]:
    out = {k: v for k, v in doc.items() if k != "_id"}
    out["id"] = str(doc.get("_id"))
    out["links"] = list(doc.get("links") or [])
    out["plan"] = plan_policy(doc.get("plan_type")).to_dict()
    return out


# ------------------------------
# Link management
# ------------------------------

def _link_dict(link: Link) -> Dict[str, Any]:
    return link.model_dump(exclude_none=True)


def _check_room_for_link(links: List[Dict[str, Any]], plan_type: str):
    if not plan_policy(plan_type).allows_another_link(len(links)):
        raise PlanLimitReached(upgrade_message("links"))


def add_social_link(links: List[Dict[str, Any]], plan_type: str, platform_key: str, raw_input: str):
    """Parse raw_input for the platform and append it; returns (links, handle)."""
    platform = Platform.from_key(platform_key)
    handle: SocialHandle = parse_social_input(raw_input, platform)
    _check_room_for_link(links, plan_type)
    link = Link(label=handle.label, url=handle.url)
    return list(links) + [_link_dict(link)], handle


def add_custom_link(links: List[Dict[str, Any]], plan_type: str, label: str, url: str, thumbnail: Optional[str] = None):
    label = (label or "").strip()
    if not label:
        raise ValidationFailed("Label is required")
    normalized = normalize_custom_url(url)
    _check_room_for_link(links, plan_type)
    link = Link(label=label, url=normalized, thumbnail=thumbnail)
    return list(links) + [_link_dict(link)]


def remove_link(links: List[Dict[str, Any]], index: int):
    if index < 0 or index >= len(links):
        raise NotFound("Link not found")
    return [link for i, link in enumerate(links) if i != index]


def replace_links(db, user_id: str, links: List[Dict[str, Any]]):
    db[PROFILES].update_one({"_id": user_id}, {"$set": {"links": links, "updated_at": utcnow()}})


# ------------------------------
# Save
# ------------------------------

def save_profile(db, user_id: str, payload: ProfileSave, email: Optional[str] = None) -> Dict[str, Any]:
    """
    Validate and write the editor form in a single upsert.

    Raises UsernameTaken when another profile holds the slug and
    PlanLimitReached when the form exceeds the profile's plan.
    """
    slug = validate_username(payload.slug)
    if not is_username_available(db, slug, exclude_user_id=user_id):
        raise UsernameTaken()

    existing = db[PROFILES].find_one({"_id": user_id})
    plan_type = existing.get("plan_type", "free") if existing else "free"
    policy = plan_policy(plan_type)

    bio = (payload.bio or "").strip() or None
    if bio and len(bio) > BIO_MAX_LENGTH:
        raise ValidationFailed(f"Bio must be {BIO_MAX_LENGTH} characters or less")
    if len(payload.links) > policy.max_links:
        raise PlanLimitReached(upgrade_message("links"))
    if payload.social_layout_style == "grid" and not policy.can_use_grid_layout:
        raise PlanLimitReached(upgrade_message("layout"))
    if payload.background_url and not policy.can_use_custom_background:
        raise PlanLimitReached(upgrade_message("background"))

    links = []
    for link in payload.links:
        links.append(_link_dict(Link(label=link.label.strip(), url=normalize_custom_url(link.url), thumbnail=link.thumbnail)))

    now = utcnow()
    update = {
        "slug": slug,
        "name": payload.name.strip(),
        "title": (payload.title or "").strip() or None,
        "bio": bio,
        "phone": (payload.phone or "").strip() or None,
        "links": links,
        "show_email": payload.show_email,
        "show_phone": payload.show_phone,
        "use_username_instead_of_name": payload.use_username_instead_of_name,
        "social_layout_style": payload.social_layout_style,
        "background_url": payload.background_url,
        "theme": payload.theme,
        "updated_at": now,
    }
    if payload.avatar_url is not None:
        update["avatar_url"] = payload.avatar_url

    if existing is None:
        doc = Profile(user_id=user_id).model_dump()
        doc.update(update)
        doc.update({"_id": user_id, "email": email, "created_at": now})
        with slug_claim(slug):
            db[PROFILES].insert_one(doc)
        record_username(db, user_id, slug)
        logger.info("Created profile %s with slug %s", user_id, slug)
    else:
        with slug_claim(slug):
            db[PROFILES].update_one({"_id": user_id}, {"$set": update})
        if existing.get("slug") != slug:
            record_username(db, user_id, slug)
            logger.info("Profile %s changed slug %s -> %s", user_id, existing.get("slug"), slug)
    return get_profile(db, user_id)


PRIVACY_FIELDS = ("show_email", "show_phone", "email_order_updates", "email_marketing", "use_username_instead_of_name")


def update_privacy(db, user_id: str, flags: Dict[str, Optional[bool]]) -> Dict[str, Any]:
    update = {k: bool(v) for k, v in flags.items() if k in PRIVACY_FIELDS and v is not None}
    if update:
        update["updated_at"] = utcnow()
        res = db[PROFILES].update_one({"_id": user_id}, {"$set": update})
        if res.matched_count == 0:
            raise NotFound("Profile not found")
    return get_profile(db, user_id)


# ------------------------------
# Public view
# ------------------------------

def find_public_profile(db, slug: str) -> Optional[Dict[str, Any]]:
    """Resolve a slug, falling back to the ledger for retired slugs."""
    doc = db[PROFILES].find_one({"slug": slug})
    if doc:
        return doc
    user_id = user_id_for_username(db, slug)
    if user_id:
        return db[PROFILES].find_one({"_id": user_id})
    return None


def public_view(doc: Dict[str, Any]) -> Dict[str, Any]:
    display_name = doc.get("slug") if doc.get("use_username_instead_of_name") else doc.get("name")
    return {
        "id": str(doc.get("_id")),
        "slug": doc.get("slug"),
        "name": display_name,
        "title": doc.get("title"),
        "bio": doc.get("bio"),
        "avatar_url": doc.get("avatar_url"),
        "email": doc.get("email") if doc.get("show_email") else None,
        "phone": doc.get("phone") if doc.get("show_phone") else None,
        "links": list(doc.get("links") or []),
        "social_layout_style": doc.get("social_layout_style", "list"),
        "theme": doc.get("theme"),
        "background_url": doc.get("background_url"),
        "plan_type": doc.get("plan_type", "free"),
    }


def build_vcard(doc: Dict[str, Any]) -> str:
    """Render a vCard 3.0 for the public fields of a profile."""
    view = public_view(doc)
    name = doc.get("name") or doc.get("slug") or ""
    lines = [
        "BEGIN:VCARD",
        "VERSION:3.0",
        f"N:{name};",
        f"FN:{name}",
        f"TITLE:{view.get('title') or ''}",
    ]
    if view.get("phone"):
        lines.append(f"TEL;TYPE=CELL:{view['phone']}")
    if view.get("email"):
        lines.append(f"EMAIL;TYPE=INTERNET:{view['email']}")
    for link in view["links"]:
        lines.append(f"URL:{link['url']}")
    lines.append("END:VCARD")
    return "\r\n".join(lines)

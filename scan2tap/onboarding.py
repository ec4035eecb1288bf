"""
Six-step onboarding wizard.

Steps: 1 username/full name, 2 avatar/title/bio, 3 plan, 4 platform
selection, 5 per-platform handles, 6 additional links. The whole draft is a
single OnboardingDraft document, checkpointed on every transition and
deleted once the final submit succeeds.

A step's external check (username availability) failing leaves the wizard
on the same step. A failed Pro payment in step 3 downgrades the draft to the
free plan and still advances. Choosing Pro only opens a Paystack checkout;
the profile is written as Pro at submit only if that payment is confirmed.
"""
import logging
import secrets
import time
from typing import Any, Dict, List, Optional

from database import utcnow
from schemas import DraftLink, OnboardingDraft

from . import notifier, subscriptions
from .errors import ExternalServiceError, PlanLimitReached, UsernameTaken, ValidationFailed
from .plans import plan_policy, upgrade_message
from .profiles import (
    PROFILES,
    ensure_profile,
    get_profile,
    is_username_available,
    record_username,
    serialize_profile,
    slug_claim,
    validate_username,
)
from .social import Platform, ensure_scheme, parse_social_input

logger = logging.getLogger(__name__)

DRAFTS = "onboarding_drafts"
TOTAL_STEPS = 6
STEP_NAMES = {
    1: "username",
    2: "profile",
    3: "plan",
    4: "platforms",
    5: "social_links",
    6: "additional_links",
}
AVATAR_PRESETS = {
    "avatar1": "/avatars/avatar1.png",
    "avatar2": "/avatars/avatar2.png",
    "avatar3": "/avatars/avatar3.png",
}
BIO_LIMIT = 100
DASHBOARD_PATH = "/dashboard"


def fallback_username() -> str:
    return f"user{str(int(time.time() * 1000))[-6:]}"


class OnboardingWizard:
    def __init__(self, db, user_id: str, email: Optional[str] = None, mailer=None, payments=None):
        self.db = db
        self.user_id = user_id
        self.email = email
        self.mailer = mailer
        self.payments = payments
        self.draft = self._load()

    # ------------------------------
    # Persistence
    # ------------------------------

    def _load(self) -> OnboardingDraft:
        doc = self.db[DRAFTS].find_one({"_id": self.user_id})
        if doc:
            fields = {k: v for k, v in doc.items() if k not in ("_id", "created_at", "updated_at")}
            return OnboardingDraft(**fields)
        draft = OnboardingDraft(user_id=self.user_id)
        self._checkpoint(draft)
        return draft

    def _checkpoint(self, draft: Optional[OnboardingDraft] = None):
        draft = draft or self.draft
        now = utcnow()
        self.db[DRAFTS].update_one(
            {"_id": self.user_id},
            {"$set": {**draft.model_dump(), "updated_at": now}, "$setOnInsert": {"created_at": now}},
            upsert=True,
        )

    def _clear(self):
        self.db[DRAFTS].delete_one({"_id": self.user_id})

    # ------------------------------
    # Views
    # ------------------------------

    @property
    def step(self) -> int:
        return self.draft.step

    @property
    def policy(self):
        return plan_policy(self.draft.plan_type)

    def state(self, notice: Optional[str] = None) -> Dict[str, Any]:
        out = {
            "step": self.step,
            "step_name": STEP_NAMES[self.step],
            "total_steps": TOTAL_STEPS,
            "draft": self.draft.model_dump(exclude={"user_id"}),
            "plan": self.policy.to_dict(),
            "completed": False,
        }
        if notice:
            out["notice"] = notice
        return out

    def _filled_platform_count(self) -> int:
        return sum(1 for p in self.draft.platforms if (self.draft.platform_inputs.get(p) or "").strip())

    # ------------------------------
    # Transitions
    # ------------------------------

    def back(self) -> Dict[str, Any]:
        if self.step == 1:
            return {"exited": True, "redirect": "/"}
        self.draft.step -= 1
        self._checkpoint()
        return self.state()

    def skip(self) -> Dict[str, Any]:
        if self.step == TOTAL_STEPS:
            return self.submit()
        self.draft.step += 1
        self._checkpoint()
        return self.state()

    def advance(self, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Validate and store the current step's fields, then move forward."""
        data = data or {}
        collect = {
            1: self._collect_username,
            2: self._collect_profile,
            3: self._collect_plan,
            4: self._collect_platforms,
            5: self._collect_social_links,
            6: self._collect_additional_links,
        }[self.step]
        notice = collect(data)
        if self.step == TOTAL_STEPS:
            return self.submit()
        self.draft.step += 1
        self._checkpoint()
        return self.state(notice)

    # ------------------------------
    # Step collectors
    # ------------------------------

    def _collect_username(self, data: Dict[str, Any]):
        username = validate_username(data.get("username") or "")
        full_name = (data.get("full_name") or "").strip()
        if not full_name:
            raise ValidationFailed("Please enter your full name")
        if not is_username_available(self.db, username, exclude_user_id=self.user_id):
            raise UsernameTaken()
        self.draft.username = username
        self.draft.full_name = full_name
        return None

    def _collect_profile(self, data: Dict[str, Any]):
        choice = data.get("avatar") or self.draft.avatar_choice or "avatar1"
        if choice == "upload":
            avatar_url = data.get("avatar_url") or self.draft.avatar_url
            if not avatar_url:
                raise ValidationFailed("Please upload an image or pick one of the avatars")
        elif choice in AVATAR_PRESETS:
            avatar_url = AVATAR_PRESETS[choice]
        else:
            raise ValidationFailed("Unknown avatar option")
        self.draft.avatar_choice = choice
        self.draft.avatar_url = avatar_url
        self.draft.title = (data.get("title") or "").strip() or None
        self.draft.bio = (data.get("bio") or "").strip()[:BIO_LIMIT] or None
        return None

    def _collect_plan(self, data: Dict[str, Any]):
        plan_type = data.get("plan_type") or "free"
        if plan_type not in ("free", "pro"):
            raise ValidationFailed("Plan must be free or pro")
        if plan_type == "free":
            self._choose_free()
            return None

        billing_cycle = data.get("billing_cycle") or "monthly"
        if billing_cycle not in ("monthly", "annually"):
            raise ValidationFailed("Billing cycle must be monthly or annually")
        try:
            if self.payments is None:
                raise ExternalServiceError("Payment service not configured")
            authorization = self.payments.authorize(self.email, billing_cycle, {"user_id": self.user_id})
        except ExternalServiceError as e:
            logger.warning("Pro payment failed during onboarding for %s: %s", self.user_id, e.message)
            self._choose_free()
            return None
        self.draft.plan_type = "pro"
        self.draft.billing_cycle = billing_cycle
        self.draft.payment_reference = authorization["reference"]
        self.draft.authorization_url = authorization.get("authorization_url")
        return None

    def _choose_free(self):
        self.draft.plan_type = "free"
        self.draft.billing_cycle = None
        self.draft.payment_reference = None
        self.draft.authorization_url = None
        self._trim_platforms_to_plan()

    def _trim_platforms_to_plan(self):
        limit = self.policy.max_links
        if len(self.draft.platforms) > limit:
            self.draft.platforms = self.draft.platforms[: int(limit)]
            self.draft.platform_inputs = {
                k: v for k, v in self.draft.platform_inputs.items() if k in self.draft.platforms
            }

    def _normalize_platforms(self, keys: List[str]) -> List[str]:
        selected = []
        for key in keys:
            value = Platform.from_key(key).value
            if value not in selected:
                selected.append(value)
        return selected

    def _collect_platforms(self, data: Dict[str, Any]):
        selected = self._normalize_platforms(data.get("platforms") or [])
        notice = None
        if len(selected) > self.policy.max_links:
            selected = selected[: int(self.policy.max_links)]
            notice = upgrade_message("links")
        self.draft.platforms = selected
        self.draft.platform_inputs = {k: v for k, v in self.draft.platform_inputs.items() if k in selected}
        return notice

    def toggle_platform(self, key: str) -> Dict[str, Any]:
        """Select or deselect one platform; selections past the plan cap are refused with a notice."""
        value = Platform.from_key(key).value
        if value in self.draft.platforms:
            self.draft.platforms = [p for p in self.draft.platforms if p != value]
            self.draft.platform_inputs.pop(value, None)
            self._checkpoint()
            return self.state()
        if not self.policy.allows_another_link(len(self.draft.platforms)):
            return self.state(notice=upgrade_message("links"))
        self.draft.platforms = self.draft.platforms + [value]
        self._checkpoint()
        return self.state()

    def _collect_social_links(self, data: Dict[str, Any]):
        inputs = data.get("links") or {}
        if not isinstance(inputs, dict):
            raise ValidationFailed("Links must map each platform to its handle")
        collected = {}
        for key in self.draft.platforms:
            raw = (inputs.get(key) or "").strip()
            if raw:
                parse_social_input(raw, Platform(key))
            collected[key] = raw
        self.draft.platform_inputs = collected
        return None

    def _check_additional_room(self, extra: int):
        total = self._filled_platform_count() + extra
        if total > self.policy.max_links:
            raise PlanLimitReached(upgrade_message("links"))

    def add_additional_link(self, label: str = "", url: str = "") -> Dict[str, Any]:
        self._check_additional_room(len(self.draft.additional_links) + 1)
        self.draft.additional_links = self.draft.additional_links + [DraftLink(label=label or "", url=url or "")]
        self._checkpoint()
        return self.state()

    def remove_additional_link(self, index: int) -> Dict[str, Any]:
        if index < 0 or index >= len(self.draft.additional_links):
            raise ValidationFailed("Link not found")
        self.draft.additional_links = [l for i, l in enumerate(self.draft.additional_links) if i != index]
        self._checkpoint()
        return self.state()

    def _collect_additional_links(self, data: Dict[str, Any]):
        if "additional_links" not in data:
            return None
        rows = []
        for row in data.get("additional_links") or []:
            label = (row.get("label") or "").strip()
            url = (row.get("url") or "").strip()
            if label and url:
                rows.append(DraftLink(label=label, url=url))
        self._check_additional_room(len(rows))
        self.draft.additional_links = rows
        return None

    # ------------------------------
    # Final submit
    # ------------------------------

    def build_links(self) -> List[Dict[str, Any]]:
        links = []
        for key in self.draft.platforms:
            raw = (self.draft.platform_inputs.get(key) or "").strip()
            if not raw:
                continue
            handle = parse_social_input(raw, Platform(key))
            links.append({"label": handle.label, "url": handle.url})
        for row in self.draft.additional_links:
            label = (row.label or "").strip()
            url = (row.url or "").strip()
            if label and url:
                links.append({"label": label, "url": ensure_scheme(url)})
        return links

    def _final_username(self, current_slug: Optional[str]) -> str:
        if self.draft.username:
            if not is_username_available(self.db, self.draft.username, exclude_user_id=self.user_id):
                raise UsernameTaken()
            return self.draft.username
        if current_slug:
            return current_slug
        candidate = fallback_username()
        while not is_username_available(self.db, candidate, exclude_user_id=self.user_id):
            candidate = f"user{secrets.randbelow(10 ** 6):06d}"
        return candidate

    def _settled_plan(self) -> str:
        """Pro only when Paystack confirms the draft's payment; anything else lands on free."""
        if self.draft.plan_type != "pro":
            return "free"
        if subscriptions.confirmed_payment(self.payments, self.draft.payment_reference, self.user_id) is None:
            logger.info("Onboarding for %s finishes on free until payment %s is confirmed",
                        self.user_id, self.draft.payment_reference)
            return "free"
        return "pro"

    def submit(self) -> Dict[str, Any]:
        """Assemble the profile from the draft and write it in one update."""
        links = self.build_links()
        if len(links) > self.policy.max_links:
            raise PlanLimitReached(upgrade_message("links"))

        plan_type = self._settled_plan()
        notice = None
        payment_pending = self.draft.plan_type == "pro" and plan_type == "free"
        limit = plan_policy(plan_type).max_links
        if len(links) > limit:
            # links picked under a Pro plan whose payment never went through
            links = links[: int(limit)]
            notice = upgrade_message("links")

        profile = ensure_profile(self.db, self.user_id, self.email)
        slug = self._final_username(profile.get("slug"))
        full_name = self.draft.full_name or ((self.email or "").split("@")[0]) or "User"
        now = utcnow()
        update = {
            "name": full_name,
            "slug": slug,
            "title": self.draft.title,
            "bio": self.draft.bio,
            "avatar_url": self.draft.avatar_url,
            "links": links,
            "plan_type": plan_type,
            "onboarding_complete": True,
            "updated_at": now,
        }
        if plan_type == "pro":
            update.update(subscriptions.pro_fields(self.draft.payment_reference, self.draft.billing_cycle, now))
        elif payment_pending:
            # kept so the verify route or the webhook can still activate Pro
            update["payment_reference"] = self.draft.payment_reference
            update["billing_cycle"] = self.draft.billing_cycle
        with slug_claim(slug):
            self.db[PROFILES].update_one({"_id": self.user_id}, {"$set": update})
        if profile.get("slug") != slug:
            record_username(self.db, self.user_id, slug)
        self._clear()
        logger.info("Onboarding complete for %s as %s (%s plan)", self.user_id, slug, plan_type)

        saved = get_profile(self.db, self.user_id)
        if self.mailer is not None:
            notifier.send_welcome_email(self.mailer, saved)
        out = {"completed": True, "redirect": DASHBOARD_PATH, "profile": serialize_profile(saved)}
        if payment_pending:
            out["payment_pending"] = True
            out["authorization_url"] = self.draft.authorization_url
        if notice:
            out["notice"] = notice
        return out

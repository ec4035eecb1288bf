"""
Plan policy: what each subscription plan is entitled to.

Free profiles are capped at FREE_LINK_LIMIT links; Pro is unbounded.
"""
import math
from dataclasses import dataclass, field
from typing import List

FREE_LINK_LIMIT = 7

PLAN_TYPES = ("free", "pro")
SUBSCRIPTION_STATUSES = ("active", "cancelled", "expired", "trial")

UPGRADE_MESSAGES = {
    "links": "Upgrade to Pro to add unlimited links to your profile (free users limited to 7 links)",
    "premium_cards": "Upgrade to Pro to access Premium and Metal card designs",
    "analytics": "Upgrade to Pro to access detailed profile analytics",
    "themes": "Upgrade to Pro to customize your profile with premium themes",
    "layout": "Upgrade to Pro to use the grid layout for your links",
    "background": "Upgrade to Pro to use a custom background",
    "vcard": "Upgrade to Pro to enable vCard downloads for your visitors",
}


@dataclass(frozen=True)
class PlanPolicy:
    plan_type: str
    max_links: float
    can_use_grid_layout: bool
    can_use_custom_background: bool
    can_access_analytics: bool
    can_use_custom_themes: bool
    can_download_vcard: bool
    can_order_premium_cards: bool
    available_designs: List[str] = field(default_factory=list)

    @property
    def is_pro(self) -> bool:
        return self.plan_type == "pro"

    def allows_another_link(self, current_count: int) -> bool:
        return current_count < self.max_links

    def to_dict(self):
        return {
            "plan_type": self.plan_type,
            # JSON has no Infinity
            "max_links": None if math.isinf(self.max_links) else int(self.max_links),
            "can_use_grid_layout": self.can_use_grid_layout,
            "can_use_custom_background": self.can_use_custom_background,
            "can_access_analytics": self.can_access_analytics,
            "can_use_custom_themes": self.can_use_custom_themes,
            "can_download_vcard": self.can_download_vcard,
            "can_order_premium_cards": self.can_order_premium_cards,
            "available_designs": list(self.available_designs),
        }


_FREE = PlanPolicy(
    plan_type="free",
    max_links=FREE_LINK_LIMIT,
    can_use_grid_layout=False,
    can_use_custom_background=False,
    can_access_analytics=False,
    can_use_custom_themes=False,
    can_download_vcard=False,
    can_order_premium_cards=False,
    available_designs=["classic"],
)

_PRO = PlanPolicy(
    plan_type="pro",
    max_links=math.inf,
    can_use_grid_layout=True,
    can_use_custom_background=True,
    can_access_analytics=True,
    can_use_custom_themes=True,
    can_download_vcard=True,
    can_order_premium_cards=True,
    available_designs=["classic", "premium", "metal"],
)


def plan_policy(plan_type) -> PlanPolicy:
    """Return the policy for a plan; anything other than "pro" gets the free policy."""
    return _PRO if plan_type == "pro" else _FREE


def can_add_more_links(current_count: int, plan_type: str = "free") -> bool:
    return plan_policy(plan_type).allows_another_link(current_count)


def upgrade_message(feature: str) -> str:
    return UPGRADE_MESSAGES.get(feature, "Upgrade to Pro to unlock this feature")

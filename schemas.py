"""
Database Schemas for the Scan2Tap Digital Business Card Platform

Each Pydantic model represents a collection in MongoDB; the collection name
is given in the model docstring. Request payloads consumed by the service
modules live at the bottom of this file.
"""
from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field

PlanType = Literal["free", "pro"]
SubscriptionStatus = Literal["active", "cancelled", "expired", "trial"]
OrderStatus = Literal["pending", "confirmed", "processing", "shipped", "delivered", "cancelled"]
LayoutStyle = Literal["list", "grid"]
BillingCycle = Literal["monthly", "annually"]

ORDER_STATUSES = ("pending", "confirmed", "processing", "shipped", "delivered", "cancelled")
PAID_ORDER_STATUSES = ("confirmed", "processing", "shipped", "delivered")


# -----------------------------
# Profiles
# -----------------------------

class Link(BaseModel):
    label: str = Field(..., min_length=1)
    url: str = Field(..., min_length=1)
    thumbnail: Optional[str] = None


class Profile(BaseModel):
    """
    One row per authenticated user; _id is the auth provider's user id.
    Collection: "profiles"
    """
    user_id: str = Field(..., description="Auth provider user id")
    email: Optional[EmailStr] = None
    slug: Optional[str] = Field(None, description="Public handle, unique across profiles")
    name: str = ""
    title: Optional[str] = None
    bio: Optional[str] = Field(None, max_length=160)
    avatar_url: Optional[str] = None
    phone: Optional[str] = None
    links: List[Link] = Field(default_factory=list, description="Display order")
    plan_type: PlanType = "free"
    subscription_status: Optional[SubscriptionStatus] = None
    subscription_started_at: Optional[datetime] = None
    subscription_expires_at: Optional[datetime] = None
    billing_cycle: Optional[BillingCycle] = None
    payment_reference: Optional[str] = Field(None, description="Latest Paystack reference, pending until verified")
    show_email: bool = False
    show_phone: bool = False
    use_username_instead_of_name: bool = False
    social_layout_style: LayoutStyle = "list"
    theme: Optional[str] = None
    background_url: Optional[str] = None
    email_order_updates: bool = True
    email_marketing: bool = False
    onboarding_complete: bool = False


class UsernameHistory(BaseModel):
    """
    Ledger of every slug a profile has claimed
    Collection: "username_history"
    """
    user_id: str
    username: str
    is_current: bool = True


# -----------------------------
# Onboarding
# -----------------------------

class DraftLink(BaseModel):
    label: str = ""
    url: str = ""


class OnboardingDraft(BaseModel):
    """
    In-progress onboarding wizard state, one document per user
    Collection: "onboarding_drafts"
    """
    user_id: str
    step: int = Field(1, ge=1, le=6)
    username: Optional[str] = None
    full_name: Optional[str] = None
    avatar_choice: Optional[str] = None
    avatar_url: Optional[str] = None
    title: Optional[str] = None
    bio: Optional[str] = None
    plan_type: PlanType = "free"
    billing_cycle: Optional[BillingCycle] = None
    payment_reference: Optional[str] = None
    authorization_url: Optional[str] = Field(None, description="Paystack checkout page for the pending Pro payment")
    platforms: List[str] = Field(default_factory=list)
    platform_inputs: Dict[str, str] = Field(default_factory=dict)
    additional_links: List[DraftLink] = Field(default_factory=list)


# -----------------------------
# Inventory
# -----------------------------

class InventoryItem(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    is_available: bool = True
    has_stock_limit: bool = False
    stock_quantity: Optional[int] = Field(None, ge=0, description="Meaningful only with has_stock_limit")
    price_modifier: float = 0.0


class CardType(InventoryItem):
    """
    Physical card designs
    Collection: "card_types"
    """
    price: float = Field(0.0, ge=0)
    design_tier: Literal["classic", "premium", "metal"] = "classic"


class ColorScheme(InventoryItem):
    """
    Card color options
    Collection: "color_schemes"
    """
    primary_color: Optional[str] = None
    secondary_color: Optional[str] = None
    accent_color: Optional[str] = None


class Material(InventoryItem):
    """
    Card materials
    Collection: "materials"
    """
    pass


# -----------------------------
# Orders
# -----------------------------

class Order(BaseModel):
    """
    Physical card orders
    Collection: "orders"
    """
    order_number: str
    user_id: str
    design_id: str
    design_name: Optional[str] = None
    color_scheme_id: str
    color_scheme_name: Optional[str] = None
    material_id: Optional[str] = None
    material_name: Optional[str] = None
    quantity: int = Field(..., ge=1)
    subtotal: float = Field(..., ge=0)
    shipping: float = Field(0.0, ge=0)
    tax: float = Field(0.0, ge=0)
    total: float = Field(..., ge=0)
    status: OrderStatus = "pending"
    customer_first_name: str
    customer_last_name: str
    customer_email: EmailStr
    customer_phone: Optional[str] = None
    shipping_address: str
    shipping_city: str
    shipping_state: Optional[str] = None
    shipping_zip_code: Optional[str] = None
    shipping_country: str = "Ghana"
    special_instructions: Optional[str] = None
    tracking_number: Optional[str] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None


# -----------------------------
# Analytics
# -----------------------------

class ProfileVisit(BaseModel):
    """
    Collection: "profile_visits"
    """
    profile_id: str
    visitor_id: Optional[str] = None
    device_type: Literal["mobile", "tablet", "desktop"] = "desktop"
    browser: Optional[str] = None
    os: Optional[str] = None
    referrer_url: Optional[str] = None
    referrer_domain: Optional[str] = None
    visited_at: datetime


class LinkClick(BaseModel):
    """
    Collection: "link_clicks"
    """
    profile_id: str
    link_type: Literal["social", "custom"] = "custom"
    link_label: str
    link_url: str
    platform: Optional[str] = None
    visitor_id: Optional[str] = None
    device_type: Literal["mobile", "tablet", "desktop"] = "desktop"
    clicked_at: datetime


class ProfileAnalytics(BaseModel):
    """
    Cached summary per profile
    Collection: "profile_analytics"
    """
    profile_id: str
    total_visits: int = 0
    unique_visitors: int = 0
    total_clicks: int = 0
    click_through_rate: float = 0.0


# -----------------------------
# Admin / contact
# -----------------------------

class AdminSession(BaseModel):
    """
    Collection: "admin_sessions"
    """
    token: str
    username: str
    expires_at: datetime
    is_active: bool = True


class ContactMessage(BaseModel):
    """
    Collection: "contact_messages"
    """
    reference_id: str
    name: str
    email: str
    subject: str
    message: str
    acknowledged: bool = False
    admin_notified: bool = False


# -----------------------------
# Request payloads
# -----------------------------

class ProfileSave(BaseModel):
    slug: str
    name: str = ""
    title: Optional[str] = None
    bio: Optional[str] = None
    phone: Optional[str] = None
    links: List[Link] = Field(default_factory=list)
    show_email: bool = False
    show_phone: bool = False
    use_username_instead_of_name: bool = False
    social_layout_style: LayoutStyle = "list"
    background_url: Optional[str] = None
    theme: Optional[str] = None
    avatar_url: Optional[str] = None


class OrderCreate(BaseModel):
    design_id: str
    color_scheme_id: str
    material_id: Optional[str] = None
    quantity: int = Field(1, ge=1, le=100)
    customer_first_name: str = Field(..., min_length=1)
    customer_last_name: str = Field(..., min_length=1)
    customer_email: EmailStr
    customer_phone: Optional[str] = None
    shipping_address: str = Field(..., min_length=1)
    shipping_city: str = Field(..., min_length=1)
    shipping_state: Optional[str] = None
    shipping_zip_code: Optional[str] = None
    shipping_country: str = "Ghana"
    special_instructions: Optional[str] = None

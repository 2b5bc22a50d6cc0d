"""
API Models - Pydantic models for request/response validation.

NO DICTIONARIES - All data structures are strongly typed.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class PurchaseStatus(str, Enum):
    """One-off purchase status enumeration."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not PurchaseStatus.PENDING


class SubscriptionStatus(str, Enum):
    """Subscription status enumeration (projection of the processor's state)."""

    ACTIVE = "active"
    CANCELED = "canceled"
    PAST_DUE = "past_due"


class AccessReason(str, Enum):
    """Which rule granted (or failed to grant) access to a video."""

    ADMIN = "admin"
    SUBSCRIPTION = "subscription"
    PURCHASE = "purchase"
    NONE = "none"


class ReconcileResult(str, Enum):
    """Outcome of applying one payment event to the ledger."""

    APPLIED = "applied"
    ALREADY_APPLIED = "already_applied"
    TERMINAL_CONFLICT = "terminal_conflict"
    NOT_FOUND = "not_found"
    AMOUNT_MISMATCH = "amount_mismatch"
    DUPLICATE_PAYMENT = "duplicate_payment"
    PAYMENT_FAILED = "payment_failed"
    STILL_PENDING = "still_pending"
    SUBSCRIPTION_PENDING = "subscription_pending"
    SUBSCRIPTION_UPSERTED = "subscription_upserted"
    UNRESOLVED_USER = "unresolved_user"
    INVALID_EVENT = "invalid_event"
    IGNORED = "ignored"


def _validate_email(v: str) -> str:
    v = v.strip()
    if "@" not in v or v.startswith("@") or v.endswith("@"):
        raise ValueError("email must be a valid address")
    return v


# ============================================================================
# Payment Models
# ============================================================================


class PaymentInitializeRequest(BaseModel):
    """POST /payment/initialize request body.

    Any client-supplied amount is ignored; the stored video price is charged.
    """

    video_id: UUID
    email: str = Field(..., min_length=3, max_length=255)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        """Reject obviously malformed addresses before calling the processor."""
        return _validate_email(v)


class InitializeResponse(BaseModel):
    """Response for payment and subscription initialization."""

    authorization_url: str
    reference: str
    access_code: str | None = None


class WebhookAck(BaseModel):
    """Webhook acknowledgement body."""

    received: bool = True


# ============================================================================
# Subscription Models
# ============================================================================


class SubscriptionInitializeRequest(BaseModel):
    """POST /subscription/initialize request body."""

    email: str | None = Field(None, min_length=3, max_length=255)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str | None) -> str | None:
        return None if v is None else _validate_email(v)


class SubscriptionResponse(BaseModel):
    """A subscription row as exposed to its owner."""

    plan_code: str
    status: SubscriptionStatus
    current_period_start: datetime
    current_period_end: datetime | None
    is_valid: bool


class SubscriptionListResponse(BaseModel):
    """GET /subscription/me response."""

    subscriptions: list[SubscriptionResponse]


class ProcessorPlanItem(BaseModel):
    """Plan as reported by the processor."""

    plan_code: str
    name: str
    amount_minor: int
    interval: str
    status: str | None = None


class PlanConfigurationResponse(BaseModel):
    """GET /subscription/verify-plan response."""

    configured_plan_code: str | None
    plan_found: bool
    configured_plan: ProcessorPlanItem | None
    all_plans: list[ProcessorPlanItem]
    api_key_mode: str


# ============================================================================
# Video / Access Models
# ============================================================================


class VideoAccessResponse(BaseModel):
    """GET /videos/{video_id}/access response.

    video_url is only populated when access is granted.
    """

    video_id: UUID
    title: str
    price_minor: int
    has_access: bool
    reason: AccessReason
    video_url: str | None = None


class PurchasedVideoItem(BaseModel):
    """A successfully purchased video in the buyer's library."""

    video_id: UUID
    title: str
    thumbnail_url: str | None
    amount_paid_minor: int
    processor_reference: str
    purchased_at: datetime


class PurchasedVideoListResponse(BaseModel):
    """GET /me/purchases response."""

    purchases: list[PurchasedVideoItem]
    total: int


# ============================================================================
# Health Models
# ============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    database: str
    timestamp: str


class ErrorDetail(BaseModel):
    """Error body returned by the initialize endpoints."""

    error: str

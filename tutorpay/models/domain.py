"""
Domain Models - Internal business logic models using dataclasses.

NO DICTIONARIES - All data structures are strongly typed immutable dataclasses.
"""

import secrets
from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import UUID

from tutorpay.models.api import AccessReason, PurchaseStatus, ReconcileResult, SubscriptionStatus

REFERENCE_PREFIX = "TXN_"


def mint_reference(user_id: UUID, now: datetime | None = None) -> str:
    """
    Mint a fresh payment reference.

    Format: TXN_<epoch-ms>_<user fragment>_<random hex>. The random suffix keeps
    two initializations by the same user in the same millisecond distinct.
    """
    moment = now or datetime.now(UTC)
    epoch_ms = int(moment.timestamp() * 1000)
    return f"{REFERENCE_PREFIX}{epoch_ms}_{str(user_id)[:8]}_{secrets.token_hex(4)}"


@dataclass(frozen=True)
class CurrentUser:
    """Authenticated caller as issued by the identity provider."""

    user_id: UUID
    email: str | None
    is_admin: bool = False


@dataclass(frozen=True)
class UserProfileData:
    """Identity-store profile mirror."""

    user_id: UUID
    email: str
    full_name: str | None
    is_admin: bool


@dataclass(frozen=True)
class VideoData:
    """Immutable video snapshot. Price is in minor units."""

    video_id: UUID
    title: str
    description: str
    video_url: str
    price_minor: int
    thumbnail_url: str | None = None
    duration_seconds: int | None = None
    category: str | None = None


@dataclass(frozen=True)
class PurchaseData:
    """Immutable purchase ledger row."""

    purchase_id: UUID
    user_id: UUID
    video_id: UUID
    amount_paid_minor: int
    processor_reference: str
    status: PurchaseStatus
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class PurchasedVideo:
    """A successful purchase joined with the video it unlocked."""

    purchase: PurchaseData
    video: VideoData


@dataclass(frozen=True)
class PendingPurchaseIntent:
    """Domain model for a pending purchase before persistence."""

    user_id: UUID
    video_id: UUID
    amount_paid_minor: int
    processor_reference: str

    def __post_init__(self) -> None:
        """Validate purchase intent constraints."""
        if self.amount_paid_minor <= 0:
            raise ValueError(f"Purchase amount must be positive: {self.amount_paid_minor}")
        if not self.processor_reference.startswith(REFERENCE_PREFIX):
            raise ValueError(f"Invalid processor reference: {self.processor_reference}")


@dataclass(frozen=True)
class SubscriptionData:
    """Immutable subscription ledger row."""

    subscription_id: UUID
    user_id: UUID
    plan_code: str
    status: SubscriptionStatus
    processor_customer_id: str | None
    processor_subscription_code: str | None
    current_period_start: datetime
    current_period_end: datetime | None
    created_at: datetime
    updated_at: datetime

    def is_valid_at(self, now: datetime) -> bool:
        """Active and not past its period end (open-ended when no end is known)."""
        if self.status is not SubscriptionStatus.ACTIVE:
            return False
        return self.current_period_end is None or self.current_period_end >= now


@dataclass(frozen=True)
class SubscriptionUpsert:
    """Projection of one subscription lifecycle event, keyed by (user_id, plan_code)."""

    user_id: UUID
    plan_code: str
    status: SubscriptionStatus
    processor_customer_id: str | None
    processor_subscription_code: str | None
    current_period_start: datetime
    current_period_end: datetime | None
    event_type: str

    def __post_init__(self) -> None:
        if not self.plan_code:
            raise ValueError("plan_code cannot be empty")


# ============================================================================
# Processor Models
# ============================================================================


@dataclass(frozen=True)
class InitializeResult:
    """Checkout session created at the processor."""

    authorization_url: str
    reference: str
    access_code: str | None = None


@dataclass(frozen=True)
class ProcessorPaymentRecord:
    """Processor's view of a transaction, as returned by verify."""

    reference: str
    status: str
    amount_minor: int
    customer_email: str | None
    metadata_user_id: str | None
    metadata_video_id: str | None
    is_subscription: bool = False
    paid_at: datetime | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == "success"


@dataclass(frozen=True)
class ProcessorPlan:
    """Subscription plan held by the processor."""

    plan_code: str
    name: str
    amount_minor: int
    interval: str
    status: str | None = None


@dataclass(frozen=True)
class PlanConfigurationReport:
    """Diagnostic view of the configured subscription plan."""

    configured_plan_code: str | None
    configured_plan: ProcessorPlan | None
    all_plans: list[ProcessorPlan] = field(default_factory=list)
    api_key_mode: str = "UNKNOWN"

    @property
    def plan_found(self) -> bool:
        return self.configured_plan is not None


# ============================================================================
# Reconciliation / Access Models
# ============================================================================


@dataclass(frozen=True)
class ReconcileOutcome:
    """What happened when one payment event was applied."""

    result: ReconcileResult
    reference: str | None = None
    purchase: PurchaseData | None = None
    subscription: SubscriptionData | None = None
    detail: str | None = None

    @property
    def granted(self) -> bool:
        """True when the purchase for this event now stands at success."""
        return self.purchase is not None and self.purchase.status is PurchaseStatus.SUCCESS


@dataclass(frozen=True)
class AccessDecision:
    """Grant/deny decision and the rule that produced it."""

    granted: bool
    reason: AccessReason

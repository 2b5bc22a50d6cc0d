"""
Ledger Store - Authoritative purchase and subscription records.

NO DICTIONARIES - All operations use strongly typed domain models.

Reads and the end-user pending insert go through LedgerReader. Status
transitions, subscription upserts and the webhook audit log go through
LedgerWriter, which can only be built with a TrustedActor.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import func, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from tutorpay.db.models import Purchase, Subscription, UserProfile, Video, WebhookEventLog, utc_now
from tutorpay.exceptions import (
    DataIntegrityError,
    DuplicatePaymentError,
    DuplicateReferenceError,
)
from tutorpay.models.api import PurchaseStatus, SubscriptionStatus
from tutorpay.models.domain import (
    PendingPurchaseIntent,
    PurchaseData,
    PurchasedVideo,
    SubscriptionData,
    SubscriptionUpsert,
    UserProfileData,
    VideoData,
)

logger = get_logger(__name__)

REFERENCE_CONSTRAINT = "uq_purchases_processor_reference"
SUCCESS_INDEX = "uq_purchases_user_video_success"
SUBSCRIPTION_KEY = "uq_subscriptions_user_plan"


class TrustedActor:
    """
    Capability for mutating ledger state.

    Held by the reconciliation engine; request handlers never receive one.
    """

    __slots__ = ("name",)

    def __init__(self, name: str) -> None:
        self.name = name

    def __repr__(self) -> str:
        return f"<TrustedActor({self.name})>"


# ============================================================================
# ORM -> Domain
# ============================================================================


def video_to_domain(video: Video) -> VideoData:
    """Convert ORM video to domain model."""
    return VideoData(
        video_id=video.id,
        title=video.title,
        description=video.description,
        video_url=video.video_url,
        price_minor=video.price,
        thumbnail_url=video.thumbnail_url,
        duration_seconds=video.duration,
        category=video.category,
    )


def purchase_to_domain(purchase: Purchase) -> PurchaseData:
    """Convert ORM purchase to domain model."""
    return PurchaseData(
        purchase_id=purchase.id,
        user_id=purchase.user_id,
        video_id=purchase.video_id,
        amount_paid_minor=purchase.amount_paid,
        processor_reference=purchase.processor_reference,
        status=PurchaseStatus(purchase.status),
        created_at=purchase.created_at,
        updated_at=purchase.updated_at,
    )


def subscription_to_domain(subscription: Subscription) -> SubscriptionData:
    """Convert ORM subscription to domain model."""
    return SubscriptionData(
        subscription_id=subscription.id,
        user_id=subscription.user_id,
        plan_code=subscription.plan_code,
        status=SubscriptionStatus(subscription.status),
        processor_customer_id=subscription.processor_customer_id,
        processor_subscription_code=subscription.processor_subscription_code,
        current_period_start=subscription.current_period_start,
        current_period_end=subscription.current_period_end,
        created_at=subscription.created_at,
        updated_at=subscription.updated_at,
    )


def profile_to_domain(profile: UserProfile) -> UserProfileData:
    """Convert ORM profile to domain model."""
    return UserProfileData(
        user_id=profile.id,
        email=profile.email,
        full_name=profile.full_name,
        is_admin=profile.is_admin,
    )


def _violated_constraint(exc: IntegrityError) -> str:
    """Best-effort name of the constraint behind an IntegrityError."""
    constraint = getattr(getattr(exc.orig, "__cause__", None), "constraint_name", None)
    if constraint:
        return str(constraint)
    message = str(exc.orig)
    for name in (REFERENCE_CONSTRAINT, SUCCESS_INDEX):
        if name in message:
            return name
    return "unknown"


# ============================================================================
# Reader
# ============================================================================


class LedgerReader:
    """
    Read access to the ledger, plus the one write an end user may cause:
    inserting a pending purchase at initialize time.
    """

    def __init__(self, session: AsyncSession) -> None:
        """Initialize ledger reader with database session."""
        self.session = session

    async def get_video(self, video_id: UUID) -> VideoData | None:
        video = await self.session.get(Video, video_id)
        return video_to_domain(video) if video else None

    async def find_success_purchase(self, user_id: UUID, video_id: UUID) -> PurchaseData | None:
        """The (at most one) successful purchase of a video by a user."""
        stmt = select(Purchase).where(
            Purchase.user_id == user_id,
            Purchase.video_id == video_id,
            Purchase.status == PurchaseStatus.SUCCESS.value,
        )
        result = await self.session.execute(stmt)
        purchase = result.scalar_one_or_none()
        return purchase_to_domain(purchase) if purchase else None

    async def get_purchase_by_reference(self, reference: str) -> PurchaseData | None:
        stmt = select(Purchase).where(Purchase.processor_reference == reference)
        result = await self.session.execute(stmt)
        purchase = result.scalar_one_or_none()
        return purchase_to_domain(purchase) if purchase else None

    async def list_success_purchases(self, user_id: UUID) -> list[PurchasedVideo]:
        """Successful purchases with their videos, newest first."""
        stmt = (
            select(Purchase, Video)
            .join(Video, Purchase.video_id == Video.id)
            .where(
                Purchase.user_id == user_id,
                Purchase.status == PurchaseStatus.SUCCESS.value,
            )
            .order_by(Purchase.updated_at.desc())
        )
        result = await self.session.execute(stmt)
        return [
            PurchasedVideo(purchase=purchase_to_domain(purchase), video=video_to_domain(video))
            for purchase, video in result.all()
        ]

    async def find_valid_subscription(
        self, user_id: UUID, now: datetime, plan_code: str | None = None
    ) -> SubscriptionData | None:
        """
        An active subscription whose period hasn't ended.

        A subscription with no known period end counts as valid.
        """
        stmt = select(Subscription).where(
            Subscription.user_id == user_id,
            Subscription.status == SubscriptionStatus.ACTIVE.value,
            or_(
                Subscription.current_period_end.is_(None),
                Subscription.current_period_end >= now,
            ),
        )
        if plan_code is not None:
            stmt = stmt.where(Subscription.plan_code == plan_code)
        stmt = stmt.order_by(Subscription.current_period_end.desc().nulls_first()).limit(1)

        result = await self.session.execute(stmt)
        subscription = result.scalar_one_or_none()
        return subscription_to_domain(subscription) if subscription else None

    async def list_subscriptions(self, user_id: UUID) -> list[SubscriptionData]:
        stmt = (
            select(Subscription)
            .where(Subscription.user_id == user_id)
            .order_by(Subscription.updated_at.desc())
        )
        result = await self.session.execute(stmt)
        return [subscription_to_domain(s) for s in result.scalars().all()]

    async def get_profile(self, user_id: UUID) -> UserProfileData | None:
        profile = await self.session.get(UserProfile, user_id)
        return profile_to_domain(profile) if profile else None

    async def find_profile_by_email(self, email: str) -> UserProfileData | None:
        """Case-insensitive profile lookup by email."""
        stmt = select(UserProfile).where(func.lower(UserProfile.email) == email.strip().lower())
        result = await self.session.execute(stmt)
        profile = result.scalar_one_or_none()
        return profile_to_domain(profile) if profile else None

    async def create_pending_purchase(self, intent: PendingPurchaseIntent) -> PurchaseData:
        """
        Insert a pending purchase before the buyer is sent to the processor.

        Raises:
            DuplicateReferenceError: The reference is already in the ledger
            DataIntegrityError: Any other constraint violation
        """
        purchase = Purchase(
            user_id=intent.user_id,
            video_id=intent.video_id,
            amount_paid=intent.amount_paid_minor,
            processor_reference=intent.processor_reference,
            status=PurchaseStatus.PENDING.value,
        )
        self.session.add(purchase)

        try:
            await self.session.flush()
        except IntegrityError as e:
            await self.session.rollback()
            constraint = _violated_constraint(e)
            logger.warning(
                "pending_purchase_insert_rejected",
                reference=intent.processor_reference,
                constraint=constraint,
            )
            if constraint == REFERENCE_CONSTRAINT:
                raise DuplicateReferenceError(intent.processor_reference) from e
            raise DataIntegrityError(f"Pending purchase insert failed: {constraint}") from e

        # Re-select past the identity map to confirm the row as stored
        verified = await self.session.get(Purchase, purchase.id, populate_existing=True)
        if verified is None:
            raise DataIntegrityError(f"Purchase {purchase.id} not found after insert")
        if verified.status != PurchaseStatus.PENDING.value:
            raise DataIntegrityError(
                f"Purchase {purchase.id} inserted as {verified.status}, expected pending"
            )

        await self.session.commit()

        logger.info(
            "pending_purchase_created",
            reference=verified.processor_reference,
            user_id=str(verified.user_id),
            video_id=str(verified.video_id),
            amount_minor=verified.amount_paid,
        )
        return purchase_to_domain(verified)


# ============================================================================
# Writer
# ============================================================================


class LedgerWriter:
    """
    Ledger mutations reserved for trusted reconciliation.

    Every purchase transition is a single conditional UPDATE guarded on
    status = 'pending', so concurrent deliveries of the same event can't both
    apply it and a terminal row is never rewritten.
    """

    def __init__(self, session: AsyncSession, actor: TrustedActor) -> None:
        if not isinstance(actor, TrustedActor):
            raise TypeError("LedgerWriter requires a TrustedActor")
        self.session = session
        self.actor = actor

    async def transition_purchase(
        self, reference: str, target: PurchaseStatus
    ) -> PurchaseData | None:
        """
        Move a pending purchase to a terminal status.

        Returns:
            The updated purchase, or None when no pending row matched (unknown
            reference, or the row is already terminal)

        Raises:
            DuplicatePaymentError: Marking success would give the user a second
                successful purchase of the same video
        """
        if not target.is_terminal:
            raise ValueError(f"Cannot transition to non-terminal status {target.value}")

        stmt = (
            update(Purchase)
            .where(
                Purchase.processor_reference == reference,
                Purchase.status == PurchaseStatus.PENDING.value,
            )
            .values(status=target.value, updated_at=utc_now())
            .returning(Purchase)
            .execution_options(synchronize_session=False, populate_existing=True)
        )

        try:
            result = await self.session.execute(stmt)
            purchase = result.scalar_one_or_none()
        except IntegrityError as e:
            await self.session.rollback()
            if _violated_constraint(e) != SUCCESS_INDEX:
                raise DataIntegrityError(f"Purchase transition failed for {reference}") from e
            existing = await self._get_by_reference(reference)
            if existing is None:
                raise DataIntegrityError(f"Purchase {reference} vanished during transition") from e
            raise DuplicatePaymentError(reference, existing.user_id, existing.video_id) from e

        if purchase is None:
            await self.session.rollback()
            return None

        if purchase.status != target.value:
            await self.session.rollback()
            raise DataIntegrityError(
                f"Purchase {reference} status mismatch: expected {target.value}, got {purchase.status}"
            )

        data = purchase_to_domain(purchase)
        await self.session.commit()

        logger.info(
            "purchase_transitioned",
            reference=reference,
            status=target.value,
            actor=self.actor.name,
        )
        return data

    async def upsert_subscription(self, upsert: SubscriptionUpsert) -> SubscriptionData:
        """
        Insert or overwrite the subscription for (user_id, plan_code).

        Last write by receipt order wins.
        """
        now = utc_now()
        stmt = pg_insert(Subscription).values(
            user_id=upsert.user_id,
            plan_code=upsert.plan_code,
            status=upsert.status.value,
            processor_customer_id=upsert.processor_customer_id,
            processor_subscription_code=upsert.processor_subscription_code,
            current_period_start=upsert.current_period_start,
            current_period_end=upsert.current_period_end,
            last_event_type=upsert.event_type,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            constraint=SUBSCRIPTION_KEY,
            set_={
                "status": stmt.excluded.status,
                "processor_customer_id": func.coalesce(
                    stmt.excluded.processor_customer_id, Subscription.processor_customer_id
                ),
                "processor_subscription_code": func.coalesce(
                    stmt.excluded.processor_subscription_code,
                    Subscription.processor_subscription_code,
                ),
                "current_period_start": stmt.excluded.current_period_start,
                "current_period_end": stmt.excluded.current_period_end,
                "last_event_type": stmt.excluded.last_event_type,
                "updated_at": stmt.excluded.updated_at,
            },
        ).returning(Subscription)

        result = await self.session.execute(
            stmt, execution_options={"populate_existing": True}
        )
        subscription = result.scalar_one()

        if subscription.status != upsert.status.value:
            await self.session.rollback()
            raise DataIntegrityError(
                f"Subscription upsert mismatch for user {upsert.user_id}: "
                f"expected {upsert.status.value}, got {subscription.status}"
            )

        data = subscription_to_domain(subscription)
        await self.session.commit()

        logger.info(
            "subscription_upserted",
            user_id=str(upsert.user_id),
            plan_code=upsert.plan_code,
            status=upsert.status.value,
            event_type=upsert.event_type,
            actor=self.actor.name,
        )
        return data

    async def record_webhook_event(
        self,
        event_type: str,
        reference: str | None,
        outcome: str,
        payload: dict[str, Any],
    ) -> None:
        """Append a verified webhook and its reconciliation outcome to the audit log."""
        self.session.add(
            WebhookEventLog(
                event_type=event_type,
                reference=reference,
                outcome=outcome,
                payload=payload,
            )
        )
        await self.session.commit()

    async def _get_by_reference(self, reference: str) -> Purchase | None:
        stmt = select(Purchase).where(Purchase.processor_reference == reference)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

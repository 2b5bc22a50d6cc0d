"""
Reconciliation Engine - Turns processor events into authoritative ledger state.

NO DICTIONARIES - Events arrive as validated models, outcomes leave as typed results.

Redirect callbacks and webhooks for the same payment may arrive in any order,
more than once, or concurrently. Both funnel through the same transition rules:
  - pending is the only non-terminal purchase status
  - success and failed are terminal; reapplying one is a no-op
  - a terminal row is never moved into the other terminal status
No in-process locking is involved: the ledger's conditional update and unique
keys decide races.
"""

from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from tutorpay.config import Settings
from tutorpay.exceptions import (
    DataIntegrityError,
    DuplicatePaymentError,
    UnverifiedPaymentError,
    UpstreamError,
)
from tutorpay.models.api import PurchaseStatus, ReconcileResult, SubscriptionStatus
from tutorpay.models.domain import PurchaseData, ReconcileOutcome, SubscriptionUpsert
from tutorpay.models.events import (
    ChargeSuccessEvent,
    SubscriptionLifecycleEvent,
    UnknownEvent,
    WebhookEvent,
    event_reference,
)
from tutorpay.observability.logging import log_context
from tutorpay.observability.metrics import metrics
from tutorpay.observability.tracing import trace_operation
from tutorpay.services.gateway import ProcessorGateway
from tutorpay.services.ledger import LedgerReader, LedgerWriter, TrustedActor
from tutorpay.services.payment_processor import PaymentProcessor

logger = get_logger(__name__)

REDIRECT = "redirect"
WEBHOOK = "webhook"

_CANCELED = frozenset({"canceled", "cancelled"})
_ACTIVE = frozenset({"active", "completed"})


def map_subscription_status(raw_status: str) -> SubscriptionStatus:
    """
    Map a processor subscription status onto ours.

    canceled/cancelled -> canceled, active/completed -> active, anything else
    (non-renewing, attention, unknown) -> past_due.
    """
    status = raw_status.strip().lower()
    if status in _CANCELED:
        return SubscriptionStatus.CANCELED
    if status in _ACTIVE:
        return SubscriptionStatus.ACTIVE
    return SubscriptionStatus.PAST_DUE


class ReconciliationEngine:
    """
    Applies redirect and webhook payment events to the ledger.

    The engine holds the only TrustedActor, so it is the only component that
    can transition purchases or upsert subscriptions.
    """

    def __init__(
        self,
        gateway: ProcessorGateway,
        reader: LedgerReader,
        writer_factory: Callable[[TrustedActor], LedgerWriter],
    ) -> None:
        self.gateway = gateway
        self.reader = reader
        self._actor = TrustedActor("reconciliation_engine")
        self.writer = writer_factory(self._actor)

    @classmethod
    def for_session(
        cls, session: AsyncSession, processor: PaymentProcessor, settings: Settings
    ) -> "ReconciliationEngine":
        """Wire an engine against one database session."""
        reader = LedgerReader(session)
        return cls(
            gateway=ProcessorGateway(reader, processor, settings),
            reader=reader,
            writer_factory=lambda actor: LedgerWriter(session, actor),
        )

    # ========================================================================
    # Redirect
    # ========================================================================

    async def reconcile_by_redirect(self, reference: str) -> ReconcileOutcome:
        """
        Reconcile after the buyer returns from the processor's checkout page.

        Raises:
            UpstreamError: Processor couldn't be asked; the purchase is untouched
        """
        with log_context(reference=reference, source=REDIRECT), trace_operation(
            "reconcile_by_redirect", reference=reference
        ) as span:
            try:
                record = await self.gateway.verify_reference(reference)
            except UpstreamError as exc:
                logger.warning("redirect_verification_unavailable", error=str(exc))
                metrics.record_reconciliation(REDIRECT, "upstream_error")
                raise
            except UnverifiedPaymentError as exc:
                if exc.confirmed_failure:
                    outcome = await self._apply_terminal(reference, PurchaseStatus.FAILED, None)
                else:
                    purchase = await self.reader.get_purchase_by_reference(reference)
                    outcome = ReconcileOutcome(
                        result=ReconcileResult.STILL_PENDING,
                        reference=reference,
                        purchase=purchase,
                        detail=exc.processor_status,
                    )
                    logger.info("redirect_payment_not_settled", processor_status=exc.processor_status)
            else:
                outcome = await self._apply_terminal(
                    reference, PurchaseStatus.SUCCESS, record.amount_minor
                )
                if outcome.result is ReconcileResult.NOT_FOUND and record.is_subscription:
                    outcome = ReconcileOutcome(
                        result=ReconcileResult.SUBSCRIPTION_PENDING, reference=reference
                    )
                    logger.info("redirect_subscription_awaiting_webhook")

            span.set_attribute("result", outcome.result.value)
            metrics.record_reconciliation(REDIRECT, outcome.result.value)
            return outcome

    # ========================================================================
    # Webhook
    # ========================================================================

    async def reconcile_by_webhook(
        self, event: WebhookEvent, payload: dict[str, Any] | None = None
    ) -> ReconcileOutcome:
        """
        Apply a signature-verified, parsed webhook event.

        Every outcome, including ignored and unresolvable events, is recorded
        in the webhook audit log.
        """
        reference = event.data.reference if isinstance(event, ChargeSuccessEvent) else None
        with log_context(event_type=event.event, reference=reference, source=WEBHOOK), trace_operation(
            "reconcile_by_webhook", event_type=event.event, reference=reference
        ) as span:
            if isinstance(event, ChargeSuccessEvent):
                outcome = await self._handle_charge_success(event)
            elif isinstance(event, SubscriptionLifecycleEvent):
                outcome = await self._handle_subscription_event(event)
            else:
                outcome = ReconcileOutcome(result=ReconcileResult.IGNORED, detail=event.event)
                logger.info("webhook_event_ignored")

            await self.writer.record_webhook_event(
                event_type=event.event,
                reference=reference,
                outcome=outcome.result.value,
                payload=payload if payload is not None else event.model_dump(mode="json", by_alias=True),
            )

            span.set_attribute("result", outcome.result.value)
            metrics.record_reconciliation(WEBHOOK, outcome.result.value)
            return outcome

    async def record_invalid_event(self, payload: Any, reason: str) -> ReconcileOutcome:
        """Log and audit a verified webhook whose body didn't validate."""
        event_type = payload.get("event") if isinstance(payload, dict) else None
        reference = event_reference(payload)
        logger.warning(
            "webhook_event_invalid",
            event_type=event_type,
            reference=reference,
            reason=reason,
        )
        await self.writer.record_webhook_event(
            event_type=event_type if isinstance(event_type, str) else "unknown",
            reference=reference,
            outcome=ReconcileResult.INVALID_EVENT.value,
            payload=payload if isinstance(payload, dict) else {"body": payload},
        )
        metrics.record_reconciliation(WEBHOOK, ReconcileResult.INVALID_EVENT.value)
        return ReconcileOutcome(
            result=ReconcileResult.INVALID_EVENT, reference=reference, detail=reason
        )

    async def _handle_charge_success(self, event: ChargeSuccessEvent) -> ReconcileOutcome:
        data = event.data
        if data.status != "success":
            logger.warning("charge_event_not_successful", status=data.status)
            return ReconcileOutcome(
                result=ReconcileResult.IGNORED, reference=data.reference, detail=data.status
            )

        outcome = await self._apply_terminal(data.reference, PurchaseStatus.SUCCESS, data.amount)
        if (
            outcome.result is ReconcileResult.NOT_FOUND
            and data.metadata is not None
            and data.metadata.subscription
        ):
            # First charge of a subscription; the subscription.* event creates the row
            return ReconcileOutcome(
                result=ReconcileResult.SUBSCRIPTION_PENDING, reference=data.reference
            )
        return outcome

    async def _handle_subscription_event(self, event: SubscriptionLifecycleEvent) -> ReconcileOutcome:
        data = event.data
        metadata_user_id = data.metadata.user_id if data.metadata else None
        user_id = await self._resolve_user(metadata_user_id, data.customer.email)
        if user_id is None:
            logger.warning(
                "subscription_user_unresolved",
                metadata_user_id=metadata_user_id,
                customer_email=data.customer.email,
                plan_code=data.plan.plan_code,
            )
            return ReconcileOutcome(
                result=ReconcileResult.UNRESOLVED_USER, detail=data.plan.plan_code
            )

        subscription = await self.writer.upsert_subscription(
            SubscriptionUpsert(
                user_id=user_id,
                plan_code=data.plan.plan_code,
                status=map_subscription_status(data.status),
                processor_customer_id=data.customer.customer_code,
                processor_subscription_code=data.subscription_code,
                current_period_start=data.created_at or datetime.now(UTC),
                current_period_end=data.next_payment_date,
                event_type=event.event,
            )
        )
        return ReconcileOutcome(
            result=ReconcileResult.SUBSCRIPTION_UPSERTED, subscription=subscription
        )

    # ========================================================================
    # Shared transition rules
    # ========================================================================

    async def _apply_terminal(
        self, reference: str, target: PurchaseStatus, processor_amount_minor: int | None
    ) -> ReconcileOutcome:
        """
        Move the purchase for reference into target, idempotently.

        processor_amount_minor, when known, must cover the stored price for a
        success to be applied.
        """
        purchase = await self.reader.get_purchase_by_reference(reference)
        if purchase is None:
            logger.warning("purchase_reference_unknown", target=target.value)
            return ReconcileOutcome(result=ReconcileResult.NOT_FOUND, reference=reference)

        if purchase.status.is_terminal:
            return self._terminal_outcome(purchase, target)

        if (
            target is PurchaseStatus.SUCCESS
            and processor_amount_minor is not None
            and processor_amount_minor < purchase.amount_paid_minor
        ):
            logger.error(
                "payment_amount_mismatch",
                expected_minor=purchase.amount_paid_minor,
                reported_minor=processor_amount_minor,
            )
            return ReconcileOutcome(
                result=ReconcileResult.AMOUNT_MISMATCH, reference=reference, purchase=purchase
            )

        try:
            updated = await self.writer.transition_purchase(reference, target)
        except DuplicatePaymentError as exc:
            logger.error(
                "duplicate_payment_detected",
                user_id=str(exc.user_id),
                video_id=str(exc.video_id),
            )
            return ReconcileOutcome(
                result=ReconcileResult.DUPLICATE_PAYMENT, reference=reference, purchase=purchase
            )

        if updated is None:
            # Another delivery of this event got there first
            current = await self.reader.get_purchase_by_reference(reference)
            if current is None or not current.status.is_terminal:
                raise DataIntegrityError(
                    f"Purchase {reference} neither pending nor terminal after transition"
                )
            return self._terminal_outcome(current, target)

        result = (
            ReconcileResult.APPLIED if target is PurchaseStatus.SUCCESS else ReconcileResult.PAYMENT_FAILED
        )
        return ReconcileOutcome(result=result, reference=reference, purchase=updated)

    def _terminal_outcome(self, purchase: PurchaseData, target: PurchaseStatus) -> ReconcileOutcome:
        if purchase.status is target:
            logger.info("purchase_already_terminal", status=purchase.status.value)
            return ReconcileOutcome(
                result=ReconcileResult.ALREADY_APPLIED,
                reference=purchase.processor_reference,
                purchase=purchase,
            )

        logger.error(
            "purchase_terminal_conflict",
            current_status=purchase.status.value,
            attempted_status=target.value,
        )
        return ReconcileOutcome(
            result=ReconcileResult.TERMINAL_CONFLICT,
            reference=purchase.processor_reference,
            purchase=purchase,
        )

    async def _resolve_user(self, metadata_user_id: str | None, email: str | None) -> UUID | None:
        """Metadata user id if it names a known profile, else customer email lookup."""
        if metadata_user_id:
            try:
                candidate = UUID(metadata_user_id)
            except ValueError:
                logger.warning("metadata_user_id_malformed", metadata_user_id=metadata_user_id)
            else:
                if await self.reader.get_profile(candidate) is not None:
                    return candidate
                logger.warning("metadata_user_id_unknown", metadata_user_id=metadata_user_id)

        if email:
            profile = await self.reader.find_profile_by_email(email)
            if profile is not None:
                return profile.user_id

        return None

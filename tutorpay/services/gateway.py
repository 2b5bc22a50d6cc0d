"""
Processor Gateway - Checkout initialization and payment verification.

NO DICTIONARIES - All operations use strongly typed domain models.

The only amount ever sent to the processor is server-side state: the stored
video price, or the configured subscription amount.
"""

from datetime import UTC, datetime
from uuid import UUID

from structlog import get_logger

from tutorpay.config import Settings
from tutorpay.exceptions import (
    ActiveSubscriptionError,
    AlreadyPurchasedError,
    InvalidAmountError,
    InvalidInputError,
    MisconfiguredError,
    UnverifiedPaymentError,
    UpstreamError,
    VideoNotFoundError,
)
from tutorpay.models.domain import (
    CurrentUser,
    InitializeResult,
    PendingPurchaseIntent,
    PlanConfigurationReport,
    ProcessorPaymentRecord,
    mint_reference,
)
from tutorpay.observability.metrics import metrics
from tutorpay.observability.tracing import trace_operation
from tutorpay.services.ledger import LedgerReader
from tutorpay.services.payment_processor import CheckoutRequest, PaymentProcessor

logger = get_logger(__name__)

PLAN_CODE_PREFIX = "PLN_"


class ProcessorGateway:
    """
    Wraps the payment processor for the purchase and subscription flows.

    Initialize writes a pending purchase first, then calls the processor. If the
    processor call fails the pending row is left in place; it is harmless
    because nothing but a verified payment event can move it to success.
    """

    def __init__(self, ledger: LedgerReader, processor: PaymentProcessor, settings: Settings) -> None:
        self.ledger = ledger
        self.processor = processor
        self.settings = settings

    async def initialize_one_off(
        self, user: CurrentUser, video_id: UUID, email: str
    ) -> InitializeResult:
        """
        Start a one-off purchase of a video.

        Raises:
            InvalidInputError: Empty email
            VideoNotFoundError: Unknown video
            InvalidAmountError: Video isn't priced for sale
            AlreadyPurchasedError: User already owns the video
            DuplicateReferenceError: Minted reference collided (retry)
            UpstreamError: Processor call failed; the pending row remains
            MisconfiguredError: Processor secret missing
        """
        if not email or not email.strip():
            raise InvalidInputError("email is required")

        with trace_operation("initialize_one_off", user_id=str(user.user_id), video_id=str(video_id)):
            video = await self.ledger.get_video(video_id)
            if video is None:
                metrics.record_initialization("one_off", "video_not_found")
                raise VideoNotFoundError(video_id)

            if video.price_minor <= 0:
                metrics.record_initialization("one_off", "invalid_amount")
                raise InvalidAmountError(video.price_minor)

            existing = await self.ledger.find_success_purchase(user.user_id, video_id)
            if existing is not None:
                metrics.record_initialization("one_off", "already_purchased")
                raise AlreadyPurchasedError(user.user_id, video_id)

            reference = mint_reference(user.user_id)
            await self.ledger.create_pending_purchase(
                PendingPurchaseIntent(
                    user_id=user.user_id,
                    video_id=video_id,
                    amount_paid_minor=video.price_minor,
                    processor_reference=reference,
                )
            )

            try:
                result = await self.processor.initialize_transaction(
                    CheckoutRequest(
                        email=email.strip(),
                        amount_minor=video.price_minor,
                        reference=reference,
                        callback_url=self.settings.payment_callback_url,
                        metadata_user_id=str(user.user_id),
                        metadata_video_id=str(video_id),
                    )
                )
            except (UpstreamError, MisconfiguredError) as exc:
                logger.error(
                    "one_off_initialize_failed",
                    reference=reference,
                    video_id=str(video_id),
                    error=str(exc),
                )
                metrics.record_initialization("one_off", "processor_error")
                raise

        if result.reference != reference:
            logger.warning(
                "processor_reference_rewritten",
                expected=reference,
                returned=result.reference,
            )

        metrics.record_initialization("one_off", "success", video.price_minor)
        logger.info(
            "one_off_initialized",
            reference=reference,
            user_id=str(user.user_id),
            video_id=str(video_id),
            amount_minor=video.price_minor,
        )
        return InitializeResult(
            authorization_url=result.authorization_url,
            reference=reference,
            access_code=result.access_code,
        )

    async def initialize_subscription(self, user: CurrentUser, email: str) -> InitializeResult:
        """
        Start a subscription checkout for the configured plan.

        Never writes a subscription row; the webhook does that once the
        processor confirms.

        Raises:
            InvalidInputError: No email available
            MisconfiguredError: Plan code missing/malformed/unknown, or bad amount
            ActiveSubscriptionError: User already holds a valid subscription
            UpstreamError: Processor call failed
        """
        if not email or not email.strip():
            raise InvalidInputError("No email available for subscription")

        plan_code = self._configured_plan_code()
        amount_minor = self.settings.subscription_amount_minor
        if amount_minor <= 0:
            metrics.record_initialization("subscription", "misconfigured")
            raise MisconfiguredError(f"Invalid subscription amount configured: {amount_minor}")

        existing = await self.ledger.find_valid_subscription(
            user.user_id, datetime.now(UTC), plan_code=plan_code
        )
        if existing is not None:
            metrics.record_initialization("subscription", "already_subscribed")
            raise ActiveSubscriptionError(user.user_id, plan_code)

        with trace_operation("initialize_subscription", user_id=str(user.user_id), plan_code=plan_code):
            plan = await self.processor.fetch_plan(plan_code)
            if plan is None:
                logger.error(
                    "subscription_plan_not_found",
                    plan_code=plan_code,
                    api_key_mode=self.processor.api_key_mode,
                )
                metrics.record_initialization("subscription", "misconfigured")
                raise MisconfiguredError(
                    f'Plan "{plan_code}" not found for {self.processor.api_key_mode} API key'
                )

            reference = mint_reference(user.user_id)
            try:
                result = await self.processor.initialize_transaction(
                    CheckoutRequest(
                        email=email.strip(),
                        amount_minor=amount_minor,
                        reference=reference,
                        callback_url=self.settings.subscription_callback_url,
                        metadata_user_id=str(user.user_id),
                        is_subscription=True,
                        plan_code=plan_code,
                    )
                )
            except UpstreamError:
                metrics.record_initialization("subscription", "processor_error")
                raise

        metrics.record_initialization("subscription", "success", amount_minor)
        logger.info(
            "subscription_initialized",
            reference=result.reference,
            user_id=str(user.user_id),
            plan_code=plan_code,
            plan_interval=plan.interval,
        )
        return result

    async def verify_reference(self, reference: str) -> ProcessorPaymentRecord:
        """
        Ask the processor whether a payment succeeded.

        Raises:
            UpstreamError: Processor unreachable, timed out, or malformed answer
            UnverifiedPaymentError: Processor reports the payment not successful
        """
        record = await self.processor.verify_transaction(reference)

        if record.reference != reference:
            logger.error(
                "processor_verify_reference_mismatch",
                requested=reference,
                returned=record.reference,
            )
            raise UpstreamError(f"verify returned reference {record.reference} for {reference}")

        if not record.succeeded:
            logger.info("payment_not_successful", reference=reference, status=record.status)
            raise UnverifiedPaymentError(reference, record.status)

        return record

    async def describe_plan_configuration(self) -> PlanConfigurationReport:
        """
        Diagnostic report for the configured subscription plan.

        Raises:
            MisconfiguredError: Processor secret missing
            UpstreamError: Processor unreachable
        """
        configured = self.settings.subscription_plan_code.strip() or None
        plans = await self.processor.list_plans()
        match = next((p for p in plans if p.plan_code == configured), None) if configured else None

        return PlanConfigurationReport(
            configured_plan_code=configured,
            configured_plan=match,
            all_plans=plans,
            api_key_mode=self.processor.api_key_mode,
        )

    def _configured_plan_code(self) -> str:
        plan_code = self.settings.subscription_plan_code.strip()
        if not plan_code:
            logger.error("subscription_plan_not_configured")
            metrics.record_initialization("subscription", "misconfigured")
            raise MisconfiguredError("Subscription plan not configured")
        if not plan_code.startswith(PLAN_CODE_PREFIX):
            logger.error("subscription_plan_code_malformed", plan_code=plan_code)
            metrics.record_initialization("subscription", "misconfigured")
            raise MisconfiguredError("Invalid subscription plan configuration")
        return plan_code

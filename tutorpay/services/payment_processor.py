"""
Payment Processor Protocol - Processor-agnostic interface.

NO DICTIONARIES - All data uses strongly typed models.
"""

from dataclasses import dataclass
from typing import Protocol

from tutorpay.models.domain import InitializeResult, ProcessorPaymentRecord, ProcessorPlan


@dataclass(frozen=True)
class CheckoutRequest:
    """
    Processor-agnostic checkout request.

    Amount is in minor units and always comes from server-side state.
    """

    email: str
    amount_minor: int
    reference: str
    callback_url: str
    metadata_user_id: str
    metadata_video_id: str | None = None
    is_subscription: bool = False
    plan_code: str | None = None


class PaymentProcessor(Protocol):
    """
    Payment processor protocol.

    The gateway and reconciliation engine only talk to the processor through
    this interface, so tests can swap in a fake without touching HTTP.
    """

    @property
    def api_key_mode(self) -> str:
        """TEST, LIVE or UNKNOWN, derived from the configured secret."""
        ...

    async def initialize_transaction(self, request: CheckoutRequest) -> InitializeResult:
        """
        Create a hosted checkout session.

        Raises:
            UpstreamError: Processor unreachable, timed out, or rejected the request
            MisconfiguredError: No secret key configured
        """
        ...

    async def verify_transaction(self, reference: str) -> ProcessorPaymentRecord:
        """
        Fetch the processor's authoritative view of a transaction.

        Raises:
            UpstreamError: Processor unreachable, timed out, or returned garbage
        """
        ...

    async def fetch_plan(self, plan_code: str) -> ProcessorPlan | None:
        """
        Look up a subscription plan.

        Returns:
            The plan, or None when the processor doesn't know the code
        """
        ...

    async def list_plans(self) -> list[ProcessorPlan]:
        """List every plan on the processor account."""
        ...

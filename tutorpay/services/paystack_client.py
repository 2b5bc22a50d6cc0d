"""
Paystack Payment Processor Implementation.

NO DICTIONARIES - Responses are validated into typed models before use.

Uses the Paystack REST API:
https://paystack.com/docs/api/
"""

import time
from typing import Any

import httpx
from pydantic import ValidationError
from structlog import get_logger

from tutorpay.config import Settings
from tutorpay.exceptions import MisconfiguredError, UpstreamError
from tutorpay.models.domain import InitializeResult, ProcessorPaymentRecord, ProcessorPlan
from tutorpay.models.paystack import InitializeData, PaystackEnvelope, PlanData, VerifyData
from tutorpay.observability.metrics import metrics
from tutorpay.services.payment_processor import CheckoutRequest

logger = get_logger(__name__)


def api_key_mode(secret_key: str) -> str:
    """Classify a Paystack secret key as TEST, LIVE or UNKNOWN."""
    if secret_key.startswith("sk_test_"):
        return "TEST"
    if secret_key.startswith("sk_live_"):
        return "LIVE"
    return "UNKNOWN"


def _plan_from_wire(plan: PlanData) -> ProcessorPlan:
    return ProcessorPlan(
        plan_code=plan.plan_code,
        name=plan.name,
        amount_minor=plan.amount,
        interval=plan.interval,
        status=plan.status,
    )


class PaystackClient:
    """
    Paystack API client.

    Implements the PaymentProcessor protocol. Every call is bounded by the
    configured timeout; connection failures are retried by the transport.
    Nothing here ever reports a payment as failed because of a transport
    problem: those surface as UpstreamError.
    """

    def __init__(
        self,
        secret_key: str,
        base_url: str = "https://api.paystack.co",
        timeout_seconds: float = 8.0,
        connect_retries: int = 2,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.secret_key = secret_key.strip()
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.connect_retries = connect_retries
        self._http_client = http_client

    @classmethod
    def from_settings(cls, settings: Settings) -> "PaystackClient":
        """Build a client from application settings."""
        return cls(
            secret_key=settings.paystack_secret_key,
            base_url=settings.paystack_base_url,
            timeout_seconds=settings.processor_timeout_seconds,
            connect_retries=settings.processor_connect_retries,
        )

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Get HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout_seconds),
                transport=httpx.AsyncHTTPTransport(retries=self.connect_retries),
            )
        return self._http_client

    @property
    def api_key_mode(self) -> str:
        return api_key_mode(self.secret_key)

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
    ) -> tuple[int, PaystackEnvelope]:
        """
        Make an authenticated request and decode the response envelope.

        Returns:
            (HTTP status code, decoded envelope). Non-2xx responses that still
            carry a valid envelope are returned so callers can tell "not found"
            apart from an outage.

        Raises:
            MisconfiguredError: No secret key, or the processor rejected it
            UpstreamError: Timeout, transport failure, 5xx, or undecodable body
        """
        if not self.secret_key:
            raise MisconfiguredError("PAYSTACK_SECRET_KEY is not configured")

        headers = {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json",
        }
        started = time.perf_counter()
        success = False
        try:
            try:
                response = await self.http_client.request(
                    method,
                    f"{self.base_url}{path}",
                    headers=headers,
                    json=json,
                    timeout=self.timeout_seconds,
                )
            except httpx.TimeoutException as exc:
                logger.warning("paystack_request_timeout", operation=operation, path=path)
                raise UpstreamError(f"{operation} timed out") from exc
            except httpx.HTTPError as exc:
                logger.warning(
                    "paystack_transport_error",
                    operation=operation,
                    path=path,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                raise UpstreamError(f"{operation} transport failure: {exc}") from exc

            if response.status_code == 401:
                logger.error("paystack_credentials_rejected", operation=operation)
                raise MisconfiguredError("Paystack rejected the configured secret key")

            if response.status_code >= 500:
                logger.error(
                    "paystack_server_error",
                    operation=operation,
                    status=response.status_code,
                )
                raise UpstreamError(f"{operation} returned HTTP {response.status_code}")

            try:
                envelope = PaystackEnvelope.model_validate(response.json())
            except (ValueError, ValidationError) as exc:
                logger.error(
                    "paystack_malformed_response",
                    operation=operation,
                    status=response.status_code,
                )
                raise UpstreamError(f"{operation} returned a malformed response") from exc

            success = True
            return response.status_code, envelope
        finally:
            metrics.record_processor_call(operation, success, time.perf_counter() - started)

    async def initialize_transaction(self, request: CheckoutRequest) -> InitializeResult:
        """
        Create a hosted checkout session (POST /transaction/initialize).

        Raises:
            UpstreamError: Processor unreachable or refused to initialize
            MisconfiguredError: No usable secret key
        """
        metadata: dict[str, Any] = {"user_id": request.metadata_user_id}
        if request.metadata_video_id is not None:
            metadata["video_id"] = request.metadata_video_id
        if request.is_subscription:
            metadata["subscription"] = True

        body: dict[str, Any] = {
            "email": request.email,
            "amount": request.amount_minor,
            "reference": request.reference,
            "callback_url": request.callback_url,
            "metadata": metadata,
        }
        if request.plan_code:
            body["plan"] = request.plan_code

        logger.info(
            "initializing_paystack_transaction",
            reference=request.reference,
            amount_minor=request.amount_minor,
            is_subscription=request.is_subscription,
        )

        _, envelope = await self._request(
            "initialize_transaction", "POST", "/transaction/initialize", json=body
        )
        if not envelope.status:
            logger.error(
                "paystack_initialize_rejected",
                reference=request.reference,
                message=envelope.message,
            )
            raise UpstreamError(envelope.message or "initialization rejected")

        try:
            data = InitializeData.model_validate(envelope.data)
        except ValidationError as exc:
            raise UpstreamError("initialize response missing authorization_url") from exc

        logger.info(
            "paystack_transaction_initialized",
            reference=data.reference,
        )
        return InitializeResult(
            authorization_url=data.authorization_url,
            reference=data.reference,
            access_code=data.access_code,
        )

    async def verify_transaction(self, reference: str) -> ProcessorPaymentRecord:
        """
        Fetch a transaction's status (GET /transaction/verify/{reference}).

        Raises:
            UpstreamError: Processor unreachable, unknown reference, or malformed data
        """
        _, envelope = await self._request(
            "verify_transaction", "GET", f"/transaction/verify/{reference}"
        )
        if not envelope.status:
            logger.warning(
                "paystack_verify_rejected",
                reference=reference,
                message=envelope.message,
            )
            raise UpstreamError(envelope.message or "verification rejected")

        try:
            data = VerifyData.model_validate(envelope.data)
        except ValidationError as exc:
            logger.error("paystack_verify_malformed", reference=reference)
            raise UpstreamError("verify response failed validation") from exc

        metadata = data.metadata
        return ProcessorPaymentRecord(
            reference=data.reference,
            status=data.status,
            amount_minor=data.amount,
            customer_email=data.customer.email,
            metadata_user_id=metadata.user_id if metadata else None,
            metadata_video_id=metadata.video_id if metadata else None,
            is_subscription=metadata.subscription if metadata else False,
            paid_at=data.paid_at,
        )

    async def fetch_plan(self, plan_code: str) -> ProcessorPlan | None:
        """
        Look up one plan (GET /plan/{code}).

        Returns:
            The plan, or None when Paystack reports it unknown
        """
        status_code, envelope = await self._request("fetch_plan", "GET", f"/plan/{plan_code}")
        if not envelope.status:
            logger.warning(
                "paystack_plan_not_found",
                plan_code=plan_code,
                status=status_code,
                message=envelope.message,
            )
            return None

        try:
            return _plan_from_wire(PlanData.model_validate(envelope.data))
        except ValidationError as exc:
            raise UpstreamError("plan response failed validation") from exc

    async def list_plans(self) -> list[ProcessorPlan]:
        """List plans on the account (GET /plan)."""
        _, envelope = await self._request("list_plans", "GET", "/plan")
        if not envelope.status:
            raise UpstreamError(envelope.message or "failed to list plans")
        if not isinstance(envelope.data, list):
            raise UpstreamError("plan list response is not a list")

        try:
            return [_plan_from_wire(PlanData.model_validate(item)) for item in envelope.data]
        except ValidationError as exc:
            raise UpstreamError("plan list entry failed validation") from exc

"""
Payment Routes - One-off video purchase endpoints.

NO DICTIONARIES - All requests/responses use Pydantic models.
"""

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse, RedirectResponse
from structlog import get_logger

from tutorpay.api.dependencies import get_gateway, get_reconciliation_engine, require_user
from tutorpay.api.errors import error_response
from tutorpay.api.webhooks import process_webhook
from tutorpay.config import settings
from tutorpay.exceptions import PlatformError, UpstreamError
from tutorpay.models.api import (
    ErrorDetail,
    InitializeResponse,
    PaymentInitializeRequest,
    PurchaseStatus,
    ReconcileResult,
    WebhookAck,
)
from tutorpay.models.domain import CurrentUser, ReconcileOutcome
from tutorpay.services.gateway import ProcessorGateway
from tutorpay.services.reconciliation import ReconciliationEngine

logger = get_logger(__name__)
router = APIRouter(tags=["payment"])


_ERROR_TAGS: dict[ReconcileResult, str] = {
    ReconcileResult.STILL_PENDING: "payment_pending",
    ReconcileResult.NOT_FOUND: "unknown_reference",
    ReconcileResult.AMOUNT_MISMATCH: "amount_mismatch",
    ReconcileResult.PAYMENT_FAILED: "payment_failed",
}


def _app_redirect(path: str) -> RedirectResponse:
    return RedirectResponse(
        url=f"{settings.app_url.rstrip('/')}{path}",
        status_code=status.HTTP_303_SEE_OTHER,
    )


def redirect_path_for(outcome: ReconcileOutcome) -> str:
    """Where to send the buyer after a redirect reconciliation."""
    if outcome.result is ReconcileResult.SUBSCRIPTION_PENDING:
        return "/dashboard?payment=subscription_success"

    purchase = outcome.purchase
    if purchase is not None and outcome.result not in _ERROR_TAGS:
        if purchase.status is PurchaseStatus.SUCCESS:
            return f"/videos/{purchase.video_id}?payment=success"
        if purchase.status is PurchaseStatus.FAILED:
            return "/dashboard?error=payment_failed"

    if outcome.result is ReconcileResult.DUPLICATE_PAYMENT and purchase is not None:
        # The buyer already owns the video through an earlier purchase
        return f"/videos/{purchase.video_id}?payment=success"

    tag = _ERROR_TAGS.get(outcome.result)
    if tag is not None:
        return f"/dashboard?error={tag}"
    return "/dashboard?payment=success"


@router.post(
    "/payment/initialize",
    response_model=InitializeResponse,
    responses={
        400: {"model": ErrorDetail},
        404: {"model": ErrorDetail},
        409: {"model": ErrorDetail},
        502: {"model": ErrorDetail},
    },
)
async def initialize_payment(
    request: PaymentInitializeRequest,
    user: CurrentUser = Depends(require_user),
    gateway: ProcessorGateway = Depends(get_gateway),
) -> InitializeResponse | JSONResponse:
    """
    Start a one-off purchase of a video.

    The amount charged is the stored video price; the client never supplies it.
    A pending purchase is recorded before the processor is called.
    """
    try:
        result = await gateway.initialize_one_off(user, request.video_id, request.email)
    except PlatformError as exc:
        logger.warning(
            "payment_initialize_rejected",
            user_id=str(user.user_id),
            video_id=str(request.video_id),
            error_type=type(exc).__name__,
            error=str(exc),
        )
        return error_response(exc)

    return InitializeResponse(
        authorization_url=result.authorization_url,
        reference=result.reference,
        access_code=result.access_code,
    )


@router.get("/payment/verify", status_code=status.HTTP_303_SEE_OTHER)
async def verify_payment(
    reference: str | None = Query(None),
    trxref: str | None = Query(None),
    engine: ReconciliationEngine = Depends(get_reconciliation_engine),
) -> RedirectResponse:
    """
    Processor redirect target after checkout.

    Verifies the payment with the processor, reconciles the ledger, and sends
    the buyer to the video page or to the dashboard with an error tag.
    """
    reference = (reference or trxref or "").strip()
    if not reference:
        logger.warning("payment_verify_missing_reference")
        return _app_redirect("/dashboard?error=invalid_reference")

    try:
        outcome = await engine.reconcile_by_redirect(reference)
    except UpstreamError:
        return _app_redirect("/dashboard?error=verification_unavailable")
    except PlatformError as exc:
        logger.error(
            "payment_verify_failed",
            reference=reference,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        return _app_redirect("/dashboard?error=verification_failed")
    except Exception as exc:
        # Verify always answers with a redirect
        logger.error(
            "payment_verify_unexpected_error",
            reference=reference,
            error_type=type(exc).__name__,
            error=str(exc),
            exc_info=True,
        )
        return _app_redirect("/dashboard?error=verification_failed")

    return _app_redirect(redirect_path_for(outcome))


@router.post("/payment/webhook", response_model=WebhookAck)
async def payment_webhook(
    request: Request,
    engine: ReconciliationEngine = Depends(get_reconciliation_engine),
) -> WebhookAck:
    """Processor webhook for one-off charges. Signature-gated."""
    return await process_webhook(request, engine, endpoint="payment")

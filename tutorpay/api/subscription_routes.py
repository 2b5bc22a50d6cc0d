"""
Subscription Routes - Recurring plan checkout and lifecycle webhooks.

NO DICTIONARIES - All requests/responses use Pydantic models.
"""

from datetime import UTC, datetime

from fastapi import APIRouter, Body, Depends, Request
from fastapi.responses import JSONResponse
from structlog import get_logger

from tutorpay.api.dependencies import (
    get_gateway,
    get_ledger_reader,
    get_reconciliation_engine,
    require_admin,
    require_user,
)
from tutorpay.api.errors import error_response
from tutorpay.api.webhooks import process_webhook
from tutorpay.exceptions import InvalidInputError, PlatformError
from tutorpay.models.api import (
    ErrorDetail,
    InitializeResponse,
    PlanConfigurationResponse,
    ProcessorPlanItem,
    SubscriptionInitializeRequest,
    SubscriptionListResponse,
    SubscriptionResponse,
    WebhookAck,
)
from tutorpay.models.domain import CurrentUser, ProcessorPlan
from tutorpay.services.gateway import ProcessorGateway
from tutorpay.services.ledger import LedgerReader
from tutorpay.services.reconciliation import ReconciliationEngine

logger = get_logger(__name__)
router = APIRouter(prefix="/subscription", tags=["subscription"])


def _plan_item(plan: ProcessorPlan) -> ProcessorPlanItem:
    return ProcessorPlanItem(
        plan_code=plan.plan_code,
        name=plan.name,
        amount_minor=plan.amount_minor,
        interval=plan.interval,
        status=plan.status,
    )


@router.post(
    "/initialize",
    response_model=InitializeResponse,
    responses={
        400: {"model": ErrorDetail},
        409: {"model": ErrorDetail},
        500: {"model": ErrorDetail},
        502: {"model": ErrorDetail},
    },
)
async def initialize_subscription(
    request: SubscriptionInitializeRequest | None = Body(None),
    user: CurrentUser = Depends(require_user),
    gateway: ProcessorGateway = Depends(get_gateway),
) -> InitializeResponse | JSONResponse:
    """
    Start a checkout for the configured subscription plan.

    Email falls back to the identity provider's address when not supplied.
    The subscription row is only created once the processor's webhook arrives.
    """
    email = (request.email if request else None) or user.email

    try:
        if not email:
            raise InvalidInputError("No email available for subscription")
        result = await gateway.initialize_subscription(user, email)
    except PlatformError as exc:
        logger.warning(
            "subscription_initialize_rejected",
            user_id=str(user.user_id),
            error_type=type(exc).__name__,
            error=str(exc),
        )
        return error_response(exc)

    return InitializeResponse(
        authorization_url=result.authorization_url,
        reference=result.reference,
        access_code=result.access_code,
    )


@router.post("/webhook", response_model=WebhookAck)
async def subscription_webhook(
    request: Request,
    engine: ReconciliationEngine = Depends(get_reconciliation_engine),
) -> WebhookAck:
    """Processor webhook for subscription lifecycle events. Signature-gated."""
    return await process_webhook(request, engine, endpoint="subscription")


@router.get(
    "/verify-plan",
    response_model=PlanConfigurationResponse,
    responses={500: {"model": ErrorDetail}, 502: {"model": ErrorDetail}},
)
async def verify_plan_configuration(
    _admin: CurrentUser = Depends(require_admin),
    gateway: ProcessorGateway = Depends(get_gateway),
) -> PlanConfigurationResponse | JSONResponse:
    """
    Diagnose the subscription plan setup.

    Lists every processor plan and whether the configured code is among them,
    along with whether the secret key is a TEST or LIVE key.
    """
    try:
        report = await gateway.describe_plan_configuration()
    except PlatformError as exc:
        logger.error("plan_configuration_check_failed", error=str(exc))
        return error_response(exc)

    return PlanConfigurationResponse(
        configured_plan_code=report.configured_plan_code,
        plan_found=report.plan_found,
        configured_plan=_plan_item(report.configured_plan) if report.configured_plan else None,
        all_plans=[_plan_item(p) for p in report.all_plans],
        api_key_mode=report.api_key_mode,
    )


@router.get("/me", response_model=SubscriptionListResponse)
async def my_subscriptions(
    user: CurrentUser = Depends(require_user),
    ledger: LedgerReader = Depends(get_ledger_reader),
) -> SubscriptionListResponse:
    """The caller's subscriptions, most recently updated first."""
    now = datetime.now(UTC)
    subscriptions = await ledger.list_subscriptions(user.user_id)
    return SubscriptionListResponse(
        subscriptions=[
            SubscriptionResponse(
                plan_code=s.plan_code,
                status=s.status,
                current_period_start=s.current_period_start,
                current_period_end=s.current_period_end,
                is_valid=s.is_valid_at(now),
            )
            for s in subscriptions
        ]
    )

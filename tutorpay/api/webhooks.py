"""
Webhook Intake - Signature gate, parse, reconcile, acknowledge.

Shared by the payment and subscription webhook endpoints. Acknowledgement
rules:
  - signature missing or wrong -> 400, nothing parsed or written
  - body isn't JSON -> 400
  - known event that fails validation -> recorded and acknowledged
  - misconfiguration or an internal fault -> 500 so the processor retries
  - everything else -> {"received": true}
"""

import json

from fastapi import HTTPException, Request, status
from structlog import get_logger

from tutorpay.config import settings
from tutorpay.exceptions import InvalidInputError, InvalidSignatureError, MisconfiguredError
from tutorpay.models.api import WebhookAck
from tutorpay.models.events import parse_webhook_event
from tutorpay.observability.metrics import metrics
from tutorpay.services.reconciliation import ReconciliationEngine
from tutorpay.services.signature import SIGNATURE_HEADER, require_valid_signature

logger = get_logger(__name__)


async def process_webhook(
    request: Request, engine: ReconciliationEngine, endpoint: str
) -> WebhookAck:
    """Run one webhook delivery through the intake rules above."""
    raw_body = await request.body()

    try:
        require_valid_signature(
            raw_body, request.headers.get(SIGNATURE_HEADER), settings.paystack_secret_key
        )
    except MisconfiguredError as exc:
        metrics.record_webhook_rejection("misconfigured")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook secret not configured",
        ) from exc
    except InvalidSignatureError as exc:
        metrics.record_webhook_rejection("invalid_signature")
        logger.warning("webhook_rejected_signature", endpoint=endpoint)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid signature",
        ) from exc

    try:
        payload = json.loads(raw_body)
    except ValueError as exc:
        metrics.record_webhook_rejection("invalid_json")
        logger.warning("webhook_rejected_json", endpoint=endpoint)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid JSON body",
        ) from exc

    try:
        try:
            event = parse_webhook_event(payload)
        except InvalidInputError as exc:
            await engine.record_invalid_event(payload, exc.message)
            return WebhookAck()

        outcome = await engine.reconcile_by_webhook(event, payload)
        logger.info(
            "webhook_processed",
            endpoint=endpoint,
            event_type=event.event,
            result=outcome.result.value,
        )
        return WebhookAck()

    except Exception as exc:
        metrics.record_error(type(exc).__name__, "webhook")
        logger.error(
            "webhook_processing_failed",
            endpoint=endpoint,
            error=str(exc),
            exc_info=True,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook processing failed",
        ) from exc

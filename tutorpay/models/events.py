"""
Processor Webhook Events - Tagged union keyed by the payload's "event" field.

Payloads are validated here, after the signature gate and before dispatch.
Unknown event types parse into UnknownEvent so they can be acknowledged.
"""

import json
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, StrictInt, ValidationError, field_validator

from tutorpay.exceptions import InvalidInputError

CHARGE_SUCCESS = "charge.success"
SUBSCRIPTION_EVENTS = frozenset(
    {
        "subscription.create",
        "subscription.enable",
        "subscription.disable",
        "subscription.not_renew",
    }
)


class _ProcessorModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class EventCustomer(_ProcessorModel):
    """Customer block shared by charge and subscription payloads."""

    email: str | None = None
    customer_code: str | None = None


class EventMetadata(_ProcessorModel):
    """Metadata we attach at initialize time and get back on events."""

    user_id: str | None = None
    video_id: str | None = None
    subscription: bool = False


def coerce_metadata(v: Any) -> Any:
    # Paystack sends "" when nothing was stored, and sometimes a JSON-encoded object
    if isinstance(v, str):
        try:
            v = json.loads(v)
        except ValueError:
            return None
    if isinstance(v, dict):
        return v
    return None


class ChargeEventData(_ProcessorModel):
    reference: str = Field(..., min_length=1)
    status: str
    amount: StrictInt | None = None
    customer: EventCustomer = Field(default_factory=EventCustomer)
    metadata: EventMetadata | None = None

    @field_validator("metadata", mode="before")
    @classmethod
    def normalize_metadata(cls, v: Any) -> Any:
        return coerce_metadata(v)


class ChargeSuccessEvent(_ProcessorModel):
    """charge.success - a one-off (or first subscription) charge settled."""

    event: Literal["charge.success"]
    data: ChargeEventData


class EventPlan(_ProcessorModel):
    plan_code: str = Field(..., min_length=1)


class SubscriptionEventData(_ProcessorModel):
    subscription_code: str | None = None
    status: str
    created_at: datetime | None = Field(None, alias="createdAt")
    next_payment_date: datetime | None = None
    plan: EventPlan
    customer: EventCustomer = Field(default_factory=EventCustomer)
    metadata: EventMetadata | None = None

    @field_validator("metadata", mode="before")
    @classmethod
    def normalize_metadata(cls, v: Any) -> Any:
        return coerce_metadata(v)


class SubscriptionLifecycleEvent(_ProcessorModel):
    """subscription.* - the processor's subscription state changed."""

    event: Literal[
        "subscription.create",
        "subscription.enable",
        "subscription.disable",
        "subscription.not_renew",
    ]
    data: SubscriptionEventData


class UnknownEvent(_ProcessorModel):
    """Any event type we don't reconcile."""

    event: str
    data: dict[str, Any] = Field(default_factory=dict)


WebhookEvent = ChargeSuccessEvent | SubscriptionLifecycleEvent | UnknownEvent


def parse_webhook_event(payload: Any) -> WebhookEvent:
    """
    Validate a decoded webhook body into the event union.

    Raises:
        InvalidInputError: Body isn't an event envelope, or a known event type
            is missing required fields
    """
    if not isinstance(payload, dict) or not isinstance(payload.get("event"), str):
        raise InvalidInputError("webhook body is not an event envelope")

    event_type: str = payload["event"]
    try:
        if event_type == CHARGE_SUCCESS:
            return ChargeSuccessEvent.model_validate(payload)
        if event_type in SUBSCRIPTION_EVENTS:
            return SubscriptionLifecycleEvent.model_validate(payload)
    except ValidationError as exc:
        raise InvalidInputError(
            f"{event_type} payload failed validation: {exc.error_count()} error(s)"
        ) from exc

    data = payload.get("data")
    return UnknownEvent(event=event_type, data=data if isinstance(data, dict) else {})


def event_reference(payload: Any) -> str | None:
    """Best-effort reference extraction for logging events that failed validation."""
    if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
        reference = payload["data"].get("reference")
        return reference if isinstance(reference, str) else None
    return None

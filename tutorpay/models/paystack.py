"""
Paystack wire models - Response shapes for the processor's REST API.

Every Paystack response is wrapped in {"status": bool, "message": str, "data": ...}.
Amounts are integers in the currency's minor unit (kobo, pesewas).
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictInt, field_validator

from tutorpay.models.events import EventCustomer, EventMetadata, coerce_metadata


class _WireModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class PaystackEnvelope(_WireModel):
    """Top-level response wrapper."""

    status: bool
    message: str = ""
    data: Any = None


class InitializeData(_WireModel):
    """data block of POST /transaction/initialize."""

    authorization_url: str = Field(..., min_length=1)
    access_code: str | None = None
    reference: str = Field(..., min_length=1)


class VerifyData(_WireModel):
    """data block of GET /transaction/verify/{reference}."""

    reference: str
    status: str
    amount: StrictInt
    paid_at: datetime | None = None
    customer: EventCustomer = Field(default_factory=EventCustomer)
    metadata: EventMetadata | None = None

    @field_validator("metadata", mode="before")
    @classmethod
    def normalize_metadata(cls, v: Any) -> Any:
        return coerce_metadata(v)


class PlanData(_WireModel):
    """A plan object from GET /plan or GET /plan/{code}."""

    plan_code: str
    name: str = ""
    amount: StrictInt = 0
    interval: str = ""
    status: str | None = None

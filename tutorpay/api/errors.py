"""
Error Responses - Maps domain exceptions onto HTTP status codes.

Initialize endpoints answer synchronously with {"error": message}.
"""

from fastapi import status
from fastapi.responses import JSONResponse

from tutorpay.exceptions import (
    ConflictError,
    DataIntegrityError,
    DuplicateReferenceError,
    InvalidAmountError,
    InvalidInputError,
    MisconfiguredError,
    NotFoundError,
    PlatformError,
    UnauthorizedError,
    UpstreamError,
)
from tutorpay.models.api import ErrorDetail

_STATUS_BY_ERROR: tuple[tuple[type[PlatformError], int], ...] = (
    (InvalidInputError, status.HTTP_400_BAD_REQUEST),
    (InvalidAmountError, status.HTTP_400_BAD_REQUEST),
    (UnauthorizedError, status.HTTP_401_UNAUTHORIZED),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (DuplicateReferenceError, status.HTTP_409_CONFLICT),
    (UpstreamError, status.HTTP_502_BAD_GATEWAY),
    (MisconfiguredError, status.HTTP_500_INTERNAL_SERVER_ERROR),
    (DataIntegrityError, status.HTTP_500_INTERNAL_SERVER_ERROR),
)


def status_for(exc: PlatformError) -> int:
    """HTTP status for a domain error; unmapped errors are 500."""
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def public_message(exc: PlatformError) -> str:
    """Message safe to show the caller. Internal faults are not described."""
    if isinstance(exc, MisconfiguredError):
        return "Payment configuration error"
    if isinstance(exc, DataIntegrityError):
        return "Internal server error"
    if isinstance(exc, UpstreamError):
        return "Payment processor unavailable, please try again"
    return getattr(exc, "message", None) or str(exc)


def error_response(exc: PlatformError) -> JSONResponse:
    """Build the {"error": message} response for a domain error."""
    return JSONResponse(
        status_code=status_for(exc),
        content=ErrorDetail(error=public_message(exc)).model_dump(),
    )

"""
FastAPI Dependencies - Authentication and service wiring.

NO DICTIONARIES - All dependencies return typed objects.
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from tutorpay.config import settings
from tutorpay.db.session import get_read_db, get_write_db
from tutorpay.exceptions import MisconfiguredError, UnauthorizedError
from tutorpay.models.domain import CurrentUser
from tutorpay.services.access import AccessResolver
from tutorpay.services.gateway import ProcessorGateway
from tutorpay.services.identity import IdentityService
from tutorpay.services.ledger import LedgerReader
from tutorpay.services.paystack_client import PaystackClient
from tutorpay.services.reconciliation import ReconciliationEngine

logger = get_logger(__name__)

# Bearer token scheme for identity-provider JWTs
bearer_scheme = HTTPBearer(auto_error=False)

_processor: PaystackClient | None = None


# ============================================================================
# Authentication
# ============================================================================


async def get_current_user_optional(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_write_db),
) -> CurrentUser | None:
    """
    Resolve the caller from `Authorization: Bearer <jwt>`, if present.

    Raises:
        HTTPException 401 if a token is present but invalid
        HTTPException 500 if the identity secret isn't configured
    """
    if credentials is None:
        return None

    identity = IdentityService(
        LedgerReader(db),
        jwt_secret=settings.identity_jwt_secret,
        audience=settings.identity_jwt_audience,
    )
    try:
        return await identity.authenticate(credentials.credentials)
    except UnauthorizedError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=exc.message,
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc
    except MisconfiguredError as exc:
        logger.error("identity_not_configured", error=str(exc))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Server misconfiguration: identity provider not configured",
        ) from exc


async def require_user(
    user: CurrentUser | None = Depends(get_current_user_optional),
) -> CurrentUser:
    """
    Require an authenticated caller.

    Usage:
        @router.post("/payment/initialize")
        async def initialize(user: CurrentUser = Depends(require_user)):
            ...
    """
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


async def require_admin(user: CurrentUser = Depends(require_user)) -> CurrentUser:
    """Require an authenticated caller whose profile is flagged admin."""
    if not user.is_admin:
        logger.warning("admin_required", user_id=str(user.user_id))
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user


# ============================================================================
# Services
# ============================================================================


def get_payment_processor() -> PaystackClient:
    """Process-wide Paystack client (connection pool shared across requests)."""
    global _processor
    if _processor is None:
        _processor = PaystackClient.from_settings(settings)
    return _processor


async def close_payment_processor() -> None:
    """Close the shared Paystack client (for graceful shutdown)."""
    global _processor
    if _processor is not None:
        await _processor.close()
        _processor = None


def get_gateway(
    db: AsyncSession = Depends(get_write_db),
    processor: PaystackClient = Depends(get_payment_processor),
) -> ProcessorGateway:
    """Gateway bound to the primary database (initialize inserts a pending row)."""
    return ProcessorGateway(LedgerReader(db), processor, settings)


def get_reconciliation_engine(
    db: AsyncSession = Depends(get_write_db),
    processor: PaystackClient = Depends(get_payment_processor),
) -> ReconciliationEngine:
    """Reconciliation engine bound to the primary database."""
    return ReconciliationEngine.for_session(db, processor, settings)


def get_ledger_reader(db: AsyncSession = Depends(get_read_db)) -> LedgerReader:
    """Read-only ledger access."""
    return LedgerReader(db)


def get_access_resolver(db: AsyncSession = Depends(get_write_db)) -> AccessResolver:
    """
    Access resolver bound to the primary database.

    A purchase confirmed moments ago must grant access on the next request,
    so access never reads from a lagging replica.
    """
    return AccessResolver(LedgerReader(db))

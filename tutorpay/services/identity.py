"""
Identity Service - Resolves bearer tokens into authenticated users.

The identity provider issues HS256 JWTs whose `sub` is the user's UUID and
whose `email` claim is the sign-in address. The admin flag is never trusted
from the token; it comes from the profiles mirror.
"""

from typing import Any
from uuid import UUID

import jwt
from structlog import get_logger

from tutorpay.exceptions import MisconfiguredError, UnauthorizedError
from tutorpay.models.domain import CurrentUser
from tutorpay.services.ledger import LedgerReader

logger = get_logger(__name__)

JWT_ALGORITHM = "HS256"


class IdentityService:
    """Bearer token verification against the identity provider's shared secret."""

    def __init__(self, ledger: LedgerReader, jwt_secret: str, audience: str | None = None) -> None:
        self.ledger = ledger
        self.jwt_secret = jwt_secret
        self.audience = audience

    def decode_token(self, token: str) -> dict[str, Any]:
        """
        Verify signature and expiry, returning the claims.

        Raises:
            MisconfiguredError: No signing secret configured
            UnauthorizedError: Token expired, malformed, or signed with another key
        """
        if not self.jwt_secret:
            raise MisconfiguredError("IDENTITY_JWT_SECRET is not configured")

        try:
            claims: dict[str, Any] = jwt.decode(
                token,
                self.jwt_secret,
                algorithms=[JWT_ALGORITHM],
                audience=self.audience,
                options={"require": ["sub"], "verify_aud": self.audience is not None},
            )
        except jwt.ExpiredSignatureError as e:
            logger.warning("jwt_token_expired")
            raise UnauthorizedError("Token expired") from e
        except jwt.InvalidTokenError as e:
            logger.warning("jwt_token_invalid", error=str(e))
            raise UnauthorizedError("Invalid token") from e
        return claims

    async def authenticate(self, token: str) -> CurrentUser:
        """
        Resolve a bearer token into the calling user.

        Raises:
            MisconfiguredError: No signing secret configured
            UnauthorizedError: Token invalid, or sub isn't a UUID
        """
        claims = self.decode_token(token)

        try:
            user_id = UUID(str(claims["sub"]))
        except ValueError as e:
            logger.warning("jwt_subject_not_uuid")
            raise UnauthorizedError("Invalid token subject") from e

        email = claims.get("email")
        profile = await self.ledger.get_profile(user_id)

        return CurrentUser(
            user_id=user_id,
            email=email if isinstance(email, str) and email else (profile.email if profile else None),
            is_admin=profile is not None and profile.is_admin,
        )

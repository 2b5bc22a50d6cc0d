"""
Webhook Signature Verifier.

Paystack signs every webhook with HMAC-SHA512 over the raw request body,
keyed with the account's secret key, and sends the hex digest in the
x-paystack-signature header. Bodies are parsed only after this gate.
"""

import hashlib
import hmac

from structlog import get_logger

from tutorpay.exceptions import InvalidSignatureError, MisconfiguredError

logger = get_logger(__name__)

SIGNATURE_HEADER = "x-paystack-signature"


def compute_signature(raw_body: bytes, secret: str) -> str:
    """Hex HMAC-SHA512 digest of raw_body under secret."""
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha512).hexdigest()


def verify_signature(raw_body: bytes, signature_header: str | None, secret: str) -> bool:
    """
    Check a webhook signature in constant time.

    Returns False for a missing header or an empty secret; never raises.
    """
    if not signature_header or not secret:
        return False
    expected = compute_signature(raw_body, secret).encode("ascii")
    received = signature_header.strip().lower().encode("utf-8", errors="replace")
    return hmac.compare_digest(expected, received)


def require_valid_signature(raw_body: bytes, signature_header: str | None, secret: str) -> None:
    """
    Gate a webhook body on its signature.

    Raises:
        MisconfiguredError: No signing secret configured
        InvalidSignatureError: Header missing or digest mismatch
    """
    if not secret:
        logger.error("webhook_secret_not_configured")
        raise MisconfiguredError("PAYSTACK_SECRET_KEY is not configured")

    if not signature_header:
        logger.warning("webhook_signature_missing", body_bytes=len(raw_body))
        raise InvalidSignatureError("Missing webhook signature")

    if not verify_signature(raw_body, signature_header, secret):
        logger.warning("webhook_signature_mismatch", body_bytes=len(raw_body))
        raise InvalidSignatureError()

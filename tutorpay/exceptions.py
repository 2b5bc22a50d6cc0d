"""
Exception Classes - Strongly typed exception hierarchy.

NO DICTIONARIES - All exceptions have typed attributes.
"""

from uuid import UUID


class PlatformError(Exception):
    """Base exception for all payment and access errors."""

    pass


class InvalidInputError(PlatformError):
    """Raised when a request is missing fields or carries malformed data."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Invalid input: {message}")


class UnauthorizedError(PlatformError):
    """Raised when no authenticated identity is available."""

    def __init__(self, message: str = "Authentication required") -> None:
        self.message = message
        super().__init__(message)


class ConflictError(PlatformError):
    """Raised when the request would duplicate something the user already has."""

    pass


class AlreadyPurchasedError(ConflictError):
    """Raised when a successful purchase already exists for (user, video)."""

    def __init__(self, user_id: UUID, video_id: UUID) -> None:
        self.user_id = user_id
        self.video_id = video_id
        super().__init__("You have already purchased this video")


class ActiveSubscriptionError(ConflictError):
    """Raised when the user already holds an unexpired active subscription."""

    def __init__(self, user_id: UUID, plan_code: str) -> None:
        self.user_id = user_id
        self.plan_code = plan_code
        super().__init__("You already have an active subscription")


class NotFoundError(PlatformError):
    """Raised when a referenced record doesn't exist."""

    pass


class VideoNotFoundError(NotFoundError):
    """Raised when a video doesn't exist."""

    def __init__(self, video_id: UUID) -> None:
        self.video_id = video_id
        super().__init__(f"Video not found: {video_id}")


class ReferenceNotFoundError(NotFoundError):
    """Raised when no purchase matches a processor reference."""

    def __init__(self, reference: str) -> None:
        self.reference = reference
        super().__init__(f"No purchase for reference: {reference}")


class InvalidAmountError(PlatformError):
    """Raised when a video cannot be sold at its stored price."""

    def __init__(self, amount_minor: int) -> None:
        self.amount_minor = amount_minor
        super().__init__(f"Invalid amount: {amount_minor}")


class DuplicateReferenceError(PlatformError):
    """Raised when a minted reference collides with an existing ledger row.

    Retry with a freshly minted reference; never reuse the colliding one.
    """

    def __init__(self, reference: str) -> None:
        self.reference = reference
        super().__init__(f"Duplicate payment reference: {reference}")


class UpstreamError(PlatformError):
    """Raised when the payment processor is unreachable or answers garbage.

    Retriable. Never evidence that a payment failed.
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Payment processor error: {message}")


class UnverifiedPaymentError(PlatformError):
    """Raised when the processor reports a transaction as not successful."""

    def __init__(self, reference: str, processor_status: str) -> None:
        self.reference = reference
        self.processor_status = processor_status
        super().__init__(f"Payment {reference} not successful: {processor_status}")

    @property
    def confirmed_failure(self) -> bool:
        """The processor positively reported failure (as opposed to abandoned/ongoing)."""
        return self.processor_status == "failed"


class InvalidSignatureError(PlatformError):
    """Raised when a webhook signature doesn't match its body."""

    def __init__(self, message: str = "Invalid webhook signature") -> None:
        self.message = message
        super().__init__(message)


class MisconfiguredError(PlatformError):
    """Raised when secrets or plan configuration are missing or invalid."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Configuration error: {message}")


class DataIntegrityError(PlatformError):
    """Raised when data integrity constraint violated."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Data integrity error: {message}")


class DuplicatePaymentError(DataIntegrityError):
    """Raised when a second successful payment lands for an already-owned video.

    The buyer paid twice through two pending purchases; the later one stays
    pending for manual follow-up.
    """

    def __init__(self, reference: str, user_id: UUID, video_id: UUID) -> None:
        self.reference = reference
        self.user_id = user_id
        self.video_id = video_id
        super().__init__(
            f"Purchase {reference} would be a second success for user {user_id}, video {video_id}"
        )

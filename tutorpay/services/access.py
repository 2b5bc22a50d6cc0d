"""
Access Resolver - Decides whether a user may watch a video.

Read-only over the ledger. Rules short-circuit in order:
1. admin
2. active subscription whose period hasn't ended (open-ended counts)
3. successful purchase of this video
"""

from datetime import UTC, datetime
from uuid import UUID

from structlog import get_logger

from tutorpay.models.api import AccessReason
from tutorpay.models.domain import AccessDecision, CurrentUser
from tutorpay.observability.metrics import metrics
from tutorpay.services.ledger import LedgerReader

logger = get_logger(__name__)


class AccessResolver:
    """Computes access grants from ledger state."""

    def __init__(self, ledger: LedgerReader) -> None:
        self.ledger = ledger

    async def has_access(self, user_id: UUID, video_id: UUID) -> bool:
        """True if any access rule grants user_id the video."""
        profile = await self.ledger.get_profile(user_id)
        decision = await self._decide(
            user_id, video_id, is_admin=profile is not None and profile.is_admin
        )
        return decision.granted

    async def resolve(
        self, user: CurrentUser, video_id: UUID, now: datetime | None = None
    ) -> AccessDecision:
        """Decision plus the rule that produced it, for an already-authenticated caller."""
        decision = await self._decide(user.user_id, video_id, is_admin=user.is_admin, now=now)
        logger.debug(
            "access_resolved",
            user_id=str(user.user_id),
            video_id=str(video_id),
            granted=decision.granted,
            reason=decision.reason.value,
        )
        return decision

    async def _decide(
        self,
        user_id: UUID,
        video_id: UUID,
        is_admin: bool,
        now: datetime | None = None,
    ) -> AccessDecision:
        if is_admin:
            decision = AccessDecision(granted=True, reason=AccessReason.ADMIN)
        elif await self.ledger.find_valid_subscription(user_id, now or datetime.now(UTC)):
            decision = AccessDecision(granted=True, reason=AccessReason.SUBSCRIPTION)
        elif await self.ledger.find_success_purchase(user_id, video_id):
            decision = AccessDecision(granted=True, reason=AccessReason.PURCHASE)
        else:
            decision = AccessDecision(granted=False, reason=AccessReason.NONE)

        metrics.record_access_decision(decision.granted, decision.reason.value)
        return decision

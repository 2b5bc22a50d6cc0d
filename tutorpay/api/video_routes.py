"""
Video Routes - Access checks and the buyer's library.

NO DICTIONARIES - All responses use Pydantic models.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status

from tutorpay.api.dependencies import get_access_resolver, get_ledger_reader, require_user
from tutorpay.models.api import PurchasedVideoItem, PurchasedVideoListResponse, VideoAccessResponse
from tutorpay.models.domain import CurrentUser
from tutorpay.services.access import AccessResolver
from tutorpay.services.ledger import LedgerReader

router = APIRouter(tags=["videos"])


@router.get("/videos/{video_id}/access", response_model=VideoAccessResponse)
async def video_access(
    video_id: UUID,
    user: CurrentUser = Depends(require_user),
    ledger: LedgerReader = Depends(get_ledger_reader),
    resolver: AccessResolver = Depends(get_access_resolver),
) -> VideoAccessResponse:
    """
    Whether the caller may watch a video.

    The playable URL is only included when access is granted.
    """
    video = await ledger.get_video(video_id)
    if video is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Video not found",
        )

    decision = await resolver.resolve(user, video_id)
    return VideoAccessResponse(
        video_id=video.video_id,
        title=video.title,
        price_minor=video.price_minor,
        has_access=decision.granted,
        reason=decision.reason,
        video_url=video.video_url if decision.granted else None,
    )


@router.get("/me/purchases", response_model=PurchasedVideoListResponse)
async def my_purchases(
    user: CurrentUser = Depends(require_user),
    ledger: LedgerReader = Depends(get_ledger_reader),
) -> PurchasedVideoListResponse:
    """Videos the caller has bought, newest first."""
    owned = await ledger.list_success_purchases(user.user_id)
    return PurchasedVideoListResponse(
        purchases=[
            PurchasedVideoItem(
                video_id=item.video.video_id,
                title=item.video.title,
                thumbnail_url=item.video.thumbnail_url,
                amount_paid_minor=item.purchase.amount_paid_minor,
                processor_reference=item.purchase.processor_reference,
                purchased_at=item.purchase.updated_at,
            )
            for item in owned
        ],
        total=len(owned),
    )

"""
Progress snapshot endpoints.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from incentives.api.deps import get_db, get_current_user, require_role, http_error_for
from incentives.models.db import User
from incentives.models.db.enums import UserRole
from incentives.models.schemas.base import ResponseBase
from incentives.services import campaign_service
from incentives.services.errors import IncentiveError
from incentives.services.progress_snapshot import seller_snapshot
from incentives.utils import get_logger

router = APIRouter()
logger = get_logger(__name__)


@router.get(
    "/campaigns/{campaign_id}/me",
    response_model=ResponseBase,
    summary="My progress in a campaign"
)
async def my_progress(
    campaign_id: int,
    seller: User = Depends(require_role([UserRole.SELLER])),
    db: Session = Depends(get_db)
) -> ResponseBase:
    try:
        campaign = campaign_service.get_visible_campaign(db, campaign_id, seller)
    except IncentiveError as e:
        raise http_error_for(e)
    return ResponseBase(data=seller_snapshot(db, campaign, seller.id))


@router.get(
    "/campaigns/{campaign_id}/sellers/{seller_id}",
    response_model=ResponseBase,
    summary="A seller's progress in a campaign",
    description="Admins can read any seller; managers only the sellers they manage"
)
async def seller_progress(
    campaign_id: int,
    seller_id: int,
    current_user: User = Depends(require_role([UserRole.ADMIN, UserRole.MANAGER])),
    db: Session = Depends(get_db)
) -> ResponseBase:
    seller = db.get(User, seller_id)
    if seller is None or seller.role != UserRole.SELLER:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Seller {seller_id} not found")
    if current_user.role == UserRole.MANAGER and seller.manager_id != current_user.id:
        logger.warning(
            "Access denied: seller not managed by requester",
            user_id=current_user.id,
            seller_id=seller_id
        )
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Seller is not on your team")
    try:
        campaign = campaign_service.get_visible_campaign(db, campaign_id, seller)
    except IncentiveError as e:
        raise http_error_for(e)
    return ResponseBase(data=seller_snapshot(db, campaign, seller.id))

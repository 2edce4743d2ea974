"""
Redemption endpoints: sellers spend coins on prizes; admins ship or cancel.
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session
from incentives.api.deps import get_db, get_current_user, get_pagination_params, require_admin, require_role, http_error_for
from incentives.models.db import User
from incentives.models.db.enums import RedemptionStatus, UserRole
from incentives.models.schemas.redemptions import RedemptionCancel, RedemptionCreate, RedemptionRead
from incentives.services import redemption_service
from incentives.services.errors import IncentiveError
from incentives.utils import get_logger

router = APIRouter()
logger = get_logger(__name__)


@router.post(
    "/",
    response_model=RedemptionRead,
    status_code=201,
    summary="Redeem coins for a prize"
)
def request_redemption(
    payload: RedemptionCreate,
    request: Request,
    seller: User = Depends(require_role([UserRole.SELLER])),
    db: Session = Depends(get_db)
) -> RedemptionRead:
    request_id = request.headers.get("X-Request-ID", "unknown")
    try:
        redemption = redemption_service.request_redemption(db, seller.id, payload.prize_id)
    except IncentiveError as e:
        logger.warning(
            "Redemption refused",
            seller_id=seller.id,
            prize_id=payload.prize_id,
            error=str(e),
            request_id=request_id
        )
        raise http_error_for(e)
    return RedemptionRead.model_validate(redemption)


@router.get(
    "/",
    response_model=List[RedemptionRead],
    summary="List redemptions",
    description="Sellers see their own redemptions; admins see all and may filter"
)
async def list_redemptions(
    status_filter: Optional[RedemptionStatus] = Query(None, alias="status"),
    seller_id: Optional[int] = Query(None),
    pagination: dict = Depends(get_pagination_params),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> List[RedemptionRead]:
    if current_user.role != UserRole.ADMIN:
        seller_id = current_user.id
    redemptions = redemption_service.list_redemptions(
        db, seller_id=seller_id, status=status_filter, **pagination
    )
    return [RedemptionRead.model_validate(r) for r in redemptions]


@router.post(
    "/{redemption_id}/send",
    response_model=RedemptionRead,
    summary="Mark redemption as sent"
)
def send_redemption(
    redemption_id: int,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
) -> RedemptionRead:
    try:
        redemption = redemption_service.mark_sent(db, redemption_id)
    except IncentiveError as e:
        raise http_error_for(e)
    return RedemptionRead.model_validate(redemption)


@router.post(
    "/{redemption_id}/cancel",
    response_model=RedemptionRead,
    summary="Cancel redemption and refund coins"
)
def cancel_redemption(
    redemption_id: int,
    payload: RedemptionCancel,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
) -> RedemptionRead:
    try:
        redemption = redemption_service.cancel_redemption(db, redemption_id, payload.reason)
    except IncentiveError as e:
        raise http_error_for(e)
    return RedemptionRead.model_validate(redemption)

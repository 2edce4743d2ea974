"""
Leaderboard endpoints.
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from incentives.api.deps import get_db, get_current_user, get_pagination_params, require_admin, require_role, http_error_for
from incentives.models.db import User
from incentives.models.db.enums import UserRole
from incentives.models.schemas.base import ResponseBase
from incentives.models.schemas.ranking import OpticianStandingRead, RankingPageRead
from incentives.services import ranking_service
from incentives.services.errors import IncentiveError

router = APIRouter()


@router.get(
    "/",
    response_model=RankingPageRead,
    summary="Seller leaderboard",
    description=(
        "Sellers see their own store by coins; managers see their store and its branches, "
        "admins every seller, both by real-currency points. optician_id narrows the admin view."
    )
)
async def seller_leaderboard(
    optician_id: Optional[int] = Query(None, gt=0),
    pagination: dict = Depends(get_pagination_params),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> RankingPageRead:
    try:
        page = ranking_service.seller_ranking(db, current_user, optician_id=optician_id, **pagination)
    except IncentiveError as e:
        raise http_error_for(e)
    return RankingPageRead.model_validate(page)


@router.get(
    "/me",
    response_model=ResponseBase,
    summary="My position",
    description="Coin position of the authenticated seller inside their store"
)
async def my_position(
    seller: User = Depends(require_role([UserRole.SELLER])),
    db: Session = Depends(get_db)
) -> ResponseBase:
    position = ranking_service.seller_position(db, seller)
    return ResponseBase(
        message="Ranking position",
        data={"position": position, "ranking_coins": seller.ranking_coins, "optician_id": seller.optician_id},
    )


@router.get(
    "/opticians",
    response_model=List[OpticianStandingRead],
    summary="Optician leaderboard",
    description="Real-currency totals per store with branches folded into their head office"
)
async def optician_leaderboard(
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
) -> List[OpticianStandingRead]:
    return [OpticianStandingRead.model_validate(s) for s in ranking_service.optician_ranking(db)]

"""
Prize catalog endpoints.
"""
from typing import List
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from incentives.api.deps import get_db, get_current_user, require_admin
from incentives.models.db import Prize, User
from incentives.models.schemas.redemptions import PrizeCreate, PrizeRead
from incentives.utils import get_logger, log_business_event

router = APIRouter()
logger = get_logger(__name__)


@router.post(
    "/",
    response_model=PrizeRead,
    status_code=status.HTTP_201_CREATED,
    summary="Add prize to catalog"
)
async def create_prize(
    prize_data: PrizeCreate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
) -> PrizeRead:
    prize = Prize(**prize_data.model_dump())
    db.add(prize)
    db.commit()
    db.refresh(prize)
    log_business_event(
        event_type="prize_created",
        details={"prize_id": prize.id, "coin_cost": prize.coin_cost, "stock": prize.stock},
        user_id=admin.id
    )
    return PrizeRead.model_validate(prize)


@router.get(
    "/",
    response_model=List[PrizeRead],
    summary="List active prizes"
)
async def list_prizes(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> List[PrizeRead]:
    prizes = db.query(Prize).filter(Prize.is_active.is_(True)).order_by(Prize.coin_cost, Prize.id).all()
    return [PrizeRead.model_validate(p) for p in prizes]

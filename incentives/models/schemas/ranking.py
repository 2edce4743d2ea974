"""
Pydantic schemas for seller and optician leaderboards.
"""
from decimal import Decimal
from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict


class RankingEntryRead(BaseModel):
    position: int
    seller_id: int
    name: str
    optician_id: Optional[int]
    ranking_coins: int
    ranking_real: Decimal

    model_config = ConfigDict(from_attributes=True)


class RankingPageRead(BaseModel):
    metric: Literal["coins", "real"]
    visible: bool
    total: int
    limit: int
    offset: int
    entries: List[RankingEntryRead]

    model_config = ConfigDict(from_attributes=True)


class OpticianStandingRead(BaseModel):
    optician_id: int
    name: str
    total_real: Decimal
    seller_count: int
    branches: List["OpticianStandingRead"] = []

    model_config = ConfigDict(from_attributes=True)

"""
Pydantic schemas for the prize catalog and redemptions.
"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict
from ..db.enums import RedemptionStatus


class PrizeCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    coin_cost: int = Field(gt=0)
    stock: int = Field(0, ge=0)


class PrizeRead(BaseModel):
    id: int
    name: str
    description: Optional[str]
    coin_cost: int
    stock: int
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class RedemptionCreate(BaseModel):
    prize_id: int = Field(gt=0)


class RedemptionCancel(BaseModel):
    reason: str = Field(min_length=1, max_length=1000)


class RedemptionRead(BaseModel):
    id: int
    seller_id: int
    prize_id: int
    coin_cost: int
    status: RedemptionStatus
    cancel_reason: Optional[str]
    requested_at: datetime
    sent_at: Optional[datetime]
    cancelled_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)

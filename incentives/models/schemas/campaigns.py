"""
Pydantic schemas for campaigns, their card tree and special events.

Request schemas only check shape and types. Business rules (lengths,
economy, period, auto-replication, event windows) are checked by the
definition validators so that every violation is reported at once.
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from pydantic import BaseModel, Field, ConfigDict
from ..db.enums import CampaignStatus, CardMode, ConditionField, ConditionOperator, IncrementType, UnitKind


class ConditionCreate(BaseModel):
    field: ConditionField
    operator: ConditionOperator
    value: str


class RequirementCreate(BaseModel):
    description: str
    quantity: int
    unit: UnitKind = UnitKind.UNIT
    ordem: int = 1
    conditions: List[ConditionCreate] = Field(default_factory=list)


class CardCreate(BaseModel):
    number: int
    description: str
    requirements: List[RequirementCreate] = Field(default_factory=list)


class SpecialEventCreate(BaseModel):
    name: str
    description: Optional[str] = None
    multiplier: Decimal
    start_at: datetime
    end_at: datetime
    active: bool = True
    highlight_color: Optional[str] = None

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "name": "Black Friday",
            "multiplier": "2.0",
            "start_at": "2026-11-27T00:00:00",
            "end_at": "2026-11-28T00:00:00",
            "highlight_color": "#000000"
        }
    })


class SpecialEventUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    multiplier: Optional[Decimal] = None
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    highlight_color: Optional[str] = None


class EventToggle(BaseModel):
    active: bool


class CampaignCreate(BaseModel):
    title: str
    description: str
    start_at: datetime
    end_at: datetime
    coin_reward: int
    real_reward: Decimal
    manager_commission: Decimal = Decimal("0")
    all_opticians: bool = True
    target_optician_ids: List[int] = Field(default_factory=list)
    card_mode: CardMode = CardMode.MANUAL
    increment_type: IncrementType = IncrementType.NONE
    increment_factor: Optional[int] = None
    card_ceiling: Optional[int] = None
    image_url: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    rules: Optional[str] = None
    cards: List[CardCreate] = Field(default_factory=list)
    events: List[SpecialEventCreate] = Field(default_factory=list)

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "title": "Campanha Lentes Premium",
            "description": "Venda lentes premium e ganhe moedas a cada cartela completa.",
            "start_at": "2026-11-01T00:00:00",
            "end_at": "2026-12-31T23:59:00",
            "coin_reward": 2500,
            "real_reward": "1500.00",
            "manager_commission": "0.15",
            "all_opticians": True,
            "card_mode": "MANUAL",
            "cards": [{
                "number": 1,
                "description": "Cartela 1",
                "requirements": [{
                    "description": "Lentes BlueProtect",
                    "quantity": 5,
                    "unit": "PAR",
                    "ordem": 1,
                    "conditions": [{"field": "NOME_PRODUTO", "operator": "CONTEM", "value": "blueprotect"}]
                }]
            }]
        }
    })


class ConditionRead(BaseModel):
    id: int
    field: ConditionField
    operator: ConditionOperator
    value: str

    model_config = ConfigDict(from_attributes=True)


class RequirementRead(BaseModel):
    id: int
    description: str
    quantity: int
    unit: UnitKind
    ordem: int
    conditions: List[ConditionRead]

    model_config = ConfigDict(from_attributes=True)


class CardRead(BaseModel):
    id: int
    number: int
    description: str
    requirements: List[RequirementRead]

    model_config = ConfigDict(from_attributes=True)


class SpecialEventRead(BaseModel):
    id: int
    campaign_id: int
    name: str
    description: Optional[str]
    multiplier: Decimal
    start_at: datetime
    end_at: datetime
    active: bool
    highlight_color: str
    state: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class CampaignRead(BaseModel):
    id: int
    title: str
    description: str
    start_at: datetime
    end_at: datetime
    coin_reward: int
    real_reward: Decimal
    manager_commission: Decimal
    all_opticians: bool
    card_mode: CardMode
    increment_type: IncrementType
    increment_factor: Optional[int]
    card_ceiling: Optional[int]
    image_url: Optional[str]
    tags: Optional[List[str]] = None
    rules: Optional[str]
    status: CampaignStatus
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class CampaignReadWithRelations(CampaignRead):
    cards: List[CardRead] = []
    events: List[SpecialEventRead] = []
    target_optician_ids: List[int] = []

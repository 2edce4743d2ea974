"""
Pydantic schemas for users and opticians.
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field, EmailStr, ConfigDict, field_validator
from ..db.enums import UserRole


class OpticianCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    cnpj: str = Field(min_length=14, max_length=18)
    parent_id: Optional[int] = Field(None, gt=0, description="Head office this branch belongs to")
    ranking_visible_to_sellers: bool = True

    model_config = ConfigDict(json_schema_extra={
        "example": {"name": "Ótica Centro", "cnpj": "12.345.678/0001-90", "parent_id": None, "ranking_visible_to_sellers": True}
    })


class OpticianRead(BaseModel):
    id: int
    name: str
    cnpj: str
    parent_id: Optional[int]
    is_active: bool
    ranking_visible_to_sellers: bool

    model_config = ConfigDict(from_attributes=True)


class UserCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    email: EmailStr
    role: UserRole
    optician_id: Optional[int] = Field(None, gt=0)
    manager_id: Optional[int] = Field(None, gt=0)

    @field_validator('manager_id')
    @classmethod
    def validate_manager_id(cls, v, info):
        role = info.data.get('role')
        if v is not None and role != UserRole.SELLER:
            raise ValueError('manager_id is only allowed for VENDEDOR users')
        return v

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "name": "Maria Souza",
            "email": "maria@otica.com.br",
            "role": "VENDEDOR",
            "optician_id": 1,
            "manager_id": 2
        }
    })


class UserRead(BaseModel):
    id: int
    name: str
    email: str
    is_active: bool
    role: UserRole
    optician_id: Optional[int]
    manager_id: Optional[int]
    coin_balance: int
    ranking_coins: int
    ranking_real: Decimal
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class UserCreated(UserRead):
    """Returned once at creation; the only time the API key is shown."""
    api_key: Optional[str]

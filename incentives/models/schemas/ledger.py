"""
Pydantic schemas for the financial ledger.
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from pydantic import BaseModel, Field, ConfigDict
from ..db.enums import LedgerEntryType, LedgerStatus


class LedgerEntryRead(BaseModel):
    id: int
    beneficiary_id: int
    origin_seller_id: int
    campaign_id: int
    card_number: int
    entry_type: LedgerEntryType
    amount: Decimal
    status: LedgerStatus
    notes: Optional[str]
    generated_at: datetime
    paid_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


class LedgerPay(BaseModel):
    notes: Optional[str] = Field(None, max_length=1000)


class LedgerBulkPay(BaseModel):
    entry_ids: List[int] = Field(min_length=1, max_length=500)
    notes: Optional[str] = Field(None, max_length=1000)


class LedgerKpis(BaseModel):
    pending_total: Decimal
    pending_count: int
    paid_last_window_total: Decimal
    window_days: int

"""
Pydantic schemas for sale-line submission.
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict


class SaleLineSubmit(BaseModel):
    """One validated line of a sale, attributed to a seller within a campaign."""
    seller_id: int = Field(gt=0)
    campaign_id: int = Field(gt=0)
    product_name: Optional[str] = Field(None, max_length=300)
    product_code: Optional[str] = Field(None, max_length=100)
    product_category: Optional[str] = Field(None, max_length=100)
    sale_value: Optional[Decimal] = Field(None, ge=0)
    quantity: int = Field(1, ge=1, le=10_000)
    order_number: Optional[str] = Field(None, max_length=100)
    preferred_ordem: Optional[int] = Field(None, ge=1)
    sold_at: Optional[datetime] = None

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "seller_id": 7,
            "campaign_id": 1,
            "product_name": "Lente BlueProtect 1.67",
            "product_code": "BP-167",
            "product_category": "LENTES",
            "sale_value": "890.00",
            "quantity": 2,
            "order_number": "PED-2026-0001"
        }
    })

from __future__ import annotations
"""SQLAlchemy model for processed sale lines (audit of what each line credited)."""
from decimal import Decimal
from sqlalchemy import Integer, String, Text, DateTime, Numeric, Enum, ForeignKey, JSON, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func
from incentives.database import Base
from .enums import SaleOutcome


class SaleRecord(Base):
    __tablename__ = "sale_records"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    seller_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    campaign_id: Mapped[int] = mapped_column(Integer, ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False, index=True)
    order_number: Mapped[str | None] = mapped_column(String, nullable=True, index=True)

    product_name: Mapped[str | None] = mapped_column(String, nullable=True)
    product_code: Mapped[str | None] = mapped_column(String, nullable=True)
    product_category: Mapped[str | None] = mapped_column(String, nullable=True)
    sale_value: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    preferred_ordem: Mapped[int | None] = mapped_column(Integer, nullable=True)

    outcome: Mapped[SaleOutcome] = mapped_column(Enum(SaleOutcome), nullable=False, index=True)
    # [{"ordem": 1, "card_number": 2, "units": 3}, ...]
    allocations: Mapped[list | None] = mapped_column(JSON, nullable=True)
    detail: Mapped[str | None] = mapped_column(Text, nullable=True)
    sold_at: Mapped[DateTime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    processed_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        # NULL order numbers never collide
        UniqueConstraint("seller_id", "campaign_id", "order_number", name="unique_seller_campaign_order"),
    )

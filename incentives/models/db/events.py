from __future__ import annotations
"""SQLAlchemy model for special events (temporary reward multipliers)."""
from decimal import Decimal
from typing import TYPE_CHECKING
from sqlalchemy import Integer, String, Text, DateTime, Numeric, Boolean, ForeignKey
from sqlalchemy.orm import relationship, Mapped, mapped_column

if TYPE_CHECKING:  # pragma: no cover
    from .campaigns import Campaign
from sqlalchemy.sql import func
from incentives.database import Base


class SpecialEvent(Base):
    __tablename__ = "special_events"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    campaign_id: Mapped[int] = mapped_column(Integer, ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    multiplier: Mapped[Decimal] = mapped_column(Numeric(4, 2), nullable=False)
    start_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    end_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)
    highlight_color: Mapped[str] = mapped_column(String(7), default="#FF5733", nullable=False)
    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    campaign: Mapped["Campaign"] = relationship("Campaign", back_populates="events")

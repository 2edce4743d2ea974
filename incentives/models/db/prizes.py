from __future__ import annotations
"""SQLAlchemy models for the prize catalog and coin redemptions."""
from typing import TYPE_CHECKING
from sqlalchemy import Integer, String, Text, DateTime, Boolean, Enum, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship, Mapped, mapped_column

if TYPE_CHECKING:  # pragma: no cover
    from .users import User
from sqlalchemy.sql import func
from incentives.database import Base
from .enums import RedemptionStatus


class Prize(Base):
    __tablename__ = "prizes"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    coin_cost: Mapped[int] = mapped_column(Integer, nullable=False)
    stock: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint("stock >= 0", name="prize_stock_non_negative"),
        CheckConstraint("coin_cost > 0", name="prize_cost_positive"),
    )


class Redemption(Base):
    __tablename__ = "redemptions"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    seller_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    prize_id: Mapped[int] = mapped_column(Integer, ForeignKey("prizes.id"), nullable=False, index=True)
    # Cost at request time; refunds use this even if the catalog price changes later
    coin_cost: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[RedemptionStatus] = mapped_column(
        Enum(RedemptionStatus), default=RedemptionStatus.REQUESTED, nullable=False, index=True
    )
    cancel_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    requested_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False)
    sent_at: Mapped[DateTime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[DateTime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    seller: Mapped["User"] = relationship("User")
    prize: Mapped["Prize"] = relationship("Prize")

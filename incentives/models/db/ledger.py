from __future__ import annotations
"""SQLAlchemy model for financial ledger entries (real-currency payables)."""
from decimal import Decimal
from typing import TYPE_CHECKING
from sqlalchemy import Integer, Text, DateTime, Numeric, Enum, ForeignKey
from sqlalchemy.orm import relationship, Mapped, mapped_column

if TYPE_CHECKING:  # pragma: no cover
    from .users import User
    from .campaigns import Campaign
from sqlalchemy.sql import func
from incentives.database import Base
from .enums import LedgerEntryType, LedgerStatus


class LedgerEntry(Base):
    __tablename__ = "ledger_entries"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    beneficiary_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    campaign_id: Mapped[int] = mapped_column(Integer, ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False, index=True)
    # Seller whose completed card generated the entry (equals beneficiary for VENDEDOR rows)
    origin_seller_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    card_number: Mapped[int] = mapped_column(Integer, nullable=False)
    entry_type: Mapped[LedgerEntryType] = mapped_column(Enum(LedgerEntryType), nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[LedgerStatus] = mapped_column(Enum(LedgerStatus), default=LedgerStatus.PENDING, nullable=False, index=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    generated_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    paid_at: Mapped[DateTime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    beneficiary: Mapped["User"] = relationship("User", foreign_keys=[beneficiary_id])
    campaign: Mapped["Campaign"] = relationship("Campaign")

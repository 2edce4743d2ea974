from __future__ import annotations
"""SQLAlchemy models for per-seller campaign progression.

``SellerCampaignProgress.version`` is a SQLAlchemy ``version_id_col``: every
UPDATE carries ``WHERE version = :old`` so two processes applying sales for
the same seller/campaign cannot silently overwrite each other (the loser gets
StaleDataError and retries). ``CompletedCard`` is the idempotency key for
reward crediting: a card can be inserted (and therefore paid) exactly once.
"""
from decimal import Decimal
from typing import TYPE_CHECKING
from sqlalchemy import Integer, Boolean, DateTime, Numeric, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship, Mapped, mapped_column

if TYPE_CHECKING:  # pragma: no cover
    from .users import User
from sqlalchemy.sql import func
from incentives.database import Base


class SellerCampaignProgress(Base):
    __tablename__ = "seller_campaign_progress"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    seller_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    campaign_id: Mapped[int] = mapped_column(Integer, ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False, index=True)
    active_card: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    exhausted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    updated_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    requirements: Mapped[list["RequirementProgress"]] = relationship(
        "RequirementProgress",
        back_populates="progress",
        cascade="all, delete-orphan",
        order_by="RequirementProgress.id",
    )

    __table_args__ = (
        UniqueConstraint("seller_id", "campaign_id", name="unique_seller_campaign_progress"),
    )
    __mapper_args__ = {"version_id_col": version}


class RequirementProgress(Base):
    __tablename__ = "requirement_progress"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    progress_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("seller_campaign_progress.id", ondelete="CASCADE"), nullable=False, index=True
    )
    card_number: Mapped[int] = mapped_column(Integer, nullable=False)
    ordem: Mapped[int] = mapped_column(Integer, nullable=False)
    accumulated: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    target: Mapped[int] = mapped_column(Integer, nullable=False)

    progress: Mapped["SellerCampaignProgress"] = relationship("SellerCampaignProgress", back_populates="requirements")

    __table_args__ = (
        UniqueConstraint("progress_id", "card_number", "ordem", name="unique_progress_card_ordem"),
    )


class CompletedCard(Base):
    __tablename__ = "completed_cards"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    seller_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    campaign_id: Mapped[int] = mapped_column(Integer, ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False, index=True)
    card_number: Mapped[int] = mapped_column(Integer, nullable=False)
    multiplier: Mapped[Decimal] = mapped_column(Numeric(4, 2), nullable=False, default=Decimal("1.00"))
    coins: Mapped[int] = mapped_column(Integer, nullable=False)
    real_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    commission_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    completed_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False)

    seller: Mapped["User"] = relationship("User")

    __table_args__ = (
        UniqueConstraint("seller_id", "campaign_id", "card_number", name="unique_completed_card"),
    )

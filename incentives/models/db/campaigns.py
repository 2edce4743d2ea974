from __future__ import annotations
"""SQLAlchemy models for the campaign tree: Campaign -> Card -> Requirement -> Condition.

The tree is owned top-down and created atomically with the campaign; deleting
a campaign cascades to every node. Auto-replicating campaigns store only
card 1, later cards are derived at runtime.
"""
from decimal import Decimal
from typing import TYPE_CHECKING
from sqlalchemy import (
    Integer, String, Text, DateTime, Numeric, Enum, ForeignKey, Boolean, JSON, Table, Column, UniqueConstraint,
)
from sqlalchemy.orm import relationship, Mapped, mapped_column

if TYPE_CHECKING:  # pragma: no cover
    from .users import User, Optician
    from .events import SpecialEvent
from sqlalchemy.sql import func
from incentives.database import Base
from .enums import CampaignStatus, CardMode, IncrementType, UnitKind, ConditionField, ConditionOperator

campaign_optician_association = Table(
    "campaign_target_opticians",
    Base.metadata,
    Column("campaign_id", Integer, ForeignKey("campaigns.id", ondelete="CASCADE"), primary_key=True),
    Column("optician_id", Integer, ForeignKey("opticians.id"), primary_key=True),
)


class Campaign(Base):
    __tablename__ = "campaigns"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    title: Mapped[str] = mapped_column(String(100), index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    start_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False)

    coin_reward: Mapped[int] = mapped_column(Integer, nullable=False)
    real_reward: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    manager_commission: Mapped[Decimal] = mapped_column(Numeric(6, 4), nullable=False, default=Decimal("0"))

    all_opticians: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    card_mode: Mapped[CardMode] = mapped_column(Enum(CardMode), default=CardMode.MANUAL, nullable=False)
    increment_type: Mapped[IncrementType] = mapped_column(Enum(IncrementType), default=IncrementType.NONE, nullable=False)
    increment_factor: Mapped[int | None] = mapped_column(Integer, nullable=True)
    card_ceiling: Mapped[int | None] = mapped_column(Integer, nullable=True)

    image_url: Mapped[str | None] = mapped_column(String, nullable=True)
    tags: Mapped[list | None] = mapped_column(JSON, nullable=True)
    rules: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[CampaignStatus] = mapped_column(Enum(CampaignStatus), default=CampaignStatus.ACTIVE, index=True)
    created_by: Mapped[int | None] = mapped_column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    creator: Mapped["User | None"] = relationship("User", back_populates="created_campaigns")
    cards: Mapped[list["Card"]] = relationship(
        "Card", back_populates="campaign", cascade="all, delete-orphan", order_by="Card.number"
    )
    target_opticians: Mapped[list["Optician"]] = relationship("Optician", secondary=campaign_optician_association)
    events: Mapped[list["SpecialEvent"]] = relationship(
        "SpecialEvent", back_populates="campaign", cascade="all, delete-orphan", order_by="SpecialEvent.start_at"
    )


class Card(Base):
    __tablename__ = "cards"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    campaign_id: Mapped[int] = mapped_column(Integer, ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False, index=True)
    number: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)

    campaign: Mapped["Campaign"] = relationship("Campaign", back_populates="cards")
    requirements: Mapped[list["Requirement"]] = relationship(
        "Requirement", back_populates="card", cascade="all, delete-orphan", order_by="Requirement.ordem"
    )

    __table_args__ = (
        UniqueConstraint("campaign_id", "number", name="unique_campaign_card_number"),
    )


class Requirement(Base):
    __tablename__ = "requirements"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    card_id: Mapped[int] = mapped_column(Integer, ForeignKey("cards.id", ondelete="CASCADE"), nullable=False, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit: Mapped[UnitKind] = mapped_column(Enum(UnitKind), default=UnitKind.UNIT, nullable=False)
    # Links "the same" requirement across cards for spillover
    ordem: Mapped[int] = mapped_column(Integer, nullable=False)

    card: Mapped["Card"] = relationship("Card", back_populates="requirements")
    conditions: Mapped[list["Condition"]] = relationship(
        "Condition", back_populates="requirement", cascade="all, delete-orphan", order_by="Condition.id"
    )

    __table_args__ = (
        UniqueConstraint("card_id", "ordem", name="unique_card_requirement_ordem"),
    )


class Condition(Base):
    __tablename__ = "conditions"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    requirement_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("requirements.id", ondelete="CASCADE"), nullable=False, index=True
    )
    field: Mapped[ConditionField] = mapped_column(Enum(ConditionField), nullable=False)
    operator: Mapped[ConditionOperator] = mapped_column(Enum(ConditionOperator), nullable=False)
    value: Mapped[str] = mapped_column(String, nullable=False)

    requirement: Mapped["Requirement"] = relationship("Requirement", back_populates="conditions")

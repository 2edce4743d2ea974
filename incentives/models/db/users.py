from __future__ import annotations
"""SQLAlchemy models for users (admins, managers, sellers) and opticians."""
from decimal import Decimal
from typing import TYPE_CHECKING
from sqlalchemy import Integer, String, DateTime, Boolean, Numeric, Enum, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship, Mapped, mapped_column

if TYPE_CHECKING:  # pragma: no cover
    from .campaigns import Campaign
from sqlalchemy.sql import func
from incentives.database import Base
from .enums import UserRole


class Optician(Base):
    """A store ("ótica"). Branches point at their head office via ``parent_id``."""
    __tablename__ = "opticians"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    cnpj: Mapped[str] = mapped_column(String, unique=True, index=True)
    parent_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("opticians.id"), nullable=True, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    # Whether sellers of this store may see its leaderboard
    ranking_visible_to_sellers: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    parent: Mapped["Optician | None"] = relationship("Optician", remote_side=[id])
    users: Mapped[list["User"]] = relationship("User", back_populates="optician")


class User(Base):
    __tablename__ = "users"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String, index=True)
    email: Mapped[str] = mapped_column(String, unique=True, index=True)
    api_key: Mapped[str | None] = mapped_column(String, unique=True, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    role: Mapped[UserRole] = mapped_column(Enum(UserRole), default=UserRole.SELLER, index=True)

    optician_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("opticians.id"), nullable=True, index=True)
    # Seller -> manager who earns commission on the seller's completed cards
    manager_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("users.id"), nullable=True, index=True)

    # Spendable coin balance and lifetime ranking totals
    coin_balance: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    ranking_coins: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    ranking_real: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=Decimal("0"), nullable=False)

    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    optician: Mapped["Optician | None"] = relationship("Optician", back_populates="users")
    manager: Mapped["User | None"] = relationship("User", remote_side=[id])
    created_campaigns: Mapped[list["Campaign"]] = relationship("Campaign", back_populates="creator")

    __table_args__ = (
        CheckConstraint("coin_balance >= 0", name="coin_balance_non_negative"),
    )

"""Reward crediting for completed cards.

compute_reward is pure: the campaign's per-card coins, real-currency points
and manager commission, each scaled by the special-event multiplier in force
at the completion instant. Coins round half-up to whole units, currency to
cents; commission is taken on the already-multiplied real amount.

credit_card_completion performs the side effects inside the caller's
transaction:
1. Skip if a CompletedCard row already exists (the card was paid before).
2. Insert CompletedCard; the unique (seller, campaign, card) constraint turns a
   concurrent double credit into an IntegrityError at flush.
3. Increase seller coin balance and ranking totals with one SQL increment, so
   a redemption committed in between is never overwritten.
4. Write ledger entries: VENDEDOR for the real amount, GERENTE for the
   commission when the seller has a manager.
5. Queue notifications.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from incentives.models.db.enums import LedgerEntryType, LedgerStatus
from incentives.models.db.ledger import LedgerEntry
from incentives.models.db.progress import CompletedCard
from incentives.models.db.users import User
from incentives.services import notifications
from incentives.utils import get_logger, log_business_event
from incentives.utils.money import quantize, round_to_int, to_decimal

logger = get_logger(__name__)


@dataclass(frozen=True)
class RewardCredit:
    card_number: int
    multiplier: Decimal
    coins: int
    real_amount: Decimal
    commission_amount: Decimal
    manager_id: Optional[int] = None

    def as_dict(self) -> dict:
        return {
            "card_number": self.card_number,
            "multiplier": str(self.multiplier),
            "coins": self.coins,
            "real_amount": str(self.real_amount),
            "commission_amount": str(self.commission_amount),
            "manager_id": self.manager_id,
        }


def compute_reward(campaign: Any, multiplier: Decimal, card_number: int = 0) -> RewardCredit:
    m = to_decimal(multiplier) or Decimal("1")
    coins = round_to_int(Decimal(int(campaign.coin_reward)) * m)
    real = quantize((to_decimal(campaign.real_reward) or Decimal("0")) * m, 2)
    commission = quantize(real * (to_decimal(campaign.manager_commission) or Decimal("0")), 2)
    return RewardCredit(
        card_number=card_number,
        multiplier=m,
        coins=coins,
        real_amount=real,
        commission_amount=commission,
    )


def credit_card_completion(
    session: Session,
    *,
    campaign: Any,
    seller: User,
    card_number: int,
    multiplier: Decimal,
    now: datetime,
) -> Optional[RewardCredit]:
    """Credit one completed card. Returns None when it had already been credited."""
    already = (
        session.query(CompletedCard)
        .filter(
            CompletedCard.seller_id == seller.id,
            CompletedCard.campaign_id == campaign.id,
            CompletedCard.card_number == card_number,
        )
        .first()
    )
    if already is not None:
        logger.warning(
            "Card already credited; skipping reward",
            seller_id=seller.id,
            campaign_id=campaign.id,
            card_number=card_number,
        )
        return None

    credit = compute_reward(campaign, multiplier, card_number=card_number)
    has_manager = seller.manager_id is not None and credit.commission_amount > 0
    if not has_manager:
        credit = replace(credit, commission_amount=Decimal("0.00"))
    else:
        credit = replace(credit, manager_id=seller.manager_id)

    session.add(CompletedCard(
        seller_id=seller.id,
        campaign_id=campaign.id,
        card_number=card_number,
        multiplier=credit.multiplier,
        coins=credit.coins,
        real_amount=credit.real_amount,
        commission_amount=credit.commission_amount,
        completed_at=now,
    ))
    session.flush()

    session.execute(
        update(User)
        .where(User.id == seller.id)
        .values(
            coin_balance=User.coin_balance + credit.coins,
            ranking_coins=User.ranking_coins + credit.coins,
            ranking_real=User.ranking_real + credit.real_amount,
        )
        .execution_options(synchronize_session=False)
    )
    session.expire(seller, ["coin_balance", "ranking_coins", "ranking_real"])

    if credit.real_amount > 0:
        session.add(LedgerEntry(
            beneficiary_id=seller.id,
            origin_seller_id=seller.id,
            campaign_id=campaign.id,
            card_number=card_number,
            entry_type=LedgerEntryType.SELLER,
            amount=credit.real_amount,
            status=LedgerStatus.PENDING,
            generated_at=now,
        ))
    if credit.manager_id is not None:
        session.add(LedgerEntry(
            beneficiary_id=credit.manager_id,
            origin_seller_id=seller.id,
            campaign_id=campaign.id,
            card_number=card_number,
            entry_type=LedgerEntryType.MANAGER,
            amount=credit.commission_amount,
            status=LedgerStatus.PENDING,
            generated_at=now,
        ))
        notifications.commission_earned(session, credit.manager_id, seller.name, campaign.title, credit.commission_amount)

    notifications.card_completed(
        session, seller.id, campaign.title, card_number, credit.coins, credit.real_amount, credit.multiplier
    )
    log_business_event(
        event_type="card_completed",
        details={
            "campaign_id": campaign.id,
            "card_number": card_number,
            **credit.as_dict(),
        },
        user_id=seller.id,
    )
    return credit


__all__ = ["RewardCredit", "compute_reward", "credit_card_completion"]

"""Notification outbox.

Rows are written in the same transaction as the business change they report
(card completed, commission earned, redemption requested/sent/cancelled,
ledger entry paid); delivery channels read them later. Callers own the
commit.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from incentives.models.db.notifications import Notification
from incentives.utils import get_logger

logger = get_logger(__name__)


def notify(session: Session, user_id: int, kind: str, message: str, link: Optional[str] = None) -> Notification:
    note = Notification(user_id=user_id, kind=kind, message=message, link=link)
    session.add(note)
    logger.debug("Notification queued", user_id=user_id, kind=kind)
    return note


def _money(amount: Decimal) -> str:
    return f"R$ {amount:.2f}"


def card_completed(session: Session, seller_id: int, campaign_title: str, card_number: int, coins: int, real: Decimal, multiplier: Decimal) -> Notification:
    bonus = f" (x{multiplier} special event)" if multiplier != Decimal("1") else ""
    return notify(
        session,
        seller_id,
        "card_completed",
        f"Card {card_number} of '{campaign_title}' completed: +{coins} coins and {_money(real)}{bonus}.",
        link="/progress",
    )


def commission_earned(session: Session, manager_id: int, seller_name: str, campaign_title: str, amount: Decimal) -> Notification:
    return notify(
        session,
        manager_id,
        "commission_earned",
        f"Your seller {seller_name} completed a card in '{campaign_title}'. Commission: {_money(amount)}.",
        link="/ledger",
    )


def redemption_requested(session: Session, seller_id: int, prize_name: str, coins: int) -> Notification:
    return notify(
        session, seller_id, "redemption_requested",
        f"Redemption of '{prize_name}' requested ({coins} coins).", link="/redemptions",
    )


def redemption_sent(session: Session, seller_id: int, prize_name: str) -> Notification:
    return notify(session, seller_id, "redemption_sent", f"Your prize '{prize_name}' has been sent.", link="/redemptions")


def redemption_cancelled(session: Session, seller_id: int, prize_name: str, coins: int, reason: str) -> Notification:
    return notify(
        session, seller_id, "redemption_cancelled",
        f"Redemption of '{prize_name}' was cancelled and {coins} coins returned. Reason: {reason}",
        link="/redemptions",
    )


def ledger_paid(session: Session, beneficiary_id: int, amount: Decimal) -> Notification:
    return notify(session, beneficiary_id, "ledger_paid", f"Payment of {_money(amount)} was settled.", link="/ledger")


__all__ = [
    "notify",
    "card_completed",
    "commission_earned",
    "redemption_requested",
    "redemption_sent",
    "redemption_cancelled",
    "ledger_paid",
]

"""Prize redemption flows.

Each flow is one unit of work: the balance change, stock change, status
transition and notification commit together or not at all. Flows for the
same seller are serialised through the keyed lock registry, and rows are
read with ``SELECT ... FOR UPDATE`` where the database supports it.
Balance, stock and status move through conditional UPDATEs, so a row that
changed since it was read is never overwritten.

State machine: SOLICITADO -> ENVIADO | CANCELADO. Only SOLICITADO may move.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from incentives.config import REDEMPTION_RULES
from incentives.models.db import Prize, Redemption, User
from incentives.models.db.enums import RedemptionStatus, UserRole
from incentives.services import notifications
from incentives.services.errors import (
    InsufficientBalanceError,
    InvalidRedemptionStateError,
    NotFoundError,
    OutOfStockError,
    RedemptionError,
)
from incentives.utils import get_logger, log_business_event
from incentives.utils.locks import GLOBAL_LOCKS, KeyedLockRegistry, seller_key
from incentives.utils.time import utc_now

logger = get_logger(__name__)


def _locked_seller(session: Session, seller_id: int) -> User:
    seller = session.query(User).filter(User.id == seller_id).with_for_update().one_or_none()
    if seller is None or seller.role != UserRole.SELLER:
        raise NotFoundError(f"Seller {seller_id} not found")
    return seller


def _locked_prize(session: Session, prize_id: int) -> Prize:
    prize = session.query(Prize).filter(Prize.id == prize_id).with_for_update().one_or_none()
    if prize is None or not prize.is_active:
        raise NotFoundError(f"Prize {prize_id} not found")
    return prize


def _locked_redemption(session: Session, redemption_id: int) -> Redemption:
    redemption = session.query(Redemption).filter(Redemption.id == redemption_id).with_for_update().one_or_none()
    if redemption is None:
        raise NotFoundError(f"Redemption {redemption_id} not found")
    return redemption


def _redemption_seller_id(session: Session, redemption_id: int) -> int:
    seller_id = session.query(Redemption.seller_id).filter(Redemption.id == redemption_id).scalar()
    if seller_id is None:
        raise NotFoundError(f"Redemption {redemption_id} not found")
    return seller_id


def _leave_requested(session: Session, redemption_id: int, action: str, **values) -> None:
    """Move a redemption out of SOLICITADO with a single conditional UPDATE.

    A row that changed state after it was read matches nothing, so a send and
    a cancel can never both win.
    """
    result = session.execute(
        update(Redemption)
        .where(Redemption.id == redemption_id, Redemption.status == RedemptionStatus.REQUESTED)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        current = session.query(Redemption.status).filter(Redemption.id == redemption_id).scalar()
        label = current.value if current is not None else "missing"
        raise InvalidRedemptionStateError(
            f"Only {RedemptionStatus.REQUESTED.value} redemptions can be {action} (current: {label})"
        )


def request_redemption(
    session: Session,
    seller_id: int,
    prize_id: int,
    now: Optional[datetime] = None,
    locks: KeyedLockRegistry = GLOBAL_LOCKS,
) -> Redemption:
    """Spend coins on a prize: balance -= cost, stock -= 1, status SOLICITADO."""
    now = now or utc_now()
    with locks.hold(seller_key(seller_id)):
        try:
            seller = _locked_seller(session, seller_id)
            prize = _locked_prize(session, prize_id)
            cost = prize.coin_cost
            if seller.coin_balance < cost:
                raise InsufficientBalanceError(
                    f"Balance of {seller.coin_balance} coins is below the prize cost of {cost}"
                )
            if prize.stock <= 0:
                raise OutOfStockError(f"Prize '{prize.name}' is out of stock")
            # Stock is shared across sellers, so the seller lock alone does not cover it
            debited = session.execute(
                update(User)
                .where(User.id == seller.id, User.coin_balance >= cost)
                .values(coin_balance=User.coin_balance - cost)
                .execution_options(synchronize_session=False)
            )
            if debited.rowcount != 1:
                raise InsufficientBalanceError(f"Balance is below the prize cost of {cost}")
            taken = session.execute(
                update(Prize)
                .where(Prize.id == prize.id, Prize.stock > 0)
                .values(stock=Prize.stock - 1)
                .execution_options(synchronize_session=False)
            )
            if taken.rowcount != 1:
                raise OutOfStockError(f"Prize '{prize.name}' is out of stock")
            redemption = Redemption(
                seller_id=seller.id,
                prize_id=prize.id,
                coin_cost=cost,
                status=RedemptionStatus.REQUESTED,
                requested_at=now,
            )
            session.add(redemption)
            notifications.redemption_requested(session, seller.id, prize.name, cost)
            session.commit()
        except RedemptionError:
            session.rollback()
            raise
        except NotFoundError:
            session.rollback()
            raise
    session.refresh(redemption)
    log_business_event(
        event_type="redemption_requested",
        details={"redemption_id": redemption.id, "prize_id": prize_id, "coins": redemption.coin_cost},
        user_id=seller_id,
    )
    return redemption


def mark_sent(
    session: Session,
    redemption_id: int,
    now: Optional[datetime] = None,
    locks: KeyedLockRegistry = GLOBAL_LOCKS,
) -> Redemption:
    now = now or utc_now()
    seller_id = _redemption_seller_id(session, redemption_id)
    with locks.hold(seller_key(seller_id)):
        try:
            redemption = _locked_redemption(session, redemption_id)
            if redemption.status != RedemptionStatus.REQUESTED:
                raise InvalidRedemptionStateError(
                    f"Only {RedemptionStatus.REQUESTED.value} redemptions can be sent "
                    f"(current: {redemption.status.value})"
                )
            _leave_requested(session, redemption_id, "sent", status=RedemptionStatus.SENT, sent_at=now)
            notifications.redemption_sent(session, seller_id, redemption.prize.name)
            session.commit()
        except (RedemptionError, NotFoundError):
            session.rollback()
            raise
    session.refresh(redemption)
    log_business_event(
        event_type="redemption_sent",
        details={"redemption_id": redemption.id},
        user_id=seller_id,
    )
    return redemption


def cancel_redemption(
    session: Session,
    redemption_id: int,
    reason: str,
    now: Optional[datetime] = None,
    locks: KeyedLockRegistry = GLOBAL_LOCKS,
) -> Redemption:
    """Undo a SOLICITADO redemption: refund coins, restock, status CANCELADO."""
    now = now or utc_now()
    min_len = int(REDEMPTION_RULES["cancel_reason_min_length"])
    reason = (reason or "").strip()
    if len(reason) < min_len:
        raise RedemptionError(f"Cancellation reason must have at least {min_len} characters")

    seller_id = _redemption_seller_id(session, redemption_id)
    with locks.hold(seller_key(seller_id)):
        try:
            redemption = _locked_redemption(session, redemption_id)
            if redemption.status != RedemptionStatus.REQUESTED:
                raise InvalidRedemptionStateError(
                    f"Only {RedemptionStatus.REQUESTED.value} redemptions can be cancelled "
                    f"(current: {redemption.status.value})"
                )
            cost = redemption.coin_cost
            _leave_requested(
                session, redemption_id, "cancelled",
                status=RedemptionStatus.CANCELLED, cancel_reason=reason, cancelled_at=now,
            )
            _locked_seller(session, seller_id)
            session.execute(
                update(User)
                .where(User.id == seller_id)
                .values(coin_balance=User.coin_balance + cost)
                .execution_options(synchronize_session=False)
            )
            session.execute(
                update(Prize)
                .where(Prize.id == redemption.prize_id)
                .values(stock=Prize.stock + 1)
                .execution_options(synchronize_session=False)
            )
            notifications.redemption_cancelled(session, seller_id, redemption.prize.name, cost, reason)
            session.commit()
        except (RedemptionError, NotFoundError):
            session.rollback()
            raise
    session.refresh(redemption)
    log_business_event(
        event_type="redemption_cancelled",
        details={"redemption_id": redemption.id, "coins_refunded": redemption.coin_cost, "reason": reason},
        user_id=seller_id,
    )
    return redemption


def list_redemptions(
    session: Session,
    seller_id: Optional[int] = None,
    status: Optional[RedemptionStatus] = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Redemption]:
    query = session.query(Redemption)
    if seller_id is not None:
        query = query.filter(Redemption.seller_id == seller_id)
    if status is not None:
        query = query.filter(Redemption.status == status)
    return query.order_by(Redemption.requested_at.desc(), Redemption.id.desc()).offset(offset).limit(limit).all()


__all__ = ["request_redemption", "mark_sent", "cancel_redemption", "list_redemptions"]

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy.orm import Session

from incentives.models.db import LedgerEntry, Notification, Prize
from incentives.models.db.enums import LedgerEntryType, LedgerStatus, RedemptionStatus, UserRole
from incentives.services import ledger_service, redemption_service
from incentives.services.errors import (
    AlreadyPaidError,
    InsufficientBalanceError,
    InvalidRedemptionStateError,
    LedgerError,
    NotFoundError,
    OutOfStockError,
    RedemptionError,
)
from incentives.services.ledger_service import LedgerFilters
from incentives.services.rule_types import SaleFact
from incentives.services.sale_processing import process_sale_line
from incentives.config import SYSTEM_TIMEZONE
from incentives.utils.time import to_local, utc_now

# ---------------------------------------------------------------- redemptions

def test_request_then_cancel_restores_balance_and_stock(db_session: Session, user_factory, prize_factory):
    seller = user_factory(UserRole.SELLER, coin_balance=1000)
    prize = prize_factory(coin_cost=300, stock=2)

    redemption = redemption_service.request_redemption(db_session, seller.id, prize.id)
    db_session.refresh(seller)
    db_session.refresh(prize)
    assert redemption.status == RedemptionStatus.REQUESTED
    assert redemption.coin_cost == 300
    assert seller.coin_balance == 700
    assert prize.stock == 1

    cancelled = redemption_service.cancel_redemption(db_session, redemption.id, "Cliente desistiu da troca")
    db_session.refresh(seller)
    db_session.refresh(prize)
    assert cancelled.status == RedemptionStatus.CANCELLED
    assert cancelled.cancel_reason == "Cliente desistiu da troca"
    assert seller.coin_balance == 1000
    assert prize.stock == 2

    kinds = [n.kind for n in db_session.query(Notification).filter(Notification.user_id == seller.id)]
    assert kinds.count("redemption_requested") == 1
    assert kinds.count("redemption_cancelled") == 1


def test_insufficient_balance_changes_nothing(db_session: Session, user_factory, prize_factory):
    seller = user_factory(UserRole.SELLER, coin_balance=100)
    prize = prize_factory(coin_cost=300, stock=1)
    with pytest.raises(InsufficientBalanceError):
        redemption_service.request_redemption(db_session, seller.id, prize.id)
    db_session.refresh(seller)
    db_session.refresh(prize)
    assert seller.coin_balance == 100
    assert prize.stock == 1


def test_out_of_stock(db_session: Session, user_factory, prize_factory):
    seller = user_factory(UserRole.SELLER, coin_balance=1000)
    prize = prize_factory(coin_cost=10, stock=0)
    with pytest.raises(OutOfStockError):
        redemption_service.request_redemption(db_session, seller.id, prize.id)


def test_only_requested_redemptions_move(db_session: Session, user_factory, prize_factory):
    seller = user_factory(UserRole.SELLER, coin_balance=1000)
    prize = prize_factory(coin_cost=300, stock=5)
    redemption = redemption_service.request_redemption(db_session, seller.id, prize.id)

    sent = redemption_service.mark_sent(db_session, redemption.id)
    assert sent.status == RedemptionStatus.SENT
    assert sent.sent_at is not None

    with pytest.raises(InvalidRedemptionStateError):
        redemption_service.mark_sent(db_session, redemption.id)
    with pytest.raises(InvalidRedemptionStateError):
        redemption_service.cancel_redemption(db_session, redemption.id, "Enviado por engano ao cliente")
    db_session.refresh(seller)
    assert seller.coin_balance == 700


def test_cancel_reason_must_be_meaningful(db_session: Session, user_factory, prize_factory):
    seller = user_factory(UserRole.SELLER, coin_balance=1000)
    prize = prize_factory()
    redemption = redemption_service.request_redemption(db_session, seller.id, prize.id)
    with pytest.raises(RedemptionError):
        redemption_service.cancel_redemption(db_session, redemption.id, "   curto   ")


def test_redemption_lookups(db_session: Session, user_factory, prize_factory, manager):
    prize = prize_factory()
    with pytest.raises(NotFoundError):
        redemption_service.request_redemption(db_session, manager.id, prize.id)
    with pytest.raises(NotFoundError):
        redemption_service.mark_sent(db_session, 999_999)

    seller = user_factory(UserRole.SELLER, coin_balance=1000)
    inactive = prize_factory()
    inactive.is_active = False
    db_session.commit()
    with pytest.raises(NotFoundError):
        redemption_service.request_redemption(db_session, seller.id, inactive.id)


def test_list_redemptions_filters(db_session: Session, user_factory, prize_factory):
    seller = user_factory(UserRole.SELLER, coin_balance=1000)
    prize = prize_factory(coin_cost=100, stock=5)
    first = redemption_service.request_redemption(db_session, seller.id, prize.id)
    redemption_service.request_redemption(db_session, seller.id, prize.id)
    redemption_service.mark_sent(db_session, first.id)

    mine = redemption_service.list_redemptions(db_session, seller_id=seller.id)
    assert len(mine) == 2
    sent = redemption_service.list_redemptions(db_session, seller_id=seller.id, status=RedemptionStatus.SENT)
    assert [r.id for r in sent] == [first.id]
    assert db_session.get(Prize, prize.id).stock == 3

# ---------------------------------------------------------------- ledger

@pytest.fixture()
def completed_cards(db_session, campaign_factory, seller):
    """A seller (with manager) who completed two cards: 2 VENDEDOR + 2 GERENTE entries."""
    campaign = campaign_factory()
    process_sale_line(db_session, seller.id, campaign.id, SaleFact(product_name="Lente A", quantity=10))
    return campaign


def _entries(session, beneficiary_id, entry_type=None):
    return ledger_service.list_entries(
        session, LedgerFilters(beneficiary_id=beneficiary_id, entry_type=entry_type)
    )


def test_mark_paid_and_double_payment(db_session: Session, completed_cards, seller):
    entry = _entries(db_session, seller.id)[0]
    paid = ledger_service.mark_paid(db_session, entry.id, notes=" PIX 123 ")
    assert paid.status == LedgerStatus.PAID
    assert paid.paid_at is not None
    assert paid.notes == "PIX 123"
    with pytest.raises(AlreadyPaidError):
        ledger_service.mark_paid(db_session, entry.id)
    with pytest.raises(NotFoundError):
        ledger_service.mark_paid(db_session, 999_999)


def test_bulk_payment_is_all_or_nothing(db_session: Session, completed_cards, seller):
    first, second = _entries(db_session, seller.id)
    ledger_service.mark_paid(db_session, first.id)

    with pytest.raises(AlreadyPaidError):
        ledger_service.mark_many_paid(db_session, [first.id, second.id])
    db_session.expire_all()
    assert db_session.get(LedgerEntry, second.id).status == LedgerStatus.PENDING

    with pytest.raises(NotFoundError):
        ledger_service.mark_many_paid(db_session, [second.id, 999_999])
    with pytest.raises(LedgerError):
        ledger_service.mark_many_paid(db_session, [])

    paid = ledger_service.mark_many_paid(db_session, [second.id])
    assert [e.status for e in paid] == [LedgerStatus.PAID]


def test_kpis_by_beneficiary(db_session: Session, completed_cards, seller, manager):
    seller_kpis = ledger_service.kpis(db_session, beneficiary_id=seller.id)
    assert seller_kpis["pending_total"] == Decimal("3000.00")
    assert seller_kpis["pending_count"] == 2
    assert seller_kpis["paid_last_window_total"] == Decimal("0.00")

    entry = _entries(db_session, seller.id)[0]
    ledger_service.mark_paid(db_session, entry.id)
    seller_kpis = ledger_service.kpis(db_session, beneficiary_id=seller.id)
    assert seller_kpis["pending_total"] == Decimal("1500.00")
    assert seller_kpis["paid_last_window_total"] == Decimal("1500.00")
    assert seller_kpis["window_days"] == 30

    # Payments older than the window drop out of the paid KPI
    future = ledger_service.kpis(db_session, now=utc_now() + timedelta(days=31), beneficiary_id=seller.id)
    assert future["paid_last_window_total"] == Decimal("0.00")

    manager_kpis = ledger_service.kpis(db_session, beneficiary_id=manager.id)
    assert manager_kpis["pending_total"] == Decimal("450.00")


def test_list_entries_filters(db_session: Session, completed_cards, seller, manager):
    campaign = completed_cards
    assert len(_entries(db_session, manager.id, LedgerEntryType.MANAGER)) == 2
    assert _entries(db_session, manager.id, LedgerEntryType.SELLER) == []

    today = to_local(utc_now(), SYSTEM_TIMEZONE).date()
    todays = ledger_service.list_entries(
        db_session, LedgerFilters(campaign_id=campaign.id, date_from=today, date_to=today)
    )
    assert len(todays) == 4
    tomorrow = today + timedelta(days=1)
    assert ledger_service.list_entries(db_session, LedgerFilters(campaign_id=campaign.id, date_from=tomorrow)) == []
    with pytest.raises(LedgerError):
        ledger_service.list_entries(db_session, LedgerFilters(date_from=tomorrow, date_to=today))
    assert len(ledger_service.list_entries(db_session, LedgerFilters(campaign_id=campaign.id), limit=1)) == 1

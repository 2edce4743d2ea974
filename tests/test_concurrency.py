import threading
import time

import pytest
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from incentives.config import PROGRESSION_SETTINGS
from incentives.models.db import CompletedCard, LedgerEntry, Prize, Redemption, SaleRecord, User
from incentives.models.db.enums import LedgerEntryType, RedemptionStatus, UserRole
from incentives.services import notifications, sale_processing
from incentives.services.errors import InvalidRedemptionStateError
from incentives.services.redemption_service import cancel_redemption, mark_sent, request_redemption
from incentives.services.rule_types import SaleFact
from incentives.services.sale_processing import find_progress, process_sale_line
from incentives.utils.time import utc_now

CANCEL_REASON = "Cliente desistiu da troca"


def lens(quantity=1):
    return SaleFact(product_name="Lente BlueProtect 1.67", quantity=quantity)


def spawn(target, *args):
    """Run ``target`` on a worker thread; exceptions land in the returned list."""
    errors = []

    def run():
        try:
            target(*args)
        except Exception as exc:
            errors.append(exc)

    thread = threading.Thread(target=run)
    thread.start()
    return thread, errors


def gate(original):
    """Wrap ``original`` so the first caller signals ``inside`` and parks until ``release``."""
    inside, release = threading.Event(), threading.Event()

    def wrapper(*args, **kwargs):
        inside.set()
        release.wait(timeout=5)
        return original(*args, **kwargs)

    return wrapper, inside, release


def bump_version(session_factory, seller_id, campaign_id):
    other = session_factory()
    row = find_progress(other, seller_id, campaign_id)
    row.updated_at = utc_now()
    other.commit()


# ---------------------------------------------------------------- redemptions

def test_send_and_cancel_race_has_one_winner(
    db_session: Session, session_factory, user_factory, prize_factory, monkeypatch
):
    seller = user_factory(UserRole.SELLER, coin_balance=1000)
    prize = prize_factory(coin_cost=300, stock=2)
    redemption_id = request_redemption(db_session, seller.id, prize.id).id

    slow_sent, inside, release = gate(notifications.redemption_sent)
    monkeypatch.setattr(notifications, "redemption_sent", slow_sent)

    sender, send_errors = spawn(mark_sent, session_factory(), redemption_id)
    assert inside.wait(timeout=5)
    canceller, cancel_errors = spawn(cancel_redemption, session_factory(), redemption_id, CANCEL_REASON)
    time.sleep(0.2)
    release.set()
    sender.join(timeout=10)
    canceller.join(timeout=10)

    assert send_errors == []
    assert [type(e) for e in cancel_errors] == [InvalidRedemptionStateError]
    db_session.expire_all()
    assert db_session.get(Redemption, redemption_id).status == RedemptionStatus.SENT
    assert db_session.get(User, seller.id).coin_balance == 700
    assert db_session.get(Prize, prize.id).stock == 1


def test_cancel_through_a_stale_session_changes_nothing(
    db_session: Session, session_factory, user_factory, prize_factory
):
    seller = user_factory(UserRole.SELLER, coin_balance=1000)
    prize = prize_factory(coin_cost=300, stock=2)
    redemption_id = request_redemption(db_session, seller.id, prize.id).id

    stale = session_factory()
    assert stale.get(Redemption, redemption_id).status == RedemptionStatus.REQUESTED
    mark_sent(db_session, redemption_id)

    # The stale session still believes SOLICITADO; the conditional update does not
    with pytest.raises(InvalidRedemptionStateError, match="ENVIADO"):
        cancel_redemption(stale, redemption_id, CANCEL_REASON)

    db_session.expire_all()
    assert db_session.get(Redemption, redemption_id).status == RedemptionStatus.SENT
    assert db_session.get(User, seller.id).coin_balance == 700
    assert db_session.get(Prize, prize.id).stock == 1


# ---------------------------------------------------------------- balances

def test_redemption_during_card_credit_is_not_overwritten(
    db_session: Session, session_factory, user_factory, campaign_factory, prize_factory, monkeypatch
):
    seller = user_factory(UserRole.SELLER, coin_balance=1000)
    campaign = campaign_factory()
    prize = prize_factory(coin_cost=300)

    slow_multiplier, inside, release = gate(sale_processing.resolve_multiplier)
    monkeypatch.setattr(sale_processing, "resolve_multiplier", slow_multiplier)

    sale, sale_errors = spawn(process_sale_line, session_factory(), seller.id, campaign.id, lens(5))
    assert inside.wait(timeout=5)
    redeem, redeem_errors = spawn(request_redemption, session_factory(), seller.id, prize.id)
    time.sleep(0.2)
    release.set()
    sale.join(timeout=10)
    redeem.join(timeout=10)

    assert sale_errors == [] and redeem_errors == []
    db_session.expire_all()
    fresh = db_session.get(User, seller.id)
    assert fresh.coin_balance == 1000 + 2500 - 300
    assert fresh.ranking_coins == 2500


def test_card_credit_during_redemption_is_not_overwritten(
    db_session: Session, session_factory, user_factory, campaign_factory, prize_factory, monkeypatch
):
    seller = user_factory(UserRole.SELLER, coin_balance=1000)
    campaign = campaign_factory()
    prize = prize_factory(coin_cost=300)

    slow_requested, inside, release = gate(notifications.redemption_requested)
    monkeypatch.setattr(notifications, "redemption_requested", slow_requested)

    redeem, redeem_errors = spawn(request_redemption, session_factory(), seller.id, prize.id)
    assert inside.wait(timeout=5)
    sale, sale_errors = spawn(process_sale_line, session_factory(), seller.id, campaign.id, lens(5))
    time.sleep(0.2)
    release.set()
    redeem.join(timeout=10)
    sale.join(timeout=10)

    assert sale_errors == [] and redeem_errors == []
    db_session.expire_all()
    assert db_session.get(User, seller.id).coin_balance == 3200


# ---------------------------------------------------------------- version conflicts

def test_version_conflict_is_retried_without_paying_twice(
    db_session: Session, session_factory, seller, campaign_factory, monkeypatch
):
    campaign = campaign_factory()
    process_sale_line(db_session, seller.id, campaign.id, lens(1))

    calls = []
    original = sale_processing.allocate_sale

    def conflicting_allocate(state, track, fact):
        calls.append(fact.quantity)
        if len(calls) == 1:
            bump_version(session_factory, seller.id, campaign.id)
        return original(state, track, fact)

    monkeypatch.setattr(sale_processing, "allocate_sale", conflicting_allocate)
    result = process_sale_line(db_session, seller.id, campaign.id, lens(4))

    assert calls == [4, 4]
    assert result.completed_cards == [1]
    assert result.active_card == 2
    db_session.expire_all()
    cards = db_session.query(CompletedCard).filter(CompletedCard.campaign_id == campaign.id).all()
    assert [c.card_number for c in cards] == [1]
    assert db_session.get(User, seller.id).coin_balance == 2500
    seller_entries = (
        db_session.query(LedgerEntry)
        .filter(LedgerEntry.campaign_id == campaign.id, LedgerEntry.entry_type == LedgerEntryType.SELLER)
        .all()
    )
    assert [e.card_number for e in seller_entries] == [1]
    assert db_session.query(SaleRecord).filter(SaleRecord.campaign_id == campaign.id).count() == 2
    assert find_progress(db_session, seller.id, campaign.id).requirements[0].accumulated == 5


def test_persistent_version_conflict_gives_up_and_rolls_back(
    db_session: Session, session_factory, seller, campaign_factory, monkeypatch
):
    campaign = campaign_factory()
    process_sale_line(db_session, seller.id, campaign.id, lens(1))

    calls = []
    original = sale_processing.allocate_sale

    def always_conflicting(state, track, fact):
        calls.append(fact.quantity)
        bump_version(session_factory, seller.id, campaign.id)
        return original(state, track, fact)

    monkeypatch.setattr(sale_processing, "allocate_sale", always_conflicting)
    with pytest.raises(StaleDataError):
        process_sale_line(db_session, seller.id, campaign.id, lens(4))

    assert len(calls) == int(PROGRESSION_SETTINGS["stale_retry_attempts"]) + 1
    db_session.expire_all()
    assert db_session.query(CompletedCard).filter(CompletedCard.campaign_id == campaign.id).count() == 0
    assert db_session.get(User, seller.id).coin_balance == 0
    assert find_progress(db_session, seller.id, campaign.id).requirements[0].accumulated == 1

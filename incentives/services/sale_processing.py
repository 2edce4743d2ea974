"""Sale-line processing orchestrator.

Single public function `process_sale_line(session, seller_id, campaign_id, fact)` that:
1. Serialises on the (seller, campaign) key so progress updates never interleave,
   then on the seller key so crediting never races a redemption. The order is
   always progress lock first, seller lock second.
2. Loads the campaign tree, the seller and the persisted progression state
   (creating an empty one on first use).
3. Rejects sellers outside the campaign's targeting and repeated order numbers.
4. Allocates the line's units through the spillover allocator.
5. Completes cards in order and credits each one with the special-event
   multiplier in force at ``now``.
6. Writes progress back (bumping the optimistic version), records the line
   and commits once.
7. Returns a structured SaleLineResult for the API layer.

Failure policy:
* A misconfigured condition skips the line (recorded as ERRO_CONFIGURACAO);
  no progress is written and nothing is raised.
* StaleDataError / IntegrityError on commit means another writer got there
  first: roll back, reload and retry (PROGRESSION_SETTINGS.stale_retry_attempts),
  then give up and re-raise. A retried line that already completed a card
  finds the CompletedCard row and does not pay twice.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from incentives.config import PROGRESSION_SETTINGS, SYSTEM_TIMEZONE
from incentives.models.db import Campaign, RequirementProgress, SaleRecord, SellerCampaignProgress, User
from incentives.models.db.enums import SaleOutcome, UserRole
from incentives.services.campaign_service import is_campaign_visible
from incentives.services.card_progression import ProgressionState, RequirementSlot, advance
from incentives.services.errors import (
    CampaignNotAvailableError,
    ConditionConfigurationError,
    IncentiveError,
    NotFoundError,
)
from incentives.services.event_resolver import NEUTRAL_MULTIPLIER, resolve_multiplier
from incentives.services.rewards import RewardCredit, credit_card_completion
from incentives.services.rule_types import SaleFact, TrackRule
from incentives.services.spillover import AllocationResult, allocate_sale, sale_units
from incentives.utils import get_logger, log_performance
from incentives.utils.locks import GLOBAL_LOCKS, KeyedLockRegistry, progress_key, seller_key
from incentives.utils.money import quantize, to_decimal
from incentives.utils.time import as_utc, utc_now

logger = get_logger(__name__)


@dataclass
class SaleLineResult:
    outcome: SaleOutcome
    campaign_id: int
    seller_id: int
    active_card: int
    exhausted: bool
    allocations: list[dict] = field(default_factory=list)
    discarded_units: int = 0
    completed_cards: list[int] = field(default_factory=list)
    rewards: list[RewardCredit] = field(default_factory=list)
    multiplier: Decimal = NEUTRAL_MULTIPLIER
    sale_record_id: Optional[int] = None
    detail: Optional[str] = None

    def as_dict(self) -> dict:
        return {
            "outcome": self.outcome.value,
            "campaign_id": self.campaign_id,
            "seller_id": self.seller_id,
            "active_card": self.active_card,
            "exhausted": self.exhausted,
            "allocations": self.allocations,
            "discarded_units": self.discarded_units,
            "completed_cards": self.completed_cards,
            "rewards": [r.as_dict() for r in self.rewards],
            "multiplier": str(self.multiplier),
            "sale_record_id": self.sale_record_id,
            "detail": self.detail,
        }

# ---------------------------------------------------------------- state I/O

def load_state(progress: Optional[SellerCampaignProgress]) -> ProgressionState:
    if progress is None:
        return ProgressionState()
    slots = [
        RequirementSlot(card_number=r.card_number, ordem=r.ordem, target=r.target, accumulated=r.accumulated)
        for r in progress.requirements
    ]
    return ProgressionState.from_slots(slots, active_card=progress.active_card, exhausted=progress.exhausted)


def store_state(progress: SellerCampaignProgress, state: ProgressionState, now: datetime) -> None:
    rows = {(r.card_number, r.ordem): r for r in progress.requirements}
    for key, slot in sorted(state.slots.items()):
        row = rows.get(key)
        if row is None:
            progress.requirements.append(RequirementProgress(
                card_number=slot.card_number, ordem=slot.ordem, target=slot.target, accumulated=slot.accumulated,
            ))
        elif row.accumulated != slot.accumulated or row.target != slot.target:
            row.accumulated = slot.accumulated
            row.target = slot.target
    progress.active_card = state.active_card
    progress.exhausted = state.exhausted
    # Always dirty the parent row so the version check runs even when only children changed
    progress.updated_at = now


def find_progress(session: Session, seller_id: int, campaign_id: int) -> Optional[SellerCampaignProgress]:
    return (
        session.query(SellerCampaignProgress)
        .filter(SellerCampaignProgress.seller_id == seller_id, SellerCampaignProgress.campaign_id == campaign_id)
        .one_or_none()
    )


def _ensure_progress(session: Session, seller_id: int, campaign_id: int) -> SellerCampaignProgress:
    existing = find_progress(session, seller_id, campaign_id)
    if existing is not None:
        return existing
    try:
        progress = SellerCampaignProgress(seller_id=seller_id, campaign_id=campaign_id, active_card=1, exhausted=False)
        session.add(progress)
        session.flush()
        return progress
    except IntegrityError:
        session.rollback()
        return find_progress(session, seller_id, campaign_id)  # type: ignore[return-value]

# ---------------------------------------------------------------- processing

def _record(session: Session, seller_id: int, campaign_id: int, fact: Any, tz_name: str) -> SaleRecord:
    value = to_decimal(getattr(fact, "sale_value", None))
    sold_at = getattr(fact, "sold_at", None)
    record = SaleRecord(
        seller_id=seller_id,
        campaign_id=campaign_id,
        order_number=(getattr(fact, "order_number", None) or "").strip() or None,
        product_name=getattr(fact, "product_name", None),
        product_code=getattr(fact, "product_code", None),
        product_category=getattr(fact, "product_category", None),
        sale_value=quantize(value, 2) if value is not None else None,
        quantity=sale_units(fact),
        preferred_ordem=getattr(fact, "preferred_ordem", None),
        sold_at=as_utc(sold_at, tz_name) if sold_at is not None else None,
        outcome=SaleOutcome.NO_MATCH,
    )
    session.add(record)
    return record


def _outcome(allocation: AllocationResult, state: ProgressionState) -> tuple[SaleOutcome, Optional[str]]:
    if allocation.credited:
        detail = None
        if allocation.discarded:
            detail = f"{allocation.discarded} unit(s) beyond the last card were discarded"
        return SaleOutcome.CREDITED, detail
    if allocation.matched or state.exhausted:
        return SaleOutcome.EXHAUSTED, "All cards for the matching requirement are already complete"
    return SaleOutcome.NO_MATCH, "No requirement matched the sale line"


def _apply_sale_line(
    session: Session,
    seller_id: int,
    campaign_id: int,
    fact: Any,
    now: datetime,
    tz_name: str,
) -> SaleLineResult:
    campaign: Campaign | None = session.get(Campaign, campaign_id)
    if campaign is None:
        raise NotFoundError(f"Campaign {campaign_id} not found")
    seller: User | None = session.get(User, seller_id)
    if seller is None or seller.role != UserRole.SELLER or not seller.is_active:
        raise NotFoundError(f"Active seller {seller_id} not found")
    if not is_campaign_visible(campaign, seller):
        raise CampaignNotAvailableError(f"Campaign {campaign_id} is not targeted at seller {seller_id}")

    order_number = (getattr(fact, "order_number", None) or "").strip() or None
    if order_number:
        duplicate = (
            session.query(SaleRecord)
            .filter(
                SaleRecord.seller_id == seller_id,
                SaleRecord.campaign_id == campaign_id,
                SaleRecord.order_number == order_number,
            )
            .first()
        )
        if duplicate is not None:
            logger.info(
                "Duplicate order ignored", seller_id=seller_id, campaign_id=campaign_id, order_number=order_number
            )
            progress = find_progress(session, seller_id, campaign_id)
            return SaleLineResult(
                outcome=SaleOutcome.DUPLICATE,
                campaign_id=campaign_id,
                seller_id=seller_id,
                active_card=progress.active_card if progress else 1,
                exhausted=progress.exhausted if progress else False,
                sale_record_id=duplicate.id,
                detail=f"Order {order_number} was already processed",
            )

    progress = _ensure_progress(session, seller_id, campaign_id)
    state = load_state(progress)
    track = TrackRule.from_campaign(campaign)
    record = _record(session, seller_id, campaign_id, fact, tz_name)

    try:
        allocation = allocate_sale(state, track, fact)
    except ConditionConfigurationError as exc:
        logger.error(
            "Misconfigured condition; sale line skipped",
            seller_id=seller_id,
            campaign_id=campaign_id,
            error=str(exc),
        )
        record.outcome = SaleOutcome.SKIPPED_CONFIG_ERROR
        record.detail = str(exc)
        session.flush()
        return SaleLineResult(
            outcome=SaleOutcome.SKIPPED_CONFIG_ERROR,
            campaign_id=campaign_id,
            seller_id=seller_id,
            active_card=progress.active_card,
            exhausted=progress.exhausted,
            sale_record_id=record.id,
            detail=str(exc),
        )

    completed = advance(state, track)
    multiplier = resolve_multiplier(campaign, campaign.events, now) if completed else NEUTRAL_MULTIPLIER
    credits: list[RewardCredit] = []
    for card_number in completed:
        credit = credit_card_completion(
            session, campaign=campaign, seller=seller, card_number=card_number, multiplier=multiplier, now=now,
        )
        if credit is not None:
            credits.append(credit)

    store_state(progress, state, now)
    outcome, detail = _outcome(allocation, state)
    record.outcome = outcome
    record.allocations = [a.as_dict() for a in allocation.allocations]
    record.detail = detail
    session.flush()

    if state.exhausted and completed:
        logger.info("Seller reached the last card", seller_id=seller_id, campaign_id=campaign_id)

    return SaleLineResult(
        outcome=outcome,
        campaign_id=campaign_id,
        seller_id=seller_id,
        active_card=state.active_card,
        exhausted=state.exhausted,
        allocations=[a.as_dict() for a in allocation.allocations],
        discarded_units=allocation.discarded,
        completed_cards=completed,
        rewards=credits,
        multiplier=multiplier,
        sale_record_id=record.id,
        detail=detail,
    )


def process_sale_line(
    session: Session,
    seller_id: int,
    campaign_id: int,
    fact: SaleFact,
    now: Optional[datetime] = None,
    *,
    tz_name: str = SYSTEM_TIMEZONE,
    locks: KeyedLockRegistry = GLOBAL_LOCKS,
) -> SaleLineResult:
    """Apply one validated sale line to a seller's campaign progress and commit."""
    now = now or utc_now()
    started = time.time()
    max_retries = int(PROGRESSION_SETTINGS.get("stale_retry_attempts", 1))

    with locks.hold(progress_key(seller_id, campaign_id)), locks.hold(seller_key(seller_id)):
        attempt = 0
        while True:
            try:
                result = _apply_sale_line(session, seller_id, campaign_id, fact, now, tz_name)
                session.commit()
                break
            except IncentiveError:
                session.rollback()
                raise
            except (StaleDataError, IntegrityError) as exc:
                session.rollback()
                if attempt >= max_retries:
                    logger.error(
                        "Sale line conflicted on every attempt; aborting",
                        seller_id=seller_id,
                        campaign_id=campaign_id,
                        attempts=attempt + 1,
                        error=str(exc),
                    )
                    raise
                attempt += 1
                logger.warning(
                    "Concurrent progress update detected; retrying sale line",
                    seller_id=seller_id,
                    campaign_id=campaign_id,
                    attempt=attempt,
                    error_type=type(exc).__name__,
                )

    log_performance(
        operation="process_sale_line",
        duration_ms=(time.time() - started) * 1000,
        additional_data={
            "seller_id": seller_id,
            "campaign_id": campaign_id,
            "outcome": result.outcome.value,
            "completed_cards": len(result.completed_cards),
        },
    )
    return result


__all__ = ["SaleLineResult", "process_sale_line", "load_state", "store_state", "find_progress"]

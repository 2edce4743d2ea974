"""Financial ledger: listing, settlement and KPIs.

Entries are generated by reward crediting (one VENDEDOR row per completed
card with a real amount, one GERENTE row when the seller has a manager).
This module only reads them and moves them from PENDENTE to PAGO.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from incentives.config import LEDGER_SETTINGS, SYSTEM_TIMEZONE
from incentives.models.db import LedgerEntry
from incentives.models.db.enums import LedgerEntryType, LedgerStatus
from incentives.services import notifications
from incentives.services.errors import AlreadyPaidError, LedgerError, NotFoundError
from incentives.utils import get_logger, log_business_event
from incentives.utils.time import local_day_bounds, utc_now

logger = get_logger(__name__)


@dataclass
class LedgerFilters:
    status: Optional[LedgerStatus] = None
    campaign_id: Optional[int] = None
    beneficiary_id: Optional[int] = None
    entry_type: Optional[LedgerEntryType] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None


def _filtered(session: Session, filters: LedgerFilters, tz_name: str):
    query = session.query(LedgerEntry)
    if filters.status is not None:
        query = query.filter(LedgerEntry.status == filters.status)
    if filters.campaign_id is not None:
        query = query.filter(LedgerEntry.campaign_id == filters.campaign_id)
    if filters.beneficiary_id is not None:
        query = query.filter(LedgerEntry.beneficiary_id == filters.beneficiary_id)
    if filters.entry_type is not None:
        query = query.filter(LedgerEntry.entry_type == filters.entry_type)
    # Date filters select whole local days
    if filters.date_from is not None:
        start, _ = local_day_bounds(filters.date_from, tz_name)
        query = query.filter(LedgerEntry.generated_at >= start)
    if filters.date_to is not None:
        _, end = local_day_bounds(filters.date_to, tz_name)
        query = query.filter(LedgerEntry.generated_at < end)
    return query


def list_entries(
    session: Session,
    filters: Optional[LedgerFilters] = None,
    limit: int = 50,
    offset: int = 0,
    tz_name: str = SYSTEM_TIMEZONE,
) -> list[LedgerEntry]:
    filters = filters or LedgerFilters()
    if filters.date_from and filters.date_to and filters.date_from > filters.date_to:
        raise LedgerError("date_from must not be after date_to")
    limit = min(max(limit, 1), int(LEDGER_SETTINGS["max_page_size"]))
    return (
        _filtered(session, filters, tz_name)
        .order_by(LedgerEntry.generated_at.desc(), LedgerEntry.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )


def _settle(session: Session, entry: LedgerEntry, now: datetime, notes: Optional[str]) -> None:
    entry.status = LedgerStatus.PAID
    entry.paid_at = now
    if notes:
        entry.notes = notes.strip()
    notifications.ledger_paid(session, entry.beneficiary_id, entry.amount)


def mark_paid(session: Session, entry_id: int, notes: Optional[str] = None, now: Optional[datetime] = None) -> LedgerEntry:
    now = now or utc_now()
    entry = session.query(LedgerEntry).filter(LedgerEntry.id == entry_id).with_for_update().one_or_none()
    if entry is None:
        raise NotFoundError(f"Ledger entry {entry_id} not found")
    if entry.status == LedgerStatus.PAID:
        session.rollback()
        raise AlreadyPaidError(f"Ledger entry {entry_id} is already paid")
    _settle(session, entry, now, notes)
    session.commit()
    session.refresh(entry)
    log_business_event(
        event_type="ledger_entry_paid",
        details={"entry_id": entry.id, "amount": entry.amount, "beneficiary_id": entry.beneficiary_id},
    )
    return entry


def mark_many_paid(
    session: Session,
    entry_ids: Iterable[int],
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> list[LedgerEntry]:
    """Settle several entries in one transaction; any missing or paid entry aborts the whole batch."""
    now = now or utc_now()
    ids = sorted(set(entry_ids))
    if not ids:
        raise LedgerError("No ledger entries given")
    entries = (
        session.query(LedgerEntry)
        .filter(LedgerEntry.id.in_(ids))
        .order_by(LedgerEntry.id)
        .with_for_update()
        .all()
    )
    missing = set(ids) - {e.id for e in entries}
    if missing:
        session.rollback()
        raise NotFoundError(f"Ledger entries not found: {sorted(missing)}")
    paid = [e.id for e in entries if e.status == LedgerStatus.PAID]
    if paid:
        session.rollback()
        raise AlreadyPaidError(f"Ledger entries already paid: {paid}")
    for entry in entries:
        _settle(session, entry, now, notes)
    session.commit()
    total = sum((e.amount for e in entries), Decimal("0"))
    log_business_event(
        event_type="ledger_bulk_paid",
        details={"entry_ids": ids, "count": len(entries), "total": total},
    )
    return entries


def kpis(session: Session, now: Optional[datetime] = None, beneficiary_id: Optional[int] = None) -> dict:
    now = now or utc_now()
    window_days = int(LEDGER_SETTINGS["paid_kpi_window_days"])
    since = now - timedelta(days=window_days)

    pending = session.query(func.coalesce(func.sum(LedgerEntry.amount), 0), func.count(LedgerEntry.id)).filter(
        LedgerEntry.status == LedgerStatus.PENDING
    )
    paid = session.query(func.coalesce(func.sum(LedgerEntry.amount), 0)).filter(
        LedgerEntry.status == LedgerStatus.PAID, LedgerEntry.paid_at >= since
    )
    if beneficiary_id is not None:
        pending = pending.filter(LedgerEntry.beneficiary_id == beneficiary_id)
        paid = paid.filter(LedgerEntry.beneficiary_id == beneficiary_id)

    pending_total, pending_count = pending.one()
    paid_total = paid.scalar()
    return {
        "pending_total": Decimal(str(pending_total)).quantize(Decimal("0.01")),
        "pending_count": int(pending_count or 0),
        "paid_last_window_total": Decimal(str(paid_total)).quantize(Decimal("0.01")),
        "window_days": window_days,
    }


__all__ = ["LedgerFilters", "list_entries", "mark_paid", "mark_many_paid", "kpis"]

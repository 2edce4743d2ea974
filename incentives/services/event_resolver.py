"""Special-event multiplier resolution and overlap detection.

Activity window is inclusive on both ends: an event is in force at ``t`` when
it is active and ``start <= t <= end``.

Overlap between two events uses half-open intervals ``[start, end)``, so an
event ending exactly when the next starts does not conflict with it, while
identical or nested windows do.

Stored instants may come back naive from SQLite; naive values are read as
UTC.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable, Optional

from incentives.models.db.enums import EventState
from incentives.utils.logger import get_logger
from incentives.utils.time import as_utc

logger = get_logger(__name__)

NEUTRAL_MULTIPLIER = Decimal("1.0")


def _start(event: Any) -> datetime:
    return as_utc(event.start_at)


def _end(event: Any) -> datetime:
    return as_utc(event.end_at)


def is_in_force(event: Any, instant: datetime) -> bool:
    if not getattr(event, "active", True):
        return False
    at = as_utc(instant)
    return _start(event) <= at <= _end(event)


def active_events(events: Iterable[Any], instant: datetime, campaign_id: Optional[int] = None) -> list[Any]:
    found = []
    for event in events:
        if campaign_id is not None and getattr(event, "campaign_id", None) not in (None, campaign_id):
            continue
        if is_in_force(event, instant):
            found.append(event)
    return found


def resolve_multiplier(campaign: Any, events: Iterable[Any], instant: datetime) -> Decimal:
    """Multiplier applying to rewards credited at ``instant``.

    No event in force gives 1.0; one gives its multiplier; several (which
    only happens if the overlap guard was bypassed) give the highest one,
    never the sum.
    """
    campaign_id = getattr(campaign, "id", None) if campaign is not None else None
    in_force = active_events(events, instant, campaign_id=campaign_id)
    if not in_force:
        return NEUTRAL_MULTIPLIER
    if len(in_force) > 1:
        logger.warning(
            "Multiple special events in force; using the highest multiplier",
            campaign_id=campaign_id,
            event_ids=[getattr(e, "id", None) for e in in_force],
            instant=as_utc(instant).isoformat(),
        )
    return max(Decimal(str(e.multiplier)) for e in in_force)


def overlaps(a: Any, b: Any) -> bool:
    return _start(a) < _end(b) and _start(b) < _end(a)


def find_overlaps(candidate: Any, others: Iterable[Any], exclude_id: Optional[int] = None) -> list[Any]:
    """Active events among ``others`` whose window overlaps ``candidate``.

    An inactive candidate conflicts with nothing.
    """
    if not getattr(candidate, "active", True):
        return []
    conflicts = []
    for other in others:
        if exclude_id is not None and getattr(other, "id", None) == exclude_id:
            continue
        if not getattr(other, "active", True):
            continue
        if overlaps(candidate, other):
            conflicts.append(other)
    return conflicts


def event_state(event: Any, instant: datetime) -> EventState:
    at = as_utc(instant)
    if not getattr(event, "active", True):
        return EventState.PAUSED
    if at < _start(event):
        return EventState.SCHEDULED
    if at > _end(event):
        return EventState.FINISHED
    return EventState.RUNNING


__all__ = [
    "NEUTRAL_MULTIPLIER",
    "is_in_force",
    "active_events",
    "resolve_multiplier",
    "overlaps",
    "find_overlaps",
    "event_state",
]

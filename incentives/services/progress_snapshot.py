"""Read-only progression view for one seller in one campaign."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy.orm import Session

from incentives.config import PROGRESSION_SETTINGS
from incentives.models.db.enums import RequirementStatus
from incentives.services.card_progression import (
    ProgressionState,
    card_ordens,
    cards_with_ordem,
    last_card,
    requirement_template,
    target_for,
)
from incentives.services.event_resolver import active_events, resolve_multiplier
from incentives.services.rule_types import TrackRule
from incentives.services.sale_processing import find_progress, load_state
from incentives.utils.time import as_utc, utc_now


def displayed_cards(track: TrackRule, state: ProgressionState, preview: int) -> list[int]:
    """Manual tracks show every card; auto tracks show the last completed card plus a preview window."""
    if not track.is_auto:
        return [c.number for c in sorted(track.cards, key=lambda c: c.number)]
    first = max(1, state.active_card - 1)
    last = state.active_card + max(preview, 1) - 1
    if track.ceiling is not None:
        last = min(last, track.ceiling)
        first = min(first, last)
    return list(range(first, last + 1))


def _previous_card(track: TrackRule, number: int, ordem: int) -> Optional[int]:
    previous = None
    for candidate in cards_with_ordem(track, ordem):
        if candidate >= number:
            break
        previous = candidate
    return previous


def _requirement_view(track: TrackRule, state: ProgressionState, number: int, ordem: int) -> dict:
    slot = state.slot(number, ordem)
    target = slot.target if slot is not None else target_for(track, number, ordem)
    accumulated = slot.accumulated if slot is not None else 0
    if accumulated >= target:
        status = RequirementStatus.COMPLETE
    else:
        prev = _previous_card(track, number, ordem)
        prev_slot = state.slot(prev, ordem) if prev is not None else None
        prev_full = prev is None or prev < state.active_card or (prev_slot is not None and prev_slot.is_full)
        status = RequirementStatus.ACTIVE if prev_full else RequirementStatus.LOCKED
    template = requirement_template(track, number, ordem)
    return {
        "ordem": ordem,
        "description": template.description if template else "",
        "unit": template.unit.value if template else None,
        "accumulated": accumulated,
        "target": target,
        "percent": min(100, (accumulated * 100) // target) if target else 100,
        "status": status.value,
    }


def build_snapshot(
    campaign: Any,
    state: ProgressionState,
    now: Optional[datetime] = None,
    preview: Optional[int] = None,
) -> dict:
    now = now or utc_now()
    track = TrackRule.from_campaign(campaign)
    preview = preview if preview is not None else int(PROGRESSION_SETTINGS.get("preview_cards", 3))
    cards = []
    for number in displayed_cards(track, state, preview):
        requirements = [_requirement_view(track, state, number, ordem) for ordem in card_ordens(track, number)]
        card_def = track.card(1) if track.is_auto else track.card(number)
        cards.append({
            "number": number,
            "description": card_def.description if card_def else "",
            "is_active": number == state.active_card and not state.exhausted,
            "complete": bool(requirements) and all(r["status"] == RequirementStatus.COMPLETE.value for r in requirements),
            "requirements": requirements,
        })
    events = active_events(campaign.events, now, campaign_id=campaign.id)
    total = last_card(track)
    return {
        "campaign_id": campaign.id,
        "title": campaign.title,
        "card_mode": track.mode.value,
        "active_card": state.active_card,
        "completed_cards": state.active_card - 1,
        "total_cards": total,
        "exhausted": state.exhausted,
        "multiplier": str(resolve_multiplier(campaign, campaign.events, now)),
        "active_events": [
            {
                "id": e.id,
                "name": e.name,
                "multiplier": str(e.multiplier),
                "end_at": as_utc(e.end_at).isoformat(),
                "highlight_color": e.highlight_color,
            }
            for e in events
        ],
        "cards": cards,
    }


def seller_snapshot(session: Session, campaign: Any, seller_id: int, now: Optional[datetime] = None) -> dict:
    state = load_state(find_progress(session, seller_id, campaign.id))
    snapshot = build_snapshot(campaign, state, now=now)
    snapshot["seller_id"] = seller_id
    return snapshot


__all__ = ["displayed_cards", "build_snapshot", "seller_snapshot"]

"""Card progression engine (pure).

State per seller x campaign is ``ProgressionState``: the active card number
plus one ``RequirementSlot`` per (card number, ordem) that has been
materialised. Slots are created lazily the first time a card is touched, so
an auto-replicating track with no ceiling never pre-computes cards.

Targets:
* MANUAL: the stored requirement's quantity for that card.
* AUTO_REPLICANTE, SEM_INCREMENTO: card 1's quantity for every card.
* AUTO_REPLICANTE, MULTIPLICADOR: ``base + (N - 1) * factor``.

A card is complete when every one of its requirements is full. Completion
is processed strictly in card order by ``advance``: the active card
completes, the pointer moves to N + 1, and if N + 1 was already full it
completes immediately as well. Moving past the ceiling (auto) or the last
defined card (manual) marks the track exhausted, which is a normal terminal
state rather than an error.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional

from incentives.models.db.enums import IncrementType
from incentives.services.rule_types import RequirementRule, TrackRule


@dataclass
class RequirementSlot:
    card_number: int
    ordem: int
    target: int
    accumulated: int = 0

    @property
    def remaining(self) -> int:
        return max(self.target - self.accumulated, 0)

    @property
    def is_full(self) -> bool:
        return self.accumulated >= self.target


@dataclass
class ProgressionState:
    active_card: int = 1
    exhausted: bool = False
    slots: Dict[tuple[int, int], RequirementSlot] = field(default_factory=dict)

    def slot(self, card_number: int, ordem: int) -> Optional[RequirementSlot]:
        return self.slots.get((card_number, ordem))

    def card_slots(self, card_number: int) -> list[RequirementSlot]:
        return sorted(
            (s for (n, _), s in self.slots.items() if n == card_number),
            key=lambda s: s.ordem,
        )

    @classmethod
    def from_slots(cls, slots: Iterable[RequirementSlot], active_card: int = 1, exhausted: bool = False) -> "ProgressionState":
        return cls(
            active_card=active_card,
            exhausted=exhausted,
            slots={(s.card_number, s.ordem): s for s in slots},
        )


# ---------------------------------------------------------------- card layout

def card_exists(track: TrackRule, number: int) -> bool:
    if number < 1:
        return False
    if track.is_auto:
        return track.ceiling is None or number <= track.ceiling
    return track.card(number) is not None


def last_card(track: TrackRule) -> Optional[int]:
    """Highest card number, or None for an unbounded auto-replicating track."""
    if track.is_auto:
        return track.ceiling
    return max((c.number for c in track.cards), default=0)


def requirement_template(track: TrackRule, number: int, ordem: int) -> Optional[RequirementRule]:
    """The requirement definition governing (card ``number``, ``ordem``)."""
    if not card_exists(track, number):
        return None
    if track.is_auto:
        base = track.card(1)
        return base.requirement(ordem) if base else None
    card = track.card(number)
    return card.requirement(ordem) if card else None


def card_ordens(track: TrackRule, number: int) -> list[int]:
    if not card_exists(track, number):
        return []
    card = track.card(1) if track.is_auto else track.card(number)
    return [r.ordem for r in card.requirements] if card else []


def target_for(track: TrackRule, number: int, ordem: int) -> int:
    template = requirement_template(track, number, ordem)
    if template is None:
        raise ValueError(f"Card {number} has no requirement with ordem {ordem}")
    if track.is_auto and track.increment_type == IncrementType.MULTIPLIER:
        factor = int(track.increment_factor or 0)
        return template.quantity + (number - 1) * factor
    return template.quantity


def cards_with_ordem(track: TrackRule, ordem: int, start: int = 1):
    """Card numbers (ascending, from ``start``) that carry ``ordem``.

    Unbounded for an auto-replicating track without ceiling; callers stop
    iterating once they find what they need.
    """
    if track.is_auto:
        if requirement_template(track, 1, ordem) is None:
            return
        number = max(start, 1)
        while card_exists(track, number):
            yield number
            number += 1
        return
    for card in sorted(track.cards, key=lambda c: c.number):
        if card.number >= start and card.requirement(ordem) is not None:
            yield card.number


# ------------------------------------------------------------- materialising

def materialize(state: ProgressionState, track: TrackRule, number: int) -> list[RequirementSlot]:
    """Ensure every requirement slot of card ``number`` exists; return them."""
    for ordem in card_ordens(track, number):
        if (number, ordem) not in state.slots:
            state.slots[(number, ordem)] = RequirementSlot(
                card_number=number, ordem=ordem, target=target_for(track, number, ordem)
            )
    return state.card_slots(number)


def is_card_complete(state: ProgressionState, track: TrackRule, number: int) -> bool:
    slots = materialize(state, track, number)
    return bool(slots) and all(s.is_full for s in slots)


def advance(state: ProgressionState, track: TrackRule) -> list[int]:
    """Complete every card that is full starting at the active one.

    Returns the newly completed card numbers in order. Idempotent: calling
    again without new units returns an empty list.
    """
    completed: list[int] = []
    if state.exhausted:
        return completed
    if not card_exists(track, state.active_card):
        state.exhausted = True
        return completed
    while is_card_complete(state, track, state.active_card):
        completed.append(state.active_card)
        state.active_card += 1
        if not card_exists(track, state.active_card):
            state.exhausted = True
            break
    return completed


__all__ = [
    "RequirementSlot",
    "ProgressionState",
    "card_exists",
    "last_card",
    "requirement_template",
    "card_ordens",
    "target_for",
    "cards_with_ordem",
    "materialize",
    "is_card_complete",
    "advance",
]

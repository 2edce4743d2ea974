"""Spillover allocation of matching sale units across card instances.

Requirements that share an ``ordem`` across cards form a group. Units for a
group always go to the lowest-numbered card whose slot still has room (the
"frontier"); once it fills, the rest flows to the next card carrying that
ordem. A card N + 1 slot therefore never receives a unit while card N's slot
for the same ordem has room.

Before crediting a frontier slot the sale line is matched against *that*
card's requirement (manual cards may define different conditions per card),
so a multi-unit line can stop part-way when the next card does not match.

Units with nowhere to go (past the ceiling, or past the last manual card
with that ordem) are discarded and reported.

Groups: with no preferred ordem on the line every matching group is credited
independently. With a preferred ordem that group is tried first and, if its
frontier requirement does not match, the remaining groups are tried in
ascending ordem; only the first matching group is credited.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from incentives.services.card_progression import (
    ProgressionState,
    RequirementSlot,
    cards_with_ordem,
    materialize,
    requirement_template,
)
from incentives.services.requirement_matcher import accumulate, matches
from incentives.services.rule_types import TrackRule


@dataclass
class Allocation:
    ordem: int
    card_number: int
    units: int

    def as_dict(self) -> dict:
        return {"ordem": self.ordem, "card_number": self.card_number, "units": self.units}


@dataclass
class GroupOutcome:
    ordem: int
    matched: bool
    allocations: list[Allocation] = field(default_factory=list)
    discarded: int = 0

    @property
    def credited(self) -> int:
        return sum(a.units for a in self.allocations)


@dataclass
class AllocationResult:
    groups: list[GroupOutcome] = field(default_factory=list)

    @property
    def allocations(self) -> list[Allocation]:
        return [a for g in self.groups for a in g.allocations]

    @property
    def credited(self) -> int:
        return sum(g.credited for g in self.groups)

    @property
    def discarded(self) -> int:
        return sum(g.discarded for g in self.groups)

    @property
    def matched(self) -> bool:
        return any(g.matched for g in self.groups)


def frontier(state: ProgressionState, track: TrackRule, ordem: int) -> Optional[RequirementSlot]:
    """First slot for ``ordem`` with room, materialising cards lazily.

    Cards before the active card are complete, so the scan starts there.
    """
    for number in cards_with_ordem(track, ordem, start=state.active_card):
        materialize(state, track, number)
        slot = state.slot(number, ordem)
        if slot is not None and not slot.is_full:
            return slot
    return None


def _last_template(track: TrackRule, ordem: int):
    last = None
    for card in track.cards:
        req = card.requirement(ordem)
        if req is not None:
            last = req
    return last


def allocate_group(state: ProgressionState, track: TrackRule, fact: Any, ordem: int, units: int) -> GroupOutcome:
    outcome = GroupOutcome(ordem=ordem, matched=False)
    remaining = units
    while remaining > 0:
        slot = frontier(state, track, ordem)
        if slot is None:
            # Track for this ordem is full; report whether the unit would have counted
            if not outcome.matched:
                template = _last_template(track, ordem)
                outcome.matched = template is not None and matches(template, fact)
            if outcome.matched:
                outcome.discarded = remaining
            break
        template = requirement_template(track, slot.card_number, ordem)
        if template is None or not matches(template, fact):
            break
        outcome.matched = True
        overflow = accumulate(slot, remaining)
        outcome.allocations.append(Allocation(ordem=ordem, card_number=slot.card_number, units=remaining - overflow))
        remaining = overflow
    return outcome


def sale_units(fact: Any) -> int:
    """Units on a sale line; a missing quantity counts as one, an explicit 0 as none."""
    quantity = getattr(fact, "quantity", None)
    return 1 if quantity is None else int(quantity)


def allocate_sale(state: ProgressionState, track: TrackRule, fact: Any) -> AllocationResult:
    """Apply one sale line to ``state`` in place.

    Raises ConditionConfigurationError (from the evaluator) if a stored
    condition cannot be evaluated; ``state`` may then be partially updated and
    must be discarded by the caller.
    """
    units = sale_units(fact)
    result = AllocationResult()
    if state.exhausted or units <= 0:
        return result
    ordens = track.ordens()
    preferred = getattr(fact, "preferred_ordem", None)
    if preferred is None:
        for ordem in ordens:
            result.groups.append(allocate_group(state, track, fact, ordem, units))
        return result

    ordered = ([preferred] if preferred in ordens else []) + [o for o in ordens if o != preferred]
    for ordem in ordered:
        group = allocate_group(state, track, fact, ordem, units)
        result.groups.append(group)
        if group.matched:
            break
    return result


__all__ = [
    "Allocation",
    "GroupOutcome",
    "AllocationResult",
    "frontier",
    "allocate_group",
    "allocate_sale",
    "sale_units",
]

"""Immutable rule snapshots consumed by the pure progression functions.

The ORM tree (Campaign -> Card -> Requirement -> Condition) is converted once
per sale line into these frozen dataclasses so the evaluator, matcher,
progression engine and spillover allocator never touch a Session and can be
unit-tested with plain values.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from incentives.models.db.enums import (
    CardMode,
    ConditionField,
    ConditionOperator,
    IncrementType,
    UnitKind,
)


@dataclass(frozen=True)
class SaleFact:
    """One validated sale line as seen by the condition evaluator."""
    product_name: Optional[str] = None
    product_code: Optional[str] = None
    product_category: Optional[str] = None
    sale_value: Any = None
    quantity: int = 1
    order_number: Optional[str] = None
    preferred_ordem: Optional[int] = None
    sold_at: Optional[datetime] = None


@dataclass(frozen=True)
class ConditionRule:
    field: ConditionField
    operator: ConditionOperator
    value: str


@dataclass(frozen=True)
class RequirementRule:
    ordem: int
    quantity: int
    conditions: tuple[ConditionRule, ...]
    unit: UnitKind = UnitKind.UNIT
    description: str = ""


@dataclass(frozen=True)
class CardRule:
    number: int
    requirements: tuple[RequirementRule, ...]
    description: str = ""

    def requirement(self, ordem: int) -> Optional[RequirementRule]:
        for req in self.requirements:
            if req.ordem == ordem:
                return req
        return None


@dataclass(frozen=True)
class TrackRule:
    """How cards are laid out for one campaign."""
    mode: CardMode
    cards: tuple[CardRule, ...]
    increment_type: IncrementType = IncrementType.NONE
    increment_factor: Optional[int] = None
    ceiling: Optional[int] = None
    _card_index: dict = field(default_factory=dict, compare=False, repr=False)

    def __post_init__(self):
        self._card_index.update({card.number: card for card in self.cards})

    @property
    def is_auto(self) -> bool:
        return self.mode == CardMode.AUTO_REPLICATING

    def card(self, number: int) -> Optional[CardRule]:
        return self._card_index.get(number)

    def ordens(self) -> list[int]:
        seen: set[int] = set()
        for card in self.cards:
            seen.update(req.ordem for req in card.requirements)
        return sorted(seen)

    @classmethod
    def from_campaign(cls, campaign) -> "TrackRule":
        cards = tuple(
            CardRule(
                number=card.number,
                description=card.description or "",
                requirements=tuple(
                    RequirementRule(
                        ordem=req.ordem,
                        quantity=req.quantity,
                        unit=req.unit,
                        description=req.description or "",
                        conditions=tuple(
                            ConditionRule(field=c.field, operator=c.operator, value=c.value)
                            for c in req.conditions
                        ),
                    )
                    for req in sorted(card.requirements, key=lambda r: r.ordem)
                ),
            )
            for card in sorted(campaign.cards, key=lambda c: c.number)
        )
        return cls(
            mode=campaign.card_mode,
            cards=cards,
            increment_type=campaign.increment_type or IncrementType.NONE,
            increment_factor=campaign.increment_factor,
            ceiling=campaign.card_ceiling,
        )


@dataclass(frozen=True)
class EventWindow:
    start_at: datetime
    end_at: datetime
    multiplier: Decimal = Decimal("1.0")
    active: bool = True
    campaign_id: Optional[int] = None
    id: Optional[int] = None
    name: str = ""


__all__ = [
    "SaleFact",
    "ConditionRule",
    "RequirementRule",
    "CardRule",
    "TrackRule",
    "EventWindow",
]

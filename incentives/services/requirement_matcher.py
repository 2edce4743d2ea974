"""Requirement matching: all conditions of a requirement must hold (logical AND)."""
from __future__ import annotations

from typing import Any, Optional

from incentives.services.condition_evaluator import evaluate


def first_failure(requirement: Any, fact: Any) -> Optional[Any]:
    """Return the first condition ``fact`` does not satisfy, or None.

    Evaluation stops at the first failure; later conditions are never
    evaluated (so a misconfigured condition after a failing one goes
    unnoticed for that fact).
    """
    for condition in requirement.conditions:
        if not evaluate(condition, fact):
            return condition
    return None


def matches(requirement: Any, fact: Any) -> bool:
    return first_failure(requirement, fact) is None


def explain(requirement: Any, fact: Any) -> Optional[str]:
    failed = first_failure(requirement, fact)
    if failed is None:
        return None
    field = getattr(failed.field, "value", failed.field)
    operator = getattr(failed.operator, "value", failed.operator)
    return f"{field} {operator} '{failed.value}' not satisfied"


def accumulate(slot: Any, units: int) -> int:
    """Credit up to ``units`` to ``slot`` without passing its target.

    Returns the units that did not fit (the spillover candidate).
    """
    if units <= 0:
        return 0
    room = max(slot.target - slot.accumulated, 0)
    credited = min(room, units)
    slot.accumulated += credited
    return units - credited


__all__ = ["matches", "first_failure", "explain", "accumulate"]

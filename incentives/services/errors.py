"""Domain exceptions raised by the service layer.

Endpoints translate these into HTTP responses; services never raise
HTTPException themselves.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:  # pragma: no cover
    from .definition_validators import ValidationFailure


class IncentiveError(Exception):
    """Base class for expected business-rule violations."""


class NotFoundError(IncentiveError):
    pass


class CampaignDefinitionError(IncentiveError):
    """A campaign or special-event definition broke one or more rules.

    Carries every failure found, not just the first.
    """

    def __init__(self, failures: Sequence["ValidationFailure"], message: str = "Campaign definition is invalid"):
        super().__init__(message)
        self.failures = list(failures)

    def as_dicts(self) -> list[dict]:
        return [f.as_dict() for f in self.failures]


class ConditionConfigurationError(IncentiveError):
    """A stored condition pairs a field with an operator that cannot apply to it."""


class CampaignNotAvailableError(IncentiveError):
    """The campaign exists but is not targeted at the seller's optician."""


class RedemptionError(IncentiveError):
    pass


class InsufficientBalanceError(RedemptionError):
    pass


class OutOfStockError(RedemptionError):
    pass


class InvalidRedemptionStateError(RedemptionError):
    pass


class LedgerError(IncentiveError):
    pass


class AlreadyPaidError(LedgerError):
    pass


__all__ = [
    "IncentiveError",
    "NotFoundError",
    "CampaignDefinitionError",
    "ConditionConfigurationError",
    "CampaignNotAvailableError",
    "RedemptionError",
    "InsufficientBalanceError",
    "OutOfStockError",
    "InvalidRedemptionStateError",
    "LedgerError",
    "AlreadyPaidError",
]

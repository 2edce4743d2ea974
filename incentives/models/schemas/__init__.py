from .base import ResponseBase, FieldError, ValidationErrorResponse
from .users import OpticianCreate, OpticianRead, UserCreate, UserRead, UserCreated
from .campaigns import (
    ConditionCreate,
    RequirementCreate,
    CardCreate,
    SpecialEventCreate,
    SpecialEventUpdate,
    EventToggle,
    CampaignCreate,
    CampaignRead,
    CampaignReadWithRelations,
    SpecialEventRead,
)
from .sales import SaleLineSubmit
from .redemptions import PrizeCreate, PrizeRead, RedemptionCreate, RedemptionCancel, RedemptionRead
from .ledger import LedgerEntryRead, LedgerPay, LedgerBulkPay, LedgerKpis
from .ranking import RankingEntryRead, RankingPageRead, OpticianStandingRead

__all__ = [
    # Base
    "ResponseBase",
    "FieldError",
    "ValidationErrorResponse",

    # Users
    "OpticianCreate",
    "OpticianRead",
    "UserCreate",
    "UserRead",
    "UserCreated",

    # Campaigns
    "ConditionCreate",
    "RequirementCreate",
    "CardCreate",
    "SpecialEventCreate",
    "SpecialEventUpdate",
    "EventToggle",
    "CampaignCreate",
    "CampaignRead",
    "CampaignReadWithRelations",
    "SpecialEventRead",

    # Sales
    "SaleLineSubmit",

    # Redemptions
    "PrizeCreate",
    "PrizeRead",
    "RedemptionCreate",
    "RedemptionCancel",
    "RedemptionRead",

    # Ledger
    "LedgerEntryRead",
    "LedgerPay",
    "LedgerBulkPay",
    "LedgerKpis",

    # Ranking
    "RankingEntryRead",
    "RankingPageRead",
    "OpticianStandingRead",
]

from .users import User, Optician
from .campaigns import Campaign, Card, Requirement, Condition, campaign_optician_association
from .events import SpecialEvent
from .progress import SellerCampaignProgress, RequirementProgress, CompletedCard
from .sales import SaleRecord
from .ledger import LedgerEntry
from .prizes import Prize, Redemption
from .notifications import Notification

__all__ = [
    "User",
    "Optician",
    "Campaign",
    "Card",
    "Requirement",
    "Condition",
    "campaign_optician_association",
    "SpecialEvent",
    "SellerCampaignProgress",
    "RequirementProgress",
    "CompletedCard",
    "SaleRecord",
    "LedgerEntry",
    "Prize",
    "Redemption",
    "Notification",
]

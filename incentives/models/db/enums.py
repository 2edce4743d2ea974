"""Central Enum definitions for core domain states.

Wire values keep the domain vocabulary used by the clients (Portuguese);
Python member names are English.
"""
from __future__ import annotations
import enum


class UserRole(str, enum.Enum):
    ADMIN = "ADMIN"
    MANAGER = "GERENTE"
    SELLER = "VENDEDOR"


class CampaignStatus(str, enum.Enum):
    ACTIVE = "ATIVA"
    FINISHED = "CONCLUIDA"
    EXPIRED = "EXPIRADA"

# ------------------------- Card / requirement rules ------------------------- #

class CardMode(str, enum.Enum):
    MANUAL = "MANUAL"
    AUTO_REPLICATING = "AUTO_REPLICANTE"


class IncrementType(str, enum.Enum):
    NONE = "SEM_INCREMENTO"
    MULTIPLIER = "MULTIPLICADOR"


class UnitKind(str, enum.Enum):
    PAIR = "PAR"
    UNIT = "UNIDADE"


class ConditionField(str, enum.Enum):
    PRODUCT_NAME = "NOME_PRODUTO"
    PRODUCT_CODE = "CODIGO_PRODUTO"
    SALE_VALUE = "VALOR_VENDA"
    PRODUCT_CATEGORY = "CATEGORIA_PRODUTO"


class ConditionOperator(str, enum.Enum):
    CONTAINS = "CONTEM"
    NOT_CONTAINS = "NAO_CONTEM"
    EQUALS = "IGUAL_A"
    NOT_EQUALS = "NAO_IGUAL_A"
    GREATER_THAN = "MAIOR_QUE"
    LESS_THAN = "MENOR_QUE"


class RequirementStatus(str, enum.Enum):
    COMPLETE = "COMPLETO"
    ACTIVE = "ATIVO"
    LOCKED = "BLOQUEADO"


class EventState(str, enum.Enum):
    SCHEDULED = "AGENDADO"
    RUNNING = "EM_ANDAMENTO"
    FINISHED = "ENCERRADO"
    PAUSED = "PAUSADO"

# ------------------------------ Sale lines ------------------------------ #

class SaleOutcome(str, enum.Enum):
    CREDITED = "CREDITADO"
    NO_MATCH = "SEM_CORRESPONDENCIA"
    EXHAUSTED = "ESGOTADO"
    SKIPPED_CONFIG_ERROR = "ERRO_CONFIGURACAO"
    DUPLICATE = "DUPLICADO"

# ------------------------- Redemptions / ledger ------------------------- #

class RedemptionStatus(str, enum.Enum):
    REQUESTED = "SOLICITADO"
    SENT = "ENVIADO"
    CANCELLED = "CANCELADO"


class LedgerEntryType(str, enum.Enum):
    SELLER = "VENDEDOR"
    MANAGER = "GERENTE"


class LedgerStatus(str, enum.Enum):
    PENDING = "PENDENTE"
    PAID = "PAGO"

__all__ = [
    "UserRole",
    "CampaignStatus",
    "CardMode",
    "IncrementType",
    "UnitKind",
    "ConditionField",
    "ConditionOperator",
    "RequirementStatus",
    "EventState",
    "SaleOutcome",
    "RedemptionStatus",
    "LedgerEntryType",
    "LedgerStatus",
]

"""Core application configuration & tunable campaign rules.

Every business limit that may evolve (economic caps, period bounds, event
windows, progression preview, ledger KPI windows) lives here so services stay
free of magic numbers. Values are module-level dicts so tests can monkeypatch
them; deployments override the scalar settings through environment variables.

The system timezone is *configuration*, not an ambient global: temporal
helpers receive it as an explicit argument and the pure progression/event
functions only ever see timezone-aware instants.
"""
from __future__ import annotations

import os
from decimal import Decimal

# Timezone used to interpret naive datetimes coming from clients and to bucket
# ledger date filters into whole local days.
SYSTEM_TIMEZONE: str = os.getenv("SYSTEM_TIMEZONE", "America/Sao_Paulo")

DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite+pysqlite:///./incentives.db")
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE: str | None = os.getenv("LOG_FILE", "logs/incentives.log") or None
CORS_ORIGINS: list[str] = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
# When set and no admin exists yet, startup creates one holding this key
BOOTSTRAP_ADMIN_KEY: str | None = os.getenv("BOOTSTRAP_ADMIN_KEY") or None
BOOTSTRAP_ADMIN_EMAIL: str = os.getenv("BOOTSTRAP_ADMIN_EMAIL", "admin@incentives.local")

# ----------------------------- Economic limits ---------------------------- #
ECONOMIC_LIMITS: dict[str, int | Decimal] = {
	"min_coins_per_card": 1,
	"max_coins_per_card": 50_000,
	"min_real_per_card": Decimal("0.01"),
	"max_real_per_card": Decimal("10000.00"),
	"max_manager_commission": Decimal("0.30"),
	"real_decimal_places": 2,
	"commission_decimal_places": 4,
}

# ------------------------------ Campaign shape ---------------------------- #
CAMPAIGN_RULES: dict[str, int | str] = {
	"title_min_length": 5,
	"title_max_length": 100,
	# Letters (accented included), digits, whitespace and - _ . ( )
	"title_pattern": r"^[a-zA-ZÀ-ÿ0-9\s\-_.()]+$",
	"description_min_length": 20,
	"description_max_length": 1000,
	"min_duration_days": 1,
	"max_duration_days": 365,
	"min_cards": 1,
	"max_cards": 20,
	"max_target_opticians": 50,
	"max_tags": 10,
	"tag_min_length": 2,
	"tag_max_length": 30,
	"rules_max_length": 10_000,
	"max_events_per_campaign": 5,
	# Auto-replication
	"min_increment_factor": 1,
	"max_increment_factor": 100,
	"min_card_ceiling": 2,
	"max_card_ceiling": 1000,
}

# ----------------------------- Special events ----------------------------- #
EVENT_RULES: dict[str, int | str | Decimal] = {
	"min_multiplier": Decimal("1.0"),
	"max_multiplier": Decimal("10.0"),
	"multiplier_decimal_places": 2,
	"min_duration_minutes": 60,
	# Creation-time lead: start must be at least this far in the future.
	"min_lead_minutes": 60,
	"default_highlight_color": "#FF5733",
	"highlight_color_pattern": r"^#[0-9A-Fa-f]{6}$",
}

# ------------------------------- Progression ------------------------------ #
PROGRESSION_SETTINGS: dict[str, int] = {
	# Cards rendered in an auto-replicating snapshot starting at the active one.
	"preview_cards": 3,
	# Optimistic-lock conflicts tolerated before giving up on a sale line.
	"stale_retry_attempts": 1,
}

# --------------------------------- Ledger --------------------------------- #
LEDGER_SETTINGS: dict[str, int] = {
	"paid_kpi_window_days": 30,
	"max_page_size": 500,
}

# ------------------------------ Redemptions ------------------------------- #
REDEMPTION_RULES: dict[str, int] = {
	"cancel_reason_min_length": 10,
}

__all__ = [
	"SYSTEM_TIMEZONE",
	"DATABASE_URL",
	"LOG_LEVEL",
	"LOG_FILE",
	"CORS_ORIGINS",
	"BOOTSTRAP_ADMIN_KEY",
	"BOOTSTRAP_ADMIN_EMAIL",
	# Rule groups
	"ECONOMIC_LIMITS",
	"CAMPAIGN_RULES",
	"EVENT_RULES",
	"PROGRESSION_SETTINGS",
	"LEDGER_SETTINGS",
	"REDEMPTION_RULES",
]

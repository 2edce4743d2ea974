"""Campaign & special-event definition validation.

Each rule is a small function returning a list of ``ValidationFailure``
(empty when the rule holds). ``validate_campaign_definition`` walks the
whole tree Campaign -> Card -> Requirement -> Condition (plus nested special
events) and returns *every* failure, each scoped to a dotted field path such
as ``cards[0].requirements[1].conditions[0].value``.

Failure categories:
  field             shape/length/format of a single field
  period            campaign start/end
  economy           rewards and commission
  auto_replication  card mode, increment and ceiling consistency
  event             special-event window, multiplier and overlap

Design principles:
- Pure functions; nothing here raises or touches the database.
- Inputs are duck-typed (Pydantic schemas in the API, plain objects in tests).
- Limits come from config so they can be tuned without touching the rules.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Iterable, Optional, Sequence
from urllib.parse import urlparse

from incentives.config import CAMPAIGN_RULES, ECONOMIC_LIMITS, EVENT_RULES, SYSTEM_TIMEZONE
from incentives.models.db.enums import CardMode, ConditionField, IncrementType
from incentives.services.condition_evaluator import NUMERIC_FIELDS, is_supported
from incentives.services.event_resolver import find_overlaps
from incentives.services.rule_types import EventWindow
from incentives.utils.money import decimal_places, to_decimal
from incentives.utils.time import ensure_aware

FIELD = "field"
PERIOD = "period"
ECONOMY = "economy"
AUTO_REPLICATION = "auto_replication"
EVENT = "event"


@dataclass(frozen=True)
class ValidationFailure:
    field: str
    message: str
    category: str = FIELD

    def as_dict(self) -> dict:
        return {"field": self.field, "message": self.message, "category": self.category}


Failures = list[ValidationFailure]

# ----------------------------- helper utilities ----------------------------- #

def _path(prefix: str, name: str) -> str:
    return f"{prefix}.{name}" if prefix else name


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _blank(value: Any) -> bool:
    return value is None or not str(value).strip()


def _enum_value(enum_cls, raw):
    if isinstance(raw, enum_cls):
        return raw
    try:
        return enum_cls(raw)
    except ValueError:
        return None


def normalize_title(title: str) -> str:
    return " ".join(str(title).split())


def normalize_tags(tags: Optional[Iterable[str]]) -> list[str]:
    seen: list[str] = []
    for tag in tags or []:
        clean = str(tag).strip().lower()
        if clean and clean not in seen:
            seen.append(clean)
    return seen


def normalize_color(color: Optional[str]) -> str:
    if _blank(color):
        return str(EVENT_RULES["default_highlight_color"])
    return str(color).strip().upper()

# ----------------------------- campaign fields ----------------------------- #

def _check_title(title: Any) -> Failures:
    if _blank(title):
        return [ValidationFailure("title", "Title is required")]
    clean = normalize_title(title)
    lo, hi = int(CAMPAIGN_RULES["title_min_length"]), int(CAMPAIGN_RULES["title_max_length"])
    failures: Failures = []
    if not lo <= len(clean) <= hi:
        failures.append(ValidationFailure("title", f"Title must have between {lo} and {hi} characters"))
    if not re.match(str(CAMPAIGN_RULES["title_pattern"]), clean):
        failures.append(ValidationFailure(
            "title", "Title may only contain letters, digits, spaces, hyphens, underscores, dots and parentheses"
        ))
    return failures


def _check_description(description: Any) -> Failures:
    if _blank(description):
        return [ValidationFailure("description", "Description is required")]
    lo, hi = int(CAMPAIGN_RULES["description_min_length"]), int(CAMPAIGN_RULES["description_max_length"])
    length = len(str(description).strip())
    if not lo <= length <= hi:
        return [ValidationFailure("description", f"Description must have between {lo} and {hi} characters")]
    return []


def check_period(
    start_at: Optional[datetime],
    end_at: Optional[datetime],
    now: Optional[datetime] = None,
    tz_name: str = SYSTEM_TIMEZONE,
) -> Failures:
    """End after start, duration within the configured day range, start in the future."""
    if start_at is None or end_at is None:
        missing = "start_at" if start_at is None else "end_at"
        return [ValidationFailure(missing, "Campaign start and end are required", PERIOD)]
    start = ensure_aware(start_at, tz_name)
    end = ensure_aware(end_at, tz_name)
    failures: Failures = []
    if end <= start:
        failures.append(ValidationFailure("end_at", "Campaign end must be after its start", PERIOD))
    else:
        min_days = int(CAMPAIGN_RULES["min_duration_days"])
        max_days = int(CAMPAIGN_RULES["max_duration_days"])
        duration = end - start
        if duration < timedelta(days=min_days):
            failures.append(ValidationFailure("end_at", f"Campaign must last at least {min_days} day(s)", PERIOD))
        elif duration > timedelta(days=max_days):
            failures.append(ValidationFailure("end_at", f"Campaign cannot last more than {max_days} days", PERIOD))
    if now is not None and start <= ensure_aware(now, tz_name):
        failures.append(ValidationFailure("start_at", "Campaign start must be in the future", PERIOD))
    return failures


def check_economy(coin_reward: Any, real_reward: Any, manager_commission: Any) -> Failures:
    """Reward bounds plus the coins >= real-currency rule."""
    failures: Failures = []
    coins_ok = False
    if not _is_int(coin_reward):
        failures.append(ValidationFailure("coin_reward", "Coin reward must be a whole number", ECONOMY))
    else:
        lo, hi = int(ECONOMIC_LIMITS["min_coins_per_card"]), int(ECONOMIC_LIMITS["max_coins_per_card"])
        if not lo <= coin_reward <= hi:
            failures.append(ValidationFailure("coin_reward", f"Coin reward must be between {lo} and {hi}", ECONOMY))
        else:
            coins_ok = True

    real = to_decimal(real_reward)
    real_ok = False
    if real is None:
        failures.append(ValidationFailure("real_reward", "Real-currency reward must be a number", ECONOMY))
    else:
        lo_r = Decimal(ECONOMIC_LIMITS["min_real_per_card"])
        hi_r = Decimal(ECONOMIC_LIMITS["max_real_per_card"])
        places = int(ECONOMIC_LIMITS["real_decimal_places"])
        if not lo_r <= real <= hi_r:
            failures.append(ValidationFailure(
                "real_reward", f"Real-currency reward must be between {lo_r} and {hi_r}", ECONOMY
            ))
        elif decimal_places(real) > places:
            failures.append(ValidationFailure(
                "real_reward", f"Real-currency reward allows at most {places} decimal places", ECONOMY
            ))
        else:
            real_ok = True

    commission = to_decimal(manager_commission if manager_commission is not None else 0)
    if commission is None:
        failures.append(ValidationFailure("manager_commission", "Manager commission must be a number", ECONOMY))
    else:
        cap = Decimal(ECONOMIC_LIMITS["max_manager_commission"])
        places = int(ECONOMIC_LIMITS["commission_decimal_places"])
        if not Decimal("0") <= commission <= cap:
            failures.append(ValidationFailure(
                "manager_commission", f"Manager commission must be between 0 and {cap}", ECONOMY
            ))
        elif decimal_places(commission) > places:
            failures.append(ValidationFailure(
                "manager_commission", f"Manager commission allows at most {places} decimal places", ECONOMY
            ))

    if coins_ok and real_ok and Decimal(coin_reward) < real:
        failures.append(ValidationFailure(
            "coin_reward", "Coin reward must be greater than or equal to the real-currency reward", ECONOMY
        ))
    return failures


def _check_targeting(all_opticians: Any, optician_ids: Optional[Sequence[int]]) -> Failures:
    ids = list(optician_ids or [])
    limit = int(CAMPAIGN_RULES["max_target_opticians"])
    if all_opticians is False or all_opticians is None:
        if not ids:
            return [ValidationFailure("target_optician_ids", "Select at least one optician when not targeting all")]
    if len(set(ids)) > limit:
        return [ValidationFailure("target_optician_ids", f"At most {limit} opticians can be targeted")]
    return []


def _check_presentation(image_url: Any, tags: Any, rules: Any) -> Failures:
    failures: Failures = []
    if not _blank(image_url):
        parsed = urlparse(str(image_url).strip())
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            failures.append(ValidationFailure("image_url", "Image URL must be an http(s) address"))
    tag_list = list(tags or [])
    max_tags = int(CAMPAIGN_RULES["max_tags"])
    if len(tag_list) > max_tags:
        failures.append(ValidationFailure("tags", f"At most {max_tags} tags are allowed"))
    lo, hi = int(CAMPAIGN_RULES["tag_min_length"]), int(CAMPAIGN_RULES["tag_max_length"])
    for i, tag in enumerate(tag_list):
        if not lo <= len(str(tag).strip()) <= hi:
            failures.append(ValidationFailure(f"tags[{i}]", f"Tags must have between {lo} and {hi} characters"))
    max_rules = int(CAMPAIGN_RULES["rules_max_length"])
    if rules is not None and len(str(rules)) > max_rules:
        failures.append(ValidationFailure("rules", f"Rules text cannot exceed {max_rules} characters"))
    return failures

# ----------------------------- card tree ----------------------------- #

def _check_condition(condition: Any, path: str) -> Failures:
    failures: Failures = []
    field = getattr(condition, "field", None)
    operator = getattr(condition, "operator", None)
    value = getattr(condition, "value", None)
    if field is None:
        failures.append(ValidationFailure(_path(path, "field"), "Condition field is required"))
    if operator is None:
        failures.append(ValidationFailure(_path(path, "operator"), "Condition operator is required"))
    if _blank(value):
        failures.append(ValidationFailure(_path(path, "value"), "Condition value is required"))
    if field is not None and operator is not None:
        if not is_supported(field, operator):
            failures.append(ValidationFailure(
                _path(path, "operator"),
                f"Operator {getattr(operator, 'value', operator)} is not valid for field {getattr(field, 'value', field)}",
            ))
        else:
            if _enum_value(ConditionField, field) in NUMERIC_FIELDS and not _blank(value) and to_decimal(value) is None:
                failures.append(ValidationFailure(_path(path, "value"), "Sale value conditions need a numeric value"))
    return failures


def _check_requirement(requirement: Any, path: str) -> Failures:
    failures: Failures = []
    if _blank(getattr(requirement, "description", None)):
        failures.append(ValidationFailure(_path(path, "description"), "Requirement description is required"))
    quantity = getattr(requirement, "quantity", None)
    if not _is_int(quantity) or quantity < 1:
        failures.append(ValidationFailure(_path(path, "quantity"), "Quantity must be a whole number of at least 1"))
    ordem = getattr(requirement, "ordem", None)
    if not _is_int(ordem) or ordem < 1:
        failures.append(ValidationFailure(_path(path, "ordem"), "Ordem must be a whole number of at least 1"))
    conditions = list(getattr(requirement, "conditions", None) or [])
    if not conditions:
        failures.append(ValidationFailure(_path(path, "conditions"), "Requirement needs at least one condition"))
    for i, condition in enumerate(conditions):
        failures.extend(_check_condition(condition, f"{_path(path, 'conditions')}[{i}]"))
    return failures


def _check_card(card: Any, path: str) -> Failures:
    failures: Failures = []
    if _blank(getattr(card, "description", None)):
        failures.append(ValidationFailure(_path(path, "description"), "Card description is required"))
    requirements = list(getattr(card, "requirements", None) or [])
    if not requirements:
        failures.append(ValidationFailure(_path(path, "requirements"), "Card needs at least one requirement"))
    ordens = [getattr(r, "ordem", None) for r in requirements]
    if len(ordens) != len(set(ordens)):
        failures.append(ValidationFailure(_path(path, "requirements"), "Requirement ordem values must be unique within a card"))
    for i, requirement in enumerate(requirements):
        failures.extend(_check_requirement(requirement, f"{_path(path, 'requirements')}[{i}]"))
    return failures


def _check_cards(cards: Optional[Sequence[Any]]) -> Failures:
    card_list = list(cards or [])
    lo, hi = int(CAMPAIGN_RULES["min_cards"]), int(CAMPAIGN_RULES["max_cards"])
    failures: Failures = []
    if not lo <= len(card_list) <= hi:
        failures.append(ValidationFailure("cards", f"A campaign needs between {lo} and {hi} cards"))
    numbers = [getattr(c, "number", None) for c in card_list]
    if card_list and sorted(n for n in numbers if _is_int(n)) != list(range(1, len(card_list) + 1)):
        failures.append(ValidationFailure("cards", "Card numbers must be unique and contiguous starting at 1"))
    for i, card in enumerate(card_list):
        failures.extend(_check_card(card, f"cards[{i}]"))
    return failures


def _check_auto_replication(definition: Any) -> Failures:
    mode = _enum_value(CardMode, getattr(definition, "card_mode", CardMode.MANUAL) or CardMode.MANUAL)
    increment = _enum_value(IncrementType, getattr(definition, "increment_type", None) or IncrementType.NONE)
    factor = getattr(definition, "increment_factor", None)
    ceiling = getattr(definition, "card_ceiling", None)
    cards = list(getattr(definition, "cards", None) or [])
    failures: Failures = []

    if mode is None:
        return [ValidationFailure("card_mode", "Unknown card mode", AUTO_REPLICATION)]
    if increment is None:
        return [ValidationFailure("increment_type", "Unknown increment type", AUTO_REPLICATION)]

    if mode == CardMode.MANUAL:
        if increment == IncrementType.MULTIPLIER:
            failures.append(ValidationFailure(
                "increment_type", "Increments only apply to auto-replicating campaigns", AUTO_REPLICATION
            ))
        if ceiling is not None:
            failures.append(ValidationFailure(
                "card_ceiling", "A card ceiling only applies to auto-replicating campaigns", AUTO_REPLICATION
            ))
        return failures

    if len(cards) != 1 or getattr(cards[0], "number", None) != 1:
        failures.append(ValidationFailure(
            "cards", "Auto-replicating campaigns define exactly one card, numbered 1", AUTO_REPLICATION
        ))
    if increment == IncrementType.MULTIPLIER:
        lo, hi = int(CAMPAIGN_RULES["min_increment_factor"]), int(CAMPAIGN_RULES["max_increment_factor"])
        if factor is None:
            failures.append(ValidationFailure(
                "increment_factor", "Increment factor is required for the multiplier increment", AUTO_REPLICATION
            ))
        elif not _is_int(factor) or not lo <= factor <= hi:
            failures.append(ValidationFailure(
                "increment_factor", f"Increment factor must be a whole number between {lo} and {hi}", AUTO_REPLICATION
            ))
    if ceiling is not None:
        lo, hi = int(CAMPAIGN_RULES["min_card_ceiling"]), int(CAMPAIGN_RULES["max_card_ceiling"])
        if not _is_int(ceiling) or not lo <= ceiling <= hi:
            failures.append(ValidationFailure(
                "card_ceiling", f"Card ceiling must be between {lo} and {hi}", AUTO_REPLICATION
            ))
    return failures

# ----------------------------- special events ----------------------------- #

def validate_special_event(
    event: Any,
    campaign_start: datetime,
    campaign_end: datetime,
    existing: Iterable[Any] = (),
    now: Optional[datetime] = None,
    *,
    tz_name: str = SYSTEM_TIMEZONE,
    path: str = "",
    exclude_id: Optional[int] = None,
    require_lead: bool = True,
) -> Failures:
    """Validate one special event against its campaign and sibling events.

    ``existing`` holds the campaign's other events; only active ones are
    compared, and only when ``event`` itself is active. ``require_lead``
    enforces the minimum lead time before the start (creation, or an update
    that moves the start).
    """
    failures: Failures = []
    if _blank(getattr(event, "name", None)):
        failures.append(ValidationFailure(_path(path, "name"), "Event name is required", EVENT))

    multiplier = to_decimal(getattr(event, "multiplier", None))
    lo_m, hi_m = Decimal(EVENT_RULES["min_multiplier"]), Decimal(EVENT_RULES["max_multiplier"])
    places = int(EVENT_RULES["multiplier_decimal_places"])
    if multiplier is None:
        failures.append(ValidationFailure(_path(path, "multiplier"), "Multiplier must be a number", EVENT))
    elif not lo_m <= multiplier <= hi_m:
        failures.append(ValidationFailure(_path(path, "multiplier"), f"Multiplier must be between {lo_m} and {hi_m}", EVENT))
    elif decimal_places(multiplier) > places:
        failures.append(ValidationFailure(
            _path(path, "multiplier"), f"Multiplier allows at most {places} decimal places", EVENT
        ))

    color = getattr(event, "highlight_color", None)
    if not _blank(color) and not re.match(str(EVENT_RULES["highlight_color_pattern"]), str(color).strip()):
        failures.append(ValidationFailure(_path(path, "highlight_color"), "Highlight colour must look like #RRGGBB", EVENT))

    start_raw = getattr(event, "start_at", None)
    end_raw = getattr(event, "end_at", None)
    if start_raw is None or end_raw is None:
        failures.append(ValidationFailure(_path(path, "start_at"), "Event start and end are required", EVENT))
        return failures
    start = ensure_aware(start_raw, tz_name)
    end = ensure_aware(end_raw, tz_name)

    min_duration = timedelta(minutes=int(EVENT_RULES["min_duration_minutes"]))
    if end - start < min_duration:
        failures.append(ValidationFailure(
            _path(path, "end_at"), "Event must end at least one hour after it starts", EVENT
        ))
    if require_lead and now is not None:
        lead = timedelta(minutes=int(EVENT_RULES["min_lead_minutes"]))
        if start < ensure_aware(now, tz_name) + lead:
            failures.append(ValidationFailure(
                _path(path, "start_at"), "Event must start at least one hour from now", EVENT
            ))
    c_start = ensure_aware(campaign_start, tz_name)
    c_end = ensure_aware(campaign_end, tz_name)
    if start < c_start or end > c_end:
        failures.append(ValidationFailure(
            _path(path, "start_at"), "Event must lie within the campaign period", EVENT
        ))

    if end > start:
        window = EventWindow(
            start_at=start,
            end_at=end,
            active=bool(getattr(event, "active", True)),
        )
        conflicts = find_overlaps(window, existing, exclude_id=exclude_id)
        if conflicts:
            names = ", ".join(str(getattr(c, "name", "") or getattr(c, "id", "?")) for c in conflicts)
            failures.append(ValidationFailure(
                _path(path, "start_at"), f"Event overlaps active event(s): {names}", EVENT
            ))
    return failures


def _check_events(definition: Any, now: Optional[datetime], tz_name: str) -> Failures:
    events = list(getattr(definition, "events", None) or [])
    limit = int(CAMPAIGN_RULES["max_events_per_campaign"])
    failures: Failures = []
    if len(events) > limit:
        failures.append(ValidationFailure("events", f"At most {limit} special events per campaign", EVENT))
    start = getattr(definition, "start_at", None)
    end = getattr(definition, "end_at", None)
    if start is None or end is None:
        return failures
    accepted: list[EventWindow] = []
    for i, event in enumerate(events):
        failures.extend(validate_special_event(
            event, start, end, existing=accepted, now=now, tz_name=tz_name, path=f"events[{i}]"
        ))
        if getattr(event, "start_at", None) is not None and getattr(event, "end_at", None) is not None:
            accepted.append(EventWindow(
                start_at=ensure_aware(event.start_at, tz_name),
                end_at=ensure_aware(event.end_at, tz_name),
                active=bool(getattr(event, "active", True)),
                name=str(getattr(event, "name", "") or f"events[{i}]"),
            ))
    return failures

# ----------------------------- public entrypoint ----------------------------- #

def validate_campaign_definition(
    definition: Any,
    now: Optional[datetime] = None,
    tz_name: str = SYSTEM_TIMEZONE,
) -> Failures:
    """Return every rule violation in a campaign definition (empty list = valid).

    ``now`` enables the "starts in the future" checks; pass None to validate
    the shape of an already-running campaign.
    """
    failures: Failures = []
    failures.extend(_check_title(getattr(definition, "title", None)))
    failures.extend(_check_description(getattr(definition, "description", None)))
    failures.extend(check_period(getattr(definition, "start_at", None), getattr(definition, "end_at", None), now, tz_name))
    failures.extend(check_economy(
        getattr(definition, "coin_reward", None),
        getattr(definition, "real_reward", None),
        getattr(definition, "manager_commission", None),
    ))
    failures.extend(_check_targeting(
        getattr(definition, "all_opticians", True), getattr(definition, "target_optician_ids", None)
    ))
    failures.extend(_check_presentation(
        getattr(definition, "image_url", None), getattr(definition, "tags", None), getattr(definition, "rules", None)
    ))
    failures.extend(_check_auto_replication(definition))
    failures.extend(_check_cards(getattr(definition, "cards", None)))
    failures.extend(_check_events(definition, now, tz_name))
    return failures


__all__ = [
    "ValidationFailure",
    "FIELD",
    "PERIOD",
    "ECONOMY",
    "AUTO_REPLICATION",
    "EVENT",
    "normalize_title",
    "normalize_tags",
    "normalize_color",
    "check_period",
    "check_economy",
    "validate_special_event",
    "validate_campaign_definition",
]

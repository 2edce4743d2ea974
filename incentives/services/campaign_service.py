"""Campaign administration: atomic tree creation, targeting and special events.

create_campaign validates the whole definition first (collecting every
failure) and only then writes the Campaign with its cards, requirements,
conditions, target opticians and nested events in one transaction.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session, selectinload

from incentives.config import CAMPAIGN_RULES, SYSTEM_TIMEZONE
from incentives.models.db import Campaign, Card, Condition, Optician, Requirement, SpecialEvent, User
from incentives.models.db.campaigns import campaign_optician_association
from incentives.models.db.enums import CardMode, IncrementType, UnitKind, UserRole
from incentives.services.definition_validators import (
    EVENT,
    FIELD,
    ValidationFailure,
    normalize_color,
    normalize_tags,
    normalize_title,
    validate_campaign_definition,
    validate_special_event,
)
from incentives.services.errors import CampaignDefinitionError, CampaignNotAvailableError, NotFoundError
from incentives.utils import get_logger, log_business_event
from incentives.utils.money import quantize, to_decimal
from incentives.utils.time import as_utc, utc_now

logger = get_logger(__name__)


def _aware(value: datetime, tz_name: str) -> datetime:
    # Stored as UTC; SQLite drops the offset and hands back naive UTC.
    return as_utc(value, tz_name)

# ----------------------------- targeting ----------------------------- #

def is_campaign_visible(campaign: Campaign, user: User) -> bool:
    """Admins see everything; others see campaigns aimed at their optician or its head office."""
    if user.role == UserRole.ADMIN:
        return True
    if campaign.all_opticians:
        return True
    if user.optician_id is None:
        return False
    target_ids = {o.id for o in campaign.target_opticians}
    if user.optician_id in target_ids:
        return True
    parent_id = user.optician.parent_id if user.optician is not None else None
    return parent_id is not None and parent_id in target_ids


def visible_campaigns(session: Session, user: User) -> list[Campaign]:
    query = session.query(Campaign).options(selectinload(Campaign.target_opticians))
    if user.role != UserRole.ADMIN:
        optician_ids = []
        if user.optician_id is not None:
            optician_ids.append(user.optician_id)
            if user.optician is not None and user.optician.parent_id is not None:
                optician_ids.append(user.optician.parent_id)
        targeted = (
            session.query(campaign_optician_association.c.campaign_id)
            .filter(campaign_optician_association.c.optician_id.in_(optician_ids or [-1]))
        )
        query = query.filter(or_(Campaign.all_opticians.is_(True), Campaign.id.in_(targeted)))
    return query.order_by(Campaign.start_at.desc(), Campaign.id.desc()).all()


def get_campaign(session: Session, campaign_id: int) -> Campaign:
    campaign = session.get(Campaign, campaign_id)
    if campaign is None:
        raise NotFoundError(f"Campaign {campaign_id} not found")
    return campaign


def get_visible_campaign(session: Session, campaign_id: int, user: User) -> Campaign:
    campaign = get_campaign(session, campaign_id)
    if not is_campaign_visible(campaign, user):
        raise CampaignNotAvailableError(f"Campaign {campaign_id} is not available for this user")
    return campaign

# ----------------------------- creation ----------------------------- #

def _build_cards(definition: Any) -> list[Card]:
    cards = []
    for card_def in sorted(definition.cards, key=lambda c: c.number):
        card = Card(number=card_def.number, description=card_def.description.strip())
        for req_def in card_def.requirements:
            requirement = Requirement(
                description=req_def.description.strip(),
                quantity=req_def.quantity,
                unit=req_def.unit or UnitKind.UNIT,
                ordem=req_def.ordem,
            )
            requirement.conditions = [
                Condition(field=c.field, operator=c.operator, value=str(c.value).strip())
                for c in req_def.conditions
            ]
            card.requirements.append(requirement)
        cards.append(card)
    return cards


def _build_event(event_def: Any, tz_name: str) -> SpecialEvent:
    return SpecialEvent(
        name=event_def.name.strip(),
        description=(event_def.description or None),
        multiplier=quantize(to_decimal(event_def.multiplier), 2),
        start_at=_aware(event_def.start_at, tz_name),
        end_at=_aware(event_def.end_at, tz_name),
        active=True if getattr(event_def, "active", None) is None else bool(event_def.active),
        highlight_color=normalize_color(getattr(event_def, "highlight_color", None)),
    )


def create_campaign(
    session: Session,
    definition: Any,
    creator: Optional[User] = None,
    now: Optional[datetime] = None,
    tz_name: str = SYSTEM_TIMEZONE,
) -> Campaign:
    """Validate and persist a full campaign tree. Raises CampaignDefinitionError."""
    now = now or utc_now()
    failures = validate_campaign_definition(definition, now=now, tz_name=tz_name)

    target_ids = sorted(set(getattr(definition, "target_optician_ids", None) or []))
    opticians: list[Optician] = []
    if not definition.all_opticians and target_ids:
        opticians = session.query(Optician).filter(Optician.id.in_(target_ids)).all()
        missing = set(target_ids) - {o.id for o in opticians}
        if missing:
            failures.append(ValidationFailure(
                "target_optician_ids", f"Unknown optician ids: {sorted(missing)}", FIELD
            ))

    if failures:
        logger.warning(
            "Campaign definition rejected",
            title=getattr(definition, "title", None),
            failure_count=len(failures),
            fields=[f.field for f in failures],
        )
        raise CampaignDefinitionError(failures)

    auto = definition.card_mode == CardMode.AUTO_REPLICATING
    campaign = Campaign(
        title=normalize_title(definition.title),
        description=definition.description.strip(),
        start_at=_aware(definition.start_at, tz_name),
        end_at=_aware(definition.end_at, tz_name),
        coin_reward=definition.coin_reward,
        real_reward=quantize(to_decimal(definition.real_reward), 2),
        manager_commission=quantize(to_decimal(definition.manager_commission or 0), 4),
        all_opticians=bool(definition.all_opticians),
        card_mode=definition.card_mode,
        increment_type=(definition.increment_type or IncrementType.NONE) if auto else IncrementType.NONE,
        increment_factor=definition.increment_factor if auto and definition.increment_type == IncrementType.MULTIPLIER else None,
        card_ceiling=definition.card_ceiling if auto else None,
        image_url=(definition.image_url or None),
        tags=normalize_tags(definition.tags),
        rules=definition.rules,
        created_by=creator.id if creator is not None else None,
    )
    campaign.cards = _build_cards(definition)
    campaign.target_opticians = opticians
    campaign.events = [_build_event(e, tz_name) for e in (definition.events or [])]

    session.add(campaign)
    session.commit()
    session.refresh(campaign)

    log_business_event(
        event_type="campaign_created",
        details={
            "campaign_id": campaign.id,
            "title": campaign.title,
            "card_mode": campaign.card_mode.value,
            "card_count": len(campaign.cards),
            "event_count": len(campaign.events),
        },
        user_id=creator.id if creator is not None else None,
    )
    return campaign

# ----------------------------- special events ----------------------------- #

def _get_event(session: Session, campaign_id: int, event_id: int) -> SpecialEvent:
    event = session.get(SpecialEvent, event_id)
    if event is None or event.campaign_id != campaign_id:
        raise NotFoundError(f"Special event {event_id} not found in campaign {campaign_id}")
    return event


def create_special_event(
    session: Session,
    campaign_id: int,
    definition: Any,
    now: Optional[datetime] = None,
    tz_name: str = SYSTEM_TIMEZONE,
) -> SpecialEvent:
    now = now or utc_now()
    campaign = get_campaign(session, campaign_id)
    failures: list[ValidationFailure] = []
    limit = int(CAMPAIGN_RULES["max_events_per_campaign"])
    if len(campaign.events) >= limit:
        failures.append(ValidationFailure("events", f"At most {limit} special events per campaign", EVENT))
    failures.extend(validate_special_event(
        definition, as_utc(campaign.start_at), as_utc(campaign.end_at), existing=campaign.events, now=now, tz_name=tz_name,
    ))
    if failures:
        raise CampaignDefinitionError(failures, message="Special event definition is invalid")

    event = _build_event(definition, tz_name)
    event.campaign_id = campaign.id
    session.add(event)
    session.commit()
    session.refresh(event)
    log_business_event(
        event_type="special_event_created",
        details={"campaign_id": campaign.id, "event_id": event.id, "multiplier": str(event.multiplier)},
    )
    return event


_UPDATABLE_EVENT_FIELDS = ("name", "description", "multiplier", "start_at", "end_at", "active", "highlight_color")


class _EventDraft:
    """Current event values overlaid with a partial update, for re-validation."""

    def __init__(self, event: SpecialEvent, changes: dict):
        for name in _UPDATABLE_EVENT_FIELDS:
            if name in changes:
                setattr(self, name, changes[name])
            elif name in ("start_at", "end_at"):
                setattr(self, name, as_utc(getattr(event, name)))
            else:
                setattr(self, name, getattr(event, name))
        self.id = event.id


def update_special_event(
    session: Session,
    campaign_id: int,
    event_id: int,
    changes: dict,
    now: Optional[datetime] = None,
    tz_name: str = SYSTEM_TIMEZONE,
) -> SpecialEvent:
    """Apply a partial update. The lead-time rule only applies when the start moves."""
    now = now or utc_now()
    event = _get_event(session, campaign_id, event_id)
    changes = {k: v for k, v in changes.items() if k in _UPDATABLE_EVENT_FIELDS}
    draft = _EventDraft(event, changes)
    failures = validate_special_event(
        draft,
        as_utc(event.campaign.start_at),
        as_utc(event.campaign.end_at),
        existing=event.campaign.events,
        now=now,
        tz_name=tz_name,
        exclude_id=event.id,
        require_lead="start_at" in changes,
    )
    if failures:
        raise CampaignDefinitionError(failures, message="Special event definition is invalid")

    if "name" in changes:
        event.name = changes["name"].strip()
    if "description" in changes:
        event.description = changes["description"] or None
    if "multiplier" in changes:
        event.multiplier = quantize(to_decimal(changes["multiplier"]), 2)
    if "start_at" in changes:
        event.start_at = _aware(changes["start_at"], tz_name)
    if "end_at" in changes:
        event.end_at = _aware(changes["end_at"], tz_name)
    if "active" in changes:
        event.active = bool(changes["active"])
    if "highlight_color" in changes:
        event.highlight_color = normalize_color(changes["highlight_color"])
    session.commit()
    session.refresh(event)
    logger.info("Special event updated", campaign_id=campaign_id, event_id=event_id, fields=sorted(changes))
    return event


def set_event_active(
    session: Session,
    campaign_id: int,
    event_id: int,
    active: bool,
    tz_name: str = SYSTEM_TIMEZONE,
) -> SpecialEvent:
    """Pause or resume an event; resuming re-checks overlap with other active events."""
    event = _get_event(session, campaign_id, event_id)
    if active and not event.active:
        draft = _EventDraft(event, {"active": True})
        failures = validate_special_event(
            draft,
            as_utc(event.campaign.start_at),
            as_utc(event.campaign.end_at),
            existing=event.campaign.events,
            tz_name=tz_name,
            exclude_id=event.id,
            require_lead=False,
        )
        if failures:
            raise CampaignDefinitionError(failures, message="Special event cannot be activated")
    event.active = active
    session.commit()
    session.refresh(event)
    log_business_event(
        event_type="special_event_toggled",
        details={"campaign_id": campaign_id, "event_id": event_id, "active": active},
    )
    return event


__all__ = [
    "is_campaign_visible",
    "visible_campaigns",
    "get_campaign",
    "get_visible_campaign",
    "create_campaign",
    "create_special_event",
    "update_special_event",
    "set_event_active",
]

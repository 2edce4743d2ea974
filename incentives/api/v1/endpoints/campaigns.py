"""
Campaign management endpoints: campaign trees, targeting and special events.
"""
from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, status, Query, Request
from sqlalchemy.orm import Session
import time
from incentives.api.deps import get_db, get_current_user, require_admin, http_error_for
from incentives.config import SYSTEM_TIMEZONE
from incentives.models.db import Campaign, SpecialEvent, User
from incentives.models.schemas.campaigns import (
    CampaignCreate,
    CampaignRead,
    CampaignReadWithRelations,
    CardRead,
    EventToggle,
    SpecialEventCreate,
    SpecialEventRead,
    SpecialEventUpdate,
)
from incentives.models.schemas.base import ResponseBase, ValidationErrorResponse
from incentives.services import campaign_service
from incentives.services.errors import CampaignDefinitionError, IncentiveError
from incentives.services.event_resolver import active_events, event_state, resolve_multiplier
from incentives.utils import get_logger, log_performance
from incentives.utils.time import as_utc, utc_now

router = APIRouter()
logger = get_logger(__name__)

# Every broken business rule, field by field (see the CampaignDefinitionError handler)
DEFINITION_ERRORS = {422: {"model": ValidationErrorResponse, "description": "Definition breaks one or more rules"}}


def _event_read(event: SpecialEvent, now: datetime) -> SpecialEventRead:
    return SpecialEventRead(
        id=event.id,
        campaign_id=event.campaign_id,
        name=event.name,
        description=event.description,
        multiplier=event.multiplier,
        start_at=as_utc(event.start_at),
        end_at=as_utc(event.end_at),
        active=event.active,
        highlight_color=event.highlight_color,
        state=event_state(event, now).value,
    )


def _campaign_read(campaign: Campaign, now: datetime) -> CampaignReadWithRelations:
    base = CampaignRead.model_validate(campaign).model_dump()
    base["start_at"] = as_utc(campaign.start_at)
    base["end_at"] = as_utc(campaign.end_at)
    return CampaignReadWithRelations(
        **base,
        cards=[CardRead.model_validate(c) for c in campaign.cards],
        events=[_event_read(e, now) for e in sorted(campaign.events, key=lambda e: as_utc(e.start_at))],
        target_optician_ids=sorted(o.id for o in campaign.target_opticians),
    )


@router.post(
    "/",
    response_model=CampaignReadWithRelations,
    status_code=status.HTTP_201_CREATED,
    summary="Create new campaign",
    responses=DEFINITION_ERRORS,
    description="Validate and create a campaign with its cards, requirements, conditions and special events in one step"
)
async def create_campaign(
    campaign_data: CampaignCreate,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
) -> CampaignReadWithRelations:
    start_time = time.time()
    request_id = request.headers.get("X-Request-ID", "unknown")

    logger.info(
        "Campaign creation started",
        title=campaign_data.title,
        card_mode=campaign_data.card_mode.value,
        card_count=len(campaign_data.cards),
        event_count=len(campaign_data.events),
        request_id=request_id
    )

    try:
        campaign = campaign_service.create_campaign(db, campaign_data, creator=admin)

        duration_ms = (time.time() - start_time) * 1000
        log_performance(
            operation="create_campaign",
            duration_ms=duration_ms,
            additional_data={"campaign_id": campaign.id, "card_count": len(campaign.cards)}
        )
        logger.info(
            "Campaign created successfully",
            campaign_id=campaign.id,
            duration_ms=duration_ms,
            request_id=request_id
        )
        return _campaign_read(campaign, utc_now())

    except HTTPException:
        raise
    except CampaignDefinitionError:
        raise
    except IncentiveError as e:
        raise http_error_for(e)
    except Exception as e:
        logger.error(
            "Campaign creation failed with unexpected error",
            title=campaign_data.title,
            error=str(e),
            request_id=request_id,
            exc_info=True
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error during campaign creation"
        )


@router.get(
    "/",
    response_model=List[CampaignRead],
    summary="List visible campaigns",
    description="Admins see every campaign; managers and sellers see campaigns aimed at their optician or its head office"
)
async def list_campaigns(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> List[CampaignRead]:
    campaigns = campaign_service.visible_campaigns(db, current_user)
    logger.info("Campaigns listed", user_id=current_user.id, count=len(campaigns))
    return [CampaignRead.model_validate(c) for c in campaigns]


@router.get(
    "/{campaign_id}",
    response_model=CampaignReadWithRelations,
    summary="Get campaign details"
)
async def get_campaign(
    campaign_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> CampaignReadWithRelations:
    try:
        campaign = campaign_service.get_visible_campaign(db, campaign_id, current_user)
    except IncentiveError as e:
        raise http_error_for(e)
    return _campaign_read(campaign, utc_now())


@router.get(
    "/{campaign_id}/multiplier",
    response_model=ResponseBase,
    summary="Multiplier in force",
    description="Special-event multiplier that applies to rewards credited at the given instant (default: now)"
)
async def get_multiplier(
    campaign_id: int,
    at: Optional[datetime] = Query(None, description="Instant to evaluate; naive values use the system timezone"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> ResponseBase:
    try:
        campaign = campaign_service.get_visible_campaign(db, campaign_id, current_user)
    except IncentiveError as e:
        raise http_error_for(e)
    instant = as_utc(at, SYSTEM_TIMEZONE) if at is not None else utc_now()
    in_force = active_events(campaign.events, instant, campaign_id=campaign.id)
    return ResponseBase(
        message="Multiplier resolved",
        data={
            "campaign_id": campaign.id,
            "at": instant.isoformat(),
            "multiplier": str(resolve_multiplier(campaign, campaign.events, instant)),
            "active_event_ids": [e.id for e in in_force],
        }
    )

# ----------------------------- special events ----------------------------- #

@router.get(
    "/{campaign_id}/events",
    response_model=List[SpecialEventRead],
    summary="List special events"
)
async def list_events(
    campaign_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> List[SpecialEventRead]:
    try:
        campaign = campaign_service.get_visible_campaign(db, campaign_id, current_user)
    except IncentiveError as e:
        raise http_error_for(e)
    now = utc_now()
    return [_event_read(e, now) for e in sorted(campaign.events, key=lambda e: as_utc(e.start_at))]


@router.post(
    "/{campaign_id}/events",
    response_model=SpecialEventRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create special event",
    responses=DEFINITION_ERRORS
)
async def create_event(
    campaign_id: int,
    event_data: SpecialEventCreate,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
) -> SpecialEventRead:
    request_id = request.headers.get("X-Request-ID", "unknown")
    try:
        event = campaign_service.create_special_event(db, campaign_id, event_data)
    except CampaignDefinitionError:
        raise
    except IncentiveError as e:
        raise http_error_for(e)
    logger.info(
        "Special event created",
        campaign_id=campaign_id,
        event_id=event.id,
        user_id=admin.id,
        request_id=request_id
    )
    return _event_read(event, utc_now())


@router.patch(
    "/{campaign_id}/events/{event_id}",
    response_model=SpecialEventRead,
    summary="Update special event",
    responses=DEFINITION_ERRORS
)
async def update_event(
    campaign_id: int,
    event_id: int,
    changes: SpecialEventUpdate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
) -> SpecialEventRead:
    try:
        event = campaign_service.update_special_event(
            db, campaign_id, event_id, changes.model_dump(exclude_unset=True)
        )
    except CampaignDefinitionError:
        raise
    except IncentiveError as e:
        raise http_error_for(e)
    return _event_read(event, utc_now())


@router.post(
    "/{campaign_id}/events/{event_id}/toggle",
    response_model=SpecialEventRead,
    summary="Pause or resume special event",
    responses=DEFINITION_ERRORS
)
async def toggle_event(
    campaign_id: int,
    event_id: int,
    payload: EventToggle,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
) -> SpecialEventRead:
    try:
        event = campaign_service.set_event_active(db, campaign_id, event_id, payload.active)
    except CampaignDefinitionError:
        raise
    except IncentiveError as e:
        raise http_error_for(e)
    return _event_read(event, utc_now())

"""
Financial ledger endpoints (admin only).
"""
from datetime import date
from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from incentives.api.deps import get_db, get_pagination_params, require_admin, http_error_for
from incentives.models.db import User
from incentives.models.db.enums import LedgerEntryType, LedgerStatus
from incentives.models.schemas.base import ResponseBase
from incentives.models.schemas.ledger import LedgerBulkPay, LedgerEntryRead, LedgerKpis, LedgerPay
from incentives.services import ledger_service
from incentives.services.errors import IncentiveError
from incentives.utils import get_logger

router = APIRouter()
logger = get_logger(__name__)


@router.get(
    "/",
    response_model=List[LedgerEntryRead],
    summary="List ledger entries",
    description="Date filters select whole days in the system timezone"
)
async def list_entries(
    status_filter: Optional[LedgerStatus] = Query(None, alias="status"),
    campaign_id: Optional[int] = Query(None),
    beneficiary_id: Optional[int] = Query(None),
    entry_type: Optional[LedgerEntryType] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    pagination: dict = Depends(get_pagination_params),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
) -> List[LedgerEntryRead]:
    filters = ledger_service.LedgerFilters(
        status=status_filter,
        campaign_id=campaign_id,
        beneficiary_id=beneficiary_id,
        entry_type=entry_type,
        date_from=date_from,
        date_to=date_to,
    )
    try:
        entries = ledger_service.list_entries(db, filters, **pagination)
    except IncentiveError as e:
        raise http_error_for(e)
    return [LedgerEntryRead.model_validate(e) for e in entries]


@router.get(
    "/kpis",
    response_model=LedgerKpis,
    summary="Ledger KPIs"
)
async def get_kpis(
    beneficiary_id: Optional[int] = Query(None),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
) -> LedgerKpis:
    return LedgerKpis(**ledger_service.kpis(db, beneficiary_id=beneficiary_id))


@router.post(
    "/{entry_id}/pay",
    response_model=LedgerEntryRead,
    summary="Mark entry as paid"
)
async def pay_entry(
    entry_id: int,
    payload: Optional[LedgerPay] = None,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
) -> LedgerEntryRead:
    try:
        entry = ledger_service.mark_paid(db, entry_id, notes=payload.notes if payload else None)
    except IncentiveError as e:
        raise http_error_for(e)
    return LedgerEntryRead.model_validate(entry)


@router.post(
    "/pay",
    response_model=ResponseBase,
    summary="Mark several entries as paid",
    description="All-or-nothing: a missing or already paid entry aborts the whole batch"
)
async def pay_entries(
    payload: LedgerBulkPay,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
) -> ResponseBase:
    try:
        entries = ledger_service.mark_many_paid(db, payload.entry_ids, notes=payload.notes)
    except IncentiveError as e:
        raise http_error_for(e)
    total = sum((e.amount for e in entries), start=0)
    return ResponseBase(
        message=f"{len(entries)} ledger entries paid",
        data={"entry_ids": [e.id for e in entries], "total": str(total)}
    )

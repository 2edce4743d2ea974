"""
Sale-line intake. Each line is applied to the seller's campaign progression
and committed on its own.

Sync handler on purpose: processing holds a per-(seller, campaign) thread
lock, so it runs in FastAPI's worker threadpool.
"""
from fastapi import APIRouter, Depends, HTTPException, status, Request
from sqlalchemy.orm import Session
import time
from incentives.api.deps import get_db, require_admin, http_error_for
from incentives.models.db import User
from incentives.models.schemas.base import ResponseBase
from incentives.models.schemas.sales import SaleLineSubmit
from incentives.services.errors import IncentiveError
from incentives.services.rule_types import SaleFact
from incentives.services.sale_processing import process_sale_line
from incentives.utils import get_logger

router = APIRouter()
logger = get_logger(__name__)


@router.post(
    "/",
    response_model=ResponseBase,
    status_code=status.HTTP_200_OK,
    summary="Process a validated sale line",
    description="Credit matching units to the seller's cards, complete cards and pay their rewards"
)
def submit_sale_line(
    sale: SaleLineSubmit,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
) -> ResponseBase:
    start_time = time.time()
    request_id = request.headers.get("X-Request-ID", "unknown")

    logger.info(
        "Sale line received",
        seller_id=sale.seller_id,
        campaign_id=sale.campaign_id,
        order_number=sale.order_number,
        quantity=sale.quantity,
        request_id=request_id
    )

    fact = SaleFact(
        product_name=sale.product_name,
        product_code=sale.product_code,
        product_category=sale.product_category,
        sale_value=sale.sale_value,
        quantity=sale.quantity,
        order_number=sale.order_number,
        preferred_ordem=sale.preferred_ordem,
        sold_at=sale.sold_at,
    )

    try:
        result = process_sale_line(db, sale.seller_id, sale.campaign_id, fact)
    except IncentiveError as e:
        logger.warning(
            "Sale line rejected",
            seller_id=sale.seller_id,
            campaign_id=sale.campaign_id,
            error=str(e),
            request_id=request_id
        )
        raise http_error_for(e)
    except Exception as e:
        logger.error(
            "Sale line processing failed",
            seller_id=sale.seller_id,
            campaign_id=sale.campaign_id,
            error=str(e),
            request_id=request_id,
            exc_info=True
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error during sale processing"
        )

    logger.info(
        "Sale line processed",
        seller_id=sale.seller_id,
        campaign_id=sale.campaign_id,
        outcome=result.outcome.value,
        completed_cards=result.completed_cards,
        duration_ms=round((time.time() - start_time) * 1000, 2),
        request_id=request_id
    )
    return ResponseBase(message=f"Sale line {result.outcome.value}", data=result.as_dict())

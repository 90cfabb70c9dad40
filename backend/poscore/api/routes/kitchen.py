"""Kitchen routes - cancelled items awaiting a waste/return decision."""

import logging
from typing import Optional

from fastapi import APIRouter, Query, Request

from poscore.core.context import CurrentContext, RequireManager
from poscore.core.rate_limit import limiter
from poscore.core.responses import paginated_response
from poscore.db.session import DbSession
from poscore.models.cancelled_item import CancellationSource
from poscore.schemas.kitchen import (
    AutoExpireResponse,
    CancelledItemResponse,
    CancelledItemStats,
    DecisionFilter,
    ProcessWasteRequest,
    ProcessWasteResponse,
)
from poscore.services.kitchen_waste_service import KitchenWasteService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/cancelled-items")
@limiter.limit("60/minute")
def list_cancelled_items(
    request: Request,
    db: DbSession,
    context: CurrentContext,
    source: Optional[CancellationSource] = None,
    decision: DecisionFilter = DecisionFilter.PENDING,
    order_id: Optional[int] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
):
    """Cancelled items of the caller's location, oldest first.

    Pending items by default; ``decision=all`` lists every decision.
    """
    items, total = KitchenWasteService(db, context).list_cancelled_items(
        source=source, decision=decision.as_decision(), order_id=order_id, skip=skip, limit=limit,
    )
    return paginated_response(items, total, skip, limit, schema=CancelledItemResponse)


@router.get("/cancelled-items/stats", response_model=CancelledItemStats)
@limiter.limit("60/minute")
def cancelled_item_stats(request: Request, db: DbSession, context: CurrentContext):
    return KitchenWasteService(db, context).stats()


@router.post("/process-waste", response_model=ProcessWasteResponse)
@limiter.limit("30/minute")
def process_waste(request: Request, data: ProcessWasteRequest, db: DbSession, context: CurrentContext):
    """Decide waste or return for each listed cancelled item.

    Entries are independent: a failing entry is reported in ``results``
    and the others are still applied.
    """
    return KitchenWasteService(db, context).process_decisions(data.decisions)


@router.post("/auto-expire", response_model=AutoExpireResponse)
@limiter.limit("10/minute")
def auto_expire(request: Request, db: DbSession, context: RequireManager):
    """Mark pending cancelled items past the expiry window as waste."""
    return KitchenWasteService(db, context).auto_expire(business_id=context.business_id)

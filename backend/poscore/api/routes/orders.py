"""POS order routes."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Query, Request

from poscore.core.context import CurrentContext
from poscore.core.rate_limit import limiter
from poscore.core.responses import list_response, paginated_response
from poscore.db.session import DbSession
from poscore.models.order import OrderStatus
from poscore.schemas.order import (
    OrderCancelRequest,
    OrderCreate,
    OrderEditRequest,
    OrderResponse,
    OrderStatusUpdate,
    OrderSummaryResponse,
    OrderTotalsRequest,
    OrderTotalsResponse,
    ProductAvailability,
    TimelineEventResponse,
)
from poscore.services.order_edit_service import OrderEditService
from poscore.services.order_service import OrderService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=OrderResponse, status_code=201)
@limiter.limit("60/minute")
def create_order(request: Request, data: OrderCreate, db: DbSession, context: CurrentContext):
    """Create an order and reserve its ingredients.

    Fails with 400 ``insufficient_inventory`` when stock cannot cover it;
    nothing is saved in that case.
    """
    return OrderService(db, context).create_order(data)


@router.get("")
@limiter.limit("60/minute")
def list_orders(
    request: Request,
    db: DbSession,
    context: CurrentContext,
    status: Optional[OrderStatus] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
):
    """List orders of the caller's location, newest first."""
    orders, total = OrderService(db, context).list_orders(status=status, skip=skip, limit=limit)
    return paginated_response(orders, total, skip, limit, schema=OrderSummaryResponse)


@router.get("/availability")
@limiter.limit("60/minute")
def product_availability(
    request: Request,
    db: DbSession,
    context: CurrentContext,
    product_id: Optional[int] = None,
):
    """How many of each product the current stock can still make."""
    rows = OrderService(db, context).product_availability(product_id)
    return list_response(rows, schema=ProductAvailability)


@router.post("/calculate-totals", response_model=OrderTotalsResponse)
@limiter.limit("60/minute")
def calculate_totals(request: Request, data: OrderTotalsRequest, db: DbSession, context: CurrentContext):
    """Price a cart without creating an order."""
    return OrderService(db, context).calculate_totals(data)


@router.get("/{order_id}", response_model=OrderResponse)
@limiter.limit("60/minute")
def get_order(request: Request, order_id: int, db: DbSession, context: CurrentContext):
    return OrderService(db, context).get_order(order_id)


@router.get("/{order_id}/timeline", response_model=List[TimelineEventResponse])
@limiter.limit("60/minute")
def get_order_timeline(request: Request, order_id: int, db: DbSession, context: CurrentContext):
    return OrderService(db, context).get_timeline(order_id)


@router.patch("/{order_id}/status", response_model=OrderResponse)
@limiter.limit("60/minute")
def update_order_status(
    request: Request, order_id: int, data: OrderStatusUpdate, db: DbSession, context: CurrentContext
):
    """Advance an order: pending -> in_progress -> completed."""
    return OrderService(db, context).update_status(order_id, data.status)


@router.patch("/{order_id}/edit", response_model=OrderResponse)
@limiter.limit("60/minute")
def edit_order(
    request: Request, order_id: int, data: OrderEditRequest, db: DbSession, context: CurrentContext
):
    """Add, modify and remove lines of an open order in one transaction.

    Also accepts the legacy ``itemsToAdd`` / ``itemsToModify`` /
    ``itemsToRemove`` field names.
    """
    return OrderEditService(db, context).edit_order(order_id, data)


@router.post("/{order_id}/cancel", response_model=OrderResponse)
@limiter.limit("60/minute")
def cancel_order(
    request: Request,
    order_id: int,
    db: DbSession,
    context: CurrentContext,
    data: Optional[OrderCancelRequest] = None,
):
    """Cancel an open order.

    In-progress orders queue their items for a kitchen waste/return
    decision; pending orders release their ingredients immediately.
    """
    data = data or OrderCancelRequest()
    return OrderService(db, context).cancel_order(order_id, reason=data.reason, session_id=data.session_id)

"""Cancellation & Waste/Return workflow.

Anything removed from an order after it reached the kitchen may already have
been prepared, so its ingredients are not simply put back on the shelf.
Instead a CancelledItem is queued and a kitchen user decides:

- waste:  the ingredients are gone, the ledger is left untouched
- return: the ingredients are reusable, the reserved lines are released

Pending items older than ``cancelled_item_expiry_hours`` are swept to waste.
"""

import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from poscore.core.config import settings
from poscore.core.context import RequestContext
from poscore.core.errors import AlreadyDecidedError, NotFoundError, PosError
from poscore.models.cancelled_item import (
    CancellationSource, CancelledItem, CancelledItemLine, WasteDecision,
)
from poscore.models.order import Order, OrderItem, OrderStatus
from poscore.models.order_timeline import TimelineEvent
from poscore.services.inventory_ledger_service import InventoryLedgerService
from poscore.services.order_timeline_service import OrderTimelineService

logger = logging.getLogger(__name__)

# Stats window: pending items this close to expiry count as "expiring soon"
EXPIRING_SOON_HOURS = 6


def _utc_aware(dt):
    """Make a datetime UTC-aware if it's naive (SQLite returns naive datetimes)."""
    if dt is None:
        return None
    return dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt


def requires_kitchen_decision(order: Order) -> bool:
    """Whether removals from *order* go to the waste/return queue.

    In-progress orders have reached the kitchen. Pending orders only do when
    ``queue_removals_for_pending_orders`` is enabled; otherwise their removed
    ingredients go straight back to stock.
    """
    if order.status == OrderStatus.IN_PROGRESS:
        return True
    return order.status == OrderStatus.PENDING and settings.queue_removals_for_pending_orders


class KitchenWasteService:
    """Service for the cancelled-items queue."""

    def __init__(self, db: Session, context: Optional[RequestContext] = None):
        self.db = db
        self.context = context
        self.timeline = OrderTimelineService(db)

    @property
    def _user_id(self) -> Optional[int]:
        return self.context.user_id if self.context else None

    # ===== QUEUE =====

    def queue_cancelled_item(
        self,
        order: Order,
        order_item: OrderItem,
        quantity: int,
        consumption: Dict[int, Decimal],
        source: CancellationSource,
        reason: Optional[str] = None,
    ) -> CancelledItem:
        """Add a pending cancelled item to the current transaction."""
        cancelled = CancelledItem(
            business_id=order.business_id,
            location_id=order.location_id,
            order_id=order.id,
            order_item_id=order_item.id,
            product_id=order_item.product_id,
            product_name=order_item.product_name,
            variant_name=order_item.variant_name,
            quantity=quantity,
            cancellation_source=source,
            reason=reason,
            decision=WasteDecision.PENDING,
            auto_expired=False,
            created_by=self._user_id,
            created_at=datetime.now(timezone.utc),
        )
        cancelled.lines = [
            CancelledItemLine(item_id=item_id, quantity=qty)
            for item_id, qty in sorted(consumption.items())
            if qty > 0
        ]
        self.db.add(cancelled)
        return cancelled

    def list_cancelled_items(
        self,
        source: Optional[CancellationSource] = None,
        decision: Optional[WasteDecision] = WasteDecision.PENDING,
        order_id: Optional[int] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> Tuple[List[CancelledItem], int]:
        query = self.db.query(CancelledItem).filter(
            CancelledItem.business_id == self.context.business_id,
            CancelledItem.location_id == self.context.location_id,
        )
        if source is not None:
            query = query.filter(CancelledItem.cancellation_source == source)
        if decision is not None:
            query = query.filter(CancelledItem.decision == decision)
        if order_id is not None:
            query = query.filter(CancelledItem.order_id == order_id)

        total = query.count()
        items = (
            query.options(selectinload(CancelledItem.lines))
            .order_by(CancelledItem.created_at, CancelledItem.id)
            .offset(skip)
            .limit(limit)
            .all()
        )
        return items, total

    # ===== DECISIONS =====

    def process_decisions(self, decisions: List[Any]) -> Dict[str, Any]:
        """Apply waste/return decisions, each in its own transaction.

        A failing entry (unknown id, already decided) is reported in its
        result and does not affect the other entries.
        """
        results = []
        for entry in decisions:
            try:
                decision = self.decide(entry.cancelled_item_id, entry.decision)
                self.db.commit()
                results.append({
                    "cancelled_item_id": entry.cancelled_item_id,
                    "success": True,
                    "decision": decision,
                })
            except PosError as e:
                self.db.rollback()
                results.append({
                    "cancelled_item_id": entry.cancelled_item_id,
                    "success": False,
                    "error": e.message,
                    "code": e.code,
                })
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(
                    f"Decision for cancelled item {entry.cancelled_item_id} failed: {e}", exc_info=True
                )
                results.append({
                    "cancelled_item_id": entry.cancelled_item_id,
                    "success": False,
                    "error": "Database error",
                    "code": "database_error",
                })

        failed = sum(1 for r in results if not r["success"])
        logger.info(f"Processed {len(results)} waste decisions ({failed} failed)")
        return {"processed": len(results) - failed, "failed": failed, "results": results}

    def decide(self, cancelled_item_id: int, decision: str) -> WasteDecision:
        """Record one decision in the current transaction; the caller commits.

        Raises:
            NotFoundError: no such cancelled item for this business.
            AlreadyDecidedError: the item was decided before (or concurrently).
        """
        cancelled = self.db.query(CancelledItem).filter(
            CancelledItem.id == cancelled_item_id,
            CancelledItem.business_id == self.context.business_id,
        ).first()
        if not cancelled:
            raise NotFoundError(
                f"Cancelled item {cancelled_item_id} not found", cancelled_item_id=cancelled_item_id
            )
        if cancelled.decision != WasteDecision.PENDING:
            raise AlreadyDecidedError(cancelled_item_id, cancelled.decision.value)

        target = WasteDecision.RETURNED if decision == "return" else WasteDecision.WASTE
        now = datetime.now(timezone.utc)
        claimed = self.db.execute(
            update(CancelledItem)
            .where(
                CancelledItem.id == cancelled_item_id,
                CancelledItem.decision == WasteDecision.PENDING,
            )
            .values(decision=target, decided_at=now, decided_by=self._user_id)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount != 1:
            current = self.db.query(CancelledItem.decision).filter(
                CancelledItem.id == cancelled_item_id
            ).scalar()
            raise AlreadyDecidedError(cancelled_item_id, current.value if current else "unknown")

        lines = {line.item_id: line.quantity for line in cancelled.lines}
        if target == WasteDecision.RETURNED:
            InventoryLedgerService(self.db, cancelled.location_id).release(
                lines,
                operation_ref=f"cancelled_item:{cancelled_item_id}:return",
                ref_type="cancelled_item",
                ref_id=cancelled_item_id,
                created_by=self._user_id,
                notes=f"Returned: {cancelled.product_name} x{cancelled.quantity}",
            )
            event = TimelineEvent.INGREDIENT_RETURNED
        else:
            event = TimelineEvent.INGREDIENT_WASTED

        self.timeline.log(
            cancelled.order_id,
            event,
            {
                "cancelled_item_id": cancelled_item_id,
                "product_name": cancelled.product_name,
                "quantity": cancelled.quantity,
                "lines": [{"item_id": k, "quantity": str(v)} for k, v in sorted(lines.items())],
            },
            created_by=self._user_id,
        )
        return target

    # ===== SWEEP =====

    def auto_expire(self, now: Optional[datetime] = None, business_id: Optional[int] = None) -> Dict[str, Any]:
        """Turn every pending item older than the expiry window into waste.

        Idempotent: decided items are never touched, so repeated runs only
        pick up items that aged past the cutoff since the last run.
        """
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(hours=settings.cancelled_item_expiry_hours)

        query = self.db.query(CancelledItem.id, CancelledItem.order_id).filter(
            CancelledItem.decision == WasteDecision.PENDING,
            CancelledItem.created_at < cutoff,
        )
        if business_id is not None:
            query = query.filter(CancelledItem.business_id == business_id)

        expired = 0
        try:
            for cancelled_id, order_id in query.all():
                claimed = self.db.execute(
                    update(CancelledItem)
                    .where(
                        CancelledItem.id == cancelled_id,
                        CancelledItem.decision == WasteDecision.PENDING,
                    )
                    .values(decision=WasteDecision.WASTE, decided_at=now, auto_expired=True)
                    .execution_options(synchronize_session=False)
                )
                if claimed.rowcount == 1:
                    expired += 1
                    self.timeline.log(
                        order_id,
                        TimelineEvent.INGREDIENT_WASTED,
                        {"cancelled_item_id": cancelled_id, "auto_expired": True},
                    )
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

        if expired:
            logger.info(f"Auto-expired {expired} cancelled items older than {cutoff.isoformat()}")
        return {"expired": expired, "cutoff": cutoff}

    def stats(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or datetime.now(timezone.utc)
        expiry_hours = settings.cancelled_item_expiry_hours
        base = self.db.query(CancelledItem).filter(
            CancelledItem.business_id == self.context.business_id,
            CancelledItem.location_id == self.context.location_id,
            CancelledItem.decision == WasteDecision.PENDING,
        )
        pending_count = base.count()
        soon_cutoff = now - timedelta(hours=max(expiry_hours - EXPIRING_SOON_HOURS, 0))
        expiring_soon = base.filter(CancelledItem.created_at < soon_cutoff).count()
        oldest = _utc_aware(base.with_entities(func.min(CancelledItem.created_at)).scalar())

        return {
            "pending_count": pending_count,
            "expiring_soon_count": expiring_soon,
            "oldest_pending_hours": round((now - oldest).total_seconds() / 3600, 2) if oldest else None,
            "expiry_hours": expiry_hours,
        }

"""Order Edit Reconciler - add, modify and remove lines of an open order.

One edit request is one transaction. Line changes are applied in the order
remove -> modify -> add while a signed per-item inventory delta is
accumulated; the delta is applied to the ledger once at the end, so a
shortage anywhere rolls back the whole edit.

Reduced or removed quantities of an order the kitchen already has are not
released directly but queued as cancelled items for a waste/return decision.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List

from sqlalchemy.orm import Session

from poscore.core.config import settings
from poscore.core.context import RequestContext
from poscore.core.errors import NotEditableError
from poscore.models.cancelled_item import CancellationSource
from poscore.models.order import Order, OrderItem
from poscore.models.order_timeline import TimelineEvent
from poscore.schemas.order import OrderEditRequest, OrderItemCreate, OrderItemModify, OrderItemRemove
from poscore.services.order_service import OrderService, catalog_errors, order_transaction
from poscore.services.recipe_service import Consumption, merge, subtract

logger = logging.getLogger(__name__)


def _negate(consumption: Consumption) -> Consumption:
    return {item_id: -qty for item_id, qty in consumption.items()}


def _positive(consumption: Consumption) -> Consumption:
    return {item_id: qty for item_id, qty in consumption.items() if qty > 0}


class OrderEditService:
    """Applies structured edits to pending and in-progress orders."""

    def __init__(self, db: Session, context: RequestContext):
        self.db = db
        self.context = context
        self.orders = OrderService(db, context)

    def edit_order(self, order_id: int, request: OrderEditRequest) -> Order:
        """Apply *request* atomically.

        Unknown ``order_item_id`` values are skipped.

        Raises:
            NotEditableError: order missing, completed or cancelled, or from a
                source whose items may not be edited.
            ConflictError: ``expected_version`` is stale or a concurrent edit won.
            ValidationError: a referenced product/variant/modifier is unusable.
            InsufficientInventoryError: the edit needs more stock than is on hand.
        """
        with order_transaction(self.db, order_id):
            order = self.orders.lock_editable_order(order_id, request.expected_version)
            if order.order_source.value not in settings.editable_sources:
                raise NotEditableError(
                    f"Items of {order.order_source.value} order {order.order_number} cannot be edited",
                    order_id=order_id,
                    order_source=order.order_source.value,
                )
            operation_ref = f"order:{order.id}:edit:{order.version}"
            lines = {item.id: item for item in order.active_items}
            delta: Consumption = {}
            events: List[Dict[str, Any]] = []
            skipped: List[int] = []

            for entry in request.products_to_remove:
                delta = merge(delta, self._remove(order, lines, entry, events, skipped))
            for entry in request.products_to_modify:
                delta = merge(delta, self._modify(order, lines, entry, events, skipped))
            added = []
            for spec in request.products_to_add:
                item, consumption = self._add(order, spec)
                added.append(item)
                delta = merge(delta, consumption)

            if events or added:
                now = datetime.now(timezone.utc)
                order.is_edited = True
                order.edited_at = now
                order.updated_at = now
                order.recalculate_totals()
            self.db.flush()

            ledger_result = self.orders.ledger(order.location_id).apply_delta(
                {item_id: qty for item_id, qty in delta.items() if qty != 0},
                operation_ref=operation_ref,
                ref_type="order",
                ref_id=order.id,
                created_by=self.context.user_id,
                notes=f"Order {order.order_number} edited",
            )

            for item in added:
                events.append({
                    "type": TimelineEvent.ITEM_ADDED,
                    "order_item_id": item.id,
                    "product_name": item.product_name,
                    "variant_name": item.variant_name,
                    "quantity": item.quantity,
                })
            for event in events:
                event_type = event.pop("type")
                self.orders.timeline.log(order.id, event_type, event, created_by=self.context.user_id)

        if skipped:
            logger.info(f"Order {order_id} edit skipped unknown order items {skipped}")
        logger.info(
            f"Order {order_id} edited: +{len(request.products_to_add)} "
            f"~{len(request.products_to_modify)} -{len(request.products_to_remove)} "
            f"(reserved {len(ledger_result['reserved'])}, released {len(ledger_result['released'])})"
        )
        return self.orders.get_order(order_id)

    # ===== LINE CHANGES =====

    def _remove(
        self,
        order: Order,
        lines: Dict[int, OrderItem],
        entry: OrderItemRemove,
        events: List[Dict[str, Any]],
        skipped: List[int],
    ) -> Consumption:
        item = lines.get(entry.order_item_id)
        if item is None:
            skipped.append(entry.order_item_id)
            return {}

        removed_qty = item.quantity if entry.quantity is None else min(entry.quantity, item.quantity)
        remaining = item.quantity - removed_qty
        removed = _positive(subtract(
            self.orders.consumption_of(item),
            self.orders.consumption_of(item, quantity=remaining),
        ))
        release_now = self.orders.dispose_removed(
            order, item, removed_qty, removed, CancellationSource.ORDER_EDITED,
        )

        if remaining == 0:
            item.soft_delete()
            del lines[item.id]
        else:
            item.quantity = remaining

        events.append({
            "type": TimelineEvent.ITEM_REMOVED,
            "order_item_id": item.id,
            "product_name": item.product_name,
            "quantity": removed_qty,
            "remaining": remaining,
            "queued_for_kitchen": bool(removed) and not release_now,
        })
        return _negate(release_now)

    def _modify(
        self,
        order: Order,
        lines: Dict[int, OrderItem],
        entry: OrderItemModify,
        events: List[Dict[str, Any]],
        skipped: List[int],
    ) -> Consumption:
        item = lines.get(entry.order_item_id)
        if item is None:
            skipped.append(entry.order_item_id)
            return {}

        old_qty = item.quantity
        new_qty = entry.quantity or old_qty
        kept_qty = min(old_qty, new_qty)
        old_variant_id = item.variant_id
        old_modifiers = list(item.modifiers)

        old_full = self.orders.consumption_of(item, quantity=old_qty, modifiers=old_modifiers)
        old_kept = self.orders.consumption_of(item, quantity=kept_qty, modifiers=old_modifiers)

        changes: Dict[str, Any] = {}
        variant_changed = entry.variant_id is not None and entry.variant_id != old_variant_id
        if variant_changed or entry.modifiers is not None:
            with catalog_errors():
                product = self.orders.resolver.get_product(item.product_id)
                if variant_changed:
                    variant = self.orders.resolver.get_variant(product, entry.variant_id)
                    item.variant_id = variant.id
                    item.variant_name = variant.name
                    item.unit_price = self.orders.unit_price(product, variant)
                    changes["variant_id"] = [old_variant_id, variant.id]
                if entry.modifiers is not None:
                    item.modifiers = self.orders.build_modifiers(product, entry.modifiers)
                    changes["modifiers"] = [m.modifier_name for m in item.modifiers]
        if entry.special_instructions is not None:
            item.special_instructions = entry.special_instructions
            changes["special_instructions"] = entry.special_instructions
        if new_qty != old_qty:
            item.quantity = new_qty
            changes["quantity"] = [old_qty, new_qty]

        if not changes:
            return {}

        delta: Consumption = {}
        if new_qty < old_qty:
            cancelled = _positive(subtract(old_full, old_kept))
            release_now = self.orders.dispose_removed(
                order, item, old_qty - new_qty, cancelled, CancellationSource.ORDER_EDITED,
            )
            delta = _negate(release_now)

        new_full = self.orders.consumption_of(item)
        delta = merge(delta, subtract(new_full, old_kept))

        events.append({
            "type": TimelineEvent.ITEM_MODIFIED,
            "order_item_id": item.id,
            "product_name": item.product_name,
            "changes": changes,
        })
        return delta

    def _add(self, order: Order, spec: OrderItemCreate):
        item = self.orders.build_item(spec)
        order.items.append(item)
        return item, self.orders.consumption_of(item, existing=False)

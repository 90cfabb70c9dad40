"""Order Service - POS order creation, status changes and cancellation.

Every mutating operation runs in one transaction: the order rows, the
ingredient reservation in the inventory ledger, cancelled-item records and
timeline events are committed together or not at all.
"""

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload
from sqlalchemy.orm.exc import StaleDataError

from poscore.core.config import settings
from poscore.core.context import RequestContext
from poscore.core.errors import (
    ConflictError, NotEditableError, NotFoundError, ValidationError,
)
from poscore.core.money import compute_totals, money
from poscore.models.cancelled_item import CancellationSource
from poscore.models.order import (
    EDITABLE_STATUSES, ModifierType, Order, OrderItem, OrderItemModifier, OrderStatus,
)
from poscore.models.order_timeline import OrderTimelineEvent, TimelineEvent
from poscore.models.product import Product, ProductVariant
from poscore.schemas.order import (
    ModifierInput, OrderCreate, OrderItemCreate, OrderTotalsRequest,
)
from poscore.services.inventory_ledger_service import InventoryLedgerService
from poscore.services.kitchen_waste_service import KitchenWasteService, requires_kitchen_decision
from poscore.services.order_timeline_service import OrderTimelineService
from poscore.services.recipe_service import Consumption, RecipeResolver, merge

logger = logging.getLogger(__name__)

# Reported as max_quantity for products without a recipe
UNLIMITED_AVAILABILITY = 999

# A create that loses the race for an order number is retried this many times
ORDER_NUMBER_ATTEMPTS = 10


@contextmanager
def order_transaction(db: Session, order_id: Optional[int] = None):
    """Commit on success, roll back on any error.

    A concurrent update of the same order row surfaces as ConflictError.
    """
    try:
        yield
        db.commit()
    except StaleDataError as e:
        db.rollback()
        logger.warning(f"Concurrent modification of order {order_id}: {e}")
        raise ConflictError(
            f"Order {order_id} was modified concurrently, reload and retry", order_id=order_id
        ) from e
    except Exception:
        db.rollback()
        raise


def _is_order_number_clash(error: IntegrityError) -> bool:
    """Whether *error* is a duplicate on the per-business order number."""
    message = str(error.orig)
    return "uq_order_business_number" in message or "orders.order_number" in message


@contextmanager
def catalog_errors():
    """Report missing catalog entries in a write request as validation errors."""
    try:
        yield
    except NotFoundError as e:
        raise ValidationError(e.message, **e.extra) from e


class OrderService:
    """Service for POS orders of one business, acting as one user."""

    def __init__(self, db: Session, context: RequestContext):
        self.db = db
        self.context = context
        self.resolver = RecipeResolver(db, context.business_id)
        self.timeline = OrderTimelineService(db)
        self.kitchen = KitchenWasteService(db, context)

    def ledger(self, location_id: Optional[int] = None) -> InventoryLedgerService:
        return InventoryLedgerService(self.db, location_id or self.context.location_id)

    # ===== READS =====

    def get_order(self, order_id: int) -> Order:
        order = (
            self.db.query(Order)
            .options(selectinload(Order.items).selectinload(OrderItem.modifiers))
            .filter(Order.id == order_id, Order.business_id == self.context.business_id)
            .first()
        )
        if not order:
            raise NotFoundError(f"Order {order_id} not found", order_id=order_id)
        return order

    def list_orders(
        self,
        status: Optional[OrderStatus] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[List[Order], int]:
        query = self.db.query(Order).filter(
            Order.business_id == self.context.business_id,
            Order.location_id == self.context.location_id,
        )
        if status is not None:
            query = query.filter(Order.status == status)
        total = query.count()
        orders = query.order_by(Order.created_at.desc(), Order.id.desc()).offset(skip).limit(limit).all()
        return orders, total

    def get_timeline(self, order_id: int) -> List[OrderTimelineEvent]:
        self.get_order(order_id)
        return self.timeline.get_timeline(order_id)

    def lock_editable_order(self, order_id: int, expected_version: Optional[int] = None) -> Order:
        """Load and lock an order that may still change.

        Raises:
            NotEditableError: the order does not exist or is completed/cancelled.
            ConflictError: ``expected_version`` is stale.
        """
        order = (
            self.db.query(Order)
            .filter(Order.id == order_id, Order.business_id == self.context.business_id)
            .with_for_update()
            .first()
        )
        if not order:
            raise NotEditableError(f"Order {order_id} not found", order_id=order_id)
        if order.status not in EDITABLE_STATUSES:
            raise NotEditableError(
                f"Order {order.order_number} is {order.status.value} and can no longer be changed",
                order_id=order_id,
                status=order.status.value,
            )
        order.check_version(expected_version)
        return order

    # ===== LINE BUILDING =====

    def build_item(self, spec: OrderItemCreate) -> OrderItem:
        """New order line with price and name snapshots taken from the catalog."""
        with catalog_errors():
            product = self.resolver.get_product(spec.product_id)
            variant = self.resolver.get_variant(product, spec.variant_id)
            if product.has_variants and variant is None:
                raise ValidationError(
                    f"Product '{product.name}' requires a variant", product_id=product.id
                )
            modifiers = self.build_modifiers(product, spec.modifiers)

        item = OrderItem(
            product_id=product.id,
            variant_id=variant.id if variant else None,
            product_name=product.name,
            product_name_ar=product.name_ar,
            variant_name=variant.name if variant else None,
            quantity=spec.quantity,
            original_quantity=spec.quantity,
            unit_price=self.unit_price(product, variant),
            modifiers_total=Decimal("0"),
            line_total=Decimal("0"),
            special_instructions=spec.special_instructions,
            is_deleted=False,
        )
        item.modifiers = modifiers
        item.recalculate()
        return item

    @staticmethod
    def unit_price(product: Product, variant: Optional[ProductVariant]) -> Decimal:
        adjustment = variant.price_adjustment if variant else Decimal("0")
        return money(max(product.price + adjustment, Decimal("0")))

    def build_modifiers(self, product: Product, specs: Iterable[ModifierInput]) -> List[OrderItemModifier]:
        modifiers = []
        for spec in specs:
            item_id = None
            item_quantity = Decimal("0")
            name_ar = None
            if spec.modifier_id is not None:
                catalog = self.resolver.get_modifier(product, spec.modifier_id)
                if spec.modifier_type == ModifierType.REMOVAL and not catalog.removable:
                    raise ValidationError(f"Modifier '{catalog.name}' cannot be removed")
                if spec.modifier_type == ModifierType.EXTRA and not catalog.addable:
                    raise ValidationError(f"Modifier '{catalog.name}' cannot be added")
                name, name_ar = catalog.name, catalog.name_ar
                price = catalog.extra_price
                item_id, item_quantity = catalog.item_id, catalog.item_quantity
            else:
                name = spec.modifier_name
                price = spec.unit_price or Decimal("0")

            if spec.modifier_type == ModifierType.REMOVAL:
                price = Decimal("0")
            price = money(price)
            modifiers.append(OrderItemModifier(
                modifier_id=spec.modifier_id,
                modifier_name=name,
                modifier_name_ar=name_ar,
                modifier_type=spec.modifier_type,
                quantity=spec.quantity,
                unit_price=price,
                total=money(price * spec.quantity),
                item_id=item_id,
                item_quantity=item_quantity or Decimal("0"),
            ))
        return modifiers

    def consumption_of(
        self,
        item: OrderItem,
        quantity: Optional[int] = None,
        modifiers: Optional[Iterable[Any]] = None,
        existing: bool = True,
    ) -> Consumption:
        """Storage-unit ingredients of *item*, optionally with overrides."""
        return self.resolver.item_consumption(
            item.product_id,
            item.variant_id,
            item.quantity if quantity is None else quantity,
            item.modifiers if modifiers is None else modifiers,
            existing=existing,
        )

    def dispose_removed(
        self,
        order: Order,
        item: OrderItem,
        quantity: int,
        consumption: Consumption,
        source: CancellationSource,
        reason: Optional[str] = None,
    ) -> Consumption:
        """Route a removed quantity: kitchen queue, or straight back to stock.

        Returns what must be released now (empty when queued).
        """
        if requires_kitchen_decision(order):
            self.kitchen.queue_cancelled_item(order, item, quantity, consumption, source, reason)
            return {}
        return consumption

    def _next_order_number(self) -> str:
        prefix = f"ORD-{datetime.now(timezone.utc):%Y%m%d}-"
        last = (
            self.db.query(Order.order_number)
            .filter(
                Order.business_id == self.context.business_id,
                Order.order_number.like(f"{prefix}%"),
            )
            # Longer sequence suffixes are larger numbers
            .order_by(func.length(Order.order_number).desc(), Order.order_number.desc())
            .first()
        )
        seq = int(last[0].rsplit("-", 1)[1]) + 1 if last else 1
        return f"{prefix}{seq:04d}"

    def _initial_status(self, source) -> OrderStatus:
        if source.value in settings.auto_accept_sources:
            return OrderStatus.IN_PROGRESS
        return OrderStatus.PENDING

    # ===== CREATE =====

    def create_order(self, data: OrderCreate) -> Order:
        """Create an order and reserve its ingredients.

        Order numbers are allocated optimistically: a create that collides
        with a concurrent one on the unique order number is rolled back and
        run again with the next free number.

        Raises:
            ValidationError: unknown product/variant/modifier or empty cart.
            InsufficientInventoryError: stock cannot cover the order; nothing is saved.
            ConflictError: no order number could be allocated.
        """
        if not data.items:
            raise ValidationError("Order must contain at least one item")

        for attempt in range(1, ORDER_NUMBER_ATTEMPTS + 1):
            try:
                order = self._insert_order(data)
                break
            except IntegrityError as e:
                if not _is_order_number_clash(e):
                    raise
                logger.info(f"Order number clash on create, attempt {attempt}/{ORDER_NUMBER_ATTEMPTS}")
                if attempt == ORDER_NUMBER_ATTEMPTS:
                    raise ConflictError("Could not allocate an order number, retry the request") from e

        logger.info(
            f"Order {order.order_number} created ({order.status.value}, "
            f"{len(data.items)} items, total {order.grand_total})"
        )
        return self.get_order(order.id)

    def _insert_order(self, data: OrderCreate) -> Order:
        now = datetime.now(timezone.utc)
        with order_transaction(self.db):
            items = [self.build_item(spec) for spec in data.items]
            order = Order(
                business_id=self.context.business_id,
                location_id=self.context.location_id,
                order_number=self._next_order_number(),
                status=self._initial_status(data.order_source),
                order_type=data.order_type,
                order_source=data.order_source,
                table_number=data.table_number,
                customer_name=data.customer_name,
                notes=data.notes,
                pos_session_id=data.pos_session_id or self.context.session_id,
                created_by=self.context.user_id,
                discount_type=data.discount_type,
                discount_value=data.discount_value,
                tax_rate=data.tax_rate if data.tax_rate is not None else settings.default_tax_rate,
                delivery_fee=data.delivery_fee,
                service_charge=data.service_charge,
                is_edited=False,
                status_changed_at=now,
            )
            order.items = items
            order.recalculate_totals()
            self.db.add(order)
            self.db.flush()

            consumption = merge(*(self.consumption_of(item, existing=False) for item in items))
            self.ledger(order.location_id).reserve(
                consumption,
                operation_ref=f"order:{order.id}:create",
                ref_type="order",
                ref_id=order.id,
                created_by=self.context.user_id,
                notes=f"Order {order.order_number}",
            )
            self.timeline.log(
                order.id,
                TimelineEvent.CREATED,
                {
                    "order_number": order.order_number,
                    "status": order.status.value,
                    "items": len(items),
                    "grand_total": str(order.grand_total),
                },
                created_by=self.context.user_id,
            )
        return order

    # ===== STATUS =====

    def update_status(self, order_id: int, new_status: OrderStatus) -> Order:
        """Move an order along pending -> in_progress -> completed.

        Setting ``cancelled`` here only changes the status; use
        ``cancel_order`` to also dispose of the items.
        """
        with order_transaction(self.db, order_id):
            order = self.lock_editable_order(order_id)
            old_status = order.status
            if new_status == old_status:
                return order
            if new_status == OrderStatus.PENDING:
                raise ValidationError(
                    f"Order {order.order_number} cannot move from {old_status.value} back to pending",
                    order_id=order_id,
                )

            now = datetime.now(timezone.utc)
            order.status = new_status
            order.status_changed_at = now
            if new_status == OrderStatus.COMPLETED:
                order.completed_at = now
            elif new_status == OrderStatus.CANCELLED:
                order.cancelled_at = now
                order.cancelled_by = self.context.user_id

            self.timeline.log(
                order.id,
                TimelineEvent.STATUS_CHANGED,
                {"from": old_status.value, "to": new_status.value},
                created_by=self.context.user_id,
            )

        logger.info(f"Order {order_id} status {old_status.value} -> {new_status.value}")
        return self.get_order(order_id)

    # ===== CANCEL =====

    def cancel_order(self, order_id: int, reason: Optional[str] = None, session_id: Optional[int] = None) -> Order:
        """Cancel an open order and dispose of every remaining item.

        Items of an order the kitchen already has become pending cancelled
        items; otherwise their ingredients are released immediately.
        """
        with order_transaction(self.db, order_id):
            order = self.lock_editable_order(order_id)
            old_status = order.status
            items = order.active_items
            queued = len(items) if requires_kitchen_decision(order) else 0
            to_release: Consumption = {}
            for item in items:
                to_release = merge(to_release, self.dispose_removed(
                    order, item, item.quantity, self.consumption_of(item),
                    CancellationSource.ORDER_CANCELLED, reason,
                ))

            self.ledger(order.location_id).release(
                to_release,
                operation_ref=f"order:{order.id}:cancel",
                ref_type="order",
                ref_id=order.id,
                created_by=self.context.user_id,
                notes=f"Order {order.order_number} cancelled",
            )

            now = datetime.now(timezone.utc)
            order.status = OrderStatus.CANCELLED
            order.status_changed_at = now
            order.cancelled_at = now
            order.cancelled_by = self.context.user_id
            order.cancellation_reason = reason

            self.timeline.log(
                order.id,
                TimelineEvent.CANCELLED,
                {
                    "from": old_status.value,
                    "reason": reason,
                    "session_id": session_id or self.context.session_id,
                    "queued_for_kitchen": queued,
                },
                created_by=self.context.user_id,
            )

        logger.info(f"Order {order_id} cancelled ({queued} items queued for kitchen decision)")
        return self.get_order(order_id)

    # ===== PREVIEW & AVAILABILITY =====

    def calculate_totals(self, data: OrderTotalsRequest) -> Dict[str, Any]:
        """Totals for a prospective cart at current catalog prices. Nothing is saved."""
        items = [self.build_item(spec) for spec in data.items]
        tax_rate = data.tax_rate if data.tax_rate is not None else settings.default_tax_rate
        totals = compute_totals(
            (item.line_total for item in items),
            discount_type=data.discount_type.value if data.discount_type else None,
            discount_value=data.discount_value,
            tax_rate=tax_rate,
            delivery_fee=data.delivery_fee,
            service_charge=data.service_charge,
        )
        return {
            "subtotal": totals.subtotal,
            "discount_amount": totals.discount_amount,
            "tax_rate": Decimal(str(tax_rate)),
            "tax_amount": totals.tax_amount,
            "delivery_fee": totals.delivery_fee,
            "service_charge": totals.service_charge,
            "grand_total": totals.grand_total,
            "items": [
                {
                    "product_id": item.product_id,
                    "variant_id": item.variant_id,
                    "product_name": item.product_name,
                    "quantity": item.quantity,
                    "unit_price": item.unit_price,
                    "modifiers_total": item.modifiers_total,
                    "line_total": item.line_total,
                }
                for item in items
            ],
        }

    def product_availability(self, product_id: Optional[int] = None) -> List[Dict[str, Any]]:
        """Maximum orderable quantity per product (or variant) at the current location."""
        query = self.db.query(Product).filter(
            Product.business_id == self.context.business_id,
            Product.active == True,  # noqa: E712
        )
        if product_id is not None:
            query = query.filter(Product.id == product_id)
        products = query.order_by(Product.name).all()
        if product_id is not None and not products:
            raise NotFoundError(f"Product {product_id} not found", product_id=product_id)

        ledger = self.ledger()
        result = []
        for product in products:
            variants = [v for v in product.variants if v.active] if product.has_variants else []
            targets = [(v.id, v.name) for v in variants] or [(None, None)]
            for variant_id, variant_name in targets:
                per_unit = self.resolver.item_consumption(product.id, variant_id, 1)
                max_qty = ledger.max_servings(per_unit)
                result.append({
                    "product_id": product.id,
                    "product_name": product.name,
                    "variant_id": variant_id,
                    "variant_name": variant_name,
                    "max_quantity": UNLIMITED_AVAILABILITY if max_qty is None else max_qty,
                    "unlimited": max_qty is None,
                })
        return result

"""POS order models: Order, OrderItem and OrderItemModifier."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean, DateTime, Enum as SQLEnum, ForeignKey, Integer, Numeric, String, Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from poscore.core.money import compute_totals, money
from poscore.db.base import Base, SoftDeleteMixin, TimestampMixin, VersionMixin
from poscore.models.validators import non_negative, positive


class OrderStatus(str, Enum):
    """Lifecycle status of a POS order."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED})
EDITABLE_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.IN_PROGRESS})


class OrderType(str, Enum):
    DINE_IN = "dine_in"
    TAKEAWAY = "takeaway"
    DELIVERY = "delivery"


class OrderSource(str, Enum):
    POS = "pos"
    DELIVERY_APP = "delivery_app"
    QR_SCAN = "qr_scan"
    PHONE = "phone"


class ModifierType(str, Enum):
    EXTRA = "extra"
    REMOVAL = "removal"


class DiscountType(str, Enum):
    FIXED = "fixed"
    PERCENTAGE = "percentage"


class Order(Base, TimestampMixin, VersionMixin):
    """A customer order taken at the POS.

    Totals are derived from the active items and recomputed by
    ``recalculate_totals()`` after every item or modifier change.
    """

    __tablename__ = "orders"
    __table_args__ = (
        UniqueConstraint("business_id", "order_number", name="uq_order_business_number"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    business_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    location_id: Mapped[int] = mapped_column(
        ForeignKey("locations.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    order_number: Mapped[str] = mapped_column(String(30), nullable=False)
    status: Mapped[OrderStatus] = mapped_column(
        SQLEnum(OrderStatus, name="order_status"), default=OrderStatus.PENDING, nullable=False, index=True
    )
    order_type: Mapped[OrderType] = mapped_column(
        SQLEnum(OrderType, name="order_type"), default=OrderType.DINE_IN, nullable=False
    )
    order_source: Mapped[OrderSource] = mapped_column(
        SQLEnum(OrderSource, name="order_source"), default=OrderSource.POS, nullable=False
    )
    table_number: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    customer_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    pos_session_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    created_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Money (3 decimal places)
    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 3), default=0, nullable=False)
    discount_type: Mapped[Optional[DiscountType]] = mapped_column(
        SQLEnum(DiscountType, name="discount_type"), nullable=True
    )
    discount_value: Mapped[Decimal] = mapped_column(Numeric(12, 3), default=0, nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(12, 3), default=0, nullable=False)
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(6, 3), default=0, nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(12, 3), default=0, nullable=False)
    delivery_fee: Mapped[Decimal] = mapped_column(Numeric(12, 3), default=0, nullable=False)
    service_charge: Mapped[Decimal] = mapped_column(Numeric(12, 3), default=0, nullable=False)
    grand_total: Mapped[Decimal] = mapped_column(Numeric(12, 3), default=0, nullable=False)

    is_edited: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    edited_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    status_changed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # Relationships
    items: Mapped[list["OrderItem"]] = relationship(
        "OrderItem", back_populates="order", cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )

    @validates(
        "subtotal", "discount_value", "discount_amount", "tax_rate", "tax_amount",
        "delivery_fee", "service_charge", "grand_total",
    )
    def _validate_amounts(self, key, value):
        return non_negative(key, value)

    @property
    def active_items(self) -> list["OrderItem"]:
        """Items that have not been removed."""
        return [item for item in self.items if not item.is_deleted]

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def recalculate_totals(self) -> None:
        for item in self.active_items:
            item.recalculate()
        totals = compute_totals(
            (item.line_total for item in self.active_items),
            discount_type=self.discount_type.value if self.discount_type else None,
            discount_value=self.discount_value,
            tax_rate=self.tax_rate,
            delivery_fee=self.delivery_fee,
            service_charge=self.service_charge,
        )
        self.subtotal = totals.subtotal
        self.discount_amount = totals.discount_amount
        self.tax_amount = totals.tax_amount
        self.delivery_fee = totals.delivery_fee
        self.service_charge = totals.service_charge
        self.grand_total = totals.grand_total


class OrderItem(Base, SoftDeleteMixin):
    """A product line of an order with its price and name snapshots."""

    __tablename__ = "order_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    order_id: Mapped[int] = mapped_column(
        ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True
    )
    variant_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("product_variants.id", ondelete="SET NULL"), nullable=True
    )
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    product_name_ar: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    variant_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    original_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)
    modifiers_total: Mapped[Decimal] = mapped_column(Numeric(12, 3), default=0, nullable=False)
    line_total: Mapped[Decimal] = mapped_column(Numeric(12, 3), default=0, nullable=False)
    special_instructions: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # Relationships
    order: Mapped["Order"] = relationship("Order", back_populates="items")
    modifiers: Mapped[list["OrderItemModifier"]] = relationship(
        "OrderItemModifier", back_populates="order_item", cascade="all, delete-orphan",
        order_by="OrderItemModifier.id",
    )

    @validates("quantity")
    def _validate_quantity(self, key, value):
        return positive(key, value)

    @validates("unit_price", "modifiers_total", "line_total")
    def _validate_amounts(self, key, value):
        return non_negative(key, value)

    def recalculate(self) -> None:
        self.modifiers_total = money(sum(
            (m.unit_price * m.quantity for m in self.modifiers if m.modifier_type == ModifierType.EXTRA),
            Decimal("0"),
        ))
        self.line_total = money(self.unit_price * self.quantity + self.modifiers_total)


class OrderItemModifier(Base):
    """An extra or removal applied to an order item.

    ``item_id``/``item_quantity`` snapshot the modifier's stock link so later
    catalog edits do not change what gets reserved or released for this line.
    """

    __tablename__ = "order_item_modifiers"

    id: Mapped[int] = mapped_column(primary_key=True)
    order_item_id: Mapped[int] = mapped_column(
        ForeignKey("order_items.id", ondelete="CASCADE"), nullable=False, index=True
    )
    modifier_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("product_modifiers.id", ondelete="SET NULL"), nullable=True
    )
    modifier_name: Mapped[str] = mapped_column(String(255), nullable=False)
    modifier_name_ar: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    modifier_type: Mapped[ModifierType] = mapped_column(
        SQLEnum(ModifierType, name="modifier_type"), default=ModifierType.EXTRA, nullable=False
    )
    quantity: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 3), default=0, nullable=False)
    total: Mapped[Decimal] = mapped_column(Numeric(12, 3), default=0, nullable=False)
    item_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("stock_items.id", ondelete="SET NULL"), nullable=True
    )
    item_quantity: Mapped[Decimal] = mapped_column(Numeric(12, 4), default=0, nullable=False)

    order_item: Mapped["OrderItem"] = relationship("OrderItem", back_populates="modifiers")

    @validates("quantity")
    def _validate_quantity(self, key, value):
        return positive(key, value)

    @validates("unit_price", "total", "item_quantity")
    def _validate_amounts(self, key, value):
        return non_negative(key, value)

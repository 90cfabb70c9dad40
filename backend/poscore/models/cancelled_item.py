"""Cancelled items awaiting a kitchen waste/return decision."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean, DateTime, Enum as SQLEnum, ForeignKey, Integer, Numeric, String, func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from poscore.db.base import Base
from poscore.models.validators import positive


class CancellationSource(str, Enum):
    ORDER_CANCELLED = "order_cancelled"
    ORDER_EDITED = "order_edited"


class WasteDecision(str, Enum):
    PENDING = "pending"
    WASTE = "waste"
    RETURNED = "returned"


class CancelledItem(Base):
    """Quantity of an order item removed after it was sent to the kitchen.

    Created with decision ``pending``; a kitchen user (or the auto-expire
    sweep) later decides ``waste`` or ``returned``. The decision is final.
    ``lines`` hold the ingredient quantities that were reserved for the
    removed quantity, in storage units, and are what a return releases.
    """

    __tablename__ = "cancelled_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    business_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    location_id: Mapped[int] = mapped_column(
        ForeignKey("locations.id", ondelete="RESTRICT"), nullable=False
    )
    order_id: Mapped[int] = mapped_column(
        ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    order_item_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("order_items.id", ondelete="SET NULL"), nullable=True
    )
    product_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("products.id", ondelete="SET NULL"), nullable=True
    )
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    variant_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    cancellation_source: Mapped[CancellationSource] = mapped_column(
        SQLEnum(CancellationSource, name="cancellation_source"), nullable=False, index=True
    )
    reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    decision: Mapped[WasteDecision] = mapped_column(
        SQLEnum(WasteDecision, name="waste_decision"), default=WasteDecision.PENDING,
        nullable=False, index=True,
    )
    decided_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    decided_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    auto_expired: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )

    # Relationships
    order: Mapped["Order"] = relationship("Order")
    lines: Mapped[list["CancelledItemLine"]] = relationship(
        "CancelledItemLine", back_populates="cancelled_item", cascade="all, delete-orphan"
    )

    @validates("quantity")
    def _validate_quantity(self, key, value):
        return positive(key, value)


class CancelledItemLine(Base):
    """Ingredient quantity (storage unit) reserved for a cancelled item."""

    __tablename__ = "cancelled_item_lines"

    id: Mapped[int] = mapped_column(primary_key=True)
    cancelled_item_id: Mapped[int] = mapped_column(
        ForeignKey("cancelled_items.id", ondelete="CASCADE"), nullable=False, index=True
    )
    item_id: Mapped[int] = mapped_column(
        ForeignKey("stock_items.id", ondelete="CASCADE"), nullable=False
    )
    quantity: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)

    cancelled_item: Mapped["CancelledItem"] = relationship("CancelledItem", back_populates="lines")

    @validates("quantity")
    def _validate_quantity(self, key, value):
        return positive(key, value)


# Forward references
from poscore.models.order import Order

"""Stock models: StockOnHand and StockMovement."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    CheckConstraint, DateTime, ForeignKey, Integer, Numeric, String, UniqueConstraint, func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from poscore.db.base import Base


class MovementReason(str, Enum):
    """Reasons for stock movements."""

    RESERVATION = "reservation"  # Ingredients reserved for an order
    RELEASE = "release"  # Reserved ingredients returned to stock


class StockOnHand(Base):
    """Current stock level per stock item per location, in the item's storage unit."""

    __tablename__ = "stock_on_hand"
    __table_args__ = (
        UniqueConstraint("item_id", "location_id", name="uq_stock_item_location"),
        CheckConstraint("qty >= 0", name="ck_stock_on_hand_qty_non_negative"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    item_id: Mapped[int] = mapped_column(
        ForeignKey("stock_items.id", ondelete="CASCADE"), nullable=False, index=True
    )
    location_id: Mapped[int] = mapped_column(
        ForeignKey("locations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    qty: Mapped[Decimal] = mapped_column(Numeric(14, 4), default=0, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    # Relationships
    item: Mapped["StockItem"] = relationship("StockItem", back_populates="stock_on_hand")
    location: Mapped["Location"] = relationship("Location", back_populates="stock_on_hand")


class StockMovement(Base):
    """Journal of all stock changes.

    ``operation_ref`` identifies the business operation that produced the
    movement; the ledger refuses to apply the same operation twice.
    """

    __tablename__ = "stock_movements"

    id: Mapped[int] = mapped_column(primary_key=True)
    ts: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )
    item_id: Mapped[int] = mapped_column(
        ForeignKey("stock_items.id", ondelete="CASCADE"), nullable=False, index=True
    )
    location_id: Mapped[int] = mapped_column(
        ForeignKey("locations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    qty_delta: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    reason: Mapped[str] = mapped_column(String(50), nullable=False)
    ref_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)  # order, cancelled_item
    ref_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    operation_ref: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    created_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Relationships
    item: Mapped["StockItem"] = relationship("StockItem")
    location: Mapped["Location"] = relationship("Location", back_populates="stock_movements")


# Forward references
from poscore.models.stock_item import StockItem
from poscore.models.location import Location

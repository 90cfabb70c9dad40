"""StockItem model - the raw ingredients and goods that recipes consume."""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from poscore.core import units
from poscore.db.base import Base, TimestampMixin
from poscore.models.validators import non_negative

DEFAULT_UNIT = "grams"


class StockItem(Base, TimestampMixin):
    """An inventory item.

    ``unit`` is the serving unit recipes are written in; ``storage_unit`` is
    the unit stock is counted in. Both must belong to the same unit category,
    which is checked whenever either one is set.
    """

    __tablename__ = "stock_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    business_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    name_ar: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    sku: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    unit: Mapped[str] = mapped_column(String(20), default=DEFAULT_UNIT, nullable=False)
    storage_unit: Mapped[str] = mapped_column(String(20), default=DEFAULT_UNIT, nullable=False)
    cost_per_unit: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 4), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Relationships
    stock_on_hand: Mapped[list["StockOnHand"]] = relationship(
        "StockOnHand", back_populates="item", cascade="all, delete-orphan"
    )

    def __init__(self, **kwargs):
        # Apply the unit defaults up front so the pair is validated as stored
        kwargs.setdefault("unit", DEFAULT_UNIT)
        kwargs.setdefault("storage_unit", DEFAULT_UNIT)
        super().__init__(**kwargs)

    @validates("unit")
    def _validate_unit(self, key, value):
        value = units.normalize_unit(value)
        if self.storage_unit is not None:
            units.validate_unit_pairing(self.storage_unit, value, self.name or "")
        return value

    @validates("storage_unit")
    def _validate_storage_unit(self, key, value):
        value = units.normalize_unit(value)
        if self.unit is not None:
            units.validate_unit_pairing(value, self.unit, self.name or "")
        return value

    @validates("cost_per_unit")
    def _validate_cost(self, key, value):
        return non_negative(key, value)

    def to_storage(self, serving_quantity: Decimal) -> Decimal:
        """Convert a recipe (serving-unit) quantity into this item's storage unit."""
        return units.serving_to_storage(serving_quantity, self.unit or "grams", self.storage_unit or "grams")


# Forward references
from poscore.models.stock import StockOnHand

"""Recipe (Bill of Materials) lines."""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from sqlalchemy import ForeignKey, Integer, Numeric
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from poscore.db.base import Base
from poscore.models.validators import positive


class RecipeLine(Base):
    """Serving-unit quantity of one stock item consumed per unit sold.

    Lines with ``variant_id`` set belong to that variant and replace the
    product-level lines when the variant is ordered.
    """

    __tablename__ = "recipe_lines"

    id: Mapped[int] = mapped_column(primary_key=True)
    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    variant_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("product_variants.id", ondelete="CASCADE"), nullable=True, index=True
    )
    item_id: Mapped[int] = mapped_column(
        ForeignKey("stock_items.id", ondelete="CASCADE"), nullable=False, index=True
    )
    qty: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Relationships
    product: Mapped["Product"] = relationship("Product", back_populates="recipe_lines")
    item: Mapped["StockItem"] = relationship("StockItem")

    @validates("qty")
    def _validate_qty(self, key, value):
        return positive(key, value)


# Forward references
from poscore.models.product import Product
from poscore.models.stock_item import StockItem

"""Catalog models: products, variants and modifiers."""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from poscore.db.base import Base, TimestampMixin
from poscore.models.validators import non_negative


class Product(Base, TimestampMixin):
    """A sellable product in the catalog."""

    __tablename__ = "products"

    id: Mapped[int] = mapped_column(primary_key=True)
    business_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    name_ar: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    sku: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, index=True)
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 3), default=0, nullable=False)
    has_variants: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Relationships
    variants: Mapped[list["ProductVariant"]] = relationship(
        "ProductVariant", back_populates="product", cascade="all, delete-orphan"
    )
    modifiers: Mapped[list["ProductModifier"]] = relationship(
        "ProductModifier", back_populates="product", cascade="all, delete-orphan"
    )
    recipe_lines: Mapped[list["RecipeLine"]] = relationship(
        "RecipeLine", back_populates="product", cascade="all, delete-orphan",
        order_by="RecipeLine.sort_order",
    )

    @validates("price")
    def _validate_price(self, key, value):
        return non_negative(key, value)


class ProductVariant(Base):
    """A size/flavour option of a product with its own price adjustment."""

    __tablename__ = "product_variants"

    id: Mapped[int] = mapped_column(primary_key=True)
    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    name_ar: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    price_adjustment: Mapped[Decimal] = mapped_column(Numeric(12, 3), default=0, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    product: Mapped["Product"] = relationship("Product", back_populates="variants")


class ProductModifier(Base):
    """An add-on ("extra cheese") or removable ingredient ("no onions").

    A modifier linked to a stock item moves inventory: extras consume
    ``item_quantity`` (serving unit) per modifier unit, removals exclude the
    linked ingredient from the product's recipe.
    """

    __tablename__ = "product_modifiers"

    id: Mapped[int] = mapped_column(primary_key=True)
    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    name_ar: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    item_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("stock_items.id", ondelete="SET NULL"), nullable=True
    )
    item_quantity: Mapped[Decimal] = mapped_column(Numeric(12, 4), default=0, nullable=False)
    extra_price: Mapped[Decimal] = mapped_column(Numeric(12, 3), default=0, nullable=False)
    addable: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    removable: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    product: Mapped["Product"] = relationship("Product", back_populates="modifiers")

    @validates("item_quantity", "extra_price")
    def _validate_amounts(self, key, value):
        return non_negative(key, value)


# Forward references
from poscore.models.recipe import RecipeLine

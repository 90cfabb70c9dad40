"""Recipe Resolver - turns products, variants and modifiers into ingredient lines.

Pure lookups against the catalog: nothing here writes to the database.
Quantities come back in two flavours:

* ``IngredientLine`` - serving-unit quantity per unit sold, as written in the recipe
* consumption maps - ``{item_id: Decimal}`` in each item's storage unit, ready
  for the inventory ledger
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Protocol

from sqlalchemy.orm import Session

from poscore.core.errors import NotFoundError
from poscore.models.order import ModifierType
from poscore.models.product import Product, ProductModifier, ProductVariant
from poscore.models.recipe import RecipeLine
from poscore.models.stock_item import StockItem

logger = logging.getLogger(__name__)

Consumption = Dict[int, Decimal]


@dataclass(frozen=True)
class IngredientLine:
    item_id: int
    quantity_per_unit: Decimal
    unit: str


class ModifierLike(Protocol):
    """Anything shaped like an OrderItemModifier (persisted or planned)."""

    modifier_type: ModifierType
    quantity: int
    item_id: Optional[int]
    item_quantity: Decimal


def merge(*maps: Consumption) -> Consumption:
    """Sum consumption maps item by item."""
    total: Consumption = defaultdict(lambda: Decimal("0"))
    for m in maps:
        for item_id, qty in m.items():
            total[item_id] += qty
    return dict(total)


def subtract(left: Consumption, right: Consumption) -> Consumption:
    """``left - right`` per item; zero entries are dropped, negatives kept."""
    result: Consumption = {}
    for item_id in set(left) | set(right):
        diff = left.get(item_id, Decimal("0")) - right.get(item_id, Decimal("0"))
        if diff != 0:
            result[item_id] = diff
    return result


class RecipeResolver:
    """Resolves catalog entries for one business."""

    def __init__(self, db: Session, business_id: int):
        self.db = db
        self.business_id = business_id
        self._items: Dict[int, Optional[StockItem]] = {}

    # ===== CATALOG LOOKUPS =====

    def get_product(self, product_id: int, active_only: bool = True) -> Product:
        query = self.db.query(Product).filter(
            Product.id == product_id,
            Product.business_id == self.business_id,
        )
        if active_only:
            query = query.filter(Product.active == True)  # noqa: E712
        product = query.first()
        if not product:
            raise NotFoundError(f"Product {product_id} not found", product_id=product_id)
        return product

    def get_variant(
        self, product: Product, variant_id: Optional[int], active_only: bool = True
    ) -> Optional[ProductVariant]:
        if variant_id is None:
            return None
        query = self.db.query(ProductVariant).filter(
            ProductVariant.id == variant_id,
            ProductVariant.product_id == product.id,
        )
        if active_only:
            query = query.filter(ProductVariant.active == True)  # noqa: E712
        variant = query.first()
        if not variant:
            raise NotFoundError(
                f"Variant {variant_id} not found for product '{product.name}'",
                product_id=product.id,
                variant_id=variant_id,
            )
        return variant

    def get_modifier(self, product: Product, modifier_id: int) -> ProductModifier:
        modifier = self.db.query(ProductModifier).filter(
            ProductModifier.id == modifier_id,
            ProductModifier.product_id == product.id,
        ).first()
        if not modifier:
            raise NotFoundError(
                f"Modifier {modifier_id} not found for product '{product.name}'",
                product_id=product.id,
                modifier_id=modifier_id,
            )
        return modifier

    def get_stock_item(self, item_id: int) -> Optional[StockItem]:
        if item_id not in self._items:
            self._items[item_id] = self.db.get(StockItem, item_id)
        return self._items[item_id]

    # ===== INGREDIENTS =====

    def resolve_ingredients(
        self, product_id: int, variant_id: Optional[int] = None, active_only: bool = True
    ) -> List[IngredientLine]:
        """Ingredient lines per unit sold, in recipe order.

        Variant-specific lines replace the product-level recipe when the
        variant has any; otherwise the product-level recipe applies.

        Raises:
            NotFoundError: product or variant missing, foreign, or inactive
                (unless ``active_only`` is False).
        """
        product = self.get_product(product_id, active_only)
        variant = self.get_variant(product, variant_id, active_only)

        query = self.db.query(RecipeLine).filter(RecipeLine.product_id == product.id)
        lines = []
        if variant is not None:
            lines = query.filter(RecipeLine.variant_id == variant.id).order_by(
                RecipeLine.sort_order, RecipeLine.id
            ).all()
        if not lines:
            lines = query.filter(RecipeLine.variant_id.is_(None)).order_by(
                RecipeLine.sort_order, RecipeLine.id
            ).all()

        result = []
        for line in lines:
            item = self.get_stock_item(line.item_id)
            result.append(IngredientLine(
                item_id=line.item_id,
                quantity_per_unit=Decimal(str(line.qty)),
                unit=item.unit if item else "grams",
            ))
        return result

    def resolve_modifier_lines(self, item_id: Optional[int], item_quantity, modifier_quantity: int) -> List[IngredientLine]:
        """Ingredient line of a standalone extra that is itself a stock item."""
        if not item_id or not item_quantity:
            return []
        item = self.get_stock_item(item_id)
        return [IngredientLine(
            item_id=item_id,
            quantity_per_unit=Decimal(str(item_quantity)) * modifier_quantity,
            unit=item.unit if item else "grams",
        )]

    # ===== CONSUMPTION =====

    def to_storage(self, item_id: int, serving_quantity: Decimal) -> Decimal:
        item = self.get_stock_item(item_id)
        if item is None:
            logger.warning(f"Stock item {item_id} referenced by a recipe no longer exists")
            return serving_quantity
        return item.to_storage(serving_quantity)

    def item_consumption(
        self,
        product_id: Optional[int],
        variant_id: Optional[int],
        quantity: int,
        modifiers: Iterable[ModifierLike] = (),
        existing: bool = False,
    ) -> Consumption:
        """Storage-unit consumption of one order line.

        Base recipe x quantity; a removal linked to a recipe ingredient drops
        that ingredient for ``min(modifier quantity, quantity)`` units; an extra
        linked to a stock item adds ``item_quantity x modifier quantity``.

        ``existing`` marks a line already on an order: products deactivated
        since are still resolved, and products deleted since contribute no
        base recipe instead of failing the operation.
        """
        if quantity <= 0:
            return {}

        serving: Dict[int, Decimal] = defaultdict(lambda: Decimal("0"))
        per_unit: Dict[int, Decimal] = defaultdict(lambda: Decimal("0"))
        if product_id is not None:
            try:
                lines = self.resolve_ingredients(product_id, variant_id, active_only=not existing)
            except NotFoundError:
                if not existing:
                    raise
                logger.warning(
                    f"Product {product_id} of an existing order line is gone; "
                    f"only modifier ingredients are accounted for"
                )
                lines = []
            for line in lines:
                per_unit[line.item_id] += line.quantity_per_unit
                serving[line.item_id] += line.quantity_per_unit * quantity

        for mod in modifiers:
            mod_type = ModifierType(mod.modifier_type)
            if mod_type == ModifierType.REMOVAL:
                if mod.item_id in per_unit:
                    excluded = per_unit[mod.item_id] * min(mod.quantity, quantity)
                    serving[mod.item_id] = max(serving[mod.item_id] - excluded, Decimal("0"))
            else:
                for line in self.resolve_modifier_lines(mod.item_id, mod.item_quantity, mod.quantity):
                    serving[line.item_id] += line.quantity_per_unit

        return {
            item_id: self.to_storage(item_id, qty)
            for item_id, qty in serving.items()
            if qty > 0
        }

"""SQLAlchemy models."""

from poscore.models.location import Location
from poscore.models.stock_item import StockItem
from poscore.models.stock import StockOnHand, StockMovement, MovementReason
from poscore.models.product import Product, ProductVariant, ProductModifier
from poscore.models.recipe import RecipeLine
from poscore.models.order import (
    Order,
    OrderItem,
    OrderItemModifier,
    OrderStatus,
    OrderType,
    OrderSource,
    ModifierType,
    DiscountType,
)
from poscore.models.cancelled_item import (
    CancelledItem,
    CancelledItemLine,
    CancellationSource,
    WasteDecision,
)
from poscore.models.order_timeline import OrderTimelineEvent, TimelineEvent

__all__ = [
    "Location",
    "StockItem",
    "StockOnHand",
    "StockMovement",
    "MovementReason",
    "Product",
    "ProductVariant",
    "ProductModifier",
    "RecipeLine",
    "Order",
    "OrderItem",
    "OrderItemModifier",
    "OrderStatus",
    "OrderType",
    "OrderSource",
    "ModifierType",
    "DiscountType",
    "CancelledItem",
    "CancelledItemLine",
    "CancellationSource",
    "WasteDecision",
    "OrderTimelineEvent",
    "TimelineEvent",
]

# Services module

from poscore.services.recipe_service import RecipeResolver, IngredientLine
from poscore.services.inventory_ledger_service import InventoryLedgerService
from poscore.services.order_timeline_service import OrderTimelineService
from poscore.services.kitchen_waste_service import KitchenWasteService
from poscore.services.order_service import OrderService
from poscore.services.order_edit_service import OrderEditService

__all__ = [
    "RecipeResolver",
    "IngredientLine",
    "InventoryLedgerService",
    "OrderTimelineService",
    "KitchenWasteService",
    "OrderService",
    "OrderEditService",
]

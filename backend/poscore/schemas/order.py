"""POS order schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from poscore.models.order import DiscountType, ModifierType, OrderSource, OrderStatus, OrderType


# ===== REQUESTS =====

class ModifierInput(BaseModel):
    """A modifier on an order line.

    Catalog modifiers are referenced by ``modifier_id``; name, price and
    stock link come from the catalog. Ad-hoc modifiers carry their own
    name and price and never move inventory.
    """

    modifier_id: Optional[int] = None
    modifier_name: Optional[str] = Field(default=None, max_length=255)
    modifier_type: ModifierType = ModifierType.EXTRA
    quantity: int = Field(default=1, gt=0)
    unit_price: Optional[Decimal] = Field(default=None, ge=0)

    @model_validator(mode="after")
    def require_reference(self):
        if self.modifier_id is None and not self.modifier_name:
            raise ValueError("modifier_id or modifier_name is required")
        return self


class OrderItemCreate(BaseModel):
    product_id: int
    variant_id: Optional[int] = None
    quantity: int = Field(default=1, gt=0)
    modifiers: List[ModifierInput] = Field(default_factory=list)
    special_instructions: Optional[str] = Field(default=None, max_length=500)


class OrderTotalsRequest(BaseModel):
    """Cart shape shared by order creation and the totals preview."""

    items: List[OrderItemCreate] = Field(min_length=1)
    discount_type: Optional[DiscountType] = None
    discount_value: Decimal = Field(default=Decimal("0"), ge=0)
    tax_rate: Optional[Decimal] = Field(default=None, ge=0, le=100)
    delivery_fee: Decimal = Field(default=Decimal("0"), ge=0)
    service_charge: Decimal = Field(default=Decimal("0"), ge=0)

    @model_validator(mode="after")
    def validate_discount(self):
        if self.discount_type == DiscountType.PERCENTAGE and self.discount_value > 100:
            raise ValueError("Percentage discount cannot exceed 100")
        return self


class OrderCreate(OrderTotalsRequest):
    order_type: OrderType = OrderType.DINE_IN
    order_source: OrderSource = OrderSource.POS
    table_number: Optional[str] = Field(default=None, max_length=20)
    customer_name: Optional[str] = Field(default=None, max_length=255)
    notes: Optional[str] = None
    pos_session_id: Optional[int] = None


class OrderItemModify(BaseModel):
    """Change to an existing line; omitted fields stay as they are.

    ``modifiers`` replaces the whole modifier set when present (``[]`` clears it).
    """

    order_item_id: int
    quantity: Optional[int] = Field(default=None, gt=0)
    variant_id: Optional[int] = None
    modifiers: Optional[List[ModifierInput]] = None
    special_instructions: Optional[str] = Field(default=None, max_length=500)


class OrderItemRemove(BaseModel):
    """Remove a line, or only ``quantity`` units of it."""

    order_item_id: int
    quantity: Optional[int] = Field(default=None, gt=0)


class OrderEditRequest(BaseModel):
    """Structured edit of an open order.

    Accepts the current field names and the legacy ``itemsTo*`` /
    ``items_to_*`` spellings; services only ever see the canonical fields.
    """

    model_config = ConfigDict(populate_by_name=True)

    products_to_add: List[OrderItemCreate] = Field(
        default_factory=list,
        validation_alias=AliasChoices("products_to_add", "productsToAdd", "items_to_add", "itemsToAdd"),
    )
    products_to_modify: List[OrderItemModify] = Field(
        default_factory=list,
        validation_alias=AliasChoices("products_to_modify", "productsToModify", "items_to_modify", "itemsToModify"),
    )
    products_to_remove: List[OrderItemRemove] = Field(
        default_factory=list,
        validation_alias=AliasChoices("products_to_remove", "productsToRemove", "items_to_remove", "itemsToRemove"),
    )
    expected_version: Optional[int] = Field(
        default=None, validation_alias=AliasChoices("expected_version", "expectedVersion"),
    )

    @field_validator("products_to_add", "products_to_modify", "products_to_remove", mode="before")
    @classmethod
    def none_as_empty(cls, v):
        return [] if v is None else v

    @field_validator("products_to_remove", mode="before")
    @classmethod
    def accept_bare_ids(cls, v):
        """Legacy clients send a plain list of order item ids."""
        if isinstance(v, list):
            return [{"order_item_id": e} if isinstance(e, int) else e for e in v]
        return v

    @model_validator(mode="after")
    def require_operation(self):
        if self.is_empty:
            raise ValueError(
                "At least one of products_to_add, products_to_modify or products_to_remove is required"
            )
        return self

    @property
    def is_empty(self) -> bool:
        return not (self.products_to_add or self.products_to_modify or self.products_to_remove)


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class OrderCancelRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)
    session_id: Optional[int] = Field(
        default=None, validation_alias=AliasChoices("session_id", "pos_session_id", "sessionId"),
    )


# ===== RESPONSES =====

class OrderItemModifierResponse(BaseModel):
    id: int
    modifier_id: Optional[int] = None
    modifier_name: str
    modifier_name_ar: Optional[str] = None
    modifier_type: ModifierType
    quantity: int
    unit_price: Decimal
    total: Decimal

    model_config = {"from_attributes": True}


class OrderItemResponse(BaseModel):
    id: int
    product_id: Optional[int] = None
    variant_id: Optional[int] = None
    product_name: str
    product_name_ar: Optional[str] = None
    variant_name: Optional[str] = None
    quantity: int
    original_quantity: int
    unit_price: Decimal
    modifiers_total: Decimal
    line_total: Decimal
    special_instructions: Optional[str] = None
    modifiers: List[OrderItemModifierResponse] = []

    model_config = {"from_attributes": True}


class OrderResponse(BaseModel):
    id: int
    business_id: int
    location_id: int
    order_number: str
    status: OrderStatus
    order_type: OrderType
    order_source: OrderSource
    table_number: Optional[str] = None
    customer_name: Optional[str] = None
    notes: Optional[str] = None
    pos_session_id: Optional[int] = None
    created_by: Optional[int] = None
    subtotal: Decimal
    discount_type: Optional[DiscountType] = None
    discount_value: Decimal
    discount_amount: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    delivery_fee: Decimal
    service_charge: Decimal
    grand_total: Decimal
    is_edited: bool
    version: int
    created_at: datetime
    updated_at: datetime
    edited_at: Optional[datetime] = None
    status_changed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[int] = None
    cancellation_reason: Optional[str] = None
    items: List[OrderItemResponse] = Field(default_factory=list, validation_alias="active_items")

    model_config = {"from_attributes": True}


class OrderSummaryResponse(BaseModel):
    id: int
    order_number: str
    status: OrderStatus
    order_type: OrderType
    order_source: OrderSource
    table_number: Optional[str] = None
    grand_total: Decimal
    is_edited: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class TotalsLineResponse(BaseModel):
    product_id: int
    variant_id: Optional[int] = None
    product_name: str
    quantity: int
    unit_price: Decimal
    modifiers_total: Decimal
    line_total: Decimal


class OrderTotalsResponse(BaseModel):
    subtotal: Decimal
    discount_amount: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    delivery_fee: Decimal
    service_charge: Decimal
    grand_total: Decimal
    items: List[TotalsLineResponse]


class TimelineEventResponse(BaseModel):
    id: int
    event_type: str
    details: Optional[dict] = None
    created_by: Optional[int] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class ProductAvailability(BaseModel):
    product_id: int
    product_name: str
    variant_id: Optional[int] = None
    variant_name: Optional[str] = None
    max_quantity: int
    unlimited: bool = False

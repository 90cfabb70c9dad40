"""Kitchen waste/return schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from poscore.models.cancelled_item import CancellationSource, WasteDecision


class DecisionFilter(str, Enum):
    """Queue filter: one decision, or ``all`` of them."""

    PENDING = "pending"
    WASTE = "waste"
    RETURNED = "returned"
    ALL = "all"

    def as_decision(self) -> Optional[WasteDecision]:
        return None if self is DecisionFilter.ALL else WasteDecision(self.value)


class CancelledItemLineResponse(BaseModel):
    item_id: int
    quantity: Decimal

    model_config = {"from_attributes": True}


class CancelledItemResponse(BaseModel):
    id: int
    order_id: int
    order_item_id: Optional[int] = None
    location_id: int
    product_id: Optional[int] = None
    product_name: str
    variant_name: Optional[str] = None
    quantity: int
    cancellation_source: CancellationSource
    reason: Optional[str] = None
    decision: WasteDecision
    decided_at: Optional[datetime] = None
    decided_by: Optional[int] = None
    auto_expired: bool
    created_by: Optional[int] = None
    created_at: datetime
    lines: List[CancelledItemLineResponse] = []

    model_config = {"from_attributes": True}


class WasteDecisionInput(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    cancelled_item_id: int = Field(validation_alias=AliasChoices("cancelled_item_id", "cancelledItemId"))
    decision: Literal["waste", "return"]


class ProcessWasteRequest(BaseModel):
    decisions: List[WasteDecisionInput] = Field(min_length=1)


class DecisionResult(BaseModel):
    cancelled_item_id: int
    success: bool
    decision: Optional[WasteDecision] = None
    error: Optional[str] = None
    code: Optional[str] = None


class ProcessWasteResponse(BaseModel):
    processed: int
    failed: int
    results: List[DecisionResult]


class AutoExpireResponse(BaseModel):
    expired: int
    cutoff: datetime


class CancelledItemStats(BaseModel):
    pending_count: int
    expiring_soon_count: int
    oldest_pending_hours: Optional[float] = None
    expiry_hours: int

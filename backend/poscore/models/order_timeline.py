"""Order timeline (audit trail) model."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, validates

from poscore.db.base import Base
from poscore.models.validators import validate_dict


class TimelineEvent(str, Enum):
    CREATED = "created"
    STATUS_CHANGED = "status_changed"
    ITEM_ADDED = "item_added"
    ITEM_MODIFIED = "item_modified"
    ITEM_REMOVED = "item_removed"
    CANCELLED = "cancelled"
    INGREDIENT_WASTED = "ingredient_wasted"
    INGREDIENT_RETURNED = "ingredient_returned"


class OrderTimelineEvent(Base):
    """Append-only record of something that happened to an order."""

    __tablename__ = "order_timeline_events"

    id: Mapped[int] = mapped_column(primary_key=True)
    order_id: Mapped[int] = mapped_column(
        ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    event_type: Mapped[str] = mapped_column(String(50), nullable=False)
    details: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    created_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    @validates("details")
    def _validate_details(self, key, value):
        return validate_dict(key, value)

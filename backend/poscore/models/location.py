"""Location model."""

from __future__ import annotations

from typing import Optional

from sqlalchemy import Boolean, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from poscore.db.base import Base, TimestampMixin


class Location(Base, TimestampMixin):
    """A business branch that holds its own stock."""

    __tablename__ = "locations"
    __table_args__ = (
        UniqueConstraint("business_id", "name", name="uq_location_business_name"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    business_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Relationships
    stock_on_hand: Mapped[list["StockOnHand"]] = relationship(
        "StockOnHand", back_populates="location"
    )
    stock_movements: Mapped[list["StockMovement"]] = relationship(
        "StockMovement", back_populates="location"
    )


# Forward references
from poscore.models.stock import StockOnHand, StockMovement

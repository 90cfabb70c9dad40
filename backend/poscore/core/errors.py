"""Domain errors raised by the order and inventory services.

Every error carries the HTTP status and a stable ``code`` so the exception
handler in ``poscore.main`` can render it without knowing the type.
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional


class PosError(Exception):
    """Base class for all domain errors."""

    status_code = 400
    code = "pos_error"

    def __init__(self, message: str, **extra: Any):
        self.message = message
        self.extra = extra
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        payload = {"detail": self.message, "code": self.code}
        payload.update(self.extra)
        return payload


class ValidationError(PosError):
    """Malformed or semantically invalid request."""

    code = "validation_error"


class NotFoundError(PosError):
    """Referenced entity does not exist (read paths)."""

    status_code = 404
    code = "not_found"


class NotEditableError(PosError):
    """Order is missing or in a terminal state.

    Nonexistent orders raise this too (HTTP 400), clients rely on it.
    """

    code = "order_not_editable"


class ConflictError(PosError):
    """Order changed underneath the caller."""

    status_code = 409
    code = "conflict"


class AlreadyDecidedError(PosError):
    """Cancelled item already has a waste/return decision."""

    status_code = 409
    code = "already_decided"

    def __init__(self, cancelled_item_id: int, decision: str):
        self.cancelled_item_id = cancelled_item_id
        self.decision = decision
        super().__init__(
            f"Cancelled item {cancelled_item_id} already decided as '{decision}'",
            cancelled_item_id=cancelled_item_id,
            decision=decision,
        )


class InsufficientInventoryError(PosError):
    """Raised when there's not enough stock to reserve.

    ``item_id``/``required``/``available`` describe the first short line;
    ``shortages`` lists every short line of the request.
    """

    code = "insufficient_inventory"

    def __init__(
        self,
        item_id: int,
        item_name: str,
        required: Decimal,
        available: Decimal,
        unit: str,
        shortages: Optional[List[Dict[str, Any]]] = None,
    ):
        self.item_id = item_id
        self.item_name = item_name
        self.required = required
        self.available = available
        self.unit = unit
        self.shortages = shortages or []
        super().__init__(
            f"Insufficient inventory for '{item_name}': need {required} {unit}, have {available} {unit}",
            item_id=item_id,
            item_name=item_name,
            required=str(required),
            available=str(available),
            unit=unit,
            shortages=self.shortages,
        )


class UnitConversionError(PosError):
    """Raised when unit conversion between incompatible types is attempted."""

    code = "unit_conversion_error"

    def __init__(self, from_unit: str, to_unit: str, item_name: str = ""):
        self.from_unit = from_unit
        self.to_unit = to_unit
        self.item_name = item_name
        message = f"Cannot convert '{from_unit}' to '{to_unit}'"
        if item_name:
            message += f" for '{item_name}'"
        super().__init__(message, from_unit=from_unit, to_unit=to_unit)

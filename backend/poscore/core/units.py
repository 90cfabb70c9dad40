"""Unit conversion between storage and serving units.

Stock is counted in a storage unit (Kg, L, piece, ...) while recipes are
written in a serving unit (grams, mL, piece). Conversion is only allowed
inside one category; pairing units of different categories is rejected when
a stock item is configured, so the ledger never sees an unconvertible line.
"""

from decimal import Decimal, ROUND_FLOOR
from enum import Enum
from typing import Dict, Tuple, Union

from poscore.core.errors import UnitConversionError

Number = Union[Decimal, int, str]


class UnitCategory(str, Enum):
    """Closed set of unit categories."""

    WEIGHT = "weight"
    VOLUME = "volume"
    COUNT = "count"


# canonical unit -> (category, factor to the category's base unit)
UNITS: Dict[str, Tuple[UnitCategory, Decimal]] = {
    "Kg": (UnitCategory.WEIGHT, Decimal("1000")),    # 1 Kg = 1000 g
    "grams": (UnitCategory.WEIGHT, Decimal("1")),    # base
    "L": (UnitCategory.VOLUME, Decimal("1000")),     # 1 L = 1000 mL
    "mL": (UnitCategory.VOLUME, Decimal("1")),       # base
    "piece": (UnitCategory.COUNT, Decimal("1")),     # base
}

STORAGE_UNITS = frozenset(UNITS)
SERVING_UNITS = frozenset({"grams", "mL", "piece"})

_ALIASES = {
    "kg": "Kg",
    "kilogram": "Kg",
    "kilograms": "Kg",
    "g": "grams",
    "gram": "grams",
    "grams": "grams",
    "l": "L",
    "liter": "L",
    "litre": "L",
    "ml": "mL",
    "piece": "piece",
    "pieces": "piece",
    "pcs": "piece",
}


def normalize_unit(unit: str) -> str:
    """Return the canonical spelling of *unit* or raise UnitConversionError."""
    if unit in UNITS:
        return unit
    canonical = _ALIASES.get((unit or "").strip().lower())
    if canonical is None:
        raise UnitConversionError(unit, "a known unit")
    return canonical


def get_category(unit: str) -> UnitCategory:
    return UNITS[normalize_unit(unit)][0]


def convert(quantity: Number, from_unit: str, to_unit: str) -> Decimal:
    """Convert *quantity* between two units of the same category."""
    src = normalize_unit(from_unit)
    dst = normalize_unit(to_unit)
    src_category, src_factor = UNITS[src]
    dst_category, dst_factor = UNITS[dst]
    if src_category != dst_category:
        raise UnitConversionError(from_unit, to_unit)
    qty = Decimal(str(quantity))
    if src == dst:
        return qty
    return qty * src_factor / dst_factor


def serving_to_storage(quantity: Number, serving_unit: str, storage_unit: str) -> Decimal:
    return convert(quantity, serving_unit, storage_unit)


def storage_to_serving(quantity: Number, storage_unit: str, serving_unit: str) -> Decimal:
    return convert(quantity, storage_unit, serving_unit)


def validate_unit_pairing(storage_unit: str, serving_unit: str, item_name: str = "") -> None:
    """Reject a storage/serving pair from different categories.

    Raises:
        UnitConversionError: units are unknown or not in the same category.
    """
    storage = normalize_unit(storage_unit)
    serving = normalize_unit(serving_unit)
    if serving not in SERVING_UNITS:
        raise UnitConversionError(serving_unit, storage_unit, item_name)
    if UNITS[storage][0] != UNITS[serving][0]:
        raise UnitConversionError(storage_unit, serving_unit, item_name)


def calculate_servings(
    storage_quantity: Number,
    storage_unit: str,
    serving_size: Number,
    serving_unit: str,
) -> int:
    """How many whole servings of *serving_size* fit in the stored quantity."""
    size = Decimal(str(serving_size))
    if size <= 0:
        return 0
    available = storage_to_serving(storage_quantity, storage_unit, serving_unit)
    if available <= 0:
        return 0
    return int((available / size).to_integral_value(rounding=ROUND_FLOOR))

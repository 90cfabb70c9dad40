"""Inventory Ledger - on-hand stock per item per location.

Flow for a reservation:
1. Aggregate the requested lines per stock item
2. Lock and read every on-hand row, collect all shortages
3. Any shortage -> raise before anything is written
4. Decrement each row with a guarded UPDATE (``qty >= n``) so a concurrent
   writer can never drive stock below zero; a lost race raises too
5. Journal a StockMovement per line

Releases add stock back and never fail on missing items: a stock item
deleted since the reservation is logged and skipped.

The ledger only flushes. The calling service owns the transaction and rolls
back on any error, which is what makes multi-step operations atomic.
"""

import logging
from decimal import Decimal, ROUND_FLOOR
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from poscore.core.errors import InsufficientInventoryError
from poscore.models.stock import MovementReason, StockMovement, StockOnHand
from poscore.models.stock_item import StockItem

logger = logging.getLogger(__name__)


class InventoryLedgerService:
    """Reserve and release stock at one location."""

    def __init__(self, db: Session, location_id: int):
        self.db = db
        self.location_id = location_id

    # ===== READS =====

    def available(self, item_ids: Iterable[int], lock: bool = False) -> Dict[int, Decimal]:
        """On-hand quantity per item; items without a stock row report 0."""
        ids = sorted(set(item_ids))
        if not ids:
            return {}
        query = self.db.query(StockOnHand.item_id, StockOnHand.qty).filter(
            StockOnHand.item_id.in_(ids),
            StockOnHand.location_id == self.location_id,
        )
        if lock:
            query = query.with_for_update()
        on_hand = {item_id: Decimal(str(qty)) for item_id, qty in query.all()}
        return {item_id: on_hand.get(item_id, Decimal("0")) for item_id in ids}

    def max_servings(self, per_unit: Dict[int, Decimal]) -> Optional[int]:
        """Whole units that current stock can cover; None when nothing is consumed."""
        needed = {item_id: qty for item_id, qty in per_unit.items() if qty > 0}
        if not needed:
            return None
        stock = self.available(needed)
        return min(
            int((stock[item_id] / qty).to_integral_value(rounding=ROUND_FLOOR))
            for item_id, qty in needed.items()
        )

    def already_applied(self, operation_ref: Optional[str]) -> bool:
        if not operation_ref:
            return False
        return self.db.query(StockMovement.id).filter(
            StockMovement.operation_ref == operation_ref
        ).first() is not None

    # ===== WRITES =====

    def reserve(
        self,
        lines: Dict[int, Decimal],
        operation_ref: Optional[str] = None,
        ref_type: Optional[str] = None,
        ref_id: Optional[int] = None,
        created_by: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Decrement stock for every line, all or nothing.

        Raises:
            InsufficientInventoryError: any line exceeds on-hand stock.
        """
        wanted = {item_id: Decimal(str(qty)) for item_id, qty in lines.items() if qty > 0}
        result = {"success": True, "operation_ref": operation_ref, "lines": [], "already_applied": False}
        if not wanted:
            return result
        if self.already_applied(operation_ref):
            logger.info(f"Ledger operation {operation_ref} already applied, skipping reservation")
            result["already_applied"] = True
            return result

        stock = self.available(wanted, lock=True)
        shortages = []
        for item_id, qty in sorted(wanted.items()):
            if stock[item_id] < qty:
                shortages.append(self._shortage(item_id, qty, stock[item_id]))
        if shortages:
            logger.warning(
                f"Reservation {operation_ref or ''} rejected at location {self.location_id}: "
                f"{len(shortages)} short line(s), first '{shortages[0]['item_name']}' "
                f"needs {shortages[0]['required']} has {shortages[0]['available']}"
            )
            raise self._insufficient(shortages)

        # Sorted item order keeps lock acquisition consistent across writers
        for item_id, qty in sorted(wanted.items()):
            updated = self.db.execute(
                update(StockOnHand)
                .where(
                    StockOnHand.item_id == item_id,
                    StockOnHand.location_id == self.location_id,
                    StockOnHand.qty >= qty,
                )
                .values(qty=StockOnHand.qty - qty)
                .execution_options(synchronize_session=False)
            )
            if updated.rowcount != 1:
                current = self.available([item_id])[item_id]
                logger.warning(
                    f"Guarded decrement lost a race for item {item_id} at location "
                    f"{self.location_id}: need {qty}, now {current}"
                )
                raise self._insufficient([self._shortage(item_id, qty, current)])

            self._journal(item_id, -qty, MovementReason.RESERVATION, operation_ref,
                          ref_type, ref_id, created_by, notes)
            result["lines"].append({"item_id": item_id, "qty": qty})

        self.db.flush()
        return result

    def release(
        self,
        lines: Dict[int, Decimal],
        operation_ref: Optional[str] = None,
        ref_type: Optional[str] = None,
        ref_id: Optional[int] = None,
        created_by: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Add stock back for every line. Missing stock items are skipped."""
        wanted = {item_id: Decimal(str(qty)) for item_id, qty in lines.items() if qty > 0}
        result = {
            "success": True, "operation_ref": operation_ref, "lines": [],
            "skipped": [], "already_applied": False,
        }
        if not wanted:
            return result
        if self.already_applied(operation_ref):
            logger.info(f"Ledger operation {operation_ref} already applied, skipping release")
            result["already_applied"] = True
            return result

        for item_id, qty in sorted(wanted.items()):
            if self.db.get(StockItem, item_id) is None:
                logger.warning(
                    f"Release of {qty} for stock item {item_id} skipped: item no longer exists"
                )
                result["skipped"].append(item_id)
                continue

            updated = self.db.execute(
                update(StockOnHand)
                .where(
                    StockOnHand.item_id == item_id,
                    StockOnHand.location_id == self.location_id,
                )
                .values(qty=StockOnHand.qty + qty)
                .execution_options(synchronize_session=False)
            )
            if updated.rowcount == 0:
                self.db.add(StockOnHand(item_id=item_id, location_id=self.location_id, qty=qty))

            self._journal(item_id, qty, MovementReason.RELEASE, operation_ref,
                          ref_type, ref_id, created_by, notes)
            result["lines"].append({"item_id": item_id, "qty": qty})

        self.db.flush()
        return result

    def apply_delta(
        self,
        delta: Dict[int, Decimal],
        operation_ref: str,
        ref_type: Optional[str] = None,
        ref_id: Optional[int] = None,
        created_by: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Apply a signed per-item delta: positive entries reserve, negative release.

        The reservation runs first so a shortage aborts before anything is
        released.
        """
        to_reserve = {k: v for k, v in delta.items() if v > 0}
        to_release = {k: -v for k, v in delta.items() if v < 0}
        reserved = self.reserve(to_reserve, f"{operation_ref}:reserve", ref_type, ref_id, created_by, notes)
        released = self.release(to_release, f"{operation_ref}:release", ref_type, ref_id, created_by, notes)
        return {"reserved": reserved["lines"], "released": released["lines"], "skipped": released["skipped"]}

    # ===== HELPERS =====

    def _journal(self, item_id, qty_delta, reason, operation_ref, ref_type, ref_id, created_by, notes):
        self.db.add(StockMovement(
            item_id=item_id,
            location_id=self.location_id,
            qty_delta=qty_delta,
            reason=reason.value,
            ref_type=ref_type,
            ref_id=ref_id,
            operation_ref=operation_ref,
            notes=notes,
            created_by=created_by,
        ))

    def _shortage(self, item_id: int, required: Decimal, available: Decimal) -> Dict[str, Any]:
        item = self.db.get(StockItem, item_id)
        return {
            "item_id": item_id,
            "item_name": item.name if item else f"#{item_id}",
            "required": required,
            "available": available,
            "unit": item.storage_unit if item else "",
        }

    @staticmethod
    def _insufficient(shortages: List[Dict[str, Any]]) -> InsufficientInventoryError:
        first = shortages[0]
        return InsufficientInventoryError(
            item_id=first["item_id"],
            item_name=first["item_name"],
            required=first["required"],
            available=first["available"],
            unit=first["unit"],
            shortages=[
                {**s, "required": str(s["required"]), "available": str(s["available"])}
                for s in shortages
            ],
        )

"""Tests for the inventory ledger: all-or-nothing reserve, tolerant release."""

import threading

import pytest
from decimal import Decimal

from poscore.core.errors import InsufficientInventoryError
from poscore.models.location import Location
from poscore.models.stock import MovementReason, StockMovement, StockOnHand
from poscore.models.stock_item import StockItem
from poscore.services.inventory_ledger_service import InventoryLedgerService


@pytest.fixture
def ledger(catalog):
    return InventoryLedgerService(catalog["db"], catalog["location"].id)


class TestReserve:
    def test_reserve_decrements_and_journals(self, catalog, ledger, stock_level):
        db = catalog["db"]
        flour, sugar = catalog["flour"], catalog["sugar"]

        result = ledger.reserve(
            {flour.id: Decimal("200"), sugar.id: Decimal("20")},
            operation_ref="test:1", ref_type="test", ref_id=1,
        )
        db.commit()

        assert result["success"] is True
        assert len(result["lines"]) == 2
        assert stock_level(flour) == Decimal("4800")
        assert stock_level(sugar) == Decimal("30")

        movements = db.query(StockMovement).filter(StockMovement.operation_ref == "test:1").all()
        assert len(movements) == 2
        assert all(m.reason == MovementReason.RESERVATION.value for m in movements)
        assert all(m.qty_delta < 0 for m in movements)

    def test_shortage_changes_nothing(self, catalog, ledger, stock_level):
        db = catalog["db"]
        flour, sugar = catalog["flour"], catalog["sugar"]

        with pytest.raises(InsufficientInventoryError) as exc:
            ledger.reserve({flour.id: Decimal("200"), sugar.id: Decimal("100")}, operation_ref="test:2")
        db.rollback()

        err = exc.value
        assert err.item_id == sugar.id
        assert err.item_name == "Sugar"
        assert err.required == Decimal("100")
        assert err.available == Decimal("50")
        assert err.status_code == 400
        assert stock_level(flour) == Decimal("5000")
        assert db.query(StockMovement).count() == 0

    def test_all_shortages_reported(self, catalog, ledger):
        flour, sugar = catalog["flour"], catalog["sugar"]
        with pytest.raises(InsufficientInventoryError) as exc:
            ledger.reserve({flour.id: Decimal("9000"), sugar.id: Decimal("100")})
        assert {s["item_id"] for s in exc.value.shortages} == {flour.id, sugar.id}

    def test_missing_stock_row_counts_as_zero(self, catalog, ledger):
        db = catalog["db"]
        salt = StockItem(business_id=1, name="Salt", unit="grams", storage_unit="grams")
        db.add(salt)
        db.commit()
        with pytest.raises(InsufficientInventoryError) as exc:
            ledger.reserve({salt.id: Decimal("1")})
        assert exc.value.available == Decimal("0")

    def test_exact_stock_can_be_reserved(self, catalog, ledger, stock_level):
        sugar = catalog["sugar"]
        ledger.reserve({sugar.id: Decimal("50")})
        catalog["db"].commit()
        assert stock_level(sugar) == Decimal("0")

    def test_operation_ref_applied_once(self, catalog, ledger, stock_level):
        flour = catalog["flour"]
        ledger.reserve({flour.id: Decimal("100")}, operation_ref="order:1:create")
        catalog["db"].commit()
        again = ledger.reserve({flour.id: Decimal("100")}, operation_ref="order:1:create")
        catalog["db"].commit()
        assert again["already_applied"] is True
        assert stock_level(flour) == Decimal("4900")

    def test_empty_reservation(self, ledger):
        assert ledger.reserve({})["lines"] == []


class TestRelease:
    def test_release_adds_back(self, catalog, ledger, stock_level):
        flour = catalog["flour"]
        ledger.release({flour.id: Decimal("250")}, operation_ref="test:release")
        catalog["db"].commit()
        assert stock_level(flour) == Decimal("5250")
        movement = catalog["db"].query(StockMovement).one()
        assert movement.reason == MovementReason.RELEASE.value
        assert movement.qty_delta == Decimal("250")

    def test_release_skips_missing_items(self, catalog, ledger, stock_level):
        flour = catalog["flour"]
        result = ledger.release({flour.id: Decimal("10"), 999999: Decimal("5")})
        catalog["db"].commit()
        assert result["skipped"] == [999999]
        assert stock_level(flour) == Decimal("5010")

    def test_release_creates_missing_stock_row(self, catalog, db_session):
        other = Location(business_id=1, name="Second Branch", active=True)
        db_session.add(other)
        db_session.commit()
        InventoryLedgerService(db_session, other.id).release({catalog["flour"].id: Decimal("40")})
        db_session.commit()
        row = db_session.query(StockOnHand).filter(StockOnHand.location_id == other.id).one()
        assert row.qty == Decimal("40")


class TestApplyDelta:
    def test_delta_reserves_and_releases(self, catalog, ledger, stock_level):
        flour, sugar = catalog["flour"], catalog["sugar"]
        result = ledger.apply_delta(
            {flour.id: Decimal("100"), sugar.id: Decimal("-10")}, operation_ref="order:9:edit:1",
        )
        catalog["db"].commit()
        assert len(result["reserved"]) == 1
        assert len(result["released"]) == 1
        assert stock_level(flour) == Decimal("4900")
        assert stock_level(sugar) == Decimal("60")

    def test_delta_shortage_releases_nothing(self, catalog, ledger, stock_level):
        flour, sugar = catalog["flour"], catalog["sugar"]
        with pytest.raises(InsufficientInventoryError):
            ledger.apply_delta(
                {sugar.id: Decimal("500"), flour.id: Decimal("-100")}, operation_ref="order:9:edit:2",
            )
        catalog["db"].rollback()
        assert stock_level(flour) == Decimal("5000")


class TestAvailability:
    def test_max_servings(self, catalog, ledger):
        # 5000 g flour / 300 g -> 16
        assert ledger.max_servings({catalog["flour"].id: Decimal("300")}) == 16

    def test_max_servings_limited_by_scarcest(self, catalog, ledger):
        per_unit = {catalog["flour"].id: Decimal("100"), catalog["sugar"].id: Decimal("10")}
        assert ledger.max_servings(per_unit) == 5

    def test_max_servings_without_consumption(self, ledger):
        assert ledger.max_servings({}) is None


class TestConcurrentReservations:
    def test_parallel_reservations_never_oversell(self, file_sessions):
        Session = file_sessions

        with Session() as setup:
            location = Location(business_id=1, name="Race Branch", active=True)
            item = StockItem(business_id=1, name="Flour", unit="grams", storage_unit="grams")
            setup.add_all([location, item])
            setup.flush()
            setup.add(StockOnHand(item_id=item.id, location_id=location.id, qty=Decimal("1000")))
            setup.commit()
            location_id, item_id = location.id, item.id

        outcomes = []
        lock = threading.Lock()

        def worker(n):
            with Session() as db:
                try:
                    InventoryLedgerService(db, location_id).reserve(
                        {item_id: Decimal("200")}, operation_ref=f"race:{n}",
                    )
                    db.commit()
                    result = "ok"
                except InsufficientInventoryError:
                    db.rollback()
                    result = "short"
            with lock:
                outcomes.append(result)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        with Session() as db:
            qty = db.query(StockOnHand.qty).filter(StockOnHand.item_id == item_id).scalar()

        assert len(outcomes) == 10
        assert outcomes.count("ok") == 5
        assert Decimal(str(qty)) == Decimal("0")

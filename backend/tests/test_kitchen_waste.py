"""Tests for the cancelled-items queue: waste/return decisions and auto-expiry."""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace

from poscore.core.errors import AlreadyDecidedError, NotFoundError
from poscore.models.cancelled_item import CancellationSource, CancelledItem, WasteDecision
from poscore.models.order_timeline import TimelineEvent
from poscore.schemas.order import OrderCreate, OrderEditRequest
from poscore.services.kitchen_waste_service import KitchenWasteService
from poscore.services.order_edit_service import OrderEditService
from poscore.services.order_service import OrderService


@pytest.fixture
def kitchen(catalog, context):
    return KitchenWasteService(catalog["db"], context)


@pytest.fixture
def cancelled_bread(catalog, context):
    """In-progress order for 2 Bread, cancelled: one pending item holding 400 g flour."""
    svc = OrderService(catalog["db"], context)
    order = svc.create_order(OrderCreate(items=[{"product_id": catalog["product_a"].id, "quantity": 2}]))
    svc.cancel_order(order.id, reason="customer left")
    return catalog["db"].query(CancelledItem).filter(CancelledItem.order_id == order.id).one()


def _decision(cancelled_item_id, decision):
    return SimpleNamespace(cancelled_item_id=cancelled_item_id, decision=decision)


class TestDecisions:
    def test_waste_keeps_stock_consumed(self, catalog, kitchen, cancelled_bread, stock_level):
        result = kitchen.process_decisions([_decision(cancelled_bread.id, "waste")])

        assert result["processed"] == 1
        assert result["results"][0]["decision"] == WasteDecision.WASTE
        assert stock_level(catalog["flour"]) == Decimal("4600")
        catalog["db"].refresh(cancelled_bread)
        assert cancelled_bread.decision == WasteDecision.WASTE
        assert cancelled_bread.decided_by == 7
        assert cancelled_bread.decided_at is not None

    def test_return_releases_lines(self, catalog, kitchen, cancelled_bread, stock_level):
        kitchen.process_decisions([_decision(cancelled_bread.id, "return")])
        assert stock_level(catalog["flour"]) == Decimal("5000")
        catalog["db"].refresh(cancelled_bread)
        assert cancelled_bread.decision == WasteDecision.RETURNED

    def test_decision_is_final(self, catalog, kitchen, cancelled_bread, stock_level):
        kitchen.process_decisions([_decision(cancelled_bread.id, "return")])

        result = kitchen.process_decisions([_decision(cancelled_bread.id, "return")])

        assert result["failed"] == 1
        assert result["results"][0]["code"] == "already_decided"
        # Released once only
        assert stock_level(catalog["flour"]) == Decimal("5000")

    def test_decide_raises_already_decided(self, catalog, kitchen, cancelled_bread):
        kitchen.decide(cancelled_bread.id, "waste")
        catalog["db"].commit()
        with pytest.raises(AlreadyDecidedError) as exc:
            kitchen.decide(cancelled_bread.id, "return")
        assert exc.value.status_code == 409

    def test_entries_are_independent(self, catalog, kitchen, cancelled_bread, stock_level):
        result = kitchen.process_decisions([
            _decision(cancelled_bread.id, "waste"),
            _decision(999999, "return"),
        ])

        assert result["processed"] == 1
        assert result["failed"] == 1
        first, second = result["results"]
        assert first["success"] is True
        assert second["success"] is False
        assert second["code"] == "not_found"
        assert stock_level(catalog["flour"]) == Decimal("4600")
        catalog["db"].refresh(cancelled_bread)
        assert cancelled_bread.decision == WasteDecision.WASTE

    def test_unknown_item(self, kitchen):
        with pytest.raises(NotFoundError):
            kitchen.decide(999999, "waste")

    def test_decisions_logged_on_order_timeline(self, catalog, context, kitchen, cancelled_bread):
        kitchen.process_decisions([_decision(cancelled_bread.id, "return")])
        events = OrderService(catalog["db"], context).get_timeline(cancelled_bread.order_id)
        assert events[-1].event_type == TimelineEvent.INGREDIENT_RETURNED.value
        assert events[-1].details["cancelled_item_id"] == cancelled_bread.id


class TestAutoExpire:
    def test_old_pending_items_become_waste(self, catalog, kitchen, cancelled_bread, stock_level):
        later = datetime.now(timezone.utc) + timedelta(hours=25)

        result = kitchen.auto_expire(now=later)

        assert result["expired"] == 1
        catalog["db"].refresh(cancelled_bread)
        assert cancelled_bread.decision == WasteDecision.WASTE
        assert cancelled_bread.auto_expired is True
        assert stock_level(catalog["flour"]) == Decimal("4600")

    def test_sweep_is_idempotent(self, catalog, kitchen, cancelled_bread):
        later = datetime.now(timezone.utc) + timedelta(hours=25)
        assert kitchen.auto_expire(now=later)["expired"] == 1
        assert kitchen.auto_expire(now=later)["expired"] == 0

    def test_recent_items_stay_pending(self, catalog, kitchen, cancelled_bread):
        assert kitchen.auto_expire()["expired"] == 0
        catalog["db"].refresh(cancelled_bread)
        assert cancelled_bread.decision == WasteDecision.PENDING

    def test_decided_items_untouched(self, catalog, kitchen, cancelled_bread):
        kitchen.process_decisions([_decision(cancelled_bread.id, "return")])
        later = datetime.now(timezone.utc) + timedelta(hours=25)

        assert kitchen.auto_expire(now=later)["expired"] == 0
        catalog["db"].refresh(cancelled_bread)
        assert cancelled_bread.decision == WasteDecision.RETURNED
        assert cancelled_bread.auto_expired is False

    def test_other_business_not_swept(self, catalog, kitchen, cancelled_bread):
        later = datetime.now(timezone.utc) + timedelta(hours=25)
        assert kitchen.auto_expire(now=later, business_id=2)["expired"] == 0


class TestQueueQueries:
    def test_list_filters_by_source(self, catalog, context, kitchen, cancelled_bread):
        order = OrderService(catalog["db"], context).create_order(
            OrderCreate(items=[{"product_id": catalog["product_a"].id, "quantity": 2}])
        )
        OrderEditService(catalog["db"], context).edit_order(
            order.id,
            OrderEditRequest.model_validate({
                "products_to_remove": [{"order_item_id": order.active_items[0].id, "quantity": 1}],
            }),
        )

        items, total = kitchen.list_cancelled_items()
        assert total == 2

        edited, total = kitchen.list_cancelled_items(source=CancellationSource.ORDER_EDITED)
        assert total == 1
        assert edited[0].order_id == order.id
        assert edited[0].quantity == 1

    def test_list_hides_decided_by_default(self, kitchen, cancelled_bread):
        kitchen.process_decisions([_decision(cancelled_bread.id, "waste")])
        assert kitchen.list_cancelled_items()[1] == 0
        assert kitchen.list_cancelled_items(decision=WasteDecision.WASTE)[1] == 1
        assert kitchen.list_cancelled_items(decision=None)[1] == 1

    def test_stats(self, kitchen, cancelled_bread):
        stats = kitchen.stats()
        assert stats["pending_count"] == 1
        assert stats["expiring_soon_count"] == 0
        assert stats["oldest_pending_hours"] is not None
        assert stats["expiry_hours"] == 24

    def test_stats_expiring_soon(self, kitchen, cancelled_bread):
        stats = kitchen.stats(now=datetime.now(timezone.utc) + timedelta(hours=20))
        assert stats["expiring_soon_count"] == 1

"""API endpoint tests."""

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from poscore.models.cancelled_item import CancelledItem

ORDERS = "/api/v1/orders"
KITCHEN = "/api/v1/kitchen"


@pytest.fixture
def bread_order(client: TestClient, auth_headers, catalog):
    """An in-progress POS order for 2 Bread, created over HTTP."""
    response = client.post(
        ORDERS,
        json={"items": [{"product_id": catalog["product_a"].id, "quantity": 2}]},
        headers=auth_headers,
    )
    assert response.status_code == 201
    return response.json()


class TestHealthCheck:
    """Test health check endpoints."""

    def test_health_check(self, client: TestClient):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_security_headers(self, client: TestClient):
        response = client.get("/health")
        assert response.headers["X-Content-Type-Options"] == "nosniff"


class TestAuth:
    def test_missing_token(self, client: TestClient, catalog):
        response = client.get(ORDERS)
        assert response.status_code == 401

    def test_garbage_token(self, client: TestClient, catalog):
        response = client.get(ORDERS, headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401


class TestOrderEndpoints:
    """Test order create / read / status / cancel endpoints."""

    def test_create_order(self, client: TestClient, bread_order, stock_level, catalog):
        assert bread_order["status"] == "in_progress"
        assert bread_order["version"] == 1
        assert Decimal(bread_order["grand_total"]) == Decimal("20")
        assert len(bread_order["items"]) == 1
        assert bread_order["items"][0]["product_name"] == "Bread"
        assert stock_level(catalog["flour"]) == Decimal("4600")

    def test_create_insufficient_inventory(self, client: TestClient, auth_headers, catalog):
        response = client.post(
            ORDERS,
            json={"items": [{"product_id": catalog["product_b"].id, "quantity": 1}]},
            headers=auth_headers,
        )
        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "insufficient_inventory"
        assert body["item_name"] == "Sugar"
        assert Decimal(body["required"]) == Decimal("100")
        assert Decimal(body["available"]) == Decimal("50")

    def test_create_validation_error_is_400(self, client: TestClient, auth_headers, catalog):
        response = client.post(ORDERS, json={"items": []}, headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["code"] == "validation_error"

    def test_get_order(self, client: TestClient, auth_headers, bread_order):
        response = client.get(f"{ORDERS}/{bread_order['id']}", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["order_number"] == bread_order["order_number"]

    def test_get_missing_order_is_404(self, client: TestClient, auth_headers):
        response = client.get(f"{ORDERS}/999999", headers=auth_headers)
        assert response.status_code == 404
        assert response.json()["code"] == "not_found"

    def test_list_orders(self, client: TestClient, auth_headers, bread_order):
        response = client.get(ORDERS, params={"status": "in_progress"}, headers=auth_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["items"][0]["id"] == bread_order["id"]
        assert data["has_more"] is False

    def test_update_status(self, client: TestClient, auth_headers, bread_order):
        response = client.patch(
            f"{ORDERS}/{bread_order['id']}/status", json={"status": "completed"}, headers=auth_headers,
        )
        assert response.status_code == 200
        assert response.json()["status"] == "completed"

    def test_status_of_missing_order_is_400(self, client: TestClient, auth_headers):
        response = client.patch(f"{ORDERS}/999999/status", json={"status": "completed"}, headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["code"] == "order_not_editable"

    def test_cancel_without_body(self, client: TestClient, auth_headers, bread_order, catalog):
        response = client.post(f"{ORDERS}/{bread_order['id']}/cancel", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"
        assert catalog["db"].query(CancelledItem).count() == 1

    def test_cancel_with_reason(self, client: TestClient, auth_headers, bread_order):
        response = client.post(
            f"{ORDERS}/{bread_order['id']}/cancel", json={"reason": "wrong table"}, headers=auth_headers,
        )
        assert response.status_code == 200
        assert response.json()["cancellation_reason"] == "wrong table"

    def test_timeline(self, client: TestClient, auth_headers, bread_order):
        client.post(f"{ORDERS}/{bread_order['id']}/cancel", headers=auth_headers)
        response = client.get(f"{ORDERS}/{bread_order['id']}/timeline", headers=auth_headers)
        assert response.status_code == 200
        assert [e["event_type"] for e in response.json()] == ["created", "cancelled"]

    def test_calculate_totals(self, client: TestClient, auth_headers, catalog):
        response = client.post(
            f"{ORDERS}/calculate-totals",
            json={"items": [{"product_id": catalog["product_b"].id, "quantity": 4}], "tax_rate": "10"},
            headers=auth_headers,
        )
        # Preview only, stock is not checked
        assert response.status_code == 200
        assert Decimal(response.json()["grand_total"]) == Decimal("22")

    def test_availability(self, client: TestClient, auth_headers, catalog):
        response = client.get(
            f"{ORDERS}/availability", params={"product_id": catalog["product_a"].id}, headers=auth_headers,
        )
        assert response.status_code == 200
        assert response.json()["items"][0]["max_quantity"] == 25


class TestEditEndpoint:
    """Test the structured order edit endpoint."""

    def test_edit_adds_item(self, client: TestClient, auth_headers, bread_order, catalog):
        response = client.patch(
            f"{ORDERS}/{bread_order['id']}/edit",
            json={"products_to_add": [{"product_id": catalog["water"].id}]},
            headers=auth_headers,
        )
        assert response.status_code == 200
        body = response.json()
        assert body["is_edited"] is True
        assert len(body["items"]) == 2
        assert Decimal(body["grand_total"]) == Decimal("21.5")

    def test_legacy_field_names(self, client: TestClient, auth_headers, bread_order, catalog):
        item_id = bread_order["items"][0]["id"]
        response = client.patch(
            f"{ORDERS}/{bread_order['id']}/edit",
            json={"itemsToRemove": [item_id], "itemsToAdd": [{"product_id": catalog["water"].id}]},
            headers=auth_headers,
        )
        assert response.status_code == 200
        assert [i["product_name"] for i in response.json()["items"]] == ["Water"]

    def test_edit_shortage_is_400_and_atomic(self, client: TestClient, auth_headers, bread_order, catalog, stock_level):
        response = client.patch(
            f"{ORDERS}/{bread_order['id']}/edit",
            json={"productsToAdd": [{"product_id": catalog["product_b"].id}]},
            headers=auth_headers,
        )
        assert response.status_code == 400
        assert response.json()["code"] == "insufficient_inventory"
        assert stock_level(catalog["flour"]) == Decimal("4600")

        order = client.get(f"{ORDERS}/{bread_order['id']}", headers=auth_headers).json()
        assert order["version"] == 1
        assert len(order["items"]) == 1

    def test_edit_missing_order_is_400(self, client: TestClient, auth_headers, catalog):
        response = client.patch(
            f"{ORDERS}/999999/edit",
            json={"products_to_add": [{"product_id": catalog["water"].id}]},
            headers=auth_headers,
        )
        assert response.status_code == 400
        assert response.json()["code"] == "order_not_editable"

    def test_empty_edit_is_400(self, client: TestClient, auth_headers, bread_order):
        response = client.patch(f"{ORDERS}/{bread_order['id']}/edit", json={}, headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["code"] == "validation_error"

    def test_stale_version_is_409(self, client: TestClient, auth_headers, bread_order, catalog):
        response = client.patch(
            f"{ORDERS}/{bread_order['id']}/edit",
            json={"products_to_add": [{"product_id": catalog["water"].id}], "expectedVersion": 5},
            headers=auth_headers,
        )
        assert response.status_code == 409
        assert response.json()["code"] == "conflict"

    def test_delivery_app_order_not_editable(self, client: TestClient, auth_headers, catalog):
        created = client.post(
            ORDERS,
            json={"items": [{"product_id": catalog["water"].id}], "order_source": "delivery_app"},
            headers=auth_headers,
        ).json()
        response = client.patch(
            f"{ORDERS}/{created['id']}/edit",
            json={"products_to_add": [{"product_id": catalog["water"].id}]},
            headers=auth_headers,
        )
        assert response.status_code == 400
        assert response.json()["code"] == "order_not_editable"


class TestKitchenEndpoints:
    """Test cancelled-item queue endpoints."""

    @pytest.fixture
    def cancelled_id(self, client: TestClient, auth_headers, bread_order):
        client.post(f"{ORDERS}/{bread_order['id']}/cancel", headers=auth_headers)
        response = client.get(f"{KITCHEN}/cancelled-items", headers=auth_headers)
        assert response.json()["total"] == 1
        return response.json()["items"][0]["id"]

    def test_list_cancelled_items(self, client: TestClient, auth_headers, cancelled_id, catalog):
        response = client.get(
            f"{KITCHEN}/cancelled-items", params={"source": "order_cancelled"}, headers=auth_headers,
        )
        assert response.status_code == 200
        item = response.json()["items"][0]
        assert item["decision"] == "pending"
        assert item["lines"][0]["item_id"] == catalog["flour"].id

    def test_process_waste_mixed_batch(self, client: TestClient, auth_headers, cancelled_id, catalog, stock_level):
        response = client.post(
            f"{KITCHEN}/process-waste",
            json={"decisions": [
                {"cancelled_item_id": cancelled_id, "decision": "waste"},
                {"cancelledItemId": 999999, "decision": "return"},
            ]},
            headers=auth_headers,
        )
        assert response.status_code == 200
        body = response.json()
        assert body["processed"] == 1
        assert body["failed"] == 1
        assert body["results"][0]["success"] is True
        assert body["results"][1]["code"] == "not_found"
        assert stock_level(catalog["flour"]) == Decimal("4600")

    def test_process_return(self, client: TestClient, auth_headers, cancelled_id, catalog, stock_level):
        response = client.post(
            f"{KITCHEN}/process-waste",
            json={"decisions": [{"cancelled_item_id": cancelled_id, "decision": "return"}]},
            headers=auth_headers,
        )
        assert response.json()["results"][0]["decision"] == "returned"
        assert stock_level(catalog["flour"]) == Decimal("5000")

    def test_decided_items_listed_with_all_filter(self, client: TestClient, auth_headers, cancelled_id):
        client.post(
            f"{KITCHEN}/process-waste",
            json={"decisions": [{"cancelled_item_id": cancelled_id, "decision": "waste"}]},
            headers=auth_headers,
        )

        pending = client.get(f"{KITCHEN}/cancelled-items", headers=auth_headers).json()
        everything = client.get(f"{KITCHEN}/cancelled-items", params={"decision": "all"}, headers=auth_headers).json()
        wasted = client.get(f"{KITCHEN}/cancelled-items", params={"decision": "waste"}, headers=auth_headers).json()

        assert pending["total"] == 0
        assert everything["total"] == 1
        assert everything["items"][0]["decision"] == "waste"
        assert wasted["total"] == 1

    def test_unknown_decision_filter_is_400(self, client: TestClient, auth_headers, catalog):
        response = client.get(f"{KITCHEN}/cancelled-items", params={"decision": "eaten"}, headers=auth_headers)
        assert response.status_code == 400

    def test_invalid_decision_is_400(self, client: TestClient, auth_headers, cancelled_id):
        response = client.post(
            f"{KITCHEN}/process-waste",
            json={"decisions": [{"cancelled_item_id": cancelled_id, "decision": "eat"}]},
            headers=auth_headers,
        )
        assert response.status_code == 400

    def test_stats(self, client: TestClient, auth_headers, cancelled_id):
        response = client.get(f"{KITCHEN}/cancelled-items/stats", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["pending_count"] == 1

    def test_auto_expire_requires_manager(self, client: TestClient, staff_headers):
        response = client.post(f"{KITCHEN}/auto-expire", headers=staff_headers)
        assert response.status_code == 403

    def test_auto_expire(self, client: TestClient, auth_headers, cancelled_id):
        response = client.post(f"{KITCHEN}/auto-expire", headers=auth_headers)
        assert response.status_code == 200
        # Still inside the expiry window
        assert response.json()["expired"] == 0

"""
재고/활동/상품 조회 API 통합 테스트
"""
import uuid

import pytest


@pytest.mark.integration
class TestInventoryApi:
    def test_adjust(self, client, make_product, get_product):
        product = make_product(inventory=2)

        response = client.post(
            "/api/inventory/adjust",
            json={"product_id": str(product.id), "delta": 8, "created_by": "admin", "note": "입고"},
        )

        assert response.status_code == 200
        assert response.json() == {"product_id": str(product.id), "inventory": 10}
        assert get_product(product.id).inventory == 10

    def test_adjust_below_zero_is_rejected(self, client, make_product, get_product):
        product = make_product(inventory=2)

        response = client.post(
            "/api/inventory/adjust",
            json={"product_id": str(product.id), "delta": -3, "created_by": "admin"},
        )

        assert response.status_code == 400
        assert response.json()["detail"]["error_code"] == "INVALID_ADJUSTMENT"
        assert get_product(product.id).inventory == 2

    def test_adjust_unknown_product(self, client):
        response = client.post(
            "/api/inventory/adjust",
            json={"product_id": str(uuid.uuid4()), "delta": 1, "created_by": "admin"},
        )

        assert response.status_code == 404

    def test_bulk_adjust_reports_per_item(self, client, make_product, get_product):
        ok = make_product(inventory=1)
        short = make_product(inventory=1)

        response = client.post(
            "/api/inventory/bulk-adjust",
            json={
                "updates": [
                    {"product_id": str(ok.id), "delta": 2},
                    {"product_id": str(short.id), "delta": -5},
                ],
                "created_by": "admin",
            },
        )

        body = response.json()
        assert response.status_code == 200
        assert (body["processed"], body["updated"], body["failed"]) == (2, 1, 1)
        assert body["errors"][0]["product_id"] == str(short.id)
        assert get_product(ok.id).inventory == 3

    def test_bulk_adjust_with_reason(self, client, make_product):
        product = make_product(inventory=1)

        response = client.post(
            "/api/inventory/bulk-adjust",
            json={
                "updates": [{"product_id": str(product.id), "delta": 2}],
                "created_by": "warehouse",
                "reason": "ORDER_CANCEL_RESTORE",
            },
        )
        history = client.get(f"/api/inventory/{product.id}/history").json()

        assert response.status_code == 200
        assert [(h["quantity_delta"], h["reason"]) for h in history] == [(2, "ORDER_CANCEL_RESTORE")]

    def test_bulk_adjust_unknown_reason(self, client, make_product):
        product = make_product(inventory=1)

        response = client.post(
            "/api/inventory/bulk-adjust",
            json={
                "updates": [{"product_id": str(product.id), "delta": 2}],
                "created_by": "admin",
                "reason": "GIFT",
            },
        )

        assert response.status_code == 422

    def test_stock_listings_and_summary(self, client, make_product):
        low = make_product(inventory=2, low_stock_threshold=5)
        empty = make_product(inventory=0)
        make_product(inventory=40)

        low_rows = client.get("/api/inventory/low-stock").json()
        out_rows = client.get("/api/inventory/out-of-stock").json()
        summary = client.get("/api/inventory/summary").json()

        assert [r["id"] for r in low_rows] == [str(low.id)]
        assert low_rows[0]["current_stock"] == 2
        assert [r["id"] for r in out_rows] == [str(empty.id)]
        assert summary["total_products"] == 3
        assert summary["total_units"] == 42
        assert summary["low_stock_count"] == 1
        assert summary["out_of_stock_count"] == 1

    def test_history(self, client, make_product):
        product = make_product(inventory=5)
        client.post(
            "/api/inventory/adjust",
            json={"product_id": str(product.id), "delta": -1, "created_by": "admin"},
        )

        response = client.get(f"/api/inventory/{product.id}/history")

        assert response.status_code == 200
        assert [(h["quantity_delta"], h["reason"]) for h in response.json()] == [(-1, "MANUAL_ADJUST")]

    def test_history_unknown_product(self, client):
        assert client.get(f"/api/inventory/{uuid.uuid4()}/history").status_code == 404


@pytest.mark.integration
class TestActivityApi:
    def test_track_cart_add_queues_update(self, client, make_product, update_tracker):
        product = make_product()

        response = client.post(
            "/api/activity",
            json={"product_id": str(product.id), "activity_type": "cart_add", "user_id": "user-1"},
        )

        assert response.status_code == 201
        assert response.json()["activity_type"] == "CART_ADD"
        assert update_tracker.get_update_status()["pending_count"] == 1

    def test_missing_identity_is_unprocessable(self, client, make_product):
        product = make_product()

        response = client.post("/api/activity", json={"product_id": str(product.id), "activity_type": "VIEW"})

        assert response.status_code == 422

    def test_unknown_activity_type(self, client, make_product):
        product = make_product()

        response = client.post(
            "/api/activity",
            json={"product_id": str(product.id), "activity_type": "SHARE", "session_id": "s-1"},
        )

        assert response.status_code == 400
        assert response.json()["detail"]["error_code"] == "INVALID_ACTIVITY_INPUT"

    def test_unknown_product(self, client):
        response = client.post(
            "/api/activity",
            json={"product_id": str(uuid.uuid4()), "activity_type": "VIEW", "session_id": "s-1"},
        )

        assert response.status_code == 404


@pytest.mark.integration
class TestProductsApi:
    def test_popular(self, client, make_product):
        top = make_product(popularity_score=70.0)
        make_product(popularity_score=20.0)

        rows = client.get("/api/products/popular", params={"limit": 1}).json()

        assert [r["product_id"] for r in rows] == [str(top.id)]

    def test_trending(self, client, make_product):
        product = make_product()
        client.post("/api/activity", json={"product_id": str(product.id), "activity_type": "VIEW", "session_id": "s"})

        rows = client.get("/api/products/trending").json()

        assert [r["product_id"] for r in rows] == [str(product.id)]

    def test_similar_unknown_product(self, client):
        assert client.get(f"/api/products/{uuid.uuid4()}/similar").status_code == 404

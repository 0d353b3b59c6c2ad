"""
Integration tests for smart allocation endpoints.
"""

from datetime import date, timedelta

import pytest
from httpx import AsyncClient

from erp.models import InventoryBatch, Location, Product

pytestmark = pytest.mark.integration


def allocation_request(product: Product, location: Location, quantity=15, allocation_type="manufacturing", **extra):
    return {
        "allocation_type": allocation_type,
        "product_id": product.id,
        "location_id": location.id,
        "requested_quantity": quantity,
        **extra,
    }


def strategy_body(code="MFG_STRICT", **overrides):
    body = {
        "strategy_name": "Manufacturing - Strict Margin",
        "strategy_code": code,
        "strategy_type": "manufacturing",
        "cost_weight": 70,
        "age_weight": 20,
        "expiry_weight": 10,
    }
    body.update(overrides)
    return body


class TestPreview:
    """Test POST /api/v1/allocation/preview endpoint."""

    @pytest.mark.asyncio
    async def test_manufacturing_uses_cheapest(
        self, client: AsyncClient, stocked_batches: list[InventoryBatch], test_product: Product, test_location: Location
    ):
        response = await client.post("/api/v1/allocation/preview", json=allocation_request(test_product, test_location))

        assert response.status_code == 200
        data = response.json()
        assert data["strategy_name"] == "Manufacturing - Cost Optimization"
        assert [(line["batch_number"], line["allocated_quantity"]) for line in data["allocation_plan"]] == [
            ("TEST-BATCH-NEW", 10.0),
            ("TEST-BATCH-OLD", 5.0),
        ]
        assert data["total_cost"] == 1400.0
        assert data["fulfillment_percentage"] == 100.0
        assert data["business_context"]["optimization_focus"].startswith("Cost Optimization")

    @pytest.mark.asyncio
    async def test_estimation_uses_most_expensive(
        self, client: AsyncClient, stocked_batches: list[InventoryBatch], test_product: Product, test_location: Location
    ):
        response = await client.post(
            "/api/v1/allocation/preview",
            json=allocation_request(test_product, test_location, allocation_type="estimation"),
        )

        data = response.json()
        assert data["allocation_plan"][0]["batch_number"] == "TEST-BATCH-MID"
        assert data["total_cost"] == 1700.0

    @pytest.mark.asyncio
    async def test_preview_reserves_nothing(
        self, client: AsyncClient, stocked_batches: list[InventoryBatch], test_product: Product, test_location: Location
    ):
        await client.post("/api/v1/allocation/preview", json=allocation_request(test_product, test_location))

        stock = (await client.get("/api/v1/inventory/stock", params={"product_id": test_product.id})).json()
        assert stock[0]["quantity"] == 30.0

    @pytest.mark.asyncio
    async def test_expired_batches_excluded(
        self, client: AsyncClient, stocked_batches: list[InventoryBatch], test_db, test_product: Product, test_location: Location
    ):
        """Test that a batch past its expiry date is never offered."""
        cheapest = stocked_batches[2]
        cheapest.expiry_date = date.today() - timedelta(days=1)
        await test_db.commit()

        response = await client.post("/api/v1/allocation/preview", json=allocation_request(test_product, test_location))

        numbers = [line["batch_number"] for line in response.json()["allocation_plan"]]
        assert "TEST-BATCH-NEW" not in numbers

    @pytest.mark.asyncio
    async def test_unknown_strategy_code(
        self, client: AsyncClient, stocked_batches: list[InventoryBatch], test_product: Product, test_location: Location
    ):
        response = await client.post(
            "/api/v1/allocation/preview",
            json=allocation_request(test_product, test_location, strategy_code="NOPE"),
        )

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_invalid_allocation_type(self, client: AsyncClient, test_product: Product, test_location: Location):
        response = await client.post(
            "/api/v1/allocation/preview",
            json=allocation_request(test_product, test_location, allocation_type="rental"),
        )

        assert response.status_code == 422


class TestContextualPreview:
    """Test GET /api/v1/allocation/contextual-preview endpoint."""

    @pytest.mark.asyncio
    async def test_comparisons_and_recommendation(
        self, client: AsyncClient, stocked_batches: list[InventoryBatch], test_product: Product, test_location: Location
    ):
        response = await client.get(
            "/api/v1/allocation/contextual-preview",
            params=allocation_request(test_product, test_location),
        )

        assert response.status_code == 200
        data = response.json()
        assert set(data["comparisons"]) == {"estimation", "sales"}
        assert data["comparisons"]["estimation"]["cost_difference"] == 300.0
        assert data["comparisons"]["sales"]["cost_difference"] == 50.0
        recommendation = data["recommendation"]
        assert recommendation["recommended_strategy"] == "manufacturing"
        assert recommendation["confidence_score"] == 75
        assert [alt["strategy"] for alt in recommendation["alternatives"]] == ["estimation"]


class TestExecute:
    """Test POST /api/v1/allocation/execute endpoint."""

    @pytest.mark.asyncio
    async def test_execute_consumes_batches(
        self, client: AsyncClient, stocked_batches: list[InventoryBatch], test_product: Product, test_location: Location
    ):
        response = await client.post(
            "/api/v1/allocation/execute",
            json=allocation_request(test_product, test_location, allocation_reference="WO-1001", order_value=2000),
        )

        assert response.status_code == 201
        data = response.json()
        assert data["dry_run"] is False
        allocation = data["allocation"]
        assert allocation["allocated_quantity"] == 15.0
        assert allocation["total_allocated_value"] == 1400.0
        assert allocation["average_allocated_cost"] == pytest.approx(93.3333)
        assert allocation["margin_achieved_percentage"] == 30.0
        assert allocation["allocation_efficiency_score"] == 100.0
        assert allocation["allocated_by"] == 7
        assert [(d["batch_id"], d["allocated_quantity"], d["sequence_order"]) for d in allocation["batch_details"]] == [
            (stocked_batches[2].id, 10.0, 1),
            (stocked_batches[0].id, 5.0, 2),
        ]

        remaining = (await client.get("/api/v1/inventory/batches", params={"product_id": test_product.id})).json()
        assert [(b["batch_number"], b["available_quantity"]) for b in remaining] == [
            ("TEST-BATCH-OLD", 5.0),
            ("TEST-BATCH-MID", 10.0),
        ]

        stock = (await client.get("/api/v1/inventory/stock", params={"product_id": test_product.id})).json()
        assert stock[0]["quantity"] == 15.0

        movements = (await client.get("/api/v1/inventory/movements", params={"reference_id": "WO-1001"})).json()
        assert movements[0]["movement_type"] == "out"
        assert movements[0]["reference_type"] == "ALLOCATION"
        assert movements[0]["quantity"] == 15.0

    @pytest.mark.asyncio
    async def test_partial_fulfilment(
        self, client: AsyncClient, stocked_batches: list[InventoryBatch], test_product: Product, test_location: Location
    ):
        response = await client.post(
            "/api/v1/allocation/execute",
            json=allocation_request(test_product, test_location, quantity=40, allocation_reference="WO-1002"),
        )

        allocation = response.json()["allocation"]
        assert allocation["requested_quantity"] == 40.0
        assert allocation["allocated_quantity"] == 30.0
        assert allocation["allocation_efficiency_score"] == 75.0

        depleted = (await client.get("/api/v1/inventory/batches", params={"status": "depleted"})).json()
        assert len(depleted) == 3

    @pytest.mark.asyncio
    async def test_dry_run_writes_nothing(
        self, client: AsyncClient, stocked_batches: list[InventoryBatch], test_product: Product, test_location: Location
    ):
        response = await client.post(
            "/api/v1/allocation/execute",
            json=allocation_request(test_product, test_location, allocation_reference="WO-DRY", dry_run=True),
        )

        assert response.json()["dry_run"] is True
        assert response.json()["preview"]["total_cost"] == 1400.0

        history = (await client.get("/api/v1/allocation/history")).json()
        assert history == []

    @pytest.mark.asyncio
    async def test_duplicate_reference(
        self, client: AsyncClient, stocked_batches: list[InventoryBatch], test_product: Product, test_location: Location
    ):
        body = allocation_request(test_product, test_location, quantity=1, allocation_reference="WO-DUP")
        await client.post("/api/v1/allocation/execute", json=body)

        response = await client.post("/api/v1/allocation/execute", json=body)

        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_no_stock(self, client: AsyncClient, test_product: Product, test_location: Location):
        response = await client.post(
            "/api/v1/allocation/execute",
            json=allocation_request(test_product, test_location, allocation_reference="WO-EMPTY"),
        )

        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_minimum_margin_enforced(
        self, client: AsyncClient, stocked_batches: list[InventoryBatch], test_product: Product, test_location: Location
    ):
        """Test that a strategy's minimum margin blocks a thin-margin allocation."""
        created = await client.post(
            "/api/v1/allocation/strategies",
            json=strategy_body(prevent_negative_margin=True, minimum_margin_percentage=20),
        )
        assert created.status_code == 201

        response = await client.post(
            "/api/v1/allocation/execute",
            json=allocation_request(
                test_product,
                test_location,
                allocation_reference="WO-THIN",
                order_value=1500,
                strategy_code="MFG_STRICT",
            ),
        )

        assert response.status_code == 422
        assert "below the minimum" in response.json()["detail"]

        stock = (await client.get("/api/v1/inventory/stock", params={"product_id": test_product.id})).json()
        assert stock[0]["quantity"] == 30.0


class TestStrategies:
    """Test allocation strategy management."""

    @pytest.mark.asyncio
    async def test_create_and_list(self, client: AsyncClient):
        response = await client.post("/api/v1/allocation/strategies", json=strategy_body(is_default=True))

        assert response.status_code == 201
        assert response.json()["cost_weight"] == 70.0

        listed = (await client.get("/api/v1/allocation/strategies", params={"strategy_type": "manufacturing"})).json()
        assert [s["strategy_code"] for s in listed] == ["MFG_STRICT"]

    @pytest.mark.asyncio
    async def test_weights_must_sum_to_100(self, client: AsyncClient):
        response = await client.post("/api/v1/allocation/strategies", json=strategy_body(expiry_weight=20))

        assert response.status_code == 422
        assert "sum to 100" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_duplicate_code(self, client: AsyncClient):
        await client.post("/api/v1/allocation/strategies", json=strategy_body())

        response = await client.post("/api/v1/allocation/strategies", json=strategy_body())

        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_single_default_per_type(self, client: AsyncClient):
        """Test that a new default strategy clears the previous default."""
        first = (await client.post("/api/v1/allocation/strategies", json=strategy_body("MFG_A", is_default=True))).json()
        await client.post("/api/v1/allocation/strategies", json=strategy_body("MFG_B", is_default=True))

        listed = (await client.get("/api/v1/allocation/strategies", params={"strategy_type": "manufacturing"})).json()
        defaults = {s["strategy_code"]: s["is_default"] for s in listed}

        assert defaults == {"MFG_A": False, "MFG_B": True}
        assert first["is_default"] is True

    @pytest.mark.asyncio
    async def test_default_strategy_drives_preview(
        self, client: AsyncClient, stocked_batches: list[InventoryBatch], test_product: Product, test_location: Location
    ):
        """Test that the stored default replaces the built-in profile."""
        await client.post(
            "/api/v1/allocation/strategies",
            json=strategy_body("MFG_FIFO", strategy_name="Manufacturing - FIFO", cost_weight=0, age_weight=100, expiry_weight=0, is_default=True),
        )

        response = await client.post("/api/v1/allocation/preview", json=allocation_request(test_product, test_location, quantity=5))

        data = response.json()
        assert data["strategy_name"] == "Manufacturing - FIFO"
        assert data["allocation_plan"][0]["batch_number"] == "TEST-BATCH-OLD"

    @pytest.mark.asyncio
    async def test_update_weights_validated(self, client: AsyncClient):
        strategy_id = (await client.post("/api/v1/allocation/strategies", json=strategy_body())).json()["id"]

        rejected = await client.patch(f"/api/v1/allocation/strategies/{strategy_id}", json={"cost_weight": 80})
        accepted = await client.patch(
            f"/api/v1/allocation/strategies/{strategy_id}", json={"cost_weight": 80, "age_weight": 10}
        )

        assert rejected.status_code == 422
        assert accepted.status_code == 200
        assert accepted.json()["cost_weight"] == 80.0

    @pytest.mark.asyncio
    async def test_inactive_strategies_hidden(self, client: AsyncClient):
        strategy_id = (await client.post("/api/v1/allocation/strategies", json=strategy_body())).json()["id"]
        await client.patch(f"/api/v1/allocation/strategies/{strategy_id}", json={"is_active": False})

        active = (await client.get("/api/v1/allocation/strategies")).json()
        inactive = (await client.get("/api/v1/allocation/strategies", params={"is_active": False})).json()

        assert active == []
        assert [s["id"] for s in inactive] == [strategy_id]


class TestHistoryAndAnalytics:
    """Test allocation history and analytics endpoints."""

    @pytest.mark.asyncio
    async def test_history_and_analytics(
        self, client: AsyncClient, stocked_batches: list[InventoryBatch], test_product: Product, test_location: Location
    ):
        await client.post(
            "/api/v1/allocation/execute",
            json=allocation_request(test_product, test_location, quantity=5, allocation_reference="WO-1"),
        )
        await client.post(
            "/api/v1/allocation/execute",
            json=allocation_request(
                test_product, test_location, quantity=5, allocation_type="sales", allocation_reference="SO-1",
                customer_tier="premium",
            ),
        )

        history = (await client.get("/api/v1/allocation/history")).json()
        premium = (await client.get("/api/v1/allocation/history", params={"customer_tier": "premium"})).json()
        analytics = (await client.get("/api/v1/allocation/analytics")).json()

        assert len(history) == 2
        assert [h["allocation_reference"] for h in premium] == ["SO-1"]
        assert analytics["summary"]["total_allocations"] == 2
        assert analytics["summary"]["total_allocated_quantity"] == 10.0
        assert analytics["summary"]["unique_products"] == 1
        assert set(analytics["by_type"]) == {"manufacturing", "sales"}
        assert analytics["by_type"]["manufacturing"]["total_allocated_value"] == 450.0
        assert {s["strategy_name"] for s in analytics["strategy_performance"]} == {
            "Manufacturing - Cost Optimization",
            "Sales - Balanced",
        }

"""
Integration tests for inventory batches, stock levels and transfers.
"""

import pytest
from httpx import AsyncClient

from erp.models import InventoryBatch, Location, Product

pytestmark = pytest.mark.integration


class TestBatches:
    """Test GET /api/v1/inventory/batches endpoints."""

    @pytest.mark.asyncio
    async def test_list_oldest_first(self, client: AsyncClient, stocked_batches: list[InventoryBatch]):
        response = await client.get("/api/v1/inventory/batches")

        assert response.status_code == 200
        assert [b["batch_number"] for b in response.json()] == [
            "TEST-BATCH-OLD",
            "TEST-BATCH-MID",
            "TEST-BATCH-NEW",
        ]

    @pytest.mark.asyncio
    async def test_get_batch(self, client: AsyncClient, stocked_batches: list[InventoryBatch]):
        batch = stocked_batches[0]

        response = await client.get(f"/api/v1/inventory/batches/{batch.id}")

        assert response.status_code == 200
        data = response.json()
        assert data["product_name"] == "Contactor 32A"
        assert data["location_name"] == "Main Warehouse"
        assert data["available_quantity"] == 10.0

    @pytest.mark.asyncio
    async def test_batch_costing(self, client: AsyncClient, stocked_batches: list[InventoryBatch]):
        response = await client.get(f"/api/v1/inventory/batches/{stocked_batches[1].id}/costing")

        assert response.status_code == 200
        data = response.json()
        assert data["landed_cost_per_unit"] == 120.0
        assert data["total_additional_costs"] == 0.0
        assert data["supplier_name"] == "Test Electricals Pvt Ltd"

    @pytest.mark.asyncio
    async def test_missing_batch(self, client: AsyncClient):
        response = await client.get("/api/v1/inventory/batches/9999")

        assert response.status_code == 404


class TestTransfers:
    """Test POST /api/v1/inventory/transfers endpoint."""

    @pytest.mark.asyncio
    async def test_transfer_consumes_oldest_first(
        self,
        client: AsyncClient,
        stocked_batches: list[InventoryBatch],
        test_product: Product,
        test_location: Location,
        second_location: Location,
    ):
        response = await client.post(
            "/api/v1/inventory/transfers",
            json={
                "product_id": test_product.id,
                "from_location_id": test_location.id,
                "to_location_id": second_location.id,
                "quantity": 12,
                "notes": "Site requirement",
            },
        )

        assert response.status_code == 201
        data = response.json()
        assert data["quantity"] == 12.0
        assert [(b["source_batch_id"], b["quantity"]) for b in data["batches"]] == [
            (stocked_batches[0].id, 10.0),
            (stocked_batches[1].id, 2.0),
        ]
        assert [b["landed_cost_per_unit"] for b in data["batches"]] == [100.0, 120.0]

        source = (await client.get("/api/v1/inventory/batches", params={"location_id": test_location.id})).json()
        assert [(b["batch_number"], b["available_quantity"]) for b in source] == [
            ("TEST-BATCH-MID", 8.0),
            ("TEST-BATCH-NEW", 10.0),
        ]

        depleted = (await client.get("/api/v1/inventory/batches", params={"status": "depleted"})).json()
        assert [b["batch_number"] for b in depleted] == ["TEST-BATCH-OLD"]

        destination = (await client.get("/api/v1/inventory/batches", params={"location_id": second_location.id})).json()
        assert destination[0]["source_batch_id"] == stocked_batches[0].id
        assert destination[0]["purchase_date"] == stocked_batches[0].purchase_date.isoformat()

        stock = (await client.get("/api/v1/inventory/stock", params={"product_id": test_product.id})).json()
        assert {s["location_id"]: s["quantity"] for s in stock} == {
            test_location.id: 18.0,
            second_location.id: 12.0,
        }

        movements = (await client.get("/api/v1/inventory/movements", params={"movement_type": "transfer"})).json()
        assert movements[0]["reference_id"] == data["transfer_number"]
        assert movements[0]["notes"] == "Site requirement"
        assert movements[0]["created_by"] == 7

    @pytest.mark.asyncio
    async def test_insufficient_stock(
        self,
        client: AsyncClient,
        stocked_batches: list[InventoryBatch],
        test_product: Product,
        test_location: Location,
        second_location: Location,
    ):
        response = await client.post(
            "/api/v1/inventory/transfers",
            json={
                "product_id": test_product.id,
                "from_location_id": test_location.id,
                "to_location_id": second_location.id,
                "quantity": 31,
            },
        )

        assert response.status_code == 409
        assert "Insufficient stock" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_same_location_rejected(
        self, client: AsyncClient, stocked_batches: list[InventoryBatch], test_product: Product, test_location: Location
    ):
        response = await client.post(
            "/api/v1/inventory/transfers",
            json={
                "product_id": test_product.id,
                "from_location_id": test_location.id,
                "to_location_id": test_location.id,
                "quantity": 1,
            },
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_unknown_destination(
        self, client: AsyncClient, stocked_batches: list[InventoryBatch], test_product: Product, test_location: Location
    ):
        response = await client.post(
            "/api/v1/inventory/transfers",
            json={
                "product_id": test_product.id,
                "from_location_id": test_location.id,
                "to_location_id": 9999,
                "quantity": 1,
            },
        )

        assert response.status_code == 404

import pytest

API = "/api/v1"


@pytest.mark.asyncio
class TestInventoryApi:

    async def _product_and_warehouse(self, client):
        product = await client.post(f"{API}/inventory/product/", json={
            "sku": "APL-001", "name": "Apple", "unit_cost": "0.40", "selling_price": "0.90",
        })
        assert product.status_code == 201
        warehouse = await client.post(f"{API}/organization/warehouse/", json={
            "code": " main ", "name": "Main store", "company_id": 1,
        })
        assert warehouse.status_code == 201
        assert warehouse.json()["code"] == "MAIN"
        return product.json()["id"], warehouse.json()["id"]

    async def test_receive_then_order(self, client):
        product_id, warehouse_id = await self._product_and_warehouse(client)

        received = await client.post(f"{API}/inventory/stock-record/receive", json={
            "product_id": product_id, "warehouse_id": warehouse_id, "quantity": 40, "unit_cost": "0.40",
        })
        assert received.status_code == 201
        body = received.json()
        assert body["stock_record"]["quantity"] == 40
        assert body["movement"]["status"] == "completed"
        assert body["movement"]["reason"] == "purchase_order"

        order = await client.post(f"{API}/sales/order/", json={
            "customer_name": "Ada", "items": [{"product_id": product_id, "quantity": 15}],
        })
        assert order.status_code == 201
        assert order.json()["status"] == "pending"

        stock = await client.get(f"{API}/inventory/stock-record/product/{product_id}")
        assert stock.json()["total_quantity"] == 25

        movements = await client.get(f"{API}/inventory/stock-movement/", params={"product_id": product_id})
        assert movements.status_code == 200
        assert movements.json()["count"] == 2
        assert [m["quantity"] for m in movements.json()["data"]] == [40, -15]

    async def test_short_order_returns_conflict_with_details(self, client):
        product_id, warehouse_id = await self._product_and_warehouse(client)
        await client.post(f"{API}/inventory/stock-record/receive", json={
            "product_id": product_id, "warehouse_id": warehouse_id, "quantity": 5,
        })

        response = await client.post(f"{API}/sales/order/", json={
            "items": [{"product_id": product_id, "quantity": 6}],
        })

        assert response.status_code == 409
        body = response.json()
        assert body["error"] == "InsufficientInventory"
        assert (body["product_id"], body["line_index"], body["requested"], body["available"]) == (product_id, 0, 6, 5)

        orders = await client.get(f"{API}/sales/order/")
        assert orders.json()["count"] == 0

    async def test_approval_requires_a_known_actor(self, client, seed):
        approver = await seed.user(username="approver")
        product_id, warehouse_id = await self._product_and_warehouse(client)
        await client.post(f"{API}/inventory/stock-record/receive", json={
            "product_id": product_id, "warehouse_id": warehouse_id, "quantity": 10,
        })
        adjusted = await client.post(f"{API}/inventory/stock-record/adjust-by", json={
            "product_id": product_id, "warehouse_id": warehouse_id, "delta": 5,
        })
        assert adjusted.status_code == 200
        movement = adjusted.json()["movement"]
        assert movement["status"] == "pending"
        approve_url = f"{API}/inventory/stock-movement/{movement['id']}/approve"

        assert (await client.post(approve_url)).status_code == 401
        assert (await client.post(approve_url, headers={"X-Actor-Id": "9999"})).status_code == 401
        assert (await client.post(approve_url, headers={"X-Actor-Id": "abc"})).status_code == 400

        approved = await client.post(approve_url, headers={"X-Actor-Id": str(approver.id)})
        assert approved.status_code == 200
        assert approved.json()["status"] == "completed"
        assert approved.json()["approver"]["username"] == "approver"

        again = await client.post(approve_url, headers={"X-Actor-Id": str(approver.id)})
        assert again.status_code == 409
        assert again.json()["error"] == "AlreadyApproved"

        record = await client.get(f"{API}/inventory/stock-record/product/{product_id}")
        assert record.json()["total_quantity"] == 15

    async def test_low_stock_report(self, client):
        product_id, warehouse_id = await self._product_and_warehouse(client)
        await client.post(f"{API}/inventory/stock-record/receive", json={
            "product_id": product_id, "warehouse_id": warehouse_id, "quantity": 3,
        })
        records = await client.get(f"{API}/inventory/stock-record/", params={"product_id": product_id})
        record_id = records.json()["data"][0]["id"]
        updated = await client.put(f"{API}/inventory/stock-record/{record_id}", json={"minimum_quantity": 10})
        assert updated.status_code == 200

        response = await client.get(f"{API}/inventory/analytics/low-stock")

        assert response.status_code == 200
        [item] = response.json()
        assert item["stock_record"]["id"] == record_id
        assert item["shortage"] == 7

    async def test_request_validation(self, client):
        product_id, warehouse_id = await self._product_and_warehouse(client)

        duplicate = await client.post(f"{API}/inventory/product/", json={"sku": "APL-001", "name": "Another apple"})
        assert duplicate.status_code == 422
        assert duplicate.json()["error"] == "ValidationError"

        zero = await client.post(f"{API}/inventory/stock-record/receive", json={
            "product_id": product_id, "warehouse_id": warehouse_id, "quantity": 0,
        })
        assert zero.status_code == 422

        missing = await client.get(f"{API}/inventory/stock-movement/12345")
        assert missing.status_code == 404
        assert missing.json()["error"] == "NotFoundError"

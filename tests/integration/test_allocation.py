from datetime import datetime, timezone

import pytest

from app.core.exceptions import InsufficientInventory, ValidationError
from app.models.shared.enums import MovementReason, QualityStatus
from app.services.inventory.allocation_service import AllocationService
from tests.conftest import days_from_today, fetch_movements, fetch_record


@pytest.mark.asyncio
class TestAllocation:

    async def test_draws_earliest_expiry_first_across_warehouses(self, db, seed):
        product = await seed.product()
        north, south, east = await seed.warehouse(), await seed.warehouse(), await seed.warehouse()
        late = await seed.stock(product, north, 10, expiry_date=days_from_today(60))
        early = await seed.stock(product, south, 5, expiry_date=days_from_today(10))
        undated = await seed.stock(product, east, 20)

        result = await AllocationService(db).allocate_for_order(10, [{"product_id": product.id, "quantity": 12}])

        assert [(d.stock_record_id, d.quantity) for d in result.draws] == [(early.id, 5), (late.id, 7)]
        assert (await fetch_record(db, early.id)).quantity == 0
        assert (await fetch_record(db, late.id)).quantity == 3
        assert (await fetch_record(db, undated.id)).quantity == 20

    async def test_oldest_receipt_first_without_expiry(self, db, seed):
        product = await seed.product()
        first, second = await seed.warehouse(), await seed.warehouse()
        newer = await seed.stock(product, first, 10, received_at=datetime(2025, 6, 1, tzinfo=timezone.utc))
        older = await seed.stock(product, second, 10, received_at=datetime(2024, 6, 1, tzinfo=timezone.utc))

        result = await AllocationService(db).allocate_for_order(11, [{"product_id": product.id, "quantity": 4}])

        assert [d.stock_record_id for d in result.draws] == [older.id]
        assert (await fetch_record(db, newer.id)).quantity == 10

    async def test_multi_line_order_is_all_or_nothing(self, db, seed):
        apples, pears = await seed.product(), await seed.product()
        warehouse = await seed.warehouse()
        apple_stock = await seed.stock(apples, warehouse, 50)
        pear_stock = await seed.stock(pears, warehouse, 3)

        with pytest.raises(InsufficientInventory) as exc_info:
            await AllocationService(db).allocate_for_order(12, [
                {"product_id": apples.id, "quantity": 20},
                {"product_id": pears.id, "quantity": 4},
            ])

        assert exc_info.value.line_index == 1
        assert exc_info.value.available == 3
        assert (await fetch_record(db, apple_stock.id)).quantity == 50
        assert (await fetch_record(db, pear_stock.id)).quantity == 3
        assert await fetch_movements(db, reason=MovementReason.SALES_ORDER) == []

    async def test_lines_for_the_same_product_share_availability(self, db, seed):
        product = await seed.product()
        warehouse = await seed.warehouse()
        await seed.stock(product, warehouse, 10)

        with pytest.raises(InsufficientInventory) as exc_info:
            await AllocationService(db).allocate_for_order(13, [
                {"product_id": product.id, "quantity": 6},
                {"product_id": product.id, "quantity": 6},
            ])
        assert exc_info.value.line_index == 1
        assert exc_info.value.available == 4

    async def test_only_good_unexpired_unreserved_stock_in_active_warehouses(self, db, seed):
        product = await seed.product()
        warehouses = [await seed.warehouse() for _ in range(4)]
        closed = await seed.warehouse(is_active=False)
        await seed.stock(product, warehouses[0], 10, quality_status=QualityStatus.DAMAGED)
        await seed.stock(product, warehouses[1], 10, expiry_date=days_from_today(-1))
        reserved = await seed.stock(product, warehouses[2], 10, reserved=8)
        await seed.stock(product, closed, 10)
        good = await seed.stock(product, warehouses[3], 1, expiry_date=days_from_today(0))

        with pytest.raises(InsufficientInventory) as exc_info:
            await AllocationService(db).allocate_for_order(14, [{"product_id": product.id, "quantity": 4}])
        assert exc_info.value.available == 3

        result = await AllocationService(db).allocate_for_order(14, [{"product_id": product.id, "quantity": 3}])
        assert {d.stock_record_id for d in result.draws} == {reserved.id, good.id}
        refreshed = await fetch_record(db, reserved.id)
        assert (refreshed.quantity, refreshed.reserved_quantity, refreshed.available_quantity) == (8, 8, 0)

    async def test_unknown_product_has_nothing_available(self, db, seed):
        with pytest.raises(InsufficientInventory) as exc_info:
            await AllocationService(db).allocate_for_order(15, [{"product_id": 999, "quantity": 1}])
        assert exc_info.value.available == 0

    async def test_empty_order_is_invalid(self, db):
        with pytest.raises(ValidationError):
            await AllocationService(db).allocate_for_order(16, [])

    async def test_failed_draw_after_planning_rejects_whole_order(self, db, seed, monkeypatch):
        product = await seed.product()
        north, south = await seed.warehouse(), await seed.warehouse()
        early = await seed.stock(product, south, 5, expiry_date=days_from_today(10))
        late = await seed.stock(product, north, 10, expiry_date=days_from_today(60))
        planner = AllocationService._plan

        def plan_then_reserve_last(self, lines, candidates):
            plan = planner(self, lines, candidates)
            # Reserved by someone else between planning and drawing
            _, record, _ = plan[-1]
            record.reserved_quantity = record.quantity - 1
            return plan

        monkeypatch.setattr(AllocationService, "_plan", plan_then_reserve_last)
        with pytest.raises(InsufficientInventory) as exc_info:
            await AllocationService(db).allocate_for_order(12, [{"product_id": product.id, "quantity": 8}])
        monkeypatch.undo()

        assert (exc_info.value.requested, exc_info.value.available) == (3, 1)
        assert (await fetch_record(db, early.id)).quantity == 5
        restored_late = await fetch_record(db, late.id)
        assert (restored_late.quantity, restored_late.reserved_quantity) == (10, 0)
        assert await fetch_movements(db, reason=MovementReason.SALES_ORDER) == []

from decimal import Decimal

import pytest

from app.core.exceptions import (
    ApprovalRequired,
    InsufficientAvailable,
    NotFoundError,
    OverRelease,
    RecordNotFound,
    ValidationError,
)
from app.models.shared.enums import MovementReason, MovementStatus, QualityStatus, StockMovementType
from app.schemas.inventory.stock_record import StockCountLine, StockRecordUpdate
from app.services.inventory.stock_movement_service import StockMovementService
from app.services.inventory.stock_record_service import StockRecordService
from tests.conftest import fetch_movements, fetch_record


@pytest.mark.asyncio
class TestStockOperations:

    async def test_receive_creates_record_and_averages_cost(self, db, seed):
        product = await seed.product()
        warehouse = await seed.warehouse()
        service = StockRecordService(db)

        record, movement = await service.receive_stock(product.id, warehouse.id, 40, None, unit_cost=Decimal("5.00"))
        assert movement.status == MovementStatus.COMPLETED
        assert (record.quantity, record.available_quantity) == (40, 40)

        record, _ = await service.receive_stock(product.id, warehouse.id, 60, None, unit_cost=Decimal("10.00"))
        assert record.quantity == 100
        assert record.unit_cost == Decimal("8.00")
        assert record.total_cost == Decimal("800.00")

        movements = await fetch_movements(db, product_id=product.id)
        assert [(m.before_quantity, m.after_quantity) for m in movements] == [(0, 40), (40, 100)]
        assert all(m.reason == MovementReason.PURCHASE_ORDER for m in movements)

    async def test_large_receipt_waits_for_approval(self, db, seed):
        product = await seed.product()
        warehouse = await seed.warehouse()
        service = StockRecordService(db)

        record, movement = await service.receive_stock(product.id, warehouse.id, 150, None)

        assert movement.status == MovementStatus.PENDING
        assert (await fetch_record(db, record.id)).quantity == 0

        await StockMovementService(db).approve_movement(movement.id, None)
        assert (await fetch_record(db, record.id)).quantity == 150

    async def test_receive_into_unknown_warehouse(self, db, seed):
        product = await seed.product()
        with pytest.raises(NotFoundError):
            await StockRecordService(db).receive_stock(product.id, 999, 5, None)

    async def test_transfer_moves_stock_between_warehouses(self, db, seed):
        product = await seed.product()
        source_wh, target_wh = await seed.warehouse(), await seed.warehouse()
        source = await seed.stock(product, source_wh, 50, unit_cost="4.00")

        result = await StockRecordService(db).transfer_stock(product.id, source_wh.id, target_wh.id, 20, None)

        assert result["source"].quantity == 30
        assert result["destination"].quantity == 20
        assert result["destination"].unit_cost == Decimal("4.00")
        movements = await fetch_movements(db, movement_type=StockMovementType.TRANSFER)
        assert [m.quantity for m in movements] == [-20, 20]
        assert all(m.status == MovementStatus.COMPLETED for m in movements)
        assert (await fetch_record(db, source.id)).quantity == 30

    async def test_transfer_cannot_exceed_available(self, db, seed):
        product = await seed.product()
        source_wh, target_wh = await seed.warehouse(), await seed.warehouse()
        await seed.stock(product, source_wh, 50, reserved=40)

        with pytest.raises(InsufficientAvailable):
            await StockRecordService(db).transfer_stock(product.id, source_wh.id, target_wh.id, 20, None)
        with pytest.raises(ValidationError):
            await StockRecordService(db).transfer_stock(product.id, source_wh.id, source_wh.id, 5, None)
        assert await fetch_movements(db, product_id=product.id) == []

    async def test_stock_take_records_discrepancies(self, db, seed):
        counted, matching = await seed.product(), await seed.product()
        warehouse = await seed.warehouse()
        record = await seed.stock(counted, warehouse, 50)
        await seed.stock(matching, warehouse, 12)

        result = await StockRecordService(db).perform_stock_take(warehouse.id, [
            StockCountLine(product_id=counted.id, counted_quantity=47),
            StockCountLine(product_id=matching.id, counted_quantity=12),
        ], None)

        assert result.counted_lines == 2
        assert len(result.discrepancies) == 1
        discrepancy = result.discrepancies[0]
        assert (discrepancy.expected_quantity, discrepancy.counted_quantity, discrepancy.difference) == (50, 47, -3)
        assert discrepancy.movement_status == MovementStatus.COMPLETED.value
        assert (await fetch_record(db, record.id)).quantity == 47

    async def test_stock_take_rejects_duplicate_lines(self, db, seed):
        product = await seed.product()
        warehouse = await seed.warehouse()
        await seed.stock(product, warehouse, 5)

        with pytest.raises(ValidationError):
            await StockRecordService(db).perform_stock_take(warehouse.id, [
                StockCountLine(product_id=product.id, counted_quantity=4),
                StockCountLine(product_id=product.id, counted_quantity=3),
            ], None)

    async def test_reservations_do_not_touch_the_ledger(self, db, seed):
        product = await seed.product()
        warehouse = await seed.warehouse()
        await seed.stock(product, warehouse, 20)
        service = StockRecordService(db)

        record = await service.reserve_stock(product.id, warehouse.id, 15, None)
        assert (record.quantity, record.reserved_quantity, record.available_quantity) == (20, 15, 5)

        with pytest.raises(InsufficientAvailable):
            await service.reserve_stock(product.id, warehouse.id, 6, None)

        record = await service.release_reservation(product.id, warehouse.id, 10, None)
        assert (record.reserved_quantity, record.available_quantity) == (5, 15)

        with pytest.raises(OverRelease):
            await service.release_reservation(product.id, warehouse.id, 6, None)
        assert await fetch_movements(db, product_id=product.id) == []

    async def test_reserving_missing_record(self, db, seed):
        with pytest.raises(RecordNotFound):
            await StockRecordService(db).reserve_stock(1, 1, 1, None)

    async def test_write_off_waits_for_approval(self, db, seed):
        product = await seed.product()
        warehouse = await seed.warehouse()
        record = await seed.stock(product, warehouse, 30)
        service = StockRecordService(db)

        _, movement = await service.write_off_stock(product.id, warehouse.id, 4, QualityStatus.DAMAGED, None)
        assert movement.status == MovementStatus.PENDING
        assert movement.movement_type == StockMovementType.DAMAGED
        assert movement.reason == MovementReason.DAMAGED_GOODS
        assert (await fetch_record(db, record.id)).quantity == 30

        await StockMovementService(db).approve_movement(movement.id, None)
        assert (await fetch_record(db, record.id)).quantity == 26

        with pytest.raises(ValidationError):
            await service.write_off_stock(product.id, warehouse.id, 1, QualityStatus.GOOD, None)

    async def test_require_immediate_refuses_entries_needing_approval(self, db, seed):
        product = await seed.product()
        warehouse = await seed.warehouse()
        record = await seed.stock(product, warehouse, 30)

        with pytest.raises(ApprovalRequired):
            await StockRecordService(db).adjust_stock(
                product.id, warehouse.id, 25, MovementReason.MANUAL_ADJUSTMENT, None, require_immediate=True
            )
        assert await fetch_movements(db, product_id=product.id) == []

        adjusted = await StockRecordService(db).adjust_stock(
            product.id, warehouse.id, 33, MovementReason.STOCK_FOUND, None,
            movement_type=StockMovementType.CYCLE_COUNT, require_immediate=True,
        )
        assert adjusted.quantity == 33
        assert (await fetch_record(db, record.id)).quantity == 33

    async def test_adjust_below_reserved_is_refused(self, db, seed):
        product = await seed.product()
        warehouse = await seed.warehouse()
        await seed.stock(product, warehouse, 30, reserved=10)

        with pytest.raises(InsufficientAvailable):
            await StockRecordService(db).adjust_stock(
                product.id, warehouse.id, 5, MovementReason.CYCLE_COUNT, None,
                movement_type=StockMovementType.CYCLE_COUNT,
            )

    async def test_history_mirrors_completed_movements(self, db, seed):
        product = await seed.product()
        warehouse = await seed.warehouse()
        service = StockRecordService(db)
        record, _ = await service.receive_stock(product.id, warehouse.id, 10, None)
        await service.adjust_stock_by(
            product.id, warehouse.id, -4, MovementReason.CYCLE_COUNT, None, movement_type=StockMovementType.CYCLE_COUNT
        )

        history = await service.get_record_history(record.id)

        assert [(h.change, h.previous_quantity, h.new_quantity) for h in history] == [(10, 0, 10), (-4, 10, 6)]
        assert [h.reason for h in history] == ["purchase_order", "cycle_count"]

    async def test_update_leaves_quantities_alone(self, db, seed):
        product = await seed.product()
        warehouse = await seed.warehouse()
        record = await seed.stock(product, warehouse, 8, unit_cost="2.50")

        updated = await StockRecordService(db).update_stock_record(
            record.id, StockRecordUpdate(minimum_quantity=10, unit_cost=Decimal("3.00")), None
        )

        assert (updated.quantity, updated.minimum_quantity) == (8, 10)
        assert updated.total_cost == Decimal("24.00")

    async def test_delete_requires_empty_record(self, db, seed):
        product = await seed.product()
        warehouse = await seed.warehouse()
        record = await seed.stock(product, warehouse, 8)

        with pytest.raises(ValidationError):
            await StockRecordService(db).delete_stock_record(record.id, None)

import pytest
from decimal import Decimal

from app.core.exceptions import ClampedToZero, InsufficientAvailable, OverRelease, StockIntegrityError, ValidationError
from app.models.inventory.stock_record import StockRecord
from app.services.inventory import stock_record_manager


def make_record(quantity=100, reserved=0, unit_cost="2.50"):
    record = StockRecord(id=1, product_id=1, warehouse_id=1, quantity=quantity,
                         reserved_quantity=reserved, unit_cost=Decimal(unit_cost))
    return stock_record_manager.recompute(record)


class TestRecompute:
    def test_derives_available_and_total_cost(self):
        record = make_record(quantity=40, reserved=15)
        assert record.available_quantity == 25
        assert record.total_cost == Decimal("100.00")

    def test_check_invariants_rejects_over_reservation(self):
        record = make_record(quantity=10)
        record.reserved_quantity = 11
        with pytest.raises(StockIntegrityError):
            stock_record_manager.check_invariants(record)


class TestReservations:
    def test_reserve_reduces_available(self):
        record = stock_record_manager.reserve(make_record(quantity=10), 4)
        assert (record.quantity, record.reserved_quantity, record.available_quantity) == (10, 4, 6)

    def test_reserve_more_than_available(self):
        record = make_record(quantity=10, reserved=8)
        with pytest.raises(InsufficientAvailable) as exc_info:
            stock_record_manager.reserve(record, 3)
        assert exc_info.value.requested == 3
        assert exc_info.value.available == 2
        assert record.reserved_quantity == 8

    def test_reserve_non_positive(self):
        with pytest.raises(ValidationError):
            stock_record_manager.reserve(make_record(), 0)

    def test_release(self):
        record = stock_record_manager.release_reservation(make_record(quantity=10, reserved=6), 6)
        assert record.reserved_quantity == 0
        assert record.available_quantity == 10

    def test_over_release(self):
        record = make_record(quantity=10, reserved=2)
        with pytest.raises(OverRelease):
            stock_record_manager.release_reservation(record, 3)
        assert record.reserved_quantity == 2


class TestAdjustQuantity:
    def test_returns_change(self):
        record = make_record(quantity=100, reserved=10)
        change = stock_record_manager.adjust_quantity(record, 70, "sales_order")
        assert change == {"old_quantity": 100, "new_quantity": 70, "delta": -30, "reason": "sales_order"}
        assert record.available_quantity == 60

    def test_negative_target_is_rejected(self):
        with pytest.raises(ValidationError):
            stock_record_manager.adjust_quantity(make_record(), -1, "manual_adjustment")

    def test_target_below_reserved_is_rejected(self):
        record = make_record(quantity=20, reserved=15)
        with pytest.raises(InsufficientAvailable):
            stock_record_manager.adjust_quantity(record, 10, "manual_adjustment")
        assert record.quantity == 20

    def test_apply_delta_past_available(self):
        record = make_record(quantity=20, reserved=15)
        with pytest.raises(InsufficientAvailable):
            stock_record_manager.apply_delta(record, -6, "sales_order")
        change = stock_record_manager.apply_delta(record, -5, "sales_order")
        assert change["new_quantity"] == 15
        assert record.available_quantity == 0


class TestClampTarget:
    def test_within_available_is_not_clamped(self):
        assert stock_record_manager.clamp_target(make_record(quantity=10, reserved=2), -8) == 2

    def test_decrement_past_floor_is_clamped_with_warning(self):
        record = make_record(quantity=10, reserved=3)
        with pytest.warns(ClampedToZero):
            target = stock_record_manager.clamp_target(record, -50)
        assert target == 3

    def test_increment(self):
        assert stock_record_manager.clamp_target(make_record(quantity=10), 5) == 15

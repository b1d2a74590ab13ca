from datetime import date, datetime, timezone

from app.models.inventory.stock_record import StockRecord
from app.models.sales.order_item import OrderItem
from app.schemas.inventory.allocation import AllocationLineItem
from app.services.inventory.allocation_service import allocation_priority, to_line_items


def record(id, expiry=None, received=None):
    return StockRecord(id=id, product_id=1, warehouse_id=id, expiry_date=expiry, received_at=received)


def test_earliest_expiry_first_then_oldest_receipt():
    records = [
        record(1, expiry=None, received=datetime(2024, 1, 1)),
        record(2, expiry=date(2031, 5, 1), received=datetime(2024, 3, 1)),
        record(3, expiry=date(2030, 5, 1), received=datetime(2024, 6, 1)),
        record(4, expiry=None, received=datetime(2023, 1, 1, tzinfo=timezone.utc)),
        record(5, expiry=None, received=None),
    ]
    ordered = [r.id for r in sorted(records, key=allocation_priority)]
    assert ordered == [3, 2, 4, 1, 5]


def test_ties_break_on_id():
    records = [record(9, expiry=date(2030, 1, 1)), record(2, expiry=date(2030, 1, 1))]
    assert [r.id for r in sorted(records, key=allocation_priority)] == [2, 9]


def test_to_line_items_accepts_mixed_inputs():
    lines = to_line_items([
        AllocationLineItem(product_id=1, quantity=2),
        {"product_id": 2, "quantity": 3, "price": "4.50"},
        OrderItem(product_id=3, quantity=4),
    ])
    assert [(line.product_id, line.quantity) for line in lines] == [(1, 2), (2, 3), (3, 4)]

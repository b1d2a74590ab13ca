from decimal import Decimal

import pytest

from app.core.exceptions import InsufficientInventory, NotFoundError, ValidationError
from app.models.shared.enums import MovementReason, OrderStatus, ReferenceType
from app.schemas.sales.order import OrderCreate, OrderItemCreate
from app.services.sales.order_service import OrderService
from tests.conftest import fetch_movements, fetch_record


def order_for(*lines, customer_name="Walk-in"):
    return OrderCreate(
        customer_name=customer_name,
        items=[OrderItemCreate(product_id=product_id, quantity=quantity) for product_id, quantity in lines],
    )


@pytest.mark.asyncio
class TestOrderLifecycle:

    async def test_create_allocates_stock(self, db, seed):
        product = await seed.product(selling_price="9.50")
        warehouse = await seed.warehouse()
        record = await seed.stock(product, warehouse, 50)

        order = await OrderService(db).create_order(order_for((product.id, 5)), None)

        assert order.status == OrderStatus.PENDING
        assert order.order_number.startswith("ORD-")
        assert order.subtotal == Decimal("47.50")
        assert [(i.line_index, i.quantity, i.price) for i in order.items] == [(0, 5, Decimal("9.50"))]
        assert (await fetch_record(db, record.id)).quantity == 45
        draws = await fetch_movements(db, reference_type=ReferenceType.SALES_ORDER, reference_id=order.id)
        assert [m.quantity for m in draws] == [-5]

    async def test_insufficient_stock_creates_no_order(self, db, seed):
        product = await seed.product()
        warehouse = await seed.warehouse()
        record = await seed.stock(product, warehouse, 3)
        service = OrderService(db)

        with pytest.raises(InsufficientInventory):
            await service.create_order(order_for((product.id, 4)), None)

        assert (await service.get_orders())["count"] == 0
        assert (await fetch_record(db, record.id)).quantity == 3

    async def test_unknown_or_inactive_products_are_refused(self, db, seed):
        retired = await seed.product(is_active=False)
        service = OrderService(db)

        with pytest.raises(NotFoundError):
            await service.create_order(order_for((999, 1)), None)
        with pytest.raises(ValidationError):
            await service.create_order(order_for((retired.id, 1)), None)

    async def test_cancel_restores_stock_and_is_terminal(self, db, seed):
        product = await seed.product()
        warehouse = await seed.warehouse()
        record = await seed.stock(product, warehouse, 20)
        service = OrderService(db)
        order = await service.create_order(order_for((product.id, 8)), None)

        cancelled = await service.update_status(order.id, OrderStatus.CANCELLED, None, notes="Customer changed mind")

        assert cancelled.status == OrderStatus.CANCELLED
        assert cancelled.cancelled_at is not None
        assert cancelled.notes == "Customer changed mind"
        assert (await fetch_record(db, record.id)).quantity == 20
        assert len(await fetch_movements(db, reason=MovementReason.ORDER_CANCELLATION)) == 1

        with pytest.raises(ValidationError):
            await service.update_status(order.id, OrderStatus.PROCESSING, None)

    async def test_status_rollback_of_fulfilled_order_restores_stock(self, db, seed):
        product = await seed.product()
        warehouse = await seed.warehouse()
        record = await seed.stock(product, warehouse, 20)
        service = OrderService(db)
        order = await service.create_order(order_for((product.id, 6)), None)

        fulfilled = await service.update_status(order.id, OrderStatus.FULFILLED, None)
        assert fulfilled.status == OrderStatus.FULFILLED
        assert (await fetch_record(db, record.id)).quantity == 14

        returned = await service.update_status(order.id, OrderStatus.RETURNED, None)
        assert returned.status == OrderStatus.RETURNED
        assert returned.cancelled_at is None
        assert (await fetch_record(db, record.id)).quantity == 20

    async def test_invalid_transitions(self, db, seed):
        product = await seed.product()
        warehouse = await seed.warehouse()
        await seed.stock(product, warehouse, 20)
        service = OrderService(db)
        order = await service.create_order(order_for((product.id, 1)), None)

        with pytest.raises(ValidationError):
            await service.update_status(order.id, OrderStatus.RETURNED, None)

        unchanged = await service.update_status(order.id, OrderStatus.PENDING, None)
        assert unchanged.status == OrderStatus.PENDING

        with pytest.raises(NotFoundError):
            await service.update_status(999, OrderStatus.CANCELLED, None)

    async def test_deleting_pending_order_gives_stock_back(self, db, seed):
        product = await seed.product()
        warehouse = await seed.warehouse()
        record = await seed.stock(product, warehouse, 20)
        service = OrderService(db)
        order = await service.create_order(order_for((product.id, 9)), None)

        assert await service.delete_order(order.id, None) is True

        assert await service.get_order(order.id) is None
        assert (await fetch_record(db, record.id)).quantity == 20

    async def test_only_pending_orders_can_be_deleted(self, db, seed):
        product = await seed.product()
        warehouse = await seed.warehouse()
        record = await seed.stock(product, warehouse, 20)
        service = OrderService(db)
        order = await service.create_order(order_for((product.id, 9)), None)
        await service.update_status(order.id, OrderStatus.PROCESSING, None)

        with pytest.raises(ValidationError):
            await service.delete_order(order.id, None)
        assert (await fetch_record(db, record.id)).quantity == 11

    async def test_stats_by_status(self, db, seed):
        product = await seed.product(selling_price="2.00")
        warehouse = await seed.warehouse()
        await seed.stock(product, warehouse, 50)
        service = OrderService(db)
        first = await service.create_order(order_for((product.id, 1)), None)
        await service.create_order(order_for((product.id, 2)), None)
        await service.update_status(first.id, OrderStatus.CANCELLED, None)

        stats = {s.status: s for s in await service.get_order_stats()}

        assert stats[OrderStatus.PENDING].count == 1
        assert stats[OrderStatus.PENDING].total_amount == Decimal("4.00")
        assert stats[OrderStatus.CANCELLED].count == 1

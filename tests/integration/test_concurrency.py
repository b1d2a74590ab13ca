import asyncio
import uuid
from decimal import Decimal

from hypothesis import HealthCheck, given, settings, strategies as st
from sqlalchemy import func
from sqlalchemy.future import select

from app.core.database import build_engine, build_session_maker
from app.core.exceptions import InsufficientInventory
from app.db.immutability import register_immutability_listeners
from app.db.init_db import create_tables
from app.models.inventory.product import Product
from app.models.inventory.stock_movement import StockMovement
from app.models.inventory.stock_record import StockRecord
from app.models.organization.warehouse import Warehouse
from app.models.shared.enums import MovementReason
from app.services.inventory import stock_record_manager
from app.services.inventory.allocation_service import AllocationService


async def _seed(session_maker, quantities):
    async with session_maker() as session:
        product = Product(sku="CONC-1", name="Contended", unit_cost=Decimal("1.00"), selling_price=Decimal("2.00"))
        session.add(product)
        await session.flush()
        for index, quantity in enumerate(quantities):
            warehouse = Warehouse(code=f"C{index}", name=f"Contended {index}", company_id=1)
            session.add(warehouse)
            await session.flush()
            record = StockRecord(
                product_id=product.id,
                warehouse_id=warehouse.id,
                quantity=quantity,
                reserved_quantity=0,
                unit_cost=Decimal("1.00"),
                minimum_quantity=0,
            )
            stock_record_manager.recompute(record)
            session.add(record)
        await session.commit()
        return product.id


async def _allocate(session_maker, order_id, product_id, quantity):
    async with session_maker() as session:
        try:
            result = await AllocationService(session).allocate_for_order(
                order_id, [{"product_id": product_id, "quantity": quantity}]
            )
        except InsufficientInventory as e:
            return order_id, quantity, None, e
        return order_id, quantity, sum(d.quantity for d in result.draws), None


async def _run_orders(db_path, quantities, requests):
    engine = build_engine(f"sqlite+aiosqlite:///{db_path}")
    register_immutability_listeners()
    try:
        await create_tables(engine)
        session_maker = build_session_maker(engine)
        product_id = await _seed(session_maker, quantities)

        outcomes = await asyncio.gather(*[
            _allocate(session_maker, order_id, product_id, quantity)
            for order_id, quantity in enumerate(requests, start=1)
        ])

        async with session_maker() as session:
            records = (await session.execute(select(StockRecord))).scalars().all()
            drawn_by_order = dict((await session.execute(
                select(StockMovement.reference_id, func.sum(StockMovement.quantity))
                .where(StockMovement.reason == MovementReason.SALES_ORDER)
                .group_by(StockMovement.reference_id)
            )).all())
        return outcomes, [(r.quantity, r.available_quantity) for r in records], drawn_by_order
    finally:
        await engine.dispose()


@settings(max_examples=8, deadline=None, suppress_health_check=[HealthCheck.function_scoped_fixture])
@given(
    quantities=st.lists(st.integers(min_value=0, max_value=30), min_size=1, max_size=3),
    requests=st.lists(st.integers(min_value=1, max_value=25), min_size=2, max_size=6),
)
def test_concurrent_orders_never_oversell(tmp_path, quantities, requests):
    outcomes, records, drawn_by_order = asyncio.run(
        _run_orders(tmp_path / f"{uuid.uuid4().hex}.db", quantities, requests)
    )

    total_drawn = 0
    for order_id, requested, drawn, error in outcomes:
        if error is None:
            assert drawn == requested
            assert drawn_by_order[order_id] == -requested
            total_drawn += drawn
        else:
            assert isinstance(error, InsufficientInventory)
            assert error.available < requested
            assert order_id not in drawn_by_order

    assert total_drawn <= sum(quantities)
    assert sum(quantity for quantity, _ in records) == sum(quantities) - total_drawn
    assert all(quantity >= 0 and available >= 0 for quantity, available in records)

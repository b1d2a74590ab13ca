from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator, Optional

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.core.database import build_engine, build_session_maker, get_async_session
from app.db.immutability import register_immutability_listeners
from app.db.init_db import create_tables
from app.models.auth.user import User
from app.models.inventory.product import Product
from app.models.inventory.stock_movement import StockMovement
from app.models.inventory.stock_record import StockRecord
from app.models.organization.warehouse import Warehouse
from app.services.inventory import stock_record_manager
from app.utils.date_utils import utc_today


class Seeder:
    """Writes fixture rows directly, bypassing the ledger"""

    def __init__(self, session: AsyncSession):
        self.session = session
        self._counter = 0

    def _next(self) -> int:
        self._counter += 1
        return self._counter

    async def user(self, username: Optional[str] = None, is_active: bool = True) -> User:
        n = self._next()
        username = username or f"user{n}"
        user = User(email=f"{username}@example.com", username=username, full_name=f"User {n}", is_active=is_active)
        self.session.add(user)
        await self.session.commit()
        return user

    async def product(self, sku: Optional[str] = None, unit_cost="5.00", selling_price="9.50", is_active: bool = True) -> Product:
        n = self._next()
        product = Product(
            sku=sku or f"SKU-{n:04d}",
            name=f"Product {n}",
            unit_cost=Decimal(unit_cost),
            selling_price=Decimal(selling_price),
            is_active=is_active,
        )
        self.session.add(product)
        await self.session.commit()
        return product

    async def warehouse(self, code: Optional[str] = None, company_id: Optional[int] = 1, is_active: bool = True) -> Warehouse:
        n = self._next()
        warehouse = Warehouse(code=code or f"WH-{n:03d}", name=f"Warehouse {n}", company_id=company_id, is_active=is_active)
        self.session.add(warehouse)
        await self.session.commit()
        return warehouse

    async def stock(
        self,
        product: Product,
        warehouse: Warehouse,
        quantity: int,
        reserved: int = 0,
        unit_cost="5.00",
        minimum_quantity: int = 0,
        expiry_date: Optional[date] = None,
        received_at: Optional[datetime] = None,
        quality_status=None,
    ) -> StockRecord:
        record = StockRecord(
            product_id=product.id,
            warehouse_id=warehouse.id,
            quantity=quantity,
            reserved_quantity=reserved,
            unit_cost=Decimal(unit_cost),
            minimum_quantity=minimum_quantity,
            expiry_date=expiry_date,
            received_at=received_at or datetime.now(timezone.utc),
        )
        if quality_status is not None:
            record.quality_status = quality_status
        stock_record_manager.recompute(record)
        self.session.add(record)
        await self.session.commit()
        return record


async def fetch_record(session: AsyncSession, stock_record_id: int) -> StockRecord:
    result = await session.execute(
        select(StockRecord).where(StockRecord.id == stock_record_id).execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def fetch_movements(session: AsyncSession, **criteria):
    query = select(StockMovement).order_by(StockMovement.id).execution_options(populate_existing=True)
    for column, value in criteria.items():
        query = query.where(getattr(StockMovement, column) == value)
    result = await session.execute(query)
    return list(result.scalars().all())


def days_from_today(days: int) -> date:
    return utc_today() + timedelta(days=days)


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    register_immutability_listeners()
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_maker(engine):
    return build_session_maker(engine)


@pytest_asyncio.fixture
async def db(session_maker) -> AsyncGenerator[AsyncSession, None]:
    async with session_maker() as session:
        yield session


@pytest_asyncio.fixture
async def seed(session_maker) -> AsyncGenerator[Seeder, None]:
    async with session_maker() as session:
        yield Seeder(session)


@pytest_asyncio.fixture
async def client(session_maker) -> AsyncGenerator[AsyncClient, None]:
    """Create test client"""
    from main import app

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_async_session] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()

import logging
from typing import Any, Awaitable, Callable, Iterable, List, Optional, TypeVar
from sqlalchemy import and_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm.exc import StaleDataError
from app.core.config import settings
from app.core.exceptions import ConcurrentModification
from app.models.inventory.stock_record import StockRecord
from app.utils.stock_lock import KeyedLockRegistry, StockKey, stock_locks

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StockTransaction:
    """Runs one stock mutation as a single atomic unit.

    The operation executes while the per-key locks are held and is committed
    before they are released. A version conflict rolls everything back and
    re-runs the operation; any other error rolls back and propagates.
    """

    def __init__(
        self,
        db: AsyncSession,
        locks: KeyedLockRegistry = stock_locks,
        max_retries: Optional[int] = None,
    ):
        self.db = db
        self.locks = locks
        self.max_retries = settings.STOCK_TX_MAX_RETRIES if max_retries is None else max_retries

    async def run(
        self,
        keys: Iterable[StockKey],
        operation: Callable[..., Awaitable[T]],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        keys = list(keys)
        attempt = 0
        while True:
            attempt += 1
            try:
                async with self.locks.acquire(keys):
                    result = await operation(*args, **kwargs)
                    await self.db.commit()
                return result
            except (StaleDataError, ConcurrentModification) as e:
                await self.db.rollback()
                if attempt > self.max_retries:
                    logger.error(f"❌ Giving up on stock update for {keys} after {attempt} attempts: {e}")
                    raise ConcurrentModification(keys=[list(k) for k in keys], attempts=attempt) from e
                logger.warning(f"🔁 Version conflict on {keys}, retrying ({attempt}/{self.max_retries})")
            except Exception:
                await self.db.rollback()
                raise


async def lock_stock_record(db: AsyncSession, product_id: int, warehouse_id: int) -> Optional[StockRecord]:
    """Fresh read of a stock record for mutation; call while its key is locked."""
    result = await db.execute(
        select(StockRecord)
        .where(and_(StockRecord.product_id == product_id, StockRecord.warehouse_id == warehouse_id))
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def lock_stock_record_by_id(db: AsyncSession, stock_record_id: int) -> Optional[StockRecord]:
    result = await db.execute(
        select(StockRecord)
        .where(StockRecord.id == stock_record_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def lock_product_records(db: AsyncSession, product_id: int, warehouse_ids: Iterable[int]) -> List[StockRecord]:
    warehouse_ids = list(warehouse_ids)
    if not warehouse_ids:
        return []
    result = await db.execute(
        select(StockRecord)
        .where(and_(StockRecord.product_id == product_id, StockRecord.warehouse_id.in_(warehouse_ids)))
        .order_by(StockRecord.id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())

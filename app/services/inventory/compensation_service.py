import logging
from collections import defaultdict
from typing import Any, Iterable, List, Optional, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import and_, func
from app.core.exceptions import StockIntegrityError
from app.models.inventory.stock_movement import StockMovement
from app.models.inventory.stock_record import StockRecord
from app.models.shared.enums import MovementReason, MovementStatus, ReferenceType, StockMovementType
from app.schemas.inventory.allocation import CompensationRestore, CompensationResult
from app.services.inventory.allocation_service import to_line_items
from app.services.inventory.stock_movement_service import StockMovementService
from app.services.inventory.stock_transaction import StockTransaction, lock_product_records, lock_stock_record_by_id
from app.utils.stock_lock import StockKey

logger = logging.getLogger(__name__)


class CompensationService:
    """Gives an order's stock back when it is cancelled or deleted.

    Restores follow the order's outbound ledger entries, each going back to
    the record it was drawn from. Running it twice for the same order is a
    no-op.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.ledger = StockMovementService(db)
        self.transaction = StockTransaction(db)

    async def plan_keys(self, order_id: int, line_items: Optional[Iterable[Any]] = None) -> List[StockKey]:
        """Stock keys a compensation for this order may touch (snapshot read)"""
        outbound = await self._order_draws(order_id)
        keys = {(m.product_id, m.from_warehouse_id) for m in outbound}
        product_ids = {m.product_id for m in outbound}
        product_ids.update(line.product_id for line in to_line_items(line_items or []))

        if product_ids:
            result = await self.db.execute(
                select(StockRecord.product_id, StockRecord.warehouse_id)
                .where(StockRecord.product_id.in_(product_ids))
            )
            keys.update((row.product_id, row.warehouse_id) for row in result.all())
        return sorted(keys)

    async def compensate_for_order(
        self,
        order_id: int,
        actor_id: Optional[int] = None,
        line_items: Optional[Iterable[Any]] = None,
    ) -> CompensationResult:
        lines = to_line_items(line_items or [])
        keys = await self.plan_keys(order_id, lines)
        return await self.transaction.run(keys, self.apply_compensation, order_id, actor_id, keys, lines)

    async def apply_compensation(
        self,
        order_id: int,
        actor_id: Optional[int],
        locked_keys: Iterable[StockKey],
        line_items: Optional[Iterable[Any]] = None,
    ) -> CompensationResult:
        """Restore the order's draws; the caller holds ``locked_keys`` and owns the commit."""
        if await self._already_compensated(order_id):
            logger.info(f"↩️ Order {order_id} already compensated; nothing to do")
            return CompensationResult(order_id=order_id, compensated=False)

        warehouses_by_product = defaultdict(set)
        for product_id, warehouse_id in locked_keys:
            warehouses_by_product[product_id].add(warehouse_id)

        restorations: List[Tuple[int, Optional[int], Optional[int], int]] = []
        draws = await self._order_draws(order_id)
        if draws:
            for movement in draws:
                restorations.append((movement.product_id, movement.stock_record_id, movement.from_warehouse_id, -movement.quantity))
        else:
            for line in to_line_items(line_items or []):
                restorations.append((line.product_id, None, None, line.quantity))

        if not restorations:
            logger.info(f"↩️ Order {order_id} has no allocation to compensate")
            return CompensationResult(order_id=order_id, compensated=False)

        restored = []
        for product_id, stock_record_id, warehouse_id, quantity in restorations:
            record, fallback = await self._restore_target(
                product_id, stock_record_id, warehouses_by_product.get(product_id, set())
            )
            if record is None:
                logger.error(
                    f"❌ Stock integrity failure compensating order {order_id}: no stock record for "
                    f"product {product_id} (original warehouse {warehouse_id}); {quantity} units not restored"
                )
                raise StockIntegrityError(
                    "No stock record available to restore cancelled order stock",
                    order_id=order_id,
                    product_id=product_id,
                    warehouse_id=warehouse_id,
                    quantity=quantity,
                )
            if fallback and stock_record_id is not None:
                logger.warning(
                    f"⚠️ Order {order_id}: original stock record {stock_record_id} for product {product_id} "
                    f"is gone; restoring {quantity} to stock record {record.id}"
                )
            elif fallback:
                logger.warning(
                    f"⚠️ Order {order_id}: no ledger linkage for product {product_id}; "
                    f"restoring {quantity} to stock record {record.id}"
                )

            movement = StockMovement(
                product_id=product_id,
                to_warehouse_id=record.warehouse_id,
                movement_type=StockMovementType.INBOUND,
                reason=MovementReason.ORDER_CANCELLATION,
                quantity=quantity,
                before_quantity=record.quantity,
                after_quantity=record.quantity + quantity,
                unit_cost=record.unit_cost,
                reference_type=ReferenceType.SALES_ORDER,
                reference_id=order_id,
                notes=f"Restored from cancelled order {order_id}",
                processed_by=actor_id,
                created_by=actor_id,
                updated_by=actor_id,
            )
            movement = await self.ledger.append(movement, record)
            restored.append(CompensationRestore(
                product_id=product_id,
                warehouse_id=record.warehouse_id,
                stock_record_id=record.id,
                quantity=quantity,
                movement_id=movement.id,
                fallback=fallback,
            ))

        logger.info(f"↩️ Order {order_id} compensated: {len(restored)} restorations")
        return CompensationResult(order_id=order_id, compensated=True, restored=restored)

    async def _restore_target(
        self,
        product_id: int,
        stock_record_id: Optional[int],
        locked_warehouses: set,
    ) -> Tuple[Optional[StockRecord], bool]:
        if stock_record_id is not None:
            record = await lock_stock_record_by_id(self.db, stock_record_id)
            if record is not None and record.product_id == product_id and record.warehouse_id in locked_warehouses:
                return record, False

        records = await lock_product_records(self.db, product_id, locked_warehouses)
        if not records:
            return None, True
        return records[0], True

    async def _order_draws(self, order_id: int) -> List[StockMovement]:
        result = await self.db.execute(
            select(StockMovement)
            .where(and_(
                StockMovement.reference_type == ReferenceType.SALES_ORDER,
                StockMovement.reference_id == order_id,
                StockMovement.movement_type == StockMovementType.OUTBOUND,
                StockMovement.reason == MovementReason.SALES_ORDER,
                StockMovement.status == MovementStatus.COMPLETED,
            ))
            .order_by(StockMovement.id)
        )
        return list(result.scalars().all())

    async def _already_compensated(self, order_id: int) -> bool:
        result = await self.db.execute(
            select(func.count(StockMovement.id)).where(and_(
                StockMovement.reference_type == ReferenceType.SALES_ORDER,
                StockMovement.reference_id == order_id,
                StockMovement.reason == MovementReason.ORDER_CANCELLATION,
                StockMovement.status == MovementStatus.COMPLETED,
            ))
        )
        return bool(result.scalar())

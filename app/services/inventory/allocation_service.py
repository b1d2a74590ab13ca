import logging
from collections import defaultdict
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import and_, or_
from app.core.exceptions import InsufficientAvailable, InsufficientInventory, ValidationError
from app.models.inventory.stock_movement import StockMovement
from app.models.inventory.stock_record import StockRecord
from app.models.organization.warehouse import Warehouse
from app.models.shared.enums import MovementReason, QualityStatus, ReferenceType, StockMovementType
from app.schemas.inventory.allocation import AllocationDraw, AllocationLineItem, AllocationResult
from app.services.inventory.stock_movement_service import StockMovementService
from app.services.inventory.stock_transaction import StockTransaction
from app.utils.date_utils import as_naive_utc, utc_today
from app.utils.stock_lock import StockKey

logger = logging.getLogger(__name__)


def to_line_items(items: Iterable[Any]) -> List[AllocationLineItem]:
    """Accept schemas, plain dicts or order item rows"""
    lines = []
    for item in items:
        if isinstance(item, AllocationLineItem):
            lines.append(item)
        elif isinstance(item, dict):
            lines.append(AllocationLineItem(**item))
        else:
            lines.append(AllocationLineItem(product_id=item.product_id, quantity=item.quantity, price=getattr(item, "price", None)))
    return lines


def allocation_priority(record: StockRecord) -> Tuple:
    """Earliest expiry first (FEFO), then oldest receipt (FIFO), then id"""
    received_at = as_naive_utc(record.received_at)
    return (
        record.expiry_date is None,
        record.expiry_date or date.max,
        received_at is None,
        received_at or datetime.max,
        record.id,
    )


class AllocationService:
    """Satisfies order lines from good, unexpired stock across warehouses.

    Allocation commits on order creation: each draw decrements the stock
    record and writes an outbound ``sales_order`` movement. Either every line
    of an order is drawn or nothing is.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.ledger = StockMovementService(db)
        self.transaction = StockTransaction(db)

    async def plan_keys(self, line_items: Sequence[AllocationLineItem]) -> List[StockKey]:
        """Stock keys an allocation for these lines may touch (snapshot read)"""
        product_ids = {line.product_id for line in line_items}
        if not product_ids:
            return []
        result = await self.db.execute(
            select(StockRecord.product_id, StockRecord.warehouse_id)
            .where(StockRecord.product_id.in_(product_ids))
        )
        return sorted({(row.product_id, row.warehouse_id) for row in result.all()})

    async def allocate_for_order(
        self,
        order_id: int,
        line_items: Iterable[Any],
        actor_id: Optional[int] = None,
    ) -> AllocationResult:
        lines = to_line_items(line_items)
        keys = await self.plan_keys(lines)
        draws = await self.transaction.run(keys, self.apply_allocation, order_id, lines, actor_id, keys)
        return AllocationResult(allocated=True, order_id=order_id, draws=draws)

    async def apply_allocation(
        self,
        order_id: int,
        line_items: Iterable[Any],
        actor_id: Optional[int],
        locked_keys: Iterable[StockKey],
    ) -> List[AllocationDraw]:
        """Validate and draw every line; the caller holds ``locked_keys`` and owns the commit."""
        lines = to_line_items(line_items)
        if not lines:
            raise ValidationError("Order has no line items", order_id=order_id)

        warehouses_by_product = defaultdict(set)
        for product_id, warehouse_id in locked_keys:
            warehouses_by_product[product_id].add(warehouse_id)

        plan = self._plan(lines, await self._load_candidates(warehouses_by_product))
        logger.info(f"🧮 Order {order_id}: {len(lines)} lines validated, {len(plan)} draws planned")

        draws = []
        for line_index, record, quantity in plan:
            movement = StockMovement(
                product_id=record.product_id,
                from_warehouse_id=record.warehouse_id,
                movement_type=StockMovementType.OUTBOUND,
                reason=MovementReason.SALES_ORDER,
                quantity=-quantity,
                before_quantity=record.quantity,
                after_quantity=record.quantity - quantity,
                unit_cost=record.unit_cost,
                batch_number=record.batch_number,
                lot_number=record.lot_number,
                expiry_date=record.expiry_date,
                reference_type=ReferenceType.SALES_ORDER,
                reference_id=order_id,
                processed_by=actor_id,
                created_by=actor_id,
                updated_by=actor_id,
            )
            try:
                movement = await self.ledger.append(movement, record)
            except InsufficientAvailable as e:
                logger.error(
                    f"❌ Order {order_id}: draw of {quantity} from stock record {record.id} failed after "
                    f"validation (available {e.available}); rejecting the whole order"
                )
                raise InsufficientInventory(record.product_id, line_index, quantity, e.available) from e

            draws.append(AllocationDraw(
                line_index=line_index,
                product_id=record.product_id,
                warehouse_id=record.warehouse_id,
                stock_record_id=record.id,
                quantity=quantity,
                movement_id=movement.id,
            ))

        logger.info(f"✅ Order {order_id} allocated from {len({d.stock_record_id for d in draws})} stock records")
        return draws

    def _plan(
        self,
        lines: List[AllocationLineItem],
        candidates: Dict[int, List[StockRecord]],
    ) -> List[Tuple[int, StockRecord, int]]:
        drawn = defaultdict(int)  # stock_record_id -> planned by earlier lines
        plan = []

        for line_index, line in enumerate(lines):
            records = sorted(candidates.get(line.product_id, []), key=allocation_priority)
            available = sum(max(0, r.available_quantity - drawn[r.id]) for r in records)
            if available < line.quantity:
                logger.info(
                    f"🚫 Insufficient inventory for product {line.product_id} (line {line_index}): "
                    f"requested {line.quantity}, available {available}"
                )
                raise InsufficientInventory(line.product_id, line_index, line.quantity, available)

            remaining = line.quantity
            for record in records:
                take = min(remaining, record.available_quantity - drawn[record.id])
                if take <= 0:
                    continue
                plan.append((line_index, record, take))
                drawn[record.id] += take
                remaining -= take
                if remaining == 0:
                    break

        return plan

    async def _load_candidates(self, warehouses_by_product: Dict[int, set]) -> Dict[int, List[StockRecord]]:
        if not warehouses_by_product:
            return {}

        key_conditions = [
            and_(StockRecord.product_id == product_id, StockRecord.warehouse_id.in_(warehouse_ids))
            for product_id, warehouse_ids in warehouses_by_product.items()
        ]
        result = await self.db.execute(
            select(StockRecord)
            .join(Warehouse, Warehouse.id == StockRecord.warehouse_id)
            .where(and_(
                or_(*key_conditions),
                StockRecord.quality_status == QualityStatus.GOOD,
                or_(StockRecord.expiry_date.is_(None), StockRecord.expiry_date >= utc_today()),
                Warehouse.is_active == True,
            ))
            .with_for_update(of=StockRecord)
            .execution_options(populate_existing=True)
        )

        candidates = defaultdict(list)
        for record in result.scalars().all():
            candidates[record.product_id].append(record)
        return candidates

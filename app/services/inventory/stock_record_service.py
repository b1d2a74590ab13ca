import logging
from typing import List, Optional, Dict, Any, Tuple
from decimal import Decimal
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import and_, func
from app.core.exceptions import (
    ApprovalRequired,
    InsufficientAvailable,
    NotFoundError,
    RecordNotFound,
    ValidationError,
)
from app.models.inventory.product import Product
from app.models.inventory.stock_movement import StockMovement
from app.models.inventory.stock_record import StockRecord
from app.models.inventory.stock_record_history import StockRecordHistory
from app.models.organization.warehouse import Warehouse
from app.models.shared.enums import MovementReason, MovementStatus, QualityStatus, ReferenceType, StockMovementType
from app.schemas.inventory.stock_record import (
    StockCountLine,
    StockRecordUpdate,
    StockTakeDiscrepancy,
    StockTakeResult,
)
from app.services.inventory import stock_record_manager
from app.services.inventory.stock_movement_service import StockMovementService
from app.services.inventory.stock_transaction import StockTransaction, lock_stock_record
from app.utils.date_utils import utc_now

logger = logging.getLogger(__name__)


class StockRecordService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.ledger = StockMovementService(db)
        self.transaction = StockTransaction(db)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_stock_record_by_id(self, stock_record_id: int) -> Optional[StockRecord]:
        result = await self.db.execute(
            select(StockRecord)
            .where(StockRecord.id == stock_record_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_stock_record(self, product_id: int, warehouse_id: int) -> Optional[StockRecord]:
        result = await self.db.execute(
            select(StockRecord)
            .where(and_(StockRecord.product_id == product_id, StockRecord.warehouse_id == warehouse_id))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_stock_records(
        self,
        skip: int = 0,
        limit: int = 100,
        warehouse_id: Optional[int] = None,
        product_id: Optional[int] = None,
        quality_status: Optional[QualityStatus] = None,
        low_stock_only: bool = False,
    ) -> Dict[str, Any]:
        conditions = []
        if warehouse_id:
            conditions.append(StockRecord.warehouse_id == warehouse_id)
        if product_id:
            conditions.append(StockRecord.product_id == product_id)
        if quality_status:
            conditions.append(StockRecord.quality_status == quality_status)
        if low_stock_only:
            conditions.append(StockRecord.quantity < StockRecord.minimum_quantity)

        query = select(StockRecord)
        count_query = select(func.count(StockRecord.id))
        if conditions:
            query = query.where(and_(*conditions))
            count_query = count_query.where(and_(*conditions))

        total = (await self.db.execute(count_query)).scalar() or 0
        result = await self.db.execute(
            query.order_by(StockRecord.id).offset(skip).limit(limit).execution_options(populate_existing=True)
        )
        return {"count": total, "data": list(result.scalars().all())}

    async def get_product_stock(self, product_id: int) -> Dict[str, Any]:
        """All warehouses holding a product, with totals"""
        result = await self.db.execute(
            select(StockRecord)
            .where(StockRecord.product_id == product_id)
            .order_by(StockRecord.warehouse_id)
            .execution_options(populate_existing=True)
        )
        records = list(result.scalars().all())
        return {
            "product_id": product_id,
            "total_quantity": sum(r.quantity for r in records),
            "total_reserved": sum(r.reserved_quantity for r in records),
            "total_available": sum(r.available_quantity for r in records),
            "by_warehouse": records,
        }

    async def get_record_history(self, stock_record_id: int) -> List[StockRecordHistory]:
        if not await self.get_stock_record_by_id(stock_record_id):
            raise NotFoundError("Stock record not found", stock_record_id=stock_record_id)
        result = await self.db.execute(
            select(StockRecordHistory)
            .where(StockRecordHistory.stock_record_id == stock_record_id)
            .order_by(StockRecordHistory.id)
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Non-quantity maintenance
    # ------------------------------------------------------------------

    async def update_stock_record(self, stock_record_id: int, data: StockRecordUpdate, current_user_id: Optional[int]) -> StockRecord:
        record = await self.get_stock_record_by_id(stock_record_id)
        if not record:
            raise NotFoundError("Stock record not found", stock_record_id=stock_record_id)

        async def _update():
            locked = await lock_stock_record(self.db, record.product_id, record.warehouse_id)
            if locked is None:
                raise NotFoundError("Stock record not found", stock_record_id=stock_record_id)
            for field, value in data.dict(exclude_unset=True).items():
                setattr(locked, field, value)
            stock_record_manager.recompute(locked)
            locked.updated_by = current_user_id
            await self.db.flush()
            return locked

        return await self.transaction.run([record.key], _update)

    async def delete_stock_record(self, stock_record_id: int, current_user_id: Optional[int]) -> None:
        record = await self.get_stock_record_by_id(stock_record_id)
        if not record:
            raise NotFoundError("Stock record not found", stock_record_id=stock_record_id)

        async def _delete():
            locked = await lock_stock_record(self.db, record.product_id, record.warehouse_id)
            if locked is None:
                raise NotFoundError("Stock record not found", stock_record_id=stock_record_id)
            if locked.quantity > 0:
                raise ValidationError(
                    "Stock record still holds stock and cannot be deleted",
                    stock_record_id=stock_record_id,
                    quantity=locked.quantity,
                )
            await self.db.delete(locked)
            await self.db.flush()
            logger.info(f"🗑️ Stock record {stock_record_id} deleted by {current_user_id}")

        await self.transaction.run([record.key], _delete)

    # ------------------------------------------------------------------
    # Quantity operations
    # ------------------------------------------------------------------

    async def receive_stock(
        self,
        product_id: int,
        warehouse_id: int,
        quantity: int,
        current_user_id: Optional[int],
        unit_cost: Optional[Decimal] = None,
        batch_number: Optional[str] = None,
        lot_number: Optional[str] = None,
        expiry_date=None,
        reference_type: Optional[ReferenceType] = ReferenceType.PURCHASE_ORDER,
        reference_id: Optional[int] = None,
        reference_number: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Tuple[StockRecord, StockMovement]:
        """Book goods into a warehouse, creating the stock record on first receipt"""
        if quantity <= 0:
            raise ValidationError("Received quantity must be positive")
        product = await self._require_product(product_id)
        await self._require_warehouse(warehouse_id)

        async def _receive():
            record = await lock_stock_record(self.db, product_id, warehouse_id)
            if record is None:
                record = await self._create_record(product, warehouse_id, current_user_id, unit_cost)

            cost = unit_cost if unit_cost is not None else (record.unit_cost or product.unit_cost)
            on_hand = record.quantity

            movement = StockMovement(
                product_id=product_id,
                to_warehouse_id=warehouse_id,
                movement_type=StockMovementType.INBOUND,
                reason=MovementReason.PURCHASE_ORDER,
                quantity=quantity,
                before_quantity=record.quantity,
                after_quantity=record.quantity + quantity,
                unit_cost=cost,
                batch_number=batch_number,
                lot_number=lot_number,
                expiry_date=expiry_date,
                reference_type=reference_type,
                reference_id=reference_id,
                reference_number=reference_number,
                notes=notes,
                processed_by=current_user_id,
                created_by=current_user_id,
                updated_by=current_user_id,
            )
            movement = await self.ledger.append(movement, record)
            if movement.status != MovementStatus.COMPLETED:
                return record, movement

            stock_record_manager.apply_receipt(
                record,
                on_hand,
                quantity,
                unit_cost=movement.unit_cost,
                batch_number=batch_number,
                lot_number=lot_number,
                expiry_date=expiry_date,
                received_at=utc_now(),
            )
            record.updated_by = current_user_id
            await self.db.flush()
            return record, movement

        record, movement = await self.transaction.run([(product_id, warehouse_id)], _receive)
        logger.info(f"📥 Received {quantity} of product {product_id} into warehouse {warehouse_id} ({movement.status.value})")
        return record, movement

    async def adjust_stock(
        self,
        product_id: int,
        warehouse_id: int,
        new_quantity: int,
        reason: MovementReason,
        actor_id: Optional[int],
        movement_type: StockMovementType = StockMovementType.ADJUSTMENT,
        require_immediate: bool = False,
        notes: Optional[str] = None,
    ) -> StockRecord:
        """Set a record to an absolute quantity through the ledger.

        The returned record is unchanged when the movement is held for approval.
        """
        if new_quantity < 0:
            raise ValidationError("Stock quantity cannot be negative", new_quantity=new_quantity)

        async def _adjust():
            record = await lock_stock_record(self.db, product_id, warehouse_id)
            if record is None:
                raise RecordNotFound(product_id, warehouse_id)
            if new_quantity < record.reserved_quantity:
                raise InsufficientAvailable(record.quantity - new_quantity, record.available_quantity, record.id)

            delta = new_quantity - record.quantity
            if delta == 0:
                return record

            await self._append_adjustment(record, delta, reason, movement_type, actor_id, require_immediate, notes)
            return record

        return await self.transaction.run([(product_id, warehouse_id)], _adjust)

    async def adjust_stock_by(
        self,
        product_id: int,
        warehouse_id: int,
        delta: int,
        reason: MovementReason,
        actor_id: Optional[int],
        movement_type: StockMovementType = StockMovementType.ADJUSTMENT,
        require_immediate: bool = False,
        notes: Optional[str] = None,
    ) -> Tuple[StockRecord, Optional[StockMovement]]:
        """Relative change; a decrement past the unreserved stock is clamped with a warning"""
        if delta == 0:
            raise ValidationError("Adjustment delta cannot be zero")

        async def _adjust_by():
            record = await lock_stock_record(self.db, product_id, warehouse_id)
            if record is None:
                raise RecordNotFound(product_id, warehouse_id)

            target = stock_record_manager.clamp_target(record, delta)
            if target == record.quantity:
                return record, None

            movement = await self._append_adjustment(
                record, target - record.quantity, reason, movement_type, actor_id, require_immediate, notes
            )
            return record, movement

        return await self.transaction.run([(product_id, warehouse_id)], _adjust_by)

    async def write_off_stock(
        self,
        product_id: int,
        warehouse_id: int,
        quantity: int,
        condition: QualityStatus,
        actor_id: Optional[int],
        notes: Optional[str] = None,
    ) -> Tuple[StockRecord, Optional[StockMovement]]:
        """Remove damaged or expired goods; always goes through approval"""
        if condition == QualityStatus.EXPIRED:
            movement_type, reason = StockMovementType.EXPIRED, MovementReason.EXPIRED_GOODS
        elif condition == QualityStatus.DAMAGED:
            movement_type, reason = StockMovementType.DAMAGED, MovementReason.DAMAGED_GOODS
        else:
            raise ValidationError("Write-offs are for damaged or expired goods", condition=condition.value)

        return await self.adjust_stock_by(
            product_id, warehouse_id, -quantity, reason, actor_id, movement_type=movement_type, notes=notes
        )

    async def _append_adjustment(
        self,
        record: StockRecord,
        delta: int,
        reason: MovementReason,
        movement_type: StockMovementType,
        actor_id: Optional[int],
        require_immediate: bool,
        notes: Optional[str],
    ) -> StockMovement:
        movement = StockMovement(
            product_id=record.product_id,
            from_warehouse_id=record.warehouse_id if delta < 0 else None,
            to_warehouse_id=record.warehouse_id if delta > 0 else None,
            movement_type=movement_type,
            reason=reason,
            quantity=delta,
            before_quantity=record.quantity,
            after_quantity=record.quantity + delta,
            unit_cost=record.unit_cost,
            batch_number=record.batch_number,
            lot_number=record.lot_number,
            expiry_date=record.expiry_date,
            reference_type=ReferenceType.ADJUSTMENT,
            notes=notes,
            processed_by=actor_id,
            created_by=actor_id,
            updated_by=actor_id,
        )
        if require_immediate and self.ledger.needs_approval(movement):
            raise ApprovalRequired(
                product_id=record.product_id,
                warehouse_id=record.warehouse_id,
                quantity=delta,
            )

        movement = await self.ledger.append(movement, record)
        if movement.status == MovementStatus.COMPLETED:
            record.updated_by = actor_id
        return movement

    async def reserve_stock(self, product_id: int, warehouse_id: int, quantity: int, actor_id: Optional[int]) -> StockRecord:
        """Promise units without moving them; no ledger entry is written"""

        async def _reserve():
            record = await lock_stock_record(self.db, product_id, warehouse_id)
            if record is None:
                raise RecordNotFound(product_id, warehouse_id)
            stock_record_manager.reserve(record, quantity)
            record.updated_by = actor_id
            await self.db.flush()
            return record

        record = await self.transaction.run([(product_id, warehouse_id)], _reserve)
        logger.info(f"🔖 Reserved {quantity} of product {product_id} in warehouse {warehouse_id}")
        return record

    async def release_reservation(self, product_id: int, warehouse_id: int, quantity: int, actor_id: Optional[int]) -> StockRecord:

        async def _release():
            record = await lock_stock_record(self.db, product_id, warehouse_id)
            if record is None:
                raise RecordNotFound(product_id, warehouse_id)
            stock_record_manager.release_reservation(record, quantity)
            record.updated_by = actor_id
            await self.db.flush()
            return record

        record = await self.transaction.run([(product_id, warehouse_id)], _release)
        logger.info(f"🔓 Released {quantity} of product {product_id} in warehouse {warehouse_id}")
        return record

    async def transfer_stock(
        self,
        product_id: int,
        from_warehouse_id: int,
        to_warehouse_id: int,
        quantity: int,
        actor_id: Optional[int],
        notes: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Move units between warehouses as one unit of work"""
        if quantity <= 0:
            raise ValidationError("Transfer quantity must be positive")
        if from_warehouse_id == to_warehouse_id:
            raise ValidationError("Source and destination warehouses must differ")
        product = await self._require_product(product_id)
        await self._require_warehouse(to_warehouse_id)

        async def _transfer():
            source = await lock_stock_record(self.db, product_id, from_warehouse_id)
            if source is None:
                raise RecordNotFound(product_id, from_warehouse_id)
            if quantity > source.available_quantity:
                raise InsufficientAvailable(quantity, source.available_quantity, source.id)

            destination = await lock_stock_record(self.db, product_id, to_warehouse_id)
            if destination is None:
                destination = await self._create_record(product, to_warehouse_id, actor_id, source.unit_cost)
                destination.batch_number = source.batch_number
                destination.lot_number = source.lot_number
                destination.expiry_date = source.expiry_date
                destination.quality_status = source.quality_status

            common = dict(
                product_id=product_id,
                from_warehouse_id=from_warehouse_id,
                to_warehouse_id=to_warehouse_id,
                movement_type=StockMovementType.TRANSFER,
                reason=MovementReason.TRANSFER_ORDER,
                unit_cost=source.unit_cost,
                batch_number=source.batch_number,
                lot_number=source.lot_number,
                expiry_date=source.expiry_date,
                reference_type=ReferenceType.TRANSFER_ORDER,
                notes=notes,
                processed_by=actor_id,
                created_by=actor_id,
                updated_by=actor_id,
            )
            outgoing = await self.ledger.append(
                StockMovement(
                    quantity=-quantity,
                    before_quantity=source.quantity,
                    after_quantity=source.quantity - quantity,
                    **common,
                ),
                source,
                require_approval=False,
            )
            incoming = await self.ledger.append(
                StockMovement(
                    quantity=quantity,
                    before_quantity=destination.quantity,
                    after_quantity=destination.quantity + quantity,
                    reference_id=outgoing.id,
                    **common,
                ),
                destination,
                require_approval=False,
            )
            source.updated_by = actor_id
            destination.updated_by = actor_id
            await self.db.flush()
            return {
                "source": source,
                "destination": destination,
                "movement_ids": [outgoing.id, incoming.id],
            }

        result = await self.transaction.run(
            [(product_id, from_warehouse_id), (product_id, to_warehouse_id)], _transfer
        )
        logger.info(f"🚚 Transferred {quantity} of product {product_id} from {from_warehouse_id} to {to_warehouse_id}")
        return result

    async def perform_stock_take(
        self,
        warehouse_id: int,
        counts: List[StockCountLine],
        actor_id: Optional[int],
        notes: Optional[str] = None,
    ) -> StockTakeResult:
        """Reconcile counted quantities, writing a cycle count entry per discrepancy"""
        await self._require_warehouse(warehouse_id)
        product_ids = [line.product_id for line in counts]
        if len(set(product_ids)) != len(product_ids):
            raise ValidationError("Each product may be counted only once per stock take")

        async def _stock_take():
            discrepancies = []
            for line in counts:
                record = await lock_stock_record(self.db, line.product_id, warehouse_id)
                if record is None:
                    raise RecordNotFound(line.product_id, warehouse_id)
                difference = line.counted_quantity - record.quantity
                if difference == 0:
                    continue
                if line.counted_quantity < record.reserved_quantity:
                    raise InsufficientAvailable(-difference, record.available_quantity, record.id)

                expected = record.quantity
                movement = StockMovement(
                    product_id=line.product_id,
                    from_warehouse_id=warehouse_id if difference < 0 else None,
                    to_warehouse_id=warehouse_id if difference > 0 else None,
                    movement_type=StockMovementType.CYCLE_COUNT,
                    reason=MovementReason.CYCLE_COUNT,
                    quantity=difference,
                    before_quantity=expected,
                    after_quantity=line.counted_quantity,
                    unit_cost=record.unit_cost,
                    reference_type=ReferenceType.ADJUSTMENT,
                    notes=notes,
                    processed_by=actor_id,
                    created_by=actor_id,
                    updated_by=actor_id,
                )
                movement = await self.ledger.append(movement, record)
                discrepancies.append(
                    StockTakeDiscrepancy(
                        product_id=line.product_id,
                        stock_record_id=record.id,
                        expected_quantity=expected,
                        counted_quantity=line.counted_quantity,
                        difference=difference,
                        movement_id=movement.id,
                        movement_status=movement.status.value,
                    )
                )
            return StockTakeResult(warehouse_id=warehouse_id, counted_lines=len(counts), discrepancies=discrepancies)

        result = await self.transaction.run([(pid, warehouse_id) for pid in product_ids], _stock_take)
        logger.info(f"📋 Stock take in warehouse {warehouse_id}: {len(result.discrepancies)} discrepancies")
        return result

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _create_record(
        self,
        product: Product,
        warehouse_id: int,
        actor_id: Optional[int],
        unit_cost: Optional[Decimal] = None,
    ) -> StockRecord:
        record = StockRecord(
            product_id=product.id,
            warehouse_id=warehouse_id,
            quantity=0,
            reserved_quantity=0,
            available_quantity=0,
            unit_cost=unit_cost if unit_cost is not None else (product.unit_cost or 0),
            minimum_quantity=product.minimum_stock_level or 0,
            quality_status=QualityStatus.GOOD,
            received_at=utc_now(),
            created_by=actor_id,
            updated_by=actor_id,
        )
        stock_record_manager.recompute(record)
        self.db.add(record)
        await self.db.flush()
        logger.info(f"🆕 Stock record {record.id} created for product {product.id} in warehouse {warehouse_id}")
        return record

    async def _require_product(self, product_id: int) -> Product:
        result = await self.db.execute(select(Product).where(Product.id == product_id))
        product = result.scalar_one_or_none()
        if not product:
            raise NotFoundError("Product not found", product_id=product_id)
        return product

    async def _require_warehouse(self, warehouse_id: int) -> Warehouse:
        result = await self.db.execute(select(Warehouse).where(Warehouse.id == warehouse_id))
        warehouse = result.scalar_one_or_none()
        if not warehouse:
            raise NotFoundError("Warehouse not found", warehouse_id=warehouse_id)
        return warehouse

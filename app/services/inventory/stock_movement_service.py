import logging
from typing import List, Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload
from sqlalchemy import and_, or_, asc, desc, func
from app.core.config import settings
from app.core.exceptions import (
    AlreadyApproved,
    InsufficientAvailable,
    InvalidLedgerEntry,
    InvalidMovementState,
    NotFoundError,
    RecordNotFound,
    ValidationError,
)
from app.models.inventory.stock_movement import StockMovement
from app.models.inventory.stock_record import StockRecord
from app.models.inventory.stock_record_history import StockRecordHistory
from app.models.shared.enums import (
    APPROVAL_MOVEMENT_TYPES,
    APPROVAL_REASONS,
    THRESHOLD_EXEMPT_REASONS,
    MovementReason,
    MovementStatus,
    ReferenceType,
    StockMovementType,
)
from app.schemas.inventory.inventory_response import MovementSummaryResponse
from app.schemas.inventory.stock_movement import StockMovementFilter
from app.services.inventory import stock_record_manager
from app.services.inventory.stock_transaction import StockTransaction, lock_stock_record, lock_stock_record_by_id
from app.utils.date_utils import day_after, day_start, utc_now

logger = logging.getLogger(__name__)
ledger_logger = logging.getLogger("ledger")


def is_receipt(movement: StockMovement) -> bool:
    return (
        movement.movement_type == StockMovementType.INBOUND
        and movement.reason == MovementReason.PURCHASE_ORDER
    )


class StockMovementService:
    """Append-only movement ledger.

    Completed entries already changed their stock record; pending entries are
    held until ``approve_movement`` applies them.
    """

    def __init__(self, db: AsyncSession, approval_threshold: Optional[int] = None):
        self.db = db
        self.approval_threshold = (
            settings.MOVEMENT_APPROVAL_THRESHOLD if approval_threshold is None else approval_threshold
        )

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    def needs_approval(self, movement: StockMovement) -> bool:
        if movement.movement_type in APPROVAL_MOVEMENT_TYPES:
            return True
        if movement.reason in APPROVAL_REASONS:
            return True
        if movement.reason in THRESHOLD_EXEMPT_REASONS:
            return False
        return abs(movement.after_quantity - movement.before_quantity) > self.approval_threshold

    @staticmethod
    def validate_entry(movement: StockMovement) -> None:
        if movement.quantity is None or movement.before_quantity is None or movement.after_quantity is None:
            raise InvalidLedgerEntry("Movement quantity and snapshot are required")
        if movement.quantity == 0:
            raise InvalidLedgerEntry("Movement quantity cannot be zero")
        if movement.after_quantity - movement.before_quantity != movement.quantity:
            raise InvalidLedgerEntry(
                "after_quantity - before_quantity must equal quantity",
                before_quantity=movement.before_quantity,
                after_quantity=movement.after_quantity,
                quantity=movement.quantity,
            )
        if movement.before_quantity < 0 or movement.after_quantity < 0:
            raise InvalidLedgerEntry("Movement snapshot cannot be negative")

    # ------------------------------------------------------------------
    # Writes (callers hold the stock record's lock)
    # ------------------------------------------------------------------

    async def append(
        self,
        movement: StockMovement,
        record: Optional[StockRecord] = None,
        require_approval: bool = True,
    ) -> StockMovement:
        """Validate and write one entry; completed entries are applied to ``record``."""
        self.validate_entry(movement)

        if record is not None:
            if movement.before_quantity != record.quantity:
                raise InvalidLedgerEntry(
                    "Movement snapshot does not match the stock record",
                    stock_record_id=record.id,
                    before_quantity=movement.before_quantity,
                    record_quantity=record.quantity,
                )
            movement.stock_record_id = record.id

        if movement.unit_cost is not None:
            movement.total_cost = movement.unit_cost * abs(movement.quantity)
        if movement.processed_at is None:
            movement.processed_at = utc_now()

        if require_approval and self.needs_approval(movement):
            movement.status = MovementStatus.PENDING
            self.db.add(movement)
            await self.db.flush()
            ledger_logger.info(
                f"⏳ Movement {movement.id} pending approval: {movement.movement_type.value}/"
                f"{movement.reason.value} {movement.quantity:+d} on product {movement.product_id}"
            )
            return movement

        change = None
        if record is not None:
            change = stock_record_manager.apply_delta(record, movement.quantity, movement.reason)
            stock_record_manager.check_invariants(record)

        movement.status = MovementStatus.COMPLETED
        self.db.add(movement)
        await self.db.flush()

        if record is not None:
            self._record_history(record, movement, change)
            await self.db.flush()

        ledger_logger.info(
            f"📒 Movement {movement.id} completed: {movement.movement_type.value}/{movement.reason.value} "
            f"{movement.before_quantity} -> {movement.after_quantity} on product {movement.product_id}"
        )
        return movement

    def _record_history(self, record: StockRecord, movement: StockMovement, change: Dict[str, Any]) -> None:
        self.db.add(
            StockRecordHistory(
                stock_record_id=record.id,
                movement_id=movement.id,
                change=change["delta"],
                reason=movement.reason.value,
                previous_quantity=change["old_quantity"],
                new_quantity=change["new_quantity"],
                created_by=movement.processed_by,
            )
        )

    # ------------------------------------------------------------------
    # Approval workflow
    # ------------------------------------------------------------------

    async def approve_movement(self, movement_id: int, approver_id: Optional[int]) -> StockMovement:
        """Complete a pending entry and apply its withheld change atomically."""
        movement = await self._get_existing(movement_id)
        await StockTransaction(self.db).run(
            [(movement.product_id, movement.warehouse_id)],
            self._approve_locked,
            movement_id,
            approver_id,
        )
        return await self.get_movement_by_id(movement_id)

    async def _approve_locked(self, movement_id: int, approver_id: Optional[int]) -> StockMovement:
        movement = await self._lock_movement(movement_id)
        if movement.status == MovementStatus.COMPLETED:
            raise AlreadyApproved(movement_id)
        if movement.status != MovementStatus.PENDING:
            raise InvalidMovementState(movement_id, movement.status.value, "approve")

        record = None
        if movement.stock_record_id is not None:
            record = await lock_stock_record_by_id(self.db, movement.stock_record_id)
        if record is None:
            record = await lock_stock_record(self.db, movement.product_id, movement.warehouse_id)
        if record is None:
            raise RecordNotFound(movement.product_id, movement.warehouse_id)

        try:
            change = stock_record_manager.apply_delta(record, movement.quantity, movement.reason)
        except InsufficientAvailable:
            ledger_logger.warning(
                f"⚠️ Movement {movement_id} cannot be applied to stock record {record.id} "
                f"(quantity={record.quantity}, reserved={record.reserved_quantity}); left pending"
            )
            raise

        if is_receipt(movement):
            stock_record_manager.apply_receipt(
                record,
                change["old_quantity"],
                movement.quantity,
                unit_cost=movement.unit_cost,
                batch_number=movement.batch_number,
                lot_number=movement.lot_number,
                expiry_date=movement.expiry_date,
                received_at=utc_now(),
            )
            record.updated_by = approver_id
        stock_record_manager.check_invariants(record)

        movement.before_quantity = change["old_quantity"]
        movement.after_quantity = change["new_quantity"]
        movement.stock_record_id = record.id
        movement.status = MovementStatus.COMPLETED
        movement.approved_by = approver_id
        movement.approved_at = utc_now()
        movement.updated_by = approver_id
        await self.db.flush()

        self._record_history(record, movement, change)
        await self.db.flush()

        ledger_logger.info(
            f"✅ Movement {movement_id} approved by {approver_id}: "
            f"{movement.before_quantity} -> {movement.after_quantity} on stock record {record.id}"
        )
        return movement

    async def reject_movement(self, movement_id: int, actor_id: Optional[int], notes: Optional[str] = None) -> StockMovement:
        movement = await self._get_existing(movement_id)
        await StockTransaction(self.db).run(
            [(movement.product_id, movement.warehouse_id)],
            self._reject_locked,
            movement_id,
            actor_id,
            notes,
        )
        return await self.get_movement_by_id(movement_id)

    async def _reject_locked(self, movement_id: int, actor_id: Optional[int], notes: Optional[str]) -> StockMovement:
        movement = await self._lock_movement(movement_id)
        if movement.status == MovementStatus.COMPLETED:
            raise AlreadyApproved(movement_id)
        if movement.status != MovementStatus.PENDING:
            raise InvalidMovementState(movement_id, movement.status.value, "reject")

        unused_record = None
        if is_receipt(movement) and movement.stock_record_id is not None:
            unused_record = await self._unused_record(movement)
            if unused_record is not None:
                movement.stock_record_id = None

        movement.status = MovementStatus.CANCELLED
        movement.updated_by = actor_id
        if notes:
            movement.notes = f"{movement.notes}\n{notes}" if movement.notes else notes
        await self.db.flush()

        if unused_record is not None:
            await self.db.delete(unused_record)
            await self.db.flush()
            logger.info(f"🗑️ Stock record {unused_record.id} removed with rejected receipt {movement_id}")

        ledger_logger.info(f"🚫 Movement {movement_id} rejected by {actor_id}")
        return movement

    async def _unused_record(self, movement: StockMovement) -> Optional[StockRecord]:
        """The empty record a first receipt created, if nothing else has used it"""
        record = await lock_stock_record_by_id(self.db, movement.stock_record_id)
        if record is None or record.quantity or record.reserved_quantity:
            return None
        others = await self.db.execute(
            select(func.count(StockMovement.id)).where(and_(
                StockMovement.stock_record_id == record.id,
                StockMovement.id != movement.id,
            ))
        )
        if others.scalar():
            return None
        return record

    async def reverse_movement(self, movement_id: int, actor_id: Optional[int], notes: Optional[str] = None) -> StockMovement:
        """Append a correction entry that undoes a completed movement."""
        movement = await self._get_existing(movement_id)
        correction = await StockTransaction(self.db).run(
            [(movement.product_id, movement.warehouse_id)],
            self._reverse_locked,
            movement_id,
            actor_id,
            notes,
        )
        return await self.get_movement_by_id(correction.id)

    async def _reverse_locked(self, movement_id: int, actor_id: Optional[int], notes: Optional[str]) -> StockMovement:
        original = await self._lock_movement(movement_id)
        if original.status != MovementStatus.COMPLETED:
            raise InvalidMovementState(movement_id, original.status.value, "reverse")
        if original.reason in THRESHOLD_EXEMPT_REASONS:
            # Order and transfer entries are undone through their source document
            raise ValidationError(
                f"Stock movement {movement_id} belongs to a {original.reason.value} and cannot be reversed directly",
                movement_id=movement_id,
                reason=original.reason.value,
                reference_type=original.reference_type.value if original.reference_type else None,
                reference_id=original.reference_id,
            )

        existing = await self.db.execute(
            select(func.count(StockMovement.id)).where(and_(
                StockMovement.reference_type == ReferenceType.STOCK_MOVEMENT,
                StockMovement.reference_id == movement_id,
                StockMovement.status.in_([MovementStatus.PENDING, MovementStatus.COMPLETED]),
            ))
        )
        if existing.scalar():
            raise ValidationError(f"Stock movement {movement_id} already has a correction", movement_id=movement_id)

        record = None
        if original.stock_record_id is not None:
            record = await lock_stock_record_by_id(self.db, original.stock_record_id)
        if record is None:
            raise RecordNotFound(original.product_id, original.warehouse_id)

        delta = -original.quantity
        if delta < 0 and -delta > record.available_quantity:
            raise InsufficientAvailable(-delta, record.available_quantity, record.id)

        correction = StockMovement(
            product_id=original.product_id,
            from_warehouse_id=record.warehouse_id if delta < 0 else None,
            to_warehouse_id=record.warehouse_id if delta > 0 else None,
            movement_type=StockMovementType.ADJUSTMENT,
            reason=MovementReason.CORRECTION,
            quantity=delta,
            before_quantity=record.quantity,
            after_quantity=record.quantity + delta,
            unit_cost=original.unit_cost,
            batch_number=original.batch_number,
            lot_number=original.lot_number,
            expiry_date=original.expiry_date,
            reference_type=ReferenceType.STOCK_MOVEMENT,
            reference_id=original.id,
            notes=notes or f"Correction of movement {original.id}",
            processed_by=actor_id,
            created_by=actor_id,
            updated_by=actor_id,
        )
        return await self.append(correction, record)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _filter_conditions(self, filters: StockMovementFilter) -> list:
        conditions = []

        if filters.product_id:
            conditions.append(StockMovement.product_id == filters.product_id)

        if filters.warehouse_id:
            conditions.append(or_(
                StockMovement.from_warehouse_id == filters.warehouse_id,
                StockMovement.to_warehouse_id == filters.warehouse_id,
            ))

        if filters.movement_type:
            conditions.append(StockMovement.movement_type == filters.movement_type)

        if filters.reason:
            conditions.append(StockMovement.reason == filters.reason)

        if filters.status:
            conditions.append(StockMovement.status == filters.status)

        if filters.reference_type:
            conditions.append(StockMovement.reference_type == filters.reference_type)

        if filters.reference_id:
            conditions.append(StockMovement.reference_id == filters.reference_id)

        if filters.start_date:
            conditions.append(StockMovement.processed_at >= day_start(filters.start_date))

        if filters.end_date:
            conditions.append(StockMovement.processed_at < day_after(filters.end_date))

        return conditions

    async def get_movements(
        self,
        filters: Optional[StockMovementFilter] = None,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> List[StockMovement]:
        """Movements matching ``filters``, oldest first unless ``newest_first``"""
        filters = filters or StockMovementFilter()
        query = select(StockMovement).options(
            selectinload(StockMovement.processor),
            selectinload(StockMovement.approver),
        )

        conditions = self._filter_conditions(filters)
        if conditions:
            query = query.where(and_(*conditions))

        order = desc if filters.newest_first else asc
        query = query.order_by(order(StockMovement.processed_at), order(StockMovement.id))

        if skip:
            query = query.offset(skip)
        if limit is not None:
            query = query.limit(limit)

        result = await self.db.execute(query.execution_options(populate_existing=True))
        return list(result.scalars().all())

    async def get_movements_page(
        self,
        filters: Optional[StockMovementFilter] = None,
        page_index: int = 1,
        page_size: int = 100,
    ) -> Dict[str, Any]:
        filters = filters or StockMovementFilter()
        count_query = select(func.count(StockMovement.id))
        conditions = self._filter_conditions(filters)
        if conditions:
            count_query = count_query.where(and_(*conditions))
        total = (await self.db.execute(count_query)).scalar() or 0

        data = await self.get_movements(filters, skip=(page_index - 1) * page_size, limit=page_size)
        return {
            "page_index": page_index,
            "page_size": page_size,
            "count": total,
            "data": data,
        }

    async def get_movement_by_id(self, movement_id: int) -> Optional[StockMovement]:
        result = await self.db.execute(
            select(StockMovement)
            .options(selectinload(StockMovement.processor), selectinload(StockMovement.approver))
            .where(StockMovement.id == movement_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_movements_by_reference(self, reference_type: ReferenceType, reference_id: int) -> List[StockMovement]:
        return await self.get_movements(
            StockMovementFilter(reference_type=reference_type, reference_id=reference_id)
        )

    async def get_pending_movements(self, warehouse_id: Optional[int] = None) -> List[StockMovement]:
        return await self.get_movements(
            StockMovementFilter(status=MovementStatus.PENDING, warehouse_id=warehouse_id)
        )

    async def get_movement_summary(
        self,
        warehouse_id: Optional[int] = None,
        start_date=None,
        end_date=None,
    ) -> MovementSummaryResponse:
        """Completed movement counts and quantities per type"""
        filters = StockMovementFilter(
            warehouse_id=warehouse_id,
            start_date=start_date,
            end_date=end_date,
            status=MovementStatus.COMPLETED,
        )
        conditions = self._filter_conditions(filters)

        result = await self.db.execute(
            select(
                StockMovement.movement_type,
                func.count(StockMovement.id).label('count'),
                func.sum(StockMovement.quantity).label('total_quantity'),
                func.sum(StockMovement.total_cost).label('total_cost'),
            )
            .where(and_(*conditions))
            .group_by(StockMovement.movement_type)
        )

        summary_by_type = {}
        total_movements = 0
        total_value = 0.0
        for row in result:
            summary_by_type[row.movement_type.value] = {
                'count': int(row.count),
                'total_quantity': float(row.total_quantity) if row.total_quantity else 0,
                'total_cost': float(row.total_cost) if row.total_cost else 0,
            }
            total_movements += int(row.count)
            total_value += float(row.total_cost) if row.total_cost else 0

        pending_conditions = self._filter_conditions(filters.copy(update={"status": MovementStatus.PENDING}))
        pending = await self.db.execute(select(func.count(StockMovement.id)).where(and_(*pending_conditions)))

        return MovementSummaryResponse(
            summary_by_type=summary_by_type,
            total_movements=total_movements,
            total_value=total_value,
            pending_movements=pending.scalar() or 0,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _get_existing(self, movement_id: int) -> StockMovement:
        movement = await self.get_movement_by_id(movement_id)
        if not movement:
            raise NotFoundError("Stock movement not found", movement_id=movement_id)
        return movement

    async def _lock_movement(self, movement_id: int) -> StockMovement:
        result = await self.db.execute(
            select(StockMovement)
            .where(StockMovement.id == movement_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        movement = result.scalar_one_or_none()
        if not movement:
            raise NotFoundError("Stock movement not found", movement_id=movement_id)
        return movement

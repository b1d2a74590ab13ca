"""Quantity arithmetic for a single stock record.

Nothing here touches the database; callers hold the record's lock and
persist the result together with the ledger entry that explains it.
"""
import logging
import warnings
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from app.core.exceptions import ClampedToZero, InsufficientAvailable, OverRelease, StockIntegrityError, ValidationError
from app.models.inventory.stock_record import StockRecord

logger = logging.getLogger(__name__)

_CENT = Decimal("0.01")


def recompute(record: StockRecord) -> StockRecord:
    """Re-derive available quantity and total cost from their inputs"""
    quantity = record.quantity or 0
    reserved = record.reserved_quantity or 0
    record.available_quantity = max(0, quantity - reserved)
    record.total_cost = (Decimal(record.unit_cost or 0) * quantity).quantize(_CENT)
    return record


def check_invariants(record: StockRecord) -> None:
    quantity = record.quantity or 0
    reserved = record.reserved_quantity or 0
    if quantity < 0 or reserved < 0 or reserved > quantity or record.available_quantity != quantity - reserved:
        raise StockIntegrityError(
            "Stock record invariant violated",
            stock_record_id=record.id,
            product_id=record.product_id,
            warehouse_id=record.warehouse_id,
            quantity=quantity,
            reserved_quantity=reserved,
            available_quantity=record.available_quantity,
        )


def reserve(record: StockRecord, quantity: int) -> StockRecord:
    if quantity <= 0:
        raise ValidationError("Reservation quantity must be positive")
    recompute(record)
    if quantity > record.available_quantity:
        raise InsufficientAvailable(quantity, record.available_quantity, record.id)

    record.reserved_quantity = (record.reserved_quantity or 0) + quantity
    return recompute(record)


def release_reservation(record: StockRecord, quantity: int) -> StockRecord:
    if quantity <= 0:
        raise ValidationError("Release quantity must be positive")
    reserved = record.reserved_quantity or 0
    if quantity > reserved:
        raise OverRelease(quantity, reserved, record.id)

    record.reserved_quantity = reserved - quantity
    return recompute(record)


def adjust_quantity(record: StockRecord, new_quantity: int, reason: Any) -> Dict[str, Any]:
    """Set on-hand quantity; returns the change for ledger emission."""
    if new_quantity < 0:
        raise ValidationError("Stock quantity cannot be negative", new_quantity=new_quantity)

    old_quantity = record.quantity or 0
    reserved = record.reserved_quantity or 0
    if new_quantity < reserved:
        raise InsufficientAvailable(old_quantity - new_quantity, max(0, old_quantity - reserved), record.id)

    record.quantity = new_quantity
    recompute(record)
    return {
        "old_quantity": old_quantity,
        "new_quantity": new_quantity,
        "delta": new_quantity - old_quantity,
        "reason": reason,
    }


def clamp_target(record: StockRecord, delta: int) -> int:
    """Resulting quantity for a relative change, clamped so nothing reserved is taken."""
    current = record.quantity or 0
    floor = record.reserved_quantity or 0
    target = current + delta
    if target >= floor:
        return target

    message = (
        f"Decrement of {-delta} on stock record {record.id} exceeds the {max(0, current - floor)} "
        f"available; clamped to {floor}"
    )
    logger.warning(f"⚠️ {message}")
    warnings.warn(message, ClampedToZero, stacklevel=3)
    return floor


def apply_delta(record: StockRecord, delta: int, reason: Any) -> Dict[str, Any]:
    """Apply a signed change that must fit exactly."""
    current = record.quantity or 0
    available = max(0, current - (record.reserved_quantity or 0))
    if delta < 0 and -delta > available:
        raise InsufficientAvailable(-delta, available, record.id)
    return adjust_quantity(record, current + delta, reason)


def apply_receipt(
    record: StockRecord,
    previous_quantity: int,
    received_quantity: int,
    unit_cost: Optional[Decimal] = None,
    batch_number: Optional[str] = None,
    lot_number: Optional[str] = None,
    expiry_date: Optional[date] = None,
    received_at: Optional[datetime] = None,
) -> StockRecord:
    """Fold a receipt's cost and lot data into a record whose quantity already includes it.

    Unit cost becomes the weighted average of the ``previous_quantity`` on hand
    and what arrived.
    """
    if unit_cost is not None and previous_quantity > 0:
        on_hand_value = Decimal(record.unit_cost or 0) * previous_quantity
        record.unit_cost = (
            (on_hand_value + Decimal(unit_cost) * received_quantity) / (previous_quantity + received_quantity)
        ).quantize(_CENT)
    elif unit_cost is not None:
        record.unit_cost = unit_cost
    if batch_number:
        record.batch_number = batch_number
    if lot_number:
        record.lot_number = lot_number
    if expiry_date:
        record.expiry_date = expiry_date
    if received_at is not None:
        record.received_at = received_at
    return recompute(record)

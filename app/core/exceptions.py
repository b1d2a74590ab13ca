from typing import Any, Dict, Optional
from fastapi import HTTPException, status


class BaseAppException(HTTPException):
    """Base for every error the service raises on purpose.

    ``context`` carries the structured fields (ids, quantities) that the
    exception handler renders next to ``detail``.
    """

    def __init__(self, status_code: int, detail: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(status_code=status_code, detail=detail)
        self.context = context or {}

    @property
    def error_code(self) -> str:
        return type(self).__name__

    def __str__(self) -> str:
        return self.detail


class ValidationError(BaseAppException):
    def __init__(self, detail: str = "Validation error", **context):
        super().__init__(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail, context=context)


class NotFoundError(BaseAppException):
    def __init__(self, detail: str = "Resource not found", **context):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail, context=context)


class RecordNotFound(NotFoundError):
    def __init__(self, product_id: int, warehouse_id: int):
        super().__init__(
            f"No stock record for product {product_id} in warehouse {warehouse_id}",
            product_id=product_id,
            warehouse_id=warehouse_id,
        )


# === Stock errors ===

class InsufficientStockError(BaseAppException):
    def __init__(self, detail: str = "Insufficient stock available", **context):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail, context=context)


class InsufficientAvailable(InsufficientStockError):
    """A single stock record cannot cover the requested quantity."""

    def __init__(self, requested: int, available: int, stock_record_id: Optional[int] = None):
        super().__init__(
            f"Requested {requested} but only {available} available",
            requested=requested,
            available=available,
            stock_record_id=stock_record_id,
        )
        self.requested = requested
        self.available = available


class InsufficientInventory(InsufficientStockError):
    """An order line cannot be satisfied across all warehouses."""

    def __init__(self, product_id: int, line_index: int, requested: int, available: int):
        super().__init__(
            f"Insufficient inventory for product {product_id} (line {line_index}): "
            f"requested {requested}, available {available}",
            product_id=product_id,
            line_index=line_index,
            requested=requested,
            available=available,
        )
        self.product_id = product_id
        self.line_index = line_index
        self.requested = requested
        self.available = available


class OverRelease(BaseAppException):
    def __init__(self, requested: int, reserved: int, stock_record_id: Optional[int] = None):
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Cannot release {requested}; only {reserved} reserved",
            context={"requested": requested, "reserved": reserved, "stock_record_id": stock_record_id},
        )


class StockIntegrityError(BaseAppException):
    def __init__(self, detail: str, **context):
        super().__init__(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail, context=context)


class ConcurrentModification(BaseAppException):
    """Version conflict on a stock record; safe to retry."""

    retryable = True

    def __init__(self, detail: str = "Stock record was modified concurrently", **context):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail, context=context)


# === Ledger errors ===

class InvalidLedgerEntry(BaseAppException):
    def __init__(self, detail: str = "Invalid ledger entry", **context):
        super().__init__(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail, context=context)


class ApprovalRequired(BaseAppException):
    def __init__(self, detail: str = "Movement requires approval before it can take effect", **context):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail, context=context)


class AlreadyApproved(BaseAppException):
    def __init__(self, movement_id: int):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Stock movement {movement_id} is already approved",
            context={"movement_id": movement_id},
        )


class InvalidMovementState(BaseAppException):
    def __init__(self, movement_id: int, current_status: str, action: str):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Cannot {action} stock movement {movement_id} in status {current_status}",
            context={"movement_id": movement_id, "status": current_status},
        )


class ImmutableLedgerEntry(BaseAppException):
    def __init__(self, movement_id: Optional[int], detail: str = "Completed stock movements cannot be modified"):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            context={"movement_id": movement_id},
        )


# === Warnings ===

class ClampedToZero(UserWarning):
    """A relative decrement asked for more than the record could give and was clamped."""

from pydantic import BaseModel, validator
from typing import List, Optional
from datetime import datetime, date
from decimal import Decimal

from app.models.shared.enums import QualityStatus, MovementReason, StockMovementType, ReferenceType
from app.schemas.inventory.stock_movement import StockMovementInDB


class StockRecordUpdate(BaseModel):
    """Non-quantity attributes; quantities only change through movements"""
    minimum_quantity: Optional[int] = None
    quality_status: Optional[QualityStatus] = None
    unit_cost: Optional[Decimal] = None
    batch_number: Optional[str] = None
    lot_number: Optional[str] = None
    expiry_date: Optional[date] = None

    @validator('minimum_quantity')
    def validate_minimum(cls, v):
        if v is not None and v < 0:
            raise ValueError('Minimum quantity cannot be negative')
        return v


class StockRecordInDB(BaseModel):
    id: int
    product_id: int
    warehouse_id: int
    quantity: int
    reserved_quantity: int
    available_quantity: int
    unit_cost: Optional[Decimal] = None
    total_cost: Optional[Decimal] = None
    minimum_quantity: int = 0
    quality_status: QualityStatus
    batch_number: Optional[str] = None
    lot_number: Optional[str] = None
    expiry_date: Optional[date] = None
    received_at: Optional[datetime] = None
    version: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class StockRecord(StockRecordInDB):
    pass


class StockRecordHistoryEntry(BaseModel):
    id: int
    stock_record_id: int
    movement_id: Optional[int] = None
    change: int
    reason: str
    previous_quantity: int
    new_quantity: int
    recorded_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# === Operation requests ===

class StockReceiveRequest(BaseModel):
    product_id: int
    warehouse_id: int
    quantity: int
    unit_cost: Optional[Decimal] = None
    batch_number: Optional[str] = None
    lot_number: Optional[str] = None
    expiry_date: Optional[date] = None
    reference_type: Optional[ReferenceType] = ReferenceType.PURCHASE_ORDER
    reference_id: Optional[int] = None
    reference_number: Optional[str] = None
    notes: Optional[str] = None

    @validator('quantity')
    def validate_positive_quantity(cls, v):
        if v <= 0:
            raise ValueError('Quantity must be positive')
        return v


class StockAdjustRequest(BaseModel):
    product_id: int
    warehouse_id: int
    new_quantity: int
    reason: MovementReason = MovementReason.MANUAL_ADJUSTMENT
    movement_type: StockMovementType = StockMovementType.ADJUSTMENT
    require_immediate: bool = False
    notes: Optional[str] = None


class StockAdjustByRequest(BaseModel):
    product_id: int
    warehouse_id: int
    delta: int
    reason: MovementReason = MovementReason.MANUAL_ADJUSTMENT
    movement_type: StockMovementType = StockMovementType.ADJUSTMENT
    require_immediate: bool = False
    notes: Optional[str] = None

    @validator('delta')
    def validate_non_zero(cls, v):
        if v == 0:
            raise ValueError('Delta cannot be zero')
        return v


class StockWriteOffRequest(BaseModel):
    product_id: int
    warehouse_id: int
    quantity: int
    condition: QualityStatus = QualityStatus.DAMAGED
    notes: Optional[str] = None

    @validator('quantity')
    def validate_positive_quantity(cls, v):
        if v <= 0:
            raise ValueError('Quantity must be positive')
        return v

    @validator('condition')
    def validate_condition(cls, v):
        if v not in (QualityStatus.DAMAGED, QualityStatus.EXPIRED):
            raise ValueError('Write-offs are for damaged or expired goods')
        return v


class StockReservationRequest(BaseModel):
    product_id: int
    warehouse_id: int
    quantity: int

    @validator('quantity')
    def validate_positive_quantity(cls, v):
        if v <= 0:
            raise ValueError('Quantity must be positive')
        return v


class StockTransferRequest(BaseModel):
    product_id: int
    from_warehouse_id: int
    to_warehouse_id: int
    quantity: int
    notes: Optional[str] = None

    @validator('quantity')
    def validate_positive_quantity(cls, v):
        if v <= 0:
            raise ValueError('Quantity must be positive')
        return v

    @validator('to_warehouse_id')
    def validate_different_warehouses(cls, v, values):
        if v == values.get('from_warehouse_id'):
            raise ValueError('Source and destination warehouses must differ')
        return v


class StockCountLine(BaseModel):
    product_id: int
    counted_quantity: int

    @validator('counted_quantity')
    def validate_non_negative(cls, v):
        if v < 0:
            raise ValueError('Counted quantity cannot be negative')
        return v


class StockTakeRequest(BaseModel):
    warehouse_id: int
    counts: List[StockCountLine]
    notes: Optional[str] = None


class StockTakeDiscrepancy(BaseModel):
    product_id: int
    stock_record_id: int
    expected_quantity: int
    counted_quantity: int
    difference: int
    movement_id: Optional[int] = None
    movement_status: Optional[str] = None


class StockTakeResult(BaseModel):
    warehouse_id: int
    counted_lines: int
    discrepancies: List[StockTakeDiscrepancy]


class StockTransferResult(BaseModel):
    source: StockRecord
    destination: StockRecord
    movement_ids: List[int]


class ProductStockResponse(BaseModel):
    product_id: int
    total_quantity: int
    total_reserved: int
    total_available: int
    by_warehouse: List[StockRecord]


class StockOperationResult(BaseModel):
    """Record state after an operation plus the ledger entry it wrote (pending entries leave the record untouched)"""
    stock_record: StockRecord
    movement: Optional[StockMovementInDB] = None

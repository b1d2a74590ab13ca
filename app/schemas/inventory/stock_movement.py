from pydantic import BaseModel, validator
from typing import Optional
from datetime import datetime, date
from decimal import Decimal
from app.models.shared.enums import StockMovementType, MovementReason, MovementStatus, ReferenceType


class UserRef(BaseModel):
    id: int
    username: str
    full_name: Optional[str] = None

    class Config:
        from_attributes = True


class StockMovementInDB(BaseModel):
    id: int
    product_id: int
    from_warehouse_id: Optional[int] = None
    to_warehouse_id: Optional[int] = None
    stock_record_id: Optional[int] = None
    movement_type: StockMovementType
    reason: MovementReason
    quantity: int
    before_quantity: int
    after_quantity: int
    unit_cost: Optional[Decimal] = None
    total_cost: Optional[Decimal] = None
    batch_number: Optional[str] = None
    lot_number: Optional[str] = None
    expiry_date: Optional[date] = None
    reference_type: Optional[ReferenceType] = None
    reference_id: Optional[int] = None
    reference_number: Optional[str] = None
    notes: Optional[str] = None
    status: MovementStatus
    processed_by: Optional[int] = None
    processed_at: Optional[datetime] = None
    approved_by: Optional[int] = None
    approved_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class StockMovement(StockMovementInDB):
    processor: Optional[UserRef] = None
    approver: Optional[UserRef] = None


class StockMovementFilter(BaseModel):
    product_id: Optional[int] = None
    warehouse_id: Optional[int] = None
    movement_type: Optional[StockMovementType] = None
    reason: Optional[MovementReason] = None
    status: Optional[MovementStatus] = None
    reference_type: Optional[ReferenceType] = None
    reference_id: Optional[int] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    newest_first: bool = False

    @validator('end_date')
    def validate_date_range(cls, v, values):
        start = values.get('start_date')
        if v and start and v < start:
            raise ValueError('end_date must not be before start_date')
        return v


class MovementDecision(BaseModel):
    notes: Optional[str] = None

from pydantic import BaseModel, validator
from typing import List, Optional
from decimal import Decimal


class AllocationLineItem(BaseModel):
    product_id: int
    quantity: int
    price: Optional[Decimal] = None

    @validator('quantity')
    def validate_positive_quantity(cls, v):
        if v <= 0:
            raise ValueError('Quantity must be positive')
        return v


class AllocationRequest(BaseModel):
    order_id: int
    line_items: List[AllocationLineItem]

    @validator('line_items')
    def validate_not_empty(cls, v):
        if not v:
            raise ValueError('At least one line item is required')
        return v


class AllocationDraw(BaseModel):
    line_index: int
    product_id: int
    warehouse_id: int
    stock_record_id: int
    quantity: int
    movement_id: int


class AllocationResult(BaseModel):
    allocated: bool
    order_id: int
    draws: List[AllocationDraw] = []


class CompensationRequest(BaseModel):
    line_items: Optional[List[AllocationLineItem]] = None


class CompensationRestore(BaseModel):
    product_id: int
    warehouse_id: int
    stock_record_id: int
    quantity: int
    movement_id: int
    fallback: bool = False


class CompensationResult(BaseModel):
    order_id: int
    compensated: bool
    restored: List[CompensationRestore] = []

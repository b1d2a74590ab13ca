from pydantic import BaseModel, validator
from typing import List, Optional
from datetime import datetime
from decimal import Decimal

from app.models.shared.enums import OrderStatus


class OrderItemCreate(BaseModel):
    product_id: int
    quantity: int
    price: Optional[Decimal] = None

    @validator('quantity')
    def validate_positive_quantity(cls, v):
        if v <= 0:
            raise ValueError('Quantity must be positive')
        return v


class OrderCreate(BaseModel):
    customer_name: Optional[str] = None
    notes: Optional[str] = None
    items: List[OrderItemCreate]

    @validator('items')
    def validate_items(cls, v):
        if not v:
            raise ValueError('Order must contain at least one item')
        return v


class OrderStatusUpdate(BaseModel):
    status: OrderStatus
    notes: Optional[str] = None


class OrderItem(BaseModel):
    id: int
    product_id: int
    line_index: int
    quantity: int
    price: Optional[Decimal] = None
    total: Optional[Decimal] = None

    class Config:
        from_attributes = True


class Order(BaseModel):
    id: int
    order_number: str
    status: OrderStatus
    customer_name: Optional[str] = None
    subtotal: Optional[Decimal] = None
    notes: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    items: List[OrderItem] = []

    class Config:
        from_attributes = True


class OrderStatusStats(BaseModel):
    status: OrderStatus
    count: int
    total_amount: Decimal

from pydantic import BaseModel, validator
from typing import Optional
from datetime import datetime
from decimal import Decimal


class ProductBase(BaseModel):
    sku: str
    name: str
    description: Optional[str] = None
    unit_cost: Decimal = Decimal('0.00')
    selling_price: Decimal = Decimal('0.00')
    minimum_stock_level: int = 0

    @validator('sku', 'name')
    def validate_not_blank(cls, v):
        if not v or not v.strip():
            raise ValueError('Value cannot be blank')
        return v.strip()

    @validator('unit_cost', 'selling_price')
    def validate_price(cls, v):
        if v < 0:
            raise ValueError('Price cannot be negative')
        return v

    @validator('minimum_stock_level')
    def validate_minimum_stock_level(cls, v):
        if v < 0:
            raise ValueError('Minimum stock level cannot be negative')
        return v


class ProductCreate(ProductBase):
    pass


class ProductUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    unit_cost: Optional[Decimal] = None
    selling_price: Optional[Decimal] = None
    minimum_stock_level: Optional[int] = None
    is_active: Optional[bool] = None


class Product(ProductBase):
    id: int
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

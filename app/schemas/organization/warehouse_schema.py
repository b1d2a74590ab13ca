from pydantic import BaseModel, validator
from typing import Optional
from datetime import datetime

class WarehouseBase(BaseModel):
    code: str
    name: str
    company_id: Optional[int] = None
    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    phone: Optional[str] = None

class WarehouseCreate(WarehouseBase):
    @validator('code')
    def validate_code(cls, v):
        if not v or not v.strip():
            raise ValueError('Warehouse code is required')
        return v.strip().upper()

    @validator('name')
    def validate_name(cls, v):
        if not v or len(v.strip()) < 2:
            raise ValueError('Warehouse name must be at least 2 characters')
        return v.strip()

class WarehouseUpdate(BaseModel):
    name: Optional[str] = None
    company_id: Optional[int] = None
    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    phone: Optional[str] = None
    is_active: Optional[bool] = None

class WarehouseResponse(WarehouseBase):
    id: int
    is_active: bool = None
    created_at: datetime = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

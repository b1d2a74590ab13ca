from pydantic import BaseModel
from typing import Dict, List, Optional
from datetime import date
from app.models.shared.enums import TurnoverClass
from app.schemas.inventory.stock_record import StockRecord


class MovementSummaryResponse(BaseModel):
    summary_by_type: Dict[str, Dict[str, float]]
    total_movements: Optional[int] = None
    total_value: Optional[float] = None
    pending_movements: Optional[int] = None


class LowStockItem(BaseModel):
    stock_record: StockRecord
    shortage: int


class WarehouseValuation(BaseModel):
    warehouse_id: int
    total_quantity: int
    total_value: float


class InventoryValuationResponse(BaseModel):
    total_value: float
    total_quantity: int
    by_warehouse: List[WarehouseValuation]


class ProductTurnover(BaseModel):
    product_id: int
    units_sold: int
    opening_quantity: int
    closing_quantity: int
    average_on_hand: float
    turnover_rate: float
    annualized_rate: float
    classification: TurnoverClass


class TurnoverResponse(BaseModel):
    start_date: date
    end_date: date
    products: List[ProductTurnover]


class ExpiringStockItem(BaseModel):
    stock_record: StockRecord
    days_until_expiry: int

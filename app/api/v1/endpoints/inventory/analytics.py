from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional, Dict, Any, List
from datetime import date, timedelta
from app.core.database import get_async_session
from app.schemas.inventory.inventory_response import (
    ExpiringStockItem,
    InventoryValuationResponse,
    LowStockItem,
    TurnoverResponse,
)
from app.services.inventory.stock_analytics_service import StockAnalyticsService
from app.utils.date_utils import utc_today

router = APIRouter()

@router.get("/dashboard")
async def get_inventory_dashboard(
    company_id: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_async_session)
) -> Dict[str, Any]:
    """Get comprehensive inventory dashboard data"""
    service = StockAnalyticsService(db)
    return await service.get_inventory_dashboard(company_id)

@router.get("/low-stock", response_model=List[LowStockItem])
async def get_low_stock(
    company_id: Optional[int] = Query(None),
    warehouse_id: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_async_session)
):
    """Stock records below their minimum quantity"""
    service = StockAnalyticsService(db)
    records = await service.get_low_stock(company_id, warehouse_id)
    return [
        {"stock_record": record, "shortage": record.minimum_quantity - record.quantity}
        for record in records
    ]

@router.get("/valuation", response_model=InventoryValuationResponse)
async def get_stock_valuation(
    company_id: Optional[int] = Query(None),
    warehouse_id: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_async_session)
):
    """Get current stock valuation"""
    service = StockAnalyticsService(db)
    return await service.get_total_value(company_id, warehouse_id)

@router.get("/turnover", response_model=TurnoverResponse)
async def get_turnover(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    company_id: Optional[int] = Query(None),
    warehouse_id: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_async_session)
):
    """Get inventory turnover analysis"""
    if not end_date:
        end_date = utc_today()
    if not start_date:
        start_date = end_date - timedelta(days=90)

    service = StockAnalyticsService(db)
    return await service.get_turnover(start_date, end_date, company_id, warehouse_id)

@router.get("/expiring", response_model=List[ExpiringStockItem])
async def get_expiring_stock(
    days: Optional[int] = Query(None, ge=0),
    company_id: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_async_session)
):
    """Good lots expiring soon"""
    service = StockAnalyticsService(db)
    return await service.get_expiring_stock(days, company_id)

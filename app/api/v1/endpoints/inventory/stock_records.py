from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from app.api.dependencies import get_current_actor_id
from app.core.database import get_async_session
from app.core.exceptions import NotFoundError
from app.models.shared.enums import QualityStatus
from app.schemas.common.pagination import PaginatedResponse
from app.schemas.inventory.stock_record import (
    ProductStockResponse,
    StockAdjustByRequest,
    StockAdjustRequest,
    StockOperationResult,
    StockReceiveRequest,
    StockRecord,
    StockRecordHistoryEntry,
    StockRecordUpdate,
    StockReservationRequest,
    StockTakeRequest,
    StockTakeResult,
    StockTransferRequest,
    StockTransferResult,
    StockWriteOffRequest,
)
from app.services.inventory.stock_record_service import StockRecordService

router = APIRouter()

@router.get("/", response_model=PaginatedResponse[StockRecord])
async def get_stock_records(
    page_index: int = Query(1, ge=1),
    page_size: int = Query(100, ge=1, le=1000),
    warehouse_id: Optional[int] = Query(None),
    product_id: Optional[int] = Query(None),
    quality_status: Optional[QualityStatus] = Query(None),
    low_stock_only: bool = Query(False),
    db: AsyncSession = Depends(get_async_session)
):
    """Get stock records with optional filters"""
    service = StockRecordService(db)
    result = await service.get_stock_records(
        skip=(page_index - 1) * page_size,
        limit=page_size,
        warehouse_id=warehouse_id,
        product_id=product_id,
        quality_status=quality_status,
        low_stock_only=low_stock_only,
    )
    return {"page_index": page_index, "page_size": page_size, **result}

@router.get("/product/{product_id}", response_model=ProductStockResponse)
async def get_product_stock(
    product_id: int,
    db: AsyncSession = Depends(get_async_session)
):
    """Stock of one product across all warehouses"""
    service = StockRecordService(db)
    return await service.get_product_stock(product_id)

@router.get("/{stock_record_id}", response_model=StockRecord)
async def get_stock_record(
    stock_record_id: int,
    db: AsyncSession = Depends(get_async_session)
):
    service = StockRecordService(db)
    record = await service.get_stock_record_by_id(stock_record_id)
    if not record:
        raise NotFoundError("Stock record not found", stock_record_id=stock_record_id)
    return record

@router.get("/{stock_record_id}/history", response_model=List[StockRecordHistoryEntry])
async def get_stock_record_history(
    stock_record_id: int,
    db: AsyncSession = Depends(get_async_session)
):
    """Quantity history of a stock record, oldest first"""
    service = StockRecordService(db)
    return await service.get_record_history(stock_record_id)

@router.put("/{stock_record_id}", response_model=StockRecord)
async def update_stock_record(
    stock_record_id: int,
    data: StockRecordUpdate,
    db: AsyncSession = Depends(get_async_session),
    actor_id: Optional[int] = Depends(get_current_actor_id)
):
    """Update non-quantity attributes of a stock record"""
    service = StockRecordService(db)
    return await service.update_stock_record(stock_record_id, data, actor_id)

@router.delete("/{stock_record_id}")
async def delete_stock_record(
    stock_record_id: int,
    db: AsyncSession = Depends(get_async_session),
    actor_id: Optional[int] = Depends(get_current_actor_id)
):
    service = StockRecordService(db)
    await service.delete_stock_record(stock_record_id, actor_id)
    return {"message": "Stock record deleted successfully", "success": True}

@router.post("/receive", response_model=StockOperationResult, status_code=status.HTTP_201_CREATED)
async def receive_stock(
    data: StockReceiveRequest,
    db: AsyncSession = Depends(get_async_session),
    actor_id: Optional[int] = Depends(get_current_actor_id)
):
    """Receive goods into a warehouse"""
    service = StockRecordService(db)
    record, movement = await service.receive_stock(
        data.product_id,
        data.warehouse_id,
        data.quantity,
        actor_id,
        unit_cost=data.unit_cost,
        batch_number=data.batch_number,
        lot_number=data.lot_number,
        expiry_date=data.expiry_date,
        reference_type=data.reference_type,
        reference_id=data.reference_id,
        reference_number=data.reference_number,
        notes=data.notes,
    )
    return {"stock_record": record, "movement": movement}

@router.post("/adjust", response_model=StockRecord)
async def adjust_stock(
    data: StockAdjustRequest,
    db: AsyncSession = Depends(get_async_session),
    actor_id: Optional[int] = Depends(get_current_actor_id)
):
    """Set a stock record to an absolute quantity"""
    service = StockRecordService(db)
    return await service.adjust_stock(
        data.product_id,
        data.warehouse_id,
        data.new_quantity,
        data.reason,
        actor_id,
        movement_type=data.movement_type,
        require_immediate=data.require_immediate,
        notes=data.notes,
    )

@router.post("/adjust-by", response_model=StockOperationResult)
async def adjust_stock_by(
    data: StockAdjustByRequest,
    db: AsyncSession = Depends(get_async_session),
    actor_id: Optional[int] = Depends(get_current_actor_id)
):
    """Change a stock record by a relative amount"""
    service = StockRecordService(db)
    record, movement = await service.adjust_stock_by(
        data.product_id,
        data.warehouse_id,
        data.delta,
        data.reason,
        actor_id,
        movement_type=data.movement_type,
        require_immediate=data.require_immediate,
        notes=data.notes,
    )
    return {"stock_record": record, "movement": movement}

@router.post("/write-off", response_model=StockOperationResult)
async def write_off_stock(
    data: StockWriteOffRequest,
    db: AsyncSession = Depends(get_async_session),
    actor_id: Optional[int] = Depends(get_current_actor_id)
):
    """Write off damaged or expired goods (held for approval)"""
    service = StockRecordService(db)
    record, movement = await service.write_off_stock(
        data.product_id, data.warehouse_id, data.quantity, data.condition, actor_id, notes=data.notes
    )
    return {"stock_record": record, "movement": movement}

@router.post("/reserve", response_model=StockRecord)
async def reserve_stock(
    data: StockReservationRequest,
    db: AsyncSession = Depends(get_async_session),
    actor_id: Optional[int] = Depends(get_current_actor_id)
):
    service = StockRecordService(db)
    return await service.reserve_stock(data.product_id, data.warehouse_id, data.quantity, actor_id)

@router.post("/release", response_model=StockRecord)
async def release_reservation(
    data: StockReservationRequest,
    db: AsyncSession = Depends(get_async_session),
    actor_id: Optional[int] = Depends(get_current_actor_id)
):
    service = StockRecordService(db)
    return await service.release_reservation(data.product_id, data.warehouse_id, data.quantity, actor_id)

@router.post("/transfer", response_model=StockTransferResult)
async def transfer_stock(
    data: StockTransferRequest,
    db: AsyncSession = Depends(get_async_session),
    actor_id: Optional[int] = Depends(get_current_actor_id)
):
    """Move stock between two warehouses"""
    service = StockRecordService(db)
    return await service.transfer_stock(
        data.product_id, data.from_warehouse_id, data.to_warehouse_id, data.quantity, actor_id, notes=data.notes
    )

@router.post("/stock-take", response_model=StockTakeResult)
async def perform_stock_take(
    data: StockTakeRequest,
    db: AsyncSession = Depends(get_async_session),
    actor_id: Optional[int] = Depends(get_current_actor_id)
):
    """Reconcile physical counts for a warehouse"""
    service = StockRecordService(db)
    return await service.perform_stock_take(data.warehouse_id, data.counts, actor_id, notes=data.notes)

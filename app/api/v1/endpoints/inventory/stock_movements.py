from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from datetime import date
from app.api.dependencies import get_current_actor_id, require_actor_id
from app.core.database import get_async_session
from app.core.exceptions import NotFoundError
from app.schemas.common.pagination import PaginatedResponse
from app.services.inventory.stock_movement_service import StockMovementService
from app.schemas.inventory.stock_movement import MovementDecision, StockMovement, StockMovementFilter
from app.schemas.inventory.inventory_response import MovementSummaryResponse
from app.models.shared.enums import MovementReason, MovementStatus, ReferenceType, StockMovementType

router = APIRouter()

@router.get("/", response_model=PaginatedResponse[StockMovement])
async def get_stock_movements(
    page_index: int = Query(1, ge=1),
    page_size: int = Query(100, ge=1, le=1000),
    product_id: Optional[int] = Query(None),
    warehouse_id: Optional[int] = Query(None),
    movement_type: Optional[StockMovementType] = Query(None),
    reason: Optional[MovementReason] = Query(None),
    movement_status: Optional[MovementStatus] = Query(None, alias="status"),
    reference_type: Optional[ReferenceType] = Query(None),
    reference_id: Optional[int] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    newest_first: bool = Query(False),
    db: AsyncSession = Depends(get_async_session)
):
    """Get ledger entries with optional filters"""
    filters = StockMovementFilter(
        product_id=product_id,
        warehouse_id=warehouse_id,
        movement_type=movement_type,
        reason=reason,
        status=movement_status,
        reference_type=reference_type,
        reference_id=reference_id,
        start_date=start_date,
        end_date=end_date,
        newest_first=newest_first,
    )
    service = StockMovementService(db)
    return await service.get_movements_page(filters, page_index=page_index, page_size=page_size)

@router.get("/pending", response_model=List[StockMovement])
async def get_pending_movements(
    warehouse_id: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_async_session)
):
    """Entries waiting for approval"""
    service = StockMovementService(db)
    return await service.get_pending_movements(warehouse_id)

@router.get("/summary", response_model=MovementSummaryResponse)
async def get_movement_summary(
    warehouse_id: Optional[int] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    db: AsyncSession = Depends(get_async_session)
):
    """Get movement summary statistics"""
    service = StockMovementService(db)
    return await service.get_movement_summary(warehouse_id, start_date, end_date)

@router.get("/reference/{reference_type}/{reference_id}", response_model=List[StockMovement])
async def get_movements_by_reference(
    reference_type: ReferenceType,
    reference_id: int,
    db: AsyncSession = Depends(get_async_session)
):
    """Entries written for one source document"""
    service = StockMovementService(db)
    return await service.get_movements_by_reference(reference_type, reference_id)

@router.get("/{movement_id}", response_model=StockMovement)
async def get_stock_movement(
    movement_id: int,
    db: AsyncSession = Depends(get_async_session)
):
    service = StockMovementService(db)
    movement = await service.get_movement_by_id(movement_id)
    if not movement:
        raise NotFoundError("Stock movement not found", movement_id=movement_id)
    return movement

@router.post("/{movement_id}/approve", response_model=StockMovement)
async def approve_stock_movement(
    movement_id: int,
    db: AsyncSession = Depends(get_async_session),
    actor_id: int = Depends(require_actor_id)
):
    """Approve a pending entry and apply it to its stock record"""
    service = StockMovementService(db)
    return await service.approve_movement(movement_id, actor_id)

@router.post("/{movement_id}/reject", response_model=StockMovement)
async def reject_stock_movement(
    movement_id: int,
    decision: Optional[MovementDecision] = None,
    db: AsyncSession = Depends(get_async_session),
    actor_id: int = Depends(require_actor_id)
):
    service = StockMovementService(db)
    return await service.reject_movement(movement_id, actor_id, decision.notes if decision else None)

@router.post("/{movement_id}/reverse", response_model=StockMovement)
async def reverse_stock_movement(
    movement_id: int,
    decision: Optional[MovementDecision] = None,
    db: AsyncSession = Depends(get_async_session),
    actor_id: Optional[int] = Depends(get_current_actor_id)
):
    """Write a correcting entry for a completed movement"""
    service = StockMovementService(db)
    return await service.reverse_movement(movement_id, actor_id, decision.notes if decision else None)

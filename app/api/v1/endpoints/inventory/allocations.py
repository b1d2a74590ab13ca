from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
from app.api.dependencies import get_current_actor_id
from app.core.database import get_async_session
from app.schemas.inventory.allocation import AllocationRequest, AllocationResult, CompensationRequest, CompensationResult
from app.services.inventory.allocation_service import AllocationService
from app.services.inventory.compensation_service import CompensationService

router = APIRouter()

@router.post("/", response_model=AllocationResult)
async def allocate_for_order(
    data: AllocationRequest,
    db: AsyncSession = Depends(get_async_session),
    actor_id: Optional[int] = Depends(get_current_actor_id)
):
    """Draw stock for an order's line items, all or nothing"""
    service = AllocationService(db)
    return await service.allocate_for_order(data.order_id, data.line_items, actor_id)

@router.post("/{order_id}/compensate", response_model=CompensationResult)
async def compensate_for_order(
    order_id: int,
    data: Optional[CompensationRequest] = None,
    db: AsyncSession = Depends(get_async_session),
    actor_id: Optional[int] = Depends(get_current_actor_id)
):
    """Give an order's stock back"""
    service = CompensationService(db)
    return await service.compensate_for_order(order_id, actor_id, data.line_items if data else None)

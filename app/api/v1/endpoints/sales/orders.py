from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from app.api.dependencies import get_current_actor_id
from app.core.database import get_async_session
from app.core.exceptions import NotFoundError
from app.models.shared.enums import OrderStatus
from app.schemas.common.pagination import PaginatedResponse
from app.schemas.sales.order import Order, OrderCreate, OrderStatusStats, OrderStatusUpdate
from app.services.sales.order_service import OrderService

router = APIRouter()

@router.post("/", response_model=Order, status_code=status.HTTP_201_CREATED)
async def create_order(
    order_data: OrderCreate,
    db: AsyncSession = Depends(get_async_session),
    actor_id: Optional[int] = Depends(get_current_actor_id)
):
    """Create an order; its stock is allocated immediately"""
    service = OrderService(db)
    return await service.create_order(order_data, actor_id)

@router.get("/", response_model=PaginatedResponse[Order])
async def get_orders(
    page_index: int = Query(1, ge=1),
    page_size: int = Query(100, ge=1, le=1000),
    order_status: Optional[OrderStatus] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_async_session)
):
    service = OrderService(db)
    return await service.get_orders(page_index=page_index, page_size=page_size, status=order_status)

@router.get("/stats", response_model=List[OrderStatusStats])
async def get_order_stats(
    db: AsyncSession = Depends(get_async_session)
):
    """Order count and value per status"""
    service = OrderService(db)
    return await service.get_order_stats()

@router.get("/{order_id}", response_model=Order)
async def get_order(
    order_id: int,
    db: AsyncSession = Depends(get_async_session)
):
    service = OrderService(db)
    order = await service.get_order(order_id)
    if not order:
        raise NotFoundError("Order not found", order_id=order_id)
    return order

@router.patch("/{order_id}/status", response_model=Order)
async def update_order_status(
    order_id: int,
    data: OrderStatusUpdate,
    db: AsyncSession = Depends(get_async_session),
    actor_id: Optional[int] = Depends(get_current_actor_id)
):
    """Move an order to a new status; cancelling or returning gives its stock back"""
    service = OrderService(db)
    return await service.update_status(order_id, data.status, actor_id, notes=data.notes)

@router.delete("/{order_id}")
async def delete_order(
    order_id: int,
    db: AsyncSession = Depends(get_async_session),
    actor_id: Optional[int] = Depends(get_current_actor_id)
):
    """Delete a pending order and give its stock back"""
    service = OrderService(db)
    result = await service.delete_order(order_id, actor_id)
    return {"message": "Order deleted successfully", "success": result}

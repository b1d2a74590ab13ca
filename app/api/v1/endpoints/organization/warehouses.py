from fastapi import APIRouter, Depends, Query, status
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from app.api.dependencies import get_current_actor_id
from app.core.database import get_async_session
from app.core.exceptions import NotFoundError
from app.schemas.common.pagination import PaginatedResponse
from app.services.organization.warehouse_service import WarehouseService
from app.schemas.organization.warehouse_schema import WarehouseCreate, WarehouseUpdate, WarehouseResponse

router = APIRouter()

@router.post("/", response_model=WarehouseResponse, status_code=status.HTTP_201_CREATED)
async def create_warehouse(
    warehouse: WarehouseCreate,
    session: AsyncSession = Depends(get_async_session),
    actor_id: Optional[int] = Depends(get_current_actor_id)
):
    """Create a new warehouse"""
    service = WarehouseService(session)
    return await service.create_warehouse(warehouse, actor_id)

@router.get("/", response_model=PaginatedResponse[WarehouseResponse])
async def get_warehouses(
    page_index: int = Query(1, ge=1),
    page_size: int = Query(100, ge=1, le=1000),
    company_id: Optional[int] = Query(None),
    is_active: Optional[bool] = Query(None),
    search: Optional[str] = Query(None),
    session: AsyncSession = Depends(get_async_session)
):
    """Get all warehouses with filtering"""
    service = WarehouseService(session)
    return await service.get_warehouses(
        page_index=page_index,
        page_size=page_size,
        company_id=company_id,
        is_active=is_active,
        search=search
    )

@router.get("/{warehouse_id}", response_model=WarehouseResponse)
async def get_warehouse(
    warehouse_id: int,
    session: AsyncSession = Depends(get_async_session)
):
    """Get warehouse by ID"""
    service = WarehouseService(session)
    warehouse = await service.get_warehouse(warehouse_id)
    if warehouse is None:
        raise NotFoundError("Warehouse not found", warehouse_id=warehouse_id)
    return warehouse

@router.put("/{warehouse_id}", response_model=WarehouseResponse)
async def update_warehouse(
    warehouse_id: int,
    warehouse: WarehouseUpdate,
    session: AsyncSession = Depends(get_async_session),
    actor_id: Optional[int] = Depends(get_current_actor_id)
):
    """Update warehouse"""
    service = WarehouseService(session)
    return await service.update_warehouse(warehouse_id, warehouse, actor_id)

@router.delete("/{warehouse_id}")
async def delete_warehouse(
    warehouse_id: int,
    session: AsyncSession = Depends(get_async_session),
    actor_id: Optional[int] = Depends(get_current_actor_id)
):
    """Delete warehouse"""
    service = WarehouseService(session)
    result = await service.delete_warehouse(warehouse_id, actor_id)
    return {"message": "Warehouse deleted successfully", "success": result}

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
from app.api.dependencies import get_current_actor_id
from app.core.database import get_async_session
from app.core.exceptions import NotFoundError
from app.schemas.common.pagination import PaginatedResponse
from app.schemas.inventory.product_schema import Product, ProductCreate, ProductUpdate
from app.services.inventory.product_service import ProductService

router = APIRouter()

@router.post("/", response_model=Product, status_code=status.HTTP_201_CREATED)
async def create_product(
    product_data: ProductCreate,
    db: AsyncSession = Depends(get_async_session),
    actor_id: Optional[int] = Depends(get_current_actor_id)
):
    """Create a new product"""
    service = ProductService(db)
    return await service.create_product(product_data, actor_id)

@router.get("/", response_model=PaginatedResponse[Product])
async def get_products(
    page_index: int = Query(1, ge=1),
    page_size: int = Query(100, ge=1, le=1000),
    search: Optional[str] = Query(None),
    is_active: Optional[bool] = Query(None),
    db: AsyncSession = Depends(get_async_session)
):
    """Get all products with pagination and filters"""
    service = ProductService(db)
    return await service.get_products(page_index=page_index, page_size=page_size, search=search, is_active=is_active)

@router.get("/{product_id}", response_model=Product)
async def get_product(
    product_id: int,
    db: AsyncSession = Depends(get_async_session)
):
    """Get product by ID"""
    service = ProductService(db)
    product = await service.get_product_by_id(product_id)
    if not product:
        raise NotFoundError("Product not found", product_id=product_id)
    return product

@router.put("/{product_id}", response_model=Product)
async def update_product(
    product_id: int,
    product_data: ProductUpdate,
    db: AsyncSession = Depends(get_async_session),
    actor_id: Optional[int] = Depends(get_current_actor_id)
):
    """Update product"""
    service = ProductService(db)
    return await service.update_product(product_id, product_data, actor_id)

@router.delete("/{product_id}")
async def delete_product(
    product_id: int,
    db: AsyncSession = Depends(get_async_session),
    actor_id: Optional[int] = Depends(get_current_actor_id)
):
    """Delete product (soft delete)"""
    service = ProductService(db)
    await service.delete_product(product_id, actor_id)
    return {"message": "Product deleted successfully"}

import logging
from typing import Any, Dict, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import and_, func, or_
from app.models.inventory.product import Product
from app.schemas.inventory.product_schema import ProductCreate, ProductUpdate
from app.core.exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class ProductService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_product(self, product_data: ProductCreate, current_user_id: Optional[int]) -> Product:
        existing = await self.db.execute(select(Product.id).where(Product.sku == product_data.sku))
        if existing.scalar_one_or_none():
            raise ValidationError("Product SKU already exists", sku=product_data.sku)

        product = Product(
            **product_data.dict(),
            created_by=current_user_id,
            updated_by=current_user_id,
        )
        self.db.add(product)
        await self.db.commit()
        logger.info(f"🏷️ Product {product.sku} created by user {current_user_id}")
        return product

    async def get_product_by_id(self, product_id: int) -> Optional[Product]:
        result = await self.db.execute(
            select(Product).where(and_(Product.id == product_id, Product.is_deleted == False))
        )
        return result.scalar_one_or_none()

    async def get_products(
        self,
        page_index: int = 1,
        page_size: int = 100,
        search: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> Dict[str, Any]:
        """Get products with pagination and filters"""
        query = select(Product).where(Product.is_deleted == False)

        if search:
            query = query.where(
                or_(
                    Product.name.ilike(f"%{search}%"),
                    Product.sku.ilike(f"%{search}%"),
                )
            )
        if is_active is not None:
            query = query.where(Product.is_active == is_active)

        count_query = select(func.count()).select_from(query.subquery())
        total = (await self.db.execute(count_query)).scalar() or 0

        skip = (page_index - 1) * page_size
        result = await self.db.execute(query.order_by(Product.id).offset(skip).limit(page_size))
        return {
            "page_index": page_index,
            "page_size": page_size,
            "count": total,
            "data": list(result.scalars().all()),
        }

    async def update_product(self, product_id: int, product_data: ProductUpdate, current_user_id: Optional[int]) -> Product:
        product = await self.get_product_by_id(product_id)
        if not product:
            raise NotFoundError("Product not found", product_id=product_id)

        for field, value in product_data.dict(exclude_unset=True).items():
            setattr(product, field, value)
        product.updated_by = current_user_id
        await self.db.commit()
        return product

    async def delete_product(self, product_id: int, current_user_id: Optional[int]) -> bool:
        """Soft delete product"""
        product = await self.get_product_by_id(product_id)
        if not product:
            raise NotFoundError("Product not found", product_id=product_id)

        product.is_active = False
        product.is_deleted = True
        product.updated_by = current_user_id
        await self.db.commit()
        return True

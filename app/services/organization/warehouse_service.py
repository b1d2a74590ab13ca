import logging
from typing import Any, Dict, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, or_

from app.core.exceptions import NotFoundError, ValidationError
from app.models.inventory.stock_record import StockRecord
from app.models.organization.warehouse import Warehouse
from app.schemas.organization.warehouse_schema import WarehouseCreate, WarehouseUpdate

logger = logging.getLogger(__name__)


class WarehouseService:
    def __init__(self, session: AsyncSession):
        self.session = session

    # ---------- Getters ----------
    async def get_warehouse(self, warehouse_id: int) -> Optional[Warehouse]:
        result = await self.session.execute(
            select(Warehouse).where(
                Warehouse.id == warehouse_id,
                Warehouse.is_deleted == False
            )
        )
        return result.scalar_one_or_none()

    async def get_warehouses(
        self,
        page_index: int = 1,
        page_size: int = 100,
        company_id: Optional[int] = None,
        is_active: Optional[bool] = None,
        search: Optional[str] = None,
    ) -> Dict[str, Any]:
        query = select(Warehouse).where(Warehouse.is_deleted == False)
        if company_id is not None:
            query = query.where(Warehouse.company_id == company_id)
        if is_active is not None:
            query = query.where(Warehouse.is_active == is_active)
        if search:
            query = query.where(or_(Warehouse.name.ilike(f"%{search}%"), Warehouse.code.ilike(f"%{search}%")))

        total = (await self.session.execute(select(func.count()).select_from(query.subquery()))).scalar() or 0
        result = await self.session.execute(
            query.order_by(Warehouse.id).offset((page_index - 1) * page_size).limit(page_size)
        )
        return {
            "page_index": page_index,
            "page_size": page_size,
            "count": total,
            "data": list(result.scalars().all()),
        }

    # ---------- Create / Update / Delete ----------
    async def create_warehouse(self, data: WarehouseCreate, current_user_id: Optional[int]) -> Warehouse:
        existing = await self.session.execute(select(Warehouse.id).where(Warehouse.code == data.code))
        if existing.scalar_one_or_none():
            raise ValidationError("Warehouse code already exists", code=data.code)

        warehouse = Warehouse(**data.dict(), created_by=current_user_id, updated_by=current_user_id)
        self.session.add(warehouse)
        await self.session.commit()
        logger.info(f"Warehouse created: {warehouse.name} ({warehouse.code}) by user {current_user_id}")
        return warehouse

    async def update_warehouse(self, warehouse_id: int, data: WarehouseUpdate, current_user_id: Optional[int]) -> Warehouse:
        warehouse = await self.get_warehouse(warehouse_id)
        if not warehouse:
            raise NotFoundError("Warehouse not found", warehouse_id=warehouse_id)

        for field, value in data.dict(exclude_unset=True).items():
            setattr(warehouse, field, value)
        warehouse.updated_by = current_user_id

        await self.session.commit()
        logger.info(f"Warehouse updated: {warehouse.name} by user {current_user_id}")
        return warehouse

    async def delete_warehouse(self, warehouse_id: int, current_user_id: Optional[int]) -> bool:
        warehouse = await self.get_warehouse(warehouse_id)
        if not warehouse:
            raise NotFoundError("Warehouse not found", warehouse_id=warehouse_id)

        # block delete while stock is on hand
        on_hand = await self.session.execute(
            select(func.coalesce(func.sum(StockRecord.quantity), 0)).where(StockRecord.warehouse_id == warehouse_id)
        )
        if int(on_hand.scalar() or 0) > 0:
            raise ValidationError("Cannot delete warehouse. It still holds stock", warehouse_id=warehouse_id)

        warehouse.is_active = False
        warehouse.is_deleted = True
        warehouse.updated_by = current_user_id
        await self.session.commit()
        logger.info(f"Warehouse deleted (soft): {warehouse.name} by user {current_user_id}")
        return True

import logging
import uuid
from decimal import Decimal
from typing import Any, Dict, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload
from sqlalchemy import func
from app.core.exceptions import NotFoundError, ValidationError
from app.models.inventory.product import Product
from app.models.sales.order import Order
from app.models.sales.order_item import OrderItem
from app.models.shared.enums import OrderStatus
from app.schemas.inventory.allocation import AllocationLineItem
from app.schemas.sales.order import OrderCreate, OrderStatusStats
from app.services.inventory.allocation_service import AllocationService
from app.services.inventory.compensation_service import CompensationService
from app.services.inventory.stock_transaction import StockTransaction
from app.utils.date_utils import utc_now

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.FULFILLED, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.PENDING, OrderStatus.SHIPPED, OrderStatus.FULFILLED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.PROCESSING, OrderStatus.FULFILLED, OrderStatus.CANCELLED},
    OrderStatus.FULFILLED: {OrderStatus.RETURNED},
    OrderStatus.CANCELLED: set(),
    OrderStatus.RETURNED: set(),
}

# Transitions that give the order's stock back
RESTORING_STATUSES = frozenset({OrderStatus.CANCELLED, OrderStatus.RETURNED})


class OrderService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.allocator = AllocationService(db)
        self.compensator = CompensationService(db)
        self.transaction = StockTransaction(db)

    async def create_order(self, order_data: OrderCreate, current_user_id: Optional[int]) -> Order:
        """Create an order and allocate its stock in one transaction"""
        products = await self._load_products([item.product_id for item in order_data.items])

        lines = []
        for item in order_data.items:
            product = products[item.product_id]
            price = item.price if item.price is not None else (product.selling_price or Decimal('0.00'))
            lines.append(AllocationLineItem(product_id=item.product_id, quantity=item.quantity, price=price))

        keys = await self.allocator.plan_keys(lines)

        async def _create():
            order = Order(
                order_number=f"ORD-{uuid.uuid4().hex[:10].upper()}",
                status=OrderStatus.PENDING,
                customer_name=order_data.customer_name,
                notes=order_data.notes,
                subtotal=sum((Decimal(line.price) * line.quantity for line in lines), Decimal('0.00')),
                created_by=current_user_id,
                updated_by=current_user_id,
            )
            self.db.add(order)
            await self.db.flush()

            for line_index, line in enumerate(lines):
                self.db.add(OrderItem(
                    order_id=order.id,
                    product_id=line.product_id,
                    line_index=line_index,
                    quantity=line.quantity,
                    price=line.price,
                    total=Decimal(line.price) * line.quantity,
                    created_by=current_user_id,
                ))
            await self.db.flush()

            await self.allocator.apply_allocation(order.id, lines, current_user_id, keys)
            return order.id

        order_id = await self.transaction.run(keys, _create)
        order = await self.get_order(order_id)
        logger.info(f"🛒 Order {order.order_number} created with {len(lines)} lines by user {current_user_id}")
        return order

    async def get_order(self, order_id: int) -> Optional[Order]:
        result = await self.db.execute(
            select(Order)
            .options(selectinload(Order.items))
            .where(Order.id == order_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_orders(
        self,
        page_index: int = 1,
        page_size: int = 100,
        status: Optional[OrderStatus] = None,
    ) -> Dict[str, Any]:
        query = select(Order).options(selectinload(Order.items))
        count_query = select(func.count(Order.id))
        if status:
            query = query.where(Order.status == status)
            count_query = count_query.where(Order.status == status)

        total = (await self.db.execute(count_query)).scalar() or 0
        result = await self.db.execute(
            query.order_by(Order.created_at.desc(), Order.id.desc())
            .offset((page_index - 1) * page_size)
            .limit(page_size)
        )
        return {
            "page_index": page_index,
            "page_size": page_size,
            "count": total,
            "data": list(result.scalars().all()),
        }

    async def update_status(
        self,
        order_id: int,
        new_status: OrderStatus,
        current_user_id: Optional[int],
        notes: Optional[str] = None,
    ) -> Order:
        order = await self._require_order(order_id)
        if order.status == new_status:
            return order
        self._check_transition(order, new_status)

        if new_status not in RESTORING_STATUSES:
            order.status = new_status
            order.updated_by = current_user_id
            if notes:
                order.notes = notes
            await self.db.commit()
            logger.info(f"📝 Order {order.order_number} moved to {new_status.value} by user {current_user_id}")
            return await self.get_order(order_id)

        keys = await self.compensator.plan_keys(order.id, order.items)

        async def _restore_and_update():
            locked = await self._require_order(order_id)
            self._check_transition(locked, new_status)
            result = await self.compensator.apply_compensation(locked.id, current_user_id, keys, locked.items)
            locked.status = new_status
            locked.updated_by = current_user_id
            if new_status == OrderStatus.CANCELLED:
                locked.cancelled_at = utc_now()
            if notes:
                locked.notes = notes
            return result

        result = await self.transaction.run(keys, _restore_and_update)
        logger.info(
            f"↩️ Order {order.order_number} moved to {new_status.value} by user {current_user_id}; "
            f"{len(result.restored)} restorations"
        )
        return await self.get_order(order_id)

    async def delete_order(self, order_id: int, current_user_id: Optional[int]) -> bool:
        order = await self._require_order(order_id)
        if order.status != OrderStatus.PENDING:
            raise ValidationError(
                "Only pending orders can be deleted",
                order_id=order_id,
                current_status=order.status.value,
            )

        keys = await self.compensator.plan_keys(order.id, order.items)

        async def _restore_and_delete():
            locked = await self._require_order(order_id)
            if locked.status != OrderStatus.PENDING:
                raise ValidationError(
                    "Only pending orders can be deleted",
                    order_id=order_id,
                    current_status=locked.status.value,
                )
            await self.compensator.apply_compensation(locked.id, current_user_id, keys, locked.items)
            await self.db.delete(locked)

        await self.transaction.run(keys, _restore_and_delete)
        logger.info(f"🗑️ Order {order.order_number} deleted by user {current_user_id}")
        return True

    async def get_order_stats(self) -> List[OrderStatusStats]:
        result = await self.db.execute(
            select(
                Order.status,
                func.count(Order.id).label("count"),
                func.coalesce(func.sum(Order.subtotal), 0).label("total_amount"),
            ).group_by(Order.status)
        )
        return [
            OrderStatusStats(status=row.status, count=row.count, total_amount=Decimal(str(row.total_amount)))
            for row in result.all()
        ]

    def _check_transition(self, order: Order, new_status: OrderStatus) -> None:
        if new_status not in ALLOWED_TRANSITIONS[order.status]:
            raise ValidationError(
                f"Cannot move order from {order.status.value} to {new_status.value}",
                order_id=order.id,
                current_status=order.status.value,
                requested_status=new_status.value,
            )

    async def _require_order(self, order_id: int) -> Order:
        order = await self.get_order(order_id)
        if not order:
            raise NotFoundError("Order not found", order_id=order_id)
        return order

    async def _load_products(self, product_ids: List[int]) -> Dict[int, Product]:
        result = await self.db.execute(select(Product).where(Product.id.in_(set(product_ids))))
        products = {product.id: product for product in result.scalars().all()}
        for product_id in product_ids:
            product = products.get(product_id)
            if product is None:
                raise NotFoundError("Product not found", product_id=product_id)
            if not product.is_active:
                raise ValidationError("Product is not active", product_id=product_id)
        return products

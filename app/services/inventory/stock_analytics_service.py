import logging
from collections import defaultdict
from datetime import date, timedelta
from typing import Any, Dict, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import and_, case, func
from app.core.config import settings
from app.core.exceptions import ValidationError
from app.models.inventory.stock_movement import StockMovement
from app.models.inventory.stock_record import StockRecord
from app.models.organization.warehouse import Warehouse
from app.models.shared.enums import MovementReason, MovementStatus, QualityStatus, StockMovementType, TurnoverClass
from app.schemas.inventory.inventory_response import (
    ExpiringStockItem,
    InventoryValuationResponse,
    ProductTurnover,
    TurnoverResponse,
    WarehouseValuation,
)
from app.utils.date_utils import day_after, day_start, utc_now, utc_today

logger = logging.getLogger(__name__)

# Warehouse whose stock a ledger entry changed
affected_warehouse_id = case(
    (StockMovement.quantity < 0, StockMovement.from_warehouse_id),
    else_=StockMovement.to_warehouse_id,
)

# Pending entries take effect when approved
effective_at = func.coalesce(StockMovement.approved_at, StockMovement.processed_at)


class StockAnalyticsService:
    """Read-only reporting over stock records and the movement ledger.

    Every query is a plain snapshot read; nothing here takes stock locks.
    ``company_id`` scopes results to the warehouses of one company.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    def _scope_records(self, query, company_id: Optional[int] = None, warehouse_id: Optional[int] = None):
        if company_id is not None:
            query = query.join(Warehouse, Warehouse.id == StockRecord.warehouse_id).where(Warehouse.company_id == company_id)
        if warehouse_id is not None:
            query = query.where(StockRecord.warehouse_id == warehouse_id)
        return query

    def _scope_movements(self, query, company_id: Optional[int] = None, warehouse_id: Optional[int] = None):
        if company_id is not None:
            query = query.join(Warehouse, Warehouse.id == affected_warehouse_id).where(Warehouse.company_id == company_id)
        if warehouse_id is not None:
            query = query.where(affected_warehouse_id == warehouse_id)
        return query

    async def get_total_value(
        self,
        company_id: Optional[int] = None,
        warehouse_id: Optional[int] = None,
    ) -> InventoryValuationResponse:
        """Stock value (quantity x unit cost) with a per-warehouse breakdown"""
        query = self._scope_records(
            select(
                StockRecord.warehouse_id,
                func.coalesce(func.sum(StockRecord.quantity), 0).label('total_quantity'),
                func.coalesce(func.sum(StockRecord.quantity * StockRecord.unit_cost), 0).label('total_value'),
            ),
            company_id,
            warehouse_id,
        ).group_by(StockRecord.warehouse_id).order_by(StockRecord.warehouse_id)

        result = await self.db.execute(query)
        by_warehouse = [
            WarehouseValuation(
                warehouse_id=row.warehouse_id,
                total_quantity=int(row.total_quantity),
                total_value=round(float(row.total_value), 2),
            )
            for row in result.all()
        ]
        return InventoryValuationResponse(
            total_value=round(sum(w.total_value for w in by_warehouse), 2),
            total_quantity=sum(w.total_quantity for w in by_warehouse),
            by_warehouse=by_warehouse,
        )

    async def get_low_stock(
        self,
        company_id: Optional[int] = None,
        warehouse_id: Optional[int] = None,
    ) -> List[StockRecord]:
        """Records below their minimum quantity, lowest quantity first"""
        query = self._scope_records(
            select(StockRecord).where(StockRecord.quantity < StockRecord.minimum_quantity),
            company_id,
            warehouse_id,
        ).order_by(StockRecord.quantity, StockRecord.id)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_turnover(
        self,
        start_date: date,
        end_date: date,
        company_id: Optional[int] = None,
        warehouse_id: Optional[int] = None,
    ) -> TurnoverResponse:
        """Units sold over average on-hand, with on-hand reconstructed from the ledger"""
        if end_date < start_date:
            raise ValidationError("End date must be on or after start date",
                                  start_date=start_date.isoformat(), end_date=end_date.isoformat())

        period_start = day_start(start_date)
        period_end = day_after(end_date)

        current = await self.db.execute(
            self._scope_records(
                select(StockRecord.product_id, func.sum(StockRecord.quantity).label('quantity')),
                company_id,
                warehouse_id,
            ).group_by(StockRecord.product_id)
        )
        current_by_product = {row.product_id: int(row.quantity or 0) for row in current.all()}

        completed = StockMovement.status == MovementStatus.COMPLETED
        after_period = await self.db.execute(
            self._scope_movements(
                select(StockMovement.product_id, func.sum(StockMovement.quantity).label('net'))
                .where(and_(completed, effective_at >= period_end)),
                company_id,
                warehouse_id,
            ).group_by(StockMovement.product_id)
        )
        net_after = {row.product_id: int(row.net or 0) for row in after_period.all()}

        sold_expr = case(
            (and_(StockMovement.reason == MovementReason.SALES_ORDER,
                  StockMovement.movement_type == StockMovementType.OUTBOUND), -StockMovement.quantity),
            (StockMovement.reason == MovementReason.ORDER_CANCELLATION, -StockMovement.quantity),
            else_=0,
        )
        in_period = await self.db.execute(
            self._scope_movements(
                select(
                    StockMovement.product_id,
                    func.sum(StockMovement.quantity).label('net'),
                    func.sum(sold_expr).label('sold'),
                ).where(and_(completed, effective_at >= period_start, effective_at < period_end)),
                company_id,
                warehouse_id,
            ).group_by(StockMovement.product_id)
        )
        net_within = {}
        sold_by_product = {}
        for row in in_period.all():
            net_within[row.product_id] = int(row.net or 0)
            sold_by_product[row.product_id] = max(0, int(row.sold or 0))

        days = (end_date - start_date).days + 1
        products = []
        for product_id in sorted(set(current_by_product) | set(net_within)):
            closing = current_by_product.get(product_id, 0) - net_after.get(product_id, 0)
            opening = closing - net_within.get(product_id, 0)
            average = (opening + closing) / 2
            sold = sold_by_product.get(product_id, 0)
            turnover_rate = sold / average if average > 0 else 0.0
            annualized = turnover_rate * 365 / days
            products.append(ProductTurnover(
                product_id=product_id,
                units_sold=sold,
                opening_quantity=opening,
                closing_quantity=closing,
                average_on_hand=average,
                turnover_rate=round(turnover_rate, 4),
                annualized_rate=round(annualized, 4),
                classification=self._classify_turnover(annualized),
            ))

        products.sort(key=lambda p: (-p.annualized_rate, p.product_id))
        return TurnoverResponse(start_date=start_date, end_date=end_date, products=products)

    def _classify_turnover(self, turnover_rate: float) -> TurnoverClass:
        """Classify an annualized turnover rate"""
        if turnover_rate >= settings.TURNOVER_FAST_THRESHOLD:
            return TurnoverClass.FAST
        elif turnover_rate >= settings.TURNOVER_MEDIUM_THRESHOLD:
            return TurnoverClass.MEDIUM
        else:
            return TurnoverClass.SLOW

    async def get_expiring_stock(
        self,
        days: Optional[int] = None,
        company_id: Optional[int] = None,
    ) -> List[ExpiringStockItem]:
        """Good lots with stock on hand expiring within ``days`` (default ``EXPIRY_ALERT_DAYS``)"""
        days = settings.EXPIRY_ALERT_DAYS if days is None else days
        if days < 0:
            raise ValidationError("Days must not be negative", days=days)

        today = utc_today()
        query = self._scope_records(
            select(StockRecord).where(and_(
                StockRecord.quality_status == QualityStatus.GOOD,
                StockRecord.quantity > 0,
                StockRecord.expiry_date.isnot(None),
                StockRecord.expiry_date >= today,
                StockRecord.expiry_date <= today + timedelta(days=days),
            )),
            company_id,
        ).order_by(StockRecord.expiry_date, StockRecord.id)

        result = await self.db.execute(query)
        return [
            ExpiringStockItem(stock_record=record, days_until_expiry=(record.expiry_date - today).days)
            for record in result.scalars().all()
        ]

    async def get_inventory_dashboard(self, company_id: Optional[int] = None) -> Dict[str, Any]:
        """Get comprehensive inventory dashboard data"""
        stock_result = await self.db.execute(
            self._scope_records(
                select(
                    func.count(StockRecord.id).label('total_records'),
                    func.sum(StockRecord.quantity * StockRecord.unit_cost).label('total_value'),
                    func.sum(StockRecord.quantity).label('total_quantity'),
                    func.sum(StockRecord.reserved_quantity).label('total_reserved'),
                    func.sum(StockRecord.available_quantity).label('total_available'),
                    func.sum(case((StockRecord.quantity < StockRecord.minimum_quantity, 1), else_=0)).label('low_stock'),
                    func.sum(case((StockRecord.quantity == 0, 1), else_=0)).label('out_of_stock'),
                ),
                company_id,
            )
        )
        stock_data = stock_result.first()

        pending_result = await self.db.execute(
            self._scope_movements(
                select(func.count(StockMovement.id)).where(StockMovement.status == MovementStatus.PENDING),
                company_id,
            )
        )

        # Recent movements (last 30 days)
        thirty_days_ago = day_start(utc_today() - timedelta(days=30))
        movement_result = await self.db.execute(
            self._scope_movements(
                select(
                    StockMovement.movement_type,
                    func.count(StockMovement.id).label('count'),
                    func.sum(StockMovement.quantity).label('total_quantity'),
                ).where(and_(
                    StockMovement.status == MovementStatus.COMPLETED,
                    StockMovement.processed_at >= thirty_days_ago,
                )),
                company_id,
            ).group_by(StockMovement.movement_type)
        )
        movement_data = {row.movement_type.value: {
            'count': row.count,
            'quantity': int(row.total_quantity or 0)
        } for row in movement_result.all()}

        expiring = await self.get_expiring_stock(company_id=company_id)

        return {
            'overview': {
                'total_records': stock_data.total_records or 0,
                'total_value': round(float(stock_data.total_value or 0), 2),
                'total_quantity': int(stock_data.total_quantity or 0),
                'total_reserved': int(stock_data.total_reserved or 0),
                'total_available': int(stock_data.total_available or 0),
                'low_stock_items': int(stock_data.low_stock or 0),
                'out_of_stock_items': int(stock_data.out_of_stock or 0),
                'expiring_items': len(expiring),
                'pending_movements': pending_result.scalar() or 0,
            },
            'recent_movements': movement_data,
            'generated_at': utc_now().isoformat()
        }

    async def collect_alerts(self, company_id: Optional[int] = None) -> Dict[str, Any]:
        """Low-stock and expiring lots, keyed for alerting"""
        low_stock = await self.get_low_stock(company_id=company_id)
        expiring = await self.get_expiring_stock(company_id=company_id)

        by_warehouse = defaultdict(lambda: {'low_stock': 0, 'expiring': 0})
        for record in low_stock:
            by_warehouse[record.warehouse_id]['low_stock'] += 1
        for item in expiring:
            by_warehouse[item.stock_record.warehouse_id]['expiring'] += 1

        return {
            'low_stock': [
                {
                    'stock_record_id': r.id,
                    'product_id': r.product_id,
                    'warehouse_id': r.warehouse_id,
                    'quantity': r.quantity,
                    'minimum_quantity': r.minimum_quantity,
                }
                for r in low_stock
            ],
            'expiring': [
                {
                    'stock_record_id': item.stock_record.id,
                    'product_id': item.stock_record.product_id,
                    'warehouse_id': item.stock_record.warehouse_id,
                    'expiry_date': item.stock_record.expiry_date.isoformat(),
                    'days_until_expiry': item.days_until_expiry,
                }
                for item in expiring
            ],
            'by_warehouse': dict(by_warehouse),
        }

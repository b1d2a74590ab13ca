import asyncio
import logging
from typing import Any, Dict, Optional
from sqlalchemy.ext.asyncio import async_sessionmaker
from app.core.celery_app import celery_app
from app.core.config import settings
from app.core.database import build_engine, build_session_maker

logger = logging.getLogger(__name__)


def run_async_task(coro):
    """Helper function to run async coroutines in Celery tasks"""
    loop = asyncio.new_event_loop()
    try:
        asyncio.set_event_loop(loop)
        return loop.run_until_complete(coro)
    finally:
        loop.close()


async def collect_stock_alerts(session_factory: async_sessionmaker, company_id: Optional[int] = None) -> Dict[str, Any]:
    """Gather low-stock and expiring lots and log them"""
    # Import inside function to avoid circular imports
    from app.services.inventory.stock_analytics_service import StockAnalyticsService

    async with session_factory() as db:
        alerts = await StockAnalyticsService(db).collect_alerts(company_id)

    for item in alerts["low_stock"]:
        level = logging.CRITICAL if item["quantity"] == 0 else logging.WARNING
        logger.log(
            level,
            f"{'🚨' if item['quantity'] == 0 else '⚠️'} Low stock: product {item['product_id']} in warehouse "
            f"{item['warehouse_id']} has {item['quantity']} (minimum {item['minimum_quantity']})"
        )
    for item in alerts["expiring"]:
        logger.warning(
            f"⏳ Lot of product {item['product_id']} in warehouse {item['warehouse_id']} "
            f"expires in {item['days_until_expiry']} days ({item['expiry_date']})"
        )

    return {
        "status": "completed",
        "low_stock_count": len(alerts["low_stock"]),
        "expiring_count": len(alerts["expiring"]),
        "by_warehouse": alerts["by_warehouse"],
    }


@celery_app.task(bind=True)
def scan_stock_alerts(self, company_id: Optional[int] = None):
    """Check for low stock and expiring lots"""
    async def _scan():
        engine = build_engine(settings.DATABASE_URL)
        try:
            return await collect_stock_alerts(build_session_maker(engine), company_id)
        finally:
            await engine.dispose()

    try:
        logger.info("🔍 Scanning stock alerts...")
        result = run_async_task(_scan())
        logger.info(
            f"✅ Stock alert scan done: {result['low_stock_count']} low stock, "
            f"{result['expiring_count']} expiring"
        )
        return result
    except Exception as e:
        logger.error(f"❌ Error in stock alert scan: {str(e)}")
        raise self.retry(exc=e, countdown=300, max_retries=3)

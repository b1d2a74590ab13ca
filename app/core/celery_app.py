from celery import Celery
from app.core.config import settings
import sys

# Create Celery app
celery_app = Celery(
    "inventory_ledger",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=[
        "app.workers.celery_tasks.inventory_tasks",
    ]
)

# Configure Celery
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    result_expires=3600,
)

# Windows-specific configuration
if sys.platform == 'win32':
    celery_app.conf.update(
        worker_pool='threads',
        worker_concurrency=4
    )

celery_app.conf.beat_schedule = {
    'scan-stock-alerts': {
        'task': 'app.workers.celery_tasks.inventory_tasks.scan_stock_alerts',
        'schedule': settings.STOCK_ALERT_INTERVAL_SECONDS,
    },
}

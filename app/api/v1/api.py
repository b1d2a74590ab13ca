from fastapi import APIRouter
from app.api.v1.endpoints.inventory import allocations, analytics, products, stock_movements, stock_records
from app.api.v1.endpoints.organization import warehouses
from app.api.v1.endpoints.sales import orders

api_router = APIRouter()

# Organization routes
api_router.include_router(warehouses.router, prefix="/organization/warehouse", tags=["Organization"])

# Inventory routes
api_router.include_router(products.router, prefix="/inventory/product", tags=["Inventory"])
api_router.include_router(stock_records.router, prefix="/inventory/stock-record", tags=["Inventory"])
api_router.include_router(stock_movements.router, prefix="/inventory/stock-movement", tags=["Inventory"])
api_router.include_router(allocations.router, prefix="/inventory/allocation", tags=["Inventory"])
api_router.include_router(analytics.router, prefix="/inventory/analytics", tags=["Inventory"])

# Sales routes
api_router.include_router(orders.router, prefix="/sales/order", tags=["Sales"])

from app.models.auth.user import User
from app.models.organization.warehouse import Warehouse
from app.models.inventory.product import Product
from app.models.inventory.stock_record import StockRecord
from app.models.inventory.stock_record_history import StockRecordHistory
from app.models.inventory.stock_movement import StockMovement
from app.models.sales.order import Order
from app.models.sales.order_item import OrderItem

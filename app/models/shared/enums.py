from enum import Enum

# Enums
class QualityStatus(str, Enum):
    GOOD = "good"
    DAMAGED = "damaged"
    EXPIRED = "expired"
    QUARANTINE = "quarantine"
    RETURNED = "returned"

class StockMovementType(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"
    TRANSFER = "transfer"
    ADJUSTMENT = "adjustment"
    RETURN = "return"
    DAMAGED = "damaged"
    EXPIRED = "expired"
    CYCLE_COUNT = "cycle_count"
    PRODUCTION = "production"
    CONSUMPTION = "consumption"

class MovementReason(str, Enum):
    PURCHASE_ORDER = "purchase_order"
    SALES_ORDER = "sales_order"
    TRANSFER_ORDER = "transfer_order"
    MANUAL_ADJUSTMENT = "manual_adjustment"
    CUSTOMER_RETURN = "customer_return"
    SUPPLIER_RETURN = "supplier_return"
    DAMAGED_GOODS = "damaged_goods"
    EXPIRED_GOODS = "expired_goods"
    CYCLE_COUNT = "cycle_count"
    PRODUCTION_INPUT = "production_input"
    PRODUCTION_OUTPUT = "production_output"
    STOCK_LOSS = "stock_loss"
    STOCK_FOUND = "stock_found"
    CORRECTION = "correction"
    ORDER_CANCELLATION = "order_cancellation"
    OTHER = "other"

class MovementStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

class ReferenceType(str, Enum):
    PURCHASE_ORDER = "purchase_order"
    SALES_ORDER = "sales_order"
    TRANSFER_ORDER = "transfer_order"
    ADJUSTMENT = "adjustment"
    RETURN = "return"
    PRODUCTION_ORDER = "production_order"
    STOCK_MOVEMENT = "stock_movement"

class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    FULFILLED = "fulfilled"
    CANCELLED = "cancelled"
    RETURNED = "returned"

class TurnoverClass(str, Enum):
    FAST = "FAST"
    MEDIUM = "MEDIUM"
    SLOW = "SLOW"


# Approval rules for ledger entries
APPROVAL_MOVEMENT_TYPES = frozenset({
    StockMovementType.ADJUSTMENT,
    StockMovementType.DAMAGED,
    StockMovementType.EXPIRED,
})

APPROVAL_REASONS = frozenset({
    MovementReason.MANUAL_ADJUSTMENT,
    MovementReason.DAMAGED_GOODS,
    MovementReason.EXPIRED_GOODS,
    MovementReason.STOCK_LOSS,
})

# Movements authorized by their source document; the size threshold does not apply
THRESHOLD_EXEMPT_REASONS = frozenset({
    MovementReason.SALES_ORDER,
    MovementReason.ORDER_CANCELLATION,
    MovementReason.TRANSFER_ORDER,
})

ACTIVE_ORDER_STATUSES = frozenset({
    OrderStatus.PENDING,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
})

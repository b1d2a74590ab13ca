from sqlalchemy import Column, String, Text, Numeric, DateTime, Enum as SQLEnum
from sqlalchemy.orm import relationship
from app.db.base import BaseModel
from app.models.shared.enums import OrderStatus

class Order(BaseModel):
    __tablename__ = 'orders'

    order_number = Column(String(50), unique=True, nullable=False, index=True)
    status = Column(SQLEnum(OrderStatus), nullable=False, default=OrderStatus.PENDING)
    customer_name = Column(String(200))
    subtotal = Column(Numeric(12, 2), default=0)
    notes = Column(Text)
    cancelled_at = Column(DateTime(timezone=True))

    # Relationships
    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan", order_by="OrderItem.line_index")

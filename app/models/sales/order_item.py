from sqlalchemy import Column, Integer, Numeric, ForeignKey
from sqlalchemy.orm import relationship
from app.db.base import BaseModel

class OrderItem(BaseModel):
    __tablename__ = 'order_items'

    order_id = Column(Integer, ForeignKey('orders.id', ondelete='CASCADE'), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey('products.id'), nullable=False)
    line_index = Column(Integer, nullable=False, default=0)
    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), default=0)
    total = Column(Numeric(12, 2), default=0)

    # Relationships
    order = relationship("Order", back_populates="items")

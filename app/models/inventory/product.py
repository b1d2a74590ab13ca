from sqlalchemy import Column, Integer, String, Boolean, Text, Numeric
from sqlalchemy.orm import relationship
from app.db.base import BaseModel

class Product(BaseModel):
    __tablename__ = 'products'

    sku = Column(String(50), unique=True, index=True, nullable=False)
    name = Column(String(500), nullable=False)
    description = Column(Text)
    unit_cost = Column(Numeric(10, 2), default=0)
    selling_price = Column(Numeric(10, 2), default=0)
    minimum_stock_level = Column(Integer, default=0)
    is_active = Column(Boolean, default=True)

    # Relationships
    stock_records = relationship("StockRecord", back_populates="product")

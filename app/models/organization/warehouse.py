from sqlalchemy import Boolean, Column, Integer, String, Text
from sqlalchemy.orm import relationship
from app.db.base import BaseModel

class Warehouse(BaseModel):
    __tablename__ = 'warehouses'

    code = Column(String(50), unique=True, nullable=False, index=True)
    name = Column(String(100), nullable=False)
    company_id = Column(Integer, nullable=True, index=True)  # Tenant scope for reporting
    address = Column(Text)
    city = Column(String(50))
    country = Column(String(50))
    phone = Column(String(20))
    is_active = Column(Boolean, default=True)

    # Relationships
    stock_records = relationship("StockRecord", back_populates="warehouse")

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.db.base import BaseModel

class StockRecordHistory(BaseModel):
    """Per-record mirror of the ledger, written with the movement that produced it"""
    __tablename__ = 'stock_record_history'

    stock_record_id = Column(Integer, ForeignKey('stock_records.id', ondelete='CASCADE'), nullable=False, index=True)
    movement_id = Column(Integer, ForeignKey('stock_movements.id', ondelete='SET NULL'), nullable=True)
    change = Column(Integer, nullable=False)
    reason = Column(String(50), nullable=False)
    previous_quantity = Column(Integer, nullable=False)
    new_quantity = Column(Integer, nullable=False)
    recorded_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    stock_record = relationship("StockRecord", back_populates="history")

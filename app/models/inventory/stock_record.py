from sqlalchemy import Column, Integer, String, DateTime, Numeric, ForeignKey, Date, UniqueConstraint, CheckConstraint, Enum as SQLEnum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.db.base import BaseModel
from app.models.shared.enums import QualityStatus

class StockRecord(BaseModel):
    """Quantity state of one product in one warehouse"""
    __tablename__ = 'stock_records'

    product_id = Column(Integer, ForeignKey('products.id'), nullable=False, index=True)
    warehouse_id = Column(Integer, ForeignKey('warehouses.id'), nullable=False, index=True)
    quantity = Column(Integer, nullable=False, default=0)
    reserved_quantity = Column(Integer, nullable=False, default=0)
    available_quantity = Column(Integer, nullable=False, default=0)
    unit_cost = Column(Numeric(10, 2), default=0)
    total_cost = Column(Numeric(12, 2), default=0)
    minimum_quantity = Column(Integer, nullable=False, default=0)
    quality_status = Column(SQLEnum(QualityStatus), nullable=False, default=QualityStatus.GOOD)

    # Lot tracking
    batch_number = Column(String(50))
    lot_number = Column(String(50))
    expiry_date = Column(Date)
    received_at = Column(DateTime(timezone=True), server_default=func.now())

    version = Column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint('product_id', 'warehouse_id', name='uq_stock_records_product_warehouse'),
        CheckConstraint('quantity >= 0', name='ck_stock_records_quantity_non_negative'),
        CheckConstraint('reserved_quantity >= 0', name='ck_stock_records_reserved_non_negative'),
        CheckConstraint('reserved_quantity <= quantity', name='ck_stock_records_reserved_within_quantity'),
    )
    __mapper_args__ = {"version_id_col": version, "eager_defaults": True}

    # Relationships
    product = relationship("Product", back_populates="stock_records")
    warehouse = relationship("Warehouse", back_populates="stock_records")
    history = relationship(
        "StockRecordHistory",
        back_populates="stock_record",
        order_by="StockRecordHistory.id",
        cascade="all, delete-orphan",
    )

    @property
    def key(self):
        return (self.product_id, self.warehouse_id)

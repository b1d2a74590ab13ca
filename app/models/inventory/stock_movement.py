from sqlalchemy import Column, Integer, String, DateTime, Text, Numeric, ForeignKey, Date, Index, Enum as SQLEnum
from sqlalchemy.orm import relationship
from app.db.base import BaseModel
from app.models.shared.enums import StockMovementType, MovementReason, MovementStatus, ReferenceType

class StockMovement(BaseModel):
    """Append-only ledger entry for one quantity transition"""
    __tablename__ = 'stock_movements'

    product_id = Column(Integer, ForeignKey('products.id'), nullable=False, index=True)
    from_warehouse_id = Column(Integer, ForeignKey('warehouses.id'), nullable=True)
    to_warehouse_id = Column(Integer, ForeignKey('warehouses.id'), nullable=True)
    stock_record_id = Column(Integer, ForeignKey('stock_records.id', ondelete='SET NULL'), nullable=True, index=True)

    movement_type = Column(SQLEnum(StockMovementType), nullable=False)
    reason = Column(SQLEnum(MovementReason), nullable=False)
    quantity = Column(Integer, nullable=False)  # Signed delta
    before_quantity = Column(Integer, nullable=False)
    after_quantity = Column(Integer, nullable=False)
    unit_cost = Column(Numeric(10, 2))
    total_cost = Column(Numeric(12, 2))

    batch_number = Column(String(50))
    lot_number = Column(String(50))
    expiry_date = Column(Date)

    reference_type = Column(SQLEnum(ReferenceType), nullable=True)
    reference_id = Column(Integer, nullable=True)
    reference_number = Column(String(100))
    notes = Column(Text)

    status = Column(SQLEnum(MovementStatus), nullable=False, default=MovementStatus.PENDING)
    processed_by = Column(Integer, ForeignKey('users.id'), nullable=True)
    processed_at = Column(DateTime(timezone=True))
    approved_by = Column(Integer, ForeignKey('users.id'), nullable=True)
    approved_at = Column(DateTime(timezone=True))

    __table_args__ = (
        Index('ix_stock_movements_reference', 'reference_type', 'reference_id'),
    )

    # Relationships
    product = relationship("Product")
    stock_record = relationship("StockRecord")
    processor = relationship("User", foreign_keys=[processed_by])
    approver = relationship("User", foreign_keys=[approved_by])

    @property
    def warehouse_id(self):
        """Warehouse whose stock this entry changed"""
        if self.quantity is not None and self.quantity < 0:
            return self.from_warehouse_id or self.to_warehouse_id
        return self.to_warehouse_id or self.from_warehouse_id

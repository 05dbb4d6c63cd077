# app/models/audit_log.py
from sqlalchemy import Column, Integer, String, DateTime, Text, Index
from sqlalchemy.sql import func

from app.database import Base


class InventoryAuditLog(Base):
    """
    Immutable record of a single inventory level change.

    One row is written for every level the engine changes, on the platform
    where it changed. Rows are never updated or deleted.
    """
    __tablename__ = "inventory_audit_logs"

    id = Column(Integer, primary_key=True)
    merchant_id = Column(String(100), nullable=False, index=True)
    platform = Column(String(20), nullable=False, index=True)
    product_ref = Column(String(100), nullable=False, index=True)
    variant_ref = Column(String(100), nullable=True)

    action = Column(String(50), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    previous_quantity = Column(Integer, nullable=False)
    actor = Column(String(100), nullable=False, index=True)
    reason = Column(Text, nullable=True)
    event_id = Column(String(255), nullable=True)

    timestamp = Column(DateTime(timezone=True), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index('ix_inventory_audit_logs_product_merchant', 'product_ref', 'merchant_id'),
    )

    def __repr__(self):
        return f"<InventoryAuditLog {self.action} {self.platform}:{self.product_ref} {self.previous_quantity}->{self.quantity}>"

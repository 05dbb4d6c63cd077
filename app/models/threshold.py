# app/models/threshold.py
from sqlalchemy import Column, Integer, String, DateTime, UniqueConstraint
from sqlalchemy.sql import func

from app.database import Base


class InventoryThreshold(Base):
    """Low-stock threshold for a product. Products without a row use the configured default."""
    __tablename__ = "inventory_thresholds"

    id = Column(Integer, primary_key=True)
    merchant_id = Column(String(100), nullable=False, index=True)
    platform = Column(String(20), nullable=False)
    product_ref = Column(String(100), nullable=False)
    threshold = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint('merchant_id', 'platform', 'product_ref', name='uq_inventory_threshold'),
    )

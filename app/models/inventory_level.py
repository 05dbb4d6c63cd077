# app/models/inventory_level.py
from sqlalchemy import Column, Integer, String, DateTime, UniqueConstraint, Index
from sqlalchemy.sql import func

from app.database import Base


class InventoryLevel(Base):
    """
    Last known stock level for one sellable unit on one platform.

    Rows are written by the reconciliation engine after every successful
    platform write, and refreshed by catalog sync with observed values.
    """
    __tablename__ = "inventory_levels"

    id = Column(Integer, primary_key=True)
    merchant_id = Column(String(100), nullable=False, index=True)
    platform = Column(String(20), nullable=False)
    product_ref = Column(String(100), nullable=False)
    variant_ref = Column(String(100), nullable=True)
    location_ref = Column(String(100), nullable=True)

    available = Column(Integer, nullable=False, default=0)
    reserved = Column(Integer, nullable=False, default=0)
    incoming = Column(Integer, nullable=False, default=0)

    updated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_by = Column(String(100), nullable=False, default="system")

    __table_args__ = (
        UniqueConstraint(
            'merchant_id', 'platform', 'product_ref', 'variant_ref', 'location_ref',
            name='uq_inventory_level_key'
        ),
        Index('ix_inventory_levels_product', 'platform', 'product_ref'),
    )

    def __repr__(self):
        return f"<InventoryLevel {self.platform}:{self.product_ref}/{self.variant_ref} available={self.available}>"

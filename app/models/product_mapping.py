# app/models/product_mapping.py
from sqlalchemy import Column, Integer, String, UniqueConstraint, DateTime, Index
from sqlalchemy.sql import func

from app.database import Base


class ProductMapping(Base):
    """
    Explicit link between a product on one platform and the product that
    represents the same item on another platform, for a single merchant.
    Lookups treat the link as bidirectional.
    """
    __tablename__ = "product_mappings"

    id = Column(Integer, primary_key=True)
    merchant_id = Column(String(100), nullable=False, index=True)

    platform_a = Column(String(20), nullable=False)
    ref_a = Column(String(100), nullable=False)
    variant_a = Column(String(100), nullable=True)

    platform_b = Column(String(20), nullable=False)
    ref_b = Column(String(100), nullable=False)
    variant_b = Column(String(100), nullable=True)

    match_method = Column(String(20), nullable=False, default="explicit")
    created_by = Column(String(100), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Unique constraint to prevent duplicate mappings
    __table_args__ = (
        UniqueConstraint('merchant_id', 'platform_a', 'ref_a', 'platform_b', name='unique_product_mapping'),
        Index('ix_product_mappings_b', 'merchant_id', 'platform_b', 'ref_b'),
    )

    def __repr__(self):
        return f"<ProductMapping {self.platform_a}:{self.ref_a} <-> {self.platform_b}:{self.ref_b}>"

# app/models/platform_product.py
from sqlalchemy import Column, Integer, String, Boolean, DateTime, JSON, UniqueConstraint, Index
from sqlalchemy.sql import func

from app.database import Base


class PlatformProduct(Base):
    """
    A sellable item (product, or product variant) as it exists on one platform.

    Populated by catalog sync. The reconciliation engine only touches
    `active` and `stock_deactivated`.
    """
    __tablename__ = "platform_products"

    id = Column(Integer, primary_key=True)
    merchant_id = Column(String(100), nullable=False, index=True)
    platform = Column(String(20), nullable=False)
    product_ref = Column(String(100), nullable=False)
    variant_ref = Column(String(100), nullable=True)

    title = Column(String(500), nullable=False, default="")
    sku = Column(String(255), nullable=True)
    active = Column(Boolean, nullable=False, default=True)

    # True only when the engine deactivated the product because stock hit zero
    stock_deactivated = Column(Boolean, nullable=False, default=False)

    platform_data = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint('merchant_id', 'platform', 'product_ref', 'variant_ref', name='uq_platform_product_key'),
        Index('ix_platform_products_sku', 'merchant_id', 'platform', 'sku'),
        Index('ix_platform_products_title', 'merchant_id', 'platform', 'title'),
    )

    def __repr__(self):
        return f"<PlatformProduct {self.platform}:{self.product_ref}/{self.variant_ref} sku={self.sku}>"

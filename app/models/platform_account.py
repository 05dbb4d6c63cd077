# app/models/platform_account.py
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, UniqueConstraint
from sqlalchemy.sql import func

from app.database import Base


class PlatformAccount(Base):
    """
    A merchant's connection to one platform.

    `account_id` is the Stripe connected account id, the Shopify shop domain
    or the Etsy shop id. Tokens are maintained by the OAuth flow.
    """
    __tablename__ = "platform_accounts"

    id = Column(Integer, primary_key=True)
    merchant_id = Column(String(100), nullable=False, index=True)
    platform = Column(String(20), nullable=False)
    account_id = Column(String(255), nullable=False)

    access_token = Column(Text, nullable=True)
    refresh_token = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint('platform', 'account_id', name='uq_platform_account'),
    )

    def __repr__(self):
        return f"<PlatformAccount {self.merchant_id} {self.platform}:{self.account_id}>"

# app/models/webhook.py

from sqlalchemy import Column, Integer, String, DateTime, JSON, UniqueConstraint
from sqlalchemy.sql import func

from app.database import Base


class WebhookReceipt(Base):
    """
    One row per platform webhook delivery that has been applied.

    Platforms deliver at least once; a second delivery with the same
    (platform, event_id) is acknowledged without being applied again.
    """
    __tablename__ = "webhook_receipts"

    id = Column(Integer, primary_key=True)
    platform = Column(String(20), nullable=False)
    event_id = Column(String(255), nullable=False)
    event_type = Column(String(100), nullable=True)
    merchant_id = Column(String(100), nullable=True)
    payload = Column(JSON, nullable=True)

    received_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint('platform', 'event_id', name='uq_webhook_receipt'),
    )

# app/services/inventory_audit.py
import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.exceptions import AuditLogError
from app.models.audit_log import InventoryAuditLog
from app.schemas.inventory import AuditLogCreate, AuditLogFilter, AuditLogRead

logger = logging.getLogger(__name__)


class InventoryAuditService:
    """
    Append-only writer and reader for the inventory audit trail.

    Unlike general activity logging, a failed audit write is an error: every
    inventory change must leave exactly one entry, so `append` raises
    AuditLogError instead of dropping the entry.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], recent_limit: int = 5):
        self.session_factory = session_factory
        self.recent_limit = recent_limit

    async def append(self, entry: AuditLogCreate) -> AuditLogRead:
        """
        Persist one audit entry and return it with its id.

        Raises:
            AuditLogError: if the entry could not be committed
        """
        row = InventoryAuditLog(
            merchant_id=entry.merchant_id,
            platform=entry.platform.value,
            product_ref=entry.product_ref,
            variant_ref=entry.variant_ref,
            action=entry.action.value,
            quantity=entry.quantity,
            previous_quantity=entry.previous_quantity,
            actor=entry.actor,
            reason=entry.reason,
            event_id=entry.event_id,
            timestamp=entry.timestamp or datetime.now(timezone.utc),
        )
        try:
            async with self.session_factory() as session:
                session.add(row)
                await session.commit()
                await session.refresh(row)
        except SQLAlchemyError as e:
            logger.error(
                f"Failed to write audit entry for {entry.platform.value}:{entry.product_ref} "
                f"({entry.previous_quantity} -> {entry.quantity}): {str(e)}"
            )
            raise AuditLogError(f"Failed to create audit log: {str(e)}") from e

        logger.debug(
            f"Audit logged: {row.action} {row.platform}:{row.product_ref} "
            f"{row.previous_quantity} -> {row.quantity} by {row.actor}"
        )
        return AuditLogRead.model_validate(row)

    async def query(self, filters: Optional[AuditLogFilter] = None, limit: int = 100) -> List[AuditLogRead]:
        """Newest first; entries with equal timestamps come back in reverse insertion order."""
        filters = filters or AuditLogFilter()
        stmt = select(InventoryAuditLog)
        if filters.product_ref is not None:
            stmt = stmt.where(InventoryAuditLog.product_ref == filters.product_ref)
        if filters.merchant_id is not None:
            stmt = stmt.where(InventoryAuditLog.merchant_id == filters.merchant_id)
        if filters.actor is not None:
            stmt = stmt.where(InventoryAuditLog.actor == filters.actor)
        if filters.platform is not None:
            stmt = stmt.where(InventoryAuditLog.platform == filters.platform.value)
        stmt = stmt.order_by(InventoryAuditLog.timestamp.desc(), InventoryAuditLog.id.desc()).limit(max(0, limit))

        async with self.session_factory() as session:
            result = await session.execute(stmt)
            rows = result.scalars().all()
        return [AuditLogRead.model_validate(row) for row in rows]

    async def get_by_product(self, product_ref: str, merchant_id: str, limit: int = 100) -> List[AuditLogRead]:
        return await self.query(AuditLogFilter(product_ref=product_ref, merchant_id=merchant_id), limit)

    async def get_by_merchant(self, merchant_id: str, limit: int = 100) -> List[AuditLogRead]:
        return await self.query(AuditLogFilter(merchant_id=merchant_id), limit)

    async def get_by_actor(self, actor: str, limit: int = 100) -> List[AuditLogRead]:
        return await self.query(AuditLogFilter(actor=actor), limit)

    async def recent_for_product(self, product_ref: str, merchant_id: str) -> List[AuditLogRead]:
        """The handful of latest entries shown next to a product on the dashboard."""
        return await self.get_by_product(product_ref, merchant_id, limit=self.recent_limit)

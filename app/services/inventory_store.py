# app/services/inventory_store.py
"""
Persistence for everything around the audit trail: the mirror of last known
inventory levels, platform product records, explicit product mappings,
low-stock thresholds, processed webhook ids and platform accounts.

Every method opens its own short session from the injected session factory.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import and_, delete, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.enums import MappingMethod, PlatformName
from app.integrations.base import ProductInfo
from app.models.inventory_level import InventoryLevel
from app.models.platform_account import PlatformAccount
from app.models.platform_product import PlatformProduct
from app.models.product_mapping import ProductMapping
from app.models.threshold import InventoryThreshold
from app.models.webhook import WebhookReceipt

logger = logging.getLogger(__name__)


def _nullable_eq(column, value):
    """Equality that also matches NULL when value is None."""
    return column.is_(None) if value is None else column == value


class InventoryStore:

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    # Inventory levels

    async def get_level(
        self,
        merchant_id: str,
        platform: PlatformName,
        product_ref: str,
        variant_ref: Optional[str] = None,
        location_ref: Optional[str] = None,
    ) -> Optional[InventoryLevel]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(InventoryLevel).where(
                    InventoryLevel.merchant_id == merchant_id,
                    InventoryLevel.platform == platform.value,
                    InventoryLevel.product_ref == product_ref,
                    _nullable_eq(InventoryLevel.variant_ref, variant_ref),
                    _nullable_eq(InventoryLevel.location_ref, location_ref),
                )
            )
            return result.scalars().first()

    async def record_level(
        self,
        merchant_id: str,
        platform: PlatformName,
        product_ref: str,
        variant_ref: Optional[str],
        location_ref: Optional[str],
        available: int,
        updated_by: str = "system",
        reserved: Optional[int] = None,
        incoming: Optional[int] = None,
    ) -> InventoryLevel:
        """Insert or update the mirror row for one sellable unit."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(InventoryLevel).where(
                    InventoryLevel.merchant_id == merchant_id,
                    InventoryLevel.platform == platform.value,
                    InventoryLevel.product_ref == product_ref,
                    _nullable_eq(InventoryLevel.variant_ref, variant_ref),
                    _nullable_eq(InventoryLevel.location_ref, location_ref),
                )
            )
            level = result.scalars().first()
            if level is None and location_ref is not None:
                # A row recorded before the stocking location was known
                result = await session.execute(
                    select(InventoryLevel).where(
                        InventoryLevel.merchant_id == merchant_id,
                        InventoryLevel.platform == platform.value,
                        InventoryLevel.product_ref == product_ref,
                        _nullable_eq(InventoryLevel.variant_ref, variant_ref),
                        InventoryLevel.location_ref.is_(None),
                    )
                )
                level = result.scalars().first()
                if level is not None:
                    level.location_ref = location_ref
            if level is None:
                level = InventoryLevel(
                    merchant_id=merchant_id,
                    platform=platform.value,
                    product_ref=product_ref,
                    variant_ref=variant_ref,
                    location_ref=location_ref,
                    reserved=0,
                    incoming=0,
                )
                session.add(level)

            level.available = max(0, available)
            if reserved is not None:
                level.reserved = max(0, reserved)
            if incoming is not None:
                level.incoming = max(0, incoming)
            level.updated_at = datetime.now(timezone.utc)
            level.updated_by = updated_by
            await session.commit()
            await session.refresh(level)
            return level

    async def list_levels(self, merchant_id: str) -> List[InventoryLevel]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(InventoryLevel)
                .where(InventoryLevel.merchant_id == merchant_id)
                .order_by(InventoryLevel.platform, InventoryLevel.product_ref, InventoryLevel.variant_ref)
            )
            return list(result.scalars().all())

    # Platform products

    async def get_product(
        self,
        merchant_id: str,
        platform: PlatformName,
        product_ref: str,
        variant_ref: Optional[str] = None,
    ) -> Optional[PlatformProduct]:
        """
        The product record for a ref. When no variant is given, any variant
        row of the product will do (the first by variant ref).
        """
        async with self.session_factory() as session:
            stmt = select(PlatformProduct).where(
                PlatformProduct.merchant_id == merchant_id,
                PlatformProduct.platform == platform.value,
                PlatformProduct.product_ref == product_ref,
            )
            if variant_ref is not None:
                stmt = stmt.where(PlatformProduct.variant_ref == variant_ref)
            stmt = stmt.order_by(PlatformProduct.variant_ref)
            result = await session.execute(stmt)
            return result.scalars().first()

    async def list_products(
        self, merchant_id: str, platforms: Optional[Iterable[PlatformName]] = None
    ) -> List[PlatformProduct]:
        async with self.session_factory() as session:
            stmt = select(PlatformProduct).where(PlatformProduct.merchant_id == merchant_id)
            if platforms is not None:
                stmt = stmt.where(PlatformProduct.platform.in_([p.value for p in platforms]))
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def upsert_product(self, merchant_id: str, platform: PlatformName, info: ProductInfo) -> bool:
        """
        Insert or refresh a product record from a platform listing.
        `stock_deactivated` survives while the product stays inactive. Returns True
        when a new row was created.
        """
        async with self.session_factory() as session:
            result = await session.execute(
                select(PlatformProduct).where(
                    PlatformProduct.merchant_id == merchant_id,
                    PlatformProduct.platform == platform.value,
                    PlatformProduct.product_ref == info.product_ref,
                    _nullable_eq(PlatformProduct.variant_ref, info.variant_ref),
                )
            )
            product = result.scalars().first()
            created = product is None
            if created:
                product = PlatformProduct(
                    merchant_id=merchant_id,
                    platform=platform.value,
                    product_ref=info.product_ref,
                    variant_ref=info.variant_ref,
                    stock_deactivated=False,
                )
                session.add(product)

            product.title = info.title
            product.sku = info.sku
            product.active = info.active
            if info.active:
                product.stock_deactivated = False
            product.platform_data = info.platform_data
            await session.commit()
            return created

    async def set_product_activation(
        self,
        merchant_id: str,
        platform: PlatformName,
        product_ref: str,
        active: bool,
        stock_deactivated: bool,
    ) -> None:
        """Applies to every variant row of the product; activation is product level."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(PlatformProduct).where(
                    PlatformProduct.merchant_id == merchant_id,
                    PlatformProduct.platform == platform.value,
                    PlatformProduct.product_ref == product_ref,
                )
            )
            for product in result.scalars().all():
                product.active = active
                product.stock_deactivated = stock_deactivated
            await session.commit()

    # Explicit mappings

    async def get_explicit_mappings(self, merchant_id: str) -> List[ProductMapping]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(ProductMapping).where(ProductMapping.merchant_id == merchant_id).order_by(ProductMapping.id)
            )
            return list(result.scalars().all())

    async def save_mapping(
        self,
        merchant_id: str,
        platform_a: PlatformName,
        ref_a: str,
        platform_b: PlatformName,
        ref_b: str,
        variant_a: Optional[str] = None,
        variant_b: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> ProductMapping:
        """Create or repoint the explicit mapping from (platform_a, ref_a) to platform_b."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(ProductMapping).where(
                    ProductMapping.merchant_id == merchant_id,
                    or_(
                        and_(
                            ProductMapping.platform_a == platform_a.value,
                            ProductMapping.ref_a == ref_a,
                            ProductMapping.platform_b == platform_b.value,
                        ),
                        and_(
                            ProductMapping.platform_a == platform_b.value,
                            ProductMapping.ref_b == ref_a,
                            ProductMapping.platform_b == platform_a.value,
                        ),
                    ),
                )
            )
            mapping = result.scalars().first()
            if mapping is None:
                mapping = ProductMapping(merchant_id=merchant_id)
                session.add(mapping)

            mapping.platform_a = platform_a.value
            mapping.ref_a = ref_a
            mapping.variant_a = variant_a
            mapping.platform_b = platform_b.value
            mapping.ref_b = ref_b
            mapping.variant_b = variant_b
            mapping.match_method = MappingMethod.EXPLICIT.value
            mapping.created_by = created_by
            await session.commit()
            await session.refresh(mapping)
            logger.info(
                f"Saved mapping for merchant {merchant_id}: "
                f"{platform_a.value}:{ref_a} <-> {platform_b.value}:{ref_b}"
            )
            return mapping

    # Low-stock thresholds

    async def get_threshold(self, merchant_id: str, platform: PlatformName, product_ref: str) -> Optional[int]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(InventoryThreshold.threshold).where(
                    InventoryThreshold.merchant_id == merchant_id,
                    InventoryThreshold.platform == platform.value,
                    InventoryThreshold.product_ref == product_ref,
                )
            )
            return result.scalar_one_or_none()

    async def get_thresholds(self, merchant_id: str) -> Dict[tuple, int]:
        """{(platform, product_ref): threshold} for every product with an explicit threshold"""
        async with self.session_factory() as session:
            result = await session.execute(
                select(InventoryThreshold).where(InventoryThreshold.merchant_id == merchant_id)
            )
            return {(row.platform, row.product_ref): row.threshold for row in result.scalars().all()}

    async def set_threshold(
        self, merchant_id: str, platform: PlatformName, product_ref: str, threshold: int
    ) -> InventoryThreshold:
        async with self.session_factory() as session:
            result = await session.execute(
                select(InventoryThreshold).where(
                    InventoryThreshold.merchant_id == merchant_id,
                    InventoryThreshold.platform == platform.value,
                    InventoryThreshold.product_ref == product_ref,
                )
            )
            row = result.scalars().first()
            if row is None:
                row = InventoryThreshold(merchant_id=merchant_id, platform=platform.value, product_ref=product_ref)
                session.add(row)
            row.threshold = threshold
            await session.commit()
            await session.refresh(row)
            return row

    # Webhook receipts

    async def is_webhook_processed(self, platform: PlatformName, event_id: str) -> bool:
        async with self.session_factory() as session:
            result = await session.execute(
                select(WebhookReceipt.id).where(
                    WebhookReceipt.platform == platform.value,
                    WebhookReceipt.event_id == event_id,
                )
            )
            return result.first() is not None

    async def mark_webhook_processed(
        self,
        platform: PlatformName,
        event_id: str,
        event_type: Optional[str] = None,
        merchant_id: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Record a delivery. Returns False if the (platform, event_id) pair was
        already recorded, which means the delivery is a duplicate.
        """
        async with self.session_factory() as session:
            session.add(
                WebhookReceipt(
                    platform=platform.value,
                    event_id=event_id,
                    event_type=event_type,
                    merchant_id=merchant_id,
                    payload=payload,
                )
            )
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                logger.info(f"Duplicate {platform.value} webhook {event_id} ignored")
                return False
            return True

    async def release_webhook(self, platform: PlatformName, event_id: str) -> None:
        """Forget a delivery that could not be applied so a redelivery is processed."""
        async with self.session_factory() as session:
            await session.execute(
                delete(WebhookReceipt).where(
                    WebhookReceipt.platform == platform.value,
                    WebhookReceipt.event_id == event_id,
                )
            )
            await session.commit()

    # Platform accounts

    async def get_account(self, platform: PlatformName, account_id: str) -> Optional[PlatformAccount]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(PlatformAccount).where(
                    PlatformAccount.platform == platform.value,
                    PlatformAccount.account_id == account_id,
                    PlatformAccount.is_active.is_(True),
                )
            )
            return result.scalars().first()

    async def list_accounts(self, merchant_id: Optional[str] = None) -> List[PlatformAccount]:
        async with self.session_factory() as session:
            stmt = select(PlatformAccount).where(PlatformAccount.is_active.is_(True))
            if merchant_id is not None:
                stmt = stmt.where(PlatformAccount.merchant_id == merchant_id)
            result = await session.execute(stmt.order_by(PlatformAccount.merchant_id, PlatformAccount.platform))
            return list(result.scalars().all())

    async def save_account(
        self,
        merchant_id: str,
        platform: PlatformName,
        account_id: str,
        access_token: Optional[str] = None,
        refresh_token: Optional[str] = None,
    ) -> PlatformAccount:
        async with self.session_factory() as session:
            result = await session.execute(
                select(PlatformAccount).where(
                    PlatformAccount.platform == platform.value,
                    PlatformAccount.account_id == account_id,
                )
            )
            account = result.scalars().first()
            if account is None:
                account = PlatformAccount(platform=platform.value, account_id=account_id)
                session.add(account)
            account.merchant_id = merchant_id
            account.access_token = access_token
            account.refresh_token = refresh_token
            account.is_active = True
            await session.commit()
            await session.refresh(account)
            return account

    async def update_tokens(
        self,
        platform: PlatformName,
        account_id: str,
        access_token: str,
        refresh_token: Optional[str] = None,
    ) -> None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(PlatformAccount).where(
                    PlatformAccount.platform == platform.value,
                    PlatformAccount.account_id == account_id,
                )
            )
            account = result.scalars().first()
            if account is None:
                logger.warning(f"No {platform.value} account {account_id} to store refreshed tokens on")
                return
            account.access_token = access_token
            if refresh_token:
                account.refresh_token = refresh_token
            await session.commit()

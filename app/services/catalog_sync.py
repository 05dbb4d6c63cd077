# app/services/catalog_sync.py
"""
Refreshes the local picture of a merchant's catalog from the platforms.

Product records (titles and SKUs) are what the mapping resolver matches on, and
observed levels feed the combined inventory view. Sync only records what the
platform reports; it never writes to a platform and never audits.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from app.core.enums import PlatformName
from app.core.exceptions import BaseServiceError

logger = logging.getLogger(__name__)


@dataclass
class SyncReport:
    merchant_id: str
    platform: PlatformName
    processed: int = 0
    new_products: int = 0
    updated_products: int = 0
    levels_recorded: int = 0
    errors: List[str] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None

    @property
    def status(self) -> str:
        return "error" if self.errors else "success"

    def to_dict(self) -> Dict:
        return {
            "merchant_id": self.merchant_id,
            "platform": self.platform.value,
            "status": self.status,
            "processed": self.processed,
            "new_products": self.new_products,
            "updated_products": self.updated_products,
            "levels_recorded": self.levels_recorded,
            "errors": self.errors,
        }


class CatalogSyncService:

    def __init__(self, stock_manager, store):
        self.stock_manager = stock_manager
        self.store = store

    async def sync_platform(self, merchant_id: str, platform: PlatformName) -> SyncReport:
        """
        Page through the platform's products and upsert records and observed levels.
        An error stops this platform's sync and is reported, not raised.
        """
        report = SyncReport(merchant_id=merchant_id, platform=platform)
        try:
            adapter = self.stock_manager.get_adapter(merchant_id, platform)
            logger.info(f"Starting {platform.value} catalog sync for merchant {merchant_id}")
            async for info in adapter.list_products():
                report.processed += 1
                created = await self.store.upsert_product(merchant_id, platform, info)
                if created:
                    report.new_products += 1
                else:
                    report.updated_products += 1

                if info.available is not None:
                    await self.store.record_level(
                        merchant_id, platform, info.product_ref, info.variant_ref, info.location_ref,
                        info.available, updated_by="sync", reserved=info.reserved, incoming=info.incoming,
                    )
                    report.levels_recorded += 1
        except BaseServiceError as e:
            logger.error(f"{platform.value} catalog sync for merchant {merchant_id} failed: {e}")
            report.errors.append(str(e))

        report.finished_at = datetime.now(timezone.utc)
        logger.info(
            f"{platform.value} catalog sync for {merchant_id} finished: {report.processed} processed, "
            f"{report.new_products} new, {report.updated_products} updated, {len(report.errors)} errors"
        )
        return report

    async def sync_merchant(self, merchant_id: str) -> List[SyncReport]:
        reports = []
        for platform in self.stock_manager.platforms_for(merchant_id):
            reports.append(await self.sync_platform(merchant_id, platform))
        return reports

# app/services/combined_inventory.py
import logging
from typing import Dict, List, Optional, Tuple

from app.core.enums import PlatformName
from app.core.exceptions import ValidationError
from app.schemas.inventory import (
    CombinedInventoryItem,
    InventorySummary,
    PlatformBreakdown,
    ThresholdRead,
)

logger = logging.getLogger(__name__)


def is_low_stock(available: int, threshold: int) -> bool:
    return 0 < available <= threshold


def summarize(items: List[CombinedInventoryItem]) -> InventorySummary:
    """Fold a combined list into totals, per-platform subtotals and stock alerts."""
    summary = InventorySummary(
        by_platform={platform: PlatformBreakdown() for platform in PlatformName.ordered()}
    )
    for item in items:
        summary.total_products += 1
        summary.total_available += item.available
        summary.total_reserved += item.reserved
        summary.total_incoming += item.incoming

        breakdown = summary.by_platform[item.platform]
        breakdown.count += 1
        breakdown.available += item.available

        if item.is_out_of_stock:
            summary.out_of_stock += 1
        elif item.is_low_stock:
            summary.low_stock += 1
    return summary


class CombinedInventoryService:
    """
    Read-only view over the last known levels of every platform a merchant
    sells on. Nothing is cached; each call reads the store afresh, so results
    are only as current as the last engine write or catalog sync.
    """

    def __init__(self, store, default_threshold: int = 10):
        self.store = store
        self.default_threshold = default_threshold

    async def get_combined_inventory(self, merchant_id: str) -> List[CombinedInventoryItem]:
        levels = await self.store.list_levels(merchant_id)
        products = await self.store.list_products(merchant_id)
        thresholds = await self.store.get_thresholds(merchant_id)

        records: Dict[Tuple[str, str, Optional[str]], object] = {
            (p.platform, p.product_ref, p.variant_ref): p for p in products
        }

        items: List[CombinedInventoryItem] = []
        for level in levels:
            record = records.get((level.platform, level.product_ref, level.variant_ref))
            threshold = thresholds.get((level.platform, level.product_ref), self.default_threshold)
            items.append(
                CombinedInventoryItem(
                    platform=PlatformName(level.platform),
                    product_ref=level.product_ref,
                    variant_ref=level.variant_ref,
                    title=record.title if record is not None else "",
                    sku=record.sku if record is not None else None,
                    available=level.available,
                    reserved=level.reserved,
                    incoming=level.incoming,
                    location_ref=level.location_ref,
                    updated_at=level.updated_at,
                    threshold=threshold,
                    is_low_stock=is_low_stock(level.available, threshold),
                    is_out_of_stock=level.available == 0,
                )
            )

        order = {p: i for i, p in enumerate(PlatformName.ordered())}
        items.sort(key=lambda i: (order[i.platform], i.product_ref, i.variant_ref or "", i.location_ref or ""))
        return items

    async def get_summary(self, merchant_id: str) -> InventorySummary:
        items = await self.get_combined_inventory(merchant_id)
        summary = summarize(items)
        logger.debug(
            f"Inventory summary for {merchant_id}: {summary.total_products} products, "
            f"{summary.low_stock} low, {summary.out_of_stock} out of stock"
        )
        return summary

    async def get_threshold(self, merchant_id: str, platform: PlatformName, product_ref: str) -> ThresholdRead:
        value = await self.store.get_threshold(merchant_id, platform, product_ref)
        if value is None:
            return ThresholdRead(
                product_ref=product_ref, platform=platform, threshold=self.default_threshold, is_default=True
            )
        return ThresholdRead(product_ref=product_ref, platform=platform, threshold=value, is_default=False)

    async def set_threshold(
        self, merchant_id: str, platform: PlatformName, product_ref: str, threshold: int
    ) -> ThresholdRead:
        if isinstance(threshold, bool) or not isinstance(threshold, int) or threshold < 0:
            raise ValidationError(f"Threshold must be a non-negative integer, got {threshold!r}")
        await self.store.set_threshold(merchant_id, platform, product_ref, threshold)
        logger.info(f"Low-stock threshold for {platform.value}:{product_ref} set to {threshold}")
        return ThresholdRead(product_ref=product_ref, platform=platform, threshold=threshold, is_default=False)

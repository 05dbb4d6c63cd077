import logging
from datetime import datetime
from typing import AsyncIterator, Dict, List, Optional, Tuple

from app.core.enums import PlatformName
from app.core.exceptions import NotFoundError
from app.integrations.base import PlatformAdapter, PlatformLevel, ProductInfo, TokenRefresher
from app.services.shopify.client import ShopifyClient

logger = logging.getLogger(__name__)

DEFAULT_VARIANT_TITLE = "Default Title"
LEVELS_BATCH_SIZE = 50


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


class ShopifyPlatform(PlatformAdapter):
    """
    Shopify storefront.

    product_ref is the product id, variant_ref the variant id (first variant
    when omitted) and location_ref a location id (first stocked location
    when omitted). Purchasability is the product status: 'active' vs 'draft'.
    """

    platform = PlatformName.SHOPIFY

    def __init__(
        self,
        api_credentials: Dict[str, str],
        token_refresher: Optional[TokenRefresher] = None,
        client: Optional[ShopifyClient] = None,
    ):
        super().__init__(api_credentials, token_refresher)
        self.client = client or ShopifyClient(
            shop_domain=api_credentials["shop_domain"],
            access_token=api_credentials["access_token"],
            api_version=api_credentials.get("api_version", "2024-01"),
        )

    async def _product_and_variant(self, product_ref: str, variant_ref: Optional[str]) -> Tuple[Dict, Dict]:
        product = await self.client.get_product(product_ref)
        variants = product.get("variants") or []
        if not variants:
            raise NotFoundError(f"Shopify product {product_ref} has no variants", platform=self.platform.value)
        if variant_ref is None:
            return product, variants[0]
        for variant in variants:
            if str(variant.get("id")) == str(variant_ref):
                return product, variant
        raise NotFoundError(
            f"Variant {variant_ref} not found on Shopify product {product_ref}", platform=self.platform.value
        )

    @staticmethod
    def _pick_level(levels, location_ref: Optional[str]) -> Optional[Dict]:
        if location_ref is not None:
            for level in levels:
                if str(level.get("location_id")) == str(location_ref):
                    return level
            return None
        return levels[0] if levels else None

    async def get_level(
        self,
        product_ref: str,
        variant_ref: Optional[str] = None,
        location_ref: Optional[str] = None,
    ) -> PlatformLevel:
        product, variant = await self._product_and_variant(product_ref, variant_ref)
        active = product.get("status") == "active"
        levels = await self.client.get_inventory_levels([str(variant["inventory_item_id"])])
        level = self._pick_level(levels, location_ref)
        variant_id = str(variant["id"])
        if level is None:
            return PlatformLevel(available=0, active=active, variant_ref=variant_id, location_ref=location_ref)
        return PlatformLevel(
            available=max(0, int(level.get("available") or 0)),
            active=active,
            variant_ref=variant_id,
            location_ref=str(level.get("location_id")),
            updated_at=_parse_timestamp(level.get("updated_at")),
        )

    async def set_level(
        self,
        product_ref: str,
        variant_ref: Optional[str],
        quantity: int,
        location_ref: Optional[str] = None,
        updated_by: Optional[str] = None,
    ) -> None:
        _, variant = await self._product_and_variant(product_ref, variant_ref)
        inventory_item_id = str(variant["inventory_item_id"])

        if location_ref is None:
            levels = await self.client.get_inventory_levels([inventory_item_id])
            if levels:
                location_ref = str(levels[0]["location_id"])
            else:
                locations = await self.client.get_locations()
                if not locations:
                    raise NotFoundError("Shop has no locations to stock", platform=self.platform.value)
                location_ref = str(locations[0]["id"])

        await self.client.set_inventory_level(inventory_item_id, location_ref, quantity)
        self._last_sync = datetime.now()
        logger.debug(
            f"Shopify variant {variant.get('id')} at location {location_ref} set to {quantity}"
        )

    async def set_active(self, product_ref: str, active: bool) -> None:
        await self.client.update_product_status(product_ref, "active" if active else "draft")
        logger.info(f"Shopify product {product_ref} {'activated' if active else 'set to draft'}")

    async def _first_levels(self, inventory_item_ids: List[str]) -> Dict[str, Dict]:
        """First stocked level per inventory item, the same one get_level picks by default."""
        first: Dict[str, Dict] = {}
        for start in range(0, len(inventory_item_ids), LEVELS_BATCH_SIZE):
            batch = inventory_item_ids[start:start + LEVELS_BATCH_SIZE]
            for level in await self.client.get_inventory_levels(batch):
                first.setdefault(str(level.get("inventory_item_id")), level)
        return first

    async def list_products(self) -> AsyncIterator[ProductInfo]:
        page_info = None
        while True:
            products, page_info = await self.client.list_products_page(limit=250, page_info=page_info)
            item_ids = [
                str(variant["inventory_item_id"])
                for product in products
                for variant in product.get("variants") or []
                if variant.get("inventory_item_id") is not None
            ]
            levels = await self._first_levels(item_ids) if item_ids else {}

            for product in products:
                active = product.get("status") == "active"
                for variant in product.get("variants") or []:
                    level = levels.get(str(variant.get("inventory_item_id")))
                    if level is not None:
                        available = level.get("available")
                        location_ref = str(level.get("location_id"))
                    else:
                        available = variant.get("inventory_quantity")
                        location_ref = None
                    yield ProductInfo(
                        product_ref=str(product["id"]),
                        variant_ref=str(variant["id"]),
                        title=product.get("title") or "",
                        sku=variant.get("sku") or None,
                        active=active,
                        available=max(0, int(available or 0)),
                        location_ref=location_ref,
                        platform_data={
                            "inventory_item_id": variant.get("inventory_item_id"),
                            "variant_title": variant.get("title") if variant.get("title") != DEFAULT_VARIANT_TITLE else None,
                        },
                    )
            if not page_info:
                break

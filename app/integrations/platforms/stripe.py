import json
import logging
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, Optional

from app.core.enums import PlatformName
from app.integrations.base import PlatformAdapter, PlatformLevel, ProductInfo, TokenRefresher
from app.services.stripe.client import StripeClient

logger = logging.getLogger(__name__)

INVENTORY_METADATA_KEY = "inventory"


def parse_inventory_metadata(metadata: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Read the inventory blob Stripe products carry in metadata["inventory"]:
    {"inventory": int, "lastUpdated": iso8601, "lastUpdatedBy": str}.
    Missing or unreadable metadata counts as zero stock.
    """
    raw = (metadata or {}).get(INVENTORY_METADATA_KEY)
    if raw:
        try:
            parsed = json.loads(raw)
            if isinstance(parsed, dict):
                return parsed
        except (TypeError, ValueError):
            logger.error(f"Error parsing inventory metadata: {raw!r}")
    return {"inventory": 0, "lastUpdated": None, "lastUpdatedBy": "system"}


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


class StripePlatform(PlatformAdapter):
    """
    Stripe connected-account catalog.

    Products have no variants or locations, so variant_ref/location_ref are
    ignored. Stripe does not report concurrent modification: last write wins.
    """

    platform = PlatformName.STRIPE

    def __init__(
        self,
        api_credentials: Dict[str, str],
        token_refresher: Optional[TokenRefresher] = None,
        client: Optional[StripeClient] = None,
    ):
        super().__init__(api_credentials, token_refresher)
        self.client = client or StripeClient(
            secret_key=api_credentials["secret_key"],
            account_id=api_credentials.get("account_id"),
            base_url=api_credentials.get("api_base", "https://api.stripe.com/v1"),
        )

    async def get_level(
        self,
        product_ref: str,
        variant_ref: Optional[str] = None,
        location_ref: Optional[str] = None,
    ) -> PlatformLevel:
        product = await self.client.get_product(product_ref)
        inventory = parse_inventory_metadata(product.get("metadata"))
        return PlatformLevel(
            available=max(0, int(inventory.get("inventory") or 0)),
            active=bool(product.get("active", True)),
            updated_at=_parse_timestamp(inventory.get("lastUpdated")),
            updated_by=inventory.get("lastUpdatedBy"),
        )

    async def set_level(
        self,
        product_ref: str,
        variant_ref: Optional[str],
        quantity: int,
        location_ref: Optional[str] = None,
        updated_by: Optional[str] = None,
    ) -> None:
        blob = {
            "inventory": quantity,
            "lastUpdated": datetime.now(timezone.utc).isoformat(),
            "lastUpdatedBy": updated_by or "system",
        }
        await self.client.update_product(product_ref, {"metadata": {INVENTORY_METADATA_KEY: json.dumps(blob)}})
        self._last_sync = datetime.now()
        logger.debug(f"Stripe product {product_ref} inventory set to {quantity}")

    async def set_active(self, product_ref: str, active: bool) -> None:
        await self.client.update_product(product_ref, {"active": active})
        logger.info(f"Stripe product {product_ref} {'activated' if active else 'deactivated'}")

    async def list_products(self) -> AsyncIterator[ProductInfo]:
        starting_after = None
        while True:
            page = await self.client.list_products(limit=100, starting_after=starting_after)
            data = page.get("data", [])
            for product in data:
                metadata = product.get("metadata") or {}
                inventory = parse_inventory_metadata(metadata)
                yield ProductInfo(
                    product_ref=product["id"],
                    title=product.get("name") or "",
                    sku=metadata.get("sku") or None,
                    active=bool(product.get("active", True)),
                    available=max(0, int(inventory.get("inventory") or 0)),
                    platform_data={"metadata": metadata},
                )
            if not page.get("has_more") or not data:
                break
            starting_after = data[-1]["id"]

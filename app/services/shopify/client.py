# app.services.shopify.client

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

import httpx

from app.core.enums import PlatformName
from app.services.base_client import BasePlatformClient

logger = logging.getLogger(__name__)

_NEXT_LINK = re.compile(r'<([^>]+)>;\s*rel="next"')
_PAGE_INFO = re.compile(r"[?&]page_info=([^&]+)")


def next_page_info(link_header: Optional[str]) -> Optional[str]:
    """Extract the page_info cursor of the rel="next" entry of a Shopify Link header."""
    if not link_header:
        return None
    for part in link_header.split(","):
        match = _NEXT_LINK.search(part)
        if match:
            cursor = _PAGE_INFO.search(match.group(1))
            if cursor:
                return cursor.group(1)
    return None


class ShopifyClient(BasePlatformClient):
    """
    Async client for the Shopify Admin REST API of a single shop.

    Inventory in Shopify hangs off inventory items rather than variants:
    variant -> inventory_item_id -> inventory_levels (one per location).

    Documentation: https://shopify.dev/docs/api/admin-rest
    """

    platform = PlatformName.SHOPIFY

    def __init__(
        self,
        shop_domain: str,
        access_token: str,
        api_version: str = "2024-01",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(timeout=timeout, transport=transport)
        self.shop_domain = shop_domain
        self.access_token = access_token
        self.api_version = api_version
        self.BASE_URL = f"https://{shop_domain}/admin/api/{api_version}"

    def _get_headers(self) -> Dict[str, str]:
        return {
            "X-Shopify-Access-Token": self.access_token,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    # Product operations

    async def get_product(self, product_id: str) -> Dict:
        data = await self._make_request("GET", f"/products/{product_id}.json")
        return data.get("product", {})

    async def update_product_status(self, product_id: str, status: str) -> Dict:
        """Set product status to 'active', 'draft' or 'archived'"""
        payload = {"product": {"id": int(product_id) if product_id.isdigit() else product_id, "status": status}}
        data = await self._make_request("PUT", f"/products/{product_id}.json", json_data=payload)
        return data.get("product", {})

    async def get_variant(self, variant_id: str) -> Dict:
        data = await self._make_request("GET", f"/variants/{variant_id}.json")
        return data.get("variant", {})

    async def list_products_page(
        self, limit: int = 250, page_info: Optional[str] = None
    ) -> Tuple[List[Dict], Optional[str]]:
        """
        One page of products. Returns (products, next_page_info); the cursor is
        None on the last page. Shopify forbids other filters alongside page_info.
        """
        params: Dict[str, Any] = {"limit": limit}
        if page_info:
            params["page_info"] = page_info
        response = await self._send("GET", "/products.json", params=params)
        products = response.json().get("products", [])
        return products, next_page_info(response.headers.get("Link"))

    # Inventory operations

    async def get_inventory_levels(self, inventory_item_ids: List[str]) -> List[Dict]:
        params = {"inventory_item_ids": ",".join(str(i) for i in inventory_item_ids)}
        data = await self._make_request("GET", "/inventory_levels.json", params=params)
        return data.get("inventory_levels", [])

    async def set_inventory_level(self, inventory_item_id: str, location_id: str, available: int) -> Dict:
        payload = {
            "location_id": int(location_id) if str(location_id).isdigit() else location_id,
            "inventory_item_id": int(inventory_item_id) if str(inventory_item_id).isdigit() else inventory_item_id,
            "available": available,
        }
        data = await self._make_request("POST", "/inventory_levels/set.json", json_data=payload)
        return data.get("inventory_level", {})

    async def get_locations(self) -> List[Dict]:
        data = await self._make_request("GET", "/locations.json")
        return data.get("locations", [])

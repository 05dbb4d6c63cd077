# app.services.stripe.client

import logging
from typing import Any, Dict, List, Optional

import httpx

from app.core.enums import PlatformName
from app.services.base_client import BasePlatformClient

logger = logging.getLogger(__name__)


def flatten_form(data: Dict[str, Any], prefix: str = "") -> Dict[str, str]:
    """
    Stripe takes form-encoded bodies with bracketed keys for nested values,
    e.g. {"metadata": {"inventory": "..."}} -> {"metadata[inventory]": "..."}.
    """
    flat: Dict[str, str] = {}
    for key, value in data.items():
        full_key = f"{prefix}[{key}]" if prefix else key
        if isinstance(value, dict):
            flat.update(flatten_form(value, full_key))
        elif isinstance(value, bool):
            flat[full_key] = "true" if value else "false"
        elif value is None:
            flat[full_key] = ""
        else:
            flat[full_key] = str(value)
    return flat


class StripeClient(BasePlatformClient):
    """
    Async client for the Stripe REST API, scoped to one connected account.

    Stripe has no inventory concept; stock lives in each product's metadata
    (see app.integrations.platforms.stripe). This client only knows about
    products and checkout sessions.

    Documentation: https://stripe.com/docs/api
    """

    platform = PlatformName.STRIPE

    def __init__(
        self,
        secret_key: str,
        account_id: Optional[str] = None,
        base_url: str = "https://api.stripe.com/v1",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(timeout=timeout, transport=transport)
        self.secret_key = secret_key
        self.account_id = account_id
        self.BASE_URL = base_url

    def _get_headers(self) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.secret_key}",
            "Accept": "application/json",
        }
        if self.account_id:
            headers["Stripe-Account"] = self.account_id
        return headers

    async def get_product(self, product_id: str) -> Dict:
        return await self._make_request("GET", f"/products/{product_id}")

    async def update_product(self, product_id: str, fields: Dict[str, Any]) -> Dict:
        """POST /products/{id} with form-encoded fields (metadata keys are merged by Stripe)"""
        return await self._make_request("POST", f"/products/{product_id}", form_data=flatten_form(fields))

    async def list_products(self, limit: int = 100, starting_after: Optional[str] = None) -> Dict:
        params: Dict[str, Any] = {"limit": limit}
        if starting_after:
            params["starting_after"] = starting_after
        return await self._make_request("GET", "/products", params=params)

    async def get_checkout_line_items(self, session_id: str) -> List[Dict]:
        """
        Line items of a completed checkout session, with the price expanded so
        the product id is available.
        """
        items: List[Dict] = []
        starting_after = None
        while True:
            params: Dict[str, Any] = {"limit": 100, "expand[]": "data.price"}
            if starting_after:
                params["starting_after"] = starting_after
            page = await self._make_request("GET", f"/checkout/sessions/{session_id}/line_items", params=params)
            data = page.get("data", [])
            items.extend(data)
            if not page.get("has_more") or not data:
                break
            starting_after = data[-1]["id"]
        logger.debug(f"Checkout session {session_id} has {len(items)} line items")
        return items

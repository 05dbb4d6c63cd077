# app.services.etsy.client

import logging
from typing import Any, Dict, Optional

import httpx

from app.core.enums import PlatformName
from app.core.exceptions import AuthExpiredError, PlatformServiceError
from app.services.base_client import BasePlatformClient

logger = logging.getLogger(__name__)


class EtsyClient(BasePlatformClient):
    """
    Async client for the Etsy Open API v3, scoped to one shop.

    Listings carry a top level `quantity` and `state`; the authoritative
    per-offering quantities live in the listing inventory resource, which
    can only be replaced as a whole (read-modify-write).

    Documentation: https://developers.etsy.com/documentation/reference
    """

    platform = PlatformName.ETSY

    def __init__(
        self,
        shop_id: str,
        api_key: str,
        access_token: str,
        refresh_token: Optional[str] = None,
        base_url: str = "https://openapi.etsy.com/v3",
        token_url: str = "https://api.etsy.com/v3/public/oauth/token",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(timeout=timeout, transport=transport)
        self.shop_id = shop_id
        self.api_key = api_key
        self.access_token = access_token
        self.refresh_token = refresh_token
        self.token_url = token_url
        self.BASE_URL = base_url

    def _get_headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self.api_key,
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    # Listing operations

    async def get_listing(self, listing_id: str) -> Dict:
        return await self._make_request("GET", f"/application/listings/{listing_id}")

    async def update_listing_state(self, listing_id: str, state: str) -> Dict:
        """Set listing state to 'active' or 'inactive'"""
        return await self._make_request(
            "PATCH",
            f"/application/shops/{self.shop_id}/listings/{listing_id}",
            json_data={"state": state},
        )

    async def list_listings(self, limit: int = 100, offset: int = 0, state: Optional[str] = None) -> Dict:
        params: Dict[str, Any] = {"limit": limit, "offset": offset}
        if state:
            params["state"] = state
        return await self._make_request("GET", f"/application/shops/{self.shop_id}/listings", params=params)

    # Inventory operations

    async def get_listing_inventory(self, listing_id: str) -> Dict:
        return await self._make_request("GET", f"/application/listings/{listing_id}/inventory")

    async def update_listing_inventory(self, listing_id: str, inventory: Dict) -> Dict:
        return await self._make_request(
            "PUT", f"/application/listings/{listing_id}/inventory", json_data=inventory
        )

    # Auth

    async def refresh_access_token(self) -> Dict:
        """
        Exchange the refresh token for a new access token and keep it on the client.

        Returns the token response so the caller can persist the new tokens.
        """
        if not self.refresh_token:
            raise AuthExpiredError("No Etsy refresh token available", platform=self.platform.value)

        form = {
            "grant_type": "refresh_token",
            "client_id": self.api_key,
            "refresh_token": self.refresh_token,
        }
        try:
            data = await self._make_request(
                "POST",
                self.token_url,
                form_data=form,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        except PlatformServiceError as e:
            logger.error(f"Failed to refresh Etsy access token for shop {self.shop_id}: {e}")
            raise AuthExpiredError(f"Token refresh failed: {e}", platform=self.platform.value)

        self.access_token = data["access_token"]
        if data.get("refresh_token"):
            self.refresh_token = data["refresh_token"]
        logger.info(f"Refreshed Etsy access token for shop {self.shop_id}")
        return data

import logging
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Optional

from app.core.enums import PlatformName
from app.core.exceptions import NotFoundError
from app.integrations.base import PlatformAdapter, PlatformLevel, ProductInfo, TokenRefresher
from app.services.etsy.client import EtsyClient

logger = logging.getLogger(__name__)

# Fields the inventory endpoint returns but refuses on update
_READ_ONLY_PRODUCT_FIELDS = ("product_id", "is_deleted")
_READ_ONLY_OFFERING_FIELDS = ("offering_id", "is_deleted")
_READ_ONLY_PROPERTY_FIELDS = ("scale_name",)


def _money_to_decimal(price: Any) -> Any:
    """The inventory read returns Money objects; the write expects a plain decimal."""
    if isinstance(price, dict) and "amount" in price:
        divisor = price.get("divisor") or 1
        return round(price["amount"] / divisor, 2)
    return price


def _rebalance(quantities: List[int], total: int) -> List[int]:
    """
    Adjust offering quantities so they sum to `total`. Extra stock goes to the
    first offering; a shortfall is taken from the last offerings first.
    """
    quantities = list(quantities)
    difference = total - sum(quantities)
    if difference >= 0:
        quantities[0] += difference
        return quantities
    for i in reversed(range(len(quantities))):
        taken = min(quantities[i], -difference)
        quantities[i] -= taken
        difference += taken
        if difference == 0:
            break
    return quantities


def build_inventory_update(inventory: Dict[str, Any], quantity: int, variant_ref: Optional[str] = None) -> Dict[str, Any]:
    """
    Turn a listing inventory read into the body of an inventory update in which
    the enabled offerings of the listing (or of the matching product when
    variant_ref is given) add up to `quantity`, the number get_level reads back.
    """
    products: List[Dict[str, Any]] = []
    targets: List[Dict[str, Any]] = []
    matched = variant_ref is None
    for product in inventory.get("products", []):
        is_target = variant_ref is None or str(product.get("product_id")) == str(variant_ref)
        matched = matched or is_target
        offerings = []
        for offering in product.get("offerings", []):
            cleaned = {k: v for k, v in offering.items() if k not in _READ_ONLY_OFFERING_FIELDS}
            cleaned["price"] = _money_to_decimal(offering.get("price"))
            if is_target and offering.get("is_enabled", True):
                targets.append(cleaned)
            offerings.append(cleaned)
        cleaned_product = {k: v for k, v in product.items() if k not in _READ_ONLY_PRODUCT_FIELDS}
        cleaned_product["offerings"] = offerings
        cleaned_product["property_values"] = [
            {k: v for k, v in prop.items() if k not in _READ_ONLY_PROPERTY_FIELDS}
            for prop in product.get("property_values", [])
        ]
        products.append(cleaned_product)

    if not matched:
        raise NotFoundError(f"Etsy inventory product {variant_ref} not found", platform=PlatformName.ETSY.value)
    if not targets:
        raise NotFoundError("Etsy inventory has no enabled offering to stock", platform=PlatformName.ETSY.value)

    current = [max(0, int(o.get("quantity") or 0)) for o in targets]
    for offering, new_quantity in zip(targets, _rebalance(current, max(0, quantity))):
        offering["quantity"] = new_quantity

    body: Dict[str, Any] = {"products": products}
    for key in ("price_on_property", "quantity_on_property", "sku_on_property"):
        if key in inventory:
            body[key] = inventory[key]
    return body


class EtsyPlatform(PlatformAdapter):
    """
    Etsy marketplace listings.

    product_ref is the listing id. variant_ref, when given, is an inventory
    product id of a listing with variations. Purchasability is the listing
    state: 'active' vs 'inactive'. Etsy has no reserved stock.
    """

    platform = PlatformName.ETSY

    def __init__(
        self,
        api_credentials: Dict[str, str],
        token_refresher: Optional[TokenRefresher] = None,
        client: Optional[EtsyClient] = None,
    ):
        super().__init__(api_credentials, token_refresher)
        self.client = client or EtsyClient(
            shop_id=api_credentials["shop_id"],
            api_key=api_credentials["api_key"],
            access_token=api_credentials["access_token"],
            refresh_token=api_credentials.get("refresh_token"),
        )

    async def get_level(
        self,
        product_ref: str,
        variant_ref: Optional[str] = None,
        location_ref: Optional[str] = None,
    ) -> PlatformLevel:
        listing = await self.client.get_listing(product_ref)
        active = listing.get("state") == "active"

        if variant_ref is None:
            available = int(listing.get("quantity") or 0)
        else:
            inventory = await self.client.get_listing_inventory(product_ref)
            available = None
            for product in inventory.get("products", []):
                if str(product.get("product_id")) == str(variant_ref):
                    available = sum(
                        int(o.get("quantity") or 0) for o in product.get("offerings", []) if o.get("is_enabled", True)
                    )
                    break
            if available is None:
                raise NotFoundError(
                    f"Etsy inventory product {variant_ref} not found on listing {product_ref}",
                    platform=self.platform.value,
                )

        updated = listing.get("updated_timestamp")
        return PlatformLevel(
            available=max(0, available),
            active=active,
            updated_at=datetime.fromtimestamp(updated, tz=timezone.utc) if updated else None,
        )

    async def set_level(
        self,
        product_ref: str,
        variant_ref: Optional[str],
        quantity: int,
        location_ref: Optional[str] = None,
        updated_by: Optional[str] = None,
    ) -> None:
        inventory = await self.client.get_listing_inventory(product_ref)
        body = build_inventory_update(inventory, quantity, variant_ref)
        await self.client.update_listing_inventory(product_ref, body)
        self._last_sync = datetime.now()
        logger.debug(f"Etsy listing {product_ref} inventory set to {quantity}")

    async def set_active(self, product_ref: str, active: bool) -> None:
        await self.client.update_listing_state(product_ref, "active" if active else "inactive")
        logger.info(f"Etsy listing {product_ref} {'activated' if active else 'deactivated'}")

    async def list_products(self) -> AsyncIterator[ProductInfo]:
        limit = 100
        offset = 0
        while True:
            page = await self.client.list_listings(limit=limit, offset=offset)
            results = page.get("results", [])
            for listing in results:
                skus = listing.get("skus") or []
                yield ProductInfo(
                    product_ref=str(listing["listing_id"]),
                    title=listing.get("title") or "",
                    sku=skus[0] if skus else None,
                    active=listing.get("state") == "active",
                    available=max(0, int(listing.get("quantity") or 0)),
                    platform_data={
                        "state": listing.get("state"),
                        "has_variations": listing.get("has_variations", False),
                    },
                )
            offset += len(results)
            total = page.get("count")
            if len(results) < limit or (total is not None and offset >= total):
                break

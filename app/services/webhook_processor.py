"""
Purpose: Turns verified platform webhook deliveries into reconciliation work.

Functionality: Each platform's raw payload is parsed into one of the tagged event variants from
app.integrations.events (or recognised as a catalog change, or ignored). Deliveries are deduplicated by
(platform, event_id) because platforms deliver at least once and delta events are not safe to replay.
The resulting InventoryEvents are applied through the shared StockManager.

Catalog notifications (Shopify inventory_levels/update and products/update, Etsy listing_updated and
inventory_updated) are answered with a catalog sync rather than a reconciliation: they are usually the echo
of our own writes, and reconciling them would bounce the same change between platforms.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from app.core.enums import PlatformName
from app.core.exceptions import BaseServiceError, ValidationError
from app.integrations.events import (
    EtsyReceiptCreated,
    EtsyReceiptUpdated,
    LineItem,
    ShopifyOrderCancelled,
    ShopifyOrderCreated,
    StripeCheckoutCompleted,
)
from app.integrations.stock_manager import ReconciliationResult

logger = logging.getLogger(__name__)

SHOPIFY_CATALOG_TOPICS = {"inventory_levels/update", "products/update", "variants/update"}
ETSY_CATALOG_EVENTS = {"listing_updated", "inventory_updated"}


@dataclass
class WebhookOutcome:
    platform: PlatformName
    event_id: Optional[str]
    status: str  # processed | duplicate | ignored | catalog_sync
    results: List[ReconciliationResult] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "platform": self.platform.value,
            "event_id": self.event_id,
            "status": self.status,
            "applied": len(self.results),
            "errors": self.errors,
        }


def _line_quantity(line: Dict[str, Any]) -> int:
    """Units on an order line; 1 only when the platform leaves the field out."""
    quantity = line.get("quantity")
    return 1 if quantity is None else int(quantity)


def shopify_line_items(order: Dict[str, Any]) -> List[LineItem]:
    items = []
    for line in order.get("line_items") or []:
        if not line.get("product_id") or _line_quantity(line) < 1:
            # Custom line items have no product, zero-quantity lines move no stock
            continue
        items.append(
            LineItem(
                product_ref=str(line["product_id"]),
                variant_ref=str(line["variant_id"]) if line.get("variant_id") else None,
                quantity=_line_quantity(line),
            )
        )
    return items


def etsy_line_items(payload: Dict[str, Any]) -> List[LineItem]:
    return [
        LineItem(product_ref=str(t["listing_id"]), quantity=_line_quantity(t))
        for t in payload.get("transactions") or []
        if t.get("listing_id") and _line_quantity(t) >= 1
    ]


def stripe_line_items(raw_items: List[Dict[str, Any]]) -> List[LineItem]:
    items = []
    for item in raw_items:
        price = item.get("price") or {}
        product = price.get("product")
        if isinstance(product, dict):
            product = product.get("id")
        if not product or _line_quantity(item) < 1:
            continue
        items.append(LineItem(product_ref=product, quantity=_line_quantity(item)))
    return items


class WebhookProcessor:

    def __init__(self, stock_manager, store, catalog_sync):
        self.stock_manager = stock_manager
        self.store = store
        self.catalog_sync = catalog_sync

    async def process(
        self,
        merchant_id: str,
        platform: PlatformName,
        event_id: Optional[str],
        variant,
        event_type: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> WebhookOutcome:
        """
        Apply one parsed delivery exactly once.

        The delivery is claimed before anything is applied. If nothing could be
        applied the claim is released so a redelivery can try again; once any
        event has been applied the claim stays, since replaying the rest would
        double-count the ones that succeeded.
        """
        if event_id and not await self.store.mark_webhook_processed(
            platform, event_id, event_type=event_type or variant.kind, merchant_id=merchant_id, payload=payload
        ):
            return WebhookOutcome(platform, event_id, "duplicate")

        outcome = WebhookOutcome(platform, event_id, "processed")
        try:
            events = variant.to_inventory_events()
            if not events:
                outcome.status = "ignored"
                return outcome

            for event in events:
                try:
                    outcome.results.append(await self.stock_manager.apply_event(event))
                except BaseServiceError as e:
                    logger.error(f"{platform.value} webhook {event_id}: failed to apply {event.product_ref}: {e}")
                    outcome.errors.append(f"{event.product_ref}: {e}")
        except Exception:
            if not outcome.results and event_id:
                await self.store.release_webhook(platform, event_id)
            raise

        if outcome.errors and not outcome.results and event_id:
            await self.store.release_webhook(platform, event_id)
        return outcome

    async def _catalog_changed(self, merchant_id: str, platform: PlatformName, event_id: Optional[str]) -> WebhookOutcome:
        report = await self.catalog_sync.sync_platform(merchant_id, platform)
        return WebhookOutcome(platform, event_id, "catalog_sync", errors=list(report.errors))

    async def handle_stripe(self, merchant_id: str, payload: Dict[str, Any]) -> WebhookOutcome:
        event_id = payload.get("id")
        event_type = payload.get("type")
        if event_type != "checkout.session.completed":
            logger.info(f"Unhandled Stripe event type: {event_type}")
            return WebhookOutcome(PlatformName.STRIPE, event_id, "ignored")

        session = (payload.get("data") or {}).get("object") or {}
        if session.get("mode") not in ("payment", "subscription"):
            return WebhookOutcome(PlatformName.STRIPE, event_id, "ignored")
        if event_id and await self.store.is_webhook_processed(PlatformName.STRIPE, event_id):
            return WebhookOutcome(PlatformName.STRIPE, event_id, "duplicate")

        adapter = self.stock_manager.get_adapter(merchant_id, PlatformName.STRIPE)
        raw_items = await adapter.client.get_checkout_line_items(session["id"])
        try:
            variant = StripeCheckoutCompleted(
                event_id=event_id,
                merchant_id=merchant_id,
                session_id=session["id"],
                mode=session.get("mode") or "payment",
                payment_link=session.get("payment_link"),
                line_items=stripe_line_items(raw_items),
            )
        except PydanticValidationError as e:
            raise ValidationError(f"Malformed Stripe checkout session: {e}") from e
        return await self.process(merchant_id, PlatformName.STRIPE, event_id, variant, event_type, payload)

    async def handle_shopify(
        self, merchant_id: str, topic: str, payload: Dict[str, Any], webhook_id: Optional[str] = None
    ) -> WebhookOutcome:
        event_id = webhook_id or (f"{topic}:{payload.get('id')}" if payload.get("id") else None)
        if topic in SHOPIFY_CATALOG_TOPICS:
            return await self._catalog_changed(merchant_id, PlatformName.SHOPIFY, event_id)

        try:
            if topic == "orders/create":
                variant = ShopifyOrderCreated(
                    event_id=event_id, merchant_id=merchant_id, order_id=str(payload.get("id")),
                    line_items=shopify_line_items(payload),
                )
            elif topic == "orders/cancelled":
                variant = ShopifyOrderCancelled(
                    event_id=event_id, merchant_id=merchant_id, order_id=str(payload.get("id")),
                    line_items=shopify_line_items(payload),
                )
            else:
                logger.info(f"Unhandled Shopify webhook topic: {topic}")
                return WebhookOutcome(PlatformName.SHOPIFY, event_id, "ignored")
        except PydanticValidationError as e:
            raise ValidationError(f"Malformed Shopify {topic} payload: {e}") from e
        return await self.process(merchant_id, PlatformName.SHOPIFY, event_id, variant, topic, payload)

    async def handle_etsy(self, merchant_id: str, payload: Dict[str, Any]) -> WebhookOutcome:
        event_type = payload.get("event_type") or payload.get("type")
        receipt_id = payload.get("receipt_id")
        event_id = payload.get("event_id") or (
            f"{event_type}:{receipt_id}:{payload.get('status') or ''}" if receipt_id else None
        )
        if event_type in ETSY_CATALOG_EVENTS:
            return await self._catalog_changed(merchant_id, PlatformName.ETSY, event_id)

        try:
            if event_type == "receipt_created":
                variant = EtsyReceiptCreated(
                    event_id=event_id, merchant_id=merchant_id, receipt_id=str(receipt_id),
                    line_items=etsy_line_items(payload),
                )
            elif event_type == "receipt_updated":
                variant = EtsyReceiptUpdated(
                    event_id=event_id, merchant_id=merchant_id, receipt_id=str(receipt_id),
                    status=payload.get("status"), line_items=etsy_line_items(payload),
                )
            else:
                logger.info(f"Unhandled Etsy webhook event type: {event_type}")
                return WebhookOutcome(PlatformName.ETSY, event_id, "ignored")
        except PydanticValidationError as e:
            raise ValidationError(f"Malformed Etsy {event_type} payload: {e}") from e
        return await self.process(merchant_id, PlatformName.ETSY, event_id, variant, event_type, payload)

"""
Purpose: Defines the data structures for events that trigger stock updates.
Contents:
InventoryEvent (Pydantic Model): the single normalized input of the reconciliation engine. It says which product on which
platform changed, whether `amount` is a relative delta or an absolute count, and who/why for the audit trail.

Platform events (tagged variants): one model per supported platform notification (Stripe checkout completion,
Shopify order created/cancelled, Etsy receipt created/updated, manual adjustment). Webhook ingress parses raw payloads
into exactly one of these; each knows how to turn itself into InventoryEvents so the engine never inspects raw JSON.
"""

from datetime import datetime, timezone
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field, StrictInt, TypeAdapter

from app.core.enums import AuditAction, EventMode, PlatformName


class InventoryEvent(BaseModel):
    merchant_id: str
    platform: PlatformName
    product_ref: str
    variant_ref: Optional[str] = None
    location_ref: Optional[str] = None
    mode: EventMode
    amount: StrictInt
    action: AuditAction
    reason: Optional[str] = None
    actor: str = "system"
    event_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def key(self):
        return (self.merchant_id, self.platform.value, self.product_ref, self.variant_ref)


class LineItem(BaseModel):
    product_ref: str
    variant_ref: Optional[str] = None
    quantity: int = Field(1, ge=1)


class StripeCheckoutCompleted(BaseModel):
    kind: Literal["stripe.checkout_completed"] = "stripe.checkout_completed"
    event_id: str
    merchant_id: str
    session_id: str
    mode: str = "payment"
    payment_link: Optional[str] = None
    line_items: List[LineItem] = Field(default_factory=list)

    def _action(self) -> AuditAction:
        if self.mode == "subscription":
            return AuditAction.SUBSCRIPTION
        if self.payment_link:
            return AuditAction.PAYMENT_LINK
        return AuditAction.PURCHASE

    def to_inventory_events(self) -> List[InventoryEvent]:
        if self.mode not in ("payment", "subscription"):
            return []
        action = self._action()
        return [
            InventoryEvent(
                merchant_id=self.merchant_id,
                platform=PlatformName.STRIPE,
                product_ref=item.product_ref,
                mode=EventMode.DELTA,
                amount=-item.quantity,
                action=action,
                reason=f"Purchase of {item.quantity} units via checkout session {self.session_id}",
                event_id=self.event_id,
            )
            for item in self.line_items
        ]


class ShopifyOrderCreated(BaseModel):
    kind: Literal["shopify.order_created"] = "shopify.order_created"
    event_id: str
    merchant_id: str
    order_id: str
    line_items: List[LineItem] = Field(default_factory=list)

    def to_inventory_events(self) -> List[InventoryEvent]:
        return [
            InventoryEvent(
                merchant_id=self.merchant_id,
                platform=PlatformName.SHOPIFY,
                product_ref=item.product_ref,
                variant_ref=item.variant_ref,
                mode=EventMode.DELTA,
                amount=-item.quantity,
                action=AuditAction.PURCHASE,
                reason=f"Shopify order {self.order_id}",
                event_id=self.event_id,
            )
            for item in self.line_items
        ]


class ShopifyOrderCancelled(BaseModel):
    kind: Literal["shopify.order_cancelled"] = "shopify.order_cancelled"
    event_id: str
    merchant_id: str
    order_id: str
    line_items: List[LineItem] = Field(default_factory=list)

    def to_inventory_events(self) -> List[InventoryEvent]:
        return [
            InventoryEvent(
                merchant_id=self.merchant_id,
                platform=PlatformName.SHOPIFY,
                product_ref=item.product_ref,
                variant_ref=item.variant_ref,
                mode=EventMode.DELTA,
                amount=item.quantity,
                action=AuditAction.ORDER_CANCELLED,
                reason=f"Shopify order {self.order_id} cancelled",
                event_id=self.event_id,
            )
            for item in self.line_items
        ]


class EtsyReceiptCreated(BaseModel):
    kind: Literal["etsy.receipt_created"] = "etsy.receipt_created"
    event_id: str
    merchant_id: str
    receipt_id: str
    line_items: List[LineItem] = Field(default_factory=list)

    def to_inventory_events(self) -> List[InventoryEvent]:
        return [
            InventoryEvent(
                merchant_id=self.merchant_id,
                platform=PlatformName.ETSY,
                product_ref=item.product_ref,
                mode=EventMode.DELTA,
                amount=-item.quantity,
                action=AuditAction.PURCHASE,
                reason=f"Etsy receipt {self.receipt_id}",
                event_id=self.event_id,
            )
            for item in self.line_items
        ]


class EtsyReceiptUpdated(BaseModel):
    """
    Only cancellations move stock. The decrement for a sale was already
    applied when the receipt was created, so 'completed' is a no-op here.
    """
    kind: Literal["etsy.receipt_updated"] = "etsy.receipt_updated"
    event_id: str
    merchant_id: str
    receipt_id: str
    status: Optional[str] = None
    line_items: List[LineItem] = Field(default_factory=list)

    def to_inventory_events(self) -> List[InventoryEvent]:
        if (self.status or "").lower() != "cancelled":
            return []
        return [
            InventoryEvent(
                merchant_id=self.merchant_id,
                platform=PlatformName.ETSY,
                product_ref=item.product_ref,
                mode=EventMode.DELTA,
                amount=item.quantity,
                action=AuditAction.ORDER_CANCELLED,
                reason=f"Etsy receipt {self.receipt_id} cancelled",
                event_id=self.event_id,
            )
            for item in self.line_items
        ]


class ManualAdjustment(BaseModel):
    kind: Literal["manual.adjustment"] = "manual.adjustment"
    merchant_id: str
    platform: PlatformName
    product_ref: str
    variant_ref: Optional[str] = None
    quantity: StrictInt
    user_id: str
    reason: Optional[str] = None
    event_id: Optional[str] = None

    def to_inventory_events(self) -> List[InventoryEvent]:
        return [
            InventoryEvent(
                merchant_id=self.merchant_id,
                platform=self.platform,
                product_ref=self.product_ref,
                variant_ref=self.variant_ref,
                mode=EventMode.ABSOLUTE,
                amount=self.quantity,
                action=AuditAction.MANUAL_ADJUSTMENT,
                reason=self.reason or "Manual inventory adjustment",
                actor=self.user_id,
                event_id=self.event_id,
            )
        ]


PlatformEvent = Annotated[
    Union[
        StripeCheckoutCompleted,
        ShopifyOrderCreated,
        ShopifyOrderCancelled,
        EtsyReceiptCreated,
        EtsyReceiptUpdated,
        ManualAdjustment,
    ],
    Field(discriminator="kind"),
]

platform_event_adapter = TypeAdapter(PlatformEvent)


def parse_platform_event(data: dict) -> PlatformEvent:
    """Validate a dict carrying a `kind` tag into its event variant."""
    return platform_event_adapter.validate_python(data)

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import Field

from app.core.enums import AuditAction, MappingMethod, PlatformName, SiblingStatus
from app.schemas.base import BaseSchema


class AuditLogCreate(BaseSchema):
    merchant_id: str
    platform: PlatformName
    product_ref: str
    variant_ref: Optional[str] = None
    action: AuditAction
    quantity: int
    previous_quantity: int
    actor: str
    reason: Optional[str] = None
    event_id: Optional[str] = None
    timestamp: Optional[datetime] = None


class AuditLogRead(BaseSchema):
    id: int
    merchant_id: str
    platform: str
    product_ref: str
    variant_ref: Optional[str] = None
    action: str
    quantity: int
    previous_quantity: int
    actor: str
    reason: Optional[str] = None
    event_id: Optional[str] = None
    timestamp: datetime


class AuditLogFilter(BaseSchema):
    """Any combination of fields; unset fields do not filter."""
    product_ref: Optional[str] = None
    merchant_id: Optional[str] = None
    actor: Optional[str] = None
    platform: Optional[PlatformName] = None


class CombinedInventoryItem(BaseSchema):
    platform: PlatformName
    product_ref: str
    variant_ref: Optional[str] = None
    title: str = ""
    sku: Optional[str] = None
    available: int = 0
    reserved: int = 0
    incoming: int = 0
    location_ref: Optional[str] = None
    updated_at: Optional[datetime] = None
    threshold: int
    is_low_stock: bool = False
    is_out_of_stock: bool = False


class PlatformBreakdown(BaseSchema):
    count: int = 0
    available: int = 0


class InventorySummary(BaseSchema):
    total_products: int = 0
    total_available: int = 0
    total_reserved: int = 0
    total_incoming: int = 0
    by_platform: Dict[PlatformName, PlatformBreakdown] = Field(default_factory=dict)
    low_stock: int = 0
    out_of_stock: int = 0


class CombinedInventoryResponse(BaseSchema):
    items: List[CombinedInventoryItem]
    summary: InventorySummary


class ManualUpdateRequest(BaseSchema):
    quantity: int
    user_id: str
    account_id: str
    reason: Optional[str] = None
    platform: PlatformName = PlatformName.STRIPE
    variant_ref: Optional[str] = None


class SiblingOutcomeRead(BaseSchema):
    platform: PlatformName
    product_ref: str
    variant_ref: Optional[str] = None
    method: MappingMethod
    status: SiblingStatus
    previous_quantity: Optional[int] = None
    new_quantity: Optional[int] = None
    error: Optional[str] = None


class ManualUpdateResponse(BaseSchema):
    success: bool
    new_quantity: int
    previous_quantity: int
    siblings: List[SiblingOutcomeRead] = Field(default_factory=list)


class ThresholdUpdate(BaseSchema):
    threshold: int
    account_id: str
    platform: PlatformName = PlatformName.STRIPE


class ThresholdRead(BaseSchema):
    product_ref: str
    platform: PlatformName
    threshold: int
    is_default: bool = False

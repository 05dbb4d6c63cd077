from .inventory_level import InventoryLevel
from .platform_product import PlatformProduct
from .product_mapping import ProductMapping
from .audit_log import InventoryAuditLog
from .threshold import InventoryThreshold
from .webhook import WebhookReceipt
from .platform_account import PlatformAccount

# This ensures all models are registered with SQLAlchemy
__all__ = [
    'InventoryLevel',
    'PlatformProduct',
    'ProductMapping',
    'InventoryAuditLog',
    'InventoryThreshold',
    'WebhookReceipt',
    'PlatformAccount',
]

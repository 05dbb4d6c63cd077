"""
Shared enums and constants used across the application.
"""

from enum import Enum


class PlatformName(str, Enum):
    """
    The three commerce platforms a merchant can connect.

    STRIPE is the payments platform (connected-account product catalog),
    SHOPIFY the storefront, ETSY the marketplace.
    """
    STRIPE = "stripe"
    SHOPIFY = "shopify"
    ETSY = "etsy"

    @property
    def slug(self):
        return self.value.lower()

    @classmethod
    def ordered(cls):
        """Stable platform order used wherever output order matters."""
        return [cls.STRIPE, cls.SHOPIFY, cls.ETSY]


class EventMode(str, Enum):
    DELTA = "delta"
    ABSOLUTE = "absolute"


class AuditAction(str, Enum):
    """Why an inventory level changed"""
    PURCHASE = "purchase"
    MANUAL_ADJUSTMENT = "manual_adjustment"
    SUBSCRIPTION = "subscription"
    PAYMENT_LINK = "payment_link"
    SYNC_RESTORE = "sync_restore"
    ORDER_CANCELLED = "order_cancelled"


class MappingMethod(str, Enum):
    EXPLICIT = "explicit"
    SKU = "sku"
    NAME = "name"


class ActivationChange(str, Enum):
    NONE = "none"
    DEACTIVATED = "deactivated"
    REACTIVATED = "reactivated"


class SiblingStatus(str, Enum):
    """Outcome of propagating a change to one sibling record."""
    UPDATED = "updated"
    SKIPPED = "skipped"      # Sibling record not found on the platform
    FAILED = "failed"        # Adapter error, timeout, auth or rate limit


class SyncStatus(str, Enum):
    """Health of the most recent write to a platform."""
    PENDING = "pending"
    SYNCED = "synced"
    ERROR = "error"
    OUT_OF_SYNC = "out_of_sync"

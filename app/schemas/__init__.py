"""
Schema exports for the application.
"""

# Base schemas
from .base import BaseSchema

# Inventory schemas
from .inventory import (
    AuditLogCreate,
    AuditLogRead,
    AuditLogFilter,
    CombinedInventoryItem,
    CombinedInventoryResponse,
    PlatformBreakdown,
    InventorySummary,
    ManualUpdateRequest,
    ManualUpdateResponse,
    SiblingOutcomeRead,
    ThresholdUpdate,
    ThresholdRead,
)

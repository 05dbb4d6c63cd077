from fastapi import Request

from app.integrations.stock_manager import StockManager
from app.services.combined_inventory import CombinedInventoryService
from app.services.inventory_audit import InventoryAuditService
from app.services.inventory_store import InventoryStore
from app.services.webhook_processor import WebhookProcessor


def get_stock_manager(request: Request) -> StockManager:
    """Dependency for the engine composed at startup."""
    return request.app.state.stock_manager


def get_audit_service(request: Request) -> InventoryAuditService:
    return request.app.state.audit_service


def get_inventory_store(request: Request) -> InventoryStore:
    return request.app.state.inventory_store


def get_combined_inventory(request: Request) -> CombinedInventoryService:
    return request.app.state.combined_inventory


def get_webhook_processor(request: Request) -> WebhookProcessor:
    return request.app.state.webhook_processor

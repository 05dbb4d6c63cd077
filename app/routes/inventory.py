# app/routes/inventory.py
"""
Manual inventory updates and the dashboard's read endpoints.

Requests identify the merchant through a connected platform account id (by
default the Stripe connected account, as the dashboard sends it).
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query

from app.core.enums import AuditAction, EventMode, PlatformName
from app.core.exceptions import BaseServiceError, status_code_for
from app.dependencies import get_audit_service, get_combined_inventory, get_inventory_store, get_stock_manager
from app.integrations.events import InventoryEvent
from app.integrations.stock_manager import StockManager
from app.schemas.inventory import (
    AuditLogRead,
    CombinedInventoryResponse,
    ManualUpdateRequest,
    ManualUpdateResponse,
    SiblingOutcomeRead,
    ThresholdRead,
    ThresholdUpdate,
)
from app.services.combined_inventory import CombinedInventoryService, summarize
from app.services.inventory_audit import InventoryAuditService
from app.services.inventory_store import InventoryStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["inventory"])


async def _merchant_for(store: InventoryStore, platform: PlatformName, account_id: str) -> str:
    account = await store.get_account(platform, account_id)
    if account is None:
        raise HTTPException(status_code=404, detail=f"Unknown {platform.value} account {account_id}")
    return account.merchant_id


@router.patch("/products/{product_ref}/inventory", response_model=ManualUpdateResponse)
async def update_inventory(
    product_ref: str,
    body: ManualUpdateRequest,
    store: InventoryStore = Depends(get_inventory_store),
    stock_manager: StockManager = Depends(get_stock_manager),
):
    """Set a product's available quantity. Siblings on other platforms follow best-effort."""
    if body.quantity < 0:
        raise HTTPException(status_code=400, detail="Invalid quantity")
    if not body.user_id:
        raise HTTPException(status_code=400, detail="User ID required")

    merchant_id = await _merchant_for(store, body.platform, body.account_id)
    event = InventoryEvent(
        merchant_id=merchant_id,
        platform=body.platform,
        product_ref=product_ref,
        variant_ref=body.variant_ref,
        mode=EventMode.ABSOLUTE,
        amount=body.quantity,
        action=AuditAction.MANUAL_ADJUSTMENT,
        reason=body.reason or "Manual inventory adjustment",
        actor=body.user_id,
    )

    try:
        result = await stock_manager.apply_event(event)
    except BaseServiceError as e:
        logger.error(f"Error updating inventory of {product_ref}: {e}")
        raise HTTPException(status_code=status_code_for(e), detail=f"Failed to update inventory: {e}")

    return ManualUpdateResponse(
        success=True,
        new_quantity=result.new_quantity,
        previous_quantity=result.previous_quantity,
        siblings=[SiblingOutcomeRead.model_validate(s) for s in result.siblings],
    )


@router.get("/products/{product_ref}/inventory/audit-logs", response_model=List[AuditLogRead])
async def get_audit_logs(
    product_ref: str,
    account_id: str = Query(...),
    platform: PlatformName = Query(PlatformName.STRIPE),
    limit: int = Query(5, ge=1, le=100),
    store: InventoryStore = Depends(get_inventory_store),
    audit_service: InventoryAuditService = Depends(get_audit_service),
):
    merchant_id = await _merchant_for(store, platform, account_id)
    return await audit_service.get_by_product(product_ref, merchant_id, limit=limit)


@router.get("/inventory/combined", response_model=CombinedInventoryResponse)
async def get_combined(
    merchant_id: str = Query(...),
    combined: CombinedInventoryService = Depends(get_combined_inventory),
):
    items = await combined.get_combined_inventory(merchant_id)
    return CombinedInventoryResponse(items=items, summary=summarize(items))


@router.get("/products/{product_ref}/threshold", response_model=ThresholdRead)
async def get_threshold(
    product_ref: str,
    account_id: str = Query(...),
    platform: PlatformName = Query(PlatformName.STRIPE),
    store: InventoryStore = Depends(get_inventory_store),
    combined: CombinedInventoryService = Depends(get_combined_inventory),
):
    merchant_id = await _merchant_for(store, platform, account_id)
    return await combined.get_threshold(merchant_id, platform, product_ref)


@router.put("/products/{product_ref}/threshold", response_model=ThresholdRead)
async def set_threshold(
    product_ref: str,
    body: ThresholdUpdate,
    store: InventoryStore = Depends(get_inventory_store),
    combined: CombinedInventoryService = Depends(get_combined_inventory),
):
    merchant_id = await _merchant_for(store, body.platform, body.account_id)
    try:
        return await combined.set_threshold(merchant_id, body.platform, product_ref, body.threshold)
    except BaseServiceError as e:
        raise HTTPException(status_code=status_code_for(e), detail=str(e))

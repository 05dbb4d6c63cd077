from fastapi import APIRouter, Depends, Request
from sqlalchemy import text

from app.dependencies import get_stock_manager
from app.integrations.stock_manager import StockManager

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Basic health check"""
    return {"status": "healthy", "service": "Inventory Reconciler"}


@router.get("/health/db")
async def database_health(request: Request):
    """Check database connectivity"""
    try:
        async with request.app.state.session_factory() as session:
            await session.execute(text("SELECT 1"))
        return {"status": "healthy", "database": "connected"}
    except Exception as e:
        return {"status": "unhealthy", "database": "error", "error": str(e)}


@router.get("/health/sync")
async def sync_health(stock_manager: StockManager = Depends(get_stock_manager)):
    """Queue and per-platform success/failure counters of the stock manager"""
    return stock_manager.get_metrics()


@router.get("/health/sync/{merchant_id}")
async def merchant_sync_health(merchant_id: str, stock_manager: StockManager = Depends(get_stock_manager)):
    """Last sync status and time of each of a merchant's connected platforms"""
    return {
        platform: {"status": status, "last_sync": last_sync}
        for platform, (status, last_sync) in stock_manager.platform_status(merchant_id).items()
    }

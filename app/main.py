# app/main.py

import asyncio
import logging
import os
import subprocess
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from app.core.config import get_settings
from app.core.logging_config import configure_logging
from app.database import create_db_engine, create_session_factory
from app.integrations.setup import build_services
from app.routes import health, inventory
from app.routes.webhooks import router as webhook_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    settings = get_settings()

    # Run migrations on startup
    if os.getenv('RUN_MIGRATIONS', 'false').lower() == 'true':
        logger.info("Running database migrations...")
        result = subprocess.run(['alembic', 'upgrade', 'head'], capture_output=True, text=True)
        if result.returncode == 0:
            logger.info("Migrations completed successfully")
        else:
            logger.error(f"Migration failed: {result.stderr}")

    engine = create_db_engine(settings)
    session_factory = create_session_factory(engine)
    services = await build_services(session_factory, settings)

    app.state.session_factory = session_factory
    app.state.stock_manager = services.stock_manager
    app.state.audit_service = services.audit_service
    app.state.inventory_store = services.store
    app.state.combined_inventory = services.combined_inventory
    app.state.catalog_sync = services.catalog_sync
    app.state.webhook_processor = services.webhook_processor

    try:
        yield  # This is where the app runs
    finally:
        task = services.stock_manager.monitor_task
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await engine.dispose()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Inventory Reconciler",
        description="Keeps merchant inventory consistent across Stripe, Shopify and Etsy",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Add middleware to handle HTTPS behind proxy
    @app.middleware("http")
    async def proxy_headers_middleware(request: Request, call_next):
        forwarded_proto = request.headers.get("x-forwarded-proto")
        if forwarded_proto == "https":
            request.scope["scheme"] = "https"
        return await call_next(request)

    app.include_router(inventory.router)
    app.include_router(webhook_router)  # Webhooks authenticate by signature
    app.include_router(health.router)
    return app


app = create_app()

"""
Purpose: Handles the initialization and wiring of the StockManager and its platform adapters during application startup
(and in CLI commands).

Contents:
build_adapter: turns one stored PlatformAccount into the matching adapter (StripePlatform, ShopifyPlatform, EtsyPlatform),
wiring a token refresher where the platform issues expiring tokens.
setup_stock_manager: creates the StockManager, registers an adapter for every active account, and optionally starts the
manager's background start_sync_monitor task using asyncio.create_task.
build_services: composes the store, audit service, resolver, stock manager and the services layered on them.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from app.core.config import Settings, get_settings
from app.core.enums import PlatformName
from app.integrations.base import PlatformAdapter
from app.integrations.platforms.etsy import EtsyPlatform
from app.integrations.platforms.shopify import ShopifyPlatform
from app.integrations.platforms.stripe import StripePlatform
from app.integrations.stock_manager import StockManager
from app.services.catalog_sync import CatalogSyncService
from app.services.combined_inventory import CombinedInventoryService
from app.services.etsy.client import EtsyClient
from app.services.inventory_audit import InventoryAuditService
from app.services.inventory_store import InventoryStore
from app.services.mapping_resolver import MappingResolver
from app.services.webhook_processor import WebhookProcessor

logger = logging.getLogger(__name__)


def build_adapter(account, settings: Settings, store) -> PlatformAdapter:
    """Create the adapter for a stored platform account"""
    platform = PlatformName(account.platform)

    if platform == PlatformName.STRIPE:
        # Connected accounts are driven with the platform key plus the Stripe-Account header
        return StripePlatform({
            "secret_key": settings.STRIPE_SECRET_KEY,
            "account_id": account.account_id,
            "api_base": settings.STRIPE_API_BASE,
        })

    if platform == PlatformName.SHOPIFY:
        # Offline access tokens do not expire, so there is nothing to refresh
        return ShopifyPlatform({
            "shop_domain": account.account_id,
            "access_token": account.access_token or "",
            "api_version": settings.SHOPIFY_API_VERSION,
        })

    client = EtsyClient(
        shop_id=account.account_id,
        api_key=settings.ETSY_API_KEY,
        access_token=account.access_token or "",
        refresh_token=account.refresh_token,
        base_url=settings.ETSY_API_BASE,
        token_url=settings.ETSY_TOKEN_URL,
    )

    async def refresh_etsy_tokens():
        data = await client.refresh_access_token()
        await store.update_tokens(
            PlatformName.ETSY, account.account_id, data["access_token"], data.get("refresh_token")
        )

    return EtsyPlatform({"shop_id": account.account_id}, token_refresher=refresh_etsy_tokens, client=client)


async def setup_stock_manager(
    store,
    audit_service,
    resolver,
    settings: Optional[Settings] = None,
    start_monitor: bool = True,
) -> StockManager:
    """
    Initialize and configure the stock manager with every connected platform account
    """
    settings = settings or get_settings()
    manager = StockManager(audit_service=audit_service, store=store, resolver=resolver, settings=settings)

    for account in await store.list_accounts():
        try:
            adapter = build_adapter(account, settings, store)
        except (KeyError, ValueError) as e:
            logger.error(f"Failed to initialize {account.platform} adapter for merchant {account.merchant_id}: {e}")
            continue
        manager.register_platform(account.merchant_id, PlatformName(account.platform), adapter)

    if start_monitor:
        logger.info("Starting StockManager sync monitor task...")
        manager.monitor_task = asyncio.create_task(manager.start_sync_monitor())

    return manager


@dataclass
class Services:
    """Everything the routes and CLI commands need, built around one session factory"""
    store: InventoryStore
    audit_service: InventoryAuditService
    resolver: MappingResolver
    stock_manager: StockManager
    combined_inventory: CombinedInventoryService
    catalog_sync: CatalogSyncService
    webhook_processor: WebhookProcessor


async def build_services(session_factory, settings: Optional[Settings] = None, start_monitor: bool = True) -> Services:
    settings = settings or get_settings()
    store = InventoryStore(session_factory)
    audit_service = InventoryAuditService(session_factory, recent_limit=settings.RECENT_AUDIT_LIMIT)
    resolver = MappingResolver(store, cache_ttl=settings.MAPPING_CACHE_TTL_SECONDS)
    stock_manager = await setup_stock_manager(store, audit_service, resolver, settings, start_monitor=start_monitor)
    catalog_sync = CatalogSyncService(stock_manager, store)
    return Services(
        store=store,
        audit_service=audit_service,
        resolver=resolver,
        stock_manager=stock_manager,
        combined_inventory=CombinedInventoryService(store, default_threshold=settings.DEFAULT_LOW_STOCK_THRESHOLD),
        catalog_sync=catalog_sync,
        webhook_processor=WebhookProcessor(stock_manager, store, catalog_sync),
    )

# tests/conftest.py
import pytest
from sqlalchemy.ext.asyncio import create_async_engine

import app.models  # noqa: F401  registers every table on Base.metadata
from app.core.config import Settings
from app.core.enums import PlatformName
from app.database import Base, create_session_factory
from app.integrations.stock_manager import StockManager
from app.services.catalog_sync import CatalogSyncService
from app.services.combined_inventory import CombinedInventoryService
from app.services.inventory_audit import InventoryAuditService
from app.services.inventory_store import InventoryStore
from app.services.mapping_resolver import MappingResolver
from app.services.webhook_processor import WebhookProcessor
from tests.mocks.mock_platform import MockPlatform

MERCHANT_ID = "merchant_1"


@pytest.fixture
def settings():
    """Provide test settings"""
    return Settings(
        DATABASE_URL="sqlite+aiosqlite://",
        STRIPE_SECRET_KEY="sk_test",
        STRIPE_WEBHOOK_SECRET="whsec_test",
        SHOPIFY_WEBHOOK_SECRET="shpss_test",
        ETSY_API_KEY="etsy_key",
        ADAPTER_TIMEOUT_SECONDS=0.5,
        CONFLICT_RETRIES=2,
        FANOUT_CONCURRENCY=5,
        AUTO_REACTIVATE=True,
        MAPPING_CACHE_TTL_SECONDS=0,
        DEFAULT_LOW_STOCK_THRESHOLD=10,
    )


@pytest.fixture
async def test_engine(tmp_path):
    """File-backed SQLite so concurrent sessions each get their own connection."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'inventory.db'}",
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return create_session_factory(test_engine)


@pytest.fixture
def store(session_factory):
    return InventoryStore(session_factory)


@pytest.fixture
def audit_service(session_factory):
    return InventoryAuditService(session_factory)


@pytest.fixture
def resolver(store):
    return MappingResolver(store, cache_ttl=0)


@pytest.fixture
def stock_manager(audit_service, store, resolver, settings):
    return StockManager(audit_service=audit_service, store=store, resolver=resolver, settings=settings)


@pytest.fixture
def platforms(stock_manager):
    """A mock adapter per platform, registered for MERCHANT_ID."""
    adapters = {platform: MockPlatform(platform) for platform in PlatformName.ordered()}
    for platform, adapter in adapters.items():
        stock_manager.register_platform(MERCHANT_ID, platform, adapter)
    return adapters


@pytest.fixture
def combined_inventory(store, settings):
    return CombinedInventoryService(store, default_threshold=settings.DEFAULT_LOW_STOCK_THRESHOLD)


@pytest.fixture
def catalog_sync(stock_manager, store):
    return CatalogSyncService(stock_manager, store)


@pytest.fixture
def webhook_processor(stock_manager, store, catalog_sync):
    return WebhookProcessor(stock_manager, store, catalog_sync)

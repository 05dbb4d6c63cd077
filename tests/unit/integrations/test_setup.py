import pytest

from app.core.enums import PlatformName
from app.integrations.platforms.etsy import EtsyPlatform
from app.integrations.platforms.shopify import ShopifyPlatform
from app.integrations.platforms.stripe import StripePlatform
from app.integrations.setup import build_services, setup_stock_manager
from app.services.etsy.client import EtsyClient


@pytest.mark.asyncio
async def test_every_active_account_gets_an_adapter(store, audit_service, resolver, settings):
    await store.save_account("m1", PlatformName.STRIPE, "acct_1")
    await store.save_account("m1", PlatformName.SHOPIFY, "shop.myshopify.com", access_token="shpat_x")
    await store.save_account("m2", PlatformName.ETSY, "shop_9", access_token="t", refresh_token="r")

    manager = await setup_stock_manager(store, audit_service, resolver, settings, start_monitor=False)

    assert manager.platforms_for("m1") == [PlatformName.STRIPE, PlatformName.SHOPIFY]
    assert isinstance(manager.get_adapter("m1", PlatformName.STRIPE), StripePlatform)
    assert isinstance(manager.get_adapter("m1", PlatformName.SHOPIFY), ShopifyPlatform)
    assert isinstance(manager.get_adapter("m2", PlatformName.ETSY), EtsyPlatform)
    assert manager.get_adapter("m1", PlatformName.STRIPE).client.account_id == "acct_1"
    assert manager.monitor_task is None


@pytest.mark.asyncio
async def test_etsy_refresh_stores_new_tokens(store, audit_service, resolver, settings, mocker):
    await store.save_account("m1", PlatformName.ETSY, "shop_9", access_token="old", refresh_token="r1")
    mocker.patch.object(
        EtsyClient, "refresh_access_token", return_value={"access_token": "new", "refresh_token": "r2"}
    )
    manager = await setup_stock_manager(store, audit_service, resolver, settings, start_monitor=False)

    await manager.get_adapter("m1", PlatformName.ETSY).refresh_credentials()

    account = await store.get_account(PlatformName.ETSY, "shop_9")
    assert (account.access_token, account.refresh_token) == ("new", "r2")


@pytest.mark.asyncio
async def test_build_services_shares_one_engine(session_factory, settings):
    services = await build_services(session_factory, settings, start_monitor=False)

    assert services.catalog_sync.stock_manager is services.stock_manager
    assert services.webhook_processor.stock_manager is services.stock_manager
    assert services.audit_service.recent_limit == settings.RECENT_AUDIT_LIMIT
    assert services.combined_inventory.default_threshold == 10

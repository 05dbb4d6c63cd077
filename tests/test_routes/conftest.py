from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from app.core.config import get_shopify_webhook_secret, get_stripe_webhook_secret
from app.main import create_app

STRIPE_SECRET = "whsec_test"
SHOPIFY_SECRET = "shpss_test"


@pytest.fixture
def services(mocker):
    """Mocked app.state services; accounts resolve to merchant_1."""
    store = mocker.Mock()
    store.get_account = mocker.AsyncMock(return_value=SimpleNamespace(merchant_id="merchant_1"))
    return SimpleNamespace(
        store=store,
        stock_manager=mocker.Mock(apply_event=mocker.AsyncMock()),
        audit_service=mocker.Mock(get_by_product=mocker.AsyncMock(return_value=[])),
        combined_inventory=mocker.Mock(),
        webhook_processor=mocker.Mock(),
    )


@pytest.fixture
def client(services):
    # No context manager: the lifespan (database, platform registration) stays off
    app = create_app()
    app.state.inventory_store = services.store
    app.state.stock_manager = services.stock_manager
    app.state.audit_service = services.audit_service
    app.state.combined_inventory = services.combined_inventory
    app.state.webhook_processor = services.webhook_processor
    app.dependency_overrides[get_stripe_webhook_secret] = lambda: STRIPE_SECRET
    app.dependency_overrides[get_shopify_webhook_secret] = lambda: SHOPIFY_SECRET
    return TestClient(app)

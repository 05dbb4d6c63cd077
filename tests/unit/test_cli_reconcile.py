from types import SimpleNamespace

import pytest
from click.testing import CliRunner

from app.cli import reconcile
from app.core.enums import ActivationChange, AuditAction, EventMode, MappingMethod, PlatformName, SiblingStatus
from app.core.exceptions import ValidationError
from app.integrations.stock_manager import ReconciliationResult, SiblingOutcome
from app.services.catalog_sync import SyncReport


@pytest.fixture
def services(mocker):
    services = SimpleNamespace(
        stock_manager=mocker.Mock(apply_event=mocker.AsyncMock()),
        resolver=mocker.Mock(save_mapping=mocker.AsyncMock()),
        catalog_sync=mocker.Mock(sync_platform=mocker.AsyncMock(), sync_merchant=mocker.AsyncMock()),
        store=mocker.Mock(save_account=mocker.AsyncMock()),
        audit_service=mocker.Mock(query=mocker.AsyncMock(return_value=[])),
        combined_inventory=mocker.Mock(),
    )

    async def fake_build_services(session_factory, settings, start_monitor=True):
        assert start_monitor is False
        return services

    engine = mocker.Mock(dispose=mocker.AsyncMock())
    mocker.patch.object(reconcile, "create_db_engine", return_value=engine)
    mocker.patch.object(reconcile, "create_session_factory")
    mocker.patch.object(reconcile, "build_services", side_effect=fake_build_services)
    return services


@pytest.fixture
def runner():
    return CliRunner()


def test_apply_absolute(runner, services):
    services.stock_manager.apply_event.return_value = ReconciliationResult(
        event=None, previous_quantity=3, new_quantity=5, activation_change=ActivationChange.REACTIVATED,
        audit_entry_id=12,
        siblings=[SiblingOutcome(PlatformName.ETSY, "700", None, MappingMethod.SKU, SiblingStatus.UPDATED, 2, 5, 13)],
    )

    result = runner.invoke(reconcile.cli, [
        "apply", "--merchant", "m1", "--platform", "stripe", "--product", "prod_1", "--set", "5", "--actor", "ops",
    ])

    assert result.exit_code == 0, result.output
    assert "stripe:prod_1 3 -> 5 (activation: reactivated, audit #12)" in result.output
    assert "etsy:700 via sku: updated 2 -> 5" in result.output
    event = services.stock_manager.apply_event.await_args.args[0]
    assert (event.mode, event.amount, event.action, event.actor) == (
        EventMode.ABSOLUTE, 5, AuditAction.MANUAL_ADJUSTMENT, "ops"
    )


def test_apply_delta_defaults_to_sync_restore(runner, services):
    services.stock_manager.apply_event.return_value = ReconciliationResult(
        event=None, previous_quantity=3, new_quantity=1, activation_change=ActivationChange.NONE, audit_entry_id=1,
    )

    result = runner.invoke(reconcile.cli, [
        "apply", "--merchant", "m1", "--platform", "etsy", "--product", "700", "--delta", "-2",
    ])

    assert result.exit_code == 0, result.output
    event = services.stock_manager.apply_event.await_args.args[0]
    assert (event.mode, event.amount, event.action) == (EventMode.DELTA, -2, AuditAction.SYNC_RESTORE)


def test_apply_needs_exactly_one_quantity(runner, services):
    result = runner.invoke(reconcile.cli, ["apply", "--merchant", "m1", "--platform", "etsy", "--product", "700"])

    assert result.exit_code != 0
    assert "exactly one of --set or --delta" in result.output
    services.stock_manager.apply_event.assert_not_awaited()


def test_service_errors_become_click_errors(runner, services):
    services.stock_manager.apply_event.side_effect = ValidationError("Merchant m1 has no etsy account connected")

    result = runner.invoke(reconcile.cli, [
        "apply", "--merchant", "m1", "--platform", "etsy", "--product", "700", "--set", "1",
    ])

    assert result.exit_code == 1
    assert "no etsy account connected" in result.output


def test_map_saves_explicit_mapping(runner, services):
    result = runner.invoke(reconcile.cli, [
        "map", "--merchant", "m1", "--source", "stripe:prod_1", "--target", "shopify:111:222",
    ])

    assert result.exit_code == 0, result.output
    services.resolver.save_mapping.assert_awaited_once_with(
        "m1", PlatformName.STRIPE, "prod_1", PlatformName.SHOPIFY, "111",
        variant_a=None, variant_b="222", created_by="cli",
    )


@pytest.mark.parametrize("source,target", [("stripe", "shopify:111"), ("stripe:prod_1", "stripe:prod_2")])
def test_map_rejects_bad_refs(runner, services, source, target):
    result = runner.invoke(reconcile.cli, ["map", "--merchant", "m1", "--source", source, "--target", target])

    assert result.exit_code == 2
    services.resolver.save_mapping.assert_not_awaited()


def test_sync_reports_each_platform(runner, services):
    failed = SyncReport(merchant_id="m1", platform=PlatformName.ETSY, processed=0, errors=["listing failed"])
    services.catalog_sync.sync_merchant.return_value = [
        SyncReport(merchant_id="m1", platform=PlatformName.STRIPE, processed=4, new_products=1, updated_products=3),
        failed,
    ]

    result = runner.invoke(reconcile.cli, ["sync", "--merchant", "m1"])

    assert "stripe: success, 4 processed, 1 new, 3 updated" in result.output
    assert "etsy: error" in result.output
    assert "error: listing failed" in result.output


def test_connect_saves_account(runner, services):
    result = runner.invoke(reconcile.cli, [
        "connect", "--merchant", "m1", "--platform", "etsy", "--account-id", "shop_9",
        "--access-token", "t", "--refresh-token", "r",
    ])

    assert result.exit_code == 0, result.output
    services.store.save_account.assert_awaited_once_with("m1", PlatformName.ETSY, "shop_9", "t", "r")


def test_audit_with_no_entries(runner, services):
    result = runner.invoke(reconcile.cli, ["audit", "--merchant", "m1", "--platform", "shopify", "--limit", "3"])

    assert "No audit entries found." in result.output
    filters = services.audit_service.query.await_args.args[0]
    assert (filters.merchant_id, filters.platform) == ("m1", PlatformName.SHOPIFY)
    assert services.audit_service.query.await_args.kwargs == {"limit": 3}

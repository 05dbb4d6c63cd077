# app/cli/reconcile.py
"""
Operator commands for the reconciliation engine.

    inventory-reconcile apply --merchant m1 --platform stripe --product prod_1 --set 5
    inventory-reconcile summary --merchant m1
    inventory-reconcile audit --merchant m1 --product prod_1
    inventory-reconcile map --merchant m1 --source stripe:prod_1 --target etsy:123
    inventory-reconcile sync --merchant m1
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Tuple

import click

from app.core.config import get_settings
from app.core.enums import AuditAction, EventMode, PlatformName
from app.core.exceptions import BaseServiceError
from app.core.logging_config import configure_logging
from app.database import create_db_engine, create_session_factory
from app.integrations.events import InventoryEvent
from app.integrations.setup import Services, build_services
from app.schemas.inventory import AuditLogFilter

logger = logging.getLogger(__name__)

PLATFORM_CHOICE = click.Choice([p.value for p in PlatformName.ordered()])


def _run(work: Callable[[Services], Awaitable[None]]):
    """Compose the services against the configured database, run `work`, dispose the engine."""
    settings = get_settings()

    async def runner():
        engine = create_db_engine(settings)
        try:
            services = await build_services(create_session_factory(engine), settings, start_monitor=False)
            await work(services)
        finally:
            await engine.dispose()

    try:
        asyncio.run(runner())
    except BaseServiceError as e:
        logger.error(f"Command failed: {e}")
        raise click.ClickException(str(e))


def _platform_ref(value: str) -> Tuple[PlatformName, str, Optional[str]]:
    """Parse 'platform:product[:variant]'."""
    parts = value.split(":")
    if len(parts) not in (2, 3) or parts[0] not in [p.value for p in PlatformName]:
        raise click.BadParameter(f"expected platform:product[:variant], got {value!r}")
    return PlatformName(parts[0]), parts[1], parts[2] if len(parts) == 3 else None


@click.group()
@click.option('--log-level', default=None, help='Override LOG_LEVEL')
def cli(log_level):
    """Cross-platform inventory reconciliation"""
    configure_logging(log_level)


@cli.command()
@click.option('--merchant', required=True)
@click.option('--platform', type=PLATFORM_CHOICE, required=True)
@click.option('--product', 'product_ref', required=True)
@click.option('--variant', 'variant_ref', default=None)
@click.option('--set', 'absolute', type=int, default=None, help='Set available to this quantity')
@click.option('--delta', type=int, default=None, help='Add (or with a negative value remove) units')
@click.option('--action', type=click.Choice([a.value for a in AuditAction]), default=None)
@click.option('--reason', default=None)
@click.option('--actor', default='cli')
def apply(merchant, platform, product_ref, variant_ref, absolute, delta, action, reason, actor):
    """Apply one inventory change and propagate it to mapped products"""
    if (absolute is None) == (delta is None):
        raise click.UsageError("Pass exactly one of --set or --delta")

    mode = EventMode.ABSOLUTE if absolute is not None else EventMode.DELTA
    if action is None:
        action = AuditAction.MANUAL_ADJUSTMENT if mode == EventMode.ABSOLUTE else AuditAction.SYNC_RESTORE
    event = InventoryEvent(
        merchant_id=merchant,
        platform=PlatformName(platform),
        product_ref=product_ref,
        variant_ref=variant_ref,
        mode=mode,
        amount=absolute if absolute is not None else delta,
        action=AuditAction(action),
        reason=reason,
        actor=actor,
    )

    async def work(services: Services):
        result = await services.stock_manager.apply_event(event)
        click.echo(
            f"{platform}:{product_ref} {result.previous_quantity} -> {result.new_quantity}"
            f" (activation: {result.activation_change.value}, audit #{result.audit_entry_id})"
        )
        for sibling in result.siblings:
            line = f"  {sibling.platform.value}:{sibling.product_ref} via {sibling.method.value}: {sibling.status.value}"
            if sibling.new_quantity is not None:
                line += f" {sibling.previous_quantity} -> {sibling.new_quantity}"
            if sibling.error:
                line += f" ({sibling.error})"
            click.echo(line)

    _run(work)


@cli.command()
@click.option('--merchant', required=True)
@click.option('--items/--no-items', default=False, help='List every product as well')
def summary(merchant, items):
    """Combined inventory summary across platforms"""

    async def work(services: Services):
        combined = await services.combined_inventory.get_combined_inventory(merchant)
        if items:
            for item in combined:
                flag = " OUT" if item.is_out_of_stock else (" LOW" if item.is_low_stock else "")
                click.echo(f"{item.platform.value:8} {item.product_ref:24} {item.sku or '-':16} {item.available:6}{flag}  {item.title}")
        result = await services.combined_inventory.get_summary(merchant)
        click.echo(f"Products: {result.total_products}")
        click.echo(f"Available: {result.total_available}  Reserved: {result.total_reserved}  Incoming: {result.total_incoming}")
        click.echo(f"Low stock: {result.low_stock}  Out of stock: {result.out_of_stock}")
        for platform, breakdown in result.by_platform.items():
            click.echo(f"  {platform.value}: {breakdown.count} products, {breakdown.available} available")

    _run(work)


@cli.command()
@click.option('--merchant', default=None)
@click.option('--product', 'product_ref', default=None)
@click.option('--actor', default=None)
@click.option('--platform', type=PLATFORM_CHOICE, default=None)
@click.option('--limit', type=int, default=20)
def audit(merchant, product_ref, actor, platform, limit):
    """Show audit entries, newest first"""
    filters = AuditLogFilter(
        merchant_id=merchant,
        product_ref=product_ref,
        actor=actor,
        platform=PlatformName(platform) if platform else None,
    )

    async def work(services: Services):
        entries = await services.audit_service.query(filters, limit=limit)
        if not entries:
            click.echo("No audit entries found.")
        for entry in entries:
            click.echo(
                f"{entry.timestamp:%Y-%m-%d %H:%M:%S} {entry.platform}:{entry.product_ref} "
                f"{entry.action} {entry.previous_quantity} -> {entry.quantity} by {entry.actor}"
                + (f" ({entry.reason})" if entry.reason else "")
            )

    _run(work)


@cli.command(name="map")
@click.option('--merchant', required=True)
@click.option('--source', required=True, help='platform:product[:variant]')
@click.option('--target', required=True, help='platform:product[:variant]')
@click.option('--by', 'created_by', default='cli')
def map_products(merchant, source, target, created_by):
    """Store an explicit mapping between two products"""
    platform_a, ref_a, variant_a = _platform_ref(source)
    platform_b, ref_b, variant_b = _platform_ref(target)
    if platform_a == platform_b:
        raise click.BadParameter("source and target must be on different platforms")

    async def work(services: Services):
        await services.resolver.save_mapping(
            merchant, platform_a, ref_a, platform_b, ref_b,
            variant_a=variant_a, variant_b=variant_b, created_by=created_by,
        )
        click.echo(f"Mapped {source} <-> {target}")

    _run(work)


@cli.command()
@click.option('--merchant', required=True)
@click.option('--platform', type=PLATFORM_CHOICE, default=None, help='Only this platform')
def sync(merchant, platform):
    """Refresh product records and levels from the platforms"""

    async def work(services: Services):
        if platform:
            reports = [await services.catalog_sync.sync_platform(merchant, PlatformName(platform))]
        else:
            reports = await services.catalog_sync.sync_merchant(merchant)
        if not reports:
            click.echo(f"Merchant {merchant} has no connected platforms.")
        for report in reports:
            click.echo(
                f"{report.platform.value}: {report.status}, {report.processed} processed, "
                f"{report.new_products} new, {report.updated_products} updated"
            )
            for error in report.errors:
                click.echo(f"  error: {error}")

    _run(work)


@cli.command()
@click.option('--merchant', required=True)
@click.option('--platform', type=PLATFORM_CHOICE, required=True)
@click.option('--account-id', required=True, help='Stripe account id, Shopify shop domain or Etsy shop id')
@click.option('--access-token', default=None)
@click.option('--refresh-token', default=None)
def connect(merchant, platform, account_id, access_token, refresh_token):
    """Register a merchant's platform account"""

    async def work(services: Services):
        await services.store.save_account(merchant, PlatformName(platform), account_id, access_token, refresh_token)
        click.echo(f"Connected {platform} account {account_id} to merchant {merchant}")

    _run(work)


if __name__ == "__main__":
    cli()

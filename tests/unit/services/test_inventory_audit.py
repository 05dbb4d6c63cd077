from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import AuditAction, PlatformName
from app.core.exceptions import AuditLogError
from app.schemas.inventory import AuditLogCreate, AuditLogFilter
from app.services.inventory_audit import InventoryAuditService

BASE_TIME = datetime(2026, 3, 1, 12, 0, 0)


def entry(product_ref="prod_1", actor="system", platform=PlatformName.STRIPE, merchant_id="merchant_1",
          quantity=5, previous=6, timestamp=None, action=AuditAction.PURCHASE):
    return AuditLogCreate(
        merchant_id=merchant_id,
        platform=platform,
        product_ref=product_ref,
        action=action,
        quantity=quantity,
        previous_quantity=previous,
        actor=actor,
        reason="test",
        timestamp=timestamp,
    )


@pytest.mark.asyncio
async def test_append_returns_stored_entry(audit_service):
    stored = await audit_service.append(entry(actor="user_1", action=AuditAction.MANUAL_ADJUSTMENT))

    assert stored.id is not None
    assert stored.actor == "user_1"
    assert stored.action == "manual_adjustment"
    assert (stored.previous_quantity, stored.quantity) == (6, 5)
    assert stored.timestamp is not None


@pytest.mark.asyncio
async def test_query_is_newest_first(audit_service):
    for minutes in (0, 10, 5):
        await audit_service.append(entry(quantity=minutes, timestamp=BASE_TIME + timedelta(minutes=minutes)))

    rows = await audit_service.query()

    assert [r.quantity for r in rows] == [10, 5, 0]


@pytest.mark.asyncio
async def test_equal_timestamps_come_back_in_reverse_insertion_order(audit_service):
    for quantity in (1, 2, 3):
        await audit_service.append(entry(quantity=quantity, timestamp=BASE_TIME))

    rows = await audit_service.query()

    assert [r.quantity for r in rows] == [3, 2, 1]


@pytest.mark.asyncio
async def test_filters_combine(audit_service):
    await audit_service.append(entry(product_ref="prod_1", actor="user_1"))
    await audit_service.append(entry(product_ref="prod_1", actor="system"))
    await audit_service.append(entry(product_ref="prod_2", actor="user_1"))
    await audit_service.append(entry(product_ref="prod_1", actor="user_1", merchant_id="merchant_2"))
    await audit_service.append(entry(product_ref="prod_1", actor="user_1", platform=PlatformName.ETSY))

    rows = await audit_service.query(AuditLogFilter(
        product_ref="prod_1", actor="user_1", merchant_id="merchant_1", platform=PlatformName.STRIPE
    ))

    assert len(rows) == 1
    assert len(await audit_service.get_by_actor("user_1")) == 4
    assert len(await audit_service.get_by_merchant("merchant_2")) == 1
    assert len(await audit_service.get_by_product("prod_1", "merchant_1")) == 3


@pytest.mark.asyncio
async def test_limit_caps_results(audit_service):
    for quantity in range(8):
        await audit_service.append(entry(quantity=quantity))

    assert len(await audit_service.query(limit=3)) == 3
    assert await audit_service.query(limit=0) == []


@pytest.mark.asyncio
async def test_recent_for_product_uses_configured_limit(session_factory):
    service = InventoryAuditService(session_factory, recent_limit=2)
    for quantity in range(4):
        await service.append(entry(quantity=quantity))

    recent = await service.recent_for_product("prod_1", "merchant_1")

    assert len(recent) == 2


@pytest.mark.asyncio
async def test_failed_write_raises_audit_error(audit_service, mocker):
    mocker.patch.object(
        AsyncSession, "commit", side_effect=OperationalError("INSERT", {}, Exception("disk I/O error"))
    )

    with pytest.raises(AuditLogError):
        await audit_service.append(entry())

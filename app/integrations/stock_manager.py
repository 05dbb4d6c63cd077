"""
Purpose: The reconciliation engine. Applies one inventory-affecting event to the platform it came from and
propagates the resulting count to the same product on the merchant's other platforms.

Contents:
StockManager: holds the per-merchant adapter registry and the collaborators (audit service, inventory store, mapping
resolver). `apply_event` runs read -> compute -> write -> audit for the originating platform under a per-product lock,
then fans the new absolute count out to every resolved sibling. The primary write is authoritative: its failures
propagate, sibling failures are reported per sibling in the result and never undo the primary.
A queue (`submit` / `start_sync_monitor`) lets callers hand events off without waiting.
"""

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from app.core.config import Settings, get_settings
from app.core.enums import ActivationChange, EventMode, MappingMethod, PlatformName, SiblingStatus, SyncStatus
from app.core.exceptions import (
    AuthExpiredError,
    BaseServiceError,
    ConflictError,
    NotFoundError,
    PlatformServiceError,
    PlatformTimeoutError,
    ValidationError,
)
from app.integrations.base import PlatformAdapter, PlatformLevel
from app.integrations.events import InventoryEvent
from app.integrations.locks import KeyedLock
from app.schemas.inventory import AuditLogCreate

logger = logging.getLogger(__name__)


@dataclass
class SiblingOutcome:
    platform: PlatformName
    product_ref: str
    variant_ref: Optional[str]
    method: MappingMethod
    status: SiblingStatus
    previous_quantity: Optional[int] = None
    new_quantity: Optional[int] = None
    audit_entry_id: Optional[int] = None
    error: Optional[str] = None


@dataclass
class ReconciliationResult:
    event: InventoryEvent
    previous_quantity: int
    new_quantity: int
    activation_change: ActivationChange
    audit_entry_id: int
    siblings: List[SiblingOutcome] = field(default_factory=list)

    @property
    def failed_siblings(self) -> List[SiblingOutcome]:
        return [s for s in self.siblings if s.status == SiblingStatus.FAILED]


@dataclass
class _CycleResult:
    previous_quantity: int
    new_quantity: int
    activation_change: ActivationChange
    audit_entry_id: int


def compute_new_quantity(current: int, mode: EventMode, amount: int) -> int:
    """Absolute sets the count; delta adds to it and clamps at zero."""
    if mode == EventMode.ABSOLUTE:
        return amount
    return max(0, current + amount)


class StockManager:
    def __init__(
        self,
        audit_service,
        store,
        resolver,
        settings: Optional[Settings] = None,
    ):
        self.audit_service = audit_service
        self.store = store
        self.resolver = resolver
        self.settings = settings or get_settings()

        self.platforms: Dict[str, Dict[PlatformName, PlatformAdapter]] = defaultdict(dict)
        self.update_queue: asyncio.Queue = asyncio.Queue()
        self._locks = KeyedLock()
        self._stats: Dict[str, Dict[str, Any]] = defaultdict(
            lambda: {"success": 0, "failure": 0, "last_error": None, "last_success": None}
        )
        self._queue_stats = {"processed": 0, "failed": 0}
        self.monitor_task: Optional[asyncio.Task] = None

    # Registry

    def register_platform(self, merchant_id: str, platform: PlatformName, adapter: PlatformAdapter):
        self.platforms[merchant_id][platform] = adapter
        logger.info(f"Registered {platform.value} adapter for merchant {merchant_id}")

    def platforms_for(self, merchant_id: str) -> List[PlatformName]:
        registered = self.platforms.get(merchant_id, {})
        return [p for p in PlatformName.ordered() if p in registered]

    def get_adapter(self, merchant_id: str, platform: PlatformName) -> PlatformAdapter:
        adapter = self.platforms.get(merchant_id, {}).get(platform)
        if adapter is None:
            raise ValidationError(f"Merchant {merchant_id} has no {platform.value} account connected")
        return adapter

    # Metrics

    def _record(self, platform: PlatformName, ok: bool, error: Optional[Exception] = None):
        stats = self._stats[platform.value]
        if ok:
            stats["success"] += 1
            stats["last_success"] = datetime.now().isoformat()
        else:
            stats["failure"] += 1
            stats["last_error"] = str(error) if error else None

    def get_metrics(self) -> dict:
        """Get current metrics for all platforms and queue status"""
        return {
            "queue": {
                "length": self.update_queue.qsize(),
                "processed": self._queue_stats["processed"],
                "failed": self._queue_stats["failed"],
            },
            "platforms": {
                platform.value: dict(self._stats[platform.value])
                for platform in PlatformName.ordered()
            },
        }

    # Adapter calls

    async def _with_timeout(self, platform: PlatformName, awaitable):
        timeout = self.settings.ADAPTER_TIMEOUT_SECONDS
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        except asyncio.TimeoutError:
            raise PlatformTimeoutError(f"{platform.value} call exceeded {timeout}s", platform=platform.value)

    async def _call(self, adapter: PlatformAdapter, operation: str, *args, **kwargs):
        """
        Call an adapter operation with a timeout. Stale credentials get one
        refresh and one retry; if the refresh fails the call fails with
        AuthExpiredError.
        """
        platform = adapter.platform
        try:
            return await self._with_timeout(platform, getattr(adapter, operation)(*args, **kwargs))
        except AuthExpiredError:
            logger.info(f"{platform.value} credentials expired during {operation}, refreshing")
            try:
                await self._with_timeout(platform, adapter.refresh_credentials())
            except AuthExpiredError:
                raise
            except PlatformServiceError as e:
                raise AuthExpiredError(f"Credential refresh failed: {e}", platform=platform.value) from e
            return await self._with_timeout(platform, getattr(adapter, operation)(*args, **kwargs))

    # Engine

    def _validate(self, event: InventoryEvent) -> PlatformAdapter:
        if isinstance(event.amount, bool) or not isinstance(event.amount, int):
            raise ValidationError(f"Amount must be an integer, got {event.amount!r}")
        if event.mode == EventMode.ABSOLUTE and event.amount < 0:
            raise ValidationError(f"Absolute quantity must be >= 0, got {event.amount}")
        if not event.product_ref:
            raise ValidationError("Event has no product reference")
        return self.get_adapter(event.merchant_id, event.platform)

    async def _apply_activation(
        self,
        merchant_id: str,
        adapter: PlatformAdapter,
        product_ref: str,
        level: PlatformLevel,
        new_quantity: int,
    ) -> ActivationChange:
        platform = adapter.platform
        if new_quantity == 0 and level.active:
            await self._call(adapter, "set_active", product_ref, False)
            await self.store.set_product_activation(merchant_id, platform, product_ref, active=False, stock_deactivated=True)
            logger.info(f"Deactivated {platform.value}:{product_ref} (out of stock)")
            return ActivationChange.DEACTIVATED

        if new_quantity > 0 and not level.active:
            if not self.settings.AUTO_REACTIVATE:
                record = await self.store.get_product(merchant_id, platform, product_ref)
                if record is None or not record.stock_deactivated:
                    logger.info(f"Leaving {platform.value}:{product_ref} inactive (not deactivated for stock)")
                    return ActivationChange.NONE
            await self._call(adapter, "set_active", product_ref, True)
            await self.store.set_product_activation(merchant_id, platform, product_ref, active=True, stock_deactivated=False)
            logger.info(f"Reactivated {platform.value}:{product_ref} (stock restored to {new_quantity})")
            return ActivationChange.REACTIVATED

        return ActivationChange.NONE

    async def _reconcile_one(
        self,
        merchant_id: str,
        adapter: PlatformAdapter,
        product_ref: str,
        variant_ref: Optional[str],
        location_ref: Optional[str],
        mode: EventMode,
        amount: int,
        audit_fields: Dict[str, Any],
    ) -> _CycleResult:
        """
        Read, compute, write and audit one sellable unit under its key lock.
        A ConflictError on write re-runs the cycle from the read.
        """
        platform = adapter.platform
        key = (merchant_id, platform.value, product_ref, variant_ref)
        retries = self.settings.CONFLICT_RETRIES

        async with self._locks.hold(key):
            attempt = 0
            while True:
                level: PlatformLevel = await self._call(adapter, "get_level", product_ref, variant_ref, location_ref)
                previous = level.available
                new_quantity = compute_new_quantity(previous, mode, amount)
                try:
                    await self._call(
                        adapter, "set_level", product_ref, variant_ref, new_quantity,
                        location_ref or level.location_ref, updated_by=audit_fields["actor"],
                    )
                    break
                except ConflictError:
                    if attempt >= retries:
                        raise
                    attempt += 1
                    logger.warning(
                        f"Conflict writing {platform.value}:{product_ref}, retrying ({attempt}/{retries})"
                    )

            in_sync = True
            try:
                activation = await self._apply_activation(merchant_id, adapter, product_ref, level, new_quantity)
            except (BaseServiceError, SQLAlchemyError) as e:
                # The level itself was written; it still gets its audit entry
                logger.error(f"Failed to update activation of {platform.value}:{product_ref}: {e}")
                in_sync = False
                activation = ActivationChange.NONE

            try:
                await self.store.record_level(
                    merchant_id, platform, product_ref, variant_ref or level.variant_ref,
                    location_ref or level.location_ref,
                    new_quantity, updated_by=audit_fields["actor"],
                )
            except SQLAlchemyError as e:
                logger.error(f"Failed to mirror level of {platform.value}:{product_ref}: {e}")

            entry = await self.audit_service.append(
                AuditLogCreate(
                    merchant_id=merchant_id,
                    platform=platform,
                    product_ref=product_ref,
                    variant_ref=variant_ref,
                    quantity=new_quantity,
                    previous_quantity=previous,
                    **audit_fields,
                )
            )

        adapter._last_sync = datetime.now()
        adapter._sync_status = SyncStatus.SYNCED if in_sync else SyncStatus.OUT_OF_SYNC
        return _CycleResult(previous, new_quantity, activation, entry.id)

    async def apply_event(self, event: InventoryEvent) -> ReconciliationResult:
        """
        Apply an event to its platform, then propagate the new absolute count
        to every mapped sibling.

        Raises:
            ValidationError: malformed event or platform not connected (nothing written)
            PlatformServiceError subclass: the originating platform read/write failed (nothing audited)
            AuditLogError: the write succeeded but its audit entry could not be stored
        """
        adapter = self._validate(event)
        audit_fields = {
            "action": event.action,
            "actor": event.actor,
            "reason": event.reason,
            "event_id": event.event_id,
            "timestamp": event.timestamp,
        }

        try:
            cycle = await self._reconcile_one(
                event.merchant_id, adapter, event.product_ref, event.variant_ref, event.location_ref,
                event.mode, event.amount, audit_fields,
            )
        except BaseServiceError as e:
            self._record(event.platform, ok=False, error=e)
            if isinstance(e, PlatformServiceError):
                adapter._sync_status = SyncStatus.ERROR
            logger.error(
                f"Failed to apply {event.action.value} to {event.platform.value}:{event.product_ref}: {e}"
            )
            raise
        self._record(event.platform, ok=True)

        logger.info(
            f"{event.action.value} on {event.platform.value}:{event.product_ref}: "
            f"{cycle.previous_quantity} -> {cycle.new_quantity} (by {event.actor})"
        )

        siblings = await self._fan_out(event, cycle.new_quantity)
        return ReconciliationResult(
            event=event,
            previous_quantity=cycle.previous_quantity,
            new_quantity=cycle.new_quantity,
            activation_change=cycle.activation_change,
            audit_entry_id=cycle.audit_entry_id,
            siblings=siblings,
        )

    async def _fan_out(self, event: InventoryEvent, new_quantity: int) -> List[SiblingOutcome]:
        targets = [p for p in self.platforms_for(event.merchant_id) if p != event.platform]
        if not targets:
            return []

        try:
            resolved = await self.resolver.resolve(
                event.merchant_id, event.platform, event.product_ref, event.variant_ref, targets
            )
        except (BaseServiceError, SQLAlchemyError) as e:
            logger.error(f"Could not resolve siblings of {event.platform.value}:{event.product_ref}: {e}")
            return []

        semaphore = asyncio.Semaphore(max(1, self.settings.FANOUT_CONCURRENCY))
        results = await asyncio.gather(
            *(self._propagate(semaphore, event, new_quantity, sibling) for sibling in resolved),
            return_exceptions=True,
        )

        outcomes: List[SiblingOutcome] = []
        for sibling, result in zip(resolved, results):
            if isinstance(result, BaseException):
                logger.error(
                    f"Unexpected error propagating to {sibling.platform.value}:{sibling.product_ref}: {result!r}"
                )
                self._record(sibling.platform, ok=False, error=result)
                result = SiblingOutcome(
                    sibling.platform, sibling.product_ref, sibling.variant_ref, sibling.method,
                    SiblingStatus.FAILED, error=str(result),
                )
            outcomes.append(result)
        return outcomes

    async def _propagate(self, semaphore: asyncio.Semaphore, event: InventoryEvent, new_quantity: int, sibling) -> SiblingOutcome:
        outcome = SiblingOutcome(
            platform=sibling.platform,
            product_ref=sibling.product_ref,
            variant_ref=sibling.variant_ref,
            method=sibling.method,
            status=SiblingStatus.FAILED,
        )
        adapter = self.platforms[event.merchant_id][sibling.platform]
        audit_fields = {
            "action": event.action,
            "actor": event.actor,
            "reason": f"Synced from {event.platform.value}:{event.product_ref}"
                      + (f" ({event.reason})" if event.reason else ""),
            "event_id": event.event_id,
            "timestamp": event.timestamp,
        }

        async with semaphore:
            try:
                cycle = await self._reconcile_one(
                    event.merchant_id, adapter, sibling.product_ref, sibling.variant_ref, None,
                    EventMode.ABSOLUTE, new_quantity, audit_fields,
                )
            except NotFoundError as e:
                logger.warning(f"Sibling {sibling.platform.value}:{sibling.product_ref} not found, skipping: {e}")
                outcome.status = SiblingStatus.SKIPPED
                outcome.error = str(e)
                return outcome
            except BaseServiceError as e:
                logger.error(f"Failed to propagate to {sibling.platform.value}:{sibling.product_ref}: {e}")
                self._record(sibling.platform, ok=False, error=e)
                adapter._sync_status = SyncStatus.ERROR
                outcome.error = str(e)
                return outcome

        self._record(sibling.platform, ok=True)
        outcome.status = SiblingStatus.UPDATED
        outcome.previous_quantity = cycle.previous_quantity
        outcome.new_quantity = cycle.new_quantity
        outcome.audit_entry_id = cycle.audit_entry_id
        return outcome

    # Queue mode

    async def submit(self, event: InventoryEvent) -> bool:
        """Queue an event for the sync monitor. Validation happens up front."""
        self._validate(event)
        await self.update_queue.put(event)
        return True

    async def start_sync_monitor(self):
        """Monitor and process the update queue"""
        while True:
            try:
                event = await self.update_queue.get()
            except asyncio.CancelledError:
                break
            try:
                await self.apply_event(event)
                self._queue_stats["processed"] += 1
            except asyncio.CancelledError:
                self.update_queue.task_done()
                break
            except BaseServiceError as e:
                self._queue_stats["failed"] += 1
                logger.error(f"Error processing queued event for {event.platform.value}:{event.product_ref}: {e}")
            except Exception as e:
                # Keep draining the queue
                self._queue_stats["failed"] += 1
                logger.exception(f"Unexpected error processing queued event: {e}")
            self.update_queue.task_done()

    def platform_status(self, merchant_id: str) -> Dict[str, Tuple[str, Optional[str]]]:
        """{platform: (sync status, last sync time)} for a merchant's adapters"""
        return {
            platform.value: (
                adapter._sync_status.value,
                adapter._last_sync.isoformat() if adapter._last_sync else None,
            )
            for platform, adapter in self.platforms.get(merchant_id, {}).items()
        }

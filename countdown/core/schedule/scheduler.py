"""Notification scheduler.

One tick snapshots the registry, resolves every owner's effective timezone,
and for each trigger whose window contains "now" in that zone makes at most
one delivery attempt per ``(trigger, owner, civil date)``::

    exists? ─no→ eligible? ─yes→ claim ─won→ deliver → record outcome
                                                   └─ permanent → remove subscription

A failed delivery is recorded like a successful one; it is not retried on
the next tick. Owners are processed concurrently up to ``max_concurrency``
and a failure for one owner never reaches another.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Any

from countdown.configs import configs
from countdown.core.clock import SystemTimeSource, TimeSource
from countdown.core.exceptions import FiringStoreError, PredicateEvaluationError
from countdown.core.owners import HttpOwnerDirectory, OwnerDirectory, StaticOwnerDirectory
from countdown.core.push.dispatcher import DeliveryResult, DeliveryStatus, PushDispatcher
from countdown.core.push.payload import NotificationPayload
from countdown.core.push.registry import DatabaseSubscriptionRegistry, SessionFactory, SubscriptionRegistry
from countdown.core.push.vapid import VapidSigner, get_signer
from countdown.core.schedule.firing_store import (
    DatabaseFiringStore,
    FiringKey,
    FiringStore,
    InMemoryFiringStore,
    LayeredFiringStore,
    RedisFiringStore,
)
from countdown.core.schedule.resolver import resolve_zone_or_default
from countdown.core.schedule.triggers import DEFAULT_TRIGGERS, TriggerDefinition
from countdown.models.push_subscription import PushSubscription
from countdown.models.trigger_firing import FiringOutcome

logger = logging.getLogger(__name__)


class TickOutcome(StrEnum):
    DELIVERED = "delivered"
    TEMPORARY_FAILURE = "temporary_failure"
    PERMANENT_FAILURE = "permanent_failure"
    SUBSCRIPTION_REMOVED = "subscription_removed"
    INELIGIBLE = "ineligible"
    DUPLICATE_SUPPRESSED = "duplicate_suppressed"
    PREDICATE_ERROR = "predicate_error"
    ERROR = "error"
    TIMEZONE_FALLBACK = "timezone_fallback"


_SUMMARY_FIELD: dict[TickOutcome, str] = {
    TickOutcome.DELIVERED: "delivered",
    TickOutcome.TEMPORARY_FAILURE: "temporary_failures",
    TickOutcome.PERMANENT_FAILURE: "permanent_failures",
    TickOutcome.SUBSCRIPTION_REMOVED: "removed",
    TickOutcome.INELIGIBLE: "ineligible",
    TickOutcome.DUPLICATE_SUPPRESSED: "duplicates_suppressed",
    TickOutcome.PREDICATE_ERROR: "predicate_errors",
    TickOutcome.ERROR: "errors",
    TickOutcome.TIMEZONE_FALLBACK: "timezone_fallbacks",
}

_FIRING_OUTCOME: dict[DeliveryStatus, FiringOutcome] = {
    DeliveryStatus.DELIVERED: FiringOutcome.DELIVERED,
    DeliveryStatus.TEMPORARY_FAILURE: FiringOutcome.TEMPORARY_FAILURE,
    DeliveryStatus.PERMANENT_FAILURE: FiringOutcome.PERMANENT_FAILURE,
}

_TICK_OUTCOME: dict[DeliveryStatus, TickOutcome] = {
    DeliveryStatus.DELIVERED: TickOutcome.DELIVERED,
    DeliveryStatus.TEMPORARY_FAILURE: TickOutcome.TEMPORARY_FAILURE,
    DeliveryStatus.PERMANENT_FAILURE: TickOutcome.PERMANENT_FAILURE,
}


@dataclass
class TickSummary:
    """Counts for one tick; the primary operational signal of the scheduler."""

    started_at: datetime
    owners: int = 0
    delivered: int = 0
    temporary_failures: int = 0
    permanent_failures: int = 0
    removed: int = 0
    ineligible: int = 0
    duplicates_suppressed: int = 0
    predicate_errors: int = 0
    errors: int = 0
    timezone_fallbacks: int = 0
    finished_at: datetime | None = field(default=None)

    def add(self, outcome: TickOutcome) -> None:
        name = _SUMMARY_FIELD[outcome]
        setattr(self, name, getattr(self, name) + 1)

    @property
    def attempts(self) -> int:
        return self.delivered + self.temporary_failures + self.permanent_failures

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat()
        data["finished_at"] = self.finished_at.isoformat() if self.finished_at else None
        return data


class NotificationScheduler:
    def __init__(
        self,
        registry: SubscriptionRegistry,
        firing_store: FiringStore,
        directory: OwnerDirectory,
        dispatcher: PushDispatcher,
        signer: VapidSigner | None = None,
        triggers: list[TriggerDefinition] | None = None,
        time_source: TimeSource | None = None,
        default_timezone: str | None = None,
        max_concurrency: int | None = None,
        tick_interval: timedelta | None = None,
        tick_slack: timedelta | None = None,
    ) -> None:
        if tick_interval is None:
            tick_interval = timedelta(seconds=configs.Scheduler.TickIntervalSeconds)
        if tick_slack is None:
            tick_slack = timedelta(seconds=configs.Scheduler.TickSlackSeconds)
        self.tick_interval = tick_interval
        self.tick_slack = tick_slack
        if self.tick_interval <= timedelta(0) or self.tick_slack <= timedelta(0):
            raise ValueError("tick_interval and tick_slack must be positive")
        # Shortest span a window stays open; any tick at most tick_slack late lands inside it
        self.min_window = self.tick_interval + self.tick_slack
        self.registry = registry
        self.firing_store = firing_store
        self.directory = directory
        self.dispatcher = dispatcher
        self.triggers = list(triggers if triggers is not None else DEFAULT_TRIGGERS)
        self.time_source = time_source or SystemTimeSource()
        self.default_timezone = default_timezone or configs.Scheduler.DefaultTimezone
        self.max_concurrency = max(1, max_concurrency or configs.Scheduler.MaxConcurrency)
        self._signer = signer

    @property
    def signer(self) -> VapidSigner:
        if self._signer is None:
            self._signer = get_signer()
        return self._signer

    async def __aenter__(self) -> NotificationScheduler:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.dispatcher.aclose()
        close = getattr(self.directory, "aclose", None)
        if close is not None:
            await close()

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    async def run_tick(self, now: datetime | None = None) -> TickSummary:
        """Run one pass over all subscriptions at *now* (default: the time source)."""
        now = now or self.time_source.now()
        summary = TickSummary(started_at=now)
        snapshot = await self.registry.list_all()
        summary.owners = len(snapshot)

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def guarded(owner_id: str, subscription: PushSubscription) -> list[TickOutcome]:
            async with semaphore:
                return await self._process_owner_safely(owner_id, subscription, now)

        results = await asyncio.gather(*(guarded(owner_id, sub) for owner_id, sub in snapshot))
        for outcomes in results:
            for outcome in outcomes:
                summary.add(outcome)

        summary.finished_at = self.time_source.now()
        logger.info(
            "Tick %s: owners=%d delivered=%d temporary=%d permanent=%d removed=%d "
            "ineligible=%d duplicates=%d predicate_errors=%d errors=%d",
            now.isoformat(),
            summary.owners,
            summary.delivered,
            summary.temporary_failures,
            summary.permanent_failures,
            summary.removed,
            summary.ineligible,
            summary.duplicates_suppressed,
            summary.predicate_errors,
            summary.errors,
        )
        return summary

    async def _process_owner_safely(
        self, owner_id: str, subscription: PushSubscription, now: datetime
    ) -> list[TickOutcome]:
        outcomes: list[TickOutcome] = []
        try:
            await self._process_owner(owner_id, subscription, now, outcomes)
        except PredicateEvaluationError as e:
            logger.warning("Skipping owner %s this tick: %s", owner_id, e)
            outcomes.append(TickOutcome.PREDICATE_ERROR)
        except FiringStoreError as e:
            logger.error("Firing store unavailable for owner %s: %s", owner_id, e)
            outcomes.append(TickOutcome.ERROR)
        except Exception as e:
            logger.exception("Unexpected error processing owner %s: %s", owner_id, e)
            outcomes.append(TickOutcome.ERROR)
        return outcomes

    async def _process_owner(
        self,
        owner_id: str,
        subscription: PushSubscription,
        now: datetime,
        outcomes: list[TickOutcome],
    ) -> None:
        # Looked up every tick: the owner may switch room timezone at any time
        timezone_name = await self.directory.get_timezone(owner_id)
        zone, fell_back = resolve_zone_or_default(timezone_name, self.default_timezone)
        if fell_back:
            outcomes.append(TickOutcome.TIMEZONE_FALLBACK)

        for trigger in self.triggers:
            window = trigger.active_window(now, zone, self.min_window)
            if window is None:
                continue

            key = FiringKey(trigger.id, owner_id, window.civil_date)
            if await self.firing_store.exists(key):
                logger.debug("Firing %s already recorded", key)
                outcomes.append(TickOutcome.DUPLICATE_SUPPRESSED)
                continue

            try:
                eligible = await self.directory.is_eligible(owner_id, trigger.id)
            except PredicateEvaluationError as e:
                # No firing is recorded, so the next tick asks again
                logger.warning("Eligibility of %s for %s unknown: %s", owner_id, trigger.id, e)
                outcomes.append(TickOutcome.PREDICATE_ERROR)
                continue
            if not eligible:
                outcomes.append(TickOutcome.INELIGIBLE)
                continue

            if not await self.firing_store.claim(key):
                logger.debug("Firing %s claimed elsewhere", key)
                outcomes.append(TickOutcome.DUPLICATE_SUPPRESSED)
                continue

            try:
                result = await self.dispatcher.deliver(subscription, trigger.payload, self.signer)
            except Exception:
                await self.firing_store.record(key, FiringOutcome.ERROR)
                raise
            await self.firing_store.record(key, _FIRING_OUTCOME[result.status])
            outcomes.append(_TICK_OUTCOME[result.status])
            logger.info("Trigger %s for owner %s (%s): %s", trigger.id, owner_id, zone.key, result.status)

            if result.permanent:
                # A re-subscription during delivery has a new endpoint and survives
                if await self.registry.remove(owner_id, endpoint=subscription.endpoint):
                    outcomes.append(TickOutcome.SUBSCRIPTION_REMOVED)
                # The subscription is gone; nothing else can reach this owner today
                break

    # ------------------------------------------------------------------
    # Hosting helpers
    # ------------------------------------------------------------------

    async def run_forever(self, stop_event: asyncio.Event, interval: float | None = None) -> None:
        """Tick every *interval* seconds until *stop_event* is set."""
        period = interval if interval is not None else self.tick_interval.total_seconds()
        logger.info("Notification scheduler started (interval=%ss)", period)
        while not stop_event.is_set():
            try:
                await self.run_tick()
            except Exception as e:
                # list_all itself failed; try again next period
                logger.exception("Scheduler tick failed: %s", e)
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=period)
            except TimeoutError:
                pass
        logger.info("Notification scheduler stopped")

    async def send_now(self, owner_id: str, payload: NotificationPayload) -> DeliveryResult | None:
        """Deliver *payload* immediately, outside any trigger.

        Returns ``None`` when the owner has no subscription. A permanent
        failure removes the subscription just like a scheduled delivery.
        """
        subscription = await self.registry.get(owner_id)
        if subscription is None:
            logger.info("No push subscription for owner %s", owner_id)
            return None
        result = await self.dispatcher.deliver(subscription, payload, self.signer)
        if result.permanent:
            await self.registry.remove(owner_id, endpoint=subscription.endpoint)
        return result


async def build_firing_store(session_factory: SessionFactory, backend: str | None = None) -> FiringStore:
    backend = (backend or configs.Scheduler.FiringStore).lower()
    if backend == "memory":
        return InMemoryFiringStore()
    if backend == "database":
        return LayeredFiringStore(DatabaseFiringStore(session_factory))
    if backend == "redis":
        from countdown.infra.redis import get_redis_client

        client = await get_redis_client()
        retention = timedelta(days=configs.Scheduler.FiringRetentionDays)
        return LayeredFiringStore(RedisFiringStore(client, retention=retention))
    raise ValueError(f"Unsupported firing store: {backend}")


def build_owner_directory() -> OwnerDirectory:
    url = configs.Scheduler.OwnerDirectoryUrl
    if url:
        return HttpOwnerDirectory(url, timeout=configs.Scheduler.OwnerDirectoryTimeoutSeconds)
    logger.warning("No owner directory configured; every owner uses the default timezone and is ineligible")
    return StaticOwnerDirectory()


async def build_notification_scheduler(session_factory: SessionFactory | None = None) -> NotificationScheduler:
    """Scheduler wired from configuration: database registry, configured firing store."""
    if session_factory is None:
        from countdown.infra.database import AsyncSessionLocal

        session_factory = AsyncSessionLocal

    return NotificationScheduler(
        registry=DatabaseSubscriptionRegistry(session_factory),
        firing_store=await build_firing_store(session_factory),
        directory=build_owner_directory(),
        dispatcher=PushDispatcher(),
    )

"""Celery tasks: the periodic scheduler tick and one-off Web Push sends."""

import asyncio
import logging
from typing import Any

from countdown.configs import configs
from countdown.core.celery_app import celery_app

logger = logging.getLogger(__name__)

TICK_LOCK_KEY = "countdown:scheduler-tick"


@celery_app.task(name="run_notification_tick", ignore_result=True, soft_time_limit=240)
def run_notification_tick() -> None:
    """Run one scheduler tick (sync wrapper, scheduled by beat)."""
    loop = asyncio.new_event_loop()
    try:
        loop.run_until_complete(_run_notification_tick_async())
    finally:
        loop.close()


async def _run_notification_tick_async() -> dict[str, Any] | None:
    from countdown.core.schedule.scheduler import build_notification_scheduler
    from countdown.infra.redis import close_redis_client, run_once

    summary: dict[str, Any] = {}

    async def tick() -> None:
        async with await build_notification_scheduler() as scheduler:
            result = await scheduler.run_tick()
        summary.update(result.to_dict())

    try:
        # A beat that fires twice (or two beats) must not run overlapping ticks
        ran = await run_once(TICK_LOCK_KEY, tick, ttl=max(configs.Scheduler.TickIntervalSeconds - 1, 1))
    finally:
        # The client is bound to this task's event loop
        await close_redis_client()
    return summary if ran else None


@celery_app.task(name="send_web_push", ignore_result=True, soft_time_limit=30)
def send_web_push(
    owner_id: str,
    title: str,
    body: str,
    url: str = "/",
    tag: str = "notification",
) -> None:
    """Send one notification to an owner's subscription (sync wrapper)."""
    loop = asyncio.new_event_loop()
    try:
        loop.run_until_complete(_send_web_push_async(owner_id, title, body, url, tag))
    finally:
        loop.close()


async def _send_web_push_async(owner_id: str, title: str, body: str, url: str, tag: str) -> None:
    from countdown.core.owners import StaticOwnerDirectory
    from countdown.core.push.dispatcher import PushDispatcher
    from countdown.core.push.payload import NotificationPayload
    from countdown.core.push.registry import DatabaseSubscriptionRegistry
    from countdown.core.schedule.firing_store import InMemoryFiringStore
    from countdown.core.schedule.scheduler import NotificationScheduler
    from countdown.infra.database import AsyncSessionLocal

    payload = NotificationPayload(title=title, body=body, url=url, tag=tag)
    async with NotificationScheduler(
        registry=DatabaseSubscriptionRegistry(AsyncSessionLocal),
        firing_store=InMemoryFiringStore(),
        directory=StaticOwnerDirectory(),
        dispatcher=PushDispatcher(),
    ) as scheduler:
        result = await scheduler.send_now(owner_id, payload)
    if result is not None:
        logger.info("Web push to owner %s: %s", owner_id, result.status)

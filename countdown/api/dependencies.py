"""Shared FastAPI dependencies."""

import hmac
import logging
from collections.abc import AsyncGenerator

from fastapi import Header, HTTPException, status

from countdown.configs import configs
from countdown.core.clock import SystemTimeSource, TimeSource
from countdown.core.schedule.scheduler import NotificationScheduler, build_notification_scheduler

logger = logging.getLogger(__name__)

_time_source = SystemTimeSource()


def get_time_source() -> TimeSource:
    return _time_source


async def get_scheduler() -> AsyncGenerator[NotificationScheduler, None]:
    """Request-scoped scheduler wired from configuration."""
    scheduler = await build_notification_scheduler()
    try:
        yield scheduler
    finally:
        await scheduler.aclose()


async def require_cron_secret(authorization: str | None = Header(default=None)) -> None:
    """Reject the call unless it carries ``Authorization: Bearer <CronSecret>``.

    An empty ``CronSecret`` disables the check (local development).
    """
    secret = configs.Scheduler.CronSecret
    if not secret:
        return
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not hmac.compare_digest(token.strip(), secret):
        logger.warning("Rejected call with invalid cron secret")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid cron secret")

"""Scheduler trigger endpoint for cron-style (serverless) hosting."""

from typing import Any

from fastapi import APIRouter, Depends

from countdown.api.dependencies import get_scheduler, require_cron_secret
from countdown.core.schedule.scheduler import NotificationScheduler

router = APIRouter(prefix="/scheduler", tags=["scheduler"])


@router.post("/tick", dependencies=[Depends(require_cron_secret)])
async def run_scheduler_tick(
    scheduler: NotificationScheduler = Depends(get_scheduler),
) -> dict[str, Any]:
    """Run one scheduler tick now and return its summary."""
    summary = await scheduler.run_tick()
    return summary.to_dict()

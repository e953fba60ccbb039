from datetime import datetime

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel

from countdown.api.dependencies import get_time_source
from countdown.configs import configs
from countdown.core.clock import TimeSource
from countdown.core.schedule.resolver import next_new_year, resolve_zone_or_default

router = APIRouter(prefix="/system", tags=["system"])


class ServerTimeResponse(BaseModel):
    timestamp: datetime
    timezone: str = "UTC"


class NewYearResponse(BaseModel):
    timezone: str
    fell_back: bool
    target: datetime
    seconds_remaining: float


@router.get("/time", response_model=ServerTimeResponse)
async def get_server_time(
    response: Response,
    time_source: TimeSource = Depends(get_time_source),
) -> ServerTimeResponse:
    """
    Reference instant for client clock correction.

    Read-only; may be cached for a few seconds.
    """
    response.headers["Cache-Control"] = "public, max-age=5"
    return ServerTimeResponse(timestamp=time_source.now())


@router.get("/new-year", response_model=NewYearResponse)
async def get_new_year(
    timezone: str | None = None,
    time_source: TimeSource = Depends(get_time_source),
) -> NewYearResponse:
    """The New-Year instant a countdown in *timezone* is heading for."""
    zone, fell_back = resolve_zone_or_default(timezone, configs.Scheduler.DefaultTimezone)
    now = time_source.now()
    target = next_new_year(now, zone)
    return NewYearResponse(
        timezone=zone.key,
        fell_back=fell_back,
        target=target,
        seconds_remaining=max(0.0, (target - now).total_seconds()),
    )

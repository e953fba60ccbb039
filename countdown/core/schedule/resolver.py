"""
Civil time → absolute instant resolution.

Uses zoneinfo so every resolution applies the UTC offset that the zone had
*at that civil date*, not the offset it has today.

DST policy (deterministic):
- nonexistent civil time (spring-forward gap): the first real instant after
  the gap, e.g. 02:30 on a 02:00→03:00 night resolves to 03:00 new-offset;
- ambiguous civil time (fall-back fold): the earlier of the two instants.
"""

import logging
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from countdown.core.exceptions import UnknownTimezoneError

logger = logging.getLogger(__name__)


def get_zone(timezone_name: str | None) -> ZoneInfo:
    """Load *timezone_name* or raise :class:`UnknownTimezoneError`."""
    if not timezone_name:
        raise UnknownTimezoneError(timezone_name)
    try:
        return ZoneInfo(timezone_name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise UnknownTimezoneError(timezone_name) from e


def resolve_zone_or_default(timezone_name: str | None, default: str) -> tuple[ZoneInfo, bool]:
    """Return ``(zone, fell_back)``; unknown or unset names fall back to *default*.

    The default itself must be valid; a bad default is a configuration error
    and propagates.
    """
    try:
        return get_zone(timezone_name), False
    except UnknownTimezoneError:
        if timezone_name:
            logger.warning("Unknown timezone '%s', falling back to %s", timezone_name, default)
        return get_zone(default), True


def _first_instant_after_gap(civil: datetime, zone: ZoneInfo) -> datetime:
    # fold=1 applies the post-transition offset, fold=0 the pre-transition one;
    # the transition instant lies between the two readings.
    a = civil.replace(tzinfo=zone, fold=1).astimezone(timezone.utc)
    b = civil.replace(tzinfo=zone, fold=0).astimezone(timezone.utc)
    lo, hi = (int(a.timestamp()), int(b.timestamp()))
    if lo > hi:
        lo, hi = hi, lo
    after = datetime.fromtimestamp(hi, tz=zone).utcoffset()

    while hi - lo > 1:
        mid = (lo + hi) // 2
        if datetime.fromtimestamp(mid, tz=zone).utcoffset() == after:
            hi = mid
        else:
            lo = mid
    return datetime.fromtimestamp(hi, tz=timezone.utc)


def resolve(civil: datetime, timezone_name: str | ZoneInfo) -> datetime:
    """Resolve a naive civil date-time in an IANA zone to an aware UTC instant.

    Args:
        civil: Naive local date-time (e.g. ``2025-12-31 23:57``).
        timezone_name: IANA name (e.g. ``"Asia/Tokyo"``) or a loaded zone.

    Raises:
        UnknownTimezoneError: The zone name is not in the tz database.
        ValueError: *civil* carries tzinfo already.
    """
    if civil.tzinfo is not None:
        raise ValueError("civil date-time must be naive")
    zone = timezone_name if isinstance(timezone_name, ZoneInfo) else get_zone(timezone_name)

    candidate = civil.replace(tzinfo=zone, fold=0).astimezone(timezone.utc)
    if candidate.astimezone(zone).replace(tzinfo=None) == civil.replace(fold=0):
        return candidate
    return _first_instant_after_gap(civil.replace(fold=0), zone)


def resolve_on(day: date, at: time, timezone_name: str | ZoneInfo) -> datetime:
    return resolve(datetime.combine(day, at), timezone_name)


def local_civil_now(now: datetime, timezone_name: str | ZoneInfo) -> datetime:
    """Naive local wall-clock reading of the aware instant *now*."""
    zone = timezone_name if isinstance(timezone_name, ZoneInfo) else get_zone(timezone_name)
    return now.astimezone(zone).replace(tzinfo=None)


def new_year_midnight(year: int, timezone_name: str | ZoneInfo) -> datetime:
    """UTC instant at which January 1st of *year* begins in the zone."""
    return resolve(datetime(year, 1, 1), timezone_name)


def next_new_year(now: datetime, timezone_name: str | ZoneInfo, grace: timedelta = timedelta(0)) -> datetime:
    """The New-Year instant a countdown in this zone should target.

    Within *grace* after a New Year has begun the one just passed is still
    returned so a celebration in progress keeps its target.
    """
    local = local_civil_now(now, timezone_name)
    current = new_year_midnight(local.year, timezone_name)
    if now < current + grace:
        return current
    return new_year_midnight(local.year + 1, timezone_name)

"""Time sources.

Everything that needs "now" takes a :class:`TimeSource` instead of calling
``datetime.now()`` so scheduler ticks and client countdowns can be driven by a
simulated clock in tests and corrected against the server clock in clients.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Protocol, runtime_checkable
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)


@runtime_checkable
class TimeSource(Protocol):
    def now(self) -> datetime:
        """Current instant as an aware UTC datetime."""
        ...


def now_in(source: TimeSource, tz: ZoneInfo | str) -> datetime:
    """Current instant of *source* expressed in *tz*."""
    zone = ZoneInfo(tz) if isinstance(tz, str) else tz
    return source.now().astimezone(zone)


def _as_utc(instant: datetime) -> datetime:
    if instant.tzinfo is None:
        raise ValueError("instant must be timezone-aware")
    return instant.astimezone(timezone.utc)


class SystemTimeSource:
    """The host clock."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class ManualTimeSource:
    """A clock that only moves when told to. Used for simulation."""

    def __init__(self, start: datetime) -> None:
        self._now = _as_utc(start)
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def set(self, instant: datetime) -> None:
        with self._lock:
            self._now = _as_utc(instant)

    def advance(self, delta: timedelta | float) -> datetime:
        step = delta if isinstance(delta, timedelta) else timedelta(seconds=delta)
        with self._lock:
            self._now = self._now + step
            return self._now


class SyncedTimeSource:
    """Local clock corrected by an offset to a server reference instant.

    The offset is recomputed from scratch on every :meth:`resync`; nothing
    is accumulated between syncs, so a suspended client only has to resync
    once to be exact again.
    """

    def __init__(self, base: TimeSource | None = None) -> None:
        self._base = base or SystemTimeSource()
        self._offset = timedelta(0)
        self._synced_at: datetime | None = None

    @property
    def offset(self) -> timedelta:
        return self._offset

    @property
    def synced_at(self) -> datetime | None:
        return self._synced_at

    def now(self) -> datetime:
        return self._base.now() + self._offset

    def resync(self, reference: datetime, round_trip: timedelta | None = None) -> timedelta:
        """Align with the server-reported *reference* instant.

        When the request *round_trip* is known, half of it is added to the
        reference to approximate the server clock at receipt.
        """
        server_now = _as_utc(reference)
        if round_trip is not None and round_trip > timedelta(0):
            server_now += round_trip / 2
        local_now = self._base.now()
        self._offset = server_now - local_now
        self._synced_at = local_now
        logger.debug("Clock resynced, offset=%.3fs", self._offset.total_seconds())
        return self._offset

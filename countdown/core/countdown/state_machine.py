"""Client-side countdown state machine.

Runs once per connected client, polled at 1 Hz. The current state is always
derived from ``now`` and the target instant, never from elapsed ticks, so a
suspended client that resumes (or resyncs its clock) lands in the right
state without replaying what it missed.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from enum import StrEnum
from zoneinfo import ZoneInfo

from countdown.core.clock import SyncedTimeSource, TimeSource
from countdown.core.schedule.resolver import next_new_year

logger = logging.getLogger(__name__)


class CountdownState(StrEnum):
    IDLE = "idle"
    WARNED = "warned"
    BLINKING = "blinking"
    CELEBRATING = "celebrating"
    SETTLED = "settled"


_ORDER = list(CountdownState)

TransitionListener = Callable[[CountdownState, CountdownState, datetime], None]
BlinkListener = Callable[[int, datetime], None]


class ClientCountdownStateMachine:
    """Idle → Warned → Blinking → Celebrating → Settled, each fired at most once.

    Args:
        target: Aware instant of the celebration (local midnight).
        time_source: Clock to poll; must be a :class:`SyncedTimeSource` to use :meth:`resync`.
        warn_before: Offset of the warning before *target*.
        blink_before: Offset of the blink phase before *target*.
        celebration: How long Celebrating lasts before Settled.
        max_blinks: Upper bound on blink signals.
        blink_burst: Blinks are only emitted this soon after the blink phase starts.
    """

    def __init__(
        self,
        target: datetime,
        time_source: TimeSource,
        *,
        warn_before: timedelta = timedelta(minutes=2),
        blink_before: timedelta = timedelta(minutes=1),
        celebration: timedelta = timedelta(seconds=20),
        max_blinks: int = 2,
        blink_burst: timedelta = timedelta(seconds=10),
        on_transition: TransitionListener | None = None,
        on_blink: BlinkListener | None = None,
    ) -> None:
        if target.tzinfo is None:
            raise ValueError("target must be timezone-aware")
        if not warn_before > blink_before > timedelta(0):
            raise ValueError("warn_before must be larger than blink_before, both positive")
        self.target = target
        self.time_source = time_source
        self.warn_before = warn_before
        self.blink_before = blink_before
        self.celebration = celebration
        self.max_blinks = max_blinks
        self.blink_burst = blink_burst
        self.on_transition = on_transition
        self.on_blink = on_blink

        self._state = CountdownState.IDLE
        self._passed: set[CountdownState] = {CountdownState.IDLE}
        self._blinks = 0

    @classmethod
    def for_new_year(
        cls,
        time_source: TimeSource,
        timezone_name: str | ZoneInfo,
        **kwargs,
    ) -> ClientCountdownStateMachine:
        """Machine targeting the next local New Year (or the one just begun)."""
        celebration = kwargs.get("celebration", timedelta(seconds=20))
        target = next_new_year(time_source.now(), timezone_name, grace=celebration)
        return cls(target, time_source, **kwargs)

    @property
    def state(self) -> CountdownState:
        return self._state

    @property
    def blinks(self) -> int:
        return self._blinks

    def state_at(self, now: datetime) -> CountdownState:
        if now < self.target - self.warn_before:
            return CountdownState.IDLE
        if now < self.target - self.blink_before:
            return CountdownState.WARNED
        if now < self.target:
            return CountdownState.BLINKING
        if now < self.target + self.celebration:
            return CountdownState.CELEBRATING
        return CountdownState.SETTLED

    def seconds_remaining(self) -> float:
        return max(0.0, (self.target - self.time_source.now()).total_seconds())

    def tick(self) -> CountdownState:
        """Evaluate the clock once and fire whatever is due."""
        now = self.time_source.now()
        current = self.state_at(now)
        previous = self._state
        self._state = current

        if current not in self._passed:
            # States jumped over are marked passed too, so they never fire late
            for state in _ORDER[: _ORDER.index(current) + 1]:
                self._passed.add(state)
            logger.debug("Countdown %s -> %s at %s", previous, current, now.isoformat())
            if self.on_transition is not None:
                self.on_transition(previous, current, now)

        if current is CountdownState.BLINKING and self._blinks < self.max_blinks:
            if now < self.target - self.blink_before + self.blink_burst:
                self._blinks += 1
                if self.on_blink is not None:
                    self.on_blink(self._blinks, now)
        return current

    def resync(self, reference: datetime, round_trip: timedelta | None = None) -> CountdownState:
        """Correct the clock against a server *reference* instant and re-derive the state."""
        if not isinstance(self.time_source, SyncedTimeSource):
            raise TypeError("resync requires a SyncedTimeSource")
        self.time_source.resync(reference, round_trip)
        return self.tick()

    async def run(self, stop_event: asyncio.Event, interval: float = 1.0) -> None:
        """Poll until *stop_event* is set or the countdown has settled."""
        while not stop_event.is_set():
            if self.tick() is CountdownState.SETTLED:
                return
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except TimeoutError:
                pass

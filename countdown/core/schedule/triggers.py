"""Trigger definitions: *when* a reminder fires, in each owner's civil time."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from enum import StrEnum
from zoneinfo import ZoneInfo

from countdown.core.push.payload import NotificationPayload
from countdown.core.schedule.resolver import resolve_on


class Recurrence(StrEnum):
    YEARLY = "yearly"
    ONCE = "once"


class TriggerId(StrEnum):
    ROOM_GATHERING = "room-gathering"
    MAGIC_MOMENT = "magic-moment"


@dataclass(frozen=True, slots=True)
class TriggerWindow:
    trigger_id: str
    civil_date: date
    start: datetime
    end: datetime

    def contains(self, instant: datetime) -> bool:
        return self.start <= instant < self.end


@dataclass(frozen=True, slots=True)
class TriggerDefinition:
    """A civil-time reminder, e.g. "Dec 31, 23:57 local".

    The window opens at the resolved instant of the civil target and stays
    open for *window*; each owner gets at most one delivery per civil date.
    """

    id: str
    month: int
    day: int
    hour: int
    minute: int
    payload: NotificationPayload
    window: timedelta = timedelta(minutes=5)
    recurrence: Recurrence = Recurrence.YEARLY
    year: int | None = None
    description: str = field(default="", compare=False)

    def __post_init__(self) -> None:
        if self.recurrence is Recurrence.ONCE and self.year is None:
            raise ValueError(f"Trigger '{self.id}' is one-shot but has no year")
        if self.window <= timedelta(0):
            raise ValueError(f"Trigger '{self.id}' needs a positive window")
        # Validates month/day/hour/minute eagerly
        date(self.year or 2000, self.month, self.day)
        time(self.hour, self.minute)

    @property
    def at(self) -> time:
        return time(self.hour, self.minute)

    def _civil_date_for_year(self, year: int) -> date | None:
        if self.recurrence is Recurrence.ONCE and year != self.year:
            return None
        try:
            return date(year, self.month, self.day)
        except ValueError:
            # Feb 29 on a non-leap year
            return None

    def window_on(self, civil_date: date, zone: ZoneInfo, min_span: timedelta = timedelta(0)) -> TriggerWindow:
        start = resolve_on(civil_date, self.at, zone)
        span = max(self.window, min_span)
        return TriggerWindow(trigger_id=self.id, civil_date=civil_date, start=start, end=start + span)

    def active_window(
        self, now: datetime, zone: ZoneInfo, min_span: timedelta = timedelta(0)
    ) -> TriggerWindow | None:
        """The window containing *now* for an owner in *zone*, if any.

        The window stays open for at least *min_span*, which the scheduler
        sets above its tick interval so a late tick still lands inside it.
        Both today's and yesterday's civil date are considered so windows
        that run past local midnight still match.
        """
        local_day = now.astimezone(zone).date()
        for civil_day in (local_day, local_day - timedelta(days=1)):
            target = self._civil_date_for_year(civil_day.year)
            if target != civil_day:
                continue
            window = self.window_on(target, zone, min_span)
            if window.contains(now):
                return window
        return None


# Reminders sent before midnight on New Year's Eve, in each owner's zone.
DEFAULT_TRIGGERS: list[TriggerDefinition] = [
    TriggerDefinition(
        id=TriggerId.ROOM_GATHERING,
        month=12,
        day=31,
        hour=22,
        minute=50,
        payload=NotificationPayload(
            title="Time to gather for the New Year in your room!",
            body="Remind your guests that the celebration is about to start.",
            url="/rooms",
            tag="room-gathering",
        ),
        description="T-70 minutes, owners who created a room",
    ),
    TriggerDefinition(
        id=TriggerId.MAGIC_MOMENT,
        month=12,
        day=31,
        hour=23,
        minute=57,
        payload=NotificationPayload(
            title="2 minutes remain until the magic moment!",
            body="Your wish joins all the others and flies off into space as a star. See you at the tree!",
            url="/tree",
            tag="new-year-notification",
        ),
        description="Two-minute notice, owners with a toy on the tree",
    ),
]

"""Unit tests for civil time resolution."""

from datetime import date, datetime, time, timedelta, timezone

import pytest

from countdown.core.exceptions import UnknownTimezoneError
from countdown.core.schedule.resolver import (
    get_zone,
    local_civil_now,
    new_year_midnight,
    next_new_year,
    resolve,
    resolve_on,
    resolve_zone_or_default,
)

UTC = timezone.utc


class TestResolve:
    """Civil date-time + zone → UTC instant."""

    def test_tokyo_new_years_eve(self) -> None:
        assert resolve(datetime(2025, 12, 31, 23, 57), "Asia/Tokyo") == datetime(2025, 12, 31, 14, 57, tzinfo=UTC)

    def test_is_deterministic(self) -> None:
        civil = datetime(2025, 12, 31, 23, 57)
        assert resolve(civil, "America/Los_Angeles") == resolve(civil, "America/Los_Angeles")

    def test_uses_offset_of_that_date(self) -> None:
        # Moscow was UTC+4 from 2011 to 2014 and UTC+3 since
        assert new_year_midnight(2012, "Europe/Moscow") == datetime(2011, 12, 31, 20, 0, tzinfo=UTC)
        assert new_year_midnight(2016, "Europe/Moscow") == datetime(2015, 12, 31, 21, 0, tzinfo=UTC)

    def test_summer_and_winter_offsets_differ(self) -> None:
        winter = resolve(datetime(2025, 1, 15, 12, 0), "Europe/Berlin")
        summer = resolve(datetime(2025, 7, 15, 12, 0), "Europe/Berlin")
        assert winter.hour == 11
        assert summer.hour == 10

    def test_spring_forward_gap_resolves_to_end_of_gap(self) -> None:
        instant = resolve(datetime(2025, 3, 9, 2, 30), "America/New_York")
        assert instant == datetime(2025, 3, 9, 7, 0, tzinfo=UTC)
        assert instant.astimezone(get_zone("America/New_York")).replace(tzinfo=None) == datetime(2025, 3, 9, 3, 0)

    def test_gap_resolution_is_stable(self) -> None:
        results = {resolve(datetime(2025, 3, 9, 2, 30), "America/New_York") for _ in range(5)}
        assert len(results) == 1

    def test_fall_back_fold_picks_earlier_instant(self) -> None:
        # 01:30 happens twice on 2025-11-02: EDT (05:30Z) then EST (06:30Z)
        assert resolve(datetime(2025, 11, 2, 1, 30), "America/New_York") == datetime(2025, 11, 2, 5, 30, tzinfo=UTC)

    def test_half_hour_gap(self) -> None:
        # Lord Howe Island moves its clocks by 30 minutes
        instant = resolve(datetime(2025, 10, 5, 2, 15), "Australia/Lord_Howe")
        assert instant == datetime(2025, 10, 4, 15, 30, tzinfo=UTC)

    def test_rejects_aware_input(self) -> None:
        with pytest.raises(ValueError):
            resolve(datetime(2025, 12, 31, 23, 57, tzinfo=UTC), "Asia/Tokyo")

    def test_unknown_timezone(self) -> None:
        with pytest.raises(UnknownTimezoneError) as exc_info:
            resolve(datetime(2025, 12, 31, 23, 57), "Mars/Olympus_Mons")
        assert exc_info.value.timezone_name == "Mars/Olympus_Mons"

    def test_resolve_on(self) -> None:
        assert resolve_on(date(2025, 12, 31), time(22, 50), "Europe/Moscow") == datetime(
            2025, 12, 31, 19, 50, tzinfo=UTC
        )


class TestZoneFallback:
    def test_known_zone(self) -> None:
        zone, fell_back = resolve_zone_or_default("Asia/Tokyo", "Europe/Moscow")
        assert zone.key == "Asia/Tokyo"
        assert fell_back is False

    @pytest.mark.parametrize("name", [None, "", "Not/AZone"])
    def test_falls_back_to_default(self, name: str | None) -> None:
        zone, fell_back = resolve_zone_or_default(name, "Europe/Moscow")
        assert zone.key == "Europe/Moscow"
        assert fell_back is True

    def test_bad_default_propagates(self) -> None:
        with pytest.raises(UnknownTimezoneError):
            resolve_zone_or_default("Not/AZone", "Also/Not")


class TestNewYear:
    def test_next_new_year_before_midnight(self) -> None:
        now = datetime(2025, 12, 31, 14, 0, tzinfo=UTC)
        assert next_new_year(now, "Asia/Tokyo") == datetime(2025, 12, 31, 15, 0, tzinfo=UTC)

    def test_next_new_year_rolls_over_after_midnight(self) -> None:
        now = datetime(2025, 12, 31, 15, 0, 30, tzinfo=UTC)
        assert next_new_year(now, "Asia/Tokyo") == datetime(2026, 12, 31, 15, 0, tzinfo=UTC)

    def test_grace_keeps_current_celebration(self) -> None:
        now = datetime(2025, 12, 31, 15, 0, 10, tzinfo=UTC)
        target = next_new_year(now, "Asia/Tokyo", grace=timedelta(seconds=20))
        assert target == datetime(2025, 12, 31, 15, 0, tzinfo=UTC)

    def test_local_civil_now(self) -> None:
        now = datetime(2025, 12, 31, 14, 57, tzinfo=UTC)
        assert local_civil_now(now, "Asia/Tokyo") == datetime(2025, 12, 31, 23, 57)

"""Timestamp resolution and IST day/preset boundaries."""

from datetime import datetime, timedelta, timezone

import pytest
from bson.timestamp import Timestamp

from reporting.timeutils import (
    check_month_key,
    day_keys,
    day_range,
    month_bucket,
    month_key,
    preset_range,
    previous_month_keys,
    resolve_record_time,
    resolve_timestamp,
    window_days,
)

UTC = timezone.utc
EXPECTED = datetime(2025, 1, 15, 4, 0, tzinfo=UTC)


class TestResolveTimestamp:
    def test_epoch_millis(self):
        assert resolve_timestamp(1736913600000) == EXPECTED

    def test_iso_strings(self):
        assert resolve_timestamp("2025-01-15T04:00:00Z") == EXPECTED
        assert resolve_timestamp("2025-01-15T09:30:00+05:30") == EXPECTED
        # naive strings are read as UTC
        assert resolve_timestamp("2025-01-15T04:00:00") == EXPECTED

    def test_database_timestamp_object(self):
        assert resolve_timestamp(Timestamp(1736913600, 1)) == EXPECTED

    def test_datetime_passthrough(self):
        naive = datetime(2025, 1, 15, 4, 0)
        assert resolve_timestamp(naive) == EXPECTED
        ist = datetime(2025, 1, 15, 9, 30, tzinfo=timezone(timedelta(minutes=330)))
        assert resolve_timestamp(ist) == EXPECTED

    @pytest.mark.parametrize("raw", [None, "", "not a date", {}, [], True, float("nan"), 10 ** 20])
    def test_unusable_values_resolve_to_none(self, raw):
        assert resolve_timestamp(raw) is None

    def test_converter_that_raises_is_none(self):
        class Broken:
            def to_datetime(self):
                raise RuntimeError("boom")

        assert resolve_timestamp(Broken()) is None

    def test_record_field_fallback_order(self):
        rec = {"lastModified": "garbage", "date": 1736913600000, "synced_at": "2020-01-01T00:00:00Z"}
        assert resolve_record_time(rec, ["lastModified", "date", "synced_at"]) == EXPECTED
        assert resolve_record_time({}, ["date"]) is None


class TestDayRange:
    def test_evening_ist_stays_on_same_day(self):
        # 21:30 IST on the 15th is still the 15th, even though UTC is 16:00
        start, end = day_range(datetime(2025, 1, 15, 16, 0, tzinfo=UTC))
        assert start == datetime(2025, 1, 14, 18, 30, tzinfo=UTC)
        assert end == datetime(2025, 1, 15, 18, 29, 59, 999000, tzinfo=UTC)

    def test_early_morning_ist(self):
        # 00:30 IST on the 15th is 19:00 UTC on the 14th
        start, _ = day_range(datetime(2025, 1, 14, 19, 0, tzinfo=UTC))
        assert start == datetime(2025, 1, 14, 18, 30, tzinfo=UTC)

    @pytest.mark.parametrize("hour", range(0, 24, 3))
    def test_brackets_exactly_one_day(self, hour):
        start, end = day_range(datetime(2025, 3, 1, hour, 17, tzinfo=UTC))
        assert start <= end
        assert end - start + timedelta(milliseconds=1) == timedelta(days=1)

    def test_custom_offset(self):
        start, _ = day_range(datetime(2025, 1, 15, 3, 0, tzinfo=UTC), zone_offset_minutes=0)
        assert start == datetime(2025, 1, 15, tzinfo=UTC)


class TestPresets:
    def test_today_and_yesterday(self, now):
        assert preset_range("today", now) == day_range(now)
        assert preset_range("yesterday", now) == day_range(now - timedelta(days=1))

    def test_lookback_windows_include_today(self, now):
        start, end = preset_range("last7days", now)
        assert start == datetime(2025, 1, 8, 18, 30, tzinfo=UTC)
        assert end == day_range(now)[1]
        start, _ = preset_range("last30days", now)
        assert start == datetime(2024, 12, 16, 18, 30, tzinfo=UTC)

    def test_calendar_presets(self, now):
        assert preset_range("thisWeek", now)[0] == datetime(2025, 1, 12, 18, 30, tzinfo=UTC)
        assert preset_range("thisMonth", now)[0] == datetime(2024, 12, 31, 18, 30, tzinfo=UTC)
        assert preset_range("thisYear", now)[0] == datetime(2024, 12, 31, 18, 30, tzinfo=UTC)
        start, end = preset_range("lastMonth", now)
        assert start == datetime(2024, 11, 30, 18, 30, tzinfo=UTC)
        assert end == datetime(2024, 12, 31, 18, 29, 59, 999000, tzinfo=UTC)

    def test_all_presets_are_ordered(self, now):
        for name in ["today", "yesterday", "last7days", "last30days", "thisWeek",
                     "thisMonth", "lastMonth", "last60Days", "last90Days", "thisYear"]:
            start, end = preset_range(name, now)
            assert start <= end, name

    def test_unknown_preset(self, now):
        with pytest.raises(ValueError):
            preset_range("fortnight", now)


class TestKeys:
    def test_month_key_uses_ist(self):
        # 19:00 UTC on Jan 31 is already Feb 1 in IST
        assert month_key(datetime(2025, 1, 31, 19, 0, tzinfo=UTC)) == "Feb_2025"
        assert month_key(datetime(2025, 1, 31, 18, 0, tzinfo=UTC)) == "Jan_2025"

    def test_previous_month_keys_cross_year(self):
        assert previous_month_keys("Feb_2025", 3) == ["Jan_2025", "Dec_2024", "Nov_2024"]

    def test_check_month_key(self):
        assert check_month_key("Jan_2025") == "Jan_2025"
        for bad in ["2025-01", "January_2025", "Jan_25", "Jan-2025"]:
            with pytest.raises(ValueError):
                check_month_key(bad)

    def test_day_keys(self, now):
        keys = day_keys("last7days", now)
        assert keys[0] == "2025-01-09"
        assert keys[-1] == "2025-01-15"
        assert len(keys) == 7
        assert day_keys("yesterday", now) == ["2025-01-14"]

    def test_window_days(self):
        assert window_days("yesterday") == 1
        assert window_days("last7days") == 7
        assert window_days("last30days") == 30

    def test_month_bucket(self):
        assert month_bucket(datetime(2025, 1, 31, 19, 0, tzinfo=UTC)) == "2025-02"

"""
Timestamp resolution and IST day boundaries.

Stored moments come in three shapes: epoch milliseconds, ISO-8601 strings and
database timestamp objects (anything exposing `as_datetime()` / `to_datetime()`,
or a datetime itself). Everything resolves to an aware UTC datetime; calendar
days are always cut in the reference zone (IST, UTC+5:30) and converted back
to UTC for range comparisons.
"""
from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Iterable

IST_OFFSET_MINUTES = 330

MONTH_ABBR = ("Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

PRESETS = (
    "today", "yesterday", "last7days", "last30days", "thisWeek",
    "thisMonth", "lastMonth", "last60Days", "last90Days", "thisYear",
)

# lookback presets -> number of calendar days including today
_WINDOW_DAYS = {
    "last7days": 7,
    "last30days": 30,
    "last60Days": 60,
    "last90Days": 90,
}

_CONVERTERS = ("as_datetime", "to_datetime", "toDate")


def zone_for(offset_minutes: int = IST_OFFSET_MINUTES) -> timezone:
    return timezone(timedelta(minutes=offset_minutes))


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(dt: datetime) -> datetime:
    # naive values are treated as UTC (what pymongo hands back without tz_aware)
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def resolve_timestamp(raw) -> datetime | None:
    """Returns an aware UTC datetime, or None when `raw` is not a usable moment."""
    if raw is None or isinstance(raw, bool):
        return None

    if isinstance(raw, datetime):
        return _as_utc(raw)

    if isinstance(raw, (int, float)):
        if isinstance(raw, float) and not math.isfinite(raw):
            return None
        try:
            return datetime.fromtimestamp(raw / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            logging.debug("[Time] epoch value out of range: %r", raw)
            return None

    if isinstance(raw, str):
        text = raw.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return _as_utc(datetime.fromisoformat(text))
        except ValueError:
            logging.debug("[Time] unparseable timestamp string: %r", raw)
            return None

    for name in _CONVERTERS:
        conv = getattr(raw, name, None)
        if callable(conv):
            try:
                value = conv()
            except Exception as e:
                logging.debug("[Time] %s() failed on %r: %s", name, raw, e)
                return None
            return _as_utc(value) if isinstance(value, datetime) else None

    logging.debug("[Time] unsupported timestamp type: %s", type(raw).__name__)
    return None


def resolve_record_time(record: dict, fields: Iterable[str]) -> datetime | None:
    """First field (in order) whose value resolves to a moment wins."""
    for field in fields:
        ts = resolve_timestamp(record.get(field))
        if ts is not None:
            return ts
    return None


def day_range(reference: datetime, zone_offset_minutes: int = IST_OFFSET_MINUTES) -> tuple[datetime, datetime]:
    """
    Start (00:00:00.000) and inclusive end (23:59:59.999) of the zone-local
    calendar day containing `reference`, both expressed in UTC.
    """
    zone = zone_for(zone_offset_minutes)
    local = _as_utc(reference).astimezone(zone)
    start_local = local.replace(hour=0, minute=0, second=0, microsecond=0)
    end_local = start_local + timedelta(days=1) - timedelta(milliseconds=1)
    return start_local.astimezone(timezone.utc), end_local.astimezone(timezone.utc)


def local_date(moment: datetime, zone_offset_minutes: int = IST_OFFSET_MINUTES):
    return _as_utc(moment).astimezone(zone_for(zone_offset_minutes)).date()


def _local_midnight(d, zone_offset_minutes: int) -> datetime:
    zone = zone_for(zone_offset_minutes)
    return datetime(d.year, d.month, d.day, tzinfo=zone)


def preset_range(
    name: str,
    now: datetime | None = None,
    zone_offset_minutes: int = IST_OFFSET_MINUTES,
) -> tuple[datetime, datetime]:
    """(start, end) in UTC for a named preset, cut on zone-local day boundaries."""
    now = _as_utc(now or now_utc())
    today_start, today_end = day_range(now, zone_offset_minutes)
    today = local_date(now, zone_offset_minutes)

    if name == "today":
        return today_start, today_end

    if name == "yesterday":
        return day_range(now - timedelta(days=1), zone_offset_minutes)

    if name in _WINDOW_DAYS:
        start, _ = day_range(now - timedelta(days=_WINDOW_DAYS[name] - 1), zone_offset_minutes)
        return start, today_end

    if name == "thisWeek":
        monday = today - timedelta(days=today.weekday())
        return _local_midnight(monday, zone_offset_minutes).astimezone(timezone.utc), today_end

    if name == "thisMonth":
        first = today.replace(day=1)
        return _local_midnight(first, zone_offset_minutes).astimezone(timezone.utc), today_end

    if name == "lastMonth":
        first_this = today.replace(day=1)
        last_prev = first_this - timedelta(days=1)
        start = _local_midnight(last_prev.replace(day=1), zone_offset_minutes)
        end = _local_midnight(first_this, zone_offset_minutes) - timedelta(milliseconds=1)
        return start.astimezone(timezone.utc), end.astimezone(timezone.utc)

    if name == "thisYear":
        first = today.replace(month=1, day=1)
        return _local_midnight(first, zone_offset_minutes).astimezone(timezone.utc), today_end

    raise ValueError(f"Unknown date preset: {name!r}. Expected one of {', '.join(PRESETS)}")


def window_days(name: str) -> int:
    """Nominal length in days of a lookback window ("yesterday" counts as 1)."""
    if name in ("today", "yesterday"):
        return 1
    if name in _WINDOW_DAYS:
        return _WINDOW_DAYS[name]
    raise ValueError(f"Not a fixed-length window: {name!r}")


def day_keys(
    name: str,
    now: datetime | None = None,
    zone_offset_minutes: int = IST_OFFSET_MINUTES,
) -> list[str]:
    """
    ISO dates (YYYY-MM-DD, zone-local) covered by a window, oldest first.
    "last7days" is today-6 .. today, "yesterday" is the single previous day.
    """
    today = local_date(now or now_utc(), zone_offset_minutes)
    if name == "yesterday":
        return [(today - timedelta(days=1)).isoformat()]
    n = window_days(name)
    return [(today - timedelta(days=i)).isoformat() for i in range(n - 1, -1, -1)]


def month_key(moment: datetime | None = None, zone_offset_minutes: int = IST_OFFSET_MINUTES) -> str:
    """Ledger month key, e.g. "Jan_2025", for the zone-local month of `moment` (default now)."""
    d = local_date(moment or now_utc(), zone_offset_minutes)
    return f"{MONTH_ABBR[d.month - 1]}_{d.year}"


def previous_month_keys(key: str, count: int) -> list[str]:
    """The `count` month keys before `key`, most recent first."""
    abbr, year_s = key.split("_")
    idx = MONTH_ABBR.index(abbr)
    year = int(year_s)
    out = []
    for _ in range(count):
        idx -= 1
        if idx < 0:
            idx = 11
            year -= 1
        out.append(f"{MONTH_ABBR[idx]}_{year}")
    return out


def month_bucket(moment: datetime, zone_offset_minutes: int = IST_OFFSET_MINUTES) -> str:
    """Zone-local "YYYY-MM" label."""
    d = local_date(moment, zone_offset_minutes)
    return f"{d.year}-{d.month:02d}"


def check_month_key(key: str) -> str:
    """Returns `key` if it looks like "Jan_2025", else raises ValueError."""
    parts = str(key).split("_")
    if len(parts) != 2 or parts[0] not in MONTH_ABBR or not (parts[1].isdigit() and len(parts[1]) == 4):
        raise ValueError(f"Invalid month key {key!r}; expected e.g. 'Jan_2025'")
    return key

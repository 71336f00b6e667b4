"""
Per-user productivity (leads worked, status mix, last activity).

"today" is aggregated live from the raw leads; past windows are summed from
the daily `productivity_snapshots` documents, one per zone-local ISO date:

    {_id: "2025-01-14", amaLeads: {userProductivity: [
        {userId, userName, leadsWorked, lastActivity, statusBreakdown}, ...]}}

Historical averages divide by the nominal window length, so days without a
snapshot dilute the average instead of being skipped.
"""
from __future__ import annotations

import concurrent.futures
import logging
from datetime import datetime

from reporting.aggregator import aggregate, parse_number, prepare_records
from reporting.normalizer import normalize_status
from reporting.settings import collection_name, default_config, lead_source
from reporting.timeutils import (
    day_keys,
    day_range,
    local_date,
    now_utc,
    resolve_timestamp,
    window_days,
)

HISTORICAL_RANGES = ("yesterday", "last7days", "last30days")
PRODUCTIVITY_RANGES = ("today",) + HISTORICAL_RANGES

RANGE_LABELS = {
    "yesterday": "Yesterday",
    "last7days": "Last 7 Days",
    "last30days": "Last 30 Days",
}

# last-modified moment of a lead, most specific first
ACTIVITY_FIELDS = ("lastModified", "date", "synced_at", "synced_date")
UNASSIGNED = "Unassigned"


def _has_status(value) -> bool:
    # the dash placeholder counts as a status ("No Status"), only blanks do not
    return value is not None and str(value).strip() != ""


def live_productivity(
    leads,
    now: datetime | None = None,
    zone_offset_minutes: int = 330,
    status_field: str = "status",
) -> list[dict]:
    """One row per (user, zone-local day) for leads touched today."""
    now = now or now_utc()
    start, end = day_range(now, zone_offset_minutes)

    prepared = prepare_records(
        leads,
        time_fields=ACTIVITY_FIELDS,
        owner_fields=("assigned_to",),
        default_owner=UNASSIGNED,
    )
    worked = [
        r for r in prepared
        if start <= r["_ts"] <= end and _has_status(r.get(status_field))
    ]

    def day_of(rec):
        return local_date(rec["_ts"], zone_offset_minutes).isoformat()

    last_activity: dict[tuple, datetime] = {}
    for rec in worked:
        key = (rec["_owner"], day_of(rec))
        if key not in last_activity or rec["_ts"] > last_activity[key]:
            last_activity[key] = rec["_ts"]

    buckets = aggregate(
        worked,
        [lambda r: r["_owner"], day_of],
        breakdown_fn=lambda r: normalize_status(r.get(status_field)),
    )
    rows = []
    for b in buckets:
        owner, day = b["key"]
        rows.append({
            "userId": owner,
            "userName": owner,
            "date": day,
            "leadsWorked": b["count"],
            "lastActivity": last_activity[(owner, day)],
            "statusBreakdown": b["breakdown"],
        })
    rows.sort(key=lambda r: (r["date"], r["leadsWorked"]), reverse=True)
    return rows


def merge_snapshots(snapshots: list[dict | None], section: str, label: str) -> list[dict]:
    """Sums per-user rows across daily snapshot documents. Missing days are None."""
    users: dict[str, dict] = {}
    for snap in snapshots:
        if not snap:
            continue
        rows = (snap.get(section) or {}).get("userProductivity") or []
        for row in rows:
            user_id = row.get("userId") or UNASSIGNED
            stat = users.setdefault(user_id, {
                "userId": user_id,
                "userName": row.get("userName") or UNASSIGNED,
                "date": label,
                "leadsWorked": 0,
                "lastActivity": None,
                "statusBreakdown": {},
            })
            stat["leadsWorked"] += int(parse_number(row.get("leadsWorked")) or 0)

            seen = resolve_timestamp(row.get("lastActivity"))
            if seen is not None and (stat["lastActivity"] is None or seen > stat["lastActivity"]):
                stat["lastActivity"] = seen

            for status, count in (row.get("statusBreakdown") or {}).items():
                key = normalize_status(status)
                stat["statusBreakdown"][key] = stat["statusBreakdown"].get(key, 0) + int(parse_number(count) or 0)

    return sorted(users.values(), key=lambda s: s["leadsWorked"], reverse=True)


def _fetch_snapshots(store, collection: str, dates: list[str]) -> list[dict | None]:
    if not dates:
        return []
    with concurrent.futures.ThreadPoolExecutor(max_workers=min(8, len(dates))) as executor:
        futures = [executor.submit(store.get, collection, d) for d in dates]
        return [f.result() for f in futures]


def read_productivity(
    store,
    range_name: str,
    now: datetime | None = None,
    source: str = "ama",
    cfg: dict | None = None,
) -> list[dict]:
    """
    Productivity stats for `range_name` (today / yesterday / last7days /
    last30days), each with `averageLeadsPerDay`, sorted by leadsWorked.
    """
    if range_name not in PRODUCTIVITY_RANGES:
        raise ValueError(f"Unknown productivity range: {range_name!r}. Expected one of {', '.join(PRODUCTIVITY_RANGES)}")

    cfg = cfg or default_config()
    src = lead_source(cfg, source)
    offset = int(cfg["zone_offset_minutes"])
    now = now or now_utc()

    if range_name == "today":
        leads = store.get_all(src["collection"])
        rows = live_productivity(leads, now, offset, src.get("status_field", "status"))
        return summarize_by_user(rows)

    today = local_date(now, offset).isoformat()
    # today's activity is never read from a snapshot
    dates = [d for d in day_keys(range_name, now, offset) if d < today]
    snapshots = _fetch_snapshots(store, collection_name(cfg, "snapshots"), dates)
    found = sum(1 for s in snapshots if s)
    logging.info(f"[Snapshots] {range_name}/{source}: {found}/{len(dates)} daily snapshot(s) found")

    stats = merge_snapshots(snapshots, src["snapshot_section"], RANGE_LABELS[range_name])
    days = window_days(range_name)
    for stat in stats:
        stat["averageLeadsPerDay"] = stat["leadsWorked"] / days
    return stats


def summarize_by_user(rows: list[dict]) -> list[dict]:
    """Folds per-day rows into one per user; the average is over days with rows."""
    users: dict[str, dict] = {}
    days: dict[str, set] = {}
    for row in rows:
        uid = row["userId"]
        stat = users.setdefault(uid, {
            "userId": uid,
            "userName": row["userName"],
            "date": row["date"],
            "leadsWorked": 0,
            "lastActivity": None,
            "statusBreakdown": {},
        })
        stat["leadsWorked"] += row["leadsWorked"]
        days.setdefault(uid, set()).add(row["date"])
        if stat["lastActivity"] is None or row["lastActivity"] > stat["lastActivity"]:
            stat["lastActivity"] = row["lastActivity"]
        for status, count in row["statusBreakdown"].items():
            stat["statusBreakdown"][status] = stat["statusBreakdown"].get(status, 0) + count

    for uid, stat in users.items():
        stat["averageLeadsPerDay"] = stat["leadsWorked"] / max(1, len(days[uid]))
    return sorted(users.values(), key=lambda s: s["leadsWorked"], reverse=True)

"""
Folds raw records into grouped statistics.

A bucket is a plain dict:
    {"key": (dim1, dim2, ...), "count": int, "totalAmount": float,
     "breakdown": {subcategory: int}, "percentage": float | None}

Percentages are filled in by `with_percentages` after the fold is complete.
"""
from __future__ import annotations

import logging
import math
import re
from typing import Callable, Iterable, Sequence

import pandas as pd

from reporting.normalizer import UNKNOWN, normalize
from reporting.timeutils import resolve_record_time

_NON_NUMERIC_RE = re.compile(r"[^0-9.\-]")

Dimension = Callable[[dict], object]


def parse_number(raw) -> float | None:
    """Free-text money/number -> float; None when nothing numeric survives."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        value = float(raw)
    else:
        cleaned = _NON_NUMERIC_RE.sub("", str(raw))
        try:
            value = float(cleaned)
        except ValueError:
            logging.debug("[Aggregator] malformed amount %r", raw)
            return None
    return value if math.isfinite(value) else None


def parse_amount(raw) -> float:
    """Like parse_number, but a malformed amount contributes 0."""
    value = parse_number(raw)
    return 0.0 if value is None else value


def field(name: str, kind: str = "label") -> Dimension:
    """Dimension reading one record field through a normalizer."""
    def _dim(rec: dict):
        return normalize(kind, rec.get(name))
    _dim.__name__ = f"{kind}:{name}"
    return _dim


def _dimension_value(fn: Dimension, rec: dict) -> str:
    value = fn(rec)
    if value is None:
        return UNKNOWN
    text = str(value).strip()
    return text or UNKNOWN


def prepare_records(
    records: Iterable[dict],
    time_fields: Sequence[str] | None = None,
    owner_fields: Sequence[str] | None = None,
    default_owner: str | None = None,
) -> list[dict]:
    """
    Attaches `_ts` (resolved UTC moment) and `_owner` to each record. Records
    whose moment (when `time_fields` is given) or owner cannot be resolved are
    dropped. `default_owner` stands in for a blank owner instead of dropping.
    """
    kept = []
    dropped = 0
    for rec in records:
        out = dict(rec)
        if time_fields:
            ts = resolve_record_time(rec, time_fields)
            if ts is None:
                dropped += 1
                continue
            out["_ts"] = ts
        if owner_fields:
            owner = next(
                (str(rec[f]).strip() for f in owner_fields if rec.get(f) and str(rec[f]).strip()),
                default_owner,
            )
            if not owner:
                dropped += 1
                continue
            out["_owner"] = owner
        kept.append(out)
    if dropped:
        logging.debug("[Aggregator] excluded %d unresolvable record(s)", dropped)
    return kept


def aggregate(
    records: Iterable[dict],
    dimension_fns: Sequence[Dimension],
    amount_fn: Callable[[dict], object] | None = None,
    breakdown_fn: Dimension | None = None,
) -> list[dict]:
    """
    One bucket per distinct tuple of dimension values, in order of first
    appearance. `amount_fn` output goes through parse_amount, so a bad amount
    adds 0 rather than raising.
    """
    if not dimension_fns:
        raise ValueError("aggregate() needs at least one dimension")

    key_cols = [f"k{i}" for i in range(len(dimension_fns))]
    rows = []
    for rec in records:
        key = [_dimension_value(fn, rec) for fn in dimension_fns]
        amount = parse_amount(amount_fn(rec)) if amount_fn else 0.0
        sub = _dimension_value(breakdown_fn, rec) if breakdown_fn else ""
        rows.append(key + [amount, sub])

    if not rows:
        return []

    df = pd.DataFrame(rows, columns=key_cols + ["amount", "sub"])
    summary = df.groupby(key_cols, sort=False).agg(
        count=("amount", "size"),
        total=("amount", "sum"),
    )

    breakdowns: dict[tuple, dict[str, int]] = {}
    if breakdown_fn:
        for idx, n in df.groupby(key_cols + ["sub"], sort=False).size().items():
            *key, sub = idx
            breakdowns.setdefault(tuple(key), {})[sub] = int(n)

    buckets = []
    for idx, row in summary.iterrows():
        key = idx if isinstance(idx, tuple) else (idx,)
        buckets.append({
            "key": key,
            "count": int(row["count"]),
            "totalAmount": float(row["total"]),
            "breakdown": breakdowns.get(key, {}),
            "percentage": None,
        })
    return buckets


def with_percentages(buckets: list[dict], total: int | None = None, ndigits: int | None = None) -> list[dict]:
    """Second pass over a completed bucket list: percentage = count / total * 100."""
    if total is None:
        total = sum(b["count"] for b in buckets)
    for b in buckets:
        pct = (b["count"] / total * 100) if total else 0.0
        b["percentage"] = round(pct, ndigits) if ndigits is not None else pct
    return buckets


def sort_buckets(buckets: list[dict], by: str = "count") -> list[dict]:
    # sorted() is stable, so ties keep first-appearance order
    return sorted(buckets, key=lambda b: b[by], reverse=True)


def top_n(buckets: list[dict], n: int, by: str = "count") -> list[dict]:
    return sort_buckets(buckets, by)[:n]


def to_named(buckets: list[dict], names: Sequence[str]) -> list[dict]:
    """Flattens bucket keys into named fields for JSON output."""
    out = []
    for b in buckets:
        row = dict(zip(names, b["key"]))
        row.update({k: v for k, v in b.items() if k != "key"})
        out.append(row)
    return out


def counts_in_order(buckets: list[dict], labels: Sequence[str]) -> list[dict]:
    """Fixed label order (brackets), zero-filled, for single-dimension buckets."""
    by_label = {b["key"][0]: b["count"] for b in buckets}
    return [{"name": label, "value": by_label.get(label, 0)} for label in labels]

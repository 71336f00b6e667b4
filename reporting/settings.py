from __future__ import annotations

import copy
import logging
from datetime import datetime, timezone

from reporting.timeutils import IST_OFFSET_MINUTES

CONFIG_COLLECTION = "config"
CONFIG_ID = "Reports_Schema"
SCHEMA_VERSION = "2025-01-01.r1"

_DEFAULT_CONFIG: dict[str, object] = {
    "zone_offset_minutes": IST_OFFSET_MINUTES,
    "top_cities": 15,
    "top_state_banks": 20,
    "top_states": 10,
    "analytics_history_months": 6,
    "collections": {
        "clients": "clients",
        "payments": "payments",
        "targets": "targets",
        "sales_targets": "sales_targets",
        "snapshots": "productivity_snapshots",
    },
    # lead source -> raw collection, snapshot section and status field
    "lead_sources": {
        "ama": {"collection": "ama_leads", "snapshot_section": "amaLeads", "status_field": "status"},
        "billcut": {"collection": "billcutLeads", "snapshot_section": "billcutLeads", "status_field": "category"},
    },
}

_config_cache: dict[str, object] | None = None


def default_config() -> dict[str, object]:
    return copy.deepcopy(_DEFAULT_CONFIG)


def _merge(base: dict, override: dict) -> dict:
    out = dict(base)
    for k, v in override.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _merge(out[k], v)
        else:
            out[k] = v
    return out


def load_reports_config(db=None, refresh: bool = False) -> dict[str, object]:
    """
    Runtime config: `_DEFAULT_CONFIG` overlaid with the `defaults` of the
    Reports_Schema document. The document is bootstrapped when missing.
    Without a database the defaults are returned as-is.
    """
    global _config_cache

    if _config_cache is not None and not refresh:
        return _config_cache

    if db is None:
        return default_config()

    doc = db[CONFIG_COLLECTION].find_one({"_id": CONFIG_ID})
    if not doc:
        now_iso = datetime.now(timezone.utc).isoformat()
        doc = {
            "_id": CONFIG_ID,
            "module": "Reports",
            "schema_version": SCHEMA_VERSION,
            "status": "active",
            "description": "Runtime knobs for report aggregation, targets and productivity.",
            "createdAt": now_iso,
            "updatedAt": now_iso,
            "defaults": default_config(),
            "meta": {
                "notes": "Auto-created by Reports runtime. Safe to edit values under `defaults`.",
            },
        }
        on_insert = {k: v for k, v in doc.items() if k != "_id"}
        db[CONFIG_COLLECTION].update_one({"_id": CONFIG_ID}, {"$setOnInsert": on_insert}, upsert=True)
        logging.info("[Config] Bootstrapped %s in '%s'", CONFIG_ID, CONFIG_COLLECTION)

    overrides = doc.get("defaults") or {}
    if not isinstance(overrides, dict):
        logging.warning("[Config] %s.defaults is not an object; ignoring", CONFIG_ID)
        overrides = {}

    cfg = _merge(default_config(), overrides)
    _config_cache = cfg
    return cfg


def collection_name(cfg: dict, key: str) -> str:
    return cfg["collections"][key]  # type: ignore[index]


def lead_source(cfg: dict, name: str) -> dict:
    sources = cfg["lead_sources"]  # type: ignore[index]
    if name not in sources:
        raise ValueError(f"Unknown lead source: {name!r}. Expected one of {', '.join(sources)}")
    return sources[name]

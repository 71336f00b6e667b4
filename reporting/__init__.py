"""Reporting pipeline shared by the function apps."""
from __future__ import annotations

from utils.db_utils import get_db
from utils.log_utils import configure_logging
from utils.store import MongoDocumentStore

from reporting.ledger import TargetLedger
from reporting.settings import collection_name, load_reports_config

configure_logging()


def get_context():
    """(store, cfg) bound to the configured database."""
    db = get_db()
    return MongoDocumentStore(db), load_reports_config(db)


def ledger_for(store, cfg) -> TargetLedger:
    return TargetLedger(
        store,
        parent=collection_name(cfg, "targets"),
        child=collection_name(cfg, "sales_targets"),
        zone_offset_minutes=int(cfg["zone_offset_minutes"]),
    )

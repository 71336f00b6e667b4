"""Runtime config document: bootstrap, overrides and lead-source lookup."""

from unittest.mock import MagicMock

import pytest

from reporting import settings


@pytest.fixture(autouse=True)
def fresh_cache(monkeypatch):
    monkeypatch.setattr(settings, "_config_cache", None)


def make_db(doc):
    db = MagicMock()
    coll = MagicMock()
    coll.find_one.return_value = doc
    db.__getitem__.return_value = coll
    return db, coll


def test_missing_doc_is_bootstrapped_with_defaults():
    db, coll = make_db(None)
    cfg = settings.load_reports_config(db)

    assert cfg == settings.default_config()
    filt, update = coll.update_one.call_args.args
    assert filt == {"_id": "Reports_Schema"}
    assert update["$setOnInsert"]["defaults"]["top_cities"] == 15
    assert "_id" not in update["$setOnInsert"]
    assert coll.update_one.call_args.kwargs == {"upsert": True}


def test_overrides_merge_into_nested_defaults():
    db, coll = make_db({
        "_id": "Reports_Schema",
        "defaults": {"top_cities": 5, "collections": {"payments": "ops_payments"}},
    })
    cfg = settings.load_reports_config(db)

    assert cfg["top_cities"] == 5
    assert settings.collection_name(cfg, "payments") == "ops_payments"
    assert settings.collection_name(cfg, "clients") == "clients"
    coll.update_one.assert_not_called()


def test_result_is_cached_until_refresh():
    db, coll = make_db({"_id": "Reports_Schema", "defaults": {"top_states": 3}})
    settings.load_reports_config(db)
    settings.load_reports_config(db)
    assert coll.find_one.call_count == 1

    settings.load_reports_config(db, refresh=True)
    assert coll.find_one.call_count == 2


def test_malformed_defaults_are_ignored():
    db, _ = make_db({"_id": "Reports_Schema", "defaults": ["not", "a", "dict"]})
    assert settings.load_reports_config(db) == settings.default_config()


def test_without_database():
    assert settings.load_reports_config(None)["zone_offset_minutes"] == 330


def test_lead_source():
    cfg = settings.default_config()
    assert settings.lead_source(cfg, "billcut")["status_field"] == "category"
    with pytest.raises(ValueError):
        settings.lead_source(cfg, "facebook")

"""
Document-store access for the reporting pipeline.

Collections are addressed by path. A plain name ("payments") is a top-level
collection; "targets/Jan_2025/sales_targets" is the `sales_targets`
subcollection under the `targets` document `Jan_2025`.

In Mongo a subcollection is one physical collection (`targets.sales_targets`)
whose documents carry the parent id in `_parent` and a `<parent>:<id>` `_id`.
"""
from __future__ import annotations

import copy
import logging
import threading
from typing import Any

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError


class WriteFailure(Exception):
    """A write against the document store did not complete."""


def subcollection(parent: str, parent_id: str, name: str) -> str:
    return f"{parent}/{parent_id}/{name}"


def split_path(path: str) -> tuple[str, str | None, str | None]:
    """Returns (collection, parent_id, child_name) for a collection path."""
    parts = path.split("/")
    if len(parts) == 1:
        return parts[0], None, None
    if len(parts) == 3 and all(parts):
        return parts[0], parts[1], parts[2]
    raise ValueError(f"Invalid collection path: {path!r}")


def _apply_floor(value, floor):
    return value if floor is None else max(floor, value)


def _insert_only(on_insert: dict | None, *written: dict) -> dict:
    # $setOnInsert may not name a field another operator in the same update writes
    taken = set().union(*written)
    return {k: v for k, v in (on_insert or {}).items() if k not in taken}


class MongoDocumentStore:
    def __init__(self, db):
        self.db = db

    # ---------- addressing ----------
    def _collection(self, path: str):
        parent, parent_id, child = split_path(path)
        if parent_id is None:
            return self.db[parent], {}, None
        return self.db[f"{parent}.{child}"], {"_parent": parent_id}, parent_id

    @staticmethod
    def _id_filter(doc_id: str, parent_id: str | None) -> dict:
        if parent_id is not None:
            return {"_id": f"{parent_id}:{doc_id}"}
        if ObjectId.is_valid(doc_id):
            return {"_id": {"$in": [doc_id, ObjectId(doc_id)]}}
        return {"_id": doc_id}

    @staticmethod
    def _out(doc: dict, parent_id: str | None) -> dict:
        d = dict(doc)
        raw_id = str(d.pop("_id"))
        d.pop("_parent", None)
        if parent_id is not None and raw_id.startswith(f"{parent_id}:"):
            raw_id = raw_id[len(parent_id) + 1:]
        d["id"] = raw_id
        return d

    # ---------- reads ----------
    def get_all(self, path: str) -> list[dict]:
        coll, base, parent_id = self._collection(path)
        return [self._out(d, parent_id) for d in coll.find(base)]

    def get_where(self, path: str, field: str, value: Any) -> list[dict]:
        coll, base, parent_id = self._collection(path)
        return [self._out(d, parent_id) for d in coll.find({**base, field: value})]

    def get(self, path: str, doc_id: str) -> dict | None:
        coll, base, parent_id = self._collection(path)
        doc = coll.find_one({**base, **self._id_filter(doc_id, parent_id)})
        return self._out(doc, parent_id) if doc else None

    # ---------- writes ----------
    def upsert(self, path: str, doc_id: str, partial: dict, on_insert: dict | None = None) -> None:
        """
        Merge `partial` into the document, creating it when absent. Fields in
        `on_insert` are written only when this call creates the document.
        """
        coll, base, parent_id = self._collection(path)
        flt = {**base, **self._id_filter(doc_id, parent_id)}
        if parent_id is None and ObjectId.is_valid(doc_id):
            # existing ObjectId documents are matched; new ones keep the string id
            existing = coll.find_one(flt, {"_id": 1})
            flt = {"_id": existing["_id"]} if existing else {"_id": doc_id}
        update: dict = {"$set": partial}
        insert_only = _insert_only(on_insert, partial)
        if insert_only:
            update["$setOnInsert"] = insert_only
        try:
            coll.update_one(flt, update, upsert=True)
        except PyMongoError as e:
            raise WriteFailure(f"Failed to save {path}/{doc_id}: {e}") from e

    def delete(self, path: str, doc_id: str) -> bool:
        coll, base, parent_id = self._collection(path)
        try:
            res = coll.delete_one({**base, **self._id_filter(doc_id, parent_id)})
        except PyMongoError as e:
            raise WriteFailure(f"Failed to delete {path}/{doc_id}: {e}") from e
        return res.deleted_count == 1

    def update_if(self, path: str, doc_id: str, expected: dict, partial: dict) -> bool:
        """Applies `partial` only when every field in `expected` still matches."""
        coll, base, parent_id = self._collection(path)
        try:
            res = coll.update_one(
                {**base, **self._id_filter(doc_id, parent_id), **expected},
                {"$set": partial},
            )
        except PyMongoError as e:
            raise WriteFailure(f"Failed to update {path}/{doc_id}: {e}") from e
        return res.matched_count == 1

    def increment(
        self,
        path: str,
        doc_id: str,
        field: str,
        delta: float,
        floor: float | None = None,
        extra: dict | None = None,
        on_insert: dict | None = None,
    ) -> float | None:
        """
        Atomically adds `delta` to a numeric field and returns the new value, or
        None when the document does not exist. With `floor`, the stored result is
        clamped so it never drops below it.

        With `on_insert`, a missing document is created in the same write from
        those fields, with `field` starting at `delta`.
        """
        if on_insert is not None and floor is not None:
            raise ValueError("increment() cannot create a document and apply a floor in one write")

        coll, base, parent_id = self._collection(path)
        flt = {**base, **self._id_filter(doc_id, parent_id)}
        extra = extra or {}

        if floor is None:
            update: Any = {"$inc": {field: delta}}
            if extra:
                update["$set"] = extra
            insert_only = _insert_only(on_insert, {field: None}, extra)
            if insert_only:
                update["$setOnInsert"] = insert_only
        else:
            # update pipeline so the clamp happens server-side in the same write
            stage = {
                field: {
                    "$max": [floor, {"$add": [{"$ifNull": [f"${field}", 0]}, delta]}]
                }
            }
            stage.update({k: {"$literal": v} for k, v in extra.items()})
            update = [{"$set": stage}]

        try:
            doc = coll.find_one_and_update(
                flt,
                update,
                projection={field: 1},
                upsert=on_insert is not None,
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as e:
            raise WriteFailure(f"Failed to update {field} on {path}/{doc_id}: {e}") from e

        if doc is None:
            return None
        return doc.get(field)


class MemoryDocumentStore:
    """
    Process-local store with the same surface as MongoDocumentStore.
    Used for local runs without a database and throughout the tests.
    """

    def __init__(self, data: dict[str, dict[str, dict]] | None = None):
        self._data: dict[str, dict[str, dict]] = copy.deepcopy(data) if data else {}
        self._lock = threading.Lock()

    def _collection(self, path: str) -> dict[str, dict]:
        split_path(path)
        return self._data.setdefault(path, {})

    @staticmethod
    def _out(doc_id: str, doc: dict) -> dict:
        d = copy.deepcopy(doc)
        d["id"] = doc_id
        return d

    def get_all(self, path: str) -> list[dict]:
        return [self._out(k, v) for k, v in self._collection(path).items()]

    def get_where(self, path: str, field: str, value: Any) -> list[dict]:
        return [self._out(k, v) for k, v in self._collection(path).items() if v.get(field) == value]

    def get(self, path: str, doc_id: str) -> dict | None:
        doc = self._collection(path).get(doc_id)
        return self._out(doc_id, doc) if doc is not None else None

    def upsert(self, path: str, doc_id: str, partial: dict, on_insert: dict | None = None) -> None:
        with self._lock:
            coll = self._collection(path)
            if doc_id not in coll:
                coll[doc_id] = copy.deepcopy(_insert_only(on_insert, partial))
            coll[doc_id].update(copy.deepcopy(partial))

    def delete(self, path: str, doc_id: str) -> bool:
        with self._lock:
            return self._collection(path).pop(doc_id, None) is not None

    def update_if(self, path: str, doc_id: str, expected: dict, partial: dict) -> bool:
        with self._lock:
            doc = self._collection(path).get(doc_id)
            if doc is None or any(doc.get(k) != v for k, v in expected.items()):
                return False
            doc.update(copy.deepcopy(partial))
            return True

    def increment(self, path, doc_id, field, delta, floor=None, extra=None, on_insert=None):
        if on_insert is not None and floor is not None:
            raise ValueError("increment() cannot create a document and apply a floor in one write")
        with self._lock:
            coll = self._collection(path)
            doc = coll.get(doc_id)
            if doc is None:
                if on_insert is None:
                    return None
                doc = coll[doc_id] = copy.deepcopy(_insert_only(on_insert, {field: None}, extra or {}))
            doc[field] = _apply_floor((doc.get(field) or 0) + delta, floor)
            if extra:
                doc.update(copy.deepcopy(extra))
            logging.debug("[Store] %s/%s %s -> %s", path, doc_id, field, doc[field])
            return doc[field]

"""
Per-salesperson monthly target records and the running `amountCollected`.

Records live at targets/{Mon_YYYY}/sales_targets/{id} and are looked up by
`userName`. Counter changes are single atomic increments; a salesperson's
first record of the month is created by that same write (upsert keyed on
their name), so concurrent first approvals all land on one record.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from reporting.aggregator import parse_number
from reporting.timeutils import IST_OFFSET_MINUTES, check_month_key, month_key, now_utc
from utils.store import subcollection

APPROVED = "approved"


class TargetLedger:
    def __init__(
        self,
        store,
        parent: str = "targets",
        child: str = "sales_targets",
        clock: Callable[[], datetime] = now_utc,
        zone_offset_minutes: int = IST_OFFSET_MINUTES,
    ):
        self.store = store
        self.parent = parent
        self.child = child
        self.clock = clock
        self.zone_offset_minutes = zone_offset_minutes

    # ---------- lookup ----------
    def current_month(self) -> str:
        return month_key(self.clock(), self.zone_offset_minutes)

    def path(self, month: str) -> str:
        return subcollection(self.parent, check_month_key(month), self.child)

    def find(self, sales_person: str, month: str | None = None) -> dict | None:
        month = month or self.current_month()
        matches = self.store.get_where(self.path(month), "userName", sales_person)
        if len(matches) > 1:
            logging.warning(f"[Ledger] {len(matches)} target records for {sales_person} in {month}; using the first")
        return matches[0] if matches else None

    def month_records(self, month: str | None = None) -> list[dict]:
        return self.store.get_all(self.path(month or self.current_month()))

    def _touch_month(self, month: str, now: datetime) -> None:
        abbr, year = month.split("_")
        self.store.upsert(self.parent, month, {"month": abbr, "year": int(year), "updatedAt": now})

    def _new_record(self, sales_person: str, now: datetime, created_by: str | None = None) -> dict:
        """Zeroed fields of a record that does not exist yet."""
        return {
            "userName": sales_person,
            "convertedLeads": 0,
            "convertedLeadsTarget": 0,
            "amountCollected": 0,
            "amountCollectedTarget": 0,
            "createdAt": now,
            "createdBy": created_by or "system",
        }

    @staticmethod
    def _check_amount(amount) -> float:
        value = parse_number(amount)
        if value is None or value < 0:
            raise ValueError(f"Payment amount must be a non-negative number, got {amount!r}")
        return value

    def _bump(self, sales_person, month, field, delta, floor=None, create=False):
        """
        Increment `field` on the salesperson's record. With `create`, a missing
        record is inserted by the same write with `field` starting at `delta`.
        """
        now = self.clock()
        rec = self.find(sales_person, month)
        if rec is not None:
            return self.store.increment(
                self.path(month), rec["id"], field, delta,
                floor=floor, extra={"updatedAt": now},
            )
        if not create:
            return None

        self._touch_month(month, now)
        new = self.store.increment(
            self.path(month), sales_person, field, delta,
            extra={"updatedAt": now},
            on_insert=self._new_record(sales_person, now),
        )
        logging.info(f"[Ledger] {field} for {sales_person} in {month} written to a new or existing record -> {new}")
        return new

    # ---------- payment transitions ----------
    def apply_approval(self, sales_person: str, amount, month: str | None = None) -> float:
        """amountCollected += amount, creating a zero-target record on first use."""
        value = self._check_amount(amount)
        month = month or self.current_month()
        new = self._bump(sales_person, month, "amountCollected", value, create=True)
        logging.info(f"[Ledger] +{value} for {sales_person} in {month} -> amountCollected={new}")
        return new

    def apply_edit(self, sales_person: str, old_amount, new_amount, month: str | None = None, status: str = APPROVED):
        """
        Shifts amountCollected by new - old for an approved payment. Pending
        payments and unchanged amounts never touch the store. Without a record
        the edit is treated as a fresh approval of the new amount.
        """
        if status != APPROVED:
            logging.debug(f"[Ledger] edit of {status} payment for {sales_person}; ledger untouched")
            return None

        old_value = self._check_amount(old_amount)
        new_value = self._check_amount(new_amount)
        delta = new_value - old_value
        if delta == 0:
            return None

        month = month or self.current_month()
        if self.find(sales_person, month) is None:
            logging.info(f"[Ledger] no target record for {sales_person} in {month}; applying edit as approval")
            return self.apply_approval(sales_person, new_value, month)

        new = self._bump(sales_person, month, "amountCollected", delta)
        logging.info(f"[Ledger] edit {old_value} -> {new_value} for {sales_person} in {month} -> amountCollected={new}")
        return new

    def apply_deletion(self, sales_person: str, amount, month: str | None = None, status: str = APPROVED):
        """amountCollected = max(0, amountCollected - amount) for an approved payment."""
        if status != APPROVED:
            return None

        value = self._check_amount(amount)
        month = month or self.current_month()
        new = self._bump(sales_person, month, "amountCollected", -value, floor=0)
        if new is None:
            logging.info(f"[Ledger] no target record for {sales_person} in {month}; nothing to reverse")
        else:
            logging.info(f"[Ledger] -{value} for {sales_person} in {month} -> amountCollected={new}")
        return new

    # ---------- lead conversions ----------
    def record_conversion(self, sales_person: str, month: str | None = None):
        month = month or self.current_month()
        return self._bump(sales_person, month, "convertedLeads", 1, create=True)

    def revert_conversion(self, sales_person: str, month: str | None = None):
        month = month or self.current_month()
        return self._bump(sales_person, month, "convertedLeads", -1, floor=0)

    # ---------- manual targets ----------
    def set_targets(
        self,
        sales_person: str,
        converted_leads_target,
        amount_collected_target,
        month: str | None = None,
        user_id: str | None = None,
        set_by: str | None = None,
    ) -> dict:
        """Writes both targets; counters of an existing record are left as they are."""
        leads_target = parse_number(converted_leads_target)
        amount_target = parse_number(amount_collected_target)
        if leads_target is None or leads_target < 0 or amount_target is None or amount_target < 0:
            raise ValueError("Targets must be non-negative numbers")

        month = month or self.current_month()
        now = self.clock()
        fields = {
            "convertedLeadsTarget": int(leads_target),
            "amountCollectedTarget": amount_target,
            "updatedAt": now,
        }
        if user_id:
            fields["userId"] = user_id
        if set_by:
            fields["updatedBy"] = set_by

        rec = self.find(sales_person, month)
        doc_id = rec["id"] if rec else sales_person
        if rec is None:
            self._touch_month(month, now)
        self.store.upsert(
            self.path(month), doc_id, fields,
            on_insert=self._new_record(sales_person, now, created_by=set_by),
        )
        logging.info(f"[Ledger] Targets set for {sales_person} in {month}: {fields}")
        return self.store.get(self.path(month), doc_id)

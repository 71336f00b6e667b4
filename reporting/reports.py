"""
Report builders. Each takes already-fetched documents and returns a JSON-ready
dict; fetching and HTTP concerns stay in the function apps.
"""
from __future__ import annotations

from datetime import datetime, timedelta

from reporting.aggregator import (
    aggregate,
    counts_in_order,
    field,
    parse_amount,
    parse_number,
    prepare_records,
    sort_buckets,
    to_named,
    top_n,
    with_percentages,
)
from reporting.normalizer import (
    AGE_BRACKETS,
    CONVERSION_TIME_BUCKETS,
    INCOME_BRACKETS,
    UNKNOWN,
    age_bracket,
    conversion_time_bucket,
    debt_midpoint,
    debt_range_label,
    debt_range_sort_key,
    income_bracket,
    normalize_label,
    normalize_status,
    state_from_pincode,
)
from reporting.settings import default_config
from reporting.timeutils import check_month_key, month_bucket, previous_month_keys, resolve_timestamp

# creation moment of a lead
CREATED_FIELDS = ("date", "synced_at", "synced_date")

ADVOCATE_STATUSES = {"Active": "active", "Not Responding": "notResponding", "Dropped": "dropped"}


def _bank_total(client: dict) -> float:
    return sum(parse_amount(b.get("loanAmount")) for b in client.get("banks") or [] if isinstance(b, dict))


def _client_state(client: dict) -> str:
    state = normalize_label(client.get("state"))
    if state != UNKNOWN:
        return state
    return state_from_pincode(client.get("pincode") or client.get("address"))


def _client_age(client: dict) -> float | None:
    age = parse_number(client.get("age"))
    if age is not None:
        return age
    dob = resolve_timestamp(client.get("dob"))
    if dob is None:
        return None
    today = datetime.now(dob.tzinfo).date()
    born = dob.date()
    return today.year - born.year - ((today.month, today.day) < (born.month, born.day))


def _distribution(records, dim, ndigits=2):
    buckets = with_percentages(aggregate(records, [dim]), ndigits=ndigits)
    return to_named(sort_buckets(buckets), ["name"])


def build_ops_report(clients: list[dict], cfg: dict | None = None) -> dict:
    """Advocate, bank, geography and debt breakdown over the client book."""
    cfg = cfg or default_config()

    advocates = []
    for b in sort_buckets(aggregate(
        clients,
        [field("alloc_adv")],
        amount_fn=_bank_total,
        breakdown_fn=field("adv_status"),
    )):
        row = {"name": b["key"][0], "totalClients": b["count"], "totalLoanAmount": b["totalAmount"]}
        for status, key in ADVOCATE_STATUSES.items():
            row[key] = b["breakdown"].get(status, 0)
        advocates.append(row)

    bank_rows = [
        {**bank, "_state": _client_state(c)}
        for c in clients
        for bank in c.get("banks") or []
        if isinstance(bank, dict)
    ]
    banks = to_named(
        sort_buckets(aggregate(
            bank_rows,
            [field("bankName", "bank")],
            amount_fn=lambda r: r.get("loanAmount"),
            breakdown_fn=field("loanType"),
        )),
        ["bankName"],
    )
    for row in banks:
        row["totalLoans"] = row.pop("count")
        row["loanTypes"] = row.pop("breakdown")
        row.pop("percentage", None)

    cities = with_percentages(aggregate(clients, [field("city", "city")]), ndigits=2)
    state_banks = aggregate(bank_rows, [lambda r: r["_state"], field("bankName", "bank")])

    incomes = [income_bracket(parse_number(c.get("monthlyIncome"))) for c in clients]
    income_buckets = aggregate([{"b": i} for i in incomes if i], [lambda r: r["b"]])
    age_buckets = aggregate(clients, [lambda c: age_bracket(_client_age(c))])

    credit_card = sum(parse_amount(c.get("creditCardDues")) for c in clients)
    personal = sum(parse_amount(c.get("personalLoanDues")) for c in clients)
    bank_loans = sum(_bank_total(c) for c in clients)

    return {
        "totalClients": len(clients),
        "advocates": advocates,
        "banks": banks,
        "cities": to_named(top_n(cities, int(cfg["top_cities"])), ["name"]),
        "sources": _distribution(clients, field("source_database")),
        "statuses": _distribution(clients, field("adv_status")),
        "occupations": _distribution(clients, field("occupation", "occupation")),
        "incomeRanges": counts_in_order(income_buckets, [label for _, label in INCOME_BRACKETS]),
        "ageRanges": counts_in_order(age_buckets, [label for *_, label in AGE_BRACKETS] + [UNKNOWN]),
        "stateBanks": to_named(top_n(state_banks, int(cfg["top_state_banks"])), ["state", "bankName"]),
        "debt": {
            "creditCardDues": credit_card,
            "personalLoanDues": personal,
            "bankLoans": bank_loans,
            "total": credit_card + personal + bank_loans,
        },
    }


def _conversion_days(lead: dict) -> int | None:
    converted = resolve_timestamp(lead.get("convertedAt"))
    if converted is None:
        return None
    return (converted - lead["_ts"]) // timedelta(days=1)


def build_sales_report(
    leads: list[dict],
    start: datetime | None = None,
    end: datetime | None = None,
    cfg: dict | None = None,
    status_field: str = "status",
) -> dict:
    """Lead funnel for leads created in [start, end] (IST-cut bounds, UTC instants)."""
    cfg = cfg or default_config()
    offset = int(cfg["zone_offset_minutes"])

    prepared = prepare_records(
        leads,
        time_fields=CREATED_FIELDS,
        owner_fields=("assigned_to",),
        default_owner="Unassigned",
    )
    window = [
        r for r in prepared
        if (start is None or r["_ts"] >= start) and (end is None or r["_ts"] <= end)
    ]
    total = len(window)

    def status_of(r):
        return normalize_status(r.get(status_field))

    performance = []
    for b in sort_buckets(aggregate(window, [lambda r: r["_owner"]], breakdown_fn=status_of)):
        interested = b["breakdown"].get("Interested", 0)
        converted = b["breakdown"].get("Converted", 0)
        performance.append({
            "salesperson": b["key"][0],
            "totalLeads": b["count"],
            "interested": interested,
            "converted": converted,
            "conversionRate": round((interested + converted) / b["count"] * 100, 2),
            "statusBreakdown": b["breakdown"],
        })

    states = aggregate(window, [lambda r: state_from_pincode(r.get("pincode") or r.get("address"))])

    debt_buckets = aggregate(window, [lambda r: debt_range_label(r.get("debt_range"))])
    midpoints = [m for m in (debt_midpoint(r.get("debt_range")) for r in window) if m is not None]

    incomes = [income_bracket(parse_number(r.get("income"))) for r in window]
    income_buckets = aggregate([{"b": i} for i in incomes if i], [lambda r: r["b"]])

    monthly = aggregate(window, [lambda r: month_bucket(r["_ts"], offset)])

    converted_leads = [r for r in window if status_of(r) == "Converted"]
    conv_days = [d for d in (_conversion_days(r) for r in converted_leads) if d is not None and d >= 0]
    conv_buckets = aggregate([{"d": d} for d in conv_days], [lambda r: conversion_time_bucket(r["d"])])

    return {
        "totalLeads": total,
        "uniqueAssignees": len({r["_owner"] for r in window}),
        "conversionRate": round(len(converted_leads) / total * 100, 2) if total else 0.0,
        "statusDistribution": _distribution(window, status_of),
        "salesPerformance": performance,
        "sources": _distribution(window, field("source")),
        "states": to_named(top_n(states, int(cfg["top_states"])), ["name"]),
        "debtRanges": [
            {"name": b["key"][0], "value": b["count"]}
            for b in sorted(debt_buckets, key=lambda b: debt_range_sort_key(b["key"][0]))
        ],
        "averageDebt": round(sum(midpoints) / len(midpoints)) if midpoints else 0,
        "incomeRanges": counts_in_order(income_buckets, [label for _, label in INCOME_BRACKETS]),
        "monthly": [
            {"month": b["key"][0], "count": b["count"]}
            for b in sorted(monthly, key=lambda b: b["key"][0])
        ],
        "conversionTime": {
            "buckets": counts_in_order(conv_buckets, [label for _, label in CONVERSION_TIME_BUCKETS]),
            "averageDays": round(sum(conv_days) / len(conv_days), 1) if conv_days else 0.0,
        },
    }


def build_payments_summary(payments: list[dict], month: str | None = None, cfg: dict | None = None) -> dict:
    """
    Payment requests, optionally limited to one zone-local "YYYY-MM" month of
    their `timestamp`. Rejected requests are listed but left out of the totals.
    """
    cfg = cfg or default_config()
    offset = int(cfg["zone_offset_minutes"])

    rows = prepare_records(payments, time_fields=("timestamp", "createdAt"))
    if month:
        rows = [r for r in rows if month_bucket(r["_ts"], offset) == month]
    rows.sort(key=lambda r: r["_ts"], reverse=True)

    counted = [r for r in rows if r.get("status") != "rejected"]
    by_status = {b["key"][0]: b for b in aggregate(counted, [field("status")], amount_fn=lambda r: r.get("amount"))}
    by_person = aggregate(
        [r for r in counted if r.get("status") == "approved"],
        [field("salesPersonName")],
        amount_fn=lambda r: r.get("amount"),
    )

    return {
        "month": month,
        "payments": [{k: v for k, v in r.items() if k != "_ts"} for r in rows],
        "totalAmount": sum(parse_amount(r.get("amount")) for r in counted),
        "approvedAmount": by_status.get("approved", {}).get("totalAmount", 0.0),
        "pendingAmount": by_status.get("pending", {}).get("totalAmount", 0.0),
        "counts": {k: b["count"] for k, b in by_status.items()},
        "rejectedCount": len(rows) - len(counted),
        "bySalesperson": [
            {"salesperson": b["key"][0], "approvedAmount": b["totalAmount"], "payments": b["count"]}
            for b in sort_buckets(by_person, by="totalAmount")
        ],
    }


def _target_totals(records: list[dict]) -> dict:
    target = sum(parse_amount(r.get("amountCollectedTarget")) for r in records)
    collected = sum(parse_amount(r.get("amountCollected")) for r in records)
    return {
        "amountCollectedTarget": target,
        "amountCollected": collected,
        "convertedLeadsTarget": sum(int(parse_amount(r.get("convertedLeadsTarget"))) for r in records),
        "convertedLeads": sum(int(parse_amount(r.get("convertedLeads"))) for r in records),
        "conversionRate": round(collected / target * 100) if target else 0,
    }


def build_sales_analytics(ledger, month: str | None = None, history_months: int = 6) -> dict:
    """
    Target vs collected for `month`; when that month has no records yet, the
    most recent of the previous `history_months` months with records is used.
    """
    requested = check_month_key(month or ledger.current_month())
    candidates = [requested] + previous_month_keys(requested, history_months)

    months: dict[str, list[dict]] = {m: ledger.month_records(m) for m in candidates}
    shown = next((m for m in candidates if months[m]), requested)
    records = months[shown]

    history: dict[str, list[dict]] = {}
    for m in reversed(candidates[:history_months]):
        for r in months[m]:
            history.setdefault(r.get("userName") or UNKNOWN, []).append({
                "month": m,
                "amountCollected": parse_amount(r.get("amountCollected")),
                "amountCollectedTarget": parse_amount(r.get("amountCollectedTarget")),
                "convertedLeads": int(parse_amount(r.get("convertedLeads"))),
            })

    salespeople = sorted(
        (
            {
                "userName": r.get("userName") or UNKNOWN,
                "userId": r.get("userId"),
                **_target_totals([r]),
            }
            for r in records
        ),
        key=lambda s: s["amountCollected"],
        reverse=True,
    )

    return {
        "requestedMonth": requested,
        "month": shown,
        "isFallback": shown != requested,
        "totals": _target_totals(records),
        "salespeople": salespeople,
        "history": history,
    }

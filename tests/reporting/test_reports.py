"""Report builders over clients, leads, payments and target records."""

from datetime import datetime, timedelta, timezone

import pytest

from reporting.ledger import TargetLedger
from reporting.reports import (
    build_ops_report,
    build_payments_summary,
    build_sales_analytics,
    build_sales_report,
)
from reporting.timeutils import preset_range

UTC = timezone.utc


def ms(dt):
    return int(dt.timestamp() * 1000)


CLIENTS = [
    {
        "alloc_adv": "Meera", "adv_status": "Active", "city": "Mumbai", "source_database": "credsettlee",
        "monthlyIncome": "45,000", "occupation": "self employed", "creditCardDues": "1,00,000",
        "personalLoanDues": "50000", "address": "Andheri East, Mumbai 400069", "age": 31,
        "banks": [
            {"bankName": "hdfc bank ltd", "loanAmount": "2,00,000", "loanType": "Credit Card"},
            {"bankName": "ICICI", "loanAmount": "₹50,000", "loanType": "Personal Loan"},
        ],
    },
    {
        "alloc_adv": "Meera", "adv_status": "Dropped", "city": "Pune", "source_database": "ama",
        "monthlyIncome": "1,20,000", "occupation": "Job", "creditCardDues": "n/a",
        "state": "Maharashtra", "age": "52",
        "banks": [{"bankName": "HDFC", "loanAmount": "100000", "loanType": "Credit Card"}],
    },
    {
        "alloc_adv": "", "adv_status": "Not Responding", "city": "", "source_database": "ama",
        "monthlyIncome": "", "banks": [],
    },
]


class TestOpsReport:
    def test_advocates(self):
        report = build_ops_report(CLIENTS)
        meera = report["advocates"][0]
        assert meera == {
            "name": "Meera", "totalClients": 2, "totalLoanAmount": 350000.0,
            "active": 1, "notResponding": 0, "dropped": 1,
        }
        assert report["advocates"][1]["name"] == "Unknown"
        assert report["advocates"][1]["notResponding"] == 1

    def test_banks_are_normalized_and_sorted(self):
        banks = build_ops_report(CLIENTS)["banks"]
        assert banks[0]["bankName"] == "HDFC BANK"
        assert banks[0]["totalLoans"] == 2
        assert banks[0]["totalAmount"] == 300000.0
        assert banks[0]["loanTypes"] == {"Credit Card": 2}
        assert banks[1]["bankName"] == "ICICI BANK"

    def test_distributions(self):
        report = build_ops_report(CLIENTS)
        assert {c["name"] for c in report["cities"]} == {"Mumbai", "Pune", "Unknown"}
        assert sum(c["percentage"] for c in report["cities"]) == pytest.approx(100, abs=0.05)
        assert report["sources"][0] == {
            "name": "ama", "count": 2, "totalAmount": 0.0, "breakdown": {}, "percentage": 66.67,
        }
        assert {o["name"] for o in report["occupations"]} == {"Business", "Job", "Unknown"}

    def test_brackets(self):
        report = build_ops_report(CLIENTS)
        income = {r["name"]: r["value"] for r in report["incomeRanges"]}
        assert income == {"0-25K": 0, "25K-50K": 1, "50K-75K": 0, "75K-100K": 0, "100K+": 1}
        ages = {r["name"]: r["value"] for r in report["ageRanges"]}
        assert ages["26-35"] == 1
        assert ages["46-55"] == 1
        assert ages["Unknown"] == 1

    def test_state_bank_pairs(self):
        pairs = build_ops_report(CLIENTS)["stateBanks"]
        assert pairs[0]["state"] == "Maharashtra"
        assert pairs[0]["bankName"] == "HDFC BANK"
        assert pairs[0]["count"] == 2

    def test_debt_totals(self):
        debt = build_ops_report(CLIENTS)["debt"]
        assert debt["creditCardDues"] == 100000
        assert debt["personalLoanDues"] == 50000
        assert debt["bankLoans"] == 350000
        assert debt["total"] == 500000

    def test_top_cities_limit_from_config(self):
        cfg = {"top_cities": 1, "top_state_banks": 20}
        assert len(build_ops_report(CLIENTS, cfg)["cities"]) == 1

    def test_empty_book(self):
        report = build_ops_report([])
        assert report["totalClients"] == 0
        assert report["banks"] == []


class TestSalesReport:
    def _leads(self, now):
        return [
            {"assigned_to": "Asha", "status": "Interested", "date": ms(now), "source": "web",
             "address": "Delhi 110001", "debt_range": "5 - 10", "income": "30000"},
            {"assigned_to": "Asha", "status": "Converted", "date": ms(now - timedelta(days=3)),
             "convertedAt": now, "source": "web", "debt_range": "1 - 5"},
            {"assigned_to": "Ravi", "status": "–", "synced_at": (now - timedelta(days=1)).isoformat(),
             "source": "ads"},
            # created long before the window
            {"assigned_to": "Ravi", "status": "Converted", "date": ms(now - timedelta(days=90))},
            # no usable creation time
            {"assigned_to": "Ravi", "status": "Interested"},
        ]

    def test_window_and_performance(self, now):
        start, end = preset_range("last7days", now)
        report = build_sales_report(self._leads(now), start, end)
        assert report["totalLeads"] == 3
        assert report["uniqueAssignees"] == 2
        asha = report["salesPerformance"][0]
        assert asha["salesperson"] == "Asha"
        assert asha["interested"] == 1
        assert asha["converted"] == 1
        assert asha["conversionRate"] == 100.0
        assert report["salesPerformance"][1]["conversionRate"] == 0.0
        assert report["conversionRate"] == 33.33

    def test_distributions(self, now):
        report = build_sales_report(self._leads(now))
        statuses = {s["name"]: s["count"] for s in report["statusDistribution"]}
        assert statuses == {"Interested": 1, "Converted": 2, "No Status": 1}
        assert report["totalLeads"] == 4

    def test_derived_dimensions(self, now):
        start, end = preset_range("last7days", now)
        report = build_sales_report(self._leads(now), start, end)
        assert report["states"][0] == {
            "name": "Unknown", "count": 2, "totalAmount": 0.0, "breakdown": {}, "percentage": None,
        }
        assert [d["name"] for d in report["debtRanges"]] == ["1 - 5", "5 - 10", "Not specified"]
        assert report["averageDebt"] == 525000
        assert report["conversionTime"]["averageDays"] == 3.0
        buckets = {b["name"]: b["value"] for b in report["conversionTime"]["buckets"]}
        assert buckets["2-3 Days"] == 1
        assert report["monthly"] == [{"month": "2025-01", "count": 3}]

    def test_leads_without_income_are_not_bracketed(self, now):
        start, end = preset_range("last7days", now)
        report = build_sales_report(self._leads(now), start, end)
        income = {r["name"]: r["value"] for r in report["incomeRanges"]}
        assert income == {"0-25K": 0, "25K-50K": 1, "50K-75K": 0, "75K-100K": 0, "100K+": 0}

        only_missing = build_sales_report([{"assigned_to": "Asha", "date": ms(now), "income": ""}])
        assert all(r["value"] == 0 for r in only_missing["incomeRanges"])


class TestPaymentsSummary:
    PAYMENTS = [
        {"id": "p1", "amount": "5,000", "status": "approved", "salesPersonName": "Asha", "timestamp": "2025-01-10T06:00:00Z"},
        {"id": "p2", "amount": "2000", "status": "pending", "salesPersonName": "Asha", "timestamp": "2025-01-12T06:00:00Z"},
        {"id": "p3", "amount": "9000", "status": "rejected", "salesPersonName": "Ravi", "timestamp": "2025-01-13T06:00:00Z"},
        {"id": "p4", "amount": "700", "status": "approved", "salesPersonName": "Ravi", "timestamp": "2024-12-31T19:00:00Z"},
    ]

    def test_rejected_excluded_from_totals(self):
        summary = build_payments_summary(self.PAYMENTS)
        assert summary["totalAmount"] == 7700
        assert summary["approvedAmount"] == 5700
        assert summary["pendingAmount"] == 2000
        assert summary["rejectedCount"] == 1
        assert len(summary["payments"]) == 4
        assert summary["payments"][0]["id"] == "p3"

    def test_month_filter_uses_ist(self):
        # p4 is 00:30 IST on Jan 1
        summary = build_payments_summary(self.PAYMENTS, month="2025-01")
        assert {p["id"] for p in summary["payments"]} == {"p1", "p2", "p3", "p4"}
        summary = build_payments_summary(self.PAYMENTS, month="2024-12")
        assert summary["payments"] == []

    def test_by_salesperson(self):
        summary = build_payments_summary(self.PAYMENTS)
        assert summary["bySalesperson"][0] == {"salesperson": "Asha", "approvedAmount": 5000.0, "payments": 1}


class TestSalesAnalytics:
    @pytest.fixture
    def ledger(self, store, now):
        return TargetLedger(store, clock=lambda: now)

    def test_current_month_totals(self, ledger):
        ledger.set_targets("Asha", 10, 100000, "Jan_2025")
        ledger.set_targets("Ravi", 5, 50000, "Jan_2025")
        ledger.apply_approval("Asha", 40000, "Jan_2025")
        ledger.apply_approval("Ravi", 20000, "Jan_2025")
        out = build_sales_analytics(ledger)
        assert out["month"] == "Jan_2025"
        assert out["isFallback"] is False
        assert out["totals"]["amountCollectedTarget"] == 150000
        assert out["totals"]["amountCollected"] == 60000
        assert out["totals"]["conversionRate"] == 40
        assert out["salespeople"][0]["userName"] == "Asha"

    def test_falls_back_to_latest_month_with_records(self, ledger):
        ledger.set_targets("Asha", 10, 1000, "Nov_2024")
        ledger.set_targets("Asha", 10, 2000, "Dec_2024")
        out = build_sales_analytics(ledger, month="Jan_2025")
        assert out["month"] == "Dec_2024"
        assert out["isFallback"] is True
        assert [h["month"] for h in out["history"]["Asha"]] == ["Nov_2024", "Dec_2024"]

    def test_zero_target_rate(self, ledger):
        ledger.apply_approval("Asha", 100, "Jan_2025")
        assert build_sales_analytics(ledger)["totals"]["conversionRate"] == 0

#!/usr/bin/env python3
"""
Build a report against the configured database and print it as JSON.

    python tools/run_reports.py ops
    python tools/run_reports.py sales --preset last30days --source billcut
    python tools/run_reports.py productivity --range last7days
    python tools/run_reports.py targets --month Jan_2025
"""
import os
import sys
import json
import logging
import argparse

from dotenv import load_dotenv

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

load_dotenv()

from reporting import get_context, ledger_for  # noqa: E402
from reporting.reports import build_ops_report, build_sales_analytics, build_sales_report  # noqa: E402
from reporting.settings import collection_name, lead_source  # noqa: E402
from reporting.snapshots import PRODUCTIVITY_RANGES, read_productivity  # noqa: E402
from reporting.timeutils import PRESETS, preset_range  # noqa: E402
from utils.http import json_serial  # noqa: E402


def main():
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("report", choices=["ops", "sales", "productivity", "targets"])
    parser.add_argument("--source", default="ama", help="lead source (ama / billcut)")
    parser.add_argument("--preset", choices=PRESETS, help="date window for the sales report")
    parser.add_argument("--range", dest="range_name", choices=PRODUCTIVITY_RANGES, default="today")
    parser.add_argument("--month", help="target month key, e.g. Jan_2025")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)
    store, cfg = get_context()

    if args.report == "ops":
        out = build_ops_report(store.get_all(collection_name(cfg, "clients")), cfg)
    elif args.report == "sales":
        src = lead_source(cfg, args.source)
        start = end = None
        if args.preset:
            start, end = preset_range(args.preset, zone_offset_minutes=int(cfg["zone_offset_minutes"]))
        out = build_sales_report(store.get_all(src["collection"]), start, end, cfg, status_field=src["status_field"])
    elif args.report == "productivity":
        out = read_productivity(store, args.range_name, source=args.source, cfg=cfg)
    else:
        out = build_sales_analytics(ledger_for(store, cfg), month=args.month)

    print(json.dumps(out, indent=2, default=json_serial))


if __name__ == "__main__":
    main()

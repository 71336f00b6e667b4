import logging
from datetime import date, datetime

import azure.functions as func

from reporting import get_context, ledger_for
from reporting.reports import build_ops_report, build_sales_analytics, build_sales_report
from reporting.settings import collection_name, lead_source
from reporting.timeutils import day_range, now_utc, preset_range, zone_for
from utils import rbac
from utils.http import error_response, options_response, respond


def main(req: func.HttpRequest) -> func.HttpResponse:
    if req.method == "OPTIONS":
        return options_response()

    route = req.route_params.get("route", "") or ""
    email = rbac.get_user_email(req)
    if not rbac.is_manager(email):
        return error_response("Forbidden: Managers only", 403)

    try:
        if route == "ops":
            return ops_report(req)
        elif route == "sales":
            return sales_report(req)
        elif route == "analytics":
            return sales_analytics(req)
        return error_response("Not Found", 404)
    except ValueError as e:
        return error_response(str(e), 400)
    except Exception as e:
        logging.error(f"[Reports] {route} failed: {e}", exc_info=True)
        return error_response(f"Internal Server Error: {e}", 500)


def resolve_window(params, offset: int, now=None):
    """
    (start, end) from ?preset=<name> or ?from=YYYY-MM-DD&to=YYYY-MM-DD
    (zone-local days, inclusive). No parameters means no bounds.
    """
    preset = params.get("preset")
    if preset:
        return preset_range(preset, now or now_utc(), offset)

    start = end = None
    zone = zone_for(offset)
    if params.get("from"):
        d = date.fromisoformat(params["from"])
        start, _ = day_range(_midday(d, zone), offset)
    if params.get("to"):
        d = date.fromisoformat(params["to"])
        _, end = day_range(_midday(d, zone), offset)
    if start and end and start > end:
        raise ValueError("'from' must not be after 'to'")
    return start, end


def _midday(d, zone):
    return datetime(d.year, d.month, d.day, 12, tzinfo=zone)


def ops_report(req):
    store, cfg = get_context()
    clients = store.get_all(collection_name(cfg, "clients"))
    logging.info(f"[Reports] ops report over {len(clients)} client(s)")
    return respond(build_ops_report(clients, cfg))


def sales_report(req):
    store, cfg = get_context()
    src = lead_source(cfg, req.params.get("source", "ama"))
    start, end = resolve_window(req.params, int(cfg["zone_offset_minutes"]))
    leads = store.get_all(src["collection"])
    report = build_sales_report(leads, start, end, cfg, status_field=src.get("status_field", "status"))
    report["window"] = {"start": start, "end": end}
    return respond(report)


def sales_analytics(req):
    store, cfg = get_context()
    ledger = ledger_for(store, cfg)
    return respond(build_sales_analytics(
        ledger,
        month=req.params.get("month"),
        history_months=int(cfg["analytics_history_months"]),
    ))

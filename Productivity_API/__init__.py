import logging

import azure.functions as func

from reporting import get_context
from reporting.snapshots import PRODUCTIVITY_RANGES, read_productivity
from utils import rbac
from utils.http import error_response, options_response, respond


def main(req: func.HttpRequest) -> func.HttpResponse:
    if req.method == "OPTIONS":
        return options_response()

    email = rbac.get_user_email(req)
    if not rbac.is_manager(email):
        return error_response("Forbidden: Managers only", 403)

    range_name = req.params.get("range", "today")
    source = req.params.get("source", "ama")
    if range_name not in PRODUCTIVITY_RANGES:
        return error_response(f"Invalid range '{range_name}'. Use one of: {', '.join(PRODUCTIVITY_RANGES)}", 400)

    try:
        store, cfg = get_context()
        stats = read_productivity(store, range_name, source=source, cfg=cfg)
    except ValueError as e:
        return error_response(str(e), 400)
    except Exception as e:
        logging.error(f"[Productivity] {range_name}/{source} failed: {e}", exc_info=True)
        return error_response(f"Internal Server Error: {e}", 500)

    return respond({
        "range": range_name,
        "source": source,
        "totalLeadsWorked": sum(s["leadsWorked"] for s in stats),
        "users": stats,
    })

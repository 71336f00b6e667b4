import logging

import azure.functions as func

from reporting import get_context, ledger_for
from utils import rbac
from utils.http import error_response, options_response, read_json, respond
from utils.store import WriteFailure


def main(req: func.HttpRequest) -> func.HttpResponse:
    if req.method == "OPTIONS":
        return options_response()

    email = rbac.get_user_email(req)
    try:
        if req.method == "GET":
            if not rbac.is_manager(email):
                return error_response("Forbidden: Managers only", 403)
            return get_targets(req)
        elif req.method in ("PUT", "POST"):
            if not rbac.is_admin(email):
                return error_response("Forbidden: Admins only", 403)
            return set_targets(req, email)
        return error_response("Method Not Allowed", 405)
    except ValueError as e:
        return error_response(str(e), 400)
    except WriteFailure as e:
        logging.error(f"[Targets] write failed: {e}", exc_info=True)
        return error_response(f"Could not save targets: {e}", 500)
    except Exception as e:
        logging.error(f"[Targets] failed: {e}", exc_info=True)
        return error_response(f"Internal Server Error: {e}", 500)


def get_targets(req):
    store, cfg = get_context()
    ledger = ledger_for(store, cfg)
    month = req.params.get("month") or ledger.current_month()
    records = sorted(ledger.month_records(month), key=lambda r: str(r.get("userName") or ""))
    return respond({"month": month, "targets": records})


def set_targets(req, email):
    body = read_json(req)
    if body is None:
        return error_response("Invalid JSON", 400)

    # one entry or a batch from the form
    entries = body.get("targets") if isinstance(body.get("targets"), list) else [body]
    if not all(isinstance(e, dict) and e.get("userName") for e in entries):
        return error_response("Each target needs a 'userName'", 400)

    store, cfg = get_context()
    ledger = ledger_for(store, cfg)
    month = body.get("month") or ledger.current_month()

    saved = [
        ledger.set_targets(
            e["userName"],
            e.get("convertedLeadsTarget", 0),
            e.get("amountCollectedTarget", 0),
            month=month,
            user_id=e.get("userId"),
            set_by=email,
        )
        for e in entries
    ]
    logging.info(f"[Targets] {len(saved)} target(s) saved for {month} by {email}")
    return respond({"month": month, "targets": saved})

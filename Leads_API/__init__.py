import logging
from datetime import datetime, timezone

import azure.functions as func

from reporting import get_context, ledger_for
from reporting.normalizer import normalize_status
from reporting.settings import lead_source
from utils import rbac
from utils.http import error_response, options_response, read_json, respond
from utils.store import WriteFailure

CONVERTED = "Converted"


def main(req: func.HttpRequest) -> func.HttpResponse:
    if req.method == "OPTIONS":
        return options_response()

    route = req.route_params.get("route", "") or ""
    email = rbac.get_user_email(req)
    if not email:
        return error_response("Unauthorized", 401)

    try:
        if route == "status" and req.method in ("PUT", "POST"):
            return update_status(req, email)
        return error_response("Not Found", 404)
    except ValueError as e:
        return error_response(str(e), 400)
    except WriteFailure as e:
        logging.error(f"[Leads] write failed: {e}", exc_info=True)
        return error_response(f"Could not save the status: {e}", 500)
    except Exception as e:
        logging.error(f"[Leads] {route} failed: {e}", exc_info=True)
        return error_response(f"Internal Server Error: {e}", 500)


def update_status(req, email):
    """
    Sets a lead's status and keeps the salesperson's monthly convertedLeads in
    step: +1 when a lead becomes Converted, -1 (not below 0) when it stops being.
    """
    body = read_json(req)
    if body is None:
        return error_response("Invalid JSON", 400)
    lead_id = body.get("id")
    if not lead_id or "status" not in body:
        return error_response("Missing 'id' or 'status'", 400)

    store, cfg = get_context()
    src = lead_source(cfg, body.get("source", "ama"))
    status_field = src.get("status_field", "status")

    lead = store.get(src["collection"], str(lead_id))
    if not lead:
        return error_response("Lead not found", 404)

    old_status = normalize_status(lead.get(status_field))
    new_status = normalize_status(body["status"])

    now = datetime.now(timezone.utc)
    update = {status_field: body["status"], "lastModified": now}
    if new_status == CONVERTED and old_status != CONVERTED:
        update["convertedAt"] = now
    store.upsert(src["collection"], lead["id"], update)

    owner = lead.get("assigned_to")
    converted_leads = None
    if owner and old_status != new_status and CONVERTED in (old_status, new_status):
        ledger = ledger_for(store, cfg)
        if new_status == CONVERTED:
            converted_leads = ledger.record_conversion(owner)
        else:
            converted_leads = ledger.revert_conversion(owner)
        logging.info(f"[Leads] {lead['id']} {old_status} -> {new_status}; {owner} convertedLeads={converted_leads}")

    return respond({
        "id": lead["id"],
        "status": new_status,
        "previousStatus": old_status,
        "convertedLeads": converted_leads,
    })

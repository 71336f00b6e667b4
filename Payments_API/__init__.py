import logging
from datetime import datetime, timezone

import azure.functions as func

from reporting import get_context, ledger_for
from reporting.aggregator import parse_number
from reporting.reports import build_payments_summary
from reporting.settings import collection_name
from utils import rbac
from utils.http import error_response, options_response, read_json, respond
from utils.store import WriteFailure

PENDING = "pending"
APPROVED = "approved"
REJECTED = "rejected"


def main(req: func.HttpRequest) -> func.HttpResponse:
    if req.method == "OPTIONS":
        return options_response()

    action = req.route_params.get("action", "") or ""
    email = rbac.get_user_email(req)

    try:
        if action == "" and req.method == "GET":
            if not rbac.is_manager(email):
                return error_response("Forbidden: Managers only", 403)
            return list_payments(req)

        if not rbac.is_admin(email):
            return error_response("Forbidden: Admins only", 403)

        if action == "approve" and req.method == "POST":
            return transition_payment(req, email, APPROVED)
        elif action == "reject" and req.method == "POST":
            return transition_payment(req, email, REJECTED)
        elif action == "edit" and req.method in ("PUT", "POST"):
            return edit_payment(req, email)
        elif action == "delete" and req.method in ("DELETE", "POST"):
            return delete_payment(req, email)

        return error_response("Not Found", 404)
    except ValueError as e:
        return error_response(str(e), 400)
    except WriteFailure as e:
        logging.error(f"[Payments] write failed: {e}", exc_info=True)
        return error_response(f"Could not save the change: {e}", 500)
    except Exception as e:
        logging.error(f"[Payments] {action or 'list'} failed: {e}", exc_info=True)
        return error_response(f"Internal Server Error: {e}", 500)


def _now_iso():
    return datetime.now(timezone.utc).isoformat()


def _amount_text(value: float) -> str:
    # amounts are stored as text, matching how requests are submitted
    return str(int(value)) if float(value).is_integer() else str(value)


def _stored_amount(payment):
    """Amount already on the request, or None when an approved one is not a usable number."""
    value = parse_number(payment.get("amount")) or 0.0
    if payment.get("status") == APPROVED and value < 0:
        return None
    return value


def _load(req, store, cfg):
    """(body, payment, None) or (None, None, error response)."""
    body = read_json(req)
    if body is None:
        return None, None, error_response("Invalid JSON", 400)
    payment_id = body.get("id")
    if not payment_id:
        return None, None, error_response("Missing 'id'", 400)
    payment = store.get(collection_name(cfg, "payments"), str(payment_id))
    if not payment:
        return None, None, error_response("Payment request not found", 404)
    return body, payment, None


def list_payments(req):
    store, cfg = get_context()
    month = req.params.get("month")
    payments = store.get_all(collection_name(cfg, "payments"))
    return respond(build_payments_summary(payments, month=month, cfg=cfg))


def transition_payment(req, email, target_status):
    store, cfg = get_context()
    body, payment, err = _load(req, store, cfg)
    if err:
        return err

    amount = parse_number(payment.get("amount"))
    if target_status == APPROVED and (amount is None or amount < 0):
        return error_response(f"Payment amount is not a valid number: {payment.get('amount')!r}", 400)

    stamp = {
        "status": target_status,
        f"{target_status}By": email,
        f"{target_status}At": _now_iso(),
    }
    # only a pending request may move; a concurrent approval loses here
    moved = store.update_if(collection_name(cfg, "payments"), payment["id"], {"status": PENDING}, stamp)
    if not moved:
        current = (store.get(collection_name(cfg, "payments"), payment["id"]) or payment).get("status")
        return error_response(f"Invalid transition from {current} to {target_status}", 409)

    result = {"id": payment["id"], "status": target_status}
    if target_status == APPROVED:
        ledger = ledger_for(store, cfg)
        result["amountCollected"] = ledger.apply_approval(payment.get("salesPersonName") or "Unknown", amount)

    logging.info(f"[Payments] {payment['id']} -> {target_status} by {email}")
    return respond(result)


def edit_payment(req, email):
    store, cfg = get_context()
    body, payment, err = _load(req, store, cfg)
    if err:
        return err

    new_amount = parse_number(body.get("amount"))
    if new_amount is None or new_amount <= 0:
        return error_response("Please enter a valid amount", 400)

    old_amount = _stored_amount(payment)
    if old_amount is None:
        return error_response(f"Stored amount is not a valid number: {payment.get('amount')!r}", 400)

    store.upsert(collection_name(cfg, "payments"), payment["id"], {
        "amount": _amount_text(new_amount),
        "edited_by": email,
        "edited_at": _now_iso(),
    })

    ledger = ledger_for(store, cfg)
    collected = ledger.apply_edit(
        payment.get("salesPersonName") or "Unknown",
        old_amount,
        new_amount,
        status=payment.get("status"),
    )
    logging.info(f"[Payments] {payment['id']} amount {old_amount} -> {new_amount} by {email}")
    return respond({"id": payment["id"], "amount": _amount_text(new_amount), "amountCollected": collected})


def delete_payment(req, email):
    store, cfg = get_context()
    body, payment, err = _load(req, store, cfg)
    if err:
        return err

    amount = _stored_amount(payment)
    if amount is None:
        return error_response(f"Stored amount is not a valid number: {payment.get('amount')!r}", 400)

    store.delete(collection_name(cfg, "payments"), payment["id"])

    ledger = ledger_for(store, cfg)
    collected = ledger.apply_deletion(
        payment.get("salesPersonName") or "Unknown",
        amount,
        status=payment.get("status"),
    )
    logging.info(f"[Payments] {payment['id']} deleted by {email}")
    return respond({"id": payment["id"], "deleted": True, "amountCollected": collected})

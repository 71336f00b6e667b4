import os
import logging

from utils.db_utils import get_db

COLL_USERS = "users"


def get_allowed_emails(env_var_name: str) -> set[str]:
    raw = os.getenv(env_var_name, "")
    return {e.strip().lower() for e in raw.split(",") if e.strip()}


def _get_user_role(email: str) -> str | None:
    try:
        db = get_db()
    except RuntimeError:
        # no connection string configured (local/dev)
        return None
    user = db[COLL_USERS].find_one({"email": email}, {"role": 1})
    if not user:
        return None
    return str(user.get("role") or "").lower() or None


def is_manager(email: str | None) -> bool:
    if not email:
        return False
    email = email.lower()

    if email in get_allowed_emails("REPORTS_MANAGER_EMAILS") or email in get_allowed_emails("REPORTS_ADMIN_EMAILS"):
        return True

    return _get_user_role(email) in ("admin", "overlord", "sales", "billcut")


def is_admin(email: str | None) -> bool:
    if not email:
        return False
    email = email.lower()

    if email in get_allowed_emails("REPORTS_ADMIN_EMAILS"):
        return True

    role = _get_user_role(email)
    if role not in ("admin", "overlord"):
        logging.info(f"[RBAC] {email} denied admin access (role={role})")
        return False
    return True


def get_user_email(req) -> str | None:
    # 1. Try x-ms-client-principal-name (Azure App Service Auth) - ALWAYS honored
    val = req.headers.get("x-ms-client-principal-name")
    if val:
        return val

    # 2. Dev/Test-only: Allow X-User-Email
    # In Production, ignore X-User-Email to prevent spoofing
    is_dev_or_test = (
        os.getenv("AZURE_FUNCTIONS_ENVIRONMENT") != "Production"
        or os.getenv("DEBUG_RBAC") == "1"
    )
    if is_dev_or_test:
        val = req.headers.get("X-User-Email")
        if val:
            return val

    return None

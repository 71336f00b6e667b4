"""
Fixtures for the HTTP function tests.

Every function runs against an in-memory store with the default reporting
config; roles come only from the REPORTS_*_EMAILS allow-lists.
"""

import json
import os
import sys

import azure.functions as func
import pytest

ROOT_DIR = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

from reporting.settings import default_config  # noqa: E402
from utils.store import MemoryDocumentStore  # noqa: E402

ADMIN = "admin@example.com"
MANAGER = "manager@example.com"
OUTSIDER = "someone@example.com"


@pytest.fixture(autouse=True)
def rbac_env(monkeypatch):
    monkeypatch.setenv("REPORTS_ADMIN_EMAILS", ADMIN)
    monkeypatch.setenv("REPORTS_MANAGER_EMAILS", MANAGER)
    monkeypatch.delenv("AZURE_FUNCTIONS_ENVIRONMENT", raising=False)
    monkeypatch.setattr("utils.rbac._get_user_role", lambda email: None)


@pytest.fixture
def store():
    return MemoryDocumentStore()


@pytest.fixture
def cfg():
    return default_config()


@pytest.fixture
def context(store, cfg):
    """Callable standing in for reporting.get_context."""
    return lambda: (store, cfg)


@pytest.fixture
def make_request():
    def _make(method="GET", url="/api/x", user=ADMIN, body=None, params=None, route_params=None):
        headers = {"Content-Type": "application/json"}
        if user:
            headers["X-User-Email"] = user
        raw = b"" if body is None else (body if isinstance(body, bytes) else json.dumps(body).encode())
        return func.HttpRequest(
            method=method,
            url=url,
            headers=headers,
            params=params or {},
            route_params=route_params or {},
            body=raw,
        )
    return _make


@pytest.fixture
def users():
    return {"admin": ADMIN, "manager": MANAGER, "outsider": OUTSIDER}

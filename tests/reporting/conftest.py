"""
Fixtures for the reporting pipeline tests.

Everything runs against MemoryDocumentStore with a pinned clock:
2025-01-15 09:00 IST (03:30 UTC), a Wednesday.
"""

import os
import sys
from datetime import datetime, timezone

import pytest

ROOT_DIR = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
if ROOT_DIR not in sys.path:
    sys.path.append(ROOT_DIR)

from reporting.ledger import TargetLedger  # noqa: E402
from utils.store import MemoryDocumentStore  # noqa: E402

FIXED_NOW = datetime(2025, 1, 15, 3, 30, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return FIXED_NOW


@pytest.fixture
def store():
    return MemoryDocumentStore()


@pytest.fixture
def ledger(store):
    return TargetLedger(store, clock=lambda: FIXED_NOW)

"""
Fixtures for tests that talk to a real MongoDB.

SAFETY: these tests write and drop collections, so they only run against
the dedicated test database.
"""

import os
import sys

import pytest
from pymongo import MongoClient

ROOT_DIR = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

TEST_DB_NAME = "CRM_Reports_test"
PROD_DB_NAME = "CRM_Reports"

# every collection these tests touch is prefixed so cleanup stays scoped
PREFIX = "it_"


@pytest.fixture(scope="session")
def mongo_client():
    mongo_uri = os.getenv("MongoDb-Connection-String") or os.getenv("MONGODB_CONNECTION_STRING")
    if not mongo_uri:
        pytest.skip("MongoDb-Connection-String not set")

    client = MongoClient(mongo_uri, tz_aware=True, serverSelectionTimeoutMS=5000)
    yield client
    client.close()


@pytest.fixture(scope="session")
def test_db(mongo_client):
    """Test database instance; refuses anything but the test DB."""
    db_name = os.getenv("REPORTS_DB_NAME", TEST_DB_NAME)
    if db_name == PROD_DB_NAME:
        pytest.fail(
            f"SAFETY GUARD: Tests cannot run against production DB. "
            f"Set REPORTS_DB_NAME={TEST_DB_NAME} in environment."
        )
    if db_name != TEST_DB_NAME:
        pytest.fail(f"SAFETY GUARD: REPORTS_DB_NAME={db_name} is not the expected test DB ({TEST_DB_NAME})")
    return mongo_client[db_name]


@pytest.fixture
def clean_db(test_db):
    def drop_prefixed():
        for name in test_db.list_collection_names():
            if name.startswith(PREFIX):
                test_db.drop_collection(name)

    drop_prefixed()
    yield test_db
    drop_prefixed()

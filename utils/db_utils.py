import os
import logging

import pymongo

# --- Azure Key Vault (guarded import) ---
try:
    from azure.identity import DefaultAzureCredential  # type: ignore
    from azure.keyvault.secrets import SecretClient  # type: ignore
except Exception:
    DefaultAzureCredential = None  # type: ignore
    SecretClient = None  # type: ignore

# Global cache for the MongoDB client to enable connection pooling across invocations
_CLIENT_CACHE = None

# Simple in-process cache for secrets
_SECRET_CACHE: dict[str, str] = {}

KEY_VAULT_URL = os.getenv("KEY_VAULT_URL")

DEFAULT_DB_NAME = "CRM_Reports"

# List of keys to check in order
CONNECTION_KEYS = [
    "MongoDb-Connection-String",
    "MONGODB_CONNECTION_STRING",
    "CUSTOMCONNSTR_MongoDb-Connection-String",
    "MongoDbConnectionString",
    "DB_CONNECTION_STRING",
]


def get_secret(name: str, default: str | None = None) -> str | None:
    """
    Return secret value from environment if present; otherwise fetch from Azure Key Vault.
    Falls back to `default` if neither source is available. Values are cached per-process.
    """
    if os.getenv(name):
        return os.environ[name]

    if name in _SECRET_CACHE:
        return _SECRET_CACHE[name]

    if KEY_VAULT_URL and SecretClient and DefaultAzureCredential:
        lookup_names = [name]
        # Azure KV secret names cannot contain underscores; try a hyphenated variant
        if "_" in name:
            lookup_names.append(name.replace("_", "-"))
        try:
            client = SecretClient(vault_url=KEY_VAULT_URL, credential=DefaultAzureCredential())
            for nm in lookup_names:
                try:
                    val = getattr(client.get_secret(nm), "value", None)
                except Exception:
                    continue
                if isinstance(val, str):
                    _SECRET_CACHE[name] = val
                    return val
        except Exception as e:
            logging.warning("Secrets: failed to fetch '%s' from Key Vault: %s", name, e)

    return default


def get_connection_string() -> str | None:
    for key in CONNECTION_KEYS:
        val = os.getenv(key)
        if val:
            return val
    return get_secret("MONGODB_CONNECTION_STRING")


def get_db_client(**kwargs):
    """
    Returns a PyMongo client using the connection string from environment variables
    (or Key Vault). Uses a global cache to reuse the client across invocations.
    """
    global _CLIENT_CACHE

    if _CLIENT_CACHE:
        return _CLIENT_CACHE

    uri = get_connection_string()
    if not uri:
        # CRITICAL: Prevent fallback to localhost:27017
        error_msg = f"MongoDB Connection String not found. Checked: {CONNECTION_KEYS} and Key Vault"
        logging.critical(error_msg)
        raise RuntimeError(error_msg)

    try:
        client = pymongo.MongoClient(uri, tz_aware=True, **kwargs)
        _CLIENT_CACHE = client
        return client
    except Exception as e:
        logging.critical(f"Failed to create MongoClient: {e}")
        raise


def get_db(db_name_env="REPORTS_DB_NAME", default_db=DEFAULT_DB_NAME):
    """
    Returns the database object.
    """
    client = get_db_client()
    db_name = os.getenv(db_name_env) or os.getenv("DB_NAME") or default_db
    return client[db_name]

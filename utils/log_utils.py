import os
import sys
import logging

IS_AZURE_FUNC = bool(os.getenv("FUNCTIONS_WORKER_RUNTIME"))
LOG_LEVEL = os.getenv("REPORTS_LOG_LEVEL", "INFO").upper()

_configured = False


def _app_insights_handler():
    """AzureLogHandler when an Application Insights connection string is set, else None."""
    conn = os.getenv("APPLICATIONINSIGHTS_CONNECTION_STRING") or os.getenv("APPINSIGHTS_INSTRUMENTATIONKEY")
    if not conn:
        return None

    from opencensus.ext.azure.log_exporter import AzureLogHandler

    # accept either a full connection string or a bare instrumentation key
    if "InstrumentationKey=" not in conn and ";" not in conn:
        conn = f"InstrumentationKey={conn}"
    return AzureLogHandler(connection_string=conn)


def configure_logging(level: str | None = None) -> None:
    """
    Local runs get a stdout handler with timestamps (plus App Insights when
    configured); inside the Functions host the worker already owns the root
    handlers, so only the level is applied.
    """
    global _configured
    if _configured:
        return

    lvl = getattr(logging, (level or LOG_LEVEL), logging.INFO)
    root = logging.getLogger()
    if not IS_AZURE_FUNC:
        if not root.handlers:
            logging.basicConfig(
                level=lvl,
                format="%(asctime)s - %(levelname)s - %(message)s",
                stream=sys.stdout,
            )
        try:
            handler = _app_insights_handler()
        except Exception as e:
            handler = None
            logging.warning(f"[Logging] App Insights handler not attached: {e}")
        if handler is not None and handler not in root.handlers:
            root.addHandler(handler)

    root.setLevel(lvl)
    # pymongo is chatty at INFO
    logging.getLogger("pymongo").setLevel(logging.WARNING)
    _configured = True

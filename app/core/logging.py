import logging


LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """
    Configure the root logger once for the process.

    Modules only ever call ``logging.getLogger(__name__)``; handlers and
    format are owned here so uvicorn and the app share one output.

    Args:
        level: Log level name, e.g. "INFO" or "DEBUG".
    """
    root = logging.getLogger()
    root.setLevel(level.upper())

    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)

    # httpx logs every request line at INFO, including provider URLs
    logging.getLogger("httpx").setLevel(logging.WARNING)

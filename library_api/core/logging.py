import logging
import sys
from typing import Final
from collections.abc import Mapping
from logging import LoggerAdapter, LogRecord
from typing_extensions import override
from fastapi import Request

_LOG_FORMAT: Final[str] = (
    "%(asctime)s %(levelname)s %(name)s :: %(message)s [req=%(request_id)s]"
)

# Routed through our handler instead of their own
_SERVER_LOGGERS: Final[tuple[str, ...]] = ("uvicorn", "uvicorn.error", "uvicorn.access")

# Chatty client libraries; one line per Mongo command / HTTP call at INFO and below
_QUIET_LOGGERS: Final[tuple[str, ...]] = ("pymongo", "httpx", "httpcore")


class RequestLogFilter(logging.Filter):
    """
    Ensures every record has a request_id key, so records emitted outside
    a request (startup, driver threads) still format.
    """

    @override
    def filter(self, record: LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = "-"
        return True


def _as_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(level: int | str = logging.INFO) -> None:
    """
    Configure root, uvicorn and client-library loggers.

    `level` accepts a number or a name such as "debug" (LOG_LEVEL);
    unknown names fall back to INFO.
    """
    level = _as_level(level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(RequestLogFilter())
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level)
    root.addHandler(handler)

    for name in _SERVER_LOGGERS:
        server_logger = logging.getLogger(name)
        server_logger.handlers.clear()
        server_logger.setLevel(level)
        server_logger.addHandler(handler)
        server_logger.propagate = False

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def get_logger(
    name: str,
    request: Request | None = None
) -> LoggerAdapter[logging.Logger]:
    """
    Logger carrying the request id of `request` when given.
    Usage: logger = get_logger(__name__, request)
    """
    extra: Mapping[str, str] = {}
    if request is not None:
        extra = {"request_id": getattr(request.state, "correlation_id", "-")}
    return LoggerAdapter(logging.getLogger(name), extra)

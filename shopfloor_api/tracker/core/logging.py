from __future__ import annotations

import logging
import sys
from contextvars import ContextVar
from typing import Optional, Union


# Request-scoped values stamped onto every record
correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)
station_id_var: ContextVar[Optional[str]] = ContextVar("station_id", default=None)

LOG_FORMAT = (
    "%(asctime)s | %(levelname)s | %(name)s | cid=%(correlation_id)s | station=%(station_id)s | "
    "%(message)s"
)

# Driver loggers that flood INFO with per-statement chatter
_QUIET_LOGGERS = ("aiosqlite", "sqlalchemy.engine", "asyncio")


class LoggingContextFilter(logging.Filter):
    """
    Inject the request's correlation_id and scanning station_id into each record.

    Records emitted outside a request (startup, migrations) carry "-" placeholders.
    """

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: D401
        record.correlation_id = correlation_id_var.get() or "-"
        record.station_id = station_id_var.get() or "-"
        return True


# PUBLIC_INTERFACE
def configure_logging(level: Union[int, str] = logging.INFO) -> None:
    """
    Configure root logging with the tracker format and context filter.

    Safe to call more than once; the tracker handler replaces any existing root handlers.
    """
    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT))
    handler.addFilter(LoggingContextFilter())

    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
    root.addHandler(handler)
    root.setLevel(level.upper() if isinstance(level, str) else level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

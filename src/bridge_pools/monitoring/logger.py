"""JSON logging for pipeline components.

Each stage run executes inside :func:`correlation_scope` with its run id, so
every line a run emits (including lines from the providers it calls) carries
the same ``correlation_id``.
"""

from __future__ import annotations

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional

from ..config.settings import MonitoringConfig, get_app_config

HANDLER_NAME = "bridge_pools.json"
NO_CORRELATION = "-"

_RUN_ID: ContextVar[str] = ContextVar("bridge_pools_run_id", default=NO_CORRELATION)
_RESERVED = set(logging.LogRecord("", 0, "", 0, "", (), None).__dict__) | {"correlation_id"}


class _RunIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = _RUN_ID.get()
        return True


class StructuredFormatter(logging.Formatter):
    """One JSON object per line; non-standard record attributes go under ``extra``."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", _RUN_ID.get()),
        }
        extra = {
            key: value
            for key, value in vars(record).items()
            if key not in _RESERVED and not key.startswith("_")
        }
        if extra:
            payload["extra"] = extra
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def _json_handler(root: logging.Logger) -> Optional[logging.Handler]:
    for handler in root.handlers:
        if handler.get_name() == HANDLER_NAME:
            return handler
    return None


def configure_logging(config: Optional[MonitoringConfig] = None) -> None:
    """Install the JSON stdout handler on the root logger and apply the level.

    Calling it again keeps the existing handler and only updates the level.
    """

    cfg = config or get_app_config().monitoring
    root = logging.getLogger()
    if _json_handler(root) is None:
        handler = logging.StreamHandler(sys.stdout)
        handler.set_name(HANDLER_NAME)
        handler.setFormatter(StructuredFormatter())
        handler.addFilter(_RunIdFilter())
        root.addHandler(handler)
        logging.captureWarnings(True)
    root.setLevel(getattr(logging, cfg.log_level.upper(), logging.INFO))


def get_logger(name: str) -> logging.Logger:
    if _json_handler(logging.getLogger()) is None:
        configure_logging()
    return logging.getLogger(name)


def current_correlation_id() -> str:
    return _RUN_ID.get()


@contextmanager
def correlation_scope(correlation_id: Optional[str]) -> Iterator[None]:
    token = _RUN_ID.set(correlation_id or NO_CORRELATION)
    try:
        yield
    finally:
        _RUN_ID.reset(token)


__all__ = [
    "HANDLER_NAME",
    "StructuredFormatter",
    "configure_logging",
    "correlation_scope",
    "current_correlation_id",
    "get_logger",
]

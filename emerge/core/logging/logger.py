"""
Emerge Logging Subsystem

Purpose
-------
Structured, non-blocking logging for the progression engine.

- Production: one JSON object per line, ready for log aggregation.
- Development: readable console lines, colored on a TTY.
- Every record carries the user/event context of the task that logged it.

How It Fits Together
--------------------
    caller task ──> root logger ──> EmergeQueueHandler (+ ContextFilter)
                                          │ bounded queue
                                          ▼
                         EmergeQueueListener thread ──> console handler

- ContextFilter runs on the calling task, before the record is queued, so
  the ContextVar values are the caller's and not the listener thread's.
- The queue is bounded; on overflow records are counted and dropped rather
  than blocking the event loop.
- Nothing happens at import time. `setup_logging()` is explicit and
  idempotent; `shutdown_logging()` flushes and detaches.

Context
-------
    async with LogContext(user_id="u1", event_id="evt-9", operation="apply"):
        logger.info("Applying activity", extra={"xp_gained": 20})

Fields passed through `extra={...}` land under "extra" in JSON output.
Never use reserved LogRecord attribute names ("message", "args", ...) as
extra keys; `logging` raises KeyError on them.
"""

from __future__ import annotations

import json
import logging
import queue
import sys
import uuid
from contextvars import ContextVar, Token
from dataclasses import dataclass
from datetime import datetime, timezone
from logging import Logger
from logging.handlers import QueueHandler, QueueListener
from typing import Any, Dict, Optional

from emerge.core.config.config import Config

QUEUE_MAX_SIZE = 10_000
CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-32s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

CONTEXT_FIELDS = ("user_id", "event_id", "correlation_id", "component", "operation")
UNSET = "N/A"

_request_context: ContextVar[Dict[str, Any]] = ContextVar("emerge_log_context", default={})


# ============================================================================
# Settings
# ============================================================================


_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def _log_level() -> int:
    return _LEVELS.get(str(Config.LOG_LEVEL).upper(), logging.INFO)


def _use_json() -> bool:
    if Config.LOG_JSON is None:
        return Config.is_production()
    return bool(Config.LOG_JSON)


# ============================================================================
# Health
# ============================================================================


@dataclass(slots=True)
class LoggingMetrics:
    records_enqueued: int = 0
    records_dropped: int = 0
    listener_errors: int = 0


@dataclass(frozen=True, slots=True)
class LoggingHealth:
    initialized: bool
    queue_size: int
    queue_max_size: int
    records_enqueued: int
    records_dropped: int
    listener_errors: int


_metrics = LoggingMetrics()
_log_queue: Optional["queue.Queue[logging.LogRecord]"] = None
_listener: Optional[QueueListener] = None


def get_logging_health() -> LoggingHealth:
    return LoggingHealth(
        initialized=_listener is not None,
        queue_size=_log_queue.qsize() if _log_queue is not None else 0,
        queue_max_size=_log_queue.maxsize if _log_queue is not None else 0,
        records_enqueued=_metrics.records_enqueued,
        records_dropped=_metrics.records_dropped,
        listener_errors=_metrics.listener_errors,
    )


# ============================================================================
# Filters & Formatters
# ============================================================================


class ContextFilter(logging.Filter):
    """Stamp the current LogContext onto the record."""

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        context = _request_context.get()
        for name in ("user_id", "event_id", "correlation_id"):
            setattr(record, name, context.get(name, UNSET))
        record.component = context.get("component") or record.name.partition(".")[0]
        # an explicit extra={"operation": ...} wins over the context value
        if not hasattr(record, "operation"):
            record.operation = context.get("operation", UNSET)
        return True


class ColoredFormatter(logging.Formatter):
    LEVEL_COLORS = {
        logging.DEBUG: "\033[90m",
        logging.INFO: "\033[94m",
        logging.WARNING: "\033[93m",
        logging.ERROR: "\033[91m",
        logging.CRITICAL: "\033[1;91m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        line = super().format(record)
        color = self.LEVEL_COLORS.get(record.levelno)
        return f"{color}{line}{self.RESET}" if color else line


# Attributes every LogRecord has; anything else on the record came from extra=.
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", None, None)).keys()
) | {"message", "asctime", "taskName"}


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None and value != UNSET:
                payload[name] = value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        extra = {
            key: value
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS
            and key not in CONTEXT_FIELDS
            and not key.startswith("_")
        }
        if extra:
            payload["extra"] = extra
        return json.dumps(payload, ensure_ascii=False, default=str)


# ============================================================================
# Queue plumbing
# ============================================================================


class EmergeQueueHandler(QueueHandler):
    def enqueue(self, record: logging.LogRecord) -> None:  # type: ignore[override]
        _metrics.records_enqueued += 1
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            _metrics.records_dropped += 1


class EmergeQueueListener(QueueListener):
    def handleError(self, record: logging.LogRecord) -> None:  # type: ignore[override]
        _metrics.listener_errors += 1
        sys.stderr.write(f"emerge logging: handler failed on record from {record.name}\n")


def _console_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    if _use_json():
        handler.setFormatter(JSONFormatter())
    elif Config.LOG_COLORS and sys.stdout.isatty():
        handler.setFormatter(ColoredFormatter(CONSOLE_FORMAT, DATE_FORMAT))
    else:
        handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, DATE_FORMAT))
    return handler


# ============================================================================
# Lifecycle
# ============================================================================


def setup_logging() -> None:
    """Route the root logger through the queue. Calling it again is a no-op."""
    global _metrics, _log_queue, _listener

    if _listener is not None:
        return

    level = _log_level()
    _metrics = LoggingMetrics()
    _log_queue = queue.Queue(QUEUE_MAX_SIZE)
    _listener = EmergeQueueListener(
        _log_queue, _console_handler(level), respect_handler_level=True
    )
    _listener.start()

    queue_handler = EmergeQueueHandler(_log_queue)
    queue_handler.setLevel(level)
    queue_handler.addFilter(ContextFilter())

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level)
    root.addHandler(queue_handler)

    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if Config.DATABASE_ECHO else logging.WARNING
    )

    logging.getLogger(__name__).info(
        "Logging initialized",
        extra={
            "environment": Config.ENVIRONMENT,
            "log_level": logging.getLevelName(level),
            "json": _use_json(),
            "queue_max_size": QUEUE_MAX_SIZE,
        },
    )


def shutdown_logging() -> None:
    """Drain the queue, stop the listener and detach root handlers."""
    global _log_queue, _listener

    if _listener is None:
        return

    logging.getLogger(__name__).info("Shutting down logging")
    _listener.stop()
    _listener = None
    _log_queue = None

    root = logging.getLogger()
    for handler in list(root.handlers):
        handler.close()
        root.removeHandler(handler)


# ============================================================================
# Public API
# ============================================================================


def get_logger(name: str) -> Logger:
    return logging.getLogger(name)


class LogContext:
    """
    Bind log context for the duration of a block; sync or async.

    Nested contexts inherit the outer values and restore them on exit. A
    fresh 8-character correlation id is generated unless one is passed.
    """

    def __init__(
        self,
        user_id: Optional[str] = None,
        event_id: Optional[str] = None,
        component: Optional[str] = None,
        operation: Optional[str] = None,
        correlation_id: Optional[str] = None,
        **extra: Any,
    ) -> None:
        self.context: Dict[str, Any] = {**_request_context.get(), **extra}
        self.context["correlation_id"] = correlation_id or uuid.uuid4().hex[:8]
        for name, value in (
            ("user_id", user_id),
            ("event_id", event_id),
            ("component", component),
            ("operation", operation),
        ):
            if value is not None:
                self.context[name] = str(value)
        self._token: Optional[Token[Dict[str, Any]]] = None

    def __enter__(self) -> "LogContext":
        self._token = _request_context.set(self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._token is not None:
            _request_context.reset(self._token)
            self._token = None

    async def __aenter__(self) -> "LogContext":
        return self.__enter__()

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.__exit__(exc_type, exc_val, exc_tb)


def set_log_context(**values: Any) -> None:
    """Merge values into the current context without a block (worker entry points)."""
    current = dict(_request_context.get())
    for key, value in values.items():
        if value is None:
            continue
        current[key] = str(value) if key in ("user_id", "event_id") else value
    _request_context.set(current)


def get_log_context() -> Dict[str, Any]:
    return dict(_request_context.get())


def clear_log_context() -> None:
    _request_context.set({})

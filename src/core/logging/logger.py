"""
hostbus Logging Subsystem

Purpose
-------
Provide the logging stack shared by the bus, the loader and the lifecycle
controller:

- Structured JSON records for aggregation.
- ContextVar-scoped `LogContext` so a dispatch pass or a phase load stamps
  every record logged inside it (event name, phase, correlation id).
- Non-blocking emission through a bounded QueueHandler + QueueListener pair;
  a full queue drops the record and counts it instead of stalling dispatch.
- Console output (JSON in production, colored text on a dev tty) and an
  opt-in rotating JSON file.

Design Decisions
----------------
- JSONFormatter is the canonical representation. Dispatch and load fields
  (`event_name`, `listener`, `phase`, `specifier`) are promoted to the top
  level; everything else passed via `extra=` lands under `"extra"`.
- Context fields reach records through `ContextFilter`, never through
  module-level state.
- The file handler is opt-in (`LOG_TO_FILE`) so importing hostbus never
  creates directories as a side effect.

Dependencies
------------
- src.core.config.config.Config
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
from logging.handlers import (
    QueueHandler,
    QueueListener,
    TimedRotatingFileHandler,
)
from pathlib import Path
from typing import Any, Dict, List, Optional

from src.core.config.config import Config


_log_context: ContextVar[Dict[str, Any]] = ContextVar("hostbus_log_context", default={})

# Context keys ContextFilter always sets, with their fallbacks.
_BASE_CONTEXT_KEYS = ("correlation_id", "component", "operation")


# ============================================================================
# Settings
# ============================================================================


@dataclass(frozen=True, slots=True)
class LoggerConfig:
    """Resolved logging settings, read lazily from `Config`."""

    CONSOLE_FORMAT: str = "%(asctime)s | %(levelname)-8s | %(name)-28s | %(message)s"
    DATE_FORMAT: str = "%Y-%m-%d %H:%M:%S"

    FILE_BASENAME: str = "hostbus.json.log"
    FILE_BACKUP_COUNT: int = 7

    QUEUE_MAX_SIZE: int = 10_000

    @property
    def environment(self) -> str:
        return str(Config.ENVIRONMENT).lower()

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def logs_dir(self) -> Path:
        return Path(Config.LOGS_DIR).resolve()

    @property
    def log_level(self) -> int:
        return getattr(logging, str(Config.LOG_LEVEL).upper(), logging.INFO)

    @property
    def use_json(self) -> bool:
        if Config.LOG_JSON is None:
            return self.is_production
        return bool(Config.LOG_JSON)

    @property
    def use_colors(self) -> bool:
        if self.use_json:
            return False
        return bool(Config.LOG_COLORS) and sys.stdout.isatty()

    @property
    def log_to_file(self) -> bool:
        return bool(Config.LOG_TO_FILE)


LOGGER_CONFIG = LoggerConfig()


# ============================================================================
# Queue Accounting
# ============================================================================


@dataclass(slots=True)
class LoggingMetrics:
    records_enqueued: int = 0
    records_dropped: int = 0
    handler_errors: int = 0


@dataclass(frozen=True, slots=True)
class LoggingHealth:
    """Point-in-time view of the log queue."""

    initialized: bool
    queue_size: int
    queue_max_size: int
    records_enqueued: int
    records_dropped: int
    handler_errors: int


_logging_metrics = LoggingMetrics()
_log_queue: Optional["queue.Queue[logging.LogRecord]"] = None
_queue_listener: Optional[QueueListener] = None


# ============================================================================
# Filters & Formatters
# ============================================================================


class ContextFilter(logging.Filter):
    """
    Copy the active LogContext onto each record.

    Values passed explicitly through `extra=` win over context values with
    the same name.
    """

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        context = _log_context.get()

        record.correlation_id = context.get("correlation_id") or "N/A"
        record.component = context.get("component") or record.name.split(".", 1)[0]
        record.operation = context.get("operation") or "N/A"

        for key, value in context.items():
            if key in _BASE_CONTEXT_KEYS or hasattr(record, key):
                continue
            setattr(record, key, value)

        return True


class ColoredFormatter(logging.Formatter):
    COLORS: Dict[str, str] = {
        "DEBUG": "\033[90m",
        "INFO": "\033[94m",
        "WARNING": "\033[93m",
        "ERROR": "\033[91m",
        "CRITICAL": "\033[91m\033[1m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        levelname = record.levelname
        color = self.COLORS.get(levelname)
        if color:
            record.levelname = f"{color}{levelname}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    # Attributes every LogRecord carries; never treated as extras.
    RECORD_ATTRS = frozenset(
        vars(logging.LogRecord("", 0, "", 0, "", None, None)).keys()
        | {"message", "asctime", "taskName"}
    )

    CONTEXT_ATTRS = ("correlation_id", "component", "operation")
    PROMOTED_ATTRS = ("event_name", "listener", "phase", "specifier")

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }

        for attr in self.CONTEXT_ATTRS + self.PROMOTED_ATTRS:
            value = getattr(record, attr, None)
            if value not in (None, "N/A"):
                log_data[attr] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        extra = {
            key: value
            for key, value in record.__dict__.items()
            if key not in self.RECORD_ATTRS
            and key not in self.CONTEXT_ATTRS
            and key not in self.PROMOTED_ATTRS
            and not key.startswith("_")
        }
        if extra:
            log_data["extra"] = extra

        return json.dumps(log_data, ensure_ascii=False, default=repr)


# ============================================================================
# Queue Handler & Listener
# ============================================================================


class HostbusQueueHandler(QueueHandler):
    """Non-blocking enqueue; a full queue drops the record."""

    def enqueue(self, record: logging.LogRecord) -> None:  # type: ignore[override]
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            _logging_metrics.records_dropped += 1
            sys.stderr.write("hostbus: log queue full, record dropped\n")
            return
        _logging_metrics.records_enqueued += 1


class HostbusQueueListener(QueueListener):
    def handleError(self, record: logging.LogRecord) -> None:  # type: ignore[override]
        _logging_metrics.handler_errors += 1
        sys.stderr.write(f"hostbus: log handler failed for record from {record.name}\n")


# ============================================================================
# Global Setup
# ============================================================================


def _build_console_handler() -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(LOGGER_CONFIG.log_level)

    if LOGGER_CONFIG.use_json:
        formatter: logging.Formatter = JSONFormatter()
    elif LOGGER_CONFIG.use_colors:
        formatter = ColoredFormatter(LOGGER_CONFIG.CONSOLE_FORMAT, LOGGER_CONFIG.DATE_FORMAT)
    else:
        formatter = logging.Formatter(LOGGER_CONFIG.CONSOLE_FORMAT, LOGGER_CONFIG.DATE_FORMAT)
    handler.setFormatter(formatter)

    return handler


def _build_file_handler() -> logging.Handler:
    LOGGER_CONFIG.logs_dir.mkdir(parents=True, exist_ok=True)

    handler = TimedRotatingFileHandler(
        filename=str(LOGGER_CONFIG.logs_dir / LOGGER_CONFIG.FILE_BASENAME),
        when="midnight",
        backupCount=LOGGER_CONFIG.FILE_BACKUP_COUNT,
        encoding="utf-8",
        utc=True,
    )
    handler.setLevel(LOGGER_CONFIG.log_level)
    handler.setFormatter(JSONFormatter())
    return handler


def setup_logging() -> None:
    """
    Install the queue handler on the root logger.

    Idempotent; a second call is a no-op until `shutdown_logging()` runs.
    """
    global _queue_listener, _logging_metrics, _log_queue

    root = logging.getLogger()
    if getattr(root, "_hostbus_logging_initialized", False):
        return

    _logging_metrics = LoggingMetrics()

    handlers: List[logging.Handler] = [_build_console_handler()]
    if LOGGER_CONFIG.log_to_file:
        handlers.append(_build_file_handler())

    _log_queue = queue.Queue(LOGGER_CONFIG.QUEUE_MAX_SIZE)
    _queue_listener = HostbusQueueListener(_log_queue, *handlers, respect_handler_level=True)
    _queue_listener.start()

    queue_handler = HostbusQueueHandler(_log_queue)
    queue_handler.setLevel(LOGGER_CONFIG.log_level)
    queue_handler.addFilter(ContextFilter())

    root.setLevel(LOGGER_CONFIG.log_level)
    root.addHandler(queue_handler)
    root._hostbus_queue_handler = queue_handler  # type: ignore[attr-defined]
    root._hostbus_logging_initialized = True  # type: ignore[attr-defined]

    logging.getLogger("asyncio").setLevel(logging.WARNING)

    logging.getLogger(__name__).debug(
        "Logging initialized",
        extra={
            "environment": LOGGER_CONFIG.environment,
            "log_level": logging.getLevelName(LOGGER_CONFIG.log_level),
            "json": LOGGER_CONFIG.use_json,
            "log_to_file": LOGGER_CONFIG.log_to_file,
        },
    )


def shutdown_logging() -> None:
    """Flush the queue, stop the listener and detach the root handler."""
    global _queue_listener, _log_queue

    root = logging.getLogger()
    if not getattr(root, "_hostbus_logging_initialized", False):
        return

    if _queue_listener is not None:
        _queue_listener.stop()
        _queue_listener = None

    queue_handler = getattr(root, "_hostbus_queue_handler", None)
    if queue_handler is not None:
        root.removeHandler(queue_handler)
        queue_handler.close()
        root._hostbus_queue_handler = None  # type: ignore[attr-defined]

    root._hostbus_logging_initialized = False  # type: ignore[attr-defined]
    _log_queue = None


def get_logging_health() -> LoggingHealth:
    initialized = bool(getattr(logging.getLogger(), "_hostbus_logging_initialized", False))

    return LoggingHealth(
        initialized=initialized,
        queue_size=_log_queue.qsize() if _log_queue is not None else 0,
        queue_max_size=_log_queue.maxsize if _log_queue is not None else 0,
        records_enqueued=_logging_metrics.records_enqueued,
        records_dropped=_logging_metrics.records_dropped,
        handler_errors=_logging_metrics.handler_errors,
    )


# ============================================================================
# Public API
# ============================================================================


def get_logger(name: str) -> Logger:
    return logging.getLogger(name)


class LogContext:
    """
    Scoped logging context, usable with `with` and `async with`.

    Replaces the active context on entry and restores the previous one on
    exit. Callers that want to extend the current context read it first with
    `get_log_context()`.

    Examples
    --------
    >>> async with LogContext(component="staged_loader", operation="run_phase", phase="bootstrap"):
    ...     logger.info("Phase modules loaded")
    """

    def __init__(
        self,
        component: Optional[str] = None,
        operation: Optional[str] = None,
        correlation_id: Optional[str] = None,
        **extra: Any,
    ) -> None:
        self.context: Dict[str, Any] = {
            "component": component,
            "operation": operation or "N/A",
            "correlation_id": correlation_id or uuid.uuid4().hex[:8],
            **extra,
        }
        self._token: Optional[Token[Dict[str, Any]]] = None

    def __enter__(self) -> "LogContext":
        self._token = _log_context.set(self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._token is not None:
            _log_context.reset(self._token)
            self._token = None

    async def __aenter__(self) -> "LogContext":
        return self.__enter__()

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.__exit__(exc_type, exc_val, exc_tb)


def set_log_context(**fields: Any) -> None:
    """Merge `fields` into the current context until it is cleared or reset."""
    current = dict(_log_context.get())
    current.update({key: value for key, value in fields.items() if value is not None})
    _log_context.set(current)


def get_log_context() -> Dict[str, Any]:
    return dict(_log_context.get())


def clear_log_context() -> None:
    _log_context.set({})


setup_logging()

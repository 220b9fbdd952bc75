"""
Clicker Logging Subsystem

Purpose
-------
Async-safe structured logging for the upgrade engine:

- Structured JSON logs for aggregation and analysis.
- LogContext-based propagation of request context via ContextVars.
- Correlation IDs for end-to-end traceability across the remote game session
  service (forwarded as the X-Correlation-ID header).
- QueueHandler + QueueListener so request tasks never block on handler I/O.
- Console output (JSON in production, colored text in development) plus a
  daily rotating JSON file as local backup.

Responsibilities
----------------
- Initialize and configure the global logging stack once.
- Enrich all records with player_id, upgrade_id, correlation_id, operation
  and component fields.
- Provide `get_logger()`, `LogContext`, `set_log_context()`,
  `get_log_context()` and `clear_log_context()`.

Dependencies
------------
- clicker.core.config.config.Config
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
from logging.handlers import QueueHandler, QueueListener, TimedRotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional

from clicker.core.config.config import Config


# ============================================================================
# Request Context (ContextVars)
# ============================================================================

_request_context: ContextVar[Dict[str, Any]] = ContextVar(
    "request_context",
    default={},
)

_CONTEXT_FIELDS = ("player_id", "upgrade_id", "operation", "transaction_id")


# ============================================================================
# Config
# ============================================================================


@dataclass(frozen=True, slots=True)
class LoggerConfig:
    CONSOLE_FORMAT: str = "%(asctime)s | %(levelname)-8s | %(name)-36s | %(message)s"
    DATE_FORMAT: str = "%Y-%m-%d %H:%M:%S"
    DAILY_BASENAME: str = "clicker_daily.json.log"
    DAILY_BACKUP_COUNT: int = 1
    QUEUE_MAX_SIZE: int = 10_000

    @property
    def is_production(self) -> bool:
        return Config.is_production()

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
        return Config.LOG_COLORS and sys.stdout.isatty()


LOGGER_CONFIG = LoggerConfig()


@dataclass(slots=True)
class LoggingMetrics:
    records_enqueued: int = 0
    records_dropped: int = 0
    listener_errors: int = 0


_logging_metrics = LoggingMetrics()
_log_queue: Optional["queue.Queue[logging.LogRecord]"] = None
_queue_listener: Optional[QueueListener] = None


# ============================================================================
# Filters & Formatters
# ============================================================================


class ContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        context = _request_context.get()

        for field in _CONTEXT_FIELDS:
            if not hasattr(record, field):
                setattr(record, field, context.get(field, "N/A"))

        record.correlation_id = context.get("correlation_id", "N/A")
        record.component = context.get("component") or record.name.rsplit(".", 1)[-1]
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

    def format(self, record: logging.LogRecord) -> str:
        original = record.levelname
        prefix = self.COLORS.get(original)
        if prefix:
            record.levelname = f"{prefix}{original}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = original


class JSONFormatter(logging.Formatter):
    STANDARD_ATTRS = frozenset(
        logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()
    ) | {"message", "asctime", "taskName"}

    CONTEXT_ATTRS = frozenset(_CONTEXT_FIELDS) | {"correlation_id", "component"}

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "function": record.funcName,
            "line": record.lineno,
        }

        for attr in self.CONTEXT_ATTRS:
            value = getattr(record, attr, None)
            if value not in (None, "N/A"):
                log_data[attr] = str(value)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        extra = {
            key: val
            for key, val in record.__dict__.items()
            if key not in self.STANDARD_ATTRS
            and key not in self.CONTEXT_ATTRS
            and not key.startswith("_")
        }
        if extra:
            log_data["extra"] = extra

        return json.dumps(log_data, ensure_ascii=False, default=str)


# ============================================================================
# Queue Handler & Listener
# ============================================================================


class ClickerQueueHandler(QueueHandler):
    def enqueue(self, record: logging.LogRecord) -> None:
        _logging_metrics.records_enqueued += 1
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            _logging_metrics.records_dropped += 1
            sys.stderr.write("Logging queue full; dropping log record.\n")


class ClickerQueueListener(QueueListener):
    def handleError(self, record: logging.LogRecord) -> None:
        _logging_metrics.listener_errors += 1
        sys.stderr.write("Logging handler error while processing record.\n")


# ============================================================================
# Global Setup
# ============================================================================


def _build_console_handler() -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(LOGGER_CONFIG.log_level)

    if LOGGER_CONFIG.use_json:
        handler.setFormatter(JSONFormatter())
    elif LOGGER_CONFIG.use_colors:
        handler.setFormatter(
            ColoredFormatter(LOGGER_CONFIG.CONSOLE_FORMAT, LOGGER_CONFIG.DATE_FORMAT)
        )
    else:
        handler.setFormatter(
            logging.Formatter(LOGGER_CONFIG.CONSOLE_FORMAT, LOGGER_CONFIG.DATE_FORMAT)
        )
    return handler


def _build_daily_file_handler() -> logging.Handler:
    LOGGER_CONFIG.logs_dir.mkdir(parents=True, exist_ok=True)
    handler = TimedRotatingFileHandler(
        filename=str(LOGGER_CONFIG.logs_dir / LOGGER_CONFIG.DAILY_BASENAME),
        when="midnight",
        backupCount=LOGGER_CONFIG.DAILY_BACKUP_COUNT,
        encoding="utf-8",
        utc=True,
    )
    handler.setLevel(LOGGER_CONFIG.log_level)
    handler.setFormatter(JSONFormatter())
    return handler


def setup_logging() -> None:
    global _queue_listener, _log_queue

    root = logging.getLogger()
    if getattr(root, "_clicker_logging_initialized", False):
        return

    root.setLevel(LOGGER_CONFIG.log_level)

    handlers = [_build_console_handler()]
    if not Config.is_testing():
        handlers.append(_build_daily_file_handler())

    _log_queue = queue.Queue(LOGGER_CONFIG.QUEUE_MAX_SIZE)
    _queue_listener = ClickerQueueListener(
        _log_queue, *handlers, respect_handler_level=True
    )
    _queue_listener.start()

    queue_handler = ClickerQueueHandler(_log_queue)
    queue_handler.setLevel(LOGGER_CONFIG.log_level)
    queue_handler.addFilter(ContextFilter())
    root.addHandler(queue_handler)

    for noisy in ("asyncio", "aiohttp.access", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    setattr(root, "_clicker_logging_initialized", True)

    logging.getLogger(__name__).info(
        "Logging initialized",
        extra={
            "environment": Config.ENVIRONMENT,
            "log_level": logging.getLevelName(LOGGER_CONFIG.log_level),
            "json": LOGGER_CONFIG.use_json,
        },
    )


def shutdown_logging() -> None:
    global _queue_listener, _log_queue

    root = logging.getLogger()
    if not getattr(root, "_clicker_logging_initialized", False):
        return

    if _queue_listener is not None:
        _queue_listener.stop()
        for handler in _queue_listener.handlers:
            handler.flush()
            handler.close()
        _queue_listener = None

    for handler in list(root.handlers):
        if isinstance(handler, ClickerQueueHandler):
            root.removeHandler(handler)

    setattr(root, "_clicker_logging_initialized", False)
    _log_queue = None


# ============================================================================
# Public API
# ============================================================================


def get_logger(name: str) -> Logger:
    return logging.getLogger(name)


def new_correlation_id() -> str:
    return uuid.uuid4().hex[:12]


class LogContext:
    """
    Scoped logging context, usable as a sync or async context manager.

    >>> async with LogContext(player_id=pid, operation="purchase_upgrade"):
    ...     await service.purchase_upgrade(...)
    """

    def __init__(
        self,
        player_id: Optional[Any] = None,
        upgrade_id: Optional[str] = None,
        operation: Optional[str] = None,
        correlation_id: Optional[str] = None,
        **extra: Any,
    ) -> None:
        inherited = _request_context.get()
        self.context: Dict[str, Any] = {
            **inherited,
            "correlation_id": correlation_id
            or inherited.get("correlation_id")
            or new_correlation_id(),
            **extra,
        }
        if player_id is not None:
            self.context["player_id"] = str(player_id)
        if upgrade_id is not None:
            self.context["upgrade_id"] = upgrade_id
        if operation is not None:
            self.context["operation"] = operation

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


def set_log_context(**fields: Any) -> None:
    current = dict(_request_context.get())
    current.update({k: v for k, v in fields.items() if v is not None})
    _request_context.set(current)


def get_log_context() -> Dict[str, Any]:
    return dict(_request_context.get())


def clear_log_context() -> None:
    _request_context.set({})


# Initialize logging automatically
setup_logging()

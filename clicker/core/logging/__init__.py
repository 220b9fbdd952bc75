"""
Structured logging subsystem: JSON/colored output through a queue listener
and ContextVar-based request context (`LogContext`).
"""

from clicker.core.logging.logger import (
    LogContext,
    LoggerConfig,
    clear_log_context,
    get_log_context,
    get_logger,
    new_correlation_id,
    set_log_context,
    setup_logging,
    shutdown_logging,
)

__all__ = [
    "setup_logging",
    "shutdown_logging",
    "get_logger",
    "LogContext",
    "set_log_context",
    "get_log_context",
    "clear_log_context",
    "new_correlation_id",
    "LoggerConfig",
]

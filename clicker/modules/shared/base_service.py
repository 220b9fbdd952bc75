"""
Base Service Foundation

Purpose
-------
Foundation class for domain services. Services implement business logic,
own their transaction boundaries through `DatabaseService`, enforce rules and
emit domain events.

This base class provides:
- Structured logging with operation context
- Severity-aware error logging
- Event emission helpers

Usage
-----
    class UpgradeService(BaseService):
        def __init__(self, catalog, game_core, config_manager, event_bus, logger):
            super().__init__(config_manager, event_bus, logger)
            self.catalog = catalog
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, Optional

from clicker.core.exceptions import ErrorSeverity, is_transient_error
from clicker.domain.models.base import DomainEvent
from clicker.modules.shared.exceptions import get_error_severity

if TYPE_CHECKING:
    from logging import Logger

    from clicker.core.config.manager import ConfigManager
    from clicker.core.event.bus import EventBus

_SEVERITY_LEVELS = {
    ErrorSeverity.DEBUG: logging.DEBUG,
    ErrorSeverity.INFO: logging.INFO,
    ErrorSeverity.WARNING: logging.WARNING,
    ErrorSeverity.ERROR: logging.ERROR,
    ErrorSeverity.CRITICAL: logging.CRITICAL,
}


class BaseService:
    """
    Base class for all domain services.

    Args:
        config_manager: Tunable configuration source (`get(key, default)`)
        event_bus: Event bus for cross-module communication
        logger: Structured logger instance
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
    ) -> None:
        self._config = config_manager
        self._events = event_bus
        self.log = logger

    @property
    def event_bus(self) -> EventBus:
        return self._events

    async def emit_event(
        self,
        event_type: str,
        data: Dict[str, Any],
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Publish a domain event.

        Listener failures are isolated by the bus; a failure of the bus itself is
        logged here and never propagates into the calling operation.
        """
        event = DomainEvent(event_type, {**data, **(context or {})})
        try:
            await self._events.publish(event.event_name, event.to_payload())
        except Exception as exc:
            self.log_error("emit_event", exc, event_type=event_type)

    def log_operation(self, operation: str, **context: Any) -> None:
        self.log.info(
            f"Service operation: {operation}",
            extra={"operation": operation, **context},
        )

    def log_error(self, operation: str, error: Exception, **context: Any) -> None:
        """Log at the level implied by the error's severity (ERROR for foreign exceptions)."""
        severity = get_error_severity(error)
        self.log.log(
            _SEVERITY_LEVELS[severity],
            f"Service error during {operation}: {error}",
            extra={
                "operation": operation,
                "error_type": type(error).__name__,
                "error_message": str(error),
                "severity": severity.value,
                "retryable": is_transient_error(error),
                **context,
            },
        )

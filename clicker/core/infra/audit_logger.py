"""
Audit trail logger for upgrade transactions.

Purpose
-------
Shape purchase, compensation and reset records into one canonical audit
payload, validate them with `TransactionValidator`, and publish them as
`audit.transaction.logged` on the EventBus. A separate consumer (outside this
package) persists them.

Design Decisions
----------------
- Write-only: never touches the database.
- Validation failures raise `ValidationError` to the caller.
- Publish failures are logged and counted but never raised: an audit outage
  must not fail a purchase whose money already moved.
- Amounts are carried as decimal strings.

Usage
-----
    await AuditLogger.log_purchase(
        player_id=player_id,
        upgrade_id="click_power_1",
        levels=3,
        old_level=0,
        new_level=3,
        cost=Decimal("34.725"),
        transaction_id=tx_id,
        bus=self.event_bus,
    )
"""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional

from clicker.core.event import EventBus, EventPayload, event_bus
from clicker.core.logging.logger import get_logger
from clicker.core.validation import TransactionValidator
from clicker.modules.shared.exceptions import ValidationError

logger = get_logger(__name__)


@dataclass
class AuditMetrics:
    events_emitted: int = 0
    validation_errors: int = 0
    publish_errors: int = 0
    total_log_time_ms: float = 0.0


_metrics = AuditMetrics()


class AuditLogger:
    """Publishes validated audit events; see module docstring."""

    EVENT_NAME: str = "audit.transaction.logged"

    @classmethod
    async def log(
        cls,
        *,
        player_id: Any,
        transaction_type: str,
        details: Mapping[str, Any],
        context: Optional[str] = None,
        transaction_id: Optional[str] = None,
        bus: Optional[EventBus] = None,
    ) -> None:
        """
        Validate and publish one audit event.

        Raises:
            ValidationError: payload failed validation
        """
        start_time = time.perf_counter()
        target_bus = bus or event_bus

        try:
            sanitized = TransactionValidator.validate_transaction(
                transaction_type=transaction_type,
                details=dict(details),
            )
            validated_context = TransactionValidator.validate_context(context)
        except ValidationError:
            _metrics.validation_errors += 1
            logger.error(
                "Audit validation failed",
                extra={"player_id": str(player_id), "transaction_type": transaction_type},
            )
            raise

        payload: EventPayload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "player_id": str(player_id),
            "transaction_type": transaction_type,
            "transaction_id": transaction_id,
            "details": sanitized,
            "context": validated_context,
        }

        try:
            await target_bus.publish(cls.EVENT_NAME, payload)
        except Exception as exc:
            _metrics.publish_errors += 1
            logger.error(
                "Failed to publish audit event",
                extra={
                    "player_id": str(player_id),
                    "transaction_type": transaction_type,
                    "error_type": type(exc).__name__,
                },
                exc_info=True,
            )
            return

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        _metrics.events_emitted += 1
        _metrics.total_log_time_ms += elapsed_ms
        logger.info(
            "Audit event emitted",
            extra={
                "transaction_type": transaction_type,
                "audit_context": validated_context,
                "log_time_ms": round(elapsed_ms, 3),
            },
        )

    # =========================================================================
    # CONVENIENCE HELPERS
    # =========================================================================

    @classmethod
    async def log_purchase(
        cls,
        *,
        player_id: Any,
        upgrade_id: str,
        levels: int,
        old_level: int,
        new_level: int,
        cost: Decimal,
        original_score: Optional[Decimal] = None,
        risk_score: Optional[float] = None,
        flagged: bool = False,
        transaction_id: Optional[str] = None,
        bus: Optional[EventBus] = None,
    ) -> None:
        details: Dict[str, Any] = {
            "upgrade_id": upgrade_id,
            "levels": levels,
            "old_level": old_level,
            "new_level": new_level,
            "cost": str(cost),
            "flagged": flagged,
        }
        if original_score is not None:
            details["original_score"] = str(original_score)
            details["final_score"] = str(original_score - cost)
        if risk_score is not None:
            details["risk_score"] = risk_score

        await cls.log(
            player_id=player_id,
            transaction_type="upgrade_purchase",
            details=details,
            context="purchase_upgrade",
            transaction_id=transaction_id,
            bus=bus,
        )

    @classmethod
    async def log_compensation(
        cls,
        *,
        player_id: Any,
        upgrade_id: str,
        amount: Decimal,
        reason: str,
        outcome: str,
        levels: int,
        compensation_recorded: bool,
        transaction_id: Optional[str] = None,
        bus: Optional[EventBus] = None,
    ) -> None:
        await cls.log(
            player_id=player_id,
            transaction_type="upgrade_compensation",
            details={
                "upgrade_id": upgrade_id,
                "amount": str(amount),
                "reason": reason,
                "outcome": outcome,
                "levels": levels,
                "compensation_recorded": compensation_recorded,
            },
            context="purchase_saga",
            transaction_id=transaction_id,
            bus=bus,
        )

    @classmethod
    def get_metrics(cls) -> Dict[str, Any]:
        return asdict(_metrics)

    @classmethod
    def reset_metrics(cls) -> None:
        global _metrics
        _metrics = AuditMetrics()

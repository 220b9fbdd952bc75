"""
Domain model base types.

- `DomainEvent`: a named, timestamped state change published on the EventBus.
- `DomainValidationError`: raised when a domain value violates its invariants
  at construction time (malformed catalog data, negative costs).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict


class DomainValidationError(ValueError):
    """A domain value object was constructed with invalid data."""


@dataclass
class DomainEvent:
    """
    Represents a domain event that has occurred.

    Attributes
    ----------
    event_name : str
        Event name (e.g., "upgrade.purchased")
    payload : Dict[str, Any]
        JSON-serializable event data
    occurred_at : datetime
        When the event occurred (UTC)
    """

    event_name: str
    payload: Dict[str, Any]
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_payload(self) -> Dict[str, Any]:
        return {**self.payload, "occurred_at": self.occurred_at.isoformat()}

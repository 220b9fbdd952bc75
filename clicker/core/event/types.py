"""
Core event types: payload alias, listener priorities, listener records.

Priority Levels
---------------
- CRITICAL (0): sequential, awaited, timeout-protected.
- HIGH (10): sequential, awaited, timeout-protected.
- NORMAL (50): concurrent, awaited.
- LOW (100): fire-and-forget.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Union

EventPayload = Dict[str, Any]

CallbackType = Union[
    Callable[[EventPayload], Awaitable[Any]],
    Callable[[EventPayload], Any],
]


class ListenerPriority(Enum):
    CRITICAL = 0
    HIGH = 10
    NORMAL = 50
    LOW = 100


@dataclass(slots=True)
class EventListener:
    event_name: str
    callback: CallbackType
    priority: ListenerPriority
    identifier: str
    once: bool = False

    @classmethod
    def from_callback(
        cls,
        event_name: str,
        callback: CallbackType,
        priority: ListenerPriority = ListenerPriority.NORMAL,
        identifier: Optional[str] = None,
        once: bool = False,
    ) -> "EventListener":
        name = getattr(callback, "__qualname__", None) or type(callback).__name__
        return cls(
            event_name=event_name,
            callback=callback,
            priority=priority,
            identifier=identifier or f"{name}:{uuid.uuid4().hex[:8]}",
            once=once,
        )

"""
In-process EventBus.

Purpose
-------
Decouple the purchase pipeline from reactions to it (notifications, analytics,
audit fan-out). Services publish named events such as `upgrade.purchased`;
listeners subscribe by exact name or wildcard pattern (`upgrade.*`).

Responsibilities
----------------
- Register and remove listeners with priorities
- Dispatch with tiered concurrency by priority
- Isolate listener failures: one failing listener never fails the publisher

Non-Responsibilities
--------------------
- Cross-process delivery or persistence of events
"""

from __future__ import annotations

import asyncio
import inspect
from collections import defaultdict
from fnmatch import fnmatchcase
from typing import Any, Dict, List, Optional, Set

from clicker.core.event.types import (
    CallbackType,
    EventListener,
    EventPayload,
    ListenerPriority,
)
from clicker.core.logging.logger import get_logger

logger = get_logger(__name__)

_SEQUENTIAL = (ListenerPriority.CRITICAL, ListenerPriority.HIGH)


class EventBus:
    """
    Priority-aware publish/subscribe bus.

    Examples
    --------
    >>> bus = EventBus()
    >>> bus.subscribe("upgrade.purchased", on_purchase, priority=ListenerPriority.HIGH)
    >>> await bus.publish("upgrade.purchased", {"player_id": "..."})
    """

    def __init__(self, listener_timeout_seconds: float = 5.0) -> None:
        self._listeners: Dict[str, List[EventListener]] = defaultdict(list)
        self._listener_timeout = listener_timeout_seconds
        self._background_tasks: Set[asyncio.Task[Any]] = set()
        self.published_count = 0
        self.listener_errors = 0

    # ------------------------------------------------------------------ #
    # Subscription API
    # ------------------------------------------------------------------ #

    @staticmethod
    def _validate_callback_signature(callback: CallbackType) -> None:
        try:
            sig = inspect.signature(callback)
        except (TypeError, ValueError):
            return

        if len(sig.parameters) != 1:
            name = getattr(callback, "__qualname__", repr(callback))
            raise ValueError(
                f"Event listener must accept exactly 1 parameter (EventPayload), "
                f"got {len(sig.parameters)} for '{name}'"
            )

    def subscribe(
        self,
        event_name: str,
        callback: CallbackType,
        *,
        priority: ListenerPriority = ListenerPriority.NORMAL,
        identifier: Optional[str] = None,
        once: bool = False,
    ) -> str:
        """Register a listener and return its identifier."""
        self._validate_callback_signature(callback)
        listener = EventListener.from_callback(
            event_name, callback, priority=priority, identifier=identifier, once=once
        )
        bucket = self._listeners[event_name]
        bucket.append(listener)
        bucket.sort(key=lambda item: item.priority.value)

        logger.debug(
            "EventBus: subscribed listener",
            extra={
                "event_name": event_name,
                "listener_id": listener.identifier,
                "priority": priority.name,
            },
        )
        return listener.identifier

    def unsubscribe(self, event_name: str, identifier: str) -> bool:
        bucket = self._listeners.get(event_name, [])
        remaining = [item for item in bucket if item.identifier != identifier]
        removed = len(remaining) != len(bucket)
        self._listeners[event_name] = remaining
        return removed

    def clear(self) -> None:
        self._listeners.clear()

    def get_listener_count(self, event_name: Optional[str] = None) -> int:
        if event_name is None:
            return sum(len(bucket) for bucket in self._listeners.values())
        return len(self._matching(event_name))

    # ------------------------------------------------------------------ #
    # Publish API
    # ------------------------------------------------------------------ #

    def _matching(self, event_name: str) -> List[EventListener]:
        matched: List[EventListener] = []
        for pattern, bucket in self._listeners.items():
            if pattern == event_name or fnmatchcase(event_name, pattern):
                matched.extend(bucket)
        matched.sort(key=lambda item: item.priority.value)
        return matched

    async def _invoke(self, listener: EventListener, data: EventPayload) -> Any:
        try:
            result = listener.callback(data)
            if inspect.isawaitable(result):
                if listener.priority in _SEQUENTIAL:
                    return await asyncio.wait_for(result, self._listener_timeout)
                return await result
            return result
        except Exception as exc:
            self.listener_errors += 1
            logger.error(
                "EventBus: listener failed",
                extra={
                    "event_name": listener.event_name,
                    "listener_id": listener.identifier,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
                exc_info=True,
            )
            return None

    async def publish(self, event_name: str, data: EventPayload) -> List[Any]:
        """
        Dispatch an event.

        CRITICAL and HIGH listeners run sequentially under a timeout, NORMAL
        listeners run concurrently, LOW listeners are scheduled in background.
        Returns results from awaited listeners (failed listeners yield None).
        """
        self.published_count += 1
        listeners = self._matching(event_name)

        for listener in [item for item in listeners if item.once]:
            self.unsubscribe(listener.event_name, listener.identifier)

        results: List[Any] = []
        for listener in [item for item in listeners if item.priority in _SEQUENTIAL]:
            results.append(await self._invoke(listener, data))

        normal = [item for item in listeners if item.priority is ListenerPriority.NORMAL]
        if normal:
            results.extend(
                await asyncio.gather(*(self._invoke(item, data) for item in normal))
            )

        for listener in [item for item in listeners if item.priority is ListenerPriority.LOW]:
            task = asyncio.create_task(self._invoke(listener, data))
            self._background_tasks.add(task)
            task.add_done_callback(self._background_tasks.discard)

        logger.debug(
            "EventBus: published event",
            extra={"event_name": event_name, "listener_count": len(listeners)},
        )
        return results

    async def drain(self) -> None:
        """Wait for outstanding fire-and-forget listeners."""
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks))

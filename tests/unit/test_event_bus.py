"""
Unit tests for the in-process EventBus.
"""

import asyncio

import pytest

from clicker.core.event import EventBus, ListenerPriority


@pytest.mark.unit
class TestSubscription:
    def test_listener_must_take_one_argument(self, event_bus):
        with pytest.raises(ValueError, match="exactly 1 parameter"):
            event_bus.subscribe("upgrade.purchased", lambda a, b: None)

    def test_unsubscribe(self, event_bus):
        identifier = event_bus.subscribe("upgrade.purchased", lambda data: None)

        assert event_bus.get_listener_count("upgrade.purchased") == 1
        assert event_bus.unsubscribe("upgrade.purchased", identifier)
        assert event_bus.get_listener_count("upgrade.purchased") == 0
        assert not event_bus.unsubscribe("upgrade.purchased", identifier)

    def test_wildcard_counts_toward_matching_events(self, event_bus):
        event_bus.subscribe("upgrade.*", lambda data: None)
        assert event_bus.get_listener_count("upgrade.effects_updated") == 1
        assert event_bus.get_listener_count("audit.transaction.logged") == 0


@pytest.mark.unit
class TestPublish:
    async def test_priority_order(self, event_bus):
        calls = []
        event_bus.subscribe("e", lambda d: calls.append("normal"))
        event_bus.subscribe("e", lambda d: calls.append("critical"), priority=ListenerPriority.CRITICAL)
        event_bus.subscribe("e", lambda d: calls.append("high"), priority=ListenerPriority.HIGH)

        await event_bus.publish("e", {})

        assert calls == ["critical", "high", "normal"]

    async def test_async_listeners_receive_payload(self, event_bus):
        received = []

        async def listener(data):
            received.append(data["upgrade_id"])
            return "ok"

        event_bus.subscribe("upgrade.*", listener)

        results = await event_bus.publish("upgrade.purchased", {"upgrade_id": "click_power_1"})

        assert received == ["click_power_1"]
        assert results == ["ok"]

    async def test_failing_listener_is_isolated(self, event_bus):
        received = []

        def broken(data):
            raise RuntimeError("listener bug")

        event_bus.subscribe("e", broken)
        event_bus.subscribe("e", lambda d: received.append(d))

        results = await event_bus.publish("e", {"x": 1})

        assert received == [{"x": 1}]
        assert None in results
        assert event_bus.listener_errors == 1

    async def test_once_listener_fires_once(self, event_bus):
        calls = []
        event_bus.subscribe("e", lambda d: calls.append(d), once=True)

        await event_bus.publish("e", {})
        await event_bus.publish("e", {})

        assert len(calls) == 1

    async def test_low_priority_runs_in_background(self, event_bus):
        done = asyncio.Event()

        async def slow(data):
            await asyncio.sleep(0)
            done.set()

        event_bus.subscribe("e", slow, priority=ListenerPriority.LOW)

        results = await event_bus.publish("e", {})
        await event_bus.drain()

        assert results == []
        assert done.is_set()

    async def test_high_priority_listener_times_out(self):
        bus = EventBus(listener_timeout_seconds=0.01)

        async def hang(data):
            await asyncio.sleep(1)

        bus.subscribe("e", hang, priority=ListenerPriority.HIGH)

        assert await bus.publish("e", {}) == [None]
        assert bus.listener_errors == 1

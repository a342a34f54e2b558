"""Tests for listener registration and fan-out."""

from __future__ import annotations

import asyncio
import logging

import pytest

from drone_link.events import ListenerRegistry


class TestListenerRegistry:
    def test_publish_reaches_every_listener_in_order(self) -> None:
        registry: ListenerRegistry[int] = ListenerRegistry("numbers")
        seen: list[tuple[str, int]] = []

        registry.subscribe(lambda value: seen.append(("first", value)))
        registry.subscribe(lambda value: seen.append(("second", value)))
        registry.publish(7)

        assert seen == [("first", 7), ("second", 7)]
        assert len(registry) == 2

    def test_unsubscribe_is_idempotent(self) -> None:
        registry: ListenerRegistry[int] = ListenerRegistry("numbers")
        seen: list[int] = []

        subscription = registry.subscribe(seen.append)
        subscription.unsubscribe()
        subscription.unsubscribe()
        registry.publish(1)

        assert seen == []
        assert not subscription.active
        assert len(registry) == 0

    def test_subscription_context_manager(self) -> None:
        registry: ListenerRegistry[int] = ListenerRegistry("numbers")
        seen: list[int] = []

        with registry.subscribe(seen.append):
            registry.publish(1)
        registry.publish(2)

        assert seen == [1]

    def test_same_callable_registered_twice_removes_one(self) -> None:
        registry: ListenerRegistry[int] = ListenerRegistry("numbers")
        seen: list[int] = []

        first = registry.subscribe(seen.append)
        registry.subscribe(seen.append)
        first.unsubscribe()
        registry.publish(3)

        assert seen == [3]

    def test_failing_listener_does_not_stop_others(self, caplog) -> None:
        registry: ListenerRegistry[int] = ListenerRegistry("numbers")
        seen: list[int] = []

        def broken(value: int) -> None:
            raise ValueError("broken listener")

        registry.subscribe(broken)
        registry.subscribe(seen.append)

        with caplog.at_level(logging.ERROR):
            registry.publish(5)

        assert seen == [5]
        assert "numbers listener failed" in caplog.text

    def test_listener_may_unsubscribe_during_publish(self) -> None:
        registry: ListenerRegistry[int] = ListenerRegistry("numbers")
        seen: list[int] = []
        subscriptions = []

        def once(value: int) -> None:
            seen.append(value)
            subscriptions[0].unsubscribe()

        subscriptions.append(registry.subscribe(once))
        registry.publish(1)
        registry.publish(2)

        assert seen == [1]

    def test_clear_drops_all_listeners(self) -> None:
        registry: ListenerRegistry[int] = ListenerRegistry("numbers")
        seen: list[int] = []
        registry.subscribe(seen.append)

        registry.clear()
        registry.publish(9)

        assert seen == []


@pytest.mark.asyncio
async def test_async_listener_is_scheduled_and_drained() -> None:
    registry: ListenerRegistry[str] = ListenerRegistry("async")
    seen: list[str] = []

    async def listener(value: str) -> None:
        await asyncio.sleep(0.01)
        seen.append(value)

    registry.subscribe(listener)
    registry.publish("hello")
    assert seen == []

    await registry.drain()

    assert seen == ["hello"]


@pytest.mark.asyncio
async def test_async_listener_failure_is_logged(caplog) -> None:
    registry: ListenerRegistry[str] = ListenerRegistry("async")

    async def listener(value: str) -> None:
        raise RuntimeError("async failure")

    registry.subscribe(listener)
    with caplog.at_level(logging.ERROR):
        registry.publish("x")
        await registry.drain()

    assert "async listener failed" in caplog.text

"""Listener registration with explicit, idempotent unsubscribe.

Listeners may be plain callables or coroutine functions. Coroutines are
scheduled on the running loop and tracked so that shutdown can wait for them
with :meth:`ListenerRegistry.drain`.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Generic, List, Set, TypeVar

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

Listener = Callable[[T], Awaitable[None] | None]


class Subscription(Generic[T]):
    """Handle returned by :meth:`ListenerRegistry.subscribe`."""

    def __init__(self, registry: "ListenerRegistry[T]", listener: Listener) -> None:
        self._registry = registry
        self._listener = listener
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        self._registry._remove(self._listener)

    def __enter__(self) -> "Subscription[T]":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.unsubscribe()


class ListenerRegistry(Generic[T]):
    """Fan a value out to every registered listener."""

    def __init__(self, name: str) -> None:
        self._name = name
        self._listeners: List[Listener] = []
        self._tasks: Set[asyncio.Task[None]] = set()

    def __len__(self) -> int:
        return len(self._listeners)

    def subscribe(self, listener: Listener) -> Subscription[T]:
        self._listeners.append(listener)
        return Subscription(self, listener)

    def publish(self, value: T) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(value)
            except Exception:
                LOGGER.exception("%s listener failed", self._name)
                continue

            if asyncio.iscoroutine(result):
                task = asyncio.ensure_future(result)
                self._tasks.add(task)
                task.add_done_callback(self._task_done)

    def clear(self) -> None:
        self._listeners.clear()

    async def drain(self) -> None:
        """Wait for listener coroutines scheduled by :meth:`publish`."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _remove(self, listener: Listener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def _task_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.error(
                "%s listener failed", self._name, exc_info=(type(exc), exc, exc.__traceback__)
            )

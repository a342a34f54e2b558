"""Periodic battery/flight-time polling.

Design notes:
- One cycle issues ``battery?`` then ``time?`` sequentially through the
  command transactor, each with its own timeout.
- Values are taken from the transactor's response stream, so a user-issued
  ``battery?`` refreshes the sample exactly like a scheduled poll.
- A failed query leaves the previous value in place.
- ``stop()`` only prevents the next cycle; a cycle already running finishes.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from .commands import CommandResponse, CommandTransactor
from .constants import DEFAULT_TELEMETRY_INTERVAL_SECONDS
from .errors import DroneLinkError
from .events import ListenerRegistry

LOGGER = logging.getLogger(__name__)

BATTERY_QUERY = "battery?"
FLIGHT_TIME_QUERY = "time?"
POLL_COMMANDS = (BATTERY_QUERY, FLIGHT_TIME_QUERY)


@dataclass(frozen=True, slots=True)
class TelemetrySample:
    battery_percent: Optional[int] = None
    flight_time_seconds: Optional[int] = None
    observed_at: Optional[datetime] = None

    def as_dict(self) -> Dict[str, object]:
        return {
            "batteryPercent": self.battery_percent,
            "flightTimeSeconds": self.flight_time_seconds,
            "observedAt": (
                self.observed_at.isoformat(timespec="seconds")
                if self.observed_at is not None
                else None
            ),
        }


class TelemetryMonitor:
    """Polls the drone on a fixed cadence and publishes merged samples."""

    def __init__(
        self,
        transactor: CommandTransactor,
        *,
        interval: float = DEFAULT_TELEMETRY_INTERVAL_SECONDS,
        command_timeout: Optional[float] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._transactor = transactor
        self._interval = max(interval, 0.01)
        self._command_timeout = command_timeout
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self._sample = TelemetrySample()
        self._task: Optional[asyncio.Task[None]] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._poll_count = 0
        self.samples: ListenerRegistry[TelemetrySample] = ListenerRegistry("telemetry")
        self._response_subscription = transactor.responses.subscribe(self.observe)

    @property
    def sample(self) -> TelemetrySample:
        return self._sample

    @property
    def poll_count(self) -> int:
        return self._poll_count

    @property
    def running(self) -> bool:
        return self._stop_event is not None and not self._stop_event.is_set()

    def start(self) -> None:
        """Run one cycle now and then every ``interval`` seconds."""
        if self.running:
            return

        stop_event = asyncio.Event()
        self._stop_event = stop_event
        self._task = asyncio.create_task(self._run(stop_event, self._task))
        LOGGER.info("Telemetry polling started (every %.1fs)", self._interval)

    def stop(self) -> None:
        if self._stop_event is None or self._stop_event.is_set():
            return
        self._stop_event.set()
        LOGGER.info("Telemetry polling stopped")

    async def wait_stopped(self) -> None:
        """Wait for the polling task, including a cycle that was in flight."""
        task = self._task
        if task is not None:
            await task

    def close(self) -> None:
        self.stop()
        self._response_subscription.unsubscribe()
        self.samples.clear()

    async def poll_once(self) -> TelemetrySample:
        for command in POLL_COMMANDS:
            try:
                await self._transactor.send(command, timeout=self._command_timeout)
            except DroneLinkError as exc:
                LOGGER.warning("Telemetry query %r failed: %s", command, exc)
        self._poll_count += 1
        return self._sample

    def observe(self, response: CommandResponse) -> None:
        """Fold a reply to ``battery?``/``time?`` into the current sample."""
        if response.command not in POLL_COMMANDS:
            return

        value = response.value
        if value is None:
            LOGGER.debug("Ignoring non-numeric reply to %r: %r", response.command, response.text)
            return

        if response.command == BATTERY_QUERY:
            if not 0 <= value <= 100:
                LOGGER.warning("Ignoring out-of-range battery level %d", value)
                return
            sample = replace(
                self._sample, battery_percent=value, observed_at=self._clock()
            )
        else:
            if value < 0:
                LOGGER.warning("Ignoring negative flight time %d", value)
                return
            sample = replace(
                self._sample, flight_time_seconds=value, observed_at=self._clock()
            )

        self._sample = sample
        LOGGER.debug(
            "Telemetry battery=%s%% flight_time=%ss",
            sample.battery_percent,
            sample.flight_time_seconds,
        )
        self.samples.publish(sample)

    async def _run(
        self, stop_event: asyncio.Event, previous: Optional[asyncio.Task[None]]
    ) -> None:
        # Cycles never overlap, even across a stop/start.
        if previous is not None and not previous.done():
            await asyncio.wait({previous})

        while True:
            await self.poll_once()

            if stop_event.is_set():
                break

            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self._interval)
                break
            except asyncio.TimeoutError:
                continue

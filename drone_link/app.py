"""Main application entry-point for drone-link."""

from __future__ import annotations

import asyncio
import logging
import socket
from typing import Optional

from .adapters.mqtt import MQTTClient, MQTTConnectionError
from .bridge import TelemetryBridge
from .config import LinkConfig, load_config
from .connection import LinkManager, LinkStatus
from .errors import DroneLinkError
from .events import Subscription
from .health import HealthReporter, HealthServer
from .logging import configure_logging
from .telemetry import TelemetrySample

LOGGER = logging.getLogger(__name__)


class DroneLinkApp:
    """Composition root for a long-running link.

    Owns the :class:`LinkManager` plus the optional health endpoint and MQTT
    bridge. Services start in order (health, MQTT, drone) and stop in
    reverse. A failed drone connection leaves the app running in a degraded
    state so the health endpoint and bridge can report it.
    """

    def __init__(
        self,
        config: Optional[LinkConfig] = None,
        *,
        link: Optional[LinkManager] = None,
        mqtt_client: Optional[MQTTClient] = None,
    ) -> None:
        self._config = config or load_config()
        self._link = link or LinkManager.from_config(self._config)
        self._mqtt_client = mqtt_client
        self._bridge: Optional[TelemetryBridge] = None
        self._health = HealthReporter()
        self._health_server: Optional[HealthServer] = None
        self._subscriptions: list[Subscription] = []
        self._shutdown_event: Optional[asyncio.Event] = None

    @property
    def link(self) -> LinkManager:
        return self._link

    @property
    def health(self) -> HealthReporter:
        return self._health

    async def run(self) -> None:
        self._shutdown_event = asyncio.Event()

        LOGGER.info("drone-link starting with config: %s", self._config.path)
        connected = await self._start_services()
        if not connected:
            LOGGER.warning("Drone not connected; running in degraded mode")

        try:
            await self._shutdown_event.wait()
        except asyncio.CancelledError:
            LOGGER.info("drone-link received shutdown signal")
            raise
        finally:
            await self._stop_services()

    def request_shutdown(self) -> None:
        if self._shutdown_event is not None:
            self._shutdown_event.set()

    @classmethod
    def start(cls, config: Optional[LinkConfig] = None) -> None:
        instance = cls(config=config)
        configure_logging(
            instance._config.logging.level,
            log_path=instance._config.logging.path,
            log_network=instance._config.logging.log_network,
            max_bytes=instance._config.logging.max_bytes,
            backup_count=instance._config.logging.backup_count,
        )
        try:
            asyncio.run(instance.run())
        except KeyboardInterrupt:
            LOGGER.info("drone-link received shutdown signal")

    async def _start_services(self) -> bool:
        self._subscriptions = [
            self._link.on_state_change(self._on_link_status),
            self._link.on_telemetry(self._on_telemetry),
        ]
        await self._health.record_link_status(self._link.status)

        await self._start_health_server()
        await self._start_bridge()

        try:
            await self._link.connect()
        except DroneLinkError as exc:
            await self._health.update("link", False, f"connect failed: {exc}")
            return False
        return True

    async def _stop_services(self) -> None:
        LOGGER.info("drone-link stopping")
        await self._link.close()

        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []

        if self._bridge is not None:
            self._bridge.detach()
            self._bridge = None
        if self._mqtt_client is not None:
            await self._mqtt_client.disconnect()

        if self._health_server is not None:
            await self._health_server.stop()
            self._health_server = None

    async def _start_health_server(self) -> None:
        health_config = self._config.health
        if not health_config.enabled:
            return

        server = HealthServer(self._health, health_config.host, health_config.port)
        try:
            await server.start()
        except OSError as exc:
            LOGGER.error("Failed to start health endpoint: %s", exc)
            return
        self._health_server = server

    async def _start_bridge(self) -> None:
        mqtt_config = self._config.mqtt
        if not mqtt_config.enabled and self._mqtt_client is None:
            return

        if self._mqtt_client is None:
            self._mqtt_client = MQTTClient(
                mqtt_config, client_id=f"drone-link-{socket.gethostname()}"
            )

        try:
            await self._mqtt_client.connect()
        except MQTTConnectionError as exc:
            LOGGER.error("MQTT bridge unavailable: %s", exc)
            await self._health.update("mqtt", False, str(exc))
            return

        await self._health.update("mqtt", True)
        self._bridge = TelemetryBridge(
            self._mqtt_client, topic_prefix=mqtt_config.topic_prefix
        )
        self._bridge.attach(self._link)

    async def _on_link_status(self, status: LinkStatus) -> None:
        await self._health.record_link_status(status)

    async def _on_telemetry(self, sample: TelemetrySample) -> None:
        await self._health.record_telemetry(sample)

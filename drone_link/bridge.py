"""Republishes link state and telemetry to MQTT for out-of-process UIs."""

from __future__ import annotations

import json
import logging
from typing import List

from .adapters.mqtt import MQTTClient
from .connection import LinkManager, LinkStatus
from .events import Subscription
from .telemetry import TelemetrySample

LOGGER = logging.getLogger(__name__)


class TelemetryBridge:
    """Forwards :class:`LinkStatus` and :class:`TelemetrySample` as retained JSON.

    Topics are ``<prefix>/state`` and ``<prefix>/telemetry``.
    """

    def __init__(self, client: MQTTClient, *, topic_prefix: str) -> None:
        self._client = client
        self._prefix = topic_prefix.strip("/")
        self._subscriptions: List[Subscription] = []

    @property
    def state_topic(self) -> str:
        return f"{self._prefix}/state"

    @property
    def telemetry_topic(self) -> str:
        return f"{self._prefix}/telemetry"

    def attach(self, link: LinkManager) -> None:
        if self._subscriptions:
            return
        self._subscriptions = [
            link.on_state_change(self.publish_status),
            link.on_telemetry(self.publish_telemetry),
        ]
        self.publish_status(link.status)

    def detach(self) -> None:
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []

    def publish_status(self, status: LinkStatus) -> None:
        self._publish(self.state_topic, status.as_dict())

    def publish_telemetry(self, sample: TelemetrySample) -> None:
        self._publish(self.telemetry_topic, sample.as_dict())

    def _publish(self, topic: str, payload: dict) -> None:
        if not self._client.is_connected():
            LOGGER.debug("MQTT offline; skipping publish to %s", topic)
            return

        body = json.dumps(payload, separators=(",", ":")).encode("utf-8")
        try:
            self._client.publish(topic, body, qos=1, retain=True)
        except RuntimeError as exc:
            LOGGER.warning("Failed to publish to %s: %s", topic, exc)

"""Link manager: the single entry point the UI layer talks to.

The manager composes the command transactor, the telemetry monitor and the
media channel, and owns the connection state machine::

    DISCONNECTED --connect ok--> CONNECTED --disconnect / socket error--> DISCONNECTED

Stream state and the recording session only exist while connected; leaving
CONNECTED forces the stream off and discards any recording in progress.
All state is mutated on the event loop, which serialises every operation.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Dict, Optional

from .adapters.udp import ChannelFactory, DatagramChannel, Endpoint
from .commands import CommandResponse, CommandTransactor
from .config import DroneConfig, LinkConfig, MediaConfig, TelemetryConfig
from .errors import (
    DroneLinkError,
    NotConnectedError,
    ProtocolFailureError,
    StreamDisabledError,
    TransportError,
)
from .events import Listener, ListenerRegistry, Subscription
from .media import MediaChannel
from .telemetry import TelemetryMonitor, TelemetrySample

LOGGER = logging.getLogger(__name__)

CONNECT_COMMAND = "command"
STREAM_ON_COMMAND = "streamon"
STREAM_OFF_COMMAND = "streamoff"
TAKEOFF_COMMAND = "takeoff"
LAND_COMMAND = "land"
EMERGENCY_COMMAND = "emergency"


class ConnectionState(str, Enum):
    """Whether the drone has accepted SDK mode on the command channel."""

    DISCONNECTED = "disconnected"
    CONNECTED = "connected"


class StreamState(str, Enum):
    """Whether the drone has been asked to push video to the media port."""

    OFF = "off"
    ON = "on"


@dataclass(frozen=True, slots=True)
class LinkStatus:
    connection: ConnectionState = ConnectionState.DISCONNECTED
    stream: StreamState = StreamState.OFF
    recording: bool = False
    detail: Optional[str] = None

    @property
    def connected(self) -> bool:
        return self.connection == ConnectionState.CONNECTED

    def same_state(self, other: "LinkStatus") -> bool:
        return (self.connection, self.stream, self.recording) == (
            other.connection,
            other.stream,
            other.recording,
        )

    def as_dict(self) -> Dict[str, object]:
        return {
            "connection": self.connection.value,
            "stream": self.stream.value,
            "recording": self.recording,
            "detail": self.detail,
        }


class LinkManager:
    """Drives one drone over its command and media UDP ports.

    Construct one instance per drone and pass it to whatever needs it; use
    ``async with`` or :meth:`close` to release sockets and listeners.
    """

    def __init__(
        self,
        *,
        drone: Optional[DroneConfig] = None,
        telemetry: Optional[TelemetryConfig] = None,
        media: Optional[MediaConfig] = None,
        channel_factory: Optional[ChannelFactory] = None,
    ) -> None:
        self._drone_config = drone or DroneConfig()
        self._telemetry_config = telemetry or TelemetryConfig()
        self._media_config = media or MediaConfig()
        factory = channel_factory or DatagramChannel.open

        self._transactor = CommandTransactor(
            Endpoint(self._drone_config.host, self._drone_config.command_port),
            local_port=self._drone_config.local_command_port,
            default_timeout=self._drone_config.command_timeout_seconds,
            channel_factory=factory,
            on_transport_error=self._handle_transport_error,
        )
        self._monitor = TelemetryMonitor(
            self._transactor,
            interval=self._telemetry_config.interval_seconds,
        )
        self._media = MediaChannel(
            self._transact,
            host=self._media_config.bind_host,
            port=self._media_config.port,
            capture_timeout=self._media_config.capture_timeout_seconds,
            channel_factory=factory,
            on_recording_aborted=self._handle_recording_aborted,
        )

        self._status = LinkStatus()
        self._connect_lock = asyncio.Lock()
        self._state_listeners: ListenerRegistry[LinkStatus] = ListenerRegistry(
            "link-state"
        )

    @classmethod
    def from_config(cls, config: LinkConfig, **kwargs) -> "LinkManager":
        return cls(
            drone=config.drone,
            telemetry=config.telemetry,
            media=config.media,
            **kwargs,
        )

    async def __aenter__(self) -> "LinkManager":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------
    @property
    def status(self) -> LinkStatus:
        return self._status

    @property
    def connection_state(self) -> ConnectionState:
        return self._status.connection

    @property
    def stream_state(self) -> StreamState:
        return self._status.stream

    @property
    def is_connected(self) -> bool:
        return self._status.connected

    @property
    def is_recording(self) -> bool:
        return self._media.recording

    @property
    def telemetry(self) -> TelemetrySample:
        return self._monitor.sample

    @property
    def monitor(self) -> TelemetryMonitor:
        return self._monitor

    def on_telemetry(self, listener: Listener) -> Subscription[TelemetrySample]:
        return self._monitor.samples.subscribe(listener)

    def on_state_change(self, listener: Listener) -> Subscription[LinkStatus]:
        return self._state_listeners.subscribe(listener)

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------
    async def connect(self) -> None:
        """Enter SDK mode; on failure the link stays disconnected and the error propagates."""
        async with self._connect_lock:
            if self.is_connected:
                LOGGER.debug("Already connected to %s", self._transactor.endpoint)
                return

            LOGGER.info("Connecting to drone at %s", self._transactor.endpoint)
            await self._transactor.open()
            try:
                await self._transactor.send(CONNECT_COMMAND)
            except DroneLinkError as exc:
                LOGGER.error("Failed to connect to drone: %s", exc)
                self._transactor.close()
                raise

            self._update_status(
                connection=ConnectionState.CONNECTED, detail="connected"
            )
            LOGGER.info("Connected to drone at %s", self._transactor.endpoint)

            if self._telemetry_config.enabled:
                self._monitor.start()

    async def disconnect(self) -> None:
        """Drop the link and wait for any in-flight telemetry cycle to end."""
        if self.is_connected or self._transactor.is_open:
            self._teardown("disconnect requested")
            LOGGER.info("Disconnected from drone")
        await self._monitor.wait_stopped()

    async def close(self) -> None:
        """Disconnect and drop every listener registration."""
        await self.disconnect()
        self._monitor.close()
        await self._monitor.wait_stopped()
        self._state_listeners.clear()
        await self._state_listeners.drain()

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------
    async def send_command(
        self, command: str, timeout: Optional[float] = None
    ) -> CommandResponse:
        return await self._transact(command, timeout)

    async def takeoff(self) -> CommandResponse:
        return await self._transact(TAKEOFF_COMMAND)

    async def land(self) -> CommandResponse:
        return await self._transact(LAND_COMMAND)

    async def emergency(self) -> CommandResponse:
        return await self._transact(EMERGENCY_COMMAND)

    async def set_stream(self, enabled: bool) -> None:
        """Turn the video push on or off; any failure leaves the stream off."""
        command = STREAM_ON_COMMAND if enabled else STREAM_OFF_COMMAND
        try:
            response = await self._transact(command)
            if not response.is_ok:
                raise ProtocolFailureError(command, response.text)
        except DroneLinkError as exc:
            LOGGER.error("Failed to %s video stream: %s", "enable" if enabled else "disable", exc)
            self._update_status(stream=StreamState.OFF, detail=f"{command} failed")
            raise

        self._update_status(
            stream=StreamState.ON if enabled else StreamState.OFF, detail=command
        )

    # ------------------------------------------------------------------
    # Media
    # ------------------------------------------------------------------
    async def capture_photo(self, timeout: Optional[float] = None) -> bytes:
        self._require_stream()
        return await self._media.capture_photo(timeout)

    async def start_recording(self) -> None:
        self._require_stream()
        await self._media.start_recording()
        self._update_status(detail="recording started")

    async def stop_recording(self) -> bytes:
        payload = self._media.stop_recording()
        self._update_status(detail="recording stopped")
        return payload

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    async def _transact(
        self,
        command: str,
        timeout: Optional[float] = None,
        *,
        on_reply: Optional[Callable[[str], None]] = None,
    ) -> CommandResponse:
        if not self.is_connected:
            raise NotConnectedError(f"Cannot send {command!r}: drone not connected")
        return await self._transactor.send(command, timeout, on_reply=on_reply)

    def _require_stream(self) -> None:
        if not self.is_connected:
            raise NotConnectedError("Drone not connected")
        if self.stream_state != StreamState.ON:
            raise StreamDisabledError("Video stream not enabled")

    def _handle_transport_error(self, error: TransportError) -> None:
        if not self.is_connected:
            return
        LOGGER.error("Command channel failed, dropping link: %s", error)
        self._teardown(f"transport error: {error}")

    def _handle_recording_aborted(self, error: TransportError) -> None:
        self._update_status(detail=f"recording aborted: {error}")

    def _teardown(self, detail: str) -> None:
        self._monitor.stop()

        discarded = self._media.abort()
        if discarded:
            LOGGER.warning("Recording aborted on disconnect; discarded %d bytes", discarded)

        self._transactor.close()
        self._update_status(
            connection=ConnectionState.DISCONNECTED,
            stream=StreamState.OFF,
            detail=detail,
        )

    def _update_status(
        self,
        *,
        connection: Optional[ConnectionState] = None,
        stream: Optional[StreamState] = None,
        detail: Optional[str] = None,
    ) -> None:
        previous = self._status
        status = replace(
            previous,
            connection=connection or previous.connection,
            stream=stream or previous.stream,
            recording=self._media.recording,
            detail=detail,
        )
        self._status = status

        if status.same_state(previous):
            return

        LOGGER.info(
            "Link state %s/%s%s -> %s/%s%s (%s)",
            previous.connection.value,
            previous.stream.value,
            "/recording" if previous.recording else "",
            status.connection.value,
            status.stream.value,
            "/recording" if status.recording else "",
            detail or "-",
        )
        self._state_listeners.publish(status)

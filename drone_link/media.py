"""Media port handling for snapshots and recordings.

The drone pushes raw stream datagrams to a fixed local port once streaming
is on. This module binds that port lazily for one session at a time: either
a photo capture, which keeps the first datagram that arrives after the
drone acknowledges the snapshot command, or a recording, which appends
every datagram in arrival order until it is stopped. A snapshot is assumed
to fit in one datagram.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from .adapters.udp import Channel, ChannelFactory, DatagramChannel
from .commands import CommandResponse
from .constants import DEFAULT_CAPTURE_TIMEOUT_SECONDS, DEFAULT_MEDIA_PORT
from .errors import (
    AlreadyRecordingError,
    CommandTimeoutError,
    NotConnectedError,
    NotRecordingError,
    SessionConflictError,
    TransportError,
)

LOGGER = logging.getLogger(__name__)

SNAPSHOT_COMMAND = "snapshot"

SendCommand = Callable[..., Awaitable[CommandResponse]]


@dataclass(slots=True)
class CaptureSession:
    future: asyncio.Future[bytes]
    started_at: float
    armed: bool = False
    """Set when the snapshot ack arrives; earlier datagrams are dropped."""


@dataclass(slots=True)
class RecordingSession:
    started_at: datetime
    buffer: bytearray = field(default_factory=bytearray)
    chunks: int = 0
    active: bool = True

    @property
    def size(self) -> int:
        return len(self.buffer)

    def append(self, data: bytes) -> None:
        self.buffer.extend(data)
        self.chunks += 1


class MediaChannel:
    """Owns the media socket and the capture/recording sessions bound to it."""

    def __init__(
        self,
        send_command: SendCommand,
        *,
        host: str = "0.0.0.0",
        port: int = DEFAULT_MEDIA_PORT,
        capture_timeout: float = DEFAULT_CAPTURE_TIMEOUT_SECONDS,
        channel_factory: Optional[ChannelFactory] = None,
        on_recording_aborted: Optional[Callable[[TransportError], None]] = None,
    ) -> None:
        self._send_command = send_command
        self._host = host
        self._port = port
        self._capture_timeout = capture_timeout
        self._channel_factory = channel_factory or DatagramChannel.open
        self._on_recording_aborted = on_recording_aborted

        self._channel: Optional[Channel] = None
        self._capture: Optional[CaptureSession] = None
        self._recording: Optional[RecordingSession] = None

    @property
    def bound(self) -> bool:
        return self._channel is not None and not self._channel.closed

    @property
    def capturing(self) -> bool:
        return self._capture is not None

    @property
    def recording(self) -> bool:
        return self._recording is not None

    @property
    def recorded_bytes(self) -> int:
        return self._recording.size if self._recording is not None else 0

    async def capture_photo(self, timeout: Optional[float] = None) -> bytes:
        """Trigger a snapshot and return the first datagram that follows it."""
        if self._recording is not None:
            raise SessionConflictError("Cannot capture a photo while recording")
        if self._capture is not None:
            raise SessionConflictError("A photo capture is already in progress")

        deadline = self._capture_timeout if timeout is None else timeout
        loop = asyncio.get_running_loop()
        session = CaptureSession(future=loop.create_future(), started_at=loop.time())
        self._capture = session

        try:
            # Bind before triggering so the frame cannot beat the socket.
            await self._ensure_bound()
            # Armed from the ack itself: the frame may be dispatched before
            # this coroutine resumes.
            await self._send_command(
                SNAPSHOT_COMMAND, on_reply=lambda _text: self._arm(session)
            )

            try:
                payload = await asyncio.wait_for(session.future, timeout=deadline)
            except asyncio.TimeoutError as exc:
                LOGGER.warning("No snapshot datagram within %.1fs", deadline)
                raise CommandTimeoutError(SNAPSHOT_COMMAND, deadline) from exc
        finally:
            self._capture = None
            self._release()
            if session.future.done() and not session.future.cancelled():
                session.future.exception()

        LOGGER.info(
            "Captured %d byte snapshot in %.2fs",
            len(payload),
            loop.time() - session.started_at,
        )
        return payload

    async def start_recording(self) -> None:
        if self._recording is not None:
            raise AlreadyRecordingError("Already recording")
        if self._capture is not None:
            raise SessionConflictError(
                "Cannot start recording while a photo capture is in progress"
            )

        session = RecordingSession(started_at=datetime.now(timezone.utc))
        self._recording = session
        try:
            await self._ensure_bound()
        except TransportError:
            self._recording = None
            raise
        LOGGER.info("Recording started on media port %d", self._port)

    def stop_recording(self) -> bytes:
        """End the recording and hand back everything received, in order."""
        session = self._recording
        if session is None:
            raise NotRecordingError("Not recording")

        session.active = False
        self._recording = None
        self._release()

        payload = bytes(session.buffer)
        LOGGER.info(
            "Recording stopped: %d bytes in %d datagrams", len(payload), session.chunks
        )
        return payload

    def abort(self) -> int:
        """Drop any session and release the socket.

        Returns the number of recorded bytes that were discarded.
        """
        discarded = 0

        capture = self._capture
        if capture is not None and not capture.future.done():
            capture.future.set_exception(
                NotConnectedError("Link closed while waiting for a snapshot")
            )

        recording = self._recording
        if recording is not None:
            recording.active = False
            discarded = recording.size
            self._recording = None

        self._close_channel()
        return discarded

    def _arm(self, session: CaptureSession) -> None:
        if self._capture is session:
            session.armed = True

    async def _ensure_bound(self) -> None:
        if self.bound:
            return

        self._channel = await self._channel_factory(
            local_host=self._host,
            local_port=self._port,
            on_message=self._on_datagram,
            on_error=self._on_channel_error,
        )

    def _release(self) -> None:
        if self._capture is None and self._recording is None:
            self._close_channel()

    def _close_channel(self) -> None:
        channel = self._channel
        self._channel = None
        if channel is not None:
            channel.close()

    def _on_datagram(self, data: bytes, addr: tuple) -> None:
        capture = self._capture
        if capture is not None:
            if capture.armed and not capture.future.done():
                capture.future.set_result(bytes(data))
            return

        recording = self._recording
        if recording is not None and recording.active:
            recording.append(data)

    def _on_channel_error(self, exc: Exception) -> None:
        error = TransportError(f"Media socket error: {exc}", cause=exc)

        capture = self._capture
        if capture is not None:
            if not capture.future.done():
                capture.future.set_exception(error)
            return

        recording = self._recording
        if recording is not None:
            LOGGER.error(
                "Recording aborted by socket error; discarding %d bytes", recording.size
            )
            recording.active = False
            self._recording = None
            self._close_channel()
            if self._on_recording_aborted is not None:
                self._on_recording_aborted(error)

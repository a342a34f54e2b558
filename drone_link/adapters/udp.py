"""UDP datagram channel built on asyncio's datagram endpoints."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, NamedTuple, Optional, Protocol

from ..errors import TransportError

LOGGER = logging.getLogger(__name__)


class Endpoint(NamedTuple):
    host: str
    port: int

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


DatagramHandler = Callable[[bytes, tuple], None]
ErrorHandler = Callable[[Exception], None]


class Channel(Protocol):
    """Contract shared by the real UDP channel and test doubles."""

    @property
    def closed(self) -> bool:
        ...

    def send_to(self, data: bytes, endpoint: Endpoint) -> None:
        ...

    def close(self) -> None:
        ...


ChannelFactory = Callable[..., Awaitable[Channel]]


class _ChannelProtocol(asyncio.DatagramProtocol):
    def __init__(self, channel: "DatagramChannel") -> None:
        self._channel = channel

    def datagram_received(self, data: bytes, addr: tuple) -> None:
        self._channel._dispatch(data, addr)

    def error_received(self, exc: Exception) -> None:
        self._channel._report_error(exc)

    def connection_lost(self, exc: Optional[Exception]) -> None:
        if exc is not None:
            self._channel._report_error(exc)


class DatagramChannel:
    """A UDP socket bound to a local port that hands datagrams to a callback.

    Callbacks run on the event loop thread. Once :meth:`close` returns no
    further callbacks are delivered, even for datagrams already queued by the
    selector.
    """

    def __init__(
        self,
        *,
        on_message: DatagramHandler,
        on_error: Optional[ErrorHandler] = None,
    ) -> None:
        self._on_message = on_message
        self._on_error = on_error
        self._transport: Optional[asyncio.DatagramTransport] = None
        self._closed = False

    @classmethod
    async def open(
        cls,
        *,
        on_message: DatagramHandler,
        on_error: Optional[ErrorHandler] = None,
        local_host: str = "0.0.0.0",
        local_port: int = 0,
    ) -> "DatagramChannel":
        """Bind a new channel; ``local_port=0`` picks an ephemeral port."""

        channel = cls(on_message=on_message, on_error=on_error)
        loop = asyncio.get_running_loop()
        try:
            transport, _ = await loop.create_datagram_endpoint(
                lambda: _ChannelProtocol(channel),
                local_addr=(local_host, local_port),
            )
        except OSError as exc:
            raise TransportError(
                f"Unable to bind UDP socket on {local_host}:{local_port}: {exc}",
                cause=exc,
            ) from exc

        channel._transport = transport
        LOGGER.debug("UDP channel bound on %s:%s", *channel.local_address[:2])
        return channel

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def local_address(self) -> tuple:
        if self._transport is None:
            return ("", 0)
        return self._transport.get_extra_info("sockname") or ("", 0)

    def send_to(self, data: bytes, endpoint: Endpoint) -> None:
        if self._closed or self._transport is None:
            raise TransportError("UDP channel is closed")

        try:
            self._transport.sendto(data, (endpoint.host, endpoint.port))
        except (OSError, RuntimeError, ValueError) as exc:
            raise TransportError(f"Failed to send to {endpoint}: {exc}", cause=exc) from exc

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._transport is not None:
            LOGGER.debug("Closing UDP channel on %s:%s", *self.local_address[:2])
            self._transport.close()

    def _dispatch(self, data: bytes, addr: tuple) -> None:
        if self._closed:
            return
        try:
            self._on_message(data, addr)
        except Exception:
            LOGGER.exception("UDP datagram handler raised an exception")

    def _report_error(self, exc: Exception) -> None:
        if self._closed:
            return
        LOGGER.warning("UDP socket error: %s", exc)
        if self._on_error is None:
            return
        try:
            self._on_error(exc)
        except Exception:
            LOGGER.exception("UDP error handler raised an exception")

"""Command/response transactions over the drone's text protocol.

The wire protocol carries no request identifiers: a reply is simply the next
datagram that arrives on the command socket. Correlation is therefore only
sound while at most one command is outstanding, which this module enforces
with a lock. Each call gets its own :class:`PendingTransaction` with an
internal id used for logging only.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import re
from dataclasses import dataclass
from typing import Callable, Optional

from .adapters.udp import Channel, ChannelFactory, DatagramChannel, Endpoint
from .constants import DEFAULT_COMMAND_TIMEOUT_SECONDS
from .errors import (
    CommandBusyError,
    CommandTimeoutError,
    ProtocolFailureError,
    TransportError,
)
from .events import ListenerRegistry

LOGGER = logging.getLogger(__name__)

OK_RESPONSE = "ok"
_INTEGER_PATTERN = re.compile(r"^[+-]?\d+$")


def parse_integer(text: str) -> Optional[int]:
    """Return the integer value of a reply, or ``None`` if it is not one."""
    value = text.strip()
    if not _INTEGER_PATTERN.match(value):
        return None
    return int(value)


def is_valid_response(text: str) -> bool:
    value = text.strip()
    return value == OK_RESPONSE or parse_integer(value) is not None


@dataclass(slots=True)
class PendingTransaction:
    transaction_id: int
    command: str
    created_at: float
    future: asyncio.Future[str]
    on_reply: Optional[Callable[[str], None]] = None


@dataclass(frozen=True, slots=True)
class CommandResponse:
    """A validated reply to a single command."""

    command: str
    text: str
    transaction_id: int
    elapsed: float

    @property
    def is_ok(self) -> bool:
        return self.text == OK_RESPONSE

    @property
    def value(self) -> Optional[int]:
        return parse_integer(self.text)


class CommandTransactor:
    """Sends one command at a time and resolves it with the next reply.

    A second :meth:`send` while a transaction is pending fails immediately
    with :class:`CommandBusyError`; nothing is written to the socket.
    Successful responses are republished on :attr:`responses` so observers
    (telemetry) see replies to commands they did not issue themselves.
    """

    def __init__(
        self,
        endpoint: Endpoint,
        *,
        local_host: str = "0.0.0.0",
        local_port: int = 0,
        default_timeout: float = DEFAULT_COMMAND_TIMEOUT_SECONDS,
        channel_factory: Optional[ChannelFactory] = None,
        on_transport_error: Optional[Callable[[TransportError], None]] = None,
    ) -> None:
        self._endpoint = endpoint
        self._local_host = local_host
        self._local_port = local_port
        self._default_timeout = default_timeout
        self._channel_factory = channel_factory or DatagramChannel.open
        self._on_transport_error = on_transport_error

        self._channel: Optional[Channel] = None
        self._pending: Optional[PendingTransaction] = None
        self._lock = asyncio.Lock()
        self._ids = itertools.count(1)
        self.responses: ListenerRegistry[CommandResponse] = ListenerRegistry(
            "command-response"
        )

    @property
    def endpoint(self) -> Endpoint:
        return self._endpoint

    @property
    def is_open(self) -> bool:
        return self._channel is not None and not self._channel.closed

    @property
    def pending(self) -> Optional[PendingTransaction]:
        return self._pending

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    async def open(self) -> None:
        """Bind the command socket if it is not already bound."""
        if self.is_open:
            return

        self._channel = await self._channel_factory(
            local_host=self._local_host,
            local_port=self._local_port,
            on_message=self._on_datagram,
            on_error=self._on_channel_error,
        )
        LOGGER.debug("Command channel open towards %s", self._endpoint)

    def close(self) -> None:
        """Release the socket and fail any transaction still waiting."""
        channel = self._channel
        self._channel = None
        if channel is not None:
            channel.close()

        pending = self._pending
        if pending is not None and not pending.future.done():
            pending.future.set_exception(
                TransportError(f"Command channel closed while waiting on {pending.command!r}")
            )

    async def send(
        self,
        command: str,
        timeout: Optional[float] = None,
        *,
        on_reply: Optional[Callable[[str], None]] = None,
    ) -> CommandResponse:
        """Send ``command`` and wait for its reply.

        ``on_reply`` runs synchronously when a valid reply is received, before
        any other datagram is dispatched.

        Raises:
            CommandBusyError: another command is still pending.
            CommandTimeoutError: no reply arrived before ``timeout``.
            ProtocolFailureError: the reply was neither ``ok`` nor an integer.
            TransportError: the socket is closed or failed.
        """
        if not command or not command.isascii():
            raise ValueError(f"Commands must be non-empty ASCII text, got {command!r}")

        if self._lock.locked():
            pending = self._pending.command if self._pending is not None else None
            raise CommandBusyError(command, pending)

        deadline = self._default_timeout if timeout is None else timeout

        async with self._lock:
            channel = self._channel
            if channel is None or channel.closed:
                raise TransportError("Command channel is not open")

            loop = asyncio.get_running_loop()
            transaction = PendingTransaction(
                transaction_id=next(self._ids),
                command=command,
                created_at=loop.time(),
                future=loop.create_future(),
                on_reply=on_reply,
            )
            self._pending = transaction

            try:
                LOGGER.debug("-> [%d] %s", transaction.transaction_id, command)
                try:
                    channel.send_to(command.encode("ascii"), self._endpoint)
                except TransportError as exc:
                    transaction.future.cancel()
                    self._notify_transport_error(exc)
                    raise

                try:
                    text = await asyncio.wait_for(transaction.future, timeout=deadline)
                except asyncio.TimeoutError as exc:
                    LOGGER.warning(
                        "Command %r (txn %d) timed out after %.1fs",
                        command,
                        transaction.transaction_id,
                        deadline,
                    )
                    raise CommandTimeoutError(command, deadline) from exc
            finally:
                self._pending = None

        response = CommandResponse(
            command=command,
            text=text,
            transaction_id=transaction.transaction_id,
            elapsed=loop.time() - transaction.created_at,
        )
        self.responses.publish(response)
        return response

    def _on_datagram(self, data: bytes, addr: tuple) -> None:
        text = data.decode("ascii", errors="replace").strip()
        transaction = self._pending

        if transaction is None or transaction.future.done():
            LOGGER.debug("Discarding unsolicited reply from %s: %r", addr, text)
            return

        LOGGER.debug("<- [%d] %s", transaction.transaction_id, text)
        if is_valid_response(text):
            if transaction.on_reply is not None:
                try:
                    transaction.on_reply(text)
                except Exception:
                    LOGGER.exception("Reply hook for %r raised an exception", transaction.command)
            transaction.future.set_result(text)
        else:
            transaction.future.set_exception(
                ProtocolFailureError(transaction.command, text)
            )

    def _on_channel_error(self, exc: Exception) -> None:
        error = TransportError(f"Command socket error: {exc}", cause=exc)
        transaction = self._pending
        if transaction is not None and not transaction.future.done():
            transaction.future.set_exception(error)
        self._notify_transport_error(error)

    def _notify_transport_error(self, error: TransportError) -> None:
        if self._on_transport_error is None:
            return
        try:
            self._on_transport_error(error)
        except Exception:
            LOGGER.exception("Transport error handler raised an exception")

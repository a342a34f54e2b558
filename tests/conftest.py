import asyncio
from typing import Callable, Dict, List, Optional, Union

import pytest

from drone_link.adapters.udp import Endpoint
from drone_link.errors import TransportError

DRONE_ADDR = ("192.168.10.1", 8889)

Reply = Union[str, None, Callable[[str], Optional[str]]]


class FakeChannel:
    """In-memory stand-in for a bound UDP channel."""

    def __init__(self, network: "FakeNetwork", local_host, local_port, on_message, on_error):
        self.network = network
        self.local_host = local_host
        self.local_port = local_port
        self.on_message = on_message
        self.on_error = on_error
        self.sent: List[tuple[bytes, Endpoint]] = []
        self.closed = False

    def send_to(self, data: bytes, endpoint: Endpoint) -> None:
        if self.closed:
            raise TransportError("UDP channel is closed")
        if self.network.send_error is not None:
            raise TransportError("send failed", cause=self.network.send_error)
        self.sent.append((data, endpoint))
        self.network.handle_command(self, data.decode("ascii"))

    def close(self) -> None:
        self.closed = True

    def deliver(self, data: bytes, addr=DRONE_ADDR) -> None:
        if not self.closed:
            self.on_message(data, addr)

    def fail(self, exc: Exception) -> None:
        if not self.closed and self.on_error is not None:
            self.on_error(exc)


class FakeNetwork:
    """Scripted drone: replies per command and pushes media datagrams."""

    def __init__(self, media_port: int = 11111) -> None:
        self.media_port = media_port
        self.channels: List[FakeChannel] = []
        self.replies: Dict[str, Reply] = {}
        self.default_reply: Reply = "ok"
        self.media_after: Dict[str, List[bytes]] = {}
        self.commands: List[str] = []
        self.bind_errors: set[int] = set()
        self.send_error: Optional[Exception] = None

    async def open(self, *, on_message, on_error=None, local_host="0.0.0.0", local_port=0):
        if local_port in self.bind_errors:
            raise TransportError(f"Unable to bind UDP socket on {local_host}:{local_port}")
        channel = FakeChannel(self, local_host, local_port, on_message, on_error)
        self.channels.append(channel)
        return channel

    @property
    def command_channel(self) -> FakeChannel:
        return [ch for ch in self.channels if ch.local_port != self.media_port][-1]

    @property
    def media_channels(self) -> List[FakeChannel]:
        return [ch for ch in self.channels if ch.local_port == self.media_port]

    def open_media_channel(self) -> Optional[FakeChannel]:
        for channel in self.media_channels:
            if not channel.closed:
                return channel
        return None

    def push_media(self, data: bytes) -> None:
        channel = self.open_media_channel()
        if channel is not None:
            channel.deliver(data, (DRONE_ADDR[0], 62512))

    def handle_command(self, channel: FakeChannel, command: str) -> None:
        self.commands.append(command)
        reply = self.replies.get(command, self.default_reply)
        if callable(reply):
            reply = reply(command)
        if reply is None:
            return

        loop = asyncio.get_running_loop()
        loop.call_soon(channel.deliver, reply.encode("ascii"))
        for chunk in self.media_after.get(command, []):
            loop.call_soon(self.push_media, chunk)


@pytest.fixture
def network() -> FakeNetwork:
    return FakeNetwork()


@pytest.fixture
def eventually():
    async def _wait(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() >= deadline:
                raise AssertionError("condition not met before timeout")
            await asyncio.sleep(0.005)

    return _wait

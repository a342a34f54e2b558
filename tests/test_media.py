import asyncio

import pytest

from drone_link.adapters.udp import Endpoint
from drone_link.commands import CommandTransactor
from drone_link.errors import (
    AlreadyRecordingError,
    CommandTimeoutError,
    NotRecordingError,
    ProtocolFailureError,
    SessionConflictError,
    TransportError,
)
from drone_link.media import MediaChannel


async def make_media(network, **kwargs):
    transactor = CommandTransactor(
        Endpoint("192.168.10.1", 8889),
        default_timeout=0.2,
        channel_factory=network.open,
    )
    await transactor.open()
    media = MediaChannel(
        transactor.send,
        port=network.media_port,
        capture_timeout=kwargs.pop("capture_timeout", 0.2),
        channel_factory=network.open,
        **kwargs,
    )
    return media


@pytest.mark.asyncio
async def test_capture_returns_first_datagram_after_snapshot(network):
    photo = bytes(range(256)) * 8
    network.media_after["snapshot"] = [photo, b"second"]
    media = await make_media(network)

    payload = await media.capture_photo()

    assert payload == photo
    assert len(payload) == 2048
    assert not media.bound
    assert network.media_channels[0].closed


@pytest.mark.asyncio
async def test_capture_waits_for_frame_after_ack(network):
    network.replies["snapshot"] = None
    media = await make_media(network)

    task = asyncio.create_task(media.capture_photo())
    await asyncio.sleep(0)
    assert media.bound
    assert network.commands == ["snapshot"]

    network.command_channel.deliver(b"ok")
    await asyncio.sleep(0)
    network.push_media(b"frame")
    network.push_media(b"next-frame")

    assert await task == b"frame"


@pytest.mark.asyncio
async def test_capture_ignores_datagrams_before_ack(network):
    network.replies["snapshot"] = None
    media = await make_media(network)

    task = asyncio.create_task(media.capture_photo())
    await asyncio.sleep(0)
    network.push_media(b"stale-stream-chunk")

    # ack and frame dispatched back to back, before the capture resumes
    network.command_channel.deliver(b"ok")
    network.push_media(b"frame-after-ack")

    assert await task == b"frame-after-ack"


@pytest.mark.asyncio
async def test_capture_failed_ack_never_arms(network):
    network.replies["snapshot"] = "error"
    network.media_after["snapshot"] = [b"frame"]
    media = await make_media(network)

    with pytest.raises(ProtocolFailureError):
        await media.capture_photo()

    assert not media.capturing


@pytest.mark.asyncio
async def test_capture_times_out_and_releases_port(network):
    media = await make_media(network)

    with pytest.raises(CommandTimeoutError):
        await media.capture_photo(timeout=0.05)

    assert not media.capturing
    assert not media.bound


@pytest.mark.asyncio
async def test_capture_snapshot_failure_releases_port(network):
    network.replies["snapshot"] = "error"
    media = await make_media(network)

    with pytest.raises(ProtocolFailureError):
        await media.capture_photo()

    assert not media.bound


@pytest.mark.asyncio
async def test_capture_bind_failure_is_transport_error(network):
    network.bind_errors.add(network.media_port)
    media = await make_media(network)

    with pytest.raises(TransportError):
        await media.capture_photo()

    assert not media.capturing


@pytest.mark.asyncio
async def test_capture_socket_error_surfaces(network):
    network.replies["snapshot"] = "ok"
    media = await make_media(network)

    task = asyncio.create_task(media.capture_photo())
    for _ in range(3):
        await asyncio.sleep(0)
    network.open_media_channel().fail(OSError("boom"))

    with pytest.raises(TransportError):
        await task
    assert not media.bound


@pytest.mark.asyncio
async def test_recording_accumulates_in_arrival_order(network):
    media = await make_media(network)

    await media.start_recording()
    chunks = [b"a" * 1460, b"b" * 700, b"c" * 3]
    for chunk in chunks:
        network.push_media(chunk)
    assert media.recorded_bytes == 2163

    payload = media.stop_recording()

    assert payload == b"".join(chunks)
    assert not media.recording
    assert not media.bound


@pytest.mark.asyncio
async def test_datagrams_after_stop_are_ignored(network):
    media = await make_media(network)
    await media.start_recording()
    channel = network.open_media_channel()
    network.push_media(b"one")

    payload = media.stop_recording()
    channel.on_message(b"late", ("192.168.10.1", 62512))

    assert payload == b"one"


@pytest.mark.asyncio
async def test_stop_without_recording_raises(network):
    media = await make_media(network)

    with pytest.raises(NotRecordingError):
        media.stop_recording()


@pytest.mark.asyncio
async def test_start_recording_twice_raises(network):
    media = await make_media(network)
    await media.start_recording()

    with pytest.raises(AlreadyRecordingError):
        await media.start_recording()


@pytest.mark.asyncio
async def test_capture_while_recording_conflicts(network):
    media = await make_media(network)
    await media.start_recording()

    with pytest.raises(SessionConflictError):
        await media.capture_photo()

    assert "snapshot" not in network.commands
    assert media.recording


@pytest.mark.asyncio
async def test_recording_while_capturing_conflicts(network):
    network.replies["snapshot"] = None
    media = await make_media(network)

    task = asyncio.create_task(media.capture_photo(timeout=0.05))
    await asyncio.sleep(0)

    with pytest.raises(SessionConflictError):
        await media.start_recording()

    with pytest.raises(CommandTimeoutError):
        await task


@pytest.mark.asyncio
async def test_abort_discards_recording(network):
    media = await make_media(network)
    await media.start_recording()
    network.push_media(b"x" * 10)

    discarded = media.abort()

    assert discarded == 10
    assert not media.recording
    with pytest.raises(NotRecordingError):
        media.stop_recording()


@pytest.mark.asyncio
async def test_socket_error_aborts_recording(network):
    aborted = []
    media = await make_media(network, on_recording_aborted=aborted.append)
    await media.start_recording()

    network.open_media_channel().fail(OSError("boom"))

    assert not media.recording
    assert isinstance(aborted[0], TransportError)

"""Command-line interface for drone-link."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional

from . import constants
from .app import DroneLinkApp
from .config import LinkConfig, load_config
from .connection import LinkManager
from .errors import DroneLinkError
from .logging import configure_logging
from .storage import MediaStore

LOGGER = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="drone-link", description="UDP link manager for Tello-style drones"
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=constants.DEFAULT_CONFIG_PATH,
        help=f"Path to configuration file (default: {constants.DEFAULT_CONFIG_PATH})",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("run", help="Connect and keep the link alive until interrupted")

    send_parser = subparsers.add_parser("send", help="Send a single SDK command")
    send_parser.add_argument("sdk_command", help="Command text, e.g. 'battery?'")
    send_parser.add_argument("--timeout", type=float, default=None)

    photo_parser = subparsers.add_parser("photo", help="Capture and save a snapshot")
    photo_parser.add_argument("--name", default="snapshot")

    record_parser = subparsers.add_parser("record", help="Record the raw stream")
    record_parser.add_argument("--seconds", type=float, required=True)
    record_parser.add_argument("--name", default="recording")

    media_parser = subparsers.add_parser("media", help="List saved media")
    media_parser.add_argument(
        "--kind", choices=("all", "photos", "videos"), default="all"
    )

    subparsers.add_parser(
        "show-config", help="Print the resolved configuration and exit"
    )

    return parser


def _one_shot_link(config: LinkConfig) -> LinkManager:
    # One-shot commands would collide with the telemetry poll.
    return LinkManager(
        drone=config.drone,
        telemetry=replace(config.telemetry, enabled=False),
        media=config.media,
    )


async def _send(config: LinkConfig, command: str, timeout: Optional[float]) -> str:
    async with _one_shot_link(config) as link:
        await link.connect()
        response = await link.send_command(command, timeout)
        return response.text


async def _stream_off(link: LinkManager) -> None:
    """Turn the stream off; a failure here must not cost the captured media."""
    if not link.is_connected:
        return
    try:
        await link.set_stream(False)
    except DroneLinkError as exc:
        LOGGER.warning("Could not turn the video stream off: %s", exc)


async def _photo(config: LinkConfig, store: MediaStore, name: str) -> Path:
    async with _one_shot_link(config) as link:
        await link.connect()
        await link.set_stream(True)
        try:
            payload = await link.capture_photo()
        finally:
            await _stream_off(link)
    return store.save_photo(payload, name)


async def _record(
    config: LinkConfig, store: MediaStore, name: str, seconds: float
) -> Path:
    async with _one_shot_link(config) as link:
        await link.connect()
        await link.set_stream(True)
        try:
            await link.start_recording()
            await asyncio.sleep(seconds)
            payload = await link.stop_recording()
        finally:
            await _stream_off(link)
    return store.save_video(payload, name)


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = load_config(args.config)

    if args.command == "run":
        DroneLinkApp.start(config)
        return 0

    if args.command == "show-config":
        print(f"Configuration loaded from {config.path!s}\n")
        for section in config.raw.sections():
            print(f"[{section}]")
            for key, value in config.raw[section].items():
                print(f"{key} = {value}")
            print()
        return 0

    configure_logging(
        config.logging.level,
        log_network=config.logging.log_network,
    )
    store = MediaStore(config.media.directory)

    try:
        if args.command == "send":
            print(asyncio.run(_send(config, args.sdk_command, args.timeout)))
            return 0

        if args.command == "photo":
            store.initialize()
            path = asyncio.run(_photo(config, store, args.name))
            print(path)
            return 0

        if args.command == "record":
            store.initialize()
            path = asyncio.run(_record(config, store, args.name, args.seconds))
            print(path)
            return 0

        if args.command == "media":
            for item in store.list_media(args.kind):
                print(
                    f"{item.modified_at.isoformat(timespec='seconds')}  "
                    f"{item.size:>10}  {item.path}"
                )
            return 0
    except DroneLinkError as exc:
        LOGGER.error("%s failed: %s", args.command, exc)
        return 1

    LOGGER.error("Unknown command: %s", args.command)
    return 1


if __name__ == "__main__":
    sys.exit(main())

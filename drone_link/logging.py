"""Logging setup for drone-link.

Console output always goes to stderr. The optional file log rotates by size.
The ``-> [id]`` / ``<- [id]`` command trace from :mod:`drone_link.commands`
is emitted at DEBUG on the package logger, so ``level = DEBUG`` shows the
wire traffic without enabling debug output from aiohttp or paho.
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from .constants import DEFAULT_LOG_BACKUP_COUNT, DEFAULT_LOG_MAX_BYTES

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
PACKAGE_LOGGER = "drone_link"

# Third-party loggers that are noisy at INFO and below.
_NETWORK_LOGGERS = ("aiohttp.access", "aiohttp.server", "paho")


def configure_logging(
    level: str = "INFO",
    *,
    log_path: Optional[Path] = None,
    log_network: bool = False,
    max_bytes: int = DEFAULT_LOG_MAX_BYTES,
    backup_count: int = DEFAULT_LOG_BACKUP_COUNT,
) -> None:
    """Install console and optional rotating-file handlers on the root logger.

    ``level`` applies to the ``drone_link`` package; everything else stays
    at INFO or above so library chatter does not drown the link trace.
    Unless ``log_network`` is set, the aiohttp and paho loggers are capped
    at WARNING.
    """

    package_level = getattr(logging, level.upper(), logging.INFO)
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    logging.captureWarnings(True)
    logging.basicConfig(level=max(package_level, logging.INFO), format=LOG_FORMAT)
    logging.getLogger(PACKAGE_LOGGER).setLevel(package_level)

    if log_path:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=max(0, max_bytes),
            backupCount=max(0, backup_count),
            encoding="utf-8",
        )
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(file_handler)

    network_level = package_level if log_network else logging.WARNING
    for name in _NETWORK_LOGGERS:
        logging.getLogger(name).setLevel(network_level)

"""Constants used across the drone-link package."""

from __future__ import annotations

from pathlib import Path

APP_NAME = "drone-link"
DEFAULT_CONFIG_FILENAME = f"{APP_NAME}.cfg"
DEFAULT_HOME = Path.home() / ".drone-link"
DEFAULT_CONFIG_PATH = DEFAULT_HOME / DEFAULT_CONFIG_FILENAME
DEFAULT_LOG_PATH = DEFAULT_HOME / "logs" / f"{APP_NAME}.log"
DEFAULT_MEDIA_PATH = DEFAULT_HOME / "media"
DEFAULT_LOG_MAX_BYTES = 1_048_576
DEFAULT_LOG_BACKUP_COUNT = 3

DEFAULT_DRONE_HOST = "192.168.10.1"
DEFAULT_COMMAND_PORT = 8889
DEFAULT_MEDIA_PORT = 11111

DEFAULT_COMMAND_TIMEOUT_SECONDS = 5.0
DEFAULT_CAPTURE_TIMEOUT_SECONDS = 5.0
DEFAULT_TELEMETRY_INTERVAL_SECONDS = 10.0

DEFAULT_BROKER_HOST = "localhost"
DEFAULT_BROKER_PORT = 1883
DEFAULT_TOPIC_PREFIX = APP_NAME

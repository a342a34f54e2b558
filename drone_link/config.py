"""Configuration loader for drone-link."""

from __future__ import annotations

from configparser import ConfigParser
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from . import constants


@dataclass(slots=True)
class DroneConfig:
    host: str = constants.DEFAULT_DRONE_HOST
    command_port: int = constants.DEFAULT_COMMAND_PORT
    local_command_port: int = 0  # 0 lets the OS pick an ephemeral port
    command_timeout_seconds: float = constants.DEFAULT_COMMAND_TIMEOUT_SECONDS


@dataclass(slots=True)
class TelemetryConfig:
    enabled: bool = True
    interval_seconds: float = constants.DEFAULT_TELEMETRY_INTERVAL_SECONDS


@dataclass(slots=True)
class MediaConfig:
    port: int = constants.DEFAULT_MEDIA_PORT
    bind_host: str = "0.0.0.0"
    capture_timeout_seconds: float = constants.DEFAULT_CAPTURE_TIMEOUT_SECONDS
    directory: Path = constants.DEFAULT_MEDIA_PATH


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"
    path: Optional[Path] = constants.DEFAULT_LOG_PATH
    log_network: bool = False
    max_bytes: int = constants.DEFAULT_LOG_MAX_BYTES
    backup_count: int = constants.DEFAULT_LOG_BACKUP_COUNT


@dataclass(slots=True)
class HealthConfig:
    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = 0


@dataclass(slots=True)
class MQTTConfig:
    enabled: bool = False
    broker_host: str = constants.DEFAULT_BROKER_HOST
    broker_port: int = constants.DEFAULT_BROKER_PORT
    username: Optional[str] = None
    password: Optional[str] = None
    topic_prefix: str = constants.DEFAULT_TOPIC_PREFIX


@dataclass(slots=True)
class LinkConfig:
    drone: DroneConfig
    telemetry: TelemetryConfig
    media: MediaConfig
    logging: LoggingConfig
    health: HealthConfig
    mqtt: MQTTConfig
    raw: ConfigParser
    path: Path


def _get_float(parser: ConfigParser, section: str, option: str, default: float) -> float:
    try:
        return parser.getfloat(section, option, fallback=default)
    except ValueError:
        return default


def _get_int(parser: ConfigParser, section: str, option: str, default: int) -> int:
    try:
        return parser.getint(section, option, fallback=default)
    except ValueError:
        return default


def load_config(path: Optional[Path] = None) -> LinkConfig:
    """Load configuration from disk, applying defaults where necessary."""

    config_path = path or constants.DEFAULT_CONFIG_PATH
    parser = ConfigParser()
    parser.read_dict(
        {
            "drone": {
                "host": constants.DEFAULT_DRONE_HOST,
                "command_port": str(constants.DEFAULT_COMMAND_PORT),
                "local_command_port": "0",
                "command_timeout_seconds": str(constants.DEFAULT_COMMAND_TIMEOUT_SECONDS),
            },
            "telemetry": {
                "enabled": "true",
                "interval_seconds": str(constants.DEFAULT_TELEMETRY_INTERVAL_SECONDS),
            },
            "media": {
                "port": str(constants.DEFAULT_MEDIA_PORT),
                "bind_host": "0.0.0.0",
                "capture_timeout_seconds": str(constants.DEFAULT_CAPTURE_TIMEOUT_SECONDS),
                "directory": str(constants.DEFAULT_MEDIA_PATH),
            },
            "logging": {
                "level": "INFO",
                "path": str(constants.DEFAULT_LOG_PATH),
                "log_network": "false",
                "max_bytes": str(constants.DEFAULT_LOG_MAX_BYTES),
                "backup_count": str(constants.DEFAULT_LOG_BACKUP_COUNT),
            },
            "health": {
                "enabled": "false",
                "host": "127.0.0.1",
                "port": "0",
            },
            "mqtt": {
                "enabled": "false",
                "broker_host": constants.DEFAULT_BROKER_HOST,
                "broker_port": str(constants.DEFAULT_BROKER_PORT),
                "topic_prefix": constants.DEFAULT_TOPIC_PREFIX,
            },
        }
    )

    if config_path.exists():
        parser.read(config_path)

    drone_defaults = DroneConfig()
    drone = DroneConfig(
        host=parser.get("drone", "host"),
        command_port=_get_int(parser, "drone", "command_port", drone_defaults.command_port),
        local_command_port=max(
            0, _get_int(parser, "drone", "local_command_port", 0)
        ),
        command_timeout_seconds=max(
            0.1,
            _get_float(
                parser,
                "drone",
                "command_timeout_seconds",
                drone_defaults.command_timeout_seconds,
            ),
        ),
    )

    telemetry_defaults = TelemetryConfig()
    telemetry = TelemetryConfig(
        enabled=parser.getboolean("telemetry", "enabled", fallback=True),
        interval_seconds=max(
            0.1,
            _get_float(
                parser,
                "telemetry",
                "interval_seconds",
                telemetry_defaults.interval_seconds,
            ),
        ),
    )

    media_defaults = MediaConfig()
    media = MediaConfig(
        port=_get_int(parser, "media", "port", media_defaults.port),
        bind_host=parser.get("media", "bind_host", fallback=media_defaults.bind_host),
        capture_timeout_seconds=max(
            0.1,
            _get_float(
                parser,
                "media",
                "capture_timeout_seconds",
                media_defaults.capture_timeout_seconds,
            ),
        ),
        directory=Path(
            parser.get("media", "directory", fallback=str(media_defaults.directory))
        ).expanduser(),
    )

    log_path_value = parser.get("logging", "path", fallback="").strip()
    logging_config = LoggingConfig(
        level=parser.get("logging", "level", fallback="INFO"),
        path=Path(log_path_value).expanduser() if log_path_value else None,
        log_network=parser.getboolean("logging", "log_network", fallback=False),
        max_bytes=max(
            0,
            _get_int(parser, "logging", "max_bytes", constants.DEFAULT_LOG_MAX_BYTES),
        ),
        backup_count=max(
            0,
            _get_int(
                parser, "logging", "backup_count", constants.DEFAULT_LOG_BACKUP_COUNT
            ),
        ),
    )

    health = HealthConfig(
        enabled=parser.getboolean("health", "enabled", fallback=False),
        host=parser.get("health", "host", fallback="127.0.0.1"),
        port=_get_int(parser, "health", "port", 0),
    )

    broker_host_value = parser.get("mqtt", "broker_host")
    broker_port_value = _get_int(
        parser, "mqtt", "broker_port", constants.DEFAULT_BROKER_PORT
    )

    if ":" in broker_host_value:
        host_part, port_part = broker_host_value.rsplit(":", 1)
        try:
            parsed_port = int(port_part)
        except ValueError:
            pass
        else:
            broker_host_value = host_part
            broker_port_value = parsed_port
            parser.set("mqtt", "broker_host", host_part)
            parser.set("mqtt", "broker_port", str(parsed_port))

    mqtt = MQTTConfig(
        enabled=parser.getboolean("mqtt", "enabled", fallback=False),
        broker_host=broker_host_value,
        broker_port=broker_port_value,
        username=parser.get("mqtt", "username", fallback=None),
        password=parser.get("mqtt", "password", fallback=None),
        topic_prefix=parser.get(
            "mqtt", "topic_prefix", fallback=constants.DEFAULT_TOPIC_PREFIX
        ).strip("/"),
    )

    return LinkConfig(
        drone=drone,
        telemetry=telemetry,
        media=media,
        logging=logging_config,
        health=health,
        mqtt=mqtt,
        raw=parser,
        path=config_path,
    )


def save_config(config: LinkConfig) -> None:
    """Persist the current configuration to disk."""

    config_path = config.path
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as stream:
        config.raw.write(stream)

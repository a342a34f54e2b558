from pathlib import Path

from drone_link import constants
from drone_link.config import load_config, save_config


def test_load_config_defaults(tmp_path: Path) -> None:
    config_path = tmp_path / "drone-link.cfg"
    config = load_config(config_path)

    assert config.path == config_path
    assert config.drone.host == "192.168.10.1"
    assert config.drone.command_port == 8889
    assert config.drone.local_command_port == 0
    assert config.drone.command_timeout_seconds == 5.0
    assert config.telemetry.enabled is True
    assert config.telemetry.interval_seconds == 10.0
    assert config.media.port == 11111
    assert config.media.capture_timeout_seconds == 5.0
    assert config.media.directory == constants.DEFAULT_MEDIA_PATH
    assert config.logging.level == "INFO"
    assert config.logging.max_bytes == 1_048_576
    assert config.logging.backup_count == 3
    assert config.health.enabled is False
    assert config.mqtt.enabled is False
    assert config.mqtt.broker_port == 1883
    assert config.mqtt.topic_prefix == "drone-link"


def test_load_config_overrides(tmp_path: Path) -> None:
    config_path = tmp_path / "drone-link.cfg"
    config_path.write_text(
        """
[drone]
host = 10.0.0.5
command_timeout_seconds = 2.5

[telemetry]
enabled = false
interval_seconds = 3

[media]
port = 12000
directory = {media}

[logging]
level = DEBUG
path =
backup_count = 5
        """.strip().format(media=tmp_path / "captures")
        + "\n",
        encoding="utf-8",
    )

    config = load_config(config_path)

    assert config.drone.host == "10.0.0.5"
    assert config.drone.command_timeout_seconds == 2.5
    assert config.telemetry.enabled is False
    assert config.telemetry.interval_seconds == 3.0
    assert config.media.port == 12000
    assert config.media.directory == tmp_path / "captures"
    assert config.logging.level == "DEBUG"
    assert config.logging.path is None
    assert config.logging.backup_count == 5


def test_invalid_numbers_fall_back_to_defaults(tmp_path: Path) -> None:
    config_path = tmp_path / "drone-link.cfg"
    config_path.write_text(
        "[drone]\ncommand_port = not-a-port\ncommand_timeout_seconds = soon\n"
        "[telemetry]\ninterval_seconds = 0\n",
        encoding="utf-8",
    )

    config = load_config(config_path)

    assert config.drone.command_port == 8889
    assert config.drone.command_timeout_seconds == 5.0
    assert config.telemetry.interval_seconds == 0.1


def test_load_config_parses_broker_host_with_port(tmp_path: Path) -> None:
    config_path = tmp_path / "drone-link.cfg"
    config_path.write_text("[mqtt]\nbroker_host = localhost:61198\n", encoding="utf-8")

    config = load_config(config_path)

    assert config.mqtt.broker_host == "localhost"
    assert config.mqtt.broker_port == 61198
    assert config.raw.get("mqtt", "broker_host") == "localhost"
    assert config.raw.get("mqtt", "broker_port") == "61198"


def test_topic_prefix_is_trimmed(tmp_path: Path) -> None:
    config_path = tmp_path / "drone-link.cfg"
    config_path.write_text("[mqtt]\ntopic_prefix = /fleet/tello-1/\n", encoding="utf-8")

    config = load_config(config_path)

    assert config.mqtt.topic_prefix == "fleet/tello-1"


def test_save_config_round_trips(tmp_path: Path) -> None:
    config_path = tmp_path / "nested" / "drone-link.cfg"
    config = load_config(config_path)
    config.raw.set("drone", "host", "10.1.1.1")

    save_config(config)
    reloaded = load_config(config_path)

    assert config_path.exists()
    assert reloaded.drone.host == "10.1.1.1"

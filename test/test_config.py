from pathlib import Path

import pytest

from drone_bridge.config import load_config


def test_missing_file_gives_defaults(tmp_path: Path) -> None:
    config = load_config(tmp_path / "absent.cfg")

    assert config.drone.address == "192.168.1.1"
    assert config.drone.command_port == 5556
    assert config.drone.telemetry_port == 5554
    assert config.drone.telemetry_interval_ms == 1000
    assert config.drone.receive_timeout_s == 3.0
    assert config.drone.telemetry_autostart is False
    assert config.mqtt.broker_host == "localhost"
    assert config.mqtt.subscribe_topic == "drone/cmd/#"
    assert config.mqtt.json_mode is True
    assert config.mqtt.username is None
    assert config.websocket.enabled is False
    assert config.logging.path is None


def test_values_are_read_from_file(tmp_path: Path) -> None:
    path = tmp_path / "bridge.cfg"
    path.write_text(
        "[drone]\n"
        "address = 10.0.0.5\n"
        "telemetry_interval_ms = 0\n"
        "telemetry_autostart = yes\n"
        "\n"
        "[mqtt]\n"
        "broker_host = broker.lan:8883\n"
        "username = pilot\n"
        "publish_topic = fleet/one/navdata/\n"
        "json_mode = false\n"
        "\n"
        "[websocket]\n"
        "enabled = true\n"
        "port = 9001\n"
        "\n"
        "[logging]\n"
        "level = DEBUG\n"
        f"path = {tmp_path / 'bridge.log'}\n",
        encoding="utf-8",
    )
    config = load_config(path)

    assert config.path == path
    assert config.drone.address == "10.0.0.5"
    assert config.drone.telemetry_interval_ms == 0
    assert config.drone.telemetry_autostart is True
    assert config.drone.command_port == 5556
    assert config.mqtt.broker_host == "broker.lan"
    assert config.mqtt.broker_port == 8883
    assert config.mqtt.username == "pilot"
    assert config.mqtt.publish_topic == "fleet/one/navdata"
    assert config.mqtt.json_mode is False
    assert config.websocket.enabled is True
    assert config.websocket.port == 9001
    assert config.logging.level == "DEBUG"
    assert config.logging.path == tmp_path / "bridge.log"


def test_invalid_number_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "bad.cfg"
    path.write_text("[drone]\ncommand_port = many\n", encoding="utf-8")

    with pytest.raises(ValueError):
        load_config(path)

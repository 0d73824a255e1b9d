"""Configuration loader for drone-bridge."""

from __future__ import annotations

from configparser import ConfigParser
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

DEFAULT_CONFIG_PATH = Path("~/.config/drone-bridge/drone-bridge.cfg").expanduser()


@dataclass(slots=True)
class DroneConfig:
    address: str = "192.168.1.1"
    command_port: int = 5556
    telemetry_port: int = 5554
    telemetry_interval_ms: int = 1000
    receive_timeout_s: float = 3.0
    max_altitude_mm: int = 2000
    telemetry_autostart: bool = False


@dataclass(slots=True)
class MqttConfig:
    broker_host: str = "localhost"
    broker_port: int = 1883
    client_id: str = "drone-bridge"
    username: Optional[str] = None
    password: Optional[str] = None
    publish_topic: str = "drone/navdata"
    subscribe_topic: str = "drone/cmd/#"
    json_mode: bool = True
    keepalive: int = 60


@dataclass(slots=True)
class WebSocketConfig:
    enabled: bool = False
    host: str = "0.0.0.0"
    port: int = 8765


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"
    path: Optional[Path] = None


@dataclass(slots=True)
class BridgeConfig:
    drone: DroneConfig = field(default_factory=DroneConfig)
    mqtt: MqttConfig = field(default_factory=MqttConfig)
    websocket: WebSocketConfig = field(default_factory=WebSocketConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    path: Optional[Path] = None


def load_config(path: Optional[Path] = None) -> BridgeConfig:
    """Load configuration from disk, applying defaults where necessary."""

    config_path = path or DEFAULT_CONFIG_PATH
    defaults = BridgeConfig()
    parser = ConfigParser()
    parser.read_dict(
        {
            "drone": {
                "address": defaults.drone.address,
                "command_port": str(defaults.drone.command_port),
                "telemetry_port": str(defaults.drone.telemetry_port),
                "telemetry_interval_ms": str(defaults.drone.telemetry_interval_ms),
                "receive_timeout_s": str(defaults.drone.receive_timeout_s),
                "max_altitude_mm": str(defaults.drone.max_altitude_mm),
                "telemetry_autostart": "false",
            },
            "mqtt": {
                "broker_host": defaults.mqtt.broker_host,
                "broker_port": str(defaults.mqtt.broker_port),
                "client_id": defaults.mqtt.client_id,
                "publish_topic": defaults.mqtt.publish_topic,
                "subscribe_topic": defaults.mqtt.subscribe_topic,
                "json_mode": "true",
                "keepalive": str(defaults.mqtt.keepalive),
            },
            "websocket": {
                "enabled": "false",
                "host": defaults.websocket.host,
                "port": str(defaults.websocket.port),
            },
            "logging": {
                "level": defaults.logging.level,
            },
        }
    )

    if config_path.exists():
        parser.read(config_path)

    drone = DroneConfig(
        address=parser.get("drone", "address").strip(),
        command_port=parser.getint("drone", "command_port"),
        telemetry_port=parser.getint("drone", "telemetry_port"),
        telemetry_interval_ms=parser.getint("drone", "telemetry_interval_ms"),
        receive_timeout_s=parser.getfloat("drone", "receive_timeout_s"),
        max_altitude_mm=parser.getint("drone", "max_altitude_mm"),
        telemetry_autostart=parser.getboolean("drone", "telemetry_autostart"),
    )

    broker_host_value = parser.get("mqtt", "broker_host").strip()
    broker_port_value = parser.getint("mqtt", "broker_port")

    if ":" in broker_host_value:
        host_part, port_part = broker_host_value.rsplit(":", 1)
        try:
            parsed_port = int(port_part)
        except ValueError:
            pass
        else:
            broker_host_value = host_part
            broker_port_value = parsed_port

    mqtt = MqttConfig(
        broker_host=broker_host_value,
        broker_port=broker_port_value,
        client_id=parser.get("mqtt", "client_id"),
        username=parser.get("mqtt", "username", fallback=None),
        password=parser.get("mqtt", "password", fallback=None),
        publish_topic=parser.get("mqtt", "publish_topic").rstrip("/"),
        subscribe_topic=parser.get("mqtt", "subscribe_topic"),
        json_mode=parser.getboolean("mqtt", "json_mode"),
        keepalive=max(1, parser.getint("mqtt", "keepalive")),
    )

    websocket = WebSocketConfig(
        enabled=parser.getboolean("websocket", "enabled"),
        host=parser.get("websocket", "host"),
        port=parser.getint("websocket", "port"),
    )

    log_path = parser.get("logging", "path", fallback=None)
    logging_config = LoggingConfig(
        level=parser.get("logging", "level"),
        path=Path(log_path).expanduser() if log_path else None,
    )

    return BridgeConfig(
        drone=drone,
        mqtt=mqtt,
        websocket=websocket,
        logging=logging_config,
        path=config_path,
    )

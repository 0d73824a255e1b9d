from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import threading
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import paho.mqtt.client as mqtt
import websockets

from .ardrone_comms.link import VehicleLink
from .ardrone_comms.navdata import NavData
from .bridge_logic import action_from_topic, apply_action, parse_action, telemetry_messages
from .config import DEFAULT_CONFIG_PATH, BridgeConfig, load_config
from .logging import configure_logging

LOGGER = logging.getLogger(__name__)

CONNECT_BLINK_SECONDS = 6

ClientFactory = Callable[[str], Any]
LinkFactory = Callable[[BridgeConfig], VehicleLink]


def _default_client_factory(client_id: str) -> mqtt.Client:
    return mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=client_id)


def _default_link_factory(config: BridgeConfig) -> VehicleLink:
    drone = config.drone
    return VehicleLink(
        drone.address,
        command_port=drone.command_port,
        telemetry_port=drone.telemetry_port,
        interval_ms=drone.telemetry_interval_ms,
        receive_timeout_s=drone.receive_timeout_s,
        max_altitude_mm=drone.max_altitude_mm,
    )


class DroneBridge:
    """Republishes navdata on MQTT and turns MQTT messages into AT commands."""

    def __init__(
        self,
        config: BridgeConfig,
        link_factory: LinkFactory = _default_link_factory,
        client_factory: ClientFactory = _default_client_factory,
    ) -> None:
        self.config = config
        self._link_factory = link_factory
        self._client_factory = client_factory

        self._link: Optional[VehicleLink] = None
        self._client = None
        self._connected = threading.Event()

        self._ws_loop: Optional[asyncio.AbstractEventLoop] = None
        self._ws_thread: Optional[threading.Thread] = None
        self._ws_server = None

    @property
    def link(self) -> Optional[VehicleLink]:
        return self._link

    @property
    def connected(self) -> bool:
        return self._connected.is_set()

    def start(self) -> None:
        mqtt_config = self.config.mqtt

        self._link = self._link_factory(self.config)
        self._link.add_subscriber(self._on_navdata)

        client = self._client_factory(mqtt_config.client_id)
        client.enable_logger(LOGGER)
        if mqtt_config.username:
            client.username_pw_set(mqtt_config.username, mqtt_config.password)
        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect
        client.on_message = self._on_message
        self._client = client

        LOGGER.info("Connecting to MQTT broker %s:%s", mqtt_config.broker_host, mqtt_config.broker_port)
        client.connect_async(mqtt_config.broker_host, mqtt_config.broker_port, mqtt_config.keepalive)
        client.loop_start()

        if self.config.websocket.enabled:
            self._start_ws_server()

        if self.config.drone.telemetry_autostart:
            self._link.start_telemetry()

        # Visual feedback that the bridge owns the vehicle.
        self._link.blink(CONNECT_BLINK_SECONDS)

        LOGGER.info(
            "drone bridge ready (drone=%s, pub=%s, sub=%s, ws=%s)",
            self.config.drone.address,
            mqtt_config.publish_topic,
            mqtt_config.subscribe_topic,
            self.config.websocket.enabled,
        )

    def stop(self) -> None:
        self._stop_ws_server()

        if self._client is not None:
            self._client.disconnect()
            self._client.loop_stop()
            self._client = None
        self._connected.clear()

        if self._link is not None:
            self._link.remove_subscriber(self._on_navdata)
            self._link.close()
            self._link = None

    def handle_command(self, topic: str, payload: str) -> bool:
        """Apply one bus command. Returns False if it was ignored or failed."""
        if self._link is None:
            raise RuntimeError("bridge not started")
        try:
            action = action_from_topic(topic, payload)
        except ValueError as exc:
            LOGGER.warning("Rejected command %s=%r: %s", topic, payload, exc)
            return False
        if action is None:
            LOGGER.warning("Ignoring unknown command topic %s", topic)
            return False
        try:
            apply_action(self._link, action)
        except (OSError, ValueError) as exc:
            LOGGER.error("Command %s failed: %s", topic, exc)
            return False
        return True

    def _on_connect(self, client, userdata, flags, reason_code, properties=None) -> None:
        if reason_code != 0:
            LOGGER.error("MQTT broker rejected connection (rc=%s)", reason_code)
            return
        self._connected.set()
        client.subscribe(self.config.mqtt.subscribe_topic)
        LOGGER.info("MQTT connected, subscribed to %s", self.config.mqtt.subscribe_topic)

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None) -> None:
        self._connected.clear()
        LOGGER.info("MQTT disconnected (rc=%s)", reason_code)

    def _on_message(self, client, userdata, message) -> None:
        payload = message.payload.decode("utf-8", errors="replace")
        LOGGER.debug("MQTT: message %s=%r", message.topic, payload)
        self.handle_command(message.topic, payload)

    def _on_navdata(self, navdata: NavData) -> None:
        client = self._client
        if client is None:
            return
        mqtt_config = self.config.mqtt
        for topic, payload in telemetry_messages(navdata, mqtt_config.publish_topic, mqtt_config.json_mode):
            info = client.publish(topic, payload)
            if info.rc != mqtt.MQTT_ERR_SUCCESS:
                LOGGER.warning("MQTT publish to %s failed (rc=%s)", topic, info.rc)

    # WebSocket command endpoint -----------------------------------------

    def _start_ws_server(self) -> None:
        self._ws_loop = asyncio.new_event_loop()
        self._ws_thread = threading.Thread(target=self._ws_thread_main, daemon=True, name="drone-bridge-ws")
        self._ws_thread.start()

    def _ws_thread_main(self) -> None:
        assert self._ws_loop is not None
        asyncio.set_event_loop(self._ws_loop)
        self._ws_loop.run_until_complete(self._ws_start())
        self._ws_loop.run_forever()

    async def _ws_start(self) -> None:
        ws_config = self.config.websocket
        self._ws_server = await websockets.serve(self._ws_handler, ws_config.host, ws_config.port)
        LOGGER.info("WebSocket server listening on ws://%s:%s", ws_config.host, ws_config.port)

    async def _ws_handler(self, websocket) -> None:
        await websocket.send(json.dumps({"ok": True, "message": "drone bridge ready"}, ensure_ascii=True))
        async for raw in websocket:
            response = self.handle_ws_raw(raw)
            await websocket.send(json.dumps(response, ensure_ascii=True))

    def handle_ws_raw(self, raw: str) -> Dict[str, Any]:
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            return {"ok": False, "error": f"invalid_json: {exc}"}

        if not isinstance(data, dict):
            return {"ok": False, "error": "payload must be object"}

        name = data.get("command")
        if not isinstance(name, str) or not name.strip():
            return {"ok": False, "error": "'command' must be a non-empty string"}

        payload = data.get("payload", "")
        if not isinstance(payload, (str, int)):
            return {"ok": False, "error": "'payload' must be string or integer"}

        if self._link is None:
            return {"ok": False, "error": "bridge not started"}

        try:
            action = parse_action(name, str(payload))
            if action is None:
                return {"ok": False, "error": f"unknown command: {name}"}
            apply_action(self._link, action)
        except (OSError, ValueError) as exc:
            return {"ok": False, "error": str(exc)}

        return {"ok": True, "command": name.strip().upper()}

    def _stop_ws_server(self) -> None:
        if self._ws_loop is None:
            return
        if self._ws_server is not None:
            async def _close_ws():
                self._ws_server.close()
                await self._ws_server.wait_closed()

            fut = asyncio.run_coroutine_threadsafe(_close_ws(), self._ws_loop)
            try:
                fut.result(timeout=1.0)
            except Exception as exc:
                LOGGER.warning("WebSocket server did not close cleanly: %s", exc)
        self._ws_loop.call_soon_threadsafe(self._ws_loop.stop)
        if self._ws_thread is not None:
            self._ws_thread.join(timeout=1.0)
        self._ws_loop = None
        self._ws_thread = None
        self._ws_server = None


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="drone-bridge", description="MQTT bridge for AR.Drone 2.0")
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=DEFAULT_CONFIG_PATH,
        help=f"Path to configuration file (default: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument("--log-level", default=None, help="Override the configured log level")
    return parser


def main(argv: Optional[list] = None) -> int:
    args = build_arg_parser().parse_args(argv)
    config = load_config(args.config)
    configure_logging(args.log_level or config.logging.level, log_path=config.logging.path)

    bridge = DroneBridge(config)
    shutdown = threading.Event()
    signal.signal(signal.SIGTERM, lambda *_: shutdown.set())

    try:
        bridge.start()
        shutdown.wait()
    except KeyboardInterrupt:
        pass
    finally:
        bridge.stop()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

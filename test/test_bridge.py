import json
from types import SimpleNamespace

import paho.mqtt.client as mqtt
import pytest

from drone_bridge.ardrone_comms.navdata import ControlState, NavData, StateFlags
from drone_bridge.bridge import DroneBridge
from drone_bridge.config import BridgeConfig


class FakeLink:
    def __init__(self, fail_with: Exception = None) -> None:
        self.calls = []
        self.subscribers = []
        self.closed = False
        self.fail_with = fail_with

    def add_subscriber(self, subscriber) -> None:
        self.subscribers.append(subscriber)

    def remove_subscriber(self, subscriber) -> None:
        self.subscribers.remove(subscriber)

    def close(self) -> None:
        self.closed = True

    def __getattr__(self, name):
        def record(*args, **kwargs):
            if self.fail_with is not None and name != "blink":
                raise self.fail_with
            self.calls.append((name, args, kwargs))

        return record


class FakeMqttClient:
    def __init__(self, client_id: str, publish_rc: int = mqtt.MQTT_ERR_SUCCESS) -> None:
        self.client_id = client_id
        self.publish_rc = publish_rc
        self.events = []
        self.published = []
        self.on_connect = None
        self.on_disconnect = None
        self.on_message = None

    def enable_logger(self, logger) -> None:
        self.events.append("enable_logger")

    def username_pw_set(self, username, password=None) -> None:
        self.events.append(("auth", username, password))

    def connect_async(self, host, port, keepalive) -> None:
        self.events.append(("connect_async", host, port, keepalive))

    def loop_start(self) -> None:
        self.events.append("loop_start")

    def loop_stop(self) -> None:
        self.events.append("loop_stop")

    def disconnect(self) -> None:
        self.events.append("disconnect")

    def subscribe(self, topic, qos=0):
        self.events.append(("subscribe", topic))
        return mqtt.MQTT_ERR_SUCCESS, 1

    def publish(self, topic, payload, qos=0, retain=False):
        self.published.append((topic, payload))
        return SimpleNamespace(rc=self.publish_rc)


@pytest.fixture
def harness():
    config = BridgeConfig()
    config.mqtt.username = "pilot"
    config.mqtt.password = "secret"
    link = FakeLink()
    clients = []

    def client_factory(client_id: str) -> FakeMqttClient:
        client = FakeMqttClient(client_id)
        clients.append(client)
        return client

    bridge = DroneBridge(config, link_factory=lambda cfg: link, client_factory=client_factory)
    bridge.start()
    yield bridge, link, clients[0]
    bridge.stop()


def make_navdata() -> NavData:
    return NavData(
        sequence=8,
        state=0,
        vision_defined=False,
        flags=StateFlags(),
        control_state=ControlState.LANDED,
        battery=90,
    )


def test_start_connects_and_blinks(harness) -> None:
    bridge, link, client = harness

    assert client.client_id == "drone-bridge"
    assert client.events == [
        "enable_logger",
        ("auth", "pilot", "secret"),
        ("connect_async", "localhost", 1883, 60),
        "loop_start",
    ]
    assert link.calls == [("blink", (6,), {})]
    assert link.subscribers == [bridge._on_navdata]
    assert bridge.connected is False


def test_connect_subscribes_to_command_topic(harness) -> None:
    bridge, _, client = harness
    client.on_connect(client, None, {}, 0, None)

    assert bridge.connected is True
    assert client.events[-1] == ("subscribe", "drone/cmd/#")

    client.on_disconnect(client, None, {}, 0, None)
    assert bridge.connected is False


def test_rejected_connection_does_not_subscribe(harness) -> None:
    bridge, _, client = harness
    client.on_connect(client, None, {}, 5, None)

    assert bridge.connected is False
    assert not any(isinstance(event, tuple) and event[0] == "subscribe" for event in client.events)


def test_messages_become_commands(harness) -> None:
    _, link, client = harness
    client.on_message(client, None, SimpleNamespace(topic="drone/cmd/TAKEOFF", payload=b""))
    client.on_message(client, None, SimpleNamespace(topic="drone/cmd/CONFIG", payload=b'"video:bitrate","1000"'))
    client.on_message(client, None, SimpleNamespace(topic="drone/cmd/NAVDATA", payload=b"demo"))

    assert link.calls[1:] == [
        ("takeoff", (), {}),
        ("send_raw", ("CONFIG", '"video:bitrate","1000"'), {}),
        ("set_telemetry_mode", (True,), {}),
        ("start_telemetry", (), {"interval_ms": None}),
    ]


def test_unknown_or_invalid_messages_are_ignored(harness) -> None:
    bridge, link, _ = harness

    assert bridge.handle_command("drone/cmd/LOOP", "") is False
    assert bridge.handle_command("drone/cmd/BLINK", "later") is False
    assert link.calls == [("blink", (6,), {})]


def test_failing_command_is_reported(harness) -> None:
    bridge, link, _ = harness
    link.fail_with = OSError("network down")

    assert bridge.handle_command("drone/cmd/LAND", "") is False


def test_navdata_is_published(harness) -> None:
    bridge, link, client = harness
    link.subscribers[0](make_navdata())

    topic, payload = client.published[0]
    assert topic == "drone/navdata"
    assert json.loads(payload)["control_state"] == "LANDED"


def test_navdata_per_field_mode(harness) -> None:
    bridge, link, client = harness
    bridge.config.mqtt.json_mode = False
    link.subscribers[0](make_navdata())

    published = dict(client.published)
    assert published["drone/navdata/battery"] == "90"
    assert published["drone/navdata/sequence"] == "8"


def test_ws_commands(harness) -> None:
    bridge, link, _ = harness

    assert bridge.handle_ws_raw(json.dumps({"command": "land"})) == {"ok": True, "command": "LAND"}
    assert bridge.handle_ws_raw(json.dumps({"command": "blink", "payload": 2})) == {"ok": True, "command": "BLINK"}
    assert link.calls[-2:] == [("land", (), {}), ("blink", (2,), {})]

    assert bridge.handle_ws_raw("{nope")["ok"] is False
    assert bridge.handle_ws_raw("[1]") == {"ok": False, "error": "payload must be object"}
    assert bridge.handle_ws_raw(json.dumps({"command": ""}))["ok"] is False
    assert bridge.handle_ws_raw(json.dumps({"command": "dance"})) == {"ok": False, "error": "unknown command: dance"}
    assert bridge.handle_ws_raw(json.dumps({"command": "blink", "payload": [1]}))["ok"] is False


def test_stop_releases_link_and_client() -> None:
    link = FakeLink()
    clients = []
    bridge = DroneBridge(
        BridgeConfig(),
        link_factory=lambda cfg: link,
        client_factory=lambda cid: clients.append(FakeMqttClient(cid)) or clients[-1],
    )
    bridge.start()
    bridge.stop()

    assert link.closed is True
    assert link.subscribers == []
    assert clients[0].events[-2:] == ["disconnect", "loop_stop"]
    assert bridge.link is None


def test_autostart_telemetry() -> None:
    link = FakeLink()
    config = BridgeConfig()
    config.drone.telemetry_autostart = True
    bridge = DroneBridge(config, link_factory=lambda cfg: link, client_factory=FakeMqttClient)
    bridge.start()
    try:
        assert ("start_telemetry", (), {}) in link.calls
    finally:
        bridge.stop()

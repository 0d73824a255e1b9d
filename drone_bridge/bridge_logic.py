from __future__ import annotations

import json
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .ardrone_comms.commands import DEFAULT_BLINK_SECONDS, AtVerb
from .ardrone_comms.link import VehicleLink
from .ardrone_comms.navdata import NavData

NAMED_ACTIONS = ("RESET", "TAKEOFF", "LAND", "TRIM", "BLINK", "NAVDATA")


@dataclass(slots=True)
class BridgeAction:
    name: str
    verb: Optional[AtVerb] = None
    payload: Optional[str] = None
    blink_seconds: Optional[int] = None
    interval_ms: Optional[int] = None
    demo_only: Optional[bool] = None
    stop_telemetry: bool = False


def command_name_from_topic(topic: str) -> str:
    return topic.rstrip("/").rsplit("/", 1)[-1].strip().upper()


def parse_action(name: str, payload: str) -> Optional[BridgeAction]:
    """Translate a bus command name and its payload. Unknown names give None."""
    name = name.strip().upper()
    text = payload.strip()

    if name in AtVerb.__members__:
        return BridgeAction(name="RAW", verb=AtVerb[name], payload=text or None)

    if name not in NAMED_ACTIONS:
        return None

    if name == "BLINK":
        seconds = int(text) if text else DEFAULT_BLINK_SECONDS
        return BridgeAction(name=name, blink_seconds=max(0, seconds))

    if name == "NAVDATA":
        mode = text.lower()
        if mode == "stop":
            return BridgeAction(name=name, stop_telemetry=True)
        action = BridgeAction(name=name)
        if mode == "demo":
            action.demo_only = True
        elif mode == "all":
            action.demo_only = False
        else:
            try:
                action.interval_ms = int(mode)
            except ValueError:
                pass
        return action

    return BridgeAction(name=name)


def action_from_topic(topic: str, payload: str) -> Optional[BridgeAction]:
    return parse_action(command_name_from_topic(topic), payload)


def apply_action(link: VehicleLink, action: BridgeAction) -> None:
    if action.name == "RAW":
        link.send_raw(action.verb, action.payload)
    elif action.name == "RESET":
        link.reset()
    elif action.name == "TAKEOFF":
        link.takeoff()
    elif action.name == "LAND":
        link.land()
    elif action.name == "TRIM":
        link.flat_trim()
    elif action.name == "BLINK":
        link.blink(action.blink_seconds if action.blink_seconds is not None else DEFAULT_BLINK_SECONDS)
    elif action.name == "NAVDATA":
        if action.stop_telemetry:
            link.stop_telemetry()
            return
        if action.demo_only is not None:
            link.set_telemetry_mode(action.demo_only)
        link.start_telemetry(interval_ms=action.interval_ms)
    else:
        raise ValueError(f"Unsupported bridge action: {action.name}")


def telemetry_messages(navdata: NavData, topic: str, json_mode: bool) -> List[Tuple[str, str]]:
    data = navdata.as_dict()
    if json_mode:
        return [(topic, json.dumps(data, ensure_ascii=True))]
    return [(f"{topic}/{key}", json.dumps(value, ensure_ascii=True)) for key, value in data.items()]

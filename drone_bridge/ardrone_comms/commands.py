from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Union


DEFAULT_MAX_ALTITUDE_MM = 2000
DEFAULT_BLINK_SECONDS = 3


class AtVerb(str, Enum):
    REF = "REF"
    PCMD = "PCMD"
    CONFIG = "CONFIG"
    CTRL = "CTRL"
    FTRIM = "FTRIM"
    LED = "LED"
    ANIM = "ANIM"
    COMWDG = "COMWDG"

    @classmethod
    def parse(cls, value: Union["AtVerb", str]) -> "AtVerb":
        if isinstance(value, cls):
            return value
        try:
            return cls[str(value).strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown AT verb: {value!r}") from None


class DroneCommand(Enum):
    RESET_EMERGENCY = "reset_emergency"
    TAKEOFF = "takeoff"
    LAND = "land"
    MAX_ALTITUDE = "max_altitude"
    NAVDATA_DEMO = "navdata_demo"
    BLINK = "blink"
    FLAT_TRIM = "flat_trim"
    WATCHDOG_RESET = "watchdog_reset"
    HOVER = "hover"


@dataclass(frozen=True, slots=True)
class CommandSpec:
    verb: AtVerb
    template: Optional[str] = None


# REF payloads are the raw control words: 290717696 is the base word with
# bits 18, 20, 22, 24 and 28 set, bit 8 toggles emergency, bit 9 is takeoff.
COMMAND_TABLE: Dict[DroneCommand, CommandSpec] = {
    DroneCommand.RESET_EMERGENCY: CommandSpec(AtVerb.REF, "290717952"),
    DroneCommand.TAKEOFF: CommandSpec(AtVerb.REF, "290718208"),
    DroneCommand.LAND: CommandSpec(AtVerb.REF, "290717696"),
    DroneCommand.MAX_ALTITUDE: CommandSpec(AtVerb.CONFIG, '"control:altitude_max","{}"'),
    DroneCommand.NAVDATA_DEMO: CommandSpec(AtVerb.CONFIG, '"general:navdata_demo","{}"'),
    DroneCommand.BLINK: CommandSpec(AtVerb.LED, "20,1056964608,{}"),
    DroneCommand.FLAT_TRIM: CommandSpec(AtVerb.FTRIM),
    DroneCommand.WATCHDOG_RESET: CommandSpec(AtVerb.COMWDG),
    DroneCommand.HOVER: CommandSpec(AtVerb.PCMD, "1,0,0,0,0"),
}


def bool_arg(value: bool) -> str:
    return "TRUE" if value else "FALSE"

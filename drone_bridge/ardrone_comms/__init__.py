from .commands import AtVerb, DroneCommand
from .link import VehicleLink
from .navdata import ControlState, NavData, StateBit, StateFlags
from .protocol import decode_navdata, encode_at_command
from .transport import CommandChannel, TelemetryReceiver

__all__ = [
    "AtVerb",
    "CommandChannel",
    "ControlState",
    "DroneCommand",
    "NavData",
    "StateBit",
    "StateFlags",
    "TelemetryReceiver",
    "VehicleLink",
    "decode_navdata",
    "encode_at_command",
]

from __future__ import annotations

from dataclasses import dataclass, fields
from enum import IntEnum
from typing import Optional


class ControlState(IntEnum):
    UNKNOWN = -1
    DEFAULT = 0
    INIT = 1
    LANDED = 2
    FLYING = 3
    HOVERING = 4
    TEST = 5
    TRANS_TAKEOFF = 6
    TRANS_GOTOFIX = 7
    TRANS_LANDING = 8

    @classmethod
    def _missing_(cls, value):
        return cls.UNKNOWN


class StateBit(IntEnum):
    """Bit positions of the navdata state word.

    Positions 7, 8, 9, 14, 16 and 18 mean different things on the two vehicle
    generations. The AR.Drone 2.0 names are canonical, the 1.0 names are
    aliases of the same position.
    """

    FLYING = 0
    VIDEO_ENABLED = 1
    VISION_ENABLED = 2
    CONTROL_ALGORITHM = 3  # 0: euler angles, 1: angular speed
    ALTITUDE_CONTROL_ACTIVE = 4
    USER_FEEDBACK_ON = 5
    CONTROL_RECEIVED = 6
    CAMERA_READY = 7
    TRAVELLING_MASK = 8
    USB_KEY_READY = 9
    NAVDATA_DEMO_ONLY = 10
    NAVDATA_BOOTSTRAP = 11
    MOTORS_DOWN = 12
    COMMUNICATION_LOST = 13
    SOFTWARE_FAULT_DETECTED = 14
    BATTERY_TOO_LOW = 15
    USER_EMERGENCY_LANDING = 16
    TIMER_ELAPSED = 17
    MAGNETO_CALIBRATION_NEEDED = 18
    ANGLES_OUT_OF_RANGE = 19
    TOO_MUCH_WIND = 20
    ULTRASONIC_SENSOR_DEAF = 21
    CUTOUT_SYSTEM_DETECTED = 22
    PIC_VERSION_OK = 23
    AT_CODEC_THREAD_ON = 24
    NAVDATA_THREAD_ON = 25
    VIDEO_THREAD_ON = 26
    ACQUISITION_THREAD_ON = 27
    CONTROL_WATCHDOG_DELAYED = 28
    ADC_WATCHDOG_DELAYED = 29
    COMMUNICATION_PROBLEM_OCCURRED = 30
    EMERGENCY = 31

    # AR.Drone 1.0
    TRIM_RECEIVED = 7
    TRIM_RUNNING = 8
    TRIM_SUCCEEDED = 9
    GYROMETERS_DOWN = 14
    BATTERY_TOO_HIGH = 16
    NOT_ENOUGH_POWER = 18


@dataclass(frozen=True, slots=True)
class StateFlags:
    flying: bool = False
    video_enabled: bool = False
    vision_enabled: bool = False
    control_algorithm: bool = False
    altitude_control_active: bool = False
    user_feedback_on: bool = False
    control_received: bool = False
    camera_ready: bool = False
    travelling_mask: bool = False
    usb_key_ready: bool = False
    navdata_demo_only: bool = False
    navdata_bootstrap: bool = False
    motors_down: bool = False
    communication_lost: bool = False
    software_fault_detected: bool = False
    battery_too_low: bool = False
    user_emergency_landing: bool = False
    timer_elapsed: bool = False
    magneto_calibration_needed: bool = False
    angles_out_of_range: bool = False
    too_much_wind: bool = False
    ultrasonic_sensor_deaf: bool = False
    cutout_system_detected: bool = False
    pic_version_ok: bool = False
    at_codec_thread_on: bool = False
    navdata_thread_on: bool = False
    video_thread_on: bool = False
    acquisition_thread_on: bool = False
    control_watchdog_delayed: bool = False
    adc_watchdog_delayed: bool = False
    communication_problem_occurred: bool = False
    emergency: bool = False

    @classmethod
    def from_bitmask(cls, state: int) -> "StateFlags":
        values = {}
        for field in fields(cls):
            bit = StateBit[field.name.upper()]
            values[field.name] = bool(state & (1 << bit))
        return cls(**values)

    @property
    def trim_received(self) -> bool:
        return self.camera_ready

    @property
    def trim_running(self) -> bool:
        return self.travelling_mask

    @property
    def trim_succeeded(self) -> bool:
        return self.usb_key_ready

    @property
    def gyrometers_down(self) -> bool:
        return self.software_fault_detected

    @property
    def battery_too_high(self) -> bool:
        return self.user_emergency_landing

    @property
    def not_enough_power(self) -> bool:
        return self.magneto_calibration_needed

    def is_set(self, name: str) -> bool:
        """Look a flag up by either generation's name, e.g. ``"trim_running"``."""
        try:
            bit = StateBit[name.upper()]
        except KeyError:
            raise ValueError(f"Unknown state flag: {name!r}") from None
        # Aliases resolve to the canonical member, whose name is a field.
        return getattr(self, bit.name.lower())

    def as_dict(self) -> dict:
        return {field.name: getattr(self, field.name) for field in fields(self)}


@dataclass(frozen=True, slots=True)
class NavData:
    sequence: int
    state: int
    vision_defined: bool
    flags: StateFlags
    control_state: ControlState = ControlState.UNKNOWN
    battery: int = 0
    altitude: int = 0
    theta: float = 0.0
    phi: float = 0.0
    psi: float = 0.0
    link_quality: int = 0
    checksum: Optional[int] = None
    checksum_valid: Optional[bool] = None

    @property
    def flying(self) -> bool:
        return self.flags.flying

    @property
    def emergency(self) -> bool:
        return self.flags.emergency

    def as_dict(self) -> dict:
        return {
            "sequence": self.sequence,
            "state": self.state,
            "vision_defined": self.vision_defined,
            "control_state": self.control_state.name,
            "battery": self.battery,
            "altitude": self.altitude,
            "theta": self.theta,
            "phi": self.phi,
            "psi": self.psi,
            "link_quality": self.link_quality,
            "checksum": self.checksum,
            "checksum_valid": self.checksum_valid,
            "flags": self.flags.as_dict(),
        }

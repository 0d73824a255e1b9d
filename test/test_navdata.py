import pytest

from drone_bridge.ardrone_comms.navdata import ControlState, NavData, StateBit, StateFlags


DUAL_MEANING = {
    7: ("camera_ready", "trim_received"),
    8: ("travelling_mask", "trim_running"),
    9: ("usb_key_ready", "trim_succeeded"),
    14: ("software_fault_detected", "gyrometers_down"),
    16: ("user_emergency_landing", "battery_too_high"),
    18: ("magneto_calibration_needed", "not_enough_power"),
}


def test_state_bits_cover_every_position_once() -> None:
    assert sorted(int(bit) for bit in StateBit) == list(range(32))


@pytest.mark.parametrize("position", range(32))
def test_single_bit_sets_single_canonical_flag(position: int) -> None:
    flags = StateFlags.from_bitmask(1 << position).as_dict()
    set_names = [name for name, value in flags.items() if value]

    assert set_names == [StateBit(position).name.lower()]


@pytest.mark.parametrize("position,names", sorted(DUAL_MEANING.items()))
def test_generation_aliases_read_same_bit(position: int, names: tuple) -> None:
    current, legacy = names
    on = StateFlags.from_bitmask(1 << position)
    off = StateFlags.from_bitmask(0xFFFFFFFF & ~(1 << position))

    assert getattr(on, current) is True
    assert getattr(on, legacy) is True
    assert getattr(off, current) is False
    assert getattr(off, legacy) is False
    assert on.is_set(legacy) is True
    assert on.is_set(current.upper()) is True


def test_is_set_unknown_name() -> None:
    with pytest.raises(ValueError, match="Unknown state flag"):
        StateFlags().is_set("warp_drive")


def test_control_state_mapping() -> None:
    assert ControlState(0) is ControlState.DEFAULT
    assert ControlState(4) is ControlState.HOVERING
    assert ControlState(8) is ControlState.TRANS_LANDING
    assert ControlState(99) is ControlState.UNKNOWN
    assert ControlState(-1) is ControlState.UNKNOWN
    assert ControlState(-42) is ControlState.UNKNOWN


def test_navdata_as_dict() -> None:
    navdata = NavData(
        sequence=10,
        state=0x1,
        vision_defined=False,
        flags=StateFlags.from_bitmask(0x1),
        control_state=ControlState.LANDED,
        battery=77,
        altitude=0,
        link_quality=40,
    )
    data = navdata.as_dict()

    assert data["control_state"] == "LANDED"
    assert data["battery"] == 77
    assert data["checksum"] is None
    assert data["flags"]["flying"] is True
    assert len(data["flags"]) == 32


def test_navdata_is_immutable() -> None:
    navdata = NavData(sequence=1, state=0, vision_defined=False, flags=StateFlags())
    with pytest.raises(AttributeError):
        navdata.battery = 5

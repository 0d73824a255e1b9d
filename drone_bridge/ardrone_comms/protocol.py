from __future__ import annotations

import struct
import zlib
from dataclasses import dataclass
from typing import Optional, Union

from .commands import AtVerb
from .navdata import ControlState, NavData, StateFlags

AT_PREFIX = "AT*"
AT_TERMINATOR = "\r"

NAVDATA_HANDSHAKE = b"\x01\x00\x00\x00"
NAVDATA_MAX_PACKET_SIZE = 4096

NAVDATA_HEADER = struct.Struct("<III")
OPTION_HEADER = struct.Struct("<HH")
DEMO_OPTION = struct.Struct("<iifffi")
ALTITUDE_VISION = struct.Struct("<i")
WIFI_OPTION = struct.Struct("<I")
CHECKSUM_OPTION = struct.Struct("<i")

TAG_DEMO = 0
TAG_ALTITUDE = 10
TAG_WIFI = 26
TAG_CHECKSUM = 0xFFFF

CHECKSUM_SIZE = 4


@dataclass(frozen=True, slots=True)
class AtCommand:
    verb: AtVerb
    sequence: int
    payload: Optional[str] = None

    def encode(self) -> str:
        head = f"{AT_PREFIX}{self.verb.value}={self.sequence}"
        if self.payload is None:
            return head + AT_TERMINATOR
        return f"{head},{self.payload}{AT_TERMINATOR}"


def render_payload(template: Optional[str], *args: object) -> Optional[str]:
    if template is None:
        return None
    if args:
        return template.format(*args)
    return template


def encode_at_command(
    verb: Union[AtVerb, str], sequence: int, template: Optional[str] = None, *args: object
) -> str:
    if sequence < 1:
        raise ValueError(f"Invalid AT sequence number: {sequence}")
    return AtCommand(AtVerb.parse(verb), int(sequence), render_payload(template, *args)).encode()


def navdata_crc(data: bytes) -> int:
    """CRC-32 of a navdata datagram, excluding its trailing checksum value."""
    return zlib.crc32(data[:-CHECKSUM_SIZE]) & 0xFFFFFFFF


def decode_navdata(data: bytes) -> NavData:
    """Decode one navdata datagram.

    Options with a size field larger than what is left of the datagram are
    clamped to the remaining bytes. Unknown options, and known options too
    short for their fields, are skipped. A checksum mismatch is reported
    through ``checksum_valid`` only.
    """
    data = bytes(data)
    if len(data) < NAVDATA_HEADER.size:
        raise ValueError(f"Invalid navdata length: {len(data)}")

    state, sequence, vision = NAVDATA_HEADER.unpack_from(data, 0)
    fields = {
        "sequence": sequence,
        "state": state,
        "vision_defined": vision == 1,
        "flags": StateFlags.from_bitmask(state),
    }

    offset = NAVDATA_HEADER.size
    end = len(data)
    while end - offset >= OPTION_HEADER.size:
        tag, size = OPTION_HEADER.unpack_from(data, offset)
        offset += OPTION_HEADER.size
        payload_size = min(max(0, size - OPTION_HEADER.size), end - offset)
        payload = data[offset:offset + payload_size]
        offset += payload_size
        _apply_option(tag, payload, fields)

    checksum = fields.get("checksum")
    if checksum is not None:
        fields["checksum_valid"] = (checksum & 0xFFFFFFFF) == navdata_crc(data)

    return NavData(**fields)


def _apply_option(tag: int, payload: bytes, fields: dict) -> None:
    if tag == TAG_DEMO:
        if len(payload) < DEMO_OPTION.size:
            return
        ctrl_state, battery, theta, phi, psi, altitude = DEMO_OPTION.unpack_from(payload, 0)
        fields.update(
            control_state=ControlState(ctrl_state),
            battery=battery,
            theta=theta,
            phi=phi,
            psi=psi,
            altitude=altitude,
        )

    elif tag == TAG_ALTITUDE:
        if len(payload) < ALTITUDE_VISION.size:
            return
        fields["altitude"] = ALTITUDE_VISION.unpack_from(payload, 0)[0]

    elif tag == TAG_WIFI:
        if len(payload) < WIFI_OPTION.size:
            return
        fields["link_quality"] = WIFI_OPTION.unpack_from(payload, 0)[0]

    elif tag == TAG_CHECKSUM:
        if len(payload) < CHECKSUM_OPTION.size:
            return
        fields["checksum"] = CHECKSUM_OPTION.unpack_from(payload, 0)[0]

from __future__ import annotations

import ipaddress
import logging
from typing import Optional, Union

from .commands import DEFAULT_MAX_ALTITUDE_MM, AtVerb, DroneCommand, bool_arg
from .transport import (
    DEFAULT_COMMAND_PORT,
    DEFAULT_INTERVAL_MS,
    DEFAULT_NAVDATA_PORT,
    DEFAULT_RECEIVE_TIMEOUT_S,
    CommandChannel,
    CommandStats,
    ReceiverStats,
    Subscriber,
    TelemetryReceiver,
    check_port,
)

LOGGER = logging.getLogger(__name__)


def parse_address(address: str) -> str:
    try:
        return str(ipaddress.ip_address(str(address).strip()))
    except ValueError:
        raise ValueError(f"Invalid drone address: {address!r}") from None


class VehicleLink:
    """Command and navdata link to one vehicle.

    Construction opens both sockets and sends the safety preamble on the
    command channel; it either succeeds completely or raises.
    """

    def __init__(
        self,
        address: str,
        command_port: int = DEFAULT_COMMAND_PORT,
        telemetry_port: int = DEFAULT_NAVDATA_PORT,
        interval_ms: int = DEFAULT_INTERVAL_MS,
        receive_timeout_s: float = DEFAULT_RECEIVE_TIMEOUT_S,
        max_altitude_mm: int = DEFAULT_MAX_ALTITUDE_MM,
    ) -> None:
        self.address = parse_address(address)
        self.command_port = check_port(command_port)
        self.telemetry_port = check_port(telemetry_port)

        self._commands = CommandChannel(self.address, self.command_port, max_altitude_mm=max_altitude_mm)
        try:
            self._telemetry = TelemetryReceiver(
                self.address,
                self.telemetry_port,
                interval_ms=interval_ms,
                receive_timeout_s=receive_timeout_s,
            )
        except (OSError, ValueError):
            self._commands.close()
            raise

        LOGGER.info(
            "Vehicle link ready (address=%s, commands=%s, navdata=%s)",
            self.address,
            self.command_port,
            self.telemetry_port,
        )

    @property
    def commands(self) -> CommandChannel:
        return self._commands

    @property
    def telemetry(self) -> TelemetryReceiver:
        return self._telemetry

    def takeoff(self) -> str:
        return self._commands.send_command(DroneCommand.TAKEOFF)

    def land(self) -> str:
        return self._commands.send_command(DroneCommand.LAND)

    def reset(self) -> str:
        return self._commands.send_command(DroneCommand.RESET_EMERGENCY)

    def blink(self, seconds: int) -> str:
        return self._commands.send_command(DroneCommand.BLINK, int(seconds))

    def flat_trim(self) -> str:
        return self._commands.send_command(DroneCommand.FLAT_TRIM)

    def hover(self) -> str:
        return self._commands.send_command(DroneCommand.HOVER)

    def reset_watchdog(self) -> str:
        return self._commands.send_command(DroneCommand.WATCHDOG_RESET)

    def set_max_altitude(self, millimeters: int) -> str:
        return self._commands.send_command(DroneCommand.MAX_ALTITUDE, int(millimeters))

    def set_telemetry_mode(self, demo_only: bool) -> str:
        return self._commands.send_command(DroneCommand.NAVDATA_DEMO, bool_arg(demo_only))

    def send_raw(self, verb: Union[AtVerb, str], payload: Optional[str] = None) -> str:
        return self._commands.send_raw(verb, payload)

    def add_subscriber(self, subscriber: Subscriber) -> None:
        self._telemetry.add_subscriber(subscriber)

    def remove_subscriber(self, subscriber: Subscriber) -> None:
        self._telemetry.remove_subscriber(subscriber)

    @property
    def telemetry_interval_ms(self) -> int:
        return self._telemetry.interval_ms

    @telemetry_interval_ms.setter
    def telemetry_interval_ms(self, value: int) -> None:
        self._telemetry.interval_ms = value

    @property
    def telemetry_running(self) -> bool:
        return self._telemetry.running

    def start_telemetry(self, subscriber: Optional[Subscriber] = None, interval_ms: Optional[int] = None) -> None:
        if interval_ms is not None:
            self._telemetry.interval_ms = interval_ms
        if subscriber is not None:
            self._telemetry.add_subscriber(subscriber)
        self._telemetry.start()

    def stop_telemetry(self) -> None:
        self._telemetry.stop()

    def get_command_stats(self) -> CommandStats:
        return self._commands.get_stats()

    def get_telemetry_stats(self) -> ReceiverStats:
        return self._telemetry.get_stats()

    def close(self) -> None:
        self._telemetry.close()
        self._commands.close()

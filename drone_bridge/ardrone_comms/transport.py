from __future__ import annotations

import logging
import socket
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Tuple, Union

from .commands import COMMAND_TABLE, DEFAULT_MAX_ALTITUDE_MM, AtVerb, DroneCommand
from .navdata import NavData
from .protocol import (
    NAVDATA_HANDSHAKE,
    NAVDATA_MAX_PACKET_SIZE,
    decode_navdata,
    encode_at_command,
)

LOGGER = logging.getLogger(__name__)

DEFAULT_COMMAND_PORT = 5556
DEFAULT_NAVDATA_PORT = 5554
DEFAULT_INTERVAL_MS = 1000
DEFAULT_RECEIVE_TIMEOUT_S = 3.0
RX_ERROR_PAUSE_S = 0.05

Subscriber = Callable[[NavData], None]


@dataclass(slots=True)
class CommandStats:
    tx_ok: int = 0
    tx_errors: int = 0


@dataclass(slots=True)
class ReceiverStats:
    frames_ok: int = 0
    frames_dispatched: int = 0
    decode_errors: int = 0
    checksum_mismatches: int = 0
    timeouts: int = 0
    rx_errors: int = 0


class ReceiverState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


def check_port(port: int) -> int:
    port = int(port)
    if not 1 <= port <= 65535:
        raise ValueError(f"Invalid UDP port: {port}")
    return port


def _udp_socket(timeout_s: Optional[float] = None) -> socket.socket:
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    if timeout_s is not None:
        sock.settimeout(timeout_s)
    return sock


class CommandChannel:
    """Sequenced AT command sender over UDP.

    On construction the vehicle is capped to ``max_altitude_mm`` and any
    emergency state is reset before callers get a chance to send anything.
    """

    def __init__(
        self,
        address: str,
        port: int = DEFAULT_COMMAND_PORT,
        max_altitude_mm: int = DEFAULT_MAX_ALTITUDE_MM,
        sock: Optional[socket.socket] = None,
    ) -> None:
        self.address = address
        self.port = check_port(port)
        self._target = (self.address, self.port)

        self._sequence = 0
        self._sequence_lock = threading.Lock()

        self._stats = CommandStats()
        self._stats_lock = threading.Lock()

        self._sock = sock if sock is not None else _udp_socket()
        self._closed = False

        try:
            self.send_command(DroneCommand.MAX_ALTITUDE, int(max_altitude_mm))
            self.send_command(DroneCommand.RESET_EMERGENCY)
        except OSError:
            self.close()
            raise

    def next_sequence(self) -> int:
        with self._sequence_lock:
            self._sequence += 1
            return self._sequence

    def format_command(self, verb: Union[AtVerb, str], template: Optional[str] = None, *args: object) -> str:
        verb = AtVerb.parse(verb)
        return encode_at_command(verb, self.next_sequence(), template, *args)

    def send(self, command: str) -> None:
        payload = command.encode("ascii")
        try:
            self._sock.sendto(payload, self._target)
        except OSError:
            with self._stats_lock:
                self._stats.tx_errors += 1
            LOGGER.warning("Failed to send %r to %s:%s", command, self.address, self.port)
            raise
        with self._stats_lock:
            self._stats.tx_ok += 1
        LOGGER.debug("[TX] %s:%s %r", self.address, self.port, command)

    def send_command(self, command: DroneCommand, *args: object) -> str:
        entry = COMMAND_TABLE[command]
        wire = self.format_command(entry.verb, entry.template, *args)
        self.send(wire)
        return wire

    def send_raw(self, verb: Union[AtVerb, str], payload: Optional[str] = None) -> str:
        wire = self.format_command(verb, payload)
        self.send(wire)
        return wire

    def get_stats(self) -> CommandStats:
        with self._stats_lock:
            return CommandStats(tx_ok=self._stats.tx_ok, tx_errors=self._stats.tx_errors)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._sock.close()


class SubscriberRegistry:
    def __init__(self) -> None:
        self._subscribers: List[Subscriber] = []
        self._lock = threading.Lock()

    def add(self, subscriber: Subscriber) -> None:
        with self._lock:
            if subscriber not in self._subscribers:
                self._subscribers.append(subscriber)

    def remove(self, subscriber: Subscriber) -> None:
        with self._lock:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

    def snapshot(self) -> Tuple[Subscriber, ...]:
        with self._lock:
            return tuple(self._subscribers)

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscribers)


class TelemetryReceiver:
    """Background navdata receiver.

    The vehicle only streams navdata while it keeps receiving the handshake
    datagram, so the handshake is resent after every receive timeout.
    Frames are pushed to subscribers at most once per ``interval_ms``.
    """

    def __init__(
        self,
        address: str,
        port: int = DEFAULT_NAVDATA_PORT,
        interval_ms: int = DEFAULT_INTERVAL_MS,
        receive_timeout_s: float = DEFAULT_RECEIVE_TIMEOUT_S,
        sock: Optional[socket.socket] = None,
    ) -> None:
        if receive_timeout_s <= 0:
            raise ValueError("receive_timeout_s must be > 0")

        self.address = address
        self.port = check_port(port)
        self._target = (self.address, self.port)
        self.receive_timeout_s = float(receive_timeout_s)
        self._interval_ms = int(interval_ms)

        self._sock = sock if sock is not None else _udp_socket(self.receive_timeout_s)

        self.subscribers = SubscriberRegistry()

        self._stats = ReceiverStats()
        self._stats_lock = threading.Lock()

        self._state = ReceiverState.IDLE
        self._state_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def interval_ms(self) -> int:
        return self._interval_ms

    @interval_ms.setter
    def interval_ms(self, value: int) -> None:
        self._interval_ms = int(value)

    @property
    def state(self) -> ReceiverState:
        with self._state_lock:
            return self._state

    @property
    def running(self) -> bool:
        return self.state is ReceiverState.RUNNING

    def add_subscriber(self, subscriber: Subscriber) -> None:
        self.subscribers.add(subscriber)

    def remove_subscriber(self, subscriber: Subscriber) -> None:
        self.subscribers.remove(subscriber)

    def start(self) -> None:
        with self._state_lock:
            if self._state is ReceiverState.RUNNING:
                return
            previous = self._thread

        # A stopped worker may still sit in recvfrom; wait it out so only one
        # thread ever reads the socket. A subscriber restarting from inside
        # the worker cannot join itself; that worker exits after its dispatch.
        if previous is not None and previous.is_alive() and previous is not threading.current_thread():
            previous.join()

        with self._state_lock:
            if self._state is ReceiverState.RUNNING:
                return
            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._rx_loop,
                args=(self._stop_event,),
                name="ardrone-navdata",
                daemon=True,
            )
            self._state = ReceiverState.RUNNING
            self._thread.start()

    def stop(self) -> None:
        with self._state_lock:
            if self._state is not ReceiverState.RUNNING:
                return
            self._state = ReceiverState.STOPPED
            self._stop_event.set()

    def join(self, timeout: Optional[float] = None) -> bool:
        thread = self._thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def close(self) -> None:
        self.stop()
        self.join(self.receive_timeout_s + 1.0)
        self._sock.close()

    def get_stats(self) -> ReceiverStats:
        with self._stats_lock:
            return ReceiverStats(
                frames_ok=self._stats.frames_ok,
                frames_dispatched=self._stats.frames_dispatched,
                decode_errors=self._stats.decode_errors,
                checksum_mismatches=self._stats.checksum_mismatches,
                timeouts=self._stats.timeouts,
                rx_errors=self._stats.rx_errors,
            )

    def _send_handshake(self) -> None:
        try:
            self._sock.sendto(NAVDATA_HANDSHAKE, self._target)
        except OSError as exc:
            LOGGER.warning("Navdata handshake to %s:%s failed: %s", self.address, self.port, exc)

    def _dispatch(self, navdata: NavData) -> None:
        for subscriber in self.subscribers.snapshot():
            try:
                subscriber(navdata)
            except Exception:
                LOGGER.exception("Navdata subscriber %r failed", subscriber)
        with self._stats_lock:
            self._stats.frames_dispatched += 1

    def _handle_datagram(self, data: bytes, last_dispatch: float) -> float:
        try:
            navdata = decode_navdata(data)
        except ValueError as exc:
            LOGGER.debug("Failed to parse navdata: %s", exc)
            with self._stats_lock:
                self._stats.decode_errors += 1
            return last_dispatch

        with self._stats_lock:
            self._stats.frames_ok += 1
            if navdata.checksum_valid is False:
                self._stats.checksum_mismatches += 1
        if navdata.checksum_valid is False:
            LOGGER.debug("Navdata checksum mismatch (seq=%s)", navdata.sequence)

        now = time.monotonic()
        interval_ms = self._interval_ms
        if interval_ms <= 0 or (now - last_dispatch) * 1000.0 > interval_ms:
            self._dispatch(navdata)
            return now
        return last_dispatch

    def _rx_loop(self, stop_event: threading.Event) -> None:
        LOGGER.info("Starting navdata receiver for %s:%s", self.address, self.port)
        try:
            self._receive_until(stop_event)
        except Exception:
            LOGGER.exception("Navdata receiver for %s:%s crashed", self.address, self.port)
        finally:
            with self._state_lock:
                stop_event.set()
                # Only the current run owns the state; a newer run may already be going.
                if self._stop_event is stop_event:
                    self._state = ReceiverState.STOPPED
        LOGGER.info("Stopped navdata receiver for %s:%s", self.address, self.port)

    def _receive_until(self, stop_event: threading.Event) -> None:
        self._send_handshake()
        last_dispatch = time.monotonic()

        while not stop_event.is_set():
            try:
                data, _ = self._sock.recvfrom(NAVDATA_MAX_PACKET_SIZE)
            except socket.timeout:
                LOGGER.debug("Navdata timeout, resending handshake")
                with self._stats_lock:
                    self._stats.timeouts += 1
                self._send_handshake()
                continue
            except OSError as exc:
                LOGGER.warning("Navdata receive failed: %s", exc)
                with self._stats_lock:
                    self._stats.rx_errors += 1
                stop_event.wait(RX_ERROR_PAUSE_S)
                continue

            last_dispatch = self._handle_datagram(data, last_dispatch)

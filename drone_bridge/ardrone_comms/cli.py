from __future__ import annotations

import argparse
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from ..logging import configure_logging
from .link import VehicleLink
from .navdata import NavData
from .transport import (
    DEFAULT_COMMAND_PORT,
    DEFAULT_INTERVAL_MS,
    DEFAULT_NAVDATA_PORT,
    DEFAULT_RECEIVE_TIMEOUT_S,
)


HELP_TEXT = """Comandos:
  help
  status
  takeoff
  land
  reset
  trim
  hover
  blink <segundos>
  altitude <mm>
  navdata demo|all|stop|<intervalo_ms>
  watch on|off
  raw <VERBO> [payload]
  quit
"""


class SessionLogger:
    """JSONL log of typed commands. Navdata is never written."""

    def __init__(self, path: Optional[str]) -> None:
        self._path = Path(path).expanduser() if path else None
        self._file = None
        if self._path is not None:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._file = self._path.open("a", encoding="utf-8")

    def write(self, event: str, command: str, extra: Optional[dict] = None) -> None:
        if self._file is None:
            return
        payload = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "event": event,
            "command": command,
            "extra": extra or {},
        }
        self._file.write(json.dumps(payload, ensure_ascii=True) + "\n")
        self._file.flush()

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None


def _parse_on_off(raw: str) -> bool:
    if raw == "on":
        return True
    if raw == "off":
        return False
    raise ValueError("expected 'on' or 'off'")


def format_navdata(navdata: Optional[NavData]) -> str:
    if navdata is None:
        return "navdata: N/A"
    checksum = "n/a" if navdata.checksum_valid is None else ("ok" if navdata.checksum_valid else "bad")
    return (
        "navdata: "
        f"seq={navdata.sequence} "
        f"ctrl={navdata.control_state.name} "
        f"bat={navdata.battery}% "
        f"alt={navdata.altitude}mm "
        f"theta={navdata.theta:.2f} "
        f"phi={navdata.phi:.2f} "
        f"psi={navdata.psi:.2f} "
        f"link={navdata.link_quality} "
        f"flying={int(navdata.flags.flying)} "
        f"emergency={int(navdata.flags.emergency)} "
        f"cks={checksum} "
        f"state=0x{navdata.state:08X}"
    )


class _Watcher:
    def __init__(self) -> None:
        self.enabled = False

    def __call__(self, navdata: NavData) -> None:
        if self.enabled:
            print(format_navdata(navdata))


def handle_command(link: VehicleLink, raw: str, watcher: _Watcher) -> bool:
    """Run one console line against ``link``. Returns False on quit."""
    parts = raw.split(maxsplit=2)
    cmd = parts[0].lower()

    if cmd == "help":
        print(HELP_TEXT, end="")

    elif cmd == "status":
        tx = link.get_command_stats()
        rx = link.get_telemetry_stats()
        print(
            "stats: "
            f"navdata={'on' if link.telemetry_running else 'off'} "
            f"interval={link.telemetry_interval_ms}ms "
            f"tx_ok={tx.tx_ok} tx_err={tx.tx_errors} "
            f"rx_ok={rx.frames_ok} rx_sent={rx.frames_dispatched} "
            f"rx_bad={rx.decode_errors} rx_cks={rx.checksum_mismatches} "
            f"rx_timeout={rx.timeouts} rx_err={rx.rx_errors}"
        )

    elif cmd == "takeoff":
        print(link.takeoff().strip())

    elif cmd == "land":
        print(link.land().strip())

    elif cmd == "reset":
        print(link.reset().strip())

    elif cmd == "trim":
        print(link.flat_trim().strip())

    elif cmd == "hover":
        print(link.hover().strip())

    elif cmd == "blink":
        if len(parts) != 2:
            raise ValueError("uso: blink <segundos>")
        print(link.blink(int(parts[1])).strip())

    elif cmd == "altitude":
        if len(parts) != 2:
            raise ValueError("uso: altitude <mm>")
        print(link.set_max_altitude(int(parts[1])).strip())

    elif cmd == "navdata":
        if len(parts) != 2:
            raise ValueError("uso: navdata demo|all|stop|<intervalo_ms>")
        mode = parts[1].lower()
        if mode == "stop":
            link.stop_telemetry()
            print("navdata=off")
        else:
            if mode == "demo":
                link.set_telemetry_mode(True)
            elif mode == "all":
                link.set_telemetry_mode(False)
            else:
                link.telemetry_interval_ms = int(mode)
            link.start_telemetry(watcher)
            print(f"navdata=on interval={link.telemetry_interval_ms}ms")

    elif cmd == "watch":
        if len(parts) != 2:
            raise ValueError("uso: watch on|off")
        watcher.enabled = _parse_on_off(parts[1].lower())
        print(f"watch={'on' if watcher.enabled else 'off'}")

    elif cmd == "raw":
        if len(parts) < 2:
            raise ValueError("uso: raw <VERBO> [payload]")
        payload = parts[2] if len(parts) == 3 else None
        print(link.send_raw(parts[1], payload).strip())

    elif cmd == "quit":
        print("saliendo...")
        return False

    else:
        print("comando no reconocido. usa: help")

    return True


def run_cli(args: argparse.Namespace) -> int:
    configure_logging(args.log_level)
    link = VehicleLink(
        args.address,
        command_port=args.command_port,
        telemetry_port=args.telemetry_port,
        interval_ms=args.interval_ms,
        receive_timeout_s=args.receive_timeout,
    )
    logger = SessionLogger(args.log_file)
    watcher = _Watcher()
    link.add_subscriber(watcher)

    try:
        print("AR.Drone listo. Escribe 'help' para ver comandos.")

        while True:
            try:
                raw = input("drone> ").strip()
            except EOFError:
                raw = "quit"

            if not raw:
                continue

            try:
                keep_going = handle_command(link, raw, watcher)
            except ValueError as exc:
                print(f"error: {exc}")
                continue
            except OSError as exc:
                print(f"error de red: {exc}")
                continue

            logger.write(event="command", command=raw, extra={"interval_ms": link.telemetry_interval_ms})
            if not keep_going:
                break

    except KeyboardInterrupt:
        print("\ninterrumpido por usuario")

    finally:
        link.close()
        logger.close()

    return 0


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Consola UDP para AR.Drone 2.0")
    parser.add_argument("--address", default="192.168.1.1", help="IP del drone (default: 192.168.1.1)")
    parser.add_argument(
        "--command-port", type=int, default=DEFAULT_COMMAND_PORT, help="Puerto UDP de comandos AT (default: 5556)"
    )
    parser.add_argument(
        "--telemetry-port", type=int, default=DEFAULT_NAVDATA_PORT, help="Puerto UDP de navdata (default: 5554)"
    )
    parser.add_argument(
        "--interval-ms",
        type=int,
        default=DEFAULT_INTERVAL_MS,
        help="Intervalo mínimo entre actualizaciones de navdata, 0 = todas (default: 1000)",
    )
    parser.add_argument(
        "--receive-timeout",
        type=float,
        default=DEFAULT_RECEIVE_TIMEOUT_S,
        help="Timeout de recepción de navdata en segundos (default: 3.0)",
    )
    parser.add_argument("--log-level", default="WARNING", help="Nivel de logging (default: WARNING)")
    parser.add_argument("--log-file", default=None, help="Ruta opcional para log JSONL de sesión")
    return parser

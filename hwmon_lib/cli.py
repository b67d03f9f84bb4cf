"""Interactive entry point: run the monitor in the foreground until interrupted."""

import argparse
import dataclasses
import logging
import os
import signal
import sys
import threading
import time
from typing import List, Optional

from serial.tools import list_ports

from hwmon_lib import protocol, sensors
from hwmon_lib.config import load_settings
from hwmon_lib.errors import HWMonError, StartupError
from hwmon_lib.models import MonitorSettings
from hwmon_lib.monitor import MonitorService
from hwmon_lib.sensors import PsutilHardwareSource

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# psutil CPU load is measured between calls; the first call only primes it
LOAD_SAMPLE_DELAY = 0.1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hwmon-serial",
        description="Stream CPU/GPU temperature and load to a serial device",
    )
    parser.add_argument("--port", help="Serial port (overrides HWMON_SERIAL_PORT)")
    parser.add_argument("--baud", type=int, help="Baud rate (overrides HWMON_BAUD_RATE)")
    parser.add_argument(
        "--interval-ms",
        type=int,
        help="Back-off after a failed cycle in ms (overrides HWMON_MONITORING_INTERVAL_MS)",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="Logging level (default: LOG_LEVEL or INFO)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Print one frame to stdout and exit without opening the serial port",
    )
    parser.add_argument("--list-ports", action="store_true", help="List serial ports and exit")
    return parser


def apply_overrides(settings: MonitorSettings, args: argparse.Namespace) -> MonitorSettings:
    """Return settings with command-line values taking precedence."""
    overrides = {}
    if args.port:
        overrides["port"] = args.port
    if args.baud is not None and args.baud > 0:
        overrides["baud_rate"] = args.baud
    if args.interval_ms is not None and args.interval_ms > 0:
        overrides["monitoring_interval_ms"] = args.interval_ms
    return dataclasses.replace(settings, **overrides) if overrides else settings


def print_ports() -> None:
    ports = list_ports.comports()
    if not ports:
        print("No serial ports found")
        return
    for port in ports:
        print(f"{port.device}\t{port.description}")


def print_single_frame() -> None:
    source = PsutilHardwareSource()
    source.open()
    try:
        time.sleep(LOAD_SAMPLE_DELAY)
        frame = protocol.format_frame(sensors.sample(source))
    finally:
        source.close()
    sys.stdout.write(frame)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format=LOG_FORMAT,
    )

    if args.list_ports:
        print_ports()
        return 0

    if args.once:
        try:
            print_single_frame()
        except HWMonError as e:
            logger.error(f"Could not sample hardware: {e}")
            return 1
        return 0

    settings = apply_overrides(load_settings(), args)
    service = MonitorService(settings)
    stop_event = threading.Event()

    def _request_stop(signum, frame) -> None:
        logger.info(f"Received signal {signum}, stopping...")
        stop_event.set()

    signal.signal(signal.SIGINT, _request_stop)
    signal.signal(signal.SIGTERM, _request_stop)

    try:
        service.run_until_stopped(stop_event)
    except StartupError as e:
        logger.error(str(e))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

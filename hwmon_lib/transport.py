"""Serial transport lifecycle for the telemetry link."""

import logging
import threading
from enum import Enum
from typing import Protocol

import serial

from hwmon_lib.errors import SerialIOError
from hwmon_lib.models import MonitorSettings
from hwmon_lib.protocol import IO_TIMEOUT

logger = logging.getLogger(__name__)


class SerialLike(Protocol):
    """Protocol for serial port interface (allows test doubles)."""

    port: str

    def open(self) -> None:
        """Open the configured port."""
        ...

    def write(self, data: bytes) -> int:
        """Write bytes to serial port."""
        ...

    def flush(self) -> None:
        """Flush output buffer (force transmission)."""
        ...

    def close(self) -> None:
        """Close serial port."""
        ...

    @property
    def is_open(self) -> bool:
        """Check if port is open."""
        ...


class SendResult(Enum):
    """Outcome of a single frame transmission."""

    SENT = "sent"
    TIMEOUT = "timeout"
    FAILED = "failed"


def build_serial(settings: MonitorSettings) -> serial.Serial:
    """Create a configured but unopened pyserial port.

    The port name is assigned after construction so pyserial does not open
    the device here; opening happens lazily in SerialConnection.ensure_open().

    Raises:
        SerialIOError: If pyserial rejects the framing parameters
    """
    try:
        ser = serial.Serial(
            baudrate=settings.baud_rate,
            bytesize=settings.data_bits,
            parity=settings.parity.value,
            stopbits=settings.stop_bits.value,
            timeout=IO_TIMEOUT,
            write_timeout=IO_TIMEOUT,
            rtscts=False,
            dsrdtr=False,
            xonxoff=False,
        )
        ser.port = settings.port
    except (ValueError, serial.SerialException) as e:
        raise SerialIOError(f"Invalid serial settings for {settings.port}: {e}") from e
    return ser


class SerialConnection:
    """Owns one serial port and hides transient faults from the caller.

    Tracks whether the port is open and how many consecutive open attempts
    have failed. None of the public methods raise on I/O errors; they report
    through the log and their return values instead.
    """

    def __init__(self, serial_port: SerialLike) -> None:
        """Initialize with an unopened serial port.

        Args:
            serial_port: Object implementing SerialLike protocol
                        (e.g., serial.Serial or FakeSerial for testing)
        """
        self._port = serial_port
        self._lock = threading.RLock()
        self._failure_count = 0

    @classmethod
    def from_settings(cls, settings: MonitorSettings) -> "SerialConnection":
        """Build a connection for a real serial port (not opened yet).

        Raises:
            SerialIOError: If the port object cannot be constructed
        """
        return cls(build_serial(settings))

    @property
    def port_name(self) -> str:
        return self._port.port

    @property
    def is_open(self) -> bool:
        """Check if port is currently open."""
        return self._port.is_open

    @property
    def failure_count(self) -> int:
        """Consecutive failed open attempts since the last success."""
        return self._failure_count

    def ensure_open(self) -> bool:
        """Open the port if it is closed.

        Returns:
            True when the port is open and ready for send()
        """
        with self._lock:
            if self._port.is_open:
                return True

            try:
                self._port.open()
            except Exception as e:
                self._failure_count += 1
                logger.warning(
                    f"Failed to open serial port {self.port_name} "
                    f"(attempt {self._failure_count}): {e}"
                )
                return False

            if self._failure_count:
                logger.info(
                    f"Serial port {self.port_name} opened after "
                    f"{self._failure_count} failed attempts"
                )
            else:
                logger.info(f"Serial port {self.port_name} opened")
            self._failure_count = 0
            return True

    def send(self, payload: str) -> SendResult:
        """Write one complete frame.

        A write timeout is expected when the device is idle and is not
        treated as a fault.

        Args:
            payload: Frame text

        Returns:
            SendResult describing the outcome
        """
        data = payload.encode("ascii", errors="replace")

        with self._lock:
            if not self._port.is_open:
                logger.warning(f"Serial port {self.port_name} is not open, cannot send data")
                return SendResult.FAILED

            try:
                sent = self._port.write(data)
                self._port.flush()
            except serial.SerialTimeoutException as e:
                logger.debug(f"Write timeout on {self.port_name}, frame dropped: {e}")
                return SendResult.TIMEOUT
            except Exception as e:
                logger.warning(f"Failed to write to {self.port_name}: {e}")
                return SendResult.FAILED

        logger.debug(f"Sent {sent} bytes to {self.port_name}: {payload!r}")
        return SendResult.SENT

    def recover(self) -> None:
        """Close an unhealthy port so the next ensure_open() starts fresh."""
        with self._lock:
            if self._port.is_open:
                logger.info(f"Closing serial port {self.port_name} for recovery")
                self._close_quietly()

    def close(self) -> None:
        """Close the port. Safe to call repeatedly or on a closed port."""
        with self._lock:
            if self._port.is_open:
                self._close_quietly()
                logger.info(f"Closed serial port {self.port_name}")

    def _close_quietly(self) -> None:
        try:
            self._port.close()
        except Exception as e:
            logger.debug(f"Ignoring error while closing {self.port_name}: {e}")

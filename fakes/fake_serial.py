"""Fake serial port that records frames written by the monitor.

Mirrors the subset of the pyserial API used by SerialConnection and can be
switched into failure modes to exercise recovery paths.
"""

import logging
import threading
from typing import List

import serial

logger = logging.getLogger(__name__)


class FakeSerial:
    """In-memory stand-in for an unopened serial.Serial.

    Failure switches:
        fail_open: open() raises SerialException
        fail_write: write() raises SerialException
        timeout_write: write() raises SerialTimeoutException
        fail_close: close() raises OSError (port is still marked closed)
    """

    def __init__(self, port: str = "/dev/ttyFAKE0", baudrate: int = 9600) -> None:
        self.port = port
        self.baudrate = baudrate

        self.fail_open = False
        self.fail_write = False
        self.timeout_write = False
        self.fail_close = False

        self.is_open = False
        self.open_calls = 0
        self.close_calls = 0
        self.written: List[bytes] = []
        self._lock = threading.Lock()

    def open(self) -> None:
        self.open_calls += 1
        if self.fail_open:
            raise serial.SerialException(f"could not open port {self.port}")
        if self.is_open:
            raise serial.SerialException("Port is already open.")
        self.is_open = True
        logger.debug("FakeSerial opened")

    def close(self) -> None:
        self.close_calls += 1
        self.is_open = False
        if self.fail_close:
            raise OSError("device disconnected")
        logger.debug("FakeSerial closed")

    def write(self, data: bytes) -> int:
        if not self.is_open:
            raise serial.PortNotOpenError()
        if self.timeout_write:
            raise serial.SerialTimeoutException("Write timeout")
        if self.fail_write:
            raise serial.SerialException("write failed: device reports readiness to read but returned no data")

        with self._lock:
            self.written.append(bytes(data))
        return len(data)

    def flush(self) -> None:
        pass

    @property
    def frames(self) -> List[str]:
        """Decoded payloads in the order they were written."""
        with self._lock:
            return [chunk.decode("ascii") for chunk in self.written]

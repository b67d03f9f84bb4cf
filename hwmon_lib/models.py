"""Data models for the hardware monitor library."""

import os
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ServiceState(Enum):
    """Monitor service lifecycle states."""

    STOPPED = "stopped"
    RUNNING = "running"


class Parity(Enum):
    """Serial parity modes. Values match pyserial's PARITY_* constants."""

    NONE = "N"
    ODD = "O"
    EVEN = "E"
    MARK = "M"
    SPACE = "S"


class StopBits(Enum):
    """Serial stop bit counts. Values match pyserial's STOPBITS_* constants."""

    ONE = 1
    ONE_POINT_FIVE = 1.5
    TWO = 2


class HardwareCategory(Enum):
    """Kind of hardware unit a sensor belongs to."""

    CPU = "CPU"
    GPU = "GPU"
    OTHER = "OTHER"


class SensorKind(Enum):
    """Measurement kind reported by a sensor."""

    TEMPERATURE = "TEMP"
    LOAD = "LOAD"
    OTHER = "OTHER"


DEFAULT_PORT = "COM1" if os.name == "nt" else "/dev/ttyUSB0"


@dataclass(frozen=True)
class MonitorSettings:
    """Static settings held for the lifetime of the process.

    Attributes:
        port: Serial device name (e.g., "COM3" or "/dev/ttyUSB0").
        baud_rate: Line speed in baud.
        data_bits: Data bits per character (5-8).
        parity: Parity mode.
        stop_bits: Stop bit count.
        monitoring_interval_ms: Wait after a failed cycle before retrying.
            Not the steady-state sampling period (see monitor.run_loop).
    """

    port: str = DEFAULT_PORT
    baud_rate: int = 9600
    data_bits: int = 8
    parity: Parity = Parity.NONE
    stop_bits: StopBits = StopBits.ONE
    monitoring_interval_ms: int = 1000

    @property
    def monitoring_interval_s(self) -> float:
        """Back-off interval in seconds."""
        return self.monitoring_interval_ms / 1000.0


@dataclass(frozen=True)
class SensorReading:
    """One sensor value captured during a sampling cycle.

    Attributes:
        category: Owning hardware category.
        name: Human-readable sensor name (e.g., "Core Max").
        kind: Measurement kind.
        value: Current value, or None when the sensor has no reading.
    """

    category: HardwareCategory
    name: str
    kind: SensorKind
    value: Optional[float] = None

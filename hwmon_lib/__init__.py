"""
hwmon_lib - Streams CPU/GPU temperature and load to a serial display device.

Frames use the line-oriented HWMON protocol (see hwmon_lib.protocol).
"""

from hwmon_lib.config import load_settings
from hwmon_lib.errors import (
    HWMonError,
    SensorReadError,
    SerialIOError,
    ServiceStateError,
    StartupError,
)
from hwmon_lib.models import (
    HardwareCategory,
    MonitorSettings,
    Parity,
    SensorKind,
    SensorReading,
    ServiceState,
    StopBits,
)
from hwmon_lib.monitor import CancellationToken, MonitorService, run_loop
from hwmon_lib.protocol import format_frame
from hwmon_lib.transport import SendResult, SerialConnection

__version__ = "0.1.0"

__all__ = [
    "MonitorService",
    "MonitorSettings",
    "SerialConnection",
    "SendResult",
    "CancellationToken",
    "run_loop",
    "format_frame",
    "load_settings",
    "SensorReading",
    "HardwareCategory",
    "SensorKind",
    "Parity",
    "StopBits",
    "ServiceState",
    "HWMonError",
    "SerialIOError",
    "SensorReadError",
    "StartupError",
    "ServiceStateError",
]

"""Wire protocol constants and frame encoding for the HWMON line protocol.

One frame is sent per sampling cycle:

    HWMON:<yyyy-MM-dd HH:mm:ss>\\n
    (<CPU|GPU>_<TEMP|LOAD>:<name>:<value.1f><C|%>\\n)*
    END\\n
"""

import math
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Final, Iterable, Optional

from hwmon_lib.models import HardwareCategory, SensorKind, SensorReading

# ============================================================================
# Framing
# ============================================================================

HEADER_TAG: Final[str] = "HWMON"
TERMINATOR: Final[str] = "END"
LINE_END: Final[str] = "\n"
FIELD_SEPARATOR: Final[str] = ":"
TIMESTAMP_FORMAT: Final[str] = "%Y-%m-%d %H:%M:%S"

# Only CPU and GPU units are reported
REPORTED_CATEGORIES: Final = (HardwareCategory.CPU, HardwareCategory.GPU)

ONE_DECIMAL: Final = Decimal("0.1")

UNITS: Final = {
    SensorKind.TEMPERATURE: "C",
    SensorKind.LOAD: "%",
}

# ============================================================================
# Timing (seconds)
# ============================================================================

# Wait between cycles on the success and not-ready paths
FAST_POLL_INTERVAL: Final[float] = 0.1

# Serial read/write timeout applied when the port is built
IO_TIMEOUT: Final[float] = 1.0

# Bound on how long stop() waits for the worker thread
STOP_JOIN_TIMEOUT: Final[float] = 5.0


def is_reportable(reading: SensorReading) -> bool:
    """Check whether a reading produces a frame line."""
    return (
        reading.value is not None
        and math.isfinite(reading.value)
        and reading.category in REPORTED_CATEGORIES
        and reading.kind in UNITS
    )


def format_value(value: float) -> str:
    """Format with one fractional digit, rounding ties away from zero (45.25 -> "45.3")."""
    return str(Decimal(repr(float(value))).quantize(ONE_DECIMAL, rounding=ROUND_HALF_UP))


def format_reading(reading: SensorReading) -> str:
    """Build one reading line without the line terminator.

    Args:
        reading: Reading with a present value, CPU/GPU category and TEMP/LOAD kind

    Returns:
        Line such as "CPU_TEMP:Core Max:55.3C"

    Raises:
        ValueError: If the reading is not reportable
    """
    if not is_reportable(reading):
        raise ValueError(f"Reading is not reportable: {reading}")

    assert reading.value is not None
    tag = f"{reading.category.value}_{reading.kind.value}"
    return FIELD_SEPARATOR.join(
        (tag, reading.name, f"{format_value(reading.value)}{UNITS[reading.kind]}")
    )


def format_header(now: datetime) -> str:
    return f"{HEADER_TAG}{FIELD_SEPARATOR}{now.strftime(TIMESTAMP_FORMAT)}"


def format_frame(
    readings: Iterable[SensorReading], now: Optional[datetime] = None
) -> str:
    """Encode one cycle's readings into a complete frame.

    Readings are emitted in the order given. Readings without a value, or
    outside the reported categories and kinds, are omitted.

    Args:
        readings: Readings from a single sampling cycle
        now: Frame timestamp. Defaults to the current local time.

    Returns:
        Frame text, every line terminated with "\\n"
    """
    if now is None:
        now = datetime.now()

    lines = [format_header(now)]
    lines.extend(format_reading(r) for r in readings if is_reportable(r))
    lines.append(TERMINATOR)
    return LINE_END.join(lines) + LINE_END

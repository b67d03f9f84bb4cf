"""Settings loading from environment variables.

Every field is parsed on its own. A missing or unparsable value falls back to
the default for that field only; loading never raises.
"""

import logging
import os
from typing import Callable, Mapping, Optional, TypeVar

from hwmon_lib.models import DEFAULT_PORT, MonitorSettings, Parity, StopBits

logger = logging.getLogger(__name__)

T = TypeVar("T")

ENV_PORT = "HWMON_SERIAL_PORT"
ENV_BAUD_RATE = "HWMON_BAUD_RATE"
ENV_DATA_BITS = "HWMON_DATA_BITS"
ENV_PARITY = "HWMON_PARITY"
ENV_STOP_BITS = "HWMON_STOP_BITS"
ENV_MONITORING_INTERVAL = "HWMON_MONITORING_INTERVAL_MS"

VALID_DATA_BITS = (5, 6, 7, 8)

_STOP_BITS_ALIASES = {
    "one": StopBits.ONE,
    "1": StopBits.ONE,
    "onepointfive": StopBits.ONE_POINT_FIVE,
    "1.5": StopBits.ONE_POINT_FIVE,
    "two": StopBits.TWO,
    "2": StopBits.TWO,
}


def parse_positive_int(raw: str) -> int:
    value = int(raw.strip())
    if value <= 0:
        raise ValueError(f"must be positive, got {value}")
    return value


def parse_data_bits(raw: str) -> int:
    value = int(raw.strip())
    if value not in VALID_DATA_BITS:
        raise ValueError(f"data bits must be one of {VALID_DATA_BITS}, got {value}")
    return value


def parse_parity(raw: str) -> Parity:
    """Parse a parity name case-insensitively ("None", "even", "MARK", ...)."""
    return Parity[raw.strip().upper()]


def parse_stop_bits(raw: str) -> StopBits:
    """Parse stop bits from a name ("One", "OnePointFive", "one_point_five") or count."""
    key = raw.strip().lower().replace("_", "").replace("-", "")
    try:
        return _STOP_BITS_ALIASES[key]
    except KeyError:
        raise ValueError(f"unknown stop bits {raw!r}") from None


def parse_port(raw: str) -> str:
    port = raw.strip()
    if not port:
        raise ValueError("port name is empty")
    return port


def _field(
    environ: Mapping[str, str],
    name: str,
    parser: Callable[[str], T],
    default: T,
) -> T:
    raw = environ.get(name)
    if raw is None:
        return default
    try:
        return parser(raw)
    except (ValueError, KeyError) as e:
        logger.debug(f"Invalid {name}={raw!r} ({e}), using default {default!r}")
        return default


def load_settings(environ: Optional[Mapping[str, str]] = None) -> MonitorSettings:
    """Load monitor settings once at startup.

    Args:
        environ: Mapping to read from. Defaults to os.environ.

    Returns:
        MonitorSettings with defaults substituted for missing or bad fields
    """
    env = os.environ if environ is None else environ
    defaults = MonitorSettings()

    settings = MonitorSettings(
        port=_field(env, ENV_PORT, parse_port, DEFAULT_PORT),
        baud_rate=_field(env, ENV_BAUD_RATE, parse_positive_int, defaults.baud_rate),
        data_bits=_field(env, ENV_DATA_BITS, parse_data_bits, defaults.data_bits),
        parity=_field(env, ENV_PARITY, parse_parity, defaults.parity),
        stop_bits=_field(env, ENV_STOP_BITS, parse_stop_bits, defaults.stop_bits),
        monitoring_interval_ms=_field(
            env, ENV_MONITORING_INTERVAL, parse_positive_int, defaults.monitoring_interval_ms
        ),
    )
    logger.debug(f"Loaded settings: {settings}")
    return settings

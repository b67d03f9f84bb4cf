"""Custom exceptions for the hardware monitor library."""


class HWMonError(Exception):
    """Base exception for all hwmon library errors."""

    pass


class SerialIOError(HWMonError):
    """Raised when the serial transport cannot be built or used."""

    pass


class SensorReadError(HWMonError):
    """Raised when the hardware source cannot be opened or sampled."""

    pass


class StartupError(HWMonError):
    """Raised when the monitor service cannot enter the running state."""

    pass


class ServiceStateError(HWMonError):
    """Raised when start/stop is called in the wrong service state."""

    pass

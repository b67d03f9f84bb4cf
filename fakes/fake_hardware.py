"""Fake hardware tree implementing the sensor source contract."""

from dataclasses import dataclass, field
from typing import List, Optional

from hwmon_lib.models import HardwareCategory, SensorKind
from hwmon_lib.sensors import refresh_tree


@dataclass
class FakeSensor:
    kind: SensorKind
    name: str
    value: Optional[float] = None


@dataclass
class FakeHardware:
    category: HardwareCategory
    sensors: List[FakeSensor] = field(default_factory=list)
    sub_hardware: List["FakeHardware"] = field(default_factory=list)
    update_count: int = 0

    def update(self) -> None:
        self.update_count += 1


class FakeHardwareSource:
    """Static hardware tree; refresh() counts calls and can be made to fail."""

    def __init__(self, hardware: Optional[List[FakeHardware]] = None) -> None:
        self.hardware = hardware if hardware is not None else []
        self.fail_refresh = False
        self.refresh_count = 0
        self.closed = False

    def refresh(self) -> None:
        self.refresh_count += 1
        if self.fail_refresh:
            raise RuntimeError("sensor driver not responding")
        refresh_tree(self.hardware)

    def close(self) -> None:
        self.closed = True


def sample_tree() -> List[FakeHardware]:
    """CPU with one temperature and one load sensor, GPU without sensors."""
    return [
        FakeHardware(
            HardwareCategory.CPU,
            sensors=[
                FakeSensor(SensorKind.TEMPERATURE, "Core Max", 55.3),
                FakeSensor(SensorKind.LOAD, "Total", 12.0),
            ],
        ),
        FakeHardware(HardwareCategory.GPU),
    ]

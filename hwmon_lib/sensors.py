"""Hardware sensor sources and snapshot helpers.

The monitor loop only relies on the small contract defined by the
HardwareSource, HardwareUnit and Sensor protocols below. PsutilHardwareSource
is the bundled implementation: psutil for thermal chips and CPU load,
nvidia-smi for NVIDIA GPUs and the amdgpu sysfs busy counter for AMD GPU load.
"""

import glob
import logging
import os
import re
import subprocess
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, Tuple, Union

import psutil

from hwmon_lib.errors import SensorReadError
from hwmon_lib.models import HardwareCategory, SensorKind, SensorReading

logger = logging.getLogger(__name__)


class Sensor(Protocol):
    """A single sensor with a current value (None when unavailable)."""

    @property
    def kind(self) -> SensorKind:
        ...

    @property
    def name(self) -> str:
        ...

    @property
    def value(self) -> Optional[float]:
        ...


class HardwareUnit(Protocol):
    """A hardware unit with its own sensors and optional sub-units."""

    @property
    def category(self) -> HardwareCategory:
        ...

    @property
    def sensors(self) -> Sequence[Sensor]:
        ...

    @property
    def sub_hardware(self) -> Sequence["HardwareUnit"]:
        ...

    def update(self) -> None:
        """Refresh sensor values in place (this unit only)."""
        ...


class HardwareSource(Protocol):
    """Root of the hardware tree."""

    @property
    def hardware(self) -> Sequence[HardwareUnit]:
        ...

    def refresh(self) -> None:
        """Refresh every unit, recursing into sub-units."""
        ...

    def close(self) -> None:
        ...


# ============================================================================
# Traversal
# ============================================================================


def refresh_tree(units: Iterable[HardwareUnit]) -> None:
    """Update each unit, then its sub-units, depth first."""
    for unit in units:
        unit.update()
        refresh_tree(unit.sub_hardware)


def snapshot_readings(units: Iterable[HardwareUnit]) -> Tuple[SensorReading, ...]:
    """Capture the current sensor values of a hardware tree.

    Units are visited in enumeration order; a unit's own sensors come before
    those of its sub-units.

    Returns:
        Immutable tuple of readings
    """
    readings: List[SensorReading] = []

    def visit(unit: HardwareUnit) -> None:
        for sensor in unit.sensors:
            value = sensor.value
            readings.append(
                SensorReading(
                    category=unit.category,
                    name=sensor.name,
                    kind=sensor.kind,
                    value=None if value is None else float(value),
                )
            )
        for sub in unit.sub_hardware:
            visit(sub)

    for unit in units:
        visit(unit)
    return tuple(readings)


def sample(source: HardwareSource) -> Tuple[SensorReading, ...]:
    """Refresh the source and return a snapshot of its readings."""
    source.refresh()
    return snapshot_readings(source.hardware)


# ============================================================================
# psutil-backed source
# ============================================================================

# Thermal chip names as reported by psutil.sensors_temperatures()
CPU_CHIPS = frozenset(
    {"coretemp", "k10temp", "k8temp", "zenpower", "cpu_thermal", "cpu-thermal", "soc_thermal"}
)
GPU_CHIPS = frozenset({"amdgpu", "radeon", "nouveau", "i915", "xe"})

TemperatureTable = Dict[str, list]


def classify_chip(chip: str) -> HardwareCategory:
    """Map a psutil thermal chip name to a hardware category."""
    if chip in CPU_CHIPS:
        return HardwareCategory.CPU
    if chip in GPU_CHIPS:
        return HardwareCategory.GPU
    return HardwareCategory.OTHER


def read_temperatures() -> TemperatureTable:
    """Read all thermal chips, or an empty table where psutil has no support."""
    reader = getattr(psutil, "sensors_temperatures", None)
    if reader is None:
        return {}
    return reader() or {}


# ============================================================================
# GPU load
# ============================================================================

DRM_ROOT = "/sys/class/drm"
GPU_BUSY_FILE = "gpu_busy_percent"
_DRM_CARD_RE = re.compile(r"card(\d+)")

NVIDIA_SMI_FIELDS = "index,name,temperature.gpu,utilization.gpu"
NVIDIA_SMI_TIMEOUT = 2.0

# (index, name, temperature, load)
NvidiaStatus = Tuple[int, str, Optional[float], Optional[float]]


def _parse_number(text: str) -> Optional[float]:
    try:
        return float(text)
    except ValueError:
        # "[N/A]", "[Not Supported]"
        return None


def run_nvidia_smi(args: Sequence[str]) -> Optional[str]:
    """Run nvidia-smi and return its stdout, or None if it is missing or fails."""
    try:
        result = subprocess.run(
            ["nvidia-smi", *args],
            capture_output=True,
            text=True,
            timeout=NVIDIA_SMI_TIMEOUT,
            check=True,
        )
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug(f"nvidia-smi unavailable: {e}")
        return None
    return result.stdout


def query_nvidia_gpus(index: Optional[int] = None) -> List[NvidiaStatus]:
    """Query name, temperature and utilization of NVIDIA GPUs.

    Args:
        index: Restrict the query to one GPU. Defaults to all GPUs.

    Returns:
        One status tuple per GPU, empty when nvidia-smi is unavailable.
        Fields the driver does not support are None.
    """
    args = [f"--query-gpu={NVIDIA_SMI_FIELDS}", "--format=csv,noheader,nounits"]
    if index is not None:
        args.append(f"--id={index}")
    output = run_nvidia_smi(args)
    if not output:
        return []

    gpus: List[NvidiaStatus] = []
    for line in output.splitlines():
        fields = [field.strip() for field in line.split(",")]
        if len(fields) < 4 or not fields[0].isdigit():
            continue
        name = ", ".join(fields[1:-2])
        gpus.append((int(fields[0]), name, _parse_number(fields[-2]), _parse_number(fields[-1])))
    return gpus


def _card_number(path: str) -> int:
    card = os.path.basename(os.path.dirname(os.path.dirname(path)))
    match = _DRM_CARD_RE.fullmatch(card)
    return int(match.group(1)) if match else -1


def find_gpu_busy_files() -> List[str]:
    """List amdgpu busy-percent files, one per DRM card, in card order."""
    pattern = os.path.join(DRM_ROOT, "card*", "device", GPU_BUSY_FILE)
    return sorted((p for p in glob.glob(pattern) if _card_number(p) >= 0), key=_card_number)


def read_gpu_busy(path: str) -> Optional[float]:
    try:
        with open(path, "r", encoding="ascii") as f:
            return float(f.read().strip())
    except (OSError, ValueError):
        return None


class PsutilSensor:
    """Mutable sensor updated in place by its owning unit."""

    def __init__(self, kind: SensorKind, name: str) -> None:
        self.kind = kind
        self.name = name
        self.value: Optional[float] = None

    def __repr__(self) -> str:
        return f"PsutilSensor({self.kind.name}, {self.name!r}, {self.value!r})"


class _TemperatureSlot:
    """Locates one temperature entry inside a thermal chip's list."""

    def __init__(self, chip: str, index: int, sensor: PsutilSensor) -> None:
        self.chip = chip
        self.index = index
        self.sensor = sensor

    def apply(self, table: TemperatureTable) -> None:
        entries = table.get(self.chip) or []
        if self.index < len(entries):
            self.sensor.value = entries[self.index].current
        else:
            self.sensor.value = None


class PsutilHardware:
    """Hardware unit whose temperatures come from one or more thermal chips.

    The CPU unit additionally carries a "CPU Total" load sensor and one
    "CPU Core #n" load sensor per logical core. The amdgpu unit carries a
    "GPU Core" load sensor per card that exposes a busy counter.
    """

    def __init__(self, category: HardwareCategory, name: str) -> None:
        self.category = category
        self.name = name
        self.sensors: List[PsutilSensor] = []
        self.sub_hardware: List[PsutilHardware] = []
        self._temperature_slots: List[_TemperatureSlot] = []
        self._core_loads: List[PsutilSensor] = []
        self._total_load: Optional[PsutilSensor] = None
        self._busy_loads: List[Tuple[str, PsutilSensor]] = []

    def add_temperatures(self, chip: str, entries: list) -> None:
        for index, entry in enumerate(entries):
            label = (entry.label or "").strip() or f"{chip} #{index + 1}"
            sensor = PsutilSensor(SensorKind.TEMPERATURE, label)
            self.sensors.append(sensor)
            self._temperature_slots.append(_TemperatureSlot(chip, index, sensor))

    def add_loads(self, core_count: int) -> None:
        self._total_load = PsutilSensor(SensorKind.LOAD, "CPU Total")
        self.sensors.append(self._total_load)
        for core in range(core_count):
            sensor = PsutilSensor(SensorKind.LOAD, f"CPU Core #{core + 1}")
            self._core_loads.append(sensor)
            self.sensors.append(sensor)

    def add_busy_loads(self, paths: Sequence[str]) -> None:
        for number, path in enumerate(paths, start=1):
            name = "GPU Core" if len(paths) == 1 else f"GPU Core #{number}"
            sensor = PsutilSensor(SensorKind.LOAD, name)
            self._busy_loads.append((path, sensor))
            self.sensors.append(sensor)

    def update(self) -> None:
        if self._temperature_slots:
            table = read_temperatures()
            for slot in self._temperature_slots:
                slot.apply(table)

        if self._total_load is not None:
            per_core = psutil.cpu_percent(interval=None, percpu=True)
            for sensor, load in zip(self._core_loads, per_core):
                sensor.value = load
            self._total_load.value = sum(per_core) / len(per_core) if per_core else None

        for path, sensor in self._busy_loads:
            sensor.value = read_gpu_busy(path)

    def __repr__(self) -> str:
        return f"PsutilHardware({self.category.name}, {self.name!r}, {len(self.sensors)} sensors)"


class NvidiaGpu:
    """NVIDIA GPU with "GPU Core" temperature and load read through nvidia-smi."""

    category = HardwareCategory.GPU

    def __init__(self, index: int, name: str) -> None:
        self.index = index
        self.name = name
        self.temperature = PsutilSensor(SensorKind.TEMPERATURE, "GPU Core")
        self.load = PsutilSensor(SensorKind.LOAD, "GPU Core")
        self.sensors: List[PsutilSensor] = [self.temperature, self.load]
        self.sub_hardware: List[PsutilHardware] = []

    def update(self) -> None:
        status = query_nvidia_gpus(self.index)
        if status:
            _, _, self.temperature.value, self.load.value = status[0]
        else:
            self.temperature.value = None
            self.load.value = None

    def __repr__(self) -> str:
        return f"NvidiaGpu({self.index}, {self.name!r})"


class PsutilHardwareSource:
    """Hardware tree built from psutil thermal chips, CPU load counters and GPU tools.

    Call open() before refresh(). The tree layout is fixed at open time;
    sensors that disappear later simply report None.
    """

    def __init__(self) -> None:
        self._hardware: List[Union[PsutilHardware, NvidiaGpu]] = []
        self._opened = False

    @property
    def hardware(self) -> Sequence[Union[PsutilHardware, NvidiaGpu]]:
        return tuple(self._hardware)

    def open(self) -> None:
        """Enumerate hardware units.

        Raises:
            SensorReadError: If psutil cannot enumerate sensors
        """
        try:
            table = read_temperatures()
            core_count = len(psutil.cpu_percent(interval=None, percpu=True))
        except Exception as e:
            raise SensorReadError(f"Failed to enumerate hardware sensors: {e}") from e

        cpu = PsutilHardware(HardwareCategory.CPU, "CPU")
        units: List[Union[PsutilHardware, NvidiaGpu]] = [cpu]
        for chip, entries in table.items():
            category = classify_chip(chip)
            if category is HardwareCategory.CPU:
                cpu.add_temperatures(chip, entries)
                continue
            unit = PsutilHardware(category, chip)
            unit.add_temperatures(chip, entries)
            units.append(unit)
        cpu.add_loads(core_count)

        busy_files = find_gpu_busy_files()
        if busy_files:
            amd = next(
                (u for u in units if isinstance(u, PsutilHardware) and u.name == "amdgpu"),
                None,
            )
            if amd is None:
                amd = PsutilHardware(HardwareCategory.GPU, "amdgpu")
                units.append(amd)
            amd.add_busy_loads(busy_files)
        units.extend(NvidiaGpu(index, name) for index, name, _, _ in query_nvidia_gpus())

        self._hardware = units
        self._opened = True
        logger.info(
            f"Hardware source opened: {len(units)} units, "
            f"{sum(len(u.sensors) for u in units)} sensors"
        )

    def refresh(self) -> None:
        if not self._opened:
            raise SensorReadError("Hardware source is not open")
        refresh_tree(self._hardware)

    def close(self) -> None:
        if self._opened:
            self._hardware = []
            self._opened = False
            logger.info("Hardware source closed")

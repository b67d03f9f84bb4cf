"""Tests for the interactive command-line entry point."""

from collections import namedtuple

import psutil
import pytest

from hwmon_lib import cli, sensors
from hwmon_lib.errors import StartupError
from hwmon_lib.models import MonitorSettings

Port = namedtuple("Port", ["device", "description"])
Temp = namedtuple("Temp", ["label", "current", "high", "critical"])


def test_overrides_take_precedence() -> None:
    args = cli.build_parser().parse_args(["--port", "COM9", "--baud", "57600", "--interval-ms", "3000"])

    settings = cli.apply_overrides(MonitorSettings(), args)

    assert settings.port == "COM9"
    assert settings.baud_rate == 57600
    assert settings.monitoring_interval_ms == 3000


def test_no_overrides_keeps_settings() -> None:
    base = MonitorSettings(port="/dev/ttyACM0")
    args = cli.build_parser().parse_args([])

    assert cli.apply_overrides(base, args) is base


def test_non_positive_overrides_ignored() -> None:
    args = cli.build_parser().parse_args(["--baud", "0", "--interval-ms", "-5"])

    settings = cli.apply_overrides(MonitorSettings(), args)

    assert settings == MonitorSettings()


@pytest.fixture
def one_core_host(monkeypatch, tmp_path):
    """One CPU thermal chip and one core, no GPU tools."""
    monkeypatch.setattr(
        psutil,
        "sensors_temperatures",
        lambda: {"coretemp": [Temp("Core Max", 55.3, None, None)]},
        raising=False,
    )
    monkeypatch.setattr(psutil, "cpu_percent", lambda interval=None, percpu=False: [12.0])
    monkeypatch.setattr(sensors, "run_nvidia_smi", lambda args: None)
    monkeypatch.setattr(sensors, "DRM_ROOT", str(tmp_path / "drm"))


def test_once_prints_single_frame(one_core_host, capsys) -> None:
    assert cli.main(["--once"]) == 0

    lines = capsys.readouterr().out.splitlines()
    assert lines[0].startswith("HWMON:")
    assert lines[1:] == [
        "CPU_TEMP:Core Max:55.3C",
        "CPU_LOAD:CPU Total:12.0%",
        "CPU_LOAD:CPU Core #1:12.0%",
        "END",
    ]


def test_once_waits_before_sampling_load(monkeypatch, capsys) -> None:
    """CPU load needs a measurement window after the priming call in open()."""
    events = []

    class RecordingSource:
        hardware = ()

        def open(self) -> None:
            events.append("open")

        def refresh(self) -> None:
            events.append("refresh")

        def close(self) -> None:
            events.append("close")

    monkeypatch.setattr(cli, "PsutilHardwareSource", RecordingSource)
    monkeypatch.setattr(cli.time, "sleep", lambda seconds: events.append(("sleep", seconds)))

    assert cli.main(["--once"]) == 0

    assert events == ["open", ("sleep", cli.LOAD_SAMPLE_DELAY), "refresh", "close"]
    assert cli.LOAD_SAMPLE_DELAY >= 0.1
    assert capsys.readouterr().out.endswith("END\n")


def test_list_ports(monkeypatch, capsys) -> None:
    monkeypatch.setattr(
        cli.list_ports, "comports", lambda: [Port("/dev/ttyUSB0", "CH340 serial converter")]
    )

    assert cli.main(["--list-ports"]) == 0
    assert "/dev/ttyUSB0\tCH340 serial converter" in capsys.readouterr().out


def test_startup_failure_exit_code(monkeypatch) -> None:
    class FailingService:
        def __init__(self, settings) -> None:
            self.settings = settings

        def run_until_stopped(self, stop_event) -> None:
            raise StartupError("port object could not be created")

    handlers = []
    monkeypatch.setattr(cli.signal, "signal", lambda signum, handler: handlers.append(signum))
    monkeypatch.setattr(cli, "MonitorService", FailingService)

    assert cli.main(["--port", "COM3"]) == 1
    assert set(handlers) == {cli.signal.SIGINT, cli.signal.SIGTERM}


def test_signal_handler_stops_service(monkeypatch) -> None:
    handlers = {}
    seen = {}

    class RecordingService:
        def __init__(self, settings) -> None:
            seen["settings"] = settings

        def run_until_stopped(self, stop_event) -> None:
            handlers[cli.signal.SIGTERM](cli.signal.SIGTERM, None)
            seen["stopped"] = stop_event.is_set()

    monkeypatch.setattr(cli.signal, "signal", lambda signum, handler: handlers.__setitem__(signum, handler))
    monkeypatch.setattr(cli, "MonitorService", RecordingService)
    monkeypatch.setenv("HWMON_BAUD_RATE", "38400")

    assert cli.main([]) == 0
    assert seen["stopped"] is True
    assert seen["settings"].baud_rate == 38400


@pytest.mark.parametrize("level", ["debug", "WARNING"])
def test_log_level_accepted(level: str, monkeypatch) -> None:
    monkeypatch.setattr(cli.list_ports, "comports", lambda: [])

    assert cli.main(["--log-level", level, "--list-ports"]) == 0

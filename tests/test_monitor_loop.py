"""Tests for the sampling & transmission loop cadence and recovery."""

from typing import List

from fakes.fake_hardware import FakeHardwareSource, sample_tree
from fakes.fake_serial import FakeSerial
from hwmon_lib import protocol
from hwmon_lib.models import MonitorSettings
from hwmon_lib.monitor import CancellationToken, run_cycle, run_loop
from hwmon_lib.transport import SerialConnection

SETTINGS = MonitorSettings(port="/dev/ttyFAKE0", monitoring_interval_ms=2500)
BACKOFF = 2.5


class ScriptedToken(CancellationToken):
    """Records wait durations instead of sleeping; cancels after max_waits."""

    def __init__(self, max_waits: int) -> None:
        super().__init__()
        self.max_waits = max_waits
        self.waits: List[float] = []

    def wait(self, timeout: float) -> bool:
        self.waits.append(timeout)
        if len(self.waits) >= self.max_waits:
            self.cancel()
        return self.cancelled


def make_connection(fake: FakeSerial) -> SerialConnection:
    return SerialConnection(fake)


def test_successful_cycles_use_fast_poll_interval() -> None:
    fake = FakeSerial()
    token = ScriptedToken(max_waits=3)

    run_loop(make_connection(fake), FakeHardwareSource(sample_tree()), SETTINGS, token)

    assert token.waits == [protocol.FAST_POLL_INTERVAL] * 3
    assert len(fake.frames) == 3
    assert fake.open_calls == 1


def test_each_frame_sent_in_single_write() -> None:
    fake = FakeSerial()
    token = ScriptedToken(max_waits=1)

    run_loop(make_connection(fake), FakeHardwareSource(sample_tree()), SETTINGS, token)

    frame = fake.frames[0]
    assert frame.startswith("HWMON:")
    assert frame.endswith("CPU_TEMP:Core Max:55.3C\nCPU_LOAD:Total:12.0%\nEND\n")


def test_open_failure_skips_send_and_fast_polls() -> None:
    fake = FakeSerial()
    fake.fail_open = True
    source = FakeHardwareSource(sample_tree())
    token = ScriptedToken(max_waits=4)
    connection = make_connection(fake)

    run_loop(connection, source, SETTINGS, token)

    assert fake.written == []
    assert source.refresh_count == 0
    assert token.waits == [protocol.FAST_POLL_INTERVAL] * 4
    assert fake.open_calls == 4
    assert connection.failure_count == 4


def test_port_becomes_available_after_failures() -> None:
    fake = FakeSerial()
    fake.fail_open = True
    connection = make_connection(fake)
    source = FakeHardwareSource(sample_tree())

    assert run_cycle(connection, source, SETTINGS) == protocol.FAST_POLL_INTERVAL
    fake.fail_open = False
    assert run_cycle(connection, source, SETTINGS) == protocol.FAST_POLL_INTERVAL

    assert len(fake.frames) == 1
    assert connection.failure_count == 0


def test_send_failure_recovers_and_backs_off() -> None:
    fake = FakeSerial()
    fake.fail_write = True
    token = ScriptedToken(max_waits=2)

    run_loop(make_connection(fake), FakeHardwareSource(sample_tree()), SETTINGS, token)

    assert token.waits == [BACKOFF, BACKOFF]
    # Each failed cycle closes the port, so each cycle reopens it
    assert fake.close_calls == 2
    assert fake.open_calls == 2


def test_send_failure_then_recovery_returns_to_fast_poll() -> None:
    fake = FakeSerial()
    fake.fail_write = True
    connection = make_connection(fake)
    source = FakeHardwareSource(sample_tree())

    assert run_cycle(connection, source, SETTINGS) == BACKOFF
    assert not connection.is_open

    fake.fail_write = False
    assert run_cycle(connection, source, SETTINGS) == protocol.FAST_POLL_INTERVAL
    assert len(fake.frames) == 1


def test_write_timeout_drops_frame_without_recovery() -> None:
    fake = FakeSerial()
    fake.timeout_write = True
    connection = make_connection(fake)

    delay = run_cycle(connection, FakeHardwareSource(sample_tree()), SETTINGS)

    assert delay == protocol.FAST_POLL_INTERVAL
    assert connection.is_open
    assert fake.close_calls == 0


def test_sampling_error_abandons_frame_and_backs_off() -> None:
    fake = FakeSerial()
    source = FakeHardwareSource(sample_tree())
    source.fail_refresh = True
    connection = make_connection(fake)

    delay = run_cycle(connection, source, SETTINGS)

    assert delay == BACKOFF
    assert fake.written == []
    assert not connection.is_open


def test_unexpected_error_does_not_escape_loop() -> None:
    class ExplodingConnection(SerialConnection):
        def ensure_open(self) -> bool:
            raise RuntimeError("boom")

    fake = FakeSerial()
    token = ScriptedToken(max_waits=2)

    run_loop(ExplodingConnection(fake), FakeHardwareSource(sample_tree()), SETTINGS, token)

    assert token.waits == [BACKOFF, BACKOFF]


def test_loop_exits_immediately_when_cancelled() -> None:
    fake = FakeSerial()
    token = ScriptedToken(max_waits=10)
    token.cancel()

    run_loop(make_connection(fake), FakeHardwareSource(sample_tree()), SETTINGS, token)

    assert token.waits == []
    assert fake.open_calls == 0


def test_loop_exits_when_run_flag_cleared() -> None:
    fake = FakeSerial()
    token = ScriptedToken(max_waits=10)
    flags = iter([True, True, False])

    run_loop(
        make_connection(fake),
        FakeHardwareSource(sample_tree()),
        SETTINGS,
        token,
        is_running=lambda: next(flags),
    )

    assert len(token.waits) == 2
    assert len(fake.frames) == 2


def test_cancellation_token_wait_wakes_on_cancel() -> None:
    token = CancellationToken()

    assert token.wait(0.01) is False
    token.cancel()
    assert token.cancelled
    assert token.wait(10.0) is True

"""Sampling & transmission loop and the start/stop control surface."""

import logging
import threading
from typing import Callable, ClassVar, Optional, Sequence

from hwmon_lib import protocol, sensors
from hwmon_lib.errors import ServiceStateError, StartupError
from hwmon_lib.models import MonitorSettings, ServiceState
from hwmon_lib.sensors import HardwareSource, PsutilHardwareSource
from hwmon_lib.transport import SendResult, SerialConnection

logger = logging.getLogger(__name__)

SourceFactory = Callable[[], HardwareSource]
ConnectionFactory = Callable[[MonitorSettings], SerialConnection]


class CancellationToken:
    """Cancellation signal shared between the control surface and the worker."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        """Sleep up to timeout seconds, waking early on cancel.

        Returns:
            True if cancellation was requested
        """
        return self._event.wait(timeout)


def run_cycle(
    connection: SerialConnection,
    source: HardwareSource,
    settings: MonitorSettings,
) -> float:
    """Run one sampling cycle.

    Returns:
        Seconds to wait before the next cycle
    """
    if not connection.ensure_open():
        return protocol.FAST_POLL_INTERVAL

    try:
        readings = sensors.sample(source)
        frame = protocol.format_frame(readings)
    except Exception as e:
        logger.warning(f"Hardware sampling failed, frame abandoned: {e}")
        connection.recover()
        return settings.monitoring_interval_s

    result = connection.send(frame)
    if result is SendResult.FAILED:
        connection.recover()
        return settings.monitoring_interval_s

    if result is SendResult.SENT:
        logger.debug(f"Frame with {len(readings)} readings sent to {connection.port_name}")
    return protocol.FAST_POLL_INTERVAL


def run_loop(
    connection: SerialConnection,
    source: HardwareSource,
    settings: MonitorSettings,
    token: CancellationToken,
    is_running: Callable[[], bool] = lambda: True,
) -> None:
    """Drive sampling cycles until stopped.

    Successful cycles (and cycles where the port is not ready yet) are
    followed by the short fast-poll wait. Only a failed cycle waits the
    configured monitoring interval, so that interval acts as the error
    back-off rather than the sampling period.

    Args:
        connection: Serial connection, opened lazily from this thread
        source: Hardware source sampled every cycle
        settings: Monitor settings (back-off interval)
        token: Cancellation signal checked every cycle and during waits
        is_running: Run flag checked at the top of every cycle
    """
    logger.info(f"Monitor loop started (thread {threading.get_ident()})")

    while is_running() and not token.cancelled:
        try:
            delay = run_cycle(connection, source, settings)
        except Exception as e:
            logger.error(f"Error in monitor loop: {e}", exc_info=True)
            connection.recover()
            delay = settings.monitoring_interval_s

        if token.wait(delay):
            break

    logger.info("Monitor loop stopped")


class MonitorService:
    """Start/stop control for the background monitor worker.

    Only one service may run the loop per process at a time. Both the
    interactive entry point and any service-manager wrapper go through
    start() and stop().
    """

    _loop_slot: ClassVar[threading.Lock] = threading.Lock()

    def __init__(
        self,
        settings: MonitorSettings,
        source_factory: Optional[SourceFactory] = None,
        connection_factory: Optional[ConnectionFactory] = None,
    ) -> None:
        """Initialize service (nothing is opened until start()).

        Args:
            settings: Monitor settings loaded at startup
            source_factory: Builds and opens the hardware source.
                            Defaults to a psutil-backed source.
            connection_factory: Builds the serial connection from settings.
                                Defaults to SerialConnection.from_settings.
        """
        self._settings = settings
        self._source_factory = source_factory or _open_psutil_source
        self._connection_factory = connection_factory or SerialConnection.from_settings

        self._state = ServiceState.STOPPED
        self._state_lock = threading.Lock()
        self._running = threading.Event()
        self._token: Optional[CancellationToken] = None
        self._worker: Optional[threading.Thread] = None
        self._source: Optional[HardwareSource] = None
        self._connection: Optional[SerialConnection] = None
        self._holds_slot = False

    @property
    def state(self) -> ServiceState:
        return self._state

    @property
    def settings(self) -> MonitorSettings:
        return self._settings

    @property
    def connection(self) -> Optional[SerialConnection]:
        return self._connection

    def start(self, args: Optional[Sequence[str]] = None) -> None:
        """Open the hardware source and serial port object, then start the worker.

        Args:
            args: Start arguments from the launcher (logged, otherwise unused)

        Raises:
            ServiceStateError: If this or another service is already running,
                including a worker that outlived a previous stop()
            StartupError: If the hardware source or transport cannot be built,
                or the worker thread cannot be started
        """
        with self._state_lock:
            if self._state is ServiceState.RUNNING:
                raise ServiceStateError("Monitor service already running")

            if not MonitorService._loop_slot.acquire(blocking=False):
                raise ServiceStateError("Another monitor loop is already running in this process")
            self._holds_slot = True

            logger.info(f"Starting monitor service on {self._settings.port} (args={list(args or [])})")

            try:
                self._source = self._source_factory()
                self._connection = self._connection_factory(self._settings)
            except Exception as e:
                logger.error(f"Error starting service: {e}")
                self._release_resources()
                raise StartupError(f"Failed to start monitor service: {e}") from e

            self._token = CancellationToken()
            self._running.set()
            try:
                self._worker = threading.Thread(
                    target=_run_worker,
                    args=(self._connection, self._source, self._settings, self._token),
                    kwargs={"is_running": self._running.is_set},
                    name="HwMonitorWorker",
                    daemon=True,
                )
                self._worker.start()
            except Exception as e:
                logger.error(f"Error starting worker thread: {e}")
                self._running.clear()
                self._worker = None
                self._release_resources()
                raise StartupError(f"Failed to start monitor worker: {e}") from e

            # The worker now owns the loop slot and frees it when it exits
            self._holds_slot = False
            self._state = ServiceState.RUNNING
            logger.info("Hardware monitoring service started successfully")

    def stop(self) -> None:
        """Signal the worker to stop, wait for it (bounded) and release resources.

        Safe to call repeatedly and before start(). Never raises.
        """
        with self._state_lock:
            if self._state is ServiceState.STOPPED:
                return

            logger.info("Stopping monitor service...")
            self._running.clear()
            if self._token is not None:
                self._token.cancel()

            if self._worker is not None and self._worker.is_alive():
                self._worker.join(timeout=protocol.STOP_JOIN_TIMEOUT)
                if self._worker.is_alive():
                    logger.warning(
                        "Monitor worker did not stop cleanly, closing resources anyway; "
                        "a new loop cannot start until it exits"
                    )
            self._worker = None

            self._release_resources()
            self._state = ServiceState.STOPPED
            logger.info("Hardware monitoring service stopped")

    def run_until_stopped(self, stop_event: threading.Event) -> None:
        """Start, block until stop_event is set, then stop.

        Raises:
            StartupError: If start() fails
        """
        self.start()
        try:
            # Short waits keep the main thread responsive to signal handlers
            while not stop_event.wait(0.5):
                pass
        finally:
            self.stop()

    def _release_resources(self) -> None:
        """Best-effort close of transport and source; errors are logged only."""
        if self._connection is not None:
            try:
                self._connection.close()
            except Exception as e:
                logger.warning(f"Error closing serial port: {e}")
            self._connection = None

        if self._source is not None:
            try:
                self._source.close()
            except Exception as e:
                logger.warning(f"Error closing hardware monitor: {e}")
            self._source = None

        self._token = None
        if self._holds_slot:
            self._holds_slot = False
            MonitorService._loop_slot.release()


def _run_worker(
    connection: SerialConnection,
    source: HardwareSource,
    settings: MonitorSettings,
    token: CancellationToken,
    is_running: Callable[[], bool],
) -> None:
    """Thread target: run the loop, then free the per-process loop slot."""
    try:
        run_loop(connection, source, settings, token, is_running)
    finally:
        MonitorService._loop_slot.release()


def _open_psutil_source() -> HardwareSource:
    source = PsutilHardwareSource()
    source.open()
    return source

"""Main application entry-point for juggler."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

from .adapters import DeviceSignal, GcodeFeeder, InternClient, InternError
from .config import JugglerConfig, load_config
from .core import Feeder, FeederFactory, JobQueue
from .health import INTERN, STATUS_ENDPOINT, HealthReporter
from .logging import configure_logging
from .orchestrator import JobOrchestrator
from .server import StatusServer

LOGGER = logging.getLogger(__name__)


class JugglerApp:
    """Coordinates startup and shutdown of the job runner.

    Startup tells intern the printer is ready (reschedule), starts the status
    server when enabled, then runs the orchestrator loop until cancelled.
    The queue client and feeder factory can be injected for testing.
    """

    def __init__(
        self,
        config: Optional[JugglerConfig] = None,
        *,
        queue: Optional[JobQueue] = None,
        feeder_factory: Optional[FeederFactory] = None,
    ) -> None:
        self._config = config or load_config()
        self._queue: JobQueue = queue or InternClient(self._config.intern)
        self._health = HealthReporter()
        device = self._config.device
        self._signal = DeviceSignal(device.signal_path, device.button_path)
        self._orchestrator = JobOrchestrator(
            self._queue,
            self._signal,
            feeder_factory or self._open_feeder,
            job_path=device.job_path,
            polling_interval=self._config.scheduler.polling_interval_seconds,
            waiting_for_button=self._config.scheduler.waiting_for_button_seconds,
            health=self._health,
        )
        self._server: Optional[StatusServer] = None

    @property
    def orchestrator(self) -> JobOrchestrator:
        return self._orchestrator

    @property
    def health(self) -> HealthReporter:
        return self._health

    async def run(self) -> None:
        LOGGER.info("juggler starting with config: %s", self._config.path)
        await self._reschedule()
        await self._start_server()
        try:
            await self._orchestrator.run()
        except asyncio.CancelledError:
            LOGGER.info("juggler received shutdown signal")
            raise
        finally:
            await self._stop_services()

    @classmethod
    def start(cls, config: Optional[JugglerConfig] = None, *, verbose: bool = False) -> None:
        instance = cls(config=config)
        configure_logging(
            "DEBUG" if verbose else instance._config.logging.level,
            log_path=instance._config.logging.path,
        )
        try:
            asyncio.run(instance.run())
        except KeyboardInterrupt:
            LOGGER.info("juggler received shutdown signal")

    def _open_feeder(self, job_path: Path) -> Feeder:
        device = self._config.device
        return GcodeFeeder.open(
            device.serial_port,
            job_path,
            baudrate=device.baudrate,
            read_timeout=device.read_timeout_seconds,
        )

    async def _reschedule(self) -> None:
        try:
            await self._queue.reschedule_printer()
        except InternError as exc:
            LOGGER.error("reschedule failed: %s", exc)
            self._health.failed(INTERN, str(exc))
        else:
            self._health.succeeded(INTERN)

    async def _start_server(self) -> None:
        server_config = self._config.server
        if not server_config.enabled:
            return

        server = StatusServer(
            self._orchestrator,
            self._health,
            server_config.host,
            server_config.port,
        )
        try:
            await server.start()
        except OSError as exc:
            LOGGER.error("Failed to start status endpoint: %s", exc)
            self._health.failed(STATUS_ENDPOINT, str(exc))
        else:
            self._server = server
            self._health.succeeded(STATUS_ENDPOINT)

    async def _stop_services(self) -> None:
        await self._orchestrator.stop()

        if self._server is not None:
            await self._server.stop()
            self._server = None

        aclose = getattr(self._queue, "aclose", None)
        if aclose is not None:
            try:
                await aclose()
            except Exception:  # pragma: no cover - defensive cleanup
                LOGGER.debug("Error closing intern client", exc_info=True)

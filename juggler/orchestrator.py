"""Job orchestration state machine.

One job is tracked at a time. Every polling interval :meth:`JobOrchestrator.tick`
sends a heartbeat to intern and runs the handler for the job's current
status. A handler performs at most one transition; only a successful fetch
in ``WAITING_JOB`` chains straight into ``WAITING_BUTTON`` within the same tick.

The orchestrator is the only writer of the job. The feeder streams in its
own thread and is only queried through ``progress()``/``status()``.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections import deque
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, Deque, Dict, List, Optional

from .adapters.feeder import FeederError
from .adapters.intern import InternError, NoJobAvailable
from .core import Feeder, FeederFactory, FeederStatus, Job, JobQueue, JobStatus, Signal
from .health import FEEDER, INTERN, SIGNAL, HealthReporter

LOGGER = logging.getLogger(__name__)

JOB_FILE_MODE = 0o644

# Cancel requests a stopping feed gets before it is reported as stuck.
CANCEL_GRACE_TICKS = 4

_FEEDER_ACTIVE = (
    FeederStatus.PRINTING,
    FeederStatus.MMU_BUSY,
    FeederStatus.FSENSOR_BUSY,
)


class ControlAction(str, Enum):
    """Operator actions queued through the status server."""

    START = "start"
    CANCEL = "cancel"
    RESCHEDULE = "reschedule"


Handler = Callable[[], Awaitable[bool]]


class JobOrchestrator:
    """Drives one job from intern's queue to the printer and back."""

    def __init__(
        self,
        queue: JobQueue,
        signal: Signal,
        feeder_factory: FeederFactory,
        *,
        job_path: Path,
        polling_interval: float = 15.0,
        waiting_for_button: float = 600.0,
        health: Optional[HealthReporter] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._queue = queue
        self._signal = signal
        self._feeder_factory = feeder_factory
        self._job_path = Path(job_path)
        self._polling_interval = polling_interval
        self._waiting_for_button = timedelta(seconds=waiting_for_button)
        self._health = health
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self._job = Job()
        self._feeder: Optional[Feeder] = None
        self._cancel_ticks = 0
        self._actions: Deque[ControlAction] = deque()
        self._wake = asyncio.Event()
        self._stopping = False

        self._handlers: Dict[JobStatus, Handler] = {
            JobStatus.WAITING_JOB: self._handle_waiting_job,
            JobStatus.WAITING_BUTTON: self._handle_waiting_button,
            JobStatus.SENDING: self._handle_sending,
            JobStatus.PRINTING: self._handle_printing,
            JobStatus.CANCELLING: self._handle_cleanup,
            JobStatus.FINISHED: self._handle_cleanup,
        }

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    @property
    def job(self) -> Job:
        return self._job

    @property
    def feeder(self) -> Optional[Feeder]:
        return self._feeder

    @property
    def pending_actions(self) -> List[str]:
        return [action.value for action in self._actions]

    def request_action(self, action: ControlAction) -> None:
        """Queue ``action`` for the next tick and wake the loop."""
        self._actions.append(ControlAction(action))
        self._wake.set()

    def armed_since(self) -> Optional[datetime]:
        return self._signal.armed_since()

    def info(self) -> Dict[str, object]:
        armed_since = self.armed_since()
        return {
            "job": self._job.as_dict(),
            "armedSince": armed_since.isoformat(timespec="seconds")
            if armed_since
            else None,
            "pendingActions": self.pending_actions,
            "pollingInterval": self._polling_interval,
        }

    async def run(self) -> None:
        """Tick until :meth:`stop` is called; ticks never overlap."""

        self._stopping = False
        LOGGER.info(
            "Job orchestrator running (polling every %.0fs)", self._polling_interval
        )
        while not self._stopping:
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception:
                LOGGER.exception("Unexpected failure while processing job %s", self._job.id)

            if self._stopping:
                break
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self._polling_interval)
            except asyncio.TimeoutError:
                pass
            self._wake.clear()

    async def stop(self) -> None:
        self._stopping = True
        self._wake.set()
        if self._feeder is not None:
            self._feeder.cancel()

    async def tick(self) -> None:
        await self._heartbeat()
        await self._apply_actions()
        LOGGER.info("My status is: %s", self._status_text())

        chain = True
        while chain:
            handler = self._handlers.get(self._job.status)  # type: ignore[call-overload]
            if handler is None:
                LOGGER.error(
                    "Job %s is in an unknown state %r; manual intervention required",
                    self._job.id,
                    self._status_text(),
                )
                self._job_problem(f"unknown status {self._status_text()!r}")
                return
            chain = await handler()

    # ------------------------------------------------------------------
    # State handlers
    # ------------------------------------------------------------------
    async def _handle_waiting_job(self) -> bool:
        try:
            snapshot = await self._queue.fetch_job(0)
        except NoJobAvailable:
            LOGGER.debug("Nothing to print")
            return False
        except InternError as exc:
            LOGGER.error("Can't fetch next job from intern: %s", exc)
            return False

        self._job.adopt(snapshot)
        now = self._clock()
        self._job.fetched = now
        self._job.scheduled = now + self._waiting_for_button
        self._job.feeder_status = FeederStatus.IDLE

        # Clear whatever a previous job left behind, then arm for this one.
        self._signal.disarm()
        self._signal.arm()
        if self._signal.is_armed():
            self._mark_ok(SIGNAL)
        else:
            self._mark_failed(SIGNAL, "signal marker could not be created")

        await self._transition(JobStatus.WAITING_BUTTON)
        LOGGER.info(
            "Job %s (%s from %s) marked as %s",
            self._job.id,
            self._job.filename,
            self._job.owner,
            self._status_text(),
        )
        return True

    async def _handle_waiting_button(self) -> bool:
        LOGGER.info("Job %s is waiting", self._job.id)
        remote = await self._fetch_remote()
        if remote is not None and remote.status == JobStatus.CANCELLING:
            LOGGER.info("Job %s is cancelling on intern", self._job.id)
            await self._transition(JobStatus.CANCELLING)
            return False

        if not self._signal.is_armed():
            LOGGER.info("Job %s was cancelled through device", self._job.id)
            await self._transition(JobStatus.CANCELLING)
            return False

        now = self._clock()
        deadline = self._job.scheduled
        if deadline is not None and now < deadline:
            if self._signal.is_confirmed():
                await self._transition(JobStatus.SENDING)
            else:
                LOGGER.info(
                    "Waiting %d more seconds for somebody to press the button",
                    int((deadline - now).total_seconds()),
                )
            return False

        LOGGER.warning("Nobody pressed the button on time for job %s", self._job.id)
        await self._report(JobStatus.BUTTON_TIMEOUT.value)
        self._reset()
        LOGGER.warning("Switching back to %s", self._status_text())
        return False

    async def _handle_sending(self) -> bool:
        LOGGER.info("Sending job %s to printer", self._job.id)
        LOGGER.debug("File size: %d", len(self._job.file_content))

        try:
            self._job_path.write_text(self._job.file_content, encoding="utf-8")
            os.chmod(self._job_path, JOB_FILE_MODE)
        except OSError as exc:
            LOGGER.error("Unable to stage job file %s: %s", self._job_path, exc)
            return False

        try:
            feeder = self._feeder_factory(self._job_path)
        except FeederError as exc:
            LOGGER.error("Failed to create feeder: %s", exc)
            self._mark_failed(FEEDER, str(exc))
            return False

        self._feeder = feeder
        self._cancel_ticks = 0
        self._mark_ok(FEEDER)
        await self._transition(JobStatus.PRINTING)
        feeder.feed()
        return False

    async def _handle_printing(self) -> bool:
        LOGGER.info("Job %s is currently in progress", self._job.id)

        if not self._signal.is_armed():
            LOGGER.warning("Job %s was cancelled through device", self._job.id)
            self._cancel_feed()
            await self._transition(JobStatus.CANCELLING)
            return False

        remote = await self._fetch_remote()
        if remote is not None and remote.status == JobStatus.CANCELLING:
            LOGGER.info("Cancelling job %s on request from intern", self._job.id)
            self._cancel_feed()
            await self._transition(JobStatus.CANCELLING)
            return False

        feeder = self._feeder
        if feeder is None:
            LOGGER.error("Job %s is printing without a feeder; cancelling", self._job.id)
            await self._transition(JobStatus.CANCELLING)
            return False

        self._job.progress = feeder.progress()
        self._job.feeder_status = feeder.status()
        if self._job.feeder_status == FeederStatus.FINISHED:
            self._job.status = JobStatus.FINISHED
        elif self._job.feeder_status == FeederStatus.ERROR:
            self._mark_failed(FEEDER, "printer reported an error")
            self._job.status = JobStatus.CANCELLING
        await self._report()
        return False

    async def _handle_cleanup(self) -> bool:
        feeder = self._feeder
        if feeder is not None and feeder.status() in _FEEDER_ACTIVE:
            # The port stays claimed until the feed thread lets go of it.
            self._cancel_ticks += 1
            feeder.cancel()
            if self._cancel_ticks <= CANCEL_GRACE_TICKS:
                LOGGER.info("Waiting for the feeder to stop before cleaning up")
            else:
                LOGGER.error(
                    "Feeder for job %s still %s after %d cancel requests",
                    self._job.id,
                    feeder.status().value,
                    self._cancel_ticks,
                )
                self._job_problem("feeder does not stop after cancel")
            return False

        LOGGER.info("Deleting job %s from intern", self._job.id)
        try:
            await self._queue.delete_job(self._job)
        except InternError as exc:
            LOGGER.error("Can't delete job %s from intern: %s", self._job.id, exc)

        self._reset()
        return False

    # ------------------------------------------------------------------
    # Control actions
    # ------------------------------------------------------------------
    async def _apply_actions(self) -> None:
        while self._actions:
            action = self._actions.popleft()
            status = self._job.status
            if action == ControlAction.RESCHEDULE:
                LOGGER.info("Rescheduling printer on operator request")
                try:
                    await self._queue.reschedule_printer()
                except InternError as exc:
                    LOGGER.error("Reschedule failed: %s", exc)
            elif action == ControlAction.START:
                if status == JobStatus.WAITING_BUTTON:
                    LOGGER.info("Job %s confirmed by operator", self._job.id)
                    await self._transition(JobStatus.SENDING)
                else:
                    LOGGER.info("Ignoring start request while %s", self._status_text())
            elif action == ControlAction.CANCEL:
                if status in (
                    JobStatus.WAITING_BUTTON,
                    JobStatus.SENDING,
                    JobStatus.PRINTING,
                ):
                    LOGGER.info("Job %s cancelled by operator", self._job.id)
                    self._cancel_feed()
                    await self._transition(JobStatus.CANCELLING)
                else:
                    LOGGER.info("Ignoring cancel request while %s", self._status_text())

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    async def _heartbeat(self) -> None:
        try:
            await self._queue.heartbeat()
        except InternError as exc:
            LOGGER.error("Heartbeat failed: %s", exc)
            self._mark_failed(INTERN, str(exc))
        else:
            self._mark_ok(INTERN)

    async def _fetch_remote(self) -> Optional[Job]:
        try:
            remote = await self._queue.fetch_job(self._job.id)
        except InternError as exc:
            LOGGER.error("Can't get job status from intern: %s", exc)
            return None
        LOGGER.info("Job status on intern: %s", remote.progress_text())
        return remote

    async def _transition(self, status: JobStatus) -> None:
        self._job.status = status
        await self._report()

    async def _report(self, status: Optional[str] = None) -> None:
        try:
            await self._queue.report_status(self._job, status)
        except InternError as exc:
            LOGGER.error("Can't report job %s to intern: %s", self._job.id, exc)

    def _cancel_feed(self) -> None:
        if self._feeder is not None:
            self._feeder.cancel()

    def _reset(self) -> None:
        self._job.reset()
        self._feeder = None
        self._cancel_ticks = 0
        if self._health is not None:
            self._health.clear_job_problem()
        # Marks the device as free.
        self._signal.disarm()

    def _status_text(self) -> str:
        status = self._job.status
        return status.value if isinstance(status, JobStatus) else str(status)

    def _mark_ok(self, component: str) -> None:
        if self._health is not None:
            self._health.succeeded(component)

    def _mark_failed(self, component: str, detail: str) -> None:
        if self._health is not None:
            self._health.failed(component, detail)

    def _job_problem(self, detail: str) -> None:
        if self._health is not None:
            self._health.report_job_problem(self._job, detail)

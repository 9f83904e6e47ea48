"""Protocol definitions for the orchestrator's collaborators."""

from __future__ import annotations

import asyncio
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional, Protocol, runtime_checkable

from .models import FeederStatus, Job


@runtime_checkable
class JobQueue(Protocol):
    """Contract for the remote job queue.

    Every method may raise ``juggler.adapters.intern.InternError``; callers
    decide whether a failure matters.
    """

    async def heartbeat(self) -> None:
        ...

    async def fetch_job(self, job_id: int = 0) -> Job:
        """Return the next queued job (``job_id == 0``) or the given job's remote state.

        Raises:
            NoJobAvailable: If the queue answered successfully but is empty.
        """
        ...

    async def report_status(self, job: Job, status: Optional[str] = None) -> None:
        ...

    async def delete_job(self, job: Job) -> None:
        ...

    async def reschedule_printer(self) -> None:
        ...


class Signal(Protocol):
    """Filesystem markers shared with the device-side agent."""

    def arm(self) -> None:
        ...

    def is_armed(self) -> bool:
        ...

    def armed_since(self) -> Optional[datetime]:
        ...

    def disarm(self) -> None:
        ...

    def is_confirmed(self) -> bool:
        ...


class Feeder(Protocol):
    """One feed session streaming a staged payload to the printer."""

    def feed(self) -> "asyncio.Task[None]":
        """Start streaming in the background and return immediately."""
        ...

    def progress(self) -> float:
        ...

    def status(self) -> FeederStatus:
        ...

    def cancel(self) -> None:
        """Request the feed to stop; the effect shows up in a later ``status()``."""
        ...


FeederFactory = Callable[[Path], Feeder]

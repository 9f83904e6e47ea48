"""Domain models for print jobs."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Union


class JobStatus(str, Enum):
    """Job states; values are the strings stored by the intern service."""

    WAITING_JOB = "Waiting for job"
    WAITING_BUTTON = "Waiting for a button"
    SENDING = "Sending to printer"
    PRINTING = "Printing"
    CANCELLING = "Cancelling"
    FINISHED = "Finished"
    # Reported once, never held as the local status.
    BUTTON_TIMEOUT = "Button timeout"

    @classmethod
    def parse(cls, value: Any) -> Union["JobStatus", str]:
        """Return the matching member, or the raw string if it is unknown."""
        text = "" if value is None else str(value)
        try:
            return cls(text)
        except ValueError:
            return text


class FeederStatus(str, Enum):
    IDLE = "idle"
    PRINTING = "printing"
    MMU_BUSY = "mmu_busy"
    FSENSOR_BUSY = "fsensor_busy"
    FINISHED = "finished"
    ERROR = "error"


def _status_value(status: Union[JobStatus, str]) -> str:
    return status.value if isinstance(status, JobStatus) else str(status)


@dataclass
class Job:
    """The single job tracked by the orchestrator.

    ``id == 0`` means nothing is being tracked. ``feeder_status`` only
    carries meaning while ``status`` is ``PRINTING``.
    """

    id: int = 0
    filename: str = ""
    file_content: str = ""
    owner: str = ""
    status: Union[JobStatus, str] = JobStatus.WAITING_JOB
    progress: float = 0.0
    feeder_status: FeederStatus = FeederStatus.IDLE
    fetched: Optional[datetime] = None
    scheduled: Optional[datetime] = None

    @classmethod
    def from_remote(cls, content: Optional[Mapping[str, Any]]) -> "Job":
        """Build a snapshot from the ``Content`` object of an intern response.

        Keys are matched case-insensitively (``Id`` and ``id`` are the same field).
        """
        if not content:
            return cls()
        fields = {str(key).lower(): value for key, value in content.items()}
        try:
            job_id = int(fields.get("id") or 0)
        except (TypeError, ValueError):
            job_id = 0
        try:
            progress = float(fields.get("progress") or 0.0)
        except (TypeError, ValueError):
            progress = 0.0
        return cls(
            id=job_id,
            filename=str(fields.get("file_name") or ""),
            file_content=str(fields.get("file_content") or ""),
            owner=str(fields.get("owner") or ""),
            status=JobStatus.parse(fields.get("status")),
            progress=progress,
        )

    @property
    def is_active(self) -> bool:
        return self.id != 0

    def adopt(self, snapshot: "Job") -> None:
        self.id = snapshot.id
        self.filename = snapshot.filename
        self.file_content = snapshot.file_content
        self.owner = snapshot.owner
        self.progress = snapshot.progress

    def reset(self) -> None:
        self.id = 0
        self.filename = ""
        self.file_content = ""
        self.owner = ""
        self.status = JobStatus.WAITING_JOB
        self.progress = 0.0
        self.feeder_status = FeederStatus.IDLE
        self.fetched = None
        self.scheduled = None

    def progress_text(self) -> str:
        """Status string reported to intern, with progress while printing."""
        if self.status == JobStatus.PRINTING:
            if self.feeder_status == FeederStatus.PRINTING:
                return f"Printing... ({self.progress:.1f}%)"
            if self.feeder_status == FeederStatus.MMU_BUSY:
                return "Printing paused: MMU paused printing"
            if self.feeder_status == FeederStatus.FSENSOR_BUSY:
                return "Printing paused: Filament sensor paused printing"
        return _status_value(self.status)

    def as_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "filename": self.filename,
            "owner": self.owner,
            "status": _status_value(self.status),
            "statusText": self.progress_text(),
            "progress": self.progress,
            "feederStatus": self.feeder_status.value,
            "size": len(self.file_content),
            "fetched": self.fetched.isoformat(timespec="seconds")
            if self.fetched
            else None,
            "scheduled": self.scheduled.isoformat(timespec="seconds")
            if self.scheduled
            else None,
        }

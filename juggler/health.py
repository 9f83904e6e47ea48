"""Health of the job runner's collaborators and of the tracked job."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from .core import Job

INTERN = "intern"
SIGNAL = "signal"
FEEDER = "feeder"
STATUS_ENDPOINT = "status-endpoint"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class ComponentHealth:
    """Outcome of the latest call into one collaborator.

    ``since`` only moves when the component flips between healthy and
    failing, so it tells how long the current condition has lasted.
    """

    healthy: bool
    since: datetime
    detail: Optional[str] = None
    failures: int = 0


@dataclass(slots=True)
class JobProblem:
    job_id: int
    detail: str
    since: datetime = field(default_factory=_utcnow)


class HealthReporter:
    """Collects the results the orchestrator and app record after each call.

    A component is degraded from its first failure until its next success.
    The reporter also carries a job problem: a job the orchestrator cannot
    move forward on its own (an unknown status, a feeder that ignores
    cancel). Both turn ``/healthz`` into 503.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._clock = clock or _utcnow
        self._components: Dict[str, ComponentHealth] = {}
        self._job_problem: Optional[JobProblem] = None

    def succeeded(self, name: str) -> None:
        current = self._components.get(name)
        if current is not None and current.healthy:
            return
        self._components[name] = ComponentHealth(healthy=True, since=self._clock())

    def failed(self, name: str, detail: str) -> None:
        current = self._components.get(name)
        if current is not None and not current.healthy:
            current.detail = detail
            current.failures += 1
            return
        self._components[name] = ComponentHealth(
            healthy=False, since=self._clock(), detail=detail, failures=1
        )

    def component(self, name: str) -> Optional[ComponentHealth]:
        return self._components.get(name)

    def report_job_problem(self, job: Job, detail: str) -> None:
        problem = self._job_problem
        if problem is not None and problem.job_id == job.id:
            problem.detail = detail
            return
        self._job_problem = JobProblem(job_id=job.id, detail=detail, since=self._clock())

    def clear_job_problem(self) -> None:
        self._job_problem = None

    @property
    def healthy(self) -> bool:
        if self._job_problem is not None:
            return False
        return all(item.healthy for item in self._components.values())

    def snapshot(
        self, job: Optional[Job] = None, *, armed_since: Optional[datetime] = None
    ) -> Dict[str, object]:
        components = [
            {
                "name": name,
                "healthy": item.healthy,
                "detail": item.detail,
                "failures": item.failures,
                "since": item.since.isoformat(timespec="seconds"),
            }
            for name, item in sorted(self._components.items())
        ]
        payload: Dict[str, object] = {
            "status": "ok" if self.healthy else "degraded",
            "components": components,
        }

        if job is not None:
            problem = self._job_problem
            payload["job"] = {
                "id": job.id,
                "statusText": job.progress_text(),
                "feederStatus": job.feeder_status.value,
                "armedSince": armed_since.isoformat(timespec="seconds")
                if armed_since
                else None,
                "problem": problem.detail if problem is not None else None,
            }
        return payload

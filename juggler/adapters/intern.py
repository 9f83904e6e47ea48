"""Client for the intern print queue service."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Mapping, Optional

import aiohttp

from ..config import InternConfig
from ..core import Job

LOGGER = logging.getLogger(__name__)


class InternError(RuntimeError):
    """Base class for failures talking to the intern service."""


class TransportError(InternError):
    """The request did not complete or the response could not be decoded."""


class RemoteRejected(InternError):
    """The service answered with ``Success: false``."""


class NoJobAvailable(InternError):
    """The service answered successfully but has nothing to print."""


class InternClient:
    """Form-encoded POST client for the ``/job/`` and ``/printer/`` endpoints.

    Each call is independent; the underlying :class:`aiohttp.ClientSession`
    is only reused for connection pooling.
    """

    def __init__(
        self,
        config: InternConfig,
        *,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.config = config
        self._base_url = config.uri.rstrip("/")
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=config.request_timeout_seconds)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def heartbeat(self) -> None:
        await self._post("/printer/", "heartbeat")

    async def reschedule_printer(self) -> None:
        await self._post("/printer/", "reschedule")

    async def fetch_job(self, job_id: int = 0) -> Job:
        """Fetch the next queued job, or the remote state of ``job_id``.

        Raises:
            TransportError: On network, HTTP or decoding failure.
            RemoteRejected: If the service reports ``Success: false``.
            NoJobAvailable: If the returned job has no id.
        """

        fields = {"id": str(job_id)} if job_id else {}
        body = await self._post("/job/", "get", fields)

        try:
            result = json.loads(body)
        except ValueError as exc:
            raise TransportError(f"Invalid JSON from intern: {exc}") from exc
        if not isinstance(result, Mapping):
            raise TransportError("Unexpected response shape from intern")

        envelope = {str(key).lower(): value for key, value in result.items()}
        if not envelope.get("success"):
            raise RemoteRejected(
                f"job {job_id} action 'get' unsuccessful: {envelope.get('error') or ''}"
            )

        content = envelope.get("content")
        job = Job.from_remote(content if isinstance(content, Mapping) else None)
        if not job.is_active:
            raise NoJobAvailable("Nothing to print")
        return job

    async def report_status(self, job: Job, status: Optional[str] = None) -> None:
        """Push ``job``'s status (with progress while printing) to the service."""

        text = status if status is not None else job.progress_text()
        LOGGER.debug("Reporting job %s status %r", job.id, text)
        await self._post("/job/", "update", {"status": text, "id": str(job.id)})

    async def delete_job(self, job: Job) -> None:
        await self._post("/job/", "delete", {"id": str(job.id)})

    async def aclose(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _form(self, action: str, extra: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        data = {
            "app": self.config.app,
            "token": self.config.key,
            "action": action,
            "printer_name": self.config.printer_name,
            "office_name": self.config.office_name,
        }
        if extra:
            data.update(extra)
        return data

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def _post(
        self,
        endpoint: str,
        action: str,
        extra: Optional[Mapping[str, str]] = None,
    ) -> str:
        session = await self._ensure_session()
        url = f"{self._base_url}{endpoint}"
        kwargs: Dict[str, Any] = {"data": self._form(action, extra), "timeout": self._timeout}
        if not self.config.verify_tls:
            kwargs["ssl"] = False

        try:
            async with session.post(url, **kwargs) as response:
                text = await response.text()
                if response.status >= 400:
                    raise TransportError(
                        f"intern {action} failed with status {response.status}: {text.strip()}"
                    )
                return text
        except asyncio.TimeoutError as exc:
            raise TransportError(
                f"intern {action} timed out after {self.config.request_timeout_seconds:.0f}s"
            ) from exc
        except aiohttp.ClientError as exc:
            raise TransportError(f"intern {action} request failed: {exc}") from exc

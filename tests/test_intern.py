"""Tests for the intern queue client."""

from __future__ import annotations

import json
from typing import Any, Dict, List

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from juggler.adapters.intern import (
    InternClient,
    NoJobAvailable,
    RemoteRejected,
    TransportError,
)
from juggler.config import InternConfig
from juggler.core import FeederStatus, Job, JobStatus


def _config(uri: str, **overrides: Any) -> InternConfig:
    values: Dict[str, Any] = dict(
        app="3djuggler",
        key="secret",
        uri=uri,
        printer_name="prusa-mk3",
        office_name="london",
        request_timeout_seconds=5.0,
    )
    values.update(overrides)
    return InternConfig(**values)


class _Intern:
    """Records form posts and answers ``get`` with a configurable body."""

    def __init__(self) -> None:
        self.requests: List[Dict[str, str]] = []
        self.paths: List[str] = []
        self.get_body: Any = {"Success": True, "Content": None, "Error": ""}
        self.status = 200

    async def handle(self, request: web.Request) -> web.StreamResponse:
        form = await request.post()
        self.requests.append({key: str(value) for key, value in form.items()})
        self.paths.append(request.path)
        if self.status != 200:
            return web.Response(status=self.status, text="broken")
        if form.get("action") == "get":
            body = self.get_body
            text = body if isinstance(body, str) else json.dumps(body)
            return web.Response(text=text, content_type="application/json")
        return web.Response(text="")

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/api/job/", self.handle)
        app.router.add_post("/api/printer/", self.handle)
        return app


@pytest.mark.asyncio
async def test_fetch_next_job_parses_content() -> None:
    intern = _Intern()
    intern.get_body = {
        "Success": True,
        "Content": {
            "Id": 42,
            "file_name": "benchy.gcode",
            "file_content": "G28\n",
            "Owner": "alice",
            "Status": "Waiting for job",
            "Progress": 0,
        },
        "Error": "",
    }

    async with TestServer(intern.app()) as server:
        client = InternClient(_config(str(server.make_url("/api"))))
        try:
            job = await client.fetch_job()
        finally:
            await client.aclose()

    assert job.id == 42
    assert job.filename == "benchy.gcode"
    assert job.file_content == "G28\n"
    assert job.owner == "alice"
    assert job.status == JobStatus.WAITING_JOB

    request = intern.requests[0]
    assert intern.paths == ["/api/job/"]
    assert request == {
        "app": "3djuggler",
        "token": "secret",
        "action": "get",
        "printer_name": "prusa-mk3",
        "office_name": "london",
    }


@pytest.mark.asyncio
async def test_fetch_job_by_id_sends_id() -> None:
    intern = _Intern()
    intern.get_body = {"success": True, "content": {"id": 42, "status": "Cancelling"}}

    async with TestServer(intern.app()) as server:
        client = InternClient(_config(str(server.make_url("/api"))))
        try:
            job = await client.fetch_job(42)
        finally:
            await client.aclose()

    assert intern.requests[0]["id"] == "42"
    assert job.status == JobStatus.CANCELLING


@pytest.mark.asyncio
async def test_fetch_job_without_content_means_nothing_to_print() -> None:
    intern = _Intern()
    intern.get_body = {"Success": True, "Content": {"Id": 0}, "Error": ""}

    async with TestServer(intern.app()) as server:
        client = InternClient(_config(str(server.make_url("/api"))))
        try:
            with pytest.raises(NoJobAvailable):
                await client.fetch_job()
        finally:
            await client.aclose()


@pytest.mark.asyncio
async def test_fetch_job_unsuccessful_is_rejected() -> None:
    intern = _Intern()
    intern.get_body = {"Success": False, "Content": None, "Error": "bad token"}

    async with TestServer(intern.app()) as server:
        client = InternClient(_config(str(server.make_url("/api"))))
        try:
            with pytest.raises(RemoteRejected, match="bad token"):
                await client.fetch_job()
        finally:
            await client.aclose()


@pytest.mark.asyncio
async def test_fetch_job_invalid_json_is_transport_error() -> None:
    intern = _Intern()
    intern.get_body = "<html>maintenance</html>"

    async with TestServer(intern.app()) as server:
        client = InternClient(_config(str(server.make_url("/api"))))
        try:
            with pytest.raises(TransportError, match="Invalid JSON"):
                await client.fetch_job()
        finally:
            await client.aclose()


@pytest.mark.asyncio
async def test_http_error_is_transport_error() -> None:
    intern = _Intern()
    intern.status = 502

    async with TestServer(intern.app()) as server:
        client = InternClient(_config(str(server.make_url("/api"))))
        try:
            with pytest.raises(TransportError, match="502"):
                await client.heartbeat()
        finally:
            await client.aclose()


@pytest.mark.asyncio
async def test_connection_failure_is_transport_error(unused_tcp_port: int) -> None:
    client = InternClient(_config(f"http://127.0.0.1:{unused_tcp_port}/api"))
    try:
        with pytest.raises(TransportError):
            await client.fetch_job()
    finally:
        await client.aclose()


@pytest.mark.asyncio
async def test_report_status_includes_progress() -> None:
    intern = _Intern()
    job = Job(
        id=42,
        status=JobStatus.PRINTING,
        progress=42.5,
        feeder_status=FeederStatus.PRINTING,
    )

    async with TestServer(intern.app()) as server:
        client = InternClient(_config(str(server.make_url("/api"))))
        try:
            await client.report_status(job)
            await client.report_status(job, JobStatus.BUTTON_TIMEOUT.value)
        finally:
            await client.aclose()

    first, second = intern.requests
    assert first["action"] == "update"
    assert first["id"] == "42"
    assert first["status"] == "Printing... (42.5%)"
    assert second["status"] == "Button timeout"


@pytest.mark.asyncio
async def test_printer_actions_use_printer_endpoint() -> None:
    intern = _Intern()

    async with TestServer(intern.app()) as server:
        client = InternClient(_config(str(server.make_url("/api"))))
        try:
            await client.heartbeat()
            await client.reschedule_printer()
            await client.delete_job(Job(id=9))
        finally:
            await client.aclose()

    assert intern.paths == ["/api/printer/", "/api/printer/", "/api/job/"]
    assert [request["action"] for request in intern.requests] == [
        "heartbeat",
        "reschedule",
        "delete",
    ]
    assert intern.requests[2]["id"] == "9"
    assert "id" not in intern.requests[0]

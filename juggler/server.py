"""Minimal HTTP status and control surface."""

from __future__ import annotations

import contextlib
import logging
from typing import Dict, Optional

from aiohttp import web

from .health import HealthReporter
from .orchestrator import ControlAction, JobOrchestrator

LOGGER = logging.getLogger(__name__)


class StatusServer:
    """Serves ``/info``, ``/healthz`` and ``POST /control/{action}``.

    Handlers only read orchestrator state and queue actions; the orchestrator
    applies them on its next tick.
    """

    def __init__(
        self,
        orchestrator: JobOrchestrator,
        reporter: HealthReporter,
        host: str,
        port: int,
    ) -> None:
        self._orchestrator = orchestrator
        self._reporter = reporter
        self._host = host
        self._port = port
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/info", self._handle_info)
        app.router.add_get("/healthz", self._handle_health)
        app.router.add_post("/control/{action}", self._handle_control)
        return app

    async def start(self) -> None:
        self._runner = web.AppRunner(self.build_app())
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self._host, self._port)
        await self._site.start()
        LOGGER.info("Status endpoint listening on http://[%s]:%s/info", self._host, self._port)

    async def stop(self) -> None:
        with contextlib.suppress(Exception):
            if self._site is not None:
                await self._site.stop()
        if self._runner is not None:
            await self._runner.cleanup()
        self._site = None
        self._runner = None

    async def _handle_info(self, request: web.Request) -> web.Response:
        payload = self._orchestrator.info()
        payload["health"] = self._snapshot()
        return web.json_response(payload)

    async def _handle_health(self, request: web.Request) -> web.Response:
        snapshot = self._snapshot()
        status = 200 if snapshot["status"] == "ok" else 503
        return web.json_response(snapshot, status=status)

    async def _handle_control(self, request: web.Request) -> web.Response:
        name = request.match_info["action"]
        try:
            action = ControlAction(name)
        except ValueError:
            raise web.HTTPNotFound(text=f"Unknown action: {name}") from None

        LOGGER.info("Control request %s from %s", action.value, request.remote)
        self._orchestrator.request_action(action)
        return web.json_response({"queued": action.value}, status=202)

    def _snapshot(self) -> Dict[str, object]:
        return self._reporter.snapshot(
            self._orchestrator.job, armed_since=self._orchestrator.armed_since()
        )

"""HTTP API for submitting workflows and inspecting their instances."""

from __future__ import annotations

import asyncio
import uuid
from typing import Any

from aiohttp import web

from .engine import WorkflowEngine
from .models import Workflow


def parse_address(addr: str) -> tuple[str, int]:
    """Split ``host:port`` into its parts; IPv6 hosts may be bracketed."""
    host, sep, port_text = addr.rpartition(":")
    if not sep or not host or not port_text.isdigit():
        raise ValueError(f"invalid address: {addr!r}")
    port = int(port_text)
    if port > 65535:
        raise ValueError(f"invalid port in address: {addr!r}")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    return host, port


async def _read_json(request: web.Request) -> Any:
    if request.content_type != "application/json":
        raise web.HTTPUnsupportedMediaType(text="Expected request with `Content-Type: application/json`")
    try:
        return await request.json()
    except ValueError as exc:
        raise web.HTTPBadRequest(text=f"Failed to parse the request body as JSON: {exc}") from None


class ApiServer:
    """Serves the workflow API on top of a workflow engine."""

    def __init__(self, engine: WorkflowEngine) -> None:
        self.engine = engine

    def build_app(self) -> web.Application:
        """Return the application with every route wired up."""
        app = web.Application()
        app.add_routes(
            [
                web.post("/workflows", self._create_workflow),
                web.get("/workflows/{id}", self._get_workflow),
                web.post("/workflows/{id}/instances", self._start_workflow_instance),
                web.get("/instances/{id}", self._get_instance),
                web.post("/instances/{id}/feedback", self._trigger_feedback),
            ]
        )
        return app

    async def start(self, addr: str) -> None:
        """Listen on ``host:port`` and serve until cancelled."""
        host, port = parse_address(addr)
        runner = web.AppRunner(self.build_app())
        await runner.setup()
        try:
            site = web.TCPSite(runner, host, port)
            await site.start()
            await asyncio.Event().wait()
        finally:
            await runner.cleanup()

    async def _create_workflow(self, request: web.Request) -> web.Response:
        data = await _read_json(request)
        try:
            workflow = Workflow.from_json(data)
        except (ValueError, TypeError) as exc:
            raise web.HTTPUnprocessableEntity(text=f"Invalid workflow: {exc}") from None
        return web.json_response({"id": str(workflow.id)})

    async def _get_workflow(self, request: web.Request) -> web.Response:
        return web.json_response({"id": request.match_info["id"]})

    async def _start_workflow_instance(self, request: web.Request) -> web.Response:
        return web.json_response({"instance_id": str(uuid.uuid4())})

    async def _get_instance(self, request: web.Request) -> web.Response:
        return web.json_response({"id": request.match_info["id"]})

    async def _trigger_feedback(self, request: web.Request) -> web.Response:
        await _read_json(request)
        return web.json_response({"status": "feedback_triggered"})
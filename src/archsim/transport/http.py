"""HTTP transport - REST endpoints and SSE progress for the runtime.

Routes:
    POST /api/runtime/start     Deploy graphs, answer with the execution order
    POST /api/runtime/stream    Deploy graphs, stream progress as SSE
    GET  /api/runtime/report    Design report of the active graph
    *    /api/run/{path}        Simulated request against the active graph
    GET  /health                Liveness and runtime status
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any

from aiohttp import web

from archsim.config import RuntimeConfig
from archsim.core.errors import CyclicGraphError, MalformedGraphError, StepExecutionError
from archsim.core.graph.model import GraphCollection
from archsim.server.engine import RuntimeEngine

logger = logging.getLogger(__name__)

RUN_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")

SSE_HEADERS = {
    "Content-Type": "text/event-stream; charset=utf-8",
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class InvalidJSONError(ValueError):
    """Request body is not valid JSON."""


async def _read_json(request: web.Request) -> Any:
    try:
        return await request.json()
    except ValueError as err:
        # JSONDecodeError and UnicodeDecodeError are both ValueErrors
        raise InvalidJSONError(str(err)) from err


async def _read_run_payload(request: web.Request) -> Any:
    """JSON body of a simulated request; None unless it carries JSON."""
    if request.method in ("GET", "HEAD"):
        return None
    if "application/json" not in request.headers.get("Content-Type", ""):
        return None
    try:
        text = await request.text()
        if not text.strip():
            return None
        return json.loads(text)
    except ValueError as err:
        raise InvalidJSONError(str(err)) from err


@dataclass
class HTTPServer:
    """HTTP server transport.

    Example:
        >>> engine = RuntimeEngine(RuntimeConfig(port=8787))
        >>> server = HTTPServer(engine=engine)
        >>> await server.serve()
    """

    engine: RuntimeEngine = field(default_factory=RuntimeEngine)
    host: str | None = None
    port: int | None = None
    _app: web.Application | None = None
    _runner: web.AppRunner | None = None
    _shutdown_event: asyncio.Event | None = field(default=None, repr=False)

    @property
    def config(self) -> RuntimeConfig:
        return self.engine.config

    @property
    def bound_port(self) -> int | None:
        """Port actually bound (useful when started on port 0)."""
        if not self._runner:
            return None
        for address in self._runner.addresses:
            if isinstance(address, tuple) and len(address) >= 2:
                return int(address[1])
        return None

    def make_app(self) -> web.Application:
        app = web.Application(client_max_size=self.config.max_body_size)
        app.router.add_post("/api/runtime/start", self._handle_start)
        app.router.add_post("/api/runtime/stream", self._handle_stream)
        app.router.add_get("/api/runtime/report", self._handle_report)
        for method in RUN_METHODS:
            app.router.add_route(method, "/api/run", self._handle_run)
            app.router.add_route(method, "/api/run/{path:.*}", self._handle_run)
        app.router.add_get("/health", self._handle_health)
        return app

    async def start(self) -> None:
        """Bind and start listening without blocking."""
        host = self.host or self.config.host
        port = self.port if self.port is not None else self.config.port

        self._shutdown_event = asyncio.Event()
        self._app = self.make_app()
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()

        site = web.TCPSite(self._runner, host, port)
        await site.start()
        logger.info("HTTP server started on %s:%s", host, self.bound_port or port)

    async def serve(self) -> None:
        """Start the HTTP server and run until stop() is called."""
        await self.start()
        assert self._shutdown_event is not None
        try:
            await self._shutdown_event.wait()
        finally:
            logger.info("HTTP server shutdown requested")
            await self._cleanup()

    async def stop(self) -> None:
        """Stop the HTTP server."""
        if self._shutdown_event is not None and not self._shutdown_event.is_set():
            self._shutdown_event.set()
        await self._cleanup()

    async def _cleanup(self) -> None:
        if self._runner:
            await self._runner.cleanup()
            self._runner = None

    # -------------------------------------------------------------------------
    # Handlers
    # -------------------------------------------------------------------------

    async def _parse_collection(self, request: web.Request) -> GraphCollection | web.Response:
        """Parse a deploy payload or build the matching 400 response."""
        try:
            payload = await _read_json(request)
        except InvalidJSONError:
            return web.json_response({"error": "invalid_json"}, status=400)

        try:
            return GraphCollection.from_dict(payload)
        except MalformedGraphError as err:
            logger.info("deploy_rejected: %s", err)
            return web.json_response(
                {"error": "invalid_graph_payload", "details": err.to_dict()},
                status=400,
            )

    async def _handle_start(self, request: web.Request) -> web.Response:
        """Handle POST /api/runtime/start."""
        parsed = await self._parse_collection(request)
        if isinstance(parsed, web.Response):
            return parsed

        try:
            order = self.engine.deploy(parsed)
        except CyclicGraphError as err:
            logger.info("deploy_rejected: %s", err)
            return web.json_response(err.to_dict(), status=400)
        except StepExecutionError as err:
            logger.info("deploy_rejected: node=%s: %s", err.node_id, err)
            return web.json_response(
                {"error": "runtime_start_failed", "message": str(err), "details": err.to_dict()},
                status=400,
            )

        return web.json_response(
            {"ok": True, "executionOrder": order.to_list(), "totalNodes": len(order)}
        )

    async def _handle_stream(self, request: web.Request) -> web.StreamResponse:
        """Handle POST /api/runtime/stream."""
        parsed = await self._parse_collection(request)
        if isinstance(parsed, web.Response):
            return parsed

        response = web.StreamResponse(status=200, headers=SSE_HEADERS)
        await response.prepare(request)

        try:
            for event in self.engine.stream_start(parsed):
                await response.write(event.to_sse().encode("utf-8"))
        except (ConnectionResetError, BrokenPipeError):
            # Client disconnected mid-stream
            logger.debug("Client disconnected during runtime stream")
            return response

        await response.write_eof()
        return response

    async def _handle_report(self, request: web.Request) -> web.Response:
        """Handle GET /api/runtime/report."""
        report = self.engine.report()
        if report is None:
            return web.json_response(
                {"error": "runtime_not_initialized", "message": "No active runtime graph is loaded."},
                status=503,
            )
        return web.json_response(report.to_dict())

    async def _handle_run(self, request: web.Request) -> web.Response:
        """Handle /api/run/{path} for every simulated method."""
        path = "/" + request.match_info.get("path", "")
        try:
            payload = await _read_run_payload(request)
        except InvalidJSONError:
            return web.json_response({"error": "invalid_json"}, status=400)

        query = {key: value for key, value in request.query.items() if key != "debug"}
        result = self.engine.dispatch(
            request.method,
            path,
            payload=payload,
            query=query,
            debug=request.query.get("debug") == "1",
        )
        status, body = result.to_response()
        return web.json_response(body, status=status)

    async def _handle_health(self, request: web.Request) -> web.Response:
        """Handle GET /health."""
        snapshot = self.engine.state.snapshot()
        return web.json_response(
            {
                "status": "ok",
                "initialized": snapshot is not None,
                "updatedAt": snapshot.updated_at_iso if snapshot else None,
            }
        )

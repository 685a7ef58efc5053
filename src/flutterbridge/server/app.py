"""
FastAPI application serving the MCP endpoint.

Usage::

    from flutterbridge.server.app import create_app, start_server
    app = create_app()
    start_server(config)

Routes:
  POST /mcp     JSON-RPC 2.0 (see server.mcp)
  GET  /health  liveness probe

Every session is torn down when the app shuts down.
"""

from __future__ import annotations

import json
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from flutterbridge import __version__
from flutterbridge.core.config import FlutterBridgeConfig
from flutterbridge.core.session.manager import SessionManager, get_session_manager
from flutterbridge.server.mcp import PARSE_ERROR, McpDispatcher, error_response
from flutterbridge.tools.executor import ToolExecutor
from flutterbridge.tools.registry import ToolRegistry, get_default_registry

logger = structlog.get_logger()


class _AccessLogMiddleware(BaseHTTPMiddleware):
    """Log every request with method, path, status and elapsed time."""

    async def dispatch(self, request, call_next):
        start = time.monotonic()
        response = await call_next(request)
        logger.debug(
            "http_request",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            elapsed_ms=round((time.monotonic() - start) * 1000, 1),
        )
        return response


def create_app(
    session_manager: SessionManager | None = None,
    registry: ToolRegistry | None = None,
    config: FlutterBridgeConfig | None = None,
) -> FastAPI:
    """
    Create the MCP server application.

    When *config* is given the session manager is configured from it at
    startup (inside the event loop, so the inactivity sweep can start).
    """
    manager = session_manager or get_session_manager()
    executor = ToolExecutor(registry or get_default_registry(), manager)
    dispatcher = McpDispatcher(executor)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if config is not None:
            sessions = config.sessions
            manager.configure(
                sessions.allow_only,
                max_sessions=sessions.max_sessions,
                pre_build_script=sessions.pre_build_script,
                post_build_script=sessions.post_build_script,
                base_path=sessions.base_path,
                session_timeout_minutes=sessions.session_timeout_minutes,
                flutter_config=config.flutter,
            )
        logger.info("server_started", version=__version__)
        try:
            yield
        finally:
            logger.info("server_stopping")
            await manager.cleanup()

    app = FastAPI(
        title="FlutterBridge",
        description="MCP server for Flutter iOS development sessions",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        lifespan=lifespan,
    )
    app.state.session_manager = manager
    app.state.executor = executor
    app.add_middleware(_AccessLogMiddleware)

    @app.post("/mcp")
    async def mcp(request: Request) -> Response:
        body = await request.body()
        try:
            message = json.loads(body)
        except ValueError as exc:
            logger.warning("mcp_parse_error", error=str(exc))
            return JSONResponse(
                error_response(None, PARSE_ERROR, f"Parse error: {exc}"), status_code=400
            )

        response = await dispatcher.dispatch(message)
        if response is None:
            return Response(status_code=202)
        return JSONResponse(response)

    @app.get("/health")
    async def health() -> JSONResponse:
        return JSONResponse(
            {
                "status": "ok",
                "timestamp": datetime.now(UTC).isoformat(),
                "sessions": manager.session_count(),
            }
        )

    return app


def start_server(config: FlutterBridgeConfig) -> None:
    """Start the MCP server (blocking)."""
    import uvicorn

    app = create_app(config=config)
    logger.info("server_listening", host=config.server.host, port=config.server.port)
    uvicorn.run(
        app,
        host=config.server.host,
        port=config.server.port,
        log_level="warning",
        log_config=None,
    )

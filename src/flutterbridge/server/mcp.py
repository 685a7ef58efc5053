"""
MCP JSON-RPC 2.0 dispatch.

Handles the request methods a tools-only MCP server needs:

  initialize                 server info and capabilities
  notifications/initialized  acknowledged, no response
  ping                       empty result
  tools/list                 registry definitions
  tools/call                 ToolExecutor result (tool failures are results,
                             not JSON-RPC errors)

Batches are not supported; MCP 2025-03-26 clients send single messages.
"""

from __future__ import annotations

from typing import Any

import structlog

from flutterbridge import __version__
from flutterbridge.core.constants import MCP_PROTOCOL_VERSION, SERVER_NAME
from flutterbridge.tools.executor import ToolExecutor

logger = structlog.get_logger()

JSONRPC_VERSION = "2.0"

# JSON-RPC 2.0 error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603


def _result(request_id: Any, result: dict[str, Any]) -> dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result}


def error_response(request_id: Any, code: int, message: str) -> dict[str, Any]:
    return {
        "jsonrpc": JSONRPC_VERSION,
        "id": request_id,
        "error": {"code": code, "message": message},
    }


class McpDispatcher:
    """Routes one decoded JSON-RPC message to its handler."""

    def __init__(self, executor: ToolExecutor) -> None:
        self._executor = executor

    async def dispatch(self, message: Any) -> dict[str, Any] | None:
        """Return the response object, or None for notifications."""
        if not isinstance(message, dict) or message.get("jsonrpc") != JSONRPC_VERSION:
            return error_response(None, INVALID_REQUEST, "Invalid JSON-RPC request")

        method = message.get("method")
        request_id = message.get("id")
        params = message.get("params") or {}
        is_notification = "id" not in message

        if not isinstance(method, str):
            return error_response(request_id, INVALID_REQUEST, "Missing method")
        if not isinstance(params, dict):
            return error_response(request_id, INVALID_PARAMS, "params must be an object")

        logger.debug("mcp_request", method=method, id=request_id)

        if is_notification:
            # initialized, cancelled, ... carry no response
            logger.debug("mcp_notification", method=method)
            return None

        match method:
            case "initialize":
                return _result(request_id, self._initialize(params))
            case "ping":
                return _result(request_id, {})
            case "tools/list":
                return _result(request_id, {"tools": self._executor.registry.to_definitions()})
            case "tools/call":
                return await self._call_tool(request_id, params)
            case _:
                return error_response(request_id, METHOD_NOT_FOUND, f"Method not found: {method}")

    def _initialize(self, params: dict[str, Any]) -> dict[str, Any]:
        client = params.get("clientInfo") or {}
        logger.info(
            "mcp_client_initialized",
            client=client.get("name"),
            client_version=client.get("version"),
            protocol_version=params.get("protocolVersion"),
        )
        return {
            "protocolVersion": MCP_PROTOCOL_VERSION,
            "capabilities": {"tools": {"listChanged": False}},
            "serverInfo": {"name": SERVER_NAME, "version": __version__},
        }

    async def _call_tool(self, request_id: Any, params: dict[str, Any]) -> dict[str, Any]:
        name = params.get("name")
        if not isinstance(name, str):
            return error_response(request_id, INVALID_PARAMS, "tools/call requires a tool name")

        arguments = params.get("arguments") or {}
        if not isinstance(arguments, dict):
            return error_response(request_id, INVALID_PARAMS, "Tool arguments must be an object")

        result = await self._executor.execute(name, arguments)
        return _result(request_id, result.to_mcp())

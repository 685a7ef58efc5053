"""
Tool executor: runs tools by name and shapes MCP tool results.

Every failure becomes an error result (``isError: true`` with
``{"error": message}``); nothing a tool does can take the server down.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

import structlog
from pydantic import ValidationError

from flutterbridge.core.exceptions import FlutterBridgeError
from flutterbridge.core.session.manager import SessionManager
from flutterbridge.tools.registry import ToolRegistry

logger = structlog.get_logger()


@dataclass
class ToolResult:
    payload: Any
    is_error: bool = False

    @classmethod
    def error(cls, message: str) -> ToolResult:
        return cls(payload={"error": message}, is_error=True)

    def to_mcp(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "content": [{"type": "text", "text": json.dumps(self.payload, indent=2)}],
        }
        if self.is_error:
            result["isError"] = True
        return result


def format_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err["loc"]) or "arguments"
        parts.append(f"{loc}: {err['msg']}")
    return "; ".join(parts)


class ToolExecutor:
    """Executes tools by looking them up in the registry."""

    def __init__(self, registry: ToolRegistry, session_manager: SessionManager) -> None:
        self._registry = registry
        self._session_manager = session_manager

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    async def execute(self, tool_name: str, arguments: dict[str, Any] | None) -> ToolResult:
        tool = self._registry.get(tool_name)
        if tool is None:
            logger.warning("tool_unknown", tool=tool_name)
            return ToolResult.error(f"Unknown tool: {tool_name}")

        logger.info("tool_executing", tool=tool_name)

        try:
            args = tool.args_model.model_validate(arguments or {})
            payload = await tool.handler(self._session_manager, args)
        except ValidationError as exc:
            message = f"Invalid arguments for {tool_name}: {format_validation_error(exc)}"
            logger.warning("tool_invalid_arguments", tool=tool_name, error=message)
            return ToolResult.error(message)
        except FlutterBridgeError as exc:
            logger.error("tool_failed", tool=tool_name, error=str(exc))
            return ToolResult.error(str(exc))
        except Exception as exc:  # noqa: BLE001
            logger.exception("tool_crashed", tool=tool_name)
            return ToolResult.error(str(exc) or type(exc).__name__)

        logger.info("tool_executed", tool=tool_name)
        return ToolResult(payload=payload)

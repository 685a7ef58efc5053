"""
Tool registry: the MCP tools FlutterBridge exposes.

Each tool has a name, a description, a pydantic arguments model (from
which the JSON Schema advertised in ``tools/list`` is derived) and an async
handler that receives the SessionManager and the validated arguments.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

if TYPE_CHECKING:
    from flutterbridge.core.session.manager import SessionManager

# Handlers return a JSON-serialisable payload
ToolHandlerFn = Callable[["SessionManager", Any], Awaitable[Any]]


class ToolArgs(BaseModel):
    """Base for tool argument models: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class NoArgs(ToolArgs):
    pass


class SessionArgs(ToolArgs):
    session_id: str = Field(description="Session ID")


@dataclass
class Tool:
    """A registered MCP tool."""

    name: str
    description: str
    args_model: type[BaseModel]
    handler: ToolHandlerFn

    @property
    def parameters(self) -> dict[str, Any]:
        """JSON Schema for the tool's arguments."""
        schema = self.args_model.model_json_schema(by_alias=True)
        schema.pop("title", None)
        schema.setdefault("properties", {})
        return schema

    def to_definition(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.parameters,
        }


class ToolRegistry:
    """Registry of available MCP tools."""

    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        if tool.name in self._tools:
            raise ValueError(f"Tool {tool.name!r} already registered")
        self._tools[tool.name] = tool

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def list_all(self) -> list[Tool]:
        return list(self._tools.values())

    def to_definitions(self) -> list[dict[str, Any]]:
        """Tool definitions in the shape of an MCP ``tools/list`` result."""
        return [t.to_definition() for t in self._tools.values()]


def get_default_registry() -> ToolRegistry:
    """Create a ToolRegistry with all built-in tools registered."""
    from flutterbridge.tools.builtins import get_builtin_tools

    registry = ToolRegistry()
    for tool in get_builtin_tools():
        registry.register(tool)
    return registry

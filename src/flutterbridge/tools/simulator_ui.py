"""UI automation tools: tap, type, swipe, accessibility queries and screenshots."""

from __future__ import annotations

from typing import Any

from pydantic import ConfigDict, Field

from flutterbridge.core.exceptions import SimulatorNotStartedError
from flutterbridge.core.session.manager import SessionManager
from flutterbridge.simulator import idb
from flutterbridge.tools.registry import SessionArgs, Tool


class UiTapArgs(SessionArgs):
    x: float = Field(description="X coordinate")
    y: float = Field(description="Y coordinate")
    duration: float | None = Field(default=None, gt=0, description="Press duration in seconds (long press)")


class UiTypeArgs(SessionArgs):
    text: str = Field(description="Text to type into the focused field")


class UiSwipeArgs(SessionArgs):
    # Coordinates keep their snake_case names on the wire
    model_config = ConfigDict(alias_generator=None, populate_by_name=True)

    session_id: str = Field(alias="sessionId", description="Session ID")
    x_start: float = Field(description="Start X coordinate")
    y_start: float = Field(description="Start Y coordinate")
    x_end: float = Field(description="End X coordinate")
    y_end: float = Field(description="End Y coordinate")
    duration: float | None = Field(default=None, gt=0, description="Swipe duration in seconds")


class UiDescribePointArgs(SessionArgs):
    x: float = Field(description="X coordinate")
    y: float = Field(description="Y coordinate")


def _require_simulator(manager: SessionManager, session_id: str) -> str:
    session = manager.require_session(session_id)
    manager.update_session_activity(session_id)
    if not session.simulator_udid:
        raise SimulatorNotStartedError(
            "No simulator running for this session. Call start_simulator or flutter_run first."
        )
    return session.simulator_udid


def _fmt(value: float) -> str:
    return f"{value:g}"


async def ui_tap(manager: SessionManager, args: UiTapArgs) -> dict[str, Any]:
    udid = _require_simulator(manager, args.session_id)
    await idb.tap(udid, args.x, args.y, args.duration)
    suffix = f" for {_fmt(args.duration)}s" if args.duration else ""
    return {"success": True, "message": f"Tapped at ({_fmt(args.x)}, {_fmt(args.y)}){suffix}"}


async def ui_type(manager: SessionManager, args: UiTypeArgs) -> dict[str, Any]:
    udid = _require_simulator(manager, args.session_id)
    await idb.type_text(udid, args.text)
    return {"success": True, "message": f"Typed {len(args.text)} characters"}


async def ui_swipe(manager: SessionManager, args: UiSwipeArgs) -> dict[str, Any]:
    udid = _require_simulator(manager, args.session_id)
    await idb.swipe(udid, args.x_start, args.y_start, args.x_end, args.y_end, args.duration)
    return {
        "success": True,
        "message": (
            f"Swiped from ({_fmt(args.x_start)}, {_fmt(args.y_start)}) "
            f"to ({_fmt(args.x_end)}, {_fmt(args.y_end)})"
        ),
    }


async def ui_describe_all(manager: SessionManager, args: SessionArgs) -> dict[str, Any]:
    udid = _require_simulator(manager, args.session_id)
    return {"accessibility_tree": await idb.describe_all(udid)}


async def ui_describe_point(manager: SessionManager, args: UiDescribePointArgs) -> dict[str, Any]:
    udid = _require_simulator(manager, args.session_id)
    return {"accessibility_info": await idb.describe_point(udid, args.x, args.y)}


async def screenshot(manager: SessionManager, args: SessionArgs) -> dict[str, Any]:
    udid = _require_simulator(manager, args.session_id)
    shot = await idb.screenshot(udid)
    return {
        "success": True,
        "imageData": shot.image_data,
        "format": shot.format,
        "message": f"Screenshot captured ({len(shot.image_data)} bytes base64)",
    }


TOOLS = [
    Tool(
        name="ui_tap",
        description="Tap at screen coordinates on the simulator (optionally a long press).",
        args_model=UiTapArgs,
        handler=ui_tap,
    ),
    Tool(
        name="ui_type",
        description="Type text into the currently focused field.",
        args_model=UiTypeArgs,
        handler=ui_type,
    ),
    Tool(
        name="ui_swipe",
        description="Swipe from one point to another on the simulator screen.",
        args_model=UiSwipeArgs,
        handler=ui_swipe,
    ),
    Tool(
        name="ui_describe_all",
        description="Accessibility tree of the whole simulator screen.",
        args_model=SessionArgs,
        handler=ui_describe_all,
    ),
    Tool(
        name="ui_describe_point",
        description="Accessibility information for the element at a point.",
        args_model=UiDescribePointArgs,
        handler=ui_describe_point,
    ),
    Tool(
        name="screenshot",
        description="Screenshot of the simulator screen as base64 PNG.",
        args_model=SessionArgs,
        handler=screenshot,
    ),
]

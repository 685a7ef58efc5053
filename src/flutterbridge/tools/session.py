"""Session lifecycle tools: session_start, session_end, session_list, start_simulator."""

from __future__ import annotations

from typing import Any

import structlog
from pydantic import Field

from flutterbridge.core.session.manager import SessionManager
from flutterbridge.tools.registry import NoArgs, SessionArgs, Tool, ToolArgs

logger = structlog.get_logger()


class SessionStartArgs(ToolArgs):
    worktree_path: str = Field(
        description="Path to the Flutter project directory (relative to the base path if one is configured)"
    )
    device_type: str | None = Field(
        default=None,
        description='iOS device type (e.g. "iPhone 16 Pro"). Defaults to "iPhone 16 Pro"',
    )


async def session_start(manager: SessionManager, args: SessionStartArgs) -> dict[str, Any]:
    session = manager.create_session(args.worktree_path, args.device_type)
    return {
        "sessionId": session.session_id,
        "deviceType": session.device_type,
        "worktreePath": session.project_path,
    }


async def session_end(manager: SessionManager, args: SessionArgs) -> dict[str, Any]:
    await manager.end_session(args.session_id)
    return {"success": True, "message": f"Session {args.session_id} ended successfully"}


async def session_list(manager: SessionManager, args: NoArgs) -> dict[str, Any]:
    return {"sessions": manager.list_sessions()}


async def start_simulator(manager: SessionManager, args: SessionArgs) -> dict[str, Any]:
    manager.update_session_activity(args.session_id)
    session = await manager.start_simulator(args.session_id)
    return {
        "simulatorUdid": session.simulator_udid,
        "deviceType": session.device_type,
        "message": f"Simulator {session.simulator_udid} started for {session.device_type}",
    }


TOOLS = [
    Tool(
        name="session_start",
        description=(
            "Create a new session for a Flutter project directory. The iOS simulator is "
            "created lazily by start_simulator or flutter_run. Returns the session ID."
        ),
        args_model=SessionStartArgs,
        handler=session_start,
    ),
    Tool(
        name="session_end",
        description=(
            "End a session: stop any running Flutter processes, then shut down and "
            "delete the session's simulator."
        ),
        args_model=SessionArgs,
        handler=session_end,
    ),
    Tool(
        name="session_list",
        description="List all active sessions with their details.",
        args_model=NoArgs,
        handler=session_list,
    ),
    Tool(
        name="start_simulator",
        description="Create and boot the session's iOS simulator if it has none yet.",
        args_model=SessionArgs,
        handler=start_simulator,
    ),
]

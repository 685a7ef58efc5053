"""simulator_list tool."""

from __future__ import annotations

from typing import Any

from flutterbridge.core.session.manager import SessionManager
from flutterbridge.tools.registry import NoArgs, Tool


async def simulator_list(manager: SessionManager, args: NoArgs) -> dict[str, Any]:
    device_types = await manager.simulator.list_device_types()
    return {"deviceTypes": [dt.to_dict() for dt in device_types]}


TOOLS = [
    Tool(
        name="simulator_list",
        description="List available iOS device types for simulator creation.",
        args_model=NoArgs,
        handler=simulator_list,
    ),
]

"""
Built-in MCP tools.

  session     session_start, session_end, session_list, start_simulator
  simulator   simulator_list
  flutter     flutter_run, flutter_stop, flutter_hot_reload,
              flutter_hot_restart, flutter_logs, flutter_build, flutter_clean
  tests       flutter_test, flutter_test_results, flutter_test_logs
  ui          ui_tap, ui_type, ui_swipe, ui_describe_all,
              ui_describe_point, screenshot
"""

from __future__ import annotations

from flutterbridge.tools import flutter_commands, flutter_test, session, simulator, simulator_ui
from flutterbridge.tools.registry import Tool


def get_builtin_tools() -> list[Tool]:
    """Return all built-in tools, in the order they are advertised."""
    return [
        *session.TOOLS,
        *simulator.TOOLS,
        *flutter_commands.TOOLS,
        *flutter_test.TOOLS,
        *simulator_ui.TOOLS,
    ]

"""
FlutterBridge: MCP control plane for AI agents driving Flutter iOS sessions.

An agent opens a session against a Flutter project directory, FlutterBridge
lazily provisions a dedicated iOS Simulator for it, and the agent then runs,
hot-reloads, tests and pokes at the app through MCP tools.  All output is
delivered by polling: long-running processes write into bounded log buffers
that the agent reads with a cursor.

Package layout (src/flutterbridge/):
  core/       config, logging, exceptions, session registry and manager
  os/         async subprocess spawning and one-shot command execution
  flutter/    `flutter run` process manager, log buffer, test run manager
  simulator/  simctl (lifecycle) and idb (UI automation) wrappers
  tools/      MCP tool registry, argument models and handlers
  server/     FastAPI JSON-RPC endpoint for the MCP transport
  cli/        Click CLI entry point
"""

__version__ = "0.3.0"
__all__ = ["__version__"]

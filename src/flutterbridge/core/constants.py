"""FlutterBridge constants: filesystem layout, timeouts, and limits."""

from __future__ import annotations

import os
import sys
from enum import IntEnum
from pathlib import Path

# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------


class ExitCode(IntEnum):
    SUCCESS = 0
    ERROR = 1
    CONFIG_ERROR = 2
    ENV_ERROR = 3
    ADDRESS_IN_USE = 4


# ---------------------------------------------------------------------------
# Platform-specific config directory
# ---------------------------------------------------------------------------


def _default_data_dir() -> Path:
    """
    Return the platform-appropriate FlutterBridge data directory.

    macOS : ~/Library/Application Support/flutterbridge
    Linux : ~/.config/flutterbridge
    Other : ~/.flutterbridge
    """
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "flutterbridge"
    if sys.platform.startswith("linux"):
        xdg = Path(os.environ.get("XDG_CONFIG_HOME", str(Path.home() / ".config")))
        return xdg / "flutterbridge"
    return Path.home() / ".flutterbridge"


# ---------------------------------------------------------------------------
# Filesystem layout
# ---------------------------------------------------------------------------

CONFIG_FILENAME = "config.toml"
PROJECT_MANIFEST = "pubspec.yaml"  # a directory is a Flutter project iff it has one

# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------

SERVER_NAME = "flutter-ios-mcp"
MCP_PROTOCOL_VERSION = "2025-03-26"
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 3000

# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------

DEFAULT_ALLOWED_PATH_PREFIX = "/Users/"
DEFAULT_MAX_SESSIONS = 10
DEFAULT_DEVICE_TYPE = "iPhone 16 Pro"
SESSION_SWEEP_INTERVAL_S = 60.0  # inactivity sweep tick

# ---------------------------------------------------------------------------
# Flutter processes
# ---------------------------------------------------------------------------

DEFAULT_MAX_LOG_LINES = 1000  # per run-process log buffer
DEFAULT_LOG_PAGE_SIZE = 100
CLEANUP_TIMEOUT_S = 5.0  # graceful quit window before SIGKILL
HOT_RELOAD_REVERT_S = 1.0  # hot-reloading -> running auto-revert
DEFAULT_TEST_TIMEOUT_MINUTES = 10
DEFAULT_BUILD_TIMEOUT_S = 600.0
DEFAULT_SCRIPT_TIMEOUT_S = 300.0

# Control bytes understood by `flutter run` on stdin
FLUTTER_QUIT = b"q\n"
FLUTTER_HOT_RELOAD = b"r\n"
FLUTTER_HOT_RESTART = b"R\n"

# ---------------------------------------------------------------------------
# Simulator tooling timeouts (seconds)
# ---------------------------------------------------------------------------

SIMCTL_DEFAULT_TIMEOUT_S = 30.0
SIMCTL_CREATE_TIMEOUT_S = 30.0
SIMCTL_BOOT_TIMEOUT_S = 60.0
IDB_ACTION_TIMEOUT_S = 10.0
IDB_DESCRIBE_TIMEOUT_S = 15.0

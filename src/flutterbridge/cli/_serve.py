"""flutterbridge serve: build the effective config and run the MCP server."""

from __future__ import annotations

import errno
from typing import Any

from rich.console import Console

from flutterbridge.core.config import FlutterBridgeConfig, load_config
from flutterbridge.core.constants import ExitCode
from flutterbridge.core.exceptions import ConfigError

# CLI option name -> (config section, field)
_OVERRIDES = {
    "port": ("server", "port"),
    "host": ("server", "host"),
    "allow_only": ("sessions", "allow_only"),
    "base_path": ("sessions", "base_path"),
    "max_sessions": ("sessions", "max_sessions"),
    "pre_build_script": ("sessions", "pre_build_script"),
    "post_build_script": ("sessions", "post_build_script"),
    "session_timeout": ("sessions", "session_timeout_minutes"),
}


def build_config(config_path: str | None, overrides: dict[str, Any]) -> FlutterBridgeConfig:
    """Config file, then environment, then CLI flags (highest priority)."""
    config = load_config(config_path)

    data = config.model_dump()
    for option, value in overrides.items():
        if value is None or option not in _OVERRIDES:
            continue
        section, field = _OVERRIDES[option]
        data[section][field] = value

    try:
        return FlutterBridgeConfig.model_validate(data)
    except Exception as exc:
        raise ConfigError(f"Invalid option: {exc}") from exc


def cmd_serve(
    config_path: str | None,
    overrides: dict[str, Any],
    log_level: str | None,
    log_json: bool,
    console: Console,
) -> None:
    from flutterbridge.core.logging import configure_logging
    from flutterbridge.server.app import start_server

    try:
        config = build_config(config_path, overrides)
    except ConfigError as exc:
        console.print(f"[red]Config error:[/red] {exc}")
        raise SystemExit(ExitCode.CONFIG_ERROR) from exc

    configure_logging(
        level=log_level or config.logging.level,
        json_output=log_json or config.logging.format == "json",
    )

    sessions = config.sessions
    console.print(
        f"[bold]FlutterBridge[/bold] listening on http://{config.server.host}:{config.server.port}/mcp"
    )
    console.print(f"  allowed paths:  {sessions.allow_only}")
    if sessions.base_path:
        console.print(f"  base path:      {sessions.base_path}")
    console.print(f"  max sessions:   {sessions.max_sessions}")
    if sessions.session_timeout_minutes:
        console.print(f"  session timeout: {sessions.session_timeout_minutes} min")

    try:
        start_server(config)
    except OSError as exc:
        if exc.errno == errno.EADDRINUSE:
            console.print(f"[red]Error:[/red] port {config.server.port} is already in use.")
            raise SystemExit(ExitCode.ADDRESS_IN_USE) from exc
        raise

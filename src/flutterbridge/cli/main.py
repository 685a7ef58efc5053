"""
FlutterBridge CLI entry point.

Commands:
  flutterbridge serve          start the MCP server (HTTP, JSON-RPC on /mcp)
  flutterbridge devices        list iPhone simulator device types
  flutterbridge config init    write a default config file
  flutterbridge config show    print the effective configuration
  flutterbridge version        show version information
"""

from __future__ import annotations

import click
from rich.console import Console

from flutterbridge import __version__

console = Console()
err_console = Console(stderr=True)


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(__version__, "--version", "-V", message="flutterbridge %(version)s")
@click.option(
    "--log-level",
    default=None,
    help="Log level (DEBUG, INFO, WARNING, ERROR). Defaults to the configured level.",
)
@click.option("--log-json", is_flag=True, default=False, help="Emit JSON log lines.")
@click.pass_context
def cli(ctx: click.Context, log_level: str | None, log_json: bool) -> None:
    """FlutterBridge: MCP server for driving Flutter apps in iOS simulators."""
    from flutterbridge.core.logging import configure_logging

    ctx.ensure_object(dict)
    ctx.obj["log_level"] = log_level
    ctx.obj["log_json"] = log_json
    configure_logging(level=log_level or "WARNING", json_output=log_json)


# ---------------------------------------------------------------------------
# serve
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--port", "-p", type=int, default=None, help="Port to listen on (default: 3000)")
@click.option("--host", default=None, help="Host to bind (default: 127.0.0.1)")
@click.option("--allow-only", default=None, help="Only allow projects under this path prefix")
@click.option("--base-path", default=None, help="Resolve worktree paths relative to this directory")
@click.option("--max-sessions", type=int, default=None, help="Maximum concurrent sessions")
@click.option("--pre-build-script", default=None, help="Shell command run before flutter run/build")
@click.option("--post-build-script", default=None, help="Shell command run after flutter build")
@click.option(
    "--session-timeout",
    type=int,
    default=None,
    help="End sessions idle for this many minutes",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Config file (default: platform config dir)",
)
@click.pass_context
def serve(ctx: click.Context, config_path: str | None, **overrides: object) -> None:
    """Start the MCP server."""
    from flutterbridge.cli._serve import cmd_serve

    cmd_serve(
        config_path=config_path,
        overrides=overrides,
        log_level=ctx.obj.get("log_level"),
        log_json=ctx.obj.get("log_json", False),
        console=err_console,
    )


# ---------------------------------------------------------------------------
# devices
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--json", "as_json", is_flag=True, default=False, help="Output as JSON")
def devices(as_json: bool) -> None:
    """List iPhone device types available for simulators."""
    from flutterbridge.cli._devices import cmd_devices

    cmd_devices(as_json=as_json, console=console)


# ---------------------------------------------------------------------------
# config / version
# ---------------------------------------------------------------------------

from flutterbridge.cli._config_cmd import config_group  # noqa: E402
from flutterbridge.cli._version import version_cmd  # noqa: E402

cli.add_command(config_group)
cli.add_command(version_cmd, name="version")

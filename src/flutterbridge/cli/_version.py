"""Version information CLI command."""

from __future__ import annotations

import json

import click
from rich.console import Console

from flutterbridge import __version__

console = Console()


@click.command()
@click.option("--json", "as_json", is_flag=True, default=False)
def version_cmd(as_json: bool) -> None:
    """Show version information."""
    import platform

    from flutterbridge.core.constants import CONFIG_FILENAME, MCP_PROTOCOL_VERSION, _default_data_dir

    data = {
        "version": __version__,
        "mcp_protocol": MCP_PROTOCOL_VERSION,
        "python": platform.python_version(),
        "config_path": str(_default_data_dir() / CONFIG_FILENAME),
    }

    if as_json:
        click.echo(json.dumps(data, indent=2))
        return

    console.print(f"flutterbridge {__version__}")
    console.print(f"MCP protocol: {MCP_PROTOCOL_VERSION}")
    console.print(f"Python:       {data['python']}")
    console.print(f"Config:       {data['config_path']}")

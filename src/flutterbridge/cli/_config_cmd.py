"""flutterbridge config: write and inspect the configuration file."""

from __future__ import annotations

import json
from pathlib import Path

import click
from rich.console import Console

from flutterbridge.core.constants import ExitCode

console = Console()


@click.group("config")
def config_group() -> None:
    """Configuration commands."""


@config_group.command("init")
@click.option(
    "--path",
    "path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Where to write (default: platform config dir)",
)
@click.option("--force", is_flag=True, default=False, help="Overwrite an existing file")
def config_init(path: str | None, force: bool) -> None:
    """Write a config file with default settings."""
    from flutterbridge.core.config import FlutterBridgeConfig, _config_file_path, save_config
    from flutterbridge.core.exceptions import ConfigError

    target = Path(path) if path else _config_file_path()
    if target.exists() and not force:
        console.print(f"[yellow]Config already exists:[/yellow] {target} (use --force to overwrite)")
        raise SystemExit(ExitCode.ERROR)

    try:
        written = save_config(FlutterBridgeConfig(), target)
    except ConfigError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise SystemExit(ExitCode.CONFIG_ERROR) from exc

    console.print(f"[green]Wrote[/green] {written}")


@config_group.command("show")
@click.option(
    "--path",
    "path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Config file to read (default: platform config dir)",
)
@click.option("--json", "as_json", is_flag=True, default=False, help="Output as JSON")
def config_show(path: str | None, as_json: bool) -> None:
    """Print the effective configuration (file + environment)."""
    from flutterbridge.core.config import load_config
    from flutterbridge.core.exceptions import ConfigError

    try:
        config = load_config(path)
    except ConfigError as exc:
        console.print(f"[red]Config error:[/red] {exc}")
        raise SystemExit(ExitCode.CONFIG_ERROR) from exc

    data = config.model_dump(mode="json")
    if as_json:
        click.echo(json.dumps(data, indent=2))
        return

    for section, values in data.items():
        console.print(f"[bold]\\[{section}][/bold]")
        for key, value in values.items():
            shown = "[dim]unset[/dim]" if value is None else str(value)
            console.print(f"  {key} = {shown}")

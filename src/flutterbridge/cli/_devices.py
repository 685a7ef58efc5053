"""flutterbridge devices: list simulator device types."""

from __future__ import annotations

import asyncio
import json

from rich.console import Console
from rich.table import Table

from flutterbridge.core.constants import DEFAULT_DEVICE_TYPE, ExitCode
from flutterbridge.core.exceptions import SimulatorError
from flutterbridge.simulator.simctl import Simctl


def cmd_devices(as_json: bool, console: Console) -> None:
    try:
        device_types = asyncio.run(Simctl().list_device_types())
    except SimulatorError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise SystemExit(ExitCode.ENV_ERROR) from exc

    if as_json:
        console.print_json(json.dumps([dt.to_dict() for dt in device_types]))
        return

    if not device_types:
        console.print("[dim]No iPhone device types found. Is Xcode installed?[/dim]")
        return

    table = Table(title="iPhone device types", show_lines=False)
    table.add_column("Name", style="cyan")
    table.add_column("Identifier", style="dim")
    for dt in device_types:
        name = f"{dt.name} [green](default)[/green]" if dt.name == DEFAULT_DEVICE_TYPE else dt.name
        table.add_row(name, dt.identifier)
    console.print(table)

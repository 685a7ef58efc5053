"""UI automation against a booted simulator through the `idb` client."""

from __future__ import annotations

import base64
import tempfile
from pathlib import Path

import structlog

from flutterbridge.core.constants import IDB_ACTION_TIMEOUT_S, IDB_DESCRIBE_TIMEOUT_S
from flutterbridge.core.exceptions import SimulatorError
from flutterbridge.os.process import CommandResult, run_command
from flutterbridge.simulator.models import Screenshot

logger = structlog.get_logger()

IDB = "idb"


def _num(value: float) -> str:
    # idb rejects "100.0" for integral coordinates
    return str(int(value)) if float(value).is_integer() else str(value)


async def _idb(*args: str, timeout_s: float = IDB_ACTION_TIMEOUT_S) -> CommandResult:
    return await run_command([IDB, *args], timeout_s=timeout_s)


async def tap(udid: str, x: float, y: float, duration: float | None = None) -> None:
    args = ["ui", "tap", "--udid", udid, _num(x), _num(y)]
    if duration:
        args += ["--duration", _num(duration)]

    result = await _idb(*args)
    if not result.ok:
        raise SimulatorError(
            f"Failed to tap at ({_num(x)}, {_num(y)}) on simulator {udid}: "
            f"{result.stderr.strip()}. Ensure the simulator is booted and idb companion is running."
        )
    logger.info("idb_tap", udid=udid, x=x, y=y, duration=duration)


async def type_text(udid: str, text: str) -> None:
    # argv, not a shell string: no quoting needed
    result = await _idb("ui", "text", "--udid", udid, text)
    if not result.ok:
        raise SimulatorError(
            f"Failed to type text on simulator {udid}: {result.stderr.strip()}. "
            "Ensure a text field is focused."
        )
    logger.info("idb_text", udid=udid, length=len(text))


async def swipe(
    udid: str,
    x_start: float,
    y_start: float,
    x_end: float,
    y_end: float,
    duration: float | None = None,
) -> None:
    args = [
        "ui",
        "swipe",
        "--udid",
        udid,
        _num(x_start),
        _num(y_start),
        _num(x_end),
        _num(y_end),
    ]
    if duration:
        args += ["--duration", _num(duration)]

    result = await _idb(*args)
    if not result.ok:
        raise SimulatorError(
            f"Failed to swipe from ({_num(x_start)}, {_num(y_start)}) to "
            f"({_num(x_end)}, {_num(y_end)}) on simulator {udid}: {result.stderr.strip()}"
        )
    logger.info("idb_swipe", udid=udid, start=(x_start, y_start), end=(x_end, y_end))


async def describe_all(udid: str) -> str:
    """Accessibility tree of the whole screen, as printed by idb."""
    result = await _idb("ui", "describe-all", "--udid", udid, timeout_s=IDB_DESCRIBE_TIMEOUT_S)
    if not result.ok:
        raise SimulatorError(
            f"Failed to get accessibility tree for simulator {udid}: {result.stderr.strip()}. "
            "Ensure the simulator is booted with an app running."
        )
    logger.info("idb_describe_all", udid=udid, chars=len(result.stdout))
    return result.stdout


async def describe_point(udid: str, x: float, y: float) -> str:
    result = await _idb("ui", "describe-point", "--udid", udid, _num(x), _num(y))
    if not result.ok:
        raise SimulatorError(
            f"Failed to describe point ({_num(x)}, {_num(y)}) on simulator {udid}: "
            f"{result.stderr.strip()}"
        )
    logger.info("idb_describe_point", udid=udid, x=x, y=y)
    return result.stdout


async def screenshot(udid: str) -> Screenshot:
    """Capture the screen to a temporary PNG and return it base64-encoded."""
    with tempfile.TemporaryDirectory(prefix="flutterbridge-") as tmp:
        path = Path(tmp) / "screenshot.png"
        result = await _idb("screenshot", "--udid", udid, str(path), timeout_s=IDB_DESCRIBE_TIMEOUT_S)
        if not result.ok or not path.exists():
            raise SimulatorError(
                f"Failed to take screenshot on simulator {udid}: {result.stderr.strip()}"
            )
        data = base64.b64encode(path.read_bytes()).decode("ascii")

    logger.info("idb_screenshot", udid=udid, bytes=len(data))
    return Screenshot(image_data=data)

"""Unit tests for flutterbridge.simulator.idb: idb argv construction and errors."""

from __future__ import annotations

import base64
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from flutterbridge.core.exceptions import SimulatorError
from flutterbridge.os.process import CommandResult
from flutterbridge.simulator import idb


def _ok(stdout: str = "") -> CommandResult:
    return CommandResult(stdout=stdout, stderr="", exit_code=0)


@pytest.fixture
def run(monkeypatch: pytest.MonkeyPatch) -> AsyncMock:
    mock = AsyncMock(return_value=_ok())
    monkeypatch.setattr("flutterbridge.simulator.idb.run_command", mock)
    return mock


def _argv(mock: AsyncMock) -> list[str]:
    return mock.await_args.args[0]


class TestGestures:
    @pytest.mark.asyncio
    async def test_tap_integral_coordinates(self, run) -> None:
        await idb.tap("U1", 100.0, 200.0)
        assert _argv(run) == ["idb", "ui", "tap", "--udid", "U1", "100", "200"]

    @pytest.mark.asyncio
    async def test_long_press(self, run) -> None:
        await idb.tap("U1", 10.5, 20, duration=1.5)
        assert _argv(run) == ["idb", "ui", "tap", "--udid", "U1", "10.5", "20", "--duration", "1.5"]

    @pytest.mark.asyncio
    async def test_tap_failure(self, run) -> None:
        run.return_value = CommandResult(stdout="", stderr="no companion", exit_code=1)
        with pytest.raises(SimulatorError, match="no companion"):
            await idb.tap("U1", 1, 2)

    @pytest.mark.asyncio
    async def test_type_text_is_one_argument(self, run) -> None:
        await idb.type_text("U1", "hello 'world' $HOME")
        assert _argv(run) == ["idb", "ui", "text", "--udid", "U1", "hello 'world' $HOME"]

    @pytest.mark.asyncio
    async def test_swipe(self, run) -> None:
        await idb.swipe("U1", 10, 500, 10, 100, duration=0.3)
        assert _argv(run) == [
            "idb",
            "ui",
            "swipe",
            "--udid",
            "U1",
            "10",
            "500",
            "10",
            "100",
            "--duration",
            "0.3",
        ]


class TestDescribe:
    @pytest.mark.asyncio
    async def test_describe_all_returns_stdout(self, run) -> None:
        run.return_value = _ok('[{"AXLabel": "Login"}]')
        assert await idb.describe_all("U1") == '[{"AXLabel": "Login"}]'
        assert _argv(run) == ["idb", "ui", "describe-all", "--udid", "U1"]

    @pytest.mark.asyncio
    async def test_describe_point(self, run) -> None:
        run.return_value = _ok("{}")
        await idb.describe_point("U1", 5, 6)
        assert _argv(run) == ["idb", "ui", "describe-point", "--udid", "U1", "5", "6"]

    @pytest.mark.asyncio
    async def test_describe_failure(self, run) -> None:
        run.return_value = CommandResult(stdout="", stderr="boom", exit_code=2)
        with pytest.raises(SimulatorError, match="accessibility tree"):
            await idb.describe_all("U1")


class TestScreenshot:
    @pytest.mark.asyncio
    async def test_base64_png(self, run) -> None:
        async def _write(argv, **kwargs) -> CommandResult:
            Path(argv[-1]).write_bytes(b"\x89PNG data")
            return _ok()

        run.side_effect = _write
        shot = await idb.screenshot("U1")

        assert shot.format == "png"
        assert base64.b64decode(shot.image_data) == b"\x89PNG data"
        assert _argv(run)[:4] == ["idb", "screenshot", "--udid", "U1"]
        assert not Path(_argv(run)[-1]).exists()

    @pytest.mark.asyncio
    async def test_missing_file(self, run) -> None:
        with pytest.raises(SimulatorError, match="Failed to take screenshot"):
            await idb.screenshot("U1")

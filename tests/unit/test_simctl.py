"""Unit tests for flutterbridge.simulator.simctl: simctl command construction and parsing."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock

import pytest

from flutterbridge.core.exceptions import SimulatorError
from flutterbridge.os.process import CommandResult
from flutterbridge.simulator.simctl import Simctl

DEVICE_TYPES = {
    "devicetypes": [
        {"name": "iPhone 15", "identifier": "com.apple.CoreSimulator.SimDeviceType.iPhone-15"},
        {
            "name": "iPhone 16 Pro",
            "identifier": "com.apple.CoreSimulator.SimDeviceType.iPhone-16-Pro",
        },
        {"name": "iPad Air", "identifier": "com.apple.CoreSimulator.SimDeviceType.iPad-Air"},
        {"name": "Apple Watch Ultra", "identifier": "com.apple.CoreSimulator.SimDeviceType.Watch"},
    ]
}


def _ok(stdout: str = "") -> CommandResult:
    return CommandResult(stdout=stdout, stderr="", exit_code=0)


def _fail(stderr: str, code: int = 1) -> CommandResult:
    return CommandResult(stdout="", stderr=stderr, exit_code=code)


@pytest.fixture
def run(monkeypatch: pytest.MonkeyPatch) -> AsyncMock:
    mock = AsyncMock(return_value=_ok())
    monkeypatch.setattr("flutterbridge.simulator.simctl.run_command", mock)
    return mock


def _argv(mock: AsyncMock, call: int = -1) -> list[str]:
    return mock.await_args_list[call].args[0]


class TestDeviceTypes:
    @pytest.mark.asyncio
    async def test_only_iphones(self, run) -> None:
        run.return_value = _ok(json.dumps(DEVICE_TYPES))
        names = [dt.name for dt in await Simctl().list_device_types()]

        assert names == ["iPhone 15", "iPhone 16 Pro"]
        assert _argv(run) == ["xcrun", "simctl", "list", "devicetypes", "-j"]

    @pytest.mark.asyncio
    async def test_command_failure(self, run) -> None:
        run.return_value = _fail("xcrun: error: unable to find utility")
        with pytest.raises(SimulatorError, match="Failed to list device types"):
            await Simctl().list_device_types()

    @pytest.mark.asyncio
    async def test_bad_json(self, run) -> None:
        run.return_value = _ok("not json")
        with pytest.raises(SimulatorError):
            await Simctl().list_device_types()

    @pytest.mark.asyncio
    async def test_identifier_substring_match(self, run) -> None:
        run.return_value = _ok(json.dumps(DEVICE_TYPES))
        identifier = await Simctl().get_device_type_identifier("iphone 16")
        assert identifier.endswith("iPhone-16-Pro")

    @pytest.mark.asyncio
    async def test_identifier_not_found_lists_available(self, run) -> None:
        run.return_value = _ok(json.dumps(DEVICE_TYPES))
        with pytest.raises(SimulatorError, match="Available: iPhone 15, iPhone 16 Pro"):
            await Simctl().get_device_type_identifier("Pixel 8")


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_create(self, run) -> None:
        run.side_effect = [_ok(json.dumps(DEVICE_TYPES)), _ok("NEW-UDID\n")]
        udid = await Simctl().create_simulator("iPhone 15")

        assert udid == "NEW-UDID"
        argv = _argv(run)
        assert argv[:3] == ["xcrun", "simctl", "create"]
        assert argv[3].startswith("MCP-")
        assert argv[4] == "com.apple.CoreSimulator.SimDeviceType.iPhone-15"

    @pytest.mark.asyncio
    async def test_create_failure(self, run) -> None:
        run.side_effect = [_ok(json.dumps(DEVICE_TYPES)), _fail("No space left")]
        with pytest.raises(SimulatorError, match="No space left"):
            await Simctl().create_simulator("iPhone 15")

    @pytest.mark.asyncio
    async def test_boot(self, run) -> None:
        await Simctl().boot_simulator("U1")
        assert _argv(run) == ["xcrun", "simctl", "boot", "U1"]

    @pytest.mark.asyncio
    async def test_boot_already_booted(self, run) -> None:
        run.return_value = _fail("Unable to boot device in current state: Booted", 149)
        await Simctl().boot_simulator("U1")

    @pytest.mark.asyncio
    async def test_boot_failure(self, run) -> None:
        run.return_value = _fail("Invalid device: U1")
        with pytest.raises(SimulatorError, match="Failed to boot simulator"):
            await Simctl().boot_simulator("U1")

    @pytest.mark.asyncio
    async def test_shutdown_is_tolerant(self, run) -> None:
        run.return_value = _fail("Unable to shutdown device in current state: Shutdown", 149)
        await Simctl().shutdown_simulator("U1")
        run.return_value = _fail("something else")
        await Simctl().shutdown_simulator("U1")
        assert _argv(run) == ["xcrun", "simctl", "shutdown", "U1"]

    @pytest.mark.asyncio
    async def test_delete(self, run) -> None:
        await Simctl().delete_simulator("U1")
        assert _argv(run) == ["xcrun", "simctl", "delete", "U1"]

    @pytest.mark.asyncio
    async def test_delete_failure(self, run) -> None:
        run.return_value = _fail("Invalid device")
        with pytest.raises(SimulatorError, match="Failed to delete simulator"):
            await Simctl().delete_simulator("U1")

    @pytest.mark.asyncio
    async def test_custom_prefix(self, run) -> None:
        await Simctl(simctl=["/opt/simctl"]).delete_simulator("U1")
        assert _argv(run) == ["/opt/simctl", "delete", "U1"]

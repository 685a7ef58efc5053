"""
iOS Simulator lifecycle via `xcrun simctl`.

Creation paths raise SimulatorError on failure.  Shutdown is tolerant: a
simulator that is already shut down is fine, and any other failure is only
logged because shutdown is always followed by delete during teardown.
"""

from __future__ import annotations

import json
import time

import structlog

from flutterbridge.core.constants import (
    SIMCTL_BOOT_TIMEOUT_S,
    SIMCTL_CREATE_TIMEOUT_S,
    SIMCTL_DEFAULT_TIMEOUT_S,
)
from flutterbridge.core.exceptions import SimulatorError
from flutterbridge.os.process import CommandResult, run_command
from flutterbridge.simulator.models import DeviceType

logger = structlog.get_logger()

SIMCTL = ["xcrun", "simctl"]

_ALREADY_BOOTED = "Unable to boot device in current state: Booted"
_ALREADY_SHUTDOWN = "Unable to shutdown device in current state: Shutdown"


class Simctl:
    """Default SimulatorControl backed by the simctl command line."""

    def __init__(self, *, simctl: list[str] | None = None) -> None:
        self._simctl = simctl or SIMCTL

    async def _run(self, *args: str, timeout_s: float = SIMCTL_DEFAULT_TIMEOUT_S) -> CommandResult:
        return await run_command([*self._simctl, *args], timeout_s=timeout_s)

    async def list_device_types(self) -> list[DeviceType]:
        """Available iPhone device types."""
        result = await self._run("list", "devicetypes", "-j")
        if not result.ok:
            raise SimulatorError(f"Failed to list device types: {result.stderr.strip()}")

        try:
            payload = json.loads(result.stdout)
        except ValueError as exc:
            raise SimulatorError(f"Unexpected simctl output: {exc}") from exc

        device_types = [
            DeviceType(name=dt["name"], identifier=dt["identifier"])
            for dt in payload.get("devicetypes", [])
            if "iphone" in dt.get("name", "").lower()
        ]
        logger.debug("simctl_device_types", count=len(device_types))
        return device_types

    async def get_device_type_identifier(self, device_name: str) -> str:
        device_types = await self.list_device_types()
        wanted = device_name.lower()
        for dt in device_types:
            if wanted in dt.name.lower():
                return dt.identifier

        available = ", ".join(dt.name for dt in device_types)
        raise SimulatorError(f"Device type not found: {device_name}. Available: {available}")

    async def create_simulator(self, device_type: str) -> str:
        """Create a fresh simulator of *device_type* and return its UDID."""
        identifier = await self.get_device_type_identifier(device_type)
        name = f"MCP-{int(time.time() * 1000)}"
        logger.info("simulator_creating", name=name, device_type=device_type)

        result = await self._run("create", name, identifier, timeout_s=SIMCTL_CREATE_TIMEOUT_S)
        if not result.ok:
            raise SimulatorError(
                f'Failed to create simulator "{name}" with device type "{device_type}": '
                f"{result.stderr.strip()}. This may indicate insufficient disk space or "
                "Xcode/CoreSimulator issues."
            )

        udid = result.stdout.strip()
        logger.info("simulator_created", udid=udid, name=name)
        return udid

    async def boot_simulator(self, udid: str) -> None:
        logger.info("simulator_booting", udid=udid)
        result = await self._run("boot", udid, timeout_s=SIMCTL_BOOT_TIMEOUT_S)
        if not result.ok and _ALREADY_BOOTED not in result.stderr:
            raise SimulatorError(
                f"Failed to boot simulator (UDID: {udid}): {result.stderr.strip()}. "
                "The simulator may be in an invalid state."
            )
        logger.info("simulator_booted", udid=udid)

    async def shutdown_simulator(self, udid: str) -> None:
        logger.info("simulator_shutting_down", udid=udid)
        result = await self._run("shutdown", udid)
        if not result.ok and _ALREADY_SHUTDOWN not in result.stderr:
            logger.warning("simulator_shutdown_failed", udid=udid, stderr=result.stderr.strip())
            return
        logger.info("simulator_shutdown", udid=udid)

    async def delete_simulator(self, udid: str) -> None:
        logger.info("simulator_deleting", udid=udid)
        result = await self._run("delete", udid)
        if not result.ok:
            raise SimulatorError(f"Failed to delete simulator: {result.stderr.strip()}")
        logger.info("simulator_deleted", udid=udid)

"""Simulator domain models and the control interface the session layer depends on."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol


@dataclass(frozen=True)
class DeviceType:
    name: str
    identifier: str

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "identifier": self.identifier}


@dataclass(frozen=True)
class Screenshot:
    image_data: str  # base64
    format: str = "png"


class SimulatorControl(Protocol):
    """What SessionManager needs from the simulator tooling."""

    async def list_device_types(self) -> list[DeviceType]: ...

    async def create_simulator(self, device_type: str) -> str: ...

    async def boot_simulator(self, udid: str) -> None: ...

    async def shutdown_simulator(self, udid: str) -> None: ...

    async def delete_simulator(self, udid: str) -> None: ...

"""
Session domain model.

A Session binds one validated Flutter project directory to an optional,
lazily created iOS Simulator and to the process managers that run and
test the app inside it.  Sessions are identified by a UUID and live only
in memory; ending a session removes it entirely.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from flutterbridge.core.constants import DEFAULT_DEVICE_TYPE
from flutterbridge.flutter.process import FlutterProcessManager
from flutterbridge.flutter.test_manager import FlutterTestManager


@dataclass
class Session:
    project_path: str
    device_type: str = DEFAULT_DEVICE_TYPE
    session_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    simulator_udid: str | None = None  # set at most once
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    last_activity_at: datetime | None = None
    process_manager: FlutterProcessManager | None = None
    test_manager: FlutterTestManager | None = None

    def __post_init__(self) -> None:
        if self.last_activity_at is None:
            self.last_activity_at = self.created_at

    def touch(self) -> None:
        self.last_activity_at = datetime.now(UTC)

    def idle_seconds(self, now: datetime | None = None) -> float:
        assert self.last_activity_at is not None
        return ((now or datetime.now(UTC)) - self.last_activity_at).total_seconds()

    def short_id(self) -> str:
        """First 8 chars of session_id for display."""
        return self.session_id[:8]

    def to_summary(self) -> dict[str, Any]:
        """Listing view; merges the live run-process status when there is one."""
        assert self.last_activity_at is not None
        summary: dict[str, Any] = {
            "id": self.session_id,
            "worktreePath": self.project_path,
            "deviceType": self.device_type,
            "createdAt": self.created_at.isoformat(),
            "lastActivityAt": self.last_activity_at.isoformat(),
        }
        if self.simulator_udid:
            summary["simulatorUdid"] = self.simulator_udid

        status = self.process_manager.get_status() if self.process_manager else None
        if status is not None:
            summary["flutterProcess"] = {
                "pid": status.pid,
                "status": status.status.value,
                "startedAt": status.started_at.isoformat(),
            }
        return summary

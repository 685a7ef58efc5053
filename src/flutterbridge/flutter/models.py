"""Run-process domain models: status, process snapshot, log entries, options."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any


class FlutterProcessStatus(StrEnum):
    STARTING = "starting"
    RUNNING = "running"
    HOT_RELOADING = "hot-reloading"
    STOPPED = "stopped"  # clean exit (code 0)
    FAILED = "failed"  # non-zero exit or killed by a signal


@dataclass
class FlutterProcess:
    """Snapshot of the `flutter run` process owned by one FlutterProcessManager."""

    pid: int = 0
    status: FlutterProcessStatus = FlutterProcessStatus.STARTING
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    stopped_at: datetime | None = None
    exit_code: int | None = None

    @property
    def is_active(self) -> bool:
        return self.status in (FlutterProcessStatus.STARTING, FlutterProcessStatus.RUNNING)

    def to_dict(self) -> dict[str, Any]:
        return {
            "pid": self.pid,
            "status": self.status.value,
            "startedAt": self.started_at.isoformat(),
            "stoppedAt": self.stopped_at.isoformat() if self.stopped_at else None,
            "exitCode": self.exit_code,
        }


@dataclass(frozen=True)
class LogEntry:
    line: str
    timestamp: datetime
    index: int

    def to_dict(self) -> dict[str, Any]:
        return {"line": self.line, "timestamp": self.timestamp.isoformat(), "index": self.index}


@dataclass
class LogPage:
    """One page of run-process output plus the cursor for the next poll."""

    logs: list[LogEntry]
    next_index: int
    total_lines: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "logs": [entry.to_dict() for entry in self.logs],
            "nextIndex": self.next_index,
            "totalLines": self.total_lines,
        }


@dataclass
class RunOptions:
    """Arguments for `flutter run` against one simulator."""

    project_path: str
    device_id: str
    target: str | None = None
    flavor: str | None = None
    additional_args: list[str] = field(default_factory=list)

    def to_args(self) -> list[str]:
        args = ["run", "-d", self.device_id]
        if self.target:
            args += ["-t", self.target]
        if self.flavor:
            args += ["--flavor", self.flavor]
        args += self.additional_args
        return args

"""Shared fixtures."""

from __future__ import annotations

import asyncio
import signal
from dataclasses import dataclass
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

# Settings read from the environment by load_config()
_CONFIG_ENV = (
    "FLUTTERBRIDGE_CONFIG",
    "FLUTTERBRIDGE_HOST",
    "FLUTTERBRIDGE_PORT",
    "FLUTTERBRIDGE_ALLOW_ONLY",
    "FLUTTERBRIDGE_BASE_PATH",
    "FLUTTERBRIDGE_MAX_SESSIONS",
    "FLUTTERBRIDGE_SESSION_TIMEOUT",
    "FLUTTERBRIDGE_PRE_BUILD_SCRIPT",
    "FLUTTERBRIDGE_POST_BUILD_SCRIPT",
    "FLUTTERBRIDGE_LOG_LEVEL",
    "FLUTTERBRIDGE_LOG_FORMAT",
    "HOST",
    "PORT",
    "ALLOW_ONLY",
    "BASE_PATH",
    "MAX_SESSIONS",
    "SESSION_TIMEOUT",
    "PRE_BUILD_SCRIPT",
    "POST_BUILD_SCRIPT",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _clean_config_env(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    for name in _CONFIG_ENV:
        monkeypatch.delenv(name, raising=False)
    # Keep the default config path away from the real user config dir
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    monkeypatch.setenv("HOME", str(tmp_path / "home"))


# ---------------------------------------------------------------------------
# Fake child processes
# ---------------------------------------------------------------------------


class FakeProcess:
    """Stand-in for SpawnedProcess; the test drives output and exit by hand."""

    def __init__(self, pid: int, on_stdout, on_stderr, on_exit) -> None:
        self.pid = pid
        self.written: list[bytes] = []
        self.signals: list[int] = []
        self.stdin_closed = False
        self._on_stdout = on_stdout
        self._on_stderr = on_stderr
        self._on_exit = on_exit
        self._exit_code: int | None = None
        self._exited = asyncio.Event()

    @property
    def has_exited(self) -> bool:
        return self._exited.is_set()

    def write(self, data: bytes) -> bool:
        if self.stdin_closed or self.has_exited:
            return False
        self.written.append(data)
        return True

    def close_stdin(self) -> None:
        self.stdin_closed = True

    def kill(self, sig: int = signal.SIGTERM) -> bool:
        if self.has_exited:
            return False
        self.signals.append(sig)
        return True

    async def wait(self) -> int:
        await self._exited.wait()
        return self._exit_code if self._exit_code is not None else 1

    # Test controls

    def stdout(self, text: str) -> None:
        if self._on_stdout is not None:
            self._on_stdout(text)

    def stderr(self, text: str) -> None:
        if self._on_stderr is not None:
            self._on_stderr(text)

    def exit(self, code: int | None = 0, signal_name: str | None = None) -> None:
        self._exit_code = code
        if self._on_exit is not None:
            self._on_exit(code, signal_name)
        self._exited.set()


@dataclass
class SpawnCall:
    command: str
    args: list[str]
    cwd: str | None
    process: FakeProcess


class FakeSpawner:
    """Records spawn_streaming() calls and hands out FakeProcess objects."""

    def __init__(self) -> None:
        self.calls: list[SpawnCall] = []
        self.error: OSError | None = None

    async def __call__(
        self,
        command,
        args,
        *,
        cwd=None,
        env=None,
        on_stdout=None,
        on_stderr=None,
        on_exit=None,
    ) -> FakeProcess:
        if self.error is not None:
            raise self.error
        process = FakeProcess(4000 + len(self.calls), on_stdout, on_stderr, on_exit)
        self.calls.append(SpawnCall(command, list(args), cwd, process))
        return process

    @property
    def last(self) -> FakeProcess:
        return self.calls[-1].process


@pytest.fixture
def fake_spawn(monkeypatch: pytest.MonkeyPatch) -> FakeSpawner:
    spawner = FakeSpawner()
    monkeypatch.setattr("flutterbridge.flutter.process.spawn_streaming", spawner)
    monkeypatch.setattr("flutterbridge.flutter.test_manager.spawn_streaming", spawner)
    return spawner


# ---------------------------------------------------------------------------
# Simulator control and projects
# ---------------------------------------------------------------------------


@pytest.fixture
def simulator() -> MagicMock:
    sim = MagicMock()
    sim.list_device_types = AsyncMock(return_value=[])
    sim.create_simulator = AsyncMock(return_value="SIM-UDID-1")
    sim.boot_simulator = AsyncMock()
    sim.shutdown_simulator = AsyncMock()
    sim.delete_simulator = AsyncMock()
    return sim


@pytest.fixture
def make_project():
    """Factory: make_project(root, name) creates a directory holding pubspec.yaml."""

    def _make(root: Path, name: str) -> Path:
        project = root / name
        project.mkdir(parents=True, exist_ok=True)
        (project / "pubspec.yaml").write_text("name: app\n")
        return project

    return _make


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    root = tmp_path / "work"
    root.mkdir()
    return root

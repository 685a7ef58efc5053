"""
`flutter run` process manager.

A FlutterProcessManager owns at most one `flutter run` child at a time.
Output from both pipes is split into lines, appended to a LogBuffer, fanned
out to live subscribers, and scanned for reload markers.  Interactive
control uses the single-key protocol `flutter run` reads from stdin:

  q  quit (graceful stop)
  r  hot reload
  R  hot restart

start() returns as soon as the child is spawned.  Readiness of the app is
only observable later through get_logs()/get_status(); callers poll.
"""

from __future__ import annotations

import asyncio
import signal
from collections.abc import Callable
from datetime import UTC, datetime

import structlog

from flutterbridge.core.constants import (
    CLEANUP_TIMEOUT_S,
    DEFAULT_MAX_LOG_LINES,
    FLUTTER_HOT_RELOAD,
    FLUTTER_HOT_RESTART,
    FLUTTER_QUIT,
    HOT_RELOAD_REVERT_S,
)
from flutterbridge.core.exceptions import ProcessConflictError, ProcessError
from flutterbridge.flutter.log_buffer import LogBuffer
from flutterbridge.flutter.models import (
    FlutterProcess,
    FlutterProcessStatus,
    LogPage,
    RunOptions,
)
from flutterbridge.os.process import SpawnedProcess, spawn_streaming

logger = structlog.get_logger()

LogSubscriber = Callable[[str], None]

FLUTTER_EXECUTABLE = "flutter"

# Substrings `flutter run` prints around a reload; there is no explicit
# "reload finished" line, hence the timed revert.
_RELOAD_MARKERS = ("Hot reload", "Reloaded")


class FlutterProcessManager:
    def __init__(
        self,
        max_log_lines: int = DEFAULT_MAX_LOG_LINES,
        *,
        cleanup_timeout_s: float = CLEANUP_TIMEOUT_S,
        reload_revert_s: float = HOT_RELOAD_REVERT_S,
        session_id: str = "",
    ) -> None:
        self._process: SpawnedProcess | None = None
        self._flutter_process: FlutterProcess | None = None
        self._log_buffer = LogBuffer(max_log_lines)
        self._subscribers: list[LogSubscriber] = []
        self._cleanup_timeout_s = cleanup_timeout_s
        self._reload_revert_s = reload_revert_s
        self._revert_handle: asyncio.TimerHandle | None = None
        self._log = logger.bind(session_id=session_id) if session_id else logger

    @property
    def has_process(self) -> bool:
        return self._process is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, options: RunOptions) -> FlutterProcess:
        """Spawn `flutter run` and return the status snapshot without waiting for the app."""
        if self._process is not None:
            raise ProcessConflictError("Flutter process already running for this session")

        args = options.to_args()
        self._log.info(
            "flutter_process_starting",
            project_path=options.project_path,
            device_id=options.device_id,
            args=args,
        )

        status = FlutterProcess()
        self._flutter_process = status

        try:
            self._process = await spawn_streaming(
                FLUTTER_EXECUTABLE,
                args,
                cwd=options.project_path,
                on_stdout=self._handle_output,
                on_stderr=self._handle_output,
                on_exit=self._handle_exit,
            )
        except OSError as exc:
            status.status = FlutterProcessStatus.FAILED
            status.stopped_at = datetime.now(UTC)
            self._log.error("flutter_process_spawn_failed", error=str(exc))
            raise ProcessError(f"Failed to start flutter: {exc}") from exc

        if self._process.pid:
            status.pid = self._process.pid
            status.status = FlutterProcessStatus.RUNNING
            self._log.info("flutter_process_started", pid=status.pid)

        return status

    def _handle_output(self, data: str) -> None:
        for line in data.split("\n"):
            if not line.strip():
                continue
            line = line.rstrip("\r")
            self._log_buffer.append(line)

            for subscriber in list(self._subscribers):
                try:
                    subscriber(line)
                except Exception as exc:  # noqa: BLE001
                    self._log.error("log_subscriber_failed", error=str(exc))

            self._detect_status_change(line)

    def _detect_status_change(self, line: str) -> None:
        status = self._flutter_process
        if status is None or self._process is None:
            return
        if not any(marker in line for marker in _RELOAD_MARKERS):
            return
        if status.status not in (FlutterProcessStatus.RUNNING, FlutterProcessStatus.HOT_RELOADING):
            return

        status.status = FlutterProcessStatus.HOT_RELOADING
        if self._revert_handle is not None:
            self._revert_handle.cancel()
        self._revert_handle = asyncio.get_running_loop().call_later(
            self._reload_revert_s, self._revert_reload
        )

    def _revert_reload(self) -> None:
        self._revert_handle = None
        status = self._flutter_process
        if status is not None and status.status == FlutterProcessStatus.HOT_RELOADING:
            status.status = FlutterProcessStatus.RUNNING

    def _handle_exit(self, code: int | None, signal_name: str | None) -> None:
        self._log.info("flutter_process_exited", code=code, signal=signal_name)

        if self._revert_handle is not None:
            self._revert_handle.cancel()
            self._revert_handle = None

        status = self._flutter_process
        if status is not None:
            status.status = (
                FlutterProcessStatus.STOPPED if code == 0 else FlutterProcessStatus.FAILED
            )
            status.stopped_at = datetime.now(UTC)
            status.exit_code = code

        self._process = None

    # ------------------------------------------------------------------
    # Interactive control (fire-and-forget; True means "sent")
    # ------------------------------------------------------------------

    def stop(self) -> bool:
        if self._process is None:
            self._log.warning("flutter_stop_without_process")
            return False

        self._log.info("flutter_process_stopping", pid=self._process.pid)
        sent = self._process.write(FLUTTER_QUIT)
        self._process.close_stdin()
        return sent

    def hot_reload(self) -> bool:
        if self._process is None:
            self._log.warning("flutter_hot_reload_without_process")
            return False

        self._log.info("flutter_hot_reload", pid=self._process.pid)
        return self._process.write(FLUTTER_HOT_RELOAD)

    def hot_restart(self) -> bool:
        if self._process is None:
            self._log.warning("flutter_hot_restart_without_process")
            return False

        self._log.info("flutter_hot_restart", pid=self._process.pid)
        return self._process.write(FLUTTER_HOT_RESTART)

    def kill(self, sig: int = signal.SIGTERM) -> bool:
        if self._process is None:
            return False

        self._log.info("flutter_process_killing", pid=self._process.pid, signal=sig)
        return self._process.kill(sig)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_status(self) -> FlutterProcess | None:
        return self._flutter_process

    def get_logs(self, from_index: int | None = None, limit: int | None = None) -> LogPage:
        logs = (
            self._log_buffer.get_logs(from_index)
            if limit is None
            else self._log_buffer.get_logs(from_index, limit)
        )
        return LogPage(
            logs=logs,
            next_index=self._log_buffer.get_next_index(),
            total_lines=self._log_buffer.get_total_lines(),
        )

    def get_recent_lines(self, count: int) -> list[str]:
        return self._log_buffer.get_recent_lines(count)

    def subscribe_to_logs(self, callback: LogSubscriber) -> Callable[[], None]:
        """Register *callback* for every new line; returns an unsubscribe function."""
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def clear_logs(self) -> None:
        self._log_buffer.clear()

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    async def cleanup(self) -> None:
        """
        Stop the process (graceful quit, then SIGKILL after the timeout) and clear logs.

        Idempotent, and never blocks longer than the cleanup timeout.
        """
        self._log.debug("flutter_process_manager_cleanup")
        self._subscribers.clear()

        process = self._process
        if process is not None:
            self.stop()
            try:
                await asyncio.wait_for(process.wait(), timeout=self._cleanup_timeout_s)
            except TimeoutError:
                self._log.warning(
                    "flutter_process_kill_after_timeout",
                    pid=process.pid,
                    timeout_s=self._cleanup_timeout_s,
                )
                process.kill(signal.SIGKILL)

        if self._revert_handle is not None:
            self._revert_handle.cancel()
            self._revert_handle = None

        self.clear_logs()

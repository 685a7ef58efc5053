"""
Session manager.

The SessionManager is the orchestration facade over the SessionStore.  It
owns project-path policy, the session limit, simulator lifecycle, the
inactivity sweep and teardown.

Invariants:
  - Session IDs are UUID4 strings and never reused.
  - A session's project_path is absolute, under the allowed prefix (and
    under base_path when one is configured) and contains pubspec.yaml.
  - A session has at most one simulator, created on first demand.
  - end_session() always removes the session from the store: failures of
    individual teardown steps are logged as warnings and never propagate.
  - Ending a session twice raises SessionNotFoundError, including while the
    first teardown is still in progress.
  - simulator_udid is set at most once; overlapping start_simulator() calls
    for one session share a single create and boot.

Handlers must re-fetch a session after every ``await``; a sweep tick may
have ended it in the meantime.
"""

from __future__ import annotations

import asyncio
import os
from datetime import UTC, datetime

import structlog

from flutterbridge.core.config import FlutterConfig
from flutterbridge.core.constants import (
    DEFAULT_ALLOWED_PATH_PREFIX,
    DEFAULT_DEVICE_TYPE,
    DEFAULT_MAX_SESSIONS,
    PROJECT_MANIFEST,
    SESSION_SWEEP_INTERVAL_S,
)
from flutterbridge.core.exceptions import (
    AccessDeniedError,
    PathTraversalError,
    ProjectValidationError,
    SessionLimitError,
    SessionNotFoundError,
)
from flutterbridge.core.session.models import Session
from flutterbridge.core.session.store import SessionStore
from flutterbridge.flutter.process import FlutterProcessManager
from flutterbridge.flutter.test_manager import FlutterTestManager
from flutterbridge.simulator.models import SimulatorControl
from flutterbridge.simulator.simctl import Simctl

logger = structlog.get_logger()


class SessionManager:
    """
    Session registry plus lifecycle policy.

    Single-threaded asyncio use only.  Pure in-memory operations are
    synchronous; anything that touches simctl or a child process is async.
    """

    def __init__(
        self,
        allowed_path_prefix: str = DEFAULT_ALLOWED_PATH_PREFIX,
        max_sessions: int = DEFAULT_MAX_SESSIONS,
        *,
        simulator: SimulatorControl | None = None,
        store: SessionStore | None = None,
        flutter_config: FlutterConfig | None = None,
        sweep_interval_s: float = SESSION_SWEEP_INTERVAL_S,
    ) -> None:
        self._allowed_path_prefix = allowed_path_prefix
        self._max_sessions = max_sessions
        self._base_path: str | None = None
        self._session_timeout_minutes: int | None = None
        self._pre_build_script: str | None = None
        self._post_build_script: str | None = None
        self._simulator: SimulatorControl = simulator or Simctl()
        self._store = store or SessionStore()
        self._flutter_config = flutter_config or FlutterConfig()
        self._sweep_interval_s = sweep_interval_s
        self._sweep_task: asyncio.Task[None] | None = None
        self._simulator_locks: dict[str, asyncio.Lock] = {}

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def configure(
        self,
        allowed_path_prefix: str,
        max_sessions: int | None = None,
        pre_build_script: str | None = None,
        post_build_script: str | None = None,
        base_path: str | None = None,
        session_timeout_minutes: int | None = None,
        flutter_config: FlutterConfig | None = None,
    ) -> None:
        """
        Apply server settings.  Safe to call more than once.

        Setting a session timeout (re)starts the inactivity sweep; it must
        then be called from within a running event loop.
        """
        self._allowed_path_prefix = allowed_path_prefix
        if max_sessions is not None:
            self._max_sessions = max_sessions
        self._pre_build_script = pre_build_script
        self._post_build_script = post_build_script
        if base_path is not None:
            self._base_path = os.path.abspath(base_path)
        if flutter_config is not None:
            self._flutter_config = flutter_config
        if session_timeout_minutes is not None:
            self._session_timeout_minutes = session_timeout_minutes
            self._start_sweep()

        logger.info(
            "session_manager_configured",
            allowed_path_prefix=allowed_path_prefix,
            base_path=self._base_path,
            max_sessions=self._max_sessions,
            session_timeout_minutes=self._session_timeout_minutes,
            pre_build_script=pre_build_script,
            post_build_script=post_build_script,
        )

    @property
    def max_sessions(self) -> int:
        return self._max_sessions

    @property
    def pre_build_script(self) -> str | None:
        return self._pre_build_script

    @property
    def post_build_script(self) -> str | None:
        return self._post_build_script

    @property
    def simulator(self) -> SimulatorControl:
        return self._simulator

    # ------------------------------------------------------------------
    # Path policy
    # ------------------------------------------------------------------

    def _resolve_project_path(self, project_path: str) -> str:
        if self._base_path is None:
            return os.path.abspath(project_path)

        base = self._base_path
        # A leading "/" still means "relative to base_path"
        normalized = os.path.normpath(project_path).lstrip(os.sep)
        resolved = os.path.abspath(os.path.join(base, normalized))

        rel = os.path.relpath(resolved, base)
        if rel == os.pardir or rel.startswith(os.pardir + os.sep):
            raise PathTraversalError(
                f"Path traversal detected: {project_path} resolves outside base path. "
                f"Base path: {base}, Resolved: {resolved}"
            )
        return resolved

    def _validate_project(self, project_path: str) -> str:
        resolved = self._resolve_project_path(project_path)

        if not _is_under(resolved, self._allowed_path_prefix):
            raise AccessDeniedError(
                f"Access denied: Project path must be under {self._allowed_path_prefix}. "
                f"Provided path: {project_path}, Resolved path: {resolved}"
            )
        if not os.path.exists(resolved):
            raise ProjectValidationError(
                f"Flutter project directory does not exist: {resolved}. "
                "Ensure the path is correct and accessible."
            )
        if not os.path.isdir(resolved):
            raise ProjectValidationError(
                f"Path is not a directory: {resolved}. "
                f"Provide a directory containing a Flutter project (with {PROJECT_MANIFEST})."
            )
        if not os.path.isfile(os.path.join(resolved, PROJECT_MANIFEST)):
            raise ProjectValidationError(
                f"Not a valid Flutter project (missing {PROJECT_MANIFEST}): {resolved}. "
                f"The directory must contain a {PROJECT_MANIFEST} file."
            )
        return resolved

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create_session(self, project_path: str, device_type: str | None = None) -> Session:
        """Validate *project_path* and register a new session (no simulator yet)."""
        device_type = device_type or DEFAULT_DEVICE_TYPE
        logger.info(
            "session_creating",
            project_path=project_path,
            device_type=device_type,
            base_path=self._base_path,
        )

        active = self._store.size()
        if active >= self._max_sessions:
            raise SessionLimitError(
                f"Maximum number of sessions ({self._max_sessions}) reached. "
                "End an existing session before creating a new one. "
                f"Active sessions: {active}"
            )

        resolved = self._validate_project(project_path)
        session = Session(project_path=resolved, device_type=device_type)
        self._store.set(session)

        logger.info("session_created", session_id=session.session_id, project_path=resolved)
        return session

    async def start_simulator(self, session_id: str) -> Session:
        """Create and boot the session's simulator unless it already has one."""
        session = self.require_session(session_id)
        if session.simulator_udid:
            logger.debug("simulator_already_started", session_id=session_id, udid=session.simulator_udid)
            return session

        # Overlapping callers queue here; the first one creates and boots,
        # the rest see its UDID once they get the lock
        lock = self._simulator_locks.setdefault(session_id, asyncio.Lock())
        async with lock:
            session = self.require_session(session_id)
            if session.simulator_udid:
                return session

            logger.info(
                "session_simulator_starting", session_id=session_id, device_type=session.device_type
            )
            udid = await self._simulator.create_simulator(session.device_type)
            try:
                await self._simulator.boot_simulator(udid)
            except Exception:
                await self._discard_simulator(udid)
                raise

            session = self._store.get(session_id)
            if session is None:
                # Ended while we were booting; the simulator is ours to remove
                await self._discard_simulator(udid)
                raise SessionNotFoundError(f"Session not found: {session_id}")

            session.simulator_udid = udid
            session.touch()
            logger.info("session_simulator_started", session_id=session_id, udid=udid)
            return session

    async def _discard_simulator(self, udid: str) -> None:
        try:
            await self._simulator.delete_simulator(udid)
        except Exception as exc:  # noqa: BLE001
            logger.warning("simulator_discard_failed", udid=udid, error=str(exc))

    async def end_session(self, session_id: str) -> None:
        """Tear down the session's processes and simulator, then forget it."""
        session = self._store.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session not found: {session_id}")

        # Forget it first so a concurrent end or sweep tick sees "not found"
        self._store.delete(session_id)
        self._simulator_locks.pop(session_id, None)
        logger.info("session_ending", session_id=session_id)

        if session.process_manager is not None:
            try:
                await session.process_manager.cleanup()
            except Exception as exc:  # noqa: BLE001
                logger.warning("flutter_process_cleanup_failed", session_id=session_id, error=str(exc))

        if session.test_manager is not None:
            try:
                session.test_manager.cleanup()
            except Exception as exc:  # noqa: BLE001
                logger.warning("flutter_test_cleanup_failed", session_id=session_id, error=str(exc))

        udid = session.simulator_udid
        if udid:
            try:
                await self._simulator.shutdown_simulator(udid)
            except Exception as exc:  # noqa: BLE001
                logger.warning("simulator_shutdown_failed", session_id=session_id, udid=udid, error=str(exc))
            try:
                await self._simulator.delete_simulator(udid)
            except Exception as exc:  # noqa: BLE001
                logger.warning("simulator_delete_failed", session_id=session_id, udid=udid, error=str(exc))

        logger.info("session_ended", session_id=session_id)

    def update_session_activity(self, session_id: str) -> None:
        session = self._store.get(session_id)
        if session is not None:
            session.touch()

    # ------------------------------------------------------------------
    # Process managers
    # ------------------------------------------------------------------

    def get_process_manager(self, session: Session) -> FlutterProcessManager:
        """The session's run-process manager, created on first use."""
        if session.process_manager is None:
            cfg = self._flutter_config
            session.process_manager = FlutterProcessManager(
                cfg.max_log_lines,
                cleanup_timeout_s=cfg.cleanup_timeout_s,
                reload_revert_s=cfg.reload_revert_s,
                session_id=session.session_id,
            )
        return session.process_manager

    def get_test_manager(self, session: Session) -> FlutterTestManager:
        """The session's test manager, created on first use and kept for the session's life."""
        if session.test_manager is None:
            session.test_manager = FlutterTestManager(session_id=session.session_id)
        return session.test_manager

    @property
    def default_test_timeout_minutes(self) -> int:
        return self._flutter_config.default_test_timeout_minutes

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_session(self, session_id: str) -> Session | None:
        return self._store.get(session_id)

    def require_session(self, session_id: str) -> Session:
        session = self._store.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session not found: {session_id}")
        return session

    def list_sessions(self) -> list[dict[str, object]]:
        return self._store.summaries()

    def get_all_session_ids(self) -> list[str]:
        return self._store.keys()

    def session_count(self) -> int:
        return self._store.size()

    def find_test_manager(self, reference: int) -> FlutterTestManager | None:
        """Locate the test manager owning *reference* across all sessions."""
        for session in self._store.sessions():
            manager = session.test_manager
            if manager is not None and manager.has_reference(reference):
                session.touch()
                return manager
        return None

    # ------------------------------------------------------------------
    # Inactivity sweep
    # ------------------------------------------------------------------

    def _start_sweep(self) -> None:
        self._stop_sweep()
        if not self._session_timeout_minutes:
            return

        logger.info(
            "session_sweep_started",
            timeout_minutes=self._session_timeout_minutes,
            interval_s=self._sweep_interval_s,
        )
        self._sweep_task = asyncio.get_running_loop().create_task(
            self._sweep_loop(), name="session_sweep"
        )

    def _stop_sweep(self) -> None:
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            self._sweep_task = None

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval_s)
            try:
                await self._check_inactive_sessions()
            except Exception as exc:  # noqa: BLE001
                logger.error("session_sweep_failed", error=str(exc))

    async def _check_inactive_sessions(self, now: datetime | None = None) -> list[str]:
        """End every session idle longer than the timeout; returns the ended ids."""
        if not self._session_timeout_minutes:
            return []

        now = now or datetime.now(UTC)
        timeout_s = self._session_timeout_minutes * 60
        ended: list[str] = []

        for session in self._store.sessions():
            if not self._store.has(session.session_id):
                continue
            idle_s = session.idle_seconds(now)
            if idle_s <= timeout_s:
                continue

            logger.info(
                "session_timed_out",
                session_id=session.session_id,
                inactive_minutes=int(idle_s // 60),
                timeout_minutes=self._session_timeout_minutes,
            )
            try:
                await self.end_session(session.session_id)
                ended.append(session.session_id)
            except Exception as exc:  # noqa: BLE001
                logger.error("session_timeout_end_failed", session_id=session.session_id, error=str(exc))

        return ended

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def cleanup(self) -> None:
        """Stop the sweep and end every session, tolerating individual failures."""
        logger.info("session_manager_cleanup", sessions=self._store.size())
        self._stop_sweep()

        for session_id in self._store.keys():
            try:
                await self.end_session(session_id)
            except Exception as exc:  # noqa: BLE001
                logger.error("session_cleanup_failed", session_id=session_id, error=str(exc))


_default_manager: SessionManager | None = None


def get_session_manager() -> SessionManager:
    """Process-wide manager used by the CLI and server wiring."""
    global _default_manager
    if _default_manager is None:
        _default_manager = SessionManager()
    return _default_manager


def _is_under(path: str, root: str) -> bool:
    """True when *path* is *root* or lies below it, compared per path segment."""
    root = os.path.abspath(root)
    return os.path.commonpath([path, root]) == root

"""
Flutter app tools.

flutter_run starts a long-running `flutter run` owned by the session's
FlutterProcessManager; stop / hot reload / hot restart / logs talk to that
manager.  flutter_build and flutter_clean are one-shot commands whose
output is returned whole.  The configured pre-build script runs in the
project directory before flutter_run and flutter_build; the post-build
script runs after flutter_build.
"""

from __future__ import annotations

from typing import Any, Literal

import structlog
from pydantic import Field

from flutterbridge.core.constants import DEFAULT_BUILD_TIMEOUT_S, DEFAULT_SCRIPT_TIMEOUT_S
from flutterbridge.core.exceptions import NoProcessError, ProcessConflictError, ProcessError
from flutterbridge.core.session.manager import SessionManager
from flutterbridge.core.session.models import Session
from flutterbridge.flutter.models import RunOptions
from flutterbridge.flutter.process import FLUTTER_EXECUTABLE, FlutterProcessManager
from flutterbridge.os.process import CommandResult, run_command
from flutterbridge.tools.registry import SessionArgs, Tool

logger = structlog.get_logger()

# Keep one-shot output payloads bounded
_MAX_OUTPUT_CHARS = 20_000


class FlutterRunArgs(SessionArgs):
    target: str | None = Field(default=None, description="Target file (e.g. lib/main.dart)")
    flavor: str | None = Field(default=None, description="Build flavor")
    additional_args: list[str] = Field(
        default_factory=list, description="Additional arguments passed to `flutter run`"
    )


class FlutterLogsArgs(SessionArgs):
    from_index: int | None = Field(
        default=None, ge=0, description="Return lines with index >= fromIndex (use nextIndex from the previous call)"
    )
    limit: int | None = Field(
        default=None, ge=1, description="Maximum number of lines to return (default: 100)"
    )


class FlutterBuildArgs(SessionArgs):
    mode: Literal["debug", "profile", "release"] = Field(default="debug", description="Build mode")
    flavor: str | None = Field(default=None, description="Build flavor")
    target: str | None = Field(default=None, description="Target file (e.g. lib/main.dart)")


def _tail(text: str) -> str:
    if len(text) <= _MAX_OUTPUT_CHARS:
        return text
    return "...(truncated)\n" + text[-_MAX_OUTPUT_CHARS:]


def _combined_output(result: CommandResult) -> str:
    return _tail("\n".join(part for part in (result.stdout.strip(), result.stderr.strip()) if part))


async def run_build_script(script: str, session: Session, stage: str) -> CommandResult:
    """Run a user build script through the shell in the project directory."""
    logger.info("build_script_running", session_id=session.session_id, stage=stage, script=script)
    result = await run_command(script, cwd=session.project_path, timeout_s=DEFAULT_SCRIPT_TIMEOUT_S)
    if not result.ok:
        logger.warning(
            "build_script_failed",
            session_id=session.session_id,
            stage=stage,
            exit_code=result.exit_code,
            timed_out=result.timed_out,
        )
    return result


async def _run_pre_build_script(manager: SessionManager, session: Session) -> None:
    script = manager.pre_build_script
    if not script:
        return
    result = await run_build_script(script, session, "pre")
    if not result.ok:
        raise ProcessError(
            f"Pre-build script failed (exit code {result.exit_code}): {_combined_output(result)}"
        )


def _require_process_manager(session: Session) -> FlutterProcessManager:
    if session.process_manager is None:
        raise NoProcessError("No Flutter process running for this session")
    return session.process_manager


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def flutter_run(manager: SessionManager, args: FlutterRunArgs) -> dict[str, Any]:
    session = manager.require_session(args.session_id)
    manager.update_session_activity(args.session_id)

    if session.process_manager is not None and session.process_manager.has_process:
        raise ProcessConflictError("Flutter process already running for this session")

    await _run_pre_build_script(manager, session)
    session = await manager.start_simulator(args.session_id)
    assert session.simulator_udid is not None

    process_manager = manager.get_process_manager(session)
    process = await process_manager.start(
        RunOptions(
            project_path=session.project_path,
            device_id=session.simulator_udid,
            target=args.target,
            flavor=args.flavor,
            additional_args=args.additional_args,
        )
    )
    return {
        "success": True,
        "pid": process.pid,
        "message": f"Flutter process started (PID: {process.pid})",
    }


async def flutter_stop(manager: SessionManager, args: SessionArgs) -> dict[str, Any]:
    session = manager.require_session(args.session_id)
    manager.update_session_activity(args.session_id)

    stopped = _require_process_manager(session).stop()
    return {
        "success": stopped,
        "message": "Flutter process stop signal sent" if stopped else "No Flutter process to stop",
    }


async def flutter_hot_reload(manager: SessionManager, args: SessionArgs) -> dict[str, Any]:
    session = manager.require_session(args.session_id)
    manager.update_session_activity(args.session_id)

    reloaded = _require_process_manager(session).hot_reload()
    return {
        "success": reloaded,
        "message": "Hot reload triggered" if reloaded else "Failed to trigger hot reload",
    }


async def flutter_hot_restart(manager: SessionManager, args: SessionArgs) -> dict[str, Any]:
    session = manager.require_session(args.session_id)
    manager.update_session_activity(args.session_id)

    restarted = _require_process_manager(session).hot_restart()
    return {
        "success": restarted,
        "message": "Hot restart triggered" if restarted else "Failed to trigger hot restart",
    }


async def flutter_logs(manager: SessionManager, args: FlutterLogsArgs) -> dict[str, Any]:
    session = manager.require_session(args.session_id)
    manager.update_session_activity(args.session_id)

    if session.process_manager is None:
        return {"logs": [], "nextIndex": 0, "totalLines": 0}
    return session.process_manager.get_logs(args.from_index, args.limit).to_dict()


async def flutter_build(manager: SessionManager, args: FlutterBuildArgs) -> dict[str, Any]:
    session = manager.require_session(args.session_id)
    manager.update_session_activity(args.session_id)

    await _run_pre_build_script(manager, session)

    command = [FLUTTER_EXECUTABLE, "build", "ios", "--simulator", f"--{args.mode}"]
    if args.flavor:
        command += ["--flavor", args.flavor]
    if args.target:
        command += ["-t", args.target]

    logger.info("flutter_build_starting", session_id=session.session_id, command=command)
    result = await run_command(command, cwd=session.project_path, timeout_s=DEFAULT_BUILD_TIMEOUT_S)
    logger.info(
        "flutter_build_finished",
        session_id=session.session_id,
        exit_code=result.exit_code,
        timed_out=result.timed_out,
    )

    payload: dict[str, Any] = {
        "success": result.ok,
        "exitCode": result.exit_code,
        "output": _combined_output(result),
    }

    if result.ok and manager.post_build_script:
        post = await run_build_script(manager.post_build_script, session, "post")
        payload["postBuildScript"] = {"exitCode": post.exit_code, "output": _combined_output(post)}

    manager.update_session_activity(args.session_id)
    return payload


async def flutter_clean(manager: SessionManager, args: SessionArgs) -> dict[str, Any]:
    session = manager.require_session(args.session_id)
    manager.update_session_activity(args.session_id)

    result = await run_command(
        [FLUTTER_EXECUTABLE, "clean"], cwd=session.project_path, timeout_s=DEFAULT_SCRIPT_TIMEOUT_S
    )
    return {"success": result.ok, "exitCode": result.exit_code, "output": _combined_output(result)}


TOOLS = [
    Tool(
        name="flutter_run",
        description=(
            "Start the Flutter app on the session's simulator (created and booted on demand). "
            "Returns immediately; poll flutter_logs for build and app output."
        ),
        args_model=FlutterRunArgs,
        handler=flutter_run,
    ),
    Tool(
        name="flutter_stop",
        description="Stop the running Flutter app.",
        args_model=SessionArgs,
        handler=flutter_stop,
    ),
    Tool(
        name="flutter_hot_reload",
        description="Hot reload the running Flutter app.",
        args_model=SessionArgs,
        handler=flutter_hot_reload,
    ),
    Tool(
        name="flutter_hot_restart",
        description="Hot restart the running Flutter app.",
        args_model=SessionArgs,
        handler=flutter_hot_restart,
    ),
    Tool(
        name="flutter_logs",
        description=(
            "Get output from the running Flutter app. Pass the returned nextIndex as "
            "fromIndex on the next call to receive only new lines."
        ),
        args_model=FlutterLogsArgs,
        handler=flutter_logs,
    ),
    Tool(
        name="flutter_build",
        description="Build the app for the iOS simulator (`flutter build ios --simulator`) and return the output.",
        args_model=FlutterBuildArgs,
        handler=flutter_build,
    ),
    Tool(
        name="flutter_clean",
        description="Run `flutter clean` in the session's project directory.",
        args_model=SessionArgs,
        handler=flutter_clean,
    ),
]

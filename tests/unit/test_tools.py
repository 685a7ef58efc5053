"""Unit tests for the MCP tool registry, executor and built-in tool handlers."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock

import pytest

from flutterbridge.core.session.manager import SessionManager
from flutterbridge.os.process import CommandResult
from flutterbridge.simulator.models import DeviceType, Screenshot
from flutterbridge.tools.executor import ToolExecutor, ToolResult
from flutterbridge.tools.registry import NoArgs, Tool, ToolRegistry, get_default_registry

EXPECTED_TOOLS = {
    "session_start",
    "session_end",
    "session_list",
    "start_simulator",
    "simulator_list",
    "flutter_run",
    "flutter_stop",
    "flutter_hot_reload",
    "flutter_hot_restart",
    "flutter_logs",
    "flutter_build",
    "flutter_clean",
    "flutter_test",
    "flutter_test_results",
    "flutter_test_logs",
    "ui_tap",
    "ui_type",
    "ui_swipe",
    "ui_describe_all",
    "ui_describe_point",
    "screenshot",
}


@pytest.fixture
def manager(workspace, simulator) -> SessionManager:
    return SessionManager(str(workspace), simulator=simulator)


@pytest.fixture
def executor(manager) -> ToolExecutor:
    return ToolExecutor(get_default_registry(), manager)


@pytest.fixture
def project(workspace, make_project) -> str:
    return str(make_project(workspace, "app"))


@pytest.fixture
def commands(monkeypatch: pytest.MonkeyPatch) -> AsyncMock:
    """run_command as seen by flutter_build / flutter_clean / build scripts."""
    mock = AsyncMock(return_value=CommandResult(stdout="Built build/ios", stderr="", exit_code=0))
    monkeypatch.setattr("flutterbridge.tools.flutter_commands.run_command", mock)
    return mock


async def _call(executor: ToolExecutor, name: str, **arguments) -> ToolResult:
    return await executor.execute(name, arguments)


async def _ok(executor: ToolExecutor, name: str, **arguments):
    result = await _call(executor, name, **arguments)
    assert not result.is_error, result.payload
    return result.payload


async def _session(executor: ToolExecutor, project: str) -> str:
    return (await _ok(executor, "session_start", worktreePath=project))["sessionId"]


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class TestRegistry:
    def test_all_tools_registered(self) -> None:
        names = {t.name for t in get_default_registry().list_all()}
        assert names == EXPECTED_TOOLS

    def test_duplicate_rejected(self) -> None:
        registry = ToolRegistry()
        tool = Tool(name="x", description="x", args_model=NoArgs, handler=AsyncMock())
        registry.register(tool)
        with pytest.raises(ValueError):
            registry.register(tool)

    def test_schema_uses_camel_case(self) -> None:
        tool = get_default_registry().get("session_start")
        schema = tool.to_definition()["inputSchema"]
        assert schema["type"] == "object"
        assert set(schema["properties"]) == {"worktreePath", "deviceType"}
        assert schema["required"] == ["worktreePath"]
        assert "title" not in schema

    def test_swipe_schema_keeps_snake_case_coordinates(self) -> None:
        schema = get_default_registry().get("ui_swipe").parameters
        assert {"sessionId", "x_start", "y_start", "x_end", "y_end"} <= set(schema["properties"])

    def test_no_arg_tool_has_empty_properties(self) -> None:
        schema = get_default_registry().get("session_list").parameters
        assert schema["properties"] == {}

    def test_definitions_shape(self) -> None:
        for definition in get_default_registry().to_definitions():
            assert set(definition) == {"name", "description", "inputSchema"}
            assert definition["description"]


# ---------------------------------------------------------------------------
# Executor
# ---------------------------------------------------------------------------


class TestExecutor:
    @pytest.mark.asyncio
    async def test_unknown_tool(self, executor) -> None:
        result = await _call(executor, "nope")
        assert result.is_error
        assert result.payload == {"error": "Unknown tool: nope"}

    @pytest.mark.asyncio
    async def test_invalid_arguments(self, executor) -> None:
        result = await _call(executor, "session_end")
        assert result.is_error
        assert result.payload["error"].startswith("Invalid arguments for session_end")
        assert "sessionId" in result.payload["error"]

    @pytest.mark.asyncio
    async def test_domain_error_message(self, executor) -> None:
        result = await _call(executor, "session_end", sessionId="missing")
        assert result.is_error
        assert result.payload == {"error": "Session not found: missing"}

    @pytest.mark.asyncio
    async def test_unexpected_exception(self, manager) -> None:
        registry = ToolRegistry()
        registry.register(
            Tool(
                name="crash",
                description="crash",
                args_model=NoArgs,
                handler=AsyncMock(side_effect=RuntimeError("kaboom")),
            )
        )
        result = await ToolExecutor(registry, manager).execute("crash", None)
        assert result.is_error
        assert result.payload == {"error": "kaboom"}

    def test_mcp_shape(self) -> None:
        ok = ToolResult(payload={"a": 1}).to_mcp()
        assert ok == {"content": [{"type": "text", "text": json.dumps({"a": 1}, indent=2)}]}

        err = ToolResult.error("bad").to_mcp()
        assert err["isError"] is True
        assert json.loads(err["content"][0]["text"]) == {"error": "bad"}


# ---------------------------------------------------------------------------
# Session tools
# ---------------------------------------------------------------------------


class TestSessionTools:
    @pytest.mark.asyncio
    async def test_lifecycle(self, executor, simulator, project) -> None:
        started = await _ok(executor, "session_start", worktreePath=project, deviceType="iPhone 15")
        session_id = started["sessionId"]
        assert started["worktreePath"] == project
        assert started["deviceType"] == "iPhone 15"

        listed = await _ok(executor, "session_list")
        assert [s["id"] for s in listed["sessions"]] == [session_id]

        sim = await _ok(executor, "start_simulator", sessionId=session_id)
        assert sim["simulatorUdid"] == "SIM-UDID-1"
        assert "SIM-UDID-1" in sim["message"]

        ended = await _ok(executor, "session_end", sessionId=session_id)
        assert ended == {"success": True, "message": f"Session {session_id} ended successfully"}
        assert (await _ok(executor, "session_list"))["sessions"] == []

    @pytest.mark.asyncio
    async def test_invalid_project(self, executor, workspace) -> None:
        result = await _call(executor, "session_start", worktreePath=str(workspace / "nope"))
        assert result.is_error
        assert "does not exist" in result.payload["error"]

    @pytest.mark.asyncio
    async def test_simulator_list(self, executor, simulator) -> None:
        simulator.list_device_types.return_value = [DeviceType("iPhone 15", "id.15")]
        payload = await _ok(executor, "simulator_list")
        assert payload == {"deviceTypes": [{"name": "iPhone 15", "identifier": "id.15"}]}


# ---------------------------------------------------------------------------
# flutter_* tools
# ---------------------------------------------------------------------------


class TestFlutterRunTools:
    @pytest.mark.asyncio
    async def test_run_starts_simulator_and_process(
        self, executor, simulator, project, fake_spawn
    ) -> None:
        session_id = await _session(executor, project)
        payload = await _ok(executor, "flutter_run", sessionId=session_id, flavor="dev")

        assert payload["success"] is True
        assert payload["pid"] == fake_spawn.last.pid
        simulator.create_simulator.assert_awaited_once()
        call = fake_spawn.calls[0]
        assert call.args == ["run", "-d", "SIM-UDID-1", "--flavor", "dev"]
        assert call.cwd == project

    @pytest.mark.asyncio
    async def test_run_twice_conflicts(self, executor, project, fake_spawn) -> None:
        session_id = await _session(executor, project)
        await _ok(executor, "flutter_run", sessionId=session_id)
        result = await _call(executor, "flutter_run", sessionId=session_id)
        assert result.is_error
        assert "already running" in result.payload["error"]

    @pytest.mark.asyncio
    async def test_stop_then_rerun(self, executor, project, fake_spawn) -> None:
        session_id = await _session(executor, project)
        await _ok(executor, "flutter_run", sessionId=session_id)

        stopped = await _ok(executor, "flutter_stop", sessionId=session_id)
        assert stopped == {"success": True, "message": "Flutter process stop signal sent"}
        fake_spawn.last.exit(0)

        await _ok(executor, "flutter_run", sessionId=session_id)
        assert len(fake_spawn.calls) == 2

    @pytest.mark.asyncio
    async def test_controls_without_process(self, executor, project) -> None:
        session_id = await _session(executor, project)
        for name in ("flutter_stop", "flutter_hot_reload", "flutter_hot_restart"):
            result = await _call(executor, name, sessionId=session_id)
            assert result.is_error
            assert result.payload["error"] == "No Flutter process running for this session"

    @pytest.mark.asyncio
    async def test_reload_and_restart(self, executor, project, fake_spawn) -> None:
        session_id = await _session(executor, project)
        await _ok(executor, "flutter_run", sessionId=session_id)

        reload = await _ok(executor, "flutter_hot_reload", sessionId=session_id)
        restart = await _ok(executor, "flutter_hot_restart", sessionId=session_id)
        assert reload == {"success": True, "message": "Hot reload triggered"}
        assert restart == {"success": True, "message": "Hot restart triggered"}

    @pytest.mark.asyncio
    async def test_logs_polling(self, executor, project, fake_spawn) -> None:
        session_id = await _session(executor, project)
        empty = await _ok(executor, "flutter_logs", sessionId=session_id)
        assert empty == {"logs": [], "nextIndex": 0, "totalLines": 0}

        await _ok(executor, "flutter_run", sessionId=session_id)
        fake_spawn.last.stdout("Launching\nSyncing\n")
        first = await _ok(executor, "flutter_logs", sessionId=session_id)
        assert [e["line"] for e in first["logs"]] == ["Launching", "Syncing"]

        fake_spawn.last.stdout("Ready\n")
        second = await _ok(
            executor, "flutter_logs", sessionId=session_id, fromIndex=first["nextIndex"]
        )
        assert [e["line"] for e in second["logs"]] == ["Ready"]
        assert second["nextIndex"] == 3

    @pytest.mark.asyncio
    async def test_logs_rejects_negative_index(self, executor, project) -> None:
        session_id = await _session(executor, project)
        result = await _call(executor, "flutter_logs", sessionId=session_id, fromIndex=-1)
        assert result.is_error

    @pytest.mark.asyncio
    async def test_pre_build_script_failure_aborts_run(
        self, executor, manager, workspace, project, commands, fake_spawn, simulator
    ) -> None:
        manager.configure(str(workspace), pre_build_script="./prepare.sh")
        commands.return_value = CommandResult(stdout="", stderr="missing tool", exit_code=3)
        session_id = await _session(executor, project)

        result = await _call(executor, "flutter_run", sessionId=session_id)
        assert result.is_error
        assert "Pre-build script failed (exit code 3)" in result.payload["error"]
        assert commands.await_args.args[0] == "./prepare.sh"
        assert commands.await_args.kwargs["cwd"] == project
        assert fake_spawn.calls == []
        simulator.create_simulator.assert_not_awaited()


class TestFlutterBuildTools:
    @pytest.mark.asyncio
    async def test_build(self, executor, project, commands) -> None:
        session_id = await _session(executor, project)
        payload = await _ok(
            executor, "flutter_build", sessionId=session_id, mode="release", target="lib/x.dart"
        )
        assert payload == {"success": True, "exitCode": 0, "output": "Built build/ios"}
        assert commands.await_args.args[0] == [
            "flutter",
            "build",
            "ios",
            "--simulator",
            "--release",
            "-t",
            "lib/x.dart",
        ]

    @pytest.mark.asyncio
    async def test_build_invalid_mode(self, executor, project) -> None:
        session_id = await _session(executor, project)
        result = await _call(executor, "flutter_build", sessionId=session_id, mode="fast")
        assert result.is_error

    @pytest.mark.asyncio
    async def test_build_with_scripts(
        self, executor, manager, workspace, project, commands
    ) -> None:
        manager.configure(
            str(workspace),
            pre_build_script="make pre",
            post_build_script="make post",
        )
        session_id = await _session(executor, project)
        payload = await _ok(executor, "flutter_build", sessionId=session_id)

        argv = [c.args[0] for c in commands.await_args_list]
        assert argv[0] == "make pre"
        assert argv[1][:2] == ["flutter", "build"]
        assert argv[2] == "make post"
        assert payload["postBuildScript"]["exitCode"] == 0

    @pytest.mark.asyncio
    async def test_failed_build_skips_post_script(
        self, executor, manager, workspace, project, commands
    ) -> None:
        manager.configure(str(workspace), post_build_script="make post")
        commands.return_value = CommandResult(stdout="", stderr="Xcode build failed", exit_code=1)
        session_id = await _session(executor, project)

        payload = await _ok(executor, "flutter_build", sessionId=session_id)
        assert payload["success"] is False
        assert payload["output"] == "Xcode build failed"
        assert "postBuildScript" not in payload
        assert commands.await_count == 1

    @pytest.mark.asyncio
    async def test_clean(self, executor, project, commands) -> None:
        session_id = await _session(executor, project)
        payload = await _ok(executor, "flutter_clean", sessionId=session_id)
        assert payload["success"] is True
        assert commands.await_args.args[0] == ["flutter", "clean"]


class TestFlutterTestTools:
    @pytest.mark.asyncio
    async def test_run_and_poll(self, executor, project, fake_spawn) -> None:
        session_id = await _session(executor, project)
        started = await _ok(executor, "flutter_test", sessionId=session_id, tags=["unit"])
        reference = started["reference"]
        assert reference == 1
        assert fake_spawn.calls[0].args == [
            "test",
            "--reporter",
            "json",
            "--tags",
            "unit",
            "--timeout",
            "600s",
        ]

        fake_spawn.last.stdout(
            "\n".join(
                [
                    json.dumps({"type": "testStart", "test": {"id": 1, "name": "t1"}}),
                    json.dumps({"type": "error", "testID": 1, "error": "boom", "isFailure": True}),
                    json.dumps({"type": "testDone", "testID": 1, "result": "failure"}),
                    json.dumps({"type": "done", "success": False}),
                ]
            )
            + "\n"
        )

        results = await _ok(
            executor, "flutter_test_results", reference=reference, showAllTestNames=True
        )
        assert results["complete"] is True
        assert results["fails"] == 1
        assert results["failing_tests"] == ["t1"]

        logs = await _ok(executor, "flutter_test_logs", reference=reference)
        assert logs == [{"test_name": "t1", "output": "boom"}]

    @pytest.mark.asyncio
    async def test_timeout_argument(self, executor, project, fake_spawn) -> None:
        session_id = await _session(executor, project)
        await _ok(executor, "flutter_test", sessionId=session_id, timeout=1, testNameMatch="login")
        assert fake_spawn.calls[0].args[3:] == ["--name", "login", "--timeout", "60s"]

    @pytest.mark.asyncio
    async def test_unknown_reference(self, executor) -> None:
        for name in ("flutter_test_results", "flutter_test_logs"):
            result = await _call(executor, name, reference=7)
            assert result.is_error
            assert result.payload == {"error": "Test reference not found: 7"}


# ---------------------------------------------------------------------------
# UI tools
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_idb(monkeypatch: pytest.MonkeyPatch) -> dict[str, AsyncMock]:
    mocks = {
        "tap": AsyncMock(),
        "type_text": AsyncMock(),
        "swipe": AsyncMock(),
        "describe_all": AsyncMock(return_value="tree"),
        "describe_point": AsyncMock(return_value="info"),
        "screenshot": AsyncMock(return_value=Screenshot(image_data="aGVsbG8=")),
    }
    for name, mock in mocks.items():
        monkeypatch.setattr(f"flutterbridge.simulator.idb.{name}", mock)
    return mocks


class TestUiTools:
    @pytest.mark.asyncio
    async def test_requires_simulator(self, executor, project, fake_idb) -> None:
        session_id = await _session(executor, project)
        result = await _call(executor, "ui_tap", sessionId=session_id, x=1, y=2)
        assert result.is_error
        assert "No simulator running for this session" in result.payload["error"]
        fake_idb["tap"].assert_not_awaited()

    @pytest.mark.asyncio
    async def test_tap(self, executor, project, fake_idb) -> None:
        session_id = await _session(executor, project)
        await _ok(executor, "start_simulator", sessionId=session_id)

        payload = await _ok(executor, "ui_tap", sessionId=session_id, x=100, y=200.5, duration=2)
        fake_idb["tap"].assert_awaited_once_with("SIM-UDID-1", 100, 200.5, 2)
        assert payload == {"success": True, "message": "Tapped at (100, 200.5) for 2s"}

    @pytest.mark.asyncio
    async def test_type_and_swipe(self, executor, project, fake_idb) -> None:
        session_id = await _session(executor, project)
        await _ok(executor, "start_simulator", sessionId=session_id)

        typed = await _ok(executor, "ui_type", sessionId=session_id, text="hello")
        assert typed["message"] == "Typed 5 characters"

        swiped = await _ok(
            executor, "ui_swipe", sessionId=session_id, x_start=1, y_start=2, x_end=3, y_end=4
        )
        fake_idb["swipe"].assert_awaited_once_with("SIM-UDID-1", 1, 2, 3, 4, None)
        assert swiped["message"] == "Swiped from (1, 2) to (3, 4)"

    @pytest.mark.asyncio
    async def test_describe_and_screenshot(self, executor, project, fake_idb) -> None:
        session_id = await _session(executor, project)
        await _ok(executor, "start_simulator", sessionId=session_id)

        assert await _ok(executor, "ui_describe_all", sessionId=session_id) == {
            "accessibility_tree": "tree"
        }
        assert await _ok(executor, "ui_describe_point", sessionId=session_id, x=5, y=6) == {
            "accessibility_info": "info"
        }
        shot = await _ok(executor, "screenshot", sessionId=session_id)
        assert shot["imageData"] == "aGVsbG8="
        assert shot["format"] == "png"

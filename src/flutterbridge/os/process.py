"""
Async subprocess helpers.

Two shapes of process execution are needed:

  spawn_streaming(): long-running child (``flutter run``, ``flutter test``)
                      whose output is pushed to callbacks as it arrives and
                      whose stdin stays open for control bytes.
  run_command():     one-shot command (simctl, idb, ``flutter build``,
                      user build scripts) collected to completion under a
                      timeout.

Ordering contract for spawn_streaming():
  - stdout and stderr are pumped by independent reader coroutines, so their
    relative interleaving is not guaranteed.
  - Each callback invocation carries whole lines only.  A trailing partial
    line is held back until its newline arrives or the stream hits EOF.
  - on_exit fires exactly once, after both streams have reached EOF, so it
    is always observed after every output callback for that process.
"""

from __future__ import annotations

import asyncio
import codecs
import os
import signal
from collections.abc import Callable
from dataclasses import dataclass

import structlog

logger = structlog.get_logger()

OutputCallback = Callable[[str], None]
ExitCallback = Callable[[int | None, str | None], None]

_READ_CHUNK_BYTES = 65536
_TIMEOUT_EXIT_CODE = 124  # same convention as coreutils timeout(1)
_NOT_FOUND_EXIT_CODE = 127


@dataclass
class CommandResult:
    """Outcome of a one-shot command."""

    stdout: str
    stderr: str
    exit_code: int
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.timed_out


class SpawnedProcess:
    """
    Handle to a streaming child process.

    Created by :func:`spawn_streaming`; must be constructed inside a running
    event loop because it immediately schedules its output pump.
    """

    def __init__(
        self,
        proc: asyncio.subprocess.Process,
        *,
        on_stdout: OutputCallback | None = None,
        on_stderr: OutputCallback | None = None,
        on_exit: ExitCallback | None = None,
    ) -> None:
        self._proc = proc
        self._on_stdout = on_stdout
        self._on_stderr = on_stderr
        self._on_exit = on_exit
        self._exit_code: int | None = None
        self._exited = asyncio.Event()
        self._pump_task = asyncio.get_running_loop().create_task(
            self._pump(), name=f"process_pump_{proc.pid}"
        )

    @property
    def pid(self) -> int | None:
        return self._proc.pid

    @property
    def has_exited(self) -> bool:
        return self._exited.is_set()

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def write(self, data: bytes) -> bool:
        """Write *data* to the child's stdin.  Returns False if stdin is gone."""
        stdin = self._proc.stdin
        if stdin is None or stdin.is_closing():
            return False
        try:
            stdin.write(data)
        except (BrokenPipeError, ConnectionResetError):
            return False
        return True

    def close_stdin(self) -> None:
        stdin = self._proc.stdin
        if stdin is not None and not stdin.is_closing():
            stdin.close()

    def kill(self, sig: int = signal.SIGTERM) -> bool:
        """Send *sig* to the child.  Returns False if it has already exited."""
        if self._proc.returncode is not None:
            return False
        try:
            self._proc.send_signal(sig)
        except ProcessLookupError:
            return False
        return True

    async def wait(self) -> int:
        """Wait for exit (after all output was delivered) and return the exit code."""
        await self._exited.wait()
        return self._exit_code if self._exit_code is not None else 1

    # ------------------------------------------------------------------
    # Output pump
    # ------------------------------------------------------------------

    async def _pump(self) -> None:
        await asyncio.gather(
            self._read_stream(self._proc.stdout, self._on_stdout, "stdout"),
            self._read_stream(self._proc.stderr, self._on_stderr, "stderr"),
        )
        returncode = await self._proc.wait()

        exit_code: int | None = returncode
        signal_name: str | None = None
        if returncode < 0:
            exit_code = None
            try:
                signal_name = signal.Signals(-returncode).name
            except ValueError:
                signal_name = f"SIG{-returncode}"

        self._exit_code = exit_code
        logger.debug("process_exited", pid=self.pid, code=exit_code, signal=signal_name)
        try:
            if self._on_exit is not None:
                self._on_exit(exit_code, signal_name)
        except Exception:  # noqa: BLE001
            logger.exception("process_exit_callback_failed", pid=self.pid)
        finally:
            self._exited.set()

    async def _read_stream(
        self,
        stream: asyncio.StreamReader | None,
        callback: OutputCallback | None,
        name: str,
    ) -> None:
        if stream is None:
            return
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        pending = ""
        while True:
            chunk = await stream.read(_READ_CHUNK_BYTES)
            if not chunk:
                break
            pending += decoder.decode(chunk)
            cut = pending.rfind("\n")
            if cut == -1:
                continue
            text, pending = pending[: cut + 1], pending[cut + 1 :]
            self._deliver(callback, name, text)
        pending += decoder.decode(b"", final=True)
        if pending:
            self._deliver(callback, name, pending)

    def _deliver(self, callback: OutputCallback | None, name: str, text: str) -> None:
        logger.debug("process_output", pid=self.pid, stream=name, chars=len(text))
        if callback is None:
            return
        try:
            callback(text)
        except Exception:  # noqa: BLE001
            logger.exception("process_output_callback_failed", pid=self.pid, stream=name)


async def spawn_streaming(
    command: str,
    args: list[str],
    *,
    cwd: str | None = None,
    env: dict[str, str] | None = None,
    on_stdout: OutputCallback | None = None,
    on_stderr: OutputCallback | None = None,
    on_exit: ExitCallback | None = None,
) -> SpawnedProcess:
    """
    Spawn *command* with piped stdio and start pumping its output.

    Raises OSError (e.g. FileNotFoundError) if the executable cannot be
    started; callers decide how to surface that.
    """
    logger.debug("process_spawning", command=command, args=args, cwd=cwd)
    proc = await asyncio.create_subprocess_exec(
        command,
        *args,
        cwd=cwd or None,
        env={**os.environ, **env} if env else None,
        stdin=asyncio.subprocess.PIPE,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    return SpawnedProcess(proc, on_stdout=on_stdout, on_stderr=on_stderr, on_exit=on_exit)


async def run_command(
    command: list[str] | str,
    *,
    cwd: str | None = None,
    timeout_s: float = 30.0,
    env: dict[str, str] | None = None,
) -> CommandResult:
    """
    Run *command* to completion and collect its output.

    A list is exec'd directly; a string is run through the shell (used for
    user-supplied build scripts).  Never raises for a failing, missing or
    timed-out command: all three come back as a non-zero CommandResult.
    """
    logger.debug("command_executing", command=command, cwd=cwd)
    full_env = {**os.environ, **env} if env else None
    try:
        if isinstance(command, str):
            proc = await asyncio.create_subprocess_shell(
                command,
                cwd=cwd or None,
                env=full_env,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        else:
            proc = await asyncio.create_subprocess_exec(
                *command,
                cwd=cwd or None,
                env=full_env,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
    except FileNotFoundError as exc:
        return CommandResult(stdout="", stderr=str(exc), exit_code=_NOT_FOUND_EXIT_CODE)

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout_s)
    except TimeoutError:
        proc.kill()
        await proc.wait()
        logger.warning("command_timed_out", command=command, timeout_s=timeout_s)
        return CommandResult(
            stdout="",
            stderr=f"Command timed out after {timeout_s:g}s",
            exit_code=_TIMEOUT_EXIT_CODE,
            timed_out=True,
        )

    return CommandResult(
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
        exit_code=proc.returncode if proc.returncode is not None else 1,
    )

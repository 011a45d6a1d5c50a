"""Subprocess execution for wrapped Python scripts.

This module spawns the configured interpreter, feeds it the context snapshot
on stdin, and supervises its two output channels:

- stdout is the result channel. It is buffered in full and only parsed once
  the process has exited, so a partial JSON document is never looked at.
- stderr is the diagnostic channel. It is decoded chunk by chunk and each
  chunk is published as a DiagnosticOutput event while the child is still
  running, then kept for the error message if the child fails.

Every invocation spawns a fresh process and ends in exactly one outcome: the
parsed result, or one BridgeError subclass. Nothing is retried here.

There is no timeout. A caller that needs one wraps run() in
asyncio.wait_for(); cancellation kills the child's process group before the
CancelledError propagates, so no child outlives its invocation.
"""

import asyncio
import codecs
import json
import logging
import os
import signal
import sys
import tempfile
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from ..config import BridgeConfig
from .bus import EventBus
from .errors import (
    ExecutableNotFoundError,
    MalformedOutputError,
    NonZeroExitError,
    SpawnError,
)
from .events import (
    DiagnosticOutput,
    InvocationCompleted,
    InvocationFailed,
    InvocationStarted,
)

logger = logging.getLogger(__name__)

# Read size for the diagnostic stream; smaller chunks mean livelier output
CHUNK_SIZE = 64 * 1024

# -u: unbuffered stdio so print() output arrives as it happens
# -c: run the script text that follows
INTERPRETER_FLAGS = ("-u", "-c")


def is_windows() -> bool:
    """Check if running on Windows."""
    return sys.platform.startswith('win')


def is_unix() -> bool:
    """Check if running on Unix (Linux, macOS, etc.)."""
    return not is_windows()


@dataclass
class ProcessResult:
    """Everything a finished child process produced.

    Attributes:
        stdout: Raw bytes written to the result channel; decoding them is
            part of parsing the result.
        stderr: Text written to the diagnostic channel.
        exit_code: Exit status of the child.
    """
    stdout: bytes
    stderr: str
    exit_code: int


def _reap_process_group(pgid: int) -> int:
    """Reap zombies left in a killed process group (Unix only).

    Waits only on members of pgid, so unrelated children of this process
    (test runners, other invocations) are left alone.

    Returns:
        Number of zombies reaped.
    """
    if not is_unix():
        return 0

    reaped = 0
    while True:
        try:
            result = os.waitid(os.P_PGID, pgid, os.WEXITED | os.WNOHANG)
            if result is None:
                break
            reaped += 1
        except ChildProcessError:
            break
        except OSError:
            break
    return reaped


async def _kill_process_group(process: asyncio.subprocess.Process) -> None:
    """Kill the child together with anything it spawned, then reap it."""
    pgid = process.pid
    if is_unix() and pgid is not None:
        try:
            os.killpg(pgid, signal.SIGKILL)
        except (ProcessLookupError, PermissionError):
            pass
        await process.wait()
        _reap_process_group(pgid)
    else:
        try:
            process.kill()
        except ProcessLookupError:
            pass
        await process.wait()


async def run_process(
    executable: str,
    script: str,
    stdin_data: bytes,
    on_stderr: Optional[Callable[[str], None]] = None,
) -> ProcessResult:
    """Run `executable -u -c script` to completion.

    The child runs in the system temp directory so it does not depend on the
    host's working directory. stdin_data is written and stdin closed while
    both output streams are being read, so a child that writes a lot before
    finishing its read cannot deadlock the exchange.

    Args:
        executable: Interpreter name (looked up on PATH) or path.
        script: Script text passed after -c.
        stdin_data: Bytes written to the child's stdin before EOF.
        on_stderr: Called with each decoded stderr chunk, in order, before
            this coroutine returns.

    Returns:
        ProcessResult with both streams and the exit code.

    Raises:
        ExecutableNotFoundError: If executable cannot be found.
        SpawnError: If the OS refuses to start executable for another reason.
    """
    # The host decodes both channels as UTF-8, whatever the platform default
    env = os.environ.copy()
    env["PYTHONIOENCODING"] = "utf-8"

    try:
        process = await asyncio.create_subprocess_exec(
            executable,
            *INTERPRETER_FLAGS,
            script,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=tempfile.gettempdir(),
            env=env,
            start_new_session=is_unix(),
        )
    except FileNotFoundError as e:
        raise ExecutableNotFoundError(executable) from e
    except OSError as e:
        raise SpawnError(executable, str(e)) from e

    logger.debug(f"Spawned {executable} (pid {process.pid})")

    async def feed_stdin() -> None:
        try:
            process.stdin.write(stdin_data)
            await process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError):
            # Child exited without reading its input; exit status tells why
            logger.debug(f"Child {process.pid} closed stdin before reading context")
        finally:
            process.stdin.close()

    async def read_stderr() -> str:
        decoder = codecs.getincrementaldecoder('utf-8')(errors='replace')
        parts = []
        while True:
            chunk = await process.stderr.read(CHUNK_SIZE)
            text = decoder.decode(chunk, final=not chunk)
            if text:
                parts.append(text)
                if on_stderr is not None:
                    on_stderr(text)
            if not chunk:
                return "".join(parts)

    try:
        stdout_bytes, stderr_text, _ = await asyncio.gather(
            process.stdout.read(),
            read_stderr(),
            feed_stdin(),
        )
        exit_code = await process.wait()
    except BaseException:
        # Cancellation, KeyboardInterrupt or a failing on_stderr callback:
        # the child must not outlive this call
        if process.returncode is None:
            await _kill_process_group(process)
        raise

    return ProcessResult(
        stdout=stdout_bytes,
        stderr=stderr_text,
        exit_code=exit_code,
    )


def _reject_constant(name: str) -> Any:
    raise ValueError(f"{name} is not a valid JSON value")


def parse_result(data: bytes) -> Any:
    """Parse the result channel as one strict JSON document.

    Raises:
        ValueError: If data is not UTF-8, not JSON, or uses NaN or Infinity
            (UnicodeDecodeError and JSONDecodeError are both ValueErrors).
    """
    return json.loads(data.decode('utf-8'), parse_constant=_reject_constant)


class PythonRunner:
    """Runs wrapped scripts in the configured interpreter.

    The interpreter is fixed at construction; a runner can be reused for any
    number of sequential or concurrent invocations since each run() owns its
    own child process.

    Attributes:
        config: Bridge configuration (interpreter path)
        bus: Event bus that receives invocation and diagnostic events
    """

    def __init__(self, config: Optional[BridgeConfig] = None, bus: Optional[EventBus] = None) -> None:
        self.config = config if config is not None else BridgeConfig.from_env()
        self.bus = bus

    @property
    def executable(self) -> str:
        return self.config.python_executable

    def _emit(self, event: Any) -> None:
        if self.bus is not None:
            self.bus.emit(event)

    async def run(
        self,
        script: str,
        context: Dict[str, Any],
        item_index: Optional[int] = None,
    ) -> Any:
        """Execute script with context on stdin and return its parsed result.

        Args:
            script: Wrapped script from wrap_code().
            context: Snapshot from capture_context().
            item_index: Input item this invocation belongs to, for events.

        Returns:
            The single JSON value the script wrote to stdout.

        Raises:
            ExecutableNotFoundError: The interpreter could not be found.
            SpawnError: The interpreter could not be started.
            NonZeroExitError: The script failed; carries the stderr text.
            MalformedOutputError: The script exited 0 but stdout is not strict JSON.
        """
        payload = json.dumps(context).encode('utf-8')

        self._emit(InvocationStarted(
            executable=self.executable,
            item_index=item_index,
            context_keys=tuple(context),
        ))
        start = time.monotonic()

        def elapsed_ms() -> float:
            return (time.monotonic() - start) * 1000

        def on_stderr(text: str) -> None:
            self._emit(DiagnosticOutput(text=text, item_index=item_index))

        try:
            result = await run_process(self.executable, script, payload, on_stderr=on_stderr)
        except (ExecutableNotFoundError, SpawnError) as e:
            logger.error(str(e))
            self._emit(InvocationFailed(
                item_index=item_index,
                error_type=type(e).__name__,
                error_message=str(e),
                duration_ms=elapsed_ms(),
            ))
            raise

        if result.exit_code != 0:
            error = NonZeroExitError(result.exit_code, result.stderr)
            logger.info(f"Python process exited with code {result.exit_code}")
            self._emit(InvocationFailed(
                item_index=item_index,
                error_type=type(error).__name__,
                error_message=str(error),
                exit_code=result.exit_code,
                duration_ms=elapsed_ms(),
            ))
            raise error

        try:
            value = parse_result(result.stdout)
        except ValueError as e:
            output = result.stdout.decode('utf-8', errors='replace')
            error = MalformedOutputError(output, str(e))
            logger.warning(f"{error} (got {len(result.stdout)} bytes)")
            self._emit(InvocationFailed(
                item_index=item_index,
                error_type=type(error).__name__,
                error_message=str(error),
                exit_code=result.exit_code,
                duration_ms=elapsed_ms(),
            ))
            raise error from e

        self._emit(InvocationCompleted(item_index=item_index, duration_ms=elapsed_ms()))
        return value

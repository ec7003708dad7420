"""
Subprocess runner for the external media tool.

The child's stderr is consumed line by line and forwarded to a callback as it
arrives (only a bounded tail is retained); stdout is collected in full since
it carries the JSON document. A hard wall-clock timeout kills the child.

The outcome is reported as a structured ToolResult; `raise_for_result` turns
a failed result into one classified exception.
"""

from __future__ import annotations

import asyncio
import logging
import re
import signal
from collections import deque
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from src.shared.errors import ToolExitError, ToolSignalTermination, ToolTimeout


logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 300.0

# Number of stderr lines kept on the result for diagnostics
STDERR_TAIL_LINES = 200

# asyncio stream buffer limit; yt-dlp can print very long lines in --verbose mode
STREAM_LIMIT = 1024 * 1024

# Appended to a stderr line cut at STREAM_LIMIT
TRUNCATED_MARK = b" [truncated]"

ERROR_LINE_PATTERN = re.compile(r"^ERROR:\s*(.+)$")

LineCallback = Callable[[str], None]


@dataclass(frozen=True)
class ToolResult:
    """Structured outcome of one tool invocation."""
    argv: tuple[str, ...]
    exit_code: Optional[int]
    signal_name: Optional[str] = None
    timed_out: bool = False
    stdout: str = ""
    stderr_tail: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.timed_out and self.signal_name is None and self.exit_code == 0

    @property
    def error_detail(self) -> Optional[str]:
        """Last `ERROR: ...` line the tool printed, if any."""
        for line in reversed(self.stderr_tail):
            match = ERROR_LINE_PATTERN.match(line.strip())
            if match:
                return match.group(1).strip()
        return None


def _signal_name(returncode: Optional[int]) -> Optional[str]:
    if returncode is None or returncode >= 0:
        return None
    try:
        return signal.Signals(-returncode).name
    except ValueError:
        return f"SIG{-returncode}"


async def _read_line(stream: asyncio.StreamReader) -> bytes:
    """
    Next line from `stream`, including its newline; b"" at EOF.

    A line longer than STREAM_LIMIT is cut to its first STREAM_LIMIT bytes
    and marked as truncated; the rest of it is discarded.
    """
    try:
        return await stream.readuntil(b"\n")
    except asyncio.IncompleteReadError as exc:
        return exc.partial
    except asyncio.LimitOverrunError:
        head = await stream.read(STREAM_LIMIT)

    while True:
        try:
            await stream.readuntil(b"\n")
            break
        except asyncio.IncompleteReadError:
            break
        except asyncio.LimitOverrunError:
            await stream.read(STREAM_LIMIT)
    return head + TRUNCATED_MARK + b"\n"


class ToolRunner:
    """
    Runs an executable with a timeout and incremental stderr streaming.

    Usage:
        runner = ToolRunner("yt-dlp", timeout_s=300)
        result = await runner.run(["--dump-json", url], on_stderr_line=log.append)
        raise_for_result(result, timeout_s=runner.timeout_s)
    """

    def __init__(self, executable: str = "yt-dlp", *, timeout_s: float = DEFAULT_TIMEOUT_S) -> None:
        self._executable = executable
        self._timeout_s = float(timeout_s)

    @property
    def executable(self) -> str:
        return self._executable

    @property
    def timeout_s(self) -> float:
        return self._timeout_s

    async def run(
        self,
        args: Sequence[str],
        *,
        on_stderr_line: Optional[LineCallback] = None,
    ) -> ToolResult:
        argv = (self._executable, *args)
        logger.debug("Running %s", " ".join(argv))

        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            limit=STREAM_LIMIT,
        )

        tail: deque[str] = deque(maxlen=STDERR_TAIL_LINES)

        async def pump_stderr() -> None:
            assert proc.stderr is not None
            while True:
                raw = await _read_line(proc.stderr)
                if not raw:
                    return
                line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
                tail.append(line)
                if on_stderr_line is not None:
                    on_stderr_line(line)

        async def read_stdout() -> bytes:
            assert proc.stdout is not None
            return await proc.stdout.read()

        stdout_task = asyncio.ensure_future(read_stdout())
        stderr_task = asyncio.ensure_future(pump_stderr())
        timed_out = False
        try:
            await asyncio.wait_for(
                asyncio.gather(stdout_task, stderr_task, proc.wait()),
                timeout=self._timeout_s,
            )
        except asyncio.TimeoutError:
            timed_out = True
            logger.warning("%s timed out after %gs, killing pid %s", self._executable, self._timeout_s, proc.pid)
            try:
                proc.kill()
            except ProcessLookupError:
                pass
            await proc.wait()
        except BaseException:
            # Cancelled by the caller: never leave the child running.
            if proc.returncode is None:
                try:
                    proc.kill()
                except ProcessLookupError:
                    pass
            raise
        finally:
            for task in (stdout_task, stderr_task):
                if not task.done():
                    task.cancel()

        stdout = b""
        if stdout_task.done() and not stdout_task.cancelled():
            stdout = stdout_task.result()

        return ToolResult(
            argv=argv,
            exit_code=proc.returncode,
            signal_name=None if timed_out else _signal_name(proc.returncode),
            timed_out=timed_out,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr_tail=tuple(tail),
        )


def raise_for_result(result: ToolResult, *, timeout_s: float, tool: str = "yt-dlp") -> None:
    """
    Classify a failed ToolResult and raise the matching error.

    Order: timeout, then termination by signal, then non-zero exit code.
    A SIGTERM/SIGKILL that we did not send ourselves is reported as a signal,
    not as a timeout.

    Raises:
        ToolTimeout, ToolSignalTermination, ToolExitError
    """
    if result.ok:
        return
    if result.timed_out:
        raise ToolTimeout(timeout_s, tool=tool, result=result)
    if result.signal_name is not None:
        raise ToolSignalTermination(result.signal_name, tool=tool, result=result)
    raise ToolExitError(
        result.exit_code if result.exit_code is not None else -1,
        tool=tool,
        detail=result.error_detail,
        result=result,
    )

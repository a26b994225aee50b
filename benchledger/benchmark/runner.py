"""
Harness Runner - Invoke ``go test -bench`` for one scope and stream its output.

Runs the harness as an asyncio subprocess from the repository root with
stderr folded into stdout, yielding decoded lines as they arrive so the
parser can report results before the run ends.

Two runs of the same scope never overlap: concurrent timing measurements
of one package invalidate each other.
"""

import asyncio
import logging
import os
import signal
import time
from collections import deque
from contextlib import aclosing
from pathlib import Path
from typing import AsyncIterator, Callable, Dict, List

from benchledger.core.config import Settings
from benchledger.core.exceptions import BenchmarkCompileFailure

logger = logging.getLogger(__name__)

# (scope, bench_filter) -> async line iterator
LineSource = Callable[[str, str], AsyncIterator[str]]

DIAGNOSTIC_TAIL_LINES = 40
STREAM_LIMIT = 1024 * 1024  # longest accepted output line


class HarnessRunner:
    """
    Runs the benchmark harness for a scope.

    Features:
    - Streams output line by line
    - Per-scope overrides (benchtime, count, timeout, benchmem)
    - Timeout kills the process
    - Per-scope serialization
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self._scope_locks: Dict[str, asyncio.Lock] = {}

    def build_command(self, scope: str, bench_filter: str = ".") -> List[str]:
        """Command line for benchmarking one scope."""
        options = self.settings.harness_options(scope)
        package = "." if scope in ("", ".") else f"./{scope}"

        cmd = [self.settings.go_binary, "test", "-run=^$", f"-bench={bench_filter}"]
        if options.benchmem:
            cmd.append("-benchmem")
        if options.bench_time:
            cmd.append(f"-benchtime={options.bench_time}")
        if options.count != 1:
            cmd.append(f"-count={options.count}")
        cmd.append(package)
        return cmd

    def _lock_for(self, scope: str) -> asyncio.Lock:
        lock = self._scope_locks.get(scope)
        if lock is None:
            lock = asyncio.Lock()
            self._scope_locks[scope] = lock
        return lock

    async def stream(self, scope: str, bench_filter: str = ".") -> AsyncIterator[str]:
        """
        Run the harness and yield output lines as they are produced.

        Raises:
            BenchmarkCompileFailure: binary missing, timeout, or non-zero exit
        """
        async with self._lock_for(scope):
            async with aclosing(self._stream_locked(scope, bench_filter)) as lines:
                async for line in lines:
                    yield line

    async def _stream_locked(self, scope: str, bench_filter: str) -> AsyncIterator[str]:
        options = self.settings.harness_options(scope)
        cmd = self.build_command(scope, bench_filter)
        logger.info(f"[HarnessRunner] Running {' '.join(cmd)}")

        try:
            # Own session so the compiled test binary is killed with `go test`
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                cwd=str(self.settings.root),
                limit=STREAM_LIMIT,
                start_new_session=True,
            )
        except FileNotFoundError:
            raise BenchmarkCompileFailure(
                scope, f"harness binary not found: {self.settings.go_binary}"
            ) from None
        except OSError as e:
            raise BenchmarkCompileFailure(
                scope, f"cannot start harness {self.settings.go_binary}: {e}"
            ) from e

        start_time = time.monotonic()
        deadline = start_time + options.timeout_sec
        tail: deque = deque(maxlen=DIAGNOSTIC_TAIL_LINES)
        completed = False

        try:
            while True:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise asyncio.TimeoutError()
                try:
                    raw = await asyncio.wait_for(process.stdout.readline(), timeout=remaining)
                except ValueError:
                    raise BenchmarkCompileFailure(
                        scope,
                        "\n".join([f"harness output line longer than {STREAM_LIMIT} bytes", *tail]),
                    ) from None
                if not raw:
                    break
                line = raw.decode("utf-8", errors="replace")
                tail.append(line.rstrip("\n"))
                yield line

            returncode = await asyncio.wait_for(process.wait(), timeout=max(deadline - time.monotonic(), 0.1))
            completed = True
        except asyncio.TimeoutError:
            raise BenchmarkCompileFailure(
                scope, f"harness timed out after {options.timeout_sec}s"
            ) from None
        finally:
            if not completed:
                self._kill(process)
                await process.wait()

        elapsed = time.monotonic() - start_time
        logger.info(f"[HarnessRunner] {scope} finished in {elapsed:.1f}s (exit {returncode})")

        if returncode != 0:
            diagnostic = "\n".join([f"harness exited with code {returncode}", *tail])
            raise BenchmarkCompileFailure(scope, diagnostic)

    def _kill(self, process: asyncio.subprocess.Process) -> None:
        """Kill the harness and everything it started."""
        try:
            if hasattr(os, "killpg"):
                os.killpg(process.pid, signal.SIGKILL)
            else:
                process.kill()
        except ProcessLookupError:
            logger.debug(f"[HarnessRunner] Process {process.pid} already gone")


def captured_output(path: Path) -> LineSource:
    """
    Line source replaying a captured harness output file.

    Used to ingest output produced elsewhere (e.g. a CI artifact) instead
    of invoking the harness.
    """

    async def source(scope: str, bench_filter: str) -> AsyncIterator[str]:
        try:
            f = open(path, encoding="utf-8", errors="replace")
        except OSError as e:
            raise BenchmarkCompileFailure(scope, f"cannot read captured output {path}: {e}") from e
        with f:
            for line in f:
                yield line

    return source

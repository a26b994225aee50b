"""
Result Parser - Turn raw ``go test -bench`` output into measurements.

Line-oriented and incremental: ``feed()`` classifies one line at a time so
results can be reported while the harness is still running. Typical input:

    goos: linux
    pkg: example.com/keys
    BenchmarkNewKey-20    1000000    40.97 ns/op    48 B/op    2 allocs/op
    PASS
    ok      example.com/keys    2.345s
"""

import logging
import math
import re
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional

from benchledger.core.exceptions import BenchmarkCompileFailure, ParseFailure

logger = logging.getLogger(__name__)

NS_PER_OP = "ns/op"
BYTES_PER_OP = "B/op"
ALLOCS_PER_OP = "allocs/op"

# Header and status lines that carry no results
NOISE_PREFIXES = (
    "goos:",
    "goarch:",
    "pkg:",
    "cpu:",
    "PASS",
    "ok ",
    "ok\t",
    "coverage:",
    "=== ",
    "--- BENCH:",
    "--- PASS:",
    "--- SKIP:",
    "?",
)

# Build header printed above toolchain output; fatal only if a failure follows
BUILD_HEADER = "# "

FAILURE_PREFIXES = (
    "FAIL",
    "--- FAIL:",
    "panic:",
    "fatal error:",
)

FAILURE_MARKERS = (
    "[build failed]",
    "[setup failed]",
    "no Go files in",
    "no required module provides package",
    "cannot find package",
)

COMPILER_DIAGNOSTIC = re.compile(r"^\S+\.go:\d+(:\d+)?: ")


@dataclass(frozen=True)
class ParsedResult:
    """One decoded result line."""
    name: str
    iterations: int
    ns_per_op: float
    bytes_per_op: Optional[int] = None
    allocs_per_op: Optional[int] = None

    @property
    def has_memory_stats(self) -> bool:
        return self.bytes_per_op is not None


class ResultParser:
    """
    Streaming parser for benchmark harness output.

    Lines are either results, ignorable noise, or failure diagnostics.
    Once a failure indicator is seen every following line is kept as
    diagnostic text and ``finish()`` raises BenchmarkCompileFailure.
    Results decoded before the failure are still returned.
    """

    def __init__(self, scope: str = "", benchmark_prefix: str = "Benchmark"):
        self.scope = scope
        self.benchmark_prefix = benchmark_prefix
        self.package: Optional[str] = None
        self.line_number = 0
        self.result_count = 0
        self._diagnostic: List[str] = []
        self._pending: List[str] = []

    @property
    def failed(self) -> bool:
        return bool(self._diagnostic)

    def feed(self, line: str) -> Optional[ParsedResult]:
        """
        Classify one line of harness output.

        Returns:
            ParsedResult for a result line, None for anything else

        Raises:
            ParseFailure: line is result-shaped but cannot be decoded
        """
        self.line_number += 1
        text = line.rstrip("\r\n")
        stripped = text.strip()

        if self._diagnostic:
            self._diagnostic.append(text)
            return None

        if not stripped:
            return None

        if text.startswith(BUILD_HEADER):
            self._pending.append(text)
            return None

        if self._is_failure(text):
            logger.debug(f"[ResultParser] Failure output for {self.scope or self.package}: {stripped}")
            self._diagnostic.extend(self._pending)
            self._pending.clear()
            self._diagnostic.append(text)
            return None

        if text.startswith("pkg:"):
            self.package = text[len("pkg:"):].strip()
            return None

        # Indented lines are benchmark log output (b.Log)
        if text[0].isspace() or text.startswith(NOISE_PREFIXES):
            return None

        tokens = stripped.split()
        if not tokens[0].startswith(self.benchmark_prefix):
            if self._pending:
                self._pending.append(text)
            return None

        self._flush_pending()

        # A bare name is a progress marker printed before sub-benchmark output
        if len(tokens) == 1:
            return None

        result = self._decode(tokens, text)
        self.result_count += 1
        return result

    def finish(self) -> None:
        """Signal end of input; raise if the harness reported a failure."""
        if not self._diagnostic:
            self._flush_pending()
        if self._diagnostic:
            raise BenchmarkCompileFailure(
                self.scope or self.package or "",
                "\n".join(self._diagnostic),
            )

    def parse(self, lines: Iterable[str]) -> Iterator[ParsedResult]:
        """Lazily parse an iterable of lines, yielding results as they appear."""
        for line in lines:
            result = self.feed(line)
            if result is not None:
                yield result
        self.finish()

    def _flush_pending(self) -> None:
        if self._pending:
            logger.warning(
                f"[ResultParser] Toolchain output for {self.scope or self.package}: "
                + " | ".join(line.strip() for line in self._pending)
            )
            self._pending.clear()

    def _is_failure(self, text: str) -> bool:
        if text.startswith(FAILURE_PREFIXES):
            return True
        if COMPILER_DIAGNOSTIC.match(text):
            return True
        return any(marker in text for marker in FAILURE_MARKERS)

    def _fail(self, text: str, reason: str) -> ParseFailure:
        return ParseFailure(text, self.line_number, reason, scope=self.scope)

    def _decode(self, tokens: List[str], text: str) -> ParsedResult:
        name = tokens[0]

        try:
            iterations = int(tokens[1])
        except ValueError:
            raise self._fail(text, f"invalid iteration count {tokens[1]!r}") from None

        columns = tokens[2:]
        if len(columns) % 2:
            raise self._fail(text, "metric columns are not value/unit pairs")
        pairs = [(columns[i], columns[i + 1]) for i in range(0, len(columns), 2)]

        if not pairs or pairs[0][1] != NS_PER_OP:
            raise self._fail(text, f"missing {NS_PER_OP} column")
        try:
            ns_per_op = float(pairs[0][0])
        except ValueError:
            raise self._fail(text, f"invalid {NS_PER_OP} value {pairs[0][0]!r}") from None
        if not math.isfinite(ns_per_op) or ns_per_op < 0:
            raise self._fail(text, f"invalid {NS_PER_OP} value {pairs[0][0]!r}")

        # Later columns are matched by unit; unknown units are ignored
        extra = {}
        for value, unit in pairs[1:]:
            if unit in (BYTES_PER_OP, ALLOCS_PER_OP):
                extra[unit] = self._decode_count(value, unit, text)

        if len(extra) == 1:
            raise self._fail(text, f"{BYTES_PER_OP} and {ALLOCS_PER_OP} must appear together")

        return ParsedResult(
            name=name,
            iterations=iterations,
            ns_per_op=ns_per_op,
            bytes_per_op=extra.get(BYTES_PER_OP),
            allocs_per_op=extra.get(ALLOCS_PER_OP),
        )

    def _decode_count(self, value: str, unit: str, text: str) -> int:
        try:
            count = int(value)
        except ValueError:
            raise self._fail(text, f"invalid {unit} value {value!r}") from None
        if count < 0:
            raise self._fail(text, f"negative {unit} value {value!r}")
        return count


def parse_results(
    lines: Iterable[str],
    scope: str = "",
    benchmark_prefix: str = "Benchmark",
) -> List[ParsedResult]:
    """
    Convenience function to parse complete harness output.

    Args:
        lines: Output lines (a file object or ``text.splitlines()``)
        scope: Scope identifier used in error reports
        benchmark_prefix: Reserved benchmark function prefix

    Returns:
        Results in output order
    """
    parser = ResultParser(scope=scope, benchmark_prefix=benchmark_prefix)
    return list(parser.parse(lines))

"""Custom exceptions for benchledger."""

from pathlib import Path
from typing import Any, Optional, Sequence, Union


class BenchLedgerError(Exception):
    """Base exception for benchledger.

    Every subclass is scoped to a single benchmark scope: the pipeline
    records it on that scope's outcome and keeps processing the others.
    """

    kind = "BenchLedgerError"

    def __init__(self, message: str, context: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}


class TargetNotFound(BenchLedgerError):
    """No scope matches the target token."""

    kind = "TargetNotFound"

    def __init__(self, token: str, context: Optional[dict[str, Any]] = None):
        super().__init__(f"No benchmark scope matches target '{token}'", context)
        self.token = token


class AmbiguousTarget(BenchLedgerError):
    """A benchmark-name token matched benchmarks in more than one scope."""

    kind = "AmbiguousTarget"

    def __init__(
        self,
        token: str,
        candidates: Sequence[str],
        context: Optional[dict[str, Any]] = None,
    ):
        joined = ", ".join(candidates)
        message = f"Benchmark '{token}' exists in several scopes ({joined}); narrow it with a path hint"
        super().__init__(message, context)
        self.token = token
        self.candidates = list(candidates)


class BenchmarkCompileFailure(BenchLedgerError):
    """The harness could not build or run the scope."""

    kind = "BenchmarkCompileFailure"

    def __init__(
        self,
        scope: str,
        diagnostic: str,
        context: Optional[dict[str, Any]] = None,
    ):
        first_line = diagnostic.strip().splitlines()[0] if diagnostic.strip() else "no diagnostic output"
        super().__init__(f"Benchmarks failed for {scope or '<unknown scope>'}: {first_line}", context)
        self.scope = scope
        self.diagnostic = diagnostic


class ParseFailure(BenchLedgerError):
    """A result-shaped line could not be fully decoded."""

    kind = "ParseFailure"

    def __init__(
        self,
        line: str,
        line_number: int,
        reason: str,
        scope: str = "",
        context: Optional[dict[str, Any]] = None,
    ):
        where = f"{scope}:" if scope else "line "
        super().__init__(f"Cannot parse result at {where}{line_number}: {reason}: {line.strip()!r}", context)
        self.line = line
        self.line_number = line_number
        self.reason = reason
        self.scope = scope


class CorruptData(BenchLedgerError):
    """An existing persisted record failed structural validation."""

    kind = "CorruptData"

    def __init__(
        self,
        path: Union[str, Path],
        reason: str,
        context: Optional[dict[str, Any]] = None,
    ):
        super().__init__(f"Corrupt benchmark data in {path}: {reason}", context)
        self.path = Path(path)
        self.reason = reason


class WriteFailure(BenchLedgerError):
    """Staging or publishing a file could not complete."""

    kind = "WriteFailure"

    def __init__(
        self,
        path: Union[str, Path],
        reason: str,
        context: Optional[dict[str, Any]] = None,
    ):
        super().__init__(f"Failed to write {path}: {reason}", context)
        self.path = Path(path)
        self.reason = reason


class ConfigError(BenchLedgerError):
    """Configuration file could not be read or validated."""

    kind = "ConfigError"

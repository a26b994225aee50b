"""
Pipeline - Drive resolve -> harness -> parse -> merge -> save -> derive.

Each scope is an independent unit of work running under a bounded
semaphore. A unit writes only to its own ScopeOutcome and its own record
file; outcomes are combined only in the final PipelineResult. A failure
in one scope is recorded on its outcome and never stops the others.

Commands:
    run     harness + parse (nothing is written)
    sync    full pipeline, including save and report rendering
    render  load + derive + render (no harness)
"""

import asyncio
import logging
from contextlib import aclosing
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Awaitable, Callable, List, Optional

from benchledger.benchmark.history import HistoryStore, merge
from benchledger.benchmark.parser import ParsedResult, ResultParser
from benchledger.benchmark.renderer import write_report
from benchledger.benchmark.report import ReportView, derive
from benchledger.benchmark.runner import HarnessRunner, LineSource
from benchledger.benchmark.targets import TargetSpec
from benchledger.core.config import Settings
from benchledger.core.exceptions import BenchLedgerError, BenchmarkCompileFailure
from benchledger.core.models import PackageData

logger = logging.getLogger(__name__)

ResultCallback = Callable[[str, ParsedResult], None]


@dataclass
class ScopeOutcome:
    """Result of processing one scope."""
    scope: str
    results: List[ParsedResult] = field(default_factory=list)
    data: Optional[PackageData] = None
    view: Optional[ReportView] = None
    data_path: Optional[Path] = None
    report_path: Optional[Path] = None
    error: Optional[BenchLedgerError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class PipelineResult:
    """Outcomes of every scope in one invocation, in target order."""
    command: str
    outcomes: List[ScopeOutcome]

    @property
    def failures(self) -> List[ScopeOutcome]:
        return [o for o in self.outcomes if not o.ok]

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def exit_code(self) -> int:
        """Return exit code (0 = every scope succeeded, 1 = any failed)."""
        return 0 if self.ok else 1


class Pipeline:
    """
    Runs commands over resolved scopes with bounded parallelism.

    Args:
        settings: Settings for every component
        source: Line source (default: HarnessRunner.stream)
        on_result: Called with (scope, result) as each result is parsed
        write_reports: Whether sync/render write the Markdown report
    """

    def __init__(
        self,
        settings: Settings,
        source: Optional[LineSource] = None,
        on_result: Optional[ResultCallback] = None,
        write_reports: bool = True,
    ):
        self.settings = settings
        self.store = HistoryStore(settings)
        self.runner = HarnessRunner(settings)
        self.source = source or self.runner.stream
        self.on_result = on_result
        self.write_reports = write_reports

    async def run(self, spec: TargetSpec) -> PipelineResult:
        """Benchmark and parse every scope; nothing is persisted."""

        async def unit(outcome: ScopeOutcome) -> None:
            outcome.results = await self._collect(outcome.scope, spec.bench_filter)

        return await self._dispatch("run", spec, unit)

    async def sync(self, spec: TargetSpec, as_of: Optional[date] = None) -> PipelineResult:
        """Benchmark every scope and merge the results into its record."""
        as_of = as_of or date.today()

        async def unit(outcome: ScopeOutcome) -> None:
            scope = outcome.scope
            # Load first: a corrupt record skips the scope before benchmarking
            existing = self.store.load(scope)
            outcome.results = await self._collect(scope, spec.bench_filter)

            if outcome.results:
                outcome.data = merge(existing, as_of, outcome.results)
                outcome.data_path = self.store.save(outcome.data, scope)
            else:
                logger.warning(f"[Pipeline] No results for {scope}; record left unchanged")
                outcome.data = existing

            self._finish(outcome)

        return await self._dispatch("sync", spec, unit)

    async def render(self, spec: TargetSpec) -> PipelineResult:
        """Re-derive and render reports from stored records."""

        async def unit(outcome: ScopeOutcome) -> None:
            outcome.data = self.store.load(outcome.scope)
            self._finish(outcome)

        return await self._dispatch("render", spec, unit)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _finish(self, outcome: ScopeOutcome) -> None:
        outcome.view = derive(outcome.data)
        if self.write_reports:
            path = self.store.scope_dir(outcome.scope) / self.settings.report_filename
            outcome.report_path = write_report(outcome.view, path)

    async def _collect(self, scope: str, bench_filter: str) -> List[ParsedResult]:
        parser = ResultParser(scope=scope, benchmark_prefix=self.settings.benchmark_prefix)
        results: List[ParsedResult] = []

        try:
            async with aclosing(self.source(scope, bench_filter)) as lines:
                async for line in lines:
                    result = parser.feed(line)
                    if result is None:
                        continue
                    results.append(result)
                    if self.on_result:
                        self.on_result(scope, result)
        except BenchmarkCompileFailure:
            # Prefer the diagnostic the parser collected from the output
            parser.finish()
            raise

        parser.finish()
        logger.info(f"[Pipeline] Parsed {len(results)} result(s) for {scope}")
        return results

    async def _dispatch(
        self,
        command: str,
        spec: TargetSpec,
        unit: Callable[[ScopeOutcome], Awaitable[None]],
    ) -> PipelineResult:
        semaphore = asyncio.Semaphore(self.settings.max_workers)

        async def guarded(scope: str) -> ScopeOutcome:
            outcome = ScopeOutcome(scope=scope)
            async with semaphore:
                try:
                    await unit(outcome)
                except BenchLedgerError as e:
                    logger.error(f"[Pipeline] {command} failed for {scope}: {e}")
                    outcome.error = e
            return outcome

        outcomes = await asyncio.gather(*(guarded(scope) for scope in spec.scopes))
        result = PipelineResult(command=command, outcomes=list(outcomes))
        logger.info(
            f"[Pipeline] {command}: {len(result.outcomes) - len(result.failures)} ok, "
            f"{len(result.failures)} failed"
        )
        return result

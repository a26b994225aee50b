"""
Benchmark pipeline - Resolve targets, parse harness output, keep history.

Usage:
    from benchledger.benchmark import Pipeline, TargetResolver
    from benchledger.core.config import load_settings

    settings = load_settings(".")
    spec = TargetResolver(settings).resolve("./...")
    result = asyncio.run(Pipeline(settings).sync(spec))
"""

from benchledger.benchmark.targets import (
    TargetResolver,
    TargetSpec,
    matches_benchmark,
    resolve,
)

from benchledger.benchmark.parser import (
    ParsedResult,
    ResultParser,
    parse_results,
)

from benchledger.benchmark.history import (
    HistoryStore,
    merge,
)

from benchledger.benchmark.report import (
    DetailedEntry,
    Direction,
    MeasurementDelta,
    MetricDelta,
    ReportView,
    derive,
)

from benchledger.benchmark.renderer import (
    render_markdown,
    write_report,
)

from benchledger.benchmark.runner import (
    HarnessRunner,
    captured_output,
)

from benchledger.benchmark.pipeline import (
    Pipeline,
    PipelineResult,
    ScopeOutcome,
)

__all__ = [
    # Targets
    "TargetResolver",
    "TargetSpec",
    "matches_benchmark",
    "resolve",
    # Parser
    "ParsedResult",
    "ResultParser",
    "parse_results",
    # History
    "HistoryStore",
    "merge",
    # Report
    "DetailedEntry",
    "Direction",
    "MeasurementDelta",
    "MetricDelta",
    "ReportView",
    "derive",
    # Renderer
    "render_markdown",
    "write_report",
    # Runner
    "HarnessRunner",
    "captured_output",
    # Pipeline
    "Pipeline",
    "PipelineResult",
    "ScopeOutcome",
]

"""
Report Renderer - Markdown report for one scope.

Produces:
- Latest results table
- Per-benchmark history with period-over-period deltas
- Manual sections (optimization steps, future improvements, notes)
"""

import logging
from pathlib import Path
from typing import List, Optional

from benchledger.benchmark.report import Direction, MetricDelta, ReportView
from benchledger.core.fileio import atomic_write_text
from benchledger.core.models import Measurement

logger = logging.getLogger(__name__)

DIRECTION_MARKERS = {
    Direction.IMPROVEMENT: "▼",
    Direction.REGRESSION: "▲",
    Direction.UNCHANGED: "=",
}


def _format_optional(value: Optional[int]) -> str:
    return "-" if value is None else str(value)


def format_delta(delta: Optional[MetricDelta], precision: int = 2) -> str:
    """Format a metric delta as ``-79.83 (-66.1%) ▼``."""
    if delta is None:
        return "-"
    percent = "n/a" if delta.percent is None else f"{delta.percent:+.1f}%"
    return f"{delta.absolute:+.{precision}f} ({percent}) {DIRECTION_MARKERS[delta.direction]}"


def _measurement_cells(measurement: Measurement) -> List[str]:
    return [
        f"{measurement.ns_per_op:.2f}",
        _format_optional(measurement.bytes_per_op),
        _format_optional(measurement.allocs_per_op),
    ]


def render_markdown(view: ReportView) -> str:
    """Render a report view as Markdown."""
    lines = []

    lines.append(f"# Benchmarks: {view.package_path}")
    lines.append("")
    if view.last_updated:
        lines.append(f"**Last updated:** {view.last_updated.isoformat()}")
        lines.append("")

    # Latest results
    lines.append("## Latest Results")
    lines.append("")
    if view.latest:
        lines.append("| Benchmark | Date | ns/op | B/op | allocs/op |")
        lines.append("|-----------|------|-------|------|-----------|")
        for name, measurement in view.latest:
            cells = [name, measurement.date.isoformat(), *_measurement_cells(measurement)]
            lines.append("| " + " | ".join(cells) + " |")
    else:
        lines.append("*No benchmark results recorded yet.*")
    lines.append("")

    # Detailed history
    if view.detailed:
        lines.append("## History")
        lines.append("")
    for name, entries in view.detailed.items():
        if not entries:
            continue
        lines.append(f"### {name}")
        lines.append("")
        lines.append("| Date | ns/op | Δ ns/op | B/op | Δ B/op | allocs/op | Δ allocs/op |")
        lines.append("|------|-------|---------|------|--------|-----------|-------------|")
        for entry in entries:
            m = entry.measurement
            delta = entry.delta
            ns_cell, bytes_cell, allocs_cell = _measurement_cells(m)
            cells = [
                m.date.isoformat(),
                ns_cell,
                format_delta(delta.ns_per_op if delta else None),
                bytes_cell,
                format_delta(delta.bytes_per_op if delta else None, precision=0),
                allocs_cell,
                format_delta(delta.allocs_per_op if delta else None, precision=0),
            ]
            lines.append("| " + " | ".join(cells) + " |")
        lines.append("")

    # Manual sections
    sections = view.manual_sections
    if sections.optimization_steps:
        lines.append("## Optimization Steps")
        lines.append("")
        for i, step in enumerate(sections.optimization_steps, 1):
            lines.append(f"{i}. {step}")
        lines.append("")

    if sections.future_improvements:
        lines.append("## Future Improvements")
        lines.append("")
        for item in sections.future_improvements:
            lines.append(f"- {item}")
        lines.append("")

    if sections.notes:
        lines.append("## Notes")
        lines.append("")
        lines.append(sections.notes.rstrip("\n"))
        lines.append("")

    return "\n".join(lines)


def write_report(view: ReportView, path: Path) -> Path:
    """Render and atomically publish a report file."""
    atomic_write_text(path, render_markdown(view))
    logger.info(f"[ReportRenderer] Wrote {path}")
    return path

"""
Report Model - Derive a delta-annotated view of a package record.

Pure derivation, no I/O. For every benchmark the first sample carries no
delta; each later sample is compared with its predecessor per metric.
Lower is better for every metric.
"""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Dict, List, Optional, Tuple

from benchledger.core.models import ManualSections, Measurement, PackageData


class Direction(str, Enum):
    """Which way a metric moved between two samples."""

    IMPROVEMENT = "improvement"
    REGRESSION = "regression"
    UNCHANGED = "unchanged"


@dataclass(frozen=True)
class MetricDelta:
    """Change of one metric between consecutive samples."""
    previous: float
    current: float
    absolute: float
    percent: Optional[float]  # None = not applicable (zero baseline)
    direction: Direction

    @property
    def percent_applicable(self) -> bool:
        return self.percent is not None


@dataclass(frozen=True)
class MeasurementDelta:
    """Per-metric deltas; a metric is None when either sample lacks it."""
    ns_per_op: MetricDelta
    bytes_per_op: Optional[MetricDelta] = None
    allocs_per_op: Optional[MetricDelta] = None


@dataclass(frozen=True)
class DetailedEntry:
    """A history sample with its delta to the previous sample."""
    measurement: Measurement
    delta: Optional[MeasurementDelta] = None


@dataclass
class ReportView:
    """Everything a renderer needs for one scope."""
    package_path: str
    last_updated: Optional[date]
    latest: List[Tuple[str, Measurement]]
    detailed: Dict[str, List[DetailedEntry]]
    manual_sections: ManualSections = field(default_factory=ManualSections)


def metric_delta(previous: float, current: float) -> MetricDelta:
    """Compare two values of a lower-is-better metric."""
    absolute = current - previous
    percent = None if previous == 0 else absolute / previous * 100

    if current < previous:
        direction = Direction.IMPROVEMENT
    elif current > previous:
        direction = Direction.REGRESSION
    else:
        direction = Direction.UNCHANGED

    return MetricDelta(
        previous=previous,
        current=current,
        absolute=absolute,
        percent=percent,
        direction=direction,
    )


def _optional_delta(previous: Optional[int], current: Optional[int]) -> Optional[MetricDelta]:
    if previous is None or current is None:
        return None
    return metric_delta(previous, current)


def measurement_delta(previous: Measurement, current: Measurement) -> MeasurementDelta:
    return MeasurementDelta(
        ns_per_op=metric_delta(previous.ns_per_op, current.ns_per_op),
        bytes_per_op=_optional_delta(previous.bytes_per_op, current.bytes_per_op),
        allocs_per_op=_optional_delta(previous.allocs_per_op, current.allocs_per_op),
    )


def derive(data: PackageData) -> ReportView:
    """
    Build the report view for a package record.

    Args:
        data: Validated package record

    Returns:
        ReportView with latest samples and per-benchmark history, sorted by name
    """
    latest: List[Tuple[str, Measurement]] = []
    detailed: Dict[str, List[DetailedEntry]] = {}

    for name in sorted(data.benchmarks):
        history = data.benchmarks[name].history

        entries = []
        for index, measurement in enumerate(history):
            delta = measurement_delta(history[index - 1], measurement) if index > 0 else None
            entries.append(DetailedEntry(measurement=measurement, delta=delta))
        detailed[name] = entries

        if history:
            latest.append((name, history[-1]))

    return ReportView(
        package_path=data.package_path,
        last_updated=data.last_updated,
        latest=latest,
        detailed=detailed,
        manual_sections=data.manual_sections,
    )

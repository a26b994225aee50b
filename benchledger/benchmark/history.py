"""
History Store - Load, merge and save per-scope benchmark records.

Each scope owns exactly one YAML file (``benchmarks.yaml`` in the scope
directory by default). Nothing else writes it, so scopes can be merged and
saved concurrently without locking.

File layout:

    packagePath: pkg/keys
    lastUpdated: 2025-06-13
    benchmarks:
      BenchmarkNewKey-20:
        history:
        - date: 2025-06-07
          nsPerOp: 120.8
        - date: 2025-06-13
          nsPerOp: 40.97
          bytesPerOp: 48
          allocsPerOp: 2
    manualSections:
      optimizationSteps: []
      futureImprovements: []
      notes: ''
"""

import logging
from bisect import bisect_left
from datetime import date
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

import yaml
from pydantic import ValidationError

from benchledger.benchmark.parser import ParsedResult
from benchledger.core.config import Settings
from benchledger.core.exceptions import CorruptData
from benchledger.core.fileio import atomic_write_text
from benchledger.core.models import BenchmarkRecord, Measurement, PackageData

logger = logging.getLogger(__name__)


class _RecordDumper(yaml.SafeDumper):
    """Safe dumper that keeps multi-line notes readable."""

    def ignore_aliases(self, data):
        # Shared date objects must be written out in full, never as &id/*id
        return True


def _represent_str(dumper: yaml.SafeDumper, value: str) -> yaml.Node:
    if "\n" in value:
        return dumper.represent_scalar("tag:yaml.org,2002:str", value, style="|")
    return dumper.represent_str(value)


_RecordDumper.add_representer(str, _represent_str)


def _describe(error: ValidationError) -> str:
    """Compact one-line summary of a pydantic validation error."""
    parts = []
    for item in error.errors()[:5]:
        location = ".".join(str(p) for p in item["loc"]) or "<root>"
        parts.append(f"{location}: {item['msg']}")
    if error.error_count() > 5:
        parts.append(f"... {error.error_count() - 5} more")
    return "; ".join(parts)


def merge(
    existing: PackageData,
    as_of: date,
    results: Iterable[ParsedResult],
) -> PackageData:
    """
    Merge parsed results into a package record.

    Pure: ``existing`` is not modified. A result for a date already in a
    benchmark's history replaces that measurement (same-day re-runs are
    updates); otherwise the measurement is inserted at its date position.
    Manual sections pass through untouched.

    Args:
        existing: Current package record
        as_of: Calendar day the results were measured
        results: Parsed results, in output order

    Returns:
        New PackageData with ``last_updated == as_of``
    """
    data = existing.model_copy(deep=True)

    for result in results:
        record = data.benchmarks.get(result.name)
        if record is None:
            record = BenchmarkRecord(name=result.name)
            data.benchmarks[result.name] = record

        measurement = Measurement(
            date=as_of,
            ns_per_op=result.ns_per_op,
            bytes_per_op=result.bytes_per_op,
            allocs_per_op=result.allocs_per_op,
        )

        dates = [m.date for m in record.history]
        index = bisect_left(dates, as_of)
        if index < len(dates) and dates[index] == as_of:
            record.history[index] = measurement
        else:
            record.history.insert(index, measurement)

    data.last_updated = as_of
    return data


class HistoryStore:
    """
    Persistent per-scope benchmark records.

    Features:
    - Tolerant decode (unknown fields dropped, absent fields defaulted)
    - Strict types (mismatches raise CorruptData, never silently repaired)
    - Idempotent, order-preserving merge
    - Atomic save (stage then rename)
    """

    def __init__(self, settings: Settings):
        self.settings = settings

    def scope_dir(self, scope: str) -> Path:
        root = self.settings.root
        return root if scope in ("", ".") else root / scope

    def path_for(self, scope: str) -> Path:
        """Path of the record file for a scope."""
        return self.scope_dir(scope) / self.settings.data_filename

    def exists(self, scope: str) -> bool:
        return self.path_for(scope).is_file()

    # -------------------------------------------------------------------------
    # Codec
    # -------------------------------------------------------------------------

    def dumps(self, data: PackageData) -> str:
        """Serialize a record deterministically."""
        return yaml.dump(
            data.to_document(),
            Dumper=_RecordDumper,
            sort_keys=False,
            default_flow_style=False,
            allow_unicode=True,
            width=100,
        )

    def loads(self, text: str, scope: str, path: Optional[Path] = None) -> PackageData:
        """
        Decode a record.

        Raises:
            CorruptData: invalid YAML, non-mapping document, or schema violation
        """
        where = path or self.path_for(scope)

        try:
            raw = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise CorruptData(where, f"invalid YAML: {e}") from e
        except ValueError as e:
            # Unquoted impossible dates (2025-13-01) fail inside the YAML constructor
            raise CorruptData(where, f"invalid value: {e}") from e

        if raw is None:
            logger.warning(f"[HistoryStore] Empty record file {where}, starting fresh")
            return PackageData.empty(scope)

        if not isinstance(raw, dict):
            raise CorruptData(where, f"expected a mapping, got {type(raw).__name__}")

        try:
            data = PackageData.model_validate(raw)
        except ValidationError as e:
            raise CorruptData(where, _describe(e)) from e

        if not data.package_path:
            data = data.model_copy(update={"package_path": scope})
        return data

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def load(self, scope: str) -> PackageData:
        """
        Load the record for a scope.

        Returns:
            Stored PackageData, or an empty one if the scope has no file yet

        Raises:
            CorruptData: the file exists but cannot be trusted
        """
        path = self.path_for(scope)

        if not path.exists():
            logger.info(f"[HistoryStore] No record for {scope}, starting fresh")
            return PackageData.empty(scope)

        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise CorruptData(path, f"unreadable: {e}") from e

        data = self.loads(text, scope, path)
        logger.debug(f"[HistoryStore] Loaded {len(data.benchmarks)} benchmarks for {scope}")
        return data

    merge = staticmethod(merge)

    def save(self, data: PackageData, scope: str) -> Path:
        """
        Atomically publish a record.

        Raises:
            WriteFailure: staging or rename failed; the previous file is intact
        """
        path = atomic_write_text(self.path_for(scope), self.dumps(data))
        logger.info(f"[HistoryStore] Saved {len(data.benchmarks)} benchmarks to {path}")
        return path

    def benchmark_names(self, scope: str) -> List[str]:
        """Names of the benchmarks recorded for a scope (empty if none)."""
        return list(self.load(scope).benchmarks)

    def annotate(
        self,
        scope: str,
        steps: Sequence[str] = (),
        improvements: Sequence[str] = (),
        notes: Optional[str] = None,
    ) -> PackageData:
        """
        Edit the manual sections of a scope's record.

        Appends optimization steps and future improvements; replaces notes
        when given. Benchmarks and ``last_updated`` are left alone.
        """
        data = self.load(scope)
        sections = data.manual_sections.model_copy(
            update={
                "optimization_steps": [*data.manual_sections.optimization_steps, *steps],
                "future_improvements": [*data.manual_sections.future_improvements, *improvements],
                "notes": data.manual_sections.notes if notes is None else notes,
            }
        )
        updated = data.model_copy(update={"manual_sections": sections})
        self.save(updated, scope)
        return updated

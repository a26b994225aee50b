"""
Target Resolver - Turn a target expression into benchmark scopes.

Grammar, in priority order:
    all                 every scope with benchmarks in the repository
    <path>/...          every scope with benchmarks under <path>
    <BenchmarkName>     the scope(s) that define or record that benchmark
    <path>              that single scope
"""

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple, Union

from benchledger.benchmark.history import HistoryStore
from benchledger.core.config import Settings
from benchledger.core.exceptions import AmbiguousTarget, CorruptData, TargetNotFound

logger = logging.getLogger(__name__)

PARALLELISM_SUFFIX = re.compile(r"-\d+$")
MATCH_ALL_FILTER = "."


@dataclass(frozen=True)
class TargetSpec:
    """Resolved, deduplicated scopes in discovery order."""
    token: str
    scopes: Tuple[str, ...]
    bench_filter: str = MATCH_ALL_FILTER

    def __iter__(self) -> Iterator[str]:
        return iter(self.scopes)

    def __len__(self) -> int:
        return len(self.scopes)


def strip_parallelism(name: str) -> str:
    """``BenchmarkNewKey-20`` -> ``BenchmarkNewKey``."""
    return PARALLELISM_SUFFIX.sub("", name)


def matches_benchmark(token: str, name: str) -> bool:
    """
    Whether a benchmark name answers to a benchmark-name token.

    Matches the exact name, the name with a ``-N`` parallelism suffix, and
    variants continuing the name with ``_`` or ``/`` (sub-benchmarks). A
    token carrying its own ``-N`` suffix matches the same benchmark.
    """
    if name == token:
        return True
    base = strip_parallelism(name)
    stem = strip_parallelism(token)
    if base == stem:
        return True
    return base.startswith(stem + "_") or base.startswith(stem + "/")


class TargetResolver:
    """
    Resolves target tokens against a repository tree.

    A scope qualifies when it directly contains a test file declaring at
    least one function with the benchmark prefix.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.root = settings.root
        self.store = HistoryStore(settings)
        self._declaration = re.compile(
            r"^func\s+(" + re.escape(settings.benchmark_prefix) + r"\w*)\s*\(",
            re.MULTILINE,
        )

    def resolve(
        self,
        token: str,
        recursive: bool = False,
        within: Optional[str] = None,
    ) -> TargetSpec:
        """
        Resolve a target token.

        Args:
            token: Target expression
            recursive: Scan below a plain path instead of the path alone
            within: Path hint restricting a benchmark-name search to a subtree

        Returns:
            TargetSpec with scopes in discovery order

        Raises:
            TargetNotFound: nothing matches
            AmbiguousTarget: a benchmark name matches in several scopes
        """
        token = token.strip()
        suffix = self.settings.recursive_suffix

        if token == self.settings.all_token:
            scopes = list(self._scan(self.root))
        elif token.endswith(suffix) or token == suffix.lstrip("/"):
            base = token[: -len(suffix)] if token.endswith(suffix) else ""
            scopes = list(self._scan(self._path(base or ".", token)))
        elif token.startswith(self.settings.benchmark_prefix):
            return self._resolve_benchmark(token, within)
        else:
            path = self._path(token, token)
            if recursive:
                scopes = list(self._scan(path))
            elif self._qualifies(path):
                scopes = [path]
            else:
                scopes = []

        if not scopes:
            raise TargetNotFound(token)

        resolved = TargetSpec(token=token, scopes=self._dedupe(scopes))
        logger.info(f"[TargetResolver] '{token}' -> {len(resolved)} scope(s)")
        return resolved

    # -------------------------------------------------------------------------
    # Rules
    # -------------------------------------------------------------------------

    def _resolve_benchmark(self, token: str, within: Optional[str]) -> TargetSpec:
        search_root = self._path(within, token) if within else self.root

        candidates = []
        for directory in self._scan(search_root):
            names = self._declared_benchmarks(directory) + self._recorded_benchmarks(directory)
            if any(matches_benchmark(token, name) for name in names):
                candidates.append(directory)

        scopes = self._dedupe(candidates)
        if not scopes:
            raise TargetNotFound(token)
        if len(scopes) > 1:
            raise AmbiguousTarget(token, scopes)

        logger.info(f"[TargetResolver] Benchmark '{token}' found in {scopes[0]}")
        return TargetSpec(token=token, scopes=scopes, bench_filter=f"^{strip_parallelism(token)}")

    # -------------------------------------------------------------------------
    # Tree scanning
    # -------------------------------------------------------------------------

    def _path(self, relative: str, token: str) -> Path:
        """Resolve a path token inside the repository."""
        candidate = Path(relative)
        path = candidate if candidate.is_absolute() else self.root / candidate
        path = path.resolve()
        if path != self.root and self.root not in path.parents:
            logger.warning(f"[TargetResolver] {relative} is outside {self.root}")
            raise TargetNotFound(token)
        if not path.is_dir():
            raise TargetNotFound(token)
        return path

    def _skipped(self, name: str) -> bool:
        return name.startswith((".", "_")) or name in self.settings.skip_dirs

    def _scan(self, top: Path) -> Iterator[Path]:
        """Depth-first walk yielding qualifying directories, siblings sorted."""
        for dirpath, dirnames, _ in os.walk(top):
            dirnames[:] = sorted(d for d in dirnames if not self._skipped(d))
            directory = Path(dirpath)
            if self._qualifies(directory):
                yield directory

    def _test_files(self, directory: Path) -> List[Path]:
        try:
            entries = sorted(directory.iterdir())
        except OSError:
            return []
        return [p for p in entries if p.is_file() and p.name.endswith(self.settings.test_file_suffix)]

    def _declared_benchmarks(self, directory: Path) -> List[str]:
        names = []
        for test_file in self._test_files(directory):
            try:
                source = test_file.read_text(encoding="utf-8", errors="replace")
            except OSError as e:
                logger.warning(f"[TargetResolver] Cannot read {test_file}: {e}")
                continue
            names.extend(self._declaration.findall(source))
        return names

    def _recorded_benchmarks(self, directory: Path) -> List[str]:
        scope = self.scope_id(directory)
        if not self.store.exists(scope):
            return []
        try:
            return self.store.benchmark_names(scope)
        except CorruptData as e:
            logger.warning(f"[TargetResolver] Ignoring recorded names for {scope}: {e}")
            return []

    def _qualifies(self, directory: Path) -> bool:
        return bool(self._declared_benchmarks(directory))

    def scope_id(self, directory: Path) -> str:
        """Scope identifier: POSIX path relative to the repo root, '.' for the root."""
        relative = directory.resolve().relative_to(self.root)
        return relative.as_posix() or "."

    def _dedupe(self, directories: List[Path]) -> Tuple[str, ...]:
        seen: Dict[Path, str] = {}
        for directory in directories:
            canonical = directory.resolve()
            if canonical not in seen:
                seen[canonical] = self.scope_id(canonical)
        return tuple(seen.values())


def resolve(
    token: str,
    recursive: bool = False,
    repo_root: Union[str, Path, None] = None,
    settings: Optional[Settings] = None,
    within: Optional[str] = None,
) -> TargetSpec:
    """
    Convenience function to resolve a target.

    Args:
        token: Target expression
        recursive: Scan below a plain path
        repo_root: Repository root (overrides settings.repo_root)
        settings: Settings to use (default: Settings())
        within: Path hint for benchmark-name tokens

    Returns:
        TargetSpec
    """
    settings = settings or Settings()
    if repo_root is not None:
        settings = settings.model_copy(update={"repo_root": Path(repo_root)})
    return TargetResolver(settings).resolve(token, recursive=recursive, within=within)

"""
Tests for the pipeline: per-scope isolation, persistence and parallelism.

The harness is replaced by canned output through the ``source`` hook.
"""

import asyncio
import sys
from datetime import date

import pytest

from benchledger.benchmark.history import HistoryStore
from benchledger.benchmark.pipeline import Pipeline
from benchledger.benchmark.runner import captured_output
from benchledger.benchmark.targets import TargetSpec
from benchledger.core.config import Settings
from benchledger.core.exceptions import BenchmarkCompileFailure, CorruptData, ParseFailure

from conftest import BUILD_FAILURE_OUTPUT, KEYS_OUTPUT, STORE_OUTPUT, fake_source, write

DAY = date(2025, 6, 13)


def spec(*scopes, bench_filter="."):
    return TargetSpec(token="test", scopes=tuple(scopes), bench_filter=bench_filter)


class TestRun:
    @pytest.mark.asyncio
    async def test_collects_results_without_writing(self, settings, go_repo):
        seen = []
        pipeline = Pipeline(
            settings,
            source=fake_source({"pkg/keys": KEYS_OUTPUT}),
            on_result=lambda scope, result: seen.append((scope, result.name)),
        )

        result = await pipeline.run(spec("pkg/keys"))

        assert result.ok
        assert [r.name for r in result.outcomes[0].results] == ["BenchmarkNewKey-20", "BenchmarkNewKey_Serial-20"]
        assert seen == [("pkg/keys", "BenchmarkNewKey-20"), ("pkg/keys", "BenchmarkNewKey_Serial-20")]
        assert not (go_repo / "pkg" / "keys" / "benchmarks.yaml").exists()
        assert not (go_repo / "pkg" / "keys" / "BENCHMARKS.md").exists()

    @pytest.mark.asyncio
    async def test_passes_bench_filter_to_source(self, settings):
        calls = []
        pipeline = Pipeline(settings, source=fake_source({"pkg/keys": KEYS_OUTPUT}, calls))

        await pipeline.run(spec("pkg/keys", bench_filter="^BenchmarkNewKey"))

        assert calls == [("pkg/keys", "^BenchmarkNewKey")]


class TestSync:
    @pytest.mark.asyncio
    async def test_merges_saves_and_renders(self, settings, go_repo):
        pipeline = Pipeline(settings, source=fake_source({"pkg/keys": KEYS_OUTPUT}))

        result = await pipeline.sync(spec("pkg/keys"), as_of=DAY)

        outcome = result.outcomes[0]
        assert outcome.ok
        assert outcome.data_path == go_repo.resolve() / "pkg" / "keys" / "benchmarks.yaml"
        assert outcome.report_path == go_repo.resolve() / "pkg" / "keys" / "BENCHMARKS.md"
        stored = HistoryStore(settings).load("pkg/keys")
        assert stored.last_updated == DAY
        assert stored.benchmarks["BenchmarkNewKey-20"].history[0].ns_per_op == 40.97
        assert "# Benchmarks: pkg/keys" in outcome.report_path.read_text(encoding="utf-8")

    @pytest.mark.asyncio
    async def test_failed_scope_does_not_stop_others(self, settings, go_repo):
        outputs = {"pkg/keys": KEYS_OUTPUT, "pkg/store": BUILD_FAILURE_OUTPUT}
        pipeline = Pipeline(settings, source=fake_source(outputs))

        result = await pipeline.sync(spec("pkg/keys", "pkg/store"), as_of=DAY)

        keys, store = result.outcomes
        assert keys.ok
        assert isinstance(store.error, BenchmarkCompileFailure)
        assert "undefined: Put" in store.error.diagnostic
        assert result.exit_code == 1
        assert [o.scope for o in result.failures] == ["pkg/store"]
        assert (go_repo / "pkg" / "keys" / "benchmarks.yaml").exists()
        assert not (go_repo / "pkg" / "store" / "benchmarks.yaml").exists()

    @pytest.mark.asyncio
    async def test_parse_failure_leaves_record_untouched(self, settings, go_repo):
        path = write(go_repo / "pkg" / "store" / "benchmarks.yaml", "benchmarks: {}\n")
        outputs = {"pkg/store": "BenchmarkPut-20  100  oops ns/op\n"}
        pipeline = Pipeline(settings, source=fake_source(outputs))

        result = await pipeline.sync(spec("pkg/store"), as_of=DAY)

        assert isinstance(result.outcomes[0].error, ParseFailure)
        assert path.read_text(encoding="utf-8") == "benchmarks: {}\n"

    @pytest.mark.asyncio
    async def test_corrupt_record_skips_scope(self, settings, go_repo):
        corrupt = "benchmarks:\n  BenchmarkPut-20:\n    history:\n    - date: 2025-06-01\n      nsPerOp: fast\n"
        path = write(go_repo / "pkg" / "store" / "benchmarks.yaml", corrupt)
        calls = []
        outputs = {"pkg/keys": KEYS_OUTPUT, "pkg/store": STORE_OUTPUT}
        pipeline = Pipeline(settings, source=fake_source(outputs, calls))

        result = await pipeline.sync(spec("pkg/keys", "pkg/store"), as_of=DAY)

        keys, store = result.outcomes
        assert keys.ok
        assert isinstance(store.error, CorruptData)
        assert path.read_text(encoding="utf-8") == corrupt
        assert [scope for scope, _ in calls] == ["pkg/keys"]

    @pytest.mark.asyncio
    async def test_no_results_keeps_record(self, settings, go_repo):
        pipeline = Pipeline(settings, source=fake_source({"pkg/keys": "PASS\nok  \texample.com/demo/pkg/keys\t0.1s\n"}))

        result = await pipeline.sync(spec("pkg/keys"), as_of=DAY)

        outcome = result.outcomes[0]
        assert outcome.ok
        assert outcome.data_path is None
        assert not (go_repo / "pkg" / "keys" / "benchmarks.yaml").exists()

    @pytest.mark.asyncio
    async def test_same_day_resync_is_byte_identical(self, settings):
        pipeline = Pipeline(settings, source=fake_source({"pkg/keys": KEYS_OUTPUT}))

        first = await pipeline.sync(spec("pkg/keys"), as_of=DAY)
        data_bytes = first.outcomes[0].data_path.read_bytes()
        report_bytes = first.outcomes[0].report_path.read_bytes()
        second = await pipeline.sync(spec("pkg/keys"), as_of=DAY)

        assert second.outcomes[0].data_path.read_bytes() == data_bytes
        assert second.outcomes[0].report_path.read_bytes() == report_bytes

    @pytest.mark.asyncio
    async def test_history_accumulates(self, settings):
        improved = KEYS_OUTPUT.replace("40.97", "30.50")
        await Pipeline(settings, source=fake_source({"pkg/keys": KEYS_OUTPUT})).sync(spec("pkg/keys"), as_of=DAY)

        result = await Pipeline(settings, source=fake_source({"pkg/keys": improved})).sync(
            spec("pkg/keys"), as_of=date(2025, 6, 20)
        )

        entries = result.outcomes[0].view.detailed["BenchmarkNewKey-20"]
        assert [e.measurement.date for e in entries] == [DAY, date(2025, 6, 20)]
        assert entries[1].delta.ns_per_op.absolute == pytest.approx(-10.47)

    @pytest.mark.asyncio
    async def test_manual_sections_survive_sync(self, settings):
        store = HistoryStore(settings)
        store.annotate("pkg/keys", steps=["Pooled key buffers"], notes="hand written")
        pipeline = Pipeline(settings, source=fake_source({"pkg/keys": KEYS_OUTPUT}))

        await pipeline.sync(spec("pkg/keys"), as_of=DAY)

        sections = store.load("pkg/keys").manual_sections
        assert sections.optimization_steps == ["Pooled key buffers"]
        assert sections.notes == "hand written"

    @pytest.mark.asyncio
    async def test_no_render(self, settings, go_repo):
        pipeline = Pipeline(settings, source=fake_source({"pkg/keys": KEYS_OUTPUT}), write_reports=False)

        result = await pipeline.sync(spec("pkg/keys"), as_of=DAY)

        assert result.outcomes[0].report_path is None
        assert not (go_repo / "pkg" / "keys" / "BENCHMARKS.md").exists()


class TestIsolation:
    """Harness start-up and I/O errors stay on their own scope."""

    @pytest.mark.asyncio
    async def test_unreadable_capture_fails_one_scope(self, settings, tmp_path):
        replay = fake_source({"pkg/keys": KEYS_OUTPUT, "pkg/store/internal/cache": STORE_OUTPUT})
        missing = captured_output(tmp_path / "missing.txt")

        def source(scope, bench_filter):
            if scope == "pkg/store":
                return missing(scope, bench_filter)
            return replay(scope, bench_filter)

        result = await Pipeline(settings, source=source).run(
            spec("pkg/keys", "pkg/store", "pkg/store/internal/cache")
        )

        keys, store, cache = result.outcomes
        assert keys.ok and cache.ok
        assert len(keys.results) == 2
        assert isinstance(store.error, BenchmarkCompileFailure)

    @pytest.mark.skipif(sys.platform == "win32", reason="relies on POSIX exec permissions")
    @pytest.mark.asyncio
    async def test_non_executable_harness_is_reported_per_scope(self, go_repo, tmp_path):
        go = write(tmp_path / "plain-go", "#!/bin/sh\necho never\n")
        go.chmod(0o644)
        settings = Settings(repo_root=go_repo, go_binary=str(go))

        result = await Pipeline(settings).run(spec("pkg/keys", "pkg/store", "pkg/store/internal/cache"))

        assert len(result.outcomes) == 3
        assert all(isinstance(o.error, BenchmarkCompileFailure) for o in result.outcomes)
        assert result.exit_code == 1


class TestRender:
    @pytest.mark.asyncio
    async def test_renders_from_stored_record(self, settings, go_repo):
        await Pipeline(settings, source=fake_source({"pkg/keys": KEYS_OUTPUT})).sync(spec("pkg/keys"), as_of=DAY)
        report = go_repo / "pkg" / "keys" / "BENCHMARKS.md"
        report.unlink()

        calls = []
        result = await Pipeline(settings, source=fake_source({}, calls)).render(spec("pkg/keys"))

        assert result.ok
        assert calls == []
        assert "BenchmarkNewKey-20" in report.read_text(encoding="utf-8")

    @pytest.mark.asyncio
    async def test_render_without_record(self, settings, go_repo):
        result = await Pipeline(settings).render(spec("pkg/store"))

        assert result.ok
        assert "*No benchmark results recorded yet.*" in result.outcomes[0].report_path.read_text(encoding="utf-8")
        assert not (go_repo / "pkg" / "store" / "benchmarks.yaml").exists()


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_worker_bound(self, go_repo):
        settings = Settings(repo_root=go_repo, max_workers=2)
        active = 0
        peak = 0

        async def slow_source(scope, bench_filter):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            try:
                await asyncio.sleep(0.05)
                yield f"BenchmarkX-8  10  {len(scope)}.0 ns/op\n"
            finally:
                active -= 1

        scopes = [f"pkg/s{i}" for i in range(6)]
        result = await Pipeline(settings, source=slow_source).run(spec(*scopes))

        assert result.ok
        assert peak == 2
        assert [o.scope for o in result.outcomes] == scopes

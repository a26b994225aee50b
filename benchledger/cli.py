#!/usr/bin/env python3
"""benchledger command line.

Usage examples:
  benchledger run ./...                      # benchmark and print, nothing saved
  benchledger sync all                       # benchmark, merge, save, render
  benchledger sync BenchmarkNewKey --in pkg  # one benchmark, path hint
  benchledger sync pkg/keys --input out.txt  # ingest captured output
  benchledger render ./...                   # re-render reports from history
  benchledger annotate pkg/keys --step "Pooled key buffers"
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from datetime import date
from pathlib import Path
from typing import Optional

from benchledger.benchmark.history import HistoryStore
from benchledger.benchmark.parser import ParsedResult
from benchledger.benchmark.pipeline import Pipeline, PipelineResult
from benchledger.benchmark.renderer import format_delta
from benchledger.benchmark.runner import captured_output
from benchledger.benchmark.targets import TargetResolver, TargetSpec
from benchledger.core.config import Settings, load_settings
from benchledger.core.exceptions import BenchLedgerError, BenchmarkCompileFailure, ConfigError
from benchledger.core.logging_config import get_logger, setup_logging

logger = get_logger(__name__)

MAX_DIAGNOSTIC_LINES = 20


def _parse_day(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM-DD, got {value!r}") from None


def _format_result(scope: str, result: ParsedResult) -> str:
    line = f"{scope:<30} {result.name:<40} {result.iterations:>10} {result.ns_per_op:>12.2f} ns/op"
    if result.has_memory_stats:
        line += f" {result.bytes_per_op:>8} B/op {result.allocs_per_op:>6} allocs/op"
    return line


def _print_progress(scope: str, result: ParsedResult) -> None:
    print(_format_result(scope, result), flush=True)


def _resolve(args: argparse.Namespace, settings: Settings) -> Optional[TargetSpec]:
    try:
        return TargetResolver(settings).resolve(args.target, recursive=args.recursive, within=args.within)
    except BenchLedgerError as e:
        print(f"error: [{e.kind}] {e.message}", file=sys.stderr)
        return None


def _report_failures(result: PipelineResult) -> None:
    failures = result.failures
    if not failures:
        return
    print(f"\n{len(failures)} scope(s) failed:", file=sys.stderr)
    for outcome in failures:
        error = outcome.error
        print(f"  {outcome.scope}: [{error.kind}] {error.message}", file=sys.stderr)
        if isinstance(error, BenchmarkCompileFailure):
            lines = error.diagnostic.splitlines()
            for line in lines[:MAX_DIAGNOSTIC_LINES]:
                print(f"      {line}", file=sys.stderr)
            if len(lines) > MAX_DIAGNOSTIC_LINES:
                print(f"      ... {len(lines) - MAX_DIAGNOSTIC_LINES} more line(s)", file=sys.stderr)


def cmd_run(args: argparse.Namespace, settings: Settings) -> int:
    spec = _resolve(args, settings)
    if spec is None:
        return 1

    pipeline = Pipeline(settings, on_result=None if args.json else _print_progress, write_reports=False)
    result = asyncio.run(pipeline.run(spec))

    if args.json:
        payload = [
            {
                "scope": outcome.scope,
                "name": r.name,
                "iterations": r.iterations,
                "nsPerOp": r.ns_per_op,
                "bytesPerOp": r.bytes_per_op,
                "allocsPerOp": r.allocs_per_op,
            }
            for outcome in result.outcomes
            for r in outcome.results
        ]
        print(json.dumps(payload, indent=2))

    _report_failures(result)
    return result.exit_code


def cmd_sync(args: argparse.Namespace, settings: Settings) -> int:
    spec = _resolve(args, settings)
    if spec is None:
        return 1

    source = None
    if args.input:
        if len(spec) != 1:
            print(
                f"error: --input needs a single scope, '{args.target}' resolved to {len(spec)}",
                file=sys.stderr,
            )
            return 1
        if not args.input.is_file():
            print(f"error: input file not found: {args.input}", file=sys.stderr)
            return 1
        source = captured_output(args.input)

    pipeline = Pipeline(
        settings,
        source=source,
        on_result=_print_progress,
        write_reports=not args.no_render,
    )
    result = asyncio.run(pipeline.sync(spec, as_of=args.date))

    for outcome in result.outcomes:
        if not outcome.ok:
            continue
        if outcome.data_path:
            print(f"{outcome.scope}: merged {len(outcome.results)} result(s) into {outcome.data_path}")
        for name, entries in outcome.view.detailed.items():
            if entries and entries[-1].delta is not None:
                print(f"  {name}: ns/op {format_delta(entries[-1].delta.ns_per_op)}")
        if outcome.report_path:
            print(f"  report: {outcome.report_path}")

    _report_failures(result)
    return result.exit_code


def cmd_render(args: argparse.Namespace, settings: Settings) -> int:
    spec = _resolve(args, settings)
    if spec is None:
        return 1

    result = asyncio.run(Pipeline(settings).render(spec))
    for outcome in result.outcomes:
        if outcome.ok:
            print(f"{outcome.scope}: {outcome.report_path}")

    _report_failures(result)
    return result.exit_code


def cmd_annotate(args: argparse.Namespace, settings: Settings) -> int:
    if not (args.step or args.improvement or args.notes is not None):
        print("error: nothing to annotate (use --step, --improvement or --notes)", file=sys.stderr)
        return 1

    try:
        spec = TargetResolver(settings).resolve(args.scope)
        if len(spec) != 1:
            print(f"error: '{args.scope}' is not a single scope", file=sys.stderr)
            return 1
        scope = spec.scopes[0]
        HistoryStore(settings).annotate(
            scope,
            steps=args.step,
            improvements=args.improvement,
            notes=args.notes,
        )
    except BenchLedgerError as e:
        print(f"error: [{e.kind}] {e.message}", file=sys.stderr)
        return 1

    print(f"{scope}: manual sections updated")
    return 0


def _add_target_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("target", help="all, <path>, <path>/... or a benchmark name")
    parser.add_argument("-r", "--recursive", action="store_true", help="Include scopes below <path>")
    parser.add_argument("--in", dest="within", default=None, help="Path hint for a benchmark-name target")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="benchledger", description="Track Go benchmark history per package.")
    parser.add_argument("--repo-root", type=Path, default=None, help="Repository root (default: cwd)")
    parser.add_argument("--config", type=Path, default=None, help="Config file (default: .benchledger.yaml)")
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING or ERROR")
    parser.add_argument("--jobs", "-j", type=int, default=None, help="Scopes processed in parallel")
    sub = parser.add_subparsers(dest="command")

    run_parser = sub.add_parser("run", help="Run benchmarks and print results (nothing saved)")
    _add_target_arguments(run_parser)
    run_parser.add_argument("--json", action="store_true", help="Print results as JSON")
    run_parser.set_defaults(func=cmd_run)

    sync_parser = sub.add_parser("sync", help="Run benchmarks and merge results into history")
    _add_target_arguments(sync_parser)
    sync_parser.add_argument("--date", type=_parse_day, default=None, help="Measurement date (default: today)")
    sync_parser.add_argument("--input", type=Path, default=None, help="Captured harness output to ingest")
    sync_parser.add_argument("--no-render", action="store_true", help="Skip writing the Markdown report")
    sync_parser.set_defaults(func=cmd_sync)

    render_parser = sub.add_parser("render", help="Render reports from stored history")
    _add_target_arguments(render_parser)
    render_parser.set_defaults(func=cmd_render)

    annotate_parser = sub.add_parser("annotate", help="Edit the manual sections of a scope")
    annotate_parser.add_argument("scope", help="Scope path")
    annotate_parser.add_argument("--step", action="append", default=[], help="Add an optimization step")
    annotate_parser.add_argument("--improvement", action="append", default=[], help="Add a future improvement")
    annotate_parser.add_argument("--notes", default=None, help="Replace the notes")
    annotate_parser.set_defaults(func=cmd_annotate)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 1

    overrides = {}
    if args.jobs is not None:
        overrides["max_workers"] = args.jobs
    if args.log_level:
        overrides["log_level"] = args.log_level

    try:
        settings = load_settings(args.repo_root, args.config, **overrides)
    except ConfigError as e:
        print(f"error: {e.message}", file=sys.stderr)
        return 2

    setup_logging(
        level=settings.log_level,
        log_to_file=settings.log_to_file,
        log_dir=settings.root / settings.log_dir,
    )
    logger.debug(f"Repository root: {settings.root}")
    return args.func(args, settings)


if __name__ == "__main__":
    raise SystemExit(main())

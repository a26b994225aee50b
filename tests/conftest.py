"""
Pytest fixtures for benchledger tests.

``go_repo`` builds a small Go module layout in tmp_path:

    go.mod
    pkg/keys/keys_test.go                  BenchmarkNewKey, BenchmarkNewKey_Serial
    pkg/store/store_test.go                BenchmarkPut
    pkg/store/internal/cache/cache_test.go BenchmarkGet
    pkg/util/util_test.go                  tests only, no benchmarks
    vendor/dep/dep_test.go                 skipped directory
    .cache/gen/gen_test.go                 skipped (hidden)
"""

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from benchledger.core.config import Settings
from benchledger.core.logging_config import reset_logging


KEYS_TEST = """package keys

import "testing"

func BenchmarkNewKey(b *testing.B) {
\tfor i := 0; i < b.N; i++ {
\t\tNewKey()
\t}
}

func BenchmarkNewKey_Serial(b *testing.B) {
\tfor i := 0; i < b.N; i++ {
\t\tNewKey()
\t}
}
"""

STORE_TEST = """package store

import "testing"

func BenchmarkPut(b *testing.B) {}
"""

CACHE_TEST = """package cache

import "testing"

func BenchmarkGet(b *testing.B) {}
"""

UTIL_TEST = """package util

import "testing"

func TestJoin(t *testing.T) {}
"""

KEYS_OUTPUT = """goos: linux
goarch: amd64
pkg: example.com/demo/pkg/keys
cpu: 12th Gen Intel(R) Core(TM) i7-12700H
BenchmarkNewKey-20          \t 1000000\t        40.97 ns/op\t      48 B/op\t       2 allocs/op
BenchmarkNewKey_Serial-20   \t  500000\t        85.00 ns/op\t      48 B/op\t       2 allocs/op
PASS
ok  \texample.com/demo/pkg/keys\t2.345s
"""

STORE_OUTPUT = """goos: linux
goarch: amd64
pkg: example.com/demo/pkg/store
BenchmarkPut-20   \t  200000\t      1530 ns/op\t     256 B/op\t       4 allocs/op
PASS
ok  \texample.com/demo/pkg/store\t1.002s
"""

BUILD_FAILURE_OUTPUT = """# example.com/demo/pkg/store [example.com/demo/pkg/store.test]
pkg/store/store_test.go:7:2: undefined: Put
FAIL\texample.com/demo/pkg/store [build failed]
FAIL
"""


def write(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    reset_logging()


@pytest.fixture
def go_repo(tmp_path: Path) -> Path:
    """Create a fake Go module with several benchmark scopes."""
    repo = tmp_path / "repo"
    write(repo / "go.mod", "module example.com/demo\n\ngo 1.22\n")
    write(repo / "pkg" / "keys" / "keys.go", "package keys\n\nfunc NewKey() []byte { return nil }\n")
    write(repo / "pkg" / "keys" / "keys_test.go", KEYS_TEST)
    write(repo / "pkg" / "store" / "store_test.go", STORE_TEST)
    write(repo / "pkg" / "store" / "internal" / "cache" / "cache_test.go", CACHE_TEST)
    write(repo / "pkg" / "util" / "util_test.go", UTIL_TEST)
    write(repo / "vendor" / "dep" / "dep_test.go", STORE_TEST)
    write(repo / ".cache" / "gen" / "gen_test.go", STORE_TEST)
    return repo


@pytest.fixture
def settings(go_repo: Path) -> Settings:
    return Settings(repo_root=go_repo)


def fake_source(outputs: dict, calls: list = None):
    """Line source replaying canned harness output per scope."""

    async def source(scope: str, bench_filter: str):
        if calls is not None:
            calls.append((scope, bench_filter))
        for line in outputs[scope].splitlines(keepends=True):
            yield line

    return source

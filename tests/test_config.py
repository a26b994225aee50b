"""
Tests for settings loading and logging setup.
"""

import logging

import pytest
from pydantic import ValidationError

from benchledger.core.config import CONFIG_FILENAME, ScopeOverrides, Settings, load_settings
from benchledger.core.exceptions import ConfigError
from benchledger.core.logging_config import LOG_FILENAME, setup_logging

from conftest import write


class TestSettings:
    def test_defaults(self, go_repo):
        settings = Settings(repo_root=go_repo)
        assert settings.data_filename == "benchmarks.yaml"
        assert settings.report_filename == "BENCHMARKS.md"
        assert settings.max_workers == 4
        assert settings.root == go_repo.resolve()

    def test_frozen(self, settings):
        with pytest.raises(ValidationError):
            settings.max_workers = 8

    def test_environment(self, go_repo, monkeypatch):
        monkeypatch.setenv("BENCHLEDGER_MAX_WORKERS", "7")
        monkeypatch.setenv("BENCHLEDGER_BENCHTIME", "500ms")
        settings = Settings(repo_root=go_repo)
        assert settings.max_workers == 7
        assert settings.bench_time == "500ms"

    def test_harness_options_with_override(self, go_repo):
        settings = Settings(
            repo_root=go_repo,
            count=2,
            scope_overrides={"pkg/store": ScopeOverrides(timeout_sec=30)},
        )
        store = settings.harness_options("pkg/store")
        keys = settings.harness_options("pkg/keys")
        assert (store.count, store.timeout_sec) == (2, 30)
        assert (keys.count, keys.timeout_sec) == (2, 600)


class TestLoadSettings:
    def test_without_config_file(self, go_repo):
        assert load_settings(go_repo).max_workers == 4

    def test_reads_repo_config(self, go_repo):
        write(
            go_repo / CONFIG_FILENAME,
            """max_workers: 2
report_filename: PERF.md
scope_overrides:
  pkg/store:
    bench_time: 100x
    count: 5
""",
        )

        settings = load_settings(go_repo)

        assert settings.max_workers == 2
        assert settings.report_filename == "PERF.md"
        assert settings.harness_options("pkg/store").bench_time == "100x"
        assert settings.harness_options("pkg/store").count == 5

    def test_overrides_win_over_file(self, go_repo):
        write(go_repo / CONFIG_FILENAME, "max_workers: 2\n")
        assert load_settings(go_repo, max_workers=6).max_workers == 6

    def test_file_wins_over_environment(self, go_repo, monkeypatch):
        monkeypatch.setenv("BENCHLEDGER_MAX_WORKERS", "9")
        write(go_repo / CONFIG_FILENAME, "max_workers: 3\n")
        assert load_settings(go_repo).max_workers == 3

    def test_explicit_config_file(self, go_repo, tmp_path):
        config = write(tmp_path / "ci.yaml", "count: 10\n")
        assert load_settings(go_repo, config).count == 10

    def test_missing_explicit_config_file(self, go_repo, tmp_path):
        with pytest.raises(ConfigError):
            load_settings(go_repo, tmp_path / "missing.yaml")

    def test_empty_config_file(self, go_repo):
        write(go_repo / CONFIG_FILENAME, "")
        assert load_settings(go_repo).max_workers == 4

    @pytest.mark.parametrize(
        "content",
        [
            "max_workers: [1, 2\n",
            "- a\n- b\n",
            "max_workers: 0\n",
            "count: many\n",
        ],
    )
    def test_invalid_config(self, go_repo, content):
        write(go_repo / CONFIG_FILENAME, content)
        with pytest.raises(ConfigError):
            load_settings(go_repo)


class TestLogging:
    def test_file_handler(self, tmp_path):
        setup_logging(level="DEBUG", log_to_console=False, log_to_file=True, log_dir=tmp_path / "logs")

        logging.getLogger("benchledger.test").info("hello from the test")
        for handler in logging.getLogger().handlers:
            handler.flush()

        assert "hello from the test" in (tmp_path / "logs" / LOG_FILENAME).read_text(encoding="utf-8")

    def test_configured_once(self, tmp_path):
        setup_logging(level="WARNING", log_to_file=False)
        setup_logging(level="DEBUG", log_to_file=False)
        assert logging.getLogger().level == logging.WARNING

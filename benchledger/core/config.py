"""Configuration management for benchledger.

Settings are an immutable value built once per invocation and passed
explicitly to the resolver, history store, runner and pipeline.

Precedence (highest first): explicit overrides, the repo's
``.benchledger.yaml``, ``BENCHLEDGER_*`` environment variables, defaults.
"""

from pathlib import Path
from typing import Any, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from benchledger.core.exceptions import ConfigError

CONFIG_FILENAME = ".benchledger.yaml"


class HarnessOptions(BaseModel):
    """Effective harness flags for one scope."""

    model_config = ConfigDict(frozen=True)

    benchmem: bool = True
    bench_time: Optional[str] = None
    count: int = Field(default=1, ge=1)
    timeout_sec: int = Field(default=600, ge=1)


class ScopeOverrides(BaseModel):
    """Per-scope overrides; unset fields fall back to the global settings."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    benchmem: Optional[bool] = None
    bench_time: Optional[str] = None
    count: Optional[int] = Field(default=None, ge=1)
    timeout_sec: Optional[int] = Field(default=None, ge=1)


class Settings(BaseSettings):
    """Main benchledger settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    # Repository layout
    repo_root: Path = Field(default=Path("."), alias="BENCHLEDGER_REPO_ROOT")
    data_filename: str = Field(default="benchmarks.yaml", alias="BENCHLEDGER_DATA_FILE")
    report_filename: str = Field(default="BENCHMARKS.md", alias="BENCHLEDGER_REPORT_FILE")

    # Target grammar
    test_file_suffix: str = Field(default="_test.go", alias="BENCHLEDGER_TEST_FILE_SUFFIX")
    benchmark_prefix: str = Field(default="Benchmark", alias="BENCHLEDGER_BENCHMARK_PREFIX")
    recursive_suffix: str = Field(default="/...", alias="BENCHLEDGER_RECURSIVE_SUFFIX")
    all_token: str = Field(default="all", alias="BENCHLEDGER_ALL_TOKEN")
    skip_dirs: tuple[str, ...] = Field(
        default=("vendor", "testdata", "node_modules"),
        alias="BENCHLEDGER_SKIP_DIRS",
    )

    # Harness
    go_binary: str = Field(default="go", alias="BENCHLEDGER_GO")
    benchmem: bool = Field(default=True, alias="BENCHLEDGER_BENCHMEM")
    bench_time: Optional[str] = Field(default=None, alias="BENCHLEDGER_BENCHTIME")
    count: int = Field(default=1, ge=1, alias="BENCHLEDGER_COUNT")
    timeout_sec: int = Field(default=600, ge=1, alias="BENCHLEDGER_TIMEOUT_SEC")
    max_workers: int = Field(default=4, ge=1, alias="BENCHLEDGER_MAX_WORKERS")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_to_file: bool = Field(default=False, alias="BENCHLEDGER_LOG_TO_FILE")
    log_dir: Path = Field(default=Path(".benchledger/logs"), alias="BENCHLEDGER_LOG_DIR")

    scope_overrides: dict[str, ScopeOverrides] = Field(default_factory=dict)

    @property
    def root(self) -> Path:
        """Canonical repository root."""
        return self.repo_root.resolve()

    def harness_options(self, scope: str) -> HarnessOptions:
        """Get the harness flags for a scope with its overrides applied."""
        base = {
            "benchmem": self.benchmem,
            "bench_time": self.bench_time,
            "count": self.count,
            "timeout_sec": self.timeout_sec,
        }
        override = self.scope_overrides.get(scope)
        if override is not None:
            base.update(override.model_dump(exclude_none=True))
        return HarnessOptions(**base)


def load_settings(
    repo_root: Optional[Union[str, Path]] = None,
    config_file: Optional[Union[str, Path]] = None,
    **overrides: Any,
) -> Settings:
    """
    Build settings for a repository.

    Args:
        repo_root: Repository root (default: BENCHLEDGER_REPO_ROOT or cwd)
        config_file: YAML config file (default: <repo_root>/.benchledger.yaml)
        **overrides: Field values that win over every other source

    Returns:
        Frozen Settings instance
    """
    if repo_root is not None:
        overrides["repo_root"] = Path(repo_root)

    try:
        base = Settings(**overrides)
    except ValidationError as e:
        raise ConfigError(f"Invalid settings: {e}") from e

    path = Path(config_file) if config_file else base.repo_root / CONFIG_FILENAME
    if not path.exists():
        if config_file:
            raise ConfigError(f"Config file not found: {path}")
        return base

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")

    try:
        return Settings(**{**data, **overrides})
    except ValidationError as e:
        raise ConfigError(f"Invalid settings in {path}: {e}") from e

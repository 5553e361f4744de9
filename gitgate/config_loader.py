"""
Configuration loader for gitgate.
Merges defaults with per-repo .gitgate/config.yaml overrides.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError


class ConfigError(Exception):
    """Raised when configuration is missing, malformed, or points nowhere."""
    pass


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

class GitConfig(BaseModel):
    remote: str = "origin"
    integration_branch: str = "main"


class SecretsConfig(BaseModel):
    patterns_file: str = ""
    snippet_length: int = 100
    binary_extensions: list[str] = Field(default_factory=list)


class BudgetSpec(BaseModel):
    name: str
    unit: str = ""
    threshold: float
    comparison: Literal["max", "min"] = "max"
    warn: float | None = None


class MetricsConfig(BaseModel):
    command: str = ""
    file: str = ""
    timeout: int = 300


class PerformanceConfig(BaseModel):
    enabled: bool = False
    triggers: list[str] = Field(default_factory=list)
    budgets: list[BudgetSpec] = Field(default_factory=list)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)


class CommitConfig(BaseModel):
    require_task_reference: bool = False
    types: list[str] = Field(default_factory=lambda: [
        "feat", "fix", "docs", "style", "refactor", "perf",
        "test", "build", "ci", "chore", "revert",
    ])


class HooksConfig(BaseModel):
    directory: str = "hooks"


class SyncConfig(BaseModel):
    fetch: bool = True
    watch_interval: float = 60


class TrackerConfig(BaseModel):
    url_env: str = "GITGATE_TRACKER_URL"
    token_env: str = "GITGATE_TRACKER_TOKEN"
    tasks_file: str = ".taskmaster/tasks/tasks.json"
    timeout: float = 5.0


class LoggingConfig(BaseModel):
    event_log: bool = True
    log_dir: str = "gitgate/logs"


class GitGateConfig(BaseModel):
    git: GitConfig = Field(default_factory=GitConfig)
    secrets: SecretsConfig = Field(default_factory=SecretsConfig)
    performance: PerformanceConfig = Field(default_factory=PerformanceConfig)
    commit: CommitConfig = Field(default_factory=CommitConfig)
    hooks: HooksConfig = Field(default_factory=HooksConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    tracker: TrackerConfig = Field(default_factory=TrackerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "config.yaml"


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base."""
    merged = base.copy()
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Malformed config file {path}: {e}")
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping, got {type(data).__name__}")
    return data


def load_config(repo_path: Path | None = None) -> GitGateConfig:
    """
    Load config by merging:
      1. Built-in defaults (gitgate/config.yaml)
      2. Repo-level overrides (<repo>/.gitgate/config.yaml)

    The merged mapping is validated as a whole; an invalid override
    raises ConfigError and nothing from it is applied.
    """
    # 1. Built-in defaults
    base = _read_yaml(_DEFAULT_CONFIG_PATH)

    # 2. Repo overrides
    if repo_path:
        repo_config = repo_path / ".gitgate" / "config.yaml"
        if repo_config.exists():
            base = _deep_merge(base, _read_yaml(repo_config))

    try:
        return GitGateConfig(**base)
    except ValidationError as e:
        raise ConfigError(f"Invalid gitgate configuration:\n{e}")


def tracker_env(config: GitGateConfig) -> dict[str, str | None]:
    """Resolve the tracker endpoint and credential from the environment."""
    return {
        "url": os.environ.get(config.tracker.url_env) or None,
        "token": os.environ.get(config.tracker.token_env) or None,
    }

"""
gitgate Guard: Performance Gate

Evaluates measured build metrics against declared budgets, but only when
the change touches a build-affecting file. Untriggered changes pass
without ever asking the metrics source.
"""

from __future__ import annotations

import json
import shlex
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Literal, Protocol

from loguru import logger

from gitgate.config_loader import BudgetSpec, PerformanceConfig
from gitgate.guard.patterns import glob_to_regex


class MetricsUnavailable(Exception):
    """The metrics source could not report a value. Fatal: a gate that cannot measure must not pass."""
    pass


@dataclass(frozen=True)
class BudgetMetric:
    name: str
    unit: str
    threshold: float
    comparison: Literal["max", "min"]
    measured: float
    warn: float | None = None

    @property
    def passed(self) -> bool:
        if self.comparison == "max":
            return self.measured <= self.threshold
        return self.measured >= self.threshold

    @property
    def warning(self) -> bool:
        """Within budget but past the warn line."""
        if not self.passed or self.warn is None:
            return False
        if self.comparison == "max":
            return self.measured > self.warn
        return self.measured < self.warn


@dataclass
class GateResult:
    passed: bool
    triggered: bool
    metrics: list[BudgetMetric] = field(default_factory=list)
    trigger_files: list[str] = field(default_factory=list)

    @property
    def failures(self) -> list[BudgetMetric]:
        return [m for m in self.metrics if not m.passed]


# ---------------------------------------------------------------------------
# Metrics sources
# ---------------------------------------------------------------------------

class MetricsSource(Protocol):
    def measure(self, names: list[str]) -> dict[str, float]:
        ...


def _coerce(payload: object, names: list[str], origin: str) -> dict[str, float]:
    if not isinstance(payload, dict):
        raise MetricsUnavailable(f"{origin} did not report a JSON object")
    values: dict[str, float] = {}
    for name in names:
        if name not in payload:
            raise MetricsUnavailable(f"{origin} did not report a value for '{name}'")
        try:
            values[name] = float(payload[name])
        except (TypeError, ValueError):
            raise MetricsUnavailable(f"{origin} reported a non-numeric value for '{name}': {payload[name]!r}")
    return values


class CommandMetricsSource:
    """Runs a measuring command that prints a JSON object of name -> value."""

    def __init__(self, command: str, cwd: Path, timeout: int = 300):
        self.command = command
        self.cwd = cwd
        self.timeout = timeout

    def measure(self, names: list[str]) -> dict[str, float]:
        logger.info(f"[GATE] Measuring via: {self.command}")
        try:
            result = subprocess.run(
                shlex.split(self.command),
                cwd=self.cwd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise MetricsUnavailable(f"Metrics command failed to run: {e}")

        if result.returncode != 0:
            raise MetricsUnavailable(
                f"Metrics command exited {result.returncode}: {result.stderr.strip()[:500]}"
            )
        try:
            payload = json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise MetricsUnavailable(f"Metrics command output is not JSON: {e}")
        return _coerce(payload, names, "metrics command")


class FileMetricsSource:
    """Reads a JSON object of name -> value written by a build or profiling step."""

    def __init__(self, path: Path):
        self.path = path

    def measure(self, names: list[str]) -> dict[str, float]:
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            raise MetricsUnavailable(f"Metrics file not found: {self.path}")
        except (OSError, json.JSONDecodeError) as e:
            raise MetricsUnavailable(f"Metrics file {self.path} is unreadable: {e}")
        return _coerce(payload, names, str(self.path))


def build_metrics_source(config: PerformanceConfig, repo_root: Path) -> MetricsSource | None:
    if config.metrics.command:
        return CommandMetricsSource(config.metrics.command, cwd=repo_root, timeout=config.metrics.timeout)
    if config.metrics.file:
        p = Path(config.metrics.file)
        return FileMetricsSource(p if p.is_absolute() else repo_root / p)
    return None


# ---------------------------------------------------------------------------
# Gate
# ---------------------------------------------------------------------------

class PerformanceGate:

    def __init__(self, budgets: Iterable[BudgetSpec], triggers: Iterable[str], source: MetricsSource | None):
        self.budgets = list(budgets)
        self.triggers = [glob_to_regex(t) for t in triggers]
        self.source = source

    def trigger_files(self, files: Iterable[str]) -> list[str]:
        hits = []
        for path in files:
            name = path.rsplit("/", 1)[-1]
            if any(t.match(path) or t.match(name) for t in self.triggers):
                hits.append(path)
        return sorted(hits)

    def evaluate(self, files: Iterable[str]) -> GateResult:
        triggered_by = self.trigger_files(files)
        if not triggered_by:
            logger.info("[GATE] No build-affecting files changed; gate not triggered")
            return GateResult(passed=True, triggered=False)
        if not self.budgets:
            return GateResult(passed=True, triggered=True, trigger_files=triggered_by)
        if self.source is None:
            raise MetricsUnavailable(
                "Performance gate is enabled but no metrics source is configured "
                "(set performance.metrics.command or performance.metrics.file)"
            )

        measured = self.source.measure([b.name for b in self.budgets])
        metrics = [
            BudgetMetric(
                name=b.name,
                unit=b.unit,
                threshold=b.threshold,
                comparison=b.comparison,
                measured=measured[b.name],
                warn=b.warn,
            )
            for b in self.budgets
        ]

        for m in metrics:
            if not m.passed:
                logger.warning(f"[GATE] {m.name} {m.measured}{m.unit} breaks budget {m.comparison} {m.threshold}{m.unit}")
            elif m.warning:
                logger.warning(f"[GATE] {m.name} {m.measured}{m.unit} is approaching budget {m.threshold}{m.unit}")

        return GateResult(
            passed=all(m.passed for m in metrics),
            triggered=True,
            metrics=metrics,
            trigger_files=triggered_by,
        )

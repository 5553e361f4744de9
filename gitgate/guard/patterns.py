"""
gitgate Guard: Pattern Registry

Static secret patterns, loaded once from a JSON file:

    {
      "patterns":       ["API_KEY", "SECRET_KEY", ...],   # literal tokens
      "regex_patterns": ["AKIA[0-9A-Z]{16}", ...],         # regexes
      "files":          [".env", "*.pem", ...]              # blocked filenames
    }
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from loguru import logger
from pydantic import BaseModel, ValidationError

from gitgate.config_loader import ConfigError

BUNDLED_PATTERNS_PATH = Path(__file__).parent / "secrets-patterns.json"
REPO_PATTERNS_PATH = Path(".gitgate") / "secrets-patterns.json"


def glob_to_regex(pattern: str) -> re.Pattern[str]:
    """Compile a glob where `*` is the only wildcard and matches anything."""
    return re.compile("^" + ".*".join(re.escape(part) for part in pattern.split("*")) + "$")


@dataclass(frozen=True)
class PatternRule:
    kind: Literal["literal", "regex"]
    scope: Literal["content", "filename"]
    value: str
    label: str
    compiled: re.Pattern[str] | None = field(default=None, compare=False, repr=False)

    def matches_filename(self, path: str) -> bool:
        name = path.rsplit("/", 1)[-1]
        return bool(self.compiled and self.compiled.match(name))


class _PatternFile(BaseModel):
    patterns: list[str]
    regex_patterns: list[str]
    files: list[str]


@dataclass(frozen=True)
class PatternRegistry:
    source: Path
    rules: tuple[PatternRule, ...]

    @property
    def literals(self) -> tuple[PatternRule, ...]:
        return tuple(r for r in self.rules if r.kind == "literal" and r.scope == "content")

    @property
    def regexes(self) -> tuple[PatternRule, ...]:
        return tuple(r for r in self.rules if r.kind == "regex" and r.scope == "content")

    @property
    def filenames(self) -> tuple[PatternRule, ...]:
        return tuple(r for r in self.rules if r.scope == "filename")


def load_registry(path: Path) -> PatternRegistry:
    """Parse and compile a pattern file. Any defect is a ConfigError."""
    if not path.is_file():
        raise ConfigError(f"Secrets pattern file not found: {path}")

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
        spec = _PatternFile(**raw) if isinstance(raw, dict) else None
    except json.JSONDecodeError as e:
        raise ConfigError(f"Secrets pattern file {path} is not valid JSON: {e}")
    except ValidationError as e:
        raise ConfigError(f"Secrets pattern file {path} has the wrong shape:\n{e}")
    if spec is None:
        raise ConfigError(f"Secrets pattern file {path} must be a JSON object")

    rules: list[PatternRule] = []

    # Longest literal first so the most specific token labels a line.
    for token in sorted({p.strip().upper() for p in spec.patterns if p.strip()}, key=lambda t: (-len(t), t)):
        rules.append(PatternRule(kind="literal", scope="content", value=token, label=token))

    for expr in spec.regex_patterns:
        try:
            compiled = re.compile(expr, re.IGNORECASE)
        except re.error as e:
            raise ConfigError(f"Invalid regex in {path}: {expr!r} ({e})")
        rules.append(PatternRule(
            kind="regex", scope="content", value=expr, label=f"regex:{expr}", compiled=compiled,
        ))

    for glob in spec.files:
        kind: Literal["literal", "regex"] = "regex" if "*" in glob else "literal"
        rules.append(PatternRule(
            kind=kind, scope="filename", value=glob, label=glob, compiled=glob_to_regex(glob),
        ))

    registry = PatternRegistry(source=path, rules=tuple(rules))
    logger.debug(
        f"[PATTERNS] Loaded {len(registry.literals)} literals, {len(registry.regexes)} regexes, "
        f"{len(registry.filenames)} filename rules from {path}"
    )
    return registry


def resolve_registry_path(repo_root: Path, configured: str = "") -> Path:
    """
    Pick the pattern file: an explicitly configured path (must exist),
    else the repo's .gitgate/secrets-patterns.json, else the bundled default.
    """
    if configured:
        p = Path(configured)
        return p if p.is_absolute() else repo_root / p
    repo_file = repo_root / REPO_PATTERNS_PATH
    if repo_file.exists():
        return repo_file
    return BUNDLED_PATTERNS_PATH

"""
gitgate Guard: Secrets Scanner

Scans what is about to be committed (index content, not the working
tree) against the Pattern Registry. Pure Python, read-only, deterministic.

Findings are never short-circuited: one pass surfaces every issue.
Whether to block is the caller's decision.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Callable, Iterable

from loguru import logger

from gitgate.guard.patterns import PatternRegistry

REDACTED = "[REDACTED]"

# value after the first assignment marker on a line
_ASSIGNMENT_VALUE = re.compile(r"([=:]\s*)(\S.*)$")


# ---------------------------------------------------------------------------
# Finding Types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ScanFinding:
    """A single match, attributable to exactly one staged file."""
    file: str
    line: int | None             # 1-indexed; None for filename matches
    label: str                   # pattern label that fired
    snippet: str                 # redacted, truncated context


@dataclass(frozen=True)
class BlockedFile:
    file: str
    reason: str


@dataclass
class ScanReport:
    """Results of one scan invocation."""
    findings: list[ScanFinding] = field(default_factory=list)
    blocked_files: list[BlockedFile] = field(default_factory=list)
    files_scanned: int = 0
    files_skipped: list[str] = field(default_factory=list)

    @property
    def blocked(self) -> bool:
        return bool(self.findings)

    def by_file(self) -> dict[str, list[ScanFinding]]:
        grouped: dict[str, list[ScanFinding]] = {}
        for f in self.findings:
            grouped.setdefault(f.file, []).append(f)
        return grouped

    def summary(self) -> dict:
        return {
            "findings": len(self.findings),
            "blocked_files": len(self.blocked_files),
            "files_scanned": self.files_scanned,
            "files_skipped": len(self.files_skipped),
        }


# ---------------------------------------------------------------------------
# Scanner
# ---------------------------------------------------------------------------

class SecretsScanner:
    """
    Scans a list of paths, reading each one through `read`.

    `read` returns the bytes that will be committed for a path (the
    index blob in pre-commit, the HEAD blob in pre-push).
    """

    def __init__(
        self,
        registry: PatternRegistry,
        binary_extensions: Iterable[str] = (),
        snippet_length: int = 100,
    ):
        self.registry = registry
        self.binary_extensions = tuple(e.lower() for e in binary_extensions)
        self.snippet_length = snippet_length
        self._literals = registry.literals
        self._regexes = registry.regexes

    def scan(self, files: Iterable[str], read: Callable[[str], bytes]) -> ScanReport:
        report = ScanReport()

        for path in sorted(set(files)):
            blocked_by = self._blocked_by(path)
            if blocked_by:
                report.blocked_files.append(BlockedFile(path, f"File matches blocked pattern: {blocked_by}"))
                report.findings.append(ScanFinding(file=path, line=None, label=blocked_by, snippet=""))
                logger.debug(f"[SCANNER] Blocked by filename rule {blocked_by!r}: {path}")
                continue

            if path.lower().endswith(self.binary_extensions):
                report.files_skipped.append(path)
                continue

            data = read(path)
            if b"\x00" in data:
                report.files_skipped.append(path)
                logger.debug(f"[SCANNER] Skipping binary content: {path}")
                continue

            report.files_scanned += 1
            text = data.decode("utf-8", errors="replace")
            report.findings.extend(self.scan_text(path, text))

        logger.info(f"[SCANNER] {report.summary()}")
        return report

    def scan_text(self, path: str, text: str) -> list[ScanFinding]:
        """Scan one file's content. At most one finding per line."""
        findings = []
        for lineno, line in enumerate(text.splitlines(), start=1):
            label = self._literal_label(line)
            regex_hit = None
            if label is None:
                regex_hit = next((r for r in self._regexes if r.compiled.search(line)), None)
                if regex_hit is None:
                    continue
                label = regex_hit.label

            findings.append(ScanFinding(
                file=path,
                line=lineno,
                label=label,
                snippet=self._redact(line, literal=regex_hit is None),
            ))
        return findings

    def _blocked_by(self, path: str) -> str | None:
        for rule in self.registry.filenames:
            if rule.matches_filename(path):
                return rule.value
        return None

    def _literal_label(self, line: str) -> str | None:
        # A bare mention (comment, docs) has no assignment marker.
        if "=" not in line and ":" not in line:
            return None
        upper = line.upper()
        for rule in self._literals:
            if rule.value in upper:
                return rule.label
        return None

    def _redact(self, line: str, literal: bool) -> str:
        redacted = line.strip()
        for rule in self._regexes:
            redacted = rule.compiled.sub(REDACTED, redacted)
        if literal:
            redacted = _ASSIGNMENT_VALUE.sub(lambda m: m.group(1) + REDACTED, redacted, count=1)
        return redacted[: self.snippet_length]

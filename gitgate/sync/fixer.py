"""
gitgate Sync: Auto-Fixer

Applies the safe repairs for the issues the Status Analyzer reports, one
at a time, in a fixed order:

    diverged     escalate (never merged or rebased here)
    dirty        git stash push
    noUpstream   git branch --set-upstream-to
    behind       git merge --ff-only
    ahead        escalate, or a plain push when the caller passes allow_push

The repository is re-measured after every applied repair, so a second run
against an unchanged repository records no actions. The first issue that
cannot be repaired (or whose repair fails) stops the run; it and every
issue after it are returned as FixConflicts with a manual command.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from loguru import logger

from gitgate.sync.status import (
    ADVISORY,
    IssueKind,
    RepoState,
    SyncIssue,
    SyncStatusAnalyzer,
    derive_issues,
    manual_command,
)
from gitgate.workspace import GitRepo, VcsError

FIX_ORDER = [
    IssueKind.DIVERGED,
    IssueKind.DIRTY,
    IssueKind.NO_UPSTREAM,
    IssueKind.BEHIND,
    IssueKind.AHEAD,
]


class FixResult(str, Enum):
    APPLIED = "applied"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class FixAction:
    issue_kind: IssueKind
    operation: str
    result: FixResult
    detail: str = ""


@dataclass(frozen=True)
class FixConflict:
    """An issue left for the user, with the command that would resolve it."""
    kind: IssueKind
    detail: str
    command: str


@dataclass
class FixReport:
    actions: list[FixAction] = field(default_factory=list)
    unresolved: list[FixConflict] = field(default_factory=list)
    advisories: list[SyncIssue] = field(default_factory=list)

    @property
    def resolved(self) -> bool:
        return not self.unresolved

    @property
    def stashed(self) -> bool:
        return any(
            a.operation == "stash" and a.result == FixResult.APPLIED for a in self.actions
        )


@dataclass(frozen=True)
class FixOperation:
    name: str
    apply: Callable[[GitRepo, RepoState, str], None]
    privileged: bool = False


def _stash(repo: GitRepo, state: RepoState, remote: str) -> None:
    repo.stash(f"gitgate auto-fix on {state.branch or 'detached HEAD'}")


def _set_upstream(repo: GitRepo, state: RepoState, remote: str) -> None:
    repo.set_upstream(remote, state.branch)


def _fast_forward(repo: GitRepo, state: RepoState, remote: str) -> None:
    repo.fast_forward(state.upstream)


def _push(repo: GitRepo, state: RepoState, remote: str) -> None:
    repo.push(remote, state.branch)


# Closed set: nothing outside this table is ever run by the fixer.
OPERATIONS: dict[IssueKind, FixOperation] = {
    IssueKind.DIRTY: FixOperation("stash", _stash),
    IssueKind.NO_UPSTREAM: FixOperation("set-upstream", _set_upstream),
    IssueKind.BEHIND: FixOperation("fast-forward", _fast_forward),
    IssueKind.AHEAD: FixOperation("push", _push, privileged=True),
}


def _ordered(issues: list[SyncIssue]) -> list[SyncIssue]:
    blocking = [i for i in issues if i.kind not in ADVISORY]
    return sorted(blocking, key=lambda i: FIX_ORDER.index(i.kind))


class AutoFixer:

    def __init__(
        self,
        analyzer: SyncStatusAnalyzer,
        allow_push: bool = False,
        dry_run: bool = False,
    ):
        self.analyzer = analyzer
        self.repo = analyzer.repo
        self.remote = analyzer.remote
        self.allow_push = allow_push
        self.dry_run = dry_run

    def operation_for(self, issue: SyncIssue) -> Optional[FixOperation]:
        op = OPERATIONS.get(issue.kind)
        if op is None:
            return None
        if op.privileged:
            return op if self.allow_push else None
        return op if issue.auto_fixable else None

    def run(self) -> FixReport:
        state, issues = self.analyzer.analyze()
        if self.dry_run:
            return self._plan(state, issues)

        report = FixReport()
        attempted: set[IssueKind] = set()

        while True:
            report.advisories = [i for i in issues if i.kind in ADVISORY]
            pending = _ordered(issues)
            if not pending:
                break

            issue = pending[0]
            op = self.operation_for(issue)
            # A kind that survives its own repair is not retried.
            if op is None or issue.kind in attempted:
                report.unresolved = self._conflicts(pending, state)
                logger.warning(f"[FIXER] Stopping at '{issue.kind.value}': not auto-fixable")
                break

            attempted.add(issue.kind)
            try:
                op.apply(self.repo, state, self.remote)
            except VcsError as e:
                report.actions.append(
                    FixAction(issue.kind, op.name, FixResult.FAILED, e.stderr.strip())
                )
                report.unresolved = self._conflicts(pending, state)
                logger.error(f"[FIXER] {op.name} failed: {e.stderr.strip()}")
                break

            report.actions.append(FixAction(issue.kind, op.name, FixResult.APPLIED, issue.detail))
            logger.info(f"[FIXER] {op.name} applied for '{issue.kind.value}'")

            state = self.analyzer.state(fetch=False)
            issues = derive_issues(state)

        return report

    def _plan(self, state: RepoState, issues: list[SyncIssue]) -> FixReport:
        """Dry run: record what would be attempted, touch nothing."""
        report = FixReport(advisories=[i for i in issues if i.kind in ADVISORY])
        pending = _ordered(issues)
        for index, issue in enumerate(pending):
            op = self.operation_for(issue)
            if op is None:
                report.unresolved = self._conflicts(pending[index:], state)
                break
            report.actions.append(FixAction(issue.kind, op.name, FixResult.SKIPPED, "dry run"))
        return report

    def _conflicts(self, issues: list[SyncIssue], state: RepoState) -> list[FixConflict]:
        return [
            FixConflict(i.kind, i.detail, manual_command(i, state, self.remote))
            for i in issues
        ]

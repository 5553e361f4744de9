"""
gitgate Sync: Status Analyzer

Measures the current branch against its upstream and derives SyncIssues
from a fixed decision table. RepoState is recomputed on every call.

    ahead  behind  dirty   ->  issues
    0      0       false       none
    0      >0      any         behind      (auto-fixable unless it would overwrite untracked files)
    >0     0       any         ahead       (push is a user decision)
    >0     >0      any         diverged
    any    any     true        dirty       (auto-fixable via stash)
    no upstream                noUpstream  (auto-fixable when <remote>/<branch> exists)
    stashes present            stashed     (advisory)
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from loguru import logger

from gitgate.workspace import GitRepo


class IssueKind(str, Enum):
    DIVERGED = "diverged"
    DIRTY = "dirty"
    NO_UPSTREAM = "noUpstream"
    BEHIND = "behind"
    AHEAD = "ahead"
    STASHED = "stashed"


# Kinds that never block: reported, never repaired, never unresolved.
ADVISORY = frozenset({IssueKind.STASHED})


@dataclass(frozen=True)
class RepoState:
    branch: str | None
    ahead: int = 0
    behind: int = 0
    dirty: bool = False
    stash_count: int = 0
    has_upstream: bool = False
    upstream: str | None = None
    remote_branch_exists: bool = False
    untracked: int = 0
    last_fetch: float | None = None
    # Untracked files the upstream adds; a fast-forward would refuse to overwrite them.
    untracked_collisions: tuple[str, ...] = ()


@dataclass(frozen=True)
class SyncIssue:
    kind: IssueKind
    auto_fixable: bool
    detail: str = ""


def derive_issues(state: RepoState) -> list[SyncIssue]:
    """Total over RepoState: every state maps to a (possibly empty) issue list."""
    issues: list[SyncIssue] = []

    if state.dirty:
        issues.append(SyncIssue(IssueKind.DIRTY, True, "uncommitted changes to tracked files"))

    if not state.has_upstream:
        if state.branch is None:
            issues.append(SyncIssue(IssueKind.NO_UPSTREAM, False, "detached HEAD"))
        else:
            issues.append(SyncIssue(
                IssueKind.NO_UPSTREAM,
                state.remote_branch_exists,
                f"branch '{state.branch}' has no upstream",
            ))
    elif state.ahead > 0 and state.behind > 0:
        issues.append(SyncIssue(
            IssueKind.DIVERGED, False,
            f"{state.ahead} local and {state.behind} remote commits differ from {state.upstream}",
        ))
    elif state.behind > 0:
        detail = f"{state.behind} commits behind {state.upstream}"
        if state.untracked_collisions:
            detail += f"; untracked files would be overwritten: {', '.join(state.untracked_collisions)}"
        issues.append(SyncIssue(IssueKind.BEHIND, not state.untracked_collisions, detail))
    elif state.ahead > 0:
        issues.append(SyncIssue(IssueKind.AHEAD, False, f"{state.ahead} commits ahead of {state.upstream}"))

    if state.stash_count > 0:
        issues.append(SyncIssue(IssueKind.STASHED, False, f"{state.stash_count} stash entries"))

    return issues


def manual_command(issue: SyncIssue, state: RepoState, remote: str = "origin") -> str:
    """The command a user would run to resolve an issue by hand."""
    branch = state.branch or "<branch>"
    return {
        IssueKind.DIVERGED: f"git pull --rebase {remote} {branch}   # or: git merge {state.upstream or remote + '/' + branch}",
        IssueKind.DIRTY: "git stash push   # or commit your changes",
        IssueKind.NO_UPSTREAM: (
            f"git branch --set-upstream-to={remote}/{branch}"
            if state.remote_branch_exists
            else (f"git push -u {remote} {branch}" if state.branch else "git switch <branch>")
        ),
        IssueKind.BEHIND: (
            ("move or remove " + " ".join(state.untracked_collisions) + ", then " if state.untracked_collisions else "")
            + f"git merge --ff-only {state.upstream or '@{upstream}'}"
        ),
        IssueKind.AHEAD: "git push",
        IssueKind.STASHED: "git stash list   # then git stash pop / drop",
    }[issue.kind]


class SyncStatusAnalyzer:

    def __init__(self, repo: GitRepo, remote: str = "origin", fetch: bool = True):
        self.repo = repo
        self.remote = remote
        self.fetch = fetch

    def state(self, fetch: bool | None = None) -> RepoState:
        fetch = self.fetch if fetch is None else fetch
        if fetch and self.repo.has_remote(self.remote):
            self.repo.fetch(self.remote)

        branch = self.repo.current_branch()
        upstream = self.repo.upstream() if branch else None
        ahead = behind = 0
        if upstream:
            ahead, behind = self.repo.ahead_behind(upstream)
        collisions: tuple[str, ...] = ()
        if behind:
            untracked = set(self.repo.untracked_files())
            if untracked:
                collisions = tuple(p for p in self.repo.added_files("HEAD", upstream) if p in untracked)

        state = RepoState(
            branch=branch,
            ahead=ahead,
            behind=behind,
            dirty=bool(self.repo.tracked_changes()),
            stash_count=self.repo.stash_count(),
            has_upstream=upstream is not None,
            upstream=upstream,
            remote_branch_exists=bool(branch) and self.repo.remote_branch_exists(self.remote, branch),
            untracked=self.repo.untracked_count(),
            last_fetch=self.repo.last_fetch(),
            untracked_collisions=collisions,
        )
        logger.debug(f"[SYNC] {state}")
        return state

    def analyze(self) -> tuple[RepoState, list[SyncIssue]]:
        state = self.state()
        return state, derive_issues(state)

"""
gitgate Tasks: Smart Commit Generator

Turns the staged diff into a conventional commit plan:

  - type   by majority vote over per-file path classifications
  - scope  from the most specific common path segment
  - task   from an explicit id or the current branch name

Classification is a pure function of the diff and a task lookup callable;
if no task id can be inferred the lookup is never called.
"""

from __future__ import annotations

import posixpath
import re
from collections import Counter
from dataclasses import dataclass
from typing import Callable, Iterable, Union

from gitgate.guard.commit_msg import MAX_HEADER_LENGTH, SCOPE_CHARS
from gitgate.tasks.tracker import TaskRef, Untracked, _Untracked, task_id_from_branch
from gitgate.workspace import StagedChange

# Tie-break order when votes are equal: the more specific type wins.
TYPE_PRIORITY = ["test", "docs", "ci", "build", "perf", "style", "chore", "fix", "feat"]

# Generic top-level directories that say nothing about scope.
GENERIC_SEGMENTS = {"src", "lib", "app", "apps", "pkg", "packages", "source", "include"}

_DOC_EXT = (".md", ".rst", ".txt", ".adoc")
_STYLE_EXT = (".css", ".scss", ".sass", ".less")
_CONFIG_EXT = (".json", ".yml", ".yaml", ".toml", ".ini", ".cfg", ".conf", ".lock")
_BUILD_FILES = {
    "pyproject.toml", "setup.py", "setup.cfg", "package.json", "package-lock.json",
    "yarn.lock", "pnpm-lock.yaml", "cargo.toml", "cargo.lock", "makefile", "dockerfile",
    "cmakelists.txt", "go.mod", "go.sum", "requirements.txt",
}
_TEST_SEGMENT = re.compile(r"(^|/)(tests?|spec|__tests__)(/|$)")
_TEST_NAME = re.compile(r"(^test_|_test\.|\.test\.|\.spec\.|^tests?\.)")
_VERB_PREFIX = re.compile(r"^(implement|create|add|fix|update)\s+", re.IGNORECASE)
_SCOPE_INVALID = re.compile(r"[^" + SCOPE_CHARS + r"]+")
MAX_SCOPE_LENGTH = 30

TaskLookup = Callable[[str], Union[TaskRef, None]]


@dataclass(frozen=True)
class CommitPlan:
    type: str
    scope: str | None
    subject: str
    body: str
    task: Union[TaskRef, _Untracked]
    task_id: str | None = None
    breaking: str | None = None

    def header(self) -> str:
        """The header line, always within MAX_HEADER_LENGTH including the task suffix."""
        head = self.type
        scope = sanitize_scope(self.scope)
        if scope:
            head += f"({scope})"
        if self.breaking:
            head += "!"
        head += ": "
        suffix = f" (task {self.task_id})" if self.task_id else ""
        room = MAX_HEADER_LENGTH - len(head) - len(suffix)
        subject = " ".join(self.subject.split())
        if len(subject) > room:
            subject = subject[:room - 3].rstrip() + "..."
        return head + subject + suffix

    def render(self) -> str:
        parts = [self.header()]
        footer = f"BREAKING CHANGE: {self.breaking}" if self.breaking else ""
        tail = "\n\n".join(p for p in (self.body.strip(), footer) if p)
        if tail:
            parts.append(tail)
        return "\n\n".join(parts)


def classify_path(path: str) -> str:
    """The commit type a single changed path votes for."""
    lower = path.lower()
    name = posixpath.basename(lower)

    if lower.startswith((".github/", ".gitlab/", ".circleci/")) or name in (".gitlab-ci.yml", ".travis.yml", "jenkinsfile"):
        return "ci"
    if _TEST_SEGMENT.search(lower) or _TEST_NAME.search(name):
        return "test"
    if name.endswith(_DOC_EXT) or lower.startswith("docs/") or "/docs/" in lower:
        return "docs"
    if name in _BUILD_FILES:
        return "build"
    if "benchmark" in lower or "/perf/" in lower or lower.startswith("perf/"):
        return "perf"
    if name.endswith(_STYLE_EXT):
        return "style"
    if name.endswith(_CONFIG_EXT) or name.startswith(".") or "config" in name:
        return "chore"
    return "feat"


def vote_type(paths: Iterable[str], task: TaskRef | None = None) -> str:
    votes = Counter(classify_path(p) for p in paths)
    if not votes:
        return "chore"
    best = max(votes.values())
    winners = [t for t in TYPE_PRIORITY if votes.get(t) == best]
    chosen = winners[0]
    # Source changes on a bug task are fixes.
    if chosen == "feat" and task is not None and task.kind.lower() in ("bug", "bugfix", "fix", "defect"):
        return "fix"
    return chosen


def sanitize_scope(scope: str | None) -> str | None:
    """Fold a directory name into the scope grammar: 'my module' -> 'my-module'."""
    if not scope:
        return None
    cleaned = _SCOPE_INVALID.sub("-", scope).strip("-")[:MAX_SCOPE_LENGTH].rstrip("-")
    return cleaned or None


def infer_scope(paths: list[str]) -> str | None:
    """Deepest directory shared by every path, else the dominant top-level directory."""
    dirs = [posixpath.dirname(p) for p in paths]
    if dirs and all(dirs):
        common = posixpath.commonpath(dirs)
        for segment in reversed(common.split("/")):
            if segment and segment.lower() not in GENERIC_SEGMENTS:
                return sanitize_scope(segment)
    return sanitize_scope(_dominant_segment(paths))


def _dominant_segment(paths: list[str]) -> str | None:
    counts: Counter[str] = Counter()
    for p in paths:
        parts = [s for s in p.split("/")[:-1] if s]
        while parts and parts[0].lower() in GENERIC_SEGMENTS:
            parts = parts[1:]
        if parts:
            counts[parts[0]] += 1
    if not counts:
        return None
    best = max(counts.values())
    return sorted(k for k, v in counts.items() if v == best)[0]


def default_subject(changes: list[StagedChange], task: TaskRef | None) -> str:
    if task is not None and task.title:
        subject = _VERB_PREFIX.sub("", task.title.strip())
        return subject[:1].lower() + subject[1:]
    if len(changes) == 1:
        c = changes[0]
        verb = {"A": "add", "D": "remove", "R": "rename"}.get(c.kind, "update")
        return f"{verb} {posixpath.basename(c.path)}"
    return f"update {len(changes)} files"


def summarize_changes(changes: list[StagedChange]) -> str:
    labels = {"A": "added", "M": "modified", "D": "deleted", "R": "renamed", "C": "copied", "T": "type changed"}
    counts = Counter(labels.get(c.kind, "changed") for c in changes)
    lines = [", ".join(f"{n} {label}" for label, n in sorted(counts.items()))]
    for c in changes[:20]:
        if c.old_path:
            lines.append(f"- {c.old_path} -> {c.path}")
        else:
            lines.append(f"- {c.path}")
    if len(changes) > 20:
        lines.append(f"- ... and {len(changes) - 20} more")
    return "\n".join(lines)


def plan_commit(
    changes: list[StagedChange],
    lookup: TaskLookup,
    branch: str | None = None,
    task_id: str | None = None,
) -> CommitPlan:
    """Build a CommitPlan. `lookup` returns None when the task cannot be resolved."""
    task_id = task_id or task_id_from_branch(branch)
    task = lookup(task_id) if task_id else None

    paths = [c.path for c in changes]
    return CommitPlan(
        type=vote_type(paths, task),
        scope=infer_scope(paths),
        subject=default_subject(changes, task),
        body=summarize_changes(changes) if changes else "",
        task=task if task is not None else Untracked,
        task_id=task_id,
    )

"""
gitgate Tasks: PR Creator

Renders a pull request (title + body) from task context and the branch's
diff against the integration branch. Submission is delegated to the
hosting CLI (`gh`).
"""

from __future__ import annotations

import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Union

from loguru import logger

from gitgate.config_loader import BudgetSpec
from gitgate.tasks.commit import classify_path
from gitgate.tasks.tracker import TaskRef, _Untracked
from gitgate.workspace import DiffStat

_GROUPS = [
    ("test", "🧪 Tests"),
    ("docs", "📚 Documentation"),
    ("config", "⚙️ Configuration"),
    ("source", "📦 Source"),
]


class PullRequestError(Exception):
    pass


@dataclass(frozen=True)
class PullRequestDraft:
    title: str
    body: str
    head: str
    base: str


def render_title(task: Union[TaskRef, _Untracked], task_id: str | None, commits: list[str], branch: str) -> str:
    if isinstance(task, TaskRef) and task.title:
        return f"Task {task.id}: {task.title}"
    if task_id:
        return f"Task {task_id}"
    if commits:
        # oldest commit subject, without the short sha
        return commits[-1].split(" ", 1)[-1]
    return branch


def _group(path: str) -> str:
    kind = classify_path(path)
    if kind in ("test", "docs"):
        return kind
    if kind in ("chore", "build", "ci"):
        return "config"
    return "source"


def render_body(
    task: Union[TaskRef, _Untracked],
    task_id: str | None,
    commits: list[str],
    stat: DiffStat,
    budgets: list[BudgetSpec] | None = None,
) -> str:
    body = ""

    if isinstance(task, TaskRef):
        body += "## 📌 Task Context\n\n"
        body += f"**Task {task.id}**: {task.title}\n\n"
        if task.status:
            body += f"**Status**: {task.status}\n\n"
        if task.description:
            body += f"**Description**: {task.description}\n\n"
        if task.details:
            body += f"### Implementation Details\n\n{task.details}\n\n"
    elif task_id:
        body += "## 📌 Task Context\n\n"
        body += f"**Task {task_id}** (details unavailable: task tracker not reachable)\n\n"

    body += "## 📝 Changes\n\n"
    body += f"`{stat.summary()}`\n\n"
    grouped: dict[str, list[tuple[str, int, int]]] = {}
    for entry in stat.files:
        grouped.setdefault(_group(entry[0]), []).append(entry)
    for key, heading in _GROUPS:
        if key not in grouped:
            continue
        body += f"### {heading}\n"
        for path, added, removed in grouped[key]:
            body += f"- `{path}` (+{added}/-{removed})\n"
        body += "\n"

    if commits:
        body += "## 📜 Commit History\n\n"
        for commit in commits:
            body += f"- {commit}\n"
        body += "\n"

    body += "## ✅ Validation Checklist\n\n"
    if isinstance(task, TaskRef):
        body += "### Task Completion\n"
        body += f"- [ ] Task {task.id} requirements met\n"
        if task.subtasks:
            done = sum(1 for s in task.subtasks if s.status == "done")
            body += f"- [ ] All subtasks completed ({done}/{len(task.subtasks)})\n"
        if task.dependencies:
            body += f"- [ ] Dependencies resolved: {', '.join(task.dependencies)}\n"
        body += "\n"

    body += "### Code Quality\n"
    body += "- [ ] No secrets or credentials exposed\n"
    if budgets:
        limits = ", ".join(
            f"{b.name} {'≤' if b.comparison == 'max' else '≥'} {b.threshold:g}{b.unit}" for b in budgets
        )
        body += f"- [ ] Performance budgets met ({limits})\n"
    body += "- [ ] All tests passing\n"
    body += "- [ ] Code follows project conventions\n\n"

    body += "### Testing\n"
    body += "- [ ] Unit tests added/updated\n"
    body += "- [ ] Manual testing completed\n"
    if isinstance(task, TaskRef) and task.test_strategy:
        body += f"\n**Test Strategy**: {task.test_strategy}\n"

    body += "\n---\n*Generated by gitgate*\n"
    return body


def render_pull_request(
    task: Union[TaskRef, _Untracked],
    task_id: str | None,
    commits: list[str],
    stat: DiffStat,
    head: str,
    base: str,
    budgets: list[BudgetSpec] | None = None,
) -> PullRequestDraft:
    return PullRequestDraft(
        title=render_title(task, task_id, commits, head),
        body=render_body(task, task_id, commits, stat, budgets),
        head=head,
        base=base,
    )


class GitHubCli:
    """Opens PRs through `gh pr create`."""

    def __init__(self, repo_root: Path, timeout: int = 120):
        self.repo_root = repo_root
        self.timeout = timeout

    @property
    def available(self) -> bool:
        return shutil.which("gh") is not None

    def create(self, draft: PullRequestDraft) -> str:
        if not self.available:
            raise PullRequestError("GitHub CLI not installed. Install from https://cli.github.com")

        try:
            result = subprocess.run(
                [
                    "gh", "pr", "create",
                    "--title", draft.title,
                    "--body", draft.body,
                    "--base", draft.base,
                    "--head", draft.head,
                ],
                cwd=self.repo_root,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            raise PullRequestError(f"PR creation timed out after {self.timeout}s")

        if result.returncode != 0:
            raise PullRequestError(f"PR creation failed: {result.stderr.strip()}")

        url = result.stdout.strip()
        logger.info(f"[PR] Created {url}")
        return url

"""
gitgate Tasks: Task Branch Creator

task id -> feature/task-<id>-<slug>, created from the integration branch
and checked out. The tracker is consulted for the title and told the task
is in progress; if it is unreachable the branch is still created from the
id alone.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from loguru import logger

from gitgate.tasks.tracker import TaskRef, TaskTracker, BRANCH_TASK_ID
from gitgate.workspace import GitRepo

SLUG_MAX = 50
IN_PROGRESS = "in-progress"


def slugify(text: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")
    return slug[:SLUG_MAX].rstrip("-")


def branch_name(task_id: str, title: str | None = None) -> str:
    slug = slugify(title or "")
    return f"feature/task-{task_id}-{slug}" if slug else f"feature/task-{task_id}"


@dataclass(frozen=True)
class BranchOutcome:
    branch: str
    created: bool
    task: TaskRef | None
    status_updated: bool
    start_point: str | None = None


class TaskBranchCreator:

    def __init__(self, repo: GitRepo, tracker: TaskTracker, remote: str = "origin", integration_branch: str = "main"):
        self.repo = repo
        self.tracker = tracker
        self.remote = remote
        self.integration_branch = integration_branch

    def create(self, task_id: str) -> BranchOutcome:
        task = self.tracker.lookup(task_id)
        name = branch_name(task_id, task.title if task else None)

        existing = self._existing_branch(task_id, name)
        if existing:
            if self.repo.current_branch() != existing:
                self.repo.switch(existing)
            logger.info(f"[BRANCH] Switched to existing branch {existing}")
            return BranchOutcome(branch=existing, created=False, task=task, status_updated=False)

        if self.repo.tracked_changes():
            logger.warning("[BRANCH] Uncommitted changes will be carried onto the new branch")

        start = self._start_point()
        self.repo.create_branch(name, start)

        updated = False
        if task is not None:
            updated = self.tracker.try_set_status(task_id, IN_PROGRESS)
        else:
            logger.warning(f"[BRANCH] Task {task_id} unresolved; status not updated")

        return BranchOutcome(branch=name, created=True, task=task, status_updated=updated, start_point=start)

    def list_task_branches(self) -> list[tuple[str, bool, str | None]]:
        """(branch, is_remote, task id) for every task branch, local first."""
        rows = []
        for name, is_remote in self.repo.list_branches("*task-*"):
            match = BRANCH_TASK_ID.search(name)
            rows.append((name, is_remote, match.group(1) if match else None))
        return sorted(rows, key=lambda r: (r[1], r[0]))

    def _existing_branch(self, task_id: str, name: str) -> str | None:
        if self.repo.branch_exists(name):
            return name
        # Same task created while the tracker had a different (or no) title.
        prefix = f"feature/task-{task_id}"
        for candidate, is_remote in self.repo.list_branches(f"{prefix}*"):
            if is_remote:
                continue
            if candidate == prefix or candidate.startswith(prefix + "-"):
                return candidate
        return None

    def _start_point(self) -> str | None:
        if self.repo.branch_exists(self.integration_branch):
            return self.integration_branch
        if self.repo.remote_branch_exists(self.remote, self.integration_branch):
            return f"{self.remote}/{self.integration_branch}"
        logger.warning(
            f"[BRANCH] Integration branch '{self.integration_branch}' not found; branching from HEAD"
        )
        return None

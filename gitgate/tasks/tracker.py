"""
gitgate Tasks: Tracker clients

The task tracker owns task identity and status. gitgate only reads task
metadata and writes the status transitions it triggers itself
("in-progress" on branch creation, "review" after a PR is opened).

Backends:
  - HttpTaskTracker:   REST endpoint + bearer token from the environment
  - FileTaskTracker:   a Task Master tasks.json in the repository
  - NullTaskTracker:   nothing configured; every call is unavailable

Every failure surfaces as a TrackerError so callers can degrade to
Untracked instead of failing.
"""

from __future__ import annotations

import json
import os
import re
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import httpx
from loguru import logger
from pydantic import BaseModel, Field
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from gitgate.config_loader import GitGateConfig, tracker_env

BRANCH_TASK_ID = re.compile(r"task-([0-9]+(?:\.[0-9]+)*)")
TASK_ID = re.compile(r"^[0-9]+(?:\.[0-9]+)*$")


class TrackerError(Exception):
    pass


class TrackerUnavailable(TrackerError):
    """The tracker could not be reached or answered garbage."""
    pass


class TaskNotFound(TrackerError):
    pass


class TaskRef(BaseModel):
    """A task as seen by gitgate. Owned by the tracker."""
    id: str
    title: str = ""
    status: str = ""
    kind: str = "task"
    description: str = ""
    details: str = ""
    test_strategy: str = ""
    dependencies: list[str] = Field(default_factory=list)
    subtasks: list["TaskRef"] = Field(default_factory=list)

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "TaskRef":
        return cls(
            id=str(data["id"]),
            title=str(data.get("title") or ""),
            status=str(data.get("status") or ""),
            kind=str(data.get("kind") or data.get("type") or "task"),
            description=str(data.get("description") or ""),
            details=str(data.get("details") or ""),
            test_strategy=str(data.get("testStrategy") or data.get("test_strategy") or ""),
            dependencies=[str(d) for d in data.get("dependencies") or []],
            subtasks=[cls.from_payload(s) for s in data.get("subtasks") or [] if isinstance(s, dict) and "id" in s],
        )


class _Untracked:
    """Task resolution failed or nothing to resolve. A value, not an error."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "Untracked"

    def __bool__(self) -> bool:
        return False


Untracked = _Untracked()


def task_id_from_branch(branch: str | None) -> str | None:
    if not branch:
        return None
    match = BRANCH_TASK_ID.search(branch)
    return match.group(1) if match else None


# ---------------------------------------------------------------------------
# Backends
# ---------------------------------------------------------------------------

class TaskTracker(ABC):
    name: str = "tracker"

    @abstractmethod
    def get_task(self, task_id: str) -> TaskRef:
        ...

    @abstractmethod
    def set_status(self, task_id: str, status: str) -> None:
        ...

    def lookup(self, task_id: str) -> TaskRef | None:
        """get_task, degraded: any tracker failure becomes None with a warning."""
        try:
            return self.get_task(task_id)
        except TrackerError as e:
            logger.warning(f"[TRACKER] Could not resolve task {task_id}: {e}")
            return None

    def try_set_status(self, task_id: str, status: str) -> bool:
        try:
            self.set_status(task_id, status)
        except TrackerError as e:
            logger.warning(f"[TRACKER] Could not set task {task_id} to '{status}': {e}")
            return False
        logger.info(f"[TRACKER] Task {task_id} -> {status}")
        return True

    def close(self) -> None:
        pass


class NullTaskTracker(TaskTracker):
    name = "none"

    def get_task(self, task_id: str) -> TaskRef:
        raise TrackerUnavailable("no task tracker configured")

    def set_status(self, task_id: str, status: str) -> None:
        raise TrackerUnavailable("no task tracker configured")


class HttpTaskTracker(TaskTracker):
    """
    GET   {base_url}/tasks/{id}   -> {"id", "title", "status", "kind", ...}
    PATCH {base_url}/tasks/{id}   <- {"status": "..."}
    """

    name = "http"

    def __init__(self, base_url: str, token: str | None = None, timeout: float = 5.0,
                 transport: httpx.BaseTransport | None = None):
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    def get_task(self, task_id: str) -> TaskRef:
        response = self._request("GET", f"/tasks/{task_id}")
        try:
            return TaskRef.from_payload(response.json())
        except (ValueError, KeyError, TypeError) as e:
            raise TrackerUnavailable(f"Malformed task payload for {task_id}: {e}")

    def set_status(self, task_id: str, status: str) -> None:
        self._request("PATCH", f"/tasks/{task_id}", json={"status": status})

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = self._send(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise TrackerUnavailable(f"{method} {url} failed: {e}")

        if response.status_code == 404:
            raise TaskNotFound(f"{url} not found")
        if response.status_code >= 400:
            raise TrackerUnavailable(f"{method} {url} returned HTTP {response.status_code}")
        return response

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(2),
        wait=wait_exponential(multiplier=0.2, min=0.2, max=1),
        reraise=True,
    )
    def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        return self._client.request(method, url, **kwargs)


class FileTaskTracker(TaskTracker):
    """Task Master's tasks.json: {"tasks": [...]} or {"<tag>": {"tasks": [...]}}."""

    name = "file"

    def __init__(self, path: Path):
        self.path = path

    def get_task(self, task_id: str) -> TaskRef:
        data = self._load()
        found = _find(_task_lists(data), task_id)
        if found is None:
            raise TaskNotFound(f"task {task_id} not in {self.path.name}")
        return TaskRef.from_payload(found).model_copy(update={"id": task_id})

    def set_status(self, task_id: str, status: str) -> None:
        data = self._load()
        found = _find(_task_lists(data), task_id)
        if found is None:
            raise TaskNotFound(f"task {task_id} not in {self.path.name}")
        found["status"] = status

        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".tasks-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_name, self.path)
        except OSError as e:
            Path(tmp_name).unlink(missing_ok=True)
            raise TrackerUnavailable(f"Could not write {self.path}: {e}")

    def _load(self) -> dict[str, Any]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            raise TrackerUnavailable(f"tasks file not found: {self.path}")
        except (OSError, json.JSONDecodeError) as e:
            raise TrackerUnavailable(f"tasks file {self.path} is unreadable: {e}")
        if not isinstance(data, dict):
            raise TrackerUnavailable(f"tasks file {self.path} is not a JSON object")
        return data


def _task_lists(data: dict[str, Any]) -> list[list[dict]]:
    if isinstance(data.get("tasks"), list):
        return [data["tasks"]]
    return [v["tasks"] for v in data.values() if isinstance(v, dict) and isinstance(v.get("tasks"), list)]


def _find(task_lists: list[list[dict]], task_id: str) -> dict | None:
    for tasks in task_lists:
        found = _find_in(tasks, task_id)
        if found is not None:
            return found
    return None


def _find_in(tasks: list[dict], task_id: str) -> dict | None:
    tasks = [t for t in tasks if isinstance(t, dict)]
    for task in tasks:
        if str(task.get("id")) == task_id:
            return task

    # Subtask ids are local in Task Master ("2" under "11"), addressed as "11.2".
    for task in tasks:
        sub = task.get("subtasks")
        prefix = f"{task.get('id')}."
        if not (isinstance(sub, list) and sub and task_id.startswith(prefix)):
            continue
        found = _find_in(sub, task_id[len(prefix):]) or _find_in(sub, task_id)
        if found is not None:
            return found
    return None


def build_tracker(config: GitGateConfig, repo_root: Path) -> TaskTracker:
    env = tracker_env(config)
    if env["url"]:
        logger.debug(f"[TRACKER] Using HTTP tracker at {env['url']}")
        return HttpTaskTracker(env["url"], env["token"], timeout=config.tracker.timeout)

    tasks_file = Path(config.tracker.tasks_file)
    if not tasks_file.is_absolute():
        tasks_file = repo_root / tasks_file
    if tasks_file.exists():
        logger.debug(f"[TRACKER] Using Task Master file {tasks_file}")
        return FileTaskTracker(tasks_file)

    logger.debug("[TRACKER] No tracker configured; task features run untracked")
    return NullTaskTracker()

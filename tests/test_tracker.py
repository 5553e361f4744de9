import json

import httpx
import pytest

from gitgate.config_loader import load_config
from gitgate.tasks.tracker import (
    FileTaskTracker,
    HttpTaskTracker,
    NullTaskTracker,
    TaskNotFound,
    TrackerUnavailable,
    Untracked,
    build_tracker,
    task_id_from_branch,
)

TASKS = {
    "master": {
        "tasks": [
            {
                "id": 3,
                "title": "Set up CI",
                "status": "done",
                "subtasks": [{"id": 1, "title": "Add workflow", "status": "done"}],
            },
            {
                "id": 11,
                "title": "Fix memory leak",
                "status": "pending",
                "description": "Telemetry buffer grows without bound",
                "testStrategy": "Run the soak test for an hour",
                "dependencies": [3],
                "subtasks": [
                    {"id": 1, "title": "Reproduce", "status": "done"},
                    {"id": 2, "title": "Cap the buffer", "status": "pending"},
                ],
            },
        ]
    }
}


@pytest.fixture
def tasks_file(tmp_path):
    path = tmp_path / "tasks.json"
    path.write_text(json.dumps(TASKS))
    return path


def test_file_tracker_reads_task(tasks_file):
    task = FileTaskTracker(tasks_file).get_task("11")
    assert task.title == "Fix memory leak"
    assert task.test_strategy == "Run the soak test for an hour"
    assert task.dependencies == ["3"]
    assert [s.title for s in task.subtasks] == ["Reproduce", "Cap the buffer"]


def test_file_tracker_resolves_dotted_subtask(tasks_file):
    task = FileTaskTracker(tasks_file).get_task("11.2")
    assert task.id == "11.2"
    assert task.title == "Cap the buffer"


def test_file_tracker_bare_id_does_not_match_subtask(tasks_file):
    with pytest.raises(TaskNotFound):
        FileTaskTracker(tasks_file).get_task("2")


def test_file_tracker_set_status_rewrites_file(tasks_file):
    tracker = FileTaskTracker(tasks_file)
    tracker.set_status("11", "in-progress")

    data = json.loads(tasks_file.read_text())
    assert data["master"]["tasks"][1]["status"] == "in-progress"
    assert data["master"]["tasks"][0]["status"] == "done"
    assert list(tasks_file.parent.glob(".tasks-*")) == []


def test_lookup_degrades_to_none(tmp_path):
    tracker = FileTaskTracker(tmp_path / "missing.json")
    assert tracker.lookup("11") is None
    assert tracker.try_set_status("11", "in-progress") is False
    assert NullTaskTracker().lookup("1") is None


def test_untracked_is_falsy_singleton():
    assert not Untracked
    assert repr(Untracked) == "Untracked"
    assert type(Untracked)() is Untracked


def test_task_id_from_branch():
    assert task_id_from_branch("feature/task-11-fix-memory-leak") == "11"
    assert task_id_from_branch("feature/task-11.2-cap") == "11.2"
    assert task_id_from_branch("main") is None
    assert task_id_from_branch(None) is None


def _http(handler):
    return HttpTaskTracker("https://tracker.example/api", token="s3cr3t", transport=httpx.MockTransport(handler))


def test_http_tracker_get_and_patch():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.method, request.url.path, request.headers.get("authorization")))
        if request.method == "GET":
            return httpx.Response(200, json={"id": 11, "title": "Fix memory leak", "status": "pending", "kind": "bug"})
        assert json.loads(request.content) == {"status": "in-progress"}
        return httpx.Response(204)

    tracker = _http(handler)
    task = tracker.get_task("11")
    tracker.set_status("11", "in-progress")

    assert task.title == "Fix memory leak"
    assert task.kind == "bug"
    assert seen == [
        ("GET", "/api/tasks/11", "Bearer s3cr3t"),
        ("PATCH", "/api/tasks/11", "Bearer s3cr3t"),
    ]


def test_http_tracker_errors_map_to_tracker_errors():
    def handler(request):
        if request.url.path.endswith("/404"):
            return httpx.Response(404)
        if request.url.path.endswith("/500"):
            return httpx.Response(500)
        raise httpx.ConnectError("refused", request=request)

    tracker = _http(handler)
    with pytest.raises(TaskNotFound):
        tracker.get_task("404")
    with pytest.raises(TrackerUnavailable):
        tracker.get_task("500")
    with pytest.raises(TrackerUnavailable):
        tracker.get_task("1")
    assert tracker.lookup("1") is None


def test_http_tracker_retries_transport_errors_once():
    attempts = []

    def handler(request):
        attempts.append(request)
        if len(attempts) == 1:
            raise httpx.ConnectError("flaky", request=request)
        return httpx.Response(200, json={"id": 5, "title": "Retry me"})

    assert _http(handler).get_task("5").title == "Retry me"
    assert len(attempts) == 2


def test_build_tracker_selection(tmp_path, monkeypatch, tasks_file):
    config = load_config(tmp_path)
    assert isinstance(build_tracker(config, tmp_path), NullTaskTracker)

    config.tracker.tasks_file = str(tasks_file)
    assert isinstance(build_tracker(config, tmp_path), FileTaskTracker)

    monkeypatch.setenv("GITGATE_TRACKER_URL", "https://tracker.example/api")
    assert isinstance(build_tracker(config, tmp_path), HttpTaskTracker)

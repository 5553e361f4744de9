import subprocess

import pytest

from gitgate.config_loader import BudgetSpec
from gitgate.tasks.pr import GitHubCli, PullRequestError, render_pull_request, render_title
from gitgate.tasks.tracker import TaskRef, Untracked
from gitgate.workspace import DiffStat

STAT = DiffStat(
    files_changed=3,
    insertions=42,
    deletions=7,
    files=(
        ("src/telemetry/buffer.rs", 30, 5),
        ("tests/buffer_test.rs", 10, 0),
        ("docs/telemetry.md", 2, 2),
    ),
)
COMMITS = ["b2c3d4e fix(telemetry): cap the buffer (task 11)", "a1b2c3d test(telemetry): reproduce leak (task 11)"]


def test_tracked_task_pr():
    task = TaskRef(
        id="11",
        title="Fix memory leak",
        status="in-progress",
        description="Telemetry buffer grows without bound",
        test_strategy="Soak test",
        dependencies=["3"],
        subtasks=[TaskRef(id="1", status="done"), TaskRef(id="2", status="pending")],
    )
    draft = render_pull_request(
        task, "11", COMMITS, STAT, head="feature/task-11-fix-memory-leak", base="main",
        budgets=[BudgetSpec(name="startup", unit="ms", threshold=2000)],
    )

    assert draft.title == "Task 11: Fix memory leak"
    assert draft.base == "main"
    assert "Telemetry buffer grows without bound" in draft.body
    assert "3 files changed, 42 insertions(+), 7 deletions(-)" in draft.body
    assert "`src/telemetry/buffer.rs` (+30/-5)" in draft.body
    assert "All subtasks completed (1/2)" in draft.body
    assert "Dependencies resolved: 3" in draft.body
    assert "startup ≤ 2000ms" in draft.body
    assert "**Test Strategy**: Soak test" in draft.body
    assert COMMITS[0] in draft.body


def test_untracked_pr_falls_back_to_id_then_commits():
    draft = render_pull_request(Untracked, "11", COMMITS, STAT, head="feature/task-11", base="main")
    assert draft.title == "Task 11"
    assert "details unavailable" in draft.body

    assert render_title(Untracked, None, COMMITS, "topic") == "test(telemetry): reproduce leak (task 11)"
    assert render_title(Untracked, None, [], "topic") == "topic"


def test_changes_are_grouped():
    body = render_pull_request(Untracked, None, COMMITS, STAT, head="x", base="main").body
    tests_at = body.index("Tests")
    docs_at = body.index("Documentation")
    source_at = body.index("Source")
    assert tests_at < docs_at < source_at
    assert "Task Context" not in body


def test_stalled_gh_becomes_pull_request_error(monkeypatch, tmp_path):
    seen = {}

    def stalled(cmd, **kwargs):
        seen.update(kwargs)
        raise subprocess.TimeoutExpired(cmd, kwargs["timeout"])

    monkeypatch.setattr("gitgate.tasks.pr.shutil.which", lambda name: "/usr/bin/gh")
    monkeypatch.setattr("gitgate.tasks.pr.subprocess.run", stalled)
    draft = render_pull_request(Untracked, "5", COMMITS, STAT, "feature/task-5-x", "main")

    with pytest.raises(PullRequestError, match="timed out after 3s"):
        GitHubCli(tmp_path, timeout=3).create(draft)
    assert seen["timeout"] == 3

import subprocess
from pathlib import Path

import pytest


def git(cwd: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", *args], cwd=cwd, check=True, capture_output=True, text=True,
    )
    return result.stdout


def _identity(path: Path) -> None:
    git(path, "config", "user.name", "Gate Tester")
    git(path, "config", "user.email", "tester@example.com")
    git(path, "config", "commit.gpgsign", "false")


def commit_file(repo: Path, name: str, content: str, message: str) -> None:
    target = repo / name
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(content)
    git(repo, "add", name)
    git(repo, "commit", "-q", "-m", message)


@pytest.fixture(autouse=True)
def _no_tracker_env(monkeypatch):
    monkeypatch.delenv("GITGATE_TRACKER_URL", raising=False)
    monkeypatch.delenv("GITGATE_TRACKER_TOKEN", raising=False)


@pytest.fixture
def repo(tmp_path) -> Path:
    """A repository on `main` with one commit and no remote."""
    path = tmp_path / "work"
    path.mkdir()
    git(path, "init", "-q", "-b", "main")
    _identity(path)
    commit_file(path, "README.md", "# demo\n", "chore: initial commit")
    return path


@pytest.fixture
def remote_pair(tmp_path, repo) -> tuple[Path, Path]:
    """`repo` tracking a bare origin, plus a second clone of the same origin."""
    bare = tmp_path / "origin.git"
    git(tmp_path, "init", "-q", "--bare", "-b", "main", str(bare))
    git(repo, "remote", "add", "origin", str(bare))
    git(repo, "push", "-q", "-u", "origin", "main")

    other = tmp_path / "other"
    git(tmp_path, "clone", "-q", str(bare), str(other))
    _identity(other)
    return repo, other

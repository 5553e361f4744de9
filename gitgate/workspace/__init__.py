"""
gitgate Workspace: the VCS adapter.

Thin, synchronous wrapper over the `git` CLI. Every call is a single
request/response; failures are raised as VcsError carrying git's own
stderr, never interpreted or retried here.

Only non-destructive primitives are exposed: status, diff, branch,
switch, stash push, fetch, merge --ff-only, and a plain (never forced)
push.
"""

from __future__ import annotations

import fnmatch
import subprocess
from dataclasses import dataclass
from pathlib import Path

from loguru import logger


class VcsError(Exception):
    """A git command failed. The message is git's stderr, verbatim."""

    def __init__(self, command: list[str], stderr: str, returncode: int = 1):
        self.command = command
        self.stderr = stderr
        self.returncode = returncode
        super().__init__(f"git failed: {' '.join(command)}\n{stderr.strip()}")


@dataclass(frozen=True)
class StagedChange:
    """One entry of `git diff --name-status`."""
    path: str
    kind: str                    # "A" | "M" | "D" | "R" | "C" | "T"
    old_path: str | None = None  # set on renames/copies


@dataclass(frozen=True)
class DiffStat:
    files_changed: int = 0
    insertions: int = 0
    deletions: int = 0
    files: tuple[tuple[str, int, int], ...] = ()   # (path, added, removed)

    def summary(self) -> str:
        return (
            f"{self.files_changed} file{'s' if self.files_changed != 1 else ''} changed, "
            f"{self.insertions} insertion{'s' if self.insertions != 1 else ''}(+), "
            f"{self.deletions} deletion{'s' if self.deletions != 1 else ''}(-)"
        )


class GitRepo:
    """
    A local repository, addressed by any path inside its working tree.
    """

    def __init__(self, path: Path, timeout: int = 120):
        self.timeout = timeout
        start = Path(path).resolve()
        if not start.exists():
            raise VcsError(["rev-parse"], f"path does not exist: {start}")
        top = self._run_cmd(["git", "rev-parse", "--show-toplevel"], cwd=start, timeout=timeout)
        self.root = Path(top.strip())
        git_dir = Path(self._git("rev-parse", "--git-dir").strip())
        self.git_dir = git_dir if git_dir.is_absolute() else (self.root / git_dir).resolve()

    # ------------------------------------------------------------------
    # Branches
    # ------------------------------------------------------------------

    def current_branch(self) -> str | None:
        """Short name of HEAD's branch, or None when detached."""
        out = self._git("symbolic-ref", "--short", "-q", "HEAD", check=False)
        return out.strip() or None

    def has_remote(self, name: str) -> bool:
        return name in self._git("remote").split()

    def branch_exists(self, name: str) -> bool:
        return self._ok("show-ref", "--verify", "--quiet", f"refs/heads/{name}")

    def remote_branch_exists(self, remote: str, name: str) -> bool:
        return self._ok("show-ref", "--verify", "--quiet", f"refs/remotes/{remote}/{name}")

    def list_branches(self, pattern: str = "*") -> list[tuple[str, bool]]:
        """Return (name, is_remote) for local and remote-tracking branches matching pattern.

        `*` matches across slashes, so "*task-*" finds "feature/task-7-x".
        Remote names are matched without their "<remote>/" prefix.
        """
        out = self._git("for-each-ref", "--format=%(refname)", "refs/heads", "refs/remotes")
        result = []
        for ref in out.splitlines():
            if ref.startswith("refs/heads/"):
                name = ref[len("refs/heads/"):]
                if fnmatch.fnmatchcase(name, pattern):
                    result.append((name, False))
            elif ref.startswith("refs/remotes/"):
                name = ref[len("refs/remotes/"):]
                short = name.split("/", 1)[-1]
                if short != "HEAD" and fnmatch.fnmatchcase(short, pattern):
                    result.append((name, True))
        return result

    def create_branch(self, name: str, start_point: str | None = None) -> None:
        args = ["switch", "-c", name]
        if start_point:
            args.append(start_point)
        self._git(*args)
        logger.info(f"[WORKSPACE] Created branch {name} from {start_point or 'HEAD'}")

    def switch(self, name: str) -> None:
        self._git("switch", name)
        logger.info(f"[WORKSPACE] Switched to {name}")

    def upstream(self) -> str | None:
        """Upstream of the current branch (e.g. 'origin/main'), or None."""
        out = self._git(
            "rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{upstream}",
            check=False,
        )
        return out.strip() or None

    def set_upstream(self, remote: str, branch: str) -> None:
        self._git("branch", f"--set-upstream-to={remote}/{branch}", branch)

    def ahead_behind(self, upstream: str) -> tuple[int, int]:
        """Commits on HEAD not on upstream, and on upstream not on HEAD."""
        out = self._git("rev-list", "--left-right", "--count", f"HEAD...{upstream}")
        ahead, behind = out.split()
        return int(ahead), int(behind)

    # ------------------------------------------------------------------
    # Working tree / index
    # ------------------------------------------------------------------

    def tracked_changes(self) -> list[str]:
        """Porcelain lines for modified tracked files (staged or not)."""
        out = self._git("status", "--porcelain", "--untracked-files=no")
        return [line for line in out.splitlines() if line.strip()]

    def untracked_count(self) -> int:
        return len(self.untracked_files())

    def stash_count(self) -> int:
        out = self._git("stash", "list")
        return len([line for line in out.splitlines() if line.strip()])

    # Path listings use -z: without it git C-quotes non-ASCII names.

    def staged_changes(self) -> list[StagedChange]:
        out = self._git("diff", "--cached", "--name-status", "-M", "-z")
        return _parse_name_status(out)

    def staged_files(self) -> list[str]:
        """Files added/copied/modified/renamed in the index (deletions excluded)."""
        return _split_z(self._git("diff", "--cached", "--name-only", "-z", "--diff-filter=ACMR"))

    def changed_files(self, base: str, head: str = "HEAD") -> list[str]:
        """Files that exist at head and differ from base."""
        return _split_z(self._git("diff", "--name-only", "-z", "--diff-filter=ACMR", f"{base}...{head}"))

    def added_files(self, base: str, head: str) -> list[str]:
        """Files created on head since the merge base with base."""
        return _split_z(self._git("diff", "--name-only", "-z", "--diff-filter=A", f"{base}...{head}"))

    def untracked_files(self) -> list[str]:
        return _split_z(self._git("ls-files", "-z", "--others", "--exclude-standard"))

    def tracked_files(self, rev: str = "HEAD") -> list[str]:
        return _split_z(self._git("ls-tree", "-r", "-z", "--name-only", rev))

    def read_staged(self, path: str) -> bytes:
        """Content of path as recorded in the index."""
        return self._git_bytes("show", f":{path}")

    def read_blob(self, rev: str, path: str) -> bytes:
        return self._git_bytes("show", f"{rev}:{path}")

    def diff_stat(self, base: str, head: str = "HEAD") -> DiffStat:
        tokens = self._git("diff", "--numstat", "-z", f"{base}...{head}").split("\0")
        files = []
        insertions = deletions = 0
        while tokens:
            parts = tokens.pop(0).split("\t", 2)
            if len(parts) != 3:
                continue
            path = parts[2]
            if not path and len(tokens) >= 2:
                # Renames: "<added>\t<removed>\t\0<old>\0<new>\0"
                path = tokens[1]
                del tokens[:2]
            added = int(parts[0]) if parts[0].isdigit() else 0
            removed = int(parts[1]) if parts[1].isdigit() else 0
            files.append((path, added, removed))
            insertions += added
            deletions += removed
        return DiffStat(
            files_changed=len(files),
            insertions=insertions,
            deletions=deletions,
            files=tuple(files),
        )

    def log_oneline(self, rev_range: str, limit: int = 50) -> list[str]:
        out = self._git("log", "--oneline", f"-{limit}", rev_range)
        return [line for line in out.splitlines() if line]

    def git_path(self, name: str) -> Path:
        """Where git itself looks for `name`: shared across worktrees, honours core.hooksPath."""
        p = Path(self._git("rev-parse", "--git-path", name).strip())
        return p if p.is_absolute() else (self.root / p).resolve()

    def last_fetch(self) -> float | None:
        fetch_head = self.git_dir / "FETCH_HEAD"
        return fetch_head.stat().st_mtime if fetch_head.exists() else None

    # ------------------------------------------------------------------
    # Mutations (each one an atomic git primitive)
    # ------------------------------------------------------------------

    def fetch(self, remote: str) -> None:
        self._git("fetch", "--quiet", remote)

    def stash(self, message: str) -> None:
        self._git("stash", "push", "-m", message)
        logger.info(f"[WORKSPACE] Stashed local changes: {message}")

    def fast_forward(self, upstream: str) -> None:
        self._git("merge", "--ff-only", upstream)
        logger.info(f"[WORKSPACE] Fast-forwarded to {upstream}")

    def push(self, remote: str, branch: str, set_upstream: bool = False) -> None:
        """Plain push. Never forced."""
        cmd = ["push", remote, branch]
        if set_upstream:
            cmd.insert(1, "-u")
        self._git(*cmd)
        logger.info(f"[WORKSPACE] Pushed {branch} to {remote}")

    def commit_from_file(self, message_file: Path) -> str:
        self._git("commit", "-F", str(message_file))
        return self._git("rev-parse", "HEAD").strip()

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _ok(self, *args: str) -> bool:
        result = subprocess.run(
            ["git", *args], cwd=self.root, capture_output=True, text=True, timeout=self.timeout,
        )
        return result.returncode == 0

    def _git(self, *args: str, check: bool = True) -> str:
        return self._run_cmd(["git", *args], cwd=self.root, check=check, timeout=self.timeout)

    def _git_bytes(self, *args: str) -> bytes:
        cmd = ["git", *args]
        result = subprocess.run(cmd, cwd=self.root, capture_output=True, timeout=self.timeout)
        if result.returncode != 0:
            raise VcsError(cmd, result.stderr.decode("utf-8", errors="replace"), result.returncode)
        return result.stdout

    @staticmethod
    def _run_cmd(cmd: list[str], cwd: Path, check: bool = True, timeout: int = 120) -> str:
        result = subprocess.run(cmd, cwd=cwd, capture_output=True, text=True, timeout=timeout)
        if check and result.returncode != 0:
            raise VcsError(cmd, result.stderr, result.returncode)
        return result.stdout if result.returncode == 0 else ""


def _split_z(output: str) -> list[str]:
    return [p for p in output.split("\0") if p]


def _parse_name_status(output: str) -> list[StagedChange]:
    """Parse `--name-status -z`: status, path[, new path], all NUL-separated."""
    tokens = output.split("\0")
    changes = []
    i = 0
    while i + 1 < len(tokens):
        status, i = tokens[i], i + 1
        if not status:
            continue
        kind = status[0]
        if kind in ("R", "C") and i + 1 < len(tokens):
            changes.append(StagedChange(path=tokens[i + 1], kind=kind, old_path=tokens[i]))
            i += 2
        else:
            changes.append(StagedChange(path=tokens[i], kind=kind))
            i += 1
    return changes

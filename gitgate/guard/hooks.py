"""
gitgate Guard: Hook Installer

Writes the three lifecycle hooks. Each hook is a tiny shell script that
calls back into gitgate and exits with its exit code.

Installation is idempotent: the rendered script is the same bytes every
time, an existing gitgate hook is left alone unless forced, and forcing
writes exactly one copy.
"""

from __future__ import annotations

import os
import shlex
import shutil
import stat
import sys
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from loguru import logger

from gitgate.config_loader import ConfigError

MARKER = "# managed-by: gitgate"


class HookName(str, Enum):
    PRE_COMMIT = "pre-commit"
    COMMIT_MSG = "commit-msg"
    PRE_PUSH = "pre-push"


class InstallOutcome(str, Enum):
    INSTALLED = "installed"
    ALREADY_INSTALLED = "already installed"
    REPLACED = "replaced"
    SKIPPED_FOREIGN = "skipped (existing hook not managed by gitgate)"


@dataclass(frozen=True)
class HookResult:
    hook: HookName
    path: Path
    outcome: InstallOutcome
    backup: Path | None = None


def _invocation() -> str:
    return f"{shlex.quote(sys.executable)} -m gitgate"


def render_hook(hook: HookName, invocation: str | None = None) -> str:
    gg = invocation or _invocation()
    body = {
        HookName.PRE_COMMIT: f"{gg} scan || exit $?\nexec {gg} gate\n",
        HookName.COMMIT_MSG: f'exec {gg} check-msg "$1"\n',
        HookName.PRE_PUSH: f"{gg} scan --outgoing || exit $?\nexec {gg} gate --outgoing\n",
    }[hook]
    return f"#!/bin/sh\n{MARKER} ({hook.value})\n{body}"


class HookInstaller:

    def __init__(self, hooks_dir: Path, invocation: str | None = None):
        self.hooks_dir = hooks_dir
        self.invocation = invocation

    def install(self, force: bool = False) -> list[HookResult]:
        if not self.hooks_dir.is_dir():
            raise ConfigError(f"Not a repository: hook directory {self.hooks_dir} does not exist")
        return [self._install_one(hook, force) for hook in HookName]

    def _install_one(self, hook: HookName, force: bool) -> HookResult:
        path = self.hooks_dir / hook.value
        content = render_hook(hook, self.invocation)
        backup = None

        if path.exists():
            existing = path.read_text(encoding="utf-8", errors="replace")
            managed = MARKER in existing
            if not force:
                if managed:
                    logger.info(f"[HOOKS] {hook.value}: already installed")
                    return HookResult(hook, path, InstallOutcome.ALREADY_INSTALLED)
                logger.warning(f"[HOOKS] {hook.value}: foreign hook present, use --force to replace")
                return HookResult(hook, path, InstallOutcome.SKIPPED_FOREIGN)

            if not managed:
                candidate = path.with_name(path.name + ".backup")
                if not candidate.exists():
                    shutil.copy2(path, candidate)
                    logger.info(f"[HOOKS] Backed up existing {hook.value} to {candidate.name}")
                backup = candidate
            outcome = InstallOutcome.REPLACED
        else:
            outcome = InstallOutcome.INSTALLED

        self._write(path, content)
        logger.info(f"[HOOKS] {hook.value}: {outcome.value}")
        return HookResult(hook, path, outcome, backup)

    @staticmethod
    def _write(path: Path, content: str) -> None:
        tmp = path.with_name(f".{path.name}.tmp")
        tmp.write_text(content, encoding="utf-8")
        tmp.chmod(tmp.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        os.replace(tmp, path)

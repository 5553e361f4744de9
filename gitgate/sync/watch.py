"""
gitgate Sync: Watch Monitor

Single-threaded polling loop over the Status Analyzer. Emits `sync.alert`
whenever the issues differ from the previous poll, either by kind or by
whether a kind is still auto-fixable. It only observes; nothing is
repaired here.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Dict, FrozenSet, Optional, Tuple

from loguru import logger

from gitgate.sync.status import IssueKind, SyncStatusAnalyzer
from gitgate.workspace import VcsError

Emit = Callable[[str, str, Dict[str, Any]], Any]
Signature = FrozenSet[Tuple[IssueKind, bool]]


class WatchMonitor:

    def __init__(
        self,
        analyzer: SyncStatusAnalyzer,
        emit: Emit,
        interval: float = 60,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.analyzer = analyzer
        self.emit = emit
        self.interval = interval
        self.sleep = sleep

    def poll_once(self, previous: Optional[Signature]) -> Optional[Signature]:
        """One poll. Returns the (kind, auto_fixable) set to compare the next poll against."""
        try:
            state, issues = self.analyzer.analyze()
        except VcsError as e:
            logger.error(f"[WATCH] Poll failed: {e}")
            self.emit("sync.error", "watch", {"error": str(e)})
            return previous

        current = frozenset((i.kind, i.auto_fixable) for i in issues)
        if previous is None:
            self.emit("sync.snapshot", "watch", {
                "branch": state.branch,
                "issues": sorted(k.value for k, _ in current),
            })
        elif current != previous:
            now = {k for k, _ in current}
            before = {k for k, _ in previous}
            appeared = sorted(k.value for k in now - before)
            disappeared = sorted(k.value for k in before - now)
            changed = sorted(k.value for k, _ in current - previous if k in before)
            logger.info(f"[WATCH] Issues changed: +{appeared} -{disappeared} ~{changed}")
            self.emit("sync.alert", "watch", {
                "branch": state.branch,
                "appeared": appeared,
                "disappeared": disappeared,
                "changed": changed,
                "issues": [
                    {"kind": i.kind.value, "auto_fixable": i.auto_fixable, "detail": i.detail}
                    for i in issues
                ],
            })
        return current

    def run(self, max_polls: Optional[int] = None) -> int:
        """Poll until interrupted (or max_polls). Returns the number of polls made."""
        previous: Optional[Signature] = None
        polls = 0
        while max_polls is None or polls < max_polls:
            if polls:
                self.sleep(self.interval)
            previous = self.poll_once(previous)
            polls += 1
        return polls

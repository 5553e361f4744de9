import pytest
from conftest import commit_file, git

from gitgate.event_bus import EventBus
from gitgate.sync.fixer import AutoFixer, FixResult
from gitgate.sync.status import IssueKind, RepoState, SyncIssue, SyncStatusAnalyzer, derive_issues, manual_command
from gitgate.sync.watch import WatchMonitor
from gitgate.workspace import GitRepo, VcsError


def _kinds(issues):
    return [i.kind for i in issues]


# ---------------------------------------------------------------------------
# Decision table
# ---------------------------------------------------------------------------

def _state(**kw):
    base = dict(branch="main", has_upstream=True, upstream="origin/main", remote_branch_exists=True)
    return RepoState(**{**base, **kw})


@pytest.mark.parametrize("state, expected", [
    (_state(), []),
    (_state(behind=3), [(IssueKind.BEHIND, True)]),
    (_state(behind=1, untracked_collisions=("new.txt",)), [(IssueKind.BEHIND, False)]),
    (_state(ahead=1), [(IssueKind.AHEAD, False)]),
    (_state(ahead=2, behind=1), [(IssueKind.DIVERGED, False)]),
    (_state(dirty=True), [(IssueKind.DIRTY, True)]),
    (_state(dirty=True, behind=1), [(IssueKind.DIRTY, True), (IssueKind.BEHIND, True)]),
    (_state(has_upstream=False, upstream=None), [(IssueKind.NO_UPSTREAM, True)]),
    (_state(has_upstream=False, upstream=None, remote_branch_exists=False), [(IssueKind.NO_UPSTREAM, False)]),
    (_state(branch=None, has_upstream=False, upstream=None), [(IssueKind.NO_UPSTREAM, False)]),
    (_state(stash_count=2), [(IssueKind.STASHED, False)]),
])
def test_decision_table(state, expected):
    assert [(i.kind, i.auto_fixable) for i in derive_issues(state)] == expected


def test_manual_commands():
    state = _state(has_upstream=False, upstream=None, remote_branch_exists=False, branch="topic")
    issue = derive_issues(state)[0]
    assert manual_command(issue, state) == "git push -u origin topic"
    assert manual_command(SyncIssue(IssueKind.BEHIND, True), _state(behind=1)) == "git merge --ff-only origin/main"


# ---------------------------------------------------------------------------
# Analyzer + fixer against real repositories
# ---------------------------------------------------------------------------

def _push_from_other(other, name="other.txt"):
    commit_file(other, name, "from elsewhere\n", f"feat: add {name}")
    git(other, "push", "-q", "origin", "main")


def _fixer(repo, **kw):
    return AutoFixer(SyncStatusAnalyzer(GitRepo(repo), "origin"), **kw)


def test_ahead_behind_counts_match_git(remote_pair):
    repo, other = remote_pair
    _push_from_other(other)
    commit_file(repo, "local.txt", "mine\n", "feat: local")
    commit_file(repo, "local2.txt", "mine\n", "feat: local 2")

    state, issues = SyncStatusAnalyzer(GitRepo(repo)).analyze()
    counts = git(repo, "rev-list", "--left-right", "--count", "HEAD...origin/main").split()
    assert (state.ahead, state.behind) == (int(counts[0]), int(counts[1])) == (2, 1)
    assert _kinds(issues) == [IssueKind.DIVERGED]


def test_behind_is_fast_forwarded_once(remote_pair):
    repo, other = remote_pair
    _push_from_other(other)

    first = _fixer(repo).run()
    assert [(a.operation, a.result) for a in first.actions] == [("fast-forward", FixResult.APPLIED)]
    assert first.resolved
    assert (repo / "other.txt").exists()

    second = _fixer(repo).run()
    assert second.actions == []
    assert second.resolved


def test_diverged_is_reported_not_touched(remote_pair):
    repo, other = remote_pair
    _push_from_other(other)
    commit_file(repo, "local.txt", "mine\n", "feat: local")
    (repo / "README.md").write_text("edited\n")
    head = git(repo, "rev-parse", "HEAD")

    report = _fixer(repo).run()
    assert report.actions == []
    assert [c.kind for c in report.unresolved] == [IssueKind.DIVERGED, IssueKind.DIRTY]
    assert "git pull --rebase" in report.unresolved[0].command
    assert git(repo, "rev-parse", "HEAD") == head
    assert git(repo, "stash", "list") == ""


def test_dirty_and_behind_are_stashed_then_fast_forwarded(remote_pair):
    repo, other = remote_pair
    _push_from_other(other)
    (repo / "README.md").write_text("work in progress\n")

    report = _fixer(repo).run()
    assert [a.operation for a in report.actions] == ["stash", "fast-forward"]
    assert report.resolved and report.stashed
    assert [a.kind for a in report.advisories] == [IssueKind.STASHED]

    again = _fixer(repo).run()
    assert again.actions == []
    assert again.resolved


def test_no_upstream_set_when_remote_branch_exists(remote_pair):
    repo, _ = remote_pair
    git(repo, "switch", "-q", "-c", "topic")
    git(repo, "push", "-q", "origin", "topic")

    report = _fixer(repo).run()
    assert [a.operation for a in report.actions] == ["set-upstream"]
    assert GitRepo(repo).upstream() == "origin/topic"


def test_unpushed_branch_needs_the_user(remote_pair):
    repo, _ = remote_pair
    git(repo, "switch", "-q", "-c", "topic")

    report = _fixer(repo).run()
    assert report.actions == []
    assert [(c.kind, c.command) for c in report.unresolved] == [
        (IssueKind.NO_UPSTREAM, "git push -u origin topic"),
    ]


def test_ahead_requires_explicit_push(remote_pair):
    repo, _ = remote_pair
    commit_file(repo, "local.txt", "mine\n", "feat: local")

    blocked = _fixer(repo).run()
    assert blocked.actions == []
    assert [c.kind for c in blocked.unresolved] == [IssueKind.AHEAD]

    pushed = _fixer(repo, allow_push=True).run()
    assert [(a.operation, a.result) for a in pushed.actions] == [("push", FixResult.APPLIED)]
    assert pushed.resolved


def test_dry_run_changes_nothing(remote_pair):
    repo, other = remote_pair
    _push_from_other(other)
    head = git(repo, "rev-parse", "HEAD")

    report = _fixer(repo, dry_run=True).run()
    assert [(a.operation, a.result) for a in report.actions] == [("fast-forward", FixResult.SKIPPED)]
    assert git(repo, "rev-parse", "HEAD") == head


def test_failed_repair_stops_and_reports(remote_pair):
    repo, other = remote_pair
    _push_from_other(other)

    class BrokenRepo(GitRepo):
        def fast_forward(self, upstream):
            raise VcsError(["merge", "--ff-only", upstream], "fatal: simulated\n")

    report = AutoFixer(SyncStatusAnalyzer(BrokenRepo(repo))).run()
    assert [(a.operation, a.result) for a in report.actions] == [("fast-forward", FixResult.FAILED)]
    assert report.actions[0].detail == "fatal: simulated"
    assert [c.kind for c in report.unresolved] == [IssueKind.BEHIND]


def test_behind_onto_untracked_file_is_left_to_the_user(remote_pair):
    repo, other = remote_pair
    _push_from_other(other, "new.txt")
    (repo / "new.txt").write_text("my local draft\n")

    state, issues = SyncStatusAnalyzer(GitRepo(repo)).analyze()
    assert state.untracked_collisions == ("new.txt",)
    assert [(i.kind, i.auto_fixable) for i in issues] == [(IssueKind.BEHIND, False)]

    for _ in range(2):
        report = _fixer(repo).run()
        assert report.actions == []
        assert [c.kind for c in report.unresolved] == [IssueKind.BEHIND]
        assert report.unresolved[0].command.startswith("move or remove new.txt, then git merge --ff-only")
    assert (repo / "new.txt").read_text() == "my local draft\n"


# ---------------------------------------------------------------------------
# Watch
# ---------------------------------------------------------------------------

class ScriptedAnalyzer:
    def __init__(self, polls):
        self.polls = list(polls)

    def analyze(self):
        step = self.polls.pop(0)
        if isinstance(step, Exception):
            raise step
        state = RepoState(branch="main", has_upstream=True, upstream="origin/main")
        return state, [SyncIssue(*s) if isinstance(s, tuple) else SyncIssue(s, True) for s in step]


def test_watch_alerts_only_on_change():
    bus = EventBus()
    events = []
    bus.subscribe(events.append)
    analyzer = ScriptedAnalyzer([
        [],
        [],
        [IssueKind.BEHIND],
        VcsError(["fetch"], "could not resolve host"),
        [IssueKind.BEHIND],
        [IssueKind.DIRTY],
    ])
    sleeps = []

    polls = WatchMonitor(analyzer, bus.emit, interval=5, sleep=sleeps.append).run(max_polls=6)

    assert polls == 6
    assert sleeps == [5] * 5
    assert [e.event_type for e in events] == ["sync.snapshot", "sync.alert", "sync.error", "sync.alert"]
    first_alert, second_alert = events[1].payload, events[3].payload
    assert (first_alert["appeared"], first_alert["disappeared"]) == (["behind"], [])
    assert (second_alert["appeared"], second_alert["disappeared"]) == (["dirty"], ["behind"])


def test_watch_alerts_when_fixability_changes():
    bus = EventBus()
    events = []
    bus.subscribe(events.append)
    analyzer = ScriptedAnalyzer([
        [(IssueKind.NO_UPSTREAM, True)],
        [(IssueKind.NO_UPSTREAM, True)],
        [(IssueKind.NO_UPSTREAM, False)],
    ])

    WatchMonitor(analyzer, bus.emit, interval=0, sleep=lambda s: None).run(max_polls=3)

    assert [e.event_type for e in events] == ["sync.snapshot", "sync.alert"]
    alert = events[1].payload
    assert (alert["appeared"], alert["disappeared"], alert["changed"]) == ([], [], ["noUpstream"])
    assert alert["issues"][0]["auto_fixable"] is False

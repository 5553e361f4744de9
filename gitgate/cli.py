"""
GITGATE CLI: The Interface

Guards (run by the installed hooks, usable by hand):
  - gitgate scan [--outgoing]        secrets in staged (or outgoing) files
  - gitgate gate [--outgoing]        performance budgets
  - gitgate check-msg <file>         conventional-commit grammar

Task workflow:
  - gitgate install-hooks [--force]
  - gitgate branch <taskId> | --list
  - gitgate commit
  - gitgate pr [taskId]

Sync:
  - gitgate status [--detailed]
  - gitgate auto-fix [--push]
  - gitgate watch

Exit codes: 0 ok, 1 blocked / aborted / unresolved, 2 configuration or git failure.
"""

from __future__ import annotations

import dataclasses
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

import typer
from dotenv import load_dotenv
from loguru import logger
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table

from gitgate import __codename__, __tagline__, __version__
from gitgate.audit_logger import EventLog
from gitgate.config_loader import ConfigError, GitGateConfig, load_config
from gitgate.context import RunContext
from gitgate.event_bus import GateEvent
from gitgate.guard.commit_msg import validate_message
from gitgate.guard.hooks import HookInstaller, InstallOutcome
from gitgate.guard.patterns import load_registry, resolve_registry_path
from gitgate.guard.perf_gate import GateResult, MetricsUnavailable, PerformanceGate, build_metrics_source
from gitgate.guard.scanner import ScanReport, SecretsScanner
from gitgate.sync.fixer import AutoFixer, FixReport, FixResult
from gitgate.sync.status import ADVISORY, RepoState, SyncIssue, SyncStatusAnalyzer, manual_command
from gitgate.sync.watch import WatchMonitor
from gitgate.tasks.branch import TaskBranchCreator
from gitgate.tasks.commit import CommitPlan, plan_commit
from gitgate.tasks.pr import GitHubCli, PullRequestError, render_pull_request
from gitgate.tasks.tracker import TASK_ID, TaskRef, Untracked, build_tracker, task_id_from_branch
from gitgate.workspace import GitRepo, VcsError

# Load .env from current directory or home
load_dotenv()
load_dotenv(Path.home() / ".gitgate" / ".env")

app = typer.Typer(
    name="gitgate",
    help=f"{__codename__}: {__tagline__}\nSafety gates and sync automation for git.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()

EXIT_BLOCKED = 1
EXIT_ERROR = 2
REVIEW = "review"


def version_callback(value: bool):
    if value:
        console.print(f"{__codename__} v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
):
    pass


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

def _open_repo(path: Path) -> GitRepo:
    try:
        return GitRepo(path)
    except VcsError:
        raise ConfigError(f"Not a git repository: {path.resolve()}")


@contextmanager
def _session(command: str, repo: Path, verbose: bool) -> Iterator[tuple[RunContext, GitRepo]]:
    """
    Open the repo, load config, start the event log.

    Configuration, git and metrics failures end the command with exit 2;
    the event log is written whichever way the command ends.
    """
    _configure_logging(verbose)
    ctx: Optional[RunContext] = None
    log: Optional[EventLog] = None
    try:
        git = _open_repo(repo)
        config = load_config(git.root)
        ctx = RunContext(command=command, repo_root=git.root, git_dir=git.git_dir, config=config)
        if config.logging.event_log:
            log = EventLog(ctx.resolve_git(config.logging.log_dir), command, ctx.run_id, ctx.bus)
        ctx.emit("command.started", "cli", {"repo": str(git.root), "version": __version__})
        yield ctx, git
    except (ConfigError, VcsError, MetricsUnavailable) as e:
        console.print(f"[red]{type(e).__name__}:[/] {escape(str(e))}")
        if ctx is not None:
            ctx.emit("command.failed", "cli", {"error": type(e).__name__, "message": str(e)})
        raise typer.Exit(EXIT_ERROR)
    finally:
        if log is not None:
            log.flush()


def _outgoing_files(git: GitRepo, config: GitGateConfig) -> list[str]:
    """Files touched by commits that a push would send."""
    base = git.upstream()
    if base is None:
        remote, integration = config.git.remote, config.git.integration_branch
        if git.remote_branch_exists(remote, integration):
            base = f"{remote}/{integration}"
        elif git.branch_exists(integration) and git.current_branch() != integration:
            base = integration
    if base is None:
        return git.tracked_files("HEAD")
    return git.changed_files(base, "HEAD")


# ---------------------------------------------------------------------------
# Guards
# ---------------------------------------------------------------------------

@app.command()
def scan(
    outgoing: bool = typer.Option(False, "--outgoing", help="Scan files in unpushed commits (pre-push)"),
    repo: Path = typer.Option(Path("."), "--repo", "-r", help="Path to the repository"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Scan staged files for secrets. Exit 1 if anything is found."""
    with _session("scan", repo, verbose) as (ctx, git):
        secrets = ctx.config.secrets
        registry = load_registry(resolve_registry_path(git.root, secrets.patterns_file))
        scanner = SecretsScanner(registry, secrets.binary_extensions, secrets.snippet_length)

        if outgoing:
            report = scanner.scan(_outgoing_files(git, ctx.config), lambda p: git.read_blob("HEAD", p))
        else:
            report = scanner.scan(git.staged_files(), git.read_staged)

        ctx.emit("scan.completed", "scanner", {
            **report.summary(),
            "outgoing": outgoing,
            "results": [dataclasses.asdict(f) for f in report.findings],
        })
        _print_scan_report(report, outgoing)
        if report.blocked:
            raise typer.Exit(EXIT_BLOCKED)


def _print_scan_report(report: ScanReport, outgoing: bool) -> None:
    if not report.blocked:
        console.print(f"[green]✓ No secrets found[/] [dim]({report.files_scanned} files scanned)[/]")
        return

    table = Table(title="🔒 Secrets Detected", border_style="red")
    table.add_column("File")
    table.add_column("Line", justify="right")
    table.add_column("Pattern")
    table.add_column("Snippet")
    for f in report.findings:
        table.add_row(
            escape(f.file),
            str(f.line) if f.line is not None else "-",
            escape(f.label),
            escape(f.snippet) if f.snippet else "[dim](file blocked by name)[/]",
        )
    console.print(table)

    console.print("\n[bold]To fix:[/]")
    for path in report.by_file():
        if any(b.file == path for b in report.blocked_files):
            console.print(f"  git rm --cached {escape(path)}   [dim]# and add it to .gitignore[/]")
        elif outgoing:
            console.print(f"  [dim]remove the secret from[/] {escape(path)} [dim]and amend or add a commit[/]")
        else:
            console.print(f"  [dim]remove the secret from[/] {escape(path)}[dim], then[/] git add {escape(path)}")
    console.print("  [dim]Use environment variables or a secrets manager instead.[/]")


@app.command()
def gate(
    outgoing: bool = typer.Option(False, "--outgoing", help="Evaluate files in unpushed commits (pre-push)"),
    repo: Path = typer.Option(Path("."), "--repo", "-r", help="Path to the repository"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Check performance budgets when build-affecting files change."""
    with _session("gate", repo, verbose) as (ctx, git):
        perf = ctx.config.performance
        if not perf.enabled:
            console.print("[dim]Performance gate disabled (performance.enabled: false)[/]")
            ctx.emit("gate.skipped", "gate", {"reason": "disabled"})
            return

        files = _outgoing_files(git, ctx.config) if outgoing else git.staged_files()
        gate_ = PerformanceGate(perf.budgets, perf.triggers, build_metrics_source(perf, git.root))
        result = gate_.evaluate(files)

        ctx.emit("gate.completed", "gate", {
            "passed": result.passed,
            "triggered": result.triggered,
            "trigger_files": result.trigger_files,
            "metrics": [dataclasses.asdict(m) | {"passed": m.passed} for m in result.metrics],
        })
        _print_gate_result(result)
        if not result.passed:
            raise typer.Exit(EXIT_BLOCKED)


def _print_gate_result(result: GateResult) -> None:
    if not result.triggered:
        console.print("[green]✓ Performance gate not triggered[/] [dim](no build-affecting files)[/]")
        return

    table = Table(title="⚡ Performance Budgets", border_style="cyan")
    table.add_column("Metric")
    table.add_column("Measured", justify="right")
    table.add_column("Budget", justify="right")
    table.add_column("Status")
    for m in result.metrics:
        op = "≤" if m.comparison == "max" else "≥"
        if not m.passed:
            status = "[red]✗ FAIL[/]"
        elif m.warning:
            status = "[yellow]⚠ WARN[/]"
        else:
            status = "[green]✓ PASS[/]"
        table.add_row(escape(m.name), f"{m.measured:g}{m.unit}", f"{op} {m.threshold:g}{m.unit}", status)
    if result.metrics:
        console.print(table)

    if result.passed:
        console.print("[green]✓ All performance budgets met[/]")
        return
    console.print(f"\n[red]✗ {len(result.failures)} budget(s) exceeded[/]")
    console.print("[dim]Triggered by:[/] " + escape(", ".join(result.trigger_files)))
    console.print("[dim]Optimize the regression, or revisit performance.budgets in .gitgate/config.yaml[/]")


@app.command("check-msg")
def check_msg(
    message_file: Path = typer.Argument(..., help="Commit message file (passed by the commit-msg hook)"),
    repo: Path = typer.Option(Path("."), "--repo", "-r", help="Path to the repository"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Validate a commit message against the conventional-commit grammar."""
    with _session("check-msg", repo, verbose) as (ctx, git):
        path = message_file if message_file.is_absolute() else Path.cwd() / message_file
        try:
            message = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigError(f"Cannot read commit message file {path}: {e}")

        commit = ctx.config.commit
        check = validate_message(
            message,
            commit.types,
            require_task=commit.require_task_reference,
            branch_task_id=task_id_from_branch(git.current_branch()),
        )
        ctx.emit("commit_msg.checked", "commit-msg", {"valid": check.valid, "errors": check.errors})
        if check.valid:
            return

        console.print(f"[red]✗ Invalid commit message:[/] {escape(check.header)}")
        for err in check.errors:
            console.print(f"  • {escape(err)}")
        console.print("\n[dim]Example:[/] feat(auth): add token refresh (task 12)")
        raise typer.Exit(EXIT_BLOCKED)


@app.command("install-hooks")
def install_hooks(
    force: bool = typer.Option(False, "--force", "-f", help="Replace existing hooks (foreign hooks are backed up)"),
    repo: Path = typer.Option(Path("."), "--repo", "-r", help="Path to the repository"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Install the pre-commit, commit-msg and pre-push hooks."""
    with _session("install-hooks", repo, verbose) as (ctx, git):
        configured = Path(ctx.config.hooks.directory)
        hooks_dir = configured if configured.is_absolute() else git.git_path(str(configured))
        results = HookInstaller(hooks_dir).install(force=force)

        table = Table(title="🪝 Git Hooks", border_style="cyan")
        table.add_column("Hook")
        table.add_column("Result")
        table.add_column("Backup")
        for r in results:
            color = "yellow" if r.outcome == InstallOutcome.SKIPPED_FOREIGN else "green"
            table.add_row(r.hook.value, f"[{color}]{r.outcome.value}[/]", r.backup.name if r.backup else "")
        console.print(table)

        ctx.emit("hooks.installed", "hooks", {
            "force": force,
            "results": {r.hook.value: r.outcome.value for r in results},
        })
        if any(r.outcome == InstallOutcome.SKIPPED_FOREIGN for r in results):
            console.print("[dim]Re-run with --force to replace foreign hooks (they are backed up first).[/]")


# ---------------------------------------------------------------------------
# Task workflow
# ---------------------------------------------------------------------------

@app.command()
def branch(
    task_id: Optional[str] = typer.Argument(None, help="Task id, e.g. 11 or 11.2"),
    list_branches: bool = typer.Option(False, "--list", "-l", help="List task branches"),
    repo: Path = typer.Option(Path("."), "--repo", "-r", help="Path to the repository"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Create (or switch to) the branch for a task."""
    with _session("branch", repo, verbose) as (ctx, git):
        tracker = build_tracker(ctx.config, git.root)
        try:
            creator = TaskBranchCreator(
                git, tracker, ctx.config.git.remote, ctx.config.git.integration_branch,
            )

            if list_branches:
                _print_task_branches(creator.list_task_branches(), tracker, git.current_branch())
                return

            if not task_id or not TASK_ID.match(task_id):
                console.print("[red]Specify a task id (e.g. 11 or 11.2), or --list[/]")
                raise typer.Exit(EXIT_ERROR)

            outcome = creator.create(task_id)
        finally:
            tracker.close()

        ctx.emit("branch.ready", "branch", {
            "task_id": task_id,
            "branch": outcome.branch,
            "created": outcome.created,
            "tracked": outcome.task is not None,
            "status_updated": outcome.status_updated,
        })

        if outcome.created:
            console.print(f"[green]✓ Created[/] [bold]{escape(outcome.branch)}[/] "
                          f"[dim]from {escape(outcome.start_point or 'HEAD')}[/]")
        else:
            console.print(f"[green]✓ Switched to existing branch[/] [bold]{escape(outcome.branch)}[/]")
        if outcome.task is not None:
            console.print(f"  Task {escape(outcome.task.id)}: {escape(outcome.task.title)}")
            if outcome.status_updated:
                console.print("  [dim]Status → in-progress[/]")
        else:
            console.print(f"  [yellow]Task {escape(task_id)} untracked[/] [dim](tracker unavailable or task unknown)[/]")


def _print_task_branches(rows, tracker, current: Optional[str]) -> None:
    if not rows:
        console.print("[dim]No task branches.[/]")
        return
    table = Table(title="Task Branches", border_style="cyan")
    table.add_column("")
    table.add_column("Branch")
    table.add_column("Task")
    table.add_column("Status")
    titles: dict[str, Optional[TaskRef]] = {}
    for name, is_remote, tid in rows:
        if tid and tid not in titles:
            titles[tid] = tracker.lookup(tid)
        task = titles.get(tid) if tid else None
        marker = "*" if name == current else ""
        label = escape(name) if not is_remote else f"[dim]{escape(name)}[/]"
        table.add_row(
            marker,
            label,
            escape(f"{tid}: {task.title}" if task else (tid or "")),
            escape(task.status) if task else "",
        )
    console.print(table)


@app.command()
def commit(
    task: Optional[str] = typer.Option(None, "--task", "-t", help="Task id (default: from the branch name)"),
    breaking: Optional[str] = typer.Option(None, "--breaking", help="Describe a breaking change"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Accept the generated message without prompting"),
    repo: Path = typer.Option(Path("."), "--repo", "-r", help="Path to the repository"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Commit staged changes with a generated conventional message."""
    with _session("commit", repo, verbose) as (ctx, git):
        changes = git.staged_changes()
        if not changes:
            console.print("[yellow]Nothing staged.[/] [dim]Stage changes with git add first.[/]")
            raise typer.Exit(EXIT_BLOCKED)

        tracker = build_tracker(ctx.config, git.root)
        try:
            plan = plan_commit(changes, tracker.lookup, branch=git.current_branch(), task_id=task)
        finally:
            tracker.close()
        if breaking:
            plan = dataclasses.replace(plan, breaking=breaking)

        if not yes:
            plan = _edit_plan(plan, ctx.config.commit.types)

        message = plan.render()
        check = validate_message(message, ctx.config.commit.types)
        if not check.valid:
            for err in check.errors:
                console.print(f"[red]✗[/] {escape(err)}")
            raise typer.Exit(EXIT_BLOCKED)

        console.print(Panel(escape(message), title="Commit message", border_style="cyan"))
        if not yes and not Confirm.ask("[bold]Create this commit?[/]", default=True):
            console.print("[yellow]Aborted.[/]")
            ctx.emit("commit.aborted", "commit", {"header": plan.header()})
            raise typer.Exit(EXIT_BLOCKED)

        message_file = ctx.resolve_git("GITGATE_COMMIT_MSG")
        message_file.write_text(message + "\n", encoding="utf-8")
        try:
            sha = git.commit_from_file(message_file)
        finally:
            message_file.unlink(missing_ok=True)

        ctx.emit("commit.created", "commit", {
            "sha": sha,
            "header": plan.header(),
            "task_id": plan.task_id,
            "tracked": plan.task is not Untracked,
        })
        console.print(f"[green]✓ Committed[/] {sha[:8]} {escape(plan.header())}")


def _edit_plan(plan: CommitPlan, types: list[str]) -> CommitPlan:
    type_ = Prompt.ask("Type", choices=types, default=plan.type)
    scope = Prompt.ask("Scope (empty for none)", default=plan.scope or "").strip() or None
    subject = Prompt.ask("Subject", default=plan.subject).strip() or plan.subject
    breaking = plan.breaking
    if breaking is None and Confirm.ask("Breaking change?", default=False):
        breaking = Prompt.ask("Describe the breaking change").strip() or None
    return dataclasses.replace(plan, type=type_, scope=scope, subject=subject, breaking=breaking)


@app.command()
def pr(
    task_id: Optional[str] = typer.Argument(None, help="Task id (default: from the branch name)"),
    base: Optional[str] = typer.Option(None, "--base", "-b", help="Target branch (default: integration branch)"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Render the PR without pushing or creating it"),
    repo: Path = typer.Option(Path("."), "--repo", "-r", help="Path to the repository"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Push the current branch and open a pull request for its task."""
    with _session("pr", repo, verbose) as (ctx, git):
        cfg = ctx.config
        head = git.current_branch()
        base = base or cfg.git.integration_branch
        if head is None:
            console.print("[red]Detached HEAD: switch to a branch first.[/]")
            raise typer.Exit(EXIT_BLOCKED)
        if head == base:
            console.print(f"[red]Refusing to open a PR from '{escape(base)}' into itself.[/] "
                          f"[dim]Create a task branch with: gitgate branch <taskId>[/]")
            raise typer.Exit(EXIT_BLOCKED)

        if git.branch_exists(base):
            base_ref = base
        elif git.remote_branch_exists(cfg.git.remote, base):
            base_ref = f"{cfg.git.remote}/{base}"
        else:
            raise ConfigError(f"Base branch '{base}' not found locally or on {cfg.git.remote}")

        commits = git.log_oneline(f"{base_ref}..HEAD")
        if not commits:
            console.print(f"[yellow]No commits on {escape(head)} beyond {escape(base_ref)}.[/]")
            raise typer.Exit(EXIT_BLOCKED)

        task_id = task_id or task_id_from_branch(head)
        tracker = build_tracker(cfg, git.root)
        try:
            task = tracker.lookup(task_id) if task_id else None
            budgets = cfg.performance.budgets if cfg.performance.enabled else None
            draft = render_pull_request(
                task if task is not None else Untracked,
                task_id, commits, git.diff_stat(base_ref), head, base, budgets,
            )

            if dry_run:
                console.print(Panel(escape(draft.body), title=escape(draft.title), border_style="cyan"))
                ctx.emit("pr.rendered", "pr", {"title": draft.title, "head": head, "base": base})
                return

            gh = GitHubCli(git.root)
            if not gh.available:
                console.print("[red]GitHub CLI (gh) not installed.[/] [dim]https://cli.github.com[/]")
                raise typer.Exit(EXIT_BLOCKED)

            upstream = git.upstream()
            if upstream is None or git.ahead_behind(upstream)[0] > 0:
                git.push(cfg.git.remote, head, set_upstream=upstream is None)

            try:
                url = gh.create(draft)
            except PullRequestError as e:
                console.print(f"[red]✗ {escape(str(e))}[/]")
                ctx.emit("pr.failed", "pr", {"title": draft.title, "error": str(e)})
                raise typer.Exit(EXIT_BLOCKED)

            moved = tracker.try_set_status(task_id, REVIEW) if task is not None else False
        finally:
            tracker.close()

        ctx.emit("pr.created", "pr", {"url": url, "title": draft.title, "task_id": task_id, "status_updated": moved})
        console.print(f"[green]✓ PR created:[/] {escape(url)}")
        if moved:
            console.print(f"  [dim]Task {escape(task_id)} → {REVIEW}[/]")


# ---------------------------------------------------------------------------
# Sync
# ---------------------------------------------------------------------------

def _analyzer(ctx: RunContext, git: GitRepo, no_fetch: bool = False) -> SyncStatusAnalyzer:
    return SyncStatusAnalyzer(git, ctx.config.git.remote, fetch=ctx.config.sync.fetch and not no_fetch)


@app.command()
def status(
    detailed: bool = typer.Option(False, "--detailed", "-d", help="Show upstream, untracked files and last fetch"),
    no_fetch: bool = typer.Option(False, "--no-fetch", help="Do not fetch before comparing"),
    repo: Path = typer.Option(Path("."), "--repo", "-r", help="Path to the repository"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Report how the current branch relates to its upstream."""
    with _session("status", repo, verbose) as (ctx, git):
        state, issues = _analyzer(ctx, git, no_fetch).analyze()
        ctx.emit("sync.status", "status", {
            "state": dataclasses.asdict(state),
            "issues": [i.kind.value for i in issues],
        })
        _print_status(state, issues, detailed, ctx.config.git.remote)


def _print_status(state: RepoState, issues: list[SyncIssue], detailed: bool, remote: str) -> None:
    console.print(f"[bold]Branch:[/] {escape(state.branch or '(detached HEAD)')}")
    if state.has_upstream:
        console.print(f"[bold]Ahead:[/] {state.ahead}  [bold]Behind:[/] {state.behind}")

    if detailed:
        table = Table(border_style="dim", show_header=False)
        table.add_column("Property")
        table.add_column("Value")
        table.add_row("Upstream", escape(state.upstream or "(none)"))
        table.add_row("Dirty", "yes" if state.dirty else "no")
        table.add_row("Untracked files", str(state.untracked))
        table.add_row("Stashes", str(state.stash_count))
        last = datetime.fromtimestamp(state.last_fetch).strftime("%Y-%m-%d %H:%M") if state.last_fetch else "never"
        table.add_row("Last fetch", last)
        console.print(table)

    if not issues:
        console.print("[green]✓ In sync[/]")
        return

    table = Table(title="Sync Issues", border_style="yellow")
    table.add_column("Issue")
    table.add_column("Auto-fix")
    table.add_column("Detail")
    table.add_column("Manual fix")
    for issue in issues:
        if issue.kind in ADVISORY:
            fix = "[dim]advisory[/]"
        else:
            fix = "[green]yes[/]" if issue.auto_fixable else "[red]no[/]"
        table.add_row(issue.kind.value, fix, escape(issue.detail), escape(manual_command(issue, state, remote)))
    console.print(table)
    if any(i.auto_fixable for i in issues):
        console.print("[dim]Run 'gitgate auto-fix' to apply the safe repairs.[/]")


@app.command("auto-fix")
def auto_fix(
    push: bool = typer.Option(False, "--push", help="Also push commits that are only local (plain push, never forced)"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show what would be done without changing anything"),
    repo: Path = typer.Option(Path("."), "--repo", "-r", help="Path to the repository"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Apply safe repairs: stash, set tracking, fast-forward."""
    with _session("auto-fix", repo, verbose) as (ctx, git):
        report = AutoFixer(_analyzer(ctx, git), allow_push=push, dry_run=dry_run).run()
        for action in report.actions:
            ctx.emit("fix.action", "fixer", {
                "issue": action.issue_kind.value,
                "operation": action.operation,
                "result": action.result.value,
            })
        for conflict in report.unresolved:
            ctx.emit("fix.conflict", "fixer", {"issue": conflict.kind.value, "command": conflict.command})

        _print_fix_report(report)
        if not report.resolved:
            raise typer.Exit(EXIT_BLOCKED)


def _print_fix_report(report: FixReport) -> None:
    colors = {FixResult.APPLIED: "green", FixResult.SKIPPED: "dim", FixResult.FAILED: "red"}
    for a in report.actions:
        color = colors[a.result]
        console.print(f"[{color}]{a.result.value:>8}[/]  {a.operation} [dim]({a.issue_kind.value})[/]")
        if a.result == FixResult.FAILED and a.detail:
            console.print(f"          [red]{escape(a.detail)}[/]")

    for adv in report.advisories:
        console.print(f"[dim]  note: {escape(adv.detail)}[/]")
    if report.stashed:
        console.print("[dim]Your changes were stashed. Restore them with: git stash pop[/]")

    if report.resolved:
        if not report.actions:
            console.print("[green]✓ Nothing to fix[/]")
        else:
            console.print("[green]✓ All issues resolved[/]")
        return

    table = Table(title="Needs your attention", border_style="red")
    table.add_column("Issue")
    table.add_column("Detail")
    table.add_column("Run")
    for c in report.unresolved:
        table.add_row(c.kind.value, escape(c.detail), escape(c.command))
    console.print(table)


@app.command()
def watch(
    interval: Optional[float] = typer.Option(None, "--interval", "-i", help="Seconds between polls"),
    count: int = typer.Option(0, "--count", "-n", help="Stop after N polls (0 = until interrupted)"),
    repo: Path = typer.Option(Path("."), "--repo", "-r", help="Path to the repository"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Poll sync status and alert when issues appear or clear."""
    with _session("watch", repo, verbose) as (ctx, git):
        seconds = interval if interval is not None else ctx.config.sync.watch_interval
        ctx.bus.subscribe(_print_watch_event)
        monitor = WatchMonitor(_analyzer(ctx, git), emit=ctx.emit, interval=seconds)

        console.print(f"[cyan]Watching {escape(str(git.root))} every {seconds:g}s[/] [dim](Ctrl-C to stop)[/]")
        try:
            monitor.run(max_polls=count or None)
        except KeyboardInterrupt:
            console.print("\n[dim]Stopped.[/]")


def _print_watch_event(event: GateEvent) -> None:
    stamp = datetime.now().strftime("%H:%M:%S")
    p = event.payload
    if event.event_type == "sync.snapshot":
        issues = ", ".join(p["issues"]) or "in sync"
        console.print(f"[dim]{stamp}[/] {escape(p['branch'] or '(detached)')}: {escape(issues)}")
    elif event.event_type == "sync.alert":
        for kind in p["appeared"]:
            console.print(f"[dim]{stamp}[/] [yellow]⚠ {kind}[/]")
        for kind in p["disappeared"]:
            console.print(f"[dim]{stamp}[/] [green]✓ {kind} cleared[/]")
        fixable = {i["kind"]: i["auto_fixable"] for i in p["issues"]}
        for kind in p.get("changed", []):
            state = "now auto-fixable" if fixable.get(kind) else "needs manual action"
            console.print(f"[dim]{stamp}[/] [yellow]⚠ {kind} {state}[/]")
    elif event.event_type == "sync.error":
        console.print(f"[dim]{stamp}[/] [red]✗ {escape(p['error'])}[/]")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _configure_logging(verbose: bool) -> None:
    logger.remove()
    if verbose:
        logger.add(
            lambda msg: console.print(f"[dim]{escape(str(msg).rstrip())}[/]", highlight=False),
            level="DEBUG",
            format="{time:HH:mm:ss} | {level:<7} | {message}",
        )
    else:
        logger.add(
            lambda msg: console.print(f"[dim]{escape(str(msg).rstrip())}[/]", highlight=False),
            level="WARNING",
            format="{message}",
        )


# ---------------------------------------------------------------------------
# Entry
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    app()

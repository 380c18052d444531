"""Typer CLI for repopulse."""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Annotated, Any

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from repopulse.config import DEFAULT_CONFIG_TEMPLATE, RepoPulseConfig
from repopulse.errors import RepoPulseError
from repopulse.models import AnalysisStatus, DeveloperStats, ScanStatus
from repopulse.utils.serialization import to_jsonable

load_dotenv()

app = typer.Typer(
    name="repopulse",
    help="Analyze git history across repositories: activity, developers, messages and churn.",
    no_args_is_help=True,
)
console = Console()

ConfigOption = Annotated[
    Path | None, typer.Option("--config", "-c", help="Path to repopulse.toml")
]
DebugOption = Annotated[bool, typer.Option("--debug", help="Also log to stderr")]
JsonOption = Annotated[bool, typer.Option("--json", help="Print raw JSON")]


def _setup(config_path: Path | None, debug: bool = False) -> RepoPulseConfig:
    """Load config and route the ``repopulse`` loggers to <data_dir>/repopulse.log."""
    config = RepoPulseConfig.load(config_path)

    data_dir = Path(config.paths.data_dir)
    data_dir.mkdir(parents=True, exist_ok=True)
    pulse_logger = logging.getLogger("repopulse")
    pulse_logger.setLevel(logging.DEBUG)
    for handler in list(pulse_logger.handlers):
        pulse_logger.removeHandler(handler)
        handler.close()

    # Always log to file
    file_handler = logging.FileHandler(data_dir / "repopulse.log")
    file_handler.setFormatter(logging.Formatter("%(asctime)s %(name)s %(levelname)s %(message)s"))
    pulse_logger.addHandler(file_handler)

    if debug:
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(logging.Formatter("%(name)s %(levelname)s %(message)s"))
        pulse_logger.addHandler(stream_handler)

    return config


def _fail(exc: Exception) -> typer.Exit:
    console.print(f"[bold red]Error:[/bold red] {escape(str(exc))}")
    return typer.Exit(1)


def _echo_json(value: Any) -> None:
    typer.echo(json.dumps(to_jsonable(value), indent=2))


# ── Analysis ────────────────────────────────────────────────────────────────


@app.command()
def analyze(
    path: Annotated[
        Path | None, typer.Argument(help="Local repository to analyze")
    ] = None,
    url: Annotated[
        str | None, typer.Option("--url", "-u", help="Remote repository to clone and analyze")
    ] = None,
    branch: Annotated[
        str | None, typer.Option("--branch", "-b", help="Branch to walk (default from config)")
    ] = None,
    as_json: JsonOption = False,
    config_path: ConfigOption = None,
    debug: DebugOption = False,
) -> None:
    """Analyze one repository and save the result to the output directory."""
    from repopulse.pipeline import run_local_analysis, run_remote_analysis

    if (path is None) == (url is None):
        console.print("[yellow]Give either a repository path or --url.[/yellow]")
        raise typer.Exit(2)

    config = _setup(config_path, debug)
    try:
        with console.status("[bold green]Analyzing repository..."):
            if url:
                result, saved_to = run_remote_analysis(url, branch, config=config)
            else:
                result, saved_to = run_local_analysis(path, branch, config=config)
    except RepoPulseError as exc:
        raise _fail(exc) from exc

    if as_json:
        _echo_json(result)
        return

    console.print(f"\n[bold green]Done![/bold green] {result.repo_name} ({result.branch})")
    console.print(f"  Commits:  {result.total_commits}")
    console.print(f"  Authors:  {len(result.authors)}")
    console.print(
        f"  Lines:    +{result.summary.total_lines_added} -{result.summary.total_lines_removed}"
    )
    if result.first_commit:
        console.print(f"  History:  {result.first_commit} .. {result.last_commit}")
    console.print(f"  Saved to: {saved_to}")


@app.command()
def scan(
    folder: Annotated[Path, typer.Argument(help="Folder to search for repositories")],
    depth: Annotated[
        int | None, typer.Option("--depth", "-d", help="Maximum directory depth")
    ] = None,
    branch: Annotated[str | None, typer.Option("--branch", "-b")] = None,
    no_save: Annotated[
        bool, typer.Option("--no-save", help="Analyze without writing result files")
    ] = False,
    config_path: ConfigOption = None,
    debug: DebugOption = False,
) -> None:
    """Find every repository under a folder and analyze each one."""
    from repopulse.scanning import ScanOrchestrator, ScanProgressStore

    config = _setup(config_path, debug)
    store = ScanProgressStore(config.scan.progress_ttl_seconds)
    orchestrator = ScanOrchestrator(store, config)
    scan_id = orchestrator.start(folder, depth, branch, save_results=not no_save)

    with console.status("[bold green]Scanning...") as spinner:
        while True:
            progress = store.get(scan_id)
            if progress is None or progress.is_finished:
                break
            where = escape(progress.current_folder or "")
            spinner.update(
                f"[bold green]{progress.status.value.capitalize()}[/bold green] "
                f"({progress.scanned_count} folders, {progress.found_repos} repos) {where}"
            )
            time.sleep(0.2)

    progress = orchestrator.wait(scan_id)
    if progress is None:
        raise _fail(RepoPulseError(f"Scan {scan_id} disappeared"))
    if progress.status == ScanStatus.ERROR:
        raise _fail(RepoPulseError(progress.error or "Scan failed"))

    console.print(f"\n[bold green]{progress.message}[/bold green]")
    console.print(f"  Found:     {progress.found_repos}")
    console.print(f"  Succeeded: {progress.successful_analysis}")
    if progress.failed_analysis:
        console.print(f"  [red]Failed:    {progress.failed_analysis}[/red]")


# ── Reports ─────────────────────────────────────────────────────────────────


@app.command()
def developers(
    name: Annotated[
        str | None, typer.Option("--name", "-n", help="Show one developer in detail")
    ] = None,
    as_json: JsonOption = False,
    config_path: ConfigOption = None,
    debug: DebugOption = False,
) -> None:
    """Per-developer statistics across every analyzed repository."""
    from repopulse.analyzers.developers import aggregate_developers, get_developer_stats
    from repopulse.store import RepositoryIndex

    config = _setup(config_path, debug)
    index = RepositoryIndex(config.paths.output_path)
    recent_limit = config.analysis.developer_recent_commits

    if name is not None:
        dev = get_developer_stats(name, index, recent_limit=recent_limit)
        if dev is None:
            console.print(f"[yellow]Developer not found: {escape(name)}[/yellow]")
            raise typer.Exit(1)
        if as_json:
            _echo_json(dev)
            return
        _print_developer(dev)
        return

    report = aggregate_developers(index, recent_limit=recent_limit)
    if as_json:
        _echo_json(report)
        return

    if not report.developers:
        console.print("[yellow]No developers found. Analyze a repository first.[/yellow]")
        return

    table = Table(title=f"{report.total_developers} developers")
    table.add_column("Name")
    table.add_column("Email")
    table.add_column("Commits", justify="right")
    table.add_column("+/-", justify="right")
    table.add_column("Repos", justify="right")
    table.add_column("Msg score", justify="right")
    for dev in report.developers:
        table.add_row(
            escape(dev.name),
            escape(dev.email),
            str(dev.metrics.total_commits),
            f"+{dev.metrics.lines_added} -{dev.metrics.lines_removed}",
            str(len(dev.metrics.repositories)),
            f"{dev.message_compliance.average_score:.0f}",
        )
    console.print(table)


def _print_developer(dev: DeveloperStats) -> None:
    m = dev.metrics
    console.print(f"[bold]{escape(dev.name)}[/bold] <{escape(dev.email)}>")
    console.print(f"  Commits:        {m.total_commits} in {', '.join(m.repositories)}")
    console.print(f"  Lines:          +{m.lines_added} -{m.lines_removed}")
    console.print(f"  Docs / tests:   {m.documentation_ratio:.1f}% / {m.test_ratio:.1f}%")
    mc = dev.message_compliance
    console.print(
        f"  Messages:       {mc.valid_messages}/{mc.total_messages} pass, "
        f"avg score {mc.average_score:.1f}"
    )
    for issue in mc.common_issues:
        console.print(f"    {issue.count:>4}  {issue.rule}: {escape(issue.description)}")
    a = dev.activity
    console.print(
        f"  Active days:    {a.active_days}/{a.total_days}, busiest {a.most_active_day}"
    )
    wh = dev.working_hours
    preferred = wh.preferred_working_hours.value if wh.preferred_working_hours else "-"
    console.print(
        f"  Working hours:  {preferred}; late night {wh.late_night_percentage:.1f}%, "
        f"weekend {wh.weekend_percentage:.1f}%"
    )
    sizes = ", ".join(f"{b.value} {n}" for b, n in dev.size_distribution.counts.items())
    console.print(f"  Commit sizes:   {sizes}")
    console.print(f"  Bug-fix ratio:  {dev.type_distribution.bug_fix_ratio:.2f}")


@app.command()
def messages(
    path: Annotated[Path, typer.Argument(help="Local repository")] = Path("."),
    branch: Annotated[str | None, typer.Option("--branch", "-b")] = None,
    limit: Annotated[int, typer.Option("--limit", "-l", help="Commits to check")] = 100,
    since: Annotated[str | None, typer.Option("--since", help="git --since expression")] = None,
    until: Annotated[str | None, typer.Option("--until", help="git --until expression")] = None,
    no_save: Annotated[
        bool, typer.Option("--no-save", help="Do not write the report to the output directory")
    ] = False,
    as_json: JsonOption = False,
    config_path: ConfigOption = None,
    debug: DebugOption = False,
) -> None:
    """Score a repository's commit messages against the message style rules."""
    from repopulse.analyzers.message_rules import analyze_repository_messages
    from repopulse.store import ArtifactStore

    config = _setup(config_path, debug)
    repo_path = path.resolve()
    try:
        report = analyze_repository_messages(
            str(repo_path), branch=branch, limit=limit, since=since, until=until
        )
    except RepoPulseError as exc:
        raise _fail(exc) from exc

    saved_to = None
    if not no_save:
        saved_to = ArtifactStore(config.paths.output_path).save_message_report(
            repo_path.name, report
        )

    if as_json:
        _echo_json(report)
        return

    console.print(
        f"[bold]{report.analyzed_commits}[/bold] of {report.total_commits} commits checked: "
        f"score {report.overall_score:.1f}, pass rate {report.pass_rate:.1f}%"
    )
    table = Table()
    table.add_column("Commit")
    table.add_column("Score", justify="right")
    table.add_column("Subject")
    for c in report.commits:
        colour = "green" if c.passed else "red"
        table.add_row(c.hash[:8], f"[{colour}]{c.score}[/{colour}]", escape(c.subject))
    console.print(table)
    for rule in report.rules_summary:
        console.print(f"  {rule.violations:>4}  {rule.rule}: {escape(rule.description)}")
    if saved_to:
        console.print(f"Saved to: {saved_to}")


@app.command()
def churn(
    path: Annotated[Path, typer.Argument(help="Local repository")] = Path("."),
    since: Annotated[
        str | None, typer.Option("--since", "-s", help="Window, e.g. '2 weeks ago'")
    ] = None,
    top: Annotated[int, typer.Option("--top", "-t", help="Files to show")] = 20,
    as_json: JsonOption = False,
    config_path: ConfigOption = None,
    debug: DebugOption = False,
) -> None:
    """Most-changed files over a trailing window."""
    from repopulse.analyzers.churn import calculate_churn

    config = _setup(config_path, debug)
    try:
        files = calculate_churn(str(path.resolve()), since or config.analysis.churn_window)
    except RepoPulseError as exc:
        raise _fail(exc) from exc

    if as_json:
        _echo_json(files)
        return
    if not files:
        console.print("[yellow]No changes in that window.[/yellow]")
        return

    table = Table()
    table.add_column("File")
    table.add_column("Commits", justify="right")
    table.add_column("+", justify="right")
    table.add_column("-", justify="right")
    table.add_column("Total", justify="right")
    for f in files[:top]:
        table.add_row(
            escape(f.path),
            str(f.commit_count),
            str(f.lines_added),
            str(f.lines_deleted),
            str(f.total_changes),
        )
    console.print(table)


# ── Index maintenance ───────────────────────────────────────────────────────


@app.command()
def status(
    filter_status: Annotated[
        AnalysisStatus | None,
        typer.Option("--status", help="Only show repositories with this status"),
    ] = None,
    as_json: JsonOption = False,
    config_path: ConfigOption = None,
    debug: DebugOption = False,
) -> None:
    """List analyzed repositories from the metadata index."""
    from repopulse.store import RepositoryIndex

    config = _setup(config_path, debug)
    index = RepositoryIndex(config.paths.output_path)
    try:
        repos = index.list_by_status(filter_status) if filter_status else index.all()
    except RepoPulseError as exc:
        raise _fail(exc) from exc

    if as_json:
        typer.echo(json.dumps([r.to_dict() for r in repos], indent=2))
        return
    if not repos:
        console.print("[yellow]No repositories analyzed yet.[/yellow]")
        return

    colours = {
        AnalysisStatus.OK: "green",
        AnalysisStatus.ERROR: "red",
        AnalysisStatus.ANALYZING: "yellow",
    }
    table = Table()
    table.add_column("Repository")
    table.add_column("Status")
    table.add_column("Commits", justify="right")
    table.add_column("Last analyzed")
    table.add_column("Path / error")
    for r in repos:
        colour = colours[r.status]
        table.add_row(
            escape(r.repo_name),
            f"[{colour}]{r.status.value}[/{colour}]",
            str(r.summary.total_commits) if r.summary else "",
            r.last_analyzed,
            escape(r.error or r.repo_path),
        )
    console.print(table)


@app.command("clear-analyzing")
def clear_analyzing(
    config_path: ConfigOption = None,
    debug: DebugOption = False,
) -> None:
    """Mark repositories stuck in 'analyzing' as failed."""
    from repopulse.store import RepositoryIndex

    config = _setup(config_path, debug)
    cleared = RepositoryIndex(config.paths.output_path).clear_analyzing()
    console.print(f"[green]Cleared {cleared} analyzing statuses.[/green]")


@app.command()
def cleanup(
    dry_run: Annotated[
        bool, typer.Option("--dry-run", help="List the stale files without deleting them")
    ] = False,
    config_path: ConfigOption = None,
    debug: DebugOption = False,
) -> None:
    """Delete analysis files that no index entry refers to."""
    from repopulse.store import ArtifactStore, RepositoryIndex

    config = _setup(config_path, debug)
    output = config.paths.output_path
    artifacts = ArtifactStore(output)
    index = RepositoryIndex(output, artifacts)
    if dry_run:
        try:
            stale = artifacts.find_unreferenced(index)
        except RepoPulseError as exc:
            raise _fail(exc) from exc
        if not stale:
            console.print("[green]No unreferenced analysis files.[/green]")
            return
        table = Table(title=f"{len(stale)} unreferenced analysis files")
        table.add_column("File")
        table.add_column("Size", justify="right")
        table.add_column("Modified")
        for artifact in stale:
            table.add_row(
                artifact.path.name,
                f"{artifact.size:,} B",
                artifact.modified.strftime("%Y-%m-%d %H:%M"),
            )
        console.print(table)
        return

    try:
        deleted = artifacts.cleanup_unreferenced(index)
    except RepoPulseError as exc:
        raise _fail(exc) from exc
    console.print(f"[green]Removed {len(deleted)} unreferenced analysis files.[/green]")
    for p in deleted:
        console.print(f"  {p.name}")


@app.command()
def info(
    path: Annotated[Path, typer.Argument(help="Local repository")] = Path("."),
    config_path: ConfigOption = None,
    debug: DebugOption = False,
) -> None:
    """Show a repository's local branches and remotes."""
    from repopulse.extractors.git_log import ensure_repository
    from repopulse.git import GitClient

    _setup(config_path, debug)
    client = GitClient()
    repo_path = str(path.resolve())
    try:
        ensure_repository(repo_path, client)
        branches = client.branches(repo_path)
        remotes = client.remotes(repo_path)
    except RepoPulseError as exc:
        raise _fail(exc) from exc

    console.print(f"[bold]{escape(repo_path)}[/bold]")
    console.print(f"  Branches: {', '.join(branches) or '-'}")
    console.print(f"  Remotes:  {', '.join(remotes) or '-'}")


@app.command()
def init(
    path: Annotated[
        Path, typer.Option("--path", "-p", help="Where to create repopulse.toml")
    ] = Path("."),
) -> None:
    """Create a repopulse.toml config file."""
    target = path / "repopulse.toml"
    if target.exists():
        console.print(f"[yellow]{target} already exists.[/yellow]")
        raise typer.Exit(1)
    target.write_text(DEFAULT_CONFIG_TEMPLATE)
    console.print(f"[green]Created {target}[/green]")

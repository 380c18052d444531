"""Pipeline orchestrator: wires extraction, rollups, churn and persistence."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path

from repopulse.config import RepoPulseConfig
from repopulse.errors import GitCommandError
from repopulse.git import GitClient
from repopulse.models import (
    AnalysisStatus,
    FolderAnalysisResult,
    IndexSummary,
    RepoAnalysisOutcome,
    RepoAnalysisResult,
)
from repopulse.store import RepositoryIndex

logger = logging.getLogger(__name__)

_GIT_SUFFIX_RE = re.compile(r"\.git$")


def analyze_repository(
    repo_path: str,
    branch: str = "main",
    *,
    client: GitClient | None = None,
    config: RepoPulseConfig | None = None,
) -> RepoAnalysisResult:
    """Analyze one working tree: history rollups, recent commits and churn."""
    from repopulse.analyzers.churn import calculate_churn
    from repopulse.analyzers.timeline import build_aggregations, summarize
    from repopulse.extractors.git_log import extract_commits

    client = client or GitClient()
    config = config or RepoPulseConfig()
    repo_name = Path(repo_path).resolve().name

    # ── History ─────────────────────────────────────────────────────────
    commits = extract_commits(repo_path, branch, client)
    if not commits:
        result = RepoAnalysisResult.empty(repo_name, branch)
        result.analyzed_at = datetime.now(timezone.utc)
        return result

    summary = summarize(commits)
    timestamps = [c.timestamp for c in commits]

    # ── Churn (best effort) ─────────────────────────────────────────────
    try:
        file_churn = calculate_churn(repo_path, config.analysis.churn_window, client)
    except GitCommandError as exc:
        logger.warning("Could not compute file churn for %s: %s", repo_path, exc)
        file_churn = []

    return RepoAnalysisResult(
        repo_name=repo_name,
        branch=branch,
        total_commits=len(commits),
        authors=list(summary.author_contribution),
        first_commit=min(timestamps).isoformat(),
        last_commit=max(timestamps).isoformat(),
        summary=summary,
        aggregations=build_aggregations(commits),
        recent_commits=commits[: config.analysis.recent_commits_limit],
        file_churn=file_churn,
        analyzed_at=datetime.now(timezone.utc),
    )


def repo_name_from_url(url: str) -> str:
    """Directory name for a clone: the last URL segment without ``.git``."""
    name = _GIT_SUFFIX_RE.sub("", url.rstrip("/").rsplit("/", 1)[-1])
    return name or "repository"


def _tracked_analysis(
    index: RepositoryIndex,
    repo_path: str,
    repo_name: str,
    branch: str,
    analyze: Callable[[], RepoAnalysisResult],
    *,
    save: bool = True,
) -> tuple[RepoAnalysisResult, Path | None]:
    """Run ``analyze`` while keeping the index entry for ``repo_path`` current.

    The entry is ``analyzing`` while work runs, then ``ok`` (with the artifact
    and its headline numbers) or ``error`` with the failure message. Failures
    are re-raised after being recorded.
    """
    index.upsert_status(repo_path, AnalysisStatus.ANALYZING, repo_name=repo_name, branch=branch)
    try:
        result = analyze()
        saved_to = index.artifacts.save(result) if save else None
    except Exception as exc:
        index.upsert_status(
            repo_path, AnalysisStatus.ERROR, repo_name=repo_name, branch=branch, error=str(exc)
        )
        raise

    index.upsert_status(
        repo_path,
        AnalysisStatus.OK,
        repo_name=repo_name,
        branch=branch,
        output_file=str(saved_to) if saved_to else None,
        summary=IndexSummary.from_result(result),
    )
    return result, saved_to


def run_local_analysis(
    path: str | Path,
    branch: str | None = None,
    *,
    config: RepoPulseConfig,
    client: GitClient | None = None,
    index: RepositoryIndex | None = None,
) -> tuple[RepoAnalysisResult, Path | None]:
    """Analyze a repository on disk and persist the result.

    Returns:
        The analysis and the path of the saved artifact.
    """
    client = client or GitClient()
    index = index or RepositoryIndex(config.paths.output_path)
    branch = branch or config.analysis.default_branch
    repo_path = str(Path(path).resolve())

    result, saved_to = _tracked_analysis(
        index,
        repo_path,
        Path(repo_path).name,
        branch,
        lambda: analyze_repository(repo_path, branch, client=client, config=config),
    )
    return result, saved_to


def run_remote_analysis(
    url: str,
    branch: str | None = None,
    *,
    config: RepoPulseConfig,
    client: GitClient | None = None,
    index: RepositoryIndex | None = None,
) -> tuple[RepoAnalysisResult, Path | None]:
    """Clone ``url`` into the repos directory (or pull if present), then analyze."""
    client = client or GitClient()
    index = index or RepositoryIndex(config.paths.output_path)
    branch = branch or config.analysis.default_branch
    repo_name = repo_name_from_url(url)
    local_path = str((config.paths.repos_path / repo_name).resolve())

    def clone_and_analyze() -> RepoAnalysisResult:
        if Path(local_path).exists():
            logger.info("Updating existing clone at %s", local_path)
            client.pull(local_path)
        else:
            logger.info("Cloning %s into %s", url, local_path)
            client.clone(url, local_path)
        return analyze_repository(local_path, branch, client=client, config=config)

    return _tracked_analysis(index, local_path, repo_name, branch, clone_and_analyze)


def analyze_found_repository(
    repo_path: str,
    branch: str,
    *,
    config: RepoPulseConfig,
    client: GitClient,
    index: RepositoryIndex,
    save_results: bool = True,
) -> RepoAnalysisOutcome:
    """Analyze one repository found by a folder scan, never raising."""
    try:
        result, saved_to = _tracked_analysis(
            index,
            repo_path,
            Path(repo_path).name,
            branch,
            lambda: analyze_repository(repo_path, branch, client=client, config=config),
            save=save_results,
        )
    except Exception as exc:
        logger.warning("Analysis of %s failed: %s", repo_path, exc)
        return RepoAnalysisOutcome(repo_path=repo_path, error=str(exc))
    return RepoAnalysisOutcome(
        repo_path=repo_path,
        analysis=result,
        saved_to=str(saved_to) if saved_to else None,
    )


def analyze_folder(
    folder: str | Path,
    max_depth: int | None = None,
    branch: str | None = None,
    save_results: bool = True,
    *,
    config: RepoPulseConfig,
    client: GitClient | None = None,
    index: RepositoryIndex | None = None,
) -> FolderAnalysisResult:
    """Find every repository under ``folder`` and analyze each in turn.

    One repository failing does not stop the others; failures are collected
    in ``errors``.
    """
    from repopulse.scanning import discover_repositories

    client = client or GitClient()
    index = index or RepositoryIndex(config.paths.output_path)
    branch = branch or config.analysis.default_branch
    if max_depth is None:
        max_depth = config.analysis.max_scan_depth

    found = discover_repositories(Path(folder).resolve(), max_depth, client=client)
    outcome = FolderAnalysisResult(found_repos=len(found))
    for repo_path in found:
        result = analyze_found_repository(
            repo_path,
            branch,
            config=config,
            client=client,
            index=index,
            save_results=save_results,
        )
        (outcome.errors if result.error else outcome.results).append(result)

    logger.info(
        "Folder %s: %d analyzed, %d failed", folder, len(outcome.results), len(outcome.errors)
    )
    return outcome

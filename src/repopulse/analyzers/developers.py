"""Per-developer statistics folded from every persisted repository analysis.

Nothing is cached: each call reads every artifact the index points at and
rebuilds the whole report. Developers are identified by the exact
``(author name, author email)`` pair, so one person committing under two
addresses shows up twice.
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from collections.abc import Iterator
from datetime import datetime, timezone
from pathlib import Path

import numpy as np

from repopulse.analyzers.message_rules import analyze_commit_message
from repopulse.errors import IndexReadError
from repopulse.models import (
    AnalysisStatus,
    CommitRecord,
    CommitType,
    CommonIssue,
    DailyActivity,
    DeveloperCommit,
    DeveloperReport,
    DeveloperStats,
    SizeBucket,
    WorkingPeriod,
)
from repopulse.store import ArtifactStore, RepositoryIndex
from repopulse.utils.temporal import (
    WEEKDAY_NAMES,
    inclusive_days,
    is_business_hours,
    is_late_night,
    is_weekend,
)

logger = logging.getLogger(__name__)

TYPE_PREFIX_RE = re.compile(r"^(\w+)(\(.+?\))?:")
DOCS_RE = re.compile(r"\b(readme|documentation|docs?|guide|tutorial)\b", re.IGNORECASE)
TEST_RE = re.compile(r"\b(test(s|ing)?|specs?)\b", re.IGNORECASE)

TOP_ISSUES = 5
RECENT_ACTIVITY_DAYS = 30
DEFAULT_RECENT_COMMITS = 50


# ── Artifact discovery ───────────────────────────────────────────────────────


def _artifact_paths(index: RepositoryIndex, artifacts: ArtifactStore) -> list[tuple[Path, str]]:
    """(artifact path, repository name) pairs for every successful analysis.

    Falls back to every ``*-analysis-*.json`` in the output directory when
    the index is missing or unreadable.
    """
    try:
        if not index.path.exists():
            raise IndexReadError(str(index.path), "file not found")
        entries = index.list_by_status(AnalysisStatus.OK)
    except IndexReadError as exc:
        logger.warning("%s; falling back to reading all analysis files", exc)
        return [
            (path, ArtifactStore.repo_name_from_filename(path.name))
            for path in artifacts.list_analysis_files()
        ]
    return [
        (artifacts.resolve(entry.output_file), entry.repo_name)
        for entry in entries
        if entry.output_file
    ]


def iter_repository_commits(
    index: RepositoryIndex, artifacts: ArtifactStore
) -> Iterator[tuple[str, list[CommitRecord]]]:
    """Yield (repository name, detailed commits) per readable artifact."""
    for path, repo_name in _artifact_paths(index, artifacts):
        try:
            data = artifacts.load(path)
            if not isinstance(data, dict):
                raise TypeError(f"expected a JSON object, got {type(data).__name__}")
            raw_commits = data.get("recent_commits") or []
            if not isinstance(raw_commits, list):
                raise TypeError("recent_commits is not a list")
            commits = [CommitRecord.from_dict(c) for c in raw_commits]
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as exc:
            logger.warning("Skipping unreadable analysis file %s: %s", path, exc)
            continue
        yield repo_name, commits


# ── Accumulation ─────────────────────────────────────────────────────────────


class _DeveloperAccumulator:
    """Running totals for one developer that do not belong in the output."""

    __slots__ = (
        "stats",
        "records",
        "sizes",
        "score_total",
        "issue_counts",
        "issue_descriptions",
        "doc_commits",
        "test_commits",
    )

    def __init__(self, name: str, email: str) -> None:
        self.stats = DeveloperStats(name=name, email=email)
        self.records: list[tuple[CommitRecord, str]] = []
        self.sizes: list[int] = []
        self.score_total: int = 0
        self.issue_counts: Counter[str] = Counter()
        self.issue_descriptions: dict[str, str] = {}
        self.doc_commits: int = 0
        self.test_commits: int = 0

    def add(self, commit: CommitRecord, repo_name: str) -> None:
        dev = self.stats
        metrics = dev.metrics
        metrics.total_commits += 1
        metrics.lines_added += commit.insertions
        metrics.lines_removed += commit.deletions
        metrics.lines_modified += commit.changed_lines
        if repo_name not in metrics.repositories:
            metrics.repositories.append(repo_name)
        self.records.append((commit, repo_name))

        # Message compliance
        verdict = analyze_commit_message(
            commit.hash, commit.author_name, commit.timestamp.isoformat(), commit.message
        )
        compliance = dev.message_compliance
        compliance.total_messages += 1
        if verdict.passed:
            compliance.valid_messages += 1
        self.score_total += verdict.score
        for issue in verdict.issues:
            self.issue_counts[issue.rule] += 1
            self.issue_descriptions.setdefault(issue.rule, issue.message)

        # Size and type histograms
        size = commit.changed_lines
        self.sizes.append(size)
        dev.size_distribution.counts[SizeBucket.for_lines(size)] += 1

        m = TYPE_PREFIX_RE.match(commit.message)
        if m:
            dev.type_distribution.counts[CommitType.from_prefix(m.group(1))] += 1

        # When the commit was made, in the author's own UTC offset
        ts = commit.timestamp
        hours = dev.working_hours
        if is_late_night(ts.hour):
            hours.late_night_commits += 1
        if is_weekend(ts):
            hours.weekend_commits += 1
        if is_business_hours(ts):
            hours.business_hours_commits += 1
        hours.period_counts[WorkingPeriod.for_hour(ts.hour)] += 1

        activity = dev.activity
        activity.commits_by_day_of_week[WEEKDAY_NAMES[ts.weekday()]] += 1
        activity.commits_by_hour[ts.hour] = activity.commits_by_hour.get(ts.hour, 0) + 1

        # Documentation / test tagging
        lowered = commit.message.lower()
        if lowered.startswith(("docs:", "docs(")) or DOCS_RE.search(lowered):
            self.doc_commits += 1
        if lowered.startswith(("test:", "test(")) or TEST_RE.search(lowered):
            self.test_commits += 1

    def finalize(self, recent_limit: int) -> DeveloperStats:
        dev = self.stats
        total = dev.metrics.total_commits

        compliance = dev.message_compliance
        compliance.pass_percentage = compliance.valid_messages / total * 100
        compliance.average_score = self.score_total / total
        compliance.common_issues = [
            CommonIssue(rule=rule, count=count, description=self.issue_descriptions[rule])
            for rule, count in self.issue_counts.most_common(TOP_ISSUES)
        ]

        dev.metrics.documentation_ratio = self.doc_commits / total * 100
        dev.metrics.test_ratio = self.test_commits / total * 100

        self._finalize_activity()

        sizes = dev.size_distribution
        sizes.average_lines_per_commit = float(np.mean(self.sizes))
        sizes.median_lines_per_commit = float(np.median(self.sizes))

        types = dev.type_distribution
        if types.conventional_total:
            types.bug_fix_ratio = types.counts[CommitType.FIX] / types.conventional_total

        hours = dev.working_hours
        hours.late_night_percentage = hours.late_night_commits / total * 100
        hours.weekend_percentage = hours.weekend_commits / total * 100
        hours.business_hours_percentage = hours.business_hours_commits / total * 100
        # max() keeps the first of equal counts: morning, afternoon, evening, night
        hours.preferred_working_hours = max(WorkingPeriod, key=lambda p: hours.period_counts[p])

        newest_first = sorted(self.records, key=lambda r: r[0].timestamp, reverse=True)
        dev.recent_commits = [
            DeveloperCommit(
                hash=commit.hash,
                message=commit.message,
                date=commit.timestamp.isoformat(),
                repository=repo_name,
                insertions=commit.insertions,
                deletions=commit.deletions,
            )
            for commit, repo_name in newest_first[:recent_limit]
        ]
        return dev

    def _finalize_activity(self) -> None:
        activity = self.stats.activity
        by_day: dict[str, list[CommitRecord]] = {}
        for commit, _ in sorted(self.records, key=lambda r: r[0].timestamp):
            by_day.setdefault(commit.timestamp.date().isoformat(), []).append(commit)

        days = sorted(by_day)
        first = datetime.fromisoformat(days[0]).date()
        last = datetime.fromisoformat(days[-1]).date()
        activity.total_days = inclusive_days(first, last)
        activity.active_days = len(by_day)
        activity.average_commits_per_day = self.stats.metrics.total_commits / activity.total_days

        busiest = 0
        for day in days:
            if len(by_day[day]) > busiest:
                busiest = len(by_day[day])
                activity.most_active_day = day

        activity.recent_activity = [
            DailyActivity(
                date=day,
                commits=len(by_day[day]),
                lines_added=sum(c.insertions for c in by_day[day]),
                lines_removed=sum(c.deletions for c in by_day[day]),
            )
            for day in reversed(days[-RECENT_ACTIVITY_DAYS:])
        ]


# ── Public API ───────────────────────────────────────────────────────────────


def build_developer_stats(
    sources: Iterator[tuple[str, list[CommitRecord]]] | list[tuple[str, list[CommitRecord]]],
    recent_limit: int = DEFAULT_RECENT_COMMITS,
) -> list[DeveloperStats]:
    """Fold (repository, commits) pairs into per-developer stats.

    Returns:
        DeveloperStats sorted by total commits, most active first.
    """
    accumulators: dict[tuple[str, str], _DeveloperAccumulator] = {}
    for repo_name, commits in sources:
        for commit in commits:
            key = (commit.author_name, commit.author_email)
            acc = accumulators.get(key)
            if acc is None:
                acc = accumulators[key] = _DeveloperAccumulator(*key)
            acc.add(commit, repo_name)

    developers = [acc.finalize(recent_limit) for acc in accumulators.values()]
    developers.sort(key=lambda d: d.metrics.total_commits, reverse=True)
    return developers


def aggregate_developers(
    index: RepositoryIndex,
    artifacts: ArtifactStore | None = None,
    *,
    recent_limit: int = DEFAULT_RECENT_COMMITS,
) -> DeveloperReport:
    """Rebuild the full developer report from every persisted analysis."""
    artifacts = artifacts or index.artifacts
    developers = build_developer_stats(iter_repository_commits(index, artifacts), recent_limit)
    logger.info("Aggregated %d developers", len(developers))
    return DeveloperReport(
        total_developers=len(developers),
        developers=developers,
        generated_at=datetime.now(timezone.utc),
    )


def get_developer_stats(
    name: str,
    index: RepositoryIndex,
    artifacts: ArtifactStore | None = None,
    *,
    recent_limit: int = DEFAULT_RECENT_COMMITS,
) -> DeveloperStats | None:
    """Stats for the first (most active) developer called ``name``."""
    report = aggregate_developers(index, artifacts, recent_limit=recent_limit)
    return next((d for d in report.developers if d.name == name), None)

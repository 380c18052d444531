"""Weekly, monthly and yearly rollups of a repository's commits."""

from __future__ import annotations

from collections.abc import Iterable

from repopulse.models import (
    Aggregations,
    CommitRecord,
    MonthlyBucket,
    RepoSummary,
    WeeklyBucket,
    YearlyBucket,
)
from repopulse.utils.temporal import iso_week_number, month_key, week_start


def _chronological(commits: Iterable[CommitRecord]) -> list[CommitRecord]:
    # sorted() is stable, so commits sharing a timestamp keep their relative order
    return sorted(commits, key=lambda c: c.timestamp)


def _add(bucket: WeeklyBucket | MonthlyBucket | YearlyBucket, commit: CommitRecord) -> None:
    bucket.commits += 1
    bucket.lines_added += commit.insertions
    bucket.lines_removed += commit.deletions
    bucket.files_changed += commit.files_changed
    if commit.author_name not in bucket.authors:
        bucket.authors.append(commit.author_name)


def build_aggregations(commits: Iterable[CommitRecord]) -> Aggregations:
    """Fold commits into weekly buckets nested inside months nested inside years.

    Every commit lands in exactly one week, keyed by the Monday of its ISO
    week. The week's Monday also decides the month and the year, so a week
    straddling a month or year boundary is counted where it starts. Each
    level keeps its own totals; nesting is attached in a second pass.
    """
    weekly: dict[str, WeeklyBucket] = {}
    monthly: dict[str, MonthlyBucket] = {}
    yearly: dict[int, YearlyBucket] = {}

    for commit in _chronological(commits):
        monday = week_start(commit.timestamp)
        week_key = monday.isoformat()
        month = month_key(monday)

        week = weekly.get(week_key)
        if week is None:
            week = weekly[week_key] = WeeklyBucket(
                week_start=week_key,
                week_number=iso_week_number(monday),
                year=monday.year,
            )
        _add(week, commit)
        week.commit_hashes.append(commit.hash)

        _add(monthly.setdefault(month, MonthlyBucket(month=month)), commit)
        _add(yearly.setdefault(monday.year, YearlyBucket(year=monday.year)), commit)

    weeks = sorted(weekly.values(), key=lambda w: w.week_start)
    months = sorted(monthly.values(), key=lambda m: m.month)
    years = sorted(yearly.values(), key=lambda y: y.year)

    for m in months:
        m.weeks = [w for w in weeks if w.week_start.startswith(m.month)]
    for y in years:
        prefix = f"{y.year:04d}-"
        y.months = [m for m in months if m.month.startswith(prefix)]

    return Aggregations(yearly=years, monthly=months, weekly=weeks)


def summarize(commits: Iterable[CommitRecord]) -> RepoSummary:
    """Repository-wide totals and per-author commit counts (first-seen order)."""
    summary = RepoSummary()
    for commit in commits:
        summary.total_lines_added += commit.insertions
        summary.total_lines_removed += commit.deletions
        summary.total_files_changed += commit.files_changed
        summary.author_contribution[commit.author_name] = (
            summary.author_contribution.get(commit.author_name, 0) + 1
        )
    return summary

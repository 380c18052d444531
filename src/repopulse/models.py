"""All shared data models for repopulse."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from repopulse.utils.temporal import WEEKDAY_NAMES

# ── Git extraction ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class CommitRecord:
    """One non-merge commit with its diff stats against the first parent."""

    hash: str
    author_name: str
    author_email: str
    timestamp: datetime
    message: str  # subject and body, as written
    insertions: int = 0
    deletions: int = 0
    files_changed: int = 0

    @property
    def subject(self) -> str:
        return self.message.split("\n", 1)[0]

    @property
    def changed_lines(self) -> int:
        return self.insertions + self.deletions

    def with_stats(self, insertions: int, deletions: int, files_changed: int) -> CommitRecord:
        return replace(
            self, insertions=insertions, deletions=deletions, files_changed=files_changed
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "hash": self.hash,
            "author_name": self.author_name,
            "author_email": self.author_email,
            "timestamp": self.timestamp.isoformat(),
            "message": self.message,
            "insertions": self.insertions,
            "deletions": self.deletions,
            "files_changed": self.files_changed,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CommitRecord:
        return cls(
            hash=data["hash"],
            author_name=data.get("author_name", ""),
            author_email=data.get("author_email", ""),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            message=data.get("message") or "",
            insertions=data.get("insertions") or 0,
            deletions=data.get("deletions") or 0,
            files_changed=data.get("files_changed") or 0,
        )


@dataclass
class FileChange:
    """A single numstat line: one file touched by a diff."""

    path: str
    added: int | None = None  # None for binary
    deleted: int | None = None  # None for binary
    old_path: str | None = None  # set if rename


@dataclass(frozen=True)
class DiffSummary:
    """Totals from a numstat diff between two revisions."""

    insertions: int = 0
    deletions: int = 0
    files_changed: int = 0


# ── Time buckets ────────────────────────────────────────────────────────────


@dataclass
class WeeklyBucket:
    week_start: str  # ISO date of the Monday
    week_number: int  # ISO 8601 week number
    year: int
    commits: int = 0
    lines_added: int = 0
    lines_removed: int = 0
    authors: list[str] = field(default_factory=list)
    files_changed: int = 0
    commit_hashes: list[str] = field(default_factory=list)


@dataclass
class MonthlyBucket:
    month: str  # YYYY-MM
    commits: int = 0
    lines_added: int = 0
    lines_removed: int = 0
    authors: list[str] = field(default_factory=list)
    files_changed: int = 0
    weeks: list[WeeklyBucket] = field(default_factory=list)


@dataclass
class YearlyBucket:
    year: int
    commits: int = 0
    lines_added: int = 0
    lines_removed: int = 0
    authors: list[str] = field(default_factory=list)
    files_changed: int = 0
    months: list[MonthlyBucket] = field(default_factory=list)


@dataclass
class Aggregations:
    yearly: list[YearlyBucket] = field(default_factory=list)
    monthly: list[MonthlyBucket] = field(default_factory=list)
    weekly: list[WeeklyBucket] = field(default_factory=list)


# ── File churn ──────────────────────────────────────────────────────────────


@dataclass
class FileChurn:
    """Change volume of one file over a trailing window."""

    path: str
    lines_added: int = 0
    lines_deleted: int = 0
    total_changes: int = 0
    commit_count: int = 0


# ── Repository analysis ─────────────────────────────────────────────────────


@dataclass
class RepoSummary:
    total_lines_added: int = 0
    total_lines_removed: int = 0
    total_files_changed: int = 0
    author_contribution: dict[str, int] = field(default_factory=dict)


@dataclass
class RepoAnalysisResult:
    """Persisted analysis of a single repository."""

    repo_name: str
    branch: str
    total_commits: int = 0
    authors: list[str] = field(default_factory=list)
    first_commit: str | None = None
    last_commit: str | None = None
    summary: RepoSummary = field(default_factory=RepoSummary)
    aggregations: Aggregations = field(default_factory=Aggregations)
    recent_commits: list[CommitRecord] = field(default_factory=list)
    file_churn: list[FileChurn] = field(default_factory=list)
    analyzed_at: datetime | None = None

    @classmethod
    def empty(cls, repo_name: str, branch: str) -> RepoAnalysisResult:
        """A repository without history: every count zero, every list empty."""
        return cls(repo_name=repo_name, branch=branch)


# ── Commit message analysis ─────────────────────────────────────────────────


class Severity(Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass
class MessageIssue:
    severity: Severity
    rule: str
    message: str
    line: int | None = None


@dataclass
class CommitMessageAnalysis:
    hash: str
    author: str
    date: str
    message: str
    subject: str
    body: str
    score: int  # 0-100
    passed: bool
    issues: list[MessageIssue] = field(default_factory=list)


@dataclass
class RuleViolationSummary:
    rule: str
    violations: int
    description: str


@dataclass
class CommitMessageReport:
    """Message compliance across a window of a repository's history."""

    total_commits: int
    analyzed_commits: int
    overall_score: float
    pass_rate: float
    commits: list[CommitMessageAnalysis] = field(default_factory=list)
    rules_summary: list[RuleViolationSummary] = field(default_factory=list)


# ── Developer statistics ────────────────────────────────────────────────────


class CommitType(Enum):
    FEAT = "feat"
    FIX = "fix"
    DOCS = "docs"
    STYLE = "style"
    REFACTOR = "refactor"
    PERF = "perf"
    TEST = "test"
    BUILD = "build"
    CI = "ci"
    CHORE = "chore"
    REVERT = "revert"
    OTHER = "other"

    @classmethod
    def from_prefix(cls, prefix: str) -> CommitType:
        """Map a conventional-commit prefix to a type; unknown words are OTHER."""
        try:
            member = cls(prefix)
        except ValueError:
            return cls.OTHER
        return member


class SizeBucket(Enum):
    TINY = "tiny"  # <= 10 changed lines
    SMALL = "small"  # <= 50
    MEDIUM = "medium"  # <= 200
    LARGE = "large"  # <= 400
    HUGE = "huge"  # > 400

    @classmethod
    def for_lines(cls, changed_lines: int) -> SizeBucket:
        if changed_lines <= 10:
            return cls.TINY
        if changed_lines <= 50:
            return cls.SMALL
        if changed_lines <= 200:
            return cls.MEDIUM
        if changed_lines <= 400:
            return cls.LARGE
        return cls.HUGE


class WorkingPeriod(Enum):
    MORNING = "morning"  # 06-12
    AFTERNOON = "afternoon"  # 12-18
    EVENING = "evening"  # 18-22
    NIGHT = "night"  # 22-06

    @classmethod
    def for_hour(cls, hour: int) -> WorkingPeriod:
        if 6 <= hour < 12:
            return cls.MORNING
        if 12 <= hour < 18:
            return cls.AFTERNOON
        if 18 <= hour < 22:
            return cls.EVENING
        return cls.NIGHT


@dataclass
class DeveloperMetrics:
    total_commits: int = 0
    lines_added: int = 0
    lines_removed: int = 0
    lines_modified: int = 0
    repositories: list[str] = field(default_factory=list)
    documentation_ratio: float = 0.0  # percent
    test_ratio: float = 0.0  # percent


@dataclass
class CommonIssue:
    rule: str
    count: int
    description: str


@dataclass
class MessageCompliance:
    total_messages: int = 0
    valid_messages: int = 0
    average_score: float = 0.0
    pass_percentage: float = 0.0
    common_issues: list[CommonIssue] = field(default_factory=list)


@dataclass
class DailyActivity:
    date: str
    commits: int
    lines_added: int
    lines_removed: int


@dataclass
class DeveloperActivity:
    total_days: int = 0
    active_days: int = 0
    average_commits_per_day: float = 0.0
    most_active_day: str | None = None
    commits_by_day_of_week: dict[str, int] = field(
        default_factory=lambda: {day: 0 for day in WEEKDAY_NAMES}
    )
    commits_by_hour: dict[int, int] = field(default_factory=dict)
    recent_activity: list[DailyActivity] = field(default_factory=list)


@dataclass
class DeveloperCommit:
    hash: str
    message: str
    date: str
    repository: str
    insertions: int
    deletions: int


@dataclass
class SizeDistribution:
    counts: dict[SizeBucket, int] = field(
        default_factory=lambda: {bucket: 0 for bucket in SizeBucket}
    )
    average_lines_per_commit: float = 0.0
    median_lines_per_commit: float = 0.0


@dataclass
class TypeDistribution:
    counts: dict[CommitType, int] = field(
        default_factory=lambda: {commit_type: 0 for commit_type in CommitType}
    )
    bug_fix_ratio: float = 0.0  # fix / conventional commits

    @property
    def conventional_total(self) -> int:
        return sum(self.counts.values())


@dataclass
class WorkingHoursAnalysis:
    late_night_commits: int = 0
    weekend_commits: int = 0
    business_hours_commits: int = 0
    late_night_percentage: float = 0.0
    weekend_percentage: float = 0.0
    business_hours_percentage: float = 0.0
    period_counts: dict[WorkingPeriod, int] = field(
        default_factory=lambda: {period: 0 for period in WorkingPeriod}
    )
    preferred_working_hours: WorkingPeriod | None = None


@dataclass
class DeveloperStats:
    """Everything known about one (name, email) identity across repositories."""

    name: str
    email: str
    metrics: DeveloperMetrics = field(default_factory=DeveloperMetrics)
    message_compliance: MessageCompliance = field(default_factory=MessageCompliance)
    activity: DeveloperActivity = field(default_factory=DeveloperActivity)
    recent_commits: list[DeveloperCommit] = field(default_factory=list)
    size_distribution: SizeDistribution = field(default_factory=SizeDistribution)
    type_distribution: TypeDistribution = field(default_factory=TypeDistribution)
    working_hours: WorkingHoursAnalysis = field(default_factory=WorkingHoursAnalysis)


@dataclass
class DeveloperReport:
    total_developers: int
    developers: list[DeveloperStats] = field(default_factory=list)
    generated_at: datetime | None = None


# ── Repository index ────────────────────────────────────────────────────────


class AnalysisStatus(Enum):
    OK = "ok"
    ERROR = "error"
    ANALYZING = "analyzing"


@dataclass
class IndexSummary:
    """Headline numbers copied from an analysis artifact into the index."""

    total_commits: int = 0
    total_authors: int = 0
    total_lines_added: int = 0
    total_lines_removed: int = 0
    total_files_changed: int = 0
    first_commit: str | None = None
    last_commit: str | None = None

    @classmethod
    def from_result(cls, result: RepoAnalysisResult) -> IndexSummary:
        return cls(
            total_commits=result.total_commits,
            total_authors=len(result.authors),
            total_lines_added=result.summary.total_lines_added,
            total_lines_removed=result.summary.total_lines_removed,
            total_files_changed=result.summary.total_files_changed,
            first_commit=result.first_commit,
            last_commit=result.last_commit,
        )


@dataclass
class RepoMetadata:
    repo_path: str
    repo_name: str
    status: AnalysisStatus
    last_analyzed: str
    output_file: str | None = None
    error: str | None = None
    branch: str | None = None
    summary: IndexSummary | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "repo_path": self.repo_path,
            "repo_name": self.repo_name,
            "status": self.status.value,
            "last_analyzed": self.last_analyzed,
        }
        for key in ("output_file", "error", "branch"):
            value = getattr(self, key)
            if value:
                data[key] = value
        if self.summary is not None:
            data["summary"] = dict(vars(self.summary))
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RepoMetadata:
        summary = data.get("summary")
        return cls(
            repo_path=data["repo_path"],
            repo_name=data.get("repo_name") or "",
            status=AnalysisStatus(data.get("status", "error")),
            last_analyzed=data.get("last_analyzed", ""),
            output_file=data.get("output_file"),
            error=data.get("error"),
            branch=data.get("branch"),
            summary=IndexSummary(**summary) if summary else None,
        )


@dataclass
class StaleArtifact:
    """An analysis file on disk that no index entry refers to."""

    path: Path
    size: int
    modified: datetime


# ── Folder scans ────────────────────────────────────────────────────────────


class ScanStatus(Enum):
    SCANNING = "scanning"
    ANALYZING = "analyzing"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass
class FolderScanProgress:
    """Live, in-memory progress of one folder scan."""

    scan_id: str
    status: ScanStatus = ScanStatus.SCANNING
    current_folder: str | None = None
    scanned_count: int = 0
    found_repos: int = 0
    successful_analysis: int = 0
    failed_analysis: int = 0
    message: str | None = None
    error: str | None = None
    finished_at: float | None = None  # monotonic clock

    @property
    def is_finished(self) -> bool:
        return self.status in (ScanStatus.COMPLETE, ScanStatus.ERROR)


@dataclass
class RepoAnalysisOutcome:
    repo_path: str
    analysis: RepoAnalysisResult | None = None
    saved_to: str | None = None
    error: str | None = None


@dataclass
class FolderAnalysisResult:
    found_repos: int
    results: list[RepoAnalysisOutcome] = field(default_factory=list)
    errors: list[RepoAnalysisOutcome] = field(default_factory=list)

    @property
    def message(self) -> str:
        if not self.found_repos:
            return "No git repositories found"
        return f"Found and analyzed {len(self.results)} repositories"

"""Commit message linting against subject/body style and Conventional Commits."""

from __future__ import annotations

import logging
import re
from collections import Counter

from repopulse.extractors.git_log import GIT_LOG_FORMAT, ensure_repository, parse_log
from repopulse.git import GitClient
from repopulse.models import (
    CommitMessageAnalysis,
    CommitMessageReport,
    MessageIssue,
    RuleViolationSummary,
    Severity,
)

logger = logging.getLogger(__name__)

# ── Rule configuration ───────────────────────────────────────────────────────

CONVENTIONAL_TYPES = (
    "feat",
    "fix",
    "docs",
    "style",
    "refactor",
    "perf",
    "test",
    "build",
    "ci",
    "chore",
    "revert",
)

SUBJECT_MAX_LENGTH = 50
SUBJECT_HARD_MAX_LENGTH = 72
SUBJECT_MIN_LENGTH = 10
BODY_MAX_LINE_LENGTH = 72
PASSING_SCORE = 70

_PENALTIES = {Severity.ERROR: 20, Severity.WARNING: 10, Severity.INFO: 5}

# Anything shaped like "word:" or "word(scope):" is held to the full grammar
LOOKS_CONVENTIONAL_RE = re.compile(r"^[a-z]+(\([a-z0-9-]+\))?:", re.IGNORECASE)
CONVENTIONAL_RE = re.compile(
    r"^(?P<type>[a-z]+)"
    r"(?P<scope>\([a-z0-9-]+\))?"
    r":\s*"
    r"(?P<description>.+)$",
    re.IGNORECASE,
)

GENERIC_SUBJECTS = frozenset(
    {
        "wip",
        "fix",
        "fixes",
        "fixed",
        "update",
        "updates",
        "updated",
        "change",
        "changes",
        "changed",
        "minor",
        "tmp",
        "temp",
    }
)

RULE_DESCRIPTIONS: dict[str, str] = {
    "subject-empty": "Subject line is empty",
    "subject-length": "Subject line exceeds recommended length",
    "subject-min-length": "Subject line is too short",
    "subject-period": "Subject line ends with a period",
    "subject-capitalization": "Subject line not capitalized",
    "conventional-format": "Invalid Conventional Commits format",
    "conventional-type": "Unknown or invalid commit type",
    "conventional-type-case": "Commit type not lowercase",
    "conventional-scope-case": "Commit scope not lowercase",
    "conventional-description": "Commit description is empty",
    "conventional-description-case": "Description not lowercase",
    "blank-line": "Missing blank line between subject and body",
    "body-line-length": "Body line exceeds recommended length",
    "generic-message": "Generic or vague commit message",
}


# ── Individual rules ─────────────────────────────────────────────────────────


def _has_conventional_prefix(subject: str) -> bool:
    lowered = subject.lower()
    return any(
        lowered.startswith(f"{t}:") or lowered.startswith(f"{t}(") for t in CONVENTIONAL_TYPES
    )


def _check_subject(subject: str) -> list[MessageIssue]:
    issues: list[MessageIssue] = []
    trimmed = subject.strip()

    if not trimmed:
        issues.append(
            MessageIssue(Severity.ERROR, "subject-empty", "Subject line must not be empty", 1)
        )

    if len(subject) > SUBJECT_MAX_LENGTH:
        severity = Severity.ERROR if len(subject) > SUBJECT_HARD_MAX_LENGTH else Severity.WARNING
        issues.append(
            MessageIssue(
                severity,
                "subject-length",
                f"Subject line should be {SUBJECT_MAX_LENGTH} characters or less "
                f"(currently {len(subject)})",
                1,
            )
        )

    if 0 < len(trimmed) < SUBJECT_MIN_LENGTH:
        issues.append(
            MessageIssue(
                Severity.WARNING,
                "subject-min-length",
                f"Subject line should be at least {SUBJECT_MIN_LENGTH} characters "
                f"(currently {len(trimmed)})",
                1,
            )
        )

    if subject.endswith("."):
        issues.append(
            MessageIssue(
                Severity.WARNING, "subject-period", "Subject line should not end with a period", 1
            )
        )

    if subject and not _has_conventional_prefix(subject) and subject[0] != subject[0].upper():
        issues.append(
            MessageIssue(
                Severity.INFO,
                "subject-capitalization",
                "Subject line should start with a capital letter",
                1,
            )
        )

    return issues


def _check_conventional(subject: str) -> list[MessageIssue]:
    if not LOOKS_CONVENTIONAL_RE.match(subject):
        return []

    m = CONVENTIONAL_RE.match(subject)
    if not m:
        return [
            MessageIssue(
                Severity.ERROR,
                "conventional-format",
                "Invalid Conventional Commits format. Expected: type(scope): description",
                1,
            )
        ]

    issues: list[MessageIssue] = []
    type_, scope, description = m.group("type"), m.group("scope"), m.group("description")

    if type_.lower() not in CONVENTIONAL_TYPES:
        issues.append(
            MessageIssue(
                Severity.WARNING,
                "conventional-type",
                f'Unknown conventional commit type "{type_}". '
                f"Common types: {', '.join(CONVENTIONAL_TYPES)}",
                1,
            )
        )
    if type_ != type_.lower():
        issues.append(
            MessageIssue(
                Severity.ERROR,
                "conventional-type-case",
                "Conventional commit type must be lowercase",
                1,
            )
        )
    if scope and scope != scope.lower():
        issues.append(
            MessageIssue(
                Severity.ERROR,
                "conventional-scope-case",
                "Conventional commit scope must be lowercase",
                1,
            )
        )
    if not description.strip():
        issues.append(
            MessageIssue(
                Severity.ERROR,
                "conventional-description",
                "Conventional commit description must not be empty",
                1,
            )
        )
    if description[0] != description[0].lower():
        issues.append(
            MessageIssue(
                Severity.INFO,
                "conventional-description-case",
                "Conventional commit description should start with lowercase",
                1,
            )
        )
    return issues


def _check_body(lines: list[str], body: str) -> list[MessageIssue]:
    issues: list[MessageIssue] = []

    if len(lines) > 1 and lines[1] != "":
        issues.append(
            MessageIssue(
                Severity.WARNING,
                "blank-line",
                "There should be a blank line between subject and body",
                2,
            )
        )

    if body:
        for index, line in enumerate(body.split("\n")):
            if len(line) > BODY_MAX_LINE_LENGTH:
                issues.append(
                    MessageIssue(
                        Severity.INFO,
                        "body-line-length",
                        f"Body line {index + 3} exceeds {BODY_MAX_LINE_LENGTH} characters "
                        f"({len(line)})",
                        index + 3,
                    )
                )
    return issues


def _check_generic(subject: str) -> list[MessageIssue]:
    if subject.strip().lower() in GENERIC_SUBJECTS:
        return [
            MessageIssue(
                Severity.WARNING,
                "generic-message",
                "Commit message appears too generic or vague",
                1,
            )
        ]
    return []


def score_issues(issues: list[MessageIssue]) -> int:
    """100 minus 20 per error, 10 per warning, 5 per info, never below 0."""
    return max(0, 100 - sum(_PENALTIES[i.severity] for i in issues))


# ── Public API ───────────────────────────────────────────────────────────────


def analyze_commit_message(
    commit_hash: str, author: str, date: str, message: str
) -> CommitMessageAnalysis:
    """Lint a single commit message.

    The subject is the first line and the body is everything from the third
    line on. Every rule runs; none short-circuits another. A message passes
    when it scores at least 70 and carries no error-level issue.
    """
    lines = message.split("\n")
    subject = lines[0]
    body = "\n".join(lines[2:]).strip()

    issues = [
        *_check_subject(subject),
        *_check_conventional(subject),
        *_check_body(lines, body),
        *_check_generic(subject),
    ]

    score = score_issues(issues)
    passed = score >= PASSING_SCORE and not any(i.severity == Severity.ERROR for i in issues)

    return CommitMessageAnalysis(
        hash=commit_hash,
        author=author,
        date=date,
        message=message,
        subject=subject,
        body=body,
        score=score,
        passed=passed,
        issues=issues,
    )


def summarize_rules(rule_counts: Counter[str] | dict[str, int]) -> list[RuleViolationSummary]:
    """Violation counts per rule, most violated first."""
    summary = [
        RuleViolationSummary(
            rule=rule, violations=count, description=RULE_DESCRIPTIONS.get(rule, rule)
        )
        for rule, count in rule_counts.items()
    ]
    summary.sort(key=lambda s: s.violations, reverse=True)
    return summary


def analyze_repository_messages(
    repo_path: str,
    *,
    branch: str | None = None,
    limit: int = 100,
    since: str | None = None,
    until: str | None = None,
    client: GitClient | None = None,
) -> CommitMessageReport:
    """Lint the messages of the latest ``limit`` commits of a repository."""
    client = client or GitClient()
    ensure_repository(repo_path, client)

    if not client.resolve_ref(repo_path, "HEAD"):
        return CommitMessageReport(
            total_commits=0, analyzed_commits=0, overall_score=0.0, pass_rate=0.0
        )

    rev = branch if branch and client.resolve_ref(repo_path, branch) else "HEAD"
    filters: list[str] = []
    if since:
        filters.append(f"--since={since}")
    if until:
        filters.append(f"--until={until}")

    output = client.log(repo_path, GIT_LOG_FORMAT, f"--max-count={limit}", *filters, rev, "--")
    total = int(client.run(repo_path, "rev-list", "--count", *filters, rev, "--").strip() or 0)

    analyses: list[CommitMessageAnalysis] = []
    rule_counts: Counter[str] = Counter()
    for commit in parse_log(output):
        analysis = analyze_commit_message(
            commit.hash, commit.author_name, commit.timestamp.isoformat(), commit.message
        )
        analyses.append(analysis)
        rule_counts.update(issue.rule for issue in analysis.issues)

    analyzed = len(analyses)
    passed = sum(1 for a in analyses if a.passed)
    logger.info("Linted %d commit messages in %s", analyzed, repo_path)

    return CommitMessageReport(
        total_commits=total,
        analyzed_commits=analyzed,
        overall_score=sum(a.score for a in analyses) / analyzed if analyzed else 0.0,
        pass_rate=passed / analyzed * 100 if analyzed else 0.0,
        commits=analyses,
        rules_summary=summarize_rules(rule_counts),
    )

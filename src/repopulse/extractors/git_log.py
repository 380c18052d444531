"""Commit log extraction: one git log call plus a diff per commit."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path

from repopulse.errors import GitCommandError, NotARepositoryError, RepositoryNotFoundError
from repopulse.git import GitClient
from repopulse.models import CommitRecord

logger = logging.getLogger(__name__)

COMMIT_SEP = "\x1e"  # record separator (ASCII RS)
FIELD_SEP = "\x1f"  # field separator (ASCII US)

# %x1f/%x1e keep NUL bytes out of the subprocess arguments
GIT_LOG_FORMAT = "%x1f".join(
    [
        "%H",  # hash
        "%an",  # author name
        "%ae",  # author email
        "%aI",  # author date, strict ISO 8601
        "%B",  # raw message (subject + body)
    ]
) + "%x1e"


def _parse_commit_block(raw: str) -> CommitRecord | None:
    """Parse one formatted log record into a CommitRecord with zero stats."""
    parts = raw.split(FIELD_SEP, 4)
    if len(parts) < 5:
        return None

    hash_, author_name, author_email, date_str, message = parts
    if not hash_ or not date_str:
        return None

    return CommitRecord(
        hash=hash_.strip(),
        author_name=author_name,
        author_email=author_email,
        timestamp=datetime.fromisoformat(date_str),
        message=message.rstrip(),
    )


def parse_log(output: str) -> list[CommitRecord]:
    """Split raw ``git log`` output into records, preserving git's order."""
    commits: list[CommitRecord] = []
    for raw in output.split(COMMIT_SEP):
        raw = raw.lstrip("\n")
        if not raw.strip():
            continue
        commit = _parse_commit_block(raw)
        if commit:
            commits.append(commit)
    return commits


def ensure_repository(repo_path: str, client: GitClient) -> None:
    """Raise unless ``repo_path`` is an existing git working tree."""
    if not Path(repo_path).is_dir():
        raise RepositoryNotFoundError(repo_path)
    if not client.check_is_repo(repo_path):
        raise NotARepositoryError(repo_path)


def extract_commits(
    repo_path: str,
    branch: str = "main",
    client: GitClient | None = None,
) -> list[CommitRecord]:
    """Extract every non-merge commit reachable from ``branch``, newest first.

    Each commit except the oldest is diffed against its first parent. The
    oldest commit has nothing to diff against and keeps zero stats. A diff
    that fails is logged and leaves that one commit with zero stats.

    Args:
        repo_path: Path to the git working tree.
        branch: Branch to walk. Falls back to HEAD when it does not resolve.
        client: Git client; a default one is created when omitted.

    Returns:
        CommitRecords ordered newest first; empty when there is no history.

    Raises:
        RepositoryNotFoundError: ``repo_path`` does not exist.
        NotARepositoryError: ``repo_path`` is not a git repository.
    """
    client = client or GitClient()
    ensure_repository(repo_path, client)

    if not client.resolve_ref(repo_path, "HEAD"):
        logger.info("%s has no commits yet", repo_path)
        return []

    rev = branch
    if not branch or not client.resolve_ref(repo_path, branch):
        logger.warning("Branch %r not found in %s, falling back to HEAD", branch, repo_path)
        rev = "HEAD"

    output = client.log(repo_path, GIT_LOG_FORMAT, "--no-merges", rev, "--")
    headers = parse_log(output)

    commits: list[CommitRecord] = []
    oldest = len(headers) - 1
    for index, commit in enumerate(headers):
        if index == oldest:
            commits.append(commit)
            continue
        try:
            diff = client.diff_summary(repo_path, f"{commit.hash}~1..{commit.hash}")
        except GitCommandError as exc:
            logger.warning("Could not get diff for commit %s: %s", commit.hash, exc)
            commits.append(commit)
            continue
        commits.append(commit.with_stats(diff.insertions, diff.deletions, diff.files_changed))

    logger.info("Extracted %d commits from %s (%s)", len(commits), repo_path, rev)
    return commits

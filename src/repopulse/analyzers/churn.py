"""Per-file change volume over a trailing window of history."""

from __future__ import annotations

import logging
from collections import defaultdict
from pathlib import PurePosixPath

from repopulse.extractors.git_log import ensure_repository
from repopulse.extractors.numstat import parse_numstat_line
from repopulse.git import GitClient
from repopulse.models import FileChurn

logger = logging.getLogger(__name__)

DEFAULT_WINDOW = "1 month ago"

# Generated dependency manifests; their churn tracks upgrades, not work
EXCLUDED_FILENAMES = frozenset(
    {
        "package-lock.json",
        "npm-shrinkwrap.json",
        "yarn.lock",
        "pnpm-lock.yaml",
        "bun.lockb",
        "Cargo.lock",
        "go.sum",
        "composer.lock",
        "Gemfile.lock",
        "poetry.lock",
        "Pipfile.lock",
        "uv.lock",
        "Podfile.lock",
        "mix.lock",
        "pubspec.lock",
    }
)

EXCLUDED_EXTENSIONS = frozenset({".md", ".mdx", ".markdown", ".adoc", ".asciidoc", ".rst"})


def is_excluded(path: str) -> bool:
    """True for lockfiles and prose documents."""
    p = PurePosixPath(path)
    return p.name in EXCLUDED_FILENAMES or p.suffix.lower() in EXCLUDED_EXTENSIONS


def parse_numstat(text: str) -> list[FileChurn]:
    """Accumulate per-file churn from ``git log --numstat --format=`` output.

    Binary files ('-' counts) contribute zero lines but still count as a
    change. Renames are credited to the new path. Excluded files never reach
    the accumulator.

    Returns:
        FileChurn entries sorted by total changes descending, then path.
    """
    file_data: dict[str, _FileStats] = defaultdict(_FileStats)

    for line in text.splitlines():
        if not line.strip():
            continue
        fc = parse_numstat_line(line)
        if fc is None:
            logger.debug("Skipping malformed numstat line: %r", line)
            continue
        if is_excluded(fc.path):
            continue

        stats = file_data[fc.path]
        stats.commit_count += 1
        stats.lines_added += fc.added or 0
        stats.lines_deleted += fc.deleted or 0

    churn = [
        FileChurn(
            path=path,
            lines_added=stats.lines_added,
            lines_deleted=stats.lines_deleted,
            total_changes=stats.lines_added + stats.lines_deleted,
            commit_count=stats.commit_count,
        )
        for path, stats in file_data.items()
    ]
    churn.sort(key=lambda f: (-f.total_changes, f.path))
    return churn


def calculate_churn(
    repo_path: str,
    since: str = DEFAULT_WINDOW,
    client: GitClient | None = None,
) -> list[FileChurn]:
    """Per-file churn of a live repository over the window ``since``.

    Args:
        repo_path: Path to the git working tree.
        since: Any ``git log --since`` expression, e.g. "1 month ago".
        client: Git client; a default one is created when omitted.
    """
    client = client or GitClient()
    ensure_repository(repo_path, client)
    if not client.resolve_ref(repo_path, "HEAD"):
        return []
    return parse_numstat(client.raw_numstat(repo_path, since))


class _FileStats:
    """Internal accumulator for per-file statistics."""

    __slots__ = ("commit_count", "lines_added", "lines_deleted")

    def __init__(self) -> None:
        self.commit_count: int = 0
        self.lines_added: int = 0
        self.lines_deleted: int = 0

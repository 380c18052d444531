"""JSON persistence: analysis artifacts and the repository metadata index.

Both live as plain files under the output directory. Writes replace whole
files with no locking, so two analyses finishing at the same moment can
race on ``metadata.json``; the last writer wins.
"""

from __future__ import annotations

import json
import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from repopulse.errors import IndexReadError
from repopulse.models import (
    AnalysisStatus,
    CommitMessageReport,
    IndexSummary,
    RepoAnalysisResult,
    RepoMetadata,
    StaleArtifact,
)
from repopulse.utils.serialization import to_jsonable

logger = logging.getLogger(__name__)

ANALYSIS_MARKER = "-analysis-"
MESSAGES_MARKER = "-commit-messages-"
INDEX_FILENAME = "metadata.json"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _write_json(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")


class ArtifactStore:
    """Analysis results as ``<repo>-analysis-<millis>.json``, message reports beside them."""

    def __init__(self, output_dir: Path | str) -> None:
        self.output_dir = Path(output_dir)

    def path_for(
        self, repo_name: str, timestamp_ms: int | None = None, marker: str = ANALYSIS_MARKER
    ) -> Path:
        if timestamp_ms is None:
            timestamp_ms = int(time.time() * 1000)
        return self.output_dir / f"{repo_name}{marker}{timestamp_ms}.json"

    def save(self, result: RepoAnalysisResult) -> Path:
        path = self.path_for(result.repo_name)
        _write_json(path, to_jsonable(result))
        logger.info("Saved analysis for %s to %s", result.repo_name, path)
        return path

    def save_message_report(self, repo_name: str, report: CommitMessageReport) -> Path:
        """Store a message report as ``<repo>-commit-messages-<millis>.json``."""
        path = self.path_for(repo_name, marker=MESSAGES_MARKER)
        _write_json(path, to_jsonable(report))
        logger.info("Saved commit message report for %s to %s", repo_name, path)
        return path

    def load(self, path: Path | str) -> dict[str, Any]:
        with open(path, encoding="utf-8") as f:
            return json.load(f)

    def resolve(self, output_file: str) -> Path:
        """Locate an artifact referenced by the index, tolerating moved output dirs."""
        path = Path(output_file)
        if path.is_absolute() and path.exists():
            return path
        candidate = self.output_dir / path.name
        return candidate if candidate.exists() else path

    def list_analysis_files(self) -> list[Path]:
        if not self.output_dir.is_dir():
            return []
        return sorted(
            p
            for p in self.output_dir.glob(f"*{ANALYSIS_MARKER}*.json")
            if p.name != INDEX_FILENAME
        )

    @staticmethod
    def repo_name_from_filename(filename: str) -> str:
        return filename.split(ANALYSIS_MARKER)[0] or "unknown"

    def find_unreferenced(self, index: RepositoryIndex) -> list[StaleArtifact]:
        """Analysis files no index entry points at, without touching them.

        Raises:
            IndexReadError: the index is missing or corrupt.
        """
        if not index.path.exists():
            raise IndexReadError(str(index.path), "file not found")
        referenced = {
            Path(repo.output_file).name for repo in index.read() if repo.output_file
        }
        stale: list[StaleArtifact] = []
        for path in self.list_analysis_files():
            if path.name in referenced:
                continue
            stat = path.stat()
            stale.append(
                StaleArtifact(
                    path=path,
                    size=stat.st_size,
                    modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                )
            )
        return stale

    def cleanup_unreferenced(self, index: RepositoryIndex) -> list[Path]:
        """Delete artifacts no index entry points at. Returns the deleted paths."""
        deleted: list[Path] = []
        for artifact in self.find_unreferenced(index):
            artifact.path.unlink()
            deleted.append(artifact.path)
        logger.info("Removed %d unreferenced analysis files", len(deleted))
        return deleted


class RepositoryIndex:
    """``metadata.json``: one entry per analyzed repository, keyed by path."""

    def __init__(self, output_dir: Path | str, artifacts: ArtifactStore | None = None) -> None:
        self.output_dir = Path(output_dir)
        self.artifacts = artifacts or ArtifactStore(self.output_dir)

    @property
    def path(self) -> Path:
        return self.output_dir / INDEX_FILENAME

    # ── Raw access ────────────────────────────────────────────────────────────

    def read(self) -> list[RepoMetadata]:
        """Parse the index. A missing file is an empty index.

        Raises:
            IndexReadError: the file exists but is not a valid index.
        """
        if not self.path.exists():
            return []
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            return [RepoMetadata.from_dict(r) for r in raw.get("repositories", [])]
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as exc:
            raise IndexReadError(str(self.path), str(exc)) from exc

    def read_or_empty(self) -> list[RepoMetadata]:
        try:
            return self.read()
        except IndexReadError as exc:
            logger.error("%s", exc)
            return []

    def write(self, repos: list[RepoMetadata]) -> None:
        _write_json(
            self.path,
            {"repositories": [r.to_dict() for r in repos], "last_updated": _now_iso()},
        )

    # ── Queries ───────────────────────────────────────────────────────────────

    def all(self) -> list[RepoMetadata]:
        """Every entry, with missing summaries filled in from their artifacts."""
        return self.hydrate_summaries()

    def get(self, repo_path: str) -> RepoMetadata | None:
        return next((r for r in self.read_or_empty() if r.repo_path == repo_path), None)

    def list_by_status(self, status: AnalysisStatus) -> list[RepoMetadata]:
        return [r for r in self.read() if r.status == status]

    # ── Updates ───────────────────────────────────────────────────────────────

    def upsert_status(
        self,
        repo_path: str,
        status: AnalysisStatus,
        *,
        repo_name: str | None = None,
        output_file: str | None = None,
        error: str | None = None,
        branch: str | None = None,
        summary: IndexSummary | None = None,
    ) -> RepoMetadata:
        """Replace (or add) the entry for ``repo_path``."""
        repos = self.read_or_empty()
        entry = RepoMetadata(
            repo_path=repo_path,
            repo_name=repo_name or Path(repo_path).name,
            status=status,
            last_analyzed=_now_iso(),
            output_file=output_file,
            error=error,
            branch=branch,
            summary=summary,
        )
        for i, existing in enumerate(repos):
            if existing.repo_path == repo_path:
                repos[i] = entry
                break
        else:
            repos.append(entry)
        self.write(repos)
        return entry

    def clear_analyzing(self) -> int:
        """Mark entries stuck in ``analyzing`` (from a crash) as errors."""
        repos = self.read_or_empty()
        cleared = 0
        for repo in repos:
            if repo.status == AnalysisStatus.ANALYZING:
                repo.status = AnalysisStatus.ERROR
                repo.error = "Analysis interrupted or crashed"
                cleared += 1
        self.write(repos)
        return cleared

    def hydrate_summaries(self) -> list[RepoMetadata]:
        repos = self.read_or_empty()
        updated = False

        for repo in repos:
            if repo.summary or not repo.output_file or repo.status != AnalysisStatus.OK:
                continue
            path = self.artifacts.resolve(repo.output_file)
            if not path.exists():
                continue
            try:
                data = self.artifacts.load(path)
                summary = data["summary"]
                repo.summary = IndexSummary(
                    total_commits=data.get("total_commits", 0),
                    total_authors=len(data.get("authors") or []),
                    total_lines_added=summary.get("total_lines_added", 0),
                    total_lines_removed=summary.get("total_lines_removed", 0),
                    total_files_changed=summary.get("total_files_changed", 0),
                    first_commit=data.get("first_commit"),
                    last_commit=data.get("last_commit"),
                )
                updated = True
            except (OSError, ValueError, KeyError, TypeError, AttributeError) as exc:
                logger.warning("Unable to hydrate summary for %s: %s", repo.repo_name, exc)

        if updated:
            self.write(repos)
        return repos

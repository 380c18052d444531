"""Folder scanning: repository discovery and background scan jobs.

A scan walks a directory tree for git working trees, then analyzes each one
it found. :class:`ScanOrchestrator` runs that on a daemon thread and
publishes progress through a :class:`ScanProgressStore` that callers poll.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from collections.abc import Callable
from dataclasses import replace
from pathlib import Path
from typing import Any

from repopulse.config import RepoPulseConfig
from repopulse.errors import RepositoryNotFoundError
from repopulse.git import GitClient
from repopulse.models import FolderScanProgress, ScanStatus
from repopulse.store import RepositoryIndex

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, int], None]


# ── Discovery ───────────────────────────────────────────────────────────────


def discover_repositories(
    root: str | Path,
    max_depth: int = 3,
    on_progress: ProgressCallback | None = None,
    client: GitClient | None = None,
) -> list[str]:
    """Find git working trees under ``root``, at most ``max_depth`` levels down.

    A directory that is a repository is reported and not descended into.
    Hidden directories are skipped, as are directories that cannot be read.

    Args:
        root: Directory to start from (depth 0).
        max_depth: Deepest level still inspected.
        on_progress: Called with (directory, directories visited so far).
        client: Git client; a default one is created when omitted.

    Raises:
        RepositoryNotFoundError: ``root`` does not exist.
    """
    client = client or GitClient()
    root = Path(root)
    if not root.exists():
        raise RepositoryNotFoundError(str(root))

    found: list[str] = []
    scanned = 0

    def visit(directory: Path, depth: int) -> None:
        nonlocal scanned
        if depth > max_depth:
            return
        scanned += 1
        if on_progress is not None:
            on_progress(str(directory), scanned)

        if client.check_is_repo(str(directory)):
            found.append(str(directory))
            return

        try:
            children = sorted(
                p for p in directory.iterdir() if p.is_dir() and not p.name.startswith(".")
            )
        except OSError as exc:
            logger.warning("Could not scan %s: %s", directory, exc)
            return
        for child in children:
            visit(child, depth + 1)

    visit(root, 0)
    logger.info("Found %d repositories under %s", len(found), root)
    return found


# ── Progress tracking ───────────────────────────────────────────────────────


class ScanProgressStore:
    """Thread-safe map of scan id to progress.

    The scan thread writes via :meth:`update`; pollers read snapshots via
    :meth:`get`. Finished scans are forgotten ``ttl_seconds`` after they end.
    """

    def __init__(self, ttl_seconds: float = 3600) -> None:
        self.ttl_seconds = ttl_seconds
        self._lock = threading.RLock()
        self._scans: dict[str, FolderScanProgress] = {}

    def create(self, scan_id: str) -> FolderScanProgress:
        with self._lock:
            self.evict_expired()
            progress = FolderScanProgress(scan_id=scan_id)
            self._scans[scan_id] = progress
            return replace(progress)

    def get(self, scan_id: str) -> FolderScanProgress | None:
        """Snapshot of a scan's progress, or None if unknown or evicted."""
        with self._lock:
            self.evict_expired()
            progress = self._scans.get(scan_id)
            return replace(progress) if progress else None

    def update(self, scan_id: str, **changes: Any) -> None:
        with self._lock:
            progress = self._scans.get(scan_id)
            if progress is None:
                return
            for key, value in changes.items():
                setattr(progress, key, value)
            if progress.is_finished and progress.finished_at is None:
                progress.finished_at = time.monotonic()

    def increment(self, scan_id: str, counter: str) -> None:
        with self._lock:
            progress = self._scans.get(scan_id)
            if progress is not None:
                setattr(progress, counter, getattr(progress, counter) + 1)

    def evict_expired(self, now: float | None = None) -> list[str]:
        """Drop finished scans older than the TTL. Returns the evicted ids."""
        now = time.monotonic() if now is None else now
        with self._lock:
            expired = [
                scan_id
                for scan_id, p in self._scans.items()
                if p.finished_at is not None and now - p.finished_at > self.ttl_seconds
            ]
            for scan_id in expired:
                del self._scans[scan_id]
        return expired

    def __len__(self) -> int:
        with self._lock:
            return len(self._scans)


# ── Background scans ────────────────────────────────────────────────────────


def new_scan_id() -> str:
    return f"scan-{int(time.time() * 1000)}-{uuid.uuid4().hex[:6]}"


class ScanOrchestrator:
    """Runs folder scans on daemon threads.

    Scans cannot be cancelled, and starting a second scan does not stop the
    first; both write to the same index.
    """

    def __init__(
        self,
        store: ScanProgressStore,
        config: RepoPulseConfig,
        *,
        client: GitClient | None = None,
        index: RepositoryIndex | None = None,
    ) -> None:
        self.store = store
        self.config = config
        self.client = client or GitClient()
        self.index = index or RepositoryIndex(config.paths.output_path)
        self._threads: dict[str, threading.Thread] = {}

    def start(
        self,
        folder: str | Path,
        max_depth: int | None = None,
        branch: str | None = None,
        save_results: bool = True,
    ) -> str:
        """Start scanning ``folder`` in the background and return the scan id."""
        self._prune_finished()
        scan_id = new_scan_id()
        self.store.create(scan_id)
        thread = threading.Thread(
            target=self._run,
            args=(
                scan_id,
                Path(folder).resolve(),
                self.config.analysis.max_scan_depth if max_depth is None else max_depth,
                branch or self.config.analysis.default_branch,
                save_results,
            ),
            name=scan_id,
            daemon=True,
        )
        self._threads[scan_id] = thread
        thread.start()
        logger.info("Started %s for %s", scan_id, folder)
        return scan_id

    def wait(self, scan_id: str, timeout: float | None = None) -> FolderScanProgress | None:
        """Block until the scan's thread exits, then return its progress."""
        thread = self._threads.get(scan_id)
        if thread is not None:
            thread.join(timeout)
            if not thread.is_alive():
                self._threads.pop(scan_id, None)
        return self.store.get(scan_id)

    def active_scans(self) -> list[str]:
        """Ids of scans whose threads are still running."""
        self._prune_finished()
        return list(self._threads)

    def _prune_finished(self) -> None:
        for scan_id, thread in list(self._threads.items()):
            if not thread.is_alive():
                del self._threads[scan_id]

    def _run(
        self, scan_id: str, folder: Path, max_depth: int, branch: str, save_results: bool
    ) -> None:
        from repopulse.pipeline import analyze_found_repository

        def on_progress(current: str, scanned: int) -> None:
            self.store.update(scan_id, current_folder=current, scanned_count=scanned)

        try:
            found = discover_repositories(folder, max_depth, on_progress, client=self.client)
            self.store.update(scan_id, found_repos=len(found))
            if not found:
                self.store.update(
                    scan_id,
                    status=ScanStatus.COMPLETE,
                    current_folder=None,
                    message="No git repositories found",
                )
                return

            self.store.update(scan_id, status=ScanStatus.ANALYZING)
            successes = 0
            for repo_path in found:
                self.store.update(scan_id, current_folder=repo_path)
                outcome = analyze_found_repository(
                    repo_path,
                    branch,
                    config=self.config,
                    client=self.client,
                    index=self.index,
                    save_results=save_results,
                )
                if outcome.error:
                    self.store.increment(scan_id, "failed_analysis")
                else:
                    successes += 1
                    self.store.increment(scan_id, "successful_analysis")

            self.store.update(
                scan_id,
                status=ScanStatus.COMPLETE,
                current_folder=None,
                message=f"Found and analyzed {successes} repositories",
            )
        except Exception as exc:
            logger.exception("Folder scan %s failed", scan_id)
            self.store.update(
                scan_id, status=ScanStatus.ERROR, current_folder=None, error=str(exc)
            )

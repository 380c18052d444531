"""Tests for repository discovery and background folder scans."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import patch

import pytest

from repopulse.errors import GitCommandError, RepositoryNotFoundError
from repopulse.models import AnalysisStatus, ScanStatus
from repopulse.scanning import (
    ScanOrchestrator,
    ScanProgressStore,
    discover_repositories,
    new_scan_id,
)

from conftest import init_repo, requires_git


def _repo_with_commit(path: Path) -> Path:
    repo = init_repo(path)
    repo.commit(
        "feat: initial commit",
        {"main.py": "print('hi')\n"},
        datetime.now(timezone.utc) - timedelta(days=1),
    )
    return path


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """root/a, root/b/c and root/x/y/z/w are repositories; root/.hidden/d is hidden."""
    root = tmp_path / "root"
    init_repo(root / "a")
    (root / "a" / "nested").mkdir()
    init_repo(root / "a" / "nested" / "inner")
    init_repo(root / "b" / "c")
    init_repo(root / ".hidden" / "d")
    init_repo(root / "x" / "y" / "z" / "w")
    (root / "empty").mkdir()
    return root


@requires_git
class TestDiscoverRepositories:
    def test_finds_repositories_within_depth(self, workspace):
        found = discover_repositories(workspace)
        assert found == [str(workspace / "a"), str(workspace / "b" / "c")]

    def test_depth_limit(self, workspace):
        assert discover_repositories(workspace, max_depth=1) == [str(workspace / "a")]
        found = discover_repositories(workspace, max_depth=4)
        assert str(workspace / "x" / "y" / "z" / "w") in found

    def test_does_not_descend_into_repositories(self, workspace):
        found = discover_repositories(workspace, max_depth=5)
        assert not any("inner" in p for p in found)

    def test_skips_hidden_directories(self, workspace):
        found = discover_repositories(workspace, max_depth=5)
        assert not any(".hidden" in p for p in found)

    def test_root_is_repository(self, workspace):
        root = workspace / "a"
        assert discover_repositories(root) == [str(root)]

    def test_progress_callback(self, workspace):
        seen: list[tuple[str, int]] = []
        discover_repositories(workspace, on_progress=lambda p, n: seen.append((p, n)))
        assert seen[0] == (str(workspace), 1)
        assert [n for _, n in seen] == list(range(1, len(seen) + 1))
        assert str(workspace / "empty") in [p for p, _ in seen]

    def test_missing_root(self, tmp_path: Path):
        with pytest.raises(RepositoryNotFoundError):
            discover_repositories(tmp_path / "missing")

    def test_unreadable_directory_skipped(self, tmp_path: Path, caplog):
        with patch.object(Path, "iterdir", side_effect=PermissionError("denied")):
            with caplog.at_level(logging.WARNING, logger="repopulse"):
                assert discover_repositories(tmp_path) == []
        assert "Could not scan" in caplog.text


class TestScanProgressStore:
    def test_create_and_get(self):
        store = ScanProgressStore()
        store.create("scan-1")
        progress = store.get("scan-1")
        assert progress.status == ScanStatus.SCANNING
        assert progress.scanned_count == 0
        assert store.get("scan-unknown") is None

    def test_get_returns_snapshot(self):
        store = ScanProgressStore()
        store.create("scan-1")
        snapshot = store.get("scan-1")
        snapshot.scanned_count = 99
        assert store.get("scan-1").scanned_count == 0

    def test_update_and_increment(self):
        store = ScanProgressStore()
        store.create("scan-1")
        store.update("scan-1", current_folder="/x", scanned_count=3)
        store.increment("scan-1", "failed_analysis")
        store.increment("scan-1", "failed_analysis")
        progress = store.get("scan-1")
        assert progress.current_folder == "/x"
        assert progress.scanned_count == 3
        assert progress.failed_analysis == 2
        assert progress.finished_at is None

    def test_update_unknown_is_ignored(self):
        store = ScanProgressStore()
        store.update("scan-nope", scanned_count=1)
        assert len(store) == 0

    def test_finished_scans_expire(self):
        store = ScanProgressStore(ttl_seconds=10)
        store.create("done")
        store.create("running")
        store.update("done", status=ScanStatus.COMPLETE)
        finished_at = store.get("done").finished_at
        assert finished_at is not None

        assert store.evict_expired(now=finished_at + 5) == []
        assert store.evict_expired(now=finished_at + 11) == ["done"]
        assert store.get("done") is None
        assert store.get("running") is not None

    def test_scan_id_format(self):
        assert re.fullmatch(r"scan-\d+-[0-9a-f]{6}", new_scan_id())
        assert new_scan_id() != new_scan_id()


@requires_git
class TestScanOrchestrator:
    def _orchestrator(self, config, index) -> ScanOrchestrator:
        return ScanOrchestrator(ScanProgressStore(), config, index=index)

    def test_scan_and_analyze(self, tmp_path, config, index):
        root = tmp_path / "projects"
        _repo_with_commit(root / "one")
        _repo_with_commit(root / "group" / "two")

        orchestrator = self._orchestrator(config, index)
        scan_id = orchestrator.start(root)
        progress = orchestrator.wait(scan_id, timeout=60)

        assert progress.status == ScanStatus.COMPLETE
        assert progress.found_repos == 2
        assert progress.successful_analysis == 2
        assert progress.failed_analysis == 0
        assert progress.current_folder is None
        assert progress.message == "Found and analyzed 2 repositories"
        assert progress.scanned_count >= 3

        ok = index.list_by_status(AnalysisStatus.OK)
        assert sorted(r.repo_name for r in ok) == ["one", "two"]
        assert all(r.output_file for r in ok)
        assert len(index.artifacts.list_analysis_files()) == 2

    def test_no_repositories(self, tmp_path, config, index):
        (tmp_path / "nothing").mkdir()
        orchestrator = self._orchestrator(config, index)
        progress = orchestrator.wait(orchestrator.start(tmp_path / "nothing"), timeout=30)
        assert progress.status == ScanStatus.COMPLETE
        assert progress.found_repos == 0
        assert progress.message == "No git repositories found"

    def test_missing_folder(self, tmp_path, config, index):
        orchestrator = self._orchestrator(config, index)
        progress = orchestrator.wait(orchestrator.start(tmp_path / "missing"), timeout=30)
        assert progress.status == ScanStatus.ERROR
        assert "Directory does not exist" in progress.error
        assert progress.finished_at is not None

    def test_without_saving(self, tmp_path, config, index):
        _repo_with_commit(tmp_path / "projects" / "one")
        orchestrator = self._orchestrator(config, index)
        scan_id = orchestrator.start(tmp_path / "projects", save_results=False)
        progress = orchestrator.wait(scan_id, timeout=60)

        assert progress.successful_analysis == 1
        [entry] = index.read()
        assert entry.status == AnalysisStatus.OK
        assert entry.output_file is None
        assert index.artifacts.list_analysis_files() == []

    def test_failures_are_counted(self, tmp_path, config, index):
        _repo_with_commit(tmp_path / "projects" / "one")
        _repo_with_commit(tmp_path / "projects" / "two")
        failure = GitCommandError(["log"], 128, "fatal: corrupt")

        orchestrator = self._orchestrator(config, index)
        with patch("repopulse.pipeline.analyze_repository", side_effect=failure):
            progress = orchestrator.wait(orchestrator.start(tmp_path / "projects"), timeout=60)

        assert progress.status == ScanStatus.COMPLETE
        assert progress.failed_analysis == 2
        assert progress.successful_analysis == 0
        errors = index.list_by_status(AnalysisStatus.ERROR)
        assert len(errors) == 2
        assert "fatal: corrupt" in errors[0].error

    def test_finished_threads_are_dropped(self, tmp_path, config, index):
        (tmp_path / "nothing").mkdir()
        orchestrator = self._orchestrator(config, index)
        first = orchestrator.start(tmp_path / "nothing")
        orchestrator.wait(first, timeout=30)
        assert orchestrator.active_scans() == []

        second = orchestrator.start(tmp_path / "nothing")
        assert first not in orchestrator.active_scans()
        orchestrator.wait(second, timeout=30)
        assert orchestrator.active_scans() == []
        # progress outlives the thread
        assert orchestrator.wait(second).status == ScanStatus.COMPLETE

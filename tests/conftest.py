"""Shared fixtures for repopulse tests."""

from __future__ import annotations

import os
import shutil
import subprocess
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from repopulse.config import RepoPulseConfig
from repopulse.models import CommitRecord
from repopulse.store import ArtifactStore, RepositoryIndex

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")

ALICE = ("Alice", "alice@test.com")
BOB = ("Bob", "bob@test.com")


def make_commit(
    hash: str,
    when: datetime,
    message: str = "feat: add feature",
    author: tuple[str, str] = ALICE,
    insertions: int = 0,
    deletions: int = 0,
    files_changed: int = 0,
) -> CommitRecord:
    return CommitRecord(
        hash=hash,
        author_name=author[0],
        author_email=author[1],
        timestamp=when,
        message=message,
        insertions=insertions,
        deletions=deletions,
        files_changed=files_changed,
    )


@pytest.fixture
def sample_commits() -> list[CommitRecord]:
    """Four commits across two ISO weeks, newest first like the extractor returns."""
    utc = timezone.utc
    return [
        make_commit(
            "ddd4444",
            datetime(2024, 1, 10, 23, 30, tzinfo=utc),
            "fix(auth): handle null token",
            BOB,
            insertions=5,
            deletions=2,
            files_changed=1,
        ),
        make_commit(
            "ccc3333",
            datetime(2024, 1, 8, 9, 15, tzinfo=utc),
            "docs: describe the login flow",
            ALICE,
            insertions=30,
            deletions=0,
            files_changed=1,
        ),
        make_commit(
            "bbb2222",
            datetime(2024, 1, 2, 14, 0, tzinfo=utc),
            "feat(auth): add session handling",
            ALICE,
            insertions=80,
            deletions=10,
            files_changed=3,
        ),
        make_commit(
            "aaa1111",
            datetime(2024, 1, 1, 10, 0, tzinfo=utc),
            "Initial commit",
            ALICE,
        ),
    ]


# ── Temporary git repositories ────────────────────────────────────────────────


class GitRepo:
    """A throwaway working tree with helpers to commit at fixed dates."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def git(self, *args: str, env: dict[str, str] | None = None) -> str:
        result = subprocess.run(
            ["git", "-C", str(self.path), *args],
            capture_output=True,
            text=True,
            check=True,
            env=env,
        )
        return result.stdout

    def commit(
        self,
        message: str,
        files: dict[str, str | None],
        when: datetime,
        author: tuple[str, str] = ALICE,
    ) -> str:
        """Write (or delete, for None) ``files`` and commit them. Returns the hash."""
        for rel, content in files.items():
            target = self.path / rel
            if content is None:
                target.unlink()
                continue
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content)
        self.git("add", "-A")

        stamp = when.strftime("%Y-%m-%d %H:%M:%S %z")
        env = {
            **os.environ,
            "GIT_AUTHOR_NAME": author[0],
            "GIT_AUTHOR_EMAIL": author[1],
            "GIT_COMMITTER_NAME": author[0],
            "GIT_COMMITTER_EMAIL": author[1],
            "GIT_AUTHOR_DATE": stamp,
            "GIT_COMMITTER_DATE": stamp,
        }
        self.git("-c", "commit.gpgsign=false", "commit", "-q", "-m", message, env=env)
        return self.git("rev-parse", "HEAD").strip()


def init_repo(path: Path) -> GitRepo:
    path.mkdir(parents=True, exist_ok=True)
    subprocess.run(["git", "init", "-q", str(path)], capture_output=True, check=True)
    repo = GitRepo(path)
    repo.git("symbolic-ref", "HEAD", "refs/heads/main")
    repo.git("config", "user.email", "test@test.com")
    repo.git("config", "user.name", "Test")
    return repo


@pytest.fixture
def empty_repo(tmp_path: Path) -> GitRepo:
    if shutil.which("git") is None:
        pytest.skip("git not installed")
    return init_repo(tmp_path / "empty")


@pytest.fixture
def temp_repo(tmp_path: Path) -> GitRepo:
    """Three commits by two authors, dated a few days ago so churn windows see them."""
    if shutil.which("git") is None:
        pytest.skip("git not installed")
    repo = init_repo(tmp_path / "repo")
    now = datetime.now(timezone.utc).replace(microsecond=0)

    repo.commit(
        "feat: initial commit",
        {"src/main.py": "def main():\n    print('hello')\n", "README.md": "# Test\n"},
        now - timedelta(days=3),
    )
    repo.commit(
        "feat: add helper and utils",
        {
            "src/main.py": "def main():\n    print('hello world')\n\n\ndef helper():\n    pass\n",
            "src/utils.py": "def util():\n    return 42\n",
        },
        now - timedelta(days=2),
        author=BOB,
    )
    repo.commit(
        "fix: correct greeting",
        {"src/main.py": "def main():\n    print('hi world')\n\n\ndef helper():\n    pass\n"},
        now - timedelta(days=1),
    )
    return repo


# ── Persistence ───────────────────────────────────────────────────────────────


@pytest.fixture
def config(tmp_path: Path) -> RepoPulseConfig:
    cfg = RepoPulseConfig()
    cfg.paths.data_dir = str(tmp_path / "data")
    return cfg


@pytest.fixture
def index(config: RepoPulseConfig) -> RepositoryIndex:
    return RepositoryIndex(config.paths.output_path)


@pytest.fixture
def artifacts(index: RepositoryIndex) -> ArtifactStore:
    return index.artifacts

"""Tests for the git client, numstat parsing and the commit log extractor."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import patch

import pytest

from repopulse.errors import GitCommandError, NotARepositoryError, RepositoryNotFoundError
from repopulse.extractors.git_log import (
    COMMIT_SEP,
    FIELD_SEP,
    _parse_commit_block,
    extract_commits,
    parse_log,
)
from repopulse.extractors.numstat import (
    _expand_rename_path,
    parse_numstat_line,
    summarize_numstat,
)
from repopulse.git import GitClient

from conftest import BOB, requires_git


class TestExpandRenamePath:
    def test_simple_rename(self):
        assert _expand_rename_path("{old.py => new.py}", use_old=True) == "old.py"
        assert _expand_rename_path("{old.py => new.py}", use_old=False) == "new.py"

    def test_directory_rename(self):
        path = "src/{old_dir => new_dir}/file.py"
        assert _expand_rename_path(path, use_old=True) == "src/old_dir/file.py"
        assert _expand_rename_path(path, use_old=False) == "src/new_dir/file.py"

    def test_move_into_subdirectory(self):
        path = "src/{ => core}/file.py"
        assert _expand_rename_path(path, use_old=True) == "src/file.py"
        assert _expand_rename_path(path, use_old=False) == "src/core/file.py"


class TestParseNumstatLine:
    def test_normal_line(self):
        fc = parse_numstat_line("10\t5\tsrc/main.py")
        assert fc is not None
        assert fc.path == "src/main.py"
        assert fc.added == 10
        assert fc.deleted == 5
        assert fc.old_path is None

    def test_binary_file(self):
        fc = parse_numstat_line("-\t-\timage.png")
        assert fc is not None
        assert fc.path == "image.png"
        assert fc.added is None
        assert fc.deleted is None

    def test_rename_with_braces(self):
        fc = parse_numstat_line("5\t3\tsrc/{old.py => new.py}")
        assert fc is not None
        assert fc.path == "src/new.py"
        assert fc.old_path == "src/old.py"

    def test_full_rename_without_braces(self):
        fc = parse_numstat_line("0\t0\told_file.py => new_file.py")
        assert fc is not None
        assert fc.path == "new_file.py"
        assert fc.old_path == "old_file.py"

    def test_invalid_lines(self):
        assert parse_numstat_line("not a numstat line") is None
        assert parse_numstat_line("") is None
        assert parse_numstat_line("x\t1\tfile.py") is None
        assert parse_numstat_line("1\t1\t") is None


class TestSummarizeNumstat:
    def test_totals(self):
        text = "10\t2\ta.py\n-\t-\tlogo.png\n3\t0\tb.py\n"
        summary = summarize_numstat(text)
        assert summary.insertions == 13
        assert summary.deletions == 2
        assert summary.files_changed == 3

    def test_empty_diff(self):
        summary = summarize_numstat("")
        assert (summary.insertions, summary.deletions, summary.files_changed) == (0, 0, 0)


def _record(*fields: str) -> str:
    return FIELD_SEP.join(fields) + COMMIT_SEP


class TestParseLog:
    def test_basic_record(self):
        commit = _parse_commit_block(
            FIELD_SEP.join(
                ["abc1234", "Alice", "alice@test.com", "2024-01-15T10:00:00+02:00", "feat: x\n"]
            )
        )
        assert commit is not None
        assert commit.hash == "abc1234"
        assert commit.author_name == "Alice"
        assert commit.author_email == "alice@test.com"
        assert commit.timestamp == datetime(2024, 1, 15, 8, 0, tzinfo=timezone.utc)
        assert commit.timestamp.utcoffset() == timedelta(hours=2)
        assert commit.message == "feat: x"
        assert commit.insertions == commit.deletions == commit.files_changed == 0

    def test_multiline_message_keeps_body(self):
        output = _record(
            "h1", "Alice", "a@test.com", "2024-01-02T10:00:00+00:00", "Subject\n\nBody line\n"
        )
        [commit] = parse_log(output)
        assert commit.message == "Subject\n\nBody line"
        assert commit.subject == "Subject"

    def test_message_containing_field_separator_text(self):
        output = _record("h1", "Alice", "a@test.com", "2024-01-02T10:00:00+00:00", "a | b")
        [commit] = parse_log(output)
        assert commit.message == "a | b"

    def test_preserves_order(self):
        output = "\n".join(
            [
                _record("h2", "Bob", "b@test.com", "2024-01-03T10:00:00+00:00", "second"),
                _record("h1", "Alice", "a@test.com", "2024-01-02T10:00:00+00:00", "first"),
            ]
        )
        assert [c.hash for c in parse_log(output)] == ["h2", "h1"]

    def test_incomplete_blocks_skipped(self):
        assert _parse_commit_block("") is None
        assert _parse_commit_block("no field separators") is None
        assert parse_log("\n\n") == []


class TestGitClient:
    def test_missing_binary_raises_git_command_error(self, tmp_path: Path):
        client = GitClient(binary="definitely-not-git-xyz")
        with pytest.raises(GitCommandError) as exc_info:
            client.run(str(tmp_path), "status")
        assert exc_info.value.returncode == 127

    @requires_git
    def test_check_is_repo(self, temp_repo, tmp_path: Path):
        client = GitClient()
        assert client.check_is_repo(str(temp_repo.path))
        plain = tmp_path / "plain"
        plain.mkdir()
        assert not client.check_is_repo(str(plain))

    @requires_git
    def test_branches_and_remotes(self, temp_repo):
        temp_repo.git("branch", "feature")
        temp_repo.git("remote", "add", "origin", "https://example.com/repo.git")
        client = GitClient()
        assert client.branches(str(temp_repo.path)) == ["feature", "main"]
        assert client.remotes(str(temp_repo.path)) == ["origin"]

    @requires_git
    def test_failed_command_carries_stderr(self, temp_repo):
        with pytest.raises(GitCommandError) as exc_info:
            GitClient().run(str(temp_repo.path), "show", "no-such-ref")
        assert exc_info.value.returncode != 0
        assert exc_info.value.stderr


@requires_git
class TestExtractCommits:
    def test_newest_first_with_stats(self, temp_repo):
        commits = extract_commits(str(temp_repo.path))

        assert [c.message for c in commits] == [
            "fix: correct greeting",
            "feat: add helper and utils",
            "feat: initial commit",
        ]
        newest, middle, oldest = commits
        assert (newest.insertions, newest.deletions, newest.files_changed) == (1, 1, 1)
        assert (middle.insertions, middle.deletions, middle.files_changed) == (7, 1, 2)
        # Nothing to diff the oldest commit against
        assert (oldest.insertions, oldest.deletions, oldest.files_changed) == (0, 0, 0)
        assert middle.author_name == BOB[0]
        assert middle.author_email == BOB[1]

    def test_hashes_match_git(self, temp_repo):
        commits = extract_commits(str(temp_repo.path))
        expected = temp_repo.git("log", "--format=%H").split()
        assert [c.hash for c in commits] == expected

    def test_timestamps_keep_author_offset(self, empty_repo):
        when = datetime(2024, 3, 1, 23, 30, tzinfo=timezone(timedelta(hours=-5)))
        empty_repo.commit("feat: late evening work", {"a.txt": "a\n"}, when)
        [commit] = extract_commits(str(empty_repo.path))
        assert commit.timestamp == when
        assert commit.timestamp.hour == 23

    def test_unknown_branch_falls_back_to_head(self, temp_repo, caplog):
        with caplog.at_level(logging.WARNING, logger="repopulse"):
            commits = extract_commits(str(temp_repo.path), branch="develop")
        assert len(commits) == 3
        assert "falling back to HEAD" in caplog.text

    def test_named_branch(self, temp_repo):
        temp_repo.git("checkout", "-q", "-b", "feature")
        temp_repo.commit(
            "feat: feature work",
            {"src/feature.py": "x = 1\n"},
            datetime.now(timezone.utc),
        )
        temp_repo.git("checkout", "-q", "main")
        assert len(extract_commits(str(temp_repo.path), branch="main")) == 3
        assert len(extract_commits(str(temp_repo.path), branch="feature")) == 4

    def test_merge_commits_excluded(self, temp_repo):
        temp_repo.git("checkout", "-q", "-b", "side")
        temp_repo.commit("feat: side work", {"side.txt": "s\n"}, datetime.now(timezone.utc))
        temp_repo.git("checkout", "-q", "main")
        temp_repo.commit("feat: main work", {"main.txt": "m\n"}, datetime.now(timezone.utc))
        temp_repo.git("-c", "commit.gpgsign=false", "merge", "-q", "--no-ff", "-m", "Merge side", "side")

        messages = [c.message for c in extract_commits(str(temp_repo.path))]
        assert "Merge side" not in messages
        assert len(messages) == 5

    def test_empty_repository(self, empty_repo):
        assert extract_commits(str(empty_repo.path)) == []

    def test_missing_directory(self, tmp_path: Path):
        with pytest.raises(RepositoryNotFoundError, match="Directory does not exist"):
            extract_commits(str(tmp_path / "nope"))

    def test_not_a_repository(self, tmp_path: Path):
        plain = tmp_path / "plain"
        plain.mkdir()
        with pytest.raises(NotARepositoryError, match="Not a git repository"):
            extract_commits(str(plain))

    def test_diff_failure_keeps_zero_stats(self, temp_repo, caplog):
        failure = GitCommandError(["diff"], 128, "fatal: bad revision")
        with patch.object(GitClient, "diff_summary", side_effect=failure):
            with caplog.at_level(logging.WARNING, logger="repopulse"):
                commits = extract_commits(str(temp_repo.path))

        assert len(commits) == 3
        assert all(c.insertions == c.deletions == c.files_changed == 0 for c in commits)
        assert "Could not get diff for commit" in caplog.text

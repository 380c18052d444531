"""Subprocess client for the git CLI.

Every call is a blocking ``git`` invocation. Failures surface as
:class:`GitCommandError` so callers decide per call whether a failure is
fatal or can be recovered locally.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

from repopulse.errors import GitCommandError
from repopulse.extractors.numstat import summarize_numstat
from repopulse.models import DiffSummary

logger = logging.getLogger(__name__)

_GIT_TIMEOUT = 300


class GitClient:
    """Runs git commands against working trees on the local filesystem."""

    def __init__(self, binary: str = "git", timeout: float = _GIT_TIMEOUT) -> None:
        self.binary = binary
        self.timeout = timeout

    def _exec(self, args: list[str]) -> str:
        cmd = [self.binary, *args]
        logger.debug("running %s", " ".join(cmd))
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                encoding="utf-8",
                errors="replace",
                timeout=self.timeout,
            )
        except FileNotFoundError as exc:
            raise GitCommandError(args, 127, f"{self.binary} not found") from exc
        except subprocess.TimeoutExpired as exc:
            raise GitCommandError(args, -1, f"timed out after {self.timeout}s") from exc
        if result.returncode != 0:
            raise GitCommandError(args, result.returncode, result.stderr)
        return result.stdout

    def run(self, repo_path: str, *args: str) -> str:
        """Run ``git -C repo_path <args>`` and return stdout."""
        return self._exec(["-C", repo_path, *args])

    # ── Working tree management ─────────────────────────────────────────────

    def clone(self, url: str, dest: str) -> None:
        Path(dest).parent.mkdir(parents=True, exist_ok=True)
        self._exec(["clone", url, dest])

    def pull(self, dest: str) -> None:
        self.run(dest, "pull")

    def check_is_repo(self, path: str) -> bool:
        try:
            out = self.run(path, "rev-parse", "--is-inside-work-tree")
        except GitCommandError:
            return False
        return out.strip() == "true"

    def resolve_ref(self, repo_path: str, ref: str) -> bool:
        """True if ``ref`` names a commit in the repository."""
        try:
            self.run(repo_path, "rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}")
        except GitCommandError:
            return False
        return True

    def branches(self, repo_path: str) -> list[str]:
        out = self.run(repo_path, "for-each-ref", "--format=%(refname:short)", "refs/heads")
        return [line for line in out.splitlines() if line]

    def remotes(self, repo_path: str) -> list[str]:
        out = self.run(repo_path, "remote")
        return [line for line in out.splitlines() if line]

    # ── History ─────────────────────────────────────────────────────────────

    def log(self, repo_path: str, fmt: str, *filters: str) -> str:
        """Raw ``git log`` output using a ``--pretty=format:`` spec."""
        return self.run(repo_path, "log", f"--pretty=format:{fmt}", *filters)

    def diff_summary(self, repo_path: str, rev_range: str) -> DiffSummary:
        out = self.run(repo_path, "diff", "--numstat", rev_range)
        return summarize_numstat(out)

    def raw_numstat(self, repo_path: str, since: str) -> str:
        """Per-file numstat lines for every commit since ``since``."""
        return self.run(
            repo_path, "log", f"--since={since}", "--numstat", "--format=", "-M"
        )

"""Exceptions raised by repopulse."""

from __future__ import annotations


class RepoPulseError(Exception):
    """Base exception for all repopulse errors."""


class RepositoryNotFoundError(RepoPulseError):
    """Raised when a repository or scan root does not exist on disk."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Directory does not exist: {path}")
        self.path = path


class NotARepositoryError(RepoPulseError):
    """Raised when a directory exists but is not a git working tree."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Not a git repository: {path}")
        self.path = path


class GitCommandError(RepoPulseError):
    """Raised when a git invocation exits non-zero."""

    def __init__(self, args: list[str], returncode: int, stderr: str) -> None:
        command = " ".join(args)
        detail = stderr.strip() or f"exit status {returncode}"
        super().__init__(f"git {command} failed: {detail}")
        self.args_ = args
        self.returncode = returncode
        self.stderr = stderr


class IndexReadError(RepoPulseError):
    """Raised when the repository metadata index cannot be parsed."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Could not read metadata index {path}: {reason}")
        self.path = path
        self.reason = reason

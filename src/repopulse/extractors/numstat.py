"""Parsing of git's ``--numstat`` output."""

from __future__ import annotations

import re

from repopulse.models import DiffSummary, FileChange

_RENAME_RE = re.compile(r"\{(.*?) => (.*?)\}")


def _expand_rename_path(path: str, use_old: bool) -> str:
    """Expand git's rename format: 'dir/{old.py => new.py}/sub' -> full path."""

    def replace(m: re.Match[str]) -> str:
        old, new = m.group(1), m.group(2)
        return old if use_old else new

    expanded = _RENAME_RE.sub(replace, path)
    # {old => new} at the root or an empty side leaves double slashes behind
    return expanded.replace("//", "/").strip("/")


def parse_numstat_line(line: str) -> FileChange | None:
    """Parse a numstat line: 'added\\tdeleted\\tpath'.

    Returns None for anything that is not a numstat line. Binary files
    ('-' counts) come back with ``added``/``deleted`` set to None.
    """
    parts = line.split("\t", 2)
    if len(parts) != 3:
        return None

    added_str, deleted_str, path = parts
    path = path.strip()
    if not path:
        return None
    try:
        added = int(added_str) if added_str != "-" else None
        deleted = int(deleted_str) if deleted_str != "-" else None
    except ValueError:
        return None

    old_path = None
    if " => " in path and "{" in path:
        old_path = _expand_rename_path(path, use_old=True)
        path = _expand_rename_path(path, use_old=False)
    elif " => " in path:
        old_path, path = path.split(" => ", 1)

    return FileChange(path=path, added=added, deleted=deleted, old_path=old_path)


def summarize_numstat(text: str) -> DiffSummary:
    """Total insertions, deletions and touched files of a numstat diff."""
    insertions = deletions = files = 0
    for line in text.splitlines():
        fc = parse_numstat_line(line)
        if fc is None:
            continue
        insertions += fc.added or 0
        deletions += fc.deleted or 0
        files += 1
    return DiffSummary(insertions=insertions, deletions=deletions, files_changed=files)

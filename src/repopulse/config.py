"""Configuration loading and defaults."""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path


@dataclass
class PathsConfig:
    data_dir: str = "data"
    output_dir: str = ""  # defaults to <data_dir>/output
    repos_dir: str = ""  # defaults to <data_dir>/repos

    @property
    def output_path(self) -> Path:
        return Path(self.output_dir) if self.output_dir else Path(self.data_dir) / "output"

    @property
    def repos_path(self) -> Path:
        return Path(self.repos_dir) if self.repos_dir else Path(self.data_dir) / "repos"


@dataclass
class AnalysisConfig:
    default_branch: str = "main"
    recent_commits_limit: int = 100
    churn_window: str = "1 month ago"
    max_scan_depth: int = 3
    developer_recent_commits: int = 50


@dataclass
class ScanConfig:
    progress_ttl_seconds: float = 3600


_ENV_OVERRIDES = {
    "REPOPULSE_DATA_DIR": "data_dir",
    "REPOPULSE_OUTPUT_DIR": "output_dir",
    "REPOPULSE_REPOS_DIR": "repos_dir",
}


@dataclass
class RepoPulseConfig:
    paths: PathsConfig = field(default_factory=PathsConfig)
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    scan: ScanConfig = field(default_factory=ScanConfig)

    @classmethod
    def load(cls, path: Path | None = None) -> RepoPulseConfig:
        """Load config from repopulse.toml, then apply environment overrides."""
        if path is None:
            path = Path("repopulse.toml")

        config = cls()

        if path.exists():
            with open(path, "rb") as f:
                raw = tomllib.load(f)

            if "paths" in raw:
                p = raw["paths"]
                config.paths = PathsConfig(
                    data_dir=p.get("data_dir", config.paths.data_dir),
                    output_dir=p.get("output_dir", config.paths.output_dir),
                    repos_dir=p.get("repos_dir", config.paths.repos_dir),
                )

            if "analysis" in raw:
                a = raw["analysis"]
                config.analysis = AnalysisConfig(
                    default_branch=a.get("default_branch", config.analysis.default_branch),
                    recent_commits_limit=a.get(
                        "recent_commits_limit", config.analysis.recent_commits_limit
                    ),
                    churn_window=a.get("churn_window", config.analysis.churn_window),
                    max_scan_depth=a.get("max_scan_depth", config.analysis.max_scan_depth),
                    developer_recent_commits=a.get(
                        "developer_recent_commits", config.analysis.developer_recent_commits
                    ),
                )

            if "scan" in raw:
                s = raw["scan"]
                config.scan = ScanConfig(
                    progress_ttl_seconds=s.get(
                        "progress_ttl_seconds", config.scan.progress_ttl_seconds
                    ),
                )

        for env_var, attr in _ENV_OVERRIDES.items():
            value = os.environ.get(env_var)
            if value:
                setattr(config.paths, attr, value)

        return config


DEFAULT_CONFIG_TEMPLATE = """\
[paths]
data_dir = "data"
# output_dir = "data/output"
# repos_dir = "data/repos"

[analysis]
default_branch = "main"
recent_commits_limit = 100
churn_window = "1 month ago"
max_scan_depth = 3
developer_recent_commits = 50

[scan]
# finished folder scans are forgotten after this many seconds
progress_ttl_seconds = 3600
"""

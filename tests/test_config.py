"""Tests for config loading."""

from __future__ import annotations

import tomllib
from pathlib import Path

import pytest

from repopulse.config import DEFAULT_CONFIG_TEMPLATE, RepoPulseConfig


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for var in ("REPOPULSE_DATA_DIR", "REPOPULSE_OUTPUT_DIR", "REPOPULSE_REPOS_DIR"):
        monkeypatch.delenv(var, raising=False)


class TestRepoPulseConfig:
    def test_defaults_when_file_missing(self, tmp_path: Path):
        config = RepoPulseConfig.load(tmp_path / "repopulse.toml")
        assert config.paths.data_dir == "data"
        assert config.paths.output_path == Path("data") / "output"
        assert config.paths.repos_path == Path("data") / "repos"
        assert config.analysis.default_branch == "main"
        assert config.analysis.recent_commits_limit == 100
        assert config.analysis.churn_window == "1 month ago"
        assert config.analysis.max_scan_depth == 3
        assert config.analysis.developer_recent_commits == 50
        assert config.scan.progress_ttl_seconds == 3600

    def test_loads_file(self, tmp_path: Path):
        path = tmp_path / "repopulse.toml"
        path.write_text(
            '[paths]\ndata_dir = "/srv/pulse"\noutput_dir = "/srv/out"\n\n'
            '[analysis]\ndefault_branch = "trunk"\nchurn_window = "2 weeks ago"\n\n'
            "[scan]\nprogress_ttl_seconds = 60\n"
        )
        config = RepoPulseConfig.load(path)
        assert config.paths.output_path == Path("/srv/out")
        assert config.paths.repos_path == Path("/srv/pulse") / "repos"
        assert config.analysis.default_branch == "trunk"
        assert config.analysis.churn_window == "2 weeks ago"
        # untouched keys keep their defaults
        assert config.analysis.recent_commits_limit == 100
        assert config.scan.progress_ttl_seconds == 60

    def test_environment_overrides_file(self, tmp_path: Path, monkeypatch):
        path = tmp_path / "repopulse.toml"
        path.write_text('[paths]\ndata_dir = "/from/file"\n')
        monkeypatch.setenv("REPOPULSE_DATA_DIR", "/from/env")
        monkeypatch.setenv("REPOPULSE_REPOS_DIR", "/clones")

        config = RepoPulseConfig.load(path)
        assert config.paths.data_dir == "/from/env"
        assert config.paths.output_path == Path("/from/env") / "output"
        assert config.paths.repos_path == Path("/clones")

    def test_template_is_valid_and_matches_defaults(self, tmp_path: Path):
        raw = tomllib.loads(DEFAULT_CONFIG_TEMPLATE)
        assert raw["analysis"]["max_scan_depth"] == 3
        path = tmp_path / "repopulse.toml"
        path.write_text(DEFAULT_CONFIG_TEMPLATE)
        assert RepoPulseConfig.load(path) == RepoPulseConfig()

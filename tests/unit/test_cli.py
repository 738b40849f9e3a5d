"""
Unit tests for the command line interface.
"""

from __future__ import annotations

from pathlib import Path

import pytest
from click.testing import CliRunner

from artindex.main import cli


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def config_file(tmp_path: Path, maven_repo: Path) -> Path:
    path = tmp_path / "artindex.toml"
    path.write_text(
        f"""
data_dir = "{tmp_path / 'data'}"
log_level = "WARNING"

[[contexts]]
id = "central"
repository = "{maven_repo}"

[[contexts]]
id = "remote"

[[contexts]]
id = "all"
members = ["central", "remote"]
"""
    )
    return path


def _invoke(runner: CliRunner, config_file: Path, *args: str):
    return runner.invoke(cli, ["-c", str(config_file), *args])


class TestContextsCommand:
    def test_lists_contexts(self, runner, config_file):
        result = _invoke(runner, config_file, "contexts")

        assert result.exit_code == 0
        assert "all (merged)" in result.output
        assert "members: central, remote" in result.output
        assert "central (plain)" in result.output
        assert "size: 0" in result.output

    def test_no_contexts(self, runner, tmp_path: Path):
        result = runner.invoke(cli, ["-p", str(tmp_path), "contexts"])
        assert result.exit_code == 0
        assert "No indexing contexts configured" in result.output

    def test_unsupported_config_format(self, runner, tmp_path: Path):
        path = tmp_path / "artindex.ini"
        path.write_text("[artindex]\n")
        result = runner.invoke(cli, ["-c", str(path), "contexts"])
        assert result.exit_code == 1
        assert "Cannot load configuration" in result.output


class TestScanCommand:
    def test_scans_every_plain_context(self, runner, config_file):
        result = _invoke(runner, config_file, "scan")

        assert result.exit_code == 0
        assert "central: 5 artifacts indexed, 3 files skipped" in result.output
        assert "remote: no repository, skipped" in result.output
        assert "all:" not in result.output

    def test_index_persists_between_runs(self, runner, config_file):
        _invoke(runner, config_file, "scan", "central")
        result = _invoke(runner, config_file, "contexts")
        assert "size: 5" in result.output

    def test_unknown_context(self, runner, config_file):
        result = _invoke(runner, config_file, "scan", "missing")
        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_merged_context_rejected(self, runner, config_file):
        result = _invoke(runner, config_file, "scan", "all")
        assert result.exit_code == 1
        assert "cannot be scanned" in result.output


class TestSearchCommand:
    @pytest.fixture(autouse=True)
    def scanned(self, runner, config_file):
        _invoke(runner, config_file, "scan", "central")

    def test_flat(self, runner, config_file):
        result = _invoke(runner, config_file, "search", "a", "alpha")

        assert result.exit_code == 0
        assert "3 hits" in result.output
        assert "org.example:alpha:1.0:jar  [central]  sha1=" in result.output
        assert "beta" not in result.output

    def test_exact(self, runner, config_file):
        result = _invoke(runner, config_file, "search", "--exact", "v", "1.1")
        assert "2 hits" in result.output

    def test_limit(self, runner, config_file):
        result = _invoke(runner, config_file, "search", "-n", "1", "g", "org")
        assert "4 hits" in result.output
        assert result.output.count("[central]") == 1

    def test_grouped(self, runner, config_file):
        result = _invoke(runner, config_file, "search", "--grouped", "g", "org.example")

        assert result.exit_code == 0
        assert "org.example:alpha\n" in result.output
        assert "org.example:beta\n" in result.output

    def test_targeted(self, runner, config_file):
        result = _invoke(runner, config_file, "search", "--context", "remote", "a", "alpha")
        assert "0 hits" in result.output

    def test_invalid_query(self, runner, config_file):
        result = _invoke(runner, config_file, "search", "colour", "red")
        assert result.exit_code == 1
        assert "Unknown field" in result.output


class TestIdentifyCommand:
    def test_found(self, runner, config_file, maven_repo: Path, tmp_path: Path):
        _invoke(runner, config_file, "scan", "central")
        sample = tmp_path / "sample.jar"
        sample.write_bytes(b"org.example:beta:2.0")

        result = _invoke(runner, config_file, "identify", str(sample))

        assert result.exit_code == 0
        assert "org.example:beta:2.0:jar  [central]" in result.output

    def test_not_found(self, runner, config_file, tmp_path: Path):
        sample = tmp_path / "sample.jar"
        sample.write_bytes(b"unknown")

        result = _invoke(runner, config_file, "identify", str(sample))

        assert result.exit_code == 1
        assert "not found" in result.output

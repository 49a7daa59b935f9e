"""Tests for CLI commands."""

import asyncio
from pathlib import Path

import pytest
from click.testing import CliRunner
from loguru import logger

from cloudrename.adapters.local import LocalFolderAdapter
from cloudrename.cli import _parse_params, cli
from cloudrename.models.rule import RuleConfig, RuleType
from cloudrename.processors.crash_recovery import CrashRecoveryManager
from cloudrename.store import JsonFileStore


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI runner for testing."""
    yield CliRunner()
    # The CLI points loguru at the runner's captured stderr, which is closed afterwards
    logger.remove()


@pytest.fixture
def folder(tmp_path: Path) -> Path:
    directory = tmp_path / "files"
    directory.mkdir()
    for name in ("a.txt", "b.txt"):
        (directory / name).write_text(name)
    return directory


@pytest.fixture
def state_file(tmp_path: Path) -> str:
    return str(tmp_path / "state.json")


def _names(directory: Path) -> list[str]:
    return sorted(path.name for path in directory.iterdir())


def _save_pending_operation(directory: Path, state_file: str) -> None:
    """Persist an operation over ``directory`` with nothing processed yet."""

    async def _save() -> None:
        files = await LocalFolderAdapter(directory).get_selected_files()
        rule = RuleConfig(type=RuleType.SUFFIX, params={"suffix": "v2", "separator": "_"})
        await CrashRecoveryManager(JsonFileStore(state_file)).start_operation("local", files, rule)

    asyncio.run(_save())


class TestParseParams:
    """Tests for the _parse_params helper."""

    def test_values_decoded_as_json(self):
        """Test that numbers and booleans are decoded, other values kept as text."""
        params = _parse_params(("digits=2", "global=true", "prefix=2024_x", "separator= - "))

        assert params == {"digits": 2, "global": True, "prefix": "2024_x", "separator": " - "}


class TestRename:
    """Tests for the rename command."""

    def test_help(self, runner: CliRunner) -> None:
        """Test that --help lists the rule option."""
        result = runner.invoke(cli, ["rename", "--help"])
        assert result.exit_code == 0
        assert "--rule" in result.output
        assert "--on-conflict" in result.output

    def test_prefix_rename(self, runner: CliRunner, folder: Path, state_file: str) -> None:
        """Test renaming a folder with -y and no saved state left afterwards."""
        args = ["rename", str(folder), "-r", "prefix", "-p", "prefix=new", "-p", "separator=_", "-y"]
        result = runner.invoke(cli, args + ["--state-file", state_file])
        assert result.exit_code == 0, result.output
        assert _names(folder) == ["new_a.txt", "new_b.txt"]
        assert "Renamed 2 file(s)" in result.output

    def test_declined_confirmation(self, runner: CliRunner, folder: Path, state_file: str) -> None:
        """Test that answering no leaves the files alone."""
        result = runner.invoke(
            cli,
            ["rename", str(folder), "-r", "suffix", "-p", "suffix=old", "--state-file", state_file],
            input="n\n",
        )
        assert result.exit_code == 0
        assert "Aborted" in result.output
        assert _names(folder) == ["a.txt", "b.txt"]

    def test_conflict_auto_number(self, runner: CliRunner, folder: Path, state_file: str) -> None:
        """Test that a name clashing with an existing file gets numbered."""
        args = ["rename", str(folder), "-r", "replace", "-p", "search=b", "-p", "replace=a"]
        result = runner.invoke(cli, args + ["--on-conflict", "auto_number", "-y", "--state-file", state_file])
        assert result.exit_code == 0, result.output
        assert _names(folder) == ["a(1).txt", "a.txt"]

    def test_invalid_rule_params(self, runner: CliRunner, folder: Path, state_file: str) -> None:
        """Test that a rule missing its parameter exits with an error."""
        result = runner.invoke(cli, ["rename", str(folder), "-r", "prefix", "-y", "--state-file", state_file])
        assert result.exit_code == 1
        assert "Error" in result.output

    @pytest.mark.parametrize(
        "option,value",
        [("--max-retries", "0"), ("--request-interval", "-1")],
    )
    def test_out_of_range_options(
        self, runner: CliRunner, folder: Path, state_file: str, option: str, value: str
    ) -> None:
        """Test that out-of-range numeric options give a usage error and rename nothing."""
        args = ["rename", str(folder), "-r", "prefix", "-p", "prefix=new", "-y", option, value]
        result = runner.invoke(cli, args + ["--state-file", state_file])
        assert result.exit_code == 2
        assert option in result.output
        assert _names(folder) == ["a.txt", "b.txt"]

    def test_malformed_param(self, runner: CliRunner, folder: Path, state_file: str) -> None:
        result = runner.invoke(cli, ["rename", str(folder), "-r", "prefix", "-p", "prefix", "--state-file", state_file])
        assert result.exit_code != 0
        assert "KEY=VALUE" in result.output


class TestRecoveryCommands:
    """Tests for status, resume and clear."""

    def test_status_without_state(self, runner: CliRunner, state_file: str) -> None:
        result = runner.invoke(cli, ["status", "--state-file", state_file])
        assert result.exit_code == 0
        assert "No recoverable operation found" in result.output

    def test_status_and_clear(self, runner: CliRunner, folder: Path, state_file: str) -> None:
        """Test that a saved operation is described and can be discarded."""
        _save_pending_operation(folder, state_file)

        result = runner.invoke(cli, ["status", "--state-file", state_file])
        assert result.exit_code == 0
        assert "Pending: 2" in result.output

        runner.invoke(cli, ["clear", "--state-file", state_file])
        result = runner.invoke(cli, ["status", "--state-file", state_file])
        assert "No recoverable operation found" in result.output

    def test_resume(self, runner: CliRunner, folder: Path, state_file: str) -> None:
        """Test that resume finishes a saved operation."""
        _save_pending_operation(folder, state_file)

        result = runner.invoke(cli, ["resume", str(folder), "-y", "--state-file", state_file])

        assert result.exit_code == 0, result.output
        assert _names(folder) == ["a_v2.txt", "b_v2.txt"]
        assert "recovered 2 of 2" in result.output

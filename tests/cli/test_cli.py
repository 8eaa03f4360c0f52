"""Tests for the jobloom command line."""

import pytest
from typer.testing import CliRunner

from jobloom import __version__
from jobloom.cli.app import app

runner = CliRunner()


class TestCli:
    """Version, slot listing and running tool functions."""

    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"jobloom {__version__}" in result.output

    def test_slots(self):
        result = runner.invoke(app, ["slots"])
        assert result.exit_code == 0
        assert "Mapper_0" in result.output
        assert "Partitioner_63" in result.output

    @pytest.mark.integration
    def test_run_word_count(self, write_lines, tmp_path):
        words = write_lines("words.txt", ["apple banana apple", "banana carrot apple"])
        out = tmp_path / "out"

        result = runner.invoke(app, ["run", "jobloom.examples.word_count:tool", str(words), str(out), "--json"])

        assert result.exit_code == 0, result.output
        assert '"apple": 3' in result.output
        assert (out / "_SUCCESS").exists()

    @pytest.mark.integration
    def test_empty_result_exits_nonzero(self, write_lines, tmp_path):
        empty = write_lines("empty.txt", [])
        result = runner.invoke(app, ["run", "jobloom.examples.word_count:tool", str(empty), str(tmp_path / "out")])
        assert result.exit_code == 1

    def test_unknown_target(self):
        result = runner.invoke(app, ["run", "jobloom.examples.word_count:missing"])
        assert result.exit_code == 2

    def test_malformed_define(self):
        result = runner.invoke(app, ["run", "jobloom.examples.word_count:tool", "-D", "novalue"])
        assert result.exit_code == 2

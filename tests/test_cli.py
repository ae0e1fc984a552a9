"""
Tests for the depscope command line.

Run with: pytest tests/test_cli.py -v
"""

import json
import sys
from pathlib import Path

import pytest
from click.testing import CliRunner

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from depscope import __version__
from depscope.cli.commands import main


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def acyclic(tmp_path):
    (tmp_path / "app.ts").write_text("import { load } from './store';\nload();\n")
    (tmp_path / "store.ts").write_text("import { get } from './api';\nexport function load() { return get(); }\n")
    (tmp_path / "api.ts").write_text("export function get() { return 1; }\n")
    return tmp_path


@pytest.fixture
def cyclic(tmp_path):
    (tmp_path / "a.ts").write_text("import { b } from './b';\nexport const a = 1;\n")
    (tmp_path / "b.ts").write_text("import { a } from './a';\nexport const b = 2;\n")
    return tmp_path


class TestAnalyze:
    def test_json_report(self, runner, acyclic):
        result = runner.invoke(main, ["analyze", str(acyclic), "--json", "--no-cache"])

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["total_files"] == 3
        assert data["dependencies"]["circular_dependencies"] == []
        assert len(data["dependencies"]["graph"]["edges"]) == 2

    def test_table_report(self, runner, acyclic):
        result = runner.invoke(main, ["analyze", str(acyclic), "--sequential"])

        assert result.exit_code == 0, result.output
        assert "Analysis Summary" in result.output
        assert "No circular dependencies" in result.output

    def test_fail_on_cycles(self, runner, cyclic):
        result = runner.invoke(main, ["analyze", str(cyclic), "--json", "--fail-on-cycles"])
        assert result.exit_code == 1

    def test_missing_project_is_a_config_error(self, runner, tmp_path):
        result = runner.invoke(main, ["analyze", str(tmp_path / "missing")])

        assert result.exit_code == 2
        assert "Configuration error" in result.output

    def test_bad_worker_count(self, runner, acyclic):
        result = runner.invoke(main, ["analyze", str(acyclic), "--workers", "0"])
        assert result.exit_code == 2


class TestCycles:
    def test_lists_cycles(self, runner, cyclic):
        result = runner.invoke(main, ["cycles", str(cyclic), "--json"])

        assert result.exit_code == 0
        assert json.loads(result.output) == [
            {"path": ["a.ts", "b.ts", "a.ts"], "files": ["a.ts", "b.ts", "a.ts"]}
        ]

    def test_fail_on_cycles(self, runner, cyclic):
        result = runner.invoke(main, ["cycles", str(cyclic), "--fail-on-cycles"])

        assert result.exit_code == 1
        assert "Circular Dependencies" in result.output


class TestOrder:
    def test_acyclic_order(self, runner, acyclic):
        result = runner.invoke(main, ["order", str(acyclic), "--json"])

        assert result.exit_code == 0
        assert json.loads(result.output) == ["app.ts", "store.ts", "api.ts"]

    def test_cyclic_has_no_order(self, runner, cyclic):
        result = runner.invoke(main, ["order", str(cyclic), "--json"])

        assert result.exit_code == 1
        assert json.loads(result.output) is None


class TestPath:
    def test_chain(self, runner, acyclic):
        result = runner.invoke(main, ["path", "app.ts", "api.ts", "--root", str(acyclic), "--json"])

        assert result.exit_code == 0
        assert json.loads(result.output) == ["app.ts", "store.ts", "api.ts"]

    def test_root_defaults_to_current_directory(self, runner, acyclic, monkeypatch):
        monkeypatch.chdir(acyclic)

        result = runner.invoke(main, ["path", "app.ts", "store.ts", "--json"])

        assert result.exit_code == 0, result.output
        assert json.loads(result.output) == ["app.ts", "store.ts"]

    def test_no_chain(self, runner, acyclic):
        result = runner.invoke(main, ["path", "api.ts", "app.ts", "--root", str(acyclic)])

        assert result.exit_code == 1
        assert "No import path" in result.output


def test_version(runner):
    result = runner.invoke(main, ["version"])

    assert result.exit_code == 0
    assert __version__ in result.output

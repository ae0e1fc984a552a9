"""
Tests for per-file source analysis.

Run with: pytest tests/test_parsing.py -v
"""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from depscope.models import FileType, SymbolKind
from depscope.parsing import FileAnalyzer, SourceFileAnalyzer, analyze_python, analyze_script, detect_file_type

PYTHON_SOURCE = '''"""Service module."""
import os
from enum import Enum
from typing import TYPE_CHECKING
from .models import User as U

if TYPE_CHECKING:
    from .types import Alias

__all__ = ["Service", "build"]

MAX = 3


class Color(Enum):
    RED = 1


class Service:
    """Handles things."""

    def run(self):
        return U(os.getcwd())


def build():
    return Service()


def _private():
    pass
'''

SCRIPT_SOURCE = """import React, { useState } from 'react';
import type { Props } from './types';
import './styles.css';
export { helper } from './helpers';
export * from './all';
const fs = require('fs');
const { join: joinPath } = require('path');
require('./polyfill');

export interface Options {
  debug: boolean;
}

export const MAX_ITEMS = 10;

export function App(props: Props) {
  const [count] = useState(0);
  return count;
}

const render = () => App({});
class Store {}

export default Store;
export { render };

async function load() {
  const mod = await import('./lazy');
  return mod;
}
"""


class TestDetectFileType:
    @pytest.mark.parametrize("path,expected", [
        ("a.py", FileType.PYTHON),
        ("types.d.ts", FileType.TYPESCRIPT),
        ("App.TSX", FileType.TSX),
        ("index.mjs", FileType.JAVASCRIPT),
        ("README.md", FileType.MARKDOWN),
        ("Makefile", FileType.OTHER),
    ])
    def test_extensions(self, path, expected):
        assert detect_file_type(path) == expected


class TestPython:
    @pytest.fixture
    def result(self):
        return analyze_python(PYTHON_SOURCE, "pkg/service.py")

    def test_symbols(self, result):
        kinds = {s.name: s.kind for s in result.symbols}

        assert kinds["MAX"] == SymbolKind.CONSTANT
        assert kinds["Color"] == SymbolKind.ENUM
        assert kinds["Service"] == SymbolKind.CLASS
        assert kinds["Service.run"] == SymbolKind.METHOD
        assert kinds["build"] == SymbolKind.FUNCTION
        assert kinds["_private"] == SymbolKind.FUNCTION

    def test_documentation_is_first_docstring_line(self, result):
        service = next(s for s in result.symbols if s.name == "Service")
        assert service.documentation == "Handles things."

    def test_dunder_all_controls_exports(self, result):
        assert result.exports == ["Service", "build"]
        exported = {s.name for s in result.symbols if s.is_exported}
        assert exported == {"Service", "build"}

    def test_imports(self, result):
        by_spec = {i.specifier: i for i in result.imports}

        assert set(by_spec) == {"os", "enum", "typing", ".models", ".types"}
        assert by_spec[".models"].names == ["User as U"]
        assert by_spec[".types"].is_type_only
        assert not by_spec[".models"].is_type_only

    def test_references_carry_enclosing_symbol(self, result):
        refs = {(r.name, r.from_symbol) for r in result.references}

        assert ("U", "Service.run") in refs
        assert ("os", "Service.run") in refs
        assert ("Service", "build") in refs

    def test_complexity_and_stats(self, result):
        assert result.complexity == {"cyclomatic": 2}
        assert result.stats.classes == 2
        assert result.stats.functions == 3

    def test_dynamic_import(self):
        result = analyze_python("import importlib\nplugin = importlib.import_module('plugins.extra')\n", "m.py")

        dynamic = [i for i in result.imports if i.is_dynamic]
        assert [i.specifier for i in dynamic] == ["plugins.extra"]

    def test_syntax_error_propagates(self):
        with pytest.raises(SyntaxError):
            analyze_python("def broken(:\n", "bad.py")


class TestScript:
    @pytest.fixture
    def result(self):
        return analyze_script(SCRIPT_SOURCE, "src/App.tsx", FileType.TSX)

    def test_imports(self, result):
        by_spec = {i.specifier: i for i in result.imports}

        assert by_spec["react"].names == ["default as React", "useState"]
        assert by_spec["./types"].is_type_only
        assert by_spec["./styles.css"].names == []
        assert by_spec["./helpers"].is_reexport
        assert by_spec["./all"].is_reexport
        assert by_spec["fs"].is_require
        assert by_spec["path"].names == ["join as joinPath"]
        assert by_spec["./polyfill"].is_require
        assert by_spec["./lazy"].is_dynamic

    def test_imports_are_in_line_order(self, result):
        lines = [i.line for i in result.imports]
        assert lines == sorted(lines)

    def test_declarations(self, result):
        kinds = {s.name: s.kind for s in result.symbols}

        assert kinds["Options"] == SymbolKind.INTERFACE
        assert kinds["MAX_ITEMS"] == SymbolKind.CONSTANT
        assert kinds["App"] == SymbolKind.FUNCTION
        assert kinds["render"] == SymbolKind.FUNCTION
        assert kinds["Store"] == SymbolKind.CLASS
        assert kinds["load"] == SymbolKind.FUNCTION
        assert "debug" not in kinds

    def test_exports(self, result):
        assert set(result.exports) == {"helper", "Options", "MAX_ITEMS", "App", "render", "default"}
        render = next(s for s in result.symbols if s.name == "render")
        assert render.is_exported

    def test_references(self, result):
        refs = {(r.name, r.from_symbol) for r in result.references}

        assert ("useState", "App") in refs
        assert ("App", "render") in refs


class TestSourceFileAnalyzer:
    def test_is_a_file_analyzer(self):
        assert isinstance(SourceFileAnalyzer(), FileAnalyzer)

    def test_analyze_python_file(self, tmp_path):
        (tmp_path / "pkg").mkdir()
        (tmp_path / "pkg" / "mod.py").write_text("import json\n\ndef f():\n    return json.dumps({})\n")

        result = SourceFileAnalyzer().analyze_file("pkg/mod.py", tmp_path)

        assert result.file_path == "pkg/mod.py"
        assert result.file_type == FileType.PYTHON
        assert result.size > 0
        assert result.last_modified > 0
        assert result.stats.empty_lines == 1

    def test_absolute_path_is_made_relative(self, tmp_path):
        target = tmp_path / "app.js"
        target.write_text("const x = require('./lib');\n")

        result = SourceFileAnalyzer().analyze_file(target, tmp_path)

        assert result.file_path == "app.js"
        assert result.imports[0].specifier == "./lib"

    def test_other_files_get_line_stats_only(self, tmp_path):
        (tmp_path / "notes.md").write_text("# Title\n\ntext\n")

        result = SourceFileAnalyzer().analyze_file("notes.md", tmp_path)

        assert result.file_type == FileType.MARKDOWN
        assert result.stats.lines == 3
        assert result.symbols == []

    def test_too_large_file_is_an_error_result(self, tmp_path):
        (tmp_path / "big.py").write_text("x = 1\n" * 100)

        result = SourceFileAnalyzer(max_file_size=10).analyze_file("big.py", tmp_path)

        assert result.is_error
        assert "too large" in result.error

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            SourceFileAnalyzer().analyze_file("nope.py", tmp_path)

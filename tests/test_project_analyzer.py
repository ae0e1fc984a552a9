"""
Tests for the project analyzer (discovery, caching, fan-out, reduction).

Run with: pytest tests/test_project_analyzer.py -v
"""

import sys
import time
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from depscope.analysis.project_analyzer import ProjectAnalyzer
from depscope.config import AnalysisConfig
from depscope.errors import ConfigurationError, InvalidFileResultError
from depscope.models import FileAnalysisResult, FileType, Import, PackageManifest
from depscope.parsing import SourceFileAnalyzer


def write(root: Path, rel: str, content: str) -> Path:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path


@pytest.fixture
def project(tmp_path):
    write(tmp_path, "pkg/__init__.py", "")
    write(tmp_path, "pkg/main.py", (
        "import requests\n"
        "from . import models\n"
        "from .models import User\n"
        "\n"
        "def run():\n"
        "    return User()\n"
    ))
    write(tmp_path, "pkg/models.py", "import os\n\n\nclass User:\n    pass\n")
    write(tmp_path, "node_modules/lib/index.js", "module.exports = {};\n")
    write(tmp_path, "pyproject.toml", (
        "[project]\n"
        'name = "demo"\n'
        'dependencies = ["requests>=2.31", "click"]\n'
    ))
    return tmp_path


def make_analyzer(root: Path, **kwargs) -> ProjectAnalyzer:
    return ProjectAnalyzer(AnalysisConfig(project_path=str(root), **kwargs))


class CrashingAnalyzer:
    """Delegates to SourceFileAnalyzer but blows up on one file."""

    def __init__(self, bad_name: str):
        self.bad_name = bad_name
        self.inner = SourceFileAnalyzer()

    def analyze_file(self, path, project_root):
        if Path(path).name == self.bad_name:
            raise RuntimeError("analyzer bug")
        return self.inner.analyze_file(path, project_root)


class SlowAnalyzer:
    def analyze_file(self, path, project_root):
        time.sleep(0.5)
        return FileAnalysisResult(file_path=str(path), file_type=FileType.PYTHON)


class TestDiscovery:
    def test_excluded_directories_are_pruned(self, project):
        files = make_analyzer(project).discover_files()
        assert files == ["pkg/__init__.py", "pkg/main.py", "pkg/models.py"]

    def test_custom_patterns(self, project):
        write(project, "pkg/test_main.py", "")
        analyzer = make_analyzer(project, exclude=["node_modules", "test_*.py"])

        assert "pkg/test_main.py" not in analyzer.discover_files()

    def test_include_limits_file_types(self, project):
        write(project, "web/app.ts", "export const x = 1;\n")
        analyzer = make_analyzer(project, include=["*.ts"])

        assert analyzer.discover_files() == ["web/app.ts"]


class TestAnalyze:
    def test_full_report(self, project):
        result = make_analyzer(project).analyze()
        report = result.dependencies

        assert result.total_files == 3
        assert result.analyzed_files == 3
        assert not result.has_errors
        assert not result.partial
        assert report.graph.successors("pkg/main.py") == ["pkg/__init__.py", "pkg/models.py"]
        assert report.builtin_modules == ["os"]

        by_name = {e.name: e for e in report.external_dependencies}
        assert by_name["requests"].is_used
        assert by_name["requests"].version == ">=2.31"
        assert [e.name for e in report.unused_dependencies] == ["click"]

    def test_symbols_are_linked_across_files(self, project):
        result = make_analyzer(project).analyze()
        table = result.dependencies.symbol_table

        assert table.get_symbol_dependencies("pkg/main.py:run") == {"pkg/models.py:User"}
        assert result.stats.total_symbols == 2

    def test_syntax_error_is_reported_not_raised(self, project):
        write(project, "pkg/broken.py", "def broken(:\n")

        result = make_analyzer(project).analyze()

        assert [e.code for e in result.errors] == ["SYNTAX_ERROR"]
        assert result.errors[0].line == 1
        assert result.dependencies.graph.get_node("pkg/broken.py").has_error
        assert result.stats.files_with_errors == 1

    def test_analyzer_crash_becomes_error_result(self, project):
        analyzer = ProjectAnalyzer(
            AnalysisConfig(project_path=str(project)),
            file_analyzer=CrashingAnalyzer("models.py"),
        )

        result = analyzer.analyze()

        assert [(e.file, e.code) for e in result.errors] == [("pkg/models.py", "ANALYSIS_ERROR")]
        assert result.analyzed_files == 3

    def test_sequential_and_parallel_agree(self, project):
        sequential = make_analyzer(project, parallel=False, cache_enabled=False).analyze()
        parallel = make_analyzer(project, max_workers=4, cache_enabled=False).analyze()

        assert sequential.dependencies.to_dict() == parallel.dependencies.to_dict()

    def test_timeout_marks_result_partial(self, tmp_path):
        for i in range(4):
            write(tmp_path, f"m{i}.py", "")
        analyzer = ProjectAnalyzer(
            AnalysisConfig(project_path=str(tmp_path), max_workers=1, timeout=0.2, cache_enabled=False),
            file_analyzer=SlowAnalyzer(),
        )

        result = analyzer.analyze()

        assert result.partial
        assert result.analyzed_files < 4

    def test_empty_project(self, tmp_path):
        result = make_analyzer(tmp_path).analyze()

        assert result.total_files == 0
        assert result.dependencies.graph.node_count == 0


class TestCaching:
    def test_second_run_hits_cache(self, project):
        analyzer = make_analyzer(project)
        analyzer.analyze()
        second = analyzer.analyze()

        assert second.cache["hits"] == 3
        assert second.cache["misses"] == 3

    def test_changed_file_is_reanalyzed(self, project):
        analyzer = make_analyzer(project)
        analyzer.analyze()

        write(project, "pkg/models.py", "import os\n\n\nclass User:\n    pass\n\n\nclass Admin(User):\n    pass\n")
        result = analyzer.analyze()

        assert result.dependencies.symbol_table.get_symbol("pkg/models.py:Admin") is not None
        assert result.stats.total_symbols == 3
        # The stale entry for models.py counts as a miss, not a hit
        assert result.cache["hits"] == 2
        assert result.cache["misses"] == 4
        assert result.cache["stale"] == 1

    def test_failures_are_not_cached(self, project):
        write(project, "pkg/broken.py", "def broken(:\n")
        analyzer = make_analyzer(project)
        analyzer.analyze()

        assert analyzer.get_file_info("pkg/broken.py")["cached"] is False
        assert analyzer.get_file_info("pkg/main.py")["cached"] is True

    def test_persistent_cache_dir(self, project, tmp_path_factory):
        cache_dir = str(tmp_path_factory.mktemp("cache"))
        make_analyzer(project, cache_dir=cache_dir).analyze()

        fresh = make_analyzer(project, cache_dir=cache_dir).analyze()

        assert fresh.cache["hits"] == 3

    def test_disabled_cache(self, project):
        result = make_analyzer(project, cache_enabled=False).analyze()
        assert result.cache is None

    def test_clear_cache(self, project):
        analyzer = make_analyzer(project)
        analyzer.analyze()
        analyzer.clear_cache()

        assert analyzer.get_cache_status()["size"] == 0


class TestSingleFile:
    def test_analyze_file(self, project):
        result = make_analyzer(project).analyze_file("pkg/models.py")

        assert result.file_path == "pkg/models.py"
        assert [s.name for s in result.symbols] == ["User"]

    def test_get_file_info(self, project):
        info = make_analyzer(project).get_file_info("pkg/main.py")

        assert info["type"] == "python"
        assert info["size"] > 0
        assert info["cached"] is False

    def test_get_file_info_missing(self, project):
        assert make_analyzer(project).get_file_info("nope.py") is None


class TestAnalyzeResults:
    def test_caller_supplied_results(self, tmp_path):
        results = [
            FileAnalysisResult("a.ts", FileType.TYPESCRIPT, imports=[Import("./b"), Import("react")]),
            FileAnalysisResult("b.ts", FileType.TYPESCRIPT, imports=[Import("./a")]),
            FileAnalysisResult.failed("c.ts", "unreadable", FileType.TYPESCRIPT),
        ]
        manifest = PackageManifest(dependencies={"react": "^18.0.0"})

        result = make_analyzer(tmp_path).analyze_results(results, manifest)

        assert result.dependencies.has_cycles
        assert result.dependencies.external_dependencies[0].version == "^18.0.0"
        assert [e.file for e in result.errors] == ["c.ts"]

    @pytest.mark.parametrize("bad_item", [{"file_path": "a.py"}, None])
    def test_malformed_item_is_rejected(self, tmp_path, bad_item):
        results = [FileAnalysisResult("ok.py", FileType.PYTHON), bad_item]

        with pytest.raises(InvalidFileResultError):
            make_analyzer(tmp_path).analyze_results(results)


class TestConfig:
    def test_invalid_config_is_rejected(self, tmp_path):
        with pytest.raises(ConfigurationError):
            make_analyzer(tmp_path / "missing")

    def test_update_config(self, project):
        analyzer = make_analyzer(project)
        analyzer.analyze()

        analyzer.update_config(cache_max_size=1, aliases={"@/": "pkg/"})

        assert analyzer.config.cache_max_size == 1
        assert analyzer.get_cache_status()["size"] == 1
        assert analyzer.dependency_analyzer.aliases == {"@/": "pkg/"}

    def test_rejected_update_keeps_old_config(self, project):
        analyzer = make_analyzer(project)

        with pytest.raises(ConfigurationError):
            analyzer.update_config(max_workers=0)
        assert analyzer.config.max_workers == 4

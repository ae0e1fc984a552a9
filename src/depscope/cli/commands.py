"""
CLI commands for depscope.

Main entry point: `depscope analyze PATH`

Exit codes:
    0  success
    1  findings the caller asked to fail on (cycles, no order, no path)
    2  invalid configuration
"""

import json
import os
import sys

import click
from dotenv import load_dotenv

from depscope.analysis.project_analyzer import ProjectAnalysisResult, ProjectAnalyzer
from depscope.cli import ui
from depscope.config import AnalysisConfig
from depscope.errors import ConfigurationError
from depscope.utils.logger import logger
from depscope.utils.paths import normalize_path


_SHARED_OPTIONS = [
    click.option("--include", multiple=True, help="Glob of files to analyze (repeatable)"),
    click.option("--exclude", multiple=True, help="Glob of files or directories to skip (repeatable)"),
    click.option("--workers", type=int, default=None, help="Worker threads (1-8)"),
    click.option("--sequential", is_flag=True, help="Analyze files one at a time"),
    click.option("--timeout", type=float, default=None, help="Give up after this many seconds"),
    click.option("--no-cache", is_flag=True, help="Do not reuse or store per-file results"),
    click.option("--cache-dir", default=None, help="Persist the cache in this directory"),
    click.option("--json", "as_json", is_flag=True, help="Print machine-readable JSON"),
]


def _apply(decorators, func):
    for decorator in reversed(decorators):
        func = decorator(func)
    return func


def analysis_options(func):
    """Project PATH argument plus the options shared by every command that runs an analysis."""
    return _apply([click.argument("path", default=".")] + _SHARED_OPTIONS, func)


def rooted_analysis_options(func):
    """Shared analysis options, with the project root given as ``--root``."""
    root = click.option("--root", "path", default=".", help="Project root (default: current directory)")
    return _apply([root] + _SHARED_OPTIONS, func)


def _build_config(path, include, exclude, workers, sequential, timeout, no_cache, cache_dir) -> AnalysisConfig:
    config = AnalysisConfig.from_env(path)
    changes = {}
    if include:
        changes["include"] = list(include)
    if exclude:
        changes["exclude"] = config.exclude + list(exclude)
    if workers is not None:
        changes["max_workers"] = workers
    if sequential:
        changes["parallel"] = False
    if timeout is not None:
        changes["timeout"] = timeout
    if no_cache:
        changes["cache_enabled"] = False
    if cache_dir:
        changes["cache_dir"] = cache_dir
    return config.with_changes(**changes)


def _run(as_json: bool, **options) -> ProjectAnalysisResult:
    """Build the analyzer and run it; configuration errors exit with code 2."""
    try:
        analyzer = ProjectAnalyzer(_build_config(**options))
    except ConfigurationError as e:
        ui.print_error(f"Configuration error: {e}")
        sys.exit(2)

    if as_json:
        return analyzer.analyze()

    with ui.create_spinner() as progress:
        progress.add_task(f"Analyzing {analyzer.root}", total=None)
        return analyzer.analyze()


def _echo_json(data) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


@click.group()
@click.option("--log-level", default=None, help="Write logs at this level (DEBUG, INFO, WARNING, ERROR)")
@click.option("--log-dir", default=None, help="Directory for log files (default: logs/YYYY-MM-DD)")
def main(log_level: str, log_dir: str):
    """
    depscope - project dependency and symbol analysis

    Usage:
        depscope analyze .                         # Full report
        depscope analyze src --json                # Machine-readable
        depscope cycles . --fail-on-cycles         # CI gate
        depscope path src/app.py src/db.py         # Import chain
    """
    load_dotenv()

    log_level = log_level or os.getenv("DEPSCOPE_LOG_LEVEL")
    log_dir = log_dir or os.getenv("DEPSCOPE_LOG_DIR")
    if log_level or log_dir:
        logger.configure(level=log_level or "INFO", log_dir=log_dir)


@main.command()
@analysis_options
@click.option("--fail-on-cycles", is_flag=True, help="Exit with code 1 if any cycle is found")
def analyze(as_json: bool, fail_on_cycles: bool, **options):
    """Analyze a project and print the full report"""
    result = _run(as_json, **options)
    report = result.dependencies

    if as_json:
        _echo_json(result.to_dict())
    else:
        ui.show_summary(result)
        ui.show_externals(report.external_dependencies)
        ui.show_duplicates(report.duplicate_dependencies)
        ui.show_cycles(report.circular_dependencies)
        ui.show_problems(result.errors, result.warnings)

    if fail_on_cycles and report.circular_dependencies:
        sys.exit(1)


@main.command()
@analysis_options
@click.option("--fail-on-cycles", is_flag=True, help="Exit with code 1 if any cycle is found")
def cycles(as_json: bool, fail_on_cycles: bool, **options):
    """List circular imports"""
    result = _run(as_json, **options)
    found = result.dependencies.circular_dependencies

    if as_json:
        _echo_json([c.to_dict() for c in found])
    else:
        ui.show_cycles(found)

    if fail_on_cycles and found:
        sys.exit(1)


@main.command()
@analysis_options
def order(as_json: bool, **options):
    """Print files in dependency order (exit 1 if there are cycles)"""
    result = _run(as_json, **options)
    sorted_ids = result.dependencies.graph.topological_sort()

    if as_json:
        _echo_json(sorted_ids)
    else:
        ui.show_order(sorted_ids)

    if sorted_ids is None:
        sys.exit(1)


@main.command()
@rooted_analysis_options
@click.argument("source")
@click.argument("target")
def path(as_json: bool, source: str, target: str, **options):
    """Shortest import chain from SOURCE to TARGET (paths relative to --root)"""
    result = _run(as_json, **options)
    root = result.project_path
    from_id = normalize_path(source, root)
    to_id = normalize_path(target, root)
    chain = result.dependencies.graph.find_shortest_path(from_id, to_id)

    if as_json:
        _echo_json(chain)
    else:
        ui.show_path(chain, from_id, to_id)

    if chain is None:
        sys.exit(1)


@main.command()
def version():
    """Show version information"""
    from depscope import __version__

    ui.console.print(f"\n[bold]depscope[/bold] v{__version__}\n")


if __name__ == "__main__":
    main()

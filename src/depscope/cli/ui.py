"""
Terminal UI utilities using Rich.

Provides:
- Colored status messages
- Summary, cycle, package and error tables
- A progress spinner for long analyses
"""

from typing import List, Optional

from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from depscope.analysis.project_analyzer import ProjectAnalysisResult
from depscope.models import (
    AnalysisError,
    AnalysisWarning,
    CircularDependency,
    DuplicateDependency,
    ExternalDependency,
)

# Global console instance
console = Console()

MAX_ROWS = 50


def print_header(text: str) -> None:
    """Print a header"""
    console.print(f"\n[bold blue]{text}[/bold blue]\n")


def print_success(message: str) -> None:
    console.print(f"[bold green]✓ {message}[/bold green]")


def print_warning(message: str) -> None:
    console.print(f"[bold yellow]! {message}[/bold yellow]")


def print_error(message: str) -> None:
    console.print(f"[bold red]✗ {message}[/bold red]")


def show_summary(result: ProjectAnalysisResult) -> None:
    """
    Display the headline numbers of an analysis run.

    Args:
        result: ProjectAnalysisResult instance
    """
    table = Table(title="Analysis Summary")

    table.add_column("Attribute", style="cyan", no_wrap=True)
    table.add_column("Value", style="white")

    report = result.dependencies
    table.add_row("Project", result.project_path)
    table.add_row("Files", f"{result.analyzed_files}/{result.total_files}")
    table.add_row("Errors", str(len(result.errors)))
    table.add_row("Warnings", str(len(result.warnings)))
    table.add_row("Symbols", str(result.stats.total_symbols))
    if report is not None:
        table.add_row("Graph", f"{report.graph.node_count} nodes, {report.graph.edge_count} edges")
        table.add_row("External packages", str(len([e for e in report.external_dependencies if e.is_used])))
        table.add_row("Cycles", str(len(report.circular_dependencies)))
    if result.cache:
        table.add_row("Cache", f"{result.cache['hits']} hits / {result.cache['misses']} misses")
    table.add_row("Duration", f"{result.duration_ms:.0f} ms")
    if result.partial:
        table.add_row("Status", "[yellow]partial (timed out)[/yellow]")

    console.print(table)


def show_cycles(cycles: List[CircularDependency]) -> None:
    if not cycles:
        print_success("No circular dependencies")
        return

    table = Table(title=f"Circular Dependencies ({len(cycles)})")
    table.add_column("#", style="dim")
    table.add_column("Cycle", style="red")

    for i, cycle in enumerate(cycles[:MAX_ROWS], 1):
        table.add_row(str(i), " → ".join(cycle.path))

    console.print(table)
    if len(cycles) > MAX_ROWS:
        console.print(f"[dim]... and {len(cycles) - MAX_ROWS} more[/dim]")


def show_externals(externals: List[ExternalDependency]) -> None:
    if not externals:
        return

    table = Table(title="External Packages")
    table.add_column("Package", style="cyan")
    table.add_column("Version", style="white")
    table.add_column("Files", justify="right")
    table.add_column("Status")

    for dep in externals[:MAX_ROWS]:
        if not dep.is_used:
            status = "[yellow]unused[/yellow]"
        elif dep.is_dev:
            status = "[dim]dev[/dim]"
        else:
            status = "[green]used[/green]"
        table.add_row(dep.name, dep.version or "-", str(len(dep.files)), status)

    console.print(table)


def show_duplicates(duplicates: List[DuplicateDependency]) -> None:
    if not duplicates:
        return

    table = Table(title="Conflicting Versions")
    table.add_column("Package", style="cyan")
    table.add_column("Versions", style="yellow")
    table.add_column("Files", justify="right")

    for dup in duplicates[:MAX_ROWS]:
        table.add_row(dup.name, ", ".join(dup.versions), str(len(dup.files)))

    console.print(table)


def show_problems(errors: List[AnalysisError], warnings: List[AnalysisWarning]) -> None:
    """Display file errors and resolution warnings, errors first."""
    if not errors and not warnings:
        return

    table = Table(title="Problems")
    table.add_column("Level", no_wrap=True)
    table.add_column("File", style="cyan")
    table.add_column("Message")

    rows = [("[red]error[/red]", e.file, f"{e.message} ({e.code})") for e in errors]
    rows += [("[yellow]warning[/yellow]", w.file, w.message) for w in warnings]
    for level, file, message in rows[:MAX_ROWS]:
        table.add_row(level, file, message)

    console.print(table)
    if len(rows) > MAX_ROWS:
        console.print(f"[dim]... and {len(rows) - MAX_ROWS} more[/dim]")


def show_order(order: Optional[List[str]]) -> None:
    if order is None:
        print_error("No topological order: the dependency graph has cycles")
        return

    table = Table(title="Dependency Order")
    table.add_column("#", style="dim")
    table.add_column("File", style="cyan")
    for i, node_id in enumerate(order, 1):
        table.add_row(str(i), node_id)
    console.print(table)


def show_path(path: Optional[List[str]], from_id: str, to_id: str) -> None:
    if path is None:
        print_warning(f"No import path from {from_id} to {to_id}")
        return

    console.print(Panel(
        " → ".join(path),
        title=f"Import chain ({len(path) - 1} hops)",
        border_style="blue",
    ))


def create_spinner():
    """
    Create a progress spinner.

    Returns:
        Progress context manager
    """
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    )

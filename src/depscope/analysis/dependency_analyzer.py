"""
Dependency analyzer - reduce per-file results into a project report.

Turns a set of FileAnalysisResults into:
- a dependency graph of project files (typed import edges)
- external package usage, merged with declared manifest packages
- circular dependencies
- a symbol table of declarations, references and symbol dependencies

The reduction is single-threaded and processes files sorted by node id, so
the same input always produces the same graph, cycles and ordering.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Optional, Union

from depscope.analysis.graph import DependencyGraph, DependencyGraphView
from depscope.analysis.resolver import (
    ImportResolver,
    canonical_package_name,
    is_python,
    package_name,
)
from depscope.analysis.symbol_table import ModuleInfo, SymbolTable
from depscope.errors import InvalidFileResultError
from depscope.models import (
    AnalysisWarning,
    CircularDependency,
    DependencyNode,
    DuplicateDependency,
    ExternalDependency,
    FileAnalysisResult,
    Import,
    ImportKind,
    Location,
    PackageManifest,
    SymbolReference,
    symbol_key,
)
from depscope.utils.logger import logger
from depscope.utils.paths import normalize_path

HUB_THRESHOLD = 10


@dataclass
class ProjectDependencyReport:
    """Result of one dependency reduction. Not mutated after it is returned."""

    graph: DependencyGraphView
    external_dependencies: list[ExternalDependency] = field(default_factory=list)
    circular_dependencies: list[CircularDependency] = field(default_factory=list)
    unused_dependencies: list[ExternalDependency] = field(default_factory=list)
    duplicate_dependencies: list[DuplicateDependency] = field(default_factory=list)
    builtin_modules: list[str] = field(default_factory=list)
    symbol_table: SymbolTable = field(default_factory=SymbolTable)
    warnings: list[AnalysisWarning] = field(default_factory=list)
    stats: dict[str, int] = field(default_factory=dict)

    @property
    def has_cycles(self) -> bool:
        return bool(self.circular_dependencies)

    def to_dict(self) -> dict[str, Any]:
        return {
            "graph": self.graph.to_dict(),
            "external_dependencies": [e.to_dict() for e in self.external_dependencies],
            "circular_dependencies": [c.to_dict() for c in self.circular_dependencies],
            "unused_dependencies": [e.name for e in self.unused_dependencies],
            "duplicate_dependencies": [d.to_dict() for d in self.duplicate_dependencies],
            "builtin_modules": list(self.builtin_modules),
            "symbols": self.symbol_table.get_statistics(),
            "warnings": [w.to_dict() for w in self.warnings],
            "stats": dict(self.stats),
        }


@dataclass
class _ExternalUsage:
    name: str
    files: set[str] = field(default_factory=set)
    specifiers: set[str] = field(default_factory=set)


def _split_binding(name: str) -> tuple[str, str]:
    """``"orig as local"`` → ``("orig", "local")``."""
    if " as " in name:
        original, local = name.split(" as ", 1)
        return original.strip(), local.strip()
    return name, name


class DependencyAnalyzer:
    """
    Builds the project dependency report.

    Usage:
        analyzer = DependencyAnalyzer(aliases={"@/": "src/"})
        report = analyzer.analyze_dependencies(results, "/path/to/project")

        report.circular_dependencies  # [CircularDependency(path=("a.ts", "b.ts", "a.ts"))]
        report.graph.topological_sort()
    """

    def __init__(
        self,
        aliases: Optional[dict[str, str]] = None,
        source_roots: Iterable[str] = ("", "src"),
        build_symbol_table: bool = True,
    ):
        self.aliases = dict(aliases or {})
        self.source_roots = list(source_roots)
        self.build_symbol_table = build_symbol_table

    @staticmethod
    def validate_results(results: list[Any]) -> None:
        """Raise InvalidFileResultError for the first malformed item."""
        for index, result in enumerate(results):
            if not isinstance(result, FileAnalysisResult):
                raise InvalidFileResultError(
                    f"Item {index} is not a FileAnalysisResult: {type(result).__name__}"
                )
            if not result.file_path or not str(result.file_path).strip():
                raise InvalidFileResultError(f"Item {index} has an empty file_path")

    def analyze_dependencies(
        self,
        file_results: Iterable[FileAnalysisResult],
        project_root: Union[str, Path],
        manifest: Optional[PackageManifest] = None,
    ) -> ProjectDependencyReport:
        """
        Reduce file results into a dependency report.

        Args:
            file_results: One result per file; error-marked results are allowed
            project_root: Root that node ids are made relative to
            manifest: Declared packages, for versions and unused-package detection

        Returns:
            ProjectDependencyReport

        Raises:
            InvalidFileResultError: If any item is malformed (checked before any work)
        """
        results = list(file_results)
        self.validate_results(results)

        warnings: list[AnalysisWarning] = []
        by_id: dict[str, FileAnalysisResult] = {}
        for result in results:
            node_id = normalize_path(result.file_path, project_root)
            if node_id in by_id:
                warnings.append(AnalysisWarning(
                    file=str(result.file_path),
                    message="Duplicate result for this file; the first one was used",
                    type="duplicate-result",
                ))
                continue
            by_id[node_id] = result

        ordered = sorted(by_id)
        graph = DependencyGraph()
        table = SymbolTable()
        resolver = ImportResolver(ordered, aliases=self.aliases, source_roots=self.source_roots)

        for node_id in ordered:
            result = by_id[node_id]
            graph.add_node(DependencyNode(
                id=node_id,
                path=str(result.file_path),
                type=result.file_type,
                size=result.size,
                has_error=result.is_error,
            ))

        # Declarations first, so references resolve regardless of file order
        declared: dict[str, dict[str, str]] = {}
        for node_id in ordered:
            result = by_id[node_id]
            if result.is_error:
                continue
            declared[node_id] = {}
            for symbol in result.symbols:
                rebased = dataclasses.replace(
                    symbol,
                    location=Location(node_id, symbol.location.line, symbol.location.column),
                )
                if self.build_symbol_table:
                    table.add_symbol(rebased)
                declared[node_id][symbol.name] = rebased.key

        externals: dict[str, _ExternalUsage] = {}
        builtins: set[str] = set()
        unresolved = 0
        external_imports = 0
        failed = 0

        for node_id in ordered:
            result = by_id[node_id]
            if result.is_error:
                failed += 1
                continue

            bindings: dict[str, str] = {}
            targets: list[str] = []

            for imp in result.imports:
                kind = imp.kind or resolver.classify(imp.specifier, result.file_type)

                if kind == ImportKind.BUILTIN:
                    builtins.add(package_name(imp.specifier, result.file_type))
                    continue

                if kind == ImportKind.EXTERNAL:
                    name = package_name(imp.specifier, result.file_type)
                    usage = externals.setdefault(name, _ExternalUsage(name))
                    usage.files.add(node_id)
                    usage.specifiers.add(imp.specifier)
                    external_imports += 1
                    continue

                target = resolver.resolve(imp.specifier, node_id, result.file_type)
                if target is None:
                    unresolved += 1
                    warnings.append(AnalysisWarning(
                        file=node_id,
                        message=f"Cannot resolve import '{imp.specifier}'",
                        type="unresolved-import",
                        line=imp.line or None,
                    ))
                    logger.unresolved_import(node_id, imp.specifier)
                    continue

                graph.add_edge(node_id, target, imp.edge_type)
                targets.append(target)
                self._bind_names(imp, node_id, target, result, resolver, graph, table, bindings, targets)

            if self.build_symbol_table:
                self._record_references(result, node_id, declared[node_id], bindings, table)
                table.add_module(ModuleInfo(
                    path=node_id,
                    symbols=sorted(declared[node_id].values()),
                    exports=list(result.exports),
                    imports=list(dict.fromkeys(targets)),
                ))

        external_dependencies = self._merge_manifest(externals, manifest, by_id)

        graph.compute_levels()
        cycles = graph.find_cycles()

        logger.graph_built(graph.node_count, graph.edge_count, len(external_dependencies))
        logger.cycles_found(len(cycles))

        return ProjectDependencyReport(
            graph=DependencyGraphView(graph),
            external_dependencies=external_dependencies,
            circular_dependencies=cycles,
            unused_dependencies=[e for e in external_dependencies if not e.is_used],
            duplicate_dependencies=self._find_duplicates(external_dependencies, manifest),
            builtin_modules=sorted(builtins),
            symbol_table=table,
            warnings=warnings,
            stats={
                "files_total": len(ordered),
                "files_failed": failed,
                "nodes": graph.node_count,
                "edges": graph.edge_count,
                "symbols": len(table),
                "external_imports": external_imports,
                "unresolved_imports": unresolved,
            },
        )

    # =========================================================================
    # SYMBOLS
    # =========================================================================

    def _bind_names(
        self,
        imp: Import,
        node_id: str,
        target: str,
        result: FileAnalysisResult,
        resolver: ImportResolver,
        graph: DependencyGraph,
        table: SymbolTable,
        bindings: dict[str, str],
        targets: list[str],
    ) -> None:
        """Record a reference for each named binding of a resolved local import."""
        for name in imp.names:
            original, local = _split_binding(name)
            if original in ("*", ""):
                continue

            # `from pkg import mod` where mod is a submodule file
            if is_python(result.file_type):
                submodule = resolver.resolve_submodule(target, original)
                if submodule is not None:
                    graph.add_edge(node_id, submodule, imp.edge_type)
                    targets.append(submodule)
                    continue

            key = symbol_key(target, original)
            bindings[local] = key
            if self.build_symbol_table:
                table.add_reference(key, SymbolReference(
                    location=Location(node_id, imp.line),
                    context=f"import {original} from '{imp.specifier}'",
                ))

    @staticmethod
    def _record_references(
        result: FileAnalysisResult,
        node_id: str,
        own_symbols: dict[str, str],
        bindings: dict[str, str],
        table: SymbolTable,
    ) -> None:
        for ref in result.references:
            key = bindings.get(ref.name) or own_symbols.get(ref.name)
            if key is None:
                continue  # globals, builtins, externals

            table.add_reference(key, SymbolReference(
                location=Location(node_id, ref.location.line, ref.location.column),
                context=ref.context,
            ))
            if ref.from_symbol:
                table.add_dependency(symbol_key(node_id, ref.from_symbol), key)

    # =========================================================================
    # EXTERNAL PACKAGES
    # =========================================================================

    @staticmethod
    def _merge_manifest(
        externals: dict[str, _ExternalUsage],
        manifest: Optional[PackageManifest],
        by_id: dict[str, FileAnalysisResult],
    ) -> list[ExternalDependency]:
        python_usage = {
            name for name, usage in externals.items()
            if any(is_python(by_id[f].file_type) for f in usage.files)
        }
        matched: set[str] = set()
        merged: list[ExternalDependency] = []

        for name in sorted(externals):
            usage = externals[name]
            dependency = ExternalDependency(
                name=name,
                is_used=True,
                files=sorted(usage.files),
                specifiers=sorted(usage.specifiers),
            )

            if manifest is not None:
                lookup_name = name
                declared = manifest.lookup(name)
                if declared is None and name in python_usage:
                    lookup_name = canonical_package_name(name)
                    declared = manifest.lookup(lookup_name)
                if declared is not None:
                    dependency.version, dependency.is_dev = declared
                    dependency.source = "manifest"
                    matched.add(lookup_name)

            merged.append(dependency)

        if manifest is not None:
            for name in manifest.all_packages():
                if name in matched or name in externals:
                    continue
                version, is_dev = manifest.lookup(name)
                merged.append(ExternalDependency(
                    name=name,
                    version=version,
                    is_used=False,
                    is_dev=is_dev,
                    source="manifest",
                ))

        merged.sort(key=lambda e: e.name)
        return merged

    @staticmethod
    def _find_duplicates(
        external_dependencies: list[ExternalDependency],
        manifest: Optional[PackageManifest],
    ) -> list[DuplicateDependency]:
        """Declared packages with more than one version specifier, plus the files importing them."""
        if manifest is None:
            return []

        files_by_package: dict[str, set[str]] = {}
        for dependency in external_dependencies:
            for name in {dependency.name, canonical_package_name(dependency.name)}:
                files_by_package.setdefault(name, set()).update(dependency.files)

        duplicates = []
        for name in manifest.all_packages():
            versions = manifest.versions(name)
            if len(versions) > 1:
                duplicates.append(DuplicateDependency(
                    name=name,
                    versions=versions,
                    files=sorted(files_by_package.get(name, ())),
                ))
        return duplicates

    # =========================================================================
    # GRAPH QUERIES
    # =========================================================================

    @staticmethod
    def get_file_dependencies(
        node_id: str,
        graph: Union[DependencyGraph, DependencyGraphView],
    ) -> dict[str, list[str]]:
        """Direct dependencies and dependents of one file."""
        return {
            "dependencies": graph.successors(node_id),
            "dependents": graph.predecessors(node_id),
        }

    @staticmethod
    def get_dependency_chain(
        from_id: str,
        to_id: str,
        graph: Union[DependencyGraph, DependencyGraphView],
    ) -> list[str]:
        """Shortest import chain from one file to another ([] if none)."""
        return graph.find_shortest_path(from_id, to_id) or []

    @staticmethod
    def calculate_dependency_metrics(
        graph: Union[DependencyGraph, DependencyGraphView],
        hub_threshold: int = HUB_THRESHOLD,
    ) -> dict[str, Any]:
        """
        Summary metrics.

        ``max_depth``/``average_depth`` use node levels (longest path from a
        root). Hubs are nodes whose total degree exceeds ``hub_threshold``.
        """
        nodes = graph.nodes()
        count = len(nodes)
        levels = [n.level for n in nodes]
        return {
            "total_nodes": count,
            "total_edges": graph.edge_count,
            "density": graph.edge_count / (count * (count - 1)) if count > 1 else 0.0,
            "average_depth": sum(levels) / count if count else 0.0,
            "max_depth": max(levels, default=0),
            "root_nodes": graph.get_root_nodes(),
            "leaf_nodes": graph.get_leaf_nodes(),
            "hub_nodes": [n.id for n in nodes if n.in_degree + n.out_degree > hub_threshold],
        }

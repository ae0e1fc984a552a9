"""
Analysis module - symbol table, dependency graph and the analyzers built on them.
"""

from depscope.analysis.dependency_analyzer import DependencyAnalyzer, ProjectDependencyReport
from depscope.analysis.graph import DependencyGraph, DependencyGraphView
from depscope.analysis.project_analyzer import AnalysisStats, ProjectAnalysisResult, ProjectAnalyzer
from depscope.analysis.resolver import ImportResolver, load_manifest, package_name
from depscope.analysis.symbol_table import ModuleInfo, SymbolEntry, SymbolTable

__all__ = [
    "AnalysisStats",
    "DependencyAnalyzer",
    "DependencyGraph",
    "DependencyGraphView",
    "ImportResolver",
    "ModuleInfo",
    "ProjectAnalysisResult",
    "ProjectAnalyzer",
    "ProjectDependencyReport",
    "SymbolEntry",
    "SymbolTable",
    "load_manifest",
    "package_name",
]

"""
depscope - project-wide dependency and symbol analysis.

Builds a dependency graph from per-file analysis results, tracks symbol
cross references, reports import cycles and unused packages, and caches
per-file work so repeat runs over an unchanged tree are cheap.
"""

__version__ = "0.1.0"

from depscope.analysis import (
    DependencyAnalyzer,
    DependencyGraph,
    ProjectAnalysisResult,
    ProjectAnalyzer,
    ProjectDependencyReport,
    SymbolTable,
)
from depscope.cache import CacheManager
from depscope.config import AnalysisConfig
from depscope.errors import ConfigurationError, DepscopeError, InvalidFileResultError

__all__ = [
    "AnalysisConfig",
    "CacheManager",
    "ConfigurationError",
    "DependencyAnalyzer",
    "DependencyGraph",
    "DepscopeError",
    "InvalidFileResultError",
    "ProjectAnalysisResult",
    "ProjectAnalyzer",
    "ProjectDependencyReport",
    "SymbolTable",
    "__version__",
]

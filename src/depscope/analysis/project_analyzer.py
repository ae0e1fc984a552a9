"""
Project analyzer - enumerate, cache-or-compute, reduce, report.

Per-file analysis fans out over a bounded thread pool; the only shared
mutable state during the fan-out is the CacheManager. Once every worker has
been joined (or the batch deadline has passed), the collected results are
reduced single-threaded, in sorted path order, by the DependencyAnalyzer.
"""

import concurrent.futures
import fnmatch
import hashlib
import os
import posixpath
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from depscope.analysis.dependency_analyzer import DependencyAnalyzer, ProjectDependencyReport
from depscope.analysis.resolver import load_manifest
from depscope.cache.manager import CacheManager
from depscope.cache.store import JsonFileStore
from depscope.config import AnalysisConfig
from depscope.models import AnalysisError, AnalysisWarning, FileAnalysisResult, PackageManifest
from depscope.parsing import FileAnalyzer, SourceFileAnalyzer, detect_file_type
from depscope.utils.logger import logger
from depscope.utils.paths import normalize_path

CACHE_KEY_PREFIX = "file:"


@dataclass
class AnalysisStats:
    files_analyzed: int = 0
    files_with_errors: int = 0
    files_with_warnings: int = 0
    total_symbols: int = 0
    total_dependencies: int = 0
    total_patterns: int = 0
    code_lines: int = 0
    comment_lines: int = 0
    empty_lines: int = 0

    def to_dict(self) -> Dict[str, int]:
        return dict(self.__dict__)


@dataclass
class ProjectAnalysisResult:
    """Everything one ``analyze()`` run produced."""

    project_path: str
    total_files: int = 0
    analyzed_files: int = 0
    errors: List[AnalysisError] = field(default_factory=list)
    warnings: List[AnalysisWarning] = field(default_factory=list)
    stats: AnalysisStats = field(default_factory=AnalysisStats)
    dependencies: Optional[ProjectDependencyReport] = None
    cache: Optional[Dict[str, Any]] = None
    duration_ms: float = 0.0
    partial: bool = False

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "project_path": self.project_path,
            "total_files": self.total_files,
            "analyzed_files": self.analyzed_files,
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
            "stats": self.stats.to_dict(),
            "dependencies": self.dependencies.to_dict() if self.dependencies else None,
            "cache": self.cache,
            "duration_ms": self.duration_ms,
            "partial": self.partial,
        }


def _matches(rel_path: str, name: str, patterns: Iterable[str]) -> bool:
    """Glob match against the root-relative path or the bare name. ``**/x`` also matches ``x``."""
    for pattern in patterns:
        if fnmatch.fnmatchcase(rel_path, pattern) or fnmatch.fnmatchcase(name, pattern):
            return True
        if pattern.startswith("**/") and fnmatch.fnmatchcase(rel_path, pattern[3:]):
            return True
    return False


class ProjectAnalyzer:
    """
    Orchestrates a whole-project analysis.

    Usage:
        analyzer = ProjectAnalyzer(AnalysisConfig(project_path="/path/to/project"))
        result = analyzer.analyze()

        result.dependencies.circular_dependencies
        result.cache  # {"hits": 0, "misses": 42, ...} on a cold run
    """

    def __init__(
        self,
        config: Optional[AnalysisConfig] = None,
        file_analyzer: Optional[FileAnalyzer] = None,
        cache: Optional[CacheManager] = None,
    ):
        """
        Args:
            config: Analysis settings (validated here)
            file_analyzer: Per-file analyzer; defaults to SourceFileAnalyzer
            cache: Shared cache; built from the config when omitted

        Raises:
            ConfigurationError: If the config is invalid
        """
        self.config = config or AnalysisConfig()
        self.config.validate()
        self.root = Path(self.config.project_path).resolve()
        self.file_analyzer = file_analyzer or SourceFileAnalyzer()
        self.cache = cache or self._build_cache()
        self.dependency_analyzer = self._build_dependency_analyzer()

    def _build_cache(self) -> CacheManager:
        store = JsonFileStore(self.config.cache_dir) if self.config.cache_dir else None
        return CacheManager(
            enabled=self.config.cache_enabled,
            max_size=self.config.cache_max_size,
            ttl=self.config.cache_ttl_ms,
            store=store,
        )

    def _build_dependency_analyzer(self) -> DependencyAnalyzer:
        return DependencyAnalyzer(
            aliases=self.config.aliases,
            source_roots=self.config.source_roots,
            build_symbol_table=self.config.build_symbol_table,
        )

    # =========================================================================
    # DISCOVERY
    # =========================================================================

    def discover_files(self) -> List[str]:
        """Root-relative posix paths of every file to analyze, sorted."""
        include = self.config.include
        exclude = self.config.exclude
        found = set()

        for dirpath, dirnames, filenames in os.walk(self.root):
            rel_dir = normalize_path(dirpath, self.root)

            kept = []
            for d in dirnames:
                rel = posixpath.join(rel_dir, d) if rel_dir else d
                if not _matches(rel, d, exclude):
                    kept.append(d)
            dirnames[:] = sorted(kept)

            for name in filenames:
                rel = posixpath.join(rel_dir, name) if rel_dir else name
                if _matches(rel, name, exclude):
                    continue
                if _matches(rel, name, include):
                    found.add(rel)

        return sorted(found)

    # =========================================================================
    # PER-FILE
    # =========================================================================

    @staticmethod
    def _fingerprint(path: Path) -> List[Any]:
        """[mtime, size, sha256]. Any change to one of them invalidates the cached result."""
        stat = path.stat()
        digest = hashlib.sha256(path.read_bytes()).hexdigest()
        return [stat.st_mtime, stat.st_size, digest]

    def _analyze_one(self, rel_path: str) -> Tuple[FileAnalysisResult, Optional[AnalysisError]]:
        """Analyze one file through the cache. Never raises."""
        full_path = self.root / rel_path
        file_type = detect_file_type(rel_path)

        try:
            fingerprint = self._fingerprint(full_path)
        except OSError as e:
            return (
                FileAnalysisResult.failed(rel_path, f"Cannot read file: {e}", file_type),
                AnalysisError(rel_path, f"Cannot read file: {e}", code="READ_ERROR"),
            )

        key = CACHE_KEY_PREFIX + rel_path
        cached = self.cache.get(
            key,
            validate=lambda payload: isinstance(payload, dict) and payload.get("fingerprint") == fingerprint,
        )
        if cached is not None:
            try:
                return FileAnalysisResult.from_dict(cached["result"]), None
            except (KeyError, TypeError, ValueError) as e:
                logger.debug("analyze", f"Discarding unreadable cache entry for {rel_path}: {e}")

        error = None
        try:
            result = self.file_analyzer.analyze_file(full_path, self.root)
        except SyntaxError as e:
            result = FileAnalysisResult.failed(rel_path, f"Syntax error: {e.msg}", file_type)
            error = AnalysisError(rel_path, result.error, code="SYNTAX_ERROR", line=e.lineno)
        except (OSError, UnicodeDecodeError) as e:
            result = FileAnalysisResult.failed(rel_path, f"Cannot read file: {e}", file_type)
            error = AnalysisError(rel_path, result.error, code="READ_ERROR")
        except Exception as e:
            logger.error("analyze", f"Analyzer crashed on {rel_path}", e)
            result = FileAnalysisResult.failed(rel_path, str(e), file_type)
            error = AnalysisError(rel_path, result.error)

        if result.is_error:
            logger.file_failed(rel_path, result.error)
            return result, error or AnalysisError(rel_path, result.error)

        self.cache.set(key, {"fingerprint": fingerprint, "result": result.to_dict()})
        return result, None

    def analyze_file(self, path: str) -> FileAnalysisResult:
        """Analyze a single project file (through the cache). Failures come back error-marked."""
        result, _ = self._analyze_one(normalize_path(path, self.root))
        return result

    # =========================================================================
    # BATCH
    # =========================================================================

    def _run_sequential(
        self,
        files: List[str],
        deadline: Optional[float],
        results: Dict[str, FileAnalysisResult],
        errors: List[AnalysisError],
    ) -> bool:
        for rel_path in files:
            if deadline is not None and time.time() >= deadline:
                return True
            result, error = self._analyze_one(rel_path)
            results[rel_path] = result
            if error:
                errors.append(error)
        return False

    def _run_parallel(
        self,
        files: List[str],
        deadline: Optional[float],
        results: Dict[str, FileAnalysisResult],
        errors: List[AnalysisError],
    ) -> bool:
        """Fan out over a bounded pool. Returns True if the deadline cut the batch short."""
        executor = ThreadPoolExecutor(max_workers=self.config.effective_workers)
        future_to_path = {executor.submit(self._analyze_one, p): p for p in files}
        timed_out = False

        try:
            remaining = None if deadline is None else max(0.0, deadline - time.time())
            for future in as_completed(future_to_path, timeout=remaining):
                rel_path = future_to_path[future]
                try:
                    result, error = future.result()
                except Exception as e:
                    result = FileAnalysisResult.failed(rel_path, f"Execution failed: {e}", detect_file_type(rel_path))
                    error = AnalysisError(rel_path, result.error)
                results[rel_path] = result
                if error:
                    errors.append(error)
        except concurrent.futures.TimeoutError:
            timed_out = True
            cancelled = sum(1 for f in future_to_path if f.cancel())
            logger.warning("analyze", f"Batch timed out; cancelled {cancelled} pending files")
        finally:
            executor.shutdown(wait=not timed_out, cancel_futures=True)

        return timed_out

    def analyze(self) -> ProjectAnalysisResult:
        """
        Analyze the whole project.

        Returns:
            ProjectAnalysisResult (``partial`` is True when the timeout hit)
        """
        start = time.time()
        deadline = start + self.config.timeout if self.config.timeout else None
        logger.analysis_start(str(self.root), self.config.parallel, self.config.effective_workers)

        files = self.discover_files()
        logger.files_discovered(len(files))

        results: Dict[str, FileAnalysisResult] = {}
        errors: List[AnalysisError] = []
        if self.config.parallel and len(files) > 1:
            partial = self._run_parallel(files, deadline, results, errors)
        else:
            partial = self._run_sequential(files, deadline, results, errors)

        ordered = [results[p] for p in sorted(results)]
        errors.sort(key=lambda e: e.file)
        outcome = self._reduce(ordered, errors, start, total_files=len(files), partial=partial)
        logger.analysis_complete(outcome.analyzed_files, outcome.total_files, outcome.duration_ms, partial)
        return outcome

    def analyze_results(
        self,
        results: Iterable[FileAnalysisResult],
        manifest: Optional[PackageManifest] = None,
    ) -> ProjectAnalysisResult:
        """
        Reduce caller-supplied results, skipping discovery and the cache.

        Raises:
            InvalidFileResultError: If an item is not a FileAnalysisResult or has no path
        """
        start = time.time()
        ordered = list(results)
        self.dependency_analyzer.validate_results(ordered)
        errors = [AnalysisError(str(r.file_path), r.error) for r in ordered if r.is_error]
        return self._reduce(ordered, errors, start, total_files=len(ordered), partial=False, manifest=manifest)

    def _reduce(
        self,
        results: List[FileAnalysisResult],
        errors: List[AnalysisError],
        start: float,
        total_files: int,
        partial: bool,
        manifest: Optional[PackageManifest] = None,
    ) -> ProjectAnalysisResult:
        if manifest is None and self.config.read_manifest:
            manifest = load_manifest(self.root)

        report = self.dependency_analyzer.analyze_dependencies(results, self.root, manifest)

        return ProjectAnalysisResult(
            project_path=str(self.root),
            total_files=total_files,
            analyzed_files=len(results),
            errors=errors,
            warnings=list(report.warnings),
            stats=self._collect_stats(results, report),
            dependencies=report,
            cache=self.cache.stats() if self.cache.enabled else None,
            duration_ms=(time.time() - start) * 1000,
            partial=partial,
        )

    @staticmethod
    def _collect_stats(results: List[FileAnalysisResult], report: ProjectDependencyReport) -> AnalysisStats:
        stats = AnalysisStats()
        for result in results:
            if result.is_error:
                stats.files_with_errors += 1
                continue
            stats.files_analyzed += 1
            stats.total_symbols += len(result.symbols)
            stats.total_dependencies += len(result.imports)
            stats.total_patterns += len(result.patterns)
            stats.code_lines += result.stats.code_lines
            stats.comment_lines += result.stats.comment_lines
            stats.empty_lines += result.stats.empty_lines
        stats.files_with_warnings = len({w.file for w in report.warnings})
        return stats

    # =========================================================================
    # CACHE & CONFIG
    # =========================================================================

    def get_file_info(self, path: str) -> Optional[Dict[str, Any]]:
        """Size, type, mtime and cache state of one file, or None if it does not exist."""
        rel_path = normalize_path(path, self.root)
        full_path = self.root / rel_path
        if not full_path.is_file():
            return None

        stat = full_path.stat()
        cached = self.cache.has(CACHE_KEY_PREFIX + rel_path)
        return {
            "path": rel_path,
            "type": detect_file_type(rel_path).value,
            "size": stat.st_size,
            "last_modified": stat.st_mtime,
            "cached": cached,
        }

    def get_cache_status(self) -> Dict[str, Any]:
        return self.cache.stats()

    def clear_cache(self) -> None:
        self.cache.clear()

    def update_config(self, **changes) -> AnalysisConfig:
        """
        Apply config changes. Cache limits are updated in place, so cached
        results survive unless the new limits evict them.

        Raises:
            ConfigurationError: If a key is unknown or the result is invalid
        """
        new_config = self.config.with_changes(**changes)
        new_config.validate()

        self.config = new_config
        self.root = Path(new_config.project_path).resolve()
        self.cache.update_options(
            max_size=new_config.cache_max_size,
            ttl=new_config.cache_ttl_ms,
            enabled=new_config.cache_enabled,
        )
        self.dependency_analyzer = self._build_dependency_analyzer()
        return new_config

"""
Language-agnostic data model for dependency analysis.

FileAnalysisResult is what a per-file analyzer hands to the core. Everything
else (symbols, graph nodes/edges, cycle and external dependency records) is
produced by the core while reducing a set of file results.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class FileType(str, Enum):
    PYTHON = "python"
    TYPESCRIPT = "typescript"
    JAVASCRIPT = "javascript"
    TSX = "tsx"
    JSX = "jsx"
    JSON = "json"
    CSS = "css"
    SCSS = "scss"
    HTML = "html"
    MARKDOWN = "markdown"
    OTHER = "other"


class SymbolKind(str, Enum):
    CLASS = "class"
    FUNCTION = "function"
    METHOD = "method"
    INTERFACE = "interface"
    VARIABLE = "variable"
    CONSTANT = "constant"
    ENUM = "enum"
    TYPE_ALIAS = "type_alias"
    MODULE = "module"
    OTHER = "other"


class ImportKind(str, Enum):
    """How an import specifier resolves."""

    LOCAL = "local"
    EXTERNAL = "external"
    BUILTIN = "builtin"


class DependencyType(str, Enum):
    """Edge type between two analysis units."""

    IMPORT = "import"
    DYNAMIC_IMPORT = "dynamic_import"
    RE_EXPORT = "re_export"
    TYPE_IMPORT = "type_import"
    REQUIRE = "require"
    REFERENCE = "reference"


def symbol_key(file: str, name: str) -> str:
    """Canonical symbol table key: ``"<file>:<name>"``."""
    return f"{file}:{name}"


@dataclass(frozen=True)
class Location:
    file: str
    line: int = 0
    column: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"file": self.file, "line": self.line, "column": self.column}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Location:
        return cls(
            file=data.get("file", ""),
            line=data.get("line", 0),
            column=data.get("column", 0),
        )


@dataclass
class Symbol:
    """A declared symbol. Identity is ``(location.file, name)``."""

    name: str
    kind: SymbolKind = SymbolKind.OTHER
    location: Location = field(default_factory=lambda: Location(""))
    is_exported: bool = False
    is_declared: bool = True
    type: Optional[str] = None
    documentation: Optional[str] = None

    @property
    def key(self) -> str:
        return symbol_key(self.location.file, self.name)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "kind": self.kind.value,
            "location": self.location.to_dict(),
            "is_exported": self.is_exported,
            "is_declared": self.is_declared,
            "type": self.type,
            "documentation": self.documentation,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Symbol:
        return cls(
            name=data["name"],
            kind=SymbolKind(data.get("kind", SymbolKind.OTHER.value)),
            location=Location.from_dict(data.get("location", {})),
            is_exported=data.get("is_exported", False),
            is_declared=data.get("is_declared", True),
            type=data.get("type"),
            documentation=data.get("documentation"),
        )


@dataclass(frozen=True)
class SymbolReference:
    """A place where a symbol is used, with a short source snippet."""

    location: Location
    context: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"location": self.location.to_dict(), "context": self.context}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SymbolReference:
        return cls(
            location=Location.from_dict(data.get("location", {})),
            context=data.get("context", ""),
        )


@dataclass
class Import:
    """
    One import statement as seen by the file analyzer.

    ``kind`` may be left as None; the resolver then classifies the
    specifier itself.
    """

    specifier: str
    kind: Optional[ImportKind] = None
    names: list[str] = field(default_factory=list)
    line: int = 0
    is_dynamic: bool = False
    is_reexport: bool = False
    is_type_only: bool = False
    is_require: bool = False

    @property
    def edge_type(self) -> DependencyType:
        if self.is_reexport:
            return DependencyType.RE_EXPORT
        if self.is_dynamic:
            return DependencyType.DYNAMIC_IMPORT
        if self.is_require:
            return DependencyType.REQUIRE
        if self.is_type_only:
            return DependencyType.TYPE_IMPORT
        return DependencyType.IMPORT

    def to_dict(self) -> dict[str, Any]:
        return {
            "specifier": self.specifier,
            "kind": self.kind.value if self.kind else None,
            "names": list(self.names),
            "line": self.line,
            "is_dynamic": self.is_dynamic,
            "is_reexport": self.is_reexport,
            "is_type_only": self.is_type_only,
            "is_require": self.is_require,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Import:
        kind = data.get("kind")
        return cls(
            specifier=data["specifier"],
            kind=ImportKind(kind) if kind else None,
            names=list(data.get("names", [])),
            line=data.get("line", 0),
            is_dynamic=data.get("is_dynamic", False),
            is_reexport=data.get("is_reexport", False),
            is_type_only=data.get("is_type_only", False),
            is_require=data.get("is_require", False),
        )


@dataclass
class DetectedReference:
    """
    A name used inside a file, as detected by the file analyzer.

    ``from_symbol`` is the enclosing declared symbol, when known. It turns
    the reference into a symbol-to-symbol dependency.
    """

    name: str
    location: Location
    context: str = ""
    from_symbol: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "location": self.location.to_dict(),
            "context": self.context,
            "from_symbol": self.from_symbol,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DetectedReference:
        return cls(
            name=data["name"],
            location=Location.from_dict(data.get("location", {})),
            context=data.get("context", ""),
            from_symbol=data.get("from_symbol"),
        )


@dataclass
class FileStats:
    lines: int = 0
    code_lines: int = 0
    comment_lines: int = 0
    empty_lines: int = 0
    functions: int = 0
    classes: int = 0
    interfaces: int = 0
    variables: int = 0

    def to_dict(self) -> dict[str, int]:
        return dict(self.__dict__)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FileStats:
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)


@dataclass
class FileAnalysisResult:
    """
    Result of analyzing a single file.

    ``complexity`` and ``patterns`` are carried for downstream consumers and
    never interpreted by the core. Analyzers can attach anything else under
    ``metadata``. A non-empty ``error`` marks a partial result: the file is
    counted, but its symbols and imports are ignored.
    """

    file_path: str
    file_type: FileType = FileType.OTHER
    symbols: list[Symbol] = field(default_factory=list)
    imports: list[Import] = field(default_factory=list)
    exports: list[str] = field(default_factory=list)
    references: list[DetectedReference] = field(default_factory=list)
    size: int = 0
    last_modified: float = 0.0
    stats: FileStats = field(default_factory=FileStats)
    complexity: Optional[dict[str, Any]] = None
    patterns: list[dict[str, Any]] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return bool(self.error)

    @classmethod
    def failed(cls, file_path: str, message: str, file_type: FileType = FileType.OTHER) -> FileAnalysisResult:
        """Build an error-marked result for a file that could not be analyzed."""
        return cls(file_path=file_path, file_type=file_type, error=message or "analysis failed")

    def to_dict(self) -> dict[str, Any]:
        return {
            "file_path": self.file_path,
            "file_type": self.file_type.value,
            "symbols": [s.to_dict() for s in self.symbols],
            "imports": [i.to_dict() for i in self.imports],
            "exports": list(self.exports),
            "references": [r.to_dict() for r in self.references],
            "size": self.size,
            "last_modified": self.last_modified,
            "stats": self.stats.to_dict(),
            "complexity": self.complexity,
            "patterns": list(self.patterns),
            "metadata": dict(self.metadata),
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FileAnalysisResult:
        return cls(
            file_path=data["file_path"],
            file_type=FileType(data.get("file_type", FileType.OTHER.value)),
            symbols=[Symbol.from_dict(s) for s in data.get("symbols", [])],
            imports=[Import.from_dict(i) for i in data.get("imports", [])],
            exports=list(data.get("exports", [])),
            references=[DetectedReference.from_dict(r) for r in data.get("references", [])],
            size=data.get("size", 0),
            last_modified=data.get("last_modified", 0.0),
            stats=FileStats.from_dict(data.get("stats", {})),
            complexity=data.get("complexity"),
            patterns=list(data.get("patterns", [])),
            metadata=dict(data.get("metadata", {})),
            error=data.get("error"),
        )


@dataclass
class DependencyNode:
    """
    One analysis unit (file) in the dependency graph.

    Degree counters are maintained by the graph; ``level`` is a display
    ranking (longest path from a root), not used for correctness.
    """

    id: str
    path: str = ""
    type: FileType = FileType.OTHER
    size: int = 0
    in_degree: int = 0
    out_degree: int = 0
    level: int = 0
    is_placeholder: bool = False
    has_error: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "path": self.path,
            "type": self.type.value,
            "size": self.size,
            "in_degree": self.in_degree,
            "out_degree": self.out_degree,
            "level": self.level,
            "is_placeholder": self.is_placeholder,
            "has_error": self.has_error,
        }


@dataclass(frozen=True)
class DependencyEdge:
    from_id: str
    to_id: str
    type: DependencyType = DependencyType.IMPORT
    weight: float = 1

    @property
    def key(self) -> tuple[str, str, DependencyType]:
        return (self.from_id, self.to_id, self.type)

    def to_dict(self) -> dict[str, Any]:
        return {
            "from": self.from_id,
            "to": self.to_id,
            "type": self.type.value,
            "weight": self.weight,
        }


@dataclass
class ExternalDependency:
    """
    A third-party package seen in imports or declared in a manifest.

    ``is_used`` only means the package was imported at least once. It says
    nothing about whether the import is reachable or necessary.
    """

    name: str
    version: Optional[str] = None
    is_used: bool = False
    is_dev: Optional[bool] = None
    files: list[str] = field(default_factory=list)
    specifiers: list[str] = field(default_factory=list)
    source: str = "import"  # "manifest" when declared in a manifest

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "is_used": self.is_used,
            "is_dev": self.is_dev,
            "files": list(self.files),
            "specifiers": list(self.specifiers),
            "source": self.source,
        }


@dataclass
class DuplicateDependency:
    """A package declared with more than one version specifier."""

    name: str
    versions: list[str] = field(default_factory=list)
    files: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "versions": list(self.versions), "files": list(self.files)}


@dataclass(frozen=True)
class CircularDependency:
    """
    An import cycle ``[n0, n1, ..., n0]``. A self-import is ``[a, a]``.
    """

    path: tuple[str, ...]
    files: tuple[str, ...] = ()

    @property
    def nodes(self) -> tuple[str, ...]:
        """Distinct members of the cycle, in cycle order."""
        return self.path[:-1] if len(self.path) > 1 else self.path

    @property
    def key(self) -> tuple[str, ...]:
        """Rotation-invariant form, for comparing cycles found from different entry points."""
        nodes = self.nodes
        if not nodes:
            return ()
        start = min(range(len(nodes)), key=lambda i: nodes[i])
        return nodes[start:] + nodes[:start]

    def to_dict(self) -> dict[str, Any]:
        return {"path": list(self.path), "files": list(self.files)}


@dataclass
class AnalysisWarning:
    file: str
    message: str
    type: str
    line: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {"file": self.file, "message": self.message, "type": self.type, "line": self.line}


@dataclass
class AnalysisError:
    file: str
    message: str
    code: str = "ANALYSIS_ERROR"
    line: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {"file": self.file, "message": self.message, "code": self.code, "line": self.line}


@dataclass
class PackageManifest:
    """Declared packages, as read from package.json or pyproject.toml."""

    name: Optional[str] = None
    dependencies: dict[str, str] = field(default_factory=dict)
    dev_dependencies: dict[str, str] = field(default_factory=dict)
    declared_versions: dict[str, list[str]] = field(default_factory=dict)

    def declare(self, package: str, version: Optional[str] = None, dev: bool = False) -> None:
        """
        Record one declaration of ``package``.

        The first version seen per package is the one ``lookup`` reports;
        every distinct version is kept in ``declared_versions``. A runtime
        declaration moves a package out of the dev section.
        """
        if version:
            versions = self.declared_versions.setdefault(package, [])
            if version not in versions:
                versions.append(version)
        if dev:
            if package not in self.dependencies:
                self.dev_dependencies.setdefault(package, version or "")
        else:
            first = self.dev_dependencies.pop(package, None)
            self.dependencies.setdefault(package, first or version or "")

    def merge(self, other: "PackageManifest") -> None:
        for package, version in other.dependencies.items():
            self.declare(package, version)
        for package, version in other.dev_dependencies.items():
            self.declare(package, version, dev=True)
        for package, versions in other.declared_versions.items():
            for version in versions:
                self.declare(package, version, dev=package not in self.dependencies)

    def versions(self, package: str) -> list[str]:
        """Every distinct version specifier declared for ``package``, first one first."""
        found: list[str] = []
        candidates = [self.dependencies.get(package), self.dev_dependencies.get(package)]
        candidates.extend(self.declared_versions.get(package, ()))
        for version in candidates:
            if version and version not in found:
                found.append(version)
        return found

    def lookup(self, package: str) -> Optional[tuple[Optional[str], bool]]:
        """Return ``(version, is_dev)`` for a declared package, or None."""
        if package in self.dependencies:
            return self.dependencies[package] or None, False
        if package in self.dev_dependencies:
            return self.dev_dependencies[package] or None, True
        return None

    def all_packages(self) -> list[str]:
        return sorted(set(self.dependencies) | set(self.dev_dependencies))

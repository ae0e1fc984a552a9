"""
Per-file source analysis.

The dependency core only consumes FileAnalysisResult values; this module is
the reference producer. Any object with ``analyze_file(path, project_root)``
can stand in for it (see ``FileAnalyzer``).

Strategies:
1. Python: parsed with the stdlib ``ast`` module (symbols, imports,
   ``__all__``, name references with their enclosing symbol)
2. JavaScript/TypeScript: regex scan of import/export/require statements and
   top-level declarations
3. Everything else: size and line statistics only
"""

import ast
import bisect
import re
from pathlib import Path
from typing import List, Optional, Protocol, Set, Tuple, Union, runtime_checkable

from depscope.models import (
    DetectedReference,
    FileAnalysisResult,
    FileStats,
    FileType,
    Import,
    Location,
    Symbol,
    SymbolKind,
)
from depscope.utils.paths import normalize_path

EXTENSION_TYPES = {
    ".py": FileType.PYTHON,
    ".pyi": FileType.PYTHON,
    ".ts": FileType.TYPESCRIPT,
    ".mts": FileType.TYPESCRIPT,
    ".cts": FileType.TYPESCRIPT,
    ".tsx": FileType.TSX,
    ".js": FileType.JAVASCRIPT,
    ".mjs": FileType.JAVASCRIPT,
    ".cjs": FileType.JAVASCRIPT,
    ".jsx": FileType.JSX,
    ".json": FileType.JSON,
    ".css": FileType.CSS,
    ".scss": FileType.SCSS,
    ".html": FileType.HTML,
    ".htm": FileType.HTML,
    ".md": FileType.MARKDOWN,
}

SCRIPT_TYPES = {FileType.TYPESCRIPT, FileType.TSX, FileType.JAVASCRIPT, FileType.JSX}

DEFAULT_MAX_FILE_SIZE = 2 * 1024 * 1024
CONTEXT_WIDTH = 120


def detect_file_type(path: Union[str, Path]) -> FileType:
    """File type from the extension (``.d.ts`` counts as TypeScript)."""
    return EXTENSION_TYPES.get(Path(path).suffix.lower(), FileType.OTHER)


@runtime_checkable
class FileAnalyzer(Protocol):
    """Anything that turns one file into a FileAnalysisResult."""

    def analyze_file(self, path: Union[str, Path], project_root: Union[str, Path]) -> FileAnalysisResult:
        ...


def _snippet(line: str) -> str:
    line = line.strip()
    return line if len(line) <= CONTEXT_WIDTH else line[:CONTEXT_WIDTH - 3] + "..."


def _line_stats(lines: List[str], comment_prefixes: Tuple[str, ...]) -> FileStats:
    stats = FileStats(lines=len(lines))
    for line in lines:
        stripped = line.strip()
        if not stripped:
            stats.empty_lines += 1
        elif comment_prefixes and stripped.startswith(comment_prefixes):
            stats.comment_lines += 1
        else:
            stats.code_lines += 1
    return stats


# =============================================================================
# PYTHON
# =============================================================================

ENUM_BASES = {"Enum", "IntEnum", "StrEnum", "Flag", "IntFlag"}
PROTOCOL_BASES = {"Protocol", "ABC"}
BRANCH_NODES = (
    ast.If, ast.For, ast.AsyncFor, ast.While, ast.ExceptHandler, ast.With,
    ast.AsyncWith, ast.IfExp, ast.BoolOp, ast.comprehension, ast.Assert,
)


def _base_names(node: ast.ClassDef) -> Set[str]:
    names = set()
    for base in node.bases:
        if isinstance(base, ast.Name):
            names.add(base.id)
        elif isinstance(base, ast.Attribute):
            names.add(base.attr)
    return names


def _first_doc_line(node: ast.AST) -> Optional[str]:
    if not isinstance(node, (ast.ClassDef, ast.FunctionDef, ast.AsyncFunctionDef)):
        return None
    doc = (ast.get_docstring(node) or "").strip()
    return doc.splitlines()[0] if doc else None


def _is_type_checking(test: ast.expr) -> bool:
    if isinstance(test, ast.Name):
        return test.id == "TYPE_CHECKING"
    return isinstance(test, ast.Attribute) and test.attr == "TYPE_CHECKING"


def _literal_all(tree: ast.Module) -> Optional[List[str]]:
    """Names listed in a literal ``__all__``, or None."""
    for node in tree.body:
        targets = []
        if isinstance(node, ast.Assign):
            targets = node.targets
        elif isinstance(node, ast.AnnAssign) and node.value is not None:
            targets = [node.target]
        if not any(isinstance(t, ast.Name) and t.id == "__all__" for t in targets):
            continue
        if isinstance(node.value, (ast.List, ast.Tuple)):
            return [e.value for e in node.value.elts if isinstance(e, ast.Constant) and isinstance(e.value, str)]
    return None


class _PythonImports(ast.NodeVisitor):
    """Collect imports, flagging ones under ``if TYPE_CHECKING:`` as type-only."""

    def __init__(self):
        self.imports: List[Import] = []
        self._type_only = 0

    def visit_If(self, node: ast.If):
        if _is_type_checking(node.test):
            self._type_only += 1
            for child in node.body:
                self.visit(child)
            self._type_only -= 1
            for child in node.orelse:
                self.visit(child)
        else:
            self.generic_visit(node)

    def visit_Import(self, node: ast.Import):
        for alias in node.names:
            self.imports.append(Import(
                specifier=alias.name,
                line=node.lineno,
                is_type_only=self._type_only > 0,
            ))

    def visit_ImportFrom(self, node: ast.ImportFrom):
        names = [a.name if not a.asname else f"{a.name} as {a.asname}" for a in node.names]
        self.imports.append(Import(
            specifier="." * node.level + (node.module or ""),
            names=names,
            line=node.lineno,
            is_type_only=self._type_only > 0,
        ))

    def visit_Call(self, node: ast.Call):
        # importlib.import_module("x") / __import__("x")
        func = node.func
        is_dynamic = (
            (isinstance(func, ast.Attribute) and func.attr == "import_module")
            or (isinstance(func, ast.Name) and func.id in ("import_module", "__import__"))
        )
        if is_dynamic and node.args and isinstance(node.args[0], ast.Constant) and isinstance(node.args[0].value, str):
            self.imports.append(Import(specifier=node.args[0].value, line=node.lineno, is_dynamic=True))
        self.generic_visit(node)


def _bound_names(imports: List[Import]) -> Set[str]:
    names = set()
    for imp in imports:
        if imp.names:
            for name in imp.names:
                names.add(name.split(" as ")[-1].strip())
        elif not imp.is_dynamic:
            names.add(imp.specifier.split(".")[0])
    names.discard("*")
    return names


def analyze_python(source: str, rel_path: str) -> FileAnalysisResult:
    """
    Analyze Python source.

    Raises:
        SyntaxError: If the source does not parse
    """
    tree = ast.parse(source, filename=rel_path)
    lines = source.splitlines()

    explicit_all = _literal_all(tree)
    symbols: List[Symbol] = []
    scopes: List[Tuple[int, int, str]] = []  # (start, end, symbol name)

    def is_public(name: str) -> bool:
        if explicit_all is not None:
            return name in explicit_all
        return not name.startswith("_")

    def add(name: str, kind: SymbolKind, node: ast.AST, exported: bool):
        symbols.append(Symbol(
            name=name,
            kind=kind,
            location=Location(rel_path, node.lineno, node.col_offset),
            is_exported=exported,
            documentation=_first_doc_line(node),
        ))
        end = getattr(node, "end_lineno", None) or node.lineno
        scopes.append((node.lineno, end, name))

    for node in tree.body:
        if isinstance(node, ast.ClassDef):
            bases = _base_names(node)
            if bases & ENUM_BASES:
                kind = SymbolKind.ENUM
            elif bases & PROTOCOL_BASES:
                kind = SymbolKind.INTERFACE
            else:
                kind = SymbolKind.CLASS
            add(node.name, kind, node, is_public(node.name))
            for item in node.body:
                if isinstance(item, (ast.FunctionDef, ast.AsyncFunctionDef)):
                    add(f"{node.name}.{item.name}", SymbolKind.METHOD, item, False)
        elif isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
            add(node.name, SymbolKind.FUNCTION, node, is_public(node.name))
        elif isinstance(node, (ast.Assign, ast.AnnAssign)):
            targets = node.targets if isinstance(node, ast.Assign) else [node.target]
            for target in targets:
                if isinstance(target, ast.Name) and target.id != "__all__":
                    kind = SymbolKind.CONSTANT if target.id.isupper() else SymbolKind.VARIABLE
                    if isinstance(node, ast.AnnAssign) and isinstance(node.annotation, ast.Name) and node.annotation.id == "TypeAlias":
                        kind = SymbolKind.TYPE_ALIAS
                    add(target.id, kind, node, is_public(target.id))

    collector = _PythonImports()
    collector.visit(tree)
    imports = collector.imports

    # Only names that resolve to something the core can link: imports and top-level declarations
    interesting = _bound_names(imports) | {s.name for s in symbols if "." not in s.name}
    # Innermost scope wins (methods are nested in their class)
    scopes.sort(key=lambda s: (s[0], -s[1]))

    references: List[DetectedReference] = []
    for node in ast.walk(tree):
        if not (isinstance(node, ast.Name) and isinstance(node.ctx, ast.Load) and node.id in interesting):
            continue
        enclosing = None
        for start, end, name in scopes:
            if start <= node.lineno <= end:
                enclosing = name
        line_text = lines[node.lineno - 1] if 0 < node.lineno <= len(lines) else ""
        references.append(DetectedReference(
            name=node.id,
            location=Location(rel_path, node.lineno, node.col_offset),
            context=_snippet(line_text),
            from_symbol=enclosing,
        ))
    references.sort(key=lambda r: (r.location.line, r.location.column))

    stats = _line_stats(lines, ("#",))
    stats.classes = sum(1 for s in symbols if s.kind in (SymbolKind.CLASS, SymbolKind.ENUM))
    stats.interfaces = sum(1 for s in symbols if s.kind == SymbolKind.INTERFACE)
    stats.functions = sum(1 for s in symbols if s.kind in (SymbolKind.FUNCTION, SymbolKind.METHOD))
    stats.variables = sum(1 for s in symbols if s.kind in (SymbolKind.VARIABLE, SymbolKind.CONSTANT))

    exports = explicit_all if explicit_all is not None else [
        s.name for s in symbols if s.is_exported
    ]

    return FileAnalysisResult(
        file_path=rel_path,
        file_type=FileType.PYTHON,
        symbols=symbols,
        imports=imports,
        exports=list(exports),
        references=references,
        stats=stats,
        complexity={"cyclomatic": 1 + sum(1 for n in ast.walk(tree) if isinstance(n, BRANCH_NODES))},
    )


# =============================================================================
# JAVASCRIPT / TYPESCRIPT
# =============================================================================

_JS_IMPORT = re.compile(
    r"^[ \t]*import\s+(type\s+)?([\w$\s{},*]+?)\s+from\s+['\"]([^'\"]+)['\"]", re.M
)
_JS_SIDE_EFFECT_IMPORT = re.compile(r"^[ \t]*import\s+['\"]([^'\"]+)['\"]", re.M)
_JS_REEXPORT = re.compile(
    r"^[ \t]*export\s+(type\s+)?(\*(?:\s+as\s+[\w$]+)?|\{[^}]*\})\s*from\s+['\"]([^'\"]+)['\"]", re.M
)
_JS_REQUIRE_BINDING = re.compile(
    r"(?:const|let|var)\s+(\{[^}]*\}|[\w$]+)\s*=\s*require\(\s*['\"]([^'\"]+)['\"]\s*\)"
)
_JS_REQUIRE = re.compile(r"\brequire\(\s*['\"]([^'\"]+)['\"]\s*\)")
_JS_DYNAMIC_IMPORT = re.compile(r"\bimport\(\s*['\"]([^'\"]+)['\"]\s*\)")
_JS_EXPORT_LIST = re.compile(r"^[ \t]*export\s+\{([^}]*)\}\s*;?\s*$", re.M)
_JS_EXPORT_DEFAULT = re.compile(r"^export\s+default\s+", re.M)

_JS_DECLARATIONS = (
    (re.compile(r"^(export\s+)?(?:default\s+)?(?:abstract\s+)?class\s+([\w$]+)"), SymbolKind.CLASS),
    (re.compile(r"^(export\s+)?(?:default\s+)?(?:async\s+)?function\s*\*?\s*([\w$]+)"), SymbolKind.FUNCTION),
    (re.compile(r"^(export\s+)?(?:declare\s+)?interface\s+([\w$]+)"), SymbolKind.INTERFACE),
    (re.compile(r"^(export\s+)?(?:declare\s+)?type\s+([\w$]+)\s*(?:<[^=]*>)?\s*="), SymbolKind.TYPE_ALIAS),
    (re.compile(r"^(export\s+)?(?:declare\s+)?(?:const\s+)?enum\s+([\w$]+)"), SymbolKind.ENUM),
    (re.compile(r"^(export\s+)?(?:declare\s+)?(?:const|let|var)\s+([\w$]+)"), SymbolKind.VARIABLE),
)
_JS_ARROW = re.compile(r"=\s*(?:async\s+)?(?:\([^)]*\)|[\w$]+)\s*(?::\s*[^=]+)?=>")
_JS_IDENTIFIER = re.compile(r"[A-Za-z_$][\w$]*")


def _line_of(text: str, offset: int) -> int:
    return text.count("\n", 0, offset) + 1


def _brace_names(clause: str) -> List[str]:
    """``"{ a, b as c, type T }"`` → ``["a", "b as c", "T"]``"""
    inner = clause.strip().strip("{}")
    names = []
    for part in inner.split(","):
        part = " ".join(part.split())
        if part.startswith("type "):
            part = part[len("type "):]
        if part:
            names.append(part)
    return names


def _import_clause_names(clause: str) -> List[str]:
    """Bindings of an import clause: default, namespace and named imports."""
    names = []
    clause = clause.strip()
    brace = clause.find("{")
    named = clause[brace:] if brace >= 0 else ""
    head = clause[:brace] if brace >= 0 else clause

    for part in head.split(","):
        part = " ".join(part.split())
        if not part:
            continue
        if part.startswith("*"):
            names.append(part)  # "* as ns"
        else:
            names.append(f"default as {part}")
    if named:
        names.extend(_brace_names(named))
    return names


def analyze_script(source: str, rel_path: str, file_type: FileType) -> FileAnalysisResult:
    lines = source.splitlines()
    imports: List[Import] = []

    for m in _JS_IMPORT.finditer(source):
        imports.append(Import(
            specifier=m.group(3),
            names=_import_clause_names(m.group(2)),
            line=_line_of(source, m.start()),
            is_type_only=bool(m.group(1)),
        ))
    for m in _JS_SIDE_EFFECT_IMPORT.finditer(source):
        imports.append(Import(specifier=m.group(1), line=_line_of(source, m.start())))

    exports: List[str] = []
    for m in _JS_REEXPORT.finditer(source):
        clause = m.group(2)
        names = _brace_names(clause) if clause.startswith("{") else []
        imports.append(Import(
            specifier=m.group(3),
            names=names,
            line=_line_of(source, m.start()),
            is_reexport=True,
            is_type_only=bool(m.group(1)),
        ))
        exports.extend(n.split(" as ")[-1] for n in names)

    bound_requires = set()
    for m in _JS_REQUIRE_BINDING.finditer(source):
        binding = m.group(1)
        names = _brace_names(binding) if binding.startswith("{") else [f"default as {binding}"]
        # CommonJS destructuring uses "a: b" for renames
        names = [n.replace(":", " as ") if ":" in n else n for n in names]
        names = [" ".join(n.split()) for n in names]
        imports.append(Import(
            specifier=m.group(2),
            names=names,
            line=_line_of(source, m.start()),
            is_require=True,
        ))
        bound_requires.add(m.start(2))
    for m in _JS_REQUIRE.finditer(source):
        if m.start(1) in bound_requires:
            continue
        imports.append(Import(specifier=m.group(1), line=_line_of(source, m.start()), is_require=True))

    for m in _JS_DYNAMIC_IMPORT.finditer(source):
        imports.append(Import(specifier=m.group(1), line=_line_of(source, m.start()), is_dynamic=True))

    imports.sort(key=lambda i: i.line)

    # Top-level declarations (unindented lines only)
    symbols: List[Symbol] = []
    for number, line in enumerate(lines, 1):
        for pattern, kind in _JS_DECLARATIONS:
            m = pattern.match(line)
            if not m:
                continue
            name = m.group(2)
            if kind == SymbolKind.VARIABLE:
                if _JS_ARROW.search(line) or re.search(r"=\s*(?:async\s+)?function\b", line):
                    kind = SymbolKind.FUNCTION
                elif re.match(r"^(?:export\s+)?const\s", line) and name.isupper():
                    kind = SymbolKind.CONSTANT
            exported = bool(m.group(1))
            symbols.append(Symbol(
                name=name,
                kind=kind,
                location=Location(rel_path, number, line.find(name)),
                is_exported=exported,
            ))
            if exported:
                exports.append(name)
            break

    declared = {s.name: s for s in symbols}
    for m in _JS_EXPORT_LIST.finditer(source):
        for name in _brace_names(m.group(1)):
            local, _, public = name.partition(" as ")
            exports.append(public.strip() or local.strip())
            symbol = declared.get(local.strip())
            if symbol is not None:
                symbol.is_exported = True
    if _JS_EXPORT_DEFAULT.search(source):
        exports.append("default")

    # References to imported bindings and declared names
    bound = {n.split(" as ")[-1].strip() for imp in imports for n in imp.names} - {"*"}
    interesting = bound | set(declared)
    decl_lines = [s.location.line for s in symbols]
    references: List[DetectedReference] = []
    for number, line in enumerate(lines, 1):
        stripped = line.strip()
        if not stripped or stripped.startswith(("//", "/*", "*", "import ")) or "require(" in stripped:
            continue
        pos = bisect.bisect_right(decl_lines, number) - 1
        enclosing = symbols[pos].name if pos >= 0 else None
        for m in _JS_IDENTIFIER.finditer(line):
            name = m.group(0)
            if name not in interesting:
                continue
            if name in declared and declared[name].location.line == number:
                continue  # the declaration itself
            references.append(DetectedReference(
                name=name,
                location=Location(rel_path, number, m.start()),
                context=_snippet(line),
                from_symbol=enclosing,
            ))

    stats = _line_stats(lines, ("//", "/*", "*"))
    stats.classes = sum(1 for s in symbols if s.kind in (SymbolKind.CLASS, SymbolKind.ENUM))
    stats.interfaces = sum(1 for s in symbols if s.kind in (SymbolKind.INTERFACE, SymbolKind.TYPE_ALIAS))
    stats.functions = sum(1 for s in symbols if s.kind == SymbolKind.FUNCTION)
    stats.variables = sum(1 for s in symbols if s.kind in (SymbolKind.VARIABLE, SymbolKind.CONSTANT))

    return FileAnalysisResult(
        file_path=rel_path,
        file_type=file_type,
        symbols=symbols,
        imports=imports,
        exports=list(dict.fromkeys(exports)),
        references=references,
        stats=stats,
    )


# =============================================================================
# ANALYZER
# =============================================================================

class SourceFileAnalyzer:
    """
    Reference FileAnalyzer for Python and JavaScript/TypeScript projects.

    Usage:
        analyzer = SourceFileAnalyzer()
        result = analyzer.analyze_file("src/app.py", "/path/to/project")
        result.imports  # [Import(specifier="requests", ...), ...]

    Read and parse failures propagate (OSError, UnicodeDecodeError,
    SyntaxError); ProjectAnalyzer turns them into error-marked results.
    """

    def __init__(self, max_file_size: int = DEFAULT_MAX_FILE_SIZE):
        self.max_file_size = max_file_size

    def detect_file_type(self, path: Union[str, Path]) -> FileType:
        return detect_file_type(path)

    def analyze_file(self, path: Union[str, Path], project_root: Union[str, Path]) -> FileAnalysisResult:
        root = Path(project_root)
        full_path = Path(path) if Path(path).is_absolute() else root / path
        rel_path = normalize_path(full_path, root)
        file_type = self.detect_file_type(full_path)

        stat = full_path.stat()
        if stat.st_size > self.max_file_size:
            return FileAnalysisResult.failed(
                rel_path,
                f"File too large ({stat.st_size} bytes, limit {self.max_file_size})",
                file_type,
            )

        source = full_path.read_text(encoding="utf-8")

        if file_type == FileType.PYTHON:
            result = analyze_python(source, rel_path)
        elif file_type in SCRIPT_TYPES:
            result = analyze_script(source, rel_path, file_type)
        else:
            result = FileAnalysisResult(
                file_path=rel_path,
                file_type=file_type,
                stats=_line_stats(source.splitlines(), ()),
            )

        result.size = stat.st_size
        result.last_modified = stat.st_mtime
        return result

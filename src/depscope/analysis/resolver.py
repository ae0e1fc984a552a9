"""
Import resolution - classify specifiers and map local ones to project files.

A specifier is LOCAL when it is relative (``./x``, ``../x``, ``.x`` in
Python), root-anchored (``/x``), matches a configured alias, or (for Python)
is an absolute dotted module that maps to a file in the project. Standard
library and Node core modules are BUILTIN. Everything else is EXTERNAL.

Node ids are root-relative posix paths, e.g. ``src/app/main.py``.
"""

from __future__ import annotations

import json
import posixpath
import re
import sys
import tomllib
from pathlib import Path
from typing import Iterable, Optional, Union

from depscope.models import FileType, ImportKind, PackageManifest
from depscope.utils.logger import logger

NODE_BUILTINS = frozenset({
    "assert", "async_hooks", "buffer", "child_process", "cluster", "console",
    "constants", "crypto", "dgram", "diagnostics_channel", "dns", "domain",
    "events", "fs", "http", "http2", "https", "inspector", "module", "net",
    "os", "path", "perf_hooks", "process", "punycode", "querystring",
    "readline", "repl", "stream", "string_decoder", "sys", "timers", "tls",
    "trace_events", "tty", "url", "util", "v8", "vm", "wasi",
    "worker_threads", "zlib",
})

PYTHON_STDLIB = frozenset(sys.stdlib_module_names) | {"__future__"}

JS_EXTENSIONS = (".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs", ".json")
JS_INDEX_FILES = tuple(f"index{ext}" for ext in (".ts", ".tsx", ".js", ".jsx"))

_REQUIREMENT_RE = re.compile(r"^\s*([A-Za-z0-9][A-Za-z0-9._-]*)\s*(\[[^\]]*\])?\s*(.*)$")


def canonical_package_name(name: str) -> str:
    """PEP 503 style name: lowercase, runs of ``-_.`` collapsed to ``-``."""
    return re.sub(r"[-_.]+", "-", name).lower()


def is_python(file_type: FileType) -> bool:
    return file_type == FileType.PYTHON


def package_name(specifier: str, file_type: FileType = FileType.OTHER) -> str:
    """
    Package a specifier belongs to.

    Examples:
        "lodash/fp"          → "lodash"
        "@scope/pkg/sub"     → "@scope/pkg"
        "node:fs/promises"   → "fs"
        "requests.adapters"  → "requests"  (Python)
    """
    if specifier.startswith("node:"):
        specifier = specifier[len("node:"):]
    if is_python(file_type):
        return specifier.split(".")[0]
    parts = specifier.split("/")
    if specifier.startswith("@") and len(parts) > 1:
        return "/".join(parts[:2])
    return parts[0]


class ImportResolver:
    """
    Classifies import specifiers and resolves local ones to known node ids.

    Usage:
        resolver = ImportResolver(["src/app.ts", "src/util/index.ts"], aliases={"@/": "src/"})
        resolver.classify("./util", FileType.TYPESCRIPT)     # ImportKind.LOCAL
        resolver.resolve("./util", "src/app.ts", FileType.TYPESCRIPT)
        # → "src/util/index.ts"
    """

    def __init__(
        self,
        known_ids: Iterable[str],
        aliases: Optional[dict[str, str]] = None,
        source_roots: Iterable[str] = ("", "src"),
    ):
        self.known_ids = set(known_ids)
        # Longest alias first so "@/components" wins over "@"
        self.aliases = sorted((aliases or {}).items(), key=lambda item: len(item[0]), reverse=True)
        self.source_roots = list(source_roots)

    # =========================================================================
    # CLASSIFICATION
    # =========================================================================

    def _match_alias(self, specifier: str) -> Optional[str]:
        """Rewrite an aliased specifier to a root-relative path, or None."""
        for alias, target in self.aliases:
            prefix = alias.rstrip("/")
            if specifier == prefix or specifier.startswith(prefix + "/"):
                rest = specifier[len(prefix):].lstrip("/")
                return posixpath.join(target, rest) if rest else target.rstrip("/")
        return None

    def is_builtin(self, specifier: str, file_type: FileType = FileType.OTHER) -> bool:
        if specifier.startswith("node:"):
            return True
        if is_python(file_type):
            return specifier.split(".")[0] in PYTHON_STDLIB
        return package_name(specifier, file_type) in NODE_BUILTINS

    def classify(self, specifier: str, file_type: FileType = FileType.OTHER) -> ImportKind:
        if specifier.startswith((".", "/")):
            return ImportKind.LOCAL
        if self._match_alias(specifier) is not None:
            return ImportKind.LOCAL
        if self.is_builtin(specifier, file_type):
            return ImportKind.BUILTIN
        if is_python(file_type) and self._resolve_python_absolute(specifier) is not None:
            return ImportKind.LOCAL
        return ImportKind.EXTERNAL

    # =========================================================================
    # RESOLUTION
    # =========================================================================

    def resolve(self, specifier: str, from_id: str, file_type: FileType = FileType.OTHER) -> Optional[str]:
        """
        Map a local specifier to a known node id.

        Returns:
            The target node id, or None if no project file matches
        """
        if is_python(file_type):
            if specifier.startswith("."):
                return self._resolve_python_relative(specifier, from_id)
            if specifier.startswith("/"):
                return self._first_known(self._js_candidates(specifier[1:]))
            aliased = self._match_alias(specifier)
            if aliased is not None:
                return self._first_known(self._python_candidates(aliased))
            return self._resolve_python_absolute(specifier)

        if specifier.startswith("."):
            base = posixpath.join(posixpath.dirname(from_id), specifier)
        elif specifier.startswith("/"):
            base = specifier.lstrip("/")
        else:
            base = self._match_alias(specifier)
            if base is None:
                return None

        return self._first_known(self._js_candidates(base))

    def resolve_submodule(self, package_id: str, name: str) -> Optional[str]:
        """For ``from pkg import name``: the submodule file ``name`` when ``package_id`` is a package."""
        if not package_id.endswith("__init__.py"):
            return None
        package_dir = posixpath.dirname(package_id)
        return self._first_known(self._python_candidates(posixpath.join(package_dir, name)))

    def _first_known(self, candidates: Iterable[str]) -> Optional[str]:
        for candidate in candidates:
            normalized = posixpath.normpath(candidate)
            if normalized.startswith("../") or normalized == "..":
                continue
            if normalized in self.known_ids:
                return normalized
        return None

    def _js_candidates(self, base: str) -> list[str]:
        base = posixpath.normpath(base)
        candidates = [base]
        candidates.extend(base + ext for ext in JS_EXTENSIONS)
        # ESM-style "./foo.js" pointing at "foo.ts"
        stem, ext = posixpath.splitext(base)
        if ext in (".js", ".jsx", ".mjs", ".cjs"):
            candidates.extend(stem + alt for alt in (".ts", ".tsx"))
        candidates.extend(posixpath.join(base, index) for index in JS_INDEX_FILES)
        return candidates

    @staticmethod
    def _python_candidates(module_path: str) -> list[str]:
        return [f"{module_path}.py", f"{module_path}.pyi", posixpath.join(module_path, "__init__.py")]

    def _resolve_python_relative(self, specifier: str, from_id: str) -> Optional[str]:
        level = len(specifier) - len(specifier.lstrip("."))
        remainder = specifier[level:]

        package_dir = posixpath.dirname(from_id)
        depth = len(package_dir.split("/")) if package_dir else 0
        if level - 1 > depth:
            return None
        for _ in range(level - 1):
            package_dir = posixpath.dirname(package_dir)

        if not remainder:
            return self._first_known([posixpath.join(package_dir, "__init__.py")])
        module_path = posixpath.join(package_dir, *remainder.split("."))
        return self._first_known(self._python_candidates(module_path))

    def _resolve_python_absolute(self, specifier: str) -> Optional[str]:
        parts = specifier.split(".")
        for root in self.source_roots:
            module_path = posixpath.join(root, *parts) if root else posixpath.join(*parts)
            resolved = self._first_known(self._python_candidates(module_path))
            if resolved is not None:
                return resolved
        return None


# =========================================================================
# MANIFESTS
# =========================================================================

def _parse_requirement(requirement: str) -> Optional[tuple[str, Optional[str]]]:
    """``"click>=8.0; python_version>'3'"`` → ``("click", ">=8.0")``."""
    match = _REQUIREMENT_RE.match(requirement.split(";")[0])
    if not match:
        return None
    version = match.group(3).strip()
    return canonical_package_name(match.group(1)), version or None


def _read_package_json(path: Path) -> PackageManifest:
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    manifest = PackageManifest(name=data.get("name"))
    for package, version in (data.get("dependencies") or {}).items():
        manifest.declare(package, version)
    for package, version in (data.get("devDependencies") or {}).items():
        manifest.declare(package, version, dev=True)
    return manifest


def _read_pyproject(path: Path) -> PackageManifest:
    with open(path, "rb") as f:
        data = tomllib.load(f)

    project = data.get("project", {})
    manifest = PackageManifest(name=project.get("name"))

    for requirement in project.get("dependencies", []):
        parsed = _parse_requirement(requirement)
        if parsed:
            manifest.declare(*parsed)

    extras = dict(project.get("optional-dependencies", {}))
    extras.update(data.get("dependency-groups", {}))
    for requirements in extras.values():
        for requirement in requirements:
            if not isinstance(requirement, str):
                continue  # include-group tables
            parsed = _parse_requirement(requirement)
            if parsed:
                manifest.declare(*parsed, dev=True)

    return manifest


def load_manifest(project_root: Union[str, Path]) -> Optional[PackageManifest]:
    """
    Read declared packages from ``package.json`` and/or ``pyproject.toml``.

    Python package names are stored in canonical form (see
    ``canonical_package_name``). Unreadable manifests are logged and skipped.

    Returns:
        The merged manifest, or None when the project has neither file
    """
    root = Path(project_root)
    found: list[PackageManifest] = []

    package_json = root / "package.json"
    if package_json.exists():
        try:
            found.append(_read_package_json(package_json))
        except (OSError, ValueError) as e:
            logger.warning("resolve", f"Could not parse {package_json}: {e}")

    pyproject = root / "pyproject.toml"
    if pyproject.exists():
        try:
            found.append(_read_pyproject(pyproject))
        except (OSError, tomllib.TOMLDecodeError) as e:
            logger.warning("resolve", f"Could not parse {pyproject}: {e}")

    if not found:
        return None

    merged = PackageManifest(name=found[0].name)
    for manifest in found:
        merged.merge(manifest)
    return merged

"""
Symbol table - symbol-level cross references.

Tracks declared symbols, where they are used, and which symbols depend on
which. Keys are ``"<file>:<name>"``. Entries may exist before their symbol
is declared (forward references); ``get_symbol`` returns None for those
while reference and dependency queries still work.

Every dependency is stored twice (forward and reverse) and both sides are
updated inside the same critical section, so ``b in dependents(a)`` holds
exactly when ``a in dependencies(b)``.
"""

from __future__ import annotations

import re
import threading
from dataclasses import dataclass, field, replace
from typing import Any, Optional

from depscope.models import Symbol, SymbolKind, SymbolReference


@dataclass
class SymbolEntry:
    key: str
    symbol: Optional[Symbol] = None
    references: list[SymbolReference] = field(default_factory=list)
    dependencies: set[str] = field(default_factory=set)
    dependents: set[str] = field(default_factory=set)


@dataclass
class ModuleInfo:
    """Per-file summary: which symbols a file declares and exports."""
    path: str
    symbols: list[str] = field(default_factory=list)
    exports: list[str] = field(default_factory=list)
    imports: list[str] = field(default_factory=list)


class SymbolTable:
    """
    Symbol, reference and symbol-to-symbol dependency index.

    Usage:
        table = SymbolTable()
        key = table.add_symbol(Symbol("User", SymbolKind.CLASS, Location("models.py", 3)))
        table.add_dependency("views.py:index", key)

        table.get_symbol_dependents(key)  # {"views.py:index"}
    """

    def __init__(self):
        self._entries: dict[str, SymbolEntry] = {}
        self._file_index: dict[str, set[str]] = {}
        self._modules: dict[str, ModuleInfo] = {}
        self._lock = threading.RLock()

    def _entry(self, key: str) -> SymbolEntry:
        entry = self._entries.get(key)
        if entry is None:
            entry = SymbolEntry(key=key)
            self._entries[key] = entry
        return entry

    # =========================================================================
    # CORE OPERATIONS
    # =========================================================================

    def add_symbol(self, symbol: Symbol) -> str:
        """
        Declare a symbol. Re-adding the same key replaces the symbol data and
        keeps existing references and dependencies.

        Returns:
            The symbol's table key
        """
        key = symbol.key
        with self._lock:
            self._entry(key).symbol = symbol
            self._file_index.setdefault(symbol.location.file, set()).add(key)
        return key

    def get_symbol(self, key: str) -> Optional[SymbolEntry]:
        """Snapshot of a declared entry, or None for unknown keys and forward references."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.symbol is None:
                return None
            return SymbolEntry(
                key=entry.key,
                symbol=entry.symbol,
                references=list(entry.references),
                dependencies=set(entry.dependencies),
                dependents=set(entry.dependents),
            )

    def update_symbol(self, key: str, **changes) -> Optional[Symbol]:
        """
        Replace fields of a declared symbol (``documentation``, ``is_exported``, ...).

        Returns:
            The updated symbol, or None if ``key`` has no declared symbol

        Raises:
            TypeError: If a field name is unknown
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.symbol is None:
                return None
            old_file = entry.symbol.location.file
            entry.symbol = replace(entry.symbol, **changes)
            new_file = entry.symbol.location.file
            if new_file != old_file:
                keys = self._file_index.get(old_file)
                if keys is not None:
                    keys.discard(key)
                    if not keys:
                        del self._file_index[old_file]
                self._file_index.setdefault(new_file, set()).add(key)
            return entry.symbol

    def add_reference(self, key: str, reference: SymbolReference) -> None:
        with self._lock:
            self._entry(key).references.append(reference)

    def get_symbol_references(self, key: str) -> list[SymbolReference]:
        with self._lock:
            entry = self._entries.get(key)
            return list(entry.references) if entry else []

    def add_dependency(self, from_key: str, to_key: str) -> None:
        """Record that ``from_key`` depends on ``to_key`` (both directions)."""
        with self._lock:
            self._entry(from_key).dependencies.add(to_key)
            self._entry(to_key).dependents.add(from_key)

    def get_symbol_dependencies(self, key: str) -> set[str]:
        with self._lock:
            entry = self._entries.get(key)
            return set(entry.dependencies) if entry else set()

    def get_symbol_dependents(self, key: str) -> set[str]:
        with self._lock:
            entry = self._entries.get(key)
            return set(entry.dependents) if entry else set()

    # =========================================================================
    # REMOVAL
    # =========================================================================

    def remove_symbol(self, key: str) -> bool:
        """Drop an entry and unlink it from every other entry."""
        with self._lock:
            entry = self._entries.pop(key, None)
            if entry is None:
                return False

            for dep in entry.dependencies:
                other = self._entries.get(dep)
                if other:
                    other.dependents.discard(key)
            for dependent in entry.dependents:
                other = self._entries.get(dependent)
                if other:
                    other.dependencies.discard(key)

            if entry.symbol is not None:
                keys = self._file_index.get(entry.symbol.location.file)
                if keys is not None:
                    keys.discard(key)
                    if not keys:
                        del self._file_index[entry.symbol.location.file]
            return True

    def remove_file(self, path: str) -> int:
        """Drop every symbol declared in ``path``. Returns how many were removed."""
        with self._lock:
            keys = list(self._file_index.get(path, ()))
            for key in keys:
                self.remove_symbol(key)
            self._modules.pop(path, None)
            return len(keys)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._file_index.clear()
            self._modules.clear()

    # =========================================================================
    # QUERIES
    # =========================================================================

    def get_symbols_by_file(self, path: str) -> list[Symbol]:
        with self._lock:
            keys = sorted(self._file_index.get(path, ()))
            return [self._entries[k].symbol for k in keys if self._entries[k].symbol]

    def get_symbols_by_kind(self, kind: SymbolKind) -> list[Symbol]:
        return [s for s in self._declared() if s.kind == kind]

    def find_symbols(self, pattern: str) -> list[Symbol]:
        """Case-insensitive regex search over symbol names and documentation."""
        regex = re.compile(pattern, re.IGNORECASE)
        return [
            s for s in self._declared()
            if regex.search(s.name) or (s.documentation and regex.search(s.documentation))
        ]

    def get_exported_symbols(self) -> list[Symbol]:
        return [s for s in self._declared() if s.is_exported]

    def get_most_referenced_symbols(self, limit: int = 10) -> list[tuple[Symbol, int]]:
        with self._lock:
            ranked = [
                (e.symbol, len(e.references))
                for e in self._entries.values()
                if e.symbol is not None and e.references
            ]
        ranked.sort(key=lambda item: (-item[1], item[0].key))
        return ranked[:limit]

    def get_most_dependent_symbols(self, limit: int = 10) -> list[tuple[Symbol, int]]:
        """Declared symbols with the most dependencies of their own, highest first."""
        with self._lock:
            ranked = [
                (e.symbol, len(e.dependencies))
                for e in self._entries.values()
                if e.symbol is not None and e.dependencies
            ]
        ranked.sort(key=lambda item: (-item[1], item[0].key))
        return ranked[:limit]

    def get_statistics(self) -> dict[str, Any]:
        with self._lock:
            by_kind: dict[str, int] = {}
            declared = 0
            exported = 0
            for entry in self._entries.values():
                if entry.symbol is None:
                    continue
                declared += 1
                exported += entry.symbol.is_exported
                kind = entry.symbol.kind.value
                by_kind[kind] = by_kind.get(kind, 0) + 1

            return {
                "total_entries": len(self._entries),
                "declared_symbols": declared,
                "forward_references": len(self._entries) - declared,
                "exported_symbols": exported,
                "total_references": sum(len(e.references) for e in self._entries.values()),
                "total_dependencies": sum(len(e.dependencies) for e in self._entries.values()),
                "files": len(self._file_index),
                "by_kind": by_kind,
            }

    def _declared(self) -> list[Symbol]:
        with self._lock:
            return sorted(
                (e.symbol for e in self._entries.values() if e.symbol is not None),
                key=lambda s: s.key,
            )

    # === MODULES ===

    def add_module(self, info: ModuleInfo) -> None:
        with self._lock:
            self._modules[info.path] = info

    def get_module(self, path: str) -> Optional[ModuleInfo]:
        return self._modules.get(path)

    def modules(self) -> list[ModuleInfo]:
        with self._lock:
            return [self._modules[p] for p in sorted(self._modules)]

    # =========================================================================
    # SERIALIZATION
    # =========================================================================

    def to_dict(self) -> dict[str, Any]:
        with self._lock:
            return {
                "symbols": {
                    key: {
                        "symbol": e.symbol.to_dict() if e.symbol else None,
                        "references": [r.to_dict() for r in e.references],
                        "dependencies": sorted(e.dependencies),
                        "dependents": sorted(e.dependents),
                    }
                    for key, e in sorted(self._entries.items())
                },
                "modules": {
                    path: {"symbols": m.symbols, "exports": m.exports, "imports": m.imports}
                    for path, m in sorted(self._modules.items())
                },
            }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SymbolTable:
        """Rebuild a table from ``to_dict`` output. Dependencies are re-linked in both directions."""
        table = cls()
        symbols = data.get("symbols", {})
        for key, raw in symbols.items():
            entry = table._entry(key)
            if raw.get("symbol"):
                table.add_symbol(Symbol.from_dict(raw["symbol"]))
            entry.references.extend(SymbolReference.from_dict(r) for r in raw.get("references", []))
        for key, raw in symbols.items():
            for dep in raw.get("dependencies", []):
                table.add_dependency(key, dep)
        for path, raw in data.get("modules", {}).items():
            table.add_module(ModuleInfo(
                path=path,
                symbols=list(raw.get("symbols", [])),
                exports=list(raw.get("exports", [])),
                imports=list(raw.get("imports", [])),
            ))
        return table

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

"""
Tests for the symbol table.

Run with: pytest tests/test_symbol_table.py -v
"""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from depscope.analysis.symbol_table import ModuleInfo, SymbolEntry, SymbolTable
from depscope.models import Location, Symbol, SymbolKind, SymbolReference


def make_symbol(file: str, name: str, kind=SymbolKind.FUNCTION, **kwargs) -> Symbol:
    return Symbol(name=name, kind=kind, location=Location(file, 1), **kwargs)


@pytest.fixture
def table():
    return SymbolTable()


class TestSymbols:
    def test_add_and_get(self, table):
        key = table.add_symbol(make_symbol("models.py", "User", SymbolKind.CLASS))

        assert key == "models.py:User"
        assert table.get_symbol(key).symbol.kind == SymbolKind.CLASS

    def test_readd_keeps_references_and_dependencies(self, table):
        key = table.add_symbol(make_symbol("a.py", "f"))
        table.add_reference(key, SymbolReference(Location("b.py", 3), "f()"))
        table.add_dependency(key, "c.py:g")

        table.add_symbol(make_symbol("a.py", "f", documentation="updated"))

        assert table.get_symbol(key).symbol.documentation == "updated"
        assert len(table.get_symbol_references(key)) == 1
        assert table.get_symbol_dependencies(key) == {"c.py:g"}

    def test_forward_reference(self, table):
        table.add_reference("later.py:thing", SymbolReference(Location("a.py", 1)))

        assert table.get_symbol("later.py:thing") is None
        assert len(table.get_symbol_references("later.py:thing")) == 1
        assert "later.py:thing" in table

    def test_get_symbol_returns_entry_snapshot(self, table):
        key = table.add_symbol(make_symbol("a.py", "f"))
        table.add_reference(key, SymbolReference(Location("b.py", 3), "f()"))
        table.add_dependency(key, "c.py:g")
        table.add_dependency("d.py:h", key)

        entry = table.get_symbol(key)

        assert isinstance(entry, SymbolEntry)
        assert entry.key == key
        assert entry.symbol.name == "f"
        assert entry.dependencies == {"c.py:g"}
        assert entry.dependents == {"d.py:h"}
        assert [r.context for r in entry.references] == ["f()"]

        entry.dependencies.add("x.py:y")
        entry.references.clear()
        assert table.get_symbol_dependencies(key) == {"c.py:g"}
        assert len(table.get_symbol_references(key)) == 1

    def test_update_symbol(self, table):
        key = table.add_symbol(make_symbol("a.py", "f"))
        table.add_dependency(key, "c.py:g")

        updated = table.update_symbol(key, documentation="Does f.", is_exported=True)

        assert updated.documentation == "Does f."
        assert table.get_symbol(key).symbol.is_exported
        assert table.get_symbol_dependencies(key) == {"c.py:g"}
        assert [s.name for s in table.get_exported_symbols()] == ["f"]

    def test_update_unknown_symbol(self, table):
        table.add_reference("later.py:thing", SymbolReference(Location("a.py", 1)))

        assert table.update_symbol("later.py:thing", documentation="x") is None
        assert table.update_symbol("nope", documentation="x") is None

    def test_update_symbol_rejects_unknown_field(self, table):
        key = table.add_symbol(make_symbol("a.py", "f"))

        with pytest.raises(TypeError):
            table.update_symbol(key, colour="red")

    def test_unknown_key_returns_empty(self, table):
        assert table.get_symbol("") is None
        assert table.get_symbol_references("nope") == []
        assert table.get_symbol_dependencies("nope") == set()


class TestDependencies:
    def test_bidirectional(self, table):
        table.add_dependency("a.py:f", "b.py:g")

        assert "b.py:g" in table.get_symbol_dependencies("a.py:f")
        assert "a.py:f" in table.get_symbol_dependents("b.py:g")

    def test_self_dependency_is_recorded(self, table):
        table.add_dependency("a.py:f", "a.py:f")

        assert table.get_symbol_dependencies("a.py:f") == {"a.py:f"}
        assert table.get_symbol_dependents("a.py:f") == {"a.py:f"}

    def test_returned_sets_are_copies(self, table):
        table.add_dependency("a.py:f", "b.py:g")
        table.get_symbol_dependencies("a.py:f").add("x.py:y")

        assert table.get_symbol_dependencies("a.py:f") == {"b.py:g"}

    def test_remove_symbol_unlinks_both_sides(self, table):
        table.add_symbol(make_symbol("b.py", "g"))
        table.add_dependency("a.py:f", "b.py:g")
        table.add_dependency("b.py:g", "c.py:h")

        assert table.remove_symbol("b.py:g") is True
        assert table.get_symbol_dependencies("a.py:f") == set()
        assert table.get_symbol_dependents("c.py:h") == set()
        assert table.remove_symbol("b.py:g") is False

    def test_remove_file(self, table):
        table.add_symbol(make_symbol("a.py", "f"))
        table.add_symbol(make_symbol("a.py", "g"))
        table.add_symbol(make_symbol("b.py", "h"))
        table.add_dependency("b.py:h", "a.py:f")

        assert table.remove_file("a.py") == 2
        assert table.get_symbols_by_file("a.py") == []
        assert table.get_symbol_dependencies("b.py:h") == set()


class TestQueries:
    def test_by_file_and_kind(self, table):
        table.add_symbol(make_symbol("a.py", "User", SymbolKind.CLASS))
        table.add_symbol(make_symbol("a.py", "load"))
        table.add_symbol(make_symbol("b.py", "Role", SymbolKind.CLASS))

        assert [s.name for s in table.get_symbols_by_file("a.py")] == ["User", "load"]
        assert [s.name for s in table.get_symbols_by_kind(SymbolKind.CLASS)] == ["User", "Role"]

    def test_find_symbols_searches_name_and_docs(self, table):
        table.add_symbol(make_symbol("a.py", "parse_config"))
        table.add_symbol(make_symbol("a.py", "load", documentation="Read the CONFIG file"))
        table.add_symbol(make_symbol("a.py", "save"))

        names = {s.name for s in table.find_symbols("config")}
        assert names == {"parse_config", "load"}

    def test_exported_and_most_referenced(self, table):
        key = table.add_symbol(make_symbol("a.py", "api", is_exported=True))
        other = table.add_symbol(make_symbol("a.py", "helper"))
        for line in range(3):
            table.add_reference(key, SymbolReference(Location("b.py", line)))
        table.add_reference(other, SymbolReference(Location("b.py", 9)))

        assert [s.name for s in table.get_exported_symbols()] == ["api"]
        ranked = table.get_most_referenced_symbols(limit=1)
        assert ranked[0][0].name == "api"
        assert ranked[0][1] == 3

    def test_most_dependent(self, table):
        busy = table.add_symbol(make_symbol("a.py", "busy"))
        lazy = table.add_symbol(make_symbol("a.py", "lazy"))
        table.add_symbol(make_symbol("a.py", "idle"))
        for target in ("b.py:x", "b.py:y", "b.py:z"):
            table.add_dependency(busy, target)
        table.add_dependency(lazy, "b.py:x")
        table.add_dependency("c.py:undeclared", "b.py:x")

        ranked = table.get_most_dependent_symbols()

        assert [(s.name, n) for s, n in ranked] == [("busy", 3), ("lazy", 1)]
        assert len(table.get_most_dependent_symbols(limit=1)) == 1

    def test_statistics(self, table):
        table.add_symbol(make_symbol("a.py", "A", SymbolKind.CLASS, is_exported=True))
        table.add_dependency("a.py:A", "b.py:missing")

        stats = table.get_statistics()
        assert stats["declared_symbols"] == 1
        assert stats["forward_references"] == 1
        assert stats["exported_symbols"] == 1
        assert stats["by_kind"] == {"class": 1}


class TestSerialization:
    def test_round_trip_keeps_links(self, table):
        table.add_symbol(make_symbol("a.py", "f"))
        table.add_reference("a.py:f", SymbolReference(Location("b.py", 2), "f()"))
        table.add_dependency("b.py:g", "a.py:f")
        table.add_module(ModuleInfo(path="a.py", symbols=["a.py:f"], exports=["f"]))

        restored = SymbolTable.from_dict(table.to_dict())

        assert restored.get_symbol("a.py:f").symbol.name == "f"
        assert restored.get_symbol_references("a.py:f")[0].context == "f()"
        assert restored.get_symbol_dependents("a.py:f") == {"b.py:g"}
        assert restored.get_module("a.py").exports == ["f"]

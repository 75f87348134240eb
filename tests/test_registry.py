"""
Unit tests for schema/registry.py
"""

import pytest

from api_contracts import NameConflict, Registry, RegistryFrozen
from api_contracts.schema import SchemaKind, SchemaObject


def _string(description=None):
    return SchemaObject(kind=SchemaKind.PRIMITIVE, type="string", description=description)


class TestInsert:
    """Tests for Registry.insert()"""

    def test_new_name_is_stored(self):
        registry = Registry()
        registry.insert("Name", _string())
        assert registry.lookup("Name") == _string()
        assert "Name" in registry
        assert len(registry) == 1

    def test_identical_definition_is_idempotent(self):
        registry = Registry()
        registry.insert("Name", _string("a"))
        registry.insert("Name", _string("a"))
        assert len(registry) == 1

    def test_different_definition_conflicts(self):
        registry = Registry()
        registry.insert("Name", _string("a"))
        with pytest.raises(NameConflict) as exc:
            registry.insert("Name", _string("b"))
        assert exc.value.name == "Name"
        assert registry.lookup("Name").description == "a"

    def test_insert_completes_reservation(self):
        registry = Registry()
        registry.reserve("Node")
        assert registry.is_reserved("Node")
        assert "Node" not in registry
        registry.insert("Node", _string())
        assert not registry.is_reserved("Node")
        assert "Node" in registry


class TestFreeze:
    """Tests for Registry.freeze()"""

    def test_insert_after_freeze_fails(self):
        registry = Registry()
        registry.freeze()
        assert registry.frozen
        with pytest.raises(RegistryFrozen):
            registry.insert("Late", _string())

    def test_reserve_after_freeze_fails(self):
        registry = Registry()
        registry.freeze()
        with pytest.raises(RegistryFrozen):
            registry.reserve("Late")

    def test_pending_reservation_blocks_freeze(self):
        registry = Registry()
        registry.reserve("Half")
        with pytest.raises(RuntimeError) as exc:
            registry.freeze()
        assert "Half" in str(exc.value)

    def test_released_reservation_allows_freeze(self):
        registry = Registry()
        registry.reserve("Half")
        registry.release("Half")
        registry.freeze()
        assert registry.frozen

    def test_names_are_sorted_once_frozen(self):
        registry = Registry()
        registry.insert("Zebra", _string())
        registry.insert("Apple", _string())
        registry.freeze()
        assert registry.names() == ["Apple", "Zebra"]
        assert list(registry.to_dict()) == ["Apple", "Zebra"]

    def test_snapshot_is_read_only(self):
        registry = Registry()
        registry.insert("Name", _string())
        snapshot = registry.snapshot()
        with pytest.raises(TypeError):
            snapshot["Other"] = _string()

"""
Unit tests for schema/decode.py
"""

from datetime import date
from typing import Any, Dict, List, Literal, Optional, Set, Tuple
from uuid import UUID

import pytest
from pydantic import BaseModel, ConfigDict

from api_contracts.schema import DecodeError, decode

from sample_api import Cat, Dog, Node, Owner, Role, User


class Strict(BaseModel):
    model_config = ConfigDict(extra="forbid")
    a: int


class Open(BaseModel):
    model_config = ConfigDict(extra="allow")
    a: int


class TestJsonValues:
    """Tests for decode() with JSON input"""

    def test_scalars(self):
        assert decode(int, 5) == 5
        assert decode(float, 5) == 5.0
        assert decode(str, "x") == "x"
        assert decode(bool, True) is True

    def test_integral_float_is_int(self):
        assert decode(int, 3.0) == 3

    def test_string_is_not_a_number(self):
        with pytest.raises(DecodeError) as exc:
            decode(int, "5")
        assert "expected int" in str(exc.value)

    def test_bool_is_not_an_int(self):
        with pytest.raises(DecodeError):
            decode(int, True)

    def test_string_is_not_a_bool(self):
        with pytest.raises(DecodeError):
            decode(bool, "true")

    def test_null_rejected_unless_optional(self):
        assert decode(Optional[int], None) is None
        with pytest.raises(DecodeError):
            decode(int, None)

    def test_formatted_strings(self):
        assert decode(date, "2024-02-29") == date(2024, 2, 29)
        assert decode(UUID, "12345678-1234-5678-1234-567812345678") == UUID("12345678-1234-5678-1234-567812345678")

    def test_enum(self):
        assert decode(Role, "admin") is Role.ADMIN
        with pytest.raises(DecodeError):
            decode(Role, "root")

    def test_literal(self):
        assert decode(Literal["asc", "desc"], "asc") == "asc"
        with pytest.raises(DecodeError):
            decode(Literal["asc", "desc"], "up")

    def test_any_passes_through(self):
        assert decode(Any, {"x": [1]}) == {"x": [1]}

    def test_containers(self):
        assert decode(List[int], [1, 2]) == [1, 2]
        assert decode(Set[int], [1, 1, 2]) == {1, 2}
        assert decode(Tuple[int, str], [1, "a"]) == (1, "a")
        assert decode(Dict[str, int], {"a": 1}) == {"a": 1}

    def test_fixed_tuple_length(self):
        with pytest.raises(DecodeError):
            decode(Tuple[int, str], [1])

    def test_error_path_points_at_item(self):
        with pytest.raises(DecodeError) as exc:
            decode(List[int], [1, "two"])
        assert exc.value.path == "[1]"


class TestModels:
    """Tests for decode() of pydantic models"""

    def test_model_with_defaults(self):
        user = decode(User, {"id": 1, "name": "alice"})
        assert isinstance(user, User)
        assert user.role is Role.MEMBER
        assert user.tags == []

    def test_constraints_are_not_enforced(self):
        user = decode(User, {"id": 1, "name": "X"})
        assert user.name == "X"

    def test_missing_required_field(self):
        with pytest.raises(DecodeError) as exc:
            decode(User, {"id": 1})
        assert exc.value.path == "name"
        assert exc.value.detail == "field required"

    def test_nested_error_path(self):
        with pytest.raises(DecodeError) as exc:
            decode(User, {"id": 1, "name": "bob", "address": {"street": 5, "zip": "12345"}})
        assert exc.value.path == "address.street"

    def test_recursive_model(self):
        node = decode(Node, {"value": 1, "children": [{"value": 2}]})
        assert node.children[0].value == 2
        assert node.children[0].children == []

    def test_union_picks_matching_variant(self):
        owner = decode(Owner, {"name": "ann", "pet": {"pet_type": "dog"}})
        assert isinstance(owner.pet, Dog)
        owner = decode(Owner, {"name": "ann", "pet": {"pet_type": "cat", "lives": 3}})
        assert isinstance(owner.pet, Cat)
        assert owner.pet.lives == 3

    def test_union_without_match(self):
        with pytest.raises(DecodeError) as exc:
            decode(Owner, {"name": "ann", "pet": {"pet_type": "fish"}})
        assert "none of the allowed variants" in str(exc.value)

    def test_extra_forbid(self):
        with pytest.raises(DecodeError) as exc:
            decode(Strict, {"a": 1, "b": 2})
        assert exc.value.path == "b"

    def test_extra_ignored_by_default(self):
        user = decode(User, {"id": 1, "name": "bob", "unknown": True})
        assert not hasattr(user, "unknown")

    def test_extra_allow_keeps_fields(self):
        value = decode(Open, {"a": 1, "b": 2})
        assert value.a == 1
        assert value.model_extra == {"b": 2}


class TestTextValues:
    """Tests for decode() with from_text=True"""

    def test_scalars_are_coerced(self):
        assert decode(int, "42", from_text=True) == 42
        assert decode(bool, "yes", from_text=True) is True
        assert decode(float, "1.5", from_text=True) == 1.5

    def test_list_items_are_coerced(self):
        assert decode(List[int], ["1", "2"], from_text=True) == [1, 2]

    def test_bad_text(self):
        with pytest.raises(DecodeError) as exc:
            decode(int, "abc", from_text=True)
        assert "Expected int" in str(exc.value)

    def test_literal_from_text(self):
        assert decode(Literal[1, 2], "2", from_text=True) == 2

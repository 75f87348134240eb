"""
Validation Engine - evaluates constraint sets against decoded values.

Checks run on a fully decoded value (after type coercion) and are never
fail-fast: every violated rule of every field is collected, each tagged with
a dot/bracket field path ("address.zip", "tags[2]"), and reported together.

The constraints are the same ones the schema engine publishes in the
document, read from the same Annotated metadata, so the document and the
runtime checks cannot drift apart.
"""

import re
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from functools import lru_cache
from typing import Any, Iterable, List, Literal, Mapping, Optional, Tuple, get_args, get_origin

from pydantic import BaseModel, TypeAdapter, ValidationError

from .errors import ExtractionError, ExtractionKind
from .schema.engine import (
    UNION_TYPES, constraints_from_metadata, is_mapping, is_model, is_root_model,
    is_sequence, model_property_name, split_optional, unwrap_annotated,
)
from .schema.objects import Constraints


@dataclass(frozen=True)
class Violation:
    """One failed rule at one field path."""
    path: str
    rule: str
    message: str
    limit: Any = None

    def to_dict(self):
        out = {"path": self.path, "rule": self.rule, "message": self.message}
        if self.limit is not None:
            out["limit"] = self.limit
        return out


def child_path(prefix: str, name: Any) -> str:
    return f"{prefix}.{name}" if prefix else str(name)


def index_path(prefix: str, index: int) -> str:
    return f"{prefix}[{index}]"


@lru_cache(maxsize=256)
def _compile(pattern: str):
    return re.compile(pattern)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def _is_multiple(value: Any, multiple_of: Any) -> bool:
    if isinstance(value, Decimal):
        return value % Decimal(str(multiple_of)) == 0
    quotient = value / multiple_of
    return abs(quotient - round(quotient)) < 1e-9


def _has_duplicates(items: List[Any]) -> bool:
    try:
        return len(set(items)) != len(items)
    except TypeError:
        # Unhashable items (dicts, mutable models)
        seen: List[Any] = []
        for item in items:
            if item in seen:
                return True
            seen.append(item)
        return False


def check_constraints(value: Any, constraints: Optional[Constraints], path: str = "") -> List[Violation]:
    """Evaluate one constraint set against one value, collecting every violation."""
    if constraints is None or value is None:
        return []
    c = constraints
    violations: List[Violation] = []

    def fail(rule: str, message: str, limit: Any) -> None:
        violations.append(Violation(path=path, rule=rule, message=message, limit=limit))

    if c.enum is not None:
        raw = value.value if isinstance(value, Enum) else value
        if raw not in c.enum:
            fail("enum", f"must be one of {list(c.enum)}", list(c.enum))

    if _is_number(value):
        if c.minimum is not None and value < c.minimum:
            fail("minimum", f"must be >= {c.minimum}", c.minimum)
        if c.exclusive_minimum is not None and value <= c.exclusive_minimum:
            fail("exclusive_minimum", f"must be > {c.exclusive_minimum}", c.exclusive_minimum)
        if c.maximum is not None and value > c.maximum:
            fail("maximum", f"must be <= {c.maximum}", c.maximum)
        if c.exclusive_maximum is not None and value >= c.exclusive_maximum:
            fail("exclusive_maximum", f"must be < {c.exclusive_maximum}", c.exclusive_maximum)
        if c.multiple_of is not None and not _is_multiple(value, c.multiple_of):
            fail("multiple_of", f"must be a multiple of {c.multiple_of}", c.multiple_of)

    elif isinstance(value, (str, bytes)):
        if c.min_length is not None and len(value) < c.min_length:
            fail("min_length", f"length must be >= {c.min_length}", c.min_length)
        if c.max_length is not None and len(value) > c.max_length:
            fail("max_length", f"length must be <= {c.max_length}", c.max_length)
        if c.pattern is not None and isinstance(value, str) and not _compile(c.pattern).search(value):
            fail("pattern", f"must match pattern {c.pattern!r}", c.pattern)

    elif isinstance(value, (list, tuple, set, frozenset)):
        c = c.for_collection()
        if c.min_items is not None and len(value) < c.min_items:
            fail("min_items", f"must contain >= {c.min_items} item(s)", c.min_items)
        if c.max_items is not None and len(value) > c.max_items:
            fail("max_items", f"must contain <= {c.max_items} item(s)", c.max_items)
        if c.unique_items and not isinstance(value, (set, frozenset)) and _has_duplicates(list(value)):
            fail("unique_items", "items must be unique", True)

    elif isinstance(value, Mapping):
        if c.min_length is not None and len(value) < c.min_length:
            fail("min_length", f"must contain >= {c.min_length} entries", c.min_length)
        if c.max_length is not None and len(value) > c.max_length:
            fail("max_length", f"must contain <= {c.max_length} entries", c.max_length)

    return violations


def _union_member(members: Iterable[Any], value: Any) -> Optional[Any]:
    for member in members:
        bare, _ = unwrap_annotated(member)
        target = get_origin(bare) or bare
        if isinstance(target, type) and isinstance(value, target):
            return member
    return None


def validate_value(tp: Any, value: Any, path: str = "", metadata: Tuple[Any, ...] = ()) -> List[Violation]:
    """Walk value alongside its annotation and collect all violations."""
    tp, inner = unwrap_annotated(tp)
    metadata = tuple(metadata) + inner
    if value is None:
        return []

    if get_origin(tp) in UNION_TYPES:
        inner_tp, optional = split_optional(tp)
        if optional:
            return validate_value(inner_tp, value, path, metadata)
        violations = check_constraints(value, constraints_from_metadata(metadata), path)
        member = _union_member(get_args(tp), value)
        if member is not None:
            violations.extend(validate_value(member, value, path))
        return violations

    violations = check_constraints(value, constraints_from_metadata(metadata), path)

    if is_sequence(tp) and isinstance(value, (list, tuple, set, frozenset)):
        args = get_args(tp)
        fixed = (get_origin(tp) is tuple and args and not (len(args) == 2 and args[1] is Ellipsis))
        for index, item in enumerate(value):
            if fixed:
                if index >= len(args):
                    break
                item_tp = args[index]
            elif args:
                item_tp = args[0]
            else:
                continue
            violations.extend(validate_value(item_tp, item, index_path(path, index)))

    elif is_mapping(tp) and isinstance(value, Mapping):
        args = get_args(tp)
        if len(args) == 2:
            for key, item in value.items():
                violations.extend(validate_value(args[1], item, child_path(path, key)))

    elif is_root_model(tp) and isinstance(value, BaseModel):
        field = type(value).model_fields["root"]
        violations.extend(validate_value(field.annotation, value.root, path, tuple(field.metadata)))

    elif is_model(tp) and isinstance(value, BaseModel):
        for name, field in type(value).model_fields.items():
            violations.extend(validate_value(
                field.annotation,
                getattr(value, name, None),
                child_path(path, model_property_name(name, field)),
                tuple(field.metadata),
            ))

    return violations


def contains_model(tp: Any) -> bool:
    """True if tp is, or is built from, a pydantic model."""
    tp, _ = unwrap_annotated(tp)
    if is_model(tp):
        return True
    if get_origin(tp) is Literal:
        return False
    return any(contains_model(arg) for arg in get_args(tp) if arg is not Ellipsis)


@lru_cache(maxsize=256)
def _cached_adapter(tp: Any) -> TypeAdapter:
    return TypeAdapter(tp)


def _adapter(tp: Any) -> TypeAdapter:
    try:
        return _cached_adapter(tp)
    except TypeError:
        # Annotated metadata that cannot be hashed
        return TypeAdapter(tp)


def _loc_path(loc: Iterable[Any]) -> str:
    path = ""
    for part in loc:
        path = index_path(path, part) if isinstance(part, int) else child_path(path, part)
    return path


def run_validators(tp: Any, value: Any) -> Tuple[Any, List[Violation]]:
    """
    Run the field and model validators declared on the models inside tp.

    Decoded models are assembled without pydantic validation, so this pass
    re-validates their plain data through a TypeAdapter. Returns the
    validated value and the violations pydantic reported (all of them).
    Types without models are returned unchanged.
    """
    if value is None or not contains_model(tp):
        return value, []
    adapter = _adapter(tp)
    try:
        return adapter.validate_python(adapter.dump_python(value, by_alias=True)), []
    except ValidationError as e:
        return value, [
            Violation(path=_loc_path(error["loc"]), rule=error["type"], message=error["msg"])
            for error in e.errors()
        ]


def ensure_valid(tp: Any, value: Any, *, location: str, name: str, metadata: Tuple[Any, ...] = ()) -> Any:
    """
    Check value and return it as the handler should see it.

    Constraints are checked first; when they all hold, the pydantic
    validators of any models inside tp run and may normalize the value.

    Raises:
        ExtractionError: One ValidationFailed listing every violation
    """
    violations = validate_value(tp, value, "", metadata)
    if not violations:
        value, violations = run_validators(tp, value)
    if violations:
        raise ExtractionError(
            location, name, ExtractionKind.VALIDATION_FAILED, violations=violations,
        )
    return value

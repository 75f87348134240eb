"""
TypeSchema Engine - turns typing annotations into schema references.

Named descriptors (pydantic models, root models, Enum subclasses) become
registered components and are returned as references. Everything else
(primitives, containers, Literal, unions) is described inline.

Supported annotations:
- bool, int, float, str, bytes, Decimal, date, datetime, time, UUID
- Optional[X] / X | None        -> X marked nullable
- List/Set/FrozenSet/Tuple[X, ...] -> array (sets imply uniqueItems)
- Dict[str, X] / Mapping        -> object with additionalProperties
- Literal[...]                  -> closed enumeration
- Enum subclasses               -> named closed enumeration
- Union[A, B]                   -> oneOf (with a discriminator mapping when
                                   declared via Field(discriminator=...))
- BaseModel / RootModel         -> named object / named alias
- Annotated[X, ...]             -> X with constraint metadata applied
"""

import logging
import re
import types
from collections import abc
from dataclasses import dataclass, replace
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import (
    Annotated, Any, Dict, Iterable, Iterator, List, Literal, Optional, Sequence,
    Set, Tuple, Union, get_args, get_origin,
)
from uuid import UUID

import annotated_types
from pydantic import BaseModel, RootModel
from pydantic.fields import FieldInfo
from pydantic_core import PydanticSerializationError, to_jsonable_python

from ..errors import UnsupportedType
from .objects import (
    ANY_SCHEMA, UNSET, Constraints, Discriminator, Property, SchemaKind,
    SchemaObject, SchemaRef,
)
from .registry import Registry

logger = logging.getLogger('api.contracts.schema')

NoneType = type(None)
UNION_TYPES = (Union, types.UnionType)

SEQUENCE_TYPES = (
    list, set, frozenset, tuple,
    abc.Sequence, abc.MutableSequence, abc.Set, abc.MutableSet, abc.Collection,
)
SET_TYPES = (set, frozenset, abc.Set, abc.MutableSet)
MAPPING_TYPES = (dict, abc.Mapping, abc.MutableMapping)


@dataclass(frozen=True)
class UploadedFile:
    """One file part of a multipart request."""
    filename: Optional[str]
    content_type: Optional[str]
    data: bytes


# Order matters: bool before int, datetime before date
PRIMITIVE_TYPES = (
    (bool, "boolean", None),
    (int, "integer", "int64"),
    (float, "number", "double"),
    (Decimal, "string", "decimal"),
    (str, "string", None),
    (bytes, "string", "binary"),
    (UploadedFile, "string", "binary"),
    (datetime, "string", "date-time"),
    (date, "string", "date"),
    (time, "string", "time"),
    (UUID, "string", "uuid"),
)


@dataclass(frozen=True)
class DiscriminatorHint:
    property_name: str


# =============================================================================
# Annotation helpers (shared with decode / validation)
# =============================================================================

def unwrap_annotated(tp: Any) -> Tuple[Any, Tuple[Any, ...]]:
    """Strip Annotated layers, returning (bare type, collected metadata)."""
    metadata: Tuple[Any, ...] = ()
    while get_origin(tp) is Annotated:
        metadata = tuple(tp.__metadata__) + metadata
        tp = tp.__origin__
    return tp, metadata


def split_optional(tp: Any) -> Tuple[Any, bool]:
    """Optional[X] -> (X, True). Multi-member unions keep their other members."""
    if get_origin(tp) not in UNION_TYPES:
        return tp, False
    args = get_args(tp)
    members = tuple(a for a in args if a is not NoneType)
    if len(members) == len(args):
        return tp, False
    if len(members) == 1:
        return members[0], True
    return Union[members], True


def is_model(tp: Any) -> bool:
    return isinstance(tp, type) and issubclass(tp, BaseModel)


def is_root_model(tp: Any) -> bool:
    return isinstance(tp, type) and issubclass(tp, RootModel)


def is_enum(tp: Any) -> bool:
    return isinstance(tp, type) and issubclass(tp, Enum)


def is_sequence(tp: Any) -> bool:
    return tp in SEQUENCE_TYPES or get_origin(tp) in SEQUENCE_TYPES


def is_mapping(tp: Any) -> bool:
    return tp in MAPPING_TYPES or get_origin(tp) in MAPPING_TYPES


def shape_of(tp: Any) -> str:
    """'array', 'object' or 'scalar': how a parameter value is laid out on the wire."""
    tp, _ = unwrap_annotated(tp)
    tp, _ = split_optional(tp)
    tp, _ = unwrap_annotated(tp)
    if is_sequence(tp):
        return "array"
    if is_mapping(tp) or (is_model(tp) and not is_root_model(tp)):
        return "object"
    if is_root_model(tp):
        return shape_of(tp.model_fields["root"].annotation)
    return "scalar"


def model_property_name(name: str, field: FieldInfo) -> str:
    return field.alias or name


def schema_name(cls: type) -> str:
    """
    Component name for a named type.

    A class may pin its name with a __schema_name__ attribute. Parametrized
    generic models ("Page[User]") are sanitized to "Page_User_".
    """
    name = vars(cls).get("__schema_name__") or cls.__name__
    return re.sub(r"[^A-Za-z0-9._-]", "_", name)


def literal_values(tp: Any) -> Tuple[Any, ...]:
    tp, _ = unwrap_annotated(tp)
    if get_origin(tp) is not Literal:
        return ()
    return tuple(v.value if isinstance(v, Enum) else v for v in get_args(tp))


def _flatten(metadata: Iterable[Any]) -> Iterator[Any]:
    for item in metadata:
        if isinstance(item, FieldInfo):
            yield from _flatten(item.metadata)
        elif isinstance(item, annotated_types.GroupedMetadata):
            yield from _flatten(item)
        else:
            yield item


def constraints_from_metadata(metadata: Iterable[Any]) -> Optional[Constraints]:
    """Translate Annotated metadata into one Constraints set (None if empty)."""
    values: Dict[str, Any] = {}
    for item in _flatten(metadata):
        if isinstance(item, Constraints):
            values.update(item.values())
        elif isinstance(item, annotated_types.Gt):
            values["exclusive_minimum"] = item.gt
        elif isinstance(item, annotated_types.Ge):
            values["minimum"] = item.ge
        elif isinstance(item, annotated_types.Lt):
            values["exclusive_maximum"] = item.lt
        elif isinstance(item, annotated_types.Le):
            values["maximum"] = item.le
        elif isinstance(item, annotated_types.MultipleOf):
            values["multiple_of"] = item.multiple_of
        elif isinstance(item, annotated_types.MinLen):
            values["min_length"] = item.min_length
        elif isinstance(item, annotated_types.MaxLen):
            values["max_length"] = item.max_length
        else:
            # pydantic keeps Field(pattern=...) in a general metadata holder
            pattern = getattr(item, "pattern", None)
            if pattern is not None:
                values["pattern"] = getattr(pattern, "pattern", pattern)
    if "enum" in values and values["enum"] is not None:
        values["enum"] = tuple(values["enum"])
    return Constraints(**values) if values else None


def discriminator_from_metadata(metadata: Iterable[Any]) -> Optional[str]:
    for item in metadata:
        if isinstance(item, DiscriminatorHint):
            return item.property_name
        value = getattr(item, "discriminator", None)
        if isinstance(value, str):
            return value
        nested = getattr(value, "discriminator", None)
        if isinstance(nested, str):
            return nested
    return None


def _json_type(values: Sequence[Any]) -> Optional[str]:
    if values and all(isinstance(v, bool) for v in values):
        return "boolean"
    if values and all(isinstance(v, int) and not isinstance(v, bool) for v in values):
        return "integer"
    if values and all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in values):
        return "number"
    if values and all(isinstance(v, str) for v in values):
        return "string"
    return None


def _jsonable(value: Any) -> Any:
    try:
        return to_jsonable_python(value)
    except PydanticSerializationError:
        return UNSET


def _field_default(field: FieldInfo) -> Any:
    if field.is_required() or field.default_factory is not None:
        return UNSET
    return _jsonable(field.default)


def dedupe_refs(refs: Iterable[SchemaRef]) -> Tuple[SchemaRef, ...]:
    out: List[SchemaRef] = []
    for ref in refs:
        if ref not in out:
            out.append(ref)
    return tuple(out)


# =============================================================================
# Engine
# =============================================================================

class SchemaEngine:
    """
    Describes types against one Registry.

    The engine is a build-phase object: create one per service build, call
    register() for every type the operations mention, then freeze the
    registry.
    """

    def __init__(self, registry: Optional[Registry] = None):
        self.registry = registry if registry is not None else Registry()
        self._types: Dict[str, type] = {}
        self._building: Set[type] = set()

    def register(self, tp: Any) -> SchemaRef:
        """Describe tp, registering every named type it reaches."""
        return self._describe(tp, ())

    def field_schema(self, name: str, field: FieldInfo) -> SchemaRef:
        """Schema of one pydantic field, including its metadata and docs."""
        metadata = list(field.metadata)
        if field.discriminator is not None:
            hint = field.discriminator
            hint = getattr(hint, "discriminator", hint)
            if isinstance(hint, str):
                metadata.append(DiscriminatorHint(hint))
        ref = self._describe(field.annotation, tuple(metadata))
        examples = field.examples or ()
        return ref.annotate(
            title=field.title,
            description=field.description,
            default=_field_default(field),
            example=_jsonable(examples[0]) if examples else UNSET,
            deprecated=bool(getattr(field, "deprecated", None)),
        )

    # -- dispatch -----------------------------------------------------------------

    def _describe(self, tp: Any, metadata: Tuple[Any, ...]) -> SchemaRef:
        tp, inner = unwrap_annotated(tp)
        metadata = tuple(metadata) + inner
        constraints = constraints_from_metadata(metadata)
        origin = get_origin(tp)

        if origin in UNION_TYPES:
            inner_tp, optional = split_optional(tp)
            if optional:
                return self._describe(inner_tp, metadata).nullable()
            return self._union(get_args(tp), discriminator_from_metadata(metadata), constraints)

        if tp is Any or tp is object:
            ref = ANY_SCHEMA
        elif origin is Literal:
            ref = self._literal(tp)
        elif is_sequence(tp):
            ref = self._array(tp)
        elif is_mapping(tp):
            ref = self._mapping(tp)
        elif is_model(tp) or is_enum(tp):
            ref = self._named(tp)
        else:
            ref = self._primitive(tp)
        return self._constrain(ref, constraints)

    def _constrain(self, ref: SchemaRef, constraints: Optional[Constraints]) -> SchemaRef:
        if constraints is None or constraints.is_empty():
            return ref
        if ref.inline is not None:
            if ref.inline.kind == SchemaKind.ARRAY:
                constraints = constraints.for_collection()
            merged = (ref.inline.constraints or Constraints()).merge(constraints)
            return SchemaRef.of(replace(ref.inline, constraints=merged))
        return SchemaRef.of(SchemaObject(
            kind=SchemaKind.ALL_OF, variants=(ref,), constraints=constraints,
        ))

    # -- anonymous shapes ---------------------------------------------------------

    def _primitive(self, tp: Any) -> SchemaRef:
        if isinstance(tp, type):
            for base, json_type, fmt in PRIMITIVE_TYPES:
                if issubclass(tp, base):
                    return SchemaRef.of(SchemaObject(
                        kind=SchemaKind.PRIMITIVE, type=json_type, format=fmt,
                    ))
        raise UnsupportedType(tp)

    def _literal(self, tp: Any) -> SchemaRef:
        values = literal_values(tp)
        return SchemaRef.of(SchemaObject(
            kind=SchemaKind.PRIMITIVE,
            type=_json_type(values),
            constraints=Constraints(enum=values),
        ))

    def _array(self, tp: Any) -> SchemaRef:
        origin = get_origin(tp) or tp
        args = get_args(tp)
        constraints = None

        if origin is tuple and args and not (len(args) == 2 and args[1] is Ellipsis):
            # Fixed-length tuple
            refs = dedupe_refs(self._describe(a, ()) for a in args)
            if len(refs) == 1:
                items = refs[0]
            else:
                items = SchemaRef.of(SchemaObject(kind=SchemaKind.ONE_OF, variants=refs))
            constraints = Constraints(min_items=len(args), max_items=len(args))
        elif args:
            items = self._describe(args[0], ())
        else:
            items = ANY_SCHEMA

        if origin in SET_TYPES:
            constraints = (constraints or Constraints()).merge(Constraints(unique_items=True))
        return SchemaRef.of(SchemaObject(
            kind=SchemaKind.ARRAY, type="array", items=items, constraints=constraints,
        ))

    def _mapping(self, tp: Any) -> SchemaRef:
        args = get_args(tp)
        values = self._describe(args[1], ()) if len(args) == 2 else ANY_SCHEMA
        return SchemaRef.of(SchemaObject(
            kind=SchemaKind.OBJECT, type="object", additional_properties=values,
        ))

    def _union(
        self,
        members: Sequence[Any],
        discriminator: Optional[str],
        constraints: Optional[Constraints],
    ) -> SchemaRef:
        refs = dedupe_refs(self._describe(m, ()) for m in members)
        disc = None
        if discriminator is not None:
            mapping: List[Tuple[str, str]] = []
            for member in members:
                model, _ = unwrap_annotated(member)
                if not is_model(model):
                    raise UnsupportedType(member)
                for field_name, field in model.model_fields.items():
                    if discriminator in (field_name, field.alias):
                        for value in literal_values(field.annotation):
                            mapping.append((str(value), schema_name(model)))
            disc = Discriminator(discriminator, tuple(mapping))
        ref = SchemaRef.of(SchemaObject(kind=SchemaKind.ONE_OF, variants=refs, discriminator=disc))
        return self._constrain(ref, constraints)

    # -- named components ---------------------------------------------------------

    def _named(self, cls: type) -> SchemaRef:
        name = schema_name(cls)
        if cls in self._building or self._types.get(name) is cls:
            return SchemaRef.to(name)

        first = name not in self.registry and not self.registry.is_reserved(name)
        if first:
            self.registry.reserve(name)
        self._building.add(cls)
        try:
            definition = self._define(cls)
        except Exception:
            if first:
                self.registry.release(name)
            raise
        finally:
            self._building.discard(cls)

        self.registry.insert(name, definition)
        self._types.setdefault(name, cls)
        return SchemaRef.to(name)

    def _define(self, cls: type) -> SchemaObject:
        doc = cls.__doc__
        description = " ".join(doc.split()) if doc else None

        if is_enum(cls):
            values = tuple(member.value for member in cls)
            return SchemaObject(
                kind=SchemaKind.PRIMITIVE,
                type=_json_type(values),
                constraints=Constraints(enum=values),
                description=description,
            )

        if not cls.__pydantic_complete__:
            # Resolves forward references left over from class creation
            cls.model_rebuild()

        if is_root_model(cls):
            ref = self.field_schema("root", cls.model_fields["root"])
            if ref.inline is not None:
                return replace(ref.inline, description=description or ref.inline.description)
            return SchemaObject(kind=SchemaKind.ALL_OF, variants=(ref,), description=description)

        properties = []
        for field_name, field in cls.model_fields.items():
            properties.append(Property(
                name=model_property_name(field_name, field),
                schema=self.field_schema(field_name, field),
                required=field.is_required(),
            ))
        extra = cls.model_config.get("extra")
        return SchemaObject(
            kind=SchemaKind.OBJECT,
            type="object",
            properties=tuple(properties),
            additional_properties=ANY_SCHEMA if extra == "allow" else None,
            description=description,
        )

"""
Schema data model.

SchemaObject is the normalized description of one data shape. SchemaRef
points at a shape either inline (anonymous / primitive) or by name (a
registered component). Both are frozen value objects: two definitions are
"structurally identical" exactly when they compare equal.
"""

from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import Any, Dict, Optional, Tuple

REF_PREFIX = "#/components/schemas/"

_FLAGS = ("nullable", "deprecated", "read_only", "write_only")


class _Unset:
    """Marker for 'no default / no example' (None is a legitimate default)."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self):
        return "UNSET"

    def __bool__(self):
        return False


UNSET = _Unset()


class SchemaKind(Enum):
    PRIMITIVE = "primitive"
    OBJECT = "object"
    ARRAY = "array"
    ONE_OF = "oneOf"
    ALL_OF = "allOf"
    ANY = "any"


@dataclass(frozen=True)
class Constraints:
    """
    Per-value constraint set.

    Usable directly as typing metadata:

        name: Annotated[str, Constraints(min_length=3, pattern=r"^[a-z]+$")]
        tags: Annotated[List[str], Constraints(max_items=5, unique_items=True)]

    annotated_types markers (Ge, Le, MinLen, ...) and pydantic Field()
    arguments are translated into the same set by the schema engine.
    """
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    exclusive_minimum: Optional[float] = None
    exclusive_maximum: Optional[float] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    pattern: Optional[str] = None
    min_items: Optional[int] = None
    max_items: Optional[int] = None
    unique_items: Optional[bool] = None
    multiple_of: Optional[float] = None
    enum: Optional[Tuple[Any, ...]] = None

    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))

    def values(self) -> Dict[str, Any]:
        """Non-empty constraint values keyed by field name."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }

    def merge(self, other: Optional["Constraints"]) -> "Constraints":
        """Overlay other's set values on top of this set."""
        if other is None:
            return self
        return replace(self, **other.values())

    def for_collection(self) -> "Constraints":
        """Length bounds on a sequence mean item-count bounds."""
        if self.min_length is None and self.max_length is None:
            return self
        return replace(
            self,
            min_items=self.min_items if self.min_items is not None else self.min_length,
            max_items=self.max_items if self.max_items is not None else self.max_length,
            min_length=None,
            max_length=None,
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        # OpenAPI 3.0 expresses exclusive bounds as a boolean beside the bound
        if self.exclusive_minimum is not None:
            out["minimum"] = self.exclusive_minimum
            out["exclusiveMinimum"] = True
        elif self.minimum is not None:
            out["minimum"] = self.minimum
        if self.exclusive_maximum is not None:
            out["maximum"] = self.exclusive_maximum
            out["exclusiveMaximum"] = True
        elif self.maximum is not None:
            out["maximum"] = self.maximum
        if self.multiple_of is not None:
            out["multipleOf"] = self.multiple_of
        if self.min_length is not None:
            out["minLength"] = self.min_length
        if self.max_length is not None:
            out["maxLength"] = self.max_length
        if self.pattern is not None:
            out["pattern"] = self.pattern
        if self.min_items is not None:
            out["minItems"] = self.min_items
        if self.max_items is not None:
            out["maxItems"] = self.max_items
        if self.unique_items:
            out["uniqueItems"] = True
        if self.enum is not None:
            out["enum"] = list(self.enum)
        return out


@dataclass(frozen=True)
class Discriminator:
    property_name: str
    mapping: Tuple[Tuple[str, str], ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"propertyName": self.property_name}
        if self.mapping:
            out["mapping"] = {value: REF_PREFIX + name for value, name in self.mapping}
        return out


@dataclass(frozen=True)
class Property:
    name: str
    schema: "SchemaRef"
    required: bool = False


@dataclass(frozen=True)
class SchemaObject:
    kind: SchemaKind
    type: Optional[str] = None
    format: Optional[str] = None
    properties: Tuple[Property, ...] = ()
    items: Optional["SchemaRef"] = None
    additional_properties: Optional["SchemaRef"] = None
    variants: Tuple["SchemaRef", ...] = ()
    discriminator: Optional[Discriminator] = None
    nullable: bool = False
    constraints: Optional[Constraints] = None
    title: Optional[str] = None
    description: Optional[str] = None
    default: Any = UNSET
    example: Any = UNSET
    deprecated: bool = False
    read_only: bool = False
    write_only: bool = False

    def __post_init__(self):
        names = [p.name for p in self.properties]
        if len(names) != len(set(names)):
            raise ValueError(f"Duplicate property names in object schema: {names}")

    @property
    def required(self) -> Tuple[str, ...]:
        return tuple(p.name for p in self.properties if p.required)

    def property(self, name: str) -> Optional[Property]:
        for prop in self.properties:
            if prop.name == name:
                return prop
        return None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        if self.title:
            out["title"] = self.title
        if self.type:
            out["type"] = self.type
        if self.format:
            out["format"] = self.format
        if self.description:
            out["description"] = self.description

        if self.kind == SchemaKind.OBJECT:
            if self.properties:
                out["properties"] = {p.name: p.schema.to_dict() for p in self.properties}
            if self.required:
                out["required"] = list(self.required)
            if self.additional_properties is not None:
                out["additionalProperties"] = self.additional_properties.to_dict()
        elif self.kind == SchemaKind.ARRAY:
            out["items"] = self.items.to_dict() if self.items is not None else {}
        elif self.kind == SchemaKind.ONE_OF:
            out["oneOf"] = [v.to_dict() for v in self.variants]
            if self.discriminator is not None:
                out["discriminator"] = self.discriminator.to_dict()
        elif self.kind == SchemaKind.ALL_OF:
            out["allOf"] = [v.to_dict() for v in self.variants]

        if self.constraints is not None:
            out.update(self.constraints.to_dict())
        if self.nullable:
            out["nullable"] = True
        if self.default is not UNSET:
            out["default"] = self.default
        if self.example is not UNSET:
            out["example"] = self.example
        if self.deprecated:
            out["deprecated"] = True
        if self.read_only:
            out["readOnly"] = True
        if self.write_only:
            out["writeOnly"] = True
        return out


@dataclass(frozen=True)
class SchemaRef:
    """Either a named component reference or an inline schema."""
    name: Optional[str] = None
    inline: Optional[SchemaObject] = None

    def __post_init__(self):
        if (self.name is None) == (self.inline is None):
            raise ValueError("SchemaRef needs exactly one of name or inline")

    @classmethod
    def to(cls, name: str) -> "SchemaRef":
        return cls(name=name)

    @classmethod
    def of(cls, schema: SchemaObject) -> "SchemaRef":
        return cls(inline=schema)

    @property
    def is_reference(self) -> bool:
        return self.name is not None

    @property
    def ref(self) -> Optional[str]:
        return REF_PREFIX + self.name if self.name is not None else None

    def nullable(self) -> "SchemaRef":
        """Same shape, additionally accepting null."""
        if self.inline is not None:
            return SchemaRef.of(replace(self.inline, nullable=True))
        return SchemaRef.of(SchemaObject(kind=SchemaKind.ALL_OF, variants=(self,), nullable=True))

    def annotate(self, **metadata: Any) -> "SchemaRef":
        """
        Attach descriptive metadata (description, default, ...).

        Siblings of $ref are ignored in OpenAPI 3.0, so a reference is
        wrapped in a single-element allOf first.
        """
        metadata = {
            k: v for k, v in metadata.items()
            if v is not None and v is not UNSET and not (k in _FLAGS and v is False)
        }
        if not metadata:
            return self
        if self.inline is not None:
            return SchemaRef.of(replace(self.inline, **metadata))
        return SchemaRef.of(SchemaObject(kind=SchemaKind.ALL_OF, variants=(self,), **metadata))

    def to_dict(self) -> Dict[str, Any]:
        if self.name is not None:
            return {"$ref": self.ref}
        return self.inline.to_dict()


ANY_SCHEMA = SchemaRef.of(SchemaObject(kind=SchemaKind.ANY))

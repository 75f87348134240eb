"""
Response protocol - what an operation can answer, and how it is encoded.

An ApiResponse subclass enumerates every (status, payload) pair the handler
may produce. The document lists all of them; at request time the handler
returns exactly one realized variant and the encoder turns it into one
(status, content type, body, headers) result.

Usage:
    class GetUserResponse(ApiResponse):
        ok = ResponseVariant(200, Json(User), "The user",
                             headers=[HeaderSpec("ETag", str)])
        not_found = ResponseVariant(404, description="No such user")

    def get_user(user_id=Path("user_id", int)):
        user = load(user_id)
        if user is None:
            return GetUserResponse.not_found()
        return GetUserResponse.ok(user, headers={"ETag": user.etag})

A bare payload (Json(User), PlainText()) is a one-variant protocol answering
200; None means 204 No Content.
"""

import re
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from .coerce import to_text
from .errors import InvalidOperation, InvalidStatusCode
from .payloads import Payload
from .schema.engine import SchemaEngine, dedupe_refs
from .schema.objects import SchemaKind, SchemaObject, SchemaRef
from .validation import Violation, validate_value

_STATUS_PATTERN = re.compile(r"^[1-5][0-9]{2}$")

Status = Union[int, str]


def normalize_status(status: Status) -> str:
    """
    '200' / 200 -> '200', 'default' -> 'default'.

    Raises:
        InvalidStatusCode: If status is neither a 3-digit code nor 'default'
    """
    if isinstance(status, bool):
        raise InvalidStatusCode(status)
    text = str(status).strip().lower()
    if text == "default" or _STATUS_PATTERN.match(text):
        return text
    raise InvalidStatusCode(status)


def default_description(status: str) -> str:
    if status == "default":
        return "Default response"
    try:
        return HTTPStatus(int(status)).phrase
    except ValueError:
        return f"Status {status}"


# =============================================================================
# Declarations
# =============================================================================

@dataclass(frozen=True)
class ResponseHeader:
    name: str
    schema: SchemaRef
    required: bool = False
    description: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"style": "simple", "schema": self.schema.to_dict()}
        if self.required:
            out["required"] = True
        if self.description:
            out["description"] = self.description
        return out


@dataclass(frozen=True)
class HeaderSpec:
    """A typed response header, serialized with style 'simple'."""
    name: str
    type: Any = str
    description: Optional[str] = None
    required: bool = False

    def describe(self, engine: SchemaEngine) -> ResponseHeader:
        return ResponseHeader(self.name, engine.register(self.type), self.required, self.description)

    def render(self, value: Any) -> str:
        if isinstance(value, (list, tuple, set, frozenset)):
            return ",".join(to_text(v) for v in value)
        return to_text(value)


@dataclass(frozen=True)
class ResponseSpec:
    status: str
    description: str
    content: Tuple[Tuple[str, SchemaRef], ...] = ()
    headers: Tuple[ResponseHeader, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"description": self.description}
        if self.content:
            out["content"] = {ct: {"schema": ref.to_dict()} for ct, ref in self.content}
        if self.headers:
            out["headers"] = {h.name: h.to_dict() for h in self.headers}
        return out


@dataclass
class Reply:
    """One realized response variant, as returned by a handler."""
    variant: "ResponseVariant"
    value: Any = None
    headers: Dict[str, Any] = field(default_factory=dict)
    status: Optional[int] = None


class ResponseVariant:

    def __init__(
        self,
        status: Status,
        payload: Optional[Payload] = None,
        description: Optional[str] = None,
        headers: Iterable[HeaderSpec] = (),
    ):
        self.status = status
        self.payload = payload
        self.description = description
        self.headers = tuple(headers)
        self.name: Optional[str] = None

    def __set_name__(self, owner, name):
        self.name = name

    def __call__(self, value: Any = None, *, headers: Optional[Dict[str, Any]] = None,
                 status: Optional[int] = None) -> Reply:
        return Reply(self, value, dict(headers or {}), status)

    def __repr__(self):
        return f"ResponseVariant({self.status!r}, {self.payload!r}, name={self.name!r})"


class ApiResponse:
    """Base class for enumerated responses. Variants are collected in declaration order."""

    __variants__: Tuple[ResponseVariant, ...] = ()

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        variants: List[ResponseVariant] = []
        for klass in reversed(cls.__mro__):
            for value in vars(klass).values():
                if isinstance(value, ResponseVariant) and value not in variants:
                    variants.append(value)
        cls.__variants__ = tuple(variants)


# =============================================================================
# Normalized protocol
# =============================================================================

@dataclass(frozen=True)
class EncodedResponse:
    status: int
    body: bytes = b""
    content_type: Optional[str] = None
    headers: Tuple[Tuple[str, str], ...] = ()


class ResponseProtocol:
    """Every response shape of one operation behind one interface."""

    def __init__(self, variants: Sequence[ResponseVariant], owner: Optional[type] = None):
        if not variants:
            raise InvalidOperation("A response protocol needs at least one variant")
        self.variants = tuple(variants)
        self.owner = owner

    def describe(self, engine: SchemaEngine) -> Dict[str, ResponseSpec]:
        """
        status -> ResponseSpec.

        Variants sharing a status merge their content types; different schemas
        under one content type become a oneOf over all of them.
        """
        specs: Dict[str, ResponseSpec] = {}
        for variant in self.variants:
            status = normalize_status(variant.status)
            content = ()
            if variant.payload is not None:
                content = ((variant.payload.content_type, variant.payload.describe(engine)),)
            headers = tuple(h.describe(engine) for h in variant.headers)

            existing = specs.get(status)
            if existing is None:
                specs[status] = ResponseSpec(
                    status=status,
                    description=variant.description or default_description(status),
                    content=content,
                    headers=headers,
                )
            else:
                merged = dict(existing.content)
                for ct, ref in content:
                    merged[ct] = ref if ct not in merged else _either(merged[ct], ref)
                names = {h.name.lower() for h in existing.headers}
                specs[status] = ResponseSpec(
                    status=status,
                    description=existing.description,
                    content=tuple(merged.items()),
                    headers=existing.headers + tuple(h for h in headers if h.name.lower() not in names),
                )
        return specs

    def realize(self, result: Any) -> Reply:
        """Pair a handler result with the variant it realizes."""
        if isinstance(result, Reply):
            if not any(result.variant is v for v in self.variants):
                raise TypeError(f"Handler returned variant {result.variant!r} that this operation does not declare")
            return result
        if len(self.variants) == 1:
            return Reply(self.variants[0], result)
        raise TypeError(
            f"Handler must return one of the declared variants of {self.owner.__name__ if self.owner else 'the response'}, "
            f"got {type(result).__name__}"
        )

    def encode(self, result: Any) -> EncodedResponse:
        reply = self.realize(result)
        variant = reply.variant

        if reply.status is not None:
            status = int(reply.status)
        elif variant.status == "default":
            raise TypeError("A 'default' response variant needs an explicit status")
        else:
            status = int(variant.status)

        headers: List[Tuple[str, str]] = []
        for spec in variant.headers:
            value = reply.headers.get(spec.name)
            if value is None:
                if spec.required:
                    raise ValueError(f"Required response header '{spec.name}' was not set")
                continue
            headers.append((spec.name, spec.render(value)))

        if variant.payload is None or reply.value is None:
            return EncodedResponse(status=status, headers=tuple(headers))
        return EncodedResponse(
            status=status,
            body=variant.payload.encode(reply.value),
            content_type=variant.payload.content_type,
            headers=tuple(headers),
        )

    def check(self, result: Any) -> List[Violation]:
        """Constraint violations of the outgoing value (empty if none)."""
        reply = self.realize(result)
        violations: List[Violation] = []
        if reply.variant.payload is not None and reply.value is not None:
            violations.extend(reply.variant.payload.check(reply.value))
        for spec in reply.variant.headers:
            value = reply.headers.get(spec.name)
            if value is not None:
                violations.extend(validate_value(spec.type, value, f"headers.{spec.name}"))
        return violations


def _either(current: SchemaRef, ref: SchemaRef) -> SchemaRef:
    """Schema accepting both shapes; grows an existing oneOf instead of nesting."""
    if current == ref:
        return current
    inline = current.inline
    if inline is not None and inline.kind == SchemaKind.ONE_OF and inline.discriminator is None:
        variants = dedupe_refs(inline.variants + (ref,))
    else:
        variants = (current, ref)
    return SchemaRef.of(SchemaObject(kind=SchemaKind.ONE_OF, variants=variants))


def as_response_protocol(obj: Any) -> ResponseProtocol:
    """Normalize the accepted response declarations into a ResponseProtocol."""
    if isinstance(obj, ResponseProtocol):
        return obj
    if obj is None:
        return ResponseProtocol([ResponseVariant(204)])
    if isinstance(obj, type) and issubclass(obj, ApiResponse):
        return ResponseProtocol(obj.__variants__, obj)
    if isinstance(obj, Payload):
        return ResponseProtocol([ResponseVariant(200, obj)])
    if isinstance(obj, ResponseVariant):
        return ResponseProtocol([obj])
    if isinstance(obj, (list, tuple)) and all(isinstance(v, ResponseVariant) for v in obj):
        return ResponseProtocol(list(obj))
    raise InvalidOperation(f"Cannot use {obj!r} as a response declaration")

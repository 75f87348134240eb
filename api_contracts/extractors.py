"""
Request extractors - the closed set of ways an operation reads its inputs.

Each extractor has two faces:
- describe(engine): build time, returns the Parameter or RequestBody that
  goes into the document (registering any schemas it needs).
- extract(request, ctx): request time, returns the typed value handed to the
  handler, or raises ExtractionError (missing / malformed / validation
  failed), UnsupportedMediaType or PayloadTooLarge.

Usage:
    @users.get("/users/{user_id}")
    def get_user(
        user_id=Path("user_id", int),
        fields=Query("fields", List[str], explode=False, required=False),
    ):
        ...
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from enum import Enum
from io import BytesIO
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import parse_qsl

from pydantic_core import to_jsonable_python
from werkzeug.datastructures import MultiDict
from werkzeug.exceptions import RequestEntityTooLarge
from werkzeug.formparser import FormDataParser

from .coerce import to_text
from .config import Config
from .errors import ExtractionError, ExtractionKind, PayloadTooLarge, UnsupportedMediaType
from .payloads import Payload, media_matches
from .request import ApiRequest
from .schema.decode import DecodeError, decode
from .schema.engine import (
    SchemaEngine, UploadedFile, is_model, model_property_name, shape_of,
    split_optional, unwrap_annotated,
)
from .schema.objects import ANY_SCHEMA, UNSET, SchemaRef
from .validation import ensure_valid, run_validators, validate_value

logger = logging.getLogger('api.contracts.extractors')


class ExtractorKind(Enum):
    PATH = "path"
    QUERY = "query"
    HEADER = "header"
    COOKIE = "cookie"
    BODY = "body"
    FORM = "form"
    MULTIPART = "multipart"


class ParameterLocation(Enum):
    PATH = "path"
    QUERY = "query"
    HEADER = "header"
    COOKIE = "cookie"


class ParameterStyle(Enum):
    SIMPLE = "simple"
    FORM = "form"
    LABEL = "label"
    MATRIX = "matrix"
    SPACE_DELIMITED = "spaceDelimited"
    PIPE_DELIMITED = "pipeDelimited"
    DEEP_OBJECT = "deepObject"


DEFAULT_STYLES = {
    ParameterLocation.PATH: ParameterStyle.SIMPLE,
    ParameterLocation.QUERY: ParameterStyle.FORM,
    ParameterLocation.HEADER: ParameterStyle.SIMPLE,
    ParameterLocation.COOKIE: ParameterStyle.FORM,
}

ALLOWED_STYLES = {
    ParameterLocation.PATH: (ParameterStyle.SIMPLE, ParameterStyle.LABEL, ParameterStyle.MATRIX),
    ParameterLocation.QUERY: (
        ParameterStyle.FORM, ParameterStyle.SPACE_DELIMITED,
        ParameterStyle.PIPE_DELIMITED, ParameterStyle.DEEP_OBJECT,
    ),
    ParameterLocation.HEADER: (ParameterStyle.SIMPLE,),
    ParameterLocation.COOKIE: (ParameterStyle.FORM,),
}

DELIMITERS = {
    ParameterStyle.SIMPLE: ",",
    ParameterStyle.FORM: ",",
    ParameterStyle.LABEL: ",",
    ParameterStyle.MATRIX: ",",
    ParameterStyle.SPACE_DELIMITED: " ",
    ParameterStyle.PIPE_DELIMITED: "|",
}

_DEEP_KEY = re.compile(r"^(?P<name>[^\[\]]+)\[(?P<key>[^\[\]]+)\]$")


# =============================================================================
# Parameter / RequestBody descriptions
# =============================================================================

def _object_items(value: Any) -> List[Tuple[str, Any]]:
    data = to_jsonable_python(value, by_alias=True)
    return [(str(k), v) for k, v in data.items() if v is not None]


@dataclass(frozen=True)
class Parameter:
    """
    One non-body parameter: document entry and wire codec.

    serialize() and deserialize() are inverses for every supported
    (style, explode, shape) combination.
    """
    name: str
    location: ParameterLocation
    schema: SchemaRef = ANY_SCHEMA
    required: bool = False
    style: ParameterStyle = ParameterStyle.FORM
    explode: bool = True
    default: Any = UNSET
    description: Optional[str] = None
    deprecated: bool = False
    shape: str = "scalar"
    properties: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        schema = self.schema
        if self.default is not UNSET:
            schema = schema.annotate(default=to_jsonable_python(self.default))
        out: Dict[str, Any] = {
            "name": self.name,
            "in": self.location.value,
            "required": self.required,
            "style": self.style.value,
            "explode": self.explode,
            "schema": schema.to_dict(),
        }
        if self.description:
            out["description"] = self.description
        if self.deprecated:
            out["deprecated"] = True
        return out

    # -- wire codec -----------------------------------------------------------------

    def _prefix(self) -> str:
        if self.style == ParameterStyle.LABEL:
            return "."
        if self.style == ParameterStyle.MATRIX:
            return f";{self.name}="
        return ""

    def _delimiter(self) -> str:
        if self.explode and self.style == ParameterStyle.LABEL:
            return "."
        if self.explode and self.style == ParameterStyle.MATRIX:
            return f";{self.name}="
        return DELIMITERS.get(self.style, ",")

    def _repeats(self) -> bool:
        # Styles where an exploded array repeats the key once per element
        return self.explode and self.style in (
            ParameterStyle.FORM, ParameterStyle.SPACE_DELIMITED, ParameterStyle.PIPE_DELIMITED,
        )

    def serialize(self, value: Any) -> List[Tuple[str, str]]:
        """
        Render value as (key, text) pairs.

        Query form, explode=False: [1, 2, 3] -> [("ids", "1,2,3")]
        Query form, explode=True:  [1, 2, 3] -> [("ids", "1"), ("ids", "2"), ("ids", "3")]
        """
        if value is None:
            return []
        prefix = self._prefix()

        if self.shape == "array":
            items = [to_text(item) for item in value]
            if self._repeats():
                return [(self.name, item) for item in items]
            return [(self.name, prefix + self._delimiter().join(items))]

        if self.shape == "object":
            items = [(k, to_text(v)) for k, v in _object_items(value)]
            if self.style == ParameterStyle.DEEP_OBJECT:
                return [(f"{self.name}[{k}]", v) for k, v in items]
            if self.explode and self.style == ParameterStyle.FORM:
                return items
            if self.explode:
                return [(self.name, prefix + ",".join(f"{k}={v}" for k, v in items))]
            return [(self.name, prefix + ",".join(f"{k},{v}" for k, v in items))]

        return [(self.name, prefix + to_text(value))]

    def deserialize(self, values: List[str], pairs: Optional[MultiDict] = None) -> Any:
        """
        Inverse of serialize().

        values are all raw occurrences of the parameter's key; pairs is the
        whole query (needed for exploded and deepObject objects). Returns
        None when the parameter is absent.

        Raises:
            DecodeError: If the text does not follow the parameter's style
        """
        if self.shape == "object":
            return self._deserialize_object(values, pairs)
        if not values:
            return None

        if self.shape == "array":
            if self._repeats() or len(values) > 1:
                return list(values)
            text = self._strip_prefix(values[0])
            if text == "":
                return []
            items = text.split(self._delimiter())
            if self.style == ParameterStyle.SIMPLE:
                items = [item.strip() for item in items]
            return items

        return self._strip_prefix(values[0])

    def _strip_prefix(self, text: str) -> str:
        prefix = self._prefix()
        if prefix and not text.startswith(prefix):
            raise DecodeError(self.name, f"expected {self.style.value} style value starting with {prefix!r}")
        return text[len(prefix):]

    def _deserialize_object(self, values: List[str], pairs: Optional[MultiDict]) -> Optional[Dict[str, str]]:
        if self.style == ParameterStyle.DEEP_OBJECT:
            found = {}
            for key, value in (pairs or MultiDict()).items(multi=True):
                match = _DEEP_KEY.match(key)
                if match and match.group("name") == self.name:
                    found[match.group("key")] = value
            return found or None

        if self.explode and self.style == ParameterStyle.FORM and pairs is not None:
            found = {
                key: value for key, value in pairs.items(multi=True)
                if not self.properties or key in self.properties
            }
            return found or None

        if not values:
            return None
        text = self._strip_prefix(values[0])
        if text == "":
            return {}
        parts = [part.strip() for part in text.split(",")]
        if self.explode:
            found = {}
            for part in parts:
                key, sep, value = part.partition("=")
                if not sep:
                    raise DecodeError(self.name, f"expected key=value, got {part!r}")
                found[key] = value
            return found
        if len(parts) % 2:
            raise DecodeError(self.name, "expected an even number of comma-separated key,value items")
        return dict(zip(parts[::2], parts[1::2]))


@dataclass(frozen=True)
class RequestBody:
    content: Tuple[Tuple[str, SchemaRef], ...]
    required: bool = True
    description: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "content": {ct: {"schema": ref.to_dict()} for ct, ref in self.content},
            "required": self.required,
        }
        if self.description:
            out["description"] = self.description
        return out


# =============================================================================
# Extraction context
# =============================================================================

@dataclass
class ExtractionContext:
    """Per-request state shared by the extractor chain. Never reused."""
    request: ApiRequest
    path_params: Dict[str, str] = field(default_factory=dict)
    request_id: Optional[str] = None
    max_body_bytes: int = Config.MAX_BODY_BYTES
    values: Dict[str, Any] = field(default_factory=dict)


def _handler_arg(name: str) -> str:
    return re.sub(r"\W", "_", name).lower()


def _is_optional(tp: Any) -> bool:
    bare, _ = unwrap_annotated(tp)
    return split_optional(bare)[1]


def _property_names(tp: Any) -> Tuple[str, ...]:
    bare, _ = unwrap_annotated(tp)
    bare, _ = split_optional(bare)
    bare, _ = unwrap_annotated(bare)
    if is_model(bare):
        return tuple(model_property_name(n, f) for n, f in bare.model_fields.items())
    return ()


# =============================================================================
# Extractors
# =============================================================================

class ApiExtractor(ABC):
    """Base class for everything that reads an operation input."""

    kind: ExtractorKind
    arg: str

    @abstractmethod
    def describe(self, engine: SchemaEngine) -> Any:
        """Parameter or RequestBody for the document."""

    @abstractmethod
    def extract(self, request: ApiRequest, ctx: ExtractionContext) -> Any:
        """Typed value for the handler argument."""


class ParameterExtractor(ApiExtractor):
    """Shared logic of the path/query/header/cookie extractors."""

    location: ParameterLocation

    def __init__(
        self,
        name: str,
        tp: Any = str,
        *,
        default: Any = UNSET,
        required: Optional[bool] = None,
        style: Optional[ParameterStyle] = None,
        explode: Optional[bool] = None,
        description: Optional[str] = None,
        deprecated: bool = False,
        arg: Optional[str] = None,
    ):
        style = ParameterStyle(style) if style is not None else DEFAULT_STYLES[self.location]
        if style not in ALLOWED_STYLES[self.location]:
            raise ValueError(f"Style '{style.value}' is not allowed for {self.location.value} parameters")
        if required is None:
            required = default is UNSET and not _is_optional(tp)
        if explode is None:
            explode = style == ParameterStyle.FORM

        self.name = name
        self.type = tp
        self.default = default
        self.arg = arg or _handler_arg(name)
        self.parameter = Parameter(
            name=name,
            location=self.location,
            required=required,
            style=style,
            explode=explode,
            default=default,
            description=description,
            deprecated=deprecated,
            shape=shape_of(tp),
            properties=_property_names(tp),
        )

    @property
    def required(self) -> bool:
        return self.parameter.required

    def describe(self, engine: SchemaEngine) -> Parameter:
        return replace(self.parameter, schema=engine.register(self.type))

    @abstractmethod
    def raw_values(self, request: ApiRequest, ctx: ExtractionContext) -> Tuple[List[str], Optional[MultiDict]]:
        """Values found under this parameter's name, plus the key/value source deepObject reads (or None)."""

    def extract(self, request: ApiRequest, ctx: ExtractionContext) -> Any:
        location = self.location.value
        values, pairs = self.raw_values(request, ctx)
        try:
            raw = self.parameter.deserialize(values, pairs)
        except DecodeError as e:
            raise ExtractionError(location, self.name, ExtractionKind.MALFORMED, e.detail)

        if raw is None:
            if self.default is not UNSET:
                return self.default
            if self.required:
                raise ExtractionError(location, self.name, ExtractionKind.MISSING)
            return None

        try:
            value = decode(self.type, raw, from_text=True)
        except DecodeError as e:
            raise ExtractionError(location, self.name, ExtractionKind.MALFORMED, str(e))
        return ensure_valid(self.type, value, location=location, name=self.name)

    def __repr__(self):
        return f"{type(self).__name__}({self.name!r})"


class Path(ParameterExtractor):
    kind = ExtractorKind.PATH
    location = ParameterLocation.PATH

    def __init__(self, name: str, tp: Any = str, **kwargs):
        kwargs.pop("required", None)
        kwargs.pop("default", None)
        super().__init__(name, tp, required=True, **kwargs)

    def raw_values(self, request, ctx):
        value = ctx.path_params.get(self.name)
        return ([value] if value is not None else []), None


class Query(ParameterExtractor):
    kind = ExtractorKind.QUERY
    location = ParameterLocation.QUERY

    def raw_values(self, request, ctx):
        return request.query.getlist(self.name), request.query


class Header(ParameterExtractor):
    kind = ExtractorKind.HEADER
    location = ParameterLocation.HEADER

    def raw_values(self, request, ctx):
        lines = request.headers.getlist(self.name)
        if not lines:
            return [], None
        # Repeated header lines are equivalent to one comma-joined line
        return [",".join(lines)], None


class Cookie(ParameterExtractor):
    kind = ExtractorKind.COOKIE
    location = ParameterLocation.COOKIE

    def raw_values(self, request, ctx):
        value = request.cookies.get(self.name)
        return ([value] if value is not None else []), None


class BodyExtractor(ApiExtractor):
    """Shared size / presence / content negotiation handling for bodies."""

    name = "body"

    def __init__(self, payloads: List[Payload], required: bool = True,
                 description: Optional[str] = None, arg: str = "body"):
        if not payloads:
            raise ValueError("A body extractor needs at least one payload")
        self.payloads = list(payloads)
        self.required = required
        self.description = description
        self.arg = arg

    @property
    def content_types(self) -> List[str]:
        return [p.content_type for p in self.payloads]

    def describe(self, engine: SchemaEngine) -> RequestBody:
        return RequestBody(
            content=tuple((p.content_type, p.describe(engine)) for p in self.payloads),
            required=self.required,
            description=self.description,
        )

    def negotiate(self, mimetype: str) -> Payload:
        for payload in self.payloads:
            if payload.accepts(mimetype):
                return payload
        logger.debug(f"no payload of {self!r} accepts '{mimetype}'")
        raise UnsupportedMediaType(mimetype or None, self.content_types)

    def extract(self, request: ApiRequest, ctx: ExtractionContext) -> Any:
        size = request.content_length
        if size > ctx.max_body_bytes:
            raise PayloadTooLarge(size, ctx.max_body_bytes)
        if not request.body:
            if self.required:
                raise ExtractionError("body", self.name, ExtractionKind.MISSING)
            return None

        mimetype, options = request.content_type_options
        payload = self.negotiate(mimetype)
        try:
            value = self.read(payload, request, mimetype, options)
        except DecodeError as e:
            raise ExtractionError("body", self.name, ExtractionKind.MALFORMED, str(e))

        violations = payload.validate(value)
        if not violations:
            value, violations = run_validators(payload.type, value)
        if violations:
            raise ExtractionError("body", self.name, ExtractionKind.VALIDATION_FAILED, violations=violations)
        return value

    def read(self, payload: Payload, request: ApiRequest, mimetype: str, options: Dict[str, str]) -> Any:
        return payload.decode(request.body, options.get("charset"))

    def __repr__(self):
        return f"{type(self).__name__}({', '.join(self.content_types)})"


class Body(BodyExtractor):
    """
    Request body in one of several media types.

        Body(Json(CreateUser))
        Body(Json(Patch), PlainText(), required=False)
    """

    kind = ExtractorKind.BODY

    def __init__(self, *payloads: Payload, required: bool = True,
                 description: Optional[str] = None, arg: str = "body"):
        super().__init__(list(payloads), required, description, arg)


class _FormPayload(Payload):
    """A model read from form fields (urlencoded or multipart)."""

    def __init__(self, tp: Any, content_type: str):
        super().__init__(tp, content_type)

    def accepts(self, mimetype: str) -> bool:
        return media_matches(self.content_type, mimetype)

    def from_fields(self, fields: MultiDict) -> Any:
        model, _ = unwrap_annotated(self.type)
        data: Dict[str, Any] = {}
        for field_name, info in model.model_fields.items():
            key = model_property_name(field_name, info)
            if key not in fields:
                continue
            if shape_of(info.annotation) == "array":
                data[key] = fields.getlist(key)
            else:
                data[key] = fields.get(key)
        return decode(self.type, data, from_text=True)

    def validate(self, value: Any):
        return validate_value(self.type, value)


class Form(BodyExtractor):
    """application/x-www-form-urlencoded body read into a model."""

    kind = ExtractorKind.FORM

    def __init__(self, tp: Any, *, required: bool = True,
                 description: Optional[str] = None, arg: str = "form"):
        if not is_model(unwrap_annotated(tp)[0]):
            raise ValueError("Form bodies must be declared with a pydantic model")
        super().__init__([_FormPayload(tp, "application/x-www-form-urlencoded")], required, description, arg)

    def read(self, payload, request, mimetype, options):
        try:
            text = request.body.decode(options.get("charset") or "utf-8")
        except (UnicodeDecodeError, LookupError) as e:
            raise DecodeError("", f"Body is not valid text: {e}")
        return payload.from_fields(MultiDict(parse_qsl(text, keep_blank_values=True)))


class Multipart(BodyExtractor):
    """
    multipart/form-data body read into a model.

    File parts arrive as UploadedFile values; declare them as such:

        class Upload(BaseModel):
            title: str
            attachment: UploadedFile
    """

    kind = ExtractorKind.MULTIPART

    def __init__(self, tp: Any, *, required: bool = True,
                 description: Optional[str] = None, arg: str = "form"):
        if not is_model(unwrap_annotated(tp)[0]):
            raise ValueError("Multipart bodies must be declared with a pydantic model")
        super().__init__([_FormPayload(tp, "multipart/form-data")], required, description, arg)

    def read(self, payload, request, mimetype, options):
        parser = FormDataParser(silent=False)
        try:
            _, form, files = parser.parse(BytesIO(request.body), mimetype, len(request.body), options)
        except (ValueError, RequestEntityTooLarge) as e:
            raise DecodeError("", f"Invalid multipart body: {e}")

        fields = MultiDict(form.items(multi=True))
        for key, storage in files.items(multi=True):
            fields.add(key, UploadedFile(
                filename=storage.filename,
                content_type=storage.content_type,
                data=storage.read(),
            ))
        return payload.from_fields(fields)

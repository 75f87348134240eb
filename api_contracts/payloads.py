"""
Payload types - one per media type family.

A payload knows its content type, how to describe its schema, how to decode
a request body and how to encode a response value. Body extractors and
response variants are both built from payloads, so request and response
bodies share one set of rules.
"""

import json
from typing import Any, List, Optional

from pydantic_core import PydanticSerializationError, to_json, to_jsonable_python

from .schema.decode import DecodeError, decode
from .schema.engine import SchemaEngine
from .schema.objects import SchemaRef
from .validation import Violation, run_validators, validate_value


def media_matches(declared: str, mimetype: str) -> bool:
    """True if a concrete mimetype satisfies a declared (possibly wildcard) one."""
    declared = declared.lower()
    mimetype = mimetype.lower()
    if declared in ("*/*", mimetype):
        return True
    major, _, minor = declared.partition("/")
    got_major, _, got_minor = mimetype.partition("/")
    if minor == "*":
        return major == got_major
    if minor.startswith("*+"):
        return major == got_major and got_minor.endswith(minor[1:])
    return False


class Payload:
    """Base payload. Subclasses set content_type and override the codec."""

    content_type = "application/octet-stream"

    def __init__(self, tp: Any = bytes, content_type: Optional[str] = None):
        self.type = tp
        if content_type is not None:
            self.content_type = content_type

    def accepts(self, mimetype: str) -> bool:
        return media_matches(self.content_type, mimetype)

    def describe(self, engine: SchemaEngine) -> SchemaRef:
        return engine.register(self.type)

    def decode(self, body: bytes, charset: Optional[str] = None) -> Any:
        return body

    def validate(self, value: Any) -> List[Violation]:
        return validate_value(self.type, value)

    def encode(self, value: Any) -> bytes:
        if isinstance(value, str):
            return value.encode("utf-8")
        return bytes(value)

    def check(self, value: Any) -> List[Violation]:
        """Violations of an outgoing value (used for response checks)."""
        return self.validate(value)

    def __repr__(self):
        return f"{type(self).__name__}({self.content_type!r})"


class Json(Payload):
    """
    JSON body of a given type.

    Besides application/json, any application/*+json media type (e.g.
    application/merge-patch+json) is accepted on requests.
    """

    content_type = "application/json"

    def __init__(self, tp: Any = Any, content_type: Optional[str] = None):
        super().__init__(tp, content_type)

    def accepts(self, mimetype: str) -> bool:
        if self.content_type == "application/json" and media_matches("application/*+json", mimetype):
            return True
        return super().accepts(mimetype)

    def decode(self, body: bytes, charset: Optional[str] = None) -> Any:
        try:
            data = json.loads(body.decode(charset or "utf-8"))
        except (UnicodeDecodeError, LookupError) as e:
            raise DecodeError("", f"Body is not valid text: {e}")
        except json.JSONDecodeError as e:
            raise DecodeError("", f"Invalid JSON: {e.msg} (line {e.lineno}, column {e.colno})")
        return decode(self.type, data)

    def encode(self, value: Any) -> bytes:
        return to_json(value, by_alias=True)

    def check(self, value: Any) -> List[Violation]:
        # Responses may be plain dicts; read them back as the declared type first
        try:
            data = to_jsonable_python(value, by_alias=True)
            typed = decode(self.type, data)
        except (DecodeError, PydanticSerializationError) as e:
            return [Violation(path=getattr(e, "path", ""), rule="type", message=str(e))]
        violations = validate_value(self.type, typed)
        if not violations:
            _, violations = run_validators(self.type, typed)
        return violations


class PlainText(Payload):
    content_type = "text/plain"

    def __init__(self, tp: Any = str, content_type: Optional[str] = None):
        super().__init__(tp, content_type)

    def decode(self, body: bytes, charset: Optional[str] = None) -> str:
        try:
            return body.decode(charset or "utf-8")
        except (UnicodeDecodeError, LookupError) as e:
            raise DecodeError("", f"Body is not valid text: {e}")

    def encode(self, value: Any) -> bytes:
        return str(value).encode("utf-8")


class Html(PlainText):
    content_type = "text/html"


class Binary(Payload):
    """Raw bytes. Declare content_type='*/*' to accept any media type."""

    def validate(self, value: Any) -> List[Violation]:
        return []

"""
Runtime decoding - turns raw wire values into the declared Python types.

Two input modes:
- JSON values (from_text=False): strict JSON typing. A JSON number is not a
  string, a string is not a bool.
- Text values (from_text=True): path segments, query strings, headers,
  cookies and form fields, where every scalar arrives as a string and is
  coerced via coerce.py.

Models are assembled with model_construct() so that constraint checks are
left to the validation engine, which reports every violation at once
instead of stopping at the first. Once the constraints hold, the engine
re-validates the value through pydantic so field and model validators run
(see validation.run_validators).
"""

from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Dict, Literal, Mapping, get_args, get_origin
from uuid import UUID

from .. import coerce
from .engine import (
    SET_TYPES, UNION_TYPES, UploadedFile, discriminator_from_metadata, is_enum, is_mapping,
    is_model, is_root_model, is_sequence, literal_values, split_optional,
    unwrap_annotated,
)

NoneType = type(None)


class DecodeError(ValueError):
    """A value does not have the declared shape."""

    def __init__(self, path: str, message: str):
        super().__init__(f"{path}: {message}" if path else message)
        self.path = path
        self.detail = message


def _child(path: str, name: Any) -> str:
    return f"{path}.{name}" if path else str(name)


def _index(path: str, index: int) -> str:
    return f"{path}[{index}]"


def _kind(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def decode(tp: Any, value: Any, *, from_text: bool = False, path: str = "") -> Any:
    """
    Decode value as tp.

    Raises:
        DecodeError: If value cannot be read as tp (path names the field)
    """
    tp, metadata = unwrap_annotated(tp)

    if get_origin(tp) in UNION_TYPES:
        inner, optional = split_optional(tp)
        if value is None:
            if optional:
                return None
            raise DecodeError(path, "null is not allowed")
        if optional:
            return decode(inner, value, from_text=from_text, path=path)
        return _decode_union(tp, value, discriminator_from_metadata(metadata), from_text, path)

    if tp is Any or tp is object:
        return value
    if value is None:
        if tp is NoneType:
            return None
        raise DecodeError(path, "null is not allowed")

    if get_origin(tp) is Literal:
        return _decode_literal(tp, value, from_text, path)
    if is_enum(tp):
        try:
            return coerce.to_enum(value, tp)
        except coerce.CoercionError as e:
            raise DecodeError(path, str(e))
    if is_sequence(tp):
        return _decode_sequence(tp, value, from_text, path)
    if is_mapping(tp):
        return _decode_mapping(tp, value, from_text, path)
    if is_root_model(tp):
        root = decode(tp.model_fields["root"].annotation, value, from_text=from_text, path=path)
        return tp.model_construct(root)
    if is_model(tp):
        return _decode_model(tp, value, from_text, path)
    return _decode_scalar(tp, value, from_text, path)


def _decode_union(tp: Any, value: Any, discriminator: Any, from_text: bool, path: str) -> Any:
    members = get_args(tp)
    if discriminator is not None and isinstance(value, Mapping):
        tag = value.get(discriminator)
        for member in members:
            model, _ = unwrap_annotated(member)
            for field_name, field in model.model_fields.items():
                if discriminator in (field_name, field.alias) and str(tag) in (
                    str(v) for v in literal_values(field.annotation)
                ):
                    return decode(member, value, from_text=from_text, path=path)
        raise DecodeError(_child(path, discriminator), f"unknown discriminator value {tag!r}")

    for member in members:
        try:
            return decode(member, value, from_text=from_text, path=path)
        except DecodeError:
            continue
    raise DecodeError(path, f"{_kind(value)} matches none of the allowed variants")


def _decode_literal(tp: Any, value: Any, from_text: bool, path: str) -> Any:
    for allowed in get_args(tp):
        raw = allowed.value if hasattr(allowed, "value") else allowed
        if value == raw and isinstance(value, bool) == isinstance(raw, bool):
            return allowed
        if from_text and coerce.to_text(raw) == str(value):
            return allowed
    raise DecodeError(path, f"expected one of {list(literal_values(tp))}, got {value!r}")


def _decode_sequence(tp: Any, value: Any, from_text: bool, path: str) -> Any:
    if not isinstance(value, (list, tuple)):
        raise DecodeError(path, f"expected array, got {_kind(value)}")
    origin = get_origin(tp) or tp
    args = get_args(tp)

    if origin is tuple and args and not (len(args) == 2 and args[1] is Ellipsis):
        if len(value) != len(args):
            raise DecodeError(path, f"expected {len(args)} items, got {len(value)}")
        return tuple(
            decode(item_tp, item, from_text=from_text, path=_index(path, i))
            for i, (item_tp, item) in enumerate(zip(args, value))
        )

    item_tp = args[0] if args else Any
    items = [decode(item_tp, item, from_text=from_text, path=_index(path, i)) for i, item in enumerate(value)]
    if origin is tuple:
        return tuple(items)
    if origin is frozenset:
        return frozenset(items)
    if origin in SET_TYPES:
        return set(items)
    return items


def _decode_mapping(tp: Any, value: Any, from_text: bool, path: str) -> Dict[str, Any]:
    if not isinstance(value, Mapping):
        raise DecodeError(path, f"expected object, got {_kind(value)}")
    args = get_args(tp)
    value_tp = args[1] if len(args) == 2 else Any
    return {
        str(key): decode(value_tp, item, from_text=from_text, path=_child(path, key))
        for key, item in value.items()
    }


def _decode_model(tp: Any, value: Any, from_text: bool, path: str) -> Any:
    if isinstance(value, tp):
        return value
    if not isinstance(value, Mapping):
        raise DecodeError(path, f"expected object, got {_kind(value)}")

    remaining = dict(value)
    values: Dict[str, Any] = {}
    for name, field in tp.model_fields.items():
        key = field.alias if field.alias and field.alias in remaining else name
        if key not in remaining:
            if field.is_required():
                raise DecodeError(_child(path, field.alias or name), "field required")
            continue
        values[name] = decode(
            field.annotation, remaining.pop(key), from_text=from_text, path=_child(path, field.alias or name),
        )

    extra = tp.model_config.get("extra")
    if remaining and extra == "forbid":
        unexpected = sorted(remaining)[0]
        raise DecodeError(_child(path, unexpected), "unexpected field")
    if extra == "allow":
        values.update(remaining)
    return tp.model_construct(**values)


def _decode_scalar(tp: Any, value: Any, from_text: bool, path: str) -> Any:
    if not isinstance(tp, type):
        return value
    try:
        if issubclass(tp, bool):
            if from_text:
                return coerce.to_bool(value)
            if isinstance(value, bool):
                return value
        elif issubclass(tp, int):
            if from_text:
                return coerce.to_int(value)
            if isinstance(value, int) and not isinstance(value, bool):
                return value
            if isinstance(value, float) and value.is_integer():
                return int(value)
        elif issubclass(tp, float):
            if from_text:
                return coerce.to_float(value)
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                return float(value)
        elif issubclass(tp, Decimal):
            if from_text or (isinstance(value, (str, int, float)) and not isinstance(value, bool)):
                return coerce.to_decimal(value)
        elif issubclass(tp, str):
            if isinstance(value, str):
                return value
        elif issubclass(tp, bytes):
            if isinstance(value, bytes):
                return value
            if isinstance(value, str):
                return value.encode("utf-8")
        elif issubclass(tp, UploadedFile):
            if isinstance(value, UploadedFile):
                return value
        elif issubclass(tp, datetime):
            if isinstance(value, (str, datetime)):
                return coerce.to_datetime(value)
        elif issubclass(tp, date):
            if isinstance(value, (str, date)):
                return coerce.to_date(value)
        elif issubclass(tp, time):
            if isinstance(value, (str, time)):
                return coerce.to_time(value)
        elif issubclass(tp, UUID):
            if isinstance(value, (str, UUID)):
                return coerce.to_uuid(value)
        else:
            return value
    except coerce.CoercionError as e:
        raise DecodeError(path, str(e))
    raise DecodeError(path, f"expected {tp.__name__}, got {_kind(value)}")

"""
Schema layer: data model, registry, type engine and runtime decoding.
"""

from .decode import DecodeError, decode
from .engine import SchemaEngine, UploadedFile, schema_name
from .objects import (
    ANY_SCHEMA,
    REF_PREFIX,
    UNSET,
    Constraints,
    Discriminator,
    Property,
    SchemaKind,
    SchemaObject,
    SchemaRef,
)
from .registry import Registry

__all__ = [
    'ANY_SCHEMA',
    'REF_PREFIX',
    'UNSET',
    'Constraints',
    'DecodeError',
    'Discriminator',
    'Property',
    'Registry',
    'SchemaEngine',
    'SchemaKind',
    'SchemaObject',
    'SchemaRef',
    'UploadedFile',
    'decode',
    'schema_name',
]

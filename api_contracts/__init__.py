"""
Contract engine package.

Builds an OpenAPI document and the request/response marshaling that serves
it from one set of declarations: pydantic models and typing annotations for
data, extractors for inputs, ApiResponse classes for outputs.
"""

from .config import Config, SchemaMode
from .document import ApiService, Document, DocumentAssembler
from .errors import (
    BuildError,
    ConflictingPathTemplate,
    DuplicateOperationId,
    DuplicateParameter,
    DuplicatePathMethod,
    ExtractionError,
    ExtractionKind,
    InvalidOperation,
    InvalidStatusCode,
    MethodNotAllowed,
    NameConflict,
    NotFound,
    PathParameterMismatch,
    PayloadTooLarge,
    RegistryFrozen,
    RequestError,
    UndeclaredSecurityScheme,
    UnsupportedMediaType,
    UnsupportedType,
)
from .extractors import (
    ApiExtractor,
    Body,
    Cookie,
    ExtractorKind,
    Form,
    Header,
    Multipart,
    Parameter,
    ParameterLocation,
    ParameterStyle,
    Path,
    Query,
    RequestBody,
)
from .dispatch import DispatchTable, default_specificity
from .metadata import Contact, ExternalDocs, License, Server, Tag
from .operation import Operation, OperationBuilder, OperationGroup
from .payloads import Binary, Html, Json, PlainText
from .request import ApiRequest
from .responses import ApiResponse, EncodedResponse, HeaderSpec, ResponseSpec, ResponseVariant
from .schema import Constraints, Registry, SchemaEngine, SchemaRef, UploadedFile
from .security import ApiKey, HttpBasic, HttpBearer, OAuth2, OAuthFlow, OpenIdConnect
from .validation import Violation

__all__ = [
    'ApiExtractor',
    'ApiKey',
    'ApiRequest',
    'ApiResponse',
    'ApiService',
    'Binary',
    'Body',
    'BuildError',
    'Config',
    'ConflictingPathTemplate',
    'Constraints',
    'Contact',
    'Cookie',
    'DispatchTable',
    'Document',
    'DocumentAssembler',
    'DuplicateOperationId',
    'DuplicateParameter',
    'DuplicatePathMethod',
    'EncodedResponse',
    'ExternalDocs',
    'ExtractionError',
    'ExtractionKind',
    'ExtractorKind',
    'Form',
    'Header',
    'HeaderSpec',
    'Html',
    'HttpBasic',
    'HttpBearer',
    'InvalidOperation',
    'InvalidStatusCode',
    'Json',
    'License',
    'MethodNotAllowed',
    'Multipart',
    'NameConflict',
    'NotFound',
    'OAuth2',
    'OAuthFlow',
    'OpenIdConnect',
    'Operation',
    'OperationBuilder',
    'OperationGroup',
    'Parameter',
    'ParameterLocation',
    'ParameterStyle',
    'Path',
    'PathParameterMismatch',
    'PayloadTooLarge',
    'PlainText',
    'Query',
    'Registry',
    'RegistryFrozen',
    'RequestBody',
    'RequestError',
    'ResponseSpec',
    'ResponseVariant',
    'SchemaEngine',
    'SchemaMode',
    'SchemaRef',
    'Server',
    'Tag',
    'UndeclaredSecurityScheme',
    'UnsupportedMediaType',
    'UnsupportedType',
    'UploadedFile',
    'Violation',
    'default_specificity',
]

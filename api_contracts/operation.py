"""
OperationBuilder - validates one operation declaration and binds it to schemas.

An operation is declared by decorating a handler on an OperationGroup. The
handler's parameters carry their extractors as defaults, so the signature
reads like the request it accepts:

    users = OperationGroup("/users", tags=["users"])

    @users.get("/{user_id}", responses=GetUserResponse, security=["apiKey"])
    def get_user(user_id=Path("user_id", int), verbose=Query("verbose", bool, default=False)):
        '''Fetch one user.

        Returns 404 when the user does not exist.
        '''

Everything that can be wrong with a declaration (path placeholders vs path
parameters, duplicate parameters, unknown security schemes, bad status codes)
is detected when the service is built, never at request time.
"""

import copy
import inspect
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from .errors import (
    DuplicateParameter, InvalidOperation, PathParameterMismatch, UndeclaredSecurityScheme,
)
from .extractors import (
    ApiExtractor, BodyExtractor, Parameter, ParameterExtractor, ParameterLocation, Path, RequestBody,
)
from .metadata import ExternalDocs
from .responses import ApiResponse, ResponseProtocol, ResponseSpec, as_response_protocol
from .schema.engine import SchemaEngine
from .security import SecurityRequirement, SecurityScheme, SecuritySpec

logger = logging.getLogger('api.contracts.operation')

HTTP_METHODS = ("get", "put", "post", "delete", "options", "head", "patch", "trace")

PLACEHOLDER = re.compile(r"\{([^}/]+)\}")

_NOT_GIVEN = object()


def path_placeholders(path: str) -> List[str]:
    return PLACEHOLDER.findall(path)


def join_path(prefix: str, path: str) -> str:
    joined = prefix.rstrip("/") + "/" + path.lstrip("/") if prefix else path
    if len(joined) > 1:
        joined = joined.rstrip("/")
    return joined or "/"


def split_docstring(handler: Callable) -> Tuple[Optional[str], Optional[str]]:
    """First paragraph of the docstring is the summary, the rest the description."""
    doc = inspect.getdoc(handler)
    if not doc:
        return None, None
    paragraphs = doc.split("\n\n", 1)
    summary = " ".join(paragraphs[0].split())
    description = paragraphs[1].strip() if len(paragraphs) > 1 else None
    return summary or None, description or None


@dataclass(frozen=True)
class Operation:
    operation_id: str
    path: str
    method: str
    responses: Tuple[Tuple[str, ResponseSpec], ...]
    parameters: Tuple[Parameter, ...] = ()
    request_body: Optional[RequestBody] = None
    tags: Tuple[str, ...] = ()
    security: Tuple[SecurityRequirement, ...] = ()
    deprecated: bool = False
    summary: Optional[str] = None
    description: Optional[str] = None
    external_docs: Optional[ExternalDocs] = None

    @property
    def path_parameters(self) -> List[str]:
        return [p.name for p in self.parameters if p.location == ParameterLocation.PATH]

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        if self.tags:
            out["tags"] = list(self.tags)
        if self.summary:
            out["summary"] = self.summary
        if self.description:
            out["description"] = self.description
        if self.external_docs is not None:
            out["externalDocs"] = self.external_docs.to_dict()
        out["operationId"] = self.operation_id
        if self.parameters:
            out["parameters"] = [p.to_dict() for p in self.parameters]
        if self.request_body is not None:
            out["requestBody"] = self.request_body.to_dict()
        out["responses"] = {status: spec.to_dict() for status, spec in self.responses}
        if self.deprecated:
            out["deprecated"] = True
        if self.security:
            out["security"] = [req.to_dict() for req in self.security]
        return out


@dataclass(frozen=True)
class DispatchEntry:
    """Runtime half of an operation: extractor chain, handler and encoder."""
    operation: Operation
    extractors: Tuple[ApiExtractor, ...]
    handler: Callable
    responses: ResponseProtocol

    @property
    def method(self) -> str:
        return self.operation.method

    @property
    def path(self) -> str:
        return self.operation.path


def extractors_from_signature(handler: Callable) -> List[ApiExtractor]:
    """Collect extractors declared as parameter defaults, bound to the parameter name."""
    found = []
    for param in inspect.signature(handler).parameters.values():
        if isinstance(param.default, ApiExtractor):
            extractor = copy.copy(param.default)
            extractor.arg = param.name
            found.append(extractor)
    return found


class OperationBuilder:

    def __init__(
        self,
        method: str,
        path: str,
        handler: Callable,
        *,
        extractors: Optional[Sequence[ApiExtractor]] = None,
        responses: Any = _NOT_GIVEN,
        tags: Iterable[str] = (),
        operation_id: Optional[str] = None,
        operation_id_prefix: str = "",
        deprecated: bool = False,
        security: Optional[Iterable[SecuritySpec]] = None,
        summary: Optional[str] = None,
        description: Optional[str] = None,
        external_docs: Optional[ExternalDocs] = None,
        webhook: bool = False,
    ):
        self.method = method.lower()
        self.path = path
        self.handler = handler
        self.extractors = list(extractors) if extractors is not None else extractors_from_signature(handler)
        if responses is _NOT_GIVEN:
            annotation = inspect.signature(handler).return_annotation
            is_enumerated = isinstance(annotation, type) and issubclass(annotation, ApiResponse)
            responses = annotation if is_enumerated else None
        self.responses = responses
        self.tags = tuple(dict.fromkeys(tags))
        self.operation_id = operation_id or f"{operation_id_prefix}{handler.__name__}"
        self.deprecated = deprecated
        self.security = SecurityRequirement.parse_all(security)
        doc_summary, doc_description = split_docstring(handler)
        self.summary = summary or doc_summary
        self.description = description or doc_description
        self.external_docs = external_docs
        self.webhook = webhook

    def build(
        self,
        engine: SchemaEngine,
        schemes: Optional[Mapping[str, SecurityScheme]] = None,
    ) -> Tuple[Operation, DispatchEntry]:
        """
        Validate the declaration and describe it against engine's registry.

        Raises:
            InvalidOperation: Unknown method or malformed path template
            PathParameterMismatch: Placeholders and path parameters disagree
            DuplicateParameter: Same (name, location) twice, or two bodies
            UndeclaredSecurityScheme: Unknown scheme or undeclared scope
            InvalidStatusCode: A response status is not 3-digit or 'default'
        """
        self._check_method()
        self._check_parameters()
        self._check_path()
        self._check_security(schemes or {})

        parameters: List[Parameter] = []
        request_body: Optional[RequestBody] = None
        for extractor in self.extractors:
            described = extractor.describe(engine)
            if isinstance(described, RequestBody):
                request_body = described
            else:
                parameters.append(described)

        protocol = as_response_protocol(self.responses)
        responses = protocol.describe(engine)

        operation = Operation(
            operation_id=self.operation_id,
            path=self.path,
            method=self.method,
            responses=tuple(responses.items()),
            parameters=tuple(parameters),
            request_body=request_body,
            tags=self.tags,
            security=self.security,
            deprecated=self.deprecated,
            summary=self.summary,
            description=self.description,
            external_docs=self.external_docs,
        )
        entry = DispatchEntry(
            operation=operation,
            extractors=tuple(self.extractors),
            handler=self.handler,
            responses=protocol,
        )
        logger.debug(f"operation built: {self.method.upper()} {self.path} ({self.operation_id})")
        return operation, entry

    # -- checks -------------------------------------------------------------------

    def _check_method(self) -> None:
        if self.method not in HTTP_METHODS:
            raise InvalidOperation(f"Unknown HTTP method '{self.method}' for '{self.operation_id}'")

    def _check_parameters(self) -> None:
        seen: Set[Tuple[str, str]] = set()
        args: Set[str] = set()
        body_seen = False
        for extractor in self.extractors:
            if extractor.arg in args:
                raise DuplicateParameter(extractor.arg, "argument", self.operation_id)
            args.add(extractor.arg)

            if isinstance(extractor, BodyExtractor):
                if body_seen:
                    raise DuplicateParameter("body", "body", self.operation_id)
                body_seen = True
                continue

            if isinstance(extractor, ParameterExtractor):
                name = extractor.name
                if extractor.location == ParameterLocation.HEADER:
                    # Header names are case-insensitive
                    name = name.lower()
                key = (name, extractor.location.value)
                if key in seen:
                    raise DuplicateParameter(extractor.name, extractor.location.value, self.operation_id)
                seen.add(key)

    def _check_path(self) -> None:
        if not self.webhook and not self.path.startswith("/"):
            raise InvalidOperation(f"Path '{self.path}' must start with '/'")
        placeholders = path_placeholders(self.path)
        if len(placeholders) != len(set(placeholders)):
            raise InvalidOperation(f"Path '{self.path}' repeats a placeholder")
        if "{" in PLACEHOLDER.sub("", self.path) or "}" in PLACEHOLDER.sub("", self.path):
            raise InvalidOperation(f"Path '{self.path}' has an unbalanced placeholder")

        declared = [e.name for e in self.extractors if isinstance(e, Path)]
        missing = [p for p in placeholders if p not in declared]
        undeclared = [d for d in declared if d not in placeholders]
        if missing or undeclared:
            raise PathParameterMismatch(self.path, missing, undeclared)

    def _check_security(self, schemes: Mapping[str, SecurityScheme]) -> None:
        for requirement in self.security:
            for name, scopes in requirement.schemes:
                scheme = schemes.get(name)
                if scheme is None:
                    raise UndeclaredSecurityScheme(name, self.operation_id)
                declared = scheme.scopes()
                if declared is None:
                    continue
                for scope in scopes:
                    if scope not in declared:
                        raise UndeclaredSecurityScheme(name, self.operation_id, scope)


class OperationGroup:
    """
    A set of operations sharing a path prefix, default tags and default security.

    Groups are merged into one document by DocumentAssembler.include().
    """

    def __init__(
        self,
        prefix: str = "",
        *,
        tags: Iterable[str] = (),
        security: Optional[Iterable[SecuritySpec]] = None,
        operation_id_prefix: str = "",
        deprecated: bool = False,
    ):
        self.prefix = prefix
        self.tags = tuple(tags)
        self.security = list(security) if security is not None else None
        self.operation_id_prefix = operation_id_prefix
        self.deprecated = deprecated
        self.operations: List[OperationBuilder] = []
        self.webhooks: List[OperationBuilder] = []

    def _builder(self, method: str, path: str, handler: Callable, webhook: bool, options: Dict[str, Any]) -> OperationBuilder:
        tags = self.tags + tuple(options.pop("tags", ()))
        security = options.pop("security", self.security)
        deprecated = options.pop("deprecated", False) or self.deprecated
        return OperationBuilder(
            method, path, handler,
            tags=tags,
            security=security,
            deprecated=deprecated,
            operation_id_prefix=self.operation_id_prefix,
            webhook=webhook,
            **options,
        )

    def operation(self, method: str, path: str, **options) -> Callable:
        def decorator(fn: Callable) -> Callable:
            self.operations.append(self._builder(method, join_path(self.prefix, path), fn, False, options))
            return fn
        return decorator

    def get(self, path: str, **options) -> Callable:
        return self.operation("get", path, **options)

    def post(self, path: str, **options) -> Callable:
        return self.operation("post", path, **options)

    def put(self, path: str, **options) -> Callable:
        return self.operation("put", path, **options)

    def patch(self, path: str, **options) -> Callable:
        return self.operation("patch", path, **options)

    def delete(self, path: str, **options) -> Callable:
        return self.operation("delete", path, **options)

    def webhook(self, name: str, method: str = "post", **options) -> Callable:
        """Declare an outgoing webhook. It is documented but never routed."""
        def decorator(fn: Callable) -> Callable:
            self.webhooks.append(self._builder(method, name, fn, True, options))
            return fn
        return decorator

"""
DocumentAssembler - merges operation groups into one document and dispatch table.

Usage:
    api = (
        DocumentAssembler("Users API", "1.0.0")
        .server("https://api.example.com")
        .security_scheme("apiKey", ApiKey("X-API-Key"))
        .tag("users", "User management")
        .include(users)
    )
    service = api.build()
    service.document.to_yaml()
    service.handle(ApiRequest.build("GET", "/users/42"))

build() is the single build phase: every schema is registered, every
operation validated, and the registry frozen. Any BuildError aborts it and
nothing is produced.
"""

import json
import logging
from dataclasses import dataclass, field
from functools import cached_property
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Set, Tuple

import yaml
from pydantic_core import to_jsonable_python

from .config import SchemaMode
from .dispatch import DispatchTable, Route, default_specificity
from .errors import ConflictingPathTemplate, DuplicateOperationId, DuplicatePathMethod
from .metadata import Contact, ExternalDocs, License, Server, Tag
from .operation import PLACEHOLDER, DispatchEntry, Operation, OperationGroup
from .request import ApiRequest
from .responses import EncodedResponse
from .schema.engine import SchemaEngine
from .schema.registry import Registry
from .security import SecurityScheme

logger = logging.getLogger('api.contracts.document')

OPENAPI_VERSION = "3.0.0"


@dataclass(frozen=True)
class Info:
    title: str
    version: str
    summary: Optional[str] = None
    description: Optional[str] = None
    terms_of_service: Optional[str] = None
    contact: Optional[Contact] = None
    license: Optional[License] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"title": self.title}
        if self.summary:
            out["summary"] = self.summary
        if self.description:
            out["description"] = self.description
        if self.terms_of_service:
            out["termsOfService"] = self.terms_of_service
        if self.contact is not None:
            out["contact"] = self.contact.to_dict()
        if self.license is not None:
            out["license"] = self.license.to_dict()
        out["version"] = self.version
        return out


@dataclass(frozen=True)
class Document:
    """The frozen OpenAPI document."""
    info: Info
    paths: Mapping[str, Mapping[str, Operation]]
    registry: Registry
    servers: Tuple[Server, ...] = ()
    security_schemes: Tuple[Tuple[str, SecurityScheme], ...] = ()
    tags: Tuple[Tag, ...] = ()
    webhooks: Mapping[str, Mapping[str, Operation]] = field(default_factory=lambda: MappingProxyType({}))
    external_docs: Optional[ExternalDocs] = None
    openapi: str = OPENAPI_VERSION

    @property
    def operations(self) -> List[Operation]:
        return [op for methods in self.paths.values() for op in methods.values()]

    def operation(self, operation_id: str) -> Optional[Operation]:
        for op in self.operations:
            if op.operation_id == operation_id:
                return op
        return None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"openapi": self.openapi, "info": self.info.to_dict()}
        if self.servers:
            out["servers"] = [s.to_dict() for s in self.servers]
        out["paths"] = {
            path: {method: op.to_dict() for method, op in methods.items()}
            for path, methods in self.paths.items()
        }
        if self.webhooks:
            out["webhooks"] = {
                name: {method: op.to_dict() for method, op in methods.items()}
                for name, methods in self.webhooks.items()
            }
        components: Dict[str, Any] = {}
        if len(self.registry):
            components["schemas"] = self.registry.to_dict()
        if self.security_schemes:
            components["securitySchemes"] = {name: s.to_dict() for name, s in self.security_schemes}
        if components:
            out["components"] = components
        if self.tags:
            out["tags"] = [t.to_dict() for t in self.tags]
        if self.external_docs is not None:
            out["externalDocs"] = self.external_docs.to_dict()
        return to_jsonable_python(out)

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), sort_keys=False, allow_unicode=True)


class ApiService:
    """A built service: the document plus the dispatch table that serves it."""

    def __init__(self, document: Document, dispatch: DispatchTable):
        self.document = document
        self.dispatch = dispatch

    def handle(self, request: ApiRequest) -> EncodedResponse:
        return self.dispatch.handle(request)

    @cached_property
    def spec(self) -> Dict[str, Any]:
        return self.document.to_dict()

    @cached_property
    def spec_json(self) -> str:
        return json.dumps(self.spec, indent=2, ensure_ascii=False)

    @cached_property
    def spec_yaml(self) -> str:
        return yaml.safe_dump(self.spec, sort_keys=False, allow_unicode=True)

    def summary(self) -> Dict[str, int]:
        return {
            "paths": len(self.document.paths),
            "operations": len(self.document.operations),
            "webhooks": sum(len(m) for m in self.document.webhooks.values()),
            "schemas": len(self.document.registry),
        }


class DocumentAssembler:

    def __init__(
        self,
        title: str,
        version: str,
        *,
        summary: Optional[str] = None,
        description: Optional[str] = None,
        terms_of_service: Optional[str] = None,
    ):
        self.title = title
        self.version = version
        self.info_summary = summary
        self.description = description
        self.terms_of_service = terms_of_service
        self._contact: Optional[Contact] = None
        self._license: Optional[License] = None
        self._external_docs: Optional[ExternalDocs] = None
        self._servers: List[Server] = []
        self._tags: Dict[str, Tag] = {}
        self._schemes: Dict[str, SecurityScheme] = {}
        self._groups: List[OperationGroup] = []
        self._types: List[Any] = []

    # -- declarations (chainable) ---------------------------------------------------

    def contact(self, name: Optional[str] = None, url: Optional[str] = None,
                email: Optional[str] = None) -> "DocumentAssembler":
        self._contact = Contact(name, url, email)
        return self

    def license(self, name: str, url: Optional[str] = None,
                identifier: Optional[str] = None) -> "DocumentAssembler":
        self._license = License(name, url, identifier)
        return self

    def server(self, url: str, description: Optional[str] = None) -> "DocumentAssembler":
        self._servers.append(Server(url, description))
        return self

    def tag(self, name: str, description: Optional[str] = None,
            external_docs: Optional[ExternalDocs] = None) -> "DocumentAssembler":
        self._tags[name] = Tag(name, description, external_docs)
        return self

    def external_docs(self, url: str, description: Optional[str] = None) -> "DocumentAssembler":
        self._external_docs = ExternalDocs(url, description)
        return self

    def security_scheme(self, name: str, scheme: SecurityScheme) -> "DocumentAssembler":
        self._schemes[name] = scheme
        return self

    def schema(self, tp: Any) -> "DocumentAssembler":
        """Publish a type under components even if no operation mentions it."""
        self._types.append(tp)
        return self

    def include(self, group: OperationGroup) -> "DocumentAssembler":
        self._groups.append(group)
        return self

    # -- build ----------------------------------------------------------------------

    def build(
        self,
        *,
        specificity: Callable[[Route], Any] = default_specificity,
        mode: Optional[SchemaMode] = None,
        request_id_header: Optional[str] = None,
        max_body_bytes: Optional[int] = None,
    ) -> ApiService:
        """
        Run the build phase.

        Raises:
            BuildError: Any declaration error; no document is produced
        """
        engine = SchemaEngine(Registry())
        for tp in self._types:
            engine.register(tp)

        paths: Dict[str, Dict[str, Operation]] = {}
        templates: Dict[str, str] = {}
        routes: Set[Tuple[str, str]] = set()
        entries: List[DispatchEntry] = []
        operation_ids = set()

        for group in self._groups:
            for builder in group.operations:
                # /users/{id} and /users/{user_id} are the same path
                erased = PLACEHOLDER.sub("{}", builder.path)
                existing = templates.setdefault(erased, builder.path)
                if (erased, builder.method) in routes:
                    raise DuplicatePathMethod(builder.path, builder.method)
                if existing != builder.path:
                    raise ConflictingPathTemplate(builder.path, existing)
                routes.add((erased, builder.method))

                operation, entry = builder.build(engine, self._schemes)
                if operation.operation_id in operation_ids:
                    raise DuplicateOperationId(operation.operation_id)
                operation_ids.add(operation.operation_id)
                paths.setdefault(operation.path, {})[operation.method] = operation
                entries.append(entry)

        webhooks: Dict[str, Dict[str, Operation]] = {}
        for group in self._groups:
            for builder in group.webhooks:
                if builder.method in webhooks.get(builder.path, {}):
                    raise DuplicatePathMethod(builder.path, builder.method)
                operation, _ = builder.build(engine, self._schemes)
                if operation.operation_id in operation_ids:
                    raise DuplicateOperationId(operation.operation_id)
                operation_ids.add(operation.operation_id)
                webhooks.setdefault(operation.path, {})[operation.method] = operation

        engine.registry.freeze()

        document = Document(
            info=Info(
                title=self.title,
                version=self.version,
                summary=self.info_summary,
                description=self.description,
                terms_of_service=self.terms_of_service,
                contact=self._contact,
                license=self._license,
            ),
            paths=_freeze(paths),
            registry=engine.registry,
            servers=tuple(self._servers),
            security_schemes=tuple(self._schemes.items()),
            tags=self._collect_tags(paths, webhooks),
            webhooks=_freeze(webhooks),
            external_docs=self._external_docs,
        )
        dispatch = DispatchTable(
            entries,
            specificity=specificity,
            mode=mode,
            request_id_header=request_id_header,
            max_body_bytes=max_body_bytes,
        )
        service = ApiService(document, dispatch)
        summary = service.summary()
        logger.info(
            f"Built '{self.title}' {self.version}: {summary['paths']} paths, "
            f"{summary['operations']} operations, {summary['schemas']} schemas"
        )
        return service

    def _collect_tags(self, *sections: Dict[str, Dict[str, Operation]]) -> Tuple[Tag, ...]:
        tags = dict(self._tags)
        for section in sections:
            for methods in section.values():
                for operation in methods.values():
                    for name in operation.tags:
                        if name not in tags:
                            tags[name] = Tag(name)
        return tuple(tags.values())


def _freeze(section: Dict[str, Dict[str, Operation]]) -> Mapping[str, Mapping[str, Operation]]:
    return MappingProxyType({key: MappingProxyType(dict(methods)) for key, methods in section.items()})

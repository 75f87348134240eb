"""
Error types.

Two disjoint families:

- BuildError: raised while a service is being assembled. Always fatal; the
  service is never constructed and nothing is served.
- RequestError: raised while a single request is extracted. Recovered per
  request and turned into a client-facing error envelope.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


# =============================================================================
# Build-time errors
# =============================================================================

class BuildError(Exception):
    """Base class for fatal errors detected while building a service."""


class NameConflict(BuildError):
    """Two structurally different schemas were registered under one name."""

    def __init__(self, name: str, existing: Any = None, incoming: Any = None):
        super().__init__(
            f"Schema name '{name}' is already registered with a different definition"
        )
        self.name = name
        self.existing = existing
        self.incoming = incoming


class RegistryFrozen(BuildError):
    """An insert was attempted after the build phase completed."""

    def __init__(self, name: str):
        super().__init__(f"Cannot register schema '{name}': registry is frozen")
        self.name = name


class UnsupportedType(BuildError):
    """A type annotation has no schema representation."""

    def __init__(self, tp: Any):
        super().__init__(f"Cannot derive a schema for type {tp!r}")
        self.type = tp


class PathParameterMismatch(BuildError):
    """Path template placeholders and path parameters disagree."""

    def __init__(self, path: str, missing: List[str], undeclared: List[str]):
        parts = []
        if missing:
            parts.append(f"placeholders without a path parameter: {', '.join(missing)}")
        if undeclared:
            parts.append(f"path parameters without a placeholder: {', '.join(undeclared)}")
        super().__init__(f"Path '{path}' mismatch ({'; '.join(parts)})")
        self.path = path
        self.missing = missing
        self.undeclared = undeclared


class DuplicateParameter(BuildError):
    """Two parameters of one operation share (name, location)."""

    def __init__(self, name: str, location: str, operation: Optional[str] = None):
        where = f" in operation '{operation}'" if operation else ""
        super().__init__(f"Duplicate {location} parameter '{name}'{where}")
        self.name = name
        self.location = location
        self.operation = operation


class UndeclaredSecurityScheme(BuildError):
    """An operation references a security scheme (or scope) that is not declared."""

    def __init__(self, scheme: str, operation: Optional[str] = None, scope: Optional[str] = None):
        where = f" (operation '{operation}')" if operation else ""
        if scope:
            message = f"Scope '{scope}' is not declared by security scheme '{scheme}'{where}"
        else:
            message = f"Security scheme '{scheme}' is not declared{where}"
        super().__init__(message)
        self.scheme = scheme
        self.operation = operation
        self.scope = scope


class DuplicatePathMethod(BuildError):
    """Two operations were registered for the same (path, method)."""

    def __init__(self, path: str, method: str):
        super().__init__(f"Operation {method.upper()} {path} is defined more than once")
        self.path = path
        self.method = method


class ConflictingPathTemplate(BuildError):
    """Two path templates differ only in their placeholder names."""

    def __init__(self, path: str, existing: str):
        super().__init__(f"Path {path} conflicts with {existing}; use the same placeholder names")
        self.path = path
        self.existing = existing


class DuplicateOperationId(BuildError):
    """Two operations share an operation id."""

    def __init__(self, operation_id: str):
        super().__init__(f"Operation id '{operation_id}' is used more than once")
        self.operation_id = operation_id


class InvalidStatusCode(BuildError):
    """A response status is neither a 3-digit code nor 'default'."""

    def __init__(self, status: Any):
        super().__init__(f"Invalid response status {status!r}")
        self.status = status


class InvalidOperation(BuildError):
    """An operation declaration is malformed (bad method, bad path, ...)."""


# =============================================================================
# Request-time errors
# =============================================================================

class ExtractionKind(Enum):
    MISSING = "missing"
    MALFORMED = "malformed"
    VALIDATION_FAILED = "validation_failed"


@dataclass(eq=False)
class RequestError(Exception):
    """Raised while handling one request; maps to an error envelope."""
    message: str
    status_code: int = 400
    code: str = "BAD_REQUEST"
    details: Dict[str, Any] = field(default_factory=dict)
    field: Optional[str] = None

    def __str__(self):
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for JSON serialization."""
        return {
            "message": self.message,
            "details": self.details,
        }


class ExtractionError(RequestError):
    """A parameter or body could not be extracted from the request."""

    def __init__(
        self,
        location: str,
        name: str,
        kind: ExtractionKind,
        detail: str = "",
        violations: Optional[List[Any]] = None,
    ):
        self.location = location
        self.name = name
        self.kind = kind
        self.violations = list(violations or [])

        if kind == ExtractionKind.MISSING:
            message = f"Missing required {location} parameter '{name}'"
            status_code, code = 400, "INVALID_PARAMS"
        elif kind == ExtractionKind.MALFORMED:
            message = f"Malformed {location} parameter '{name}'"
            status_code, code = 400, "INVALID_PARAMS"
        else:
            message = f"{len(self.violations)} validation error(s) in {location} '{name}'"
            status_code, code = 422, "VALIDATION_FAILED"
        if detail:
            message = f"{message}: {detail}"

        details: Dict[str, Any] = {"location": location, "kind": kind.value}
        if self.violations:
            details["violations"] = [v.to_dict() for v in self.violations]

        super().__init__(
            message=message,
            status_code=status_code,
            code=code,
            field=name,
            details=details,
        )


class UnsupportedMediaType(RequestError):
    """The request body's content type is not accepted by the operation."""

    def __init__(self, content_type: Optional[str], accepted: List[str]):
        received = content_type or "<none>"
        super().__init__(
            message=f"Unsupported content type '{received}'",
            status_code=415,
            code="UNSUPPORTED_MEDIA_TYPE",
            details={"received": content_type, "accepted": list(accepted)},
        )
        self.content_type = content_type
        self.accepted = list(accepted)


class PayloadTooLarge(RequestError):
    def __init__(self, size: int, limit: int):
        super().__init__(
            message=f"Request body of {size} bytes exceeds the {limit} byte limit",
            status_code=413,
            code="PAYLOAD_TOO_LARGE",
            details={"size": size, "limit": limit},
        )


class NotFound(RequestError):
    """No route matched the request path."""

    def __init__(self, path: str):
        super().__init__(
            message=f"No operation matches path '{path}'",
            status_code=404,
            code="NOT_FOUND",
        )
        self.path = path


class MethodNotAllowed(RequestError):
    """The path matched but no operation is defined for the method."""

    def __init__(self, method: str, allowed: List[str]):
        super().__init__(
            message=f"Method {method} is not allowed",
            status_code=405,
            code="METHOD_NOT_ALLOWED",
            details={"allowed": list(allowed)},
        )
        self.method = method
        self.allowed = list(allowed)

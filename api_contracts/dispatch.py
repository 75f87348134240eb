"""
Dispatch table - runtime matching of requests to operations.

Routing:
    A route matches when its segment count equals the request path's and
    every literal segment matches. Among matching routes the one with the
    highest specificity that defines the request method wins; the default
    score is (literal segment count, literal prefix length), so /users/me
    beats /users/{id}. No matching route -> 404; matching routes but none
    for the method -> 405 with an Allow header.

Per request:
    1. Match the route (404 / 405)
    2. Run the extractor chain in declared order (first failure short-circuits,
       the handler is never called)
    3. Call the handler (an escaping exception becomes 500 INTERNAL_ERROR)
    4. Encode the realized response variant
    5. Check the outgoing value against its constraints (STRICT: 500
       RESPONSE_SCHEMA_MISMATCH, WARN: log and send)
"""

import logging
import re
import time
import uuid
from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple
from urllib.parse import unquote

from .config import Config, SchemaMode
from .errors import MethodNotAllowed, NotFound, RequestError
from .extractors import ExtractionContext
from .operation import PLACEHOLDER, DispatchEntry
from .request import ApiRequest
from .responses import EncodedResponse
from .serializers import envelope_bytes, error_envelope, request_error_envelope
from .validation import Violation

logger = logging.getLogger('api.contracts.dispatch')


def split_segments(path: str) -> List[str]:
    stripped = path.strip("/")
    return stripped.split("/") if stripped else []


@dataclass(frozen=True)
class Route:
    """One compiled path template."""
    template: str
    segments: Tuple[Any, ...]
    literal_count: int
    literal_prefix_len: int

    @classmethod
    def compile(cls, template: str) -> "Route":
        compiled = []
        literals = 0
        for segment in split_segments(template):
            if not PLACEHOLDER.search(segment):
                compiled.append(segment)
                literals += 1
                continue
            # "{id}" or mixed forms like "{name}.json"
            pattern, last = [], 0
            for match in PLACEHOLDER.finditer(segment):
                pattern.append(re.escape(segment[last:match.start()]))
                pattern.append(f"(?P<{_group(match.group(1))}>.+?)")
                last = match.end()
            pattern.append(re.escape(segment[last:]))
            compiled.append((re.compile("^" + "".join(pattern) + "$"), PLACEHOLDER.findall(segment)))
        prefix = template.split("{", 1)[0]
        return cls(template, tuple(compiled), literals, len(prefix))

    def match(self, segments: List[str]) -> Optional[Dict[str, str]]:
        if len(segments) != len(self.segments):
            return None
        params: Dict[str, str] = {}
        for expected, actual in zip(self.segments, segments):
            if isinstance(expected, str):
                if unquote(actual) != expected:
                    return None
                continue
            regex, names = expected
            found = regex.match(actual)
            if found is None:
                return None
            for name in names:
                params[name] = unquote(found.group(_group(name)))
        return params


def _group(name: str) -> str:
    # Placeholder names may contain characters not allowed in regex group names
    return "p_" + "".join(c if c.isalnum() else f"_{ord(c):x}_" for c in name)


def default_specificity(route: Route) -> Tuple[int, int]:
    return (route.literal_count, route.literal_prefix_len)


class DispatchTable:
    """Immutable after construction; shared by all requests."""

    def __init__(
        self,
        entries: Iterable[DispatchEntry],
        specificity: Callable[[Route], Any] = default_specificity,
        mode: Optional[SchemaMode] = None,
        request_id_header: Optional[str] = None,
        max_body_bytes: Optional[int] = None,
    ):
        grouped: Dict[str, Dict[str, DispatchEntry]] = {}
        for entry in entries:
            grouped.setdefault(entry.path, {})[entry.method.upper()] = entry
        routes = [(Route.compile(path), MappingProxyType(methods)) for path, methods in grouped.items()]
        # Most specific first; ties keep insertion order
        routes.sort(key=lambda item: specificity(item[0]), reverse=True)
        self._routes: Tuple[Tuple[Route, Mapping[str, DispatchEntry]], ...] = tuple(routes)
        self.specificity = specificity
        self.mode = mode if mode is not None else Config.CONTRACT_MODE
        self.request_id_header = request_id_header or Config.REQUEST_ID_HEADER
        self.max_body_bytes = max_body_bytes if max_body_bytes is not None else Config.MAX_BODY_BYTES

    @property
    def routes(self) -> List[str]:
        return [route.template for route, _ in self._routes]

    def __len__(self) -> int:
        return sum(len(methods) for _, methods in self._routes)

    def match(self, method: str, path: str) -> Tuple[DispatchEntry, Dict[str, str]]:
        """
        Find the operation for (method, path).

        Raises:
            NotFound: No route matches the path
            MethodNotAllowed: Routes match but none defines the method
        """
        method = method.upper()
        segments = split_segments(path)
        allowed: List[str] = []
        matched = False
        for route, methods in self._routes:
            params = route.match(segments)
            if params is None:
                continue
            matched = True
            entry = methods.get(method)
            if entry is not None:
                return entry, params
            allowed.extend(m for m in methods if m not in allowed)
        if not matched:
            raise NotFound(path)
        raise MethodNotAllowed(method, sorted(allowed))

    # -- request handling ---------------------------------------------------------

    def handle(self, request: ApiRequest) -> EncodedResponse:
        start_time = time.perf_counter()
        request_id = request.headers.get(self.request_id_header) or str(uuid.uuid4())

        try:
            entry, path_params = self.match(request.method, request.path)
        except RequestError as e:
            logger.info(
                f"No operation for {request.method} {request.path}: {e.code}",
                extra={"event": "route_miss", "request_id": request_id},
            )
            return self._request_error(e, request_id)

        ctx = ExtractionContext(
            request=request,
            path_params=path_params,
            request_id=request_id,
            max_body_bytes=self.max_body_bytes,
        )
        operation_id = entry.operation.operation_id
        try:
            for extractor in entry.extractors:
                ctx.values[extractor.arg] = extractor.extract(request, ctx)
        except RequestError as e:
            logger.info(
                f"Rejected request: operation={operation_id} code={e.code} message={e.message}",
                extra={
                    "event": "extraction_failed",
                    "operation": operation_id,
                    "request_id": request_id,
                    "details": e.details,
                },
            )
            return self._request_error(e, request_id)

        try:
            result = entry.handler(**ctx.values)
            response = entry.responses.encode(result)
            violations = entry.responses.check(result)
        except Exception as e:
            logger.exception(
                f"Handler error for {operation_id}: {e}",
                extra={"event": "handler_error", "operation": operation_id, "request_id": request_id},
            )
            return self._error("INTERNAL_ERROR", "An unexpected error occurred", 500, request_id)

        if violations:
            if self.mode == SchemaMode.STRICT:
                return self._error(
                    "RESPONSE_SCHEMA_MISMATCH",
                    "Response does not match contract",
                    500,
                    request_id,
                    details={"violations": [v.to_dict() for v in violations]},
                )
            _log_violation(operation_id, violations, request_id)

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        logger.debug(f"{request.method} {request.path} -> {response.status} ({operation_id}, {elapsed_ms:.2f}ms)")
        return replace(response, headers=response.headers + ((self.request_id_header, request_id),))

    def _request_error(self, error: RequestError, request_id: str) -> EncodedResponse:
        extra_headers: Tuple[Tuple[str, str], ...] = ()
        if isinstance(error, MethodNotAllowed):
            extra_headers = (("Allow", ", ".join(error.allowed)),)
        return EncodedResponse(
            status=error.status_code,
            body=envelope_bytes(request_error_envelope(error, request_id)),
            content_type="application/json",
            headers=extra_headers + ((self.request_id_header, request_id),),
        )

    def _error(
        self,
        code: str,
        message: str,
        status_code: int,
        request_id: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> EncodedResponse:
        return EncodedResponse(
            status=status_code,
            body=envelope_bytes(error_envelope(code, message, request_id, details=details)),
            content_type="application/json",
            headers=((self.request_id_header, request_id),),
        )


def _log_violation(operation_id: str, violations: List[Violation], request_id: str) -> None:
    """Log a response contract violation for observability."""
    logger.warning(
        f"Contract violation: operation={operation_id} stage=response "
        f"request_id={request_id} violations={len(violations)}",
        extra={
            "event": "contract_violation",
            "operation": operation_id,
            "stage": "response",
            "request_id": request_id,
            "details": [v.to_dict() for v in violations],
        },
    )

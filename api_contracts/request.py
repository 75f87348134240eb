"""
ApiRequest - the transport-neutral view of one incoming request.

The engine never touches a socket. A transport adapter (see flask_adapter.py)
hands over method, path, raw query string, headers and the already delivered
body; everything the extractors need is derived from those.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple, Union
from urllib.parse import parse_qsl

from werkzeug.datastructures import Headers, MultiDict
from werkzeug.http import parse_cookie, parse_options_header


@dataclass
class ApiRequest:
    method: str
    path: str
    query: MultiDict = field(default_factory=MultiDict)
    headers: Headers = field(default_factory=Headers)
    cookies: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @classmethod
    def build(
        cls,
        method: str,
        path: str,
        query_string: Union[str, bytes] = "",
        headers: Optional[Union[Mapping[str, str], Headers]] = None,
        body: Union[str, bytes] = b"",
        cookies: Optional[Mapping[str, str]] = None,
    ) -> "ApiRequest":
        """
        Build a request from raw parts.

        Cookies are read from the Cookie header unless given explicitly.
        """
        if isinstance(query_string, bytes):
            query_string = query_string.decode("latin-1")
        if isinstance(body, str):
            body = body.encode("utf-8")
        header_map = headers if isinstance(headers, Headers) else Headers(list((headers or {}).items()))
        if cookies is None:
            cookies = dict(parse_cookie(header_map.get("Cookie", "")))
        return cls(
            method=method.upper(),
            path=path or "/",
            query=MultiDict(parse_qsl(query_string, keep_blank_values=True)),
            headers=header_map,
            cookies=dict(cookies),
            body=body,
        )

    @classmethod
    def from_werkzeug(cls, request: Any) -> "ApiRequest":
        """Adapt a Flask/werkzeug request. The body is read in full."""
        return cls(
            method=request.method.upper(),
            path=request.path,
            query=MultiDict(request.args.items(multi=True)),
            headers=Headers(request.headers.items()),
            cookies=dict(request.cookies),
            body=request.get_data(cache=True),
        )

    @property
    def mimetype(self) -> str:
        return self.content_type_options[0]

    @property
    def content_type_options(self) -> Tuple[str, Dict[str, str]]:
        mimetype, options = parse_options_header(self.headers.get("Content-Type", ""))
        return mimetype.lower(), options

    @property
    def content_length(self) -> int:
        declared = self.headers.get("Content-Length")
        if declared is not None:
            try:
                return int(declared)
            except ValueError:
                pass
        return len(self.body)

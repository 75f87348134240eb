"""
Security scheme declarations.

Schemes are declared once on the document and referenced by name from
operations. Only the declaration is modelled here; checking credentials is
the transport's job.

Usage:
    api.security_scheme("apiKey", ApiKey("X-API-Key", "header"))
    api.security_scheme("oauth", OAuth2(authorization_code=OAuthFlow(
        scopes={"read": "Read access", "write": "Write access"},
        authorization_url="https://auth.example.com/authorize",
        token_url="https://auth.example.com/token",
    )))

    @users.get("/users", security=[{"oauth": ["read"]}])
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence, Tuple, Union

API_KEY_LOCATIONS = ("query", "header", "cookie")


class SecurityScheme(ABC):
    """Base class; to_dict() renders the OpenAPI security scheme object."""

    description: Optional[str] = None

    def scopes(self) -> Optional[Tuple[str, ...]]:
        """Declared scopes, or None when the scheme has no notion of scopes."""
        return None

    @abstractmethod
    def to_dict(self) -> Dict[str, Any]:
        pass

    def _with_description(self, out: Dict[str, Any]) -> Dict[str, Any]:
        if self.description:
            out["description"] = self.description
        return out


@dataclass(frozen=True)
class ApiKey(SecurityScheme):
    name: str
    location: str = "header"
    description: Optional[str] = None

    def __post_init__(self):
        if self.location not in API_KEY_LOCATIONS:
            raise ValueError(f"API key location must be one of {API_KEY_LOCATIONS}, got '{self.location}'")

    def to_dict(self):
        return self._with_description({"type": "apiKey", "name": self.name, "in": self.location})


@dataclass(frozen=True)
class HttpBasic(SecurityScheme):
    description: Optional[str] = None

    def to_dict(self):
        return self._with_description({"type": "http", "scheme": "basic"})


@dataclass(frozen=True)
class HttpBearer(SecurityScheme):
    bearer_format: Optional[str] = None
    description: Optional[str] = None

    def to_dict(self):
        out = {"type": "http", "scheme": "bearer"}
        if self.bearer_format:
            out["bearerFormat"] = self.bearer_format
        return self._with_description(out)


@dataclass(frozen=True)
class OAuthFlow:
    scopes: Mapping[str, str] = field(default_factory=dict)
    authorization_url: Optional[str] = None
    token_url: Optional[str] = None
    refresh_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        if self.authorization_url:
            out["authorizationUrl"] = self.authorization_url
        if self.token_url:
            out["tokenUrl"] = self.token_url
        if self.refresh_url:
            out["refreshUrl"] = self.refresh_url
        out["scopes"] = dict(self.scopes)
        return out


@dataclass(frozen=True)
class OAuth2(SecurityScheme):
    implicit: Optional[OAuthFlow] = None
    password: Optional[OAuthFlow] = None
    client_credentials: Optional[OAuthFlow] = None
    authorization_code: Optional[OAuthFlow] = None
    description: Optional[str] = None

    def __post_init__(self):
        if not self._flows():
            raise ValueError("OAuth2 needs at least one flow")
        if self.implicit is not None and not self.implicit.authorization_url:
            raise ValueError("implicit flow requires authorization_url")
        if self.authorization_code is not None and not (
            self.authorization_code.authorization_url and self.authorization_code.token_url
        ):
            raise ValueError("authorization_code flow requires authorization_url and token_url")
        for flow in (self.password, self.client_credentials):
            if flow is not None and not flow.token_url:
                raise ValueError("password and client_credentials flows require token_url")

    def _flows(self) -> Dict[str, OAuthFlow]:
        flows = {
            "implicit": self.implicit,
            "password": self.password,
            "clientCredentials": self.client_credentials,
            "authorizationCode": self.authorization_code,
        }
        return {name: flow for name, flow in flows.items() if flow is not None}

    def scopes(self) -> Tuple[str, ...]:
        names = []
        for flow in self._flows().values():
            for scope in flow.scopes:
                if scope not in names:
                    names.append(scope)
        return tuple(names)

    def to_dict(self):
        return self._with_description({
            "type": "oauth2",
            "flows": {name: flow.to_dict() for name, flow in self._flows().items()},
        })


@dataclass(frozen=True)
class OpenIdConnect(SecurityScheme):
    url: str
    description: Optional[str] = None

    def to_dict(self):
        return self._with_description({"type": "openIdConnect", "openIdConnectUrl": self.url})


SecuritySpec = Union[str, Mapping[str, Sequence[str]]]


@dataclass(frozen=True)
class SecurityRequirement:
    """
    One alternative in an operation's security list.

    All schemes of one requirement apply together; separate requirements are
    alternatives.
    """
    schemes: Tuple[Tuple[str, Tuple[str, ...]], ...]

    @classmethod
    def parse(cls, spec: SecuritySpec) -> "SecurityRequirement":
        if isinstance(spec, SecurityRequirement):
            return spec
        if isinstance(spec, str):
            return cls(((spec, ()),))
        return cls(tuple((name, tuple(scopes)) for name, scopes in spec.items()))

    @classmethod
    def parse_all(cls, specs: Optional[Iterable[SecuritySpec]]) -> Tuple["SecurityRequirement", ...]:
        return tuple(cls.parse(spec) for spec in (specs or ()))

    def to_dict(self) -> Dict[str, Any]:
        return {name: list(scopes) for name, scopes in self.schemes}

"""
Document metadata value objects (info contact/license, servers, tags, docs links).
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional


def _compact(out: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in out.items() if v is not None}


@dataclass(frozen=True)
class ExternalDocs:
    url: str
    description: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _compact({"url": self.url, "description": self.description})


@dataclass(frozen=True)
class Contact:
    name: Optional[str] = None
    url: Optional[str] = None
    email: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _compact({"name": self.name, "url": self.url, "email": self.email})


@dataclass(frozen=True)
class License:
    name: str
    url: Optional[str] = None
    identifier: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _compact({"name": self.name, "identifier": self.identifier, "url": self.url})


@dataclass(frozen=True)
class Server:
    url: str
    description: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _compact({"url": self.url, "description": self.description})


@dataclass(frozen=True)
class Tag:
    name: str
    description: Optional[str] = None
    external_docs: Optional[ExternalDocs] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"name": self.name}
        if self.description:
            out["description"] = self.description
        if self.external_docs is not None:
            out["externalDocs"] = self.external_docs.to_dict()
        return out

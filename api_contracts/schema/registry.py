"""
Schema Registry - name -> definition store for one build.

Each build owns its own Registry (there is no module-level instance). Names
are reserved before a definition's fields are described so recursive types
can refer to themselves; the reservation is replaced by the finished
definition. Once the build completes the registry is frozen and may be read
from any number of threads without locking.
"""

import logging
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Mapping, Optional, Set

from ..errors import NameConflict, RegistryFrozen
from .objects import SchemaObject

logger = logging.getLogger('api.contracts.registry')


class Registry:

    def __init__(self):
        self._schemas: Dict[str, SchemaObject] = {}
        self._reserved: Set[str] = set()
        self._frozen = False

    # -- mutators (build phase only) ------------------------------------------

    def reserve(self, name: str) -> None:
        """Mark name as in progress. No-op if already defined or reserved."""
        self._check_writable(name)
        if name in self._schemas:
            return
        self._reserved.add(name)

    def release(self, name: str) -> None:
        """Drop a reservation that will never be completed."""
        self._reserved.discard(name)

    def insert(self, name: str, schema: SchemaObject) -> None:
        """
        Insert a definition.

        Succeeds silently when the name is new, reserved, or already holds an
        identical definition.

        Raises:
            NameConflict: If the name holds a different definition
            RegistryFrozen: If the build phase has completed
        """
        self._check_writable(name)
        existing = self._schemas.get(name)
        if existing is not None:
            if existing != schema:
                raise NameConflict(name, existing, schema)
            return
        self._schemas[name] = schema
        self._reserved.discard(name)
        logger.debug(f"schema registered: {name} ({schema.kind.value})")

    def freeze(self) -> None:
        """End the build phase. Pending reservations are a bug in the caller."""
        if self._reserved:
            pending = ", ".join(sorted(self._reserved))
            raise RuntimeError(f"Cannot freeze registry with unfinished schemas: {pending}")
        if not self._frozen:
            self._frozen = True
            self._schemas = dict(sorted(self._schemas.items()))
            logger.debug(f"registry frozen with {len(self._schemas)} schema(s)")

    # -- queries ----------------------------------------------------------------

    @property
    def frozen(self) -> bool:
        return self._frozen

    def lookup(self, name: str) -> Optional[SchemaObject]:
        return self._schemas.get(name)

    def is_reserved(self, name: str) -> bool:
        return name in self._reserved

    def names(self) -> List[str]:
        return list(self._schemas.keys())

    def snapshot(self) -> Mapping[str, SchemaObject]:
        """Read-only view of the definitions."""
        return MappingProxyType(self._schemas)

    def to_dict(self) -> Dict[str, Any]:
        return {name: schema.to_dict() for name, schema in sorted(self._schemas.items())}

    def __contains__(self, name: str) -> bool:
        return name in self._schemas

    def __iter__(self) -> Iterator[str]:
        return iter(self._schemas)

    def __len__(self) -> int:
        return len(self._schemas)

    def _check_writable(self, name: str) -> None:
        if self._frozen:
            raise RegistryFrozen(name)

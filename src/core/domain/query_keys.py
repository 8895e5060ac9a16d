"""Claves de cache etiquetadas por dominio.

Por qué una clave etiquetada y no tuplas libres:
- Cada dominio de datos tiene su `QueryDomain`; no se puede armar una clave
  sin él, así dos páginas ya no chocan por una tupla accidental.
- La invalidación por prefijo funciona por dominio (`QueryKey(domain)`
  coincide con todas sus claves) sin manipular strings.
"""

from __future__ import annotations

from collections.abc import Hashable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from urllib.parse import quote


class QueryDomain(str, Enum):
    """Todo recurso cacheable, nombrado por la ruta REST de su colección."""

    AUTH_USER = "/api/auth/user"
    AUTH_STAFF_USER = "/api/auth/staff-user"
    TENANTS = "/api/tenants"
    RESIDENTS = "/api/residents"
    MEALS_MEDICATION = "/api/meals-medication"
    EXCRETION_RECORDS = "/api/excretion-records"
    VITAL_SIGNS = "/api/vital-signs"
    BATHING_RECORDS = "/api/bathing-records"
    WEIGHT_RECORDS = "/api/weight-records"
    NURSING_RECORDS = "/api/nursing-records"
    MASTER_CATEGORIES = "/api/master-categories"
    MASTER_SETTINGS = "/api/master-settings"
    STAFF_NOTICES = "/api/staff-notices"
    STAFF_NOTICE_READ_STATUS = "/api/staff-notices/read-status"
    STAFF_NOTICES_UNREAD_COUNT = "/api/staff-notices/unread-count"

    @property
    def path(self) -> str:
        return self.value


@dataclass(frozen=True)
class QueryKey:
    domain: QueryDomain
    params: tuple[Hashable, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if not isinstance(self.domain, QueryDomain):
            raise TypeError(f"QueryKey domain must be a QueryDomain, got {self.domain!r}")
        if not isinstance(self.params, tuple):
            object.__setattr__(self, "params", tuple(self.params))
        for value in self.params:
            if not isinstance(value, Hashable):
                raise TypeError(f"QueryKey params must be hashable, got {value!r}")

    @classmethod
    def of(cls, domain: QueryDomain, *params: Any) -> "QueryKey":
        return cls(domain, tuple(params))

    def matches(self, prefix: "QueryKey") -> bool:
        """True si `prefix` es esta clave o un ancestro suyo."""

        if prefix.domain is not self.domain:
            return False
        n = len(prefix.params)
        return self.params[:n] == prefix.params

    def path(self) -> str:
        """URL por defecto: ruta del dominio unida a sus parámetros."""

        parts = [self.domain.path]
        parts.extend(quote(str(p), safe="") for p in self.params if p is not None)
        return "/".join(parts)

    def __str__(self) -> str:
        return repr((self.domain.path, *self.params))

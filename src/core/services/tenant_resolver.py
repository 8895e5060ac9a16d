"""Resolución del tenant activo.

Se deriva de lo siguiente, y gana la primera coincidencia:
1. la ruta actual (`/tenant/{id}/...`), que además se persiste en el almacén
   de sesión para que las consultas sin URL sigan en el mismo tenant;
2. el almacén de sesión (`selectedTenantId`);
3. el usuario autenticado en cache (se prefiere el login de staff);
4. nada: el entorno host/padre (`None`).

Solo el paso 1 escribe.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from core.domain.query_keys import QueryDomain, QueryKey
from core.interfaces.storage import SessionStore

if TYPE_CHECKING:
    from core.services.query_cache import QueryCache

logger = logging.getLogger(__name__)

SELECTED_TENANT_KEY = "selectedTenantId"

_TENANT_PATH_RE = re.compile(r"^/tenant/([^/?#]+)")

# Con ambas en cache, gana la sesión de staff.
_USER_KEYS = (
    QueryKey(QueryDomain.AUTH_STAFF_USER),
    QueryKey(QueryDomain.AUTH_USER),
)


@dataclass
class Location:
    """Ruta actual del cliente (el `window.location` del proceso)."""

    path: str = "/"


def tenant_id_from_path(path: str | None) -> str | None:
    if not path:
        return None
    match = _TENANT_PATH_RE.match(path)
    if not match:
        return None
    return match.group(1) or None


def _tenant_of(user: Any) -> str | None:
    if not isinstance(user, dict):
        return None
    value = user.get("tenantId")
    if isinstance(value, str) and value:
        return value
    return None


class TenantResolver:
    def __init__(
        self,
        *,
        location: Location,
        storage: SessionStore,
        cache: "QueryCache | None" = None,
    ) -> None:
        self._location = location
        self._storage = storage
        self._cache = cache

    def attach_cache(self, cache: "QueryCache") -> None:
        self._cache = cache

    def resolve_tenant_id(self) -> str | None:
        from_path = tenant_id_from_path(self._location.path)
        if from_path is not None:
            if self._storage.get_item(SELECTED_TENANT_KEY) != from_path:
                logger.debug("Persisting tenant %s from path %s", from_path, self._location.path)
                self._storage.set_item(SELECTED_TENANT_KEY, from_path)
            return from_path
        return self._resolve_without_path()

    def peek_tenant_id(self) -> str | None:
        """Misma precedencia que `resolve_tenant_id`, sin persistir nada."""

        from_path = tenant_id_from_path(self._location.path)
        if from_path is not None:
            return from_path
        return self._resolve_without_path()

    def _resolve_without_path(self) -> str | None:
        stored = self._storage.get_item(SELECTED_TENANT_KEY)
        if stored:
            return stored

        if self._cache is not None:
            for key in _USER_KEYS:
                entry = self._cache.get(key)
                tenant = _tenant_of(entry.data) if entry is not None else None
                if tenant:
                    return tenant
        return None

    def path_for(self, path: str) -> str:
        """Antepone `/tenant/{id}` a `path` si hay un tenant activo."""

        if not path.startswith("/"):
            path = "/" + path
        tenant_id = self.peek_tenant_id()
        if tenant_id is None or tenant_id_from_path(path) is not None:
            return path
        if path == "/":
            return f"/tenant/{tenant_id}/"
        return f"/tenant/{tenant_id}{path}"

    def forget(self) -> None:
        """Borra la selección persistida (logout)."""

        self._storage.remove_item(SELECTED_TENANT_KEY)

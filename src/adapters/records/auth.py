"""Consultas de autenticación y transiciones de sesión.

Hay dos identidades independientes: el login de staff (por tenant) y el login
genérico de usuario (puede abarcar varios tenants). Con ambas gana la de staff;
la consulta genérica se omite mientras haya un staff en cache.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from core.domain.errors import CareLogError, TenantAccessError
from core.domain.models import AuthSession, AuthUser
from core.domain.query_keys import QueryDomain, QueryKey
from core.services.query_cache import QueryOptions
from core.services.tenant_resolver import tenant_id_from_path

if TYPE_CHECKING:
    from adapters.client import CareClient

logger = logging.getLogger(__name__)

USER_KEY = QueryKey(QueryDomain.AUTH_USER)
STAFF_USER_KEY = QueryKey(QueryDomain.AUTH_STAFF_USER)

AUTH_OPTIONS = QueryOptions(
    stale_time=300.0,
    gc_time=600.0,
    refetch_on_mount=False,
    refetch_on_window_focus=False,
    refetch_on_reconnect=False,
    retry=False,
)

GENERIC_LOGOUT_PATH = "/api/logout"


def _user(data: Any) -> AuthUser | None:
    if not isinstance(data, dict) or not data.get("id"):
        return None
    return AuthUser.model_validate(data)


class AuthRepository:
    def __init__(self, client: "CareClient") -> None:
        self._client = client

    async def _lookup(self, key: QueryKey) -> Any:
        # Sin sesión es una respuesta normal, no un error.
        fn = self._client.api.query_fn(key.domain.path, on_401="return_null")
        return await self._client.cache.fetch(key, fn, AUTH_OPTIONS)

    async def current_user(self) -> AuthUser | None:
        return _user(await self._lookup(USER_KEY))

    async def staff_user(self) -> AuthUser | None:
        return _user(await self._lookup(STAFF_USER_KEY))

    async def session(self) -> AuthSession:
        cache = self._client.cache
        staff = _user(cache.get_data(STAFF_USER_KEY))
        user = None
        if staff is None:
            user = await self.current_user()
            if user is None:
                staff = await self.staff_user()

        if staff is not None:
            return AuthSession(user=staff, auth_type="staff", tenant_id=staff.tenant_id)
        if user is not None:
            return AuthSession(
                user=user,
                auth_type="user",
                tenant_id=user.tenant_id,
                has_multiple_tenants=len(user.tenants) > 1,
            )
        return AuthSession()

    async def staff_login(self, staff_id: str, password: str) -> AuthUser:
        data = await self._client.api.post(
            "/api/auth/staff-login",
            {"staffId": staff_id, "password": password},
        )
        user = _user(data)
        if user is None:
            raise CareLogError("Login response did not contain a staff user.")
        self._client.cache.set(STAFF_USER_KEY, data)
        logger.info("Signed in as staff %s", user.display_name)
        return user

    async def logout(self) -> str:
        """Cierra la sesión y devuelve la ruta a la que ir.

        El estado local (tenant, cache, cookies) se descarta aunque falle la
        llamada al servidor.
        """

        client = self._client
        session = await self.session()
        if not session.is_staff:
            client.reset_session()
            return GENERIC_LOGOUT_PATH

        path_tenant = tenant_id_from_path(client.location.path)
        redirect = None
        try:
            data = await client.api.post("/api/auth/staff-logout")
        except CareLogError as exc:
            logger.warning("Staff logout failed, clearing local session anyway: %s", exc)
        else:
            if isinstance(data, dict) and isinstance(data.get("redirect"), str):
                redirect = data["redirect"]
        client.reset_session()

        if redirect:
            return redirect
        if path_tenant:
            return f"/tenant/{path_tenant}/staff-login"
        return "/staff-login"

    async def switch_tenant(self, tenant_id: str) -> None:
        session = await self.session()
        if session.user is None:
            raise TenantAccessError("Authentication required.")
        if not session.user.can_access(tenant_id):
            raise TenantAccessError(f"No access to tenant {tenant_id}.")

        await self._client.api.post("/api/auth/switch-tenant", {"tenantId": tenant_id})
        self._client.cache.invalidate(STAFF_USER_KEY)
        self._client.cache.invalidate(USER_KEY)
        logger.info("Switched to tenant %s", tenant_id)

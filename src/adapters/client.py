"""Cliente configurado.

Por qué un objeto y no globales:
- Páginas y comandos reciben un `CareClient` (resolver de tenant, wrapper de
  requests, cache y notificador juntos).
- Un test arma uno sobre `httpx.MockTransport` y un `MemoryNotifier`.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, TypeVar

import httpx

from adapters.http_client import ApiClient, build_async_client
from adapters.session_store import MemorySessionStore
from core.config import AppSettings
from core.interfaces.notifier import Notifier
from core.interfaces.storage import SessionStore
from core.services.edit_queue import RecordEditQueue
from core.services.optimistic import MutationPlan, OptimisticMutation
from core.services.query_cache import QueryCache, QueryOptions
from core.services.tenant_resolver import Location, TenantResolver

logger = logging.getLogger(__name__)

T = TypeVar("T")

SESSION_COOKIES_KEY = "sessionCookies"


@dataclass
class CareClient:
    settings: AppSettings
    location: Location
    storage: SessionStore
    cache: QueryCache
    resolver: TenantResolver
    api: ApiClient
    notifier: Notifier | None = None
    edits: RecordEditQueue = field(default_factory=RecordEditQueue)
    persist_cookies: bool = False

    def __post_init__(self) -> None:
        self._active_tenant = self.resolver.resolve_tenant_id()

    @property
    def tenant_id(self) -> str | None:
        return self.resolver.peek_tenant_id()

    def navigate(self, path: str) -> str | None:
        """Navega a `path`; cambiar de tenant vacía el cache."""

        self.location.path = path
        tenant_id = self.resolver.resolve_tenant_id()
        if tenant_id != self._active_tenant:
            logger.info("Tenant changed %s -> %s; clearing query cache", self._active_tenant, tenant_id)
            self.cache.clear()
            self.edits.forget()
            self._active_tenant = tenant_id
        return tenant_id

    def reset_session(self) -> None:
        """Olvida tenant, datos en cache y credenciales (logout)."""

        self.storage.clear()
        self.cache.clear()
        self.edits.forget()
        self.api.http.cookies.clear()
        self._active_tenant = self.resolver.peek_tenant_id()

    def mutation(self, plan: MutationPlan[T]) -> OptimisticMutation[T]:
        return OptimisticMutation(self.cache, plan, notifier=self.notifier)

    async def aclose(self) -> None:
        if self.persist_cookies:
            jar = {cookie.name: cookie.value for cookie in self.api.http.cookies.jar}
            if jar:
                self.storage.set_item(SESSION_COOKIES_KEY, json.dumps(jar))
        await self.api.http.aclose()

    async def __aenter__(self) -> "CareClient":
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()


def _stored_cookies(storage: SessionStore) -> dict[str, str] | None:
    raw = storage.get_item(SESSION_COOKIES_KEY)
    if not raw:
        return None
    try:
        data: Any = json.loads(raw)
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    return {str(k): str(v) for k, v in data.items()}


def build_care_client(
    settings: AppSettings | None = None,
    *,
    path: str = "/",
    storage: SessionStore | None = None,
    notifier: Notifier | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    cache: QueryCache | None = None,
    persist_cookies: bool = False,
) -> CareClient:
    settings = settings or AppSettings()
    storage = storage if storage is not None else MemorySessionStore()
    location = Location(path=path)
    cache = cache or QueryCache(defaults=QueryOptions.from_settings(settings))
    resolver = TenantResolver(location=location, storage=storage, cache=cache)
    http = build_async_client(
        settings,
        cookies=_stored_cookies(storage) if persist_cookies else None,
        transport=transport,
    )
    api = ApiClient(http, resolver, verbose=settings.verbose_requests)
    return CareClient(
        settings=settings,
        location=location,
        storage=storage,
        cache=cache,
        resolver=resolver,
        api=api,
        notifier=notifier,
        persist_cookies=persist_cookies,
    )

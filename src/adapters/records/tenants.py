"""Directorio de tenants (gestión del entorno host)."""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.domain.errors import ApiError
from core.domain.models import Tenant
from core.domain.query_keys import QueryDomain, QueryKey

if TYPE_CHECKING:
    from adapters.client import CareClient


class TenantRepository:
    def __init__(self, client: "CareClient") -> None:
        self._client = client

    async def list(self) -> list[Tenant]:
        data = await self._client.cache.fetch(
            QueryKey(QueryDomain.TENANTS),
            self._client.api.query_fn(QueryDomain.TENANTS.path),
        )
        return [Tenant.model_validate(item) for item in data or []]

    async def get(self, tenant_id: str) -> Tenant | None:
        key = QueryKey.of(QueryDomain.TENANTS, tenant_id)
        try:
            data = await self._client.cache.fetch(key, self._client.api.query_fn(key.path()))
        except ApiError as exc:
            if exc.status == 404:
                return None
            raise
        return Tenant.model_validate(data) if data else None

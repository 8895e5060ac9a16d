"""Residentes (personas atendidas), filtrados por piso del lado del cliente."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from core.domain.errors import ApiError
from core.domain.floors import match_floor
from core.domain.query_keys import QueryDomain, QueryKey

if TYPE_CHECKING:
    from adapters.client import CareClient


class ResidentRepository:
    def __init__(self, client: "CareClient") -> None:
        self._client = client

    async def list(self, floor: str | None = None) -> list[dict[str, Any]]:
        data = await self._client.cache.fetch(
            QueryKey(QueryDomain.RESIDENTS),
            self._client.api.query_fn(QueryDomain.RESIDENTS.path),
        )
        residents = data if isinstance(data, list) else []
        return [r for r in residents if match_floor(r.get("floor"), floor)]

    async def get(self, resident_id: str) -> dict[str, Any] | None:
        key = QueryKey.of(QueryDomain.RESIDENTS, resident_id)
        try:
            return await self._client.cache.fetch(key, self._client.api.query_fn(key.path()))
        except ApiError as exc:
            if exc.status == 404:
                return None
            raise

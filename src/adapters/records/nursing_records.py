"""Notas de enfermería (texto libre por residente y fecha).

A diferencia de las grillas no hay un registro fijo por slot: cada nota se
crea explícitamente y luego se edita campo por campo.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any
from urllib.parse import urlencode

from core.domain.query_keys import QueryDomain, QueryKey
from core.services.optimistic import MutationPlan

if TYPE_CHECKING:
    from adapters.client import CareClient

DEFAULT_CATEGORY = "看護記録"

_DOMAIN = QueryDomain.NURSING_RECORDS


class NursingRecordsRepository:
    def __init__(self, client: "CareClient") -> None:
        self._client = client

    @staticmethod
    def list_key(
        resident_id: str | None = None,
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> QueryKey:
        return QueryKey.of(_DOMAIN, resident_id, start_date, end_date)

    async def list(
        self,
        *,
        resident_id: str | None = None,
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> list[dict[str, Any]]:
        filters = {"residentId": resident_id, "startDate": start_date, "endDate": end_date}
        query = urlencode({k: v for k, v in filters.items() if v is not None})
        url = f"{_DOMAIN.path}?{query}" if query else _DOMAIN.path
        data = await self._client.cache.fetch(
            self.list_key(resident_id, start_date, end_date),
            self._client.api.query_fn(url),
        )
        return data if isinstance(data, list) else []

    async def create(
        self,
        resident_id: str,
        *,
        record_date: str,
        description: str = "",
        category: str = DEFAULT_CATEGORY,
        interventions: str = "",
        outcomes: str = "",
        notes: str = "",
    ) -> Any:
        body = {
            "residentId": resident_id,
            "recordDate": record_date,
            "category": category,
            "description": description,
            "interventions": interventions,
            "outcomes": outcomes,
            "notes": notes,
        }
        try:
            return await self._client.api.post(_DOMAIN.path, body)
        finally:
            self._client.cache.invalidate(QueryKey(_DOMAIN))

    async def update(
        self,
        record_id: str,
        field: str,
        value: Any,
        *,
        resident_id: str | None = None,
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> Any:
        """Edición optimista de un campo sobre la lista que la muestra."""

        def apply(data: Any) -> list[dict[str, Any]]:
            return [
                {**record, field: value} if record.get("id") == record_id else record
                for record in data or []
            ]

        plan = MutationPlan(
            key=self.list_key(resident_id, start_date, end_date),
            apply=apply,
            send=lambda: self._client.api.patch(f"{_DOMAIN.path}/{record_id}", {field: value}),
            revalidate=(QueryKey(_DOMAIN),),
            error_message="Failed to update the nursing record.",
        )
        return await self._client.mutation(plan).run()

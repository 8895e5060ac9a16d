"""Configuración maestra (listas de opciones por categoría).

Editar un ítem es una actualización optimista por campo; reordenar es todo o
nada: si el lote falla vuelve el orden anterior completo.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Literal

from core.domain.models import ReorderUpdate
from core.domain.query_keys import QueryDomain, QueryKey
from core.services.optimistic import MutationPlan
from core.services.reconcile import restore_snapshot

if TYPE_CHECKING:
    from adapters.client import CareClient

logger = logging.getLogger(__name__)

Direction = Literal["up", "down"]


def _sort_key(item: dict[str, Any]) -> int:
    return item.get("sortOrder") or 0


def apply_order(settings: list[dict[str, Any]] | None, updates: list[ReorderUpdate]) -> list[dict[str, Any]]:
    """Aplica el `sortOrder` de `updates` a cada ítem y ordena por él."""

    orders = {u.id: u.sort_order for u in updates}
    items = [
        {**item, "sortOrder": orders[item["id"]]} if item.get("id") in orders else item
        for item in settings or []
    ]
    items.sort(key=_sort_key)
    return items


def positions(items: list[dict[str, Any]]) -> list[ReorderUpdate]:
    return [ReorderUpdate(id=item["id"], sort_order=idx) for idx, item in enumerate(items)]


class MasterSettingsRepository:
    def __init__(self, client: "CareClient") -> None:
        self._client = client

    @staticmethod
    def categories_key() -> QueryKey:
        return QueryKey(QueryDomain.MASTER_CATEGORIES)

    @staticmethod
    def settings_key(category: str) -> QueryKey:
        return QueryKey.of(QueryDomain.MASTER_SETTINGS, category)

    async def categories(self) -> list[dict[str, Any]]:
        data = await self._client.cache.fetch(
            self.categories_key(),
            self._client.api.query_fn(QueryDomain.MASTER_CATEGORIES.path),
        )
        return data if isinstance(data, list) else []

    async def settings(self, category: str) -> list[dict[str, Any]]:
        url = f"{QueryDomain.MASTER_SETTINGS.path}?categoryKey={category}"
        data = await self._client.cache.fetch(self.settings_key(category), self._client.api.query_fn(url))
        return data if isinstance(data, list) else []

    async def initialize_categories(self) -> Any:
        result = await self._client.api.post(f"{QueryDomain.MASTER_CATEGORIES.path}/initialize")
        self._client.cache.invalidate(QueryKey(QueryDomain.MASTER_CATEGORIES))
        self._client.cache.invalidate(QueryKey(QueryDomain.MASTER_SETTINGS))
        return result

    async def update_category(self, category_id: str, changes: dict[str, Any]) -> Any:
        result = await self._client.api.patch(f"{QueryDomain.MASTER_CATEGORIES.path}/{category_id}", changes)
        self._client.cache.invalidate(self.categories_key())
        return result

    async def create(
        self,
        category: str,
        *,
        value: str,
        label: str,
        sort_order: int | None = None,
        is_active: bool = True,
    ) -> Any:
        if sort_order is None:
            sort_order = len(self._client.cache.get_data(self.settings_key(category)) or [])
        body = {
            "categoryKey": category,
            "value": value,
            "label": label,
            "sortOrder": sort_order,
            "isActive": is_active,
        }
        result = await self._client.api.post(QueryDomain.MASTER_SETTINGS.path, body)
        self._client.cache.invalidate(self.settings_key(category))
        return result

    async def update(self, category: str, setting_id: str, changes: dict[str, Any]) -> Any:
        def apply(data: Any) -> list[dict[str, Any]]:
            return [
                {**item, **changes} if item.get("id") == setting_id else item
                for item in data or []
            ]

        plan = MutationPlan(
            key=self.settings_key(category),
            apply=apply,
            send=lambda: self._client.api.patch(f"{QueryDomain.MASTER_SETTINGS.path}/{setting_id}", changes),
            revalidate=(self.settings_key(category),),
            error_message="Failed to update the setting.",
            success_message="Setting updated.",
        )
        return await self._client.mutation(plan).run()

    async def delete(self, category: str, setting_id: str) -> None:
        await self._client.api.delete(f"{QueryDomain.MASTER_SETTINGS.path}/{setting_id}")
        self._client.cache.invalidate(self.settings_key(category))

    async def reorder(self, category: str, updates: list[ReorderUpdate]) -> Any:
        """Persiste un orden nuevo; si el lote falla se restaura la lista entera."""

        plan = MutationPlan(
            key=self.settings_key(category),
            apply=lambda data: apply_order(data, updates),
            send=lambda: self._client.api.post(
                f"{QueryDomain.MASTER_SETTINGS.path}/reorder",
                [u.to_payload() for u in updates],
            ),
            rollback=restore_snapshot,
            revalidate=(self.settings_key(category),),
            error_message="Failed to update the order.",
        )
        return await self._client.mutation(plan).run()

    async def move_item(self, category: str, index: int, direction: Direction) -> Any:
        """Intercambia el ítem en `index` con su vecino; fuera de rango no hace nada."""

        items = list(self._client.cache.get_data(self.settings_key(category)) or [])
        target = index - 1 if direction == "up" else index + 1
        if not (0 <= index < len(items)) or not (0 <= target < len(items)):
            return None
        items[index], items[target] = items[target], items[index]
        return await self.reorder(category, positions(items))

    async def move(self, category: str, old_index: int, new_index: int) -> Any:
        """Drag-and-drop: mueve un ítem a otra posición."""

        items = list(self._client.cache.get_data(self.settings_key(category)) or [])
        if old_index == new_index or not (0 <= old_index < len(items)) or not (0 <= new_index < len(items)):
            return None
        items.insert(new_index, items.pop(old_index))
        return await self.reorder(category, positions(items))

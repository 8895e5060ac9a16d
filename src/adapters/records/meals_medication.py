"""Grilla de comidas y medicación (una fila por residente y comida)."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, ClassVar

from adapters.records.grid import RecordGrid
from core.domain.query_keys import QueryDomain, QueryKey

logger = logging.getLogger(__name__)

# Valor del filtro que significa "todas las comidas"; las filas nuevas van al desayuno.
ALL_MEAL_TIMES = "all"
DEFAULT_MEAL_TIME = "朝"

AMOUNT_FIELDS = ("mainAmount", "sideAmount", "waterIntake", "supplement")


class MealsMedicationGrid(RecordGrid):
    domain = QueryDomain.MEALS_MEDICATION
    key_params = ("recordDate", "mealTime", "floor")
    type_field = "mealType"
    update_method = "PUT"
    label = "meal record"
    field_map: ClassVar[dict[str, str]] = {
        "main": "mainAmount",
        "side": "sideAmount",
        "water": "waterIntake",
        "supplement": "supplement",
        "staffName": "staffName",
        "notes": "notes",
    }

    @staticmethod
    def record_meal_time(meal_time: str) -> str:
        return DEFAULT_MEAL_TIME if meal_time == ALL_MEAL_TIMES else meal_time

    def record_defaults(self) -> dict[str, Any]:
        return {
            "type": "meal",
            "staffId": None,
            **{name: "" for name in AMOUNT_FIELDS},
            "staffName": "",
            "notes": "",
        }

    async def set_cell(
        self,
        resident_id: str,
        field: str,
        value: Any,
        *,
        record_date: str,
        meal_time: str,
        floor: str,
    ) -> Any:
        """Edita una celda de la grilla filtrada por (fecha, comida, piso)."""

        return await self.set_field(
            resident_id,
            self.record_meal_time(meal_time),
            field,
            value,
            recordDate=record_date,
            mealTime=meal_time,
            floor=floor,
        )

    async def bulk_upsert(
        self,
        resident_ids: list[str],
        values: dict[str, Any],
        *,
        record_date: str,
        meal_time: str,
        floor: str,
        staff_name: str,
    ) -> list[Any]:
        """Escribe las mismas cantidades para varios residentes a la vez.

        Lee la grilla directo del servidor (no del cache) para decidir entre
        update y create: las filas que otro creó desde la última carga se
        actualizan en vez de duplicarse.
        """

        api = self._client.api
        params = {"recordDate": record_date, "mealTime": meal_time, "floor": floor}
        fresh = await api.get(self.url(**params))
        current = fresh if isinstance(fresh, list) else []
        meal_type = self.record_meal_time(meal_time)

        async def upsert(resident_id: str) -> Any:
            existing = self.find(current, resident_id, meal_type)
            body: dict[str, Any] = {
                "residentId": resident_id,
                "recordDate": record_date,
                "type": "meal",
                "mealType": meal_type,
                **{name: self.normalize(values.get(name, "")) for name in AMOUNT_FIELDS},
                "staffName": staff_name,
                "notes": (existing or {}).get("notes") or "",
            }
            server_id = self._client.edits.resolve(existing["id"]) if existing else None
            if server_id:
                return await api.put(f"{self.domain.path}/{server_id}", body)
            return await api.post(self.domain.path, body)

        try:
            results = await asyncio.gather(*(upsert(rid) for rid in resident_ids))
        finally:
            self._client.cache.invalidate(QueryKey(self.domain))
        logger.info("Bulk saved %d meal record(s) for %s %s", len(results), record_date, meal_type)
        return list(results)

"""Grilla de baños: un registro por residente y día."""

from __future__ import annotations

from typing import Any, ClassVar

from adapters.records.grid import RecordGrid, int_or_none
from core.domain.query_keys import QueryDomain

# Todo registro de baño se crea con este turno.
BATHING_TIMING = "午前"

BATH_TYPES = ("入浴", "シャワー浴", "清拭", "×")

_TRUTHY = ("true", "on")


class BathingGrid(RecordGrid):
    domain = QueryDomain.BATHING_RECORDS
    key_params = ("recordDate",)
    type_field = "timing"
    label = "bathing record"
    field_map: ClassVar[dict[str, str]] = {
        "temp": "temperature",
        "bpHigh": "bloodPressureSystolic",
        "bpLow": "bloodPressureDiastolic",
        "pulse": "pulseRate",
        "spo2": "oxygenSaturation",
    }

    def query(self, **params: Any) -> dict[str, Any]:
        (day,) = self._ordered(params)
        return {"startDate": day, "endDate": day}

    def convert(self, column: str, value: Any) -> Any:
        if column in ("hour", "minute"):
            return int_or_none(value)
        if column == "nursingCheck":
            return value is True or str(value).lower() in _TRUTHY
        if column == "bathType" and value and value not in BATH_TYPES:
            raise ValueError(f"unknown bath type {value!r}")
        return value

    async def set_cell(self, resident_id: str, field: str, value: Any, *, record_date: str) -> Any:
        return await self.set_field(resident_id, BATHING_TIMING, field, value, recordDate=record_date)

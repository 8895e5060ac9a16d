"""Grilla de signos vitales (mediciones de mañana / tarde por residente)."""

from __future__ import annotations

from typing import Any, ClassVar

from adapters.records.grid import RecordGrid
from core.domain.query_keys import QueryDomain

TIMINGS = ("午前", "午後", "臨時", "前日")


class VitalSignsGrid(RecordGrid):
    domain = QueryDomain.VITAL_SIGNS
    key_params = ("date", "timing", "floor")
    date_param = "date"
    type_field = "timing"
    label = "vital signs"
    field_map: ClassVar[dict[str, str]] = {
        "temp": "temperature",
        "bpHigh": "bloodPressureSystolic",
        "bpLow": "bloodPressureDiastolic",
        "pulse": "pulseRate",
        "resp": "respirationRate",
        "spo2": "oxygenSaturation",
    }

    async def set_cell(
        self,
        resident_id: str,
        field: str,
        value: Any,
        *,
        date: str,
        timing: str,
        floor: str,
    ) -> Any:
        return await self.set_field(
            resident_id, timing, field, value, date=date, timing=timing, floor=floor
        )

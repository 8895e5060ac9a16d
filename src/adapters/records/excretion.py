"""Grilla de excreción (orina / deposición por residente y día)."""

from __future__ import annotations

from typing import Any, ClassVar

from adapters.records.grid import RecordGrid
from core.domain.query_keys import QueryDomain

EXCRETION_TYPES = ("urination", "bowel_movement")


class ExcretionGrid(RecordGrid):
    domain = QueryDomain.EXCRETION_RECORDS
    key_params = ("date", "floor")
    date_param = "date"
    type_field = "type"
    label = "excretion record"
    field_map: ClassVar[dict[str, str]] = {
        "volume": "urineVolumeCc",
        "assist": "assistance",
    }

    def record_defaults(self) -> dict[str, Any]:
        return {"consistency": "", "amount": "", "urineVolumeCc": None, "assistance": "", "notes": ""}

    async def set_cell(
        self,
        resident_id: str,
        excretion_type: str,
        field: str,
        value: Any,
        *,
        date: str,
        floor: str,
    ) -> Any:
        if excretion_type not in EXCRETION_TYPES:
            raise ValueError(f"unknown excretion type {excretion_type!r}")
        return await self.set_field(resident_id, excretion_type, field, value, date=date, floor=floor)

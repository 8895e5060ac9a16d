"""Grilla de peso: un registro por residente y mes (`YYYY-MM`)."""

from __future__ import annotations

import calendar
from typing import Any, ClassVar

from adapters.records.grid import RecordGrid, blank_to_none, int_or_none
from core.domain.query_keys import QueryDomain


def month_bounds(month: str) -> tuple[str, str]:
    """`"2024-02"` -> (`"2024-02-01"`, `"2024-02-29"`)."""

    year, number = (int(part) for part in month.split("-", 1))
    last = calendar.monthrange(year, number)[1]
    return f"{year:04d}-{number:02d}-01", f"{year:04d}-{number:02d}-{last:02d}"


class WeightGrid(RecordGrid):
    domain = QueryDomain.WEIGHT_RECORDS
    key_params = ("month",)
    date_param = "month"
    type_field = None
    label = "weight record"
    field_map: ClassVar[dict[str, str]] = {}

    def query(self, **params: Any) -> dict[str, Any]:
        (month,) = self._ordered(params)
        start, end = month_bounds(month)
        return {"startDate": start, "endDate": end}

    def record_date(self, **params: Any) -> Any:
        return month_bounds(params["month"])[0]

    def convert(self, column: str, value: Any) -> Any:
        if column in ("hour", "minute"):
            return int_or_none(value)
        if column == "weight":
            return blank_to_none(value)
        return value

    async def set_cell(self, resident_id: str, field: str, value: Any, *, month: str) -> Any:
        return await self.set_field(resident_id, None, field, value, month=month)

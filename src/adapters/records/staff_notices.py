"""Avisos al personal (el tablón) y su estado de lectura por persona."""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, timezone
from typing import TYPE_CHECKING, Any

from core.domain.errors import UnauthorizedError
from core.domain.query_keys import QueryDomain, QueryKey
from core.services.edit_queue import new_temp_id
from core.services.optimistic import MutationPlan
from core.services.query_cache import QueryOptions
from core.services.reconcile import replace_record

if TYPE_CHECKING:
    from adapters.client import CareClient

logger = logging.getLogger(__name__)

ALL_JOB_ROLES = "全体"
ALL_FLOORS = "全階"

UNREAD_COUNT_OPTIONS = QueryOptions(stale_time=8.0, retry=3)


def _as_date(value: Any) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and len(value) >= 10:
        try:
            return date.fromisoformat(value[:10])
        except ValueError:
            return None
    return None


def filter_notices(
    notices: list[dict[str, Any]],
    *,
    on_date: date,
    job_role: str = ALL_JOB_ROLES,
    floor: str = ALL_FLOORS,
) -> list[dict[str, Any]]:
    """Avisos visibles en `on_date` para un puesto y un piso.

    `全体` / `全階` de cualquier lado (filtro o destino del aviso) coinciden con todo.
    """

    visible = []
    for notice in notices:
        start = _as_date(notice.get("startDate"))
        end = _as_date(notice.get("endDate"))
        if start is not None and on_date < start:
            continue
        if end is not None and on_date > end:
            continue
        target_role = notice.get("targetJobRole") or ALL_JOB_ROLES
        if job_role != ALL_JOB_ROLES and target_role not in (ALL_JOB_ROLES, job_role):
            continue
        target_floor = notice.get("targetFloor") or ALL_FLOORS
        if floor != ALL_FLOORS and target_floor not in (ALL_FLOORS, floor):
            continue
        visible.append(notice)
    return visible


class StaffNoticesRepository:
    def __init__(self, client: "CareClient") -> None:
        self._client = client

    @staticmethod
    def list_key() -> QueryKey:
        return QueryKey(QueryDomain.STAFF_NOTICES)

    @staticmethod
    def read_status_key(notice_id: str) -> QueryKey:
        return QueryKey.of(QueryDomain.STAFF_NOTICE_READ_STATUS, notice_id)

    @staticmethod
    def unread_count_key() -> QueryKey:
        return QueryKey(QueryDomain.STAFF_NOTICES_UNREAD_COUNT)

    async def list(self) -> list[dict[str, Any]]:
        data = await self._client.cache.fetch(
            self.list_key(),
            self._client.api.query_fn(QueryDomain.STAFF_NOTICES.path),
        )
        return data if isinstance(data, list) else []

    async def create(self, notice: dict[str, Any]) -> Any:
        result = await self._client.api.post(QueryDomain.STAFF_NOTICES.path, notice)
        self._client.cache.invalidate(self.list_key())
        return result

    async def delete(self, notice_id: str) -> None:
        await self._client.api.delete(f"{QueryDomain.STAFF_NOTICES.path}/{notice_id}")
        self._client.cache.invalidate(self.list_key())
        self._client.cache.remove(self.read_status_key(notice_id))

    async def read_status(self, notice_id: str) -> list[dict[str, Any]]:
        url = f"{QueryDomain.STAFF_NOTICES.path}/{notice_id}/read-status"
        data = await self._client.cache.fetch(
            self.read_status_key(notice_id),
            self._client.api.query_fn(url),
        )
        return data if isinstance(data, list) else []

    async def read_statuses(self, notices: list[dict[str, Any]]) -> dict[str, list[dict[str, Any]]]:
        ids = [n["id"] for n in notices if n.get("id")]
        results = await asyncio.gather(*(self.read_status(i) for i in ids))
        return dict(zip(ids, results))

    def is_unread(self, notice_id: str, staff_id: str) -> bool:
        """No leído salvo que una fila de estado en cache nombre a `staff_id` (lo desconocido cuenta como no leído)."""

        statuses = self._client.cache.get_data(self.read_status_key(notice_id))
        if not statuses:
            return True
        return not any(s.get("staffId") == staff_id for s in statuses)

    async def mark_read(self, notice_id: str, staff_id: str) -> Any:
        def apply(data: Any) -> list[dict[str, Any]]:
            rows = list(data or [])
            if any(r.get("staffId") == staff_id for r in rows):
                return rows
            return [
                *rows,
                {
                    "id": new_temp_id(),
                    "noticeId": notice_id,
                    "staffId": staff_id,
                    "readAt": datetime.now(timezone.utc).isoformat(),
                },
            ]

        def commit(data: Any, payload: Any) -> Any:
            if not isinstance(payload, dict) or not payload.get("id"):
                return data
            return replace_record(data, payload, match=lambda r: r.get("staffId") == staff_id)

        plan = MutationPlan(
            key=self.read_status_key(notice_id),
            apply=apply,
            send=lambda: self._client.api.post(f"{QueryDomain.STAFF_NOTICES.path}/{notice_id}/mark-read"),
            commit=commit,
            revalidate=(self.unread_count_key(),),
            error_message="Failed to mark the notice as read.",
        )
        return await self._client.mutation(plan).run()

    async def mark_unread(self, notice_id: str, staff_id: str) -> Any:
        plan = MutationPlan(
            key=self.read_status_key(notice_id),
            apply=lambda data: [r for r in data or [] if r.get("staffId") != staff_id],
            send=lambda: self._client.api.post(f"{QueryDomain.STAFF_NOTICES.path}/{notice_id}/mark-unread"),
            revalidate=(self.unread_count_key(),),
            error_message="Failed to mark the notice as unread.",
        )
        return await self._client.mutation(plan).run()

    async def unread_count(self) -> int:
        """Avisos no leídos del personal con sesión; 0 sin sesión."""

        api = self._client.api

        async def fetch() -> int:
            try:
                data = await api.get(QueryDomain.STAFF_NOTICES_UNREAD_COUNT.path)
            except UnauthorizedError:
                return 0
            if isinstance(data, dict):
                return int(data.get("count") or 0)
            return 0

        count = await self._client.cache.fetch(self.unread_count_key(), fetch, UNREAD_COUNT_OPTIONS)
        return int(count or 0)

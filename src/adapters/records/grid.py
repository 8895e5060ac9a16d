"""Grillas de registros residente-por-slot (comidas, excreción, vitales, baño, peso).

Una grilla es una entrada de cache por tupla de filtros (fecha, turno,
piso...) que contiene una lista de registros. Editar una celda es una
escritura optimista de un campo sobre el registro que coincide con
`(residentId, <campo de tipo>)`:

- sin registro todavía: se agrega un registro `temp-*` y se hace POST;
- registro cuyo create sigue en vuelo: la edición lo espera (mismo slot de la
  cola) y se redirige al id del servidor;
- registro persistido: se hace PATCH/PUT del campo.

Los registros se comparan por el par `(residente, tipo)`, nunca por el id
temporal, porque ese id se reemplaza cuando el create resuelve.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, ClassVar
from urllib.parse import urlencode

from core.domain.query_keys import QueryDomain, QueryKey
from core.services.edit_queue import is_temp_id, new_temp_id
from core.services.optimistic import MutationPlan
from core.services.query_cache import Observer, QueryOptions
from core.services.reconcile import replace_record

if TYPE_CHECKING:
    from adapters.client import CareClient

logger = logging.getLogger(__name__)

EMPTY_SENTINEL = "empty"

# Los agrega el servidor para mostrar; nunca se devuelven.
_DISPLAY_ONLY = frozenset({"id", "residentName", "roomNumber", "floor", "createdAt", "updatedAt"})


def int_or_none(value: Any) -> int | None:
    """`"7"` -> 7; vacío o no numérico -> `None` (hora y minuto)."""

    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


class RecordGrid:
    domain: ClassVar[QueryDomain]
    key_params: ClassVar[tuple[str, ...]]
    date_param: ClassVar[str] = "recordDate"
    # `None`: un único registro por residente en la grilla.
    type_field: ClassVar[str | None] = "type"
    field_map: ClassVar[dict[str, str]] = {}
    update_method: ClassVar[str] = "PATCH"
    options: ClassVar[QueryOptions] = QueryOptions(stale_time=0)
    label: ClassVar[str] = "record"

    def __init__(self, client: "CareClient") -> None:
        self._client = client

    # -- claves y lecturas -------------------------------------------------

    def _ordered(self, params: dict[str, Any]) -> list[Any]:
        missing = [name for name in self.key_params if name not in params]
        if missing:
            raise TypeError(f"{type(self).__name__} needs {', '.join(missing)}")
        return [params[name] for name in self.key_params]

    def key(self, **params: Any) -> QueryKey:
        return QueryKey.of(self.domain, *self._ordered(params))

    def query(self, **params: Any) -> dict[str, Any]:
        """Parámetros de la URL de lectura (por defecto, los mismos de la clave)."""

        return dict(zip(self.key_params, self._ordered(params)))

    def url(self, **params: Any) -> str:
        return f"{self.domain.path}?{urlencode(self.query(**params))}"

    def record_date(self, **params: Any) -> Any:
        return params.get(self.date_param)

    async def load(self, **params: Any) -> list[dict[str, Any]]:
        data = await self._client.cache.fetch(
            self.key(**params),
            self._client.api.query_fn(self.url(**params)),
            self.options,
        )
        return data if isinstance(data, list) else []

    def observe(self, **params: Any) -> Observer:
        return self._client.cache.subscribe(
            self.key(**params),
            fetch_fn=self._client.api.query_fn(self.url(**params)),
            options=self.options,
        )

    def rows(self, **params: Any) -> list[dict[str, Any]]:
        data = self._client.cache.get_data(self.key(**params))
        return data if isinstance(data, list) else []

    # -- helpers de registro -----------------------------------------------

    def column(self, field: str) -> str:
        return self.field_map.get(field, field)

    @staticmethod
    def normalize(value: Any) -> Any:
        return "" if value == EMPTY_SENTINEL else value

    def convert(self, column: str, value: Any) -> Any:
        """Tipo que espera el servidor para `column`."""

        return value

    def matches(self, record: dict[str, Any], resident_id: str, record_type: str | None) -> bool:
        if record.get("residentId") != resident_id:
            return False
        return self.type_field is None or record.get(self.type_field) == record_type

    def find(self, records: Any, resident_id: str, record_type: str | None) -> dict[str, Any] | None:
        for record in records or []:
            if isinstance(record, dict) and self.matches(record, resident_id, record_type):
                return record
        return None

    def record_defaults(self) -> dict[str, Any]:
        return {}

    def new_record(self, resident_id: str, record_type: str | None, record_date: Any) -> dict[str, Any]:
        record = {
            "id": new_temp_id(),
            "residentId": resident_id,
            "recordDate": record_date,
            **self.record_defaults(),
        }
        if self.type_field is not None:
            record[self.type_field] = record_type
        return record

    def create_body(self, record: dict[str, Any]) -> dict[str, Any]:
        return {k: v for k, v in record.items() if k not in _DISPLAY_ONLY}

    def update_body(self, record: dict[str, Any], column: str, value: Any) -> dict[str, Any]:
        if self.update_method == "PUT":
            return {**self.create_body(record), column: value}
        return {column: value}

    # -- ediciones ---------------------------------------------------------

    async def set_field(
        self,
        resident_id: str,
        record_type: str | None,
        field: str,
        value: Any,
        **params: Any,
    ) -> Any:
        client = self._client
        key = self.key(**params)
        column = self.column(field)
        value = self.convert(column, self.normalize(value))
        record_date = self.record_date(**params)

        existing = self.find(client.cache.get_data(key), resident_id, record_type)
        if existing is None:
            draft = {**self.new_record(resident_id, record_type, record_date), column: value}
        else:
            draft = {**existing, column: value}
        target_id = draft["id"]

        def apply(data: Any) -> list[dict[str, Any]]:
            records = list(data or [])
            if self.find(records, resident_id, record_type) is None:
                return [*records, dict(draft)]
            return [
                {**r, column: value} if self.matches(r, resident_id, record_type) else r
                for r in records
            ]

        slot = (self.domain.value, resident_id, record_type, record_date)

        async def send() -> Any:
            async with client.edits.serialized(slot):
                current = self.find(client.cache.get_data(key), resident_id, record_type)
                server_id = client.edits.resolve(current["id"] if current else target_id)
                if server_id is None or is_temp_id(server_id):
                    # Sin fila, el create anterior se revirtió: sus campos
                    # especulativos no se reenvían.
                    base = current or self.new_record(resident_id, record_type, record_date)
                    body = self.create_body(base)
                    body[column] = value
                    payload = await client.api.post(self.domain.path, body)
                    if isinstance(payload, dict) and payload.get("id"):
                        for temp in {target_id, (current or {}).get("id")}:
                            if is_temp_id(temp):
                                client.edits.bind(temp, payload["id"])
                    return payload
                body = self.update_body(current or draft, column, value)
                return await client.api.request(f"{self.domain.path}/{server_id}", self.update_method, body)

        def commit(data: Any, payload: Any) -> Any:
            if not isinstance(payload, dict) or not payload.get("id"):
                return data
            # Otros campos pueden tener aún el valor especulativo de una edición encolada.
            return replace_record(
                data,
                payload,
                match=lambda r: self.matches(r, resident_id, record_type),
                fields=(column,),
            )

        plan = MutationPlan(
            key=key,
            apply=apply,
            send=send,
            commit=commit,
            error_message=f"Failed to save the {self.label}.",
        )
        return await client.mutation(plan).run()

    async def delete(self, record_id: str, **params: Any) -> None:
        """Quita una fila; si su create sigue en vuelo, se borra cuando llegue."""

        client = self._client
        key = self.key(**params)
        record = next(
            (r for r in self.rows(**params) if r.get("id") == record_id),
            None,
        )
        slot = None
        if record is not None:
            slot = (
                self.domain.value,
                record.get("residentId"),
                record.get(self.type_field) if self.type_field is not None else None,
                self.record_date(**params),
            )

        async def send() -> Any:
            if slot is None:
                return await self._send_delete(record_id)
            async with client.edits.serialized(slot):
                return await self._send_delete(record_id)

        plan = MutationPlan(
            key=key,
            apply=lambda data: [r for r in data or [] if r.get("id") != record_id],
            send=send,
            revalidate=(key,),
            error_message=f"Failed to delete the {self.label}.",
        )
        await client.mutation(plan).run()

    async def _send_delete(self, record_id: str) -> Any:
        server_id = self._client.edits.resolve(record_id)
        if server_id is None:
            logger.debug("Skipping delete of never-persisted record %s", record_id)
            return None
        return await self._client.api.delete(f"{self.domain.path}/{server_id}")

"""Ids temporales y serialización de escrituras por registro.

Un registro creado de forma optimista lleva un id temporal (`temp-<ms>-<n>`)
hasta que el servidor lo confirma. Las escrituras de un mismo par
`(id del dueño, tipo de registro)` se ejecutan de a una, en orden de envío:
una edición hecha mientras el create sigue en vuelo lo espera y luego se
redirige al id del servidor (o se convierte en create si el create falló).
"""

from __future__ import annotations

import asyncio
import itertools
import time
from collections.abc import AsyncIterator, Hashable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

TEMP_ID_PREFIX = "temp-"

_counter = itertools.count(1)


def new_temp_id() -> str:
    return f"{TEMP_ID_PREFIX}{int(time.time() * 1000)}-{next(_counter)}"


def is_temp_id(value: object) -> bool:
    return isinstance(value, str) and value.startswith(TEMP_ID_PREFIX)


RecordSlot = tuple[Hashable, ...]


@dataclass
class _Slot:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class RecordEditQueue:
    def __init__(self) -> None:
        self._slots: dict[RecordSlot, _Slot] = {}
        self._bound: dict[str, str] = {}

    @asynccontextmanager
    async def serialized(self, slot: RecordSlot) -> AsyncIterator[None]:
        """Ejecuta el bloque en exclusión mutua (FIFO) con las demás escrituras del slot.

        El slot se descarta al salir el último usuario.
        """

        state = self._slots.get(slot)
        if state is None:
            state = _Slot()
            self._slots[slot] = state
        state.users += 1
        try:
            async with state.lock:
                yield
        finally:
            state.users -= 1
            if state.users == 0 and self._slots.get(slot) is state:
                del self._slots[slot]

    def busy_slots(self) -> list[RecordSlot]:
        return list(self._slots)

    def bind(self, temp_id: str, server_id: str) -> None:
        self._bound[temp_id] = server_id

    def resolve(self, record_id: str | None) -> str | None:
        """Id del servidor para `record_id`; `None` mientras el id temporal no esté ligado."""

        if record_id is None:
            return None
        if not is_temp_id(record_id):
            return record_id
        return self._bound.get(record_id)

    def forget(self) -> None:
        self._bound.clear()

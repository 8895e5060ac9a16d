"""Máquina de estados de las mutaciones optimistas.

Toda grilla y lista editable sigue la misma receta:

    Idle --begin()--> Pending --send ok--> Committed
                              \\-send falla-> RolledBack

- `begin()` es síncrono: toma el snapshot de la entrada asentada y escribe la
  edición especulativa, así el cambio se ve antes de cualquier I/O.
- Si sale bien se descarta el snapshot y opcionalmente se mezcla la respuesta
  del servidor (`commit`), p. ej. para cambiar un id temporal por el real.
- Si falla se revierte la entrada desde el snapshot (`rollback`) y se emite
  una notificación destructiva, salvo que la mutación fuera abandonada.
- En ambos casos se invalidan los prefijos de `revalidate`.

Los estados terminales son finales; otra edición necesita otra mutación.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, TypeVar

from core.domain.errors import MutationStateError
from core.domain.models import Notification
from core.domain.query_keys import QueryKey
from core.interfaces.notifier import Notifier
from core.services.query_cache import QueryCache
from core.services.reconcile import revert

logger = logging.getLogger(__name__)

T = TypeVar("T")


class MutationState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"

    @property
    def is_terminal(self) -> bool:
        return self in (MutationState.COMMITTED, MutationState.ROLLED_BACK)


@dataclass
class MutationPlan(Generic[T]):
    """Lo que una edición del usuario le hace a una entrada del cache.

    - `apply(asentado) -> editado`: la edición especulativa (recibe una copia propia).
    - `send() -> payload`: la escritura; exactamente un intento.
    - `commit(actual, payload) -> mezclado`: mezcla opcional de la respuesta del
      servidor; `None` toma la edición local como definitiva.
    - `rollback(actual, snapshot, aplicado) -> restaurado`.
    - `snapshot(datos) -> copia`: cómo se congela el estado previo.
    """

    key: QueryKey
    apply: Callable[[Any], Any]
    send: Callable[[], Awaitable[T]]
    commit: Callable[[Any, T], Any] | None = None
    rollback: Callable[[Any, Any, Any], Any] = revert
    snapshot: Callable[[Any], Any] = copy.deepcopy
    revalidate: tuple[QueryKey, ...] = ()
    error_title: str = "Error"
    error_message: str = "The change could not be saved."
    success_message: str | None = None


class OptimisticMutation(Generic[T]):
    def __init__(
        self,
        cache: QueryCache,
        plan: MutationPlan[T],
        *,
        notifier: Notifier | None = None,
    ) -> None:
        self._cache = cache
        self._plan = plan
        self._notifier = notifier
        self._state = MutationState.IDLE
        self._snapshot: Any = None
        self._applied: Any = None
        self._had_data = False
        self.result: T | None = None
        self.error: BaseException | None = None

    @property
    def state(self) -> MutationState:
        return self._state

    @property
    def key(self) -> QueryKey:
        return self._plan.key

    @property
    def snapshot(self) -> Any:
        """Datos previos a la edición mientras está pendiente; `None` al asentarse."""

        return self._snapshot

    def begin(self) -> None:
        if self._state is not MutationState.IDLE:
            raise MutationStateError(f"cannot begin a mutation in state {self._state.value}")

        key = self._plan.key
        entry = self._cache.get(key)
        self._had_data = entry is not None and entry.has_data
        settled = entry.data if self._had_data else None

        # Snapshot y escritura especulativa sin ningún await en medio: el snapshot
        # es exactamente el estado que esta edición reemplazó.
        self._snapshot = self._plan.snapshot(settled)
        applied = self._plan.apply(copy.deepcopy(settled))
        self._cache.set(key, applied)
        self._cache.pin(key)
        self._applied = copy.deepcopy(applied)
        self._state = MutationState.PENDING
        logger.debug("Mutation on %s pending", key)

    async def settle(self) -> T:
        if self._state is not MutationState.PENDING:
            raise MutationStateError(f"cannot settle a mutation in state {self._state.value}")

        try:
            payload = await self._plan.send()
        except Exception as exc:
            self._roll_back(exc)
            raise
        else:
            self._commit(payload)
            return payload
        finally:
            self._cache.unpin(self._plan.key)
            for prefix in self._plan.revalidate:
                self._cache.invalidate(prefix)

    async def run(self) -> T:
        """`begin()` y luego `settle()`; los errores se relanzan tras el rollback."""

        self.begin()
        return await self.settle()

    def fire(self) -> asyncio.Task[T | None]:
        """Empieza ya y se asienta en segundo plano; los fallos solo llegan como notificación."""

        self.begin()
        return asyncio.ensure_future(self._settle_quietly())

    def abandon(self) -> None:
        """El llamador se fue: se reconcilia igual, pero sin mostrar nada."""

        self._notifier = None

    async def _settle_quietly(self) -> T | None:
        try:
            return await self.settle()
        except Exception:
            # Ya revertida y notificada.
            return None

    def _commit(self, payload: T) -> None:
        key = self._plan.key
        if self._plan.commit is not None:
            entry = self._cache.get(key)
            if entry is None or not entry.has_data:
                # Se vació en vuelo: una entrada nunca se rearma solo con el payload.
                logger.debug("Entry %s gone before commit; invalidating instead of merging", key)
                self._cache.invalidate(key)
            else:
                commit = self._plan.commit
                self._cache.update(key, lambda current: commit(current, payload))
        self.result = payload
        self._snapshot = None
        self._applied = None
        self._state = MutationState.COMMITTED
        logger.debug("Mutation on %s committed", key)
        if self._plan.success_message and self._notifier is not None:
            self._notifier.notify(Notification(title="Saved", message=self._plan.success_message))

    def _roll_back(self, exc: Exception) -> None:
        key = self._plan.key
        entry = self._cache.get(key)
        if entry is None or not entry.has_data:
            # Se vació en vuelo: el snapshot pertenece a datos ya descartados.
            logger.debug("Entry %s gone before rollback; nothing to restore", key)
        else:
            restored = self._plan.rollback(entry.data, self._snapshot, self._applied)
            if restored is None and not self._had_data:
                self._cache.discard(key)
            else:
                self._cache.set(key, restored)

        self.error = exc
        self._snapshot = None
        self._applied = None
        self._state = MutationState.ROLLED_BACK
        logger.warning("Mutation on %s rolled back: %s", key, exc)

        if self._notifier is not None:
            detail = getattr(exc, "message", None) or str(exc) or self._plan.error_message
            self._notifier.notify(
                Notification(title=self._plan.error_title, message=detail, variant="destructive")
            )

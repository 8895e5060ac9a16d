"""Cache de queries del proceso.

Almacén stale-while-revalidate para colecciones leídas del servidor:
- como mucho una entrada por `QueryKey`;
- los `fetch` concurrentes de una clave comparten una sola request en vuelo;
- una entrada queda stale tras `stale_time` y se descarta `gc_time` segundos
  después de su última escritura sin observadores;
- toda escritura sube la versión de la entrada, y un fetch que empezó antes
  de la escritura no la pisa (las ediciones especulativas sobreviven a
  lecturas lentas).

Por qué no hay locks: el cache es el único recurso mutable compartido del
cliente y la propiedad de las claves es por dominio (`QueryDomain`).
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import math
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Coroutine

from core.config import AppSettings
from core.domain.query_keys import QueryKey

logger = logging.getLogger(__name__)

FetchFn = Callable[[], Awaitable[Any]]

# `retry=True` sigue el valor por defecto habitual de las librerías de queries.
_RETRY_TRUE_ATTEMPTS = 3


@dataclass(frozen=True)
class QueryOptions:
    stale_time: float = math.inf
    gc_time: float = 300.0
    refetch_on_window_focus: bool = False
    refetch_on_mount: bool = True
    refetch_on_reconnect: bool = True
    retry: bool | int = False

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "QueryOptions":
        return cls(
            stale_time=settings.query_stale_seconds,
            gc_time=settings.query_gc_seconds,
            retry=settings.query_retry,
        )

    def merge(self, **overrides: Any) -> "QueryOptions":
        return dataclasses.replace(self, **overrides)

    @property
    def retries(self) -> int:
        if self.retry is True:
            return _RETRY_TRUE_ATTEMPTS
        if self.retry is False:
            return 0
        return max(0, int(self.retry))


@dataclass
class CacheEntry:
    key: QueryKey
    options: QueryOptions
    data: Any = None
    fetched_at: float | None = None
    version: int = 0
    invalidated: bool = False
    observers: int = 0
    pins: int = 0
    unobserved_since: float | None = None
    fetch_fn: FetchFn | None = field(default=None, repr=False)

    @property
    def has_data(self) -> bool:
        return self.fetched_at is not None

    @property
    def stale_time(self) -> float:
        return self.options.stale_time

    @property
    def gc_time(self) -> float:
        return self.options.gc_time

    def is_stale(self, now: float) -> bool:
        if self.invalidated or self.fetched_at is None:
            return True
        if self.stale_time <= 0:
            return True
        if math.isinf(self.stale_time):
            return False
        return now - self.fetched_at >= self.stale_time

    def is_collectable(self, now: float) -> bool:
        if self.observers > 0 or self.pins > 0 or self.unobserved_since is None:
            return False
        if math.isinf(self.gc_time):
            return False
        return now - self.unobserved_since >= self.gc_time


class Observer:
    """Suscriptor que mantiene viva una entrada (una página montada, un comando)."""

    def __init__(self, cache: "QueryCache", key: QueryKey) -> None:
        self._cache = cache
        self.key = key
        self._closed = False

    @property
    def data(self) -> Any:
        return self._cache.get_data(self.key)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._cache._release(self.key)

    def __enter__(self) -> "Observer":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


class QueryCache:
    def __init__(
        self,
        *,
        defaults: QueryOptions | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.defaults = defaults or QueryOptions()
        self._clock = clock
        self._entries: dict[QueryKey, CacheEntry] = {}
        self._inflight: dict[QueryKey, asyncio.Future[Any]] = {}
        self._background: set[asyncio.Task[Any]] = set()

    # -- lecturas ----------------------------------------------------------

    def get(self, key: QueryKey) -> CacheEntry | None:
        self._sweep()
        return self._entries.get(key)

    def get_data(self, key: QueryKey, default: Any = None) -> Any:
        entry = self.get(key)
        if entry is None or not entry.has_data:
            return default
        return entry.data

    def keys(self, prefix: QueryKey | None = None) -> list[QueryKey]:
        return [k for k in self._entries if prefix is None or k.matches(prefix)]

    def is_fetching(self, key: QueryKey) -> bool:
        return key in self._inflight

    # -- escrituras --------------------------------------------------------

    def set(self, key: QueryKey, data: Any) -> CacheEntry:
        entry = self._ensure_entry(key, None)
        self._write(entry, data)
        return entry

    def update(self, key: QueryKey, updater: Callable[[Any], Any]) -> Any:
        """Aplica `updater(datos_actuales)` y guarda el resultado.

        Una entrada inexistente llega como `None`; si el updater la deja en
        `None`, no se crea nada.
        """

        entry = self._entries.get(key)
        current = entry.data if entry is not None and entry.has_data else None
        new_data = updater(current)
        if entry is None and new_data is None:
            return None
        self.set(key, new_data)
        return new_data

    def invalidate(self, prefix: QueryKey, *, refetch: bool = True) -> list[QueryKey]:
        """Marca stale toda clave bajo `prefix`; las observadas se releen en segundo plano."""

        matched = self.keys(prefix)
        for key in matched:
            entry = self._entries[key]
            entry.invalidated = True
            if refetch and entry.observers > 0 and entry.fetch_fn is not None:
                self._spawn_refetch(entry)
        logger.debug("Invalidated %d entr(ies) under %s", len(matched), prefix)
        return matched

    def remove(self, prefix: QueryKey) -> None:
        for key in self.keys(prefix):
            self._entries.pop(key, None)

    def discard(self, key: QueryKey) -> None:
        """Quita exactamente `key` (no sus descendientes)."""

        self._entries.pop(key, None)

    def clear(self) -> None:
        """Descarta todas las entradas. Los fetch en vuelo terminan pero ya no escriben."""

        self._entries.clear()

    # -- fetch -------------------------------------------------------------

    async def fetch(
        self,
        key: QueryKey,
        fetch_fn: FetchFn,
        options: QueryOptions | None = None,
    ) -> Any:
        """Datos frescos del cache, o fetch (compartiendo la request en vuelo)."""

        entry = self.get(key)
        if entry is None:
            opts = options or self.defaults
        else:
            entry.fetch_fn = fetch_fn
            if options is not None:
                entry.options = options
            opts = entry.options
            if entry.has_data and not entry.is_stale(self._clock()):
                return entry.data
        return await self._fetch_shared(key, fetch_fn, opts)

    async def refetch(self, key: QueryKey) -> Any:
        entry = self._entries.get(key)
        if entry is None or entry.fetch_fn is None:
            raise KeyError(f"No fetch function registered for {key}")
        return await self._fetch_shared(key, entry.fetch_fn, entry.options)

    def subscribe(
        self,
        key: QueryKey,
        *,
        fetch_fn: FetchFn | None = None,
        options: QueryOptions | None = None,
    ) -> Observer:
        """Observa `key`; una entrada stale se relee al montar si las opciones lo permiten."""

        self._sweep()
        entry = self._ensure_entry(key, options)
        if options is not None:
            entry.options = options
        if fetch_fn is not None:
            entry.fetch_fn = fetch_fn
        entry.observers += 1
        entry.unobserved_since = None
        if (
            entry.has_data
            and entry.options.refetch_on_mount
            and entry.fetch_fn is not None
            and entry.is_stale(self._clock())
        ):
            self._spawn_refetch(entry)
        return Observer(self, key)

    def pin(self, key: QueryKey) -> None:
        """Excluye `key` del GC mientras una mutación pendiente la usa."""

        self._sweep()
        self._ensure_entry(key, None).pins += 1

    def unpin(self, key: QueryKey) -> None:
        entry = self._entries.get(key)
        if entry is None or entry.pins == 0:
            return
        entry.pins -= 1
        if entry.pins == 0 and entry.observers == 0:
            entry.unobserved_since = self._clock()

    def on_window_focus(self) -> list[QueryKey]:
        return self._refetch_observed(lambda o: o.refetch_on_window_focus)

    def on_reconnect(self) -> list[QueryKey]:
        return self._refetch_observed(lambda o: o.refetch_on_reconnect)

    async def wait_idle(self) -> None:
        """Espera a que terminen los fetch en vuelo y los de segundo plano."""

        while self._inflight or self._background:
            pending = [*self._inflight.values(), *self._background]
            await asyncio.gather(*pending, return_exceptions=True)

    # -- internos -----------------------------------------------------------

    def _ensure_entry(self, key: QueryKey, options: QueryOptions | None) -> CacheEntry:
        entry = self._entries.get(key)
        if entry is None:
            entry = CacheEntry(key=key, options=options or self.defaults)
            self._entries[key] = entry
        return entry

    def _write(self, entry: CacheEntry, data: Any) -> None:
        now = self._clock()
        entry.data = data
        entry.fetched_at = now
        entry.version += 1
        entry.invalidated = False
        if entry.observers == 0:
            entry.unobserved_since = now

    def _release(self, key: QueryKey) -> None:
        entry = self._entries.get(key)
        if entry is None:
            return
        entry.observers = max(0, entry.observers - 1)
        if entry.observers == 0:
            entry.unobserved_since = self._clock()

    def _sweep(self) -> None:
        now = self._clock()
        expired = [
            key
            for key, entry in self._entries.items()
            if key not in self._inflight and entry.is_collectable(now)
        ]
        for key in expired:
            logger.debug("Evicting unobserved cache entry %s", key)
            del self._entries[key]

    async def _fetch_shared(self, key: QueryKey, fetch_fn: FetchFn, opts: QueryOptions) -> Any:
        future = self._inflight.get(key)
        if future is None:
            future = asyncio.ensure_future(self._run_fetch(key, fetch_fn, opts))
            self._inflight[key] = future
            future.add_done_callback(lambda f, k=key: self._fetch_done(k, f))
        # Con shield: si un awaiter se rinde no cancela la request compartida.
        return await asyncio.shield(future)

    def _fetch_done(self, key: QueryKey, future: asyncio.Future[Any]) -> None:
        if self._inflight.get(key) is future:
            del self._inflight[key]
        if not future.cancelled():
            future.exception()

    async def _run_fetch(self, key: QueryKey, fetch_fn: FetchFn, opts: QueryOptions) -> Any:
        entry = self._ensure_entry(key, opts)
        entry.fetch_fn = fetch_fn
        started_at_version = entry.version

        attempts = 1 + opts.retries
        for attempt in range(1, attempts + 1):
            try:
                data = await fetch_fn()
                break
            except Exception as exc:
                if attempt >= attempts:
                    raise
                logger.debug("Fetch %s failed (attempt %d/%d): %s", key, attempt, attempts, exc)

        if self._entries.get(key) is entry and entry.version == started_at_version:
            self._write(entry, data)
        else:
            logger.debug("Discarding fetch result for %s: entry changed while in flight", key)
        return data

    def _spawn_refetch(self, entry: CacheEntry) -> None:
        fetch_fn = entry.fetch_fn
        if fetch_fn is None:
            return
        self._spawn(self._fetch_shared(entry.key, fetch_fn, entry.options))

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Sin loop (llamada síncrona): la entrada queda stale y el próximo
            # `fetch` la relee.
            coro.close()
            return
        task = loop.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background_done)

    def _background_done(self, task: asyncio.Task[Any]) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Background refetch failed: %s", exc)

    def _refetch_observed(self, allowed: Callable[[QueryOptions], bool]) -> list[QueryKey]:
        now = self._clock()
        keys: list[QueryKey] = []
        for entry in list(self._entries.values()):
            if entry.observers == 0 or entry.fetch_fn is None:
                continue
            if not allowed(entry.options) or not entry.is_stale(now):
                continue
            self._spawn_refetch(entry)
            keys.append(entry.key)
        return keys

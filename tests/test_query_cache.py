from __future__ import annotations

import asyncio

import pytest

from core.domain.query_keys import QueryDomain, QueryKey
from core.services.query_cache import QueryCache, QueryOptions

RESIDENTS = QueryKey(QueryDomain.RESIDENTS)


class CountingFetch:
    def __init__(self, *results, gate: asyncio.Event | None = None) -> None:
        self.results = list(results)
        self.calls = 0
        self.gate = gate

    async def __call__(self):
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        else:
            await asyncio.sleep(0)
        result = self.results[min(self.calls, len(self.results)) - 1]
        if isinstance(result, Exception):
            raise result
        return result


async def test_concurrent_fetches_share_one_request(cache):
    fetch = CountingFetch(["r1"])

    results = await asyncio.gather(*(cache.fetch(RESIDENTS, fetch) for _ in range(3)))

    assert results == [["r1"]] * 3
    assert fetch.calls == 1


async def test_fresh_data_is_served_from_cache(cache):
    fetch = CountingFetch(["r1"], ["r2"])

    await cache.fetch(RESIDENTS, fetch)
    again = await cache.fetch(RESIDENTS, fetch)

    assert again == ["r1"]
    assert fetch.calls == 1


async def test_stale_data_is_refetched(cache, clock):
    fetch = CountingFetch(["r1"], ["r2"])
    options = QueryOptions(stale_time=8)

    await cache.fetch(RESIDENTS, fetch, options)
    clock.advance(5)
    assert await cache.fetch(RESIDENTS, fetch, options) == ["r1"]
    clock.advance(5)
    assert await cache.fetch(RESIDENTS, fetch, options) == ["r2"]
    assert fetch.calls == 2


async def test_invalidate_forces_next_fetch(cache):
    fetch = CountingFetch(["r1"], ["r2"])
    await cache.fetch(RESIDENTS, fetch)

    matched = cache.invalidate(QueryKey(QueryDomain.RESIDENTS))

    assert matched == [RESIDENTS]
    assert await cache.fetch(RESIDENTS, fetch) == ["r2"]


async def test_invalidate_refetches_observed_entries_in_background(cache):
    fetch = CountingFetch(["r1"], ["r2"])
    await cache.fetch(RESIDENTS, fetch)
    with cache.subscribe(RESIDENTS, fetch_fn=fetch) as observer:
        cache.invalidate(RESIDENTS)
        await cache.wait_idle()

        assert observer.data == ["r2"]
    assert fetch.calls == 2


async def test_invalidate_matches_by_prefix_within_domain(cache):
    cache.set(QueryKey.of(QueryDomain.MASTER_SETTINGS, "floor"), [])
    cache.set(QueryKey.of(QueryDomain.MASTER_SETTINGS, "meal_time"), [])
    cache.set(QueryKey(QueryDomain.MASTER_CATEGORIES), [])

    matched = cache.invalidate(QueryKey.of(QueryDomain.MASTER_SETTINGS, "floor"), refetch=False)

    assert matched == [QueryKey.of(QueryDomain.MASTER_SETTINGS, "floor")]
    assert not cache.get(QueryKey.of(QueryDomain.MASTER_SETTINGS, "meal_time")).invalidated


async def test_unobserved_entry_is_collected_after_gc_time(cache, clock):
    cache.set(RESIDENTS, ["r1"])

    clock.advance(299)
    assert cache.get_data(RESIDENTS) == ["r1"]
    clock.advance(1)
    assert cache.get(RESIDENTS) is None


async def test_refetch_restarts_the_gc_clock(cache, clock):
    fetch = CountingFetch(["r1"], ["r2"])
    await cache.fetch(RESIDENTS, fetch)

    clock.advance(299)
    assert await cache.refetch(RESIDENTS) == ["r2"]
    clock.advance(1)
    assert cache.get_data(RESIDENTS) == ["r2"]

    clock.advance(299)
    assert cache.get(RESIDENTS) is not None
    clock.advance(1)
    assert cache.get(RESIDENTS) is None


async def test_set_restarts_the_gc_clock(cache, clock):
    cache.set(RESIDENTS, ["r1"])
    clock.advance(200)
    cache.set(RESIDENTS, ["r1", "r2"])

    clock.advance(200)
    assert cache.get_data(RESIDENTS) == ["r1", "r2"]


async def test_pinned_entry_is_not_collected(cache, clock):
    cache.set(RESIDENTS, ["r1"])
    cache.pin(RESIDENTS)

    clock.advance(10_000)
    assert cache.get_data(RESIDENTS) == ["r1"]

    cache.unpin(RESIDENTS)
    clock.advance(299)
    assert cache.get(RESIDENTS) is not None
    clock.advance(1)
    assert cache.get(RESIDENTS) is None


async def test_fetch_without_options_keeps_entry_options(cache):
    options = QueryOptions(stale_time=60, gc_time=30)
    observer = cache.subscribe(RESIDENTS, options=options)

    await cache.fetch(RESIDENTS, CountingFetch(["r1"]))

    assert cache.get(RESIDENTS).options == options
    observer.close()


async def test_observed_entry_is_never_collected(cache, clock):
    cache.set(RESIDENTS, ["r1"])
    observer = cache.subscribe(RESIDENTS)

    clock.advance(10_000)
    assert cache.get_data(RESIDENTS) == ["r1"]

    observer.close()
    clock.advance(300)
    assert cache.get(RESIDENTS) is None


async def test_subscribe_refetches_stale_entry_on_mount(cache, clock):
    fetch = CountingFetch(["r1"], ["r2"])
    options = QueryOptions(stale_time=0)
    await cache.fetch(RESIDENTS, fetch, options)

    with cache.subscribe(RESIDENTS, fetch_fn=fetch, options=options) as observer:
        await cache.wait_idle()
        assert observer.data == ["r2"]


async def test_subscribe_skips_refetch_when_disabled(cache):
    fetch = CountingFetch(["r1"], ["r2"])
    options = QueryOptions(stale_time=0, refetch_on_mount=False)
    await cache.fetch(RESIDENTS, fetch, options)

    with cache.subscribe(RESIDENTS, fetch_fn=fetch, options=options):
        await cache.wait_idle()
    assert fetch.calls == 1


async def test_window_focus_refetch_only_when_enabled(cache):
    fetch = CountingFetch(["r1"], ["r2"])
    await cache.fetch(RESIDENTS, fetch, QueryOptions(stale_time=0))
    observer = cache.subscribe(RESIDENTS, options=QueryOptions(stale_time=0, refetch_on_mount=False))

    assert cache.on_window_focus() == []

    cache.get(RESIDENTS).options = QueryOptions(stale_time=0, refetch_on_window_focus=True)
    assert cache.on_window_focus() == [RESIDENTS]
    await cache.wait_idle()
    assert observer.data == ["r2"]
    observer.close()


async def test_retry_count_is_honoured(cache):
    fetch = CountingFetch(RuntimeError("a"), RuntimeError("b"), ["ok"])

    assert await cache.fetch(RESIDENTS, fetch, QueryOptions(retry=2)) == ["ok"]
    assert fetch.calls == 3


async def test_no_retry_by_default(cache):
    fetch = CountingFetch(RuntimeError("down"), ["ok"])

    with pytest.raises(RuntimeError):
        await cache.fetch(RESIDENTS, fetch)
    assert fetch.calls == 1
    assert cache.get_data(RESIDENTS) is None


async def test_retry_true_means_three_retries():
    assert QueryOptions(retry=True).retries == 3
    assert QueryOptions(retry=False).retries == 0
    assert QueryOptions(retry=5).retries == 5


async def test_write_during_fetch_is_not_overwritten(cache):
    gate = asyncio.Event()
    fetch = CountingFetch(["server"], gate=gate)

    pending = asyncio.ensure_future(cache.fetch(RESIDENTS, fetch))
    while fetch.calls == 0:
        await asyncio.sleep(0)
    cache.set(RESIDENTS, ["local edit"])
    gate.set()

    assert await pending == ["server"]
    assert cache.get_data(RESIDENTS) == ["local edit"]


async def test_clear_during_fetch_drops_the_result(cache):
    gate = asyncio.Event()
    fetch = CountingFetch(["server"], gate=gate)

    pending = asyncio.ensure_future(cache.fetch(RESIDENTS, fetch))
    while fetch.calls == 0:
        await asyncio.sleep(0)
    cache.clear()
    gate.set()
    await pending

    assert cache.get(RESIDENTS) is None


async def test_update_without_entry_creates_nothing_for_none(cache):
    assert cache.update(RESIDENTS, lambda current: current) is None
    assert cache.get(RESIDENTS) is None

    cache.update(RESIDENTS, lambda current: (current or []) + ["r1"])
    assert cache.get_data(RESIDENTS) == ["r1"]


def test_keys_must_be_hashable():
    with pytest.raises(TypeError):
        QueryKey.of(QueryDomain.RESIDENTS, ["not", "hashable"])
    with pytest.raises(TypeError):
        QueryKey("/api/residents")


def test_key_prefix_matching():
    key = QueryKey.of(QueryDomain.MEALS_MEDICATION, "2024-05-01", "朝", "1階")

    assert key.matches(QueryKey(QueryDomain.MEALS_MEDICATION))
    assert key.matches(QueryKey.of(QueryDomain.MEALS_MEDICATION, "2024-05-01"))
    assert not key.matches(QueryKey.of(QueryDomain.MEALS_MEDICATION, "2024-05-02"))
    assert not key.matches(QueryKey(QueryDomain.VITAL_SIGNS))

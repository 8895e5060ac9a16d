from __future__ import annotations

import asyncio

import pytest

from adapters.notifier import MemoryNotifier
from core.domain.errors import ApiError, MutationStateError
from core.domain.query_keys import QueryDomain, QueryKey
from core.services.optimistic import MutationPlan, MutationState, OptimisticMutation
from core.services.reconcile import restore_snapshot

KEY = QueryKey.of(QueryDomain.MASTER_SETTINGS, "floor")


def _rows():
    return [
        {"id": "a", "label": "1階", "sortOrder": 0, "isActive": True},
        {"id": "b", "label": "2階", "sortOrder": 1, "isActive": True},
    ]


def _set_field(record_id, name, value):
    def apply(data):
        return [{**r, name: value} if r["id"] == record_id else r for r in data]

    return apply


class Gate:
    """A `send` that waits until the test releases it."""

    def __init__(self) -> None:
        self.event = asyncio.Event()
        self.result = None
        self.error: Exception | None = None

    def succeed(self, result=None) -> None:
        self.result = result
        self.event.set()

    def fail(self, error: Exception) -> None:
        self.error = error
        self.event.set()

    async def __call__(self):
        await self.event.wait()
        if self.error is not None:
            raise self.error
        return self.result


def _mutation(cache, plan, notifier=None):
    return OptimisticMutation(cache, plan, notifier=notifier)


async def test_edit_is_visible_before_the_write_settles(cache):
    cache.set(KEY, _rows())
    gate = Gate()
    mutation = _mutation(cache, MutationPlan(key=KEY, apply=_set_field("a", "label", "B1"), send=gate))

    task = asyncio.ensure_future(mutation.run())
    await asyncio.sleep(0)

    assert mutation.state is MutationState.PENDING
    assert cache.get_data(KEY)[0]["label"] == "B1"
    assert mutation.snapshot == _rows()

    gate.succeed({"id": "a"})
    assert await task == {"id": "a"}
    assert mutation.state is MutationState.COMMITTED
    assert mutation.snapshot is None
    assert cache.get_data(KEY)[0]["label"] == "B1"


async def test_failed_write_restores_snapshot_and_notifies(cache):
    cache.set(KEY, _rows())
    notifier = MemoryNotifier()
    gate = Gate()
    mutation = _mutation(
        cache,
        MutationPlan(key=KEY, apply=_set_field("a", "label", "B1"), send=gate),
        notifier,
    )

    task = asyncio.ensure_future(mutation.run())
    await asyncio.sleep(0)
    gate.fail(ApiError(500, "database down"))

    with pytest.raises(ApiError):
        await task
    assert cache.get_data(KEY) == _rows()
    assert mutation.state is MutationState.ROLLED_BACK
    assert [n.message for n in notifier.errors] == ["database down"]


async def test_rollback_keeps_later_edit_to_another_field(cache):
    cache.set(KEY, _rows())
    first, second = Gate(), Gate()
    a = _mutation(cache, MutationPlan(key=KEY, apply=_set_field("a", "label", "B1"), send=first))
    b = _mutation(cache, MutationPlan(key=KEY, apply=_set_field("a", "isActive", False), send=second))

    a.begin()
    b.begin()
    first.fail(ApiError(500, "boom"))
    second.succeed()
    results = await asyncio.gather(a.settle(), b.settle(), return_exceptions=True)

    assert isinstance(results[0], ApiError)
    row = cache.get_data(KEY)[0]
    assert row["label"] == "1階"
    assert row["isActive"] is False


async def test_rollback_leaves_field_taken_over_by_later_edit(cache):
    cache.set(KEY, _rows())
    first, second = Gate(), Gate()
    a = _mutation(cache, MutationPlan(key=KEY, apply=_set_field("a", "label", "B1"), send=first))
    b = _mutation(cache, MutationPlan(key=KEY, apply=_set_field("a", "label", "B2"), send=second))

    a.begin()
    b.begin()
    first.fail(ApiError(500, "boom"))
    second.succeed()
    await asyncio.gather(a.settle(), b.settle(), return_exceptions=True)

    assert cache.get_data(KEY)[0]["label"] == "B2"


async def test_commit_merges_server_payload(cache):
    cache.set(KEY, _rows())

    def commit(current, payload):
        return [{**r, **payload} if r["id"] == payload["id"] else r for r in current]

    plan = MutationPlan(
        key=KEY,
        apply=_set_field("a", "label", "B1"),
        send=lambda: asyncio.sleep(0, result={"id": "a", "updatedAt": "now"}),
        commit=commit,
    )
    await _mutation(cache, plan).run()

    assert cache.get_data(KEY)[0] == {**_rows()[0], "label": "B1", "updatedAt": "now"}


async def test_abandoned_mutation_rolls_back_silently(cache):
    cache.set(KEY, _rows())
    notifier = MemoryNotifier()
    gate = Gate()
    mutation = _mutation(cache, MutationPlan(key=KEY, apply=_set_field("a", "label", "B1"), send=gate), notifier)

    mutation.begin()
    mutation.abandon()
    gate.fail(ApiError(500, "boom"))
    with pytest.raises(ApiError):
        await mutation.settle()

    assert cache.get_data(KEY) == _rows()
    assert notifier.notifications == []


async def test_fire_reports_failure_only_through_notifier(cache):
    cache.set(KEY, _rows())
    notifier = MemoryNotifier()

    async def send():
        raise ApiError(409, "conflict")

    mutation = _mutation(cache, MutationPlan(key=KEY, apply=_set_field("a", "label", "B1"), send=send), notifier)
    assert await mutation.fire() is None

    assert mutation.state is MutationState.ROLLED_BACK
    assert isinstance(mutation.error, ApiError)
    assert len(notifier.errors) == 1


async def test_terminal_states_are_final(cache):
    cache.set(KEY, _rows())
    mutation = _mutation(cache, MutationPlan(key=KEY, apply=lambda d: d, send=lambda: asyncio.sleep(0)))

    await mutation.run()

    with pytest.raises(MutationStateError):
        mutation.begin()
    with pytest.raises(MutationStateError):
        await mutation.settle()


async def test_settle_requires_begin(cache):
    mutation = _mutation(cache, MutationPlan(key=KEY, apply=lambda d: d, send=lambda: asyncio.sleep(0)))

    with pytest.raises(MutationStateError):
        await mutation.settle()


async def test_revalidate_prefixes_are_invalidated_either_way(cache):
    cache.set(KEY, _rows())
    other = QueryKey(QueryDomain.STAFF_NOTICES_UNREAD_COUNT)
    cache.set(other, 3)

    async def send():
        raise ApiError(500, "boom")

    plan = MutationPlan(key=KEY, apply=lambda d: d, send=send, revalidate=(KEY, other))
    with pytest.raises(ApiError):
        await _mutation(cache, plan).run()

    assert cache.get(KEY).invalidated
    assert cache.get(other).invalidated


async def test_failed_edit_of_missing_entry_leaves_no_entry(cache):
    async def send():
        raise ApiError(500, "boom")

    plan = MutationPlan(key=KEY, apply=lambda d: [{"id": "x"}], send=send)
    with pytest.raises(ApiError):
        await _mutation(cache, plan).run()

    assert cache.get(KEY) is None


async def test_whole_snapshot_rollback_for_batch_edits(cache):
    cache.set(KEY, _rows())
    gate = Gate()
    reordered = list(reversed(_rows()))
    mutation = _mutation(
        cache,
        MutationPlan(key=KEY, apply=lambda d: reordered, send=gate, rollback=restore_snapshot),
    )

    mutation.begin()
    gate.fail(ApiError(500, "boom"))
    with pytest.raises(ApiError):
        await mutation.settle()

    assert cache.get_data(KEY) == _rows()


async def test_success_message_is_notified(cache):
    notifier = MemoryNotifier()
    cache.set(KEY, _rows())
    plan = MutationPlan(key=KEY, apply=lambda d: d, send=lambda: asyncio.sleep(0), success_message="Saved it.")

    await _mutation(cache, plan, notifier).run()

    assert [(n.variant, n.message) for n in notifier.notifications] == [("default", "Saved it.")]


def _append_record(record):
    def apply(data):
        return [*(data or []), record]

    return apply


def _merge_by_id(current, payload):
    rows = [r for r in current if r["id"] != payload["id"]]
    return [*rows, payload]


async def test_pending_mutation_keeps_its_entry_alive(cache, clock):
    cache.set(KEY, [{"id": "a"}, {"id": "b"}])
    clock.advance(299)
    gate = Gate()
    mutation = _mutation(
        cache,
        MutationPlan(key=KEY, apply=_append_record({"id": "c"}), send=gate, commit=_merge_by_id),
    )

    mutation.begin()
    clock.advance(400)
    cache.get(QueryKey(QueryDomain.RESIDENTS))
    gate.succeed({"id": "c", "label": "3階"})
    await mutation.settle()

    assert [r["id"] for r in cache.get_data(KEY)] == ["a", "b", "c"]
    clock.advance(299)
    assert cache.get(KEY) is not None
    clock.advance(1)
    assert cache.get(KEY) is None


async def test_commit_after_cache_clear_does_not_rebuild_the_entry(cache):
    cache.set(KEY, [{"id": "a"}, {"id": "b"}])
    gate = Gate()
    mutation = _mutation(
        cache,
        MutationPlan(key=KEY, apply=_append_record({"id": "c"}), send=gate, commit=_merge_by_id),
    )

    mutation.begin()
    cache.clear()
    gate.succeed({"id": "c"})
    await mutation.settle()

    assert mutation.state is MutationState.COMMITTED
    assert cache.get(KEY) is None


async def test_rollback_after_cache_clear_does_not_restore_old_data(cache):
    cache.set(KEY, _rows())
    notifier = MemoryNotifier()
    gate = Gate()
    mutation = _mutation(
        cache,
        MutationPlan(key=KEY, apply=_set_field("a", "label", "B1"), send=gate),
        notifier,
    )

    mutation.begin()
    cache.clear()
    gate.fail(ApiError(500, "database down"))
    with pytest.raises(ApiError):
        await mutation.settle()

    assert mutation.state is MutationState.ROLLED_BACK
    assert cache.get(KEY) is None
    assert len(notifier.errors) == 1

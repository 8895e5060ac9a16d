from __future__ import annotations

import asyncio

import pytest

from adapters.records import NursingRecordsRepository
from core.domain.errors import ApiError

from conftest import json_response, wait_for

NOTE = {"id": "n1", "residentId": "r1", "recordDate": "2024-05-01", "description": "微熱あり"}


async def test_list_sends_only_given_filters(client, fake_api):
    fake_api.json("GET", "/api/nursing-records", [NOTE])

    records = await NursingRecordsRepository(client).list(resident_id="r1")

    assert records == [NOTE]
    params = fake_api.requests[0].url.params
    assert params["residentId"] == "r1"
    assert "startDate" not in params
    assert "endDate" not in params


async def test_update_is_optimistic_and_rolls_back_on_failure(client, fake_api, notifier):
    fake_api.json("GET", "/api/nursing-records", [NOTE])
    gate = asyncio.Event()

    async def update(request):
        await gate.wait()
        return json_response({"message": "record locked"}, 409)

    fake_api.add("PATCH", "/api/nursing-records/n1", update)
    repo = NursingRecordsRepository(client)
    await repo.list(resident_id="r1")
    key = repo.list_key("r1")

    task = asyncio.ensure_future(repo.update("n1", "description", "解熱", resident_id="r1"))
    await wait_for(lambda: fake_api.calls("PATCH", "/api/nursing-records/n1"))
    assert client.cache.get_data(key)[0]["description"] == "解熱"

    gate.set()
    with pytest.raises(ApiError):
        await task

    assert client.cache.get_data(key)[0]["description"] == "微熱あり"
    assert [n.message for n in notifier.errors] == ["record locked"]
    assert fake_api.body(fake_api.calls("PATCH", "/api/nursing-records/n1")[0]) == {"description": "解熱"}


async def test_create_uses_default_category_and_invalidates_lists(client, fake_api):
    fake_api.json("GET", "/api/nursing-records", [])
    fake_api.add("POST", "/api/nursing-records", lambda request: json_response({**fake_api.body(request), "id": "n2"}, 201))
    repo = NursingRecordsRepository(client)
    await repo.list(start_date="2024-05-01", end_date="2024-05-31")

    created = await repo.create("r1", record_date="2024-05-02", description="転倒なし")

    assert created["id"] == "n2"
    body = fake_api.body(fake_api.calls("POST", "/api/nursing-records")[0])
    assert body["category"] == "看護記録"
    assert body["residentId"] == "r1"
    assert client.cache.get(repo.list_key(None, "2024-05-01", "2024-05-31")).invalidated

from __future__ import annotations

from adapters.records import ResidentRepository, TenantRepository

RESIDENTS = [
    {"id": "r1", "name": "山田", "floor": "1階"},
    {"id": "r2", "name": "佐藤", "floor": "2F"},
    {"id": "r3", "name": "鈴木", "floor": None},
]


async def test_residents_are_filtered_by_floor_spelling(client, fake_api):
    fake_api.json("GET", "/api/residents", RESIDENTS)
    repo = ResidentRepository(client)

    assert [r["id"] for r in await repo.list("1")] == ["r1"]
    assert [r["id"] for r in await repo.list("2階")] == ["r2"]
    assert [r["id"] for r in await repo.list("全階")] == ["r1", "r2", "r3"]
    assert len(fake_api.calls("GET", "/api/residents")) == 1


async def test_missing_resident_is_none(client, fake_api):
    fake_api.json("GET", "/api/residents/r9", {"message": "Resident not found"}, status=404)

    assert await ResidentRepository(client).get("r9") is None


async def test_tenants_are_parsed(make_client, fake_api):
    fake_api.json(
        "GET",
        "/api/tenants",
        [{"id": "1", "tenantId": "t1", "tenantName": "本館", "status": "active"}],
    )
    client = make_client("/")

    tenants = await TenantRepository(client).list()

    assert [(t.tenant_id, t.tenant_name) for t in tenants] == [("t1", "本館")]
    assert "x-tenant-id" not in fake_api.requests[0].headers


async def test_single_tenant_lookup(make_client, fake_api):
    fake_api.json("GET", "/api/tenants/t1", {"tenantId": "t1", "tenantName": "本館"})
    fake_api.json("GET", "/api/tenants/t9", {"message": "not found"}, status=404)
    repo = TenantRepository(make_client("/"))

    assert (await repo.get("t1")).tenant_name == "本館"
    assert await repo.get("t9") is None

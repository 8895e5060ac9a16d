from __future__ import annotations

import pytest

from adapters.records import AuthRepository
from adapters.records.auth import STAFF_USER_KEY, USER_KEY
from core.domain.errors import TenantAccessError
from core.services.tenant_resolver import SELECTED_TENANT_KEY

STAFF = {"id": "s1", "staffName": "佐藤", "tenantId": "t1", "role": "nurse"}
USER = {
    "id": "u1",
    "firstName": "Aiko",
    "tenantId": "t1",
    "tenants": [{"id": "t1", "name": "本館"}, {"id": "t2", "name": "別館"}],
}


def _signed_out(fake_api):
    fake_api.json("GET", "/api/auth/user", {"message": "Unauthorized"}, status=401)
    fake_api.json("GET", "/api/auth/staff-user", {"message": "Unauthorized"}, status=401)


async def test_signed_out_session(client, fake_api):
    _signed_out(fake_api)

    session = await AuthRepository(client).session()

    assert not session.is_authenticated
    assert session.auth_type is None


async def test_staff_login_is_found_when_generic_login_is_absent(client, fake_api):
    fake_api.json("GET", "/api/auth/user", {"message": "Unauthorized"}, status=401)
    fake_api.json("GET", "/api/auth/staff-user", STAFF)

    session = await AuthRepository(client).session()

    assert session.is_staff
    assert session.user.display_name == "佐藤"
    assert session.tenant_id == "t1"
    assert not session.has_multiple_tenants


async def test_generic_user_with_several_tenants(client, fake_api):
    fake_api.json("GET", "/api/auth/user", USER)

    session = await AuthRepository(client).session()

    assert session.auth_type == "user"
    assert session.has_multiple_tenants
    assert fake_api.calls("GET", "/api/auth/staff-user") == []


async def test_cached_staff_user_skips_generic_lookup(client, fake_api):
    fake_api.json("POST", "/api/auth/staff-login", STAFF)
    repo = AuthRepository(client)

    user = await repo.staff_login("s1", "secret")
    session = await repo.session()

    assert user.id == "s1"
    assert session.is_staff
    assert fake_api.body(fake_api.calls("POST", "/api/auth/staff-login")[0]) == {"staffId": "s1", "password": "secret"}
    assert fake_api.calls("GET", "/api/auth/user") == []


async def test_auth_lookups_are_cached(client, fake_api):
    fake_api.json("GET", "/api/auth/user", USER)
    repo = AuthRepository(client)

    await repo.current_user()
    await repo.current_user()

    assert len(fake_api.calls("GET", "/api/auth/user")) == 1


async def test_switch_to_foreign_tenant_is_refused_locally(client, fake_api):
    fake_api.json("GET", "/api/auth/user", USER)

    with pytest.raises(TenantAccessError):
        await AuthRepository(client).switch_tenant("t9")

    assert fake_api.calls("POST", "/api/auth/switch-tenant") == []


async def test_switch_tenant_requires_a_login(client, fake_api):
    _signed_out(fake_api)

    with pytest.raises(TenantAccessError):
        await AuthRepository(client).switch_tenant("t2")


async def test_switch_tenant_posts_and_invalidates_identities(client, fake_api):
    fake_api.json("GET", "/api/auth/user", USER)
    fake_api.json("POST", "/api/auth/switch-tenant", {"success": True})
    repo = AuthRepository(client)

    await repo.switch_tenant("t2")

    assert fake_api.body(fake_api.calls("POST", "/api/auth/switch-tenant")[0]) == {"tenantId": "t2"}
    assert client.cache.get(USER_KEY).invalidated


async def test_staff_logout_uses_server_redirect_and_clears_session(client, fake_api, storage):
    fake_api.json("GET", "/api/auth/staff-user", STAFF)
    fake_api.json("GET", "/api/auth/user", {"message": "Unauthorized"}, status=401)
    fake_api.json("POST", "/api/auth/staff-logout", {"redirect": "/tenant/t1/staff-login"})
    repo = AuthRepository(client)
    await repo.session()

    redirect = await repo.logout()

    assert redirect == "/tenant/t1/staff-login"
    assert fake_api.calls("POST", "/api/auth/staff-logout")[0].headers["x-tenant-id"] == "t1"
    assert storage.get_item(SELECTED_TENANT_KEY) is None
    assert client.cache.get(STAFF_USER_KEY) is None


async def test_staff_logout_failure_falls_back_to_tenant_login(client, fake_api, storage):
    fake_api.json("POST", "/api/auth/staff-login", STAFF)
    fake_api.json("POST", "/api/auth/staff-logout", {"message": "down"}, status=500)
    repo = AuthRepository(client)
    await repo.staff_login("s1", "secret")

    assert await repo.logout() == "/tenant/t1/staff-login"
    assert storage.get_item(SELECTED_TENANT_KEY) is None


async def test_generic_logout_goes_to_provider_logout(client, fake_api):
    fake_api.json("GET", "/api/auth/user", USER)

    assert await AuthRepository(client).logout() == "/api/logout"
    assert client.cache.get(USER_KEY) is None

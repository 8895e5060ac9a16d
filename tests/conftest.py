"""Shared fixtures: an in-memory API server behind `httpx.MockTransport`."""

from __future__ import annotations

import asyncio
import inspect
import json
from typing import Any, Callable

import httpx
import pytest

from adapters.client import CareClient, build_care_client
from adapters.notifier import MemoryNotifier
from adapters.session_store import MemorySessionStore
from core.config import AppSettings
from core.services.query_cache import QueryCache, QueryOptions

BASE_URL = "http://care.test"

Handler = Callable[[httpx.Request], Any]


def json_response(data: Any, status: int = 200) -> httpx.Response:
    return httpx.Response(status, json=data)


async def wait_for(predicate: Callable[[], Any], attempts: int = 200) -> None:
    """Yield to the loop until `predicate()` holds."""

    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


class FakeApi:
    """Routes `(method, path)` to canned responses or handlers and records every request."""

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], Handler] = {}
        self.requests: list[httpx.Request] = []

    def add(self, method: str, path: str, response: Any) -> None:
        if callable(response) and not isinstance(response, httpx.Response):
            self.routes[(method.upper(), path)] = response
        else:
            self.routes[(method.upper(), path)] = lambda request, r=response: r

    def json(self, method: str, path: str, data: Any, status: int = 200) -> None:
        self.add(method, path, lambda request: json_response(data, status))

    async def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get((request.method, request.url.path))
        if handler is None:
            return json_response({"message": f"no route {request.method} {request.url.path}"}, 404)
        result = handler(request)
        if inspect.isawaitable(result):
            result = await result
        if isinstance(result, httpx.Response):
            return result
        return json_response(result)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    @staticmethod
    def body(request: httpx.Request) -> Any:
        return json.loads(request.content.decode("utf-8"))


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def settings() -> AppSettings:
    return AppSettings(base_url=BASE_URL, environment="test", _env_file=None)


@pytest.fixture
def fake_api() -> FakeApi:
    return FakeApi()


@pytest.fixture
def notifier() -> MemoryNotifier:
    return MemoryNotifier()


@pytest.fixture
def storage() -> MemorySessionStore:
    return MemorySessionStore()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def make_client(settings, fake_api, notifier, storage):
    created: list[CareClient] = []

    def factory(path: str = "/", *, cache: QueryCache | None = None) -> CareClient:
        client = build_care_client(
            settings,
            path=path,
            storage=storage,
            notifier=notifier,
            transport=fake_api.transport,
            cache=cache,
        )
        created.append(client)
        return client

    yield factory
    for client in created:
        await client.aclose()


@pytest.fixture
async def client(make_client) -> CareClient:
    return make_client("/tenant/t1/")


@pytest.fixture
def cache(clock) -> QueryCache:
    return QueryCache(defaults=QueryOptions(), clock=clock)

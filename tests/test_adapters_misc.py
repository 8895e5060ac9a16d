from __future__ import annotations

import json

from rich.console import Console

from adapters.json_exporter import export_json
from adapters.notifier import ConsoleNotifier, MemoryNotifier
from adapters.session_store import FileSessionStore
from core.domain.models import Notification, Tenant
from core.interfaces.storage import SessionStore


def test_file_session_store_round_trip_and_clear(tmp_path):
    store = FileSessionStore(tmp_path / "nested" / "session.json")

    store.set_item("selectedTenantId", "t1")
    store.set_item("other", "x")
    store.remove_item("other")

    assert FileSessionStore(store.path).get_item("selectedTenantId") == "t1"
    assert FileSessionStore(store.path).get_item("other") is None

    store.clear()
    assert not store.path.exists()
    assert store.get_item("selectedTenantId") is None


def test_corrupt_session_file_is_ignored(tmp_path):
    path = tmp_path / "session.json"
    path.write_text("{not json", encoding="utf-8")

    assert FileSessionStore(path).get_item("selectedTenantId") is None


def test_stores_satisfy_the_protocol(tmp_path):
    assert isinstance(FileSessionStore(tmp_path / "s.json"), SessionStore)


def test_export_json_serializes_models_and_dicts(tmp_path):
    payload = {"tenants": [Tenant(tenant_id="t1", tenant_name="本館")], "count": 1}

    path = export_json(payload=payload, output_path=tmp_path / "out" / "export.json")

    data = json.loads(path.read_text(encoding="utf-8"))
    assert data["count"] == 1
    assert data["tenants"][0]["tenantId"] == "t1"
    assert "本館" in path.read_text(encoding="utf-8")


def test_memory_notifier_separates_errors():
    notifier = MemoryNotifier()
    notifier.notify(Notification(title="Saved", message="ok"))
    notifier.notify(Notification(title="Error", message="boom", variant="destructive"))

    assert [n.message for n in notifier.errors] == ["boom"]


def test_console_notifier_prints_title_and_message():
    console = Console(record=True, width=80)
    ConsoleNotifier(console).notify(Notification(title="Error", message="boom", variant="destructive"))

    assert "Error: boom" in console.export_text()

"""Estado del CLI por invocación (lo que cada comando necesita para armar un cliente)."""

from __future__ import annotations

from dataclasses import dataclass

import httpx

from adapters.client import CareClient, build_care_client
from adapters.notifier import ConsoleNotifier
from adapters.session_store import FileSessionStore
from core.config import AppSettings, get_session_file
from core.interfaces.notifier import Notifier
from core.interfaces.storage import SessionStore


@dataclass
class CliState:
    settings: AppSettings | None = None
    storage: SessionStore | None = None
    notifier: Notifier | None = None
    transport: httpx.AsyncBaseTransport | None = None
    debug: bool = False

    def get_settings(self) -> AppSettings:
        if self.settings is None:
            self.settings = AppSettings()
        return self.settings

    def get_storage(self) -> SessionStore:
        if self.storage is None:
            self.storage = FileSessionStore(get_session_file(self.get_settings()))
        return self.storage

    def build_client(self, path: str = "/") -> CareClient:
        return build_care_client(
            self.get_settings(),
            path=path,
            storage=self.get_storage(),
            notifier=self.notifier or ConsoleNotifier(),
            transport=self.transport,
            persist_cookies=True,
        )

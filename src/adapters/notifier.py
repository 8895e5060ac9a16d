"""Notificadores (el "toast")."""

from __future__ import annotations

from rich.console import Console
from rich.text import Text

from core.domain.models import Notification


class ConsoleNotifier:
    """Imprime las notificaciones en la terminal (stderr por defecto)."""

    def __init__(self, console: Console | None = None) -> None:
        self._console = console or Console(stderr=True)

    def notify(self, notification: Notification) -> None:
        style = "bold red" if notification.variant == "destructive" else "bold green"
        line = Text.assemble((f"{notification.title}: ", style), notification.message)
        self._console.print(line)


class MemoryNotifier:
    """Guarda las notificaciones en memoria (uso sin terminal, tests)."""

    def __init__(self) -> None:
        self.notifications: list[Notification] = []

    def notify(self, notification: Notification) -> None:
        self.notifications.append(notification)

    @property
    def errors(self) -> list[Notification]:
        return [n for n in self.notifications if n.variant == "destructive"]

"""Contrato de notificaciones visibles para el usuario (el "toast" de error)."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from core.domain.models import Notification


@runtime_checkable
class Notifier(Protocol):
    def notify(self, notification: Notification) -> None:
        """Muestra (o registra) una notificación transitoria."""

        ...

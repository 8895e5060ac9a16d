"""Taxonomía de errores de la capa de sincronización.

Todo fallo que lanza este paquete deriva de `CareLogError`: quien llama
(páginas, comandos del CLI, mutaciones optimistas) captura un solo tipo y aun
así distingue problemas de transporte, de HTTP y de payload.
"""

from __future__ import annotations

from typing import Any


class CareLogError(Exception):
    """Base de todo lo que lanza carelog-sync."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class TransportError(CareLogError):
    """La request no llegó al servidor o nunca volvió."""


class ApiError(CareLogError):
    """Status HTTP no exitoso.

    `errors` conserva el `errors[]` por campo del servidor (para formularios que
    resaltan campos); `details` conserva las demás claves del cuerpo JSON.
    """

    def __init__(
        self,
        status: int,
        message: str,
        *,
        errors: list[Any] | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.errors = errors
        self.details = details or {}

    @property
    def is_server_error(self) -> bool:
        return self.status >= 500


class UnauthorizedError(ApiError):
    """HTTP 401. Cada query decide por configuración si se convierte en `None`."""


class UnexpectedHtmlError(CareLogError):
    """Una respuesta exitosa trajo una página HTML en lugar de datos.

    Típicamente una redirección de auth que sirve el login, o una request que
    cayó en el fallback de la SPA en vez de la API.
    """

    def __init__(self, message: str, *, status: int, title: str | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.title = title


class TenantAccessError(CareLogError):
    """El usuario autenticado no puede operar dentro del tenant pedido."""


class MutationStateError(CareLogError):
    """Una mutación optimista recibió una transición ilegal."""


def error_for_status(
    status: int,
    message: str,
    *,
    errors: list[Any] | None = None,
    details: dict[str, Any] | None = None,
) -> ApiError:
    cls = UnauthorizedError if status == 401 else ApiError
    return cls(status, message, errors=errors, details=details)

"""Contrato del almacén con alcance de sesión.

Por qué Protocol:
- El resolver de tenant y el cliente solo usan las cuatro operaciones de
  `sessionStorage`; dónde viven los valores (memoria, un JSON) es cosa del adaptador.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class SessionStore(Protocol):
    """Almacén clave/valor de strings limitado a una sesión del cliente."""

    def get_item(self, key: str) -> str | None:
        ...

    def set_item(self, key: str, value: str) -> None:
        ...

    def remove_item(self, key: str) -> None:
        ...

    def clear(self) -> None:
        ...

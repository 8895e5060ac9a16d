"""Configuración de logging del CLI.

Los módulos de la librería solo llaman a `logging.getLogger(__name__)`; los
handlers se instalan aquí, una vez, desde el punto de entrada.
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

_QUIET_LIBRARIES = ("httpx", "httpcore")


def configure_logging(*, debug: bool = False, console: Console | None = None) -> None:
    level = logging.DEBUG if debug else logging.WARNING
    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=debug,
        rich_tracebacks=debug,
        markup=False,
    )
    logging.basicConfig(level=level, format="%(message)s", datefmt="[%X]", handlers=[handler], force=True)
    for name in _QUIET_LIBRARIES:
        logging.getLogger(name).setLevel(logging.INFO if debug else logging.WARNING)

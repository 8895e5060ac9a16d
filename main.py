"""Arranque para desarrollo sin instalar el paquete.

Uso:
- `python -m main tenant show`

Sin un `pip install -e .` los paquetes de `src/` (`cli`, `core`, `adapters`)
no están en el path; este módulo los agrega antes de importar el CLI.
"""

from __future__ import annotations

import sys
from pathlib import Path


def main() -> None:
    project_root = Path(__file__).resolve().parent
    src = project_root / "src"
    if str(src) not in sys.path:
        sys.path.insert(0, str(src))

    from cli.main import run  # noqa: PLC0415

    run()


if __name__ == "__main__":
    main()

"""Arranque desde `src/`.

`python -m main` corre el mismo CLI que el script `carelog` instalado.
"""

from __future__ import annotations

import sys

# Etiquetas japonesas (pisos, comidas) en terminales Windows con cp1252 por defecto.
if sys.platform == "win32":
    sys.stdout.reconfigure(encoding="utf-8")
    sys.stderr.reconfigure(encoding="utf-8")

from cli.main import run


def main() -> None:
    run()


if __name__ == "__main__":
    main()

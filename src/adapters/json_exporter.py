"""Exportación JSON de los registros leídos.

Por qué JSON:
- Se pasa a planillas u otras herramientas sin reformatear.
- Queda una foto de lo que devolvió el servidor para una fecha/piso.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pydantic import BaseModel


def to_jsonable(payload: Any) -> Any:
    if isinstance(payload, BaseModel):
        return payload.model_dump(mode="json", by_alias=True)
    if isinstance(payload, (list, tuple)):
        return [to_jsonable(item) for item in payload]
    if isinstance(payload, dict):
        return {str(k): to_jsonable(v) for k, v in payload.items()}
    return payload


def export_json(*, payload: Any, output_path: Path) -> Path:
    """Escribe `payload` (modelos, dicts o listas de ellos) como JSON UTF-8 estable."""

    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(
        json.dumps(to_jsonable(payload), ensure_ascii=False, indent=2, sort_keys=True, default=str) + "\n",
        encoding="utf-8",
    )
    return output_path

"""Configuración de carelog-sync.

Por qué en el Core:
- Las variables `CARELOG_*` se validan una sola vez (pydantic-settings) y el CLI
  solo recibe el objeto ya tipado.
- El cliente HTTP, el cache y el almacén de sesión leen los mismos valores.
"""

from __future__ import annotations

import math
import os
import sys
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def get_user_config_dir() -> Path:
    """Directorio de configuración del usuario según la plataforma."""

    if sys.platform.startswith("win"):
        base = Path(os.environ.get("APPDATA", str(Path.home())))
        return base / "carelog"
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "carelog"

    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "carelog"
    return Path.home() / ".config" / "carelog"


def get_user_env_file() -> Path:
    return get_user_config_dir() / ".env"


def _parse_env_lines(text: str) -> dict[str, str]:
    data: dict[str, str] = {}
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key:
            data[key] = value
    return data


def write_user_env_vars(values: dict[str, str], *, env_path: Path | None = None) -> Path:
    """Agrega o reemplaza variables en el .env global del usuario."""

    env_path = env_path or get_user_env_file()
    env_path.parent.mkdir(parents=True, exist_ok=True)

    existing: dict[str, str] = {}
    if env_path.exists():
        try:
            existing = _parse_env_lines(env_path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError):
            existing = {}

    existing.update({k: v for k, v in values.items() if v is not None})

    lines = ["# carelog user config (.env)"]
    for key in sorted(existing.keys()):
        lines.append(f"{key}={existing[key]}")
    env_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return env_path


class AppSettings(BaseSettings):
    """Contrato único de configuración para el CLI y los adaptadores.

    Por qué pydantic-settings:
    - Tipos y validación en el borde (variables de entorno, `.env`).
    - Los tests construyen uno explícito con `_env_file=None`.
    """

    model_config = SettingsConfigDict(
        env_prefix="CARELOG_",
        extra="ignore",
        case_sensitive=False,
        # Primero el .env del proyecto (desarrollo), luego el global del usuario.
        env_file=(".env", str(get_user_env_file())),
        env_file_encoding="utf-8",
    )

    base_url: str = Field(
        default="http://localhost:5000",
        min_length=8,
        description="Origen de la API REST de registros (las rutas cuelgan de /api/...).",
    )
    http_timeout_seconds: float = Field(
        default=20.0,
        gt=0,
        description="Timeout de transporte por request (segundos).",
    )
    user_agent: str = Field(
        default="carelog-sync/0.1",
        min_length=1,
        description="User-Agent enviado en cada request.",
    )

    environment: str = Field(
        default="development",
        description="Entorno de despliegue; 'production' desactiva el log detallado de requests.",
    )
    debug_requests: bool = Field(
        default=False,
        description="Log detallado de request/response (se ignora en producción).",
    )

    session_file: Path | None = Field(
        default=None,
        description="Archivo JSON que respalda el almacén de sesión del CLI.",
    )

    query_stale_seconds: float = Field(
        default=math.inf,
        ge=0,
        description="staleTime por defecto de las queries (inf = nunca se releen solas).",
    )
    query_gc_seconds: float = Field(
        default=300.0,
        ge=0,
        description="gcTime por defecto: segundos tras los que se descarta una entrada sin observadores.",
    )
    query_retry: int = Field(
        default=0,
        ge=0,
        le=10,
        description="Reintentos automáticos de fetch fallidos. La aplicación lo deja en 0.",
    )

    @property
    def verbose_requests(self) -> bool:
        return self.debug_requests and self.environment.strip().lower() != "production"


def get_session_file(settings: AppSettings) -> Path:
    return settings.session_file or (get_user_config_dir() / "session.json")

"""Modelos del dominio (Pydantic v2).

Por qué Pydantic en el dominio:
- Validación estricta y campos autodocumentados (Field) sin acoplar el Core a
  librerías de I/O.
- Los registros de cuidado siguen siendo JSON opaco (`dict`) para la capa de
  sincronización; aquí solo se modela lo que la capa necesita entender.

Nota:
- Estos modelos describen *qué* es la información, no *cómo* se obtiene.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, Field
from pydantic.config import ConfigDict


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TenantSummary(BaseModel):
    """Un tenant al que el usuario puede cambiar (elemento de `AuthUser.tenants`)."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str = Field(..., min_length=1, description="Identificador del tenant.")
    name: str | None = Field(default=None, description="Nombre visible, si viene.")


class AuthUser(BaseModel):
    """Usuario autenticado tal como lo devuelven `/api/auth/user` o `/api/auth/staff-user`."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str = Field(..., min_length=1)
    email: str | None = None
    first_name: str | None = Field(default=None, alias="firstName")
    last_name: str | None = Field(default=None, alias="lastName")
    staff_name: str | None = Field(default=None, alias="staffName")
    role: str | None = Field(default=None, description="staff, nurse, admin ...")
    tenant_id: str | None = Field(default=None, alias="tenantId")
    tenants: list[TenantSummary] = Field(default_factory=list)

    @property
    def display_name(self) -> str:
        return self.staff_name or self.first_name or self.email or self.id

    def can_access(self, tenant_id: str) -> bool:
        if not self.tenants:
            return True
        return any(t.id == tenant_id for t in self.tenants)


class AuthSession(BaseModel):
    """Vista combinada de las dos consultas de auth (gana el login de staff)."""

    user: AuthUser | None = None
    auth_type: Literal["staff", "user"] | None = None
    tenant_id: str | None = None
    has_multiple_tenants: bool = False

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    @property
    def is_staff(self) -> bool:
        return self.auth_type == "staff"


class Tenant(BaseModel):
    """Ámbito de instalación u organización (vista de gestión del entorno host)."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str | None = None
    tenant_id: str = Field(..., min_length=1, alias="tenantId")
    tenant_name: str = Field(..., alias="tenantName")
    status: str | None = None


class ReorderUpdate(BaseModel):
    """Un par `{id, sortOrder}` de un reordenamiento en lote."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., min_length=1)
    sort_order: int = Field(..., ge=0, alias="sortOrder")

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class Notification(BaseModel):
    """Mensaje transitorio visible para el usuario (el "toast")."""

    title: str
    message: str
    variant: Literal["default", "destructive"] = "default"
    created_at: datetime = Field(default_factory=_utcnow)


class FormPayload(BaseModel):
    """Cuerpo multipart (subida de archivos). El transporte pone el header de boundary."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    data: dict[str, str] = Field(default_factory=dict)
    files: dict[str, Any] = Field(default_factory=dict)

"""Pydantic model for a workshop customer."""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Customer(BaseModel):
    """A customer record. ``nif`` is unique across all customers."""

    cliente_id: str
    nombre: str
    apellidos: str
    nif: str
    email: str
    direccion: str
    telefono: Optional[str] = None
    razon_social: Optional[str] = None
    notas: Optional[str] = None

    estado: str = "activo"  # "activo" | "inactivo" (soft delete)
    fecha_alta: datetime = Field(default_factory=_now)
    creado_en: datetime = Field(default_factory=_now)
    actualizado_en: datetime = Field(default_factory=_now)

    @property
    def full_name(self) -> str:
        return f"{self.nombre} {self.apellidos}".strip()

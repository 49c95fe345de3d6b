"""Pydantic models for work orders (OT) and their line items."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


def _now() -> datetime:
    return datetime.now(timezone.utc)


def round_money(value: float) -> float:
    return round(value + 0.0, 2)


class WorkOrderState(str, Enum):
    PRESUPUESTO = "presupuesto"
    APROBADO = "aprobado"
    EN_PROCESO = "en_proceso"
    FINALIZADO = "finalizado"
    CANCELADO = "cancelado"


class WorkOrderLine(BaseModel):
    """One billable line: labour, a part, or a consumable."""

    tipo: str  # "labor" | "pieza" | "consumible"
    descripcion: str
    cantidad: float = 1
    precio_unitario: float
    descuento_porcentaje: float = 0
    iva_porcentaje: float = 21
    subtotal: float = 0  # after discount, before VAT

    @property
    def gross(self) -> float:
        return self.cantidad * self.precio_unitario

    @property
    def discount(self) -> float:
        return self.gross * self.descuento_porcentaje / 100


class WorkOrderTotals(BaseModel):
    subtotal: float = 0
    descuento_total: float = 0
    base_imponible: float = 0
    iva_total: float = 0
    total: float = 0


class WorkOrder(BaseModel):
    """A unit of repair work on one vehicle for one customer.

    Moves through presupuesto → aprobado → en_proceso → finalizado, or to
    cancelado.  Only a finalizado order can be invoiced.
    """

    ot_id: str
    cliente_id: str

    # Vehicle
    matricula: str
    marca: str
    modelo: str
    version: str = ""

    descripcion: str
    horas: Optional[float] = None
    lineas: list[WorkOrderLine] = []
    totales: WorkOrderTotals = Field(default_factory=WorkOrderTotals)

    estado: WorkOrderState = WorkOrderState.PRESUPUESTO
    fecha_creacion: datetime = Field(default_factory=_now)
    fecha_aprobacion: Optional[datetime] = None
    fecha_inicio: Optional[datetime] = None
    fecha_finalizacion: Optional[datetime] = None

    notas_internas: str = ""
    creado_por: Optional[str] = None
    creado_en: datetime = Field(default_factory=_now)
    actualizado_en: datetime = Field(default_factory=_now)

    def recalculate(self) -> None:
        """Recompute every line subtotal and the order totals."""
        subtotal = 0.0
        discount_total = 0.0
        vat_total = 0.0

        for line in self.lineas:
            line.subtotal = round_money(line.gross - line.discount)
            subtotal += line.gross
            discount_total += line.discount
            vat_total += line.subtotal * line.iva_porcentaje / 100

        base = subtotal - discount_total
        self.totales = WorkOrderTotals(
            subtotal=round_money(subtotal),
            descuento_total=round_money(discount_total),
            base_imponible=round_money(base),
            iva_total=round_money(vat_total),
            total=round_money(base + vat_total),
        )
        self.actualizado_en = _now()

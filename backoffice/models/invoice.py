"""Pydantic models for invoices generated from finished work orders."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from .work_order import round_money


def _now() -> datetime:
    return datetime.now(timezone.utc)


class PaymentStatus(str, Enum):
    PENDIENTE = "pendiente"
    PARCIAL = "parcial"
    PAGADO = "pagado"
    VENCIDO = "vencido"


class CompanyInfo(BaseModel):
    nombre: str
    nif: str
    direccion: str = ""
    ciudad: str = ""
    telefono: str = ""
    email: str = ""


class BilledCustomer(BaseModel):
    """Snapshot of the customer at invoicing time."""

    nombre: str
    apellidos: str
    nif: str
    direccion: str = ""
    email: str = ""


class InvoiceItem(BaseModel):
    descripcion: str
    referencia: str = ""
    cantidad: float
    precio_unitario: float
    descuento_porcentaje: float = 0
    subtotal: float = 0


class PaymentEntry(BaseModel):
    pago_id: str
    monto: float
    metodo: str
    referencia: str = ""
    notas: str = ""
    fecha: datetime = Field(default_factory=_now)


class Invoice(BaseModel):
    factura_id: str
    ot_id: Optional[str] = None
    cliente_id: str

    numero: str  # "<year>-NNN"
    serie: str = "R&S"
    fecha_emision: datetime = Field(default_factory=_now)
    fecha_vencimiento: datetime

    empresa: CompanyInfo
    cliente: BilledCustomer
    items: list[InvoiceItem] = []

    base_imponible: float = 0
    descuento_total: float = 0
    subtotal_neto: float = 0
    tasa_iva: float = 21
    iva_total: float = 0
    total_factura: float = 0

    observaciones: str = ""
    condiciones_pago: str = "Neto a 30 días"

    pagos: list[PaymentEntry] = []
    monto_pagado: float = 0
    monto_pendiente: float = 0
    estado_pago: PaymentStatus = PaymentStatus.PENDIENTE

    pdf_link: Optional[str] = None
    creado_en: datetime = Field(default_factory=_now)
    modificado_en: datetime = Field(default_factory=_now)

    def recalculate(self) -> None:
        """Recompute totals, outstanding amount and payment status."""
        gross = sum(i.cantidad * i.precio_unitario for i in self.items)
        discount = sum(
            i.cantidad * i.precio_unitario * i.descuento_porcentaje / 100 for i in self.items
        )
        self.base_imponible = round_money(gross)
        self.descuento_total = round_money(discount)
        self.subtotal_neto = round_money(gross - discount)
        self.iva_total = round_money(self.subtotal_neto * self.tasa_iva / 100)
        self.total_factura = round_money(self.subtotal_neto + self.iva_total)
        self.monto_pagado = round_money(sum(p.monto for p in self.pagos))
        self.monto_pendiente = round_money(self.total_factura - self.monto_pagado)

        if self.monto_pagado <= 0:
            self.estado_pago = PaymentStatus.PENDIENTE
        elif self.monto_pagado < self.total_factura:
            self.estado_pago = PaymentStatus.PARCIAL
        else:
            self.estado_pago = PaymentStatus.PAGADO
        self.modificado_en = _now()

    def is_overdue(self, now: datetime | None = None) -> bool:
        now = now or _now()
        return self.estado_pago != PaymentStatus.PAGADO and self.fecha_vencimiento < now

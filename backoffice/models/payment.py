"""Pydantic model for a standalone payment document."""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class PaymentMethod(str, Enum):
    TRANSFERENCIA = "transferencia"
    EFECTIVO = "efectivo"
    CHEQUE = "cheque"
    TARJETA = "tarjeta"
    OTRO = "otro"


class Payment(BaseModel):
    pago_id: str
    factura_id: str
    monto: float
    metodo: PaymentMethod
    referencia: str = ""
    documento_url: Optional[str] = None
    notas: str = ""
    fecha: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    creado_en: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

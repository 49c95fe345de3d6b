"""Payment repository — standalone payment documents linked to invoices."""

from __future__ import annotations

import logging
import uuid

from backoffice.errors import BusinessRuleError
from backoffice.models.invoice import Invoice
from backoffice.models.payment import Payment, PaymentMethod

from .invoices import InvoiceRepository
from .store import DocumentStore

log = logging.getLogger("backoffice.repositories.payments")

COLLECTION = "pagos"


class PaymentRepository:
    def __init__(self, store: DocumentStore, invoices: InvoiceRepository) -> None:
        self._store = store
        self._invoices = invoices

    async def create(
        self,
        factura_id: str,
        monto: float,
        metodo: str,
        referencia: str = "",
        notas: str = "",
        documento_url: str | None = None,
    ) -> tuple[Payment, Invoice]:
        """Apply a payment to its invoice, then store the payment document.

        If the payment document cannot be stored the invoice entry is
        removed again, so a retry does not count the payment twice.
        """
        try:
            method = PaymentMethod(metodo)
        except ValueError:
            valid = ", ".join(m.value for m in PaymentMethod)
            raise BusinessRuleError(f"Método de pago inválido. Válidos: {valid}") from None

        payment = Payment(
            pago_id=str(uuid.uuid4()),
            factura_id=factura_id,
            monto=monto,
            metodo=method,
            referencia=referencia or "",
            notas=notas or "",
            documento_url=documento_url,
        )
        invoice = await self._invoices.add_payment(
            factura_id,
            monto,
            method.value,
            reference=payment.referencia,
            notes=payment.notas,
            pago_id=payment.pago_id,
        )
        try:
            await self._store.insert(COLLECTION, payment.model_dump(mode="json"), unique=("pago_id",))
        except Exception:
            log.error("Storing payment %s failed, taking it back off invoice %s", payment.pago_id, factura_id)
            await self._invoices.remove_payment(factura_id, payment.pago_id)
            raise

        log.info("Payment %s created for invoice %s", payment.pago_id, factura_id)
        return payment, invoice

    async def list_for_invoice(self, factura_id: str) -> list[Payment]:
        docs = await self._store.find(
            COLLECTION,
            lambda d: d.get("factura_id") == factura_id,
            sort_key=lambda d: d.get("fecha", ""),
            reverse=True,
        )
        return [Payment.model_validate(d) for d in docs]

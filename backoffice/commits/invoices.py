"""Invoice commit handlers: generate from a work order, register a payment."""

from __future__ import annotations

from typing import Any

from backoffice.formatters import escape_html, format_date, format_eur
from backoffice.repositories.invoices import InvoiceRepository
from backoffice.repositories.payments import PaymentRepository

from .base import CommitHandler, CommitResult

PAYMENT_STATUS_LABELS = {
    "pendiente": "⏳ Pendiente",
    "parcial": "🟡 Parcial",
    "pagado": "✅ Pagado",
    "vencido": "🔴 Vencido",
}


class GenerateInvoiceHandler(CommitHandler):
    def __init__(self, invoices: InvoiceRepository) -> None:
        self._invoices = invoices

    @property
    def name(self) -> str:
        return "generate_invoice"

    @property
    def description(self) -> str:
        return "Factura a partir de una OT finalizada"

    async def execute(self, intent: str, payload: dict[str, Any]) -> CommitResult:
        invoice = await self._invoices.create_from_work_order(
            payload["ot_id"],
            vat_rate=payload.get("tasa_iva"),
            notes=payload.get("observaciones") or "",
        )
        message = (
            f"🧾 <b>Factura {escape_html(invoice.numero)} generada</b>\n\n"
            f"👤 {escape_html(invoice.cliente.nombre)} {escape_html(invoice.cliente.apellidos)}\n"
            f"Base imponible: {format_eur(invoice.subtotal_neto)}\n"
            f"IVA ({invoice.tasa_iva:g}%): {format_eur(invoice.iva_total)}\n"
            f"<b>Total: {format_eur(invoice.total_factura)}</b>\n"
            f"Vence: {format_date(invoice.fecha_vencimiento)}"
        )
        return CommitResult(intent, invoice.factura_id, message, invoice)


class RegisterPaymentHandler(CommitHandler):
    def __init__(self, payments: PaymentRepository) -> None:
        self._payments = payments

    @property
    def name(self) -> str:
        return "register_payment"

    @property
    def description(self) -> str:
        return "Registro de un cobro contra una factura"

    async def execute(self, intent: str, payload: dict[str, Any]) -> CommitResult:
        payment, invoice = await self._payments.create(
            payload["factura_id"],
            payload["monto"],
            payload["metodo"],
            referencia=payload.get("referencia") or "",
        )
        message = (
            "💶 <b>Pago registrado</b>\n\n"
            f"Factura {escape_html(invoice.numero)}: {format_eur(payment.monto)} "
            f"({payment.metodo.value})\n"
            f"Pendiente: {format_eur(invoice.monto_pendiente)}\n"
            f"Estado: {PAYMENT_STATUS_LABELS[invoice.estado_pago.value]}"
        )
        return CommitResult(intent, payment.pago_id, message, payment)

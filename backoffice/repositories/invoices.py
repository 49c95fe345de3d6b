"""Invoice repository: numbering, generation from work orders, payments."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable

from backoffice.errors import BusinessRuleError, DuplicateKeyError, RecordNotFound
from backoffice.models.invoice import (
    BilledCustomer,
    CompanyInfo,
    Invoice,
    InvoiceItem,
    PaymentEntry,
    PaymentStatus,
)
from backoffice.models.work_order import WorkOrderState

from .customers import CustomerRepository
from .store import DocumentStore, Page
from .work_orders import WorkOrderRepository

log = logging.getLogger("backoffice.repositories.invoices")

COLLECTION = "facturas"

# Tolerance when comparing euro amounts
_CENT = 0.005


def _newest_first(doc: dict) -> str:
    return doc.get("fecha_emision", "")


class InvoiceRepository:
    def __init__(
        self,
        store: DocumentStore,
        work_orders: WorkOrderRepository,
        customers: CustomerRepository,
        company: CompanyInfo,
        series: str = "R&S",
        due_days: int = 30,
        default_vat_rate: float = 21.0,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._work_orders = work_orders
        self._customers = customers
        self._company = company
        self._series = series
        self._due_days = due_days
        self._default_vat_rate = default_vat_rate
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def next_number(self) -> str:
        """Next number in this year's sequence: ``2026-001``, ``2026-002``…"""
        prefix = f"{self._clock().year}-"
        docs = await self._store.find(COLLECTION, lambda d: d.get("numero", "").startswith(prefix))
        last = 0
        for doc in docs:
            try:
                last = max(last, int(doc["numero"].split("-", 1)[1]))
            except ValueError:
                log.warning("Ignoring malformed invoice number %r", doc["numero"])
        return f"{prefix}{last + 1:03d}"

    async def create_from_work_order(
        self,
        ot_id: str,
        vat_rate: float | None = None,
        notes: str = "",
    ) -> Invoice:
        """Invoice a finished work order. Each order can be invoiced once."""
        order = await self._work_orders.require(ot_id)
        if order.estado != WorkOrderState.FINALIZADO:
            raise BusinessRuleError(
                f"La OT debe estar finalizada. Estado actual: {order.estado.value}"
            )
        if await self._store.find_one(COLLECTION, ot_id=ot_id):
            raise BusinessRuleError(f"La OT {ot_id} ya tiene factura")
        if not order.lineas:
            raise BusinessRuleError("La OT no tiene líneas que facturar")

        customer = await self._customers.get(order.cliente_id)
        if customer is None:
            raise RecordNotFound("Cliente no encontrado")

        issued = self._clock()
        invoice = Invoice(
            factura_id=str(uuid.uuid4()),
            ot_id=ot_id,
            cliente_id=order.cliente_id,
            numero=await self.next_number(),
            serie=self._series,
            fecha_emision=issued,
            fecha_vencimiento=issued + timedelta(days=self._due_days),
            empresa=self._company,
            cliente=BilledCustomer(
                nombre=customer.nombre,
                apellidos=customer.apellidos,
                nif=customer.nif,
                direccion=customer.direccion,
                email=customer.email,
            ),
            items=[
                InvoiceItem(
                    descripcion=line.descripcion,
                    referencia=f"{line.tipo.upper()}-{idx}",
                    cantidad=line.cantidad,
                    precio_unitario=line.precio_unitario,
                    descuento_porcentaje=line.descuento_porcentaje,
                    subtotal=line.subtotal,
                )
                for idx, line in enumerate(order.lineas, start=1)
            ],
            tasa_iva=self._default_vat_rate if vat_rate is None else vat_rate,
            observaciones=notes or "",
            condiciones_pago=f"Neto a {self._due_days} días",
        )
        invoice.recalculate()

        try:
            await self._store.insert(
                COLLECTION, invoice.model_dump(mode="json"), unique=("factura_id", "numero")
            )
        except DuplicateKeyError as exc:
            raise DuplicateKeyError(f"El número de factura {invoice.numero} ya existe") from exc

        log.info("Invoice %s created from work order %s", invoice.numero, ot_id)
        return invoice

    async def get(self, factura_id: str) -> Invoice | None:
        doc = await self._store.find_one(COLLECTION, factura_id=factura_id)
        return Invoice.model_validate(doc) if doc else None

    async def require(self, factura_id: str) -> Invoice:
        invoice = await self.get(factura_id)
        if invoice is None:
            raise RecordNotFound(f"Factura {factura_id} no encontrada")
        return invoice

    async def list(self, skip: int = 0, limit: int = 20) -> Page:
        total = await self._store.count(COLLECTION)
        docs = await self._store.find(
            COLLECTION, sort_key=_newest_first, reverse=True, skip=skip, limit=limit
        )
        return Page.build([Invoice.model_validate(d) for d in docs], total, skip, limit)

    async def list_by_status(self, status: str | PaymentStatus, limit: int = 50) -> list[Invoice]:
        """Invoices by payment status; ``vencido`` means unpaid past the due date."""
        status = PaymentStatus(status)
        docs = await self._store.find(COLLECTION, sort_key=_newest_first, reverse=True)
        invoices = [Invoice.model_validate(d) for d in docs]
        now = self._clock()
        if status == PaymentStatus.VENCIDO:
            selected = [i for i in invoices if i.is_overdue(now)]
        else:
            selected = [i for i in invoices if i.estado_pago == status]
        return selected[:limit]

    async def add_payment(
        self,
        factura_id: str,
        amount: float,
        method: str,
        reference: str = "",
        notes: str = "",
        pago_id: str | None = None,
    ) -> Invoice:
        """Record a payment against the outstanding amount."""
        invoice = await self.require(factura_id)
        if amount <= 0:
            raise BusinessRuleError("El importe debe ser mayor que 0")
        if invoice.estado_pago == PaymentStatus.PAGADO:
            raise BusinessRuleError(f"La factura {invoice.numero} ya está pagada")
        if amount > invoice.monto_pendiente + _CENT:
            raise BusinessRuleError(
                f"El importe excede lo pendiente. Pendiente: {invoice.monto_pendiente:.2f}"
            )

        invoice.pagos.append(PaymentEntry(
            pago_id=pago_id or str(uuid.uuid4()),
            monto=amount,
            metodo=method,
            referencia=reference or "",
            notas=notes or "",
            fecha=self._clock(),
        ))
        invoice.recalculate()
        await self._store.replace(COLLECTION, "factura_id", invoice.model_dump(mode="json"))

        log.info("Payment of %.2f recorded on invoice %s", amount, invoice.numero)
        return invoice

    async def remove_payment(self, factura_id: str, pago_id: str) -> Invoice:
        """Take a payment entry back off an invoice and recompute its status."""
        invoice = await self.require(factura_id)
        remaining = [p for p in invoice.pagos if p.pago_id != pago_id]
        if len(remaining) == len(invoice.pagos):
            raise RecordNotFound(f"Pago {pago_id} no encontrado en la factura {invoice.numero}")
        invoice.pagos = remaining
        invoice.recalculate()
        await self._store.replace(COLLECTION, "factura_id", invoice.model_dump(mode="json"))

        log.info("Payment %s removed from invoice %s", pago_id, invoice.numero)
        return invoice

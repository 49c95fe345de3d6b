"""Tests for the commit handlers against in-memory repositories."""

import pytest

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from backoffice.commits import build_handlers
from backoffice.commits.base import CommitResult
from backoffice.engine import Prompt, Summary, WizardEngine
from backoffice.errors import BusinessRuleError, CommitError, DuplicateKeyError, RecordNotFound
from backoffice.models.invoice import CompanyInfo, PaymentStatus
from backoffice.models.work_order import WorkOrderState
from backoffice.repositories import (
    CustomerRepository,
    InvoiceRepository,
    JsonlDocumentStore,
    MemoryDocumentStore,
    PaymentRepository,
    WorkOrderRepository,
)
from backoffice.sessions import SessionStore
from backoffice.wizards.actions import Confirm
from backoffice.wizards.registry import load_default_registry

CUSTOMER = {
    "nombre": "Juan",
    "apellidos": "Pérez",
    "nif": "12345678Z",
    "email": "juan@x.com",
    "direccion": "Calle Mayor 1",
}


@pytest.fixture
def repos():
    store = MemoryDocumentStore()
    customers = CustomerRepository(store)
    work_orders = WorkOrderRepository(store, customers, hourly_rate=40.0)
    invoices = InvoiceRepository(store, work_orders, customers, company=CompanyInfo(nombre="Taller", nif="B22757140"))
    payments = PaymentRepository(store, invoices)
    return customers, work_orders, invoices, payments


@pytest.fixture
def handlers(repos):
    return build_handlers(*repos)


async def create_order(handlers, cliente_id, **overrides):
    payload = {
        "cliente_id": cliente_id,
        "matricula": "1234ABC",
        "marca": "Seat",
        "modelo": "Ibiza",
        "descripcion": "Cambio de aceite y filtros",
        "horas": 2.0,
        "descuento_porcentaje": None,
    }
    payload.update(overrides)
    return await handlers["create_work_order"].execute("create-work-order", payload)


class TestRegistryWiring:
    def test_every_template_has_a_handler(self, handlers):
        registry = load_default_registry(handler_names=handlers)
        assert {t.commit for t in registry} <= set(handlers)

    def test_handler_names_and_descriptions(self, handlers):
        for name, handler in handlers.items():
            assert handler.name == name
            assert handler.description


class TestCustomerHandlers:
    @pytest.mark.asyncio
    async def test_create(self, handlers, repos):
        result = await handlers["create_customer"].execute("create-customer", {**CUSTOMER, "telefono": None})
        assert result.intent == "create-customer"
        assert result.entity_id == result.record.cliente_id
        assert "Cliente creado" in result.message
        assert await repos[0].get(result.entity_id) is not None

    @pytest.mark.asyncio
    async def test_duplicate_nif(self, handlers):
        await handlers["create_customer"].execute("create-customer", CUSTOMER)
        with pytest.raises(DuplicateKeyError):
            await handlers["create_customer"].execute("create-customer", CUSTOMER)

    @pytest.mark.asyncio
    async def test_search(self, handlers):
        await handlers["create_customer"].execute("create-customer", CUSTOMER)
        result = await handlers["search_customers"].execute("search-customer", {"query": "pér"})
        assert result.entity_id is None
        assert len(result.record) == 1
        assert "1 cliente(s)" in result.message

    @pytest.mark.asyncio
    async def test_search_without_results(self, handlers):
        result = await handlers["search_customers"].execute("search-customer", {"query": "zz"})
        assert result.record == []
        assert "No hay clientes" in result.message


class TestWorkOrderHandlers:
    @pytest.mark.asyncio
    async def test_create_adds_labour_line(self, handlers):
        customer = await handlers["create_customer"].execute("create-customer", CUSTOMER)
        result = await create_order(handlers, customer.entity_id)
        order = result.record
        assert order.estado == WorkOrderState.PRESUPUESTO
        assert len(order.lineas) == 1
        assert order.lineas[0].precio_unitario == 40.0
        assert order.totales.total > 80.0

    @pytest.mark.asyncio
    async def test_create_for_unknown_customer(self, handlers):
        with pytest.raises(RecordNotFound):
            await create_order(handlers, "missing")

    @pytest.mark.asyncio
    async def test_change_state(self, handlers):
        customer = await handlers["create_customer"].execute("create-customer", CUSTOMER)
        order = await create_order(handlers, customer.entity_id)
        result = await handlers["change_work_order_state"].execute(
            "change-work-order-state", {"ot_id": order.entity_id, "estado": "aprobado"}
        )
        assert result.record.estado == WorkOrderState.APROBADO
        assert "Aprobado" in result.message

    @pytest.mark.asyncio
    async def test_change_to_same_state_rejected(self, handlers):
        customer = await handlers["create_customer"].execute("create-customer", CUSTOMER)
        order = await create_order(handlers, customer.entity_id)
        with pytest.raises(BusinessRuleError):
            await handlers["change_work_order_state"].execute(
                "change-work-order-state", {"ot_id": order.entity_id, "estado": "presupuesto"}
            )

    @pytest.mark.asyncio
    async def test_search_by_plate(self, handlers):
        customer = await handlers["create_customer"].execute("create-customer", CUSTOMER)
        await create_order(handlers, customer.entity_id)
        result = await handlers["search_work_orders"].execute("search-work-order", {"matricula": "1234"})
        assert len(result.record) == 1
        assert "1234-ABC" in result.message


class TestInvoiceHandlers:
    async def finished(self, handlers):
        customer = await handlers["create_customer"].execute("create-customer", CUSTOMER)
        order = await create_order(handlers, customer.entity_id)
        await handlers["change_work_order_state"].execute(
            "change-work-order-state", {"ot_id": order.entity_id, "estado": "finalizado"}
        )
        return order.entity_id

    @pytest.mark.asyncio
    async def test_generate_invoice(self, handlers):
        ot_id = await self.finished(handlers)
        result = await handlers["generate_invoice"].execute(
            "generate-invoice", {"ot_id": ot_id, "tasa_iva": None, "observaciones": None}
        )
        invoice = result.record
        assert invoice.ot_id == ot_id
        assert invoice.tasa_iva == 21.0
        assert invoice.estado_pago == PaymentStatus.PENDIENTE
        assert invoice.numero in result.message

    @pytest.mark.asyncio
    async def test_generate_with_explicit_vat(self, handlers):
        ot_id = await self.finished(handlers)
        result = await handlers["generate_invoice"].execute(
            "generate-invoice", {"ot_id": ot_id, "tasa_iva": 10.0, "observaciones": "Urgente"}
        )
        assert result.record.tasa_iva == 10.0

    @pytest.mark.asyncio
    async def test_generate_for_open_order_rejected(self, handlers):
        customer = await handlers["create_customer"].execute("create-customer", CUSTOMER)
        order = await create_order(handlers, customer.entity_id)
        with pytest.raises(BusinessRuleError):
            await handlers["generate_invoice"].execute(
                "generate-invoice", {"ot_id": order.entity_id, "tasa_iva": None, "observaciones": None}
            )

    @pytest.mark.asyncio
    async def test_register_payments(self, handlers):
        ot_id = await self.finished(handlers)
        invoice = (await handlers["generate_invoice"].execute(
            "generate-invoice", {"ot_id": ot_id, "tasa_iva": None, "observaciones": None}
        )).record

        first = await handlers["register_payment"].execute(
            "register-payment",
            {"factura_id": invoice.factura_id, "monto": 10.0, "metodo": "efectivo", "referencia": None},
        )
        assert first.entity_id == first.record.pago_id
        assert "Parcial" in first.message

        rest = round(invoice.total_factura - 10.0, 2)
        second = await handlers["register_payment"].execute(
            "register-payment",
            {"factura_id": invoice.factura_id, "monto": rest, "metodo": "transferencia", "referencia": "TR-1"},
        )
        assert "Pagado" in second.message

    @pytest.mark.asyncio
    async def test_overpayment_rejected(self, handlers):
        ot_id = await self.finished(handlers)
        invoice = (await handlers["generate_invoice"].execute(
            "generate-invoice", {"ot_id": ot_id, "tasa_iva": None, "observaciones": None}
        )).record
        with pytest.raises(BusinessRuleError):
            await handlers["register_payment"].execute(
                "register-payment",
                {"factura_id": invoice.factura_id, "monto": invoice.total_factura + 100,
                 "metodo": "efectivo", "referencia": None},
            )


# ── Retry after a storage failure ────────────────────────────────

class TestRetryAfterStorageFailure:
    @pytest.mark.asyncio
    async def test_confirm_again_after_disk_error(self, tmp_path, monkeypatch):
        from backoffice.repositories import store as store_module

        real_append = store_module._append_jsonl
        failures = [OSError("No space left on device")]

        def append(path, docs):
            if failures:
                raise failures.pop()
            real_append(path, docs)

        monkeypatch.setattr(store_module, "_append_jsonl", append)

        store = JsonlDocumentStore(tmp_path)
        customers = CustomerRepository(store)
        work_orders = WorkOrderRepository(store, customers, hourly_rate=40.0)
        invoices = InvoiceRepository(store, work_orders, customers, company=CompanyInfo(nombre="Taller", nif="B22757140"))
        handlers = build_handlers(customers, work_orders, invoices, PaymentRepository(store, invoices))
        engine = WizardEngine(load_default_registry(handler_names=handlers), SessionStore(idle_timeout=60), handlers)

        result = await engine.start("u1", "create-customer")
        while isinstance(result, Prompt):
            result = await engine.handle_input("u1", CUSTOMER[result.field_key])
        assert isinstance(result, Summary)

        with pytest.raises(CommitError):
            await engine.handle_action("u1", Confirm())
        assert engine.session("u1").is_confirming

        committed = await engine.handle_action("u1", Confirm())
        assert isinstance(committed, CommitResult)
        assert engine.session("u1") is None

        reopened = CustomerRepository(JsonlDocumentStore(tmp_path))
        assert (await reopened.list()).total == 1

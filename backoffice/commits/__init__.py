"""Commit handlers — the repository operations wizards hand their payload to."""

from __future__ import annotations

from backoffice.repositories import (
    CustomerRepository,
    InvoiceRepository,
    PaymentRepository,
    WorkOrderRepository,
)

from .base import CommitHandler, CommitResult
from .customers import CreateCustomerHandler, SearchCustomersHandler
from .invoices import GenerateInvoiceHandler, RegisterPaymentHandler
from .work_orders import (
    ChangeWorkOrderStateHandler,
    CreateWorkOrderHandler,
    SearchWorkOrdersHandler,
)

__all__ = [
    "ChangeWorkOrderStateHandler",
    "CommitHandler",
    "CommitResult",
    "CreateCustomerHandler",
    "CreateWorkOrderHandler",
    "GenerateInvoiceHandler",
    "RegisterPaymentHandler",
    "SearchCustomersHandler",
    "SearchWorkOrdersHandler",
    "build_handlers",
]


def build_handlers(
    customers: CustomerRepository,
    work_orders: WorkOrderRepository,
    invoices: InvoiceRepository,
    payments: PaymentRepository,
) -> dict[str, CommitHandler]:
    """All commit handlers, keyed by the name templates refer to."""
    handlers: list[CommitHandler] = [
        CreateCustomerHandler(customers),
        SearchCustomersHandler(customers),
        CreateWorkOrderHandler(work_orders),
        ChangeWorkOrderStateHandler(work_orders),
        SearchWorkOrdersHandler(work_orders),
        GenerateInvoiceHandler(invoices),
        RegisterPaymentHandler(payments),
    ]
    return {h.name: h for h in handlers}

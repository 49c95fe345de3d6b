"""Persistence: document store backends and entity repositories."""

from .customers import CustomerRepository
from .invoices import InvoiceRepository
from .messages import MessageLog
from .payments import PaymentRepository
from .store import DocumentStore, JsonlDocumentStore, MemoryDocumentStore, Page
from .work_orders import WorkOrderRepository

__all__ = [
    "CustomerRepository",
    "DocumentStore",
    "InvoiceRepository",
    "JsonlDocumentStore",
    "MemoryDocumentStore",
    "MessageLog",
    "Page",
    "PaymentRepository",
    "WorkOrderRepository",
]

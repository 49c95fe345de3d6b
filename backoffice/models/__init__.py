"""Data models for the back office records."""

from .customer import Customer
from .invoice import BilledCustomer, CompanyInfo, Invoice, InvoiceItem, PaymentEntry, PaymentStatus
from .message import ChatMessage
from .payment import Payment, PaymentMethod
from .work_order import WorkOrder, WorkOrderLine, WorkOrderState, WorkOrderTotals

__all__ = [
    "BilledCustomer",
    "ChatMessage",
    "CompanyInfo",
    "Customer",
    "Invoice",
    "InvoiceItem",
    "Payment",
    "PaymentEntry",
    "PaymentMethod",
    "PaymentStatus",
    "WorkOrder",
    "WorkOrderLine",
    "WorkOrderState",
    "WorkOrderTotals",
]

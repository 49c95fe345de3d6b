"""Customer commit handlers: create and search."""

from __future__ import annotations

import logging
from typing import Any

from backoffice.formatters import escape_html, format_nif, short_id
from backoffice.repositories.customers import CustomerRepository

from .base import CommitHandler, CommitResult

log = logging.getLogger("backoffice.commits.customers")

CUSTOMER_FIELDS = ("nombre", "apellidos", "nif", "email", "direccion", "telefono")


class CreateCustomerHandler(CommitHandler):
    def __init__(self, customers: CustomerRepository) -> None:
        self._customers = customers

    @property
    def name(self) -> str:
        return "create_customer"

    @property
    def description(self) -> str:
        return "Alta de un cliente nuevo"

    async def execute(self, intent: str, payload: dict[str, Any]) -> CommitResult:
        data = {k: payload[k] for k in CUSTOMER_FIELDS if payload.get(k) is not None}
        customer = await self._customers.create(data)
        message = (
            "✅ <b>Cliente creado</b>\n\n"
            f"👤 {escape_html(customer.full_name)}\n"
            f"🪪 {format_nif(customer.nif)}\n"
            f"📧 {escape_html(customer.email)}\n"
            f"🆔 <code>{customer.cliente_id}</code>"
        )
        return CommitResult(intent, customer.cliente_id, message, customer)


class SearchCustomersHandler(CommitHandler):
    def __init__(self, customers: CustomerRepository, limit: int = 10) -> None:
        self._customers = customers
        self._limit = limit

    @property
    def name(self) -> str:
        return "search_customers"

    @property
    def description(self) -> str:
        return "Búsqueda de clientes por nombre, apellidos o NIF"

    async def execute(self, intent: str, payload: dict[str, Any]) -> CommitResult:
        query = payload["query"]
        found = await self._customers.search(query, limit=self._limit)
        log.info("Customer search returned %d results", len(found))

        if not found:
            message = f"🔍 No hay clientes que coincidan con <b>{escape_html(query)}</b>."
        else:
            lines = [f"🔍 <b>{len(found)} cliente(s)</b> para <b>{escape_html(query)}</b>:\n"]
            for c in found:
                lines.append(
                    f"• {escape_html(c.full_name)} · {format_nif(c.nif)} · "
                    f"<code>{short_id(c.cliente_id)}</code>"
                )
            message = "\n".join(lines)
        return CommitResult(intent, None, message, found)

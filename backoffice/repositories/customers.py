"""Customer repository."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from backoffice.errors import DuplicateKeyError, RecordNotFound, RecordValidationError
from backoffice.formatters import redact_pii
from backoffice.models.customer import Customer
from backoffice.validators import validate_customer

from .store import DocumentStore, Page

log = logging.getLogger("backoffice.repositories.customers")

COLLECTION = "clientes"

_REQUIRED = ("nombre", "apellidos", "nif", "email", "direccion")
_IMMUTABLE = {"cliente_id", "fecha_alta", "creado_en"}


def _newest_first(doc: dict) -> str:
    return doc.get("fecha_alta", "")


class CustomerRepository:
    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def create(self, data: dict[str, Any]) -> Customer:
        """Validate and insert a new customer; the NIF must be unused."""
        missing = [k for k in _REQUIRED if not data.get(k)]
        if missing:
            raise RecordValidationError([f"Faltan campos requeridos: {', '.join(missing)}"])

        data = {
            **data,
            "nif": str(data["nif"]).strip().upper(),
            "email": str(data["email"]).strip().lower(),
        }
        result = validate_customer(data)
        if not result.valid:
            raise RecordValidationError(result.errors)

        fields = {k: v for k, v in data.items() if k in Customer.model_fields and k not in _IMMUTABLE}
        customer = Customer(cliente_id=str(uuid.uuid4()), **fields)
        try:
            await self._store.insert(
                COLLECTION, customer.model_dump(mode="json"), unique=("cliente_id", "nif")
            )
        except DuplicateKeyError as exc:
            raise DuplicateKeyError("Este NIF ya está registrado") from exc

        log.info("Customer %s created (nif=%s)", customer.cliente_id, redact_pii(customer.nif))
        return customer

    async def get(self, cliente_id: str) -> Customer | None:
        doc = await self._store.find_one(COLLECTION, cliente_id=cliente_id)
        if doc is None:
            log.warning("Customer %s not found", cliente_id)
            return None
        return Customer.model_validate(doc)

    async def get_by_nif(self, nif: str) -> Customer | None:
        doc = await self._store.find_one(COLLECTION, nif=nif.strip().upper())
        return Customer.model_validate(doc) if doc else None

    async def search(self, query: str, limit: int = 10) -> list[Customer]:
        """Case-insensitive substring search over name, surname and NIF."""
        needle = (query or "").strip().lower()
        if not needle:
            return []

        def matches(doc: dict) -> bool:
            if doc.get("estado") != "activo":
                return False
            return any(
                needle in str(doc.get(k) or "").lower()
                for k in ("nombre", "apellidos", "nif")
            )

        docs = await self._store.find(COLLECTION, matches, sort_key=_newest_first, reverse=True, limit=limit)
        return [Customer.model_validate(d) for d in docs]

    async def list(self, skip: int = 0, limit: int = 20) -> Page:
        def active(doc: dict) -> bool:
            return doc.get("estado") == "activo"

        total = await self._store.count(COLLECTION, active)
        docs = await self._store.find(
            COLLECTION, active, sort_key=_newest_first, reverse=True, skip=skip, limit=limit
        )
        return Page.build([Customer.model_validate(d) for d in docs], total, skip, limit)

    async def update(self, cliente_id: str, data: dict[str, Any]) -> Customer:
        current = await self.get(cliente_id)
        if current is None:
            raise RecordNotFound(f"Cliente {cliente_id} no encontrado")

        changes = {k: v for k, v in data.items() if k in Customer.model_fields and k not in _IMMUTABLE}
        merged = current.model_copy(update=changes)
        result = validate_customer(merged.model_dump())
        if not result.valid:
            raise RecordValidationError(result.errors)

        if merged.nif != current.nif and await self.get_by_nif(merged.nif):
            raise DuplicateKeyError("Este NIF ya está registrado")

        merged.actualizado_en = datetime.now(timezone.utc)
        await self._store.replace(COLLECTION, "cliente_id", merged.model_dump(mode="json"))
        log.info("Customer %s updated", cliente_id)
        return merged

    async def deactivate(self, cliente_id: str) -> Customer:
        """Soft delete: the record stays, flagged ``inactivo``."""
        current = await self.get(cliente_id)
        if current is None:
            raise RecordNotFound(f"Cliente {cliente_id} no encontrado")
        current.estado = "inactivo"
        current.actualizado_en = datetime.now(timezone.utc)
        await self._store.replace(COLLECTION, "cliente_id", current.model_dump(mode="json"))
        log.info("Customer %s marked inactive", cliente_id)
        return current

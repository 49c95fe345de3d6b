"""Work order (OT) repository."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from backoffice.errors import BusinessRuleError, RecordNotFound, RecordValidationError
from backoffice.models.work_order import WorkOrder, WorkOrderLine, WorkOrderState
from backoffice.validators import validate_line, validate_work_order

from .customers import CustomerRepository
from .store import DocumentStore, Page

log = logging.getLogger("backoffice.repositories.work_orders")

COLLECTION = "ots"

# State → date field stamped the first time the order enters that state
_STATE_DATES = {
    WorkOrderState.APROBADO: "fecha_aprobacion",
    WorkOrderState.EN_PROCESO: "fecha_inicio",
    WorkOrderState.FINALIZADO: "fecha_finalizacion",
}


def _newest_first(doc: dict) -> str:
    return doc.get("fecha_creacion", "")


class WorkOrderRepository:
    def __init__(
        self,
        store: DocumentStore,
        customers: CustomerRepository,
        hourly_rate: float = 40.0,
        default_vat_rate: float = 21.0,
    ) -> None:
        self._store = store
        self._customers = customers
        self._hourly_rate = hourly_rate
        self._default_vat_rate = default_vat_rate

    async def create(self, data: dict[str, Any], created_by: str | None = None) -> WorkOrder:
        """Create an order in ``presupuesto`` for an existing customer.

        When ``horas`` is given and no explicit ``lineas``, a single labour
        line of ``horas × hourly_rate`` is added, discounted by
        ``descuento_porcentaje`` if present.
        """
        result = validate_work_order(data)
        if not result.valid:
            raise RecordValidationError(result.errors)

        if await self._customers.get(data["cliente_id"]) is None:
            raise RecordNotFound(f"Cliente {data['cliente_id']} no existe")

        lines = [dict(line) for line in data.get("lineas") or []]
        hours = data.get("horas")
        if not lines and hours:
            lines.append({
                "tipo": "labor",
                "descripcion": f"Mano de obra: {data['descripcion'][:60]}",
                "cantidad": float(hours),
                "precio_unitario": self._hourly_rate,
                "descuento_porcentaje": float(data.get("descuento_porcentaje") or 0),
                "iva_porcentaje": self._default_vat_rate,
            })
        for line in lines:
            self._check_line(line)

        order = WorkOrder(
            ot_id=str(uuid.uuid4()),
            cliente_id=data["cliente_id"],
            matricula=str(data["matricula"]).replace(" ", "").replace("-", "").upper(),
            marca=data["marca"],
            modelo=data["modelo"],
            version=data.get("version") or "",
            descripcion=data["descripcion"],
            horas=float(hours) if hours else None,
            lineas=[WorkOrderLine(**line) for line in lines],
            notas_internas=data.get("notas_internas") or "",
            creado_por=created_by,
        )
        order.recalculate()
        await self._store.insert(COLLECTION, order.model_dump(mode="json"), unique=("ot_id",))

        log.info("Work order %s created (presupuesto) for customer %s", order.ot_id, order.cliente_id)
        return order

    async def get(self, ot_id: str) -> WorkOrder | None:
        doc = await self._store.find_one(COLLECTION, ot_id=ot_id)
        return WorkOrder.model_validate(doc) if doc else None

    async def require(self, ot_id: str) -> WorkOrder:
        order = await self.get(ot_id)
        if order is None:
            raise RecordNotFound(f"OT {ot_id} no encontrada")
        return order

    async def add_line(self, ot_id: str, line: dict[str, Any]) -> WorkOrder:
        order = await self.require(ot_id)
        self._check_editable(order)
        line = {"iva_porcentaje": self._default_vat_rate, **line}
        self._check_line(line)
        order.lineas.append(WorkOrderLine(**line))
        await self._save(order)
        log.info("Line added to work order %s", ot_id)
        return order

    async def remove_line(self, ot_id: str, index: int) -> WorkOrder:
        order = await self.require(ot_id)
        self._check_editable(order)
        if index < 0 or index >= len(order.lineas):
            raise BusinessRuleError("Índice de línea inválido")
        order.lineas.pop(index)
        await self._save(order)
        log.info("Line %d removed from work order %s", index, ot_id)
        return order

    async def change_state(self, ot_id: str, new_state: str | WorkOrderState) -> WorkOrder:
        try:
            state = WorkOrderState(new_state)
        except ValueError:
            valid = ", ".join(s.value for s in WorkOrderState)
            raise BusinessRuleError(f"Estado inválido. Válidos: {valid}") from None

        order = await self.require(ot_id)
        if order.estado == state:
            raise BusinessRuleError(f"La OT ya está en estado {state.value}")

        order.estado = state
        date_field = _STATE_DATES.get(state)
        if date_field and getattr(order, date_field) is None:
            setattr(order, date_field, datetime.now(timezone.utc))
        await self._save(order)

        log.info("Work order %s moved to %s", ot_id, state.value)
        return order

    async def search_by_plate(self, plate: str, limit: int = 10) -> list[WorkOrder]:
        needle = plate.replace(" ", "").replace("-", "").upper()
        if not needle:
            return []
        docs = await self._store.find(
            COLLECTION,
            lambda d: needle in d.get("matricula", ""),
            sort_key=_newest_first,
            reverse=True,
            limit=limit,
        )
        return [WorkOrder.model_validate(d) for d in docs]

    async def vehicle_history(self, plate: str) -> dict[str, Any]:
        plate = plate.replace(" ", "").replace("-", "").upper()
        docs = await self._store.find(
            COLLECTION,
            lambda d: d.get("matricula") == plate,
            sort_key=_newest_first,
            reverse=True,
        )
        orders = [WorkOrder.model_validate(d) for d in docs]
        return {"matricula": plate, "total_ots": len(orders), "ots": orders}

    async def list_by_state(self, state: str | WorkOrderState, limit: int = 50) -> list[WorkOrder]:
        value = WorkOrderState(state).value
        docs = await self._store.find(
            COLLECTION,
            lambda d: d.get("estado") == value,
            sort_key=_newest_first,
            reverse=True,
            limit=limit,
        )
        return [WorkOrder.model_validate(d) for d in docs]

    async def list(self, skip: int = 0, limit: int = 20) -> Page:
        total = await self._store.count(COLLECTION)
        docs = await self._store.find(
            COLLECTION, sort_key=_newest_first, reverse=True, skip=skip, limit=limit
        )
        return Page.build([WorkOrder.model_validate(d) for d in docs], total, skip, limit)

    # ── Internal ──────────────────────────────────────────────

    @staticmethod
    def _check_line(line: dict[str, Any]) -> None:
        result = validate_line(line)
        if not result.valid:
            raise RecordValidationError(result.errors)

    @staticmethod
    def _check_editable(order: WorkOrder) -> None:
        if order.estado == WorkOrderState.FINALIZADO:
            raise BusinessRuleError("No se puede modificar una OT finalizada")

    async def _save(self, order: WorkOrder) -> None:
        order.recalculate()
        await self._store.replace(COLLECTION, "ot_id", order.model_dump(mode="json"))

"""Work order commit handlers: create, change state, search by plate."""

from __future__ import annotations

import logging
from typing import Any

from backoffice.formatters import escape_html, format_eur, format_plate, short_id
from backoffice.repositories.work_orders import WorkOrderRepository

from .base import CommitHandler, CommitResult

log = logging.getLogger("backoffice.commits.work_orders")

STATE_LABELS = {
    "presupuesto": "📝 Presupuesto",
    "aprobado": "👍 Aprobado",
    "en_proceso": "🔧 En proceso",
    "finalizado": "✅ Finalizado",
    "cancelado": "❌ Cancelado",
}


class CreateWorkOrderHandler(CommitHandler):
    def __init__(self, work_orders: WorkOrderRepository) -> None:
        self._work_orders = work_orders

    @property
    def name(self) -> str:
        return "create_work_order"

    @property
    def description(self) -> str:
        return "Apertura de una orden de trabajo (presupuesto)"

    async def execute(self, intent: str, payload: dict[str, Any]) -> CommitResult:
        data = {k: v for k, v in payload.items() if v is not None}
        order = await self._work_orders.create(data)
        message = (
            "✅ <b>Orden de trabajo creada</b>\n\n"
            f"🚗 {format_plate(order.matricula)} · {escape_html(order.marca)} "
            f"{escape_html(order.modelo)}\n"
            f"📋 {escape_html(order.descripcion)}\n"
            f"💶 Total: {format_eur(order.totales.total)}\n"
            f"Estado: {STATE_LABELS[order.estado.value]}\n"
            f"🆔 <code>{order.ot_id}</code>"
        )
        return CommitResult(intent, order.ot_id, message, order)


class ChangeWorkOrderStateHandler(CommitHandler):
    def __init__(self, work_orders: WorkOrderRepository) -> None:
        self._work_orders = work_orders

    @property
    def name(self) -> str:
        return "change_work_order_state"

    @property
    def description(self) -> str:
        return "Cambio de estado de una orden de trabajo"

    async def execute(self, intent: str, payload: dict[str, Any]) -> CommitResult:
        order = await self._work_orders.change_state(payload["ot_id"], payload["estado"])
        message = (
            "✅ <b>Estado actualizado</b>\n\n"
            f"OT <code>{short_id(order.ot_id)}</code> · {format_plate(order.matricula)}\n"
            f"Nuevo estado: {STATE_LABELS[order.estado.value]}"
        )
        return CommitResult(intent, order.ot_id, message, order)


class SearchWorkOrdersHandler(CommitHandler):
    def __init__(self, work_orders: WorkOrderRepository, limit: int = 10) -> None:
        self._work_orders = work_orders
        self._limit = limit

    @property
    def name(self) -> str:
        return "search_work_orders"

    @property
    def description(self) -> str:
        return "Búsqueda de órdenes de trabajo por matrícula"

    async def execute(self, intent: str, payload: dict[str, Any]) -> CommitResult:
        plate = payload["matricula"]
        found = await self._work_orders.search_by_plate(plate, limit=self._limit)
        log.info("Work order search returned %d results", len(found))

        if not found:
            message = f"🔍 No hay OTs para la matrícula <b>{escape_html(plate)}</b>."
        else:
            lines = [f"🔍 <b>{len(found)} OT(s)</b> para <b>{escape_html(plate)}</b>:\n"]
            for o in found:
                lines.append(
                    f"• {format_plate(o.matricula)} · {STATE_LABELS[o.estado.value]} · "
                    f"{format_eur(o.totales.total)} · <code>{short_id(o.ot_id)}</code>"
                )
            message = "\n".join(lines)
        return CommitResult(intent, None, message, found)

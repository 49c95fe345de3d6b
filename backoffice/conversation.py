"""Conversation gateway — Telegram updates in, engine calls and replies out.

Each update is decoded once (``backoffice.events``) and dispatched:
menu and listing requests are answered here, everything else goes to the
``WizardEngine``.  Engine output is handed to the ``MessagingChannel`` for
rendering.  A ``WizardError`` is shown to the user and never escapes;
the webhook always gets a normal return.
"""

from __future__ import annotations

import logging
from typing import Any

from backoffice.channels.base import Button, Keyboard, MessagingChannel
from backoffice.commits.base import CommitResult
from backoffice.commits.invoices import PAYMENT_STATUS_LABELS
from backoffice.commits.work_orders import STATE_LABELS
from backoffice.engine import Cancelled, Prompt, Summary, WizardEngine
from backoffice.errors import RepositoryError, WizardError
from backoffice.events import (
    ActionEvent,
    Command,
    ConversationEvent,
    ListRequest,
    MenuRequest,
    StartIntent,
    TextInput,
    decode_callback,
    decode_message,
    list_data,
    menu_data,
    start_data,
)
from backoffice.formatters import escape_html, format_eur, format_nif, format_plate, redact_pii
from backoffice.repositories import (
    CustomerRepository,
    InvoiceRepository,
    MessageLog,
    WorkOrderRepository,
)
from backoffice.wizards.actions import Confirm

log = logging.getLogger("backoffice.conversation")

LISTING_SIZE = 10

HELP_TEXT = (
    "<b>📖 Ayuda</b>\n\n"
    "Usa los botones del menú para:\n"
    "• <b>Clientes:</b> alta, listado y búsqueda\n"
    "• <b>OT:</b> abrir órdenes de trabajo y cambiar su estado\n"
    "• <b>Facturas:</b> facturar OTs finalizadas y registrar cobros\n"
    "• <b>Buscar:</b> clientes por nombre/NIF, OTs por matrícula\n\n"
    "Durante un formulario, responde a cada pregunta con un mensaje. "
    "En los campos opcionales escribe <code>-</code> para omitir.\n\n"
    "<b>Comandos:</b>\n"
    "/start o /menu - Menú principal\n"
    "/cancel - Cancelar el formulario en curso\n"
    "/help - Esta ayuda"
)

# screen → (title, rows of (label, callback data)); wizard buttons are
# dropped when their intent is not registered
_SCREENS: dict[str, tuple[str, list[list[tuple[str, str]]]]] = {
    "principal": (
        "Selecciona una opción:",
        [
            [("👤 Clientes", menu_data("clientes")), ("🔧 OT", menu_data("ots"))],
            [("💰 Facturas", menu_data("facturas")), ("🔍 Buscar", menu_data("buscar"))],
            [("❓ Ayuda", menu_data("ayuda"))],
        ],
    ),
    "clientes": (
        "<b>👤 Gestión de clientes</b>\n\nSelecciona una opción:",
        [
            [("➕ Nuevo cliente", start_data("create-customer"))],
            [("📋 Lista de clientes", list_data("clientes"))],
            [("🔍 Buscar cliente", start_data("search-customer"))],
            [("⬅️ Volver", menu_data("principal"))],
        ],
    ),
    "ots": (
        "<b>🔧 Órdenes de trabajo</b>\n\nSelecciona una opción:",
        [
            [("➕ Nueva OT", start_data("create-work-order"))],
            [("🔄 Cambiar estado", start_data("change-work-order-state"))],
            [("📋 Lista de OT", list_data("ots"))],
            [("🔍 Buscar por matrícula", start_data("search-work-order"))],
            [("⬅️ Volver", menu_data("principal"))],
        ],
    ),
    "facturas": (
        "<b>💰 Facturas</b>\n\nSelecciona una opción:",
        [
            [("🧾 Generar factura", start_data("generate-invoice"))],
            [("💶 Registrar pago", start_data("register-payment"))],
            [("📋 Lista de facturas", list_data("facturas"))],
            [("⬅️ Volver", menu_data("principal"))],
        ],
    ),
    "buscar": (
        "<b>🔍 Búsqueda rápida</b>\n\n¿Qué deseas buscar?",
        [
            [("👤 Buscar cliente", start_data("search-customer"))],
            [("🔧 Buscar OT", start_data("search-work-order"))],
            [("⬅️ Volver", menu_data("principal"))],
        ],
    ),
    "ayuda": (HELP_TEXT, [[("⬅️ Volver", menu_data("principal"))]]),
}

MENU_SCREENS = tuple(_SCREENS)


class ConversationGateway:
    """Routes one chat update at a time."""

    def __init__(
        self,
        engine: WizardEngine,
        channel: MessagingChannel,
        customers: CustomerRepository,
        work_orders: WorkOrderRepository,
        invoices: InvoiceRepository,
        messages: MessageLog | None = None,
        company_name: str = "R&S Automoción",
    ) -> None:
        self._engine = engine
        self._channel = channel
        self._customers = customers
        self._work_orders = work_orders
        self._invoices = invoices
        self._messages = messages
        self._company_name = company_name

    # ── Inbound ───────────────────────────────────────────────

    async def handle_update(self, update: dict[str, Any]) -> None:
        """Handle one Telegram ``Update`` object."""
        if "callback_query" in update:
            query = update["callback_query"]
            message = query.get("message") or {}
            user_id = str(query["from"]["id"])
            chat_id = str((message.get("chat") or {}).get("id", user_id))
            message_id = message.get("message_id")
            await self._channel.answer_callback(query["id"])
            data = query.get("data", "")
            await self._record(user_id, "user", f"[callback] {data}")
            event = decode_callback(user_id, data)
            if event is None:
                await self._channel.send_text(
                    chat_id, "Ese botón ya no es válido.", [[Button("🏠 Menú principal", menu_data("principal"))]]
                )
                return
        elif "message" in update and "text" in update["message"]:
            message = update["message"]
            chat_id = str(message["chat"]["id"])
            user_id = str((message.get("from") or {}).get("id", chat_id))
            message_id = None
            await self._record(user_id, "user", message["text"])
            event = decode_message(user_id, message["text"])
        else:
            log.debug("Ignoring update %s", update.get("update_id"))
            return

        await self.dispatch(chat_id, event, message_id=message_id)

    async def dispatch(
        self, chat_id: str, event: ConversationEvent, message_id: int | None = None
    ) -> None:
        """Run one decoded event.

        ``message_id`` is the bot message whose button was pressed; menus and
        listings replace it instead of posting a new one.
        """
        log.debug("Dispatch %s for user %s", type(event).__name__, redact_pii(event.user_id))
        try:
            if isinstance(event, StartIntent):
                output = await self._engine.start(event.user_id, event.intent)
            elif isinstance(event, TextInput):
                output = await self._engine.handle_input(event.user_id, event.text)
            elif isinstance(event, ActionEvent):
                if isinstance(event.action, Confirm):
                    await self._channel.show_typing(chat_id)
                output = await self._engine.handle_action(event.user_id, event.action)
            elif isinstance(event, MenuRequest):
                await self.show_menu(chat_id, event.user_id, event.screen, message_id=message_id)
                return
            elif isinstance(event, ListRequest):
                await self.show_listing(chat_id, event.user_id, event.what, message_id=message_id)
                return
            elif isinstance(event, Command):
                await self._channel.send_text(
                    chat_id,
                    f"Comando desconocido: /{escape_html(event.name)}. Usa /help.",
                    [[Button("🏠 Menú principal", menu_data("principal"))]],
                )
                return
            else:
                raise TypeError(f"Unknown event: {event!r}")
        except WizardError as exc:
            log.info("User %s: %s: %s", redact_pii(event.user_id), type(exc).__name__, exc)
            await self._channel.render_error(chat_id, exc)
            return

        await self._present(chat_id, event.user_id, output)

    # ── Outbound ──────────────────────────────────────────────

    async def _present(self, chat_id: str, user_id: str, output: Any) -> None:
        if isinstance(output, Prompt):
            await self._channel.render_prompt(chat_id, output)
        elif isinstance(output, Summary):
            await self._channel.render_summary(chat_id, output)
        elif isinstance(output, CommitResult):
            template = self._engine.registry.get(output.intent)
            menu = template.success_menu if template else "principal"
            await self._channel.render_result(chat_id, output, menu)
            await self._record(user_id, "assistant", output.message)
        elif isinstance(output, Cancelled):
            await self._channel.render_cancelled(chat_id, output)
        else:
            raise TypeError(f"Unexpected engine output: {output!r}")

    async def show_menu(
        self, chat_id: str, user_id: str, screen: str, message_id: int | None = None
    ) -> None:
        if screen not in _SCREENS:
            log.warning("Unknown menu screen %r", screen)
            screen = "principal"
        text, rows = _SCREENS[screen]
        if screen == "principal":
            text = f"🏠 <b>{escape_html(self._company_name)}</b>\n\n{text}"

        session = self._engine.session(user_id)
        if session is not None:
            template = self._engine.registry.get(session.intent)
            title = template.title if template and template.title else session.intent
            text += (
                f"\n\n📝 Tienes un formulario en curso (<b>{escape_html(title)}</b>). "
                "Escribe /cancel para descartarlo."
            )

        await self._channel.send_text(chat_id, text, self._keyboard(rows), message_id=message_id)

    def _keyboard(self, rows: list[list[tuple[str, str]]]) -> Keyboard:
        keyboard: Keyboard = []
        for row in rows:
            buttons = [
                Button(label, data)
                for label, data in row
                if not data.startswith("wiz:start:") or data[len("wiz:start:"):] in self._engine.registry
            ]
            if buttons:
                keyboard.append(buttons)
        return keyboard

    async def show_listing(
        self, chat_id: str, user_id: str, what: str, message_id: int | None = None
    ) -> None:
        builders = {
            "clientes": (self._list_customers, "clientes"),
            "ots": (self._list_work_orders, "ots"),
            "facturas": (self._list_invoices, "facturas"),
        }
        if what not in builders:
            log.warning("Unknown listing %r", what)
            await self.show_menu(chat_id, user_id, "principal", message_id=message_id)
            return

        build, back = builders[what]
        try:
            text = await build()
        except RepositoryError:
            log.exception("Listing %s failed", what)
            text = "❌ No se pudo obtener el listado. Inténtalo de nuevo."
        await self._channel.send_text(
            chat_id, text, [[Button("⬅️ Volver", menu_data(back))]], message_id=message_id
        )

    async def _list_customers(self) -> str:
        page = await self._customers.list(0, LISTING_SIZE)
        if not page.items:
            return "<b>📋 Clientes</b>\n\nNo hay clientes registrados."
        lines = [f"<b>📋 Últimos clientes</b> ({len(page.items)} de {page.total})\n"]
        for i, c in enumerate(page.items, 1):
            lines.append(
                f"{i}. <b>{escape_html(c.full_name)}</b>\n"
                f"   🪪 {format_nif(c.nif)} · 📧 {escape_html(c.email)}\n"
                f"   🆔 <code>{c.cliente_id}</code>"
            )
        return "\n".join(lines)

    async def _list_work_orders(self) -> str:
        page = await self._work_orders.list(0, LISTING_SIZE)
        if not page.items:
            return "<b>📋 Órdenes de trabajo</b>\n\nNo hay OTs registradas."
        lines = [f"<b>📋 Últimas OTs</b> ({len(page.items)} de {page.total})\n"]
        for i, o in enumerate(page.items, 1):
            lines.append(
                f"{i}. <b>{format_plate(o.matricula)}</b> · {escape_html(o.marca)} {escape_html(o.modelo)}\n"
                f"   {STATE_LABELS[o.estado.value]} · {format_eur(o.totales.total)}\n"
                f"   🆔 <code>{o.ot_id}</code>"
            )
        return "\n".join(lines)

    async def _list_invoices(self) -> str:
        page = await self._invoices.list(0, LISTING_SIZE)
        if not page.items:
            return "<b>📋 Facturas</b>\n\nNo hay facturas emitidas."
        lines = [f"<b>📋 Últimas facturas</b> ({len(page.items)} de {page.total})\n"]
        for i, f in enumerate(page.items, 1):
            lines.append(
                f"{i}. <b>{escape_html(f.numero)}</b> · {escape_html(f.cliente.nombre)} "
                f"{escape_html(f.cliente.apellidos)}\n"
                f"   {format_eur(f.total_factura)} · {PAYMENT_STATUS_LABELS[f.estado_pago.value]}"
                f" · pendiente {format_eur(f.monto_pendiente)}\n"
                f"   🆔 <code>{f.factura_id}</code>"
            )
        return "\n".join(lines)

    async def _record(self, user_id: str, role: str, content: str) -> None:
        if self._messages is not None:
            await self._messages.save(user_id, role, content)

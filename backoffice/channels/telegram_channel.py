"""Telegram rendering: HTML messages with inline keyboards."""

from __future__ import annotations

import logging

from gateway.telegram import TelegramClient, TelegramError, button, chunk

from backoffice.commits.base import CommitResult
from backoffice.engine import Cancelled, Prompt, Summary
from backoffice.errors import CommitError, WizardError
from backoffice.events import action_data, menu_data
from backoffice.formatters import escape_html, format_value
from backoffice.wizards.actions import Cancel, Confirm, Edit

from .base import Button, Keyboard, MessagingChannel

log = logging.getLogger("backoffice.channels.telegram")

CANCEL_BUTTON = Button("❌ Cancelar", action_data(Cancel()))
CONFIRM_BUTTON = Button("✅ Confirmar", action_data(Confirm()))


def _menu_button(screen: str = "principal") -> Button:
    return Button("🏠 Menú principal" if screen == "principal" else "⬅️ Volver", menu_data(screen))


class TelegramChannel(MessagingChannel):
    def __init__(self, client: TelegramClient) -> None:
        self._client = client

    async def render_prompt(self, chat_id: str, prompt: Prompt) -> None:
        header = f"<b>{escape_html(prompt.title)}</b> · " if prompt.title else ""
        parts = [f"{header}Paso {prompt.step} de {prompt.total}", "", prompt.text]

        if prompt.editing:
            parts.append(f"\nValor actual: <code>{format_value(prompt.current_value)}</code>")
        if prompt.choices:
            options = "\n".join(f"{i}. {escape_html(c)}" for i, c in enumerate(prompt.choices, 1))
            parts.append(f"\n{options}")
        if prompt.hint:
            parts.append(f"\n<i>{prompt.hint}</i>")
        if prompt.optional:
            parts.append("<i>Escribe - para omitir.</i>")
        if prompt.errors:
            bullets = "\n".join(f"• {escape_html(e)}" for e in prompt.errors)
            parts.append(f"\n⚠️ <b>Revisa el dato:</b>\n{bullets}")

        await self.send_text(chat_id, "\n".join(parts), [[CANCEL_BUTTON]])

    async def render_summary(self, chat_id: str, summary: Summary) -> None:
        header = escape_html(summary.title) or "Resumen"
        rows = "\n".join(f"<b>{escape_html(line.label)}:</b> {line.value}" for line in summary.lines)
        text = f"📋 <b>{header}</b>\n\n{rows}\n\n¿Es correcto?"

        labels = {line.key: line.label for line in summary.lines}
        edits = [
            Button(f"✏️ {labels.get(a.field_key, a.field_key)}", action_data(a))
            for a in summary.actions
            if isinstance(a, Edit)
        ]
        keyboard: Keyboard = [[CONFIRM_BUTTON], *chunk(edits, 2), [CANCEL_BUTTON]]
        await self.send_text(chat_id, text, keyboard)

    async def render_result(self, chat_id: str, result: CommitResult, menu: str = "principal") -> None:
        keyboard: Keyboard = [[_menu_button(menu)]]
        if menu != "principal":
            keyboard.append([_menu_button()])
        await self.send_text(chat_id, result.message, keyboard)

    async def render_cancelled(self, chat_id: str, cancelled: Cancelled) -> None:
        if cancelled.intent is None:
            text = "No había ninguna operación en curso."
        else:
            text = "❌ Operación cancelada."
        await self.send_text(chat_id, text, [[_menu_button()]])

    async def render_error(self, chat_id: str, error: WizardError) -> None:
        text = f"⚠️ {escape_html(error.user_message)}"
        if isinstance(error, CommitError):
            keyboard: Keyboard = [[CONFIRM_BUTTON], [CANCEL_BUTTON]]
        else:
            keyboard = [[_menu_button()]]
        await self.send_text(chat_id, text, keyboard)

    async def send_text(
        self,
        chat_id: str,
        text: str,
        keyboard: Keyboard | None = None,
        message_id: int | None = None,
    ) -> None:
        markup = [[button(b.text, b.data) for b in row] for row in keyboard] if keyboard else None
        if message_id is not None:
            try:
                await self._client.edit_message(chat_id, message_id, text, markup, retries=1)
                return
            except TelegramError as exc:
                log.info("Could not edit message %s (%s), sending a new one", message_id, exc.description)
        try:
            await self._client.send_message(chat_id, text, markup)
        except TelegramError:
            log.exception("Could not deliver message to chat %s", chat_id)

    async def show_typing(self, chat_id: str) -> None:
        await self._client.send_chat_action(chat_id)

    async def answer_callback(self, callback_id: str, text: str = "") -> None:
        try:
            await self._client.answer_callback_query(callback_id, text)
        except TelegramError as exc:
            log.warning("answerCallbackQuery failed: %s", exc)

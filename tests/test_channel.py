"""Tests for Telegram message rendering."""

from unittest.mock import AsyncMock

import pytest

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from backoffice.channels import Button, TelegramChannel
from backoffice.commits.base import CommitResult
from backoffice.engine import Cancelled, Prompt, Summary, SummaryLine
from backoffice.errors import CommitError, NoActiveSession
from backoffice.wizards.actions import Cancel, Confirm, Edit
from gateway.telegram import TelegramClient, TelegramError


@pytest.fixture
def client():
    return AsyncMock(spec=TelegramClient)


@pytest.fixture
def channel(client):
    return TelegramChannel(client)


def sent(client):
    chat_id, text, markup = client.send_message.await_args.args
    datas = [b["callback_data"] for row in markup or [] for b in row]
    return text, datas


def prompt(**overrides):
    values = dict(
        intent="register-payment",
        title="Registrar Pago",
        field_key="metodo",
        label="Método",
        text="Elige el <b>método de pago</b>",
        step=3,
        total=4,
    )
    values.update(overrides)
    return Prompt(**values)


class TestPrompt:
    @pytest.mark.asyncio
    async def test_progress_and_cancel(self, channel, client):
        await channel.render_prompt("1", prompt())
        text, datas = sent(client)
        assert "Paso 3 de 4" in text
        assert datas == ["wiz:cancel"]

    @pytest.mark.asyncio
    async def test_choices_numbered(self, channel, client):
        await channel.render_prompt("1", prompt(choices=["transferencia", "efectivo"]))
        text, _ = sent(client)
        assert "1. transferencia" in text
        assert "2. efectivo" in text

    @pytest.mark.asyncio
    async def test_optional_and_errors(self, channel, client):
        await channel.render_prompt("1", prompt(optional=True, errors=["Opción no válida."]))
        text, _ = sent(client)
        assert "Escribe - para omitir." in text
        assert "• Opción no válida." in text

    @pytest.mark.asyncio
    async def test_editing_shows_current_value(self, channel, client):
        await channel.render_prompt("1", prompt(editing=True, current_value="efectivo"))
        text, _ = sent(client)
        assert "Valor actual: <code>efectivo</code>" in text


class TestSummary:
    @pytest.mark.asyncio
    async def test_keyboard(self, channel, client):
        summary = Summary(
            intent="register-payment",
            title="Registrar Pago",
            lines=[SummaryLine("monto", "Importe", "50"), SummaryLine("metodo", "Método", "efectivo")],
            actions=[Confirm(), Edit("monto"), Edit("metodo"), Cancel()],
        )
        await channel.render_summary("1", summary)
        text, datas = sent(client)
        assert "<b>Importe:</b> 50" in text
        assert datas == ["wiz:confirm", "wiz:edit:monto", "wiz:edit:metodo", "wiz:cancel"]
        markup = client.send_message.await_args.args[2]
        assert [len(row) for row in markup] == [1, 2, 1]


class TestOutcomes:
    @pytest.mark.asyncio
    async def test_result_links_back(self, channel, client):
        await channel.render_result("1", CommitResult("create-customer", "c1", "✅ Hecho"), "clientes")
        text, datas = sent(client)
        assert text == "✅ Hecho"
        assert datas == ["menu:clientes", "menu:principal"]

    @pytest.mark.asyncio
    async def test_cancelled(self, channel, client):
        await channel.render_cancelled("1", Cancelled("create-customer"))
        assert "cancelada" in sent(client)[0]
        await channel.render_cancelled("1", Cancelled(None))
        assert "No había" in sent(client)[0]

    @pytest.mark.asyncio
    async def test_commit_error_offers_retry(self, channel, client):
        await channel.render_error("1", CommitError("boom", user_message="No se pudo guardar"))
        text, datas = sent(client)
        assert "No se pudo guardar" in text
        assert datas == ["wiz:confirm", "wiz:cancel"]

    @pytest.mark.asyncio
    async def test_protocol_error_offers_menu(self, channel, client):
        await channel.render_error("1", NoActiveSession())
        _, datas = sent(client)
        assert datas == ["menu:principal"]

    @pytest.mark.asyncio
    async def test_delivery_failure_is_logged(self, channel, client):
        client.send_message.side_effect = TelegramError("sendMessage", "Forbidden", 403)
        await channel.send_text("1", "hola")


class TestEditInPlace:
    @pytest.mark.asyncio
    async def test_edits_pressed_message(self, channel, client):
        await channel.send_text("1", "Menú", [[Button("Clientes", "menu:clientes")]], message_id=7)
        client.edit_message.assert_awaited_once()
        chat_id, message_id, text, markup = client.edit_message.await_args.args
        assert (chat_id, message_id, text) == ("1", 7, "Menú")
        assert markup[0][0]["callback_data"] == "menu:clientes"
        assert client.edit_message.await_args.kwargs == {"retries": 1}
        client.send_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_falls_back_to_new_message(self, channel, client):
        client.edit_message.side_effect = TelegramError("editMessageText", "message can't be edited", 400)
        await channel.send_text("1", "Menú", message_id=7)
        text, _ = sent(client)
        assert text == "Menú"

    @pytest.mark.asyncio
    async def test_show_typing(self, channel, client):
        await channel.show_typing("1")
        client.send_chat_action.assert_awaited_once_with("1")

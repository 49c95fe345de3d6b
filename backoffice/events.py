"""Inbound conversation events and the callback-data grammar.

Button presses carry a short string (Telegram allows 64 bytes)::

    menu:<screen>          open a menu screen
    list:<what>            show a listing (clientes, ots, facturas)
    wiz:start:<intent>     start a wizard
    wiz:confirm            confirm the summary
    wiz:cancel             cancel the wizard
    wiz:edit:<field>       jump back to a field

Everything the transport delivers is decoded here, once, into one of the
event types below; the engine only ever sees ``WizardAction`` values.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Union

from backoffice.wizards.actions import Cancel, Confirm, Edit, WizardAction

log = logging.getLogger("backoffice.events")


@dataclass(frozen=True)
class StartIntent:
    user_id: str
    intent: str


@dataclass(frozen=True)
class TextInput:
    user_id: str
    text: str


@dataclass(frozen=True)
class ActionEvent:
    user_id: str
    action: WizardAction


@dataclass(frozen=True)
class MenuRequest:
    user_id: str
    screen: str


@dataclass(frozen=True)
class ListRequest:
    user_id: str
    what: str


@dataclass(frozen=True)
class Command:
    """A slash command other than the ones that map onto an action."""

    user_id: str
    name: str


ConversationEvent = Union[StartIntent, TextInput, ActionEvent, MenuRequest, ListRequest, Command]


# ── Encoding ─────────────────────────────────────────────────────


def menu_data(screen: str) -> str:
    return f"menu:{screen}"


def list_data(what: str) -> str:
    return f"list:{what}"


def start_data(intent: str) -> str:
    return f"wiz:start:{intent}"


def action_data(action: WizardAction) -> str:
    if isinstance(action, Confirm):
        return "wiz:confirm"
    if isinstance(action, Cancel):
        return "wiz:cancel"
    if isinstance(action, Edit):
        return f"wiz:edit:{action.field_key}"
    raise TypeError(f"Unknown wizard action: {action!r}")


# ── Decoding ─────────────────────────────────────────────────────


def decode_callback(user_id: str, data: str) -> Optional[ConversationEvent]:
    """Decode button callback data; ``None`` for anything unrecognized."""
    prefix, _, rest = (data or "").partition(":")

    if prefix == "menu" and rest:
        return MenuRequest(user_id, rest)
    if prefix == "list" and rest:
        return ListRequest(user_id, rest)
    if prefix == "wiz":
        verb, _, arg = rest.partition(":")
        if verb == "start" and arg:
            return StartIntent(user_id, arg)
        if verb == "confirm" and not arg:
            return ActionEvent(user_id, Confirm())
        if verb == "cancel" and not arg:
            return ActionEvent(user_id, Cancel())
        if verb == "edit" and arg:
            return ActionEvent(user_id, Edit(arg))

    log.warning("Unrecognized callback data: %r", data)
    return None


def decode_message(user_id: str, text: str) -> ConversationEvent:
    """Decode a text message: slash commands, otherwise wizard input.

    ``/skip`` is left as text: it is an answer to an optional field.
    """
    stripped = (text or "").strip()
    if stripped.startswith("/") and stripped != "/skip":
        # "/start@MyBot arg" → "start"
        name = stripped[1:].split()[0].split("@")[0].lower() if len(stripped) > 1 else ""
        if name == "cancel":
            return ActionEvent(user_id, Cancel())
        if name in ("start", "menu"):
            return MenuRequest(user_id, "principal")
        if name == "help":
            return MenuRequest(user_id, "ayuda")
        return Command(user_id, name)
    return TextInput(user_id, text)

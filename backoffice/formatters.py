"""Display helpers for chat messages (Spanish locale conventions)."""

from __future__ import annotations

import html
from datetime import date, datetime
from typing import Any


def format_eur(amount: float | int | None) -> str:
    """Format an amount as Spanish euros: ``1.234,56 €``."""
    if amount is None:
        return "-"
    text = f"{float(amount):,.2f}"
    # en-US grouping → es-ES grouping
    text = text.replace(",", "_").replace(".", ",").replace("_", ".")
    return f"{text} €"


def format_date(value: date | datetime | None, fmt: str = "es") -> str:
    if not isinstance(value, (date, datetime)):
        return ""
    if fmt == "es":
        return value.strftime("%d/%m/%Y")
    return value.strftime("%Y-%m-%d")


def format_nif(nif: str | None) -> str:
    """``12345678Z`` → ``1234 5678 Z``."""
    if not nif or len(nif) < 9:
        return nif or ""
    return f"{nif[:4]} {nif[4:8]} {nif[8:]}"


def format_plate(plate: str | None) -> str:
    """``1234ABC`` → ``1234-ABC``."""
    if not plate or len(plate) < 7:
        return plate or ""
    return f"{plate[:4]}-{plate[4:]}"


def format_number(value: float | int) -> str:
    """Drop a trailing ``.0`` and use a decimal comma."""
    if float(value).is_integer():
        return str(int(value))
    return f"{value:g}".replace(".", ",")


def format_value(value: Any) -> str:
    """Render a collected wizard value for a summary line."""
    if value is None or value == "":
        return "—"
    if isinstance(value, bool):
        return "sí" if value else "no"
    if isinstance(value, (int, float)):
        return format_number(value)
    return escape_html(str(value))


def escape_html(text: Any) -> str:
    """Escape user text before embedding it in an HTML-mode Telegram message."""
    if not isinstance(text, str):
        return ""
    return html.escape(text, quote=False).strip()


def short_id(value: str, length: int = 8) -> str:
    return value[:length] if value else ""


def redact_pii(value: str | None) -> str:
    """Mask PII for logging — show first 3 and last 2 chars only."""
    if not value or len(value) <= 5:
        return "***"
    return value[:3] + "***" + value[-2:]

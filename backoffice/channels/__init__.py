"""Messaging channels: how engine output reaches the user."""

from .base import Button, MessagingChannel
from .telegram_channel import TelegramChannel

__all__ = ["Button", "MessagingChannel", "TelegramChannel"]

"""MessagingChannel ABC — presents engine output on a chat transport.

The engine returns plain data (``Prompt``, ``Summary``, ``CommitResult``,
``Cancelled``); a channel decides how that looks on its transport (HTML
text, inline buttons, …).  The conversation gateway only talks to this
interface, so a second transport means a second subclass and nothing else.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from backoffice.commits.base import CommitResult
from backoffice.engine import Cancelled, Prompt, Summary
from backoffice.errors import WizardError


@dataclass(frozen=True)
class Button:
    """An inline button: label shown to the user, callback data sent back."""

    text: str
    data: str


Keyboard = list[list[Button]]


class MessagingChannel(ABC):
    """Abstract chat channel.  All methods are fire-and-forget."""

    @abstractmethod
    async def render_prompt(self, chat_id: str, prompt: Prompt) -> None:
        """Ask for one field: step counter, question, errors, current value."""

    @abstractmethod
    async def render_summary(self, chat_id: str, summary: Summary) -> None:
        """Show the collected values with confirm / edit / cancel."""

    @abstractmethod
    async def render_result(self, chat_id: str, result: CommitResult, menu: str = "principal") -> None:
        """Report a successful commit and offer the way back to ``menu``."""

    @abstractmethod
    async def render_cancelled(self, chat_id: str, cancelled: Cancelled) -> None:
        """Tell the user the wizard is gone (or that there was none)."""

    @abstractmethod
    async def render_error(self, chat_id: str, error: WizardError) -> None:
        """Show ``error.user_message``.

        A ``CommitError`` leaves the user on the summary, so it must offer
        confirm and cancel again.
        """

    @abstractmethod
    async def send_text(
        self,
        chat_id: str,
        text: str,
        keyboard: Keyboard | None = None,
        message_id: int | None = None,
    ) -> None:
        """Send a free-form message (menus, listings, help).

        With ``message_id`` the channel may replace that message in place
        instead of posting a new one.
        """

    @abstractmethod
    async def show_typing(self, chat_id: str) -> None:
        """Hint that a slow operation is running.  Failures are ignored."""

    @abstractmethod
    async def answer_callback(self, callback_id: str, text: str = "") -> None:
        """Acknowledge a button press."""

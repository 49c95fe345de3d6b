"""Commit handler interface.

A commit handler is the last step of a wizard: it receives the full,
validated payload (every template key, skipped optionals as ``None``),
performs the repository operation the intent stands for, and describes
the result for the chat.

Handlers raise ``RepositoryError`` subclasses when the operation is
refused; the engine turns them into ``CommitError`` and keeps the session.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


@dataclass
class CommitResult:
    """What a successful commit produced."""

    intent: str
    entity_id: str | None
    message: str  # HTML, ready for the chat
    record: Any = None


class CommitHandler(ABC):
    """One repository operation a wizard can commit to."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Identifier referenced by ``WizardTemplate.commit``."""

    @property
    @abstractmethod
    def description(self) -> str:
        """Short human-readable description, shown by the admin API."""

    @abstractmethod
    async def execute(self, intent: str, payload: dict[str, Any]) -> CommitResult:
        """Run the operation.

        Args:
            intent: The wizard intent being committed.
            payload: The session's collected values.

        Returns:
            CommitResult with the created entity's id (``None`` for searches).

        Raises:
            RepositoryError: the repository refused the operation.
        """

"""Chat history log."""

from __future__ import annotations

import logging

from backoffice.formatters import redact_pii
from backoffice.models.message import ChatMessage

from .store import DocumentStore

log = logging.getLogger("backoffice.repositories.messages")

COLLECTION = "messages"


class MessageLog:
    """Append-only conversation history, capped per user.

    History is a convenience: a storage failure here is logged and reported
    as ``False`` but never interrupts the conversation.

    Each user keeps at most ``max_per_user`` messages.  Older ones are
    dropped in batches once the user is ``prune_batch`` over the cap, so a
    file-backed store rewrites its file once per batch rather than once per
    message.
    """

    def __init__(self, store: DocumentStore, max_per_user: int = 200, prune_batch: int = 50) -> None:
        if max_per_user < 1 or prune_batch < 1:
            raise ValueError("max_per_user and prune_batch must be positive")
        self._store = store
        self._max_per_user = max_per_user
        self._prune_batch = prune_batch

    async def save(self, user_id: str, role: str, content: str) -> bool:
        message = ChatMessage(user_id=str(user_id), role=role, content=content)
        try:
            await self._store.insert(COLLECTION, message.model_dump(mode="json"))
            await self._prune(message.user_id)
        except Exception:
            log.exception("Failed to save %s message for %s", role, user_id)
            return False
        return True

    async def history(self, user_id: str, limit: int = 20) -> list[ChatMessage]:
        """Last ``limit`` messages for a user, oldest first (insertion order)."""
        docs = await self._store.find(COLLECTION, lambda d: d.get("user_id") == str(user_id))
        return [ChatMessage.model_validate(d) for d in docs[-limit:]]

    async def _prune(self, user_id: str) -> None:
        def mine(doc: dict) -> bool:
            return doc.get("user_id") == user_id

        total = await self._store.count(COLLECTION, mine)
        if total <= self._max_per_user + self._prune_batch:
            return

        docs = await self._store.find(COLLECTION, mine, limit=total - self._max_per_user)
        stale = {d.get("message_id") for d in docs}
        removed = await self._store.delete(
            COLLECTION, lambda d: mine(d) and d.get("message_id") in stale
        )
        log.info("Pruned %d old message(s) for user %s", removed, redact_pii(user_id))

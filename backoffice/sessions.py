"""Wizard sessions and the per-user session store.

One ``WizardSession`` per chat user, held in process memory.  A restart
drops every in-flight wizard; the user just gets "no active form" on the
next message and starts again.

Concurrency: the engine takes ``SessionStore.lock(user_id)`` around every
operation so two updates for the same user (a double-tapped button) are
applied one after the other.  Different users never contend.

Expiry is lazy: ``get`` drops a session idle for longer than
``idle_timeout`` seconds, and ``sweep`` (run periodically by the app)
drops the ones nobody touches again.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Optional

from pydantic import BaseModel, Field

from backoffice.formatters import redact_pii

log = logging.getLogger("backoffice.sessions")


class WizardSession(BaseModel):
    """One user's progress through one wizard.

    ``cursor`` indexes the template steps; ``cursor == total`` is the
    Confirming state.  ``editing`` holds the field key while an edit-jump
    is pending so the next valid answer returns straight to Confirming.
    """

    user_id: str
    intent: str
    total: int
    cursor: int = 0
    collected: dict[str, Any] = Field(default_factory=dict)
    editing: Optional[str] = None
    created_at: float = Field(default_factory=time.time)
    last_activity_at: float = Field(default_factory=time.time)

    @property
    def is_confirming(self) -> bool:
        return self.cursor >= self.total

    def touch(self, now: float | None = None) -> None:
        self.last_activity_at = time.time() if now is None else now

    def to_dict(self, detail: bool = False) -> dict[str, Any]:
        """Serialize for the admin API.  Values are only included with ``detail``."""
        d: dict[str, Any] = {
            "user_id": self.user_id,
            "intent": self.intent,
            "cursor": self.cursor,
            "total": self.total,
            "confirming": self.is_confirming,
            "editing": self.editing,
            "created_at": self.created_at,
            "last_activity_at": self.last_activity_at,
            "collected_keys": list(self.collected),
        }
        if detail:
            d["collected"] = dict(self.collected)
        return d


class SessionStore:
    """``user_id → WizardSession`` with idle expiry and per-user locks."""

    def __init__(
        self,
        idle_timeout: float = 30 * 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._idle_timeout = idle_timeout
        self._clock = clock
        self._sessions: dict[str, WizardSession] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def idle_timeout(self) -> float:
        return self._idle_timeout

    def now(self) -> float:
        return self._clock()

    def lock(self, user_id: str) -> asyncio.Lock:
        """The lock serializing all wizard operations for ``user_id``."""
        lock = self._locks.get(user_id)
        if lock is None:
            lock = self._locks[user_id] = asyncio.Lock()
        return lock

    def get(self, user_id: str) -> WizardSession | None:
        session = self._sessions.get(user_id)
        if session is None:
            return None
        if self._expired(session):
            self._drop(user_id, reason="idle")
            return None
        return session

    def put(self, session: WizardSession) -> None:
        session.touch(self._clock())
        self._sessions[session.user_id] = session

    def pop(self, user_id: str) -> WizardSession | None:
        """Remove and return the session, or ``None`` if there was none."""
        return self._sessions.pop(user_id, None)

    def sweep(self) -> int:
        """Drop every idle session; return how many were dropped."""
        expired = [uid for uid, s in self._sessions.items() if self._expired(s)]
        for user_id in expired:
            self._drop(user_id, reason="sweep")
        # Locks for users with no session are recreated on demand
        for user_id in list(self._locks):
            if user_id not in self._sessions and not self._locks[user_id].locked():
                del self._locks[user_id]
        return len(expired)

    def active(self) -> list[WizardSession]:
        return [s for s in self._sessions.values() if not self._expired(s)]

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._sessions

    def _expired(self, session: WizardSession) -> bool:
        return self._clock() - session.last_activity_at > self._idle_timeout

    def _drop(self, user_id: str, reason: str) -> None:
        session = self._sessions.pop(user_id, None)
        if session is not None:
            log.info(
                "Session expired (%s): user=%s intent=%s",
                reason, redact_pii(user_id), session.intent,
            )

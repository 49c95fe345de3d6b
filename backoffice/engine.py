"""Wizard engine — drives every guided data-entry flow.

The engine knows nothing about customers or invoices.  A flow is a
``WizardTemplate`` from the registry; the engine walks a user's
``WizardSession`` through its steps, validates each answer, shows a
summary once every field is collected, and on confirmation hands the
payload to the template's commit handler.

State machine (per user)::

    Idle ──start──▶ Collecting(i) ──valid input──▶ Collecting(i+1) … ──▶ Confirming
    Confirming ──confirm ok──▶ Idle
    Confirming ──confirm fails──▶ Confirming          (session kept, retry allowed)
    Confirming ──edit(k)──▶ Collecting(k) ──valid input──▶ Confirming
    any ──cancel──▶ Idle                              (no-op when already Idle)

Every operation runs under the user's session lock; only ``confirm``
awaits I/O.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Union

from backoffice import validators
from backoffice.commits.base import CommitHandler, CommitResult
from backoffice.errors import (
    CommitError,
    IntentNotFound,
    InvalidState,
    NoActiveSession,
    RecordValidationError,
    RepositoryError,
    SessionAlreadyActive,
    TemplateRegistryError,
)
from backoffice.formatters import format_value, redact_pii
from backoffice.sessions import SessionStore, WizardSession
from backoffice.wizards.actions import Cancel, Confirm, Edit, WizardAction
from backoffice.wizards.registry import TemplateRegistry
from backoffice.wizards.schema import FieldSpec, WizardTemplate

log = logging.getLogger("backoffice.engine")

# Answers that skip an optional field
SKIP_TOKENS = frozenset({"-", "/skip"})


# ── Engine output ────────────────────────────────────────────────


@dataclass
class Prompt:
    """Ask the user for one field."""

    intent: str
    title: str
    field_key: str
    label: str
    text: str
    step: int                      # 1-based
    total: int
    hint: str = ""
    optional: bool = False
    choices: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    editing: bool = False
    current_value: Any = None


@dataclass
class SummaryLine:
    key: str
    label: str
    value: str


@dataclass
class Summary:
    """Everything collected, awaiting confirm / edit / cancel."""

    intent: str
    title: str
    lines: list[SummaryLine]
    actions: list[WizardAction]


@dataclass
class Cancelled:
    """The session is gone.  ``intent`` is ``None`` if there was nothing to cancel."""

    intent: str | None


EngineResult = Union[Prompt, Summary, CommitResult, Cancelled]


class WizardEngine:
    """Generic step-by-step protocol over the template registry."""

    def __init__(
        self,
        registry: TemplateRegistry,
        store: SessionStore,
        handlers: Mapping[str, CommitHandler],
    ) -> None:
        missing = sorted({t.commit for t in registry if t.commit not in handlers})
        if missing:
            raise TemplateRegistryError(f"No commit handler for: {', '.join(missing)}")
        self._registry = registry
        self._store = store
        self._handlers = dict(handlers)

    @property
    def registry(self) -> TemplateRegistry:
        return self._registry

    @property
    def store(self) -> SessionStore:
        return self._store

    def session(self, user_id: str) -> WizardSession | None:
        """The user's live session, if any (read-only use)."""
        return self._store.get(user_id)

    # ── Protocol ──────────────────────────────────────────────

    async def start(self, user_id: str, intent: str) -> Prompt | Summary:
        template = self._registry.get(intent)
        if template is None:
            raise IntentNotFound(f"No wizard registered for intent {intent!r}")

        async with self._store.lock(user_id):
            existing = self._store.get(user_id)
            if existing is not None:
                raise SessionAlreadyActive(
                    f"User {redact_pii(user_id)} already in {existing.intent!r}"
                )
            now = self._store.now()
            session = WizardSession(
                user_id=user_id,
                intent=intent,
                total=len(template.steps),
                created_at=now,
                last_activity_at=now,
            )
            session.cursor = _next_cursor(template, session)
            self._store.put(session)

        log.info("Wizard started: user=%s intent=%s", redact_pii(user_id), intent)
        return self._render(template, session)

    async def handle_input(self, user_id: str, raw: str) -> Prompt | Summary:
        async with self._store.lock(user_id):
            session = self._require(user_id)
            template = self._template(session)
            if session.is_confirming:
                raise InvalidState(f"{session.intent}: input received while confirming")

            spec = template.steps[session.cursor]
            answer = (raw or "").strip()

            if not spec.required and answer.lower() in SKIP_TOKENS:
                value = None
            else:
                result = validators.validate(spec, answer)
                if not result.valid:
                    self._store.put(session)
                    log.warning(
                        "Rejected input: user=%s intent=%s field=%s errors=%d",
                        redact_pii(user_id), session.intent, spec.key, len(result.errors),
                    )
                    return self._prompt(template, session, errors=result.errors)
                value = result.normalized_value

            session.collected[spec.key] = value
            session.editing = None
            session.cursor = _next_cursor(template, session)
            self._store.put(session)

            log.debug("Field accepted: intent=%s field=%s", session.intent, spec.key)
            if session.is_confirming:
                log.info("Wizard confirming: user=%s intent=%s", redact_pii(user_id), session.intent)
            return self._render(template, session)

    async def handle_action(
        self, user_id: str, action: WizardAction
    ) -> Prompt | Summary | CommitResult | Cancelled:
        if isinstance(action, Cancel):
            return await self.cancel(user_id)

        async with self._store.lock(user_id):
            session = self._require(user_id)
            template = self._template(session)
            if not session.is_confirming:
                raise InvalidState(f"{session.intent}: {action!r} before all fields are collected")

            if isinstance(action, Confirm):
                return await self._commit(template, session)

            if isinstance(action, Edit):
                return self._edit(template, session, action.field_key)

        raise TypeError(f"Unknown wizard action: {action!r}")

    async def cancel(self, user_id: str) -> Cancelled:
        async with self._store.lock(user_id):
            session = self._store.pop(user_id)
        if session is None:
            return Cancelled(intent=None)
        log.info("Wizard cancelled: user=%s intent=%s", redact_pii(user_id), session.intent)
        return Cancelled(intent=session.intent)

    # ── Internal ──────────────────────────────────────────────

    def _require(self, user_id: str) -> WizardSession:
        session = self._store.get(user_id)
        if session is None:
            raise NoActiveSession(f"No active wizard for {redact_pii(user_id)}")
        return session

    def _template(self, session: WizardSession) -> WizardTemplate:
        template = self._registry.get(session.intent)
        if template is None:
            # Registry is immutable, so this means a corrupted session
            self._store.pop(session.user_id)
            raise IntentNotFound(f"Session references unknown intent {session.intent!r}")
        return template

    def _edit(self, template: WizardTemplate, session: WizardSession, key: str) -> Prompt:
        try:
            index = template.index_of(key)
        except KeyError:
            raise InvalidState(f"{template.intent}: no field {key!r}") from None
        if not template.steps[index].applies_to(session.collected):
            raise InvalidState(f"{template.intent}: field {key!r} does not apply")

        session.cursor = index
        session.editing = key
        self._store.put(session)
        log.info("Wizard edit: user=%s intent=%s field=%s", redact_pii(session.user_id), template.intent, key)
        return self._prompt(template, session)

    async def _commit(self, template: WizardTemplate, session: WizardSession) -> CommitResult:
        handler = self._handlers[template.commit]
        payload = {key: session.collected.get(key) for key in template.keys}

        try:
            result = await handler.execute(template.intent, payload)
        except RepositoryError as exc:
            self._store.put(session)
            log.warning(
                "Commit rejected: user=%s intent=%s handler=%s: %s",
                redact_pii(session.user_id), template.intent, handler.name, exc,
            )
            raise CommitError(str(exc), user_message=_commit_message(exc)) from exc
        except Exception as exc:
            self._store.put(session)
            log.exception(
                "Commit failed: user=%s intent=%s handler=%s",
                redact_pii(session.user_id), template.intent, handler.name,
            )
            raise CommitError(str(exc)) from exc

        self._store.pop(session.user_id)
        log.info(
            "Wizard committed: user=%s intent=%s entity=%s",
            redact_pii(session.user_id), template.intent, result.entity_id,
        )
        return result

    def _render(self, template: WizardTemplate, session: WizardSession) -> Prompt | Summary:
        if session.is_confirming:
            return self._summary(template, session)
        return self._prompt(template, session)

    def _prompt(
        self,
        template: WizardTemplate,
        session: WizardSession,
        errors: list[str] | None = None,
    ) -> Prompt:
        spec = template.steps[session.cursor]
        editing = session.editing == spec.key
        return Prompt(
            intent=template.intent,
            title=template.title,
            field_key=spec.key,
            label=spec.display_label,
            text=spec.prompt,
            step=session.cursor + 1,
            total=session.total,
            hint=spec.hint,
            optional=not spec.required,
            choices=list(spec.choices),
            errors=list(errors or []),
            editing=editing,
            current_value=session.collected.get(spec.key) if editing else None,
        )

    def _summary(self, template: WizardTemplate, session: WizardSession) -> Summary:
        shown = [s for s in template.steps if s.applies_to(session.collected)]
        lines = [
            SummaryLine(s.key, s.display_label, format_value(session.collected.get(s.key)))
            for s in shown
        ]
        actions: list[WizardAction] = [Confirm()]
        actions.extend(Edit(s.key) for s in shown)
        actions.append(Cancel())
        return Summary(template.intent, template.title, lines, actions)


def _is_missing(spec: FieldSpec, collected: dict[str, Any]) -> bool:
    if spec.key not in collected:
        return True
    return spec.required and collected[spec.key] is None


def _next_cursor(template: WizardTemplate, session: WizardSession) -> int:
    """Index of the first field still to ask, or ``len(steps)`` for Confirming.

    Fields that do not apply given the current answers are set to ``None``
    on the way; fields already answered are not asked again.
    """
    for index, spec in enumerate(template.steps):
        if not spec.applies_to(session.collected):
            session.collected[spec.key] = None
            continue
        if _is_missing(spec, session.collected):
            return index
    return len(template.steps)


def _commit_message(exc: RepositoryError) -> str:
    if isinstance(exc, RecordValidationError):
        detail = "\n".join(f"• {e}" for e in exc.errors)
    else:
        detail = str(exc)
    return f"No se pudo guardar:\n{detail}\n\nPuedes reintentar la confirmación o cancelar."

"""Exception taxonomy for the back office.

Input validation never raises: validators return a ``ValidationResult``.
Everything below is either caller misuse of the wizard protocol, a failed
commit, a storage failure, or a fatal template-registry problem detected
at startup.
"""

from __future__ import annotations


class WizardError(Exception):
    """Base class for errors surfaced to the chat user."""

    user_message = "Algo ha ido mal. Usa /start para volver a empezar."

    def __init__(self, message: str = "", user_message: str | None = None) -> None:
        super().__init__(message or self.user_message)
        if user_message is not None:
            self.user_message = user_message


# ── Protocol errors ──────────────────────────────────────────────


class ProtocolError(WizardError):
    """The wizard protocol was used out of order."""


class NoActiveSession(ProtocolError):
    user_message = "No hay ningún formulario en curso. Usa /start para empezar."


class SessionAlreadyActive(ProtocolError):
    user_message = (
        "Ya tienes un formulario en curso. Termínalo o cancélalo antes de empezar otro."
    )


class InvalidState(ProtocolError):
    user_message = "Esa acción no está disponible en este paso."


class IntentNotFound(ProtocolError):
    user_message = "Ese formulario no existe. Usa /start para ver el menú."


# ── Commit errors ────────────────────────────────────────────────


class CommitError(WizardError):
    """The repository rejected a confirmed payload; the session is kept."""

    user_message = "No se pudo guardar. Puedes reintentar la confirmación o cancelar."


# ── Startup errors ───────────────────────────────────────────────


class TemplateRegistryError(Exception):
    """A wizard template is malformed. Fatal, raised only at startup."""


# ── Repository errors ────────────────────────────────────────────


class RepositoryError(Exception):
    """A persistence operation failed."""


class RecordNotFound(RepositoryError):
    pass


class DuplicateKeyError(RepositoryError):
    pass


class BusinessRuleError(RepositoryError):
    """The operation is not allowed in the record's current state."""


class RecordValidationError(RepositoryError):
    """Write-time validation failed."""

    def __init__(self, errors: list[str]) -> None:
        super().__init__("; ".join(errors))
        self.errors = list(errors)

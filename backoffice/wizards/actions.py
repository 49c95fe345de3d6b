"""Closed set of wizard actions.

Transports decode their button payloads into one of these once, at the
edge; the engine only ever matches over ``Confirm | Edit | Cancel``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class Confirm:
    """Commit the collected payload."""


@dataclass(frozen=True)
class Edit:
    """Jump back to one field from the summary."""

    field_key: str


@dataclass(frozen=True)
class Cancel:
    """Abandon the wizard."""


WizardAction = Union[Confirm, Edit, Cancel]

"""Pydantic models for guided data-entry wizards.

A ``WizardTemplate`` is an ordered list of ``FieldSpec`` steps plus the
name of the commit handler that receives the collected payload.  The
order of ``steps`` is the only legal forward path through a wizard.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel


class FieldType(str, Enum):
    TEXT = "text"
    TAX_ID = "tax_id"
    EMAIL = "email"
    PHONE = "phone"
    PLATE = "plate"
    NUMBER = "number"
    CHOICE = "choice"
    REFERENCE = "reference"


class FieldSpec(BaseModel):
    """One step in a wizard."""

    key: str
    label: str = ""                        # Short name shown in summaries
    prompt: str                            # Question sent to the user
    field_type: FieldType = FieldType.TEXT
    required: bool = True
    min_length: int | None = None          # text fields
    max_value: float | None = None         # number fields, inclusive
    allow_zero: bool = False               # number fields: accept 0
    choices: list[str] = []                # choice fields
    depends_on: str | None = None          # earlier key that must hold a value
    depends_values: list[str] = []         # ...and, if set, one of these values
    hint: str = ""                         # Extra help line under the prompt

    @property
    def display_label(self) -> str:
        return self.label or self.key.replace("_", " ").capitalize()

    def applies_to(self, collected: dict[str, Any]) -> bool:
        """Whether this field should be asked given the values collected so far."""
        if not self.depends_on:
            return True
        value = collected.get(self.depends_on)
        if value is None or value == "":
            return False
        if self.depends_values:
            return str(value) in self.depends_values
        return True


class WizardTemplate(BaseModel):
    """A complete guided flow for one intent."""

    intent: str
    title: str = ""
    commit: str                            # Commit handler name
    steps: list[FieldSpec] = []
    success_menu: str = "principal"        # Menu offered after a commit

    @property
    def keys(self) -> list[str]:
        return [step.key for step in self.steps]

    def index_of(self, key: str) -> int:
        """Position of ``key`` in ``steps``; raises ``KeyError`` if absent."""
        for i, step in enumerate(self.steps):
            if step.key == key:
                return i
        raise KeyError(key)

    def field(self, key: str) -> FieldSpec:
        return self.steps[self.index_of(key)]

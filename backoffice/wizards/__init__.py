"""Wizard templates: field specs, JSONL loading, the template registry, actions."""

from .actions import Cancel, Confirm, Edit, WizardAction
from .schema import FieldSpec, FieldType, WizardTemplate

__all__ = [
    "Cancel",
    "Confirm",
    "Edit",
    "FieldSpec",
    "FieldType",
    "WizardAction",
    "WizardTemplate",
]

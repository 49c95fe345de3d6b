"""Template registry — intent id → WizardTemplate, built once at startup.

Adding a guided flow means adding one line to ``back_office.jsonl`` (and a
commit handler if it needs a new repository operation); the engine itself
never changes.  Every structural problem is reported here, at startup, as
a ``TemplateRegistryError`` so a malformed template can never surface as a
per-user runtime failure.
"""

from __future__ import annotations

import logging
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, Iterator

from backoffice import validators
from backoffice.errors import TemplateRegistryError
from backoffice.wizards.loader import load_templates_jsonl
from backoffice.wizards.schema import FieldType, WizardTemplate

log = logging.getLogger("backoffice.wizards.registry")

DEFAULT_TEMPLATES_PATH = Path(__file__).resolve().parent / "back_office.jsonl"


class TemplateRegistry:
    """Read-only mapping from intent to template."""

    def __init__(
        self,
        templates: Iterable[WizardTemplate],
        handler_names: Iterable[str] | None = None,
    ) -> None:
        by_intent: dict[str, WizardTemplate] = {}
        for template in templates:
            if template.intent in by_intent:
                raise TemplateRegistryError(f"Duplicate intent: {template.intent!r}")
            by_intent[template.intent] = template
        self._templates = MappingProxyType(by_intent)
        self._handler_names = set(handler_names) if handler_names is not None else None
        self.validate()

    # ── Lookup ────────────────────────────────────────────────

    def get(self, intent: str) -> WizardTemplate | None:
        return self._templates.get(intent)

    @property
    def intents(self) -> list[str]:
        return list(self._templates)

    def __contains__(self, intent: object) -> bool:
        return intent in self._templates

    def __iter__(self) -> Iterator[WizardTemplate]:
        return iter(self._templates.values())

    def __len__(self) -> int:
        return len(self._templates)

    # ── Validation ────────────────────────────────────────────

    def validate(self) -> None:
        """Check every template; raise one error listing all problems."""
        problems: list[str] = []
        if not self._templates:
            problems.append("registry is empty")

        for intent, template in self._templates.items():
            problems.extend(f"{intent}: {p}" for p in _template_problems(template))
            if self._handler_names is not None and template.commit not in self._handler_names:
                problems.append(f"{intent}: no commit handler named {template.commit!r}")

        if problems:
            raise TemplateRegistryError("Invalid wizard templates:\n  " + "\n  ".join(problems))

        log.info("Template registry ready: %s", ", ".join(self._templates))


def _template_problems(template: WizardTemplate) -> list[str]:
    problems: list[str] = []
    if not template.intent:
        problems.append("empty intent")
    if not template.commit:
        problems.append("no commit handler")
    if not template.steps:
        problems.append("no steps")
        return problems

    seen: set[str] = set()
    for step in template.steps:
        if not step.key:
            problems.append("step with empty key")
        if step.key in seen:
            problems.append(f"duplicate key {step.key!r}")
        if not validators.supports(step.field_type):
            problems.append(f"{step.key}: unknown field type {step.field_type!r}")
        if step.field_type == FieldType.CHOICE and not step.choices:
            problems.append(f"{step.key}: choice field without choices")
        if step.depends_on and step.depends_on not in seen:
            problems.append(
                f"{step.key}: depends_on {step.depends_on!r} is not an earlier field"
            )
        seen.add(step.key)

    return problems


def load_default_registry(
    path: str | Path | None = None,
    handler_names: Iterable[str] | None = None,
) -> TemplateRegistry:
    """Build the registry from the shipped JSONL templates."""
    path = Path(path) if path else DEFAULT_TEMPLATES_PATH
    try:
        templates = load_templates_jsonl(path)
    except (OSError, ValueError) as exc:
        raise TemplateRegistryError(f"Cannot load wizard templates from {path}: {exc}") from exc
    return TemplateRegistry(templates.values(), handler_names=handler_names)

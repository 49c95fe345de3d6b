"""Load JSONL wizard definitions into WizardTemplate objects."""

from __future__ import annotations

import json
from pathlib import Path

from backoffice.wizards.schema import FieldSpec, WizardTemplate


def load_template_jsonl(path: str | Path) -> WizardTemplate:
    """Load a single template from a JSONL file.

    The first non-empty line holds the template; anything after it is ignored.
    """
    path = Path(path)
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line:
            continue
        return _parse_template(json.loads(line))

    raise ValueError(f"No wizard template found in {path}")


def load_templates_jsonl(path: str | Path) -> dict[str, WizardTemplate]:
    """Load multiple templates from a JSONL file (one per line).

    Returns a dict keyed by intent, in file order.  A repeated intent is
    rejected rather than silently overwritten.
    """
    path = Path(path)
    templates: dict[str, WizardTemplate] = {}
    for lineno, line in enumerate(path.read_text(encoding="utf-8").splitlines(), 1):
        line = line.strip()
        if not line:
            continue
        template = _parse_template(json.loads(line))
        if template.intent in templates:
            raise ValueError(f"{path}:{lineno}: duplicate intent {template.intent!r}")
        templates[template.intent] = template
    return templates


def _parse_template(data: dict) -> WizardTemplate:
    """Parse a raw dict into a WizardTemplate."""
    steps = []
    for step in data.get("steps", []):
        steps.append(FieldSpec(**step) if isinstance(step, dict) else step)
    data = {**data, "steps": steps}
    return WizardTemplate(**data)


def save_templates_jsonl(templates: list[WizardTemplate], path: str | Path) -> None:
    """Persist templates back to a JSONL file, one per line."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    lines = [json.dumps(t.model_dump(mode="json"), ensure_ascii=False) for t in templates]
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")

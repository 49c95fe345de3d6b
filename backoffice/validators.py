"""Field validation and normalization.

``validate(field, raw)`` checks a single chat answer against its
``FieldSpec`` and returns a ``ValidationResult``.  It never raises for bad
input; the only exception is ``ValueError`` for a field type nobody taught
it about, which is a programming error.

The record-level helpers (``validate_customer``, ``validate_work_order``,
``validate_line``) are the write-time checks repositories run before
persisting a full document.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Any, Callable

from backoffice.wizards.schema import FieldSpec, FieldType

NIF_LETTERS = "TRWAGMYFPDXBNJZSQVHLCKE"
_NIE_PREFIX = {"X": 0, "Y": 1, "Z": 2}

_NIF_RE = re.compile(r"^([0-9]{8}|[XYZ][0-9]{7})([A-Z])$")
_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_PHONE_RE = re.compile(r"^(\+34|0034|34)?[6789]\d{8}$")
_PLATE_RE = re.compile(r"^[0-9]{4}[A-Z]{3}$")

LINE_TYPES = ("labor", "pieza", "consumible")


@dataclass
class ValidationResult:
    """Outcome of validating one value or one record."""

    valid: bool
    normalized_value: Any = None
    errors: list[str] = field(default_factory=list)

    @classmethod
    def ok(cls, value: Any) -> "ValidationResult":
        return cls(valid=True, normalized_value=value)

    @classmethod
    def fail(cls, *errors: str) -> "ValidationResult":
        return cls(valid=False, errors=list(errors))


# ── Predicates ───────────────────────────────────────────────────


def is_valid_nif(value: str | None) -> bool:
    """Spanish DNI/NIE check-letter validation.

    >>> is_valid_nif("12345678Z")
    True
    >>> is_valid_nif("X1234567L")
    True
    """
    if not value or not isinstance(value, str):
        return False
    nif = value.upper()
    match = _NIF_RE.match(nif)
    if not match:
        return False

    digits = match.group(1)
    if digits[0] in _NIE_PREFIX:
        number = _NIE_PREFIX[digits[0]] * 10_000_000 + int(digits[1:])
    else:
        number = int(digits)

    return match.group(2) == NIF_LETTERS[number % 23]


def is_valid_email(value: str | None) -> bool:
    if not value or not isinstance(value, str):
        return False
    return bool(_EMAIL_RE.match(value))


def is_valid_phone(value: str | None) -> bool:
    if not value or not isinstance(value, str):
        return False
    return bool(_PHONE_RE.match(re.sub(r"\s", "", value)))


def is_valid_plate(value: str | None) -> bool:
    if not value or not isinstance(value, str):
        return False
    return bool(_PLATE_RE.match(re.sub(r"[\s-]", "", value).upper()))


def is_not_empty(value: Any, min_length: int = 1) -> bool:
    if not isinstance(value, str):
        return False
    return len(value.strip()) >= min_length


def is_positive_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return not math.isnan(value) and value > 0


def is_in_range(value: Any, low: float, high: float) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return not math.isnan(value) and low <= value <= high


# ── Per-type field validators ────────────────────────────────────


def _validate_text(spec: FieldSpec, raw: str) -> ValidationResult:
    text = raw.strip()
    if not text:
        return ValidationResult.fail(f"{spec.display_label} no puede estar vacío.")
    min_length = spec.min_length or 1
    if len(text) < min_length:
        return ValidationResult.fail(
            f"{spec.display_label} debe tener al menos {min_length} caracteres."
        )
    return ValidationResult.ok(text)


def _validate_tax_id(spec: FieldSpec, raw: str) -> ValidationResult:
    nif = re.sub(r"[\s-]", "", raw).upper()
    if not _NIF_RE.match(nif):
        return ValidationResult.fail(
            "Formato de NIF/NIE no válido (ej. 12345678Z o X1234567L)."
        )
    if not is_valid_nif(nif):
        return ValidationResult.fail("La letra de control del NIF/NIE no es correcta.")
    return ValidationResult.ok(nif)


def _validate_email(spec: FieldSpec, raw: str) -> ValidationResult:
    email = raw.strip().lower()
    if not is_valid_email(email):
        return ValidationResult.fail("El email no es válido (ej. nombre@dominio.com).")
    return ValidationResult.ok(email)


def _validate_phone(spec: FieldSpec, raw: str) -> ValidationResult:
    phone = re.sub(r"\s", "", raw)
    if not _PHONE_RE.match(phone):
        return ValidationResult.fail("El teléfono no es válido (ej. 666777888).")
    return ValidationResult.ok(phone)


def _validate_plate(spec: FieldSpec, raw: str) -> ValidationResult:
    plate = re.sub(r"[\s-]", "", raw).upper()
    if not _PLATE_RE.match(plate):
        return ValidationResult.fail("La matrícula no es válida (formato: 1234ABC).")
    return ValidationResult.ok(plate)


def parse_number(raw: str) -> float | None:
    """Parse a user-typed number, accepting a decimal comma and € / % suffixes.

    With both separators present the last one is the decimal mark and the
    other must group thousands: ``1.234,56`` and ``1,234.56`` both give
    ``1234.56``; ``1,23.4`` is rejected.
    """
    text = raw.strip().rstrip("€%").strip().replace(" ", "")
    if "," in text and "." in text:
        decimal = "," if text.rfind(",") > text.rfind(".") else "."
        group = "." if decimal == "," else ","
        integer, _, fraction = text.rpartition(decimal)
        if not re.fullmatch(rf"-?\d{{1,3}}(?:{re.escape(group)}\d{{3}})+", integer):
            return None
        text = f"{integer.replace(group, '')}.{fraction}"
    else:
        text = text.replace(",", ".")
    try:
        value = float(text)
    except ValueError:
        return None
    if math.isnan(value) or math.isinf(value):
        return None
    return value


def _validate_number(spec: FieldSpec, raw: str) -> ValidationResult:
    value = parse_number(raw)
    if value is None:
        return ValidationResult.fail(f"{spec.display_label} debe ser un número.")

    errors: list[str] = []
    if spec.allow_zero:
        if value < 0:
            errors.append(f"{spec.display_label} no puede ser negativo.")
    elif value <= 0:
        errors.append(f"{spec.display_label} debe ser un número positivo.")
    if spec.max_value is not None and value > spec.max_value:
        errors.append(f"{spec.display_label} no puede ser mayor que {spec.max_value:g}.")

    if errors:
        return ValidationResult(valid=False, errors=errors)
    return ValidationResult.ok(value)


def _validate_choice(spec: FieldSpec, raw: str) -> ValidationResult:
    answer = raw.strip().lower().replace(" ", "_")
    for choice in spec.choices:
        if answer == choice.lower():
            return ValidationResult.ok(choice)
    # Numbered answer: "2" picks the second option
    if answer.isdigit() and 1 <= int(answer) <= len(spec.choices):
        return ValidationResult.ok(spec.choices[int(answer) - 1])
    return ValidationResult.fail(
        f"Opción no válida. Elige una de: {', '.join(spec.choices)}."
    )


def _validate_reference(spec: FieldSpec, raw: str) -> ValidationResult:
    ref = raw.strip()
    if not ref:
        return ValidationResult.fail(f"{spec.display_label} es obligatorio.")
    if re.search(r"\s", ref):
        return ValidationResult.fail(f"{spec.display_label} no puede contener espacios.")
    return ValidationResult.ok(ref)


_VALIDATORS: dict[FieldType, Callable[[FieldSpec, str], ValidationResult]] = {
    FieldType.TEXT: _validate_text,
    FieldType.TAX_ID: _validate_tax_id,
    FieldType.EMAIL: _validate_email,
    FieldType.PHONE: _validate_phone,
    FieldType.PLATE: _validate_plate,
    FieldType.NUMBER: _validate_number,
    FieldType.CHOICE: _validate_choice,
    FieldType.REFERENCE: _validate_reference,
}


def supports(field_type: Any) -> bool:
    """Whether ``validate`` knows how to check ``field_type``."""
    return field_type in _VALIDATORS


def validate(spec: FieldSpec, raw: str | None) -> ValidationResult:
    """Validate and normalize one raw chat answer for ``spec``."""
    check = _VALIDATORS.get(spec.field_type)
    if check is None:
        raise ValueError(f"No validator for field type {spec.field_type!r}")
    if raw is None or not raw.strip():
        return ValidationResult.fail(f"{spec.display_label} no puede estar vacío.")
    return check(spec, raw)


# ── Record validators (write-time) ───────────────────────────────


def validate_customer(data: dict[str, Any]) -> ValidationResult:
    errors: list[str] = []

    if not is_not_empty(data.get("nombre"), 2):
        errors.append("El nombre debe tener al menos 2 caracteres")
    if not is_not_empty(data.get("apellidos"), 2):
        errors.append("Los apellidos deben tener al menos 2 caracteres")
    if not is_valid_nif(data.get("nif")):
        errors.append("El NIF/NIE no es válido")
    if not is_valid_email(data.get("email")):
        errors.append("El email no es válido")
    if not is_not_empty(data.get("direccion"), 5):
        errors.append("La dirección debe tener al menos 5 caracteres")
    if data.get("telefono") and not is_valid_phone(data["telefono"]):
        errors.append("El teléfono no es válido")

    return ValidationResult(valid=not errors, normalized_value=data, errors=errors)


def validate_work_order(data: dict[str, Any]) -> ValidationResult:
    errors: list[str] = []

    if not is_not_empty(data.get("cliente_id")):
        errors.append("El ID de cliente es requerido")
    if not is_valid_plate(data.get("matricula")):
        errors.append("La matrícula no es válida (formato: 1234ABC)")
    if not is_not_empty(data.get("marca"), 2):
        errors.append("La marca es requerida")
    if not is_not_empty(data.get("modelo"), 2):
        errors.append("El modelo es requerido")
    if not is_not_empty(data.get("descripcion"), 10):
        errors.append("La descripción debe tener al menos 10 caracteres")

    return ValidationResult(valid=not errors, normalized_value=data, errors=errors)


def validate_line(line: dict[str, Any]) -> ValidationResult:
    errors: list[str] = []

    if line.get("tipo") not in LINE_TYPES:
        errors.append(f"Tipo debe ser: {', '.join(LINE_TYPES)}")
    if not is_not_empty(line.get("descripcion"), 3):
        errors.append("La descripción debe tener al menos 3 caracteres")
    if not is_positive_number(line.get("cantidad")):
        errors.append("La cantidad debe ser un número positivo")
    if not is_positive_number(line.get("precio_unitario")):
        errors.append("El precio unitario debe ser un número positivo")
    discount = line.get("descuento_porcentaje")
    if discount is not None and not is_in_range(discount, 0, 100):
        errors.append("El descuento debe estar entre 0 y 100")

    return ValidationResult(valid=not errors, normalized_value=line, errors=errors)

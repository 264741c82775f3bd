"""Dynamic per-vendor extraction schema.

A template's custom fields extend the baseline invoice record. Each field kind
has its own checker; the schema is plain data, so building it twice from the
same template yields equal objects and identical prompt text.
"""

import json
import logging
import math
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from src.core.exceptions import ExtractionSchemaError
from src.core.schemas.extraction import STANDARD_FIELDS, ExtractedInvoice, parse_iso_date
from src.core.schemas.template import CustomField, TemplateSpec

logger = logging.getLogger(__name__)

_TRUE = {"true", "yes", "y", "1"}
_FALSE = {"false", "no", "n", "0"}


def _check_string(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    raise ValueError("expected a string")


def _check_number(value: Any) -> float | int:
    if isinstance(value, bool):
        raise ValueError("expected a number")
    if isinstance(value, (int, float)):
        number = value
    elif isinstance(value, str):
        try:
            number = float(value.strip().replace(",", ""))
        except ValueError:
            raise ValueError("expected a number") from None
    else:
        raise ValueError("expected a number")
    if not math.isfinite(number):
        raise ValueError("expected a finite number")
    return number


def _check_boolean(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
    raise ValueError("expected a boolean")


def _check_date(value: Any) -> str:
    if not isinstance(value, str):
        raise ValueError("expected an ISO-8601 date string")
    try:
        return parse_iso_date(value)
    except ValueError:
        raise ValueError(f"invalid ISO-8601 date {value!r}") from None


FIELD_CHECKERS: dict[str, Callable[[Any], Any]] = {
    "string": _check_string,
    "number": _check_number,
    "boolean": _check_boolean,
    "date": _check_date,
}

TYPE_HINTS: dict[str, str] = {
    "string": "string or null",
    "number": "number or null",
    "boolean": "boolean or null",
    "date": "string (YYYY-MM-DD) or null",
}


def _is_missing(field: CustomField, value: Any) -> bool:
    if value is None:
        return True
    # An empty string is a legitimate string value but means "absent" for other kinds
    return field.type != "string" and isinstance(value, str) and not value.strip()


@dataclass(frozen=True)
class ExtractionSchema:
    custom_fields: tuple[CustomField, ...] = ()
    instructions: str = ""

    @property
    def custom_field_names(self) -> tuple[str, ...]:
        return tuple(f.name for f in self.custom_fields)

    def validate(self, data: Any) -> dict[str, Any]:
        """Validate and coerce a raw model answer into a record.

        Raises ExtractionSchemaError listing every problem found.
        """
        if not isinstance(data, dict):
            raise ExtractionSchemaError(
                f"Model response must be a JSON object, got {type(data).__name__}"
            )

        errors: list[str] = []
        try:
            record = ExtractedInvoice.model_validate(data).to_record()
        except ValidationError as e:
            errors.extend(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            record = {}

        for field in self.custom_fields:
            value = data.get(field.name)
            if _is_missing(field, value):
                if field.required:
                    errors.append(f"{field.name}: required field is missing")
                record[field.name] = None
                continue
            try:
                record[field.name] = FIELD_CHECKERS[field.type](value)
            except ValueError as e:
                errors.append(f"{field.name}: {e}")

        if errors:
            raise ExtractionSchemaError(
                "Extraction does not match schema: " + "; ".join(errors), errors
            )
        return record


def _build_instructions(template: TemplateSpec, fields: tuple[CustomField, ...]) -> str:
    parts: list[str] = []
    if template.custom_prompt and template.custom_prompt.strip():
        parts.append(f"VENDOR-SPECIFIC INSTRUCTIONS:\n{template.custom_prompt.strip()}")

    if fields:
        lines = [
            f"- {f.name} ({f.type}, {'required' if f.required else 'optional'}): "
            f"{f.description or 'No description'}"
            for f in fields
        ]
        parts.append("ADDITIONAL FIELDS TO EXTRACT:\n" + "\n".join(lines))
        example = {f.name: TYPE_HINTS[f.type] for f in fields}
        parts.append(
            "Extend the JSON response with these additional fields:\n"
            + json.dumps(example, indent=2)
        )
    return "\n\n".join(parts)


def build_extraction_schema(template: TemplateSpec | None = None) -> ExtractionSchema:
    """Compile a template into prompt instructions plus a record validator."""
    if template is None:
        return ExtractionSchema()

    fields: list[CustomField] = []
    for field in template.custom_fields:
        if field.name in STANDARD_FIELDS:
            logger.warning(
                "Template %s redefines standard field %s, ignoring", template.id, field.name
            )
            continue
        fields.append(field)

    frozen = tuple(fields)
    return ExtractionSchema(
        custom_fields=frozen, instructions=_build_instructions(template, frozen)
    )

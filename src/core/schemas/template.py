"""Vendor template definitions: custom fields, field mappings, validation rules.

Templates are authored by users, so every list entry is parsed on its own and
invalid entries are dropped with a warning instead of failing the document.
"""

import json
import logging
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from src.core.models.enums import ValidationRuleKind

logger = logging.getLogger(__name__)


class _CustomFieldBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    required: bool = False
    description: str | None = None


class StringField(_CustomFieldBase):
    type: Literal["string"] = "string"


class NumberField(_CustomFieldBase):
    type: Literal["number"] = "number"


class BooleanField(_CustomFieldBase):
    type: Literal["boolean"] = "boolean"


class DateField(_CustomFieldBase):
    type: Literal["date"] = "date"


CustomField = Annotated[
    StringField | NumberField | BooleanField | DateField,
    Field(discriminator="type"),
]

_custom_field_adapter: TypeAdapter[CustomField] = TypeAdapter(CustomField)


class ValidationRule(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    field: str = Field(min_length=1)
    kind: ValidationRuleKind = Field(alias="rule")
    value: str | int | float | None = None
    message: str | None = None


class TemplateSpec(BaseModel):
    """Parsed, validated view of a VendorTemplate row."""

    model_config = ConfigDict(frozen=True)

    id: str | None = None
    vendor_id: str | None = None
    custom_prompt: str | None = None
    custom_fields: tuple[CustomField, ...] = ()
    field_mappings: dict[str, str] = {}
    validation_rules: tuple[ValidationRule, ...] = ()

    @classmethod
    def from_template(cls, template: Any) -> "TemplateSpec | None":
        """Build from an ORM template (or any object with the same attributes)."""
        if template is None:
            return None
        template_id = getattr(template, "id", None)
        vendor_id = getattr(template, "vendor_id", None)
        return cls(
            id=str(template_id) if template_id else None,
            vendor_id=str(vendor_id) if vendor_id else None,
            custom_prompt=getattr(template, "custom_prompt", None) or None,
            custom_fields=tuple(parse_custom_fields(getattr(template, "custom_fields", None))),
            field_mappings=parse_field_mappings(getattr(template, "field_mappings", None)),
            validation_rules=tuple(
                parse_validation_rules(getattr(template, "validation_rules", None))
            ),
        )


def _load_json(raw: Any, expected: type, label: str) -> Any:
    if raw is None or raw == "":
        return expected()
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error("Invalid %s JSON in template: %s", label, e)
            return expected()
    if not isinstance(raw, expected):
        logger.error(
            "Template %s must be a %s, got %s", label, expected.__name__, type(raw).__name__
        )
        return expected()
    return raw


def parse_custom_fields(raw: Any) -> list[CustomField]:
    fields: list[CustomField] = []
    seen: set[str] = set()
    for entry in _load_json(raw, list, "custom_fields"):
        try:
            field = _custom_field_adapter.validate_python(entry)
        except ValidationError as e:
            logger.warning("Skipping invalid custom field %r: %s", entry, e.errors()[0]["msg"])
            continue
        if field.name in seen:
            logger.warning("Skipping duplicate custom field %s", field.name)
            continue
        seen.add(field.name)
        fields.append(field)
    return fields


def parse_field_mappings(raw: Any) -> dict[str, str]:
    mappings = _load_json(raw, dict, "field_mappings")
    return {str(k): str(v) for k, v in mappings.items() if k and v}


def parse_validation_rules(raw: Any) -> list[ValidationRule]:
    rules: list[ValidationRule] = []
    for entry in _load_json(raw, list, "validation_rules"):
        try:
            rules.append(ValidationRule.model_validate(entry))
        except ValidationError as e:
            logger.warning("Skipping invalid validation rule %r: %s", entry, e.errors()[0]["msg"])
    return rules

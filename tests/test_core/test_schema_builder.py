"""Tests for the dynamic extraction schema builder."""

import json
from types import SimpleNamespace

import pytest

from src.core.exceptions import ExtractionSchemaError
from src.core.extraction.schema_builder import build_extraction_schema
from src.core.schemas.template import TemplateSpec


def _template(**overrides) -> TemplateSpec:
    row = {
        "id": "tpl-1",
        "vendor_id": "vendor-1",
        "custom_prompt": "PO numbers start with PO-",
        "custom_fields": [
            {"name": "poNumber", "type": "string", "required": True, "description": "PO ref"},
            {"name": "taxRate", "type": "number"},
            {"name": "isPaid", "type": "boolean"},
            {"name": "dueDate", "type": "date"},
        ],
        **overrides,
    }
    return TemplateSpec.model_validate(
        {
            **row,
            "custom_fields": tuple(row["custom_fields"]),
        }
    )


def test_no_template_gives_baseline_schema():
    schema = build_extraction_schema(None)
    assert schema.custom_fields == ()
    assert schema.instructions == ""


def test_build_is_deterministic():
    """Same template twice yields equal schemas and identical prompt text."""
    first = build_extraction_schema(_template())
    second = build_extraction_schema(_template())
    assert first == second
    assert first.instructions == second.instructions


def test_instructions_list_fields_with_type_hints():
    schema = build_extraction_schema(_template())
    assert "VENDOR-SPECIFIC INSTRUCTIONS:\nPO numbers start with PO-" in schema.instructions
    assert "- poNumber (string, required): PO ref" in schema.instructions
    assert "- taxRate (number, optional): No description" in schema.instructions
    assert '"dueDate": "string (YYYY-MM-DD) or null"' in schema.instructions
    assert schema.custom_field_names == ("poNumber", "taxRate", "isPaid", "dueDate")


def test_standard_field_names_are_not_redefined():
    template = _template(custom_fields=[{"name": "totalAmount", "type": "string"}])
    schema = build_extraction_schema(template)
    assert schema.custom_fields == ()


def test_validate_coerces_custom_fields():
    schema = build_extraction_schema(_template())
    record = schema.validate(
        {
            "invoiceNumber": 1042,
            "date": "2024-03-05T10:00:00",
            "totalAmount": 120.5,
            "currency": "usd",
            "lineItems": None,
            "poNumber": "PO-7",
            "taxRate": "1,200.5",
            "isPaid": "yes",
            "dueDate": "2024-04-01",
        }
    )
    assert record["invoiceNumber"] == "1042"
    assert record["date"] == "2024-03-05"
    assert record["currency"] == "USD"
    assert record["lineItems"] == []
    assert record["taxRate"] == 1200.5
    assert record["isPaid"] is True
    assert record["dueDate"] == "2024-04-01"


def test_missing_required_field_is_schema_error():
    schema = build_extraction_schema(_template())
    with pytest.raises(ExtractionSchemaError) as exc_info:
        schema.validate({"invoiceNumber": "A-1", "totalAmount": 10})
    assert "poNumber: required field is missing" in exc_info.value.errors


def test_optional_field_missing_is_null():
    schema = build_extraction_schema(_template())
    record = schema.validate({"poNumber": "PO-1", "taxRate": ""})
    assert record["taxRate"] is None
    assert record["isPaid"] is None


def test_wrong_kind_collects_every_error():
    schema = build_extraction_schema(_template())
    with pytest.raises(ExtractionSchemaError) as exc_info:
        schema.validate({"poNumber": "PO-1", "taxRate": "lots", "isPaid": "maybe"})
    errors = exc_info.value.errors
    assert any(e.startswith("taxRate:") for e in errors)
    assert any(e.startswith("isPaid:") for e in errors)


def test_invalid_currency_is_schema_error():
    schema = build_extraction_schema(None)
    with pytest.raises(ExtractionSchemaError):
        schema.validate({"currency": "dollars"})


def test_non_object_answer_is_schema_error():
    with pytest.raises(ExtractionSchemaError):
        build_extraction_schema(None).validate(["not", "an", "object"])


def test_from_template_drops_invalid_and_duplicate_fields():
    row = SimpleNamespace(
        id="tpl-9",
        vendor_id="vendor-9",
        custom_prompt="   ",
        custom_fields=json.dumps(
            [
                {"name": "poNumber", "type": "string"},
                {"name": "poNumber", "type": "number"},
                {"name": "x", "type": "currency"},
                {"type": "string"},
            ]
        ),
        field_mappings={"billRef": "invoiceNumber", "": "currency"},
        validation_rules="not json",
    )
    spec = TemplateSpec.from_template(row)
    assert [f.name for f in spec.custom_fields] == ["poNumber"]
    assert spec.field_mappings == {"billRef": "invoiceNumber"}
    assert spec.validation_rules == ()
    assert spec.custom_prompt == "   "
    assert "VENDOR-SPECIFIC" not in build_extraction_schema(spec).instructions

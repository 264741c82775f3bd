"""Vendor field name mapping and standard/custom field separation."""

from typing import Any

from src.core.schemas.extraction import STANDARD_FIELDS


def apply_field_mappings(record: dict[str, Any], mappings: dict[str, str]) -> dict[str, Any]:
    """Copy vendor-named values onto standard names.

    The source field is kept. A mapping only fills the target when the source
    holds a value, so a null vendor field never erases a standard one.
    """
    if not mappings:
        return record
    mapped = dict(record)
    for source, target in mappings.items():
        value = record.get(source)
        if value is not None and value != "":
            mapped[target] = value
    return mapped


def split_standard_and_custom(
    record: dict[str, Any],
) -> tuple[dict[str, Any], dict[str, Any]]:
    standard = {k: v for k, v in record.items() if k in STANDARD_FIELDS}
    custom = {k: v for k, v in record.items() if k not in STANDARD_FIELDS}
    return standard, custom
